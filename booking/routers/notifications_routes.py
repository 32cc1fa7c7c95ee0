# booking/routers/notifications_routes.py

from typing import List

from fastapi import APIRouter, Depends

from booking.auth import Identity
from booking.deps import get_current_user, get_notifier
from booking.notifications import NotificationEmitter
from booking.schemas import MarkedRead, NotificationPublic, UnreadCount

router = APIRouter(
    prefix="/notifications",
    tags=["notifications"],
)


@router.get("", response_model=List[NotificationPublic])
def list_notifications(
    unread_only: bool = False,
    notifier: NotificationEmitter = Depends(get_notifier),
    current_user: Identity = Depends(get_current_user),
):
    return notifier.list_for_user(current_user.user_id, unread_only=unread_only)


@router.get("/unread-count", response_model=UnreadCount)
def unread_count(
    notifier: NotificationEmitter = Depends(get_notifier),
    current_user: Identity = Depends(get_current_user),
):
    return {"count": notifier.unread_count(current_user.user_id)}


@router.put("/read-all", response_model=MarkedRead)
def mark_all_read(
    notifier: NotificationEmitter = Depends(get_notifier),
    current_user: Identity = Depends(get_current_user),
):
    return {"marked": notifier.mark_all_read(current_user.user_id)}


@router.put("/{notification_id}/read", response_model=NotificationPublic)
def mark_read(
    notification_id: int,
    notifier: NotificationEmitter = Depends(get_notifier),
    current_user: Identity = Depends(get_current_user),
):
    return notifier.mark_read(current_user.user_id, notification_id)
