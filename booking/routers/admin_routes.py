# booking/routers/admin_routes.py

from typing import List

from fastapi import APIRouter, Depends, Response
from sqlmodel import Session, select

from booking.auth import Identity
from booking.db import get_session
from booking.deps import get_admin_user, get_scheduler
from booking.models import User
from booking.scheduling import SchedulingEngine
from booking.schemas import UserPublic

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
)


@router.get("/users", response_model=List[UserPublic])
def list_users(
    session: Session = Depends(get_session),
    admin: Identity = Depends(get_admin_user),
):
    return session.exec(select(User).order_by(User.id)).all()


@router.delete("/appointments/{appt_id}", status_code=204)
def purge_appointment(
    appt_id: int,
    scheduler: SchedulingEngine = Depends(get_scheduler),
    admin: Identity = Depends(get_admin_user),
):
    # hard delete; regular users cancel instead
    scheduler.purge(appt_id)
    return Response(status_code=204)
