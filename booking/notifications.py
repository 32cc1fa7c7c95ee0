# booking/notifications.py

import logging
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from booking.errors import NotFound
from booking.models import Notification, NotificationKind

logger = logging.getLogger(__name__)


class NotificationEmitter:
    """Writes notification records and serves each user's inbox.

    ``emit`` opens its own session so a failed notification can never roll
    back the booking that triggered it.
    """

    def __init__(self, engine: Engine):
        self.engine = engine

    def emit(
        self,
        recipient_id: int,
        appointment_id: Optional[int],
        kind: NotificationKind,
        message: str,
    ) -> Optional[Notification]:
        try:
            with Session(self.engine) as session:
                notification = Notification(
                    user_id=recipient_id,
                    appointment_id=appointment_id,
                    kind=kind,
                    message=message,
                )
                session.add(notification)
                session.commit()
                session.refresh(notification)
        except Exception:
            logger.exception(
                "Failed to create %s notification for user %s (appointment %s)",
                kind.value, recipient_id, appointment_id,
            )
            return None

        logger.info("Notification created: %s for user %s", kind.value, recipient_id)
        return notification

    def list_for_user(self, user_id: int, unread_only: bool = False) -> List[Notification]:
        with Session(self.engine) as session:
            stmt = select(Notification).where(Notification.user_id == user_id)
            if unread_only:
                stmt = stmt.where(Notification.read == False)  # noqa: E712
            stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc())
            return list(session.exec(stmt).all())

    def unread_count(self, user_id: int) -> int:
        with Session(self.engine) as session:
            stmt = (
                select(func.count())
                .select_from(Notification)
                .where(Notification.user_id == user_id)
                .where(Notification.read == False)  # noqa: E712
            )
            return session.exec(stmt).one()

    def mark_read(self, user_id: int, notification_id: int) -> Notification:
        with Session(self.engine) as session:
            notification = session.get(Notification, notification_id)
            # someone else's notification looks the same as a missing one
            if notification is None or notification.user_id != user_id:
                raise NotFound("Notification not found")
            notification.read = True
            session.add(notification)
            session.commit()
            session.refresh(notification)
            return notification

    def mark_all_read(self, user_id: int) -> int:
        with Session(self.engine) as session:
            unread = session.exec(
                select(Notification)
                .where(Notification.user_id == user_id)
                .where(Notification.read == False)  # noqa: E712
            ).all()
            for n in unread:
                n.read = True
                session.add(n)
            session.commit()
            return len(unread)
