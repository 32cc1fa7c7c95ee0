# booking/store.py

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterator, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from booking.errors import NotFound, Unavailable
from booking.models import (
    Appointment,
    AppointmentStatus,
    Client,
    Notification,
    Service,
    User,
    utcnow,
)

logger = logging.getLogger(__name__)


class CalendarLocks:
    """One lock per calendar key, so bookings on different calendars never wait on each other."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, key: str, timeout: float) -> Iterator[None]:
        lock = self._lock_for(key)
        if not lock.acquire(timeout=timeout):
            logger.error("Timed out waiting for calendar lock %s", key)
            raise Unavailable("Calendar is busy, try again")
        try:
            yield
        finally:
            lock.release()


calendar_locks = CalendarLocks()


class AppointmentStore:
    """Persistence for appointments and the records they reference.

    No business rules live here. Database failures are rolled back and
    surfaced as ``Unavailable``.
    """

    def __init__(self, session: Session):
        self.session = session

    @contextmanager
    def _db_errors(self) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Database error: %s", exc)
            raise Unavailable("Storage is unavailable") from exc

    def _ordered(self, stmt, status: Optional[AppointmentStatus]) -> List[Appointment]:
        if status is not None:
            stmt = stmt.where(Appointment.status == status)
        stmt = stmt.order_by(Appointment.starts_at, Appointment.id)
        with self._db_errors():
            return list(self.session.exec(stmt).all())

    # Lookups

    def get(self, appt_id: int) -> Appointment:
        with self._db_errors():
            appt = self.session.get(Appointment, appt_id, populate_existing=True)
        if appt is None:
            raise NotFound("Appointment not found")
        return appt

    def get_service(self, service_id: int) -> Service:
        with self._db_errors():
            service = self.session.get(Service, service_id)
        if service is None or service.archived:
            raise NotFound("Service not found")
        return service

    def get_client(self, client_id: int) -> Client:
        with self._db_errors():
            client = self.session.get(Client, client_id)
        if client is None or client.archived:
            raise NotFound("Client not found")
        return client

    def get_user(self, user_id: int) -> User:
        with self._db_errors():
            user = self.session.get(User, user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    def client_account(self, client_id: int) -> Optional[int]:
        with self._db_errors():
            client = self.session.get(Client, client_id)
        return client.account_id if client is not None else None

    def calendar_key(self, appt: Appointment) -> str:
        # archived services still own the calendar of their past appointments
        with self._db_errors():
            service = self.session.get(Service, appt.service_id)
        if service is None:
            return f"service:{appt.service_id}"
        return service.calendar_key

    # Listings, ordered by start time

    def list_by_client(self, client_id: int, status: Optional[AppointmentStatus] = None) -> List[Appointment]:
        return self._ordered(select(Appointment).where(Appointment.client_id == client_id), status)

    def list_by_service(self, service_id: int, status: Optional[AppointmentStatus] = None) -> List[Appointment]:
        return self._ordered(select(Appointment).where(Appointment.service_id == service_id), status)

    def list_by_owner(self, user_id: int, status: Optional[AppointmentStatus] = None) -> List[Appointment]:
        return self._ordered(select(Appointment).where(Appointment.user_id == user_id), status)

    def list_by_date_range(
        self,
        start: datetime,
        end: datetime,
        status: Optional[AppointmentStatus] = None,
    ) -> List[Appointment]:
        stmt = (
            select(Appointment)
            .where(Appointment.starts_at >= start)
            .where(Appointment.starts_at < end)
        )
        return self._ordered(stmt, status)

    def list_overlapping(
        self,
        service_id: int,
        start: datetime,
        end: datetime,
        exclude_id: Optional[int] = None,
    ) -> List[Appointment]:
        service = self.get_service(service_id)

        stmt = (
            select(Appointment)
            .join(Service, Service.id == Appointment.service_id)
            .where(Appointment.status == AppointmentStatus.scheduled)
            .where(Appointment.starts_at < end)
            .where(Appointment.ends_at > start)
        )
        if service.resource:
            stmt = stmt.where(
                or_(Service.resource == service.resource, Appointment.service_id == service.id)
            )
        else:
            stmt = stmt.where(Appointment.service_id == service.id)
        if exclude_id is not None:
            stmt = stmt.where(Appointment.id != exclude_id)

        return self._ordered(stmt, None)

    def list_on_resource(
        self,
        resource: str,
        start: datetime,
        end: datetime,
        exclude_service_id: Optional[int] = None,
    ) -> List[Appointment]:
        """SCHEDULED appointments of services naming ``resource`` that intersect ``[start, end)``."""
        stmt = (
            select(Appointment)
            .join(Service, Service.id == Appointment.service_id)
            .where(Service.resource == resource)
            .where(Appointment.status == AppointmentStatus.scheduled)
            .where(Appointment.starts_at < end)
            .where(Appointment.ends_at > start)
        )
        if exclude_service_id is not None:
            stmt = stmt.where(Appointment.service_id != exclude_service_id)
        return self._ordered(stmt, None)

    def upcoming_ids(self, *, client_id: Optional[int] = None, service_id: Optional[int] = None) -> List[int]:
        """Ids of scheduled appointments that have not ended yet."""
        stmt = (
            select(Appointment)
            .where(Appointment.status == AppointmentStatus.scheduled)
            .where(Appointment.ends_at > utcnow())
        )
        if client_id is not None:
            stmt = stmt.where(Appointment.client_id == client_id)
        if service_id is not None:
            stmt = stmt.where(Appointment.service_id == service_id)
        return [a.id for a in self._ordered(stmt, None)]

    # Writes

    def save(self, record):
        """Commit a new or changed user, client or service row."""
        with self._db_errors():
            self.session.add(record)
            self.session.commit()
            self.session.refresh(record)
        return record

    def create(self, appt: Appointment) -> Appointment:
        with self._db_errors():
            self.session.add(appt)
            self.session.commit()
            self.session.refresh(appt)  # fills appt.id
        return appt

    def update(self, appt_id: int, patch: dict) -> Appointment:
        appt = self.get(appt_id)
        with self._db_errors():
            for field, value in patch.items():
                setattr(appt, field, value)
            appt.updated_at = utcnow()
            self.session.add(appt)
            self.session.commit()
            self.session.refresh(appt)
        return appt

    def delete(self, appt_id: int) -> None:
        appt = self.get(appt_id)
        with self._db_errors():
            notifications = self.session.exec(
                select(Notification).where(Notification.appointment_id == appt_id)
            ).all()
            for n in notifications:
                self.session.delete(n)
            self.session.delete(appt)
            self.session.commit()
