# booking/scheduling.py

import logging
from contextlib import ExitStack
from datetime import datetime, timedelta
from typing import List, Optional

from booking.auth import Identity
from booking.core import as_utc_naive
from booking.errors import Conflict, InvalidInterval, InvalidRange, InvalidState, Unavailable
from booking.guard import require_owner
from booking.models import Appointment, AppointmentStatus, Client, NotificationKind, Service
from booking.notifications import NotificationEmitter
from booking.store import AppointmentStore, CalendarLocks

logger = logging.getLogger(__name__)


class SchedulingEngine:
    """Booking rules on top of an ``AppointmentStore``.

    A calendar (one service, or every service sharing a resource) never holds
    two SCHEDULED appointments whose ``[starts_at, ends_at)`` intervals
    intersect. The overlap check and the write that follows run under the
    calendar's lock; reads take no lock.

    Transitions: SCHEDULED -> CANCELLED, SCHEDULED -> COMPLETED, and
    SCHEDULED -> SCHEDULED on reschedule. Nothing leaves CANCELLED or
    COMPLETED.
    """

    def __init__(
        self,
        store: AppointmentStore,
        notifier: NotificationEmitter,
        locks: CalendarLocks,
        lock_timeout: float = 10.0,
    ):
        self.store = store
        self.notifier = notifier
        self.locks = locks
        self.lock_timeout = lock_timeout

    # Commands

    def book(
        self,
        actor: Identity,
        service_id: int,
        client_id: int,
        starts_at: datetime,
        ends_at: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> Appointment:
        service = self.store.get_service(service_id)
        client = self._managed_client(actor, client_id)
        start, end = self._interval(service, starts_at, ends_at)

        with self.locks.hold(service.calendar_key, self.lock_timeout):
            self._ensure_free(service, start, end)
            appt = self.store.create(
                Appointment(
                    service_id=service.id,
                    client_id=client.id,
                    user_id=actor.user_id,
                    starts_at=start,
                    ends_at=end,
                    status=AppointmentStatus.scheduled,
                    notes=notes,
                )
            )

        logger.info("Booked appointment %s on %s [%s, %s)", appt.id, service.calendar_key, start, end)
        self._notify(appt, NotificationKind.new_booking, f"New booking: {service.name} at {_fmt(start)}.")
        return appt

    def reschedule(
        self,
        actor: Identity,
        appt_id: int,
        starts_at: datetime,
        ends_at: Optional[datetime] = None,
    ) -> Appointment:
        appt = self._owned(actor, appt_id)
        self._ensure_scheduled(appt, "rescheduled")
        service = self.store.get_service(appt.service_id)
        start, end = self._interval(service, starts_at, ends_at)

        with self.locks.hold(service.calendar_key, self.lock_timeout):
            # state may have moved while waiting for the lock
            appt = self.store.get(appt_id)
            self._ensure_scheduled(appt, "rescheduled")
            self._ensure_free(service, start, end, exclude_id=appt.id)
            appt = self.store.update(appt.id, {"starts_at": start, "ends_at": end})

        logger.info("Rescheduled appointment %s to [%s, %s)", appt.id, start, end)
        self._notify(appt, NotificationKind.rescheduled, f"Appointment moved to {_fmt(start)}.")
        return appt

    def cancel(self, actor: Identity, appt_id: int) -> Appointment:
        appt = self._transition(actor, appt_id, AppointmentStatus.cancelled, "cancelled")
        self._notify(appt, NotificationKind.cancelled, f"Appointment on {_fmt(appt.starts_at)} was cancelled.")
        return appt

    def complete(self, actor: Identity, appt_id: int) -> Appointment:
        return self._transition(actor, appt_id, AppointmentStatus.completed, "completed")

    def purge(self, appt_id: int) -> None:
        """Physically remove an appointment. Administrative use only."""
        self.store.delete(appt_id)
        logger.warning("Appointment %s purged", appt_id)

    def update_service(self, service_id: int, changes: dict) -> Service:
        """Apply ``changes`` to a service.

        Changing ``resource`` moves the service's SCHEDULED appointments onto
        another calendar, so both calendars are locked (in key order) and the
        move is refused with ``Conflict`` if any of them would overlap an
        appointment already on the target resource.
        """
        service = self.store.get_service(service_id)
        if "resource" in changes:
            changes["resource"] = changes["resource"] or None
        resource = changes.get("resource", service.resource)

        if resource == service.resource:
            return self._apply(service, changes)

        target_key = f"resource:{resource}" if resource else f"service:{service.id}"
        with ExitStack() as held:
            for key in sorted({service.calendar_key, target_key}):
                held.enter_context(self.locks.hold(key, self.lock_timeout))
            if resource:
                self._ensure_resource_free(service, resource)
            service = self._apply(service, changes)

        logger.info("Service %s moved to calendar %s", service.id, service.calendar_key)
        return service

    # Queries

    def get(self, appt_id: int) -> Appointment:
        return self.store.get(appt_id)

    def my_appointments(self, user_id: int, status: Optional[AppointmentStatus] = None) -> List[Appointment]:
        return self.store.list_by_owner(user_id, status)

    def by_service(self, service_id: int, status: Optional[AppointmentStatus] = None) -> List[Appointment]:
        self.store.get_service(service_id)
        return self.store.list_by_service(service_id, status)

    def by_client(
        self,
        actor: Identity,
        client_id: int,
        status: Optional[AppointmentStatus] = None,
    ) -> List[Appointment]:
        self._managed_client(actor, client_id)
        return self.store.list_by_client(client_id, status)

    def by_date_range(
        self,
        start: datetime,
        end: datetime,
        status: Optional[AppointmentStatus] = None,
    ) -> List[Appointment]:
        start, end = as_utc_naive(start), as_utc_naive(end)
        if start >= end:
            raise InvalidRange("'from' must be before 'to'")
        return self.store.list_by_date_range(start, end, status)

    # Helpers

    def _interval(self, service: Service, starts_at: datetime, ends_at: Optional[datetime]):
        start = as_utc_naive(starts_at)
        if ends_at is None:
            end = start + timedelta(minutes=service.duration_minutes)
        else:
            end = as_utc_naive(ends_at)
        if end <= start:
            raise InvalidInterval("Appointment must end after it starts")
        return start, end

    def _ensure_free(self, service: Service, start: datetime, end: datetime, exclude_id: Optional[int] = None):
        clashes = self.store.list_overlapping(service.id, start, end, exclude_id=exclude_id)
        if clashes:
            ids = [a.id for a in clashes]
            logger.info("Slot [%s, %s) on %s conflicts with %s", start, end, service.calendar_key, ids)
            raise Conflict("Appointment overlaps an existing appointment", conflicts=ids)

    def _ensure_resource_free(self, service: Service, resource: str) -> None:
        ids = set()
        for appt in self.store.list_by_service(service.id, AppointmentStatus.scheduled):
            clashes = self.store.list_on_resource(
                resource, appt.starts_at, appt.ends_at, exclude_service_id=service.id
            )
            ids.update(a.id for a in clashes)
        if ids:
            logger.info("Moving service %s onto resource %s conflicts with %s", service.id, resource, sorted(ids))
            raise Conflict("Service appointments overlap others on that resource", conflicts=sorted(ids))

    def _apply(self, service: Service, changes: dict) -> Service:
        for field, value in changes.items():
            setattr(service, field, value)
        return self.store.save(service)

    def _owned(self, actor: Identity, appt_id: int) -> Appointment:
        appt = self.store.get(appt_id)
        require_owner(actor, appt.user_id)
        return appt

    def _managed_client(self, actor: Identity, client_id: int) -> Client:
        client = self.store.get_client(client_id)
        require_owner(actor, client.owner_id)
        return client

    @staticmethod
    def _ensure_scheduled(appt: Appointment, action: str) -> None:
        if appt.status != AppointmentStatus.scheduled:
            raise InvalidState(f"Appointment is {appt.status.value.lower()} and cannot be {action}")

    def _transition(self, actor: Identity, appt_id: int, target: AppointmentStatus, action: str) -> Appointment:
        appt = self._owned(actor, appt_id)
        with self.locks.hold(self.store.calendar_key(appt), self.lock_timeout):
            appt = self.store.get(appt_id)
            self._ensure_scheduled(appt, action)
            appt = self.store.update(appt.id, {"status": target})
        logger.info("Appointment %s %s", appt.id, action)
        return appt

    def _notify(self, appt: Appointment, kind: NotificationKind, message: str) -> None:
        # the appointment is already committed; nothing here may fail the call
        recipients = [appt.user_id]
        try:
            account_id = self.store.client_account(appt.client_id)
        except Unavailable:
            logger.exception("Could not resolve client account for appointment %s", appt.id)
            account_id = None
        if account_id is not None and account_id not in recipients:
            recipients.append(account_id)

        for user_id in recipients:
            self.notifier.emit(user_id, appt.id, kind, message)


def _fmt(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M")
