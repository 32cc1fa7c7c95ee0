# booking/deps.py

from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.engine import Engine
from sqlmodel import Session

from booking.auth import Identity
from booking.config import get_settings
from booking.db import get_engine, get_session
from booking.guard import authenticate, require_role
from booking.models import Role
from booking.notifications import NotificationEmitter
from booking.scheduling import SchedulingEngine
from booking.store import AppointmentStore, calendar_locks


def get_current_user(authorization: Optional[str] = Header(default=None)) -> Identity:
    return authenticate(authorization)


def get_admin_user(current_user: Identity = Depends(get_current_user)) -> Identity:
    require_role(current_user, Role.admin)
    return current_user


def get_store(session: Session = Depends(get_session)) -> AppointmentStore:
    return AppointmentStore(session)


def get_notifier(engine: Engine = Depends(get_engine)) -> NotificationEmitter:
    return NotificationEmitter(engine)


def get_scheduler(
    store: AppointmentStore = Depends(get_store),
    notifier: NotificationEmitter = Depends(get_notifier),
) -> SchedulingEngine:
    return SchedulingEngine(
        store,
        notifier,
        locks=calendar_locks,
        lock_timeout=get_settings().lock_timeout_seconds,
    )
