# booking/models.py

import enum
from typing import Optional
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Index
from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every datetime column is stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Role(str, enum.Enum):
    user = "USER"
    admin = "ADMIN"


class AppointmentStatus(str, enum.Enum):
    scheduled = "SCHEDULED"
    cancelled = "CANCELLED"
    completed = "COMPLETED"


class NotificationKind(str, enum.Enum):
    new_booking = "NEW_BOOKING"
    rescheduled = "RESCHEDULED"
    cancelled = "CANCELLED"
    completed = "COMPLETED"


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str = Field(index=True, unique=True)  # always stored lower-cased
    password_hash: str
    role: Role = Field(default=Role.user)
    created_at: datetime = Field(default_factory=utcnow)


class Client(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None

    owner_id: int = Field(foreign_key="user.id", index=True)
    # registered user behind this client, notified about their bookings
    account_id: Optional[int] = Field(default=None, foreign_key="user.id")

    archived: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow)


class Service(SQLModel, table=True):
    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="ck_service_duration_positive"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    duration_minutes: int
    price: float = 0.0
    description: Optional[str] = None
    # services naming the same resource share one calendar
    resource: Optional[str] = Field(default=None, index=True)
    archived: bool = Field(default=False)

    @property
    def calendar_key(self) -> str:
        if self.resource:
            return f"resource:{self.resource}"
        return f"service:{self.id}"


class Appointment(SQLModel, table=True):
    __table_args__ = (
        CheckConstraint("ends_at > starts_at", name="ck_appointment_interval"),
        Index("ix_appointment_service_start", "service_id", "starts_at"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)

    service_id: int = Field(foreign_key="service.id")
    client_id: int = Field(foreign_key="client.id", index=True)
    user_id: int = Field(foreign_key="user.id", index=True)

    starts_at: datetime = Field(index=True)
    ends_at: datetime
    status: AppointmentStatus = Field(default=AppointmentStatus.scheduled, index=True)
    notes: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Notification(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    user_id: int = Field(foreign_key="user.id", index=True)
    appointment_id: Optional[int] = Field(default=None, foreign_key="appointment.id")
    kind: NotificationKind
    message: str
    read: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow)
