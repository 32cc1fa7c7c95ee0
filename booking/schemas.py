# booking/schemas.py

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from booking.models import AppointmentStatus, NotificationKind, Role


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


# Users

class UserCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    email: str = Field(min_length=3, max_length=254)
    password: str = Field(min_length=8, max_length=72)


class UserUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    email: Optional[str] = Field(default=None, min_length=3, max_length=254)
    password: Optional[str] = Field(default=None, min_length=8, max_length=72)


class UserPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    role: Role


# Clients

class ClientCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    email: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None
    account_id: Optional[int] = None


class ClientUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    email: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None
    account_id: Optional[int] = None


class ClientPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: Optional[str]
    phone: Optional[str]
    notes: Optional[str]
    owner_id: int
    account_id: Optional[int]


# Services

class ServiceCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    duration_minutes: int = Field(gt=0, le=24 * 60)
    price: float = Field(default=0.0, ge=0)
    description: Optional[str] = None
    resource: Optional[str] = Field(default=None, max_length=120)


class ServiceUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    duration_minutes: Optional[int] = Field(default=None, gt=0, le=24 * 60)
    price: Optional[float] = Field(default=None, ge=0)
    description: Optional[str] = None
    resource: Optional[str] = Field(default=None, max_length=120)


class ServicePublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    duration_minutes: int
    price: float
    description: Optional[str]
    resource: Optional[str]


# Appointments

class AppointmentCreate(BaseModel):
    service_id: int
    client_id: int
    starts_at: datetime
    ends_at: Optional[datetime] = None  # defaults to starts_at + service duration
    notes: Optional[str] = None


class AppointmentReschedule(BaseModel):
    starts_at: datetime
    ends_at: Optional[datetime] = None


class AppointmentPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    service_id: int
    client_id: int
    user_id: int
    starts_at: datetime
    ends_at: datetime
    status: AppointmentStatus
    notes: Optional[str]


# Notifications

class NotificationPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    appointment_id: Optional[int]
    kind: NotificationKind
    message: str
    read: bool
    created_at: datetime


class UnreadCount(BaseModel):
    count: int


class MarkedRead(BaseModel):
    marked: int


class ErrorResponse(BaseModel):
    detail: str
    code: str
    conflicts: Optional[List[int]] = None
