# booking/routers/appointments_routes.py

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response

from booking.auth import Identity
from booking.deps import get_current_user, get_scheduler
from booking.models import AppointmentStatus
from booking.scheduling import SchedulingEngine
from booking.schemas import (
    AppointmentCreate,
    AppointmentPublic,
    AppointmentReschedule,
    ErrorResponse,
)

router = APIRouter(
    prefix="/appointments",
    tags=["appointments"],
    responses={401: {"model": ErrorResponse}},
)


@router.post(
    "",
    response_model=AppointmentPublic,
    status_code=201,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def create_appointment(
    appt: AppointmentCreate,
    scheduler: SchedulingEngine = Depends(get_scheduler),
    current_user: Identity = Depends(get_current_user),
):
    return scheduler.book(
        current_user,
        service_id=appt.service_id,
        client_id=appt.client_id,
        starts_at=appt.starts_at,
        ends_at=appt.ends_at,
        notes=appt.notes,
    )


# Static paths come before /{appt_id}

@router.get("/my-appointments", response_model=List[AppointmentPublic])
def list_my_appointments(
    status: Optional[AppointmentStatus] = None,
    scheduler: SchedulingEngine = Depends(get_scheduler),
    current_user: Identity = Depends(get_current_user),
):
    return scheduler.my_appointments(current_user.user_id, status)


@router.get("/service/{service_id}", response_model=List[AppointmentPublic])
def list_service_appointments(
    service_id: int,
    status: Optional[AppointmentStatus] = None,
    scheduler: SchedulingEngine = Depends(get_scheduler),
    current_user: Identity = Depends(get_current_user),
):
    return scheduler.by_service(service_id, status)


@router.get("/client/{client_id}", response_model=List[AppointmentPublic])
def list_client_appointments(
    client_id: int,
    status: Optional[AppointmentStatus] = None,
    scheduler: SchedulingEngine = Depends(get_scheduler),
    current_user: Identity = Depends(get_current_user),
):
    return scheduler.by_client(current_user, client_id, status)


@router.get("/date-range", response_model=List[AppointmentPublic])
def list_appointments_in_range(
    start: datetime = Query(alias="from"),
    end: datetime = Query(alias="to"),
    status: Optional[AppointmentStatus] = None,
    scheduler: SchedulingEngine = Depends(get_scheduler),
    current_user: Identity = Depends(get_current_user),
):
    return scheduler.by_date_range(start, end, status)


@router.get("/{appt_id}", response_model=AppointmentPublic)
def get_appointment(
    appt_id: int,
    scheduler: SchedulingEngine = Depends(get_scheduler),
    current_user: Identity = Depends(get_current_user),
):
    return scheduler.get(appt_id)


@router.put("/{appt_id}", response_model=AppointmentPublic)
def reschedule_appointment(
    appt_id: int,
    change: AppointmentReschedule,
    scheduler: SchedulingEngine = Depends(get_scheduler),
    current_user: Identity = Depends(get_current_user),
):
    return scheduler.reschedule(current_user, appt_id, change.starts_at, change.ends_at)


@router.delete("/{appt_id}", status_code=204)
def cancel_appointment(
    appt_id: int,
    scheduler: SchedulingEngine = Depends(get_scheduler),
    current_user: Identity = Depends(get_current_user),
):
    scheduler.cancel(current_user, appt_id)
    return Response(status_code=204)


@router.patch("/{appt_id}/complete", response_model=AppointmentPublic)
def complete_appointment(
    appt_id: int,
    scheduler: SchedulingEngine = Depends(get_scheduler),
    current_user: Identity = Depends(get_current_user),
):
    return scheduler.complete(current_user, appt_id)
