# booking/routers/services_routes.py

from typing import List

from fastapi import APIRouter, Depends, Response
from sqlmodel import Session, select

from booking.auth import Identity
from booking.db import get_session
from booking.deps import get_current_user, get_scheduler, get_store
from booking.errors import Conflict
from booking.models import Service
from booking.scheduling import SchedulingEngine
from booking.schemas import ServiceCreate, ServicePublic, ServiceUpdate
from booking.store import AppointmentStore

router = APIRouter(
    prefix="/services",
    tags=["services"],
)


@router.post("", response_model=ServicePublic, status_code=201)
def create_service(
    service: ServiceCreate,
    store: AppointmentStore = Depends(get_store),
    current_user: Identity = Depends(get_current_user),
):
    data = service.model_dump()
    data["resource"] = data["resource"] or None
    return store.save(Service(**data))


@router.get("", response_model=List[ServicePublic])
def list_services(
    session: Session = Depends(get_session),
    current_user: Identity = Depends(get_current_user),
):
    return session.exec(
        select(Service).where(Service.archived == False).order_by(Service.name, Service.id)  # noqa: E712
    ).all()


@router.get("/{service_id}", response_model=ServicePublic)
def get_service(
    service_id: int,
    store: AppointmentStore = Depends(get_store),
    current_user: Identity = Depends(get_current_user),
):
    return store.get_service(service_id)


@router.put("/{service_id}", response_model=ServicePublic)
def update_service(
    service_id: int,
    changes: ServiceUpdate,
    scheduler: SchedulingEngine = Depends(get_scheduler),
    current_user: Identity = Depends(get_current_user),
):
    # a resource change can move booked appointments, so the engine handles it
    return scheduler.update_service(service_id, changes.model_dump(exclude_unset=True, exclude_none=True))


@router.delete("/{service_id}", status_code=204)
def delete_service(
    service_id: int,
    store: AppointmentStore = Depends(get_store),
    current_user: Identity = Depends(get_current_user),
):
    service = store.get_service(service_id)

    upcoming = store.upcoming_ids(service_id=service.id)
    if upcoming:
        raise Conflict("Service has upcoming appointments", conflicts=upcoming)

    service.archived = True
    store.save(service)
    return Response(status_code=204)
