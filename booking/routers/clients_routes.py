# booking/routers/clients_routes.py

from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from sqlmodel import Session, select

from booking.auth import Identity
from booking.db import get_session
from booking.deps import get_current_user, get_store
from booking.errors import Conflict
from booking.guard import require_owner
from booking.models import Client, Role
from booking.schemas import ClientCreate, ClientPublic, ClientUpdate
from booking.store import AppointmentStore

router = APIRouter(
    prefix="/clients",
    tags=["clients"],
)


def get_managed_client(store: AppointmentStore, client_id: int, current_user: Identity) -> Client:
    client = store.get_client(client_id)
    require_owner(current_user, client.owner_id)
    return client


def check_account(store: AppointmentStore, account_id: Optional[int]) -> None:
    # booking notifications go to the linked account
    if account_id is not None:
        store.get_user(account_id)


@router.post("", response_model=ClientPublic, status_code=201)
def create_client(
    client: ClientCreate,
    store: AppointmentStore = Depends(get_store),
    current_user: Identity = Depends(get_current_user),
):
    check_account(store, client.account_id)
    return store.save(Client(**client.model_dump(), owner_id=current_user.user_id))


@router.get("", response_model=List[ClientPublic])
def list_clients(
    session: Session = Depends(get_session),
    current_user: Identity = Depends(get_current_user),
):
    stmt = select(Client).where(Client.archived == False)  # noqa: E712
    if current_user.role != Role.admin:
        stmt = stmt.where(Client.owner_id == current_user.user_id)
    return session.exec(stmt.order_by(Client.name, Client.id)).all()


@router.get("/{client_id}", response_model=ClientPublic)
def get_client(
    client_id: int,
    store: AppointmentStore = Depends(get_store),
    current_user: Identity = Depends(get_current_user),
):
    return get_managed_client(store, client_id, current_user)


@router.put("/{client_id}", response_model=ClientPublic)
def update_client(
    client_id: int,
    changes: ClientUpdate,
    store: AppointmentStore = Depends(get_store),
    current_user: Identity = Depends(get_current_user),
):
    client = get_managed_client(store, client_id, current_user)
    data = changes.model_dump(exclude_unset=True, exclude_none=True)
    check_account(store, data.get("account_id"))
    for field, value in data.items():
        setattr(client, field, value)
    return store.save(client)


@router.delete("/{client_id}", status_code=204)
def delete_client(
    client_id: int,
    store: AppointmentStore = Depends(get_store),
    current_user: Identity = Depends(get_current_user),
):
    client = get_managed_client(store, client_id, current_user)

    upcoming = store.upcoming_ids(client_id=client.id)
    if upcoming:
        raise Conflict("Client has upcoming appointments", conflicts=upcoming)

    # past appointments keep pointing at the record, so it is archived instead of dropped
    client.archived = True
    store.save(client)
    return Response(status_code=204)
