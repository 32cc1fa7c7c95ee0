# booking/routers/users_routes.py

from fastapi import APIRouter, Depends
from sqlmodel import Session

from booking.auth import Identity, hash_password
from booking.db import get_session
from booking.deps import get_current_user, get_store
from booking.errors import AlreadyExists, Unauthenticated
from booking.models import User
from booking.routers.auth_routes import find_user_by_email, normalize_email
from booking.schemas import UserPublic, UserUpdate
from booking.store import AppointmentStore

router = APIRouter(
    tags=["users"],
)


def load_user(session: Session, identity: Identity) -> User:
    user = session.get(User, identity.user_id)
    if user is None:
        # token outlived its account
        raise Unauthenticated("Not authorized, user not found")
    return user


@router.get("/me", response_model=UserPublic)
def me(
    current_user: Identity = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return load_user(session, current_user)


@router.put("/me", response_model=UserPublic)
def update_me(
    changes: UserUpdate,
    current_user: Identity = Depends(get_current_user),
    session: Session = Depends(get_session),
    store: AppointmentStore = Depends(get_store),
):
    user = load_user(session, current_user)

    if changes.email is not None:
        email = normalize_email(changes.email)
        existing = find_user_by_email(session, email)
        if existing is not None and existing.id != user.id:
            raise AlreadyExists("User with this email already exists")
        user.email = email
    if changes.name is not None:
        user.name = changes.name.strip()
    if changes.password is not None:
        user.password_hash = hash_password(changes.password)

    return store.save(user)
