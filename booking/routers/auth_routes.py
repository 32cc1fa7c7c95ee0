# booking/routers/auth_routes.py

import logging

from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from booking.auth import create_access_token, hash_password, verify_password
from booking.db import get_session
from booking.errors import AlreadyExists, Unauthenticated
from booking.models import Role, User
from booking.schemas import Token, UserCreate

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["auth"],
)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def find_user_by_email(session: Session, email: str):
    return session.exec(
        select(User).where(func.lower(User.email) == normalize_email(email))
    ).first()


@router.post("/register", response_model=Token, status_code=201)
def register(
    user: UserCreate,
    session: Session = Depends(get_session),
):
    # 1) Check if email already exists (case-insensitive)
    if find_user_by_email(session, user.email) is not None:
        raise AlreadyExists("User with this email already exists")

    # 2) Create user in DB
    db_user = User(
        name=user.name.strip(),
        email=normalize_email(user.email),
        password_hash=hash_password(user.password),
        role=Role.user,
    )
    session.add(db_user)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise AlreadyExists("User with this email already exists")
    session.refresh(db_user)  # fills db_user.id

    logger.info("Registered user %s", db_user.id)
    token = create_access_token(db_user.id, db_user.role)
    return {"access_token": token, "token_type": "bearer"}


@router.post("/login", response_model=Token)
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    session: Session = Depends(get_session),
):
    # Swagger OAuth2 "password" flow uses the "username" field for the email
    user = find_user_by_email(session, form_data.username)

    if user is None or not verify_password(form_data.password, user.password_hash):
        logger.warning("Failed login attempt")
        raise Unauthenticated("Invalid credentials")

    token = create_access_token(user.id, user.role)
    return {"access_token": token, "token_type": "bearer"}
