# booking/auth.py

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional

from jose import jwt, JWTError
from passlib.context import CryptContext

from booking.config import get_settings
from booking.errors import HashingError, InvalidToken
from booking.models import Role

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    user_id: int
    role: Role


@lru_cache()
def _pwd_context() -> CryptContext:
    settings = get_settings()
    return CryptContext(
        schemes=["bcrypt"],
        deprecated="auto",
        bcrypt__rounds=settings.bcrypt_rounds,
    )


def hash_password(password: str) -> str:
    try:
        return _pwd_context().hash(password)
    except (ValueError, TypeError) as exc:
        logger.error("Password hashing failed: %s", exc)
        raise HashingError("Could not hash password") from exc


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return _pwd_context().verify(plain, hashed)
    except (ValueError, TypeError):
        # unknown or malformed hash never matches
        return False


def create_access_token(user_id: int, role: Role, expires_minutes: Optional[int] = None) -> str:
    settings = get_settings()
    if expires_minutes is None:
        expires_minutes = settings.access_token_expire_minutes

    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=expires_minutes)
    payload = {
        "sub": str(user_id),
        "role": Role(role).value,
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    return jwt.encode(
        payload,
        settings.jwt_secret.get_secret_value(),
        algorithm=settings.jwt_algorithm,
    )


def decode_access_token(token: str) -> Identity:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret.get_secret_value(),
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as exc:
        raise InvalidToken("Invalid token") from exc

    sub = payload.get("sub")
    role = payload.get("role")
    if sub is None or role is None or "exp" not in payload:
        raise InvalidToken("Invalid token")

    try:
        return Identity(user_id=int(sub), role=Role(role))
    except ValueError as exc:
        raise InvalidToken("Invalid token") from exc
