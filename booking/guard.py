# booking/guard.py

import logging
from typing import Optional

from booking.auth import Identity, decode_access_token
from booking.errors import Forbidden, InvalidToken, Unauthenticated
from booking.models import Role

logger = logging.getLogger(__name__)

SCHEME = "bearer"


def extract_bearer_token(authorization: Optional[str]) -> str:
    """Pull the token out of an ``Authorization: Bearer <token>`` header value."""
    if authorization is None or not authorization.strip():
        raise Unauthenticated("Not authorized, no token provided")

    scheme, _, token = authorization.strip().partition(" ")
    # the scheme prefix must be present
    if scheme.lower() != SCHEME:
        raise Unauthenticated("Not authorized, expected a Bearer token")

    token = token.strip()
    if not token:
        raise Unauthenticated("Not authorized, no token provided")
    return token


def authenticate(authorization: Optional[str]) -> Identity:
    token = extract_bearer_token(authorization)
    try:
        return decode_access_token(token)
    except InvalidToken as exc:
        logger.warning("Rejected bearer token: %s", exc.message)
        raise Unauthenticated("Not authorized, invalid token") from exc


def require_role(identity: Identity, role: Role) -> None:
    if identity.role != role:
        raise Forbidden("Forbidden")


def require_owner(identity: Identity, owner_id: int) -> None:
    """Owners act on their own records; ADMIN acts on anyone's."""
    if identity.role != Role.admin and owner_id != identity.user_id:
        raise Forbidden("Forbidden")
