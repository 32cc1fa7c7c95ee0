# booking/errors.py

from typing import Iterable, Optional


class BookingError(Exception):
    status_code = 500
    code = "ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class Unauthenticated(BookingError):
    status_code = 401
    code = "UNAUTHENTICATED"


class InvalidToken(BookingError):
    status_code = 401
    code = "INVALID_TOKEN"


class Forbidden(BookingError):
    status_code = 403
    code = "FORBIDDEN"


class NotFound(BookingError):
    status_code = 404
    code = "NOT_FOUND"


class InvalidInterval(BookingError):
    status_code = 400
    code = "INVALID_INTERVAL"


class InvalidRange(BookingError):
    status_code = 400
    code = "INVALID_RANGE"


class Conflict(BookingError):
    status_code = 409
    code = "CONFLICT"

    def __init__(self, message: str, conflicts: Optional[Iterable[int]] = None):
        super().__init__(message)
        self.conflicts = list(conflicts or [])

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["conflicts"] = self.conflicts
        return body


class InvalidState(BookingError):
    status_code = 409
    code = "INVALID_STATE"


class AlreadyExists(BookingError):
    status_code = 409
    code = "ALREADY_EXISTS"


class Unavailable(BookingError):
    status_code = 503
    code = "UNAVAILABLE"


class HashingError(BookingError):
    status_code = 500
    code = "HASHING_ERROR"
