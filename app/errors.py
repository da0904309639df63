import logging
from typing import Any, Optional

from sqlalchemy.exc import DBAPIError, TimeoutError as PoolTimeoutError

from app.config import settings

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATE codes
UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
CHECK_VIOLATION = "23514"
NOT_NULL_VIOLATION = "23502"
NUMERIC_OUT_OF_RANGE = "22003"
INVALID_TEXT_REPRESENTATION = "22P02"


class ApiError(Exception):
    """Error carrying an HTTP status and the body of the failure envelope."""

    def __init__(self, status_code: int, error: str, **extra: Any):
        super().__init__(error)
        self.status_code = status_code
        self.error = error
        self.extra = extra

    def to_dict(self) -> dict:
        body = {"success": False, "error": self.error}
        body.update(self.extra)
        return body


class BadRequestError(ApiError):
    def __init__(self, error: str, **extra: Any):
        super().__init__(400, error, **extra)


class NotFoundError(ApiError):
    def __init__(self, error: str = "Record not found", **extra: Any):
        super().__init__(404, error, **extra)


class ConflictError(ApiError):
    def __init__(self, error: str, **extra: Any):
        super().__init__(409, error, **extra)


def sqlstate_of(exc: DBAPIError) -> Optional[str]:
    """Return the SQLSTATE of the driver error wrapped by SQLAlchemy, if any."""
    orig = getattr(exc, "orig", None)
    if orig is None:
        return None
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def internal_error(exc: Exception, fallback: str = "Database operation failed") -> ApiError:
    # Driver detail is only exposed to clients in development
    message = str(exc) if settings.is_development else fallback
    return ApiError(500, "Internal server error", message=message)


def translate_db_error(exc: Exception, conflict_message: str = "Record with this key already exists") -> ApiError:
    """
    Map a database-layer failure to an ApiError.

    Args:
        exc: Exception raised by the session or the connection pool
        conflict_message: Message used for unique-key violations

    Returns:
        ApiError with the status code of the matching taxonomy entry
    """
    logger.error("Database error: %s", exc)

    if isinstance(exc, PoolTimeoutError):
        return internal_error(exc, "Database connection unavailable")

    if not isinstance(exc, DBAPIError):
        return internal_error(exc)

    code = sqlstate_of(exc)

    if code == UNIQUE_VIOLATION:
        return ConflictError(conflict_message)

    if code == FOREIGN_KEY_VIOLATION:
        return BadRequestError("Referenced record does not exist")

    if code == CHECK_VIOLATION:
        return BadRequestError(
            "Data violates database constraints (e.g., negative stock or zero price)"
        )

    if code == NOT_NULL_VIOLATION:
        return BadRequestError("A required column was left empty")

    if code in (NUMERIC_OUT_OF_RANGE, INVALID_TEXT_REPRESENTATION):
        return BadRequestError("Value has an invalid format or is out of range")

    return internal_error(exc)
