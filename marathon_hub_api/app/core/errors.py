"""
Error taxonomy shared by the store, the services and the routers.

Services raise these exceptions; endpoints translate them into
``HTTPException`` using the ``status_code`` carried by each class.
They subclass ``ValueError`` so callers that only care about "the
request could not be served" can keep catching the broad type.
"""

from fastapi import HTTPException, status


class ServiceError(ValueError):
    """Base class for errors surfaced to API clients."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Bad request"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class ValidationError(ServiceError):
    """A required field is missing or a value is malformed."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class Unauthorized(ServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "unauthorized access"


class Forbidden(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "forbidden access"


class NotFound(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class DuplicateRegistration(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "You have already registered for this marathon!"


class RegistrationFailed(ServiceError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Failed to register!"


class StoreError(ServiceError):
    """The document store is unavailable or an operation failed."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Store operation failed"


class DuplicateKeyError(StoreError):
    """A unique index rejected an insert or update."""

    default_message = "Duplicate key"


def as_http_exception(exc: ServiceError) -> HTTPException:
    """Translate a service error into the ``HTTPException`` FastAPI renders."""
    return HTTPException(status_code=exc.status_code, detail=exc.message)
