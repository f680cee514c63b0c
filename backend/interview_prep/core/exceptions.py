"""
Error kinds raised by the store and the services.

The HTTP layer turns them into ``{"error": message}`` responses with the
status code carried by the exception class.
"""


class ServiceError(Exception):
    """Base class for expected failures of a store or service operation."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class BadRequestError(ServiceError):
    """Missing or malformed input that the request schema cannot express."""

    status_code = 400


class NotFoundError(ServiceError):
    """Unknown slug or identifier."""

    status_code = 404


class ConflictError(ServiceError):
    """Unique constraint violation on insert (slug, username, email)."""

    status_code = 409


class UnprocessableError(ServiceError):
    """Semantically invalid input: unknown enum value, out of range number, missing parent."""

    status_code = 422
