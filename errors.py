"""
Failure taxonomy for idea lifecycle operations.

Each error carries a stable category string and the HTTP status the API
surfaces it with.
"""


class PercolatorError(Exception):
    """Base class for every failure the lifecycle core reports."""

    status_code = 500
    category = "error"
    default_message = "Something went wrong."

    def __init__(self, message: str = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self) -> dict:
        """Convert error to the API error payload."""
        return {"error": self.category, "message": self.message}


class ValidationError(PercolatorError):
    """Malformed or out-of-constraint input."""

    status_code = 400
    category = "validation_error"
    default_message = "Invalid input."


class Unauthenticated(PercolatorError):
    """The operation requires an identity and none was supplied."""

    status_code = 401
    category = "unauthenticated"
    default_message = "You must be logged in."


class Forbidden(PercolatorError):
    """Authenticated, but not the owner of the idea."""

    status_code = 403
    category = "forbidden"
    default_message = "You can only modify your own ideas."


class NotFound(PercolatorError):
    status_code = 404
    category = "not_found"
    default_message = "Idea not found."


class StorageError(PercolatorError):
    """Opaque wrapper around database failures."""

    status_code = 500
    category = "storage_error"
    default_message = "A storage error occurred."
