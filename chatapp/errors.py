"""
Error taxonomy for the chat backend.

Every error raised by the services carries the HTTP status it maps to. The
FastAPI application registers handlers (see ``chatapp.main``) that turn these
into the uniform ``{"success": false, "message": ..., "error": ...}``
envelope.
"""

from typing import Optional


class ChatAppError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, error: Optional[str] = None):
        self.message = message or self.default_message
        self.error = error
        super().__init__(self.message)

    def to_envelope(self) -> dict:
        body = {"success": False, "message": self.message}
        if self.error:
            body["error"] = self.error
        return body


class ValidationError(ChatAppError):
    """Malformed or missing input."""
    status_code = 400
    default_message = "Invalid request"


class AuthenticationError(ChatAppError):
    """Missing or invalid credential."""
    status_code = 401
    default_message = "Unauthorized - User not authenticated"


class AuthorizationError(ChatAppError):
    """Authenticated but not entitled to the resource."""
    status_code = 403
    default_message = "Not authorized to access this resource"


class NotFoundError(ChatAppError):
    status_code = 404
    default_message = "Not found"


class ConflictError(ChatAppError):
    """Duplicate value for a unique field."""
    status_code = 400
    default_message = "Resource already exists"


class InternalError(ChatAppError):
    status_code = 500
