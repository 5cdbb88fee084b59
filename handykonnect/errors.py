"""Error taxonomy shared by the lifecycle services and the HTTP layer.

Services raise these; the blueprint error handler turns them into the
``{"error": code, "message": text}`` bodies the frontend expects.
"""
from __future__ import annotations


class HandykonnectError(Exception):
    code = "server_error"
    status_code = 500

    def __init__(self, message: str | None = None, *, code: str | None = None) -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        if code:
            self.code = code

    def to_dict(self) -> dict[str, str]:
        return {"error": self.code, "message": self.message}


class ValidationError(HandykonnectError):
    """Missing or invalid input."""

    code = "invalid_payload"
    status_code = 400


class AuthorizationError(HandykonnectError):
    """No session, or the caller's role does not allow the action."""

    code = "unauthorized"
    status_code = 401

    def __init__(self, message: str | None = None, *, forbidden: bool = False) -> None:
        super().__init__(message or "Authentication required. Please log in to continue.")
        if forbidden:
            self.code = "forbidden"
            self.status_code = 403


class NotFound(HandykonnectError):
    code = "not_found"
    status_code = 404


class InvalidTransition(HandykonnectError):
    """Requested status change is not an edge of the lifecycle table."""

    code = "invalid_transition"
    status_code = 409

    def __init__(self, entity: str, current: str, target: str, message: str | None = None) -> None:
        super().__init__(message or f"Cannot move {entity} from '{current}' to '{target}'")
        self.entity = entity
        self.current = current
        self.target = target


class ProcessorError(HandykonnectError):
    """Payment gateway call failed."""

    code = "payment_error"
    status_code = 502


class PersistenceError(HandykonnectError):
    code = "database_error"
    status_code = 500


class NotificationDeliveryError(HandykonnectError):
    """Email delivery failed. Only surfaced by the explicit email endpoints."""

    code = "email_error"
    status_code = 502
