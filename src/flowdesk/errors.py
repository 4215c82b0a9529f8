# src/flowdesk/errors.py

"""
Error taxonomy shared by the API client, the session context and the coordinator.

Every error carries a user-facing `message`; views show it as-is.
"""

from __future__ import annotations


class TrackerError(Exception):
    """Base class for every failure the client surfaces to the user."""

    default_message = "Something went wrong."

    def __init__(self, message: str | None = None, *, status_code: int | None = None) -> None:
        # detail is the service's own message (None when it sent none)
        self.detail = (message or "").strip() or None
        self.message = self.detail or self.default_message
        self.status_code = status_code
        # Set once the failure has been shown to the user as a notice.
        self.reported = False
        super().__init__(self.message)


class TransportError(TrackerError):
    """The service could not be reached (connection refused, DNS, timeout)."""

    default_message = "Service is unreachable. Check your connection and try again."


class ValidationError(TrackerError):
    """The service (or a client-side guard) rejected the request payload."""

    default_message = "The request was rejected."


class RequiredFieldError(ValidationError):
    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"{field} is required")


class NotFoundError(TrackerError):
    default_message = "Not found."


class UnauthenticatedError(TrackerError):
    """Missing or rejected bearer credential; the user has to log in again."""

    default_message = "Your session has expired. Please log in again."


class PermissionDeniedError(TrackerError):
    default_message = "You are not allowed to do that."


class ServerError(TrackerError):
    default_message = "The service failed to handle the request."


def friendly_error_message(err: BaseException, fallback: str | None = None) -> str:
    """
    Map any exception to a short display string.

    The service's own message wins; otherwise the caller's per-operation
    fallback ("Failed to create task"); otherwise the error class default.
    """
    if isinstance(err, TrackerError):
        return err.detail or fallback or err.message
    return fallback or "Internal error."
