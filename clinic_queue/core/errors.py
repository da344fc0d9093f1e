"""Typed failures raised by the queue engine.

Services raise these; the application maps them onto HTTP responses in one
place (see ``clinic_queue.main``). Each carries a stable ``code`` the caller
can branch on, plus an optional payload merged into the response body.
"""
from typing import Any


class QueueError(Exception):
    code = "ERROR"
    status_code = 400

    def __init__(self, message: str, payload: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.payload = payload or {}

    def to_dict(self) -> dict[str, Any]:
        return {"success": False, "error": self.code, "message": self.message, **self.payload}


class ValidationFailed(QueueError):
    code = "VALIDATION"
    status_code = 400


class AlreadyActive(QueueError):
    code = "ALREADY_ACTIVE"
    status_code = 409

    def __init__(self, existing_visit: dict[str, Any]):
        super().__init__("Identity already has an active visit", {"existingVisit": existing_visit})
        self.existing_visit = existing_visit


class NotFound(QueueError):
    code = "NOT_FOUND"
    status_code = 404


class InvalidTransition(QueueError):
    code = "INVALID_TRANSITION"
    status_code = 409

    def __init__(self, message: str, current_status: str | None = None):
        super().__init__(message, {"currentStatus": current_status} if current_status else None)
        self.current_status = current_status


class StoreUnavailable(QueueError):
    code = "STORE_UNAVAILABLE"
    status_code = 503
