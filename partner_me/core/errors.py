"""Application error taxonomy rendered as the JSON error envelope."""

from __future__ import annotations

from typing import Any, Dict, Optional


class AppError(Exception):
    """Base error carrying an API code and HTTP status."""

    default_code = "INTERNAL_ERROR"
    default_status = 500

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.status_code = status_code or self.default_status
        self.details = details

    def to_payload(self) -> Dict[str, Any]:
        error: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            error["details"] = self.details
        return {"success": False, "error": error}


class ValidationError(AppError):
    default_code = "VALIDATION_ERROR"
    default_status = 400


class AuthenticationError(AppError):
    default_code = "AUTH_REQUIRED"
    default_status = 401


class ForbiddenError(AppError):
    default_code = "FORBIDDEN"
    default_status = 403


class NotFoundError(AppError):
    default_code = "NOT_FOUND"
    default_status = 404


class ConflictError(AppError):
    default_code = "CONFLICT"
    default_status = 409


class StateError(AppError):
    """Illegal lifecycle transition; the message names the current status."""

    default_code = "SUBMISSION_ALREADY_PROCESSED"
    default_status = 409

    def __init__(self, message: str, *, current_status: str, code: Optional[str] = None) -> None:
        super().__init__(message, code=code, details={"current_status": current_status})
        self.current_status = current_status


class RateLimitError(AppError):
    default_code = "RATE_LIMIT_EXCEEDED"
    default_status = 429

    def __init__(self, message: str, *, retry_after: int) -> None:
        super().__init__(message)
        self.retry_after = max(int(retry_after), 1)

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["error"]["retry_after"] = self.retry_after
        return payload


class StorageError(AppError):
    """Store or file operation failure; detail stays server-side."""

    default_code = "STORAGE_ERROR"
    default_status = 500
