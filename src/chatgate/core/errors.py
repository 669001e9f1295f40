"""Shared exception hierarchy for the turn pipeline and its HTTP surface."""

from __future__ import annotations

from collections.abc import Mapping
from http import HTTPStatus
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from chatgate.core.domain import Admission


class CoreError(Exception):
    """Base exception capturing rich problem details."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR,
        code: str = "core_error",
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = int(status_code)
        self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """FastAPI/JSON-serializable representation of the error."""

        payload: dict[str, Any] = {
            "error": self.message,
            "code": self.code,
            "status": self.status_code,
        }
        if self.details:
            payload["details"] = dict(self.details)
        return payload


class ValidationError(CoreError):
    """Raised when a request is missing or carries malformed input."""

    def __init__(
        self,
        message: str,
        *,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=HTTPStatus.BAD_REQUEST,
            code="validation_error",
            details=details,
        )


class NotFoundError(CoreError):
    """Raised when a resource cannot be located."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(
            message=message,
            status_code=HTTPStatus.NOT_FOUND,
            code="not_found",
            details=details,
        )


class RateLimitedError(CoreError):
    """Raised when the request gate denies a turn."""

    def __init__(self, admission: Admission, *, message: str | None = None) -> None:
        retry_after = admission.retry_after_seconds or 1
        super().__init__(
            message=message
            or f"You are sending messages too quickly. Please wait {retry_after} seconds.",
            status_code=HTTPStatus.TOO_MANY_REQUESTS,
            code="rate_limited",
        )
        self.admission = admission
        self.retry_after_seconds = retry_after

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "Too many requests",
            "code": self.code,
            "status": self.status_code,
            "message": self.message,
            "retryAfterSeconds": self.retry_after_seconds,
        }


class UpstreamRateLimitedError(CoreError):
    """Raised when the completion backend reports saturation (retryable)."""

    def __init__(self, message: str = "AI service temporarily unavailable. Please try again shortly.") -> None:
        super().__init__(
            message=message,
            status_code=HTTPStatus.TOO_MANY_REQUESTS,
            code="upstream_rate_limited",
        )


class UpstreamError(CoreError):
    """Raised when the completion backend fails for any other reason."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(
            message=message,
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            code="upstream_failure",
            details=details,
        )


class PersistenceError(CoreError):
    """Raised when a session, tenant or transcript operation cannot complete."""

    def __init__(self, message: str, *, operation: str) -> None:
        super().__init__(
            message=message,
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            code="persistence_failure",
            details={"operation": operation},
        )
        self.operation = operation


class ConfigurationError(CoreError):
    """Raised when a component cannot be constructed from the current settings."""

    def __init__(self, message: str) -> None:
        super().__init__(
            message=message,
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            code="configuration_error",
        )


class InternalError(CoreError):
    """Wraps unexpected failures so only a stable classification leaves the process."""

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(
            message=message,
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            code="internal_error",
        )
