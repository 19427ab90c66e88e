"""공통 에러 클래스 정의(Common error classes).

Two families live here: ``SyncError`` for the synchronization pipeline and
``AppException`` for errors surfaced to read API callers.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class SyncError(Exception):
    """동기화 파이프라인 기본 예외(Base exception for sync pipeline errors)."""


class TransportError(SyncError):
    """
    Raised when a page of the upstream feed cannot be fetched.

    Covers network failures, timeouts, non-success responses and bodies that
    are not a JSON object. Aborts the current sync run; the next scheduled
    run is the retry.
    """

    def __init__(self, service: str, status_code: Optional[int] = None, message: Optional[str] = None) -> None:
        """
        Initialize TransportError.

        Args:
            service: Name of the upstream service (e.g. 'NVD')
            status_code: HTTP status code (if a response was received)
            message: Optional additional error details
        """
        self.service = service
        self.status_code = status_code
        self.message = message

        msg = f"Transport error: {service}"
        if status_code:
            msg += f" (HTTP {status_code})"
        if message:
            msg += f": {message}"

        super().__init__(msg)


class UpsertError(SyncError):
    """
    Raised when a single record cannot be written to the store.

    Per-record condition: the sync run logs it and moves on to the next item.
    """

    def __init__(self, cve_id: str, reason: str) -> None:
        self.cve_id = cve_id
        self.reason = reason
        super().__init__(f"Failed to upsert {cve_id}: {reason}")


class AppException(Exception):
    """애플리케이션 기본 예외 클래스(Base application exception)."""

    def __init__(
        self,
        status_code: int,
        error_code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Initialize exception with structured error information.

        Args:
            status_code: HTTP status code (e.g., 400, 500)
            error_code: Machine-readable error code (e.g., "INVALID_FILTER")
            message: Human-readable error message
            details: Additional error context (optional)
        """
        self.status_code = status_code
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        response: Dict[str, Any] = {
            "error": {
                "code": self.error_code,
                "message": self.message,
            }
        }
        if self.details:
            response["error"]["details"] = self.details
        return response


class InvalidFilterError(AppException):
    """유효하지 않은 조회 필터(Invalid read filter - 400)."""

    def __init__(self, field: str, value: str, reason: str) -> None:
        """Initialize with validation context.

        Args:
            field: Query parameter that failed validation
            value: The raw value received
            reason: Why the value is invalid
        """
        super().__init__(
            status_code=400,
            error_code="INVALID_FILTER",
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": value, "reason": reason},
        )


class StoreAccessError(AppException):
    """저장소 조회 실패(Store read failure - 500)."""

    def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            status_code=500,
            error_code="STORE_ACCESS_ERROR",
            message=f"Store access failed: {reason}",
            details=details,
        )
