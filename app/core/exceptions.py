"""
Custom Exception Hierarchy

Provides structured exceptions for consistent error handling across the
ingestion pipeline, the Uber Eats clients and the order store.
"""
from typing import Any
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for API responses"""

    # General errors (1xxx)
    INTERNAL_ERROR = "ERR_1000"
    VALIDATION_ERROR = "ERR_1001"
    NOT_FOUND = "ERR_1002"
    ALREADY_EXISTS = "ERR_1003"

    # Storage errors (11xx)
    STORAGE_ERROR = "ERR_1100"

    # External service errors (5xxx)
    EXTERNAL_SERVICE_UNAVAILABLE = "ERR_5003"
    PLATFORM_AUTH_ERROR = "ERR_5101"
    PLATFORM_FETCH_ERROR = "ERR_5102"


class AppException(Exception):
    """Base exception for all application errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response"""
        return {
            "error": {
                "code": self.error_code.value,
                "message": self.message,
                "details": self.details
            }
        }


class OrderValidationError(AppException):
    """Raised when a platform payload is malformed or incomplete"""

    def __init__(
        self,
        message: str,
        platform: str | None = None,
        missing_fields: list[str] | None = None,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=ErrorCode.VALIDATION_ERROR,
            status_code=400,
            details=details
        )
        if platform:
            self.details["platform"] = platform
        if missing_fields:
            self.details["missing_fields"] = missing_fields


class OrderNotFoundError(AppException):
    """Raised when a stored order lookup misses"""

    def __init__(self, identifier: Any):
        super().__init__(
            message=f"Order not found: {identifier}",
            error_code=ErrorCode.NOT_FOUND,
            status_code=404,
            details={"resource": "order", "identifier": str(identifier)}
        )


class OrderConflictError(AppException):
    """
    Raised when (platform, external order id) is already stored.

    Duplicate webhook delivery is normal platform behaviour, so callers treat
    this as an idempotent outcome rather than a failure.
    """

    def __init__(self, platform: str, external_order_id: str):
        super().__init__(
            message=f"Order {external_order_id} for {platform} already exists",
            error_code=ErrorCode.ALREADY_EXISTS,
            status_code=409,
            details={"platform": platform, "external_order_id": external_order_id}
        )
        self.platform = platform
        self.external_order_id = external_order_id


class StorageError(AppException):
    """Raised on any persistence failure other than a uniqueness conflict"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=f"Storage error: {message}",
            error_code=ErrorCode.STORAGE_ERROR,
            status_code=500,
            details=details
        )


class ExternalServiceException(AppException):
    """Base exception for external service errors"""

    def __init__(
        self,
        service_name: str,
        message: str,
        error_code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_UNAVAILABLE,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=503,
            details=details
        )
        self.details["service"] = service_name

    @classmethod
    def from_response(
        cls,
        operation: str,
        response: Any,
        *,
        message: str | None = None,
        max_response_chars: int = 500
    ) -> "ExternalServiceException":
        """
        Build the error from an HTTP response in a consistent way.

        Args:
            operation: what was being attempted (e.g. token, fetch_order)
            response: response object (e.g. httpx.Response)
            message: custom message (built from the status code if omitted)
            max_response_chars: cap on the stored response body
        """
        status_code = getattr(response, "status_code", None)
        response_text = getattr(response, "text", "") or ""
        return cls(
            message=message or f"{operation} returned status {status_code}",
            details={
                "operation": operation,
                "status_code": status_code,
                "response_text": response_text[:max_response_chars],
            },
        )


class AuthError(ExternalServiceException):
    """Raised when the client-credentials exchange fails"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            service_name="uber_eats_auth",
            message=f"Uber Eats auth error: {message}",
            error_code=ErrorCode.PLATFORM_AUTH_ERROR,
            details=details
        )


class FetchError(ExternalServiceException):
    """Raised when the follow-up order retrieval fails"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            service_name="uber_eats_orders",
            message=f"Uber Eats order fetch error: {message}",
            error_code=ErrorCode.PLATFORM_FETCH_ERROR,
            details=details
        )


class CircuitBreakerOpenError(ExternalServiceException):
    """Raised when circuit breaker is open"""

    def __init__(self, service_name: str, retry_after_seconds: float):
        super().__init__(
            service_name=service_name,
            message=f"{service_name} is temporarily unavailable (circuit breaker open)",
            error_code=ErrorCode.EXTERNAL_SERVICE_UNAVAILABLE,
            details={"retry_after_seconds": retry_after_seconds}
        )
