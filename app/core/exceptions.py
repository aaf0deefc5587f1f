"""Custom exception classes"""
from typing import Any, Optional


class AppException(Exception):
    """Base exception for application errors"""

    retryable = False

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_type: str = "AppError",
        details: Optional[Any] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_type = error_type
        self.details = details
        super().__init__(self.message)


class ValidationError(AppException):
    """Validation error exception (nothing was persisted)"""

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(
            message=message,
            status_code=400,
            error_type="ValidationError",
            details=details
        )


class NotFoundError(AppException):
    """Resource not found exception"""

    def __init__(self, message: str = "Resource not found", details: Optional[Any] = None):
        super().__init__(
            message=message,
            status_code=404,
            error_type="NotFoundError",
            details=details
        )


class ConflictError(AppException):
    """Resource conflict exception (e.g., duplicate entry)"""

    def __init__(self, message: str = "Resource already exists", details: Optional[Any] = None):
        super().__init__(
            message=message,
            status_code=409,
            error_type="ConflictError",
            details=details
        )


class ConsistencyError(AppException):
    """
    Invariant breach detected while aggregating.

    Never retried and never replaced by a fallback value; requires operator
    attention (see the balance verify/rebuild endpoints).
    """

    def __init__(self, message: str = "Ledger consistency check failed", details: Optional[Any] = None):
        super().__init__(
            message=message,
            status_code=500,
            error_type="ConsistencyError",
            details=details
        )


class TransientError(AppException):
    """Storage or network unavailability underlying the engine"""

    retryable = True

    def __init__(self, message: str = "Service temporarily unavailable", details: Optional[Any] = None):
        super().__init__(
            message=message,
            status_code=503,
            error_type="TransientError",
            details=details
        )
