"""
Custom exception classes for the application.
Provides structured error handling with HTTP status code mapping.
"""

from typing import Any


__all__ = [
    "AppException",
    "AuthenticationError",
    "AuthorizationError",
    "NotFoundError",
    "ValidationError",
    "InsufficientBalanceError",
    "InvalidStakeError",
    "InvalidDurationError",
    "UnknownInstrumentError",
    "PriceUnavailableError",
    "DoubleSettlementError",
    "ActiveTradeExistsError",
]


class AppException(Exception):
    """
    Base exception class for all application-specific errors.
    Includes status code, a stable error code and optional detail dictionary.
    """

    status_code: int = 500
    error_code: str = "internal_error"
    default_message: str = "An unexpected error occurred"

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serializable error body for API responses."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details or None,
        }


class AuthenticationError(AppException):
    """
    Raised when authentication fails.
    Invalid or expired tokens, missing auth headers.
    """
    status_code = 401
    error_code = "unauthenticated"
    default_message = "Authentication failed"


class AuthorizationError(AppException):
    """
    Raised when a user acts on a resource they do not own.
    No state change happens.
    """
    status_code = 403
    error_code = "unauthorized"
    default_message = "Permission denied"


class NotFoundError(AppException):
    """
    Raised when a requested resource is not found.
    """
    status_code = 404
    error_code = "not_found"
    default_message = "Resource not found"


class ValidationError(AppException):
    """
    Raised when input validation fails.
    """
    status_code = 400
    error_code = "validation_error"
    default_message = "Validation failed"


class InsufficientBalanceError(AppException):
    """
    Raised when the stake exceeds the available balance.
    Rejected before any mutation.
    """
    status_code = 400
    error_code = "insufficient_balance"
    default_message = "Insufficient balance for operation"


class InvalidStakeError(ValidationError):
    """
    Raised when the stake is zero, negative or not a finite number.
    """
    error_code = "invalid_stake"
    default_message = "Stake must be a positive amount"


class InvalidDurationError(ValidationError):
    """
    Raised when the duration is not one of the supported menu values.
    """
    error_code = "invalid_duration"
    default_message = "Unsupported trade duration"


class UnknownInstrumentError(AppException):
    """
    Raised when a pair/symbol is not recognized by the price source.
    """
    status_code = 404
    error_code = "unknown_instrument"
    default_message = "Unknown instrument"


class PriceUnavailableError(AppException):
    """
    Raised when the price source cannot produce a price right now.
    Transient: settlement retries it with backoff.
    """
    status_code = 503
    error_code = "price_unavailable"
    default_message = "Price feed unavailable"


class DoubleSettlementError(AppException):
    """
    Raised internally when settlement targets an already settled trade.
    The settlement engine treats it as a no-op.
    """
    status_code = 409
    error_code = "double_settlement"
    default_message = "Trade already settled"


class ActiveTradeExistsError(AppException):
    """
    Raised when a user already holds the maximum number of active trades.
    """
    status_code = 409
    error_code = "active_trade_exists"
    default_message = "An active trade is already open"
