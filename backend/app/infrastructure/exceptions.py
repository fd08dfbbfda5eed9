"""
Custom Exceptions for Finance Tracker

Hierarchical exception classes for proper error handling across layers.
Each class carries the HTTP status the API layer answers with.
"""

from typing import Optional, Dict, Any


class FinanceTrackerError(Exception):
    """Base exception for all Finance Tracker errors."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.message,
            "type": self.__class__.__name__,
            "details": self.details
        }


class ValidationError(FinanceTrackerError):
    """Raised when input validation fails."""
    status_code = 400


class AuthorizationError(FinanceTrackerError):
    """Raised when an authenticated caller acts on another user's data."""
    status_code = 403


class DatabaseError(FinanceTrackerError):
    """Raised when database operations fail."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if table:
            details["table"] = table
        super().__init__(message, details, original_error)


class NotFoundError(DatabaseError):
    """Raised when a requested resource is not found."""
    status_code = 404


class PaymentProviderError(FinanceTrackerError):
    """Raised when a Stripe API call fails."""
    status_code = 400

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        super().__init__(message, details, original_error)


class WebhookSignatureError(FinanceTrackerError):
    """Raised when a webhook delivery is unsigned or fails verification."""
    status_code = 400


class MissingCorrelationError(FinanceTrackerError):
    """
    Raised when a billing event cannot be tied to a user.

    Fatal for the event: no partial writes are made and the provider's
    retry policy is the recovery path.
    """
    status_code = 400

    def __init__(
        self,
        message: str,
        event_type: Optional[str] = None,
        customer_id: Optional[str] = None,
        subscription_id: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if event_type:
            details["event_type"] = event_type
        if customer_id:
            details["customer_id"] = customer_id
        if subscription_id:
            details["subscription_id"] = subscription_id
        super().__init__(message, details, original_error)


class ConfigurationError(FinanceTrackerError):
    """Raised when configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if missing_keys:
            details["missing_keys"] = missing_keys
        super().__init__(message, details, original_error)
