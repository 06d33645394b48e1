"""
Mimasa Store - Custom Exceptions
==================================
Business-level exceptions that can be caught and converted to HTTP responses.
Each class carries the HTTP status and machine-readable code it maps to.
"""

from typing import Dict, Optional


class StoreError(Exception):
    """Base exception for all business logic errors."""
    status_code: int = 400
    code: str = "store_error"
    retryable: bool = False

    def __init__(self, message: str = "Something went wrong. Please try again."):
        self.message = message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code, "retryable": self.retryable}


class ValidationError(StoreError):
    """Raised when user input is malformed. Carries field-level messages."""
    status_code = 422
    code = "validation_error"

    def __init__(self, message: str = "Please correct the highlighted fields.", fields: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.fields = fields or {}

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.fields:
            data["fields"] = self.fields
        return data


class NotFoundError(StoreError):
    """Raised when a requested resource doesn't exist."""
    status_code = 404
    code = "not_found"


class AuthenticationError(StoreError):
    """Raised when admin authentication fails."""
    status_code = 401
    code = "authentication_failed"


class CheckoutInProgressError(StoreError):
    """Raised when a session already has a checkout in flight."""
    status_code = 409
    code = "checkout_in_progress"

    def __init__(self):
        super().__init__("A payment is already being processed for this cart.")


class InvalidTransitionError(StoreError):
    """Raised when the checkout state machine is asked for an illegal move."""
    status_code = 409
    code = "invalid_transition"


class GatewayUnavailableError(StoreError):
    """Raised when the payment gateway cannot create an order."""
    status_code = 502
    code = "gateway_unavailable"
    retryable = True

    def __init__(self, message: str = "Payment service is unavailable right now. Please try again."):
        super().__init__(message)


class PaymentVerificationError(StoreError):
    """Raised when a payment claim cannot be verified."""
    status_code = 402
    code = "verification_failed"
    retryable = True

    def __init__(self):
        super().__init__("Payment could not be confirmed, please try again.")


class PersistenceError(StoreError):
    """Raised when a verified payment could not be recorded as an order."""
    status_code = 500
    code = "persistence_failure"

    def __init__(self, message: str = "Your payment was received but we could not record the order yet. Our team has been notified."):
        super().__init__(message)


class NotificationError(StoreError):
    """Raised by mail senders; never propagated past the notifier."""
    status_code = 502
    code = "notification_failure"
