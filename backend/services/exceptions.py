"""
Custom exceptions for the booking, trip and wallet services.

Every error carries a machine-readable ``code`` (sent to WebSocket clients in
``error`` frames) and the HTTP status the REST views answer with.
"""


class BookingError(Exception):
    """Base class for errors raised by the services layer."""
    code = "booking_error"
    status_code = 400

    def __init__(self, message: str = "", code: str = None):
        super().__init__(message or self.__class__.__doc__)
        if code:
            self.code = code

    @property
    def message(self) -> str:
        return str(self)


class NotFoundError(BookingError):
    """The requested record does not exist."""
    code = "not_found"
    status_code = 404


class PricingNotFoundError(NotFoundError):
    """No active pricing rule exists for the vehicle type."""
    code = "pricing_not_found"


class InvalidTransitionError(BookingError):
    """The booking is not in a state that allows this operation."""
    code = "invalid_transition"
    status_code = 409


class ForbiddenError(BookingError):
    """The actor is not allowed to perform this operation."""
    code = "forbidden"
    status_code = 403


class ValidationError(BookingError):
    """The request payload is malformed."""
    code = "validation_error"
    status_code = 400

    def __init__(self, message: str = "", code: str = None, errors=None):
        super().__init__(message, code)
        self.errors = errors or {}


class InsufficientFundsError(BookingError):
    """The wallet balance does not cover the requested amount."""
    code = "insufficient_funds"
    status_code = 402


class UpstreamServiceError(BookingError):
    """The payment gateway rejected or failed the request."""
    code = "upstream_error"
    status_code = 502


class ConcurrencyConflictError(BookingError):
    """Another actor changed the booking first."""
    code = "conflict"
    status_code = 409
