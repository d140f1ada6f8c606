"""
Services package - Business logic layer.

This package contains all business logic services that operate on Django models
but are decoupled from the HTTP/WebSocket layer.

Modules:
    - booking_management: Booking lifecycle state machine and disconnect timers
    - matching: Driver selection and offer dispatch
    - pricing: Fare calculation and surge
    - trips: Live tracking, repricing and completion settlement
    - finance: Wallet ledger, commission and payment gateway
"""

# Expose commonly used functions at package level
from .exceptions import (
    BookingError,
    NotFoundError,
    PricingNotFoundError,
    InvalidTransitionError,
    ForbiddenError,
    ValidationError,
    InsufficientFundsError,
    UpstreamServiceError,
    ConcurrencyConflictError,
)
from .booking_management import (
    BookingResult,
    create_booking,
    accept_booking,
    start_trip,
    complete_trip,
    cancel_booking_by_passenger,
    cancel_booking_by_driver,
    handle_passenger_disconnect,
    handle_passenger_reconnect,
)
from .matching import dispatch_booking, dispatch_open_bookings_to_driver
from .trips import record_location, preview_pricing

__all__ = [
    # Exceptions
    "BookingError",
    "NotFoundError",
    "PricingNotFoundError",
    "InvalidTransitionError",
    "ForbiddenError",
    "ValidationError",
    "InsufficientFundsError",
    "UpstreamServiceError",
    "ConcurrencyConflictError",
    # Booking management
    "BookingResult",
    "create_booking",
    "accept_booking",
    "start_trip",
    "complete_trip",
    "cancel_booking_by_passenger",
    "cancel_booking_by_driver",
    "handle_passenger_disconnect",
    "handle_passenger_reconnect",
    # Matching
    "dispatch_booking",
    "dispatch_open_bookings_to_driver",
    # Trips
    "record_location",
    "preview_pricing",
]
