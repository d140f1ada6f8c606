"""
Booking management service - Core booking lifecycle operations.

This module handles:
    - Creating bookings
    - Accepting bookings (first driver wins)
    - Starting and completing trips
    - Cancelling bookings (passenger, driver, system)
    - Passenger disconnect / reconnect timers
"""

from .booking_lifecycle import (
    BookingResult,
    create_booking,
    accept_booking,
    start_trip,
    complete_trip,
    cancel_booking_by_passenger,
    cancel_booking_by_driver,
    cancel_booking_by_system,
    get_current_passenger_booking,
    get_current_driver_booking,
)
from .disconnect import (
    DisconnectTimers,
    handle_passenger_disconnect,
    handle_passenger_reconnect,
    expire_disconnected_booking,
    disconnect_accepted_bookings,
    reconnect_accepted_bookings,
)

__all__ = [
    "BookingResult",
    "create_booking",
    "accept_booking",
    "start_trip",
    "complete_trip",
    "cancel_booking_by_passenger",
    "cancel_booking_by_driver",
    "cancel_booking_by_system",
    "get_current_passenger_booking",
    "get_current_driver_booking",
    "DisconnectTimers",
    "handle_passenger_disconnect",
    "handle_passenger_reconnect",
    "expire_disconnected_booking",
    "disconnect_accepted_bookings",
    "reconnect_accepted_bookings",
]
