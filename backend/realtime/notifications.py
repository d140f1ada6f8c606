"""
Notification helpers for sending WebSocket messages to connected clients.

Groups:
    - driver_<id>   personal group of a driver connection
    - user_<id>     personal group of every connection (passengers included)
    - booking_<id>  everyone following one booking
    - drivers       every connected driver (fallback broadcast)

All helpers are fire-and-forget: a failed send is logged and reported as
False, never raised into the booking transition that triggered it.
"""

from __future__ import annotations

import logging
from typing import Dict, Any, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)

DRIVERS_GROUP = "drivers"


def driver_group(driver_id) -> str:
    return f"driver_{driver_id}"


def user_group(user_id) -> str:
    return f"user_{user_id}"


def booking_group(booking_id) -> str:
    return f"booking_{booking_id}"


def _group_send(group: str, payload: Dict[str, Any]) -> bool:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return False
    try:
        logger.debug("WS -> %s: %s", group, payload.get("type"))
        async_to_sync(channel_layer.group_send)(group, payload)
        return True
    except Exception:
        logger.exception("Failed to send %s to group %s", payload.get("type"), group)
        return False


def _booking_data(booking) -> Dict[str, Any]:
    from bookings.serializers import BookingSerializer
    return dict(BookingSerializer(booking).data)


# ---------------------- Booking Event Notifications ----------------------

def notify_driver_event(
    event_type: str,
    booking,
    driver_id: int | None,
    message: str = "",
    extra: Optional[Dict[str, Any]] = None,
) -> bool:
    """
    Send an event to a specific driver using their personal group: driver_<driver_id>

    Args:
        event_type: Handler name in consumer (booking_offer, booking_unavailable, booking_canceled, ...)
        booking: Booking model instance
        driver_id: Target driver's user ID
        message: Optional message to include
        extra: Additional payload data

    Returns:
        True if sent successfully, False otherwise
    """
    if not driver_id:
        return False

    try:
        payload = {
            "type": event_type,
            "booking_id": booking.id,
            "driver_id": driver_id,
            "booking": _booking_data(booking),
            **(extra or {}),
        }
    except Exception:
        logger.exception("Failed to build %s payload for booking %s", event_type, getattr(booking, "id", None))
        return False

    if message:
        payload["message"] = message

    return _group_send(driver_group(driver_id), payload)


def notify_passenger_event(
    event_type: str,
    booking,
    message: str = "",
    extra: Optional[Dict[str, Any]] = None,
) -> bool:
    """
    Send a booking event to the passenger through: user_<passenger_id>

    Args:
        event_type: Handler name in consumer (booking_created, booking_accepted, no_drivers_available, ...)
        booking: Booking model instance
        message: Optional message to include
        extra: Additional payload data

    Returns:
        True if sent successfully, False otherwise
    """
    passenger_id = booking.passenger_id
    if not passenger_id:
        return False

    try:
        payload = {
            "type": event_type,
            "booking_id": booking.id,
            "status": booking.status,
            "booking": _booking_data(booking),
            **(extra or {}),
        }
    except Exception:
        logger.exception("Failed to build %s payload for booking %s", event_type, getattr(booking, "id", None))
        return False

    if message:
        payload["message"] = message

    return _group_send(user_group(passenger_id), payload)


def notify_booking_room(event_type: str, booking_id, data: Optional[Dict[str, Any]] = None) -> bool:
    """Send an event to everyone following booking_<booking_id>."""
    payload = {
        "type": event_type,
        "booking_id": booking_id,
        **(data or {}),
    }
    return _group_send(booking_group(booking_id), payload)


def broadcast_to_drivers(event_type: str, data: Optional[Dict[str, Any]] = None) -> bool:
    """Send an event to every connected driver."""
    payload = {"type": event_type, **(data or {})}
    return _group_send(DRIVERS_GROUP, payload)
