"""
Passenger disconnect handling.

When a passenger with an accepted booking drops off, a Celery task is
scheduled PASSENGER_DISCONNECT_TIMEOUT_SECONDS ahead together with a random
token stored in the cache under the booking's key. The task only acts if the
token is still the current one, so:

- re-arming overwrites the token and the older task becomes a no-op
- reconnecting deletes the token and the pending task becomes a no-op

which leaves at most one live timer per booking.
"""

import logging
import uuid
from typing import Optional

from django.conf import settings
from django.core.cache import cache

from bookings.models import Booking
from services.exceptions import ForbiddenError, InvalidTransitionError
from .booking_lifecycle import BookingResult, _get_booking, cancel_booking_by_system

logger = logging.getLogger(__name__)

DISCONNECT_REASON = "Passenger disconnected and did not reconnect in time"


class DisconnectTimers:
    key_prefix = "disconnect_timer"

    def __init__(self, timeout_seconds: Optional[int] = None, cache_backend=None):
        if timeout_seconds is None:
            timeout_seconds = getattr(settings, "PASSENGER_DISCONNECT_TIMEOUT_SECONDS", 60)
        self.timeout_seconds = int(timeout_seconds)
        self.cache = cache_backend or cache

    def _key(self, booking_id) -> str:
        return f"{self.key_prefix}:{booking_id}"

    def arm(self, booking_id) -> str:
        """Schedule (or reschedule) the auto-cancel for a booking."""
        from bookings.tasks import auto_cancel_disconnected_booking_task

        token = uuid.uuid4().hex
        # Outlive the countdown so a slightly late task still finds its token
        self.cache.set(self._key(booking_id), token, timeout=self.timeout_seconds + 300)
        auto_cancel_disconnected_booking_task.apply_async(
            (booking_id, token),
            countdown=self.timeout_seconds,
        )
        logger.info("Disconnect timer armed for booking %s (%ss)", booking_id, self.timeout_seconds)
        return token

    def clear(self, booking_id) -> bool:
        key = self._key(booking_id)
        existed = self.cache.get(key) is not None
        if existed:
            self.cache.delete(key)
            logger.info("Disconnect timer cleared for booking %s", booking_id)
        return existed

    def current_token(self, booking_id) -> Optional[str]:
        return self.cache.get(self._key(booking_id))

    def is_pending(self, booking_id) -> bool:
        return self.current_token(booking_id) is not None

    def consume(self, booking_id, token: str) -> bool:
        """True only for the task holding the current token; the token is spent."""
        key = self._key(booking_id)
        if not token or self.cache.get(key) != token:
            return False
        self.cache.delete(key)
        return True


def handle_passenger_disconnect(passenger, booking_id, timers: Optional[DisconnectTimers] = None) -> BookingResult:
    """
    Arm the auto-cancel timer if the passenger's booking has a driver.

    Bookings in other states are left alone; the result says whether a
    timer was armed.
    """
    booking = _get_booking(booking_id)
    if booking.passenger_id != passenger.id:
        raise ForbiddenError("You can only manage your own bookings")

    if booking.status != Booking.STATUS_ACCEPTED:
        return BookingResult(
            success=True,
            booking=booking,
            message=f"No timer needed for a {booking.status} booking",
            extra={"timer_armed": False},
        )

    timers = timers or DisconnectTimers()
    timers.arm(booking.id)
    return BookingResult(
        success=True,
        booking=booking,
        message="Waiting for passenger to reconnect",
        extra={"timer_armed": True, "timeout_seconds": timers.timeout_seconds},
    )


def handle_passenger_reconnect(passenger, booking_id, timers: Optional[DisconnectTimers] = None) -> BookingResult:
    booking = _get_booking(booking_id)
    if booking.passenger_id != passenger.id:
        raise ForbiddenError("You can only manage your own bookings")

    timers = timers or DisconnectTimers()
    cleared = timers.clear(booking.id)
    return BookingResult(
        success=True,
        booking=booking,
        message="Reconnected",
        extra={"timer_cleared": cleared},
    )


def expire_disconnected_booking(booking_id, token: str, timers: Optional[DisconnectTimers] = None) -> bool:
    """
    Timer callback: cancel the booking if this timer is still the live one
    and the booking is still waiting on the passenger.
    """
    timers = timers or DisconnectTimers()
    if not timers.consume(booking_id, token):
        logger.info("Disconnect timer for booking %s superseded or cleared", booking_id)
        return False

    try:
        cancel_booking_by_system(booking_id, DISCONNECT_REASON)
    except InvalidTransitionError as e:
        logger.info("Disconnect timer for booking %s found nothing to cancel: %s", booking_id, e)
        return False
    return True


def disconnect_accepted_bookings(passenger, timers: Optional[DisconnectTimers] = None) -> int:
    """Arm timers for every accepted booking of a passenger whose socket dropped."""
    timers = timers or DisconnectTimers()
    armed = 0
    for booking_id in Booking.objects.filter(
        passenger=passenger, status=Booking.STATUS_ACCEPTED
    ).values_list("id", flat=True):
        timers.arm(booking_id)
        armed += 1
    return armed


def reconnect_accepted_bookings(passenger, timers: Optional[DisconnectTimers] = None) -> int:
    timers = timers or DisconnectTimers()
    cleared = 0
    for booking_id in Booking.objects.filter(
        passenger=passenger, status=Booking.STATUS_ACCEPTED
    ).values_list("id", flat=True):
        if timers.clear(booking_id):
            cleared += 1
    return cleared
