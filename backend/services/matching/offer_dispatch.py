"""
Offer dispatch.

Offers go out to every selected candidate at once (broadcast, first accept
wins). Each (booking, driver) pair is offered at most once while its dedup
entry in the dispatch registry is alive.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from django.utils import timezone

from bookings.models import Booking, BookingAssignment
from drivers.models import DriverProfile
from common.utils import distance_km, round2
from realtime.dispatch_registry import get_dispatch_registry
from realtime.notifications import notify_driver_event, broadcast_to_drivers
from services.finance import can_accept_booking, commission_rate_for, get_balance
from .offer_builder import find_candidate_drivers, driver_position, dispatch_radius_km, dispatch_limit

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    considered: int = 0
    sent: int = 0
    driver_ids: List[int] = field(default_factory=list)
    broadcast: bool = False


def offer_payload(booking: Booking, distance: Optional[float] = None) -> dict:
    """Extra fields sent alongside the serialized booking in a booking_offer."""
    payload = {
        "pickup": booking.pickup,
        "dropoff": booking.dropoff,
        "vehicle_type": booking.vehicle_type,
        "fare_estimated": round2(booking.fare_estimated),
        "distance_km": round2(booking.distance_km),
        "created_at": booking.created_at.isoformat() if booking.created_at else None,
    }
    if distance is not None:
        payload["distance_to_pickup_km"] = round2(distance)
    return payload


def _offer_to_driver(booking: Booking, driver_id, registry, distance: Optional[float] = None) -> bool:
    BookingAssignment.objects.get_or_create(
        booking=booking,
        driver_id=driver_id,
        defaults={"status": BookingAssignment.STATUS_OFFERED},
    )
    sent = notify_driver_event(
        "booking_offer",
        booking,
        driver_id,
        "New booking request nearby.",
        extra=offer_payload(booking, distance),
    )
    registry.mark_dispatched(booking.id, driver_id)
    return sent


def dispatch_booking(booking: Booking, registry=None) -> DispatchResult:
    """
    Offer a freshly requested booking to nearby eligible drivers.

    Args:
        booking: Booking in ``requested`` status
        registry: DispatchRegistry (defaults to the process registry)

    Returns:
        DispatchResult with the number of candidates and offers sent
    """
    registry = registry or get_dispatch_registry()
    result = DispatchResult()

    candidates = find_candidate_drivers(booking, registry)
    result.considered = len(candidates)

    for candidate in candidates:
        if registry.was_dispatched(booking.id, candidate.driver_id):
            continue
        try:
            _offer_to_driver(booking, candidate.driver_id, registry, candidate.distance_km)
        except Exception:
            logger.exception("Failed to offer booking %s to driver %s", booking.id, candidate.driver_id)
            continue
        result.sent += 1
        result.driver_ids.append(candidate.driver_id)

    # Fallback for driver clients listening on the shared room only
    result.broadcast = broadcast_to_drivers("booking_broadcast", {
        "booking_id": booking.id,
        **offer_payload(booking),
    })

    logger.info("Dispatched booking %s to %d/%d drivers", booking.id, result.sent, result.considered)
    return result


def dispatch_open_bookings_to_driver(driver, registry=None, limit: Optional[int] = None) -> List[Booking]:
    """
    Offer open bookings near a driver who just became available.

    Applies the same radius, affordability and dedup rules as
    ``dispatch_booking``, from the driver's point of view.

    Returns:
        Bookings offered, closest pickup first
    """
    registry = registry or get_dispatch_registry()
    limit = dispatch_limit() if limit is None else limit

    try:
        profile = driver.driver_profile
    except DriverProfile.DoesNotExist:
        return []

    position = driver_position(profile, registry)
    if position is None:
        return []

    open_bookings = Booking.objects.filter(status=Booking.STATUS_REQUESTED, driver__isnull=True)
    if profile.vehicle_type:
        open_bookings = open_bookings.filter(vehicle_type__in=[profile.vehicle_type, ""])

    radius = dispatch_radius_km()
    nearby = []
    for booking in open_bookings:
        distance = distance_km(position, booking.pickup)
        if distance <= radius:
            nearby.append((distance, booking.created_at, booking))
    nearby.sort(key=lambda item: (item[0], item[1]))

    balance = get_balance(driver.id, "driver")
    rate = commission_rate_for(driver.id)

    offered: List[Booking] = []
    for distance, _, booking in nearby:
        if len(offered) >= limit:
            break
        if not can_accept_booking(balance, booking.quoted_fare, rate):
            continue
        if registry.was_dispatched(booking.id, driver.id):
            continue
        try:
            _offer_to_driver(booking, driver.id, registry, distance)
        except Exception:
            logger.exception("Failed to re-offer booking %s to driver %s", booking.id, driver.id)
            continue
        offered.append(booking)

    if offered:
        logger.info("Re-offered %d open bookings to driver %s", len(offered), driver.id)
    return offered


def release_booking(booking: Booking, registry=None) -> None:
    """Forget dispatch state for a booking that left ``requested``."""
    registry = registry or get_dispatch_registry()
    registry.clear_booking(booking.id)
