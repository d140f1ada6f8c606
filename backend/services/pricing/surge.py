"""
Demand based surge multiplier.

The multiplier grows with the ratio of open booking requests to available
drivers around a pickup point:

    ratio <= 1       -> 1.0
    1 < ratio <= 2   -> 1.0 .. 1.5
    2 < ratio <= 3   -> 1.5 .. 2.5
    ratio > 3        -> SURGE_MAX_MULTIPLIER

With demand but no drivers at all the cap applies straight away.
"""

import logging
from dataclasses import dataclass

from django.conf import settings

from common.utils import distance_km

logger = logging.getLogger(__name__)

TIER_NORMAL = "normal"
TIER_MEDIUM = "medium"
TIER_HIGH = "high"


@dataclass
class SurgeQuote:
    multiplier: float
    tier: str
    open_bookings: int
    available_drivers: int


def surge_tier(multiplier: float) -> str:
    if multiplier <= 1.2:
        return TIER_NORMAL
    if multiplier <= 1.5:
        return TIER_MEDIUM
    return TIER_HIGH


def demand_multiplier(open_bookings: int, available_drivers: int) -> float:
    cap = float(getattr(settings, "SURGE_MAX_MULTIPLIER", 2.5))

    if available_drivers <= 0:
        return cap if open_bookings > 0 else 1.0

    ratio = open_bookings / available_drivers
    if ratio <= 1.0:
        multiplier = 1.0
    elif ratio <= 2.0:
        multiplier = 1.0 + (ratio - 1.0) * 0.5
    elif ratio <= 3.0:
        multiplier = 1.5 + (ratio - 2.0)
    else:
        multiplier = cap
    return round(min(max(multiplier, 1.0), cap), 2)


def compute_surge(latitude: float, longitude: float, vehicle_type: str = "", registry=None) -> SurgeQuote:
    """Count supply and demand within SURGE_RADIUS_KM of a point and price it."""
    from bookings.models import Booking
    from drivers.models import DriverProfile
    from realtime.dispatch_registry import get_dispatch_registry

    registry = registry or get_dispatch_registry()
    radius = float(getattr(settings, "SURGE_RADIUS_KM", 5))
    center = {"latitude": latitude, "longitude": longitude}

    open_qs = Booking.objects.filter(status=Booking.STATUS_REQUESTED, driver__isnull=True)
    drivers_qs = DriverProfile.objects.all()
    if vehicle_type:
        open_qs = open_qs.filter(vehicle_type=vehicle_type)
        drivers_qs = drivers_qs.filter(vehicle_type=vehicle_type)

    open_bookings = sum(
        1 for booking in open_qs.only("pickup_latitude", "pickup_longitude")
        if distance_km(center, booking.pickup) <= radius
    )

    available_drivers = 0
    for profile in drivers_qs:
        if not registry.is_available(profile.user_id):
            continue
        position = registry.get_live_location(profile.user_id) or profile.last_known_location
        if distance_km(center, position) <= radius:
            available_drivers += 1

    multiplier = demand_multiplier(open_bookings, available_drivers)
    logger.debug(
        "Surge at (%s, %s): open=%s drivers=%s multiplier=%s",
        latitude, longitude, open_bookings, available_drivers, multiplier,
    )
    return SurgeQuote(
        multiplier=multiplier,
        tier=surge_tier(multiplier),
        open_bookings=open_bookings,
        available_drivers=available_drivers,
    )


def surge_for_pickup(latitude: float, longitude: float, vehicle_type: str = "", registry=None, base: float = 1.0):
    """
    Multiplier to quote a new booking with, or None to use the rule's own.

    With surge enabled the demand multiplier scales ``base`` (the rule's multiplier).
    """
    if not getattr(settings, "SURGE_ENABLED", False):
        return None
    demand = compute_surge(latitude, longitude, vehicle_type, registry).multiplier
    return round(float(base) * demand, 2)
