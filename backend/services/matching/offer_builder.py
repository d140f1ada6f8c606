"""
Select which drivers a booking is offered to.

Filters run in a fixed order: vehicle type, known position, radius,
distance sort, wallet affordability, runtime availability, then the top-N cap.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional

from django.conf import settings

from bookings.models import Booking
from drivers.models import DriverProfile
from wallets.models import Wallet
from common.utils import distance_km
from services.finance import can_accept_booking, commission_rate_for

logger = logging.getLogger(__name__)


@dataclass
class DriverCandidate:
    profile: DriverProfile
    distance_km: float
    location: dict

    @property
    def driver_id(self):
        return self.profile.user_id


def dispatch_radius_km() -> float:
    return float(getattr(settings, "DISPATCH_RADIUS_KM", 5))


def dispatch_limit() -> int:
    limit = int(getattr(settings, "DISPATCH_MAX_DRIVERS", 50))
    hard_cap = int(getattr(settings, "DISPATCH_MAX_DRIVERS_HARD_CAP", 200))
    return max(1, min(limit, hard_cap))


def driver_position(profile: DriverProfile, registry) -> Optional[dict]:
    """Live location if the driver reported one, else the persisted one."""
    live = registry.get_live_location(profile.user_id)
    if live is not None:
        return {"latitude": live.latitude, "longitude": live.longitude}
    return profile.last_known_location


def _driver_balances(driver_ids) -> dict:
    return dict(
        Wallet.objects.filter(user_id__in=driver_ids, role="driver").values_list("user_id", "balance")
    )


def find_candidate_drivers(
    booking: Booking,
    registry,
    radius_km: Optional[float] = None,
    limit: Optional[int] = None,
) -> List[DriverCandidate]:
    """
    Build the ordered candidate list for one booking.

    Args:
        booking: Booking to match
        registry: DispatchRegistry with live locations and availability
        radius_km: Search radius, DISPATCH_RADIUS_KM by default
        limit: Maximum candidates, DISPATCH_MAX_DRIVERS by default

    Returns:
        Candidates sorted by (distance, driver id), closest first
    """
    radius_km = dispatch_radius_km() if radius_km is None else radius_km
    limit = dispatch_limit() if limit is None else max(1, min(int(limit), dispatch_limit()))

    profiles = DriverProfile.objects.select_related("user")
    if booking.vehicle_type:
        profiles = profiles.filter(vehicle_type=booking.vehicle_type)

    pickup = booking.pickup
    in_range: List[DriverCandidate] = []
    for profile in profiles:
        position = driver_position(profile, registry)
        if position is None:
            continue
        distance = distance_km(pickup, position)
        if not math.isfinite(distance) or distance > radius_km:
            continue
        in_range.append(DriverCandidate(profile=profile, distance_km=distance, location=position))

    in_range.sort(key=lambda candidate: (candidate.distance_km, str(candidate.driver_id)))

    fare = booking.quoted_fare
    balances = _driver_balances([candidate.driver_id for candidate in in_range])
    affordable = [
        candidate for candidate in in_range
        if can_accept_booking(balances.get(candidate.driver_id, 0), fare, commission_rate_for(candidate.driver_id))
    ]

    available = [candidate for candidate in affordable if registry.is_available(candidate.driver_id)]

    selected = available[:limit]
    logger.info(
        "Booking %s candidates: in_range=%d affordable=%d available=%d selected=%d (radius=%skm)",
        booking.id, len(in_range), len(affordable), len(available), len(selected), radius_km,
    )
    return selected
