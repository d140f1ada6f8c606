"""
Driver matching and offer dispatch service.

This module handles:
    - Selecting eligible nearby drivers for a booking
    - Broadcasting offers with per-driver dedup
    - Re-offering open bookings to drivers who become available
"""

from .offer_builder import DriverCandidate, find_candidate_drivers
from .offer_dispatch import (
    DispatchResult,
    dispatch_booking,
    dispatch_open_bookings_to_driver,
    release_booking,
)

__all__ = [
    "DriverCandidate",
    "find_candidate_drivers",
    "DispatchResult",
    "dispatch_booking",
    "dispatch_open_bookings_to_driver",
    "release_booking",
]
