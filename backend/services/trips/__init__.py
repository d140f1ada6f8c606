"""
Trip service - live tracking, repricing and completion settlement.
"""

from .trip_tracker import (
    LivePricing,
    Settlement,
    record_location,
    preview_pricing,
    settle_trip,
    completion_distance,
)

__all__ = [
    "LivePricing",
    "Settlement",
    "record_location",
    "preview_pricing",
    "settle_trip",
    "completion_distance",
]
