"""
Pricing service - fare calculation and surge.

This module handles:
    - Looking up the active pricing rule per vehicle type
    - Computing fare breakdowns for estimates, live repricing and settlement
    - Demand based surge multipliers
"""

from .fare import (
    PricingSnapshot,
    FareBreakdown,
    get_active_pricing,
    calculate_fare,
    quote_fare,
)
from .surge import SurgeQuote, compute_surge, demand_multiplier, surge_for_pickup, surge_tier

__all__ = [
    "PricingSnapshot",
    "FareBreakdown",
    "get_active_pricing",
    "calculate_fare",
    "quote_fare",
    "SurgeQuote",
    "compute_surge",
    "demand_multiplier",
    "surge_for_pickup",
    "surge_tier",
]
