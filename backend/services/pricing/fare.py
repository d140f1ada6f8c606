"""
Fare calculation.

``calculate_fare`` is a pure function over a ``PricingSnapshot`` so it can be
used for estimates, live in-trip repricing and final settlement alike. Lookup
of the active rule lives in ``get_active_pricing``.
"""

import logging
import math
from dataclasses import dataclass, asdict
from typing import Optional, Dict

from pricing.models import PricingRule
from common.utils import round2
from services.exceptions import PricingNotFoundError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PricingSnapshot:
    """Float copy of a PricingRule, detached from the ORM."""
    vehicle_type: str
    base_fare: float
    per_km: float
    per_minute: float = 0.0
    waiting_per_minute: float = 0.0
    minimum_fare: float = 0.0
    maximum_fare: Optional[float] = None
    surge_multiplier: float = 1.0

    @classmethod
    def from_rule(cls, rule: PricingRule) -> "PricingSnapshot":
        return cls(
            vehicle_type=rule.vehicle_type,
            base_fare=float(rule.base_fare),
            per_km=float(rule.per_km),
            per_minute=float(rule.per_minute or 0),
            waiting_per_minute=float(rule.waiting_per_minute or 0),
            minimum_fare=float(rule.minimum_fare or 0),
            maximum_fare=float(rule.maximum_fare) if rule.maximum_fare is not None else None,
            surge_multiplier=float(rule.surge_multiplier or 1),
        )


@dataclass
class FareBreakdown:
    base: float
    distance_cost: float
    time_cost: float
    waiting_cost: float
    surge_multiplier: float
    total: float

    def as_dict(self) -> Dict[str, float]:
        """Rounded copy for payloads and persistence."""
        return {key: round2(value) for key, value in asdict(self).items()}


def get_active_pricing(vehicle_type: str) -> PricingSnapshot:
    """
    Return the most recently updated active rule for a vehicle type.

    Raises:
        PricingNotFoundError: If no active rule exists
    """
    rule = (
        PricingRule.objects
        .filter(vehicle_type=vehicle_type, is_active=True)
        .order_by('-updated_at', '-id')
        .first()
    )
    if rule is None:
        raise PricingNotFoundError(f"No active pricing for vehicle type '{vehicle_type}'")
    return PricingSnapshot.from_rule(rule)


def _non_negative(name: str, value) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number")
    if math.isnan(number) or number < 0:
        raise ValidationError(f"{name} must not be negative")
    return number


def calculate_fare(
    distance_km: float,
    waiting_minutes: float,
    pricing: PricingSnapshot,
    surge_override: Optional[float] = None,
    discount: float = 0,
) -> FareBreakdown:
    """
    Price a trip.

    total = max(minimum_fare, (base + distance + time + waiting) * surge) - discount,
    then clamped to >= 0 and to maximum_fare when one is set.

    Args:
        distance_km: Distance travelled (or estimated)
        waiting_minutes: Elapsed trip minutes
        pricing: Snapshot of the rule to apply
        surge_override: Multiplier replacing the rule's own surge
        discount: Flat amount subtracted after the minimum fare floor
    """
    distance_km = _non_negative("distance_km", distance_km)
    waiting_minutes = _non_negative("waiting_minutes", waiting_minutes)
    discount = _non_negative("discount", discount or 0)

    surge = pricing.surge_multiplier if surge_override is None else surge_override
    try:
        surge = float(surge)
    except (TypeError, ValueError):
        raise ValidationError("surge_multiplier must be a number")
    if math.isnan(surge) or surge < 1:
        raise ValidationError("surge_multiplier must be at least 1")

    distance_cost = distance_km * pricing.per_km
    time_cost = waiting_minutes * pricing.per_minute
    waiting_cost = waiting_minutes * pricing.waiting_per_minute
    subtotal = (pricing.base_fare + distance_cost + time_cost + waiting_cost) * surge

    total = max(pricing.minimum_fare, subtotal) - discount
    total = max(0.0, total)
    if pricing.maximum_fare is not None:
        total = min(total, pricing.maximum_fare)

    return FareBreakdown(
        base=pricing.base_fare,
        distance_cost=distance_cost,
        time_cost=time_cost,
        waiting_cost=waiting_cost,
        surge_multiplier=surge,
        total=total,
    )


def quote_fare(
    vehicle_type: str,
    distance_km: float,
    waiting_minutes: float = 0,
    surge_override: Optional[float] = None,
    discount: float = 0,
) -> FareBreakdown:
    """Look up the active rule and price with it."""
    pricing = get_active_pricing(vehicle_type)
    return calculate_fare(distance_km, waiting_minutes, pricing, surge_override, discount)
