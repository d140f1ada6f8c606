"""
Trip tracking, live repricing and completion settlement.

During an ongoing trip every driver location is appended to the booking's
TripHistory (arrival order) and the fare is recomputed from the travelled
path. Completion fixes the final distance, fare and commission, persists
them together with the ongoing -> completed transition, then settles wallets.
Settlement and reporting are best-effort: a failure there is logged and the
trip stays completed.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from django.db import transaction
from django.utils import timezone

from bookings.models import Booking, TripHistory, TripPoint
from common.utils import coordinates, distance_km, path_distance_km, round2, to_money
from realtime.dispatch_registry import get_dispatch_registry
from realtime.notifications import notify_booking_room, notify_passenger_event
from services.exceptions import (
    NotFoundError,
    ForbiddenError,
    InvalidTransitionError,
    ValidationError,
)
from services.finance import (
    calculate_commission,
    commission_rate_for,
    debit_driver_commission,
    credit_platform_commission,
    debit_passenger_fare,
)
from services.pricing import FareBreakdown, calculate_fare, get_active_pricing

logger = logging.getLogger(__name__)

TRACKABLE_STATUSES = (Booking.STATUS_ACCEPTED, Booking.STATUS_ONGOING)


@dataclass
class LivePricing:
    booking_id: int
    distance_traveled: float
    fare: FareBreakdown
    location: Dict[str, float]
    updated_at: datetime

    def as_payload(self) -> Dict[str, Any]:
        return {
            "booking_id": self.booking_id,
            "distance_traveled": round2(self.distance_traveled),
            "current_fare": round2(self.fare.total),
            "fare_breakdown": self.fare.as_dict(),
            "location": self.location,
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class Settlement:
    booking: Booking
    fare: FareBreakdown
    distance_km: float
    waiting_time: int
    commission_rate: float
    commission: float
    driver_earnings: float
    completed_at: datetime
    settled: Dict[str, bool] = field(default_factory=dict)

    def as_payload(self) -> Dict[str, Any]:
        return {
            "booking_id": self.booking.id,
            "amount": round2(self.fare.total),
            "distance": round2(self.distance_km),
            "waiting_time": self.waiting_time,
            "completed_at": self.completed_at.isoformat(),
            "driver_earnings": round2(self.driver_earnings),
            "commission": round2(self.commission),
            "commission_rate": self.commission_rate,
            "fare_breakdown": self.fare.as_dict(),
        }


def _get_driver_booking(driver, booking_id) -> Booking:
    try:
        booking = Booking.objects.get(pk=booking_id)
    except (Booking.DoesNotExist, ValueError, TypeError):
        raise NotFoundError(f"Booking {booking_id} not found")
    if booking.driver_id != driver.id:
        raise ForbiddenError("This booking is not assigned to you")
    return booking


def _point(latitude, longitude) -> Dict[str, float]:
    coords = coordinates({"latitude": latitude, "longitude": longitude})
    if coords is None:
        raise ValidationError("location must have a valid latitude and longitude")
    return {"latitude": coords[0], "longitude": coords[1]}


def _elapsed_minutes(booking: Booking, now: datetime) -> float:
    if booking.started_at is None:
        return 0.0
    return max(0.0, (now - booking.started_at).total_seconds() / 60)


def _path(booking: Booking) -> List[Dict[str, float]]:
    trip = TripHistory.objects.filter(booking=booking).first()
    return trip.path() if trip else []


# ---------------------- Live tracking ----------------------

def record_location(driver, booking_id, latitude, longitude, registry=None) -> LivePricing:
    """
    Handle a driver location during a booking.

    Ongoing trips append the point and reprice from the travelled path.
    Accepted bookings only get a preview from pickup to the current point.
    Both emit ``pricing_update`` to the booking room.
    """
    booking = _get_driver_booking(driver, booking_id)
    if booking.status not in TRACKABLE_STATUSES:
        raise InvalidTransitionError(f"Cannot track - booking is {booking.status}")

    location = _point(latitude, longitude)
    now = timezone.now()

    registry = registry or get_dispatch_registry()
    registry.set_live_location(driver.id, location["latitude"], location["longitude"])

    if booking.status == Booking.STATUS_ONGOING:
        trip, _ = TripHistory.objects.get_or_create(
            booking=booking,
            defaults={
                "driver": driver,
                "passenger_id": booking.passenger_id,
                "vehicle_type": booking.vehicle_type,
                "started_at": booking.started_at or now,
            },
        )
        TripPoint.objects.create(
            trip=trip,
            latitude=location["latitude"],
            longitude=location["longitude"],
            recorded_at=now,
        )
        traveled = path_distance_km(trip.path())
        notify_booking_room("trip_ongoing", booking.id, {
            "driver_id": driver.id,
            "location": location,
            "recorded_at": now.isoformat(),
        })
    else:
        traveled = distance_km(booking.pickup, location)

    live = _live_pricing(booking, traveled, location, now)
    notify_booking_room("pricing_update", booking.id, live.as_payload())
    return live


def preview_pricing(driver, booking_id, latitude, longitude) -> LivePricing:
    """
    Price the trip as if it ended at the given point, without recording it.
    """
    booking = _get_driver_booking(driver, booking_id)
    if booking.status not in TRACKABLE_STATUSES:
        raise InvalidTransitionError(f"Cannot price - booking is {booking.status}")

    location = _point(latitude, longitude)
    now = timezone.now()

    path = _path(booking) if booking.status == Booking.STATUS_ONGOING else []
    if path:
        traveled = path_distance_km(path + [location])
    else:
        traveled = distance_km(booking.pickup, location)

    live = _live_pricing(booking, traveled, location, now)
    notify_booking_room("pricing_update", booking.id, live.as_payload())
    return live


def _live_pricing(booking: Booking, traveled: float, location, now) -> LivePricing:
    if not math.isfinite(traveled):
        traveled = 0.0
    pricing = get_active_pricing(booking.vehicle_type)
    fare = calculate_fare(traveled, _elapsed_minutes(booking, now), pricing)
    return LivePricing(
        booking_id=booking.id,
        distance_traveled=traveled,
        fare=fare,
        location=location,
        updated_at=now,
    )


# ---------------------- Completion ----------------------

def completion_distance(booking: Booking, path: List[Dict[str, float]], final_location) -> float:
    """
    Distance billed at completion:
    path length if >= 2 points, else start -> final, else pickup -> dropoff.
    """
    if len(path) >= 2:
        return path_distance_km(path)

    start = booking.start_location
    if start is not None and final_location is not None:
        straight = distance_km(start, final_location)
        if math.isfinite(straight):
            return straight

    fallback = distance_km(booking.pickup, booking.dropoff)
    return fallback if math.isfinite(fallback) else 0.0


def settle_trip(
    booking: Booking,
    end_location: Optional[Dict[str, Any]] = None,
    surge_multiplier: float = 1.0,
    discount: float = 0,
    debit_passenger_wallet: bool = False,
) -> Settlement:
    """
    Finalize an ongoing booking.

    Args:
        booking: Booking in ``ongoing`` status with a driver
        end_location: Explicit drop point, else the last recorded point
        surge_multiplier: Multiplier applied to the final fare, 1 when not given
        discount: Flat discount on the final fare
        debit_passenger_wallet: Also charge the fare to the passenger wallet

    Raises:
        InvalidTransitionError: If the booking is no longer ongoing
        PricingNotFoundError: If the vehicle type has no active pricing
    """
    now = timezone.now()
    path = _path(booking)

    if end_location is not None:
        coords = coordinates(end_location)
        if coords is None:
            raise ValidationError("end location must have a valid latitude and longitude")
        final_location = {"latitude": coords[0], "longitude": coords[1]}
        end_address = end_location.get("address") if isinstance(end_location, dict) else None
    elif path:
        final_location = path[-1]
        end_address = None
    else:
        final_location = None
        end_address = None

    trip_distance = completion_distance(booking, path, final_location)
    waiting_time = max(0, int(round(_elapsed_minutes(booking, now))))

    pricing = get_active_pricing(booking.vehicle_type)
    if surge_multiplier is None:
        surge_multiplier = 1.0
    fare = calculate_fare(trip_distance, waiting_time, pricing, surge_multiplier, discount)

    rate = commission_rate_for(booking.driver_id)
    commission, earnings = calculate_commission(fare.total, rate)

    updates = {
        "status": Booking.STATUS_COMPLETED,
        "completed_at": now,
        "updated_at": now,
        "distance_km": trip_distance,
        "waiting_time": waiting_time,
        "fare_final": to_money(fare.total),
        "fare_breakdown": fare.as_dict(),
        "commission_amount": to_money(commission),
        "driver_earnings": to_money(earnings),
    }
    if final_location is not None:
        lat = round(final_location["latitude"], 6)
        lon = round(final_location["longitude"], 6)
        updates.update({
            "end_latitude": lat,
            "end_longitude": lon,
            "end_address": end_address or booking.dropoff_address,
            "dropoff_latitude": lat,
            "dropoff_longitude": lon,
        })

    with transaction.atomic():
        updated = Booking.objects.filter(
            pk=booking.pk,
            status=Booking.STATUS_ONGOING,
            driver_id=booking.driver_id,
        ).update(**updates)
        if not updated:
            booking.refresh_from_db()
            raise InvalidTransitionError(f"Cannot complete trip - booking is {booking.status}")

        TripHistory.objects.update_or_create(
            booking=booking,
            defaults={
                "driver_id": booking.driver_id,
                "passenger_id": booking.passenger_id,
                "vehicle_type": booking.vehicle_type,
                "started_at": booking.started_at,
                "completed_at": now,
                "fare": to_money(fare.total),
                "distance_km": trip_distance,
                "waiting_time": waiting_time,
                "commission": to_money(commission),
                "net_income": to_money(earnings),
                "dropoff_latitude": updates.get("dropoff_latitude", booking.dropoff_latitude),
                "dropoff_longitude": updates.get("dropoff_longitude", booking.dropoff_longitude),
                "dropoff_address": booking.dropoff_address,
            },
        )

    booking.refresh_from_db()
    logger.info(
        "Booking %s completed: fare=%s distance=%.3fkm commission=%s",
        booking.id, booking.fare_final, trip_distance, booking.commission_amount,
    )

    settlement = Settlement(
        booking=booking,
        fare=fare,
        distance_km=trip_distance,
        waiting_time=waiting_time,
        commission_rate=rate,
        commission=commission,
        driver_earnings=earnings,
        completed_at=now,
    )
    _settle_wallets(settlement, debit_passenger_wallet)
    _record_earnings(settlement)

    payload = settlement.as_payload()
    notify_booking_room("trip_completed", booking.id, payload)
    notify_passenger_event("trip_completed", booking, "Your trip is complete.", extra=payload)
    return settlement


def _settle_wallets(settlement: Settlement, debit_passenger_wallet: bool) -> None:
    booking = settlement.booking
    commission = to_money(settlement.commission)

    if commission > 0:
        try:
            debit_driver_commission(booking.driver, commission, booking, settlement.commission_rate)
            settlement.settled["driver_commission"] = True
        except Exception:
            logger.exception("Failed to debit commission for booking %s", booking.id)
            settlement.settled["driver_commission"] = False

        try:
            credited = credit_platform_commission(commission, booking)
            settlement.settled["platform_commission"] = credited is not None
        except Exception:
            logger.exception("Failed to credit platform commission for booking %s", booking.id)
            settlement.settled["platform_commission"] = False

    if debit_passenger_wallet:
        try:
            debit_passenger_fare(booking.passenger, to_money(settlement.fare.total), booking)
            settlement.settled["passenger_fare"] = True
        except Exception:
            logger.exception("Failed to debit passenger fare for booking %s", booking.id)
            settlement.settled["passenger_fare"] = False


def _record_earnings(settlement: Settlement) -> None:
    from wallets.models import DriverEarnings, AdminEarnings

    booking = settlement.booking
    gross = to_money(settlement.fare.total)
    commission = to_money(settlement.commission)
    rate = to_money(settlement.commission_rate)
    try:
        DriverEarnings.objects.create(
            driver_id=booking.driver_id,
            booking=booking,
            trip_date=settlement.completed_at,
            gross_fare=gross,
            commission_amount=commission,
            net_earnings=to_money(settlement.driver_earnings),
            commission_percentage=rate,
        )
        AdminEarnings.objects.create(
            booking=booking,
            driver_id=booking.driver_id,
            passenger_id=booking.passenger_id,
            trip_date=settlement.completed_at,
            gross_fare=gross,
            commission_earned=commission,
            commission_percentage=rate,
        )
    except Exception:
        logger.exception("Failed to record earnings for booking %s", booking.id)
