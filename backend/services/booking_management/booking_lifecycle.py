"""
Core booking lifecycle operations.

    requested -> accepted -> ongoing -> completed
    requested | accepted -> canceled

Every transition is a conditional UPDATE on the expected current status, so
of two actors racing for the same transition exactly one sees a changed row;
the other gets an explicit error. Notifications are sent after the state
change and never undo it.
"""

import logging
from typing import Optional, Dict, Any
from dataclasses import dataclass

from django.db import transaction
from django.utils import timezone

from bookings.models import Booking, BookingAssignment, TripHistory
from common.utils import distance_km, coordinates, to_money
from realtime.dispatch_registry import get_dispatch_registry
from realtime.notifications import (
    notify_driver_event,
    notify_passenger_event,
    notify_booking_room,
    broadcast_to_drivers,
)
from services.exceptions import (
    NotFoundError,
    InvalidTransitionError,
    ForbiddenError,
    ValidationError,
    ConcurrencyConflictError,
)
from services.matching import dispatch_booking, release_booking
from services.pricing import calculate_fare, get_active_pricing, surge_for_pickup

logger = logging.getLogger(__name__)


@dataclass
class BookingResult:
    """Result object for booking operations."""
    success: bool
    booking: Optional[Booking] = None
    message: str = ""
    error_code: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None


def _get_booking(booking_id) -> Booking:
    try:
        return Booking.objects.select_related("passenger", "driver").get(pk=booking_id)
    except (Booking.DoesNotExist, ValueError, TypeError):
        raise NotFoundError(f"Booking {booking_id} not found")


def _require_role(user, role: str, action: str):
    if getattr(user, "role", None) != role:
        raise ForbiddenError(f"Only {role}s can {action}")


def _location_fields(prefix: str, location) -> Dict[str, Any]:
    coords = coordinates(location)
    if coords is None:
        raise ValidationError(f"{prefix} location must have a valid latitude and longitude")
    address = location.get("address") if isinstance(location, dict) else getattr(location, "address", None)
    return {
        f"{prefix}_latitude": round(coords[0], 6),
        f"{prefix}_longitude": round(coords[1], 6),
        f"{prefix}_address": address or "",
    }


def _status_error(booking: Booking, action: str) -> InvalidTransitionError:
    return InvalidTransitionError(f"Cannot {action} - booking is {booking.status}")


def _release_dispatch(booking: Booking, registry=None):
    try:
        release_booking(booking, registry)
    except Exception:
        logger.exception("Failed to release dispatch state for booking %s", booking.id)


# ===================== Passenger Operations =====================

def check_active_booking(user) -> Optional[Booking]:
    """Check if user has an active booking."""
    return Booking.objects.filter(
        passenger=user,
        status__in=Booking.ACTIVE_STATUSES
    ).first()


def create_booking(
    passenger,
    vehicle_type: str,
    pickup: Dict[str, Any],
    dropoff: Dict[str, Any],
    registry=None,
) -> BookingResult:
    """
    Create a new booking and dispatch offers to nearby drivers.

    Args:
        passenger: User model instance (passenger)
        vehicle_type: Requested vehicle type
        pickup: {latitude, longitude, address?}
        dropoff: {latitude, longitude, address?}
        registry: DispatchRegistry override

    Returns:
        BookingResult with the created booking

    Raises:
        ForbiddenError: If the user is not a passenger
        ValidationError: If a location is malformed
        InvalidTransitionError: If passenger already has an active booking
        PricingNotFoundError: If the vehicle type has no active pricing
    """
    _require_role(passenger, "passenger", "request bookings")
    if not vehicle_type:
        raise ValidationError("vehicle_type is required")

    fields = {**_location_fields("pickup", pickup), **_location_fields("dropoff", dropoff)}

    if check_active_booking(passenger):
        raise InvalidTransitionError("You already have an active booking")

    trip_distance = distance_km(pickup, dropoff)
    pricing = get_active_pricing(vehicle_type)
    surge = surge_for_pickup(
        fields["pickup_latitude"], fields["pickup_longitude"], vehicle_type, registry,
        base=pricing.surge_multiplier,
    )
    fare = calculate_fare(trip_distance, 0, pricing, surge)

    booking = Booking.objects.create(
        passenger=passenger,
        vehicle_type=vehicle_type,
        status=Booking.STATUS_REQUESTED,
        distance_km=trip_distance,
        fare_estimated=to_money(fare.total),
        fare_breakdown=fare.as_dict(),
        **fields,
    )
    logger.info("Booking %s created by passenger %s (fare=%s)", booking.id, passenger.id, booking.fare_estimated)

    notify_passenger_event("booking_created", booking, "Looking for nearby drivers...")

    sent = 0
    try:
        dispatch = dispatch_booking(booking, registry)
        sent = dispatch.sent
    except Exception:
        logger.exception("Dispatch failed for booking %s", booking.id)

    if sent:
        message = "Notifying nearby drivers..."
    else:
        notify_passenger_event(
            "no_drivers_available",
            booking,
            "No drivers found nearby yet. We will keep looking."
        )
        message = "No available drivers found nearby yet."

    return BookingResult(
        success=True,
        booking=booking,
        message=message,
        extra={"drivers_notified": sent}
    )


def get_current_passenger_booking(passenger) -> Optional[Booking]:
    """Get passenger's current active booking."""
    return Booking.objects.filter(
        passenger=passenger,
        status__in=Booking.ACTIVE_STATUSES
    ).select_related("driver").first()


def cancel_booking_by_passenger(passenger, booking_id, reason: str = "", registry=None) -> BookingResult:
    """
    Cancel a booking by passenger.

    Allowed from ``requested`` and ``accepted``. The assigned driver (if any)
    and every other driver who saw the offer are told the booking is gone.
    """
    booking = _get_booking(booking_id)
    if booking.passenger_id != passenger.id:
        raise ForbiddenError("You can only cancel your own bookings")
    if booking.status not in Booking.CANCELABLE_STATUSES:
        raise _status_error(booking, "cancel")

    return _cancel(booking, "passenger", reason or "Canceled by passenger", registry)


def cancel_booking_by_driver(driver, booking_id, reason: str = "", registry=None) -> BookingResult:
    """Cancel an accepted booking by its assigned driver."""
    booking = _get_booking(booking_id)
    if booking.driver_id != driver.id:
        raise ForbiddenError("This booking is not assigned to you")
    if booking.status != Booking.STATUS_ACCEPTED:
        raise _status_error(booking, "cancel")

    return _cancel(booking, "driver", reason or "Canceled by driver", registry)


def cancel_booking_by_system(booking_id, reason: str, expected_status: str = Booking.STATUS_ACCEPTED, registry=None) -> BookingResult:
    """Cancel on behalf of the platform (e.g. passenger never reconnected)."""
    booking = _get_booking(booking_id)
    if booking.status != expected_status:
        raise _status_error(booking, "cancel")
    return _cancel(booking, "system", reason, registry)


def _cancel(booking: Booking, canceled_by: str, reason: str, registry=None) -> BookingResult:
    previous_status = booking.status
    previous_driver_id = booking.driver_id
    now = timezone.now()

    with transaction.atomic():
        updated = Booking.objects.filter(
            pk=booking.pk,
            status=previous_status,
            driver_id=previous_driver_id,
        ).update(
            status=Booking.STATUS_CANCELED,
            driver=None,
            canceled_by=canceled_by,
            canceled_reason=reason,
            canceled_at=now,
            updated_at=now,
        )
        if not updated:
            booking.refresh_from_db()
            raise InvalidTransitionError(f"Cannot cancel - booking is {booking.status}")

        notified_drivers = list(
            booking.assignments.exclude(status=BookingAssignment.STATUS_CANCELED)
            .values_list("driver_id", flat=True)
        )
        booking.assignments.exclude(status=BookingAssignment.STATUS_CANCELED).update(
            status=BookingAssignment.STATUS_CANCELED,
            responded_at=now,
        )

    booking.refresh_from_db()
    logger.info("Booking %s canceled by %s (was %s)", booking.id, canceled_by, previous_status)

    _release_dispatch(booking, registry)
    from .disconnect import DisconnectTimers
    DisconnectTimers().clear(booking.id)

    if previous_driver_id and canceled_by != "driver":
        notify_driver_event(
            "booking_canceled", booking, previous_driver_id,
            "The booking was canceled.", extra={"canceled_by": canceled_by, "reason": reason},
        )
    for driver_id in notified_drivers:
        if driver_id != previous_driver_id:
            notify_driver_event("booking_unavailable", booking, driver_id, "Booking is no longer available.")

    if canceled_by != "passenger":
        notify_passenger_event(
            "booking_canceled", booking,
            "Your booking was canceled.", extra={"canceled_by": canceled_by, "reason": reason},
        )

    notify_booking_room("booking_status", booking.id, {
        "status": booking.status,
        "canceled_by": canceled_by,
        "reason": reason,
    })

    return BookingResult(
        success=True,
        booking=booking,
        message="Booking canceled successfully",
        extra={"was_assigned": previous_driver_id is not None, "canceled_by": canceled_by}
    )


# ===================== Driver Operations =====================

def accept_booking(driver, booking_id, registry=None) -> BookingResult:
    """
    Accept a requested booking. At most one driver ever wins.

    Args:
        driver: User model instance (driver)
        booking_id: ID of the booking to accept

    Raises:
        NotFoundError: Unknown booking
        ForbiddenError: Actor is not a driver
        InvalidTransitionError: Booking canceled/completed, or driver busy
        ConcurrencyConflictError: Another driver accepted first
    """
    _require_role(driver, "driver", "accept bookings")
    booking = _get_booking(booking_id)

    if booking.status in (Booking.STATUS_CANCELED, Booking.STATUS_COMPLETED):
        raise _status_error(booking, "accept")

    busy = Booking.objects.filter(
        driver=driver,
        status__in=[Booking.STATUS_ACCEPTED, Booking.STATUS_ONGOING],
    ).exclude(pk=booking.pk).exists()
    if busy:
        raise InvalidTransitionError("You already have an active booking")

    now = timezone.now()
    with transaction.atomic():
        updated = Booking.objects.filter(
            pk=booking.pk,
            status=Booking.STATUS_REQUESTED,
            driver__isnull=True,
        ).update(
            status=Booking.STATUS_ACCEPTED,
            driver=driver,
            accepted_at=now,
            updated_at=now,
        )
        if not updated:
            booking.refresh_from_db()
            if booking.status in (Booking.STATUS_CANCELED, Booking.STATUS_COMPLETED):
                raise _status_error(booking, "accept")
            raise ConcurrencyConflictError("Booking is no longer available")

        assignment, _ = BookingAssignment.objects.get_or_create(
            booking=booking,
            driver=driver,
            defaults={"status": BookingAssignment.STATUS_OFFERED},
        )
        losers = list(
            booking.assignments.exclude(pk=assignment.pk)
            .exclude(status=BookingAssignment.STATUS_CANCELED)
            .values_list("driver_id", flat=True)
        )
        booking.assignments.exclude(pk=assignment.pk).exclude(
            status=BookingAssignment.STATUS_CANCELED
        ).update(status=BookingAssignment.STATUS_CANCELED, responded_at=now)
        BookingAssignment.objects.filter(pk=assignment.pk).update(
            status=BookingAssignment.STATUS_ACCEPTED,
            responded_at=now,
        )

    booking.refresh_from_db()
    logger.info("Booking %s accepted by driver %s", booking.id, driver.id)

    _release_dispatch(booking, registry)

    notify_driver_event("booking_accepted", booking, driver.id, "Booking accepted. Navigate to pickup.")
    notify_passenger_event("booking_accepted", booking, "Your driver is on the way!")
    notify_booking_room("booking_status", booking.id, {"status": booking.status, "driver_id": driver.id})
    for loser_id in losers:
        notify_driver_event("booking_unavailable", booking, loser_id, "Booking was taken by another driver.")
    broadcast_to_drivers("booking_unavailable", {"booking_id": booking.id})

    return BookingResult(
        success=True,
        booking=booking,
        message="Booking accepted successfully",
        extra={"canceled_offers": len(losers)}
    )


def start_trip(driver, booking_id, start_location: Optional[Dict[str, Any]] = None) -> BookingResult:
    """
    Start the trip: accepted -> ongoing, by the assigned driver only.

    Creates the TripHistory skeleton the location updates append to.
    """
    booking = _get_booking(booking_id)
    if booking.driver_id != driver.id:
        raise ForbiddenError("This booking is not assigned to you")
    if booking.status != Booking.STATUS_ACCEPTED:
        raise _status_error(booking, "start trip")

    now = timezone.now()
    fields = {}
    if start_location is not None:
        fields = _location_fields("start", start_location)

    with transaction.atomic():
        updated = Booking.objects.filter(
            pk=booking.pk,
            status=Booking.STATUS_ACCEPTED,
            driver=driver,
        ).update(status=Booking.STATUS_ONGOING, started_at=now, updated_at=now, **fields)
        if not updated:
            booking.refresh_from_db()
            raise _status_error(booking, "start trip")

        TripHistory.objects.update_or_create(
            booking=booking,
            defaults={
                "driver": driver,
                "passenger_id": booking.passenger_id,
                "vehicle_type": booking.vehicle_type,
                "started_at": now,
            },
        )

    booking.refresh_from_db()
    logger.info("Trip started for booking %s", booking.id)

    from .disconnect import DisconnectTimers
    DisconnectTimers().clear(booking.id)

    notify_booking_room("trip_started", booking.id, {
        "status": booking.status,
        "started_at": now.isoformat(),
        "start_location": booking.start_location,
    })
    notify_passenger_event("trip_started", booking, "Your trip has started.")

    return BookingResult(success=True, booking=booking, message="Trip started")


def complete_trip(
    driver,
    booking_id,
    end_location: Optional[Dict[str, Any]] = None,
    surge_multiplier: float = 1.0,
    discount: float = 0,
    debit_passenger_wallet: bool = False,
) -> BookingResult:
    """
    Complete the trip: ongoing -> completed, then settle.

    Raises:
        NotFoundError, ForbiddenError, InvalidTransitionError,
        ValidationError, PricingNotFoundError
    """
    from services.trips import settle_trip

    booking = _get_booking(booking_id)
    if booking.driver_id != driver.id:
        raise ForbiddenError("This booking is not assigned to you")
    if booking.status != Booking.STATUS_ONGOING:
        raise _status_error(booking, "complete trip")
    if end_location is not None and coordinates(end_location) is None:
        raise ValidationError("end location must have a valid latitude and longitude")

    settlement = settle_trip(
        booking,
        end_location=end_location,
        surge_multiplier=surge_multiplier,
        discount=discount,
        debit_passenger_wallet=debit_passenger_wallet,
    )

    return BookingResult(
        success=True,
        booking=settlement.booking,
        message="Trip completed",
        extra=settlement.as_payload(),
    )


def get_current_driver_booking(driver) -> Optional[Booking]:
    """Get driver's current active booking."""
    return Booking.objects.filter(
        driver=driver,
        status__in=[Booking.STATUS_ACCEPTED, Booking.STATUS_ONGOING]
    ).select_related("passenger").first()
