"""Driver WebSocket consumer: availability, location, offers and trip actions."""

import logging
from typing import Dict, Any

from channels.db import database_sync_to_async

from .base import BaseConsumer
from bookings.serializers import (
    AvailabilitySerializer,
    BookingActionSerializer,
    BookingCancelSerializer,
    BookingSerializer,
    CompleteTripSerializer,
    DriverLocationSerializer,
    StartTripSerializer,
    TripLocationSerializer,
    validate_payload,
)
from drivers.models import DriverProfile
from drivers.services import update_driver_availability, update_driver_location
from realtime.dispatch_registry import get_dispatch_registry
from realtime.notifications import DRIVERS_GROUP, booking_group
from services.booking_management import (
    accept_booking,
    cancel_booking_by_driver,
    complete_trip,
    start_trip,
)
from services.exceptions import NotFoundError
from services.matching import dispatch_open_bookings_to_driver
from services.matching.offer_dispatch import offer_payload
from services.trips import record_location, preview_pricing

logger = logging.getLogger(__name__)


class DriverConsumer(BaseConsumer):
    """
    WebSocket consumer for drivers.

    Handles:
        - Availability toggles (re-offers nearby open bookings when on)
        - Location updates (live location cache)
        - Accepting / canceling bookings, starting and completing trips
        - In-trip location updates and pricing previews
    """

    async def on_connect(self):
        """Set up driver-specific groups on connection."""
        if self.role != "driver":
            await self.send_error("This endpoint is for drivers only", code="forbidden")
            await self.close()
            return

        # Join driver-specific group for targeted notifications
        self.driver_group = f"driver_{self.user_id}"
        await self._join_group(self.driver_group)
        await self._join_group(DRIVERS_GROUP)

        get_dispatch_registry().register_connection(self.user_id, self.channel_name)

        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "role": self.role,
            "message": "Driver connected successfully",
        })

    async def on_disconnect(self, close_code):
        get_dispatch_registry().unregister_connection(self.user_id, self.channel_name)
        logger.info("Driver %s connection %s closed", self.user_id, self.channel_name)

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        """Handle driver-specific messages."""

        if msg_type == "set_availability":
            await self._handle_availability(data)
        elif msg_type == "location_update":
            await self._handle_location_update(data)
        elif msg_type == "accept_booking":
            await self._handle_accept(data)
        elif msg_type == "cancel_booking":
            await self._handle_cancel(data)
        elif msg_type == "start_trip":
            await self._handle_start_trip(data)
        elif msg_type == "trip_location":
            await self._handle_trip_location(data)
        elif msg_type == "complete_trip":
            await self._handle_complete_trip(data)
        elif msg_type == "pricing_preview":
            await self._handle_pricing_preview(data)
        else:
            await self.send_error(f"Unknown message type: {msg_type}", code="unknown_type")

    # ---------------------- Message Handlers ----------------------

    async def _handle_availability(self, data: Dict[str, Any]):
        payload = validate_payload(AvailabilitySerializer, data)
        nearby = await self._set_availability(payload["available"])
        await self.send_success("availability_updated", available=payload["available"])
        if payload["available"]:
            await self.send_success("booking_nearby", bookings=nearby, count=len(nearby))

    async def _handle_location_update(self, data: Dict[str, Any]):
        payload = validate_payload(DriverLocationSerializer, data)
        await self._update_location(payload["latitude"], payload["longitude"], payload.get("bearing"))

    async def _handle_accept(self, data: Dict[str, Any]):
        payload = validate_payload(BookingActionSerializer, data)
        booking = await self._accept(payload["booking_id"])
        await self._join_group(booking_group(booking["id"]))
        await self.send_success("booking_accept_ok", booking=booking)

    async def _handle_cancel(self, data: Dict[str, Any]):
        payload = validate_payload(BookingCancelSerializer, data)
        booking = await self._cancel(payload["booking_id"], payload.get("reason", ""))
        await self._leave_group(booking_group(booking["id"]))
        await self.send_success("booking_cancel_ok", booking=booking)

    async def _handle_start_trip(self, data: Dict[str, Any]):
        payload = validate_payload(StartTripSerializer, data)
        booking = await self._start(payload["booking_id"], payload.get("start_location"))
        await self.send_success("trip_start_ok", booking=booking)

    async def _handle_trip_location(self, data: Dict[str, Any]):
        payload = validate_payload(TripLocationSerializer, data)
        await self._record_location(payload["booking_id"], payload["location"])

    async def _handle_complete_trip(self, data: Dict[str, Any]):
        payload = validate_payload(CompleteTripSerializer, data)
        result = await self._complete(payload)
        await self._leave_group(booking_group(payload["booking_id"]))
        await self.send_success("trip_complete_ok", **result)

    async def _handle_pricing_preview(self, data: Dict[str, Any]):
        payload = validate_payload(TripLocationSerializer, data)
        pricing = await self._preview(payload["booking_id"], payload["location"])
        await self.send_success("pricing_preview", **pricing)

    # ---------------------- Event Handlers (from group_send) ----------------------

    async def booking_offer(self, event):
        """Sent by server to a driver to offer a booking."""
        await self.forward_event(event)

    async def booking_broadcast(self, event):
        """Fallback offer sent to every connected driver."""
        await self.forward_event(event)

    async def booking_unavailable(self, event):
        """Booking was taken or canceled; drop it from the offer list."""
        await self.forward_event(event)

    # ---------------------- Database Helpers ----------------------

    @database_sync_to_async
    def _set_availability(self, available: bool):
        try:
            profile = DriverProfile.objects.get(user_id=self.user_id)
        except DriverProfile.DoesNotExist:
            raise NotFoundError("Driver profile not found")

        update_driver_availability(profile, self.channel_name, available)
        if not available:
            return []

        offered = dispatch_open_bookings_to_driver(self.user)
        return [{"booking_id": booking.id, **offer_payload(booking)} for booking in offered]

    @database_sync_to_async
    def _update_location(self, lat: float, lon: float, bearing=None):
        try:
            profile = DriverProfile.objects.get(user_id=self.user_id)
        except DriverProfile.DoesNotExist:
            raise NotFoundError("Driver profile not found")
        update_driver_location(profile, lat, lon, bearing)

    @database_sync_to_async
    def _accept(self, booking_id: int):
        result = accept_booking(self.user, booking_id)
        return BookingSerializer(result.booking).data

    @database_sync_to_async
    def _cancel(self, booking_id: int, reason: str):
        result = cancel_booking_by_driver(self.user, booking_id, reason)
        return BookingSerializer(result.booking).data

    @database_sync_to_async
    def _start(self, booking_id: int, start_location):
        result = start_trip(self.user, booking_id, start_location)
        return BookingSerializer(result.booking).data

    @database_sync_to_async
    def _record_location(self, booking_id: int, location):
        record_location(self.user, booking_id, location["latitude"], location["longitude"])

    @database_sync_to_async
    def _complete(self, payload):
        result = complete_trip(
            self.user,
            payload["booking_id"],
            end_location=payload.get("end_location"),
            surge_multiplier=payload.get("surge_multiplier") or 1.0,
            discount=payload.get("discount", 0),
            debit_passenger_wallet=payload.get("debit_passenger_wallet", False),
        )
        return {**(result.extra or {}), "booking": BookingSerializer(result.booking).data}

    @database_sync_to_async
    def _preview(self, booking_id: int, location):
        return preview_pricing(self.user, booking_id, location["latitude"], location["longitude"]).as_payload()
