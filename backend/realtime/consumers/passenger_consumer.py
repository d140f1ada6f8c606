"""Passenger WebSocket consumer for booking requests and disconnect handling."""

import logging
from typing import Dict, Any

from channels.db import database_sync_to_async

from .base import BaseConsumer
from bookings.serializers import (
    BookingActionSerializer,
    BookingCancelSerializer,
    BookingRequestSerializer,
    BookingSerializer,
    validate_payload,
)
from realtime.dispatch_registry import get_dispatch_registry
from realtime.notifications import booking_group
from services.booking_management import (
    cancel_booking_by_passenger,
    create_booking,
    handle_passenger_disconnect,
    handle_passenger_reconnect,
)
from services.booking_management.disconnect import (
    disconnect_accepted_bookings,
    reconnect_accepted_bookings,
)

logger = logging.getLogger(__name__)


class PassengerConsumer(BaseConsumer):
    """
    WebSocket consumer for passengers.

    Handles:
        - Requesting and canceling bookings
        - Explicit disconnect / reconnect signals for a booking
        - Arming auto-cancel timers when the socket drops while a
          driver is on the way, and clearing them on reconnect
    """

    async def on_connect(self):
        """Set up passenger-specific connection."""
        if self.role != "passenger":
            await self.send_error("This endpoint is for passengers only", code="forbidden")
            await self.close()
            return

        get_dispatch_registry().register_passenger_connection(self.user_id, self.channel_name)
        cleared = await self._reconnect_all()
        if cleared:
            logger.info("Passenger %s reconnected, cleared %d disconnect timer(s)", self.user_id, cleared)

        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "role": self.role,
            "message": "Passenger connected successfully",
        })

    async def on_disconnect(self, close_code):
        if self.role != "passenger":
            return
        remaining = get_dispatch_registry().unregister_passenger_connection(self.user_id, self.channel_name)
        if remaining:
            logger.info("Passenger %s still has %d open connection(s)", self.user_id, remaining)
            return
        armed = await self._disconnect_all()
        logger.info("Passenger %s disconnected, armed %d disconnect timer(s)", self.user_id, armed)

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        """Handle passenger-specific messages."""

        if msg_type == "request_booking":
            await self._handle_request_booking(data)
        elif msg_type == "cancel_booking":
            await self._handle_cancel_booking(data)
        elif msg_type == "booking_disconnect":
            await self._handle_booking_disconnect(data)
        elif msg_type == "booking_reconnect":
            await self._handle_booking_reconnect(data)
        else:
            await self.send_error(f"Unknown message type: {msg_type}", code="unknown_type")

    # ---------------------- Message Handlers ----------------------

    async def _handle_request_booking(self, data: Dict[str, Any]):
        payload = validate_payload(BookingRequestSerializer, data)
        result = await self._create(payload)
        # Follow the booking room from the start so status changes arrive here
        await self._join_group(booking_group(result["booking"]["id"]))
        await self.send_success("booking_request_ok", **result)

    async def _handle_cancel_booking(self, data: Dict[str, Any]):
        payload = validate_payload(BookingCancelSerializer, data)
        booking = await self._cancel(payload["booking_id"], payload.get("reason", ""))
        await self._leave_group(booking_group(booking["id"]))
        await self.send_success("booking_cancel_ok", booking=booking)

    async def _handle_booking_disconnect(self, data: Dict[str, Any]):
        payload = validate_payload(BookingActionSerializer, data)
        result = await self._disconnect(payload["booking_id"])
        await self.send_success("booking_disconnect_ok", **result)

    async def _handle_booking_reconnect(self, data: Dict[str, Any]):
        payload = validate_payload(BookingActionSerializer, data)
        result = await self._reconnect(payload["booking_id"])
        await self._join_group(booking_group(payload["booking_id"]))
        await self.send_success("booking_reconnect_ok", **result)

    # ---------------------- Database Helpers ----------------------

    @database_sync_to_async
    def _create(self, payload):
        result = create_booking(
            self.user,
            payload["vehicle_type"],
            payload["pickup"],
            payload["dropoff"],
        )
        return {
            "booking": BookingSerializer(result.booking).data,
            "message": result.message,
            **(result.extra or {}),
        }

    @database_sync_to_async
    def _cancel(self, booking_id: int, reason: str):
        result = cancel_booking_by_passenger(self.user, booking_id, reason)
        return BookingSerializer(result.booking).data

    @database_sync_to_async
    def _disconnect(self, booking_id: int):
        result = handle_passenger_disconnect(self.user, booking_id)
        return {"booking_id": booking_id, "message": result.message, **(result.extra or {})}

    @database_sync_to_async
    def _reconnect(self, booking_id: int):
        result = handle_passenger_reconnect(self.user, booking_id)
        return {"booking_id": booking_id, "message": result.message, **(result.extra or {})}

    @database_sync_to_async
    def _disconnect_all(self) -> int:
        return disconnect_accepted_bookings(self.user)

    @database_sync_to_async
    def _reconnect_all(self) -> int:
        return reconnect_accepted_bookings(self.user)
