"""Booking room WebSocket consumer shared by both parties of a booking."""

import logging
from typing import Dict, Any

from channels.db import database_sync_to_async

from .base import BaseConsumer
from bookings.models import Booking
from bookings.serializers import BookingActionSerializer, validate_payload
from realtime.notifications import booking_group
from services.exceptions import ForbiddenError, NotFoundError

logger = logging.getLogger(__name__)


class BookingConsumer(BaseConsumer):
    """
    WebSocket consumer for following a single booking.

    Used by both drivers and passengers to receive status changes,
    trip positions and live pricing for bookings they take part in.
    """

    async def on_connect(self):
        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "role": self.role,
            "message": "Booking tracking connection established",
        })

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        if msg_type == "join_booking":
            await self._handle_join(data)
        elif msg_type == "leave_booking":
            await self._handle_leave(data)
        else:
            await self.send_error(f"Unknown message type: {msg_type}", code="unknown_type")

    async def _handle_join(self, data: Dict[str, Any]):
        """
        Join booking_<id> after checking the user is the booking's
        passenger or its assigned driver.
        """
        payload = validate_payload(BookingActionSerializer, data)
        booking_id = payload["booking_id"]
        status = await self._validate_participant(booking_id)

        await self._join_group(booking_group(booking_id))
        await self.send_success("booking_joined", booking_id=booking_id, status=status)

    async def _handle_leave(self, data: Dict[str, Any]):
        payload = validate_payload(BookingActionSerializer, data)
        booking_id = payload["booking_id"]
        await self._leave_group(booking_group(booking_id))
        await self.send_success("booking_left", booking_id=booking_id)

    @database_sync_to_async
    def _validate_participant(self, booking_id: int) -> str:
        try:
            booking = Booking.objects.get(id=booking_id)
        except Booking.DoesNotExist:
            raise NotFoundError("Booking not found")
        if self.user_id not in (booking.passenger_id, booking.driver_id):
            raise ForbiddenError("You are not part of this booking")
        return booking.status
