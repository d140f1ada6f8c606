"""Realtime consumers for WebSocket communication."""

from .base import BaseConsumer
from .booking_consumer import BookingConsumer
from .driver_consumer import DriverConsumer
from .passenger_consumer import PassengerConsumer

__all__ = [
    "BaseConsumer",
    "BookingConsumer",
    "DriverConsumer",
    "PassengerConsumer",
]
