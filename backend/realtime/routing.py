"""WebSocket URL routing for the realtime app."""

from django.urls import re_path

from .consumers.booking_consumer import BookingConsumer
from .consumers.driver_consumer import DriverConsumer
from .consumers.passenger_consumer import PassengerConsumer

websocket_urlpatterns = [
    # URL: ws://localhost:8000/ws/driver/?token=<jwt>
    re_path(
        r"ws/driver/$",
        DriverConsumer.as_asgi(),
        name="driver-ws"
    ),

    # URL: ws://localhost:8000/ws/passenger/?token=<jwt>
    re_path(
        r"ws/passenger/$",
        PassengerConsumer.as_asgi(),
        name="passenger-ws"
    ),

    # Booking room, shared by the passenger and the assigned driver
    re_path(
        r"ws/booking/$",
        BookingConsumer.as_asgi(),
        name="booking-ws"
    ),
]
