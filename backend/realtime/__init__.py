"""
Realtime app for WebSocket communication and in-process dispatch state.

Key Components:
    - dispatch_registry.py: dedup of offers, live driver locations, availability
    - consumers/: WebSocket consumers (driver, passenger, booking room)
    - notifications.py: booking event fan-out helpers
    - middleware.py: JWT/Cookie authentication for WebSocket connections

Usage:
    from realtime.dispatch_registry import get_dispatch_registry
    from realtime.notifications import notify_driver_event, notify_passenger_event
"""
