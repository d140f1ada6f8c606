"""Bookings app configuration."""

from django.apps import AppConfig


class BookingsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'bookings'

    def ready(self):
        from realtime.dispatch_registry import start_registry_sweeper
        start_registry_sweeper()
