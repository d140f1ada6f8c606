from django.utils import timezone

from drivers.models import DriverProfile
from realtime.dispatch_registry import get_dispatch_registry


# DRIVER AVAILABILITY
def update_driver_availability(profile: DriverProfile, connection_id: str, available: bool, registry=None):
    """
    Record a driver's availability toggle.

    Runtime availability is tracked per connection in the dispatch registry;
    the profile only keeps the last reported value.
    """
    registry = registry or get_dispatch_registry()
    registry.set_availability(profile.user_id, connection_id, available)

    profile.available = available
    profile.save(update_fields=["available"])
    return profile


# DRIVER LOCATION
def update_driver_location(profile: DriverProfile, lat, lon, bearing=None, registry=None):
    """
    Update driver location. Used by:
    - WebSocket driver location events
    - trip location updates
    """
    registry = registry or get_dispatch_registry()
    registry.set_live_location(profile.user_id, lat, lon, bearing)

    profile.current_latitude = round(float(lat), 6)
    profile.current_longitude = round(float(lon), 6)
    profile.bearing = bearing
    profile.last_location_update = timezone.now()
    profile.save(update_fields=["current_latitude", "current_longitude", "bearing", "last_location_update"])
    return profile
