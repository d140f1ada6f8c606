from django.db import models
from django.utils import timezone
from django.conf import settings

User = settings.AUTH_USER_MODEL


class DriverProfile(models.Model):
    """Driver vehicle details and last persisted position.

    ``available`` is only the last value the driver reported. Dispatch reads
    runtime availability from the dispatch registry, which tracks it per open
    connection.
    """

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='driver_profile')

    vehicle_type = models.CharField(max_length=30, db_index=True)
    vehicle_number = models.CharField(max_length=20, unique=True)

    available = models.BooleanField(default=False)
    current_latitude = models.DecimalField(max_digits=10, decimal_places=6, null=True, blank=True)
    current_longitude = models.DecimalField(max_digits=10, decimal_places=6, null=True, blank=True)
    bearing = models.FloatField(null=True, blank=True)
    last_location_update = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'driver_profiles'

    def __str__(self):
        return f"{self.user.username} - {self.vehicle_number}"

    @property
    def last_known_location(self):
        if self.current_latitude is None or self.current_longitude is None:
            return None
        return {
            "latitude": float(self.current_latitude),
            "longitude": float(self.current_longitude),
        }
