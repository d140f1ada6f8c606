from django.db import models
from django.conf import settings


def _point(latitude, longitude, address=None):
    if latitude is None or longitude is None:
        return None
    point = {"latitude": float(latitude), "longitude": float(longitude)}
    if address is not None:
        point["address"] = address
    return point


class Booking(models.Model):
    """A passenger's trip request and everything priced or settled for it."""

    STATUS_REQUESTED = 'requested'
    STATUS_ACCEPTED = 'accepted'
    STATUS_ONGOING = 'ongoing'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELED = 'canceled'

    STATUS_CHOICES = [
        (STATUS_REQUESTED, 'Requested'),
        (STATUS_ACCEPTED, 'Accepted'),
        (STATUS_ONGOING, 'Ongoing'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELED, 'Canceled'),
    ]

    ACTIVE_STATUSES = (STATUS_REQUESTED, STATUS_ACCEPTED, STATUS_ONGOING)
    CANCELABLE_STATUSES = (STATUS_REQUESTED, STATUS_ACCEPTED)

    CANCELED_BY_CHOICES = [
        ('passenger', 'Passenger'),
        ('driver', 'Driver'),
        ('system', 'System'),
    ]

    passenger = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='bookings'
    )
    driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='assigned_bookings'
    )

    vehicle_type = models.CharField(max_length=30, blank=True, default='')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_REQUESTED, db_index=True)

    # Locations
    pickup_latitude = models.DecimalField(max_digits=9, decimal_places=6)
    pickup_longitude = models.DecimalField(max_digits=9, decimal_places=6)
    pickup_address = models.TextField(blank=True, default='')

    dropoff_latitude = models.DecimalField(max_digits=9, decimal_places=6)
    dropoff_longitude = models.DecimalField(max_digits=9, decimal_places=6)
    dropoff_address = models.TextField(blank=True, default='')

    start_latitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    start_longitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    start_address = models.TextField(null=True, blank=True)

    end_latitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    end_longitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    end_address = models.TextField(null=True, blank=True)

    # Pricing & settlement
    distance_km = models.FloatField(default=0)
    fare_estimated = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    fare_final = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    fare_breakdown = models.JSONField(default=dict, blank=True)
    waiting_time = models.PositiveIntegerField(default=0)
    commission_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    driver_earnings = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    canceled_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    canceled_by = models.CharField(max_length=10, choices=CANCELED_BY_CHOICES, null=True, blank=True)
    canceled_reason = models.TextField(null=True, blank=True)

    class Meta:
        db_table = 'bookings'
        ordering = ['-created_at']

    def __str__(self):
        return f"Booking #{self.id} - {self.passenger_id} - {self.status}"

    @property
    def pickup(self):
        return _point(self.pickup_latitude, self.pickup_longitude, self.pickup_address)

    @property
    def dropoff(self):
        return _point(self.dropoff_latitude, self.dropoff_longitude, self.dropoff_address)

    @property
    def start_location(self):
        return _point(self.start_latitude, self.start_longitude, self.start_address)

    @property
    def end_location(self):
        return _point(self.end_latitude, self.end_longitude, self.end_address)

    @property
    def quoted_fare(self) -> float:
        """Final fare once settled, otherwise the estimate."""
        if self.fare_final is not None:
            return float(self.fare_final)
        return float(self.fare_estimated or 0)


class BookingAssignment(models.Model):
    """One driver's offer for a booking and what became of it."""

    STATUS_OFFERED = 'offered'
    STATUS_ACCEPTED = 'accepted'
    STATUS_CANCELED = 'canceled'

    STATUS_CHOICES = [
        (STATUS_OFFERED, 'Offered'),
        (STATUS_ACCEPTED, 'Accepted'),
        (STATUS_CANCELED, 'Canceled'),
    ]

    booking = models.ForeignKey(
        Booking,
        on_delete=models.CASCADE,
        related_name='assignments'
    )
    driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='booking_assignments',
        limit_choices_to={'role': 'driver'}
    )
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_OFFERED)

    offered_at = models.DateTimeField(auto_now_add=True)
    responded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'booking_assignments'
        ordering = ['offered_at', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['booking', 'driver'],
                name='unique_booking_driver'
            ),
            models.UniqueConstraint(
                fields=['booking'],
                condition=models.Q(status='accepted'),
                name='one_accepted_assignment_per_booking'
            ),
        ]

    def __str__(self):
        return f"Assignment #{self.id} - Booking {self.booking_id} -> Driver {self.driver_id} ({self.status})"


class TripHistory(models.Model):
    """Per-booking trip record: created at start, finalized at completion."""

    booking = models.OneToOneField(Booking, on_delete=models.CASCADE, related_name='trip')
    driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='driven_trips'
    )
    passenger = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='passenger_trips'
    )
    vehicle_type = models.CharField(max_length=30, blank=True, default='')

    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    fare = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    distance_km = models.FloatField(null=True, blank=True)
    waiting_time = models.PositiveIntegerField(null=True, blank=True)
    commission = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    net_income = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)

    dropoff_latitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    dropoff_longitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    dropoff_address = models.TextField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'trip_histories'
        ordering = ['-created_at']

    def __str__(self):
        return f"Trip for booking {self.booking_id}"

    def path(self):
        """Recorded points as dicts, in arrival order."""
        return [
            {"latitude": lat, "longitude": lon}
            for lat, lon in self.points.order_by('id').values_list('latitude', 'longitude')
        ]


class TripPoint(models.Model):
    """A location the driver reported while the trip was ongoing. Append-only."""

    trip = models.ForeignKey(TripHistory, on_delete=models.CASCADE, related_name='points')
    latitude = models.FloatField()
    longitude = models.FloatField()
    recorded_at = models.DateTimeField()

    class Meta:
        db_table = 'trip_points'
        ordering = ['id']
