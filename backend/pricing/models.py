from decimal import Decimal

from django.db import models


class PricingRule(models.Model):
    """Fare parameters for one vehicle type.

    Several rules may exist per vehicle type; the most recently updated
    active one is used for quoting.
    """

    vehicle_type = models.CharField(max_length=30, db_index=True)

    base_fare = models.DecimalField(max_digits=10, decimal_places=2)
    per_km = models.DecimalField(max_digits=10, decimal_places=2)
    per_minute = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0'))
    waiting_per_minute = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0'))
    minimum_fare = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0'))
    maximum_fare = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    surge_multiplier = models.DecimalField(max_digits=4, decimal_places=2, default=Decimal('1.00'))

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'pricing_rules'
        ordering = ['-updated_at']

    def __str__(self):
        return f"{self.vehicle_type} pricing #{self.id} ({'active' if self.is_active else 'inactive'})"
