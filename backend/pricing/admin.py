from django.contrib import admin

from .models import PricingRule


@admin.register(PricingRule)
class PricingRuleAdmin(admin.ModelAdmin):
    list_display = (
        "vehicle_type", "base_fare", "per_km", "per_minute",
        "minimum_fare", "maximum_fare", "surge_multiplier", "is_active", "updated_at",
    )
    list_filter = ("vehicle_type", "is_active")
    readonly_fields = ("created_at", "updated_at")
