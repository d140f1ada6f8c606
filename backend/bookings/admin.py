"""Tells what to show in the Django admin interface for bookings app"""

from django.contrib import admin
from .models import Booking, BookingAssignment, TripHistory, TripPoint


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    """Booking admin"""
    list_display = ['id', 'passenger', 'driver', 'vehicle_type', 'status', 'fare_estimated', 'fare_final', 'created_at']
    list_filter = ['status', 'vehicle_type', 'created_at']
    search_fields = ['passenger__username', 'driver__username', 'pickup_address', 'dropoff_address']
    readonly_fields = ['created_at', 'accepted_at', 'started_at', 'completed_at', 'canceled_at', 'updated_at']
    date_hierarchy = 'created_at'


@admin.register(BookingAssignment)
class BookingAssignmentAdmin(admin.ModelAdmin):
    list_display = ("booking", "driver", "status", "offered_at", "responded_at")
    list_filter = ("status",)
    search_fields = ("booking__id", "driver__username")


class TripPointInline(admin.TabularInline):
    model = TripPoint
    extra = 0
    readonly_fields = ("latitude", "longitude", "recorded_at")


@admin.register(TripHistory)
class TripHistoryAdmin(admin.ModelAdmin):
    list_display = ("booking", "driver", "passenger", "fare", "distance_km", "started_at", "completed_at")
    search_fields = ("booking__id", "driver__username", "passenger__username")
    inlines = [TripPointInline]
