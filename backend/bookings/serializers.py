from rest_framework import serializers
from django.contrib.auth import get_user_model

from services.exceptions import ValidationError
from .models import Booking, BookingAssignment, TripHistory

User = get_user_model()


class UserBasicSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'username', 'first_name', 'last_name', 'phone_number']


class BookingSerializer(serializers.ModelSerializer):
    """Serializer for bookings as sent to clients"""
    passenger = UserBasicSerializer(read_only=True)
    driver = UserBasicSerializer(read_only=True)
    pickup = serializers.JSONField(read_only=True)
    dropoff = serializers.JSONField(read_only=True)
    start_location = serializers.JSONField(read_only=True)
    end_location = serializers.JSONField(read_only=True)
    fare_estimated = serializers.FloatField(read_only=True)
    fare_final = serializers.FloatField(read_only=True, allow_null=True)
    commission_amount = serializers.FloatField(read_only=True, allow_null=True)
    driver_earnings = serializers.FloatField(read_only=True, allow_null=True)

    class Meta:
        model = Booking
        fields = ['id', 'passenger', 'driver', 'vehicle_type', 'status',
                  'pickup', 'dropoff', 'start_location', 'end_location',
                  'distance_km', 'fare_estimated', 'fare_final', 'fare_breakdown',
                  'waiting_time', 'commission_amount', 'driver_earnings',
                  'created_at', 'accepted_at', 'started_at', 'completed_at',
                  'canceled_at', 'canceled_by', 'canceled_reason']
        read_only_fields = fields


class BookingAssignmentSerializer(serializers.ModelSerializer):
    class Meta:
        model = BookingAssignment
        fields = ['id', 'booking', 'driver', 'status', 'offered_at', 'responded_at']
        read_only_fields = fields


class TripHistorySerializer(serializers.ModelSerializer):
    path = serializers.SerializerMethodField()
    fare = serializers.FloatField(read_only=True, allow_null=True)
    commission = serializers.FloatField(read_only=True, allow_null=True)
    net_income = serializers.FloatField(read_only=True, allow_null=True)

    class Meta:
        model = TripHistory
        fields = ['id', 'booking', 'driver', 'passenger', 'vehicle_type', 'started_at',
                  'completed_at', 'fare', 'distance_km', 'waiting_time', 'commission',
                  'net_income', 'path']
        read_only_fields = fields

    def get_path(self, obj):
        return obj.path()


# ---------------------- Request payloads ----------------------

class LocationSerializer(serializers.Serializer):
    latitude = serializers.FloatField(min_value=-90, max_value=90)
    longitude = serializers.FloatField(min_value=-180, max_value=180)
    address = serializers.CharField(required=False, allow_blank=True, default='')


class BookingRequestSerializer(serializers.Serializer):
    """Passenger booking request"""
    vehicle_type = serializers.CharField(max_length=30)
    pickup = LocationSerializer()
    dropoff = LocationSerializer()


class BookingActionSerializer(serializers.Serializer):
    booking_id = serializers.IntegerField(min_value=1)


class BookingCancelSerializer(BookingActionSerializer):
    """Serializer for booking cancellation"""
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class StartTripSerializer(BookingActionSerializer):
    start_location = LocationSerializer(required=False)


class TripLocationSerializer(BookingActionSerializer):
    location = LocationSerializer()


class CompleteTripSerializer(BookingActionSerializer):
    end_location = LocationSerializer(required=False)
    surge_multiplier = serializers.FloatField(required=False, min_value=1, default=1)
    discount = serializers.FloatField(required=False, min_value=0, default=0)
    debit_passenger_wallet = serializers.BooleanField(required=False, default=False)


class AvailabilitySerializer(serializers.Serializer):
    available = serializers.BooleanField()


class DriverLocationSerializer(serializers.Serializer):
    latitude = serializers.FloatField(min_value=-90, max_value=90)
    longitude = serializers.FloatField(min_value=-180, max_value=180)
    bearing = serializers.FloatField(required=False, allow_null=True, default=None)


def validate_payload(serializer_class, data):
    """Validate an event/request payload or raise the services ValidationError."""
    serializer = serializer_class(data=data)
    if not serializer.is_valid():
        raise ValidationError("Invalid payload", errors=serializer.errors)
    return serializer.validated_data
