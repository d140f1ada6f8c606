from rest_framework import serializers
from drivers.models import DriverProfile
from accounts.serializers import UserSerializer


class DriverProfileSerializer(serializers.ModelSerializer):
    """
    Full driver profile serializer
    """
    user = UserSerializer(read_only=True)

    class Meta:
        model = DriverProfile
        fields = [
            "id",
            "user",
            "vehicle_type",
            "vehicle_number",
            "available",
            "current_latitude",
            "current_longitude",
            "bearing",
            "last_location_update",
        ]
        read_only_fields = ["id", "available", "current_latitude", "current_longitude",
                            "bearing", "last_location_update"]


class LocationUpdateSerializer(serializers.Serializer):
    """
    Serializer for updating driver GPS location.
    """
    latitude = serializers.FloatField(min_value=-90, max_value=90)
    longitude = serializers.FloatField(min_value=-180, max_value=180)
    bearing = serializers.FloatField(required=False, allow_null=True, default=None)
