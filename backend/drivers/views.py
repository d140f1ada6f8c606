from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from bookings.models import Booking
from common.utils import distance_km, round2
from drivers.models import DriverProfile
from drivers.serializers import DriverProfileSerializer, LocationUpdateSerializer
from realtime.dispatch_registry import get_dispatch_registry
from services.matching.offer_builder import dispatch_radius_km, driver_position
from services.matching.offer_dispatch import offer_payload

from drivers import services


# Utility: Ensure request.user is a driver
def require_driver(user):
    if user.role != "driver":
        return False, Response({"error": "Only drivers allowed", "code": "forbidden"}, status=403)
    try:
        profile = user.driver_profile
        return True, profile
    except DriverProfile.DoesNotExist:
        return False, Response({"error": "Driver profile not found", "code": "not_found"}, status=404)


class DriverProfileView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile  # Response object

        data = DriverProfileSerializer(profile).data
        data["online"] = get_dispatch_registry().is_available(profile.user_id)
        return Response(data)

    def patch(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile

        serializer = DriverProfileSerializer(profile, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(serializer.data, status=200)


# Availability is per WebSocket connection; only location has an HTTP fallback.
class DriverLocationUpdateView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile

        live = get_dispatch_registry().get_live_location(profile.user_id)
        if live is not None:
            return Response({**live.as_dict(), "source": "live"})
        return Response({
            **(profile.last_known_location or {"latitude": None, "longitude": None}),
            "updated_at": profile.last_location_update,
            "source": "profile",
        })

    def post(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile

        serializer = LocationUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        services.update_driver_location(profile, data["latitude"], data["longitude"], data.get("bearing"))

        return Response({
            "message": "Location updated",
            "latitude": data["latitude"],
            "longitude": data["longitude"],
        })


class NearbyBookingsForDriverView(APIView):
    """Open bookings around the driver's position, closest first. Read only."""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile

        position = driver_position(profile, get_dispatch_registry())
        if position is None:
            return Response({
                "bookings": [],
                "count": 0,
                "message": "Share your location to see nearby bookings."
            })

        radius = dispatch_radius_km()
        open_bookings = Booking.objects.filter(
            status=Booking.STATUS_REQUESTED,
            driver__isnull=True,
            vehicle_type=profile.vehicle_type,
        )
        nearby = []
        for booking in open_bookings:
            distance = distance_km(position, booking.pickup)
            if distance <= radius:
                nearby.append({"booking_id": booking.id, **offer_payload(booking, distance)})
        nearby.sort(key=lambda item: item["distance_to_pickup_km"])

        return Response({
            "bookings": nearby,
            "count": len(nearby),
            "radius_km": round2(radius),
        })
