from django.urls import path
from .views import (
    DriverProfileView,
    DriverLocationUpdateView,
    NearbyBookingsForDriverView,
)

urlpatterns = [
    path("profile/", DriverProfileView.as_view(), name="driver-profile"),
    path("location/", DriverLocationUpdateView.as_view(), name="driver-location"),
    path("nearby-bookings/", NearbyBookingsForDriverView.as_view(), name="driver-nearby-bookings"),
]
