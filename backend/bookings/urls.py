from django.urls import path
from . import views

app_name = 'bookings'

urlpatterns = [
    # Passenger APIs
    path('request/', views.create_booking_request, name='create-booking'),
    path('current/', views.get_current_booking, name='current-booking'),
    path('history/', views.trip_history, name='trip-history'),
    path('<int:booking_id>/cancel/', views.cancel_booking, name='cancel-booking'),
    path('<int:booking_id>/disconnect/', views.passenger_disconnect, name='passenger-disconnect'),
    path('<int:booking_id>/reconnect/', views.passenger_reconnect, name='passenger-reconnect'),

    # Driver APIs
    path('<int:booking_id>/accept/', views.accept_booking_view, name='accept-booking'),
    path('<int:booking_id>/driver-cancel/', views.driver_cancel_booking, name='driver-cancel-booking'),
    path('<int:booking_id>/start/', views.start_trip_view, name='start-trip'),
    path('<int:booking_id>/location/', views.trip_location, name='trip-location'),
    path('<int:booking_id>/complete/', views.complete_trip_view, name='complete-trip'),
]
