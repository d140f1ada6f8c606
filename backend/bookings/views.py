from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from common.utils.responses import handle_service_errors
from services.booking_management import (
    accept_booking,
    cancel_booking_by_driver,
    cancel_booking_by_passenger,
    complete_trip,
    create_booking,
    handle_passenger_disconnect,
    handle_passenger_reconnect,
    start_trip,
)
from services.booking_management.booking_lifecycle import (
    get_current_driver_booking,
    get_current_passenger_booking,
)
from services.exceptions import ForbiddenError
from services.trips import record_location
from .models import TripHistory
from .serializers import (
    BookingCancelSerializer,
    BookingRequestSerializer,
    BookingSerializer,
    CompleteTripSerializer,
    LocationSerializer,
    TripHistorySerializer,
    validate_payload,
)


def _require_role(user, role):
    if getattr(user, 'role', None) != role:
        raise ForbiddenError(f'Only {role}s can use this endpoint')


def _booking_response(result, status_code=status.HTTP_200_OK):
    return Response({
        'success': result.success,
        'booking': BookingSerializer(result.booking).data,
        'message': result.message,
        **(result.extra or {}),
    }, status=status_code)


# ==================== Passenger Booking APIs ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated])
@handle_service_errors
def create_booking_request(request):
    """Create a booking and offer it to nearby drivers."""
    _require_role(request.user, 'passenger')
    payload = validate_payload(BookingRequestSerializer, request.data)
    result = create_booking(request.user, payload['vehicle_type'], payload['pickup'], payload['dropoff'])
    return _booking_response(result, status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def get_current_booking(request):
    """
    Get the caller's current active booking (POLLING ENDPOINT)

    Passengers see requested/accepted/ongoing bookings, drivers their
    accepted/ongoing one.
    """
    if request.user.role == 'driver':
        booking = get_current_driver_booking(request.user)
    else:
        booking = get_current_passenger_booking(request.user)

    if not booking:
        return Response({
            'has_active_booking': False,
            'message': 'No active booking found'
        })

    return Response({
        'has_active_booking': True,
        'booking': BookingSerializer(booking).data,
        'status': booking.status,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@handle_service_errors
def cancel_booking(request, booking_id):
    _require_role(request.user, 'passenger')
    payload = validate_payload(BookingCancelSerializer, {**request.data, 'booking_id': booking_id})
    result = cancel_booking_by_passenger(request.user, booking_id, payload.get('reason', ''))
    return _booking_response(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@handle_service_errors
def passenger_disconnect(request, booking_id):
    """Start the auto-cancel countdown for an accepted booking."""
    _require_role(request.user, 'passenger')
    return _booking_response(handle_passenger_disconnect(request.user, booking_id))


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@handle_service_errors
def passenger_reconnect(request, booking_id):
    _require_role(request.user, 'passenger')
    return _booking_response(handle_passenger_reconnect(request.user, booking_id))


# ==================== Driver Booking APIs ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated])
@handle_service_errors
def accept_booking_view(request, booking_id):
    """Accept an offered booking. Only the first driver to accept wins."""
    result = accept_booking(request.user, booking_id)
    return _booking_response(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@handle_service_errors
def driver_cancel_booking(request, booking_id):
    _require_role(request.user, 'driver')
    payload = validate_payload(BookingCancelSerializer, {**request.data, 'booking_id': booking_id})
    result = cancel_booking_by_driver(request.user, booking_id, payload.get('reason', ''))
    return _booking_response(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@handle_service_errors
def start_trip_view(request, booking_id):
    _require_role(request.user, 'driver')
    start_location = None
    if request.data.get('start_location') is not None:
        start_location = validate_payload(LocationSerializer, request.data['start_location'])
    result = start_trip(request.user, booking_id, start_location)
    return _booking_response(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@handle_service_errors
def trip_location(request, booking_id):
    """Record a driver position and return the live fare."""
    _require_role(request.user, 'driver')
    location = validate_payload(LocationSerializer, request.data)
    live = record_location(request.user, booking_id, location['latitude'], location['longitude'])
    return Response(live.as_payload())


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@handle_service_errors
def complete_trip_view(request, booking_id):
    _require_role(request.user, 'driver')
    payload = validate_payload(CompleteTripSerializer, {**request.data, 'booking_id': booking_id})
    result = complete_trip(
        request.user,
        booking_id,
        end_location=payload.get('end_location'),
        surge_multiplier=payload.get('surge_multiplier', 1),
        discount=payload.get('discount', 0),
        debit_passenger_wallet=payload.get('debit_passenger_wallet', False),
    )
    return _booking_response(result)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def trip_history(request):
    """Completed trips of the caller, newest first."""
    if request.user.role == 'driver':
        trips = TripHistory.objects.filter(driver=request.user)
    else:
        trips = TripHistory.objects.filter(passenger=request.user)
    trips = trips.order_by('-completed_at').prefetch_related('points')[:50]
    return Response({
        'count': len(trips),
        'trips': TripHistorySerializer(trips, many=True).data,
    })
