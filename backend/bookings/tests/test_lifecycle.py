from unittest.mock import patch

from rest_framework.test import APIRequestFactory, force_authenticate

from bookings.models import Booking, BookingAssignment, TripHistory
from bookings.views import accept_booking_view, cancel_booking, create_booking_request
from services.booking_management import (
	accept_booking,
	cancel_booking_by_driver,
	cancel_booking_by_passenger,
	create_booking,
	start_trip,
)
from services.matching import dispatch_open_bookings_to_driver
from services.exceptions import (
	ConcurrencyConflictError,
	ForbiddenError,
	InvalidTransitionError,
	NotFoundError,
	PricingNotFoundError,
)
from .base import MarketplaceTestCase, PICKUP, DROPOFF


class AcceptBookingTests(MarketplaceTestCase):
	def setUp(self):
		super().setUp()
		self.driver_one = self.make_driver('driver_one')
		self.driver_two = self.make_driver('driver_two', 9.0200, 38.7535)
		self.booking = create_booking(self.passenger, 'sedan', PICKUP, DROPOFF).booking

	def test_only_first_driver_wins(self):
		result = accept_booking(self.driver_one, self.booking.id)
		self.assertEqual(result.booking.status, Booking.STATUS_ACCEPTED)
		self.assertEqual(result.booking.driver_id, self.driver_one.id)

		with self.assertRaises(ConcurrencyConflictError):
			accept_booking(self.driver_two, self.booking.id)

		self.booking.refresh_from_db()
		self.assertEqual(self.booking.driver_id, self.driver_one.id)
		self.assertEqual(
			BookingAssignment.objects.filter(booking=self.booking, status=BookingAssignment.STATUS_ACCEPTED).count(),
			1
		)
		loser = BookingAssignment.objects.get(booking=self.booking, driver=self.driver_two)
		self.assertEqual(loser.status, BookingAssignment.STATUS_CANCELED)
		self.assertEqual(self.registry.dispatched_drivers(self.booking.id), set())

	def test_losing_drivers_are_told_booking_is_gone(self):
		driver_three = self.make_driver('driver_three', 9.0190, 38.7520)
		dispatch_open_bookings_to_driver(driver_three, self.registry)

		with patch('services.booking_management.booking_lifecycle.notify_driver_event') as mock_notify:
			accept_booking(self.driver_one, self.booking.id)

		sent = [(c.args[0], c.args[2]) for c in mock_notify.call_args_list]
		self.assertIn(('booking_accepted', self.driver_one.id), sent)
		unavailable = [driver_id for event, driver_id in sent if event == 'booking_unavailable']
		self.assertCountEqual(unavailable, [self.driver_two.id, driver_three.id])
		self.assertEqual(
			BookingAssignment.objects.filter(booking=self.booking, status=BookingAssignment.STATUS_CANCELED).count(),
			2
		)

	def test_stale_object_cannot_overwrite_winner(self):
		stale = Booking.objects.get(pk=self.booking.pk)
		accept_booking(self.driver_one, self.booking.id)

		with patch('services.booking_management.booking_lifecycle._get_booking', return_value=stale):
			with self.assertRaises(ConcurrencyConflictError):
				accept_booking(self.driver_two, self.booking.id)

		self.booking.refresh_from_db()
		self.assertEqual(self.booking.driver_id, self.driver_one.id)

	def test_canceled_booking_cannot_be_accepted(self):
		cancel_booking_by_passenger(self.passenger, self.booking.id)
		with self.assertRaises(InvalidTransitionError):
			accept_booking(self.driver_one, self.booking.id)

	def test_only_drivers_accept(self):
		with self.assertRaises(ForbiddenError):
			accept_booking(self.passenger, self.booking.id)

	def test_unknown_booking(self):
		with self.assertRaises(NotFoundError):
			accept_booking(self.driver_one, 999999)

	def test_busy_driver_cannot_accept_another(self):
		accept_booking(self.driver_one, self.booking.id)
		other_passenger = type(self.passenger).objects.create_user(
			username='other', password='pass1234', role='passenger'
		)
		other = create_booking(other_passenger, 'sedan', PICKUP, DROPOFF).booking

		with self.assertRaises(InvalidTransitionError):
			accept_booking(self.driver_one, other.id)

	def test_accept_view_maps_conflict_to_409(self):
		factory = APIRequestFactory()
		accept_booking(self.driver_one, self.booking.id)

		request = factory.post('/api/bookings/%d/accept/' % self.booking.id)
		force_authenticate(request, user=self.driver_two)
		response = accept_booking_view(request, booking_id=self.booking.id)

		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['code'], 'conflict')


class CancelBookingTests(MarketplaceTestCase):
	def setUp(self):
		super().setUp()
		self.driver = self.make_driver('driver')
		self.booking = create_booking(self.passenger, 'sedan', PICKUP, DROPOFF).booking

	def test_passenger_cancels_requested_booking(self):
		result = cancel_booking_by_passenger(self.passenger, self.booking.id, 'changed plans')

		self.assertEqual(result.booking.status, Booking.STATUS_CANCELED)
		self.assertEqual(result.booking.canceled_by, 'passenger')
		self.assertEqual(result.booking.canceled_reason, 'changed plans')
		self.assertFalse(
			BookingAssignment.objects.filter(booking=self.booking)
			.exclude(status=BookingAssignment.STATUS_CANCELED).exists()
		)
		self.assertFalse(self.registry.was_dispatched(self.booking.id, self.driver.id))

	def test_driver_cancels_accepted_booking(self):
		accept_booking(self.driver, self.booking.id)
		result = cancel_booking_by_driver(self.driver, self.booking.id)

		self.assertEqual(result.booking.status, Booking.STATUS_CANCELED)
		self.assertIsNone(result.booking.driver_id)
		self.assertEqual(result.booking.canceled_by, 'driver')
		self.assertTrue(result.extra['was_assigned'])

	def test_driver_cannot_cancel_unassigned_booking(self):
		with self.assertRaises(ForbiddenError):
			cancel_booking_by_driver(self.driver, self.booking.id)

	def test_other_passenger_cannot_cancel(self):
		stranger = type(self.passenger).objects.create_user(username='stranger', password='x', role='passenger')
		with self.assertRaises(ForbiddenError):
			cancel_booking_by_passenger(stranger, self.booking.id)

	def test_ongoing_booking_cannot_be_canceled(self):
		accept_booking(self.driver, self.booking.id)
		start_trip(self.driver, self.booking.id)
		with self.assertRaises(InvalidTransitionError):
			cancel_booking_by_passenger(self.passenger, self.booking.id)

	def test_cancel_view_returns_booking(self):
		factory = APIRequestFactory()
		request = factory.post('/api/bookings/%d/cancel/' % self.booking.id, {'reason': 'late'}, format='json')
		force_authenticate(request, user=self.passenger)
		response = cancel_booking(request, booking_id=self.booking.id)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['booking']['status'], 'canceled')


class CreateAndStartTests(MarketplaceTestCase):
	def test_passenger_has_one_active_booking(self):
		create_booking(self.passenger, 'sedan', PICKUP, DROPOFF)
		with self.assertRaises(InvalidTransitionError):
			create_booking(self.passenger, 'sedan', PICKUP, DROPOFF)

	def test_unknown_vehicle_type(self):
		with self.assertRaises(PricingNotFoundError):
			create_booking(self.passenger, 'helicopter', PICKUP, DROPOFF)
		self.assertFalse(Booking.objects.exists())

	def test_create_view_validates_payload(self):
		factory = APIRequestFactory()
		request = factory.post('/api/bookings/request/', {
			'vehicle_type': 'sedan',
			'pickup': {'latitude': 123, 'longitude': 38.75},
			'dropoff': DROPOFF,
		}, format='json')
		force_authenticate(request, user=self.passenger)
		response = create_booking_request(request)

		self.assertEqual(response.status_code, 400)
		self.assertIn('pickup', response.data['errors'])

	def test_only_assigned_driver_starts_trip(self):
		driver = self.make_driver('driver')
		other = self.make_driver('other')
		booking = create_booking(self.passenger, 'sedan', PICKUP, DROPOFF).booking
		accept_booking(driver, booking.id)

		with self.assertRaises(ForbiddenError):
			start_trip(other, booking.id)

		result = start_trip(driver, booking.id, {'latitude': 9.0193, 'longitude': 38.7526})
		self.assertEqual(result.booking.status, Booking.STATUS_ONGOING)
		self.assertIsNotNone(result.booking.started_at)
		self.assertEqual(result.booking.start_location['latitude'], 9.0193)
		self.assertTrue(TripHistory.objects.filter(booking=booking, driver=driver).exists())

		with self.assertRaises(InvalidTransitionError):
			start_trip(driver, booking.id)
