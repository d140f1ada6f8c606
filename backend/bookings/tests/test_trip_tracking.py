from decimal import Decimal
from unittest.mock import patch

from accounts.models import User
from bookings.models import Booking, TripPoint
from common.utils import distance_km
from services.booking_management import accept_booking, complete_trip, create_booking, start_trip
from services.exceptions import InvalidTransitionError, ValidationError
from services.finance import get_balance, ledger_balance
from services.trips import preview_pricing, record_location
from wallets.models import AdminEarnings, DriverEarnings, Transaction
from .base import MarketplaceTestCase, PICKUP, DROPOFF


class TripTrackingTests(MarketplaceTestCase):
	def setUp(self):
		super().setUp()
		self.platform = User.objects.create_user(username='platform', password='x', role='admin')
		self.driver = self.make_driver('driver')
		self.booking = create_booking(self.passenger, 'sedan', PICKUP, DROPOFF).booking
		accept_booking(self.driver, self.booking.id)

	def _start(self):
		start_trip(self.driver, self.booking.id, PICKUP)

	def test_accepted_phase_location_is_preview_only(self):
		live = record_location(self.driver, self.booking.id, 9.0250, 38.7525)

		self.assertFalse(TripPoint.objects.exists())
		self.assertAlmostEqual(live.distance_traveled, distance_km(PICKUP, {'latitude': 9.0250, 'longitude': 38.7525}))
		self.assertEqual(self.registry.get_live_location(self.driver.id).latitude, 9.0250)

	def test_ongoing_locations_build_the_path(self):
		self._start()
		record_location(self.driver, self.booking.id, 9.0192, 38.7525)
		record_location(self.driver, self.booking.id, 9.0300, 38.7525)
		live = record_location(self.driver, self.booking.id, 9.0300, 38.7600)

		self.assertEqual(TripPoint.objects.filter(trip__booking=self.booking).count(), 3)
		self.assertAlmostEqual(live.distance_traveled, 2.02, delta=0.02)
		self.assertEqual(live.fare.total, 10.0)

	def test_each_point_pushes_pricing_update(self):
		self._start()
		path = [(9.0192, 38.7525), (9.0300, 38.7525), (9.0300, 38.7600)]
		with patch('services.trips.trip_tracker.notify_booking_room') as mock_room:
			for latitude, longitude in path:
				record_location(self.driver, self.booking.id, latitude, longitude)

		updates = [c.args for c in mock_room.call_args_list if c.args[0] == 'pricing_update']
		self.assertEqual(len(updates), 3)
		self.assertTrue(all(booking_id == self.booking.id for _, booking_id, _ in updates))
		distances = [payload['distance_traveled'] for _, _, payload in updates]
		self.assertEqual(distances[0], 0.0)
		self.assertLess(distances[0], distances[1])
		self.assertLess(distances[1], distances[2])
		self.assertEqual(updates[-1][2]['current_fare'], 10.0)

	def test_pricing_preview_does_not_record(self):
		self._start()
		record_location(self.driver, self.booking.id, 9.0192, 38.7525)
		live = preview_pricing(self.driver, self.booking.id, 9.0500, 38.7525)

		self.assertEqual(TripPoint.objects.count(), 1)
		self.assertGreater(live.fare.total, 10.0)

	def test_invalid_location(self):
		self._start()
		with self.assertRaises(ValidationError):
			record_location(self.driver, self.booking.id, 95, 38.75)

	def test_completion_uses_path_distance(self):
		self._start()
		path = [(9.0192, 38.7525), (9.0300, 38.7525), (9.0300, 38.7600)]
		for latitude, longitude in path:
			record_location(self.driver, self.booking.id, latitude, longitude)

		result = complete_trip(self.driver, self.booking.id)
		booking = result.booking

		straight = distance_km(PICKUP, {'latitude': 9.03, 'longitude': 38.76})
		self.assertEqual(booking.status, Booking.STATUS_COMPLETED)
		self.assertGreaterEqual(booking.distance_km, straight)
		self.assertEqual(booking.trip.distance_km, booking.distance_km)
		self.assertEqual(len(booking.trip.path()), 3)
		self.assertEqual(float(booking.end_latitude), 9.03)

	def test_completion_without_path_uses_start_and_end(self):
		self._start()
		end = {'latitude': 9.0800, 'longitude': 38.7525, 'address': 'Piassa'}
		result = complete_trip(self.driver, self.booking.id, end_location=end)

		expected = distance_km(PICKUP, end)
		self.assertAlmostEqual(result.booking.distance_km, expected, places=6)
		self.assertAlmostEqual(result.extra['amount'], 5 + 2 * expected, delta=0.01)
		self.assertEqual(result.booking.end_address, 'Piassa')

	def test_settlement_moves_commission_once(self):
		self._start()
		result = complete_trip(self.driver, self.booking.id, surge_multiplier=1.0)

		self.assertEqual(result.booking.fare_final, Decimal('10.00'))
		self.assertEqual(result.booking.commission_amount, Decimal('1.50'))
		self.assertEqual(result.booking.driver_earnings, Decimal('8.50'))
		self.assertEqual(get_balance(self.driver.id, 'driver'), Decimal('18.50'))
		self.assertEqual(get_balance(self.platform.id, 'admin'), Decimal('1.50'))
		self.assertEqual(ledger_balance(self.driver.id, 'driver'), Decimal('18.50'))

		with self.assertRaises(InvalidTransitionError):
			complete_trip(self.driver, self.booking.id)

		self.assertEqual(get_balance(self.driver.id, 'driver'), Decimal('18.50'))
		self.assertEqual(Transaction.objects.filter(booking=self.booking, method='commission').count(), 2)
		self.assertEqual(DriverEarnings.objects.filter(booking=self.booking).count(), 1)
		self.assertEqual(AdminEarnings.objects.get(booking=self.booking).commission_earned, Decimal('1.50'))

	def test_surge_and_discount_at_completion(self):
		self._start()
		end = {'latitude': 9.0800, 'longitude': 38.7525}
		result = complete_trip(self.driver, self.booking.id, end_location=end, surge_multiplier=2, discount=3)

		expected = (5 + 2 * distance_km(PICKUP, end)) * 2 - 3
		self.assertAlmostEqual(float(result.booking.fare_final), expected, delta=0.01)
		self.assertEqual(result.booking.fare_breakdown['surge_multiplier'], 2.0)

	def test_completion_surge_defaults_to_one(self):
		self.rule.surge_multiplier = Decimal('1.50')
		self.rule.save()
		self._start()
		end = {'latitude': 9.0800, 'longitude': 38.7525}
		result = complete_trip(self.driver, self.booking.id, end_location=end)

		expected = 5 + 2 * distance_km(PICKUP, end)
		self.assertEqual(result.booking.fare_breakdown['surge_multiplier'], 1.0)
		self.assertAlmostEqual(float(result.booking.fare_final), expected, delta=0.01)
		self.assertAlmostEqual(float(result.booking.commission_amount), expected * 0.15, delta=0.01)

	def test_passenger_wallet_debit_is_optional(self):
		self._start()
		complete_trip(self.driver, self.booking.id, debit_passenger_wallet=True)

		fare = Transaction.objects.get(booking=self.booking, method='fare')
		self.assertEqual(fare.user_id, self.passenger.id)
		self.assertEqual(fare.amount, Decimal('10.00'))
		self.assertEqual(get_balance(self.passenger.id, 'passenger'), Decimal('-10.00'))

	def test_cannot_track_completed_trip(self):
		self._start()
		complete_trip(self.driver, self.booking.id)
		with self.assertRaises(InvalidTransitionError):
			record_location(self.driver, self.booking.id, 9.03, 38.76)

	def test_cannot_complete_before_start(self):
		with self.assertRaises(InvalidTransitionError):
			complete_trip(self.driver, self.booking.id)
