from decimal import Decimal

from django.test import override_settings

from bookings.models import Booking, BookingAssignment
from services.booking_management import create_booking
from services.matching import dispatch_booking, dispatch_open_bookings_to_driver, find_candidate_drivers
from .base import MarketplaceTestCase, PICKUP, DROPOFF


class CandidateSelectionTests(MarketplaceTestCase):
	def setUp(self):
		super().setUp()
		self.booking = Booking.objects.create(
			passenger=self.passenger,
			vehicle_type='sedan',
			pickup_latitude=PICKUP['latitude'],
			pickup_longitude=PICKUP['longitude'],
			dropoff_latitude=DROPOFF['latitude'],
			dropoff_longitude=DROPOFF['longitude'],
			distance_km=1.46,
			fare_estimated=Decimal('10.00'),
		)

	def test_closest_eligible_drivers_first(self):
		far = self.make_driver('far', 9.0300, 38.7525)
		near = self.make_driver('near', 9.0193, 38.7526)

		candidates = find_candidate_drivers(self.booking, self.registry)
		self.assertEqual([c.driver_id for c in candidates], [near.id, far.id])
		self.assertLess(candidates[0].distance_km, candidates[1].distance_km)

	def test_filters_out_ineligible_drivers(self):
		eligible = self.make_driver('eligible')
		self.make_driver('outside', 9.2, 38.9)
		self.make_driver('bajaj', vehicle_type='bajaj')
		self.make_driver('broke', balance=Decimal('1.00'))
		self.make_driver('offline', available=False)
		self.make_driver('nowhere', latitude=None)

		candidates = find_candidate_drivers(self.booking, self.registry)
		self.assertEqual([c.driver_id for c in candidates], [eligible.id])

	def test_persisted_location_is_used_without_live_one(self):
		driver = self.make_driver('persisted', latitude=None)
		profile = driver.driver_profile
		profile.current_latitude = Decimal('9.019300')
		profile.current_longitude = Decimal('38.752600')
		profile.save()

		candidates = find_candidate_drivers(self.booking, self.registry)
		self.assertEqual([c.driver_id for c in candidates], [driver.id])

	@override_settings(DISPATCH_MAX_DRIVERS=1)
	def test_candidate_cap(self):
		self.make_driver('one')
		self.make_driver('two', 9.0200, 38.7530)
		self.assertEqual(len(find_candidate_drivers(self.booking, self.registry)), 1)

	def test_offers_are_not_repeated(self):
		driver = self.make_driver('driver')

		first = dispatch_booking(self.booking, self.registry)
		second = dispatch_booking(self.booking, self.registry)

		self.assertEqual(first.driver_ids, [driver.id])
		self.assertEqual(second.sent, 0)
		self.assertTrue(self.registry.was_dispatched(self.booking.id, driver.id))
		self.assertEqual(
			BookingAssignment.objects.get(booking=self.booking, driver=driver).status,
			BookingAssignment.STATUS_OFFERED,
		)


class CreateBookingDispatchTests(MarketplaceTestCase):
	def test_booking_is_quoted_and_offered(self):
		driver = self.make_driver('driver')

		result = create_booking(self.passenger, 'sedan', PICKUP, DROPOFF)

		booking = result.booking
		self.assertEqual(booking.status, Booking.STATUS_REQUESTED)
		self.assertEqual(booking.fare_estimated, Decimal('10.00'))
		self.assertAlmostEqual(booking.distance_km, 1.456, delta=0.01)
		self.assertEqual(result.extra['drivers_notified'], 1)
		self.assertTrue(BookingAssignment.objects.filter(booking=booking, driver=driver).exists())

	@override_settings(SURGE_ENABLED=True)
	def test_enabled_surge_quotes_rule_multiplier_times_demand(self):
		self.make_driver('driver')
		self.rule.surge_multiplier = Decimal('1.50')
		self.rule.save()

		booking = create_booking(self.passenger, 'sedan', PICKUP, DROPOFF).booking

		self.assertEqual(booking.fare_breakdown['surge_multiplier'], 1.5)
		self.assertGreater(booking.fare_estimated, Decimal('11.00'))

	def test_no_drivers_nearby(self):
		result = create_booking(self.passenger, 'sedan', PICKUP, DROPOFF)
		self.assertEqual(result.extra['drivers_notified'], 0)
		self.assertEqual(result.booking.status, Booking.STATUS_REQUESTED)
		self.assertIn('No available drivers', result.message)

	def test_driver_turning_available_gets_open_bookings(self):
		booking = create_booking(self.passenger, 'sedan', PICKUP, DROPOFF).booking
		late = self.make_driver('late', available=False)
		self.registry.set_availability(late.id, 'conn-late', True)

		offered = dispatch_open_bookings_to_driver(late, self.registry)
		self.assertEqual([b.id for b in offered], [booking.id])

		# Second toggle does not repeat the offer
		self.assertEqual(dispatch_open_bookings_to_driver(late, self.registry), [])
