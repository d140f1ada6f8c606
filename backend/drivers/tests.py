from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from bookings.models import Booking
from realtime.dispatch_registry import DispatchRegistry, set_dispatch_registry
from .models import DriverProfile
from .services import update_driver_availability, update_driver_location
from .views import DriverLocationUpdateView, DriverProfileView, NearbyBookingsForDriverView


class DriverServiceTests(TestCase):
	def setUp(self):
		self.registry = DispatchRegistry()
		set_dispatch_registry(self.registry)
		self.addCleanup(set_dispatch_registry, None)
		self.factory = APIRequestFactory()

		self.driver = User.objects.create_user(username='driver', password='driver1234', role='driver')
		self.profile = DriverProfile.objects.create(user=self.driver, vehicle_type='sedan', vehicle_number='AA-1001')
		self.passenger = User.objects.create_user(username='passenger', password='pass1234', role='passenger')

	def test_availability_tracks_registry_and_profile(self):
		update_driver_availability(self.profile, 'conn-1', True)
		self.assertTrue(self.registry.is_available(self.driver.id))
		self.assertTrue(DriverProfile.objects.get(pk=self.profile.pk).available)

		update_driver_availability(self.profile, 'conn-1', False)
		self.assertFalse(self.registry.is_available(self.driver.id))

	def test_location_post_updates_live_and_persisted(self):
		request = self.factory.post('/api/driver/location/', {'latitude': 9.02, 'longitude': 38.75, 'bearing': 45}, format='json')
		force_authenticate(request, user=self.driver)
		response = DriverLocationUpdateView.as_view()(request)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(self.registry.get_live_location(self.driver.id).bearing, 45.0)
		self.profile.refresh_from_db()
		self.assertEqual(self.profile.last_known_location, {'latitude': 9.02, 'longitude': 38.75})

	def test_profile_is_driver_only(self):
		request = self.factory.get('/api/driver/profile/')
		force_authenticate(request, user=self.passenger)
		self.assertEqual(DriverProfileView.as_view()(request).status_code, 403)

	def test_nearby_bookings(self):
		update_driver_location(self.profile, 9.0195, 38.7530)
		near = Booking.objects.create(
			passenger=self.passenger, vehicle_type='sedan',
			pickup_latitude=9.0192, pickup_longitude=38.7525,
			dropoff_latitude=9.03, dropoff_longitude=38.76,
		)
		Booking.objects.create(
			passenger=self.passenger, vehicle_type='sedan',
			pickup_latitude=9.5, pickup_longitude=38.7525,
			dropoff_latitude=9.6, dropoff_longitude=38.76,
		)

		request = self.factory.get('/api/driver/nearby-bookings/')
		force_authenticate(request, user=self.driver)
		response = NearbyBookingsForDriverView.as_view()(request)

		self.assertEqual(response.data['count'], 1)
		self.assertEqual(response.data['bookings'][0]['booking_id'], near.id)
