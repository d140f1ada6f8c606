from decimal import Decimal

from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from bookings.models import Booking, BookingAssignment
from bookings.views import (
	accept_booking_view,
	complete_trip_view,
	create_booking_request,
	get_current_booking,
	start_trip_view,
	trip_history,
	trip_location,
)
from services.finance import get_balance
from .base import MarketplaceTestCase, PICKUP, DROPOFF


class BookingFlowTests(MarketplaceTestCase):
	"""Request, accept, ride and settle through the HTTP endpoints."""

	def setUp(self):
		super().setUp()
		self.factory = APIRequestFactory()
		self.platform = User.objects.create_user(username='platform', password='x', role='admin')
		self.driver = self.make_driver('driver', balance=Decimal('1.50'))
		self.near_driver = self.make_driver('near_driver', 9.0200, 38.7535)
		self.far_driver = self.make_driver('far_driver', 9.2, 38.9)

	def _post(self, view, user, path, data=None, **kwargs):
		request = self.factory.post(path, data or {}, format='json')
		force_authenticate(request, user=user)
		return view(request, **kwargs)

	def _get(self, view, user, path):
		request = self.factory.get(path)
		force_authenticate(request, user=user)
		return view(request)

	def test_full_trip(self):
		response = self._post(create_booking_request, self.passenger, '/api/bookings/request/', {
			'vehicle_type': 'sedan',
			'pickup': PICKUP,
			'dropoff': DROPOFF,
		})
		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['drivers_notified'], 2)
		self.assertEqual(response.data['booking']['fare_estimated'], 10.0)
		booking_id = response.data['booking']['id']

		self.assertTrue(BookingAssignment.objects.filter(booking_id=booking_id, driver=self.driver).exists())
		self.assertFalse(BookingAssignment.objects.filter(booking_id=booking_id, driver=self.far_driver).exists())

		response = self._post(accept_booking_view, self.driver, '/accept/', booking_id=booking_id)
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['booking']['status'], 'accepted')
		competing = BookingAssignment.objects.get(booking_id=booking_id, driver=self.near_driver)
		self.assertEqual(competing.status, BookingAssignment.STATUS_CANCELED)
		response = self._post(accept_booking_view, self.near_driver, '/accept/', booking_id=booking_id)
		self.assertEqual(response.status_code, 409)

		current = self._get(get_current_booking, self.passenger, '/api/bookings/current/')
		self.assertTrue(current.data['has_active_booking'])
		self.assertEqual(current.data['booking']['driver']['id'], self.driver.id)

		response = self._post(start_trip_view, self.driver, '/start/', {'start_location': PICKUP}, booking_id=booking_id)
		self.assertEqual(response.data['booking']['status'], 'ongoing')

		response = self._post(trip_location, self.driver, '/location/', DROPOFF, booking_id=booking_id)
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['current_fare'], 10.0)

		response = self._post(complete_trip_view, self.driver, '/complete/', {'end_location': DROPOFF}, booking_id=booking_id)
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['amount'], 10.0)
		self.assertEqual(response.data['commission'], 1.5)
		self.assertEqual(response.data['driver_earnings'], 8.5)

		booking = Booking.objects.get(pk=booking_id)
		self.assertEqual(booking.status, Booking.STATUS_COMPLETED)
		self.assertEqual(booking.fare_final, Decimal('10.00'))
		self.assertEqual(get_balance(self.driver.id, 'driver'), Decimal('0.00'))
		self.assertEqual(get_balance(self.platform.id, 'admin'), Decimal('1.50'))

		history = self._get(trip_history, self.driver, '/api/bookings/history/')
		self.assertEqual(history.data['count'], 1)
		self.assertEqual(history.data['trips'][0]['fare'], 10.0)

		response = self._post(complete_trip_view, self.driver, '/complete/', booking_id=booking_id)
		self.assertEqual(response.status_code, 409)

	def test_driver_without_balance_is_not_offered(self):
		poor = self.make_driver('poor', balance=Decimal('1.00'))
		response = self._post(create_booking_request, self.passenger, '/api/bookings/request/', {
			'vehicle_type': 'sedan',
			'pickup': PICKUP,
			'dropoff': DROPOFF,
		})
		booking_id = response.data['booking']['id']
		self.assertFalse(BookingAssignment.objects.filter(booking_id=booking_id, driver=poor).exists())

	def test_driver_cannot_request_booking(self):
		response = self._post(create_booking_request, self.driver, '/api/bookings/request/', {
			'vehicle_type': 'sedan',
			'pickup': PICKUP,
			'dropoff': DROPOFF,
		})
		self.assertEqual(response.status_code, 403)
