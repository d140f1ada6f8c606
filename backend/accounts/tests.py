from django.test import TestCase
from rest_framework.test import APIRequestFactory

from drivers.models import DriverProfile
from .models import User
from .views import LoginView, RegisterView


class RegistrationTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()

	def _register(self, data):
		request = self.factory.post('/api/auth/register/', data, format='json')
		return RegisterView.as_view()(request)

	def test_passenger_registration_returns_tokens(self):
		response = self._register({'username': 'abebe', 'password': 'secret123', 'phone_number': '0911000000'})

		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['user']['role'], 'passenger')
		self.assertIn('access', response.data['tokens'])
		self.assertFalse(DriverProfile.objects.exists())

	def test_driver_registration_creates_profile(self):
		response = self._register({
			'username': 'kebede',
			'password': 'secret123',
			'role': 'driver',
			'vehicle_type': 'sedan',
			'vehicle_number': 'AA-2-12345',
		})

		self.assertEqual(response.status_code, 201)
		profile = DriverProfile.objects.get(user__username='kebede')
		self.assertEqual(profile.vehicle_type, 'sedan')
		self.assertFalse(profile.available)

	def test_driver_needs_vehicle(self):
		response = self._register({'username': 'kebede', 'password': 'secret123', 'role': 'driver'})

		self.assertEqual(response.status_code, 400)
		self.assertIn('vehicle_type', response.data)
		self.assertFalse(User.objects.filter(username='kebede').exists())

	def test_admin_role_cannot_be_self_assigned(self):
		response = self._register({'username': 'root', 'password': 'secret123', 'role': 'admin'})
		self.assertEqual(response.status_code, 400)

	def test_login(self):
		User.objects.create_user(username='abebe', password='secret123')

		request = self.factory.post('/api/auth/login/', {'username': 'abebe', 'password': 'secret123'}, format='json')
		response = LoginView.as_view()(request)
		self.assertEqual(response.status_code, 200)

		request = self.factory.post('/api/auth/login/', {'username': 'abebe', 'password': 'wrong'}, format='json')
		self.assertEqual(LoginView.as_view()(request).status_code, 400)
