from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase

from accounts.models import User
from drivers.models import DriverProfile
from pricing.models import PricingRule
from realtime.dispatch_registry import DispatchRegistry, set_dispatch_registry
from services.finance import record_settled_transaction

PICKUP = {'latitude': 9.0192, 'longitude': 38.7525, 'address': 'Meskel Square'}
DROPOFF = {'latitude': 9.03, 'longitude': 38.76, 'address': 'Arat Kilo'}


class MarketplaceTestCase(TestCase):
	"""Pricing rule, one passenger and a fresh dispatch registry per test."""

	def setUp(self):
		cache.clear()
		self.registry = DispatchRegistry()
		set_dispatch_registry(self.registry)
		self.addCleanup(set_dispatch_registry, None)

		self.rule = PricingRule.objects.create(
			vehicle_type='sedan',
			base_fare=Decimal('5.00'),
			per_km=Decimal('2.00'),
			minimum_fare=Decimal('10.00'),
		)
		self.passenger = User.objects.create_user(
			username='passenger',
			password='pass1234',
			role='passenger',
			phone_number='9000000000'
		)

	def make_driver(self, username, latitude=9.0195, longitude=38.7530, balance=Decimal('20.00'),
					available=True, vehicle_type='sedan'):
		driver = User.objects.create_user(
			username=username,
			password='driver1234',
			role='driver',
		)
		DriverProfile.objects.create(
			user=driver,
			vehicle_type=vehicle_type,
			vehicle_number=f'AA-{username}',
		)
		if balance:
			record_settled_transaction(driver, 'driver', balance, 'credit', 'gateway')
		if latitude is not None:
			self.registry.set_live_location(driver.id, latitude, longitude)
		if available:
			self.registry.set_availability(driver.id, f'conn-{username}', True)
		return driver
