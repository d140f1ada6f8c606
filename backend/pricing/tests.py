from decimal import Decimal
from unittest.mock import patch

from django.test import TestCase, override_settings

from services.exceptions import PricingNotFoundError, ValidationError
from services.pricing import (
	PricingSnapshot,
	SurgeQuote,
	calculate_fare,
	demand_multiplier,
	get_active_pricing,
	quote_fare,
	surge_for_pickup,
	surge_tier,
)
from .models import PricingRule


class FareCalculationTests(TestCase):
	def setUp(self):
		self.pricing = PricingSnapshot(
			vehicle_type='sedan',
			base_fare=5.0,
			per_km=2.0,
			per_minute=0.5,
			minimum_fare=10.0,
		)

	def test_minimum_fare_applies_to_short_trips(self):
		fare = calculate_fare(0.5, 0, self.pricing)
		self.assertEqual(fare.total, 10.0)

	def test_fare_grows_with_distance_and_time(self):
		shorter = calculate_fare(4, 5, self.pricing).total
		longer = calculate_fare(6, 5, self.pricing).total
		slower = calculate_fare(6, 10, self.pricing).total
		self.assertLess(shorter, longer)
		self.assertLess(longer, slower)

	def test_breakdown_components(self):
		fare = calculate_fare(10, 4, self.pricing)
		self.assertEqual(fare.base, 5.0)
		self.assertEqual(fare.distance_cost, 20.0)
		self.assertEqual(fare.time_cost, 2.0)
		self.assertEqual(fare.total, 27.0)

	def test_surge_multiplies_before_discount(self):
		fare = calculate_fare(10, 0, self.pricing, surge_override=1.5, discount=5)
		self.assertAlmostEqual(fare.total, 25 * 1.5 - 5)

	def test_discount_never_makes_fare_negative(self):
		fare = calculate_fare(1, 0, self.pricing, discount=100)
		self.assertEqual(fare.total, 0.0)

	def test_maximum_fare_caps_total(self):
		capped = PricingSnapshot(vehicle_type='sedan', base_fare=5, per_km=2, maximum_fare=30)
		self.assertEqual(calculate_fare(100, 0, capped).total, 30.0)

	def test_rejects_negative_inputs(self):
		with self.assertRaises(ValidationError):
			calculate_fare(-1, 0, self.pricing)
		with self.assertRaises(ValidationError):
			calculate_fare(1, -3, self.pricing)
		with self.assertRaises(ValidationError):
			calculate_fare(1, 0, self.pricing, surge_override=0.5)


class ActivePricingTests(TestCase):
	def test_missing_rule_raises(self):
		with self.assertRaises(PricingNotFoundError):
			get_active_pricing('bajaj')

	def test_inactive_rules_are_ignored(self):
		PricingRule.objects.create(vehicle_type='sedan', base_fare=Decimal('50'), per_km=Decimal('9'), is_active=False)
		active = PricingRule.objects.create(vehicle_type='sedan', base_fare=Decimal('5'), per_km=Decimal('2'))

		snapshot = get_active_pricing('sedan')
		self.assertEqual(snapshot.base_fare, float(active.base_fare))
		self.assertEqual(snapshot.surge_multiplier, 1.0)

	def test_quote_uses_rule_surge_by_default(self):
		PricingRule.objects.create(
			vehicle_type='sedan', base_fare=Decimal('10'), per_km=Decimal('1'),
			surge_multiplier=Decimal('2.00'),
		)
		self.assertEqual(quote_fare('sedan', 10).total, 40.0)
		self.assertEqual(quote_fare('sedan', 10, surge_override=1).total, 20.0)


class SurgeTests(TestCase):
	def test_demand_tiers(self):
		self.assertEqual(demand_multiplier(3, 5), 1.0)
		self.assertEqual(demand_multiplier(3, 2), 1.25)
		self.assertEqual(demand_multiplier(5, 2), 2.0)
		self.assertEqual(demand_multiplier(10, 2), 2.5)
		self.assertEqual(demand_multiplier(0, 0), 1.0)
		self.assertEqual(demand_multiplier(4, 0), 2.5)

	def test_tier_names(self):
		self.assertEqual(surge_tier(1.0), 'normal')
		self.assertEqual(surge_tier(1.4), 'medium')
		self.assertEqual(surge_tier(2.0), 'high')

	def test_disabled_surge_defers_to_rule(self):
		self.assertIsNone(surge_for_pickup(9.0192, 38.7525, 'sedan'))

	@override_settings(SURGE_ENABLED=True)
	def test_enabled_surge_with_no_demand(self):
		self.assertEqual(surge_for_pickup(9.0192, 38.7525, 'sedan'), 1.0)

	@override_settings(SURGE_ENABLED=True)
	def test_enabled_surge_scales_rule_multiplier(self):
		quote = SurgeQuote(multiplier=2.0, tier='high', open_bookings=4, available_drivers=2)
		with patch('services.pricing.surge.compute_surge', return_value=quote):
			self.assertEqual(surge_for_pickup(9.0192, 38.7525, 'sedan', base=1.5), 3.0)
			self.assertEqual(surge_for_pickup(9.0192, 38.7525, 'sedan'), 2.0)
