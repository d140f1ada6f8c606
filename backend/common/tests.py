import math

from django.test import SimpleTestCase

from common.utils import coordinates, distance_km, haversine_km, path_distance_km, to_money


class DistanceTests(SimpleTestCase):
	def test_distance_is_symmetric(self):
		a = {'latitude': 9.0192, 'longitude': 38.7525}
		b = {'latitude': 9.03, 'longitude': 38.76}
		self.assertAlmostEqual(distance_km(a, b), distance_km(b, a), places=9)

	def test_one_degree_of_latitude(self):
		self.assertAlmostEqual(haversine_km(0, 0, 1, 0), 111.19, delta=0.05)

	def test_same_point_is_zero(self):
		point = {'latitude': 9.0192, 'longitude': 38.7525}
		self.assertEqual(distance_km(point, point), 0.0)

	def test_invalid_point_is_infinitely_far(self):
		self.assertTrue(math.isinf(distance_km({'latitude': 91, 'longitude': 0}, {'latitude': 0, 'longitude': 0})))
		self.assertTrue(math.isinf(distance_km(None, {'latitude': 0, 'longitude': 0})))
		self.assertTrue(math.isinf(distance_km({'latitude': 'abc', 'longitude': 1}, {'latitude': 0, 'longitude': 0})))

	def test_coordinates_accepts_short_keys(self):
		self.assertEqual(coordinates({'lat': '9.5', 'lng': 38}), (9.5, 38.0))
		self.assertIsNone(coordinates({'lat': True, 'lng': 38}))

	def test_path_distance_is_at_least_straight_line(self):
		path = [
			{'latitude': 9.0192, 'longitude': 38.7525},
			{'latitude': 9.0250, 'longitude': 38.7500},
			{'latitude': 9.0300, 'longitude': 38.7600},
		]
		self.assertGreaterEqual(path_distance_km(path), distance_km(path[0], path[-1]))

	def test_path_distance_of_single_point(self):
		self.assertEqual(path_distance_km([{'latitude': 1, 'longitude': 1}]), 0.0)
		self.assertEqual(path_distance_km([]), 0.0)


class MoneyTests(SimpleTestCase):
	def test_rounds_half_up(self):
		self.assertEqual(str(to_money(1.005)), '1.01')
		self.assertEqual(str(to_money('2.345')), '2.35')
