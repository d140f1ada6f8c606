from decimal import Decimal
from unittest.mock import patch

from asgiref.sync import async_to_sync
from channels.testing import WebsocketCommunicator
from django.contrib.auth.models import AnonymousUser
from django.core.cache import cache
from django.test import SimpleTestCase, TransactionTestCase

from accounts.models import User
from bookings.models import Booking
from bookings.tasks import auto_cancel_disconnected_booking_task
from drivers.models import DriverProfile
from pricing.models import PricingRule
from services.finance import record_settled_transaction
from .consumers import BookingConsumer, DriverConsumer, PassengerConsumer
from .dispatch_registry import DispatchRegistry, get_dispatch_registry, set_dispatch_registry
from .notifications import booking_group, broadcast_to_drivers, driver_group, notify_booking_room, user_group


class FakeClock:
	def __init__(self):
		self.now = 1000.0

	def __call__(self):
		return self.now


class DispatchRegistryTests(SimpleTestCase):
	def setUp(self):
		self.clock = FakeClock()
		self.registry = DispatchRegistry(dispatch_ttl_seconds=60, clock=self.clock)

	def test_dispatch_mark_expires_after_ttl(self):
		self.registry.mark_dispatched(1, 7)
		self.assertTrue(self.registry.was_dispatched(1, 7))
		self.assertTrue(self.registry.was_dispatched('1', '7'))

		self.clock.now += 59
		self.assertTrue(self.registry.was_dispatched(1, 7))

		self.clock.now += 1
		self.assertFalse(self.registry.was_dispatched(1, 7))

	def test_first_mark_is_kept(self):
		self.registry.mark_dispatched(1, 7)
		self.clock.now += 30
		self.registry.mark_dispatched(1, 7)
		self.clock.now += 30
		self.assertFalse(self.registry.was_dispatched(1, 7))

	def test_sweep_and_clear(self):
		self.registry.mark_dispatched(1, 7)
		self.registry.mark_dispatched(1, 8)
		self.registry.mark_dispatched(2, 7)
		self.assertEqual(self.registry.dispatched_drivers(1), {'7', '8'})

		self.assertEqual(self.registry.clear_booking(1), 2)
		self.assertFalse(self.registry.was_dispatched(1, 8))

		self.clock.now += 120
		self.assertEqual(self.registry.sweep_expired(), 1)

	def test_availability_is_per_connection(self):
		self.registry.set_availability(7, 'conn-a', True)
		self.registry.set_availability(7, 'conn-b', True)
		self.registry.set_availability(7, 'conn-a', False)
		self.assertTrue(self.registry.is_available(7))

		self.registry.unregister_connection(7, 'conn-b')
		self.assertFalse(self.registry.is_available(7))
		self.assertEqual(self.registry.connection_count(7), 0)

	def test_passenger_connections_are_counted(self):
		self.assertEqual(self.registry.register_passenger_connection(3, 'web'), 1)
		self.assertEqual(self.registry.register_passenger_connection(3, 'app'), 2)

		self.assertEqual(self.registry.unregister_passenger_connection(3, 'web'), 1)
		self.assertEqual(self.registry.unregister_passenger_connection(3, 'app'), 0)
		self.assertEqual(self.registry.unregister_passenger_connection(3, 'app'), 0)
		self.assertEqual(self.registry.passenger_connection_count(3), 0)

	def test_live_location_latest_wins(self):
		self.registry.set_live_location(7, 9.01, 38.75)
		self.registry.set_live_location(7, '9.02', '38.76', bearing=90)
		self.registry.set_live_location(7, 'north', 38.77)

		location = self.registry.get_live_location(7)
		self.assertEqual((location.latitude, location.longitude, location.bearing), (9.02, 38.76, 90.0))
		self.assertIsNone(self.registry.get_live_location(8))

	def test_process_registry_can_be_replaced(self):
		set_dispatch_registry(self.registry)
		try:
			self.assertIs(get_dispatch_registry(), self.registry)
		finally:
			set_dispatch_registry(None)
		self.assertIsNot(get_dispatch_registry(), self.registry)


class NotificationTests(SimpleTestCase):
	def test_group_names(self):
		self.assertEqual(driver_group(3), 'driver_3')
		self.assertEqual(user_group(4), 'user_4')
		self.assertEqual(booking_group(5), 'booking_5')

	@patch('realtime.notifications.get_channel_layer', return_value=None)
	def test_missing_channel_layer_reports_failure(self, mock_layer):
		self.assertFalse(broadcast_to_drivers('booking_broadcast', {'booking_id': 1}))

	def test_send_failures_are_swallowed(self):
		with patch('realtime.notifications.async_to_sync', side_effect=RuntimeError('layer down')):
			self.assertFalse(notify_booking_room('booking_status', 1, {'status': 'accepted'}))


class ConsumerTests(TransactionTestCase):
	"""Drive the consumers through an in-memory channel layer."""

	def setUp(self):
		self.registry = DispatchRegistry()
		set_dispatch_registry(self.registry)
		self.addCleanup(set_dispatch_registry, None)

		PricingRule.objects.create(vehicle_type='sedan', base_fare=Decimal('5'), per_km=Decimal('2'), minimum_fare=Decimal('10'))
		self.passenger = User.objects.create_user(username='passenger', password='pass1234', role='passenger')
		self.driver = User.objects.create_user(username='driver', password='driver1234', role='driver')
		DriverProfile.objects.create(user=self.driver, vehicle_type='sedan', vehicle_number='AA-1001')
		record_settled_transaction(self.driver, 'driver', Decimal('20.00'), 'credit', 'gateway')

	def _communicator(self, consumer, path, user):
		communicator = WebsocketCommunicator(consumer.as_asgi(), path)
		communicator.scope['user'] = user
		return communicator

	async def _receive_type(self, communicator, event_type, attempts=10):
		for _ in range(attempts):
			message = await communicator.receive_json_from(timeout=2)
			if message['type'] == event_type:
				return message
		self.fail(f'{event_type} never arrived')

	def test_request_booking_reaches_driver(self):
		async def scenario():
			driver_ws = self._communicator(DriverConsumer, '/ws/driver/', self.driver)
			passenger_ws = self._communicator(PassengerConsumer, '/ws/passenger/', self.passenger)
			connected, _ = await driver_ws.connect()
			self.assertTrue(connected)
			await self._receive_type(driver_ws, 'connection_established')

			await driver_ws.send_json_to({'type': 'location_update', 'latitude': 9.0195, 'longitude': 38.7530})
			await driver_ws.send_json_to({'type': 'set_availability', 'available': True})
			nearby = await self._receive_type(driver_ws, 'booking_nearby')
			self.assertEqual(nearby['count'], 0)

			await passenger_ws.connect()
			await self._receive_type(passenger_ws, 'connection_established')
			await passenger_ws.send_json_to({
				'type': 'request_booking',
				'vehicle_type': 'sedan',
				'pickup': {'latitude': 9.0192, 'longitude': 38.7525},
				'dropoff': {'latitude': 9.03, 'longitude': 38.76},
			})
			created = await self._receive_type(passenger_ws, 'booking_request_ok')
			self.assertEqual(created['drivers_notified'], 1)

			offer = await self._receive_type(driver_ws, 'booking_offer')
			self.assertEqual(offer['booking_id'], created['booking']['id'])

			await driver_ws.send_json_to({'type': 'accept_booking', 'booking_id': offer['booking_id']})
			accepted = await self._receive_type(passenger_ws, 'booking_accepted')
			self.assertEqual(accepted['booking']['driver']['id'], self.driver.id)

			await driver_ws.disconnect()
			await passenger_ws.disconnect()

		with patch.object(auto_cancel_disconnected_booking_task, 'apply_async'):
			async_to_sync(scenario)()

	def test_invalid_payload_returns_error_frame(self):
		async def scenario():
			ws = self._communicator(PassengerConsumer, '/ws/passenger/', self.passenger)
			await ws.connect()
			await self._receive_type(ws, 'connection_established')

			await ws.send_json_to({'type': 'request_booking', 'vehicle_type': 'sedan'})
			error = await self._receive_type(ws, 'error')
			self.assertEqual(error['code'], 'validation_error')
			self.assertEqual(error['source'], 'request_booking')
			self.assertIn('pickup', error['errors'])

			await ws.send_json_to({'type': 'fly'})
			error = await self._receive_type(ws, 'error')
			self.assertEqual(error['code'], 'unknown_type')
			await ws.disconnect()

		async_to_sync(scenario)()

	def test_booking_room_requires_participant(self):
		async def scenario():
			ws = self._communicator(BookingConsumer, '/ws/booking/', self.driver)
			await ws.connect()
			await self._receive_type(ws, 'connection_established')

			await ws.send_json_to({'type': 'join_booking', 'booking_id': booking_id})
			error = await self._receive_type(ws, 'error')
			self.assertEqual(error['code'], 'forbidden')
			await ws.disconnect()

		booking_id = Booking.objects.create(
			passenger=self.passenger, vehicle_type='sedan',
			pickup_latitude=9.0192, pickup_longitude=38.7525,
			dropoff_latitude=9.03, dropoff_longitude=38.76,
		).id
		async_to_sync(scenario)()

	def test_disconnect_timer_waits_for_last_passenger_socket(self):
		async def scenario():
			app_ws = self._communicator(PassengerConsumer, '/ws/passenger/', self.passenger)
			web_ws = self._communicator(PassengerConsumer, '/ws/passenger/', self.passenger)
			await app_ws.connect()
			await self._receive_type(app_ws, 'connection_established')
			await web_ws.connect()
			await self._receive_type(web_ws, 'connection_established')

			await app_ws.disconnect()
			self.assertFalse(mock_schedule.called)
			self.assertEqual(self.registry.passenger_connection_count(self.passenger.id), 1)

			await web_ws.disconnect()
			self.assertEqual(mock_schedule.call_count, 1)

		cache.clear()
		Booking.objects.create(
			passenger=self.passenger, driver=self.driver, vehicle_type='sedan',
			status=Booking.STATUS_ACCEPTED,
			pickup_latitude=9.0192, pickup_longitude=38.7525,
			dropoff_latitude=9.03, dropoff_longitude=38.76,
		)
		with patch.object(auto_cancel_disconnected_booking_task, 'apply_async') as mock_schedule:
			async_to_sync(scenario)()

	def test_anonymous_connection_is_closed(self):
		async def scenario():
			ws = self._communicator(DriverConsumer, '/ws/driver/', AnonymousUser())
			connected, _ = await ws.connect()
			self.assertFalse(connected)

		async_to_sync(scenario)()
