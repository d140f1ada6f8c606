from unittest.mock import patch

from django.test import override_settings

from bookings.models import Booking
from bookings.tasks import auto_cancel_disconnected_booking_task
from services.booking_management import (
	accept_booking,
	create_booking,
	handle_passenger_disconnect,
	handle_passenger_reconnect,
	start_trip,
)
from services.booking_management.disconnect import (
	DISCONNECT_REASON,
	DisconnectTimers,
	disconnect_accepted_bookings,
	expire_disconnected_booking,
	reconnect_accepted_bookings,
)
from services.exceptions import ForbiddenError
from .base import MarketplaceTestCase, PICKUP, DROPOFF


@override_settings(PASSENGER_DISCONNECT_TIMEOUT_SECONDS=60)
class PassengerDisconnectTests(MarketplaceTestCase):
	def setUp(self):
		super().setUp()
		patcher = patch.object(auto_cancel_disconnected_booking_task, 'apply_async')
		self.mock_apply_async = patcher.start()
		self.addCleanup(patcher.stop)

		self.driver = self.make_driver('driver')
		self.booking = create_booking(self.passenger, 'sedan', PICKUP, DROPOFF).booking
		accept_booking(self.driver, self.booking.id)
		self.timers = DisconnectTimers()

	def _scheduled_token(self, call_index=-1):
		args, kwargs = self.mock_apply_async.call_args_list[call_index]
		self.assertEqual(kwargs['countdown'], 60)
		booking_id, token = args[0]
		self.assertEqual(booking_id, self.booking.id)
		return token

	def test_timeout_cancels_booking(self):
		result = handle_passenger_disconnect(self.passenger, self.booking.id)
		self.assertTrue(result.extra['timer_armed'])
		token = self._scheduled_token()

		self.assertTrue(expire_disconnected_booking(self.booking.id, token))

		self.booking.refresh_from_db()
		self.assertEqual(self.booking.status, Booking.STATUS_CANCELED)
		self.assertEqual(self.booking.canceled_by, 'system')
		self.assertEqual(self.booking.canceled_reason, DISCONNECT_REASON)
		self.assertIsNone(self.booking.driver_id)
		self.assertFalse(self.timers.is_pending(self.booking.id))

	def test_reconnect_clears_timer(self):
		handle_passenger_disconnect(self.passenger, self.booking.id)
		token = self._scheduled_token()

		result = handle_passenger_reconnect(self.passenger, self.booking.id)
		self.assertTrue(result.extra['timer_cleared'])

		self.assertFalse(expire_disconnected_booking(self.booking.id, token))
		self.booking.refresh_from_db()
		self.assertEqual(self.booking.status, Booking.STATUS_ACCEPTED)

	def test_rearm_replaces_previous_timer(self):
		handle_passenger_disconnect(self.passenger, self.booking.id)
		first = self._scheduled_token(0)
		handle_passenger_disconnect(self.passenger, self.booking.id)
		second = self._scheduled_token(1)

		self.assertNotEqual(first, second)
		self.assertFalse(expire_disconnected_booking(self.booking.id, first))
		self.assertEqual(Booking.objects.get(pk=self.booking.pk).status, Booking.STATUS_ACCEPTED)
		self.assertTrue(expire_disconnected_booking(self.booking.id, second))

	def test_timer_is_spent_once(self):
		handle_passenger_disconnect(self.passenger, self.booking.id)
		token = self._scheduled_token()
		self.assertTrue(auto_cancel_disconnected_booking_task(self.booking.id, token))
		self.assertFalse(auto_cancel_disconnected_booking_task(self.booking.id, token))

	def test_started_trip_is_not_canceled(self):
		handle_passenger_disconnect(self.passenger, self.booking.id)
		token = self._scheduled_token()
		start_trip(self.driver, self.booking.id)

		self.assertFalse(expire_disconnected_booking(self.booking.id, token))
		self.assertEqual(Booking.objects.get(pk=self.booking.pk).status, Booking.STATUS_ONGOING)

	def test_stale_timer_after_start_finds_nothing_to_cancel(self):
		handle_passenger_disconnect(self.passenger, self.booking.id)
		token = self._scheduled_token()
		Booking.objects.filter(pk=self.booking.pk).update(status=Booking.STATUS_ONGOING)

		self.assertFalse(expire_disconnected_booking(self.booking.id, token))
		self.assertEqual(Booking.objects.get(pk=self.booking.pk).status, Booking.STATUS_ONGOING)

	def test_requested_booking_gets_no_timer(self):
		other_passenger = type(self.passenger).objects.create_user(
			username='other', password='pass1234', role='passenger'
		)
		pending = create_booking(other_passenger, 'sedan', PICKUP, DROPOFF).booking

		result = handle_passenger_disconnect(other_passenger, pending.id)
		self.assertFalse(result.extra['timer_armed'])
		self.assertEqual(self.mock_apply_async.call_count, 0)

	def test_only_own_booking(self):
		with self.assertRaises(ForbiddenError):
			handle_passenger_disconnect(self.driver, self.booking.id)

	def test_socket_drop_arms_every_accepted_booking(self):
		self.assertEqual(disconnect_accepted_bookings(self.passenger), 1)
		self.assertTrue(self.timers.is_pending(self.booking.id))
		self.assertEqual(reconnect_accepted_bookings(self.passenger), 1)
		self.assertFalse(self.timers.is_pending(self.booking.id))
