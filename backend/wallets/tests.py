from decimal import Decimal
from io import StringIO
from unittest.mock import MagicMock, patch

import requests
from django.core.management import call_command
from django.test import TestCase, override_settings
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from services.exceptions import InsufficientFundsError, UpstreamServiceError, ValidationError
from services.finance import (
	apply_payment_webhook,
	calculate_commission,
	commission_rate_for,
	get_balance,
	initiate_topup,
	initiate_withdrawal,
	ledger_balance,
	record_settled_transaction,
)
from .models import Commission, Transaction, Wallet
from .views import payment_webhook, withdraw


class WalletTopUpTests(TestCase):
	def setUp(self):
		self.passenger = User.objects.create_user(
			username='passenger',
			password='pass1234',
			role='passenger',
			phone_number='9000000000'
		)
		self.gateway = MagicMock()
		self.gateway.initiate_charge.return_value = {'transaction_id': 'gw-1'}

	def test_topup_stays_pending_until_webhook(self):
		txn = initiate_topup(self.passenger, 'passenger', '25', gateway=self.gateway)

		self.assertEqual(txn.status, Transaction.STATUS_PENDING)
		self.assertEqual(txn.gateway_txn_id, 'gw-1')
		self.assertEqual(get_balance(self.passenger.id, 'passenger'), Decimal('0.00'))
		self.gateway.initiate_charge.assert_called_once_with(
			txn.reference, Decimal('25.00'), phone_number='9000000000', method='gateway'
		)

		result = apply_payment_webhook(txn.reference, 'SUCCESS')
		self.assertTrue(result.applied)
		self.assertEqual(get_balance(self.passenger.id, 'passenger'), Decimal('25.00'))

	def test_duplicate_webhooks_credit_once(self):
		txn = initiate_topup(self.passenger, 'passenger', '25', gateway=self.gateway)

		first = apply_payment_webhook(txn.reference, 'success')
		second = apply_payment_webhook(txn.reference, 'success')
		late_failure = apply_payment_webhook(txn.reference, 'failed')

		self.assertTrue(first.applied)
		self.assertFalse(second.applied)
		self.assertFalse(late_failure.applied)
		self.assertEqual(get_balance(self.passenger.id, 'passenger'), Decimal('25.00'))
		self.assertEqual(Transaction.objects.get(pk=txn.pk).status, Transaction.STATUS_SUCCESS)

	def test_webhook_matches_gateway_id(self):
		txn = initiate_topup(self.passenger, 'passenger', '10', gateway=self.gateway)
		result = apply_payment_webhook('unknown-ref', 'paid', gateway_txn_id='gw-1')
		self.assertEqual(result.transaction.pk, txn.pk)

	def test_failed_webhook_leaves_balance(self):
		txn = initiate_topup(self.passenger, 'passenger', '10', gateway=self.gateway)
		apply_payment_webhook(txn.reference, 'cancelled')
		self.assertEqual(Transaction.objects.get(pk=txn.pk).status, Transaction.STATUS_FAILED)
		self.assertEqual(get_balance(self.passenger.id, 'passenger'), Decimal('0.00'))

	def test_unknown_status_is_rejected(self):
		txn = initiate_topup(self.passenger, 'passenger', '10', gateway=self.gateway)
		with self.assertRaises(ValidationError):
			apply_payment_webhook(txn.reference, 'maybe')

	def test_gateway_error_fails_transaction(self):
		self.gateway.initiate_charge.side_effect = UpstreamServiceError('down')
		with self.assertRaises(UpstreamServiceError):
			initiate_topup(self.passenger, 'passenger', '10', gateway=self.gateway)
		self.assertEqual(Transaction.objects.get().status, Transaction.STATUS_FAILED)

	def test_amount_must_be_positive(self):
		with self.assertRaises(ValidationError):
			initiate_topup(self.passenger, 'passenger', '0', gateway=self.gateway)
		self.assertFalse(Transaction.objects.exists())


class WithdrawalTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.driver = User.objects.create_user(username='driver', password='driver1234', role='driver')
		record_settled_transaction(self.driver, 'driver', Decimal('40.00'), 'credit', 'gateway')
		self.gateway = MagicMock()
		self.gateway.initiate_payout.return_value = {}

	def test_withdrawal_debits_on_success_only(self):
		txn = initiate_withdrawal(self.driver, '30', gateway=self.gateway)
		self.assertEqual(get_balance(self.driver.id, 'driver'), Decimal('40.00'))

		apply_payment_webhook(txn.reference, 'completed')
		self.assertEqual(get_balance(self.driver.id, 'driver'), Decimal('10.00'))
		self.assertEqual(ledger_balance(self.driver.id, 'driver'), Decimal('10.00'))

	def test_insufficient_funds(self):
		with self.assertRaises(InsufficientFundsError):
			initiate_withdrawal(self.driver, '40.01', gateway=self.gateway)
		self.gateway.initiate_payout.assert_not_called()

	@patch('services.finance.payment_gateway.requests.post')
	def test_withdraw_view_reports_unreachable_gateway(self, mock_post):
		mock_post.side_effect = requests.ConnectionError('refused')

		request = self.factory.post('/api/wallets/withdraw/', {'amount': '5.00'}, format='json')
		force_authenticate(request, user=self.driver)
		response = withdraw(request)

		self.assertEqual(response.status_code, 502)
		self.assertEqual(response.data['code'], 'upstream_error')
		self.assertEqual(Transaction.objects.filter(status=Transaction.STATUS_FAILED).count(), 1)

	def test_passengers_cannot_withdraw(self):
		passenger = User.objects.create_user(username='passenger', password='x', role='passenger')
		request = self.factory.post('/api/wallets/withdraw/', {'amount': '5.00'}, format='json')
		force_authenticate(request, user=passenger)
		self.assertEqual(withdraw(request).status_code, 403)


class PaymentWebhookViewTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.user = User.objects.create_user(username='passenger', password='x', role='passenger')
		self.txn = Transaction.objects.create(
			user=self.user, role='passenger', amount=Decimal('12.00'),
			type=Transaction.TYPE_CREDIT, method='gateway',
		)

	def _deliver(self, **headers):
		request = self.factory.post(
			'/api/wallets/webhook/',
			{'reference': self.txn.reference, 'status': 'success', 'transaction_id': 'gw-9'},
			format='json',
			**headers
		)
		return payment_webhook(request)

	def test_repeat_delivery_is_acknowledged(self):
		first = self._deliver()
		second = self._deliver()

		self.assertEqual(first.status_code, 200)
		self.assertTrue(first.data['applied'])
		self.assertEqual(second.status_code, 200)
		self.assertFalse(second.data['applied'])
		self.assertEqual(get_balance(self.user.id, 'passenger'), Decimal('12.00'))

	@override_settings(PAYMENT_WEBHOOK_SECRET='s3cret')
	def test_secret_is_checked(self):
		self.assertEqual(self._deliver().status_code, 403)
		self.assertEqual(self._deliver(HTTP_X_WEBHOOK_SECRET='s3cret').status_code, 200)

	def test_unknown_reference(self):
		request = self.factory.post('/api/wallets/webhook/', {'reference': 'nope', 'status': 'success'}, format='json')
		self.assertEqual(payment_webhook(request).status_code, 404)


class CommissionTests(TestCase):
	def setUp(self):
		self.driver = User.objects.create_user(username='driver', password='x', role='driver')

	def test_default_rate(self):
		self.assertEqual(commission_rate_for(self.driver.id), 15.0)
		self.assertEqual(calculate_commission(10, 15), (1.5, 8.5))

	def test_latest_override_wins(self):
		Commission.objects.create(driver=self.driver, percentage=Decimal('12.00'))
		Commission.objects.create(driver=self.driver, percentage=Decimal('10.00'))
		self.assertEqual(commission_rate_for(self.driver.id), 10.0)


class ReconcileWalletsCommandTests(TestCase):
	def setUp(self):
		self.driver = User.objects.create_user(username='driver', password='x', role='driver')
		record_settled_transaction(self.driver, 'driver', Decimal('20.00'), 'credit', 'gateway')

	def test_reports_and_fixes_drift(self):
		Wallet.objects.filter(user=self.driver, role='driver').update(balance=Decimal('99.00'))

		out = StringIO()
		call_command('reconcile_wallets', stdout=out)
		self.assertIn('disagree', out.getvalue())
		self.assertEqual(get_balance(self.driver.id, 'driver'), Decimal('99.00'))

		call_command('reconcile_wallets', '--fix', stdout=StringIO())
		self.assertEqual(get_balance(self.driver.id, 'driver'), Decimal('20.00'))

	def test_clean_ledger(self):
		out = StringIO()
		call_command('reconcile_wallets', stdout=out)
		self.assertIn('all balances match', out.getvalue())
