from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIClient

from wallets import services
from wallets.exceptions import InsufficientBalanceError, WalletInactiveError, WalletNotFoundError
from wallets.models import Wallet, WalletTransaction


class WalletLookupTests(TestCase):
	def test_wallet_is_created_lazily_once_per_owner(self):
		self.assertIsNone(services.get_wallet_by_owner(7, Wallet.OWNER_DRIVER))

		first = services.get_driver_wallet(7)
		second = services.get_driver_wallet(7)

		self.assertEqual(first.id, second.id)
		self.assertEqual(first.available_balance, Decimal('0.00'))
		self.assertEqual(Wallet.objects.filter(owner_type='driver', owner_id=7).count(), 1)

	def test_company_and_driver_with_same_id_get_separate_wallets(self):
		company_wallet = services.get_company_wallet(3)
		driver_wallet = services.get_driver_wallet(3)

		self.assertNotEqual(company_wallet.id, driver_wallet.id)

	def test_platform_wallet_is_a_singleton(self):
		first = services.get_platform_wallet()
		second = services.get_platform_wallet()

		self.assertEqual(first.id, second.id)
		self.assertIsNone(first.owner_id)
		self.assertEqual(Wallet.objects.filter(owner_type='platform').count(), 1)


class WalletStoragePrimitiveTests(TestCase):
	def setUp(self):
		self.wallet = services.get_company_wallet(1)

	def test_update_wallet_balance_sets_value_verbatim(self):
		services.update_wallet_balance(self.wallet.id, '123.45')

		self.wallet.refresh_from_db()
		self.assertEqual(self.wallet.available_balance, Decimal('123.45'))

	def test_update_wallet_balance_unknown_wallet(self):
		with self.assertRaises(WalletNotFoundError):
			services.update_wallet_balance(999999, '1.00')

	def test_create_wallet_transaction_rejects_unreconciled_entry(self):
		with self.assertRaises(ValueError):
			services.create_wallet_transaction(
				wallet=self.wallet,
				type='manual_adjustment',
				amount='10.00',
				previous_balance='0.00',
				new_balance='10.01',
			)
		self.assertFalse(WalletTransaction.objects.exists())


class WalletMovementTests(TestCase):
	def setUp(self):
		self.wallet = services.get_company_wallet(1)

	def test_credit_and_debit_keep_ledger_in_step_with_balance(self):
		services.credit_wallet(self.wallet, '500.00', 'recharge')
		services.debit_wallet(self.wallet, '100.10', 'withdrawal')
		services.credit_wallet(self.wallet, '0.30', 'refund')

		self.wallet.refresh_from_db()
		self.assertEqual(self.wallet.available_balance, Decimal('400.20'))
		self.assertEqual(services.ledger_total(self.wallet), self.wallet.available_balance)

		for entry in self.wallet.transactions.all():
			self.assertEqual(entry.previous_balance + entry.amount, entry.new_balance)

	def test_debit_is_recorded_as_negative_amount(self):
		services.credit_wallet(self.wallet, '50.00', 'recharge')
		entry, created = services.debit_wallet(self.wallet, '20.00', 'withdrawal')

		self.assertTrue(created)
		self.assertEqual(entry.amount, Decimal('-20.00'))
		self.assertEqual(entry.previous_balance, Decimal('50.00'))
		self.assertEqual(entry.new_balance, Decimal('30.00'))

	def test_debit_rejects_insufficient_balance_by_default(self):
		services.credit_wallet(self.wallet, '10.00', 'recharge')

		with self.assertRaises(InsufficientBalanceError):
			services.debit_wallet(self.wallet, '10.01', 'withdrawal')

		self.wallet.refresh_from_db()
		self.assertEqual(self.wallet.available_balance, Decimal('10.00'))
		self.assertEqual(self.wallet.transactions.count(), 1)

	def test_debit_may_go_negative_when_allowed(self):
		services.debit_wallet(self.wallet, '25.00', 'withdrawal', allow_negative=True)

		self.wallet.refresh_from_db()
		self.assertEqual(self.wallet.available_balance, Decimal('-25.00'))

	def test_inactive_wallet_rejects_movements(self):
		self.wallet.status = 'suspended'
		self.wallet.save(update_fields=['status'])

		with self.assertRaises(WalletInactiveError):
			services.credit_wallet(self.wallet, '1.00', 'recharge')
		self.assertFalse(self.wallet.transactions.exists())

	def test_negative_credit_is_rejected(self):
		with self.assertRaises(ValueError):
			services.credit_wallet(self.wallet, '-1.00', 'recharge')

	def test_float_amounts_are_rejected(self):
		with self.assertRaises(TypeError):
			services.credit_wallet(self.wallet, 0.1, 'recharge')

	def test_has_enough_balance(self):
		services.credit_wallet(self.wallet, '30.00', 'recharge')

		self.assertTrue(services.has_enough_balance(1, '30.00'))
		self.assertFalse(services.has_enough_balance(1, '30.01'))

	def test_statement_is_newest_first_and_paginated(self):
		for amount in ('1.00', '2.00', '3.00'):
			services.credit_wallet(self.wallet, amount, 'recharge')

		statement = services.get_wallet_statement(self.wallet, limit=2)

		self.assertEqual([entry.amount for entry in statement], [Decimal('3.00'), Decimal('2.00')])
		self.assertEqual(len(services.get_wallet_statement(self.wallet, limit=2, offset=2)), 1)


class WalletStatementViewTests(TestCase):
	def setUp(self):
		self.client = APIClient()
		self.staff = get_user_model().objects.create_user(
			username='finance',
			password='finance1234',
			is_staff=True
		)
		self.wallet = services.get_company_wallet(1)
		services.credit_wallet(self.wallet, '75.00', 'recharge')

	def test_staff_can_read_statement(self):
		self.client.force_authenticate(user=self.staff)
		response = self.client.get(f'/api/wallets/{self.wallet.id}/statement/')

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['wallet']['available_balance'], '75.00')
		self.assertEqual(len(response.data['transactions']), 1)
		self.assertEqual(response.data['transactions'][0]['amount'], '75.00')

	def test_anonymous_requests_are_rejected(self):
		response = self.client.get(f'/api/wallets/{self.wallet.id}/statement/')

		self.assertIn(response.status_code, (401, 403))

	def test_bad_paging_arguments(self):
		self.client.force_authenticate(user=self.staff)

		for query in ('limit=-1', 'limit=0', 'limit=abc', 'offset=x'):
			response = self.client.get(f'/api/wallets/{self.wallet.id}/statement/?{query}')
			self.assertEqual(response.status_code, 400, query)

	def test_unknown_wallet(self):
		self.client.force_authenticate(user=self.staff)
		response = self.client.get('/api/wallets/999999/statement/')

		self.assertEqual(response.status_code, 404)
