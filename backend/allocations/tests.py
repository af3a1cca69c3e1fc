import os
from datetime import date, datetime, time, timedelta, timezone as dt_timezone
from decimal import Decimal
from io import StringIO
from unittest.mock import MagicMock, PropertyMock, patch
from zoneinfo import ZoneInfo

from django.core.management import call_command
from django.test import SimpleTestCase, TestCase, override_settings
from django.utils import timezone

from allocations import scheduler as scheduler_module
from allocations.models import Allocation, AllocationAlert
from allocations.scheduler import ALL_JOBS, AllocationJobScheduler
from allocations.selectors import find_due_to_complete, find_due_to_start
from allocations.tasks import expire_pending_allocations_task
from common.utils import compute_split, local_civil_now
from companies.models import Company
from drivers.models import Driver
from platform_config.models import SystemSettings
from realtime.notifications import RealtimeChannel
from realtime.push import PushResult
from services.allocation_engine import (
	AlertExpiredError,
	AlertNotFoundError,
	AllocationJobs,
	AllocationNotAvailableError,
	InvalidAllocationError,
	accept_allocation,
	complete_allocation,
	create_allocation,
	decline_allocation,
	settle_allocation,
)
from services.matching import expire_old_alerts, offer_allocation_to_drivers
from wallets import services as wallet_services
from wallets.models import Wallet, WalletTransaction

SAO_PAULO = ZoneInfo('America/Sao_Paulo')
DAY = date(2026, 3, 10)


def at(hour, minute=0, second=0, day=DAY):
	"""Aware instant for a Sao Paulo wall-clock time."""
	return datetime(day.year, day.month, day.day, hour, minute, second, tzinfo=SAO_PAULO)


class RecordingChannel(RealtimeChannel):
	"""Realtime channel that keeps emitted events in memory."""

	def __init__(self):
		super().__init__(channel_layer=object())
		self.events = []

	def emit(self, room, event, payload=None):
		self.events.append((room, event, payload or {}))
		return True


class RecordingPush:
	def __init__(self, result=None):
		self.calls = []
		self.result = result or PushResult(message_id='projects/test/messages/1')

	def __call__(self, token, title, body, data=None):
		self.calls.append({'token': token, 'title': title, 'body': body, 'data': data})
		return self.result


class AllocationTestMixin:
	def setUp(self):
		SystemSettings.objects.update_or_create(pk=1, defaults={'driver_acceptance_timeout': 30})
		self.company = Company.objects.create(name='Padaria Central', payment_type=Company.PRE_PAGO)
		self.driver = Driver.objects.create(name='Joao', status='available', fcm_token='token-joao')
		self.channel = RecordingChannel()
		self.push = RecordingPush()

	def make_jobs(self, now):
		return AllocationJobs(channel=self.channel, push_sender=self.push, clock=lambda: now)

	def make_allocation(self, status=Allocation.PENDING, company=None, driver=None, **fields):
		values = {
			'company': company or self.company,
			'driver': driver,
			'allocation_date': DAY,
			'start_time': time(9, 0),
			'end_time': time(17, 0),
			'status': status,
			'total_amount': Decimal('100.00'),
			'driver_amount': Decimal('80.00'),
			'commission_amount': Decimal('20.00'),
			'commission_percentage': Decimal('20.00'),
		}
		values.update(fields)
		return Allocation.objects.create(**values)

	def fund_company(self, amount, company=None):
		wallet = wallet_services.get_company_wallet((company or self.company).id)
		wallet_services.credit_wallet(wallet, amount, 'recharge')
		return wallet

	def events_named(self, name):
		return [(room, payload) for room, event, payload in self.events_for(name)]

	def events_for(self, name):
		return [event for event in self.channel.events if event[1] == name]


class CivilClockTests(SimpleTestCase):
	def test_utc_instant_is_converted_to_sao_paulo_wall_clock(self):
		now = datetime(2026, 3, 10, 12, 0, 5, 123456, tzinfo=dt_timezone.utc)

		self.assertEqual(local_civil_now(now), (date(2026, 3, 10), time(9, 0, 5)))

	def test_local_day_differs_from_utc_day_late_at_night(self):
		now = datetime(2026, 3, 11, 2, 30, tzinfo=dt_timezone.utc)

		self.assertEqual(local_civil_now(now), (date(2026, 3, 10), time(23, 30)))


class SplitTests(SimpleTestCase):
	def test_split_always_reconciles_to_total(self):
		for total, percentage in (('100.00', 20), ('33.33', '12.5'), ('0.01', 50), ('999.99', '33.33')):
			driver_amount, commission_amount = compute_split(total, percentage)
			self.assertEqual(driver_amount + commission_amount, Decimal(total))
			self.assertEqual(commission_amount, commission_amount.quantize(Decimal('0.01')))

	def test_commission_rounds_half_up(self):
		self.assertEqual(compute_split('0.05', 50), (Decimal('0.02'), Decimal('0.03')))

	def test_percentage_out_of_range(self):
		with self.assertRaises(ValueError):
			compute_split('10.00', 101)


class CreateAllocationTests(AllocationTestMixin, TestCase):
	def test_create_allocation_computes_split(self):
		allocation = create_allocation(self.company, DAY, time(9, 0), time(17, 0), '100.00', 20)

		self.assertEqual(allocation.status, Allocation.PENDING)
		self.assertIsNone(allocation.driver)
		self.assertEqual(allocation.driver_amount, Decimal('80.00'))
		self.assertEqual(allocation.commission_amount, Decimal('20.00'))
		self.assertTrue(allocation.amounts_reconcile())

	def test_window_must_end_after_start(self):
		with self.assertRaises(InvalidAllocationError):
			create_allocation(self.company, DAY, time(17, 0), time(9, 0), '100.00', 20)

	def test_total_must_be_positive(self):
		with self.assertRaises(InvalidAllocationError):
			create_allocation(self.company, DAY, time(9, 0), time(17, 0), '0.00', 20)

	def test_state_machine_edges(self):
		allocation = self.make_allocation()

		self.assertTrue(allocation.can_transition_to(Allocation.ACCEPTED))
		self.assertTrue(allocation.can_transition_to(Allocation.EXPIRED))
		self.assertFalse(allocation.can_transition_to(Allocation.COMPLETED))

		allocation.status = Allocation.COMPLETED
		self.assertTrue(allocation.is_terminal)
		self.assertFalse(allocation.can_transition_to(Allocation.IN_PROGRESS))


class AlertOfferAndAcceptTests(AllocationTestMixin, TestCase):
	def setUp(self):
		super().setUp()
		self.other_driver = Driver.objects.create(name='Maria', status='available')
		self.allocation = self.make_allocation()
		self.now = at(8, 0)
		self.alerts = offer_allocation_to_drivers(
			self.allocation,
			[self.driver, self.other_driver],
			now=self.now,
			push_sender=self.push,
		)

	def test_offer_creates_time_boxed_alerts(self):
		self.assertEqual(len(self.alerts), 2)
		for alert in self.alerts:
			self.assertEqual(alert.status, AllocationAlert.NOTIFIED)
			self.assertEqual(alert.expires_at, self.now + timedelta(seconds=30))

		# Only the driver with a token gets a push
		self.assertEqual(len(self.push.calls), 1)
		self.assertEqual(self.push.calls[0]['title'], 'Nova Alocação Disponível')

	def test_offering_again_skips_drivers_already_alerted(self):
		again = offer_allocation_to_drivers(self.allocation, [self.driver], now=self.now, push_sender=self.push)

		self.assertEqual(again, [])
		self.assertEqual(self.allocation.alerts.count(), 2)

	def test_accept_before_timeout_binds_driver(self):
		with self.captureOnCommitCallbacks(execute=True):
			result = accept_allocation(
				self.driver, self.allocation.id, now=self.now + timedelta(seconds=10), channel=self.channel
			)

		self.assertTrue(result.success)
		self.allocation.refresh_from_db()
		self.assertEqual(self.allocation.status, Allocation.ACCEPTED)
		self.assertEqual(self.allocation.driver, self.driver)
		self.assertIsNotNone(self.allocation.accepted_at)

		statuses = dict(self.allocation.alerts.values_list('driver_id', 'status'))
		self.assertEqual(statuses[self.driver.id], AllocationAlert.ACCEPTED)
		self.assertEqual(statuses[self.other_driver.id], AllocationAlert.EXPIRED)

		self.assertEqual(
			self.events_named('allocation-accepted'),
			[(f'company-{self.company.id}', {
				'allocationId': self.allocation.id,
				'driverId': self.driver.id,
				'driverName': 'Joao',
			})]
		)

	def test_accept_after_alert_deadline_fails(self):
		with self.assertRaises(AlertExpiredError):
			accept_allocation(self.driver, self.allocation.id, now=self.now + timedelta(seconds=30), channel=self.channel)

		self.allocation.refresh_from_db()
		self.assertEqual(self.allocation.status, Allocation.PENDING)

	def test_second_driver_cannot_accept_taken_allocation(self):
		accept_allocation(self.driver, self.allocation.id, now=self.now, channel=self.channel)

		with self.assertRaises(AllocationNotAvailableError):
			accept_allocation(self.other_driver, self.allocation.id, now=self.now, channel=self.channel)

	def test_driver_without_alert_cannot_accept(self):
		stranger = Driver.objects.create(name='Pedro')

		with self.assertRaises(AlertNotFoundError):
			accept_allocation(stranger, self.allocation.id, now=self.now, channel=self.channel)

	def test_decline_marks_alert_declined(self):
		decline_allocation(self.other_driver, self.allocation.id, now=self.now)

		alert = self.allocation.alerts.get(driver=self.other_driver)
		self.assertEqual(alert.status, AllocationAlert.DECLINED)

		with self.assertRaises(AlertNotFoundError):
			decline_allocation(self.other_driver, self.allocation.id, now=self.now)

	def test_only_pending_allocations_can_be_offered(self):
		taken = self.make_allocation(status=Allocation.ACCEPTED, driver=self.driver)

		with self.assertRaises(AllocationNotAvailableError):
			offer_allocation_to_drivers(taken, [self.other_driver], now=self.now, push_sender=self.push)


class ExpireAlertsTests(AllocationTestMixin, TestCase):
	def setUp(self):
		super().setUp()
		self.allocation = self.make_allocation()
		self.now = at(8, 0)
		drivers = [Driver.objects.create(name=f'Driver {i}') for i in range(3)]
		self.stale = [
			AllocationAlert.objects.create(
				allocation=self.allocation, driver=drivers[0], expires_at=self.now - timedelta(seconds=1)
			),
			AllocationAlert.objects.create(
				allocation=self.allocation, driver=drivers[1], expires_at=self.now
			),
		]
		self.live = AllocationAlert.objects.create(
			allocation=self.allocation, driver=drivers[2], expires_at=self.now + timedelta(seconds=5)
		)

	def test_expire_old_alerts_is_idempotent(self):
		self.assertEqual(expire_old_alerts(now=self.now), 2)
		self.assertEqual(expire_old_alerts(now=self.now), 0)

		for alert in self.stale:
			alert.refresh_from_db()
			self.assertEqual(alert.status, AllocationAlert.EXPIRED)
		self.live.refresh_from_db()
		self.assertEqual(self.live.status, AllocationAlert.NOTIFIED)

	def test_answered_alerts_are_never_expired(self):
		self.stale[0].status = AllocationAlert.DECLINED
		self.stale[0].save(update_fields=['status'])

		self.make_jobs(self.now).expire_old_alerts()

		self.stale[0].refresh_from_db()
		self.assertEqual(self.stale[0].status, AllocationAlert.DECLINED)

	def test_failure_on_one_alert_does_not_stop_the_others(self):
		with patch('services.matching.alert_dispatch.expire_alert', side_effect=[RuntimeError('db gone'), True]):
			self.assertEqual(expire_old_alerts(now=self.now), 1)

	def test_no_wallet_side_effects(self):
		expire_old_alerts(now=self.now)

		self.assertFalse(WalletTransaction.objects.exists())


class ExpirePendingAllocationsTests(AllocationTestMixin, TestCase):
	def test_scenario_a_pending_allocation_expires_after_twice_the_timeout(self):
		t0 = at(8, 0)
		allocation = self.make_allocation(created_at=t0)

		processed = self.make_jobs(t0 + timedelta(seconds=61)).expire_pending_allocations()

		self.assertEqual(processed, 1)
		allocation.refresh_from_db()
		self.assertEqual(allocation.status, Allocation.EXPIRED)
		self.assertEqual(
			self.events_named('allocation-expired'),
			[(f'company-{self.company.id}', {
				'allocationId': allocation.id,
				'message': 'Nenhum entregador aceitou a alocação',
			})]
		)

	def test_timeout_boundary(self):
		now = at(8, 0)
		grace = timedelta(seconds=2 * 30)
		fresh = self.make_allocation(created_at=now - grace + timedelta(seconds=1))
		stale = self.make_allocation(created_at=now - grace - timedelta(seconds=1))

		self.make_jobs(now).expire_pending_allocations()

		fresh.refresh_from_db()
		stale.refresh_from_db()
		self.assertEqual(fresh.status, Allocation.PENDING)
		self.assertEqual(stale.status, Allocation.EXPIRED)

	def test_outstanding_alerts_expire_with_the_allocation(self):
		now = at(8, 0)
		allocation = self.make_allocation(created_at=now - timedelta(minutes=5))
		alert = AllocationAlert.objects.create(
			allocation=allocation, driver=self.driver, expires_at=now + timedelta(minutes=1)
		)

		self.make_jobs(now).expire_pending_allocations()

		alert.refresh_from_db()
		self.assertEqual(alert.status, AllocationAlert.EXPIRED)

	def test_accepted_allocations_are_not_expired(self):
		now = at(8, 0)
		allocation = self.make_allocation(
			status=Allocation.ACCEPTED, driver=self.driver, created_at=now - timedelta(hours=1)
		)

		self.make_jobs(now).expire_pending_allocations()

		allocation.refresh_from_db()
		self.assertEqual(allocation.status, Allocation.ACCEPTED)

	def test_celery_task_runs_the_check(self):
		self.make_allocation(created_at=timezone.now() - timedelta(minutes=10))

		self.assertEqual(expire_pending_allocations_task(), 1)


class StartAcceptedAllocationsTests(AllocationTestMixin, TestCase):
	def test_scenario_b_accepted_allocation_starts_at_start_time(self):
		now = at(9, 0, 5)
		allocation = self.make_allocation(status=Allocation.ACCEPTED, driver=self.driver)

		self.assertEqual(self.make_jobs(now).start_accepted_allocations(), 1)

		allocation.refresh_from_db()
		self.assertEqual(allocation.status, Allocation.IN_PROGRESS)
		self.assertEqual(allocation.started_at, now)

		self.assertEqual(len(self.push.calls), 1)
		self.assertEqual(self.push.calls[0]['token'], 'token-joao')
		self.assertEqual(self.push.calls[0]['title'], 'Alocação Iniciada!')
		self.assertEqual(
			self.events_named('allocation-started'),
			[(f'company-{self.company.id}', {'allocationId': allocation.id, 'driverId': self.driver.id})]
		)

	def test_not_started_before_start_time_or_on_another_day(self):
		early = self.make_allocation(status=Allocation.ACCEPTED, driver=self.driver, start_time=time(9, 0, 6))
		tomorrow = self.make_allocation(
			status=Allocation.ACCEPTED, driver=self.driver, allocation_date=DAY + timedelta(days=1)
		)

		self.assertEqual(self.make_jobs(at(9, 0, 5)).start_accepted_allocations(), 0)

		early.refresh_from_db()
		tomorrow.refresh_from_db()
		self.assertEqual(early.status, Allocation.ACCEPTED)
		self.assertEqual(tomorrow.status, Allocation.ACCEPTED)

	def test_start_uses_local_wall_clock_not_utc(self):
		allocation = self.make_allocation(status=Allocation.ACCEPTED, driver=self.driver)
		utc_now = datetime(2026, 3, 10, 12, 0, 5, tzinfo=dt_timezone.utc)

		self.make_jobs(utc_now).start_accepted_allocations()

		allocation.refresh_from_db()
		self.assertEqual(allocation.status, Allocation.IN_PROGRESS)

	def test_push_failure_does_not_block_transition(self):
		allocation = self.make_allocation(status=Allocation.ACCEPTED, driver=self.driver)
		failing_push = MagicMock(side_effect=RuntimeError('fcm down'))
		jobs = AllocationJobs(channel=self.channel, push_sender=failing_push, clock=lambda: at(9, 1))

		self.assertEqual(jobs.start_accepted_allocations(), 1)

		allocation.refresh_from_db()
		self.assertEqual(allocation.status, Allocation.IN_PROGRESS)
		self.assertEqual(len(self.events_for('allocation-started')), 1)

	def test_invalid_push_token_is_purged(self):
		self.make_allocation(status=Allocation.ACCEPTED, driver=self.driver)
		self.push.result = PushResult(token_invalid=True)

		self.make_jobs(at(9, 1)).start_accepted_allocations()

		self.driver.refresh_from_db()
		self.assertIsNone(self.driver.fcm_token)


class AutoCompleteAllocationsTests(AllocationTestMixin, TestCase):
	def setUp(self):
		super().setUp()
		self.company_wallet = self.fund_company('500.00')
		self.now = at(17, 0, 10)

	def balances(self):
		driver_wallet = wallet_services.get_wallet_by_owner(self.driver.id, Wallet.OWNER_DRIVER)
		platform_wallet = wallet_services.get_wallet_by_owner(None, Wallet.OWNER_PLATFORM)
		self.company_wallet.refresh_from_db()
		return (
			self.company_wallet.available_balance,
			driver_wallet.available_balance if driver_wallet else None,
			platform_wallet.available_balance if platform_wallet else None,
		)

	def test_scenario_c_prepaid_settlement(self):
		allocation = self.make_allocation(status=Allocation.IN_PROGRESS, driver=self.driver)

		self.assertEqual(self.make_jobs(self.now).auto_complete_allocations(), 1)

		self.assertEqual(self.balances(), (Decimal('400.00'), Decimal('80.00'), Decimal('20.00')))

		entries = {entry.type: entry for entry in allocation.wallet_transactions.all()}
		self.assertEqual(set(entries), {'allocation_debit', 'allocation_credit', 'allocation_commission'})
		self.assertEqual(entries['allocation_debit'].amount, Decimal('-100.00'))
		self.assertEqual(entries['allocation_debit'].previous_balance, Decimal('500.00'))
		self.assertEqual(entries['allocation_debit'].new_balance, Decimal('400.00'))
		self.assertEqual(entries['allocation_credit'].amount, Decimal('80.00'))
		self.assertEqual(entries['allocation_commission'].amount, Decimal('20.00'))
		self.assertEqual(entries['allocation_debit'].description, 'Alocação de entregador - Período completo')

		allocation.refresh_from_db()
		self.assertEqual(allocation.status, Allocation.COMPLETED)
		self.assertEqual(allocation.completed_at, self.now)
		self.assertEqual(allocation.driver_amount + allocation.commission_amount, allocation.total_amount)

	def test_completion_notifies_driver_and_company(self):
		allocation = self.make_allocation(status=Allocation.IN_PROGRESS, driver=self.driver)

		self.make_jobs(self.now).auto_complete_allocations()

		self.assertEqual(self.push.calls[0]['title'], 'Alocação Finalizada')
		self.assertEqual(self.push.calls[0]['body'], 'Seu período de alocação terminou. R$ 80.00 creditado.')
		self.assertEqual(self.events_named('allocation-completed'), [
			(f'driver-{self.driver.id}', {'allocationId': allocation.id, 'amountCredited': '80.00'}),
			(f'company-{self.company.id}', {'allocationId': allocation.id, 'driverId': self.driver.id}),
		])

	def test_accepted_but_never_started_allocation_completes(self):
		allocation = self.make_allocation(status=Allocation.ACCEPTED, driver=self.driver)

		self.make_jobs(self.now).auto_complete_allocations()

		allocation.refresh_from_db()
		self.assertEqual(allocation.status, Allocation.COMPLETED)
		self.assertIsNone(allocation.started_at)

	def test_scenario_d_postpaid_company_is_not_settled(self):
		boleto = Company.objects.create(name='Mercado Sul', payment_type=Company.BOLETO)
		self.fund_company('500.00', company=boleto)
		allocation = self.make_allocation(status=Allocation.IN_PROGRESS, driver=self.driver, company=boleto)

		self.make_jobs(self.now).auto_complete_allocations()

		allocation.refresh_from_db()
		self.assertEqual(allocation.status, Allocation.COMPLETED)
		self.assertFalse(allocation.wallet_transactions.exists())
		boleto_wallet = wallet_services.get_wallet_by_owner(boleto.id, Wallet.OWNER_COMPANY)
		self.assertEqual(boleto_wallet.available_balance, Decimal('500.00'))

		# Nothing was credited, so the driver is not told otherwise
		self.assertEqual(self.push.calls[0]['body'], 'Seu período de alocação terminou.')
		self.assertNotIn('R$', self.push.calls[0]['body'])
		self.assertEqual(
			self.events_named('allocation-completed')[0],
			(f'driver-{self.driver.id}', {'allocationId': allocation.id, 'amountCredited': '0.00'})
		)

	def test_not_completed_before_end_time(self):
		allocation = self.make_allocation(status=Allocation.IN_PROGRESS, driver=self.driver, end_time=time(17, 0, 11))

		self.assertEqual(self.make_jobs(self.now).auto_complete_allocations(), 0)

		allocation.refresh_from_db()
		self.assertEqual(allocation.status, Allocation.IN_PROGRESS)

	def test_settlement_happens_at_most_once(self):
		allocation = self.make_allocation(status=Allocation.IN_PROGRESS, driver=self.driver)
		jobs = self.make_jobs(self.now)

		jobs.auto_complete_allocations()
		jobs.auto_complete_allocations()

		self.assertEqual(allocation.wallet_transactions.count(), 3)
		self.assertEqual(self.balances(), (Decimal('400.00'), Decimal('80.00'), Decimal('20.00')))
		self.assertEqual(len(self.events_for('allocation-completed')), 2)

	def test_second_completion_of_same_allocation_is_refused(self):
		allocation = self.make_allocation(status=Allocation.IN_PROGRESS, driver=self.driver)

		first = complete_allocation(allocation.pk, self.now)
		second = complete_allocation(allocation.pk, self.now + timedelta(seconds=1))

		self.assertIsNotNone(first)
		self.assertTrue(first[1].settled)
		self.assertIsNone(second)
		self.assertEqual(WalletTransaction.objects.filter(allocation=allocation).count(), 3)
		self.assertEqual(self.balances(), (Decimal('400.00'), Decimal('80.00'), Decimal('20.00')))

		allocation.refresh_from_db()
		self.assertEqual(allocation.completed_at, self.now)

	def test_stale_read_of_completed_allocation_does_not_settle_again(self):
		allocation = self.make_allocation(status=Allocation.IN_PROGRESS, driver=self.driver)
		# Snapshot taken by an overlapping pass before the first one committed
		stale = Allocation.objects.get(pk=allocation.pk)
		self.make_jobs(self.now).auto_complete_allocations()

		with patch('services.allocation_engine.jobs.find_due_to_complete', return_value=[stale]):
			self.assertEqual(self.make_jobs(self.now).auto_complete_allocations(), 0)

		self.assertEqual(WalletTransaction.objects.filter(allocation=allocation).count(), 3)
		self.assertEqual(self.balances(), (Decimal('400.00'), Decimal('80.00'), Decimal('20.00')))
		self.assertEqual(len(self.events_for('allocation-completed')), 2)

	def test_retry_after_crash_between_wallet_writes_and_status_does_not_recredit(self):
		allocation = self.make_allocation(status=Allocation.IN_PROGRESS, driver=self.driver)
		# Wallets moved but the process died before the status write
		settle_allocation(allocation)

		self.make_jobs(self.now).auto_complete_allocations()

		allocation.refresh_from_db()
		self.assertEqual(allocation.status, Allocation.COMPLETED)
		self.assertEqual(allocation.wallet_transactions.count(), 3)
		self.assertEqual(self.balances(), (Decimal('400.00'), Decimal('80.00'), Decimal('20.00')))

	def test_failed_step_rolls_back_and_leaves_allocation_for_next_tick(self):
		allocation = self.make_allocation(status=Allocation.IN_PROGRESS, driver=self.driver)
		driver_wallet = wallet_services.get_driver_wallet(self.driver.id)
		driver_wallet.status = 'suspended'
		driver_wallet.save(update_fields=['status'])

		self.assertEqual(self.make_jobs(self.now).auto_complete_allocations(), 0)

		allocation.refresh_from_db()
		self.assertEqual(allocation.status, Allocation.IN_PROGRESS)
		self.assertFalse(allocation.wallet_transactions.exists())
		self.assertIsNone(wallet_services.get_wallet_by_owner(None, Wallet.OWNER_PLATFORM))
		self.company_wallet.refresh_from_db()
		self.assertEqual(self.company_wallet.available_balance, Decimal('500.00'))

		driver_wallet.status = 'active'
		driver_wallet.save(update_fields=['status'])
		self.assertEqual(self.make_jobs(self.now).auto_complete_allocations(), 1)
		self.assertEqual(allocation.wallet_transactions.count(), 3)

	def test_missing_company_wallet_skips_only_that_allocation(self):
		no_wallet = Company.objects.create(name='Sem Carteira', payment_type=Company.PRE_PAGO)
		skipped = self.make_allocation(status=Allocation.IN_PROGRESS, driver=self.driver, company=no_wallet)
		settled = self.make_allocation(status=Allocation.IN_PROGRESS, driver=self.driver, end_time=time(16, 0))

		self.assertEqual(self.make_jobs(self.now).auto_complete_allocations(), 1)

		skipped.refresh_from_db()
		settled.refresh_from_db()
		self.assertEqual(skipped.status, Allocation.IN_PROGRESS)
		self.assertEqual(settled.status, Allocation.COMPLETED)

	def test_amounts_that_do_not_reconcile_are_skipped(self):
		allocation = self.make_allocation(
			status=Allocation.IN_PROGRESS, driver=self.driver, commission_amount=Decimal('30.00')
		)

		self.make_jobs(self.now).auto_complete_allocations()

		allocation.refresh_from_db()
		self.assertEqual(allocation.status, Allocation.IN_PROGRESS)
		self.assertFalse(allocation.wallet_transactions.exists())

	def test_ledger_replays_to_current_balances(self):
		for end in (time(15, 0), time(16, 0), time(17, 0)):
			self.make_allocation(status=Allocation.IN_PROGRESS, driver=self.driver, end_time=end)

		self.make_jobs(self.now).auto_complete_allocations()

		for wallet in Wallet.objects.all():
			self.assertEqual(wallet_services.ledger_total(wallet), wallet.available_balance)
		self.assertEqual(self.balances(), (Decimal('200.00'), Decimal('240.00'), Decimal('60.00')))

	def test_query_error_aborts_the_pass_without_raising(self):
		with patch('services.allocation_engine.jobs.find_due_to_complete', side_effect=RuntimeError('db gone')):
			self.assertIsNone(self.make_jobs(self.now).auto_complete_allocations())


class SelectorTests(AllocationTestMixin, TestCase):
	def test_due_queries_compare_time_of_day_on_the_same_day(self):
		due = self.make_allocation(status=Allocation.ACCEPTED, driver=self.driver)
		self.make_allocation(status=Allocation.PENDING)

		self.assertEqual(list(find_due_to_start(DAY, time(9, 0))), [due])
		self.assertEqual(list(find_due_to_start(DAY, time(8, 59, 59))), [])
		self.assertEqual(list(find_due_to_complete(DAY, time(17, 0))), [due])
		self.assertEqual(list(find_due_to_complete(DAY + timedelta(days=1), time(23, 59, 59))), [])


class AllocationJobSchedulerTests(SimpleTestCase):
	def test_run_all_runs_every_check_in_order(self):
		jobs = MagicMock()
		scheduler = AllocationJobScheduler(jobs)

		with patch('allocations.scheduler.close_old_connections'):
			scheduler.run_all()

		self.assertEqual([call[0] for call in jobs.method_calls], list(ALL_JOBS))

	def test_check_still_running_is_skipped(self):
		jobs = MagicMock()
		scheduler = AllocationJobScheduler(jobs)
		scheduler._locks['auto_complete_allocations'].acquire()

		self.assertFalse(scheduler.run_job('auto_complete_allocations'))
		jobs.auto_complete_allocations.assert_not_called()

		scheduler._locks['auto_complete_allocations'].release()
		self.assertTrue(scheduler.run_job('auto_complete_allocations'))
		jobs.auto_complete_allocations.assert_called_once()


@override_settings(ALLOCATION_JOBS_AUTOSTART=True)
class AllocationJobStartupTests(SimpleTestCase):
	def setUp(self):
		self.previous = scheduler_module._scheduler_instance
		scheduler_module._scheduler_instance = None
		self.running = MagicMock(is_running=True)
		patcher = patch('allocations.scheduler.start_allocation_jobs', return_value=self.running)
		self.start = patcher.start()
		self.addCleanup(patcher.stop)

	def tearDown(self):
		scheduler_module._scheduler_instance = self.previous

	def autostart(self, argv):
		with patch.object(scheduler_module.sys, 'argv', argv), patch.dict(os.environ, {'RUN_MAIN': 'true'}):
			scheduler_module.autostart_allocation_jobs()

	def test_server_process_starts_one_scheduler(self):
		self.autostart(['daphne', 'backoffice.asgi:application'])

		self.assertIs(scheduler_module.get_allocation_job_scheduler(), self.running)
		self.start.assert_called_once()

	def test_later_start_reuses_running_scheduler(self):
		self.autostart(['manage.py', 'runserver'])

		self.assertIs(scheduler_module.get_or_start_allocation_jobs(fast_interval=5), self.running)
		self.start.assert_called_once()

	def test_commands_and_celery_do_not_autostart(self):
		for argv in (['manage.py', 'migrate'], ['manage.py', 'run_allocation_jobs'], ['celery', '-A', 'backoffice', 'worker']):
			self.autostart(argv)

		self.start.assert_not_called()
		self.assertIsNone(scheduler_module.get_allocation_job_scheduler())

	@override_settings(ALLOCATION_JOBS_AUTOSTART=False)
	def test_disabled_autostart(self):
		self.autostart(['daphne', 'backoffice.asgi:application'])

		self.start.assert_not_called()

	def test_run_command_reuses_scheduler_already_running(self):
		existing = MagicMock()
		type(existing).is_running = PropertyMock(side_effect=[True, False])
		scheduler_module._scheduler_instance = existing

		call_command('run_allocation_jobs', stdout=StringIO())

		self.start.assert_not_called()
		existing.stop.assert_called_once()


class ProcessAllocationJobsCommandTests(AllocationTestMixin, TestCase):
	def test_command_runs_one_pass(self):
		allocation = self.make_allocation(created_at=timezone.now() - timedelta(minutes=10))
		out = StringIO()

		call_command('process_allocation_jobs', stdout=out)

		allocation.refresh_from_db()
		self.assertEqual(allocation.status, Allocation.EXPIRED)
		self.assertIn('Expired 0 alert(s) and 1 allocation(s)', out.getvalue())
