"""
Periodic allocation checks.

Each check re-reads state from the database, transitions the rows it finds
and tells the affected parties. Checks never raise: an error aborts only the
current pass of that check and the next tick tries again.
"""

import functools
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from django.conf import settings
from django.utils import timezone

from allocations.selectors import (
    find_due_to_complete,
    find_due_to_start,
    find_stale_pending_allocations,
)
from common.utils import format_money, local_civil_now
from platform_config.services import get_settings
from realtime.notifications import (
    ALLOCATION_COMPLETED,
    ALLOCATION_EXPIRED,
    ALLOCATION_STARTED,
    RealtimeChannel,
)
from realtime.push import PushSender, push_to_driver, send_push_notification
from services.matching import expire_old_alerts
from wallets.exceptions import WalletError
from .exceptions import SettlementError
from .lifecycle import expire_allocation, start_allocation
from .settlement import complete_allocation

logger = logging.getLogger(__name__)

# Pending allocations get this many acceptance timeouts before they expire,
# leaving room for several sequential offers.
PENDING_TIMEOUT_MULTIPLIER = 2

NO_DRIVER_ACCEPTED_MESSAGE = "Nenhum entregador aceitou a alocação"


def job(func):
    """Log and swallow any error so one failing check never stops the scheduler."""

    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except Exception:
            logger.exception("Allocation job %s failed; retrying next tick", func.__name__)
            return None

    return wrapper


class AllocationJobs:
    """
    The four allocation checks, bound to their collaborators.

    Args:
        channel: Realtime channel for company/driver room events
        push_sender: Push function used for driver notifications
        clock: Callable returning the current aware datetime
    """

    def __init__(
        self,
        channel: Optional[RealtimeChannel] = None,
        push_sender: PushSender = send_push_notification,
        clock: Callable[[], datetime] = timezone.now,
    ):
        self.channel = channel or RealtimeChannel()
        self.push_sender = push_sender
        self.clock = clock

    # ---------------------- Alerts ----------------------

    @job
    def expire_old_alerts(self) -> int:
        return expire_old_alerts(now=self.clock())

    # ---------------------- pending -> expired ----------------------

    @job
    def expire_pending_allocations(self) -> int:
        now = self.clock()
        timeout = get_settings().driver_acceptance_timeout or getattr(
            settings, "DEFAULT_DRIVER_ACCEPTANCE_TIMEOUT", 30
        )
        cutoff = now - timedelta(seconds=timeout * PENDING_TIMEOUT_MULTIPLIER)

        expired_count = 0
        for allocation in list(find_stale_pending_allocations(cutoff)):
            if not expire_allocation(allocation, now):
                continue
            expired_count += 1

            self.channel.to_company(allocation.company_id, ALLOCATION_EXPIRED, {
                "allocationId": allocation.id,
                "message": NO_DRIVER_ACCEPTED_MESSAGE,
            })
            logger.info("Allocation %s expired: no driver accepted", allocation.id)

        if expired_count:
            logger.info("Expired %d pending allocation(s) without acceptance", expired_count)
        return expired_count

    # ---------------------- accepted -> in_progress ----------------------

    @job
    def start_accepted_allocations(self) -> int:
        now = self.clock()
        today, current_time = local_civil_now(now)

        started_count = 0
        for allocation in list(find_due_to_start(today, current_time)):
            if not start_allocation(allocation, now):
                continue
            started_count += 1

            push_to_driver(
                allocation.driver,
                "Alocação Iniciada!",
                "Seu período de alocação começou. Você receberá entregas apenas desta empresa.",
                {"type": "allocation_started", "allocationId": allocation.id},
                sender=self.push_sender,
            )
            self.channel.to_company(allocation.company_id, ALLOCATION_STARTED, {
                "allocationId": allocation.id,
                "driverId": allocation.driver_id,
            })
            logger.info("Allocation %s started", allocation.id)

        return started_count

    # ---------------------- accepted/in_progress -> completed ----------------------

    @job
    def auto_complete_allocations(self) -> int:
        now = self.clock()
        today, current_time = local_civil_now(now)

        completed_count = 0
        for due in list(find_due_to_complete(today, current_time)):
            try:
                completed = complete_allocation(due.pk, now)
            except (SettlementError, WalletError) as exc:
                logger.warning("Skipping completion of allocation %s: %s", due.pk, exc)
                continue

            if completed is None:
                continue
            allocation, settlement = completed
            completed_count += 1

            self._notify_completed(allocation, settlement)
            logger.info(
                "Allocation %s auto-released at end of window (settled=%s%s)",
                allocation.id,
                settlement.settled,
                f", {settlement.skipped_reason}" if settlement.skipped_reason else "",
            )

        return completed_count

    def _notify_completed(self, allocation, settlement) -> None:
        if settlement.settled:
            amount_credited = format_money(allocation.driver_amount)
            body = f"Seu período de alocação terminou. R$ {amount_credited} creditado."
        else:
            # Nothing was credited; postpaid drivers are paid at the weekly closing
            amount_credited = format_money(0)
            body = "Seu período de alocação terminou."

        push_to_driver(
            allocation.driver,
            "Alocação Finalizada",
            body,
            {"type": "allocation_completed", "allocationId": allocation.id},
            sender=self.push_sender,
        )

        self.channel.to_driver(allocation.driver_id, ALLOCATION_COMPLETED, {
            "allocationId": allocation.id,
            "amountCredited": amount_credited,
        })
        self.channel.to_company(allocation.company_id, ALLOCATION_COMPLETED, {
            "allocationId": allocation.id,
            "driverId": allocation.driver_id,
        })

    # ---------------------- All ----------------------

    def run_all(self) -> None:
        """One sequential pass of every check (used at startup)."""
        self.expire_old_alerts()
        self.expire_pending_allocations()
        self.start_accepted_allocations()
        self.auto_complete_allocations()
