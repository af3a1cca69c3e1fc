"""
Allocation state machine.

    pending     -> accepted     (driver accepts a live alert)
    pending     -> expired      (nobody accepted within 2x the acceptance timeout)
    accepted    -> in_progress  (start time reached)
    accepted    -> completed    (end time reached, even if never started)
    in_progress -> completed    (end time reached)

Job-driven transitions are conditional updates on the current status, so a
row that another worker already moved is simply skipped.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Dict, Optional

from django.db import transaction
from django.utils import timezone

from allocations.models import Allocation, AllocationAlert
from common.utils import compute_split, to_money
from realtime.notifications import ALLOCATION_ACCEPTED, RealtimeChannel
from .exceptions import (
    AlertExpiredError,
    AlertNotFoundError,
    AllocationNotAvailableError,
    AllocationNotFoundError,
    InvalidAllocationError,
    InvalidTransitionError,
)

logger = logging.getLogger(__name__)


@dataclass
class AllocationResult:
    """Result object for allocation operations."""
    success: bool
    allocation: Optional[Allocation] = None
    message: str = ""
    extra: Optional[Dict[str, Any]] = None


def _ensure_transition(allocation: Allocation, new_status: str) -> None:
    if not allocation.can_transition_to(new_status):
        raise InvalidTransitionError(
            f"Allocation {allocation.id} cannot go from {allocation.status} to {new_status}"
        )


def _conditional_update(allocation: Allocation, new_status: str, **fields) -> bool:
    """
    Move an allocation to new_status only if its stored status is unchanged.

    Returns:
        True if this call performed the transition
    """
    _ensure_transition(allocation, new_status)
    updated = Allocation.objects.filter(pk=allocation.pk, status=allocation.status).update(
        status=new_status, **fields
    )
    if not updated:
        logger.info("Allocation %s changed concurrently; skipping %s", allocation.pk, new_status)
        return False

    allocation.status = new_status
    for name, value in fields.items():
        setattr(allocation, name, value)
    return True


# ===================== Company Operations =====================

def create_allocation(
    company,
    allocation_date: date,
    start_time: time,
    end_time: time,
    total_amount,
    commission_percentage=0,
) -> Allocation:
    """
    Create a pending allocation and compute its settlement split.

    Args:
        company: Company requesting the driver
        allocation_date: Local business day of the window
        start_time: Local start of the window
        end_time: Local end of the window (same day)
        total_amount: Amount the company pays
        commission_percentage: Platform share of total_amount, 0-100

    Returns:
        The created Allocation

    Raises:
        InvalidAllocationError: If the window or the amounts are invalid
    """
    if end_time <= start_time:
        raise InvalidAllocationError("End time must be after start time")

    try:
        driver_amount, commission_amount = compute_split(total_amount, commission_percentage)
    except (ValueError, ArithmeticError) as exc:
        raise InvalidAllocationError(str(exc))

    total = to_money(total_amount)
    if total <= 0:
        raise InvalidAllocationError("Total amount must be positive")

    allocation = Allocation.objects.create(
        company=company,
        allocation_date=allocation_date,
        start_time=start_time.replace(microsecond=0),
        end_time=end_time.replace(microsecond=0),
        status=Allocation.PENDING,
        total_amount=total,
        driver_amount=driver_amount,
        commission_amount=commission_amount,
        commission_percentage=commission_percentage,
    )
    logger.info(
        "Created allocation %s for company %s on %s %s-%s (total R$ %s)",
        allocation.id, company.id, allocation_date, start_time, end_time, total
    )
    return allocation


# ===================== Driver Operations =====================

@transaction.atomic
def accept_allocation(
    driver,
    allocation_id: int,
    now: Optional[datetime] = None,
    channel: Optional[RealtimeChannel] = None,
) -> AllocationResult:
    """
    Accept an allocation that was offered to this driver.

    Args:
        driver: Driver answering the alert
        allocation_id: ID of the allocation to accept
        now: Current instant (defaults to timezone.now())
        channel: Realtime channel used to tell the company

    Returns:
        AllocationResult with the accepted allocation
    """
    now = now or timezone.now()

    allocation = Allocation.objects.select_for_update().filter(pk=allocation_id).first()
    if allocation is None:
        raise AllocationNotFoundError("Allocation not found")

    if allocation.status != Allocation.PENDING:
        raise AllocationNotAvailableError("This allocation was already handled or expired")

    alert = allocation.alerts.filter(driver=driver).first()
    if alert is None:
        raise AlertNotFoundError("This allocation was not offered to you")

    if alert.status == AllocationAlert.EXPIRED or (
        alert.status == AllocationAlert.NOTIFIED and not alert.is_live(now)
    ):
        raise AlertExpiredError("This allocation offer has timed out")

    if alert.status != AllocationAlert.NOTIFIED:
        raise AlertNotFoundError("This allocation offer is no longer active for you")

    _ensure_transition(allocation, Allocation.ACCEPTED)
    allocation.driver = driver
    allocation.status = Allocation.ACCEPTED
    allocation.accepted_at = now
    allocation.save(update_fields=['driver', 'status', 'accepted_at', 'updated_at'])

    alert.status = AllocationAlert.ACCEPTED
    alert.responded_at = now
    alert.save(update_fields=['status', 'responded_at'])

    # Other drivers can no longer take it
    allocation.alerts.exclude(id=alert.id).filter(status=AllocationAlert.NOTIFIED).update(
        status=AllocationAlert.EXPIRED,
        responded_at=now
    )

    channel = channel or RealtimeChannel()
    payload = {
        "allocationId": allocation.id,
        "driverId": driver.id,
        "driverName": driver.name,
    }
    transaction.on_commit(
        lambda: channel.to_company(allocation.company_id, ALLOCATION_ACCEPTED, payload)
    )

    logger.info("Driver %s accepted allocation %s", driver.id, allocation.id)
    return AllocationResult(
        success=True,
        allocation=allocation,
        message="Allocation accepted. You will only receive deliveries from this company during the window."
    )


@transaction.atomic
def decline_allocation(driver, allocation_id: int, now: Optional[datetime] = None) -> AllocationResult:
    """Decline a live allocation alert."""
    now = now or timezone.now()

    alert = (
        AllocationAlert.objects.select_for_update()
        .filter(allocation_id=allocation_id, driver=driver, status=AllocationAlert.NOTIFIED)
        .first()
    )
    if alert is None:
        raise AlertNotFoundError("No active offer found for this allocation")

    alert.status = AllocationAlert.DECLINED
    alert.responded_at = now
    alert.save(update_fields=['status', 'responded_at'])

    return AllocationResult(success=True, allocation=alert.allocation, message="Offer declined.")


# ===================== Job Transitions =====================

def expire_allocation(allocation: Allocation, now: datetime) -> bool:
    """pending -> expired; outstanding alerts for it are expired as well."""
    if not _conditional_update(allocation, Allocation.EXPIRED, updated_at=now):
        return False

    AllocationAlert.objects.filter(
        allocation_id=allocation.pk,
        status=AllocationAlert.NOTIFIED,
    ).update(status=AllocationAlert.EXPIRED)
    return True


def start_allocation(allocation: Allocation, now: datetime) -> bool:
    """accepted -> in_progress."""
    return _conditional_update(
        allocation, Allocation.IN_PROGRESS, started_at=now, updated_at=now
    )


def mark_completed(allocation: Allocation, now: datetime) -> None:
    """accepted/in_progress -> completed. Caller holds the row lock."""
    _ensure_transition(allocation, Allocation.COMPLETED)
    allocation.status = Allocation.COMPLETED
    allocation.completed_at = now
    allocation.save(update_fields=['status', 'completed_at', 'updated_at'])
