"""
Query shapes the allocation jobs poll on every tick.

Date and time arguments are local civil values in the business time zone
(see common.utils.clock); callers must not pass UTC wall-clock values.
"""

from datetime import date, datetime, time

from django.db.models import QuerySet

from allocations.models import Allocation, AllocationAlert


def find_expired_pending_alerts(now: datetime) -> QuerySet:
    """Alerts still waiting for an answer whose deadline has passed."""
    return (
        AllocationAlert.objects
        .filter(status=AllocationAlert.NOTIFIED, expires_at__lte=now)
        .order_by("expires_at")
    )


def find_stale_pending_allocations(cutoff: datetime) -> QuerySet:
    """Pending allocations created at or before the cutoff instant."""
    return (
        Allocation.objects
        .filter(status=Allocation.PENDING, created_at__lte=cutoff)
        .order_by("created_at")
    )


def find_due_to_start(on_date: date, at_time: time) -> QuerySet:
    """Accepted allocations of the given day whose start time has arrived."""
    return (
        Allocation.objects
        .select_related("driver", "company")
        .filter(
            status=Allocation.ACCEPTED,
            allocation_date=on_date,
            start_time__lte=at_time,
        )
        .order_by("start_time", "id")
    )


def find_due_to_complete(on_date: date, at_time: time) -> QuerySet:
    """Accepted or running allocations of the given day whose end time has arrived."""
    return (
        Allocation.objects
        .select_related("driver", "company")
        .filter(
            status__in=Allocation.SETTLEABLE_STATUSES,
            allocation_date=on_date,
            end_time__lte=at_time,
        )
        .order_by("end_time", "id")
    )
