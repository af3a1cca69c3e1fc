"""Celery tasks for allocation background processing (Celery beat deployment)."""

from celery import shared_task
import logging

logger = logging.getLogger(__name__)


def _jobs():
    from services.allocation_engine import AllocationJobs
    return AllocationJobs()


@shared_task
def expire_old_alerts_task():
    """Expire allocation alerts nobody answered in time."""
    return _jobs().expire_old_alerts()


@shared_task
def expire_pending_allocations_task():
    """Expire pending allocations after twice the driver acceptance timeout."""
    return _jobs().expire_pending_allocations()


@shared_task
def start_accepted_allocations_task():
    """Move accepted allocations whose start time arrived to in_progress."""
    return _jobs().start_accepted_allocations()


@shared_task
def auto_complete_allocations_task():
    """Settle and complete allocations whose window has closed."""
    return _jobs().auto_complete_allocations()
