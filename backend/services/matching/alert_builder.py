"""
Offer a pending allocation to candidate drivers.

Each candidate gets one AllocationAlert that stays answerable for the
configured driver acceptance timeout, plus a best-effort push.
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from django.utils import timezone

from allocations.models import Allocation, AllocationAlert
from platform_config.services import get_settings
from realtime.push import PushSender, push_to_driver, send_push_notification

logger = logging.getLogger(__name__)


def offer_allocation_to_drivers(
    allocation: Allocation,
    drivers: Iterable,
    now: Optional[datetime] = None,
    push_sender: PushSender = send_push_notification,
) -> List[AllocationAlert]:
    """
    Create alerts for drivers that were not offered this allocation yet.

    Args:
        allocation: Pending allocation to offer
        drivers: Candidate Driver instances
        now: Current instant (defaults to timezone.now())
        push_sender: Push function (injected in tests)

    Returns:
        List of newly created AllocationAlert instances
    """
    from services.allocation_engine.exceptions import AllocationNotAvailableError

    if allocation.status != Allocation.PENDING:
        raise AllocationNotAvailableError(
            f"Allocation {allocation.id} is {allocation.status}; only pending allocations can be offered"
        )

    now = now or timezone.now()
    expires_at = now + timedelta(seconds=get_settings().driver_acceptance_timeout)

    alerts: List[AllocationAlert] = []
    for driver in drivers:
        alert, created = AllocationAlert.objects.get_or_create(
            allocation=allocation,
            driver=driver,
            defaults={
                "status": AllocationAlert.NOTIFIED,
                "notified_at": now,
                "expires_at": expires_at,
            },
        )
        if not created:
            continue
        alerts.append(alert)

        push_to_driver(
            driver,
            "Nova Alocação Disponível",
            f"{allocation.company.name} precisa de um entregador em "
            f"{allocation.allocation_date:%d/%m} das {allocation.start_time:%H:%M} "
            f"às {allocation.end_time:%H:%M}.",
            {"type": "allocation_offer", "allocationId": allocation.id, "alertId": alert.id},
            sender=push_sender,
        )

    logger.info(
        "Offered allocation %s to %d driver(s) (expires %s)",
        allocation.id, len(alerts), expires_at.isoformat()
    )
    return alerts
