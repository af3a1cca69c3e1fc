"""
Alert expiry handling.

An alert left unanswered past its expires_at becomes expired and never goes
back; the allocation itself is expired separately by the pending-allocation
job once its own, longer grace period runs out.
"""

import logging
from datetime import datetime
from typing import Optional

from django.utils import timezone

from allocations.models import AllocationAlert
from allocations.selectors import find_expired_pending_alerts

logger = logging.getLogger(__name__)


def expire_alert(alert: AllocationAlert) -> bool:
    """
    Mark one notified alert as expired.

    Returns:
        True if this call expired it, False if it was already answered
    """
    updated = AllocationAlert.objects.filter(
        pk=alert.pk,
        status=AllocationAlert.NOTIFIED,
    ).update(status=AllocationAlert.EXPIRED)
    if updated:
        alert.status = AllocationAlert.EXPIRED
    return bool(updated)


def expire_old_alerts(now: Optional[datetime] = None) -> int:
    """
    Expire every notified alert whose deadline has passed.

    A failure on one alert is logged and the rest are still processed;
    the next tick picks the failed one up again.

    Returns:
        Number of alerts expired
    """
    now = now or timezone.now()
    expired_count = 0

    for alert in list(find_expired_pending_alerts(now)):
        try:
            if expire_alert(alert):
                expired_count += 1
        except Exception:
            logger.exception("Failed to expire allocation alert %s", alert.id)

    if expired_count:
        logger.info("Expired %d allocation alert(s)", expired_count)
    return expired_count
