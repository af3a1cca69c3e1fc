"""
Civil date/time helpers.

Allocation windows are defined in local wall-clock terms (a business day and
HH:MM:SS times), so every comparison converts the current instant into the
configured business time zone first, regardless of the server time zone.
"""

from datetime import date, datetime, time
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from django.conf import settings
from django.utils import timezone

DEFAULT_BUSINESS_TIME_ZONE = "America/Sao_Paulo"


def business_time_zone() -> ZoneInfo:
    """Return the time zone allocation schedules are expressed in."""
    return ZoneInfo(getattr(settings, "ALLOCATION_TIME_ZONE", DEFAULT_BUSINESS_TIME_ZONE))


def local_civil_now(now: Optional[datetime] = None) -> Tuple[date, time]:
    """
    Split an instant into the local civil date and time-of-day.

    The time is truncated to whole seconds so it orders exactly like an
    ``HH:MM:SS`` string.

    Args:
        now: Aware datetime (defaults to the current instant)

    Returns:
        Tuple of (local date, local time without tzinfo)
    """
    now = now or timezone.now()
    local = timezone.localtime(now, business_time_zone())
    return local.date(), local.time().replace(microsecond=0)
