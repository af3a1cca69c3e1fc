"""
Allocation alert dispatch.

This module handles:
    - Offering pending allocations to candidate drivers
    - Expiring alerts nobody answered in time
"""

from .alert_builder import offer_allocation_to_drivers
from .alert_dispatch import expire_alert, expire_old_alerts

__all__ = [
    "offer_allocation_to_drivers",
    "expire_alert",
    "expire_old_alerts",
]
