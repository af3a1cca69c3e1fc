"""
Allocation engine - lifecycle, settlement and periodic checks.

This module handles:
    - Creating allocations and computing their settlement split
    - Driver accept/decline of allocation alerts
    - Time-driven transitions (expire, start, complete)
    - Wallet settlement when a window closes
"""

from .lifecycle import (
    AllocationResult,
    create_allocation,
    accept_allocation,
    decline_allocation,
)
from .settlement import SettlementResult, settle_allocation, complete_allocation
from .jobs import AllocationJobs

from .exceptions import (
    AllocationNotFoundError,
    AllocationNotAvailableError,
    InvalidAllocationError,
    InvalidTransitionError,
    AlertExpiredError,
    AlertNotFoundError,
    SettlementError,
    MissingWalletError,
    AmountMismatchError,
)

__all__ = [
    # Lifecycle operations
    "AllocationResult",
    "create_allocation",
    "accept_allocation",
    "decline_allocation",
    # Settlement
    "SettlementResult",
    "settle_allocation",
    "complete_allocation",
    # Jobs
    "AllocationJobs",
    # Exceptions
    "AllocationNotFoundError",
    "AllocationNotAvailableError",
    "InvalidAllocationError",
    "InvalidTransitionError",
    "AlertExpiredError",
    "AlertNotFoundError",
    "SettlementError",
    "MissingWalletError",
    "AmountMismatchError",
]
