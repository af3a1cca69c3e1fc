"""Custom exceptions for the allocation engine."""


class AllocationNotFoundError(Exception):
    """Raised when an allocation cannot be found."""
    pass


class AllocationNotAvailableError(Exception):
    """Raised when an allocation is not in an available state for the operation."""
    pass


class InvalidAllocationError(Exception):
    """Raised when allocation data (window, amounts) is inconsistent."""
    pass


class InvalidTransitionError(Exception):
    """Raised when a status change is not an edge of the allocation state machine."""
    pass


class AlertExpiredError(Exception):
    """Raised when an allocation alert has timed out."""
    pass


class AlertNotFoundError(Exception):
    """Raised when the driver holds no active alert for the allocation."""
    pass


class SettlementError(Exception):
    """Base class for data problems that prevent settling one allocation."""
    pass


class MissingWalletError(SettlementError):
    """Raised when a wallet that must already exist is missing."""
    pass


class AmountMismatchError(SettlementError):
    """Raised when driver and commission amounts do not add up to the total."""
    pass
