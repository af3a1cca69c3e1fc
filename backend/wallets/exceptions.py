"""Custom exceptions for wallet operations."""


class WalletError(Exception):
    """Base class for ledger failures."""
    pass


class WalletNotFoundError(WalletError):
    """Raised when a wallet that must exist cannot be found."""
    pass


class WalletInactiveError(WalletError):
    """Raised when moving money on a blocked or suspended wallet."""
    pass


class InsufficientBalanceError(WalletError):
    """Raised when a debit or block exceeds the available funds."""
    pass
