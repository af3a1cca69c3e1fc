"""
Wallet ledger operations.

Every balance change goes through apply_wallet_movement(), which locks the
wallet row, writes the new available balance and appends the matching
WalletTransaction inside one database transaction.
"""

import logging
from decimal import Decimal
from typing import List, Optional, Tuple

from django.db import IntegrityError, transaction
from django.utils import timezone

from common.utils import format_money, to_money
from wallets.exceptions import (
    InsufficientBalanceError,
    WalletInactiveError,
    WalletNotFoundError,
)
from wallets.models import Wallet, WalletTransaction

logger = logging.getLogger(__name__)


# ===================== Lookup =====================

def get_wallet_by_owner(owner_id: Optional[int], owner_type: str) -> Optional[Wallet]:
    """Return the wallet of an owner, or None if it was never created."""
    if owner_type == Wallet.OWNER_PLATFORM:
        return Wallet.objects.filter(owner_type=owner_type).first()
    return Wallet.objects.filter(owner_id=owner_id, owner_type=owner_type).first()


def get_or_create_wallet(owner_id: Optional[int], owner_type: str) -> Wallet:
    """
    Fetch the wallet of an owner, creating an empty one on first use.

    A concurrent request may create the same wallet between the lookup and
    the insert; the unique constraint rejects the second insert and the
    wallet is read again.
    """
    wallet = get_wallet_by_owner(owner_id, owner_type)
    if wallet:
        return wallet

    try:
        with transaction.atomic():
            wallet = Wallet.objects.create(owner_id=owner_id, owner_type=owner_type)
        logger.info("Created %s wallet for owner %s", owner_type, owner_id)
    except IntegrityError:
        wallet = get_wallet_by_owner(owner_id, owner_type)
        if wallet is None:
            raise
        logger.info("Found %s wallet for owner %s after creation conflict", owner_type, owner_id)

    return wallet


def get_platform_wallet() -> Wallet:
    """Return the singleton platform wallet."""
    return get_or_create_wallet(None, Wallet.OWNER_PLATFORM)


def get_company_wallet(company_id: int) -> Wallet:
    return get_or_create_wallet(company_id, Wallet.OWNER_COMPANY)


def get_driver_wallet(driver_id: int) -> Wallet:
    return get_or_create_wallet(driver_id, Wallet.OWNER_DRIVER)


# ===================== Storage primitives =====================

def update_wallet_balance(wallet_id: int, new_available_balance) -> None:
    """Overwrite the available balance; the caller computes the value."""
    updated = Wallet.objects.filter(id=wallet_id).update(
        available_balance=to_money(new_available_balance),
        updated_at=timezone.now(),
    )
    if not updated:
        raise WalletNotFoundError(f"Wallet {wallet_id} not found")


def create_wallet_transaction(
    *,
    wallet: Wallet,
    type: str,
    amount,
    previous_balance,
    new_balance,
    description: str = "",
    status: str = "completed",
    allocation=None,
) -> WalletTransaction:
    """Append a ledger row. Rejects entries where the balances do not add up."""
    amount = to_money(amount)
    previous_balance = to_money(previous_balance)
    new_balance = to_money(new_balance)

    if previous_balance + amount != new_balance:
        raise ValueError(
            f"Ledger entry does not reconcile: {previous_balance} + {amount} != {new_balance}"
        )

    return WalletTransaction.objects.create(
        wallet=wallet,
        type=type,
        status=status,
        amount=amount,
        previous_balance=previous_balance,
        new_balance=new_balance,
        description=description,
        allocation=allocation,
    )


# ===================== Movements =====================

def apply_wallet_movement(
    wallet: Wallet,
    amount,
    transaction_type: str,
    *,
    allocation=None,
    description: str = "",
    allow_negative: bool = True,
) -> Tuple[WalletTransaction, bool]:
    """
    Apply a signed amount to a wallet's available balance.

    When an allocation is given, (allocation, transaction_type) acts as an
    idempotency key: if a transaction already exists for it the wallet is left
    untouched and the existing row is returned.

    Args:
        wallet: Wallet to move money on
        amount: Signed amount (negative for debits)
        transaction_type: WalletTransaction.type value
        allocation: Allocation the movement belongs to, if any
        description: Human-readable ledger description
        allow_negative: Whether the balance may go below zero

    Returns:
        Tuple of (transaction, created)

    Raises:
        WalletNotFoundError: If the wallet row disappeared
        WalletInactiveError: If the wallet is blocked or suspended
        InsufficientBalanceError: If allow_negative is False and funds are short
    """
    amount = to_money(amount)

    with transaction.atomic():
        try:
            locked = Wallet.objects.select_for_update().get(pk=wallet.pk)
        except Wallet.DoesNotExist:
            raise WalletNotFoundError(f"Wallet {wallet.pk} not found")

        if allocation is not None:
            existing = WalletTransaction.objects.filter(
                allocation=allocation,
                type=transaction_type,
            ).first()
            if existing:
                logger.info(
                    "Skipping %s for allocation %s: already recorded as transaction %s",
                    transaction_type, allocation.pk, existing.id
                )
                return existing, False

        if not locked.is_active:
            raise WalletInactiveError(f"Wallet {locked.id} is {locked.status}")

        previous_balance = locked.available_balance
        new_balance = to_money(previous_balance + amount)

        if not allow_negative and new_balance < 0:
            raise InsufficientBalanceError(
                f"Insufficient balance. Available: R$ {format_money(previous_balance)}, "
                f"required: R$ {format_money(-amount)}"
            )

        update_wallet_balance(locked.id, new_balance)
        entry = create_wallet_transaction(
            wallet=locked,
            type=transaction_type,
            amount=amount,
            previous_balance=previous_balance,
            new_balance=new_balance,
            description=description,
            allocation=allocation,
        )

    logger.info(
        "%s of R$ %s on wallet %s. New balance: R$ %s",
        transaction_type, format_money(amount), locked.id, format_money(new_balance)
    )
    return entry, True


def credit_wallet(wallet: Wallet, amount, transaction_type: str, **kwargs) -> Tuple[WalletTransaction, bool]:
    """Increase the available balance by a positive amount."""
    amount = to_money(amount)
    if amount < 0:
        raise ValueError("Credit amount must not be negative")
    return apply_wallet_movement(wallet, amount, transaction_type, **kwargs)


def debit_wallet(
    wallet: Wallet,
    amount,
    transaction_type: str,
    allow_negative: bool = False,
    **kwargs,
) -> Tuple[WalletTransaction, bool]:
    """
    Decrease the available balance by a positive amount.

    Prepaid settlement passes allow_negative=True: the allocation was already
    served, so the debit is recorded even if the company ran out of credit.
    """
    amount = to_money(amount)
    if amount < 0:
        raise ValueError("Debit amount must not be negative")
    return apply_wallet_movement(
        wallet, -amount, transaction_type, allow_negative=allow_negative, **kwargs
    )


# ===================== Queries =====================

def has_enough_balance(company_id: int, amount) -> bool:
    """Check whether a company can pay an amount from its wallet."""
    wallet = get_company_wallet(company_id)
    return wallet.available_balance >= to_money(amount)


def get_wallet_statement(wallet: Wallet, limit: int = 50, offset: int = 0) -> List[WalletTransaction]:
    """Most recent ledger entries first."""
    return list(wallet.transactions.all()[offset:offset + limit])


def ledger_total(wallet: Wallet) -> Decimal:
    """Sum of every transaction amount recorded for a wallet."""
    total = Decimal("0.00")
    for amount in wallet.transactions.values_list("amount", flat=True):
        total += amount
    return to_money(total)
