"""
Wallet settlement for allocations whose window has closed.

Prepaid (PRE_PAGO) companies pay from their wallet when the window closes:
    1. company wallet  -total_amount        allocation_debit
    2. driver wallet   +driver_amount       allocation_credit
    3. platform wallet +commission_amount   allocation_commission

The three movements run in this order, one after the other. Each is keyed on
(allocation, type), so a retry after a partial failure never books the same
movement twice. Postpaid (BOLETO) allocations are billed by the weekly
closing run and move no money here.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from django.db import transaction

from allocations.models import Allocation
from wallets import services as wallet_services
from wallets.models import Wallet, WalletTransaction
from .exceptions import AmountMismatchError, MissingWalletError
from .lifecycle import mark_completed

logger = logging.getLogger(__name__)

DEBIT_DESCRIPTION = "Alocação de entregador - Período completo"
CREDIT_DESCRIPTION = "Alocação de entregador - Período completo"
COMMISSION_DESCRIPTION = "Comissão de alocação - Período completo"


@dataclass
class SettlementResult:
    """What settlement did for one allocation."""
    allocation_id: int
    settled: bool
    skipped_reason: str = ""
    company_debit: Optional[WalletTransaction] = None
    driver_credit: Optional[WalletTransaction] = None
    platform_commission: Optional[WalletTransaction] = None


def settle_allocation(allocation: Allocation) -> SettlementResult:
    """
    Move the allocation's money between company, driver and platform wallets.

    Raises:
        AmountMismatchError: If driver + commission != total
        MissingWalletError: If the prepaid company has no wallet
        wallets.exceptions.WalletError: If a wallet rejects the movement
    """
    company = allocation.company

    if not company.is_prepaid:
        logger.info(
            "Allocation %s belongs to %s company %s; billed at weekly closing",
            allocation.id, company.payment_type, company.id
        )
        return SettlementResult(allocation.id, settled=False, skipped_reason="postpaid")

    if allocation.driver_id is None:
        logger.warning("Allocation %s has no driver; nothing to settle", allocation.id)
        return SettlementResult(allocation.id, settled=False, skipped_reason="no_driver")

    if not allocation.amounts_reconcile():
        raise AmountMismatchError(
            f"Allocation {allocation.id}: {allocation.driver_amount} + "
            f"{allocation.commission_amount} != {allocation.total_amount}"
        )

    company_wallet = wallet_services.get_wallet_by_owner(company.id, Wallet.OWNER_COMPANY)
    if company_wallet is None:
        raise MissingWalletError(f"Company {company.id} has no wallet")

    company_debit, _ = wallet_services.debit_wallet(
        company_wallet,
        allocation.total_amount,
        WalletTransaction.TYPE_ALLOCATION_DEBIT,
        allow_negative=True,
        allocation=allocation,
        description=DEBIT_DESCRIPTION,
    )

    driver_wallet = wallet_services.get_driver_wallet(allocation.driver_id)
    driver_credit, _ = wallet_services.credit_wallet(
        driver_wallet,
        allocation.driver_amount,
        WalletTransaction.TYPE_ALLOCATION_CREDIT,
        allocation=allocation,
        description=CREDIT_DESCRIPTION,
    )

    platform_wallet = wallet_services.get_platform_wallet()
    platform_commission, _ = wallet_services.credit_wallet(
        platform_wallet,
        allocation.commission_amount,
        WalletTransaction.TYPE_ALLOCATION_COMMISSION,
        allocation=allocation,
        description=COMMISSION_DESCRIPTION,
    )

    return SettlementResult(
        allocation.id,
        settled=True,
        company_debit=company_debit,
        driver_credit=driver_credit,
        platform_commission=platform_commission,
    )


def complete_allocation(allocation_id: int, now: datetime) -> Optional[Tuple[Allocation, SettlementResult]]:
    """
    Settle an allocation and mark it completed, all in one database transaction.

    The row is locked and its status re-read first, so only one caller can
    complete a given allocation. The status is written last: if settlement
    fails, everything rolls back and the allocation stays eligible for the
    next tick.

    Returns:
        (allocation, settlement result), or None if the allocation is no
        longer accepted/in progress
    """
    with transaction.atomic():
        allocation = Allocation.objects.select_for_update().filter(pk=allocation_id).first()
        if allocation is None or allocation.status not in Allocation.SETTLEABLE_STATUSES:
            return None

        result = settle_allocation(allocation)
        mark_completed(allocation, now)

    return allocation, result
