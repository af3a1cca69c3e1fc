from django.db import models
from django.db.models import Q


class Wallet(models.Model):
    """Balance holder for one owner: a company, a driver or the platform."""

    OWNER_COMPANY = 'company'
    OWNER_DRIVER = 'driver'
    OWNER_PLATFORM = 'platform'
    OWNER_TYPE_CHOICES = [
        (OWNER_COMPANY, 'Company'),
        (OWNER_DRIVER, 'Driver'),
        (OWNER_PLATFORM, 'Platform'),
    ]

    STATUS_ACTIVE = 'active'
    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        ('blocked', 'Blocked'),
        ('suspended', 'Suspended'),
    ]

    # Null for the platform wallet
    owner_id = models.PositiveBigIntegerField(null=True, blank=True)
    owner_type = models.CharField(max_length=20, choices=OWNER_TYPE_CHOICES)

    available_balance = models.DecimalField(max_digits=15, decimal_places=2, default=0)
    blocked_balance = models.DecimalField(max_digits=15, decimal_places=2, default=0)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_ACTIVE)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'wallets'
        constraints = [
            models.UniqueConstraint(
                fields=['owner_type', 'owner_id'],
                name='unique_wallet_owner'
            ),
            models.UniqueConstraint(
                fields=['owner_type'],
                condition=Q(owner_type='platform'),
                name='single_platform_wallet'
            ),
        ]

    def __str__(self):
        owner = self.owner_type if self.owner_id is None else f"{self.owner_type} #{self.owner_id}"
        return f"Wallet #{self.id} - {owner} - {self.available_balance}"

    @property
    def is_active(self) -> bool:
        return self.status == self.STATUS_ACTIVE


class WalletTransaction(models.Model):
    """Append-only ledger entry. new_balance == previous_balance + amount."""

    TYPE_ALLOCATION_DEBIT = 'allocation_debit'
    TYPE_ALLOCATION_CREDIT = 'allocation_credit'
    TYPE_ALLOCATION_COMMISSION = 'allocation_commission'
    TYPE_CHOICES = [
        (TYPE_ALLOCATION_DEBIT, 'Allocation debit'),
        (TYPE_ALLOCATION_CREDIT, 'Allocation credit'),
        (TYPE_ALLOCATION_COMMISSION, 'Allocation commission'),
        ('recharge', 'Recharge'),
        ('withdrawal', 'Withdrawal'),
        ('refund', 'Refund'),
        ('manual_adjustment', 'Manual adjustment'),
    ]

    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('completed', 'Completed'),
        ('failed', 'Failed'),
    ]

    wallet = models.ForeignKey(
        Wallet,
        on_delete=models.PROTECT,
        related_name='transactions'
    )

    type = models.CharField(max_length=30, choices=TYPE_CHOICES)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='completed')

    # Signed: debits are negative
    amount = models.DecimalField(max_digits=15, decimal_places=2)
    previous_balance = models.DecimalField(max_digits=15, decimal_places=2)
    new_balance = models.DecimalField(max_digits=15, decimal_places=2)

    description = models.TextField(blank=True)

    # Settlement idempotency key: (allocation, type)
    allocation = models.ForeignKey(
        'allocations.Allocation',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='wallet_transactions'
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'wallet_transactions'
        ordering = ['-created_at', '-id']
        constraints = [
            models.UniqueConstraint(
                fields=['allocation', 'type'],
                condition=Q(allocation__isnull=False),
                name='unique_allocation_transaction_type'
            ),
        ]

    def __str__(self):
        return f"{self.type} {self.amount} on wallet #{self.wallet_id}"
