from django.db import models
from django.utils import timezone


class Allocation(models.Model):
    """Reservation of one driver's exclusive capacity for one company over a time window."""

    PENDING = 'pending'
    ACCEPTED = 'accepted'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    EXPIRED = 'expired'

    STATUS_CHOICES = [
        (PENDING, 'Pending'),
        (ACCEPTED, 'Accepted'),
        (IN_PROGRESS, 'In Progress'),
        (COMPLETED, 'Completed'),
        (EXPIRED, 'Expired'),
    ]

    # Allowed status edges; terminal states have none
    TRANSITIONS = {
        PENDING: {ACCEPTED, EXPIRED},
        ACCEPTED: {IN_PROGRESS, COMPLETED},
        IN_PROGRESS: {COMPLETED},
        COMPLETED: set(),
        EXPIRED: set(),
    }

    SETTLEABLE_STATUSES = (ACCEPTED, IN_PROGRESS)

    # Foreign keys
    company = models.ForeignKey(
        'companies.Company',
        on_delete=models.PROTECT,
        related_name='allocations'
    )

    driver = models.ForeignKey(
        'drivers.Driver',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='allocations'
    )

    # Window in the business time zone's civil calendar/clock
    allocation_date = models.DateField()
    start_time = models.TimeField()
    end_time = models.TimeField()

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=PENDING)

    # Amounts (driver_amount + commission_amount == total_amount)
    total_amount = models.DecimalField(max_digits=10, decimal_places=2)
    driver_amount = models.DecimalField(max_digits=10, decimal_places=2)
    commission_amount = models.DecimalField(max_digits=10, decimal_places=2)
    commission_percentage = models.DecimalField(max_digits=5, decimal_places=2, default=0)

    # Timestamps
    created_at = models.DateTimeField(default=timezone.now)
    accepted_at = models.DateTimeField(null=True, blank=True)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'allocations'
        ordering = ['-allocation_date', '-start_time']
        indexes = [
            models.Index(fields=['status', 'allocation_date'], name='allocation_status_date_idx'),
            models.Index(fields=['status', 'created_at'], name='allocation_status_created_idx'),
        ]

    def __str__(self):
        return f"Allocation #{self.id} - {self.company_id} - {self.allocation_date} {self.start_time}-{self.end_time} - {self.status}"

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in self.TRANSITIONS.get(self.status, set())

    def amounts_reconcile(self) -> bool:
        return self.driver_amount + self.commission_amount == self.total_amount

    @property
    def is_terminal(self) -> bool:
        return not self.TRANSITIONS.get(self.status)


class AllocationAlert(models.Model):
    """Time-boxed offer of a pending allocation to one candidate driver."""

    NOTIFIED = 'notified'
    ACCEPTED = 'accepted'
    DECLINED = 'declined'
    EXPIRED = 'expired'

    STATUS_CHOICES = [
        (NOTIFIED, 'Notified'),
        (ACCEPTED, 'Accepted'),
        (DECLINED, 'Declined'),
        (EXPIRED, 'Expired'),
    ]

    allocation = models.ForeignKey(
        Allocation,
        on_delete=models.CASCADE,
        related_name='alerts'
    )

    driver = models.ForeignKey(
        'drivers.Driver',
        on_delete=models.CASCADE,
        related_name='allocation_alerts'
    )

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=NOTIFIED)

    notified_at = models.DateTimeField(default=timezone.now)
    responded_at = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField()

    class Meta:
        db_table = 'allocation_alerts'
        ordering = ['notified_at']
        constraints = [
            models.UniqueConstraint(
                fields=['allocation', 'driver'],
                name='unique_allocation_driver_alert'
            )
        ]
        indexes = [
            models.Index(fields=['status', 'expires_at'], name='alert_status_expires_idx'),
        ]

    def __str__(self):
        return f"Alert #{self.id} - Allocation {self.allocation_id} -> Driver {self.driver_id} ({self.status})"

    def is_live(self, now) -> bool:
        return self.status == self.NOTIFIED and now < self.expires_at
