from django.db import models


class Company(models.Model):
    """A company that books deliveries and driver allocations."""

    PRE_PAGO = 'PRE_PAGO'
    BOLETO = 'BOLETO'
    PAYMENT_TYPE_CHOICES = [
        (PRE_PAGO, 'Prepaid (wallet)'),
        (BOLETO, 'Postpaid (weekly boleto)'),
    ]

    name = models.CharField(max_length=150)
    payment_type = models.CharField(max_length=20, choices=PAYMENT_TYPE_CHOICES, default=PRE_PAGO)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'companies'
        verbose_name_plural = 'companies'

    def __str__(self):
        return f"{self.name} ({self.payment_type})"

    @property
    def is_prepaid(self) -> bool:
        return self.payment_type == self.PRE_PAGO
