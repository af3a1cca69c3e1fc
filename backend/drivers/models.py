from django.db import models


class Driver(models.Model):
    """Delivery driver that can be allocated to a company"""
    STATUS_CHOICES = [
        ('available', 'Available'),
        ('busy', 'Busy'),
        ('offline', 'Offline'),
    ]

    name = models.CharField(max_length=150)
    phone_number = models.CharField(max_length=20, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='offline')

    # Firebase Cloud Messaging registration token (cleared when Firebase rejects it)
    fcm_token = models.CharField(max_length=255, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'drivers'

    def __str__(self):
        return f"{self.name} ({self.status})"
