from django.conf import settings
from django.db import models


def _default_acceptance_timeout():
    return getattr(settings, "DEFAULT_DRIVER_ACCEPTANCE_TIMEOUT", 30)


class SystemSettings(models.Model):
    """Platform-wide operational settings (single row, pk=1)."""

    # Seconds a driver has to answer an allocation alert
    driver_acceptance_timeout = models.PositiveIntegerField(default=_default_acceptance_timeout)

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'system_settings'
        verbose_name_plural = 'system settings'

    def __str__(self):
        return f"System settings (acceptance timeout {self.driver_acceptance_timeout}s)"
