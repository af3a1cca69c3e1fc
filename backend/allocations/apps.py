"""Allocations app configuration."""

from django.apps import AppConfig


class AllocationsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'allocations'

    def ready(self):
        from .scheduler import autostart_allocation_jobs
        autostart_allocation_jobs()
