"""Tells what to show in the Django admin interface for allocations app"""

from django.contrib import admin
from .models import Allocation, AllocationAlert


@admin.register(Allocation)
class AllocationAdmin(admin.ModelAdmin):
    """Allocation admin"""
    list_display = ['id', 'company', 'driver', 'allocation_date', 'start_time', 'end_time',
                    'status', 'total_amount', 'driver_amount', 'commission_amount']
    list_filter = ['status', 'allocation_date']
    search_fields = ['company__name', 'driver__name']
    readonly_fields = ['created_at', 'accepted_at', 'started_at', 'completed_at', 'updated_at']
    date_hierarchy = 'allocation_date'


@admin.register(AllocationAlert)
class AllocationAlertAdmin(admin.ModelAdmin):
    list_display = ("allocation", "driver", "status", "notified_at", "expires_at", "responded_at")
    list_filter = ("status",)
    search_fields = ("allocation__id", "driver__name")
