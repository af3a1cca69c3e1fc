"""Tells what to show in the Django admin interface for wallets app"""

from django.contrib import admin
from .models import Wallet, WalletTransaction


@admin.register(Wallet)
class WalletAdmin(admin.ModelAdmin):
    list_display = ['id', 'owner_type', 'owner_id', 'available_balance', 'blocked_balance', 'status', 'updated_at']
    list_filter = ['owner_type', 'status']
    search_fields = ['owner_id']
    readonly_fields = ['available_balance', 'blocked_balance', 'created_at', 'updated_at']


@admin.register(WalletTransaction)
class WalletTransactionAdmin(admin.ModelAdmin):
    """Ledger rows are append-only; the admin is read-only."""
    list_display = ("id", "wallet", "type", "amount", "previous_balance", "new_balance", "allocation", "created_at")
    list_filter = ("type", "status")
    search_fields = ("wallet__id", "allocation__id", "description")
    date_hierarchy = 'created_at'

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
