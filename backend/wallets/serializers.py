from rest_framework import serializers

from .models import Wallet, WalletTransaction


class WalletSerializer(serializers.ModelSerializer):
    """Serializer for wallet balances"""

    class Meta:
        model = Wallet
        fields = ['id', 'owner_id', 'owner_type', 'available_balance', 'blocked_balance',
                  'status', 'updated_at']
        read_only_fields = fields


class WalletTransactionSerializer(serializers.ModelSerializer):
    """Serializer for ledger rows"""

    class Meta:
        model = WalletTransaction
        fields = ['id', 'wallet', 'type', 'status', 'amount', 'previous_balance',
                  'new_balance', 'description', 'allocation', 'created_at']
        read_only_fields = fields
