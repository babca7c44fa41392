"""
Finance App Serializers - Transactions & Wallet
"""

from rest_framework import serializers
from .models import Transaction, RidePayment


class TransactionSerializer(serializers.ModelSerializer):
    """Serializer for Transaction model."""

    user_phone = serializers.CharField(source='user.phone_number', read_only=True)
    type_display = serializers.CharField(source='get_transaction_type_display', read_only=True)

    class Meta:
        model = Transaction
        fields = [
            'id', 'user', 'user_phone', 'transaction_type', 'type_display', 'amount',
            'balance_before', 'balance_after', 'status',
            'ride', 'description', 'created_at'
        ]
        read_only_fields = fields


class TransactionListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for transaction listings."""

    class Meta:
        model = Transaction
        fields = ['id', 'transaction_type', 'amount', 'balance_after', 'ride', 'created_at']


class WalletSummarySerializer(serializers.Serializer):
    """Serializer for wallet summary response."""

    balance = serializers.DecimalField(max_digits=10, decimal_places=2)
    owes_platform = serializers.BooleanField()
    total_earned = serializers.DecimalField(max_digits=10, decimal_places=2)
    total_commission_paid = serializers.DecimalField(max_digits=10, decimal_places=2)
    completed_rides = serializers.IntegerField()


class RidePaymentSerializer(serializers.ModelSerializer):

    class Meta:
        model = RidePayment
        fields = [
            'id', 'ride', 'amount', 'status', 'provider_payment_id',
            'provider_status', 'created_at', 'confirmed_at'
        ]
        read_only_fields = fields
