from decimal import Decimal

from rest_framework import serializers

from .models import Wallet, Transaction


class WalletSerializer(serializers.ModelSerializer):
    class Meta:
        model = Wallet
        fields = ['id', 'role', 'balance', 'updated_at']
        read_only_fields = fields


class TransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = Transaction
        fields = ['id', 'reference', 'role', 'amount', 'type', 'status', 'method',
                  'gateway_txn_id', 'booking', 'metadata', 'created_at', 'updated_at']
        read_only_fields = fields


class AmountSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))


class TopUpSerializer(AmountSerializer):
    method = serializers.ChoiceField(choices=['gateway', 'wallet'], default='gateway')


class PaymentWebhookSerializer(serializers.Serializer):
    """Payload posted by the payment gateway once a charge or payout settles"""
    reference = serializers.CharField(max_length=64)
    status = serializers.CharField(max_length=30)
    transaction_id = serializers.CharField(max_length=128, required=False, allow_blank=True, allow_null=True)
