from decimal import Decimal

from django.conf import settings
from rest_framework import serializers

from .models import Wallet, WalletTransaction


class DepositSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=18, decimal_places=2)

    def validate_amount(self, value):
        minimum = Decimal(str(getattr(settings, "WALLET_MIN_DEPOSIT", "1.00")))
        maximum = Decimal(str(getattr(settings, "WALLET_MAX_DEPOSIT", "10000.00")))
        if value < minimum:
            raise serializers.ValidationError(f"Minimum deposit is {minimum}")
        if value > maximum:
            raise serializers.ValidationError(f"Maximum deposit is {maximum}")
        return value


class WalletTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = WalletTransaction
        fields = ["id", "amount", "tx_type", "reference", "meta", "created_at"]


class WalletSerializer(serializers.ModelSerializer):
    class Meta:
        model = Wallet
        fields = ["balance", "updated_at"]
