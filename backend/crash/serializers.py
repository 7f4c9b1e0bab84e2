from decimal import Decimal

from rest_framework import serializers

from .models import GameRound


class GameRoundSerializer(serializers.ModelSerializer):
    class Meta:
        model = GameRound
        fields = [
            "round_id",
            "room",
            "crash_point",
            "occurred_at",
        ]


class AutoBetSerializer(serializers.Serializer):
    enabled = serializers.BooleanField()
    amount = serializers.DecimalField(
        max_digits=18, decimal_places=2, min_value=Decimal("0.01"), required=False
    )

    def validate(self, attrs):
        if attrs["enabled"] and "amount" not in attrs:
            raise serializers.ValidationError({"amount": "Required when enabling auto-bet."})
        return attrs


class AutoCashoutSerializer(serializers.Serializer):
    # null clears the target
    target = serializers.DecimalField(
        max_digits=8, decimal_places=2, min_value=Decimal("1.01"), allow_null=True
    )
