"""
DRF serializers for the settlement API.

Response serializers render settlement models; request serializers only
validate shape. Business rules (status checks, balances, ownership) are
enforced by the services, which raise settlement exceptions rendered by
core.exception_handler.
"""

from __future__ import annotations

from rest_framework import serializers

from settlement.models import (
    Dispute,
    EscrowTransaction,
    Payout,
    WalletTransaction,
)
from settlement.state_machines import DisputeOutcome, DisputeType, FiledByType, PayoutOutcome
from settlement.types import PayoutDestination


# =============================================================================
# Responses
# =============================================================================


class EscrowTransactionSerializer(serializers.ModelSerializer):
    vendor_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = EscrowTransaction
        fields = [
            "id",
            "order_id",
            "buyer_id",
            "vendor_id",
            "amount",
            "platform_fee",
            "vendor_amount",
            "fee_rate",
            "currency",
            "status",
            "payment_reference",
            "held_at",
            "released_at",
            "release_type",
            "release_reason",
            "dispute_reason",
            "released_by",
            "version",
        ]
        read_only_fields = fields


class WalletBalanceSerializer(serializers.Serializer):
    vendor_id = serializers.UUIDField()
    balance = serializers.IntegerField(help_text="Spendable balance in minor units")
    currency = serializers.CharField()


class WalletTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = WalletTransaction
        fields = [
            "id",
            "sequence",
            "type",
            "amount",
            "balance_after",
            "reference",
            "reference_type",
            "description",
            "status",
            "created_by",
            "created_at",
        ]
        read_only_fields = fields


class PayoutSerializer(serializers.ModelSerializer):
    vendor_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = Payout
        fields = [
            "id",
            "vendor_id",
            "amount",
            "currency",
            "bank_name",
            "bank_code",
            "account_number",
            "account_name",
            "status",
            "reference",
            "provider_reference",
            "processed_at",
            "failure_reason",
            "created_at",
            "version",
        ]
        read_only_fields = fields


class DisputeSerializer(serializers.ModelSerializer):
    escrow_id = serializers.UUIDField(read_only=True)
    filed_by_id = serializers.UUIDField(read_only=True, allow_null=True)
    resolved_by_id = serializers.UUIDField(read_only=True, allow_null=True)

    class Meta:
        model = Dispute
        fields = [
            "id",
            "escrow_id",
            "order_id",
            "filed_by_id",
            "filed_by_type",
            "dispute_type",
            "reason",
            "evidence_urls",
            "status",
            "outcome",
            "resolution",
            "resolved_by_id",
            "resolved_at",
            "created_at",
            "version",
        ]
        read_only_fields = fields


# =============================================================================
# Requests
# =============================================================================


class AdminEscrowActionSerializer(serializers.Serializer):
    """Body of force-release / force-refund."""

    reason = serializers.CharField()
    expected_version = serializers.IntegerField(required=False, min_value=1)


class PayoutRequestSerializer(serializers.Serializer):
    amount = serializers.IntegerField(min_value=1, help_text="Amount in minor units")
    bank_name = serializers.CharField(max_length=120)
    bank_code = serializers.CharField(max_length=20, required=False, allow_blank=True)
    account_number = serializers.CharField(max_length=34)
    account_name = serializers.CharField(max_length=200)
    idempotency_key = serializers.CharField(max_length=255, required=False)

    def to_destination(self) -> PayoutDestination:
        data = self.validated_data
        return PayoutDestination(
            bank_name=data["bank_name"],
            account_number=data["account_number"],
            account_name=data["account_name"],
            bank_code=data.get("bank_code", ""),
        )


class PayoutResolveSerializer(serializers.Serializer):
    outcome = serializers.ChoiceField(
        choices=[PayoutOutcome.SUCCESS, PayoutOutcome.FAILURE]
    )
    reason = serializers.CharField()


class DisputeCreateSerializer(serializers.Serializer):
    order_id = serializers.CharField(max_length=64)
    filed_by_type = serializers.ChoiceField(choices=FiledByType.choices)
    dispute_type = serializers.ChoiceField(
        choices=DisputeType.choices, default=DisputeType.OTHER
    )
    reason = serializers.CharField()
    evidence_urls = serializers.ListField(
        child=serializers.URLField(), required=False, default=list
    )


class DisputeResolveSerializer(serializers.Serializer):
    outcome = serializers.ChoiceField(choices=DisputeOutcome.choices)
    resolution = serializers.CharField()


class ProofOfDeliverySerializer(serializers.Serializer):
    order_id = serializers.CharField(max_length=64)
    recipient_name = serializers.CharField(max_length=200, allow_blank=True)
    photo_ref = serializers.CharField(max_length=500, allow_blank=True)


class DeliveryOutcomeSerializer(serializers.Serializer):
    order_id = serializers.CharField()
    outcome = serializers.CharField()
