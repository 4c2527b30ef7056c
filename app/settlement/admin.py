"""
Settlement admin configuration.

The admin is a read-mostly window into escrow, wallet and payout state.
Money-moving changes go through the service layer (force-release,
payout resolution, dispute decisions), never through admin forms.
"""

from django.contrib import admin

from settlement.models import (
    DeliveryStatusEvent,
    Dispute,
    EscrowTransaction,
    Payout,
    Vendor,
    WalletTransaction,
    WebhookEvent,
)


def _format_minor(amount: int, currency: str) -> str:
    return f"{amount / 100:,.2f} {currency.upper()}"


@admin.register(Vendor)
class VendorAdmin(admin.ModelAdmin):
    list_display = ["id", "business_name", "user", "balance_display", "created_at"]
    search_fields = ["id", "business_name", "user__email"]
    readonly_fields = ["id", "wallet_balance", "created_at", "updated_at"]
    ordering = ["business_name"]

    def balance_display(self, obj: Vendor) -> str:
        return _format_minor(obj.wallet_balance, obj.currency)

    balance_display.short_description = "Wallet balance"


@admin.register(EscrowTransaction)
class EscrowTransactionAdmin(admin.ModelAdmin):
    """
    Admin configuration for EscrowTransaction.

    Status is an FSM field; transitions are only reachable via EscrowService.
    """

    list_display = [
        "order_id",
        "vendor",
        "amount_display",
        "status",
        "release_type",
        "held_at",
        "released_at",
    ]
    list_filter = ["status", "release_type", "currency", "held_at"]
    search_fields = ["id", "order_id", "buyer_id", "payment_reference", "vendor__business_name"]
    readonly_fields = [
        "id",
        "order_id",
        "buyer_id",
        "vendor",
        "payment_reference",
        "amount",
        "platform_fee",
        "vendor_amount",
        "fee_rate",
        "currency",
        "status",
        "held_at",
        "released_at",
        "release_type",
        "release_reason",
        "dispute_reason",
        "released_by",
        "version",
        "created_at",
        "updated_at",
    ]
    ordering = ["-held_at"]

    fieldsets = (
        (None, {"fields": ("id", "order_id", "buyer_id", "vendor", "payment_reference")}),
        (
            "Amounts",
            {"fields": ("amount", "platform_fee", "vendor_amount", "fee_rate", "currency")},
        ),
        (
            "Status",
            {
                "fields": (
                    "status",
                    "held_at",
                    "released_at",
                    "release_type",
                    "release_reason",
                    "dispute_reason",
                    "released_by",
                ),
            },
        ),
        ("Metadata", {"fields": ("version", "created_at", "updated_at"), "classes": ("collapse",)}),
    )

    def amount_display(self, obj: EscrowTransaction) -> str:
        return _format_minor(obj.amount, obj.currency)

    amount_display.short_description = "Amount"

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(WalletTransaction)
class WalletTransactionAdmin(admin.ModelAdmin):
    """Wallet entries are append-only: no add, change or delete."""

    list_display = ["vendor", "sequence", "type", "amount", "balance_after", "reference", "created_at"]
    list_filter = ["type", "status", "created_at"]
    search_fields = ["vendor__business_name", "reference", "idempotency_key"]
    ordering = ["vendor", "-sequence"]

    def has_add_permission(self, request) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Payout)
class PayoutAdmin(admin.ModelAdmin):
    list_display = ["reference", "vendor", "amount_display", "status", "processed_at", "created_at"]
    list_filter = ["status", "created_at"]
    search_fields = ["id", "reference", "provider_reference", "vendor__business_name"]
    readonly_fields = [
        "id",
        "vendor",
        "amount",
        "currency",
        "status",
        "reference",
        "provider_reference",
        "idempotency_key",
        "processed_at",
        "failure_reason",
        "version",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]

    def amount_display(self, obj: Payout) -> str:
        return _format_minor(obj.amount, obj.currency)

    amount_display.short_description = "Amount"

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Dispute)
class DisputeAdmin(admin.ModelAdmin):
    list_display = ["order_id", "filed_by_type", "dispute_type", "status", "outcome", "created_at"]
    list_filter = ["status", "dispute_type", "outcome", "filed_by_type"]
    search_fields = ["id", "order_id", "reason"]
    readonly_fields = [
        "id",
        "escrow",
        "order_id",
        "filed_by",
        "filed_by_type",
        "status",
        "outcome",
        "resolution",
        "resolved_by",
        "resolved_at",
        "version",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]

    def has_add_permission(self, request) -> bool:
        return False


@admin.register(DeliveryStatusEvent)
class DeliveryStatusEventAdmin(admin.ModelAdmin):
    list_display = ["order_id", "delivery_id", "status", "source", "outcome", "occurred_at"]
    list_filter = ["status", "source", "outcome"]
    search_fields = ["order_id", "delivery_id", "idempotency_key"]
    ordering = ["-created_at"]

    def has_add_permission(self, request) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    list_display = ["source", "event_type", "external_event_id", "status", "retry_count", "created_at"]
    list_filter = ["source", "event_type", "status", "created_at"]
    search_fields = ["id", "external_event_id"]
    readonly_fields = [
        "id",
        "source",
        "external_event_id",
        "event_type",
        "payload",
        "status",
        "processed_at",
        "error_message",
        "retry_count",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]

    def has_add_permission(self, request) -> bool:
        return False
