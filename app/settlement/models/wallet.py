"""
WalletTransaction model: the append-only vendor wallet ledger.

Each row is one signed movement of a vendor's spendable balance. Rows are
numbered per vendor (``sequence`` 1, 2, 3, ...) and carry the running
balance after the movement, so for every vendor:

    balance_after[n] == balance_after[n - 1] + amount[n]

Rows are never updated or deleted. Corrections are new rows (a failed
payout debit is offset by a REVERSAL credit).

Write rows only through settlement.services.wallet_ledger.WalletLedger.
"""

from __future__ import annotations

from django.db import models
from django.db.models import Q

from core.model_mixins import UUIDPrimaryKeyMixin

from settlement.exceptions import ImmutableRecordError
from settlement.state_machines import WalletTransactionStatus, WalletTransactionType


class WalletTransaction(UUIDPrimaryKeyMixin, models.Model):
    """
    One entry in a vendor's wallet ledger.

    Fields:
        vendor: Wallet owner
        sequence: Position in the vendor's ledger, starting at 1
        type: credit, debit, adjustment or reversal
        amount: Signed amount in minor units (positive credits)
        balance_after: Vendor balance immediately after this entry
        reference: Id of the escrow or payout behind the entry
        reference_type: "escrow" or "payout"
        description: Text shown in the vendor's wallet history
        status: Settlement status of the entry
        idempotency_key: Unique key preventing duplicate entries
        created_by: Actor label
        created_at: When the entry was recorded

    Constraints:
        - (vendor, sequence) unique
        - amount non-zero, balance_after non-negative
        - idempotency_key unique
    """

    vendor = models.ForeignKey(
        "settlement.Vendor",
        on_delete=models.PROTECT,
        related_name="wallet_transactions",
        help_text="Vendor whose wallet this entry belongs to",
    )

    sequence = models.PositiveBigIntegerField(
        help_text="Position in the vendor's ledger (1-based, gap-free)",
    )

    type = models.CharField(
        max_length=20,
        choices=WalletTransactionType.choices,
        help_text="Kind of wallet movement",
    )

    amount = models.BigIntegerField(
        help_text="Signed amount in minor units (positive = credit)",
    )

    balance_after = models.BigIntegerField(
        help_text="Vendor balance right after this entry, in minor units",
    )

    reference = models.CharField(
        max_length=64,
        blank=True,
        db_index=True,
        help_text="Id of the escrow transaction or payout behind this entry",
    )

    reference_type = models.CharField(
        max_length=20,
        blank=True,
        help_text="Kind of record referenced (escrow, payout)",
    )

    description = models.CharField(
        max_length=255,
        blank=True,
        help_text="Human-readable description",
    )

    status = models.CharField(
        max_length=20,
        choices=WalletTransactionStatus.choices,
        default=WalletTransactionStatus.COMPLETED,
        help_text="Settlement status of this entry",
    )

    idempotency_key = models.CharField(
        max_length=255,
        unique=True,
        help_text="Unique key to prevent duplicate entries",
    )

    created_by = models.CharField(
        max_length=100,
        blank=True,
        help_text="Actor that caused this entry",
    )

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="Timestamp when this entry was recorded",
    )

    class Meta:
        ordering = ["-sequence"]
        db_table = "wallet_transactions"
        verbose_name = "Wallet Transaction"
        verbose_name_plural = "Wallet Transactions"
        indexes = [
            models.Index(fields=["reference_type", "reference"], name="wallet_tx_reference_idx"),
            models.Index(fields=["vendor", "type"], name="wallet_tx_vendor_type_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["vendor", "sequence"],
                name="wallet_transaction_unique_sequence",
            ),
            models.CheckConstraint(
                condition=~Q(amount=0),
                name="wallet_transaction_amount_non_zero",
            ),
            models.CheckConstraint(
                condition=Q(balance_after__gte=0),
                name="wallet_transaction_balance_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.get_type_display()} #{self.sequence}: {self.amount:+d}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableRecordError(
                "Wallet transactions are append-only",
                details={"wallet_transaction_id": str(self.pk)},
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableRecordError(
            "Wallet transactions are append-only",
            details={"wallet_transaction_id": str(self.pk)},
        )
