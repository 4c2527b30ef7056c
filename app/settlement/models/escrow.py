"""
EscrowTransaction model: buyer funds held in trust for one order.

Created once when the payment for an order is confirmed and moved only
through the django-fsm transitions below. Status changes that move money
(release) are orchestrated by settlement.services.escrow_service, which
wraps the transition and the wallet credit in one database transaction.

Usage:
    from settlement.models import EscrowTransaction
    from settlement.state_machines import EscrowStatus

    escrow = EscrowTransaction.objects.get(order_id="ORD-1001")
    escrow.release(reason="Delivery confirmed", release_type=..., released_by="system:courier")
    escrow.save()
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin

from settlement.exceptions import ImmutableRecordError
from settlement.state_machines import EscrowStatus, ReleaseType


class EscrowTransaction(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Funds held for a single order until delivery, refund or dispute outcome.

    State Flow:
        HELD -> RELEASED
        HELD -> REFUNDED
        HELD -> DISPUTED -> RELEASED | REFUNDED

    Fields:
        order_id: External order id (one escrow per order)
        buyer_id: External buyer id
        vendor: Vendor receiving the funds on release
        amount: Gross order total in minor units
        platform_fee: Platform share of amount
        vendor_amount: Vendor share of amount
        fee_rate: Fee percentage applied when the hold was created
        status: Current FSM state
        held_at: When the hold was created (never changes)
        released_at: When the escrow reached released or refunded
        release_type: How the escrow was released
        release_reason: Why the escrow was released or refunded
        dispute_reason: Why the escrow was disputed
        released_by: Actor label of whoever settled the escrow
        version: Optimistic locking version

    Invariant:
        platform_fee + vendor_amount == amount, both non-negative
        (enforced by database check constraints).
    """

    # ==========================================================================
    # Order Identification
    # ==========================================================================

    order_id = models.CharField(
        max_length=64,
        unique=True,
        help_text="External order id - exactly one escrow per order",
    )

    buyer_id = models.CharField(
        max_length=64,
        db_index=True,
        help_text="External buyer id",
    )

    vendor = models.ForeignKey(
        "settlement.Vendor",
        on_delete=models.PROTECT,
        related_name="escrows",
        help_text="Vendor credited when the escrow is released",
    )

    payment_reference = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Payment gateway reference of the captured payment",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    amount = models.BigIntegerField(
        help_text="Gross order total in minor units",
    )

    platform_fee = models.BigIntegerField(
        help_text="Platform fee in minor units",
    )

    vendor_amount = models.BigIntegerField(
        help_text="Amount credited to the vendor on release, in minor units",
    )

    fee_rate = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        help_text="Fee percentage applied when the hold was created",
    )

    currency = models.CharField(
        max_length=3,
        default="ngn",
        help_text="ISO 4217 currency code (lowercase)",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=EscrowStatus.HELD,
        choices=EscrowStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the escrow (managed by FSM)",
    )

    held_at = models.DateTimeField(
        default=timezone.now,
        editable=False,
        help_text="When the funds were placed on hold",
    )

    released_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the escrow was released or refunded",
    )

    release_type = models.CharField(
        max_length=32,
        choices=ReleaseType.choices,
        blank=True,
        help_text="How the escrow was released",
    )

    release_reason = models.TextField(
        blank=True,
        help_text="Reason recorded for the release or refund",
    )

    dispute_reason = models.TextField(
        blank=True,
        help_text="Reason recorded when the escrow was disputed",
    )

    released_by = models.CharField(
        max_length=100,
        blank=True,
        help_text="Actor that released or refunded the escrow",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-held_at"]
        verbose_name = "Escrow Transaction"
        verbose_name_plural = "Escrow Transactions"
        db_table = "escrow_transactions"
        indexes = [
            models.Index(fields=["vendor", "status"], name="escrow_vendor_status_idx"),
            models.Index(fields=["status", "held_at"], name="escrow_status_held_at_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="escrow_amount_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(platform_fee__gte=0) & models.Q(vendor_amount__gte=0),
                name="escrow_split_non_negative",
            ),
            models.CheckConstraint(
                condition=models.Q(
                    amount=models.F("platform_fee") + models.F("vendor_amount")
                ),
                name="escrow_split_sums_to_amount",
            ),
        ]

    def __str__(self) -> str:
        return f"Escrow({self.order_id}, {self.status}, {self.amount})"

    def delete(self, *args, **kwargs):
        raise ImmutableRecordError(
            "Escrow transactions are never deleted",
            details={"escrow_id": str(self.pk)},
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in EscrowStatus.terminal()

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    def _settle(self, reason: str, released_by: str) -> None:
        self.released_at = timezone.now()
        self.release_reason = reason
        self.released_by = released_by

    @transition(
        field=status,
        source=EscrowStatus.HELD,
        target=EscrowStatus.RELEASED,
    )
    def release(self, reason: str, release_type: str, released_by: str) -> None:
        """
        Release held funds to the vendor.

        Transition: HELD -> RELEASED
        """
        self._settle(reason, released_by)
        self.release_type = release_type

    @transition(
        field=status,
        source=EscrowStatus.DISPUTED,
        target=EscrowStatus.RELEASED,
    )
    def release_after_dispute(self, reason: str, released_by: str) -> None:
        """
        Release funds after a dispute was resolved in the vendor's favour.

        Transition: DISPUTED -> RELEASED
        """
        self._settle(reason, released_by)
        self.release_type = ReleaseType.DISPUTE_RESOLUTION

    @transition(
        field=status,
        source=[EscrowStatus.HELD, EscrowStatus.DISPUTED],
        target=EscrowStatus.REFUNDED,
    )
    def refund(self, reason: str, released_by: str) -> None:
        """
        Return funds to the buyer.

        Transition: HELD/DISPUTED -> REFUNDED

        The refund itself is executed by the payment provider; no wallet
        entry is written.
        """
        self._settle(reason, released_by)

    @transition(
        field=status,
        source=EscrowStatus.HELD,
        target=EscrowStatus.DISPUTED,
    )
    def mark_disputed(self, reason: str) -> None:
        """
        Freeze the escrow pending a dispute decision.

        Transition: HELD -> DISPUTED
        """
        self.dispute_reason = reason
