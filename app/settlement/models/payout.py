"""
Payout model for vendor withdrawals to a bank account.

A Payout is created together with the wallet debit that funds it. Its
status then advances only through provider callbacks or admin actions;
a failed payout is offset by a wallet reversal written by the payout
service in the same transaction as the FAILED transition.

Usage:
    from settlement.models import Payout

    payout.mark_processing()   # pending -> processing
    payout.save()

    payout.complete(provider_reference="FLW-TRF-123")
    payout.save()
"""

from __future__ import annotations

import uuid

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin

from settlement.state_machines import PayoutStatus


def generate_payout_reference() -> str:
    """Reference sent to the payout provider and echoed in its callbacks."""
    return f"PAYOUT-{uuid.uuid4().hex.upper()}"


class Payout(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    A withdrawal of wallet balance to a vendor's bank account.

    State Flow:
        PENDING -> PROCESSING -> COMPLETED
        PENDING/PROCESSING -> FAILED
        PENDING -> COMPLETED (provider settled without an intermediate update)

    Fields:
        vendor: Vendor withdrawing funds
        amount: Amount in minor units (debited at request time)
        bank_name, bank_code, account_number, account_name: Destination
        status: Current FSM state
        reference: Our reference, sent to the provider
        provider_reference: Provider's transfer reference
        idempotency_key: Client key to make payout requests retry-safe
        processed_at: When the payout reached a terminal state
        failure_reason: Provider or admin reason for a failure
        version: Optimistic locking version
    """

    # ==========================================================================
    # Relationships & Amount
    # ==========================================================================

    vendor = models.ForeignKey(
        "settlement.Vendor",
        on_delete=models.PROTECT,
        related_name="payouts",
        help_text="Vendor receiving the payout",
    )

    amount = models.BigIntegerField(
        help_text="Payout amount in minor units",
    )

    currency = models.CharField(
        max_length=3,
        default="ngn",
        help_text="ISO 4217 currency code (lowercase)",
    )

    # ==========================================================================
    # Destination
    # ==========================================================================

    bank_name = models.CharField(max_length=120)
    bank_code = models.CharField(max_length=20, blank=True)
    account_number = models.CharField(max_length=34)
    account_name = models.CharField(max_length=200)

    # ==========================================================================
    # State & Provider
    # ==========================================================================

    status = FSMField(
        default=PayoutStatus.PENDING,
        choices=PayoutStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the payout (managed by FSM)",
    )

    reference = models.CharField(
        max_length=64,
        unique=True,
        default=generate_payout_reference,
        editable=False,
        help_text="Our payout reference, sent to the provider",
    )

    provider_reference = models.CharField(
        max_length=255,
        blank=True,
        help_text="Transfer reference reported by the provider",
    )

    idempotency_key = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Client-supplied key making the request retry-safe",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payout completed or failed",
    )

    failure_reason = models.TextField(
        blank=True,
        help_text="Reason the payout failed",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        db_table = "payouts"
        verbose_name = "Payout"
        verbose_name_plural = "Payouts"
        indexes = [
            models.Index(fields=["vendor", "status"], name="payout_vendor_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="payout_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Payout({self.reference}, {self.status}, {self.amount})"

    @property
    def is_terminal(self) -> bool:
        return self.status in PayoutStatus.terminal()

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=PayoutStatus.PENDING,
        target=PayoutStatus.PROCESSING,
    )
    def mark_processing(self, provider_reference: str = "") -> None:
        """
        Provider accepted the transfer.

        Transition: PENDING -> PROCESSING
        """
        if provider_reference:
            self.provider_reference = provider_reference

    @transition(
        field=status,
        source=[PayoutStatus.PENDING, PayoutStatus.PROCESSING],
        target=PayoutStatus.COMPLETED,
    )
    def complete(self, provider_reference: str = "") -> None:
        """
        Provider confirmed the transfer.

        Transition: PENDING/PROCESSING -> COMPLETED
        """
        if provider_reference:
            self.provider_reference = provider_reference
        self.processed_at = timezone.now()

    @transition(
        field=status,
        source=[PayoutStatus.PENDING, PayoutStatus.PROCESSING],
        target=PayoutStatus.FAILED,
    )
    def fail(self, reason: str = "", provider_reference: str = "") -> None:
        """
        Provider reported the transfer failed.

        Transition: PENDING/PROCESSING -> FAILED

        The caller must write the compensating wallet reversal in the same
        transaction.
        """
        if provider_reference:
            self.provider_reference = provider_reference
        self.failure_reason = reason
        self.processed_at = timezone.now()
