"""
Tests for settlement model constraints and helpers.

Database constraints back the service-level rules: one escrow per order,
fee split adding up, non-negative wallet balances and append-only ledger
rows.
"""

from datetime import timedelta

import pytest
from django.db import IntegrityError, transaction
from django.utils import timezone

from settlement.exceptions import ImmutableRecordError
from settlement.models import EscrowTransaction, Vendor, WalletTransaction, WebhookEvent
from settlement.state_machines import (
    DisputeStatus,
    EscrowStatus,
    WalletTransactionType,
    WebhookEventStatus,
)
from settlement.tests.factories import (
    DisputeFactory,
    EscrowTransactionFactory,
    PayoutFactory,
    VendorFactory,
    WebhookEventFactory,
    fund_wallet,
)
from settlement.types import Actor


# =============================================================================
# EscrowTransaction
# =============================================================================


class TestEscrowTransactionModel:
    """Tests for EscrowTransaction constraints."""

    def test_defaults(self, db):
        """Should start held with held_at set and no release data."""
        escrow = EscrowTransactionFactory()

        assert escrow.status == EscrowStatus.HELD
        assert escrow.held_at is not None
        assert escrow.released_at is None
        assert escrow.version == 1
        assert escrow.platform_fee + escrow.vendor_amount == escrow.amount

    def test_one_escrow_per_order(self, db):
        """Should reject a second escrow for the same order id."""
        EscrowTransactionFactory(order_id="ORD-DUP")

        with pytest.raises(IntegrityError), transaction.atomic():
            EscrowTransactionFactory(order_id="ORD-DUP")

    def test_split_must_sum_to_amount(self, db):
        """Should reject a split that does not add up to the amount."""
        with pytest.raises(IntegrityError), transaction.atomic():
            EscrowTransactionFactory(amount=1_000_000, platform_fee=50_000, vendor_amount=900_000)

    def test_amount_must_be_positive(self, db):
        """Should reject a zero amount."""
        with pytest.raises(IntegrityError), transaction.atomic():
            EscrowTransactionFactory(amount=0, platform_fee=0, vendor_amount=0)

    def test_split_parts_non_negative(self, db):
        """Should reject a negative platform fee even when the sum matches."""
        with pytest.raises(IntegrityError), transaction.atomic():
            EscrowTransactionFactory(amount=100, platform_fee=-10, vendor_amount=110)

    def test_version_increments_on_save(self, db):
        """Should bump the version on every update."""
        escrow = EscrowTransactionFactory()

        escrow.mark_disputed(reason="Damaged")
        escrow.save()

        assert escrow.version == 2
        assert EscrowTransaction.objects.get(pk=escrow.pk).version == 2

    def test_cannot_delete(self, db):
        """Should never delete an escrow row."""
        escrow = EscrowTransactionFactory()

        with pytest.raises(ImmutableRecordError):
            escrow.delete()

        assert EscrowTransaction.objects.filter(pk=escrow.pk).exists()

    def test_str(self, db):
        escrow = EscrowTransactionFactory(order_id="ORD-STR")

        assert str(escrow) == "Escrow(ORD-STR, held, 1000000)"


# =============================================================================
# Vendor
# =============================================================================


class TestVendorModel:
    """Tests for Vendor."""

    def test_wallet_starts_empty(self, db):
        """Should start with a zero balance."""
        assert VendorFactory().wallet_balance == 0

    def test_balance_cannot_go_negative(self, db):
        """Should reject a negative cached balance at the database."""
        vendor = VendorFactory()

        with pytest.raises(IntegrityError), transaction.atomic():
            Vendor.objects.filter(pk=vendor.pk).update(wallet_balance=-1)

    def test_is_operated_by(self, db):
        """Should match the vendor's own user only."""
        vendor = VendorFactory()

        assert vendor.is_operated_by(Actor.from_user(vendor.user))
        assert not vendor.is_operated_by(Actor(id="someone-else"))

    def test_vendor_without_user_is_operated_by_nobody(self, db):
        vendor = VendorFactory(user=None)

        assert not vendor.is_operated_by(Actor(id="None"))


# =============================================================================
# WalletTransaction
# =============================================================================


class TestWalletTransactionModel:
    """Tests for the append-only wallet ledger rows."""

    def test_cannot_update(self, db):
        """Should refuse to save an existing entry."""
        vendor = VendorFactory()
        entry = fund_wallet(vendor, 1_000)

        entry.description = "edited"
        with pytest.raises(ImmutableRecordError):
            entry.save()

    def test_cannot_delete(self, db):
        """Should refuse to delete an entry."""
        vendor = VendorFactory()
        entry = fund_wallet(vendor, 1_000)

        with pytest.raises(ImmutableRecordError):
            entry.delete()

        assert WalletTransaction.objects.filter(pk=entry.pk).exists()

    def test_sequence_unique_per_vendor(self, db):
        """Should reject two entries with the same sequence for one vendor."""
        vendor = VendorFactory()
        fund_wallet(vendor, 1_000)

        with pytest.raises(IntegrityError), transaction.atomic():
            WalletTransaction.objects.create(
                vendor=vendor,
                sequence=1,
                type=WalletTransactionType.CREDIT,
                amount=500,
                balance_after=1_500,
                idempotency_key="dup-sequence",
            )

    def test_amount_cannot_be_zero(self, db):
        vendor = VendorFactory()

        with pytest.raises(IntegrityError), transaction.atomic():
            WalletTransaction.objects.create(
                vendor=vendor,
                sequence=1,
                type=WalletTransactionType.ADJUSTMENT,
                amount=0,
                balance_after=0,
                idempotency_key="zero",
            )

    def test_str(self, db):
        vendor = VendorFactory()
        entry = fund_wallet(vendor, 1_000)

        assert str(entry) == "Adjustment #1: +1000"


# =============================================================================
# Payout
# =============================================================================


class TestPayoutModel:
    """Tests for Payout."""

    def test_reference_generated(self, db):
        """Should generate a unique PAYOUT- reference."""
        first = PayoutFactory()
        second = PayoutFactory()

        assert first.reference.startswith("PAYOUT-")
        assert first.reference != second.reference

    def test_amount_must_be_positive(self, db):
        with pytest.raises(IntegrityError), transaction.atomic():
            PayoutFactory(amount=0)

    def test_idempotency_key_unique(self, db):
        PayoutFactory(idempotency_key="payout-key-1")

        with pytest.raises(IntegrityError), transaction.atomic():
            PayoutFactory(idempotency_key="payout-key-1")


# =============================================================================
# Dispute
# =============================================================================


class TestDisputeModel:
    """Tests for Dispute."""

    def test_one_active_dispute_per_escrow(self, db):
        """Should reject a second open dispute on the same escrow."""
        dispute = DisputeFactory()

        with pytest.raises(IntegrityError), transaction.atomic():
            DisputeFactory(escrow=dispute.escrow)

    def test_resolved_dispute_allows_new_one(self, db):
        """Should only count open and investigating disputes."""
        dispute = DisputeFactory(status=DisputeStatus.RESOLVED)

        second = DisputeFactory(escrow=dispute.escrow)

        assert second.status == DisputeStatus.OPEN


# =============================================================================
# WebhookEvent
# =============================================================================


class TestWebhookEventModel:
    """Tests for WebhookEvent helpers."""

    def test_unique_per_source(self, db):
        """Should reject the same external id twice for one source."""
        WebhookEventFactory(external_event_id="evt-1")

        with pytest.raises(IntegrityError), transaction.atomic():
            WebhookEventFactory(external_event_id="evt-1")

    def test_same_id_different_source(self, db):
        """Should allow the same external id from different providers."""
        WebhookEventFactory(external_event_id="evt-2", source="courier")
        WebhookEventFactory(external_event_id="evt-2", source="payment")

    def test_mark_processing_counts_attempts(self, db):
        event = WebhookEventFactory()

        event.mark_processing()
        event.mark_processing()

        assert event.status == WebhookEventStatus.PROCESSING
        assert event.retry_count == 2

    def test_mark_processed_clears_error(self, db):
        event = WebhookEventFactory(error_message="boom")

        event.mark_processed()

        assert event.is_processed
        assert event.processed_at is not None
        assert event.error_message is None

    def test_can_retry_under_cap(self, db, settings):
        """Should allow retries only while under WEBHOOK_MAX_RETRIES."""
        settings.WEBHOOK_MAX_RETRIES = 3

        assert WebhookEventFactory(status=WebhookEventStatus.FAILED, retry_count=2).can_retry
        assert not WebhookEventFactory(status=WebhookEventStatus.FAILED, retry_count=3).can_retry
        assert not WebhookEventFactory(status=WebhookEventStatus.PENDING).can_retry

    def test_created_at_ordering(self, db):
        """Should list newest events first."""
        older = WebhookEventFactory()
        newer = WebhookEventFactory()
        WebhookEvent.objects.filter(pk=older.pk).update(
            created_at=timezone.now() - timedelta(hours=1)
        )

        assert WebhookEvent.objects.first() == newer
