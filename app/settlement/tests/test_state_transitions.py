"""
Tests for state machine transitions using django-fsm.

Tests valid and invalid transitions for EscrowTransaction, Payout and
Dispute models. Services add locking and wallet entries on top of these;
see test_escrow_service.py and test_payout_service.py.
"""

import pytest
from django_fsm import TransitionNotAllowed

from settlement.state_machines import (
    DisputeOutcome,
    DisputeStatus,
    EscrowStatus,
    PayoutStatus,
    ReleaseType,
)
from settlement.tests.factories import (
    DisputeFactory,
    EscrowTransactionFactory,
    PayoutFactory,
)


# =============================================================================
# EscrowTransaction State Transition Tests
# =============================================================================


class TestEscrowTransitions:
    """Tests for EscrowTransaction state machine transitions."""

    # -------------------------------------------------------------------------
    # Valid Transitions
    # -------------------------------------------------------------------------

    def test_held_to_released(self, db):
        """Should transition from held to released and record who released it."""
        escrow = EscrowTransactionFactory()

        escrow.release(
            reason="Delivery confirmed",
            release_type=ReleaseType.AUTO_DELIVERY,
            released_by="system:courier_webhook",
        )
        escrow.save()

        assert escrow.status == EscrowStatus.RELEASED
        assert escrow.released_at is not None
        assert escrow.release_type == ReleaseType.AUTO_DELIVERY
        assert escrow.released_by == "system:courier_webhook"
        assert escrow.release_reason == "Delivery confirmed"

    def test_held_to_refunded(self, db):
        """Should transition from held to refunded."""
        escrow = EscrowTransactionFactory()

        escrow.refund(reason="Order cancelled", released_by="admin:1")
        escrow.save()

        assert escrow.status == EscrowStatus.REFUNDED
        assert escrow.released_at is not None

    def test_held_to_disputed(self, db):
        """Should transition from held to disputed and keep the reason."""
        escrow = EscrowTransactionFactory()

        escrow.mark_disputed(reason="Item damaged")
        escrow.save()

        assert escrow.status == EscrowStatus.DISPUTED
        assert escrow.dispute_reason == "Item damaged"
        assert escrow.released_at is None

    def test_disputed_to_released(self, db):
        """Should release after a dispute with the dispute release type."""
        escrow = EscrowTransactionFactory(status=EscrowStatus.DISPUTED)

        escrow.release_after_dispute(reason="Vendor proved delivery", released_by="admin:1")
        escrow.save()

        assert escrow.status == EscrowStatus.RELEASED
        assert escrow.release_type == ReleaseType.DISPUTE_RESOLUTION

    def test_disputed_to_refunded(self, db):
        """Should refund a disputed escrow."""
        escrow = EscrowTransactionFactory(status=EscrowStatus.DISPUTED)

        escrow.refund(reason="Never delivered", released_by="admin:1")
        escrow.save()

        assert escrow.status == EscrowStatus.REFUNDED

    # -------------------------------------------------------------------------
    # Invalid Transitions
    # -------------------------------------------------------------------------

    def test_cannot_release_twice(self, db):
        """Should not release an already released escrow."""
        escrow = EscrowTransactionFactory(status=EscrowStatus.RELEASED)

        with pytest.raises(TransitionNotAllowed):
            escrow.release(reason="again", release_type=ReleaseType.AUTO_DELIVERY, released_by="x")

    def test_cannot_release_disputed_with_plain_release(self, db):
        """Should keep disputed escrows out of the delivery release path."""
        escrow = EscrowTransactionFactory(status=EscrowStatus.DISPUTED)

        with pytest.raises(TransitionNotAllowed):
            escrow.release(reason="late", release_type=ReleaseType.AUTO_DELIVERY, released_by="x")

    def test_cannot_refund_released(self, db):
        """Should not refund once funds went to the vendor."""
        escrow = EscrowTransactionFactory(status=EscrowStatus.RELEASED)

        with pytest.raises(TransitionNotAllowed):
            escrow.refund(reason="too late", released_by="x")

    def test_cannot_dispute_refunded(self, db):
        """Should not dispute a refunded escrow."""
        escrow = EscrowTransactionFactory(status=EscrowStatus.REFUNDED)

        with pytest.raises(TransitionNotAllowed):
            escrow.mark_disputed(reason="too late")

    def test_cannot_dispute_twice(self, db):
        """Should not dispute an already disputed escrow."""
        escrow = EscrowTransactionFactory(status=EscrowStatus.DISPUTED)

        with pytest.raises(TransitionNotAllowed):
            escrow.mark_disputed(reason="again")

    def test_status_is_protected(self, db):
        """Should refuse direct assignment of the status field."""
        escrow = EscrowTransactionFactory()

        with pytest.raises(AttributeError):
            escrow.status = EscrowStatus.RELEASED

    def test_terminal_states(self, db):
        """Should report released and refunded as terminal."""
        assert EscrowTransactionFactory(status=EscrowStatus.RELEASED).is_terminal
        assert EscrowTransactionFactory(status=EscrowStatus.REFUNDED).is_terminal
        assert not EscrowTransactionFactory(status=EscrowStatus.HELD).is_terminal
        assert not EscrowTransactionFactory(status=EscrowStatus.DISPUTED).is_terminal


# =============================================================================
# Payout State Transition Tests
# =============================================================================


class TestPayoutTransitions:
    """Tests for Payout state machine transitions."""

    def test_pending_to_processing(self, db):
        """Should move to processing and keep the provider reference."""
        payout = PayoutFactory()

        payout.mark_processing(provider_reference="TRF-1")
        payout.save()

        assert payout.status == PayoutStatus.PROCESSING
        assert payout.provider_reference == "TRF-1"
        assert payout.processed_at is None

    def test_processing_to_completed(self, db):
        """Should complete a processing payout."""
        payout = PayoutFactory(status=PayoutStatus.PROCESSING)

        payout.complete()
        payout.save()

        assert payout.status == PayoutStatus.COMPLETED
        assert payout.processed_at is not None

    def test_pending_to_completed(self, db):
        """Should allow the provider to skip the processing notice."""
        payout = PayoutFactory()

        payout.complete(provider_reference="TRF-2")
        payout.save()

        assert payout.status == PayoutStatus.COMPLETED
        assert payout.provider_reference == "TRF-2"

    def test_processing_to_failed(self, db):
        """Should fail with a reason."""
        payout = PayoutFactory(status=PayoutStatus.PROCESSING)

        payout.fail(reason="Account closed")
        payout.save()

        assert payout.status == PayoutStatus.FAILED
        assert payout.failure_reason == "Account closed"
        assert payout.processed_at is not None

    def test_cannot_complete_failed(self, db):
        """Should not complete a failed payout."""
        payout = PayoutFactory(status=PayoutStatus.FAILED)

        with pytest.raises(TransitionNotAllowed):
            payout.complete()

    def test_cannot_fail_completed(self, db):
        """Should not fail a completed payout."""
        payout = PayoutFactory(status=PayoutStatus.COMPLETED)

        with pytest.raises(TransitionNotAllowed):
            payout.fail(reason="late failure")

    def test_cannot_reprocess(self, db):
        """Should not go back to processing from processing."""
        payout = PayoutFactory(status=PayoutStatus.PROCESSING)

        with pytest.raises(TransitionNotAllowed):
            payout.mark_processing()


# =============================================================================
# Dispute State Transition Tests
# =============================================================================


class TestDisputeTransitions:
    """Tests for Dispute state machine transitions."""

    def test_open_to_investigating(self, db):
        """Should start an investigation on an open dispute."""
        dispute = DisputeFactory()

        dispute.start_investigation()
        dispute.save()

        assert dispute.status == DisputeStatus.INVESTIGATING
        assert dispute.is_active

    def test_open_to_resolved(self, db):
        """Should resolve an open dispute directly."""
        dispute = DisputeFactory()

        dispute.resolve(outcome=DisputeOutcome.REFUND, resolution="Courier lost it")
        dispute.save()

        assert dispute.status == DisputeStatus.RESOLVED
        assert dispute.outcome == DisputeOutcome.REFUND
        assert dispute.resolved_at is not None
        assert not dispute.is_active

    def test_resolved_to_closed(self, db):
        """Should close a resolved dispute."""
        dispute = DisputeFactory(status=DisputeStatus.RESOLVED)

        dispute.close()
        dispute.save()

        assert dispute.status == DisputeStatus.CLOSED

    def test_cannot_close_open(self, db):
        """Should not close a dispute that was never resolved."""
        dispute = DisputeFactory()

        with pytest.raises(TransitionNotAllowed):
            dispute.close()

    def test_cannot_resolve_twice(self, db):
        """Should not resolve a resolved dispute again."""
        dispute = DisputeFactory(status=DisputeStatus.RESOLVED)

        with pytest.raises(TransitionNotAllowed):
            dispute.resolve(outcome=DisputeOutcome.RELEASE, resolution="again")
