"""
Tests for EscrowService.

Covers hold creation with the fee split, every status change, the
wallet credit written on release and the admin and buyer actions.
"""

import uuid
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from core.exceptions import ValidationError
from settlement.exceptions import (
    AlreadyRefunded,
    AlreadyReleased,
    ConcurrencyConflict,
    DuplicateEscrow,
    Forbidden,
    InvalidAmount,
    InvalidTransition,
    NotFound,
    ReasonRequired,
)
from settlement.models import EscrowTransaction, WalletTransaction
from settlement.services import EscrowService, WalletLedger
from settlement.signals import escrow_held, escrow_refunded, escrow_released
from settlement.state_machines import (
    DisputeOutcome,
    EscrowStatus,
    ReleaseType,
    WalletTransactionType,
)
from settlement.tests.factories import EscrowTransactionFactory
from settlement.types import Actor


@pytest.fixture
def receiver():
    """Connect a mock receiver to a signal for the duration of a test."""
    connected = []

    def connect(signal):
        handler = MagicMock()
        signal.connect(handler, weak=False)
        connected.append((signal, handler))
        return handler

    yield connect

    for signal, handler in connected:
        signal.disconnect(handler)


def _credits_for(escrow):
    return WalletTransaction.objects.filter(
        reference=str(escrow.id),
        reference_type="escrow",
        type=WalletTransactionType.CREDIT,
    )


# =============================================================================
# create_hold
# =============================================================================


class TestCreateHold:
    """Tests for placing a confirmed payment in escrow."""

    def test_creates_held_escrow_with_split(self, vendor, buyer):
        """Should hold ₦10,000 with a ₦500 fee at the default 5%."""
        escrow = EscrowService.create_hold(
            order_id="ORD-1001",
            buyer_id=str(buyer.pk),
            vendor_id=vendor.id,
            amount=1_000_000,
            payment_reference="PAY-1001",
        )

        assert escrow.status == EscrowStatus.HELD
        assert escrow.platform_fee == 50_000
        assert escrow.vendor_amount == 950_000
        assert escrow.fee_rate == Decimal("5")
        assert escrow.currency == vendor.currency
        assert escrow.payment_reference == "PAY-1001"

    def test_writes_no_wallet_entry(self, vendor, buyer):
        """Should not touch the vendor wallet until release."""
        EscrowService.create_hold("ORD-1002", str(buyer.pk), vendor.id, 1_000_000)

        assert not WalletTransaction.objects.filter(vendor=vendor).exists()
        assert WalletLedger.get_balance(vendor.id).amount == 0

    def test_uses_configured_rate(self, vendor, buyer, settings):
        """Should apply the rate in force at payment time."""
        settings.PLATFORM_FEE_PERCENT = Decimal("10")

        escrow = EscrowService.create_hold("ORD-1003", str(buyer.pk), vendor.id, 1_000_000)

        assert escrow.platform_fee == 100_000
        assert escrow.fee_rate == Decimal("10")

    def test_rate_change_does_not_touch_existing_hold(self, vendor, buyer, settings):
        """Should keep the split computed at hold time."""
        escrow = EscrowService.create_hold("ORD-1004", str(buyer.pk), vendor.id, 1_000_000)
        settings.PLATFORM_FEE_PERCENT = Decimal("20")

        stored = EscrowTransaction.objects.get(pk=escrow.pk)

        assert stored.platform_fee == 50_000

    def test_explicit_rate(self, vendor, buyer):
        escrow = EscrowService.create_hold(
            "ORD-1005", str(buyer.pk), vendor.id, 333, fee_rate_percent="2.5"
        )

        assert escrow.platform_fee == 8
        assert escrow.vendor_amount == 325

    def test_stored_rate_matches_applied_rate(self, vendor, buyer):
        """Should store exactly the rate used for the split."""
        escrow = EscrowService.create_hold(
            "ORD-1006", str(buyer.pk), vendor.id, 1_000_000, fee_rate_percent="2.75"
        )

        stored = EscrowTransaction.objects.get(pk=escrow.pk)
        assert stored.fee_rate == Decimal("2.75")
        assert stored.platform_fee == 27_500

    def test_rate_beyond_stored_precision_refused(self, vendor, buyer):
        with pytest.raises(InvalidAmount):
            EscrowService.create_hold(
                "ORD-1007", str(buyer.pk), vendor.id, 1_000_000, fee_rate_percent="5.125"
            )

        assert not EscrowTransaction.objects.filter(order_id="ORD-1007").exists()

    def test_duplicate_order(self, held_escrow, vendor):
        """Should refuse a second escrow for the same order."""
        with pytest.raises(DuplicateEscrow):
            EscrowService.create_hold(held_escrow.order_id, "buyer", vendor.id, 1_000_000)

        assert EscrowTransaction.objects.filter(order_id=held_escrow.order_id).count() == 1

    def test_duplicate_payment_reference(self, vendor):
        """Should refuse to hold the same captured payment twice."""
        EscrowService.create_hold("ORD-A", "buyer", vendor.id, 1_000, payment_reference="PAY-X")

        with pytest.raises(DuplicateEscrow):
            EscrowService.create_hold(
                "ORD-B", "buyer", vendor.id, 1_000, payment_reference="PAY-X"
            )

    def test_unknown_vendor(self, db):
        with pytest.raises(NotFound):
            EscrowService.create_hold("ORD-1006", "buyer", uuid.uuid4(), 1_000_000)

    @pytest.mark.parametrize("amount", [0, -5, 10.0])
    def test_invalid_amount(self, vendor, amount):
        """Should reject amounts that are not positive integers."""
        with pytest.raises(InvalidAmount):
            EscrowService.create_hold("ORD-1007", "buyer", vendor.id, amount)

        assert not EscrowTransaction.objects.filter(order_id="ORD-1007").exists()

    def test_sends_held_signal_on_commit(
        self, vendor, receiver, django_capture_on_commit_callbacks
    ):
        handler = receiver(escrow_held)

        with django_capture_on_commit_callbacks(execute=True):
            escrow = EscrowService.create_hold("ORD-1008", "buyer", vendor.id, 1_000)

        handler.assert_called_once()
        assert handler.call_args.kwargs["escrow"] == escrow


# =============================================================================
# get_escrow
# =============================================================================


class TestGetEscrow:
    """Tests for reading an order's escrow."""

    def test_buyer_can_read(self, held_escrow, buyer_actor):
        assert EscrowService.get_escrow(held_escrow.order_id, buyer_actor) == held_escrow

    def test_vendor_can_read(self, held_escrow, vendor_actor):
        assert EscrowService.get_escrow(held_escrow.order_id, vendor_actor) == held_escrow

    def test_admin_can_read(self, held_escrow, admin_actor):
        assert EscrowService.get_escrow(held_escrow.order_id, admin_actor) == held_escrow

    def test_unrelated_user_forbidden(self, held_escrow, other_user):
        """Should hide the escrow from users outside the order."""
        with pytest.raises(Forbidden):
            EscrowService.get_escrow(held_escrow.order_id, Actor.from_user(other_user))

    def test_unknown_order(self, db):
        with pytest.raises(NotFound):
            EscrowService.get_escrow("ORD-MISSING")


# =============================================================================
# release
# =============================================================================


class TestRelease:
    """Tests for releasing escrow to the vendor wallet."""

    def test_release_credits_vendor(self, held_escrow, system_actor):
        """Should mark released and credit vendor_amount in one step."""
        escrow = EscrowService.release(held_escrow.id, "Delivery confirmed", system_actor)

        assert escrow.status == EscrowStatus.RELEASED
        assert escrow.release_type == ReleaseType.AUTO_DELIVERY
        assert escrow.released_by == "system:tests"

        credit = _credits_for(escrow).get()
        assert credit.amount == 950_000
        assert credit.idempotency_key == f"escrow-release:{escrow.id}"
        assert credit.created_by == "system:tests"
        assert WalletLedger.get_balance(escrow.vendor_id).amount == 950_000

    def test_release_persists(self, held_escrow, system_actor):
        EscrowService.release(held_escrow.id, "Delivered", system_actor)

        stored = EscrowTransaction.objects.get(pk=held_escrow.pk)
        assert stored.status == EscrowStatus.RELEASED
        assert stored.released_at is not None
        assert stored.held_at == held_escrow.held_at

    def test_second_release_raises_already_released(self, released_escrow, system_actor):
        """Should refuse a second release and never credit twice."""
        with pytest.raises(AlreadyReleased):
            EscrowService.release(released_escrow.id, "Delivered again", system_actor)

        assert _credits_for(released_escrow).count() == 1
        assert WalletLedger.get_balance(released_escrow.vendor_id).amount == 950_000

    def test_cannot_release_refunded(self, refunded_escrow, system_actor):
        with pytest.raises(InvalidTransition) as exc_info:
            EscrowService.release(refunded_escrow.id, "Delivered", system_actor)

        assert exc_info.value.details["status"] == EscrowStatus.REFUNDED
        assert exc_info.value.details["action"] == "release"

    def test_cannot_release_disputed(self, disputed_escrow, system_actor):
        """Should keep a disputed escrow frozen."""
        with pytest.raises(InvalidTransition):
            EscrowService.release(disputed_escrow.id, "Delivered", system_actor)

        assert not _credits_for(disputed_escrow).exists()

    def test_unknown_escrow(self, db, system_actor):
        with pytest.raises(NotFound):
            EscrowService.release(uuid.uuid4(), "Delivered", system_actor)

    def test_full_fee_releases_without_credit(self, vendor, system_actor):
        """Should release a 100% fee escrow without a zero wallet entry."""
        escrow = EscrowTransactionFactory(vendor=vendor, fee_rate=Decimal("100"))

        EscrowService.release(escrow.id, "Delivered", system_actor)

        assert EscrowTransaction.objects.get(pk=escrow.pk).status == EscrowStatus.RELEASED
        assert not WalletTransaction.objects.filter(vendor=vendor).exists()

    def test_sends_released_signal_on_commit(
        self, held_escrow, system_actor, receiver, django_capture_on_commit_callbacks
    ):
        handler = receiver(escrow_released)

        with django_capture_on_commit_callbacks(execute=True):
            EscrowService.release(held_escrow.id, "Delivered", system_actor)

        handler.assert_called_once()
        assert handler.call_args.kwargs["sender"] is EscrowTransaction

    def test_no_signal_when_release_fails(
        self, released_escrow, system_actor, receiver, django_capture_on_commit_callbacks
    ):
        """Should not notify anyone about a rejected release."""
        handler = receiver(escrow_released)

        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            with pytest.raises(AlreadyReleased):
                EscrowService.release(released_escrow.id, "again", system_actor)

        assert callbacks == []
        handler.assert_not_called()


# =============================================================================
# refund
# =============================================================================


class TestRefund:
    """Tests for returning escrow to the buyer."""

    def test_refund_held(self, held_escrow, system_actor):
        """Should mark refunded without any wallet entry."""
        escrow = EscrowService.refund(held_escrow.id, "Order cancelled", system_actor)

        assert escrow.status == EscrowStatus.REFUNDED
        assert escrow.release_reason == "Order cancelled"
        assert not WalletTransaction.objects.exists()

    def test_refund_disputed(self, disputed_escrow, system_actor):
        escrow = EscrowService.refund(disputed_escrow.id, "Buyer wins", system_actor)

        assert escrow.status == EscrowStatus.REFUNDED

    def test_second_refund(self, refunded_escrow, system_actor):
        with pytest.raises(AlreadyRefunded):
            EscrowService.refund(refunded_escrow.id, "again", system_actor)

    def test_cannot_refund_released(self, released_escrow, system_actor):
        """Should not refund money already credited to the vendor."""
        with pytest.raises(InvalidTransition):
            EscrowService.refund(released_escrow.id, "too late", system_actor)

        assert WalletLedger.get_balance(released_escrow.vendor_id).amount == 950_000

    def test_sends_refunded_signal(
        self, held_escrow, system_actor, receiver, django_capture_on_commit_callbacks
    ):
        handler = receiver(escrow_refunded)

        with django_capture_on_commit_callbacks(execute=True):
            EscrowService.refund(held_escrow.id, "Cancelled", system_actor)

        handler.assert_called_once()


# =============================================================================
# Disputes
# =============================================================================


class TestMarkDisputed:
    def test_freezes_held_escrow(self, held_escrow):
        escrow = EscrowService.mark_disputed(held_escrow.id, "Damaged")

        assert escrow.status == EscrowStatus.DISPUTED
        assert escrow.dispute_reason == "Damaged"

    @pytest.mark.parametrize(
        "fixture_name", ["released_escrow", "refunded_escrow", "disputed_escrow"]
    )
    def test_only_held_can_be_disputed(self, request, fixture_name):
        """Should refuse to dispute escrows that are not held."""
        escrow = request.getfixturevalue(fixture_name)

        with pytest.raises(InvalidTransition):
            EscrowService.mark_disputed(escrow.id, "Damaged")


class TestResolveDispute:
    """Tests for settling a disputed escrow."""

    def test_release_outcome_credits_vendor(self, disputed_escrow, admin_actor):
        escrow = EscrowService.resolve_dispute(
            disputed_escrow.id, DisputeOutcome.RELEASE, "Vendor proved delivery", admin_actor
        )

        assert escrow.status == EscrowStatus.RELEASED
        assert escrow.release_type == ReleaseType.DISPUTE_RESOLUTION
        assert escrow.released_by == admin_actor.label
        assert _credits_for(escrow).get().amount == 950_000

    def test_refund_outcome(self, disputed_escrow, admin_actor):
        escrow = EscrowService.resolve_dispute(
            disputed_escrow.id, DisputeOutcome.REFUND, "Never delivered", admin_actor
        )

        assert escrow.status == EscrowStatus.REFUNDED
        assert not _credits_for(escrow).exists()

    def test_unknown_outcome(self, disputed_escrow, admin_actor):
        with pytest.raises(ValidationError) as exc_info:
            EscrowService.resolve_dispute(disputed_escrow.id, "split", "Half each", admin_actor)

        assert exc_info.value.error_code == "INVALID_OUTCOME"

    def test_requires_disputed(self, held_escrow, admin_actor):
        with pytest.raises(InvalidTransition):
            EscrowService.resolve_dispute(
                held_escrow.id, DisputeOutcome.RELEASE, "No dispute", admin_actor
            )


# =============================================================================
# Admin & Buyer Actions
# =============================================================================


class TestForceRelease:
    """Tests for the admin release override."""

    def test_admin_releases(self, held_escrow, admin_actor):
        escrow = EscrowService.force_release(
            held_escrow.id, "Courier confirmed by phone", admin_actor
        )

        assert escrow.status == EscrowStatus.RELEASED
        assert escrow.release_type == ReleaseType.ADMIN_OVERRIDE
        assert escrow.release_reason == "Courier confirmed by phone"
        assert WalletLedger.get_balance(escrow.vendor_id).amount == 950_000

    def test_non_admin_forbidden(self, held_escrow, vendor_actor):
        """Should refuse the override to non-admins."""
        with pytest.raises(Forbidden):
            EscrowService.force_release(held_escrow.id, "I delivered it", vendor_actor)

        assert EscrowTransaction.objects.get(pk=held_escrow.pk).status == EscrowStatus.HELD

    @pytest.mark.parametrize("reason", ["", "   ", None])
    def test_requires_reason(self, held_escrow, admin_actor, reason):
        with pytest.raises(ReasonRequired):
            EscrowService.force_release(held_escrow.id, reason, admin_actor)

    def test_matching_version(self, held_escrow, admin_actor):
        escrow = EscrowService.force_release(
            held_escrow.id, "Checked", admin_actor, expected_version=held_escrow.version
        )

        assert escrow.status == EscrowStatus.RELEASED

    def test_stale_version(self, held_escrow, admin_actor):
        """Should refuse to act on a stale admin screen."""
        EscrowService.mark_disputed(held_escrow.id, "Damaged")

        with pytest.raises(ConcurrencyConflict):
            EscrowService.force_release(held_escrow.id, "Checked", admin_actor, expected_version=1)

    def test_already_released(self, released_escrow, admin_actor):
        with pytest.raises(AlreadyReleased):
            EscrowService.force_release(released_escrow.id, "Again", admin_actor)


class TestForceRefund:
    def test_admin_refunds_disputed(self, disputed_escrow, admin_actor):
        escrow = EscrowService.force_refund(disputed_escrow.id, "Fraudulent vendor", admin_actor)

        assert escrow.status == EscrowStatus.REFUNDED
        assert escrow.released_by == admin_actor.label

    def test_non_admin_forbidden(self, held_escrow, buyer_actor):
        with pytest.raises(Forbidden):
            EscrowService.force_refund(held_escrow.id, "Refund me", buyer_actor)

    def test_requires_reason(self, held_escrow, admin_actor):
        with pytest.raises(ReasonRequired):
            EscrowService.force_refund(held_escrow.id, "", admin_actor)


class TestConfirmReceipt:
    """Tests for buyer-initiated release."""

    def test_buyer_confirms(self, held_escrow, buyer_actor):
        escrow = EscrowService.confirm_receipt(held_escrow.order_id, buyer_actor)

        assert escrow.status == EscrowStatus.RELEASED
        assert escrow.release_type == ReleaseType.MANUAL_BUYER
        assert escrow.released_by == buyer_actor.label

    def test_vendor_cannot_confirm(self, held_escrow, vendor_actor):
        """Should only let the buyer confirm receipt."""
        with pytest.raises(Forbidden):
            EscrowService.confirm_receipt(held_escrow.order_id, vendor_actor)

    def test_confirm_after_release(self, released_escrow, buyer_actor):
        with pytest.raises(AlreadyReleased):
            EscrowService.confirm_receipt(released_escrow.order_id, buyer_actor)
