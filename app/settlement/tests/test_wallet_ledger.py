"""
Tests for the vendor wallet ledger.

The ledger is the only writer of wallet balances: every entry is
numbered per vendor, carries the running balance and is idempotent on
its key.
"""

import uuid

import pytest

from settlement.exceptions import Forbidden, InsufficientFunds, InvalidAmount, NotFound
from settlement.models import Vendor, WalletTransaction
from settlement.services import WalletLedger
from settlement.state_machines import WalletTransactionStatus, WalletTransactionType
from settlement.tests.factories import VendorFactory, fund_wallet
from settlement.types import Actor, Money, WalletEntryParams


def _entry(vendor, type_, amount, key=None, **kwargs):
    return WalletLedger.apply_entry(
        WalletEntryParams(
            vendor_id=vendor.id,
            type=type_,
            amount=amount,
            idempotency_key=key or str(uuid.uuid4()),
            **kwargs,
        )
    )


# =============================================================================
# apply_entry
# =============================================================================


class TestApplyEntry:
    """Tests for WalletLedger.apply_entry."""

    def test_credit_updates_balance(self, vendor):
        """Should append the entry and update the cached balance together."""
        entry = _entry(
            vendor,
            WalletTransactionType.CREDIT,
            950_000,
            reference="escrow-1",
            reference_type="escrow",
            description="Sale payment",
            created_by="system:tests",
        )

        vendor.refresh_from_db()
        assert vendor.wallet_balance == 950_000
        assert entry.sequence == 1
        assert entry.balance_after == 950_000
        assert entry.status == WalletTransactionStatus.COMPLETED
        assert entry.reference_type == "escrow"
        assert entry.created_by == "system:tests"

    def test_running_balance_and_sequence(self, vendor):
        """Should number entries 1..n and chain balance_after."""
        _entry(vendor, WalletTransactionType.CREDIT, 1_000)
        _entry(vendor, WalletTransactionType.DEBIT, -400)
        _entry(vendor, WalletTransactionType.REVERSAL, 400)
        _entry(vendor, WalletTransactionType.ADJUSTMENT, -250)

        entries = list(WalletTransaction.objects.filter(vendor=vendor).order_by("sequence"))

        assert [e.sequence for e in entries] == [1, 2, 3, 4]
        assert [e.balance_after for e in entries] == [1_000, 600, 1_000, 750]
        assert Vendor.objects.get(pk=vendor.pk).wallet_balance == 750

    def test_sequences_are_per_vendor(self, vendor):
        """Should start each vendor's ledger at 1."""
        other = VendorFactory()
        _entry(vendor, WalletTransactionType.CREDIT, 100)

        entry = _entry(other, WalletTransactionType.CREDIT, 100)

        assert entry.sequence == 1

    def test_idempotent_on_key(self, vendor):
        """Should return the first entry and not credit twice."""
        first = _entry(vendor, WalletTransactionType.CREDIT, 950_000, key="escrow-release:abc")
        second = _entry(vendor, WalletTransactionType.CREDIT, 950_000, key="escrow-release:abc")

        assert second.pk == first.pk
        assert WalletTransaction.objects.filter(vendor=vendor).count() == 1
        assert Vendor.objects.get(pk=vendor.pk).wallet_balance == 950_000

    def test_insufficient_funds_writes_nothing(self, vendor):
        """Should refuse a debit below zero and leave the ledger untouched."""
        fund_wallet(vendor, 1_000)

        with pytest.raises(InsufficientFunds) as exc_info:
            _entry(vendor, WalletTransactionType.DEBIT, -1_001)

        assert exc_info.value.required == 1_001
        assert exc_info.value.available == 1_000
        assert exc_info.value.status_code == 422
        assert WalletTransaction.objects.filter(vendor=vendor).count() == 1
        assert Vendor.objects.get(pk=vendor.pk).wallet_balance == 1_000

    def test_debit_to_exactly_zero(self, vendor):
        fund_wallet(vendor, 1_000)

        entry = _entry(vendor, WalletTransactionType.DEBIT, -1_000)

        assert entry.balance_after == 0

    # -------------------------------------------------------------------------
    # Sign Rules
    # -------------------------------------------------------------------------

    @pytest.mark.parametrize(
        "type_,amount",
        [
            (WalletTransactionType.CREDIT, -100),
            (WalletTransactionType.CREDIT, 0),
            (WalletTransactionType.REVERSAL, -100),
            (WalletTransactionType.DEBIT, 100),
            (WalletTransactionType.ADJUSTMENT, 0),
        ],
    )
    def test_rejects_wrong_sign(self, vendor, type_, amount):
        """Should enforce the sign convention of each entry type."""
        with pytest.raises(InvalidAmount):
            _entry(vendor, type_, amount)

        assert not WalletTransaction.objects.filter(vendor=vendor).exists()

    def test_rejects_unknown_type(self, vendor):
        with pytest.raises(InvalidAmount):
            _entry(vendor, "bonus", 100)

    def test_unknown_vendor(self, db):
        """Should raise NotFound for a vendor that does not exist."""
        with pytest.raises(NotFound):
            WalletLedger.apply_entry(
                WalletEntryParams(
                    vendor_id=uuid.uuid4(),
                    type=WalletTransactionType.CREDIT,
                    amount=100,
                    idempotency_key="ghost",
                )
            )


# =============================================================================
# Queries
# =============================================================================


class TestWalletQueries:
    """Tests for balance and history reads."""

    def test_get_balance(self, funded_vendor):
        """Should return the balance as Money in the vendor's currency."""
        assert WalletLedger.get_balance(funded_vendor.id) == Money(1_000_000, "ngn")

    def test_owner_can_read(self, funded_vendor, vendor_actor):
        assert WalletLedger.get_balance(funded_vendor.id, actor=vendor_actor).amount == 1_000_000

    def test_admin_can_read(self, funded_vendor, admin_actor):
        assert WalletLedger.get_balance(funded_vendor.id, actor=admin_actor).amount == 1_000_000

    def test_other_user_forbidden(self, funded_vendor, buyer_actor):
        """Should hide a vendor's wallet from other users."""
        with pytest.raises(Forbidden):
            WalletLedger.get_balance(funded_vendor.id, actor=buyer_actor)

    def test_malformed_vendor_id(self, db):
        with pytest.raises(NotFound):
            WalletLedger.get_balance("not-a-uuid")

    def test_list_newest_first(self, vendor):
        """Should list entries newest first."""
        for _ in range(3):
            _entry(vendor, WalletTransactionType.CREDIT, 100)

        entries = WalletLedger.list_transactions(vendor.id)

        assert [e.sequence for e in entries] == [3, 2, 1]

    def test_list_pagination(self, vendor):
        """Should apply limit and offset."""
        for _ in range(5):
            _entry(vendor, WalletTransactionType.CREDIT, 100)

        page = WalletLedger.list_transactions(vendor.id, limit=2, offset=1)

        assert [e.sequence for e in page] == [4, 3]
        assert WalletLedger.count_transactions(vendor.id) == 5

    def test_list_clamps_limit(self, vendor):
        """Should clamp out-of-range paging values instead of failing."""
        _entry(vendor, WalletTransactionType.CREDIT, 100)

        assert len(WalletLedger.list_transactions(vendor.id, limit=0, offset=-5)) == 1

    def test_list_forbidden_for_other_user(self, vendor, buyer_actor):
        with pytest.raises(Forbidden):
            WalletLedger.list_transactions(vendor.id, actor=buyer_actor)

    def test_list_for_system_actor(self, vendor):
        _entry(vendor, WalletTransactionType.CREDIT, 100)

        assert len(WalletLedger.list_transactions(vendor.id, actor=Actor.system("ops"))) == 1
