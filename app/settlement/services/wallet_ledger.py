"""
Vendor wallet ledger.

All changes to a vendor's spendable balance go through
``WalletLedger.apply_entry``. It appends one WalletTransaction and updates
the cached ``Vendor.wallet_balance`` in the same database transaction,
holding a row lock on the vendor so concurrent entries for one vendor are
applied one at a time.

Usage:
    from settlement.services import WalletLedger
    from settlement.types import WalletEntryParams

    entry = WalletLedger.apply_entry(WalletEntryParams(
        vendor_id=vendor.id,
        type=WalletTransactionType.CREDIT,
        amount=950_000,
        idempotency_key=f"escrow-release:{escrow.id}",
    ))
    WalletLedger.get_balance(vendor.id)  # Money(amount=950000, currency="ngn")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction
from django.db.models import Max
from django.utils import timezone

from core.services import BaseService

from settlement.exceptions import ConcurrencyConflict, InsufficientFunds, InvalidAmount
from settlement.models import Vendor, WalletTransaction
from settlement.services.base import (
    ensure_vendor_access,
    get_vendor,
    translate_lock_errors,
)
from settlement.state_machines import WalletTransactionStatus, WalletTransactionType
from settlement.types import Money

if TYPE_CHECKING:
    import uuid

    from settlement.types import Actor, WalletEntryParams


logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


def _validate_sign(params: WalletEntryParams) -> None:
    amount = params.amount
    if params.type in (WalletTransactionType.CREDIT, WalletTransactionType.REVERSAL):
        valid = amount > 0
    elif params.type == WalletTransactionType.DEBIT:
        valid = amount < 0
    elif params.type == WalletTransactionType.ADJUSTMENT:
        valid = amount != 0
    else:
        raise InvalidAmount(
            f"Unknown wallet transaction type: {params.type}",
            details={"type": params.type},
        )

    if not valid:
        raise InvalidAmount(
            f"Amount {amount} has the wrong sign for a {params.type} entry",
            details={"type": params.type, "amount": amount},
        )


class WalletLedger(BaseService):
    """
    Append-only vendor wallet.

    Guarantees, per vendor:
        - entries are numbered 1, 2, 3, ... with no gaps
        - balance_after[n] == balance_after[n - 1] + amount[n]
        - balance never goes below zero
        - Vendor.wallet_balance equals the latest balance_after
    """

    @classmethod
    def apply_entry(cls, params: WalletEntryParams) -> WalletTransaction:
        """
        Append one entry to a vendor's wallet.

        Idempotent on ``params.idempotency_key``: when an entry with the key
        exists it is returned unchanged and nothing is written.

        Raises:
            InvalidAmount: Amount sign does not match the entry type
            NotFound: Unknown vendor
            InsufficientFunds: The entry would make the balance negative
            ConcurrencyConflict: Lost a database lock race, retry
        """
        _validate_sign(params)

        existing = WalletTransaction.objects.filter(
            idempotency_key=params.idempotency_key
        ).first()
        if existing is not None:
            logger.info(
                "Wallet entry already applied, returning existing",
                extra={
                    "idempotency_key": params.idempotency_key,
                    "wallet_transaction_id": str(existing.id),
                },
            )
            return existing

        try:
            with translate_lock_errors(), transaction.atomic():
                entry = cls._append(params)
        except IntegrityError as exc:
            # Another writer inserted the same idempotency key first
            existing = WalletTransaction.objects.filter(
                idempotency_key=params.idempotency_key
            ).first()
            if existing is not None:
                return existing
            raise ConcurrencyConflict(
                "Wallet entry conflicted with a concurrent write",
                details={
                    "vendor_id": str(params.vendor_id),
                    "idempotency_key": params.idempotency_key,
                },
            ) from exc

        logger.info(
            f"Wallet {entry.type} applied: {entry.amount:+d}",
            extra={
                "vendor_id": str(entry.vendor_id),
                "wallet_transaction_id": str(entry.id),
                "sequence": entry.sequence,
                "amount": entry.amount,
                "balance_after": entry.balance_after,
                "reference": entry.reference,
            },
        )
        return entry

    @staticmethod
    def _append(params: WalletEntryParams) -> WalletTransaction:
        vendor = get_vendor(params.vendor_id, for_update=True)

        # Re-check under the vendor lock; a concurrent writer may have
        # committed the same key while we waited.
        existing = WalletTransaction.objects.filter(
            idempotency_key=params.idempotency_key
        ).first()
        if existing is not None:
            return existing

        balance_after = vendor.wallet_balance + params.amount
        if balance_after < 0:
            raise InsufficientFunds(
                vendor_id=vendor.id,
                required=-params.amount,
                available=vendor.wallet_balance,
            )

        last_sequence = vendor.wallet_transactions.aggregate(
            last=Max("sequence")
        )["last"] or 0

        entry = WalletTransaction.objects.create(
            vendor=vendor,
            sequence=last_sequence + 1,
            type=params.type,
            amount=params.amount,
            balance_after=balance_after,
            reference=params.reference,
            reference_type=params.reference_type,
            description=params.description,
            status=WalletTransactionStatus.COMPLETED,
            idempotency_key=params.idempotency_key,
            created_by=params.created_by,
        )

        Vendor.objects.filter(pk=vendor.pk).update(
            wallet_balance=balance_after,
            updated_at=timezone.now(),
        )
        return entry

    @staticmethod
    def get_balance(vendor_id: uuid.UUID | str, actor: Actor | None = None) -> Money:
        """Return the vendor's current spendable balance."""
        vendor = get_vendor(vendor_id)
        ensure_vendor_access(vendor, actor)
        return Money(amount=vendor.wallet_balance, currency=vendor.currency)

    @staticmethod
    def list_transactions(
        vendor_id: uuid.UUID | str,
        actor: Actor | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> list[WalletTransaction]:
        """
        Return a page of the vendor's wallet history, newest first.

        ``limit`` is clamped to [1, MAX_PAGE_SIZE] and ``offset`` to >= 0.

        Raises:
            NotFound: Unknown vendor
            Forbidden: Non-admin actor reading another vendor's wallet
        """
        vendor = get_vendor(vendor_id)
        ensure_vendor_access(vendor, actor)

        limit = max(1, min(int(limit), MAX_PAGE_SIZE))
        offset = max(0, int(offset))
        return list(
            WalletTransaction.objects.filter(vendor=vendor).order_by("-sequence")[
                offset : offset + limit
            ]
        )

    @staticmethod
    def count_transactions(vendor_id: uuid.UUID | str) -> int:
        return WalletTransaction.objects.filter(vendor_id=get_vendor(vendor_id).pk).count()
