"""
Payout processor for vendor withdrawals.

Money leaves the wallet when the payout is requested: the Payout row and
its wallet debit are written in one transaction, so a vendor can never
withdraw the same balance twice. The provider then reports the outcome
through a callback (or an admin resolves it by hand):

    success     pending/processing -> completed
    failure     pending/processing -> failed, plus a reversal credit
    processing  pending -> processing

Callbacks for payouts that already reached completed or failed are logged
and ignored, which makes provider retries harmless.

Usage:
    from settlement.services import PayoutService
    from settlement.types import PayoutDestination

    payout = PayoutService.request_payout(
        vendor_id=vendor.id,
        amount=500_000,
        destination=PayoutDestination("GTBank", "0123456789", "Ada Stores"),
    )
    PayoutService.on_provider_callback(payout.reference, "failure", failure_reason="Account closed")
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction
from django.db.models import Q

from core.exceptions import ValidationError
from core.services import BaseService

from settlement.exceptions import InsufficientFunds, InvalidAmount, InvalidTransition, NotFound
from settlement.models import Payout
from settlement.services.base import (
    ensure_admin,
    ensure_choice,
    ensure_vendor_access,
    get_vendor,
    parse_id,
    require_reason,
    translate_lock_errors,
)
from settlement.services.wallet_ledger import WalletLedger
from settlement.signals import payout_completed, payout_failed, send_on_commit
from settlement.state_machines import PayoutOutcome, PayoutStatus, WalletTransactionType
from settlement.types import Actor, WalletEntryParams

if TYPE_CHECKING:
    from settlement.types import PayoutDestination


logger = logging.getLogger(__name__)

CALLBACK_ACTOR = Actor.system("payout_callback")


@dataclass
class CallbackResult:
    """
    Outcome of applying a provider callback.

    Attributes:
        payout: The payout after the callback
        changed: False when the callback was a no-op (terminal payout or
            repeated processing notice)
    """

    payout: Payout
    changed: bool


class PayoutService(BaseService):
    """Creates payouts against wallet balance and applies their outcomes."""

    @classmethod
    def request_payout(
        cls,
        vendor_id: uuid.UUID | str,
        amount: int,
        destination: PayoutDestination,
        actor: Actor | None = None,
        idempotency_key: str | None = None,
    ) -> Payout:
        """
        Withdraw ``amount`` from the vendor's wallet to a bank account.

        A repeated ``idempotency_key`` returns the payout created the first
        time without debiting again.

        Raises:
            InvalidAmount: Amount is not a positive integer
            ValidationError: Destination is incomplete
            NotFound: Unknown vendor
            Forbidden: Actor does not operate the vendor
            InsufficientFunds: Amount exceeds the wallet balance (nothing written)
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmount(
                "Payout amount must be a positive integer number of minor units",
                details={"amount": str(amount)},
            )

        vendor = get_vendor(vendor_id)
        ensure_vendor_access(vendor, actor)
        cls._validate_destination(destination)

        if idempotency_key:
            existing = cls._find_by_idempotency_key(idempotency_key, vendor.id)
            if existing is not None:
                return existing

        try:
            with translate_lock_errors(), transaction.atomic():
                locked = get_vendor(vendor.id, for_update=True)
                if amount > locked.wallet_balance:
                    raise InsufficientFunds(
                        vendor_id=locked.id,
                        required=amount,
                        available=locked.wallet_balance,
                    )

                payout = Payout.objects.create(
                    vendor=locked,
                    amount=amount,
                    currency=locked.currency,
                    bank_name=destination.bank_name,
                    bank_code=destination.bank_code,
                    account_number=destination.account_number,
                    account_name=destination.account_name,
                    idempotency_key=idempotency_key or None,
                )
                WalletLedger.apply_entry(
                    WalletEntryParams(
                        vendor_id=locked.id,
                        type=WalletTransactionType.DEBIT,
                        amount=-amount,
                        idempotency_key=f"payout-debit:{payout.id}",
                        reference=str(payout.id),
                        reference_type="payout",
                        description=f"Withdrawal {payout.reference}",
                        created_by=actor.label if actor else "",
                    )
                )
        except IntegrityError:
            # Concurrent request with the same idempotency key won
            existing = (
                cls._find_by_idempotency_key(idempotency_key, vendor.id)
                if idempotency_key
                else None
            )
            if existing is None:
                raise
            return existing

        cls.get_logger().info(
            "Payout requested",
            extra={
                "payout_id": str(payout.id),
                "vendor_id": str(vendor.id),
                "amount": amount,
                "reference": payout.reference,
            },
        )
        return payout

    @classmethod
    def on_provider_callback(
        cls,
        payout_ref: str,
        outcome: str,
        provider_reference: str | None = None,
        failure_reason: str | None = None,
    ) -> CallbackResult:
        """
        Apply the provider's report for a payout.

        ``payout_ref`` is the payout id or our ``PAYOUT-...`` reference.

        Raises:
            NotFound: No payout matches ``payout_ref``
            ValidationError: Unknown outcome
        """
        ensure_choice(outcome, PayoutOutcome, "outcome")
        return cls._apply_outcome(
            payout_ref,
            outcome,
            CALLBACK_ACTOR,
            provider_reference=provider_reference or "",
            reason=failure_reason or "",
        )

    @classmethod
    def mark_processing(cls, payout_id: uuid.UUID | str, actor: Actor) -> Payout:
        """
        Admin: record that the transfer was submitted to the provider.

        Raises:
            Forbidden: Actor is not an admin
            InvalidTransition: Payout is not pending
        """
        ensure_admin(actor, "update payouts")
        with translate_lock_errors(), transaction.atomic():
            payout = cls._lock(payout_id)
            if payout.status != PayoutStatus.PENDING:
                raise cls._invalid_transition(payout, "mark processing")
            payout.mark_processing()
            payout.save()

        cls.get_logger().info(
            "Payout marked processing",
            extra={"payout_id": str(payout.id), "actor": actor.label},
        )
        return payout

    @classmethod
    def resolve_manually(
        cls,
        payout_id: uuid.UUID | str,
        outcome: str,
        actor: Actor,
        reason: str,
    ) -> Payout:
        """
        Admin: settle a payout the provider never reported on.

        ``outcome`` is ``success`` or ``failure``; a failure reverses the
        debit exactly like a provider failure callback.

        Raises:
            Forbidden: Actor is not an admin
            ReasonRequired: Empty reason
            InvalidTransition: Payout already completed or failed
        """
        ensure_admin(actor, "resolve payouts")
        reason = require_reason(reason, "resolve a payout")
        if outcome not in (PayoutOutcome.SUCCESS, PayoutOutcome.FAILURE):
            raise ValidationError(
                f"Invalid outcome: {outcome}",
                error_code="INVALID_OUTCOME",
                details={
                    "outcome": outcome,
                    "allowed": [PayoutOutcome.SUCCESS, PayoutOutcome.FAILURE],
                },
            )

        result = cls._apply_outcome(payout_id, outcome, actor, reason=reason)
        if not result.changed:
            raise cls._invalid_transition(result.payout, f"resolve as {outcome}")
        return result.payout

    # ==========================================================================
    # Queries
    # ==========================================================================

    @staticmethod
    def list_payouts(vendor_id: uuid.UUID | str, actor: Actor | None = None):
        """Vendor's payouts, newest first."""
        vendor = get_vendor(vendor_id)
        ensure_vendor_access(vendor, actor)
        return Payout.objects.filter(vendor=vendor).order_by("-created_at")

    @staticmethod
    def get_payout(payout_id: uuid.UUID | str, actor: Actor | None = None) -> Payout:
        payout = (
            Payout.objects.select_related("vendor")
            .filter(pk=parse_id(payout_id, "Payout"))
            .first()
        )
        if payout is None:
            raise NotFound(
                f"Payout {payout_id} not found",
                details={"payout_id": str(payout_id)},
            )
        ensure_vendor_access(payout.vendor, actor)
        return payout

    # ==========================================================================
    # Internals
    # ==========================================================================

    @classmethod
    def _apply_outcome(
        cls,
        payout_ref: uuid.UUID | str,
        outcome: str,
        actor: Actor,
        provider_reference: str = "",
        reason: str = "",
    ) -> CallbackResult:
        with translate_lock_errors(), transaction.atomic():
            payout = cls._lock(payout_ref)
            log_extra = {
                "payout_id": str(payout.id),
                "reference": payout.reference,
                "status": payout.status,
                "outcome": outcome,
                "actor": actor.label,
            }

            if payout.is_terminal:
                logger.warning("Payout outcome ignored, payout already settled", extra=log_extra)
                return CallbackResult(payout=payout, changed=False)

            if outcome == PayoutOutcome.PROCESSING:
                if payout.status != PayoutStatus.PENDING:
                    return CallbackResult(payout=payout, changed=False)
                payout.mark_processing(provider_reference=provider_reference)
                payout.save()
                signal = None
            elif outcome == PayoutOutcome.SUCCESS:
                payout.complete(provider_reference=provider_reference)
                payout.save()
                signal = payout_completed
            else:
                payout.fail(
                    reason=reason or "Payout failed",
                    provider_reference=provider_reference,
                )
                payout.save()
                cls._reverse_debit(payout, actor)
                signal = payout_failed

        log_extra["status"] = payout.status
        logger.info(f"Payout {payout.status}", extra=log_extra)
        if signal is not None:
            send_on_commit(signal, Payout, payout=payout)
        return CallbackResult(payout=payout, changed=True)

    @staticmethod
    def _reverse_debit(payout: Payout, actor: Actor) -> None:
        WalletLedger.apply_entry(
            WalletEntryParams(
                vendor_id=payout.vendor_id,
                type=WalletTransactionType.REVERSAL,
                amount=payout.amount,
                idempotency_key=f"payout-reversal:{payout.id}",
                reference=str(payout.id),
                reference_type="payout",
                description=f"Reversal of failed withdrawal {payout.reference}",
                created_by=actor.label,
            )
        )

    @staticmethod
    def _lock(payout_ref: uuid.UUID | str) -> Payout:
        lookup = Q(reference=str(payout_ref))
        try:
            lookup |= Q(pk=uuid.UUID(str(payout_ref)))
        except ValueError:
            pass

        payout = Payout.objects.select_for_update().filter(lookup).first()
        if payout is None:
            raise NotFound(
                f"Payout {payout_ref} not found",
                details={"payout_ref": str(payout_ref)},
            )
        return payout

    @staticmethod
    def _find_by_idempotency_key(idempotency_key: str, vendor_id: uuid.UUID) -> Payout | None:
        payout = Payout.objects.filter(idempotency_key=idempotency_key).first()
        if payout is not None and payout.vendor_id != vendor_id:
            raise ValidationError(
                "Idempotency key already used for another vendor",
                error_code="IDEMPOTENCY_KEY_REUSED",
                details={"idempotency_key": idempotency_key},
            )
        return payout

    @staticmethod
    def _validate_destination(destination: PayoutDestination) -> None:
        missing = [
            name
            for name in ("bank_name", "account_number", "account_name")
            if not (getattr(destination, name, "") or "").strip()
        ]
        if missing:
            raise ValidationError(
                "Payout destination is incomplete",
                error_code="INVALID_DESTINATION",
                details={"missing": missing},
            )

    @staticmethod
    def _invalid_transition(payout: Payout, action: str) -> InvalidTransition:
        return InvalidTransition(
            f"Cannot {action} payout in status '{payout.status}'",
            details={
                "payout_id": str(payout.id),
                "status": payout.status,
                "action": action,
            },
        )
