"""
Escrow state machine service.

Orchestrates every status change of an EscrowTransaction. Each operation
runs in one database transaction, re-reads the escrow with
``select_for_update()`` and checks the status before calling the
django-fsm transition, so two concurrent callers can never both move the
same escrow. A release writes the vendor's wallet credit inside the same
transaction as the status change.

Status rules:
    release          held -> released           (released: AlreadyReleased)
    refund           held/disputed -> refunded  (refunded: AlreadyRefunded)
    mark_disputed    held -> disputed
    resolve_dispute  disputed -> released | refunded

Usage:
    from settlement.services import EscrowService
    from settlement.types import Actor

    escrow = EscrowService.create_hold(
        order_id="ORD-1001",
        buyer_id=str(buyer.id),
        vendor_id=vendor.id,
        amount=1_000_000,
    )
    EscrowService.release(escrow.id, "Delivery confirmed", Actor.system("courier_webhook"))
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction

from django_fsm import TransitionNotAllowed

from core.services import BaseService

from settlement.exceptions import (
    AlreadyRefunded,
    AlreadyReleased,
    DuplicateEscrow,
    Forbidden,
    InvalidTransition,
    NotFound,
)
from settlement.fees import compute_split, get_platform_fee_rate, parse_fee_rate
from settlement.locks import check_version
from settlement.models import Dispute, EscrowTransaction
from settlement.services.base import (
    ensure_admin,
    ensure_choice,
    get_vendor,
    parse_id,
    require_reason,
    translate_lock_errors,
    user_id_of,
)
from settlement.services.wallet_ledger import WalletLedger
from settlement.signals import (
    dispute_resolved,
    escrow_disputed,
    escrow_held,
    escrow_refunded,
    escrow_released,
    send_on_commit,
)
from settlement.state_machines import (
    DisputeOutcome,
    DisputeStatus,
    EscrowStatus,
    ReleaseType,
    WalletTransactionType,
)
from settlement.types import WalletEntryParams

if TYPE_CHECKING:
    import uuid
    from decimal import Decimal
    from typing import Any

    from settlement.types import Actor


logger = logging.getLogger(__name__)


def _invalid_transition(escrow: EscrowTransaction, action: str) -> InvalidTransition:
    return InvalidTransition(
        f"Cannot {action} escrow in status '{escrow.status}'",
        details={
            "escrow_id": str(escrow.id),
            "order_id": escrow.order_id,
            "status": escrow.status,
            "action": action,
        },
    )


class EscrowService(BaseService):
    """Holds, releases, refunds and disputes escrowed order payments."""

    # ==========================================================================
    # Creation & Lookup
    # ==========================================================================

    @classmethod
    def create_hold(
        cls,
        order_id: str,
        buyer_id: str,
        vendor_id: uuid.UUID | str,
        amount: int,
        payment_reference: str | None = None,
        fee_rate_percent: Decimal | int | float | str | None = None,
    ) -> EscrowTransaction:
        """
        Hold a confirmed order payment in escrow.

        The fee split is computed once, here, with the platform rate in
        force at payment time. No wallet entry is written, unless a
        ``delivered`` event for the order was received before the payment:
        then the new escrow is released straight away.

        Raises:
            DuplicateEscrow: The order already has an escrow
            NotFound: Unknown vendor
            InvalidAmount: Non-positive amount or bad fee rate
        """
        if EscrowTransaction.objects.filter(order_id=order_id).exists():
            raise DuplicateEscrow(
                f"Escrow already exists for order {order_id}",
                details={"order_id": order_id},
            )

        vendor = get_vendor(vendor_id)
        rate = (
            get_platform_fee_rate()
            if fee_rate_percent is None
            else parse_fee_rate(fee_rate_percent)
        )
        split = compute_split(amount, rate)

        try:
            with transaction.atomic():
                escrow = EscrowTransaction.objects.create(
                    order_id=order_id,
                    buyer_id=str(buyer_id),
                    vendor=vendor,
                    payment_reference=payment_reference or None,
                    amount=amount,
                    platform_fee=split.platform_fee,
                    vendor_amount=split.vendor_amount,
                    fee_rate=rate,
                    currency=vendor.currency,
                )
        except IntegrityError as exc:
            # A concurrent confirmation for the same order (or payment) won
            raise DuplicateEscrow(
                f"Escrow already exists for order {order_id}",
                details={"order_id": order_id, "payment_reference": payment_reference},
            ) from exc

        cls.get_logger().info(
            "Escrow hold created",
            extra={
                "escrow_id": str(escrow.id),
                "order_id": order_id,
                "vendor_id": str(vendor.id),
                "amount": amount,
                "platform_fee": split.platform_fee,
                "vendor_amount": split.vendor_amount,
            },
        )
        send_on_commit(escrow_held, EscrowTransaction, escrow=escrow)

        # Courier events can arrive before the payment confirmation
        from settlement.services.delivery_trigger import DeliveryTrigger

        return DeliveryTrigger.apply_pending_delivery(escrow)

    @staticmethod
    def get_escrow(order_id: str, actor: Actor | None = None) -> EscrowTransaction:
        """
        Return the escrow of an order.

        Non-admin actors may only read escrows where they are the buyer or
        operate the vendor.

        Raises:
            NotFound: No escrow for the order
            Forbidden: Actor is unrelated to the order
        """
        escrow = (
            EscrowTransaction.objects.select_related("vendor")
            .filter(order_id=order_id)
            .first()
        )
        if escrow is None:
            raise NotFound(
                f"No escrow for order {order_id}",
                details={"order_id": order_id},
            )

        if actor is not None and not actor.is_privileged:
            if actor.id != escrow.buyer_id and not escrow.vendor.is_operated_by(actor):
                raise Forbidden(
                    "You are not a party to this order",
                    details={"order_id": order_id, "actor": actor.label},
                )
        return escrow

    # ==========================================================================
    # Status Changes
    # ==========================================================================

    @classmethod
    def release(
        cls,
        escrow_id: uuid.UUID | str,
        reason: str,
        actor: Actor,
        release_type: str = ReleaseType.AUTO_DELIVERY,
    ) -> EscrowTransaction:
        """
        Release held funds to the vendor's wallet.

        Raises:
            NotFound: Unknown escrow
            AlreadyReleased: The escrow was released before (no second credit)
            InvalidTransition: The escrow is refunded or disputed
            ConcurrencyConflict: Lost a database lock race
        """
        with translate_lock_errors(), transaction.atomic():
            escrow = cls._lock(escrow_id)
            cls._release_locked(escrow, reason, actor, release_type)
        return escrow

    @classmethod
    def refund(
        cls,
        escrow_id: uuid.UUID | str,
        reason: str,
        actor: Actor,
    ) -> EscrowTransaction:
        """
        Mark held or disputed funds as returned to the buyer.

        The money movement itself is executed by the payment provider; no
        wallet entry is written.

        Raises:
            AlreadyRefunded: The escrow was refunded before
            InvalidTransition: The escrow was released
        """
        with translate_lock_errors(), transaction.atomic():
            escrow = cls._lock(escrow_id)
            cls._refund_locked(escrow, reason, actor)
        return escrow

    @classmethod
    def mark_disputed(cls, escrow_id: uuid.UUID | str, reason: str) -> EscrowTransaction:
        """
        Freeze a held escrow while a dispute is open.

        Raises:
            InvalidTransition: The escrow is not held
        """
        with translate_lock_errors(), transaction.atomic():
            escrow = cls._lock(escrow_id)
            if escrow.status != EscrowStatus.HELD:
                raise _invalid_transition(escrow, "dispute")
            cls._run_transition(escrow, "dispute", escrow.mark_disputed, reason=reason)
            escrow.save()

        cls.get_logger().info(
            "Escrow disputed",
            extra={"escrow_id": str(escrow.id), "order_id": escrow.order_id},
        )
        send_on_commit(escrow_disputed, EscrowTransaction, escrow=escrow)
        return escrow

    @classmethod
    def resolve_dispute(
        cls,
        escrow_id: uuid.UUID | str,
        outcome: str,
        reason: str,
        actor: Actor,
    ) -> EscrowTransaction:
        """
        Settle a disputed escrow toward the vendor (release) or buyer (refund).

        Raises:
            ValidationError: Unknown outcome
            InvalidTransition: The escrow is not disputed
        """
        ensure_choice(outcome, DisputeOutcome, "outcome")

        with translate_lock_errors(), transaction.atomic():
            escrow = cls._lock(escrow_id)
            if escrow.status != EscrowStatus.DISPUTED:
                raise _invalid_transition(escrow, "resolve dispute for")

            if outcome == DisputeOutcome.RELEASE:
                cls._run_transition(
                    escrow,
                    "release",
                    escrow.release_after_dispute,
                    reason=reason,
                    released_by=actor.label,
                )
                escrow.save()
                cls._credit_vendor(escrow, actor)
                signal = escrow_released
            else:
                cls._run_transition(
                    escrow, "refund", escrow.refund, reason=reason, released_by=actor.label
                )
                escrow.save()
                signal = escrow_refunded

        cls.get_logger().info(
            f"Dispute resolved for escrow: {outcome}",
            extra={
                "escrow_id": str(escrow.id),
                "order_id": escrow.order_id,
                "outcome": outcome,
                "actor": actor.label,
            },
        )
        send_on_commit(signal, EscrowTransaction, escrow=escrow)
        return escrow

    # ==========================================================================
    # Admin & Buyer Actions
    # ==========================================================================

    @classmethod
    def force_release(
        cls,
        escrow_id: uuid.UUID | str,
        reason: str,
        actor: Actor,
        expected_version: int | None = None,
    ) -> EscrowTransaction:
        """
        Admin override: release a held escrow regardless of delivery.

        ``expected_version`` protects against acting on a stale admin screen.

        Raises:
            Forbidden: Actor is not an admin
            ReasonRequired: Empty reason
            ConcurrencyConflict: Escrow changed since ``expected_version``
        """
        ensure_admin(actor, "force-release escrows")
        reason = require_reason(reason, "force-release an escrow")

        with translate_lock_errors(), transaction.atomic():
            escrow = cls._lock(escrow_id, expected_version)
            cls._release_locked(escrow, reason, actor, ReleaseType.ADMIN_OVERRIDE)
        return escrow

    @classmethod
    def force_refund(
        cls,
        escrow_id: uuid.UUID | str,
        reason: str,
        actor: Actor,
        expected_version: int | None = None,
    ) -> EscrowTransaction:
        """
        Admin override: refund a held or disputed escrow.

        Refunding a disputed escrow also resolves its open dispute with
        outcome ``refund`` and the override reason as resolution.
        """
        ensure_admin(actor, "force-refund escrows")
        reason = require_reason(reason, "force-refund an escrow")

        with translate_lock_errors(), transaction.atomic():
            escrow = cls._lock(escrow_id, expected_version)
            cls._refund_locked(escrow, reason, actor)
        return escrow

    @classmethod
    def confirm_receipt(cls, order_id: str, actor: Actor) -> EscrowTransaction:
        """
        Buyer confirms they received the order, releasing the escrow early.

        Raises:
            NotFound: No escrow for the order
            Forbidden: Actor is not the order's buyer
        """
        escrow = cls.get_escrow(order_id)
        if actor.id != escrow.buyer_id:
            raise Forbidden(
                "Only the buyer can confirm receipt",
                details={"order_id": order_id, "actor": actor.label},
            )
        return cls.release(
            escrow.id,
            reason="Buyer confirmed receipt",
            actor=actor,
            release_type=ReleaseType.MANUAL_BUYER,
        )

    # ==========================================================================
    # Internals
    # ==========================================================================

    @staticmethod
    def _lock(
        escrow_id: uuid.UUID | str, expected_version: int | None = None
    ) -> EscrowTransaction:
        pk = parse_id(escrow_id, "Escrow")
        if expected_version is not None:
            return check_version(EscrowTransaction, pk, expected_version)

        escrow = EscrowTransaction.objects.select_for_update().filter(pk=pk).first()
        if escrow is None:
            raise NotFound(
                f"Escrow {escrow_id} not found",
                details={"escrow_id": str(escrow_id)},
            )
        return escrow

    @staticmethod
    def _run_transition(
        escrow: EscrowTransaction, action: str, method: Any, **kwargs: Any
    ) -> None:
        try:
            method(**kwargs)
        except TransitionNotAllowed as exc:
            raise _invalid_transition(escrow, action) from exc

    @classmethod
    def _release_locked(
        cls,
        escrow: EscrowTransaction,
        reason: str,
        actor: Actor,
        release_type: str,
    ) -> None:
        if escrow.status == EscrowStatus.RELEASED:
            raise AlreadyReleased(
                f"Escrow for order {escrow.order_id} was already released",
                details={"escrow_id": str(escrow.id), "order_id": escrow.order_id},
            )
        if escrow.status != EscrowStatus.HELD:
            raise _invalid_transition(escrow, "release")

        cls._run_transition(
            escrow,
            "release",
            escrow.release,
            reason=reason,
            release_type=release_type,
            released_by=actor.label,
        )
        escrow.save()
        cls._credit_vendor(escrow, actor)

        cls.get_logger().info(
            "Escrow released",
            extra={
                "escrow_id": str(escrow.id),
                "order_id": escrow.order_id,
                "vendor_id": str(escrow.vendor_id),
                "vendor_amount": escrow.vendor_amount,
                "release_type": release_type,
                "actor": actor.label,
            },
        )
        send_on_commit(escrow_released, EscrowTransaction, escrow=escrow)

    @classmethod
    def _refund_locked(cls, escrow: EscrowTransaction, reason: str, actor: Actor) -> None:
        if escrow.status == EscrowStatus.REFUNDED:
            raise AlreadyRefunded(
                f"Escrow for order {escrow.order_id} was already refunded",
                details={"escrow_id": str(escrow.id), "order_id": escrow.order_id},
            )
        if escrow.status == EscrowStatus.RELEASED:
            raise _invalid_transition(escrow, "refund")

        was_disputed = escrow.status == EscrowStatus.DISPUTED
        cls._run_transition(
            escrow, "refund", escrow.refund, reason=reason, released_by=actor.label
        )
        escrow.save()
        if was_disputed:
            cls._resolve_active_dispute(escrow, reason, actor)

        cls.get_logger().info(
            "Escrow refunded",
            extra={
                "escrow_id": str(escrow.id),
                "order_id": escrow.order_id,
                "amount": escrow.amount,
                "actor": actor.label,
            },
        )
        send_on_commit(escrow_refunded, EscrowTransaction, escrow=escrow)

    @staticmethod
    def _credit_vendor(escrow: EscrowTransaction, actor: Actor) -> None:
        # A 100% fee leaves nothing to credit
        if escrow.vendor_amount == 0:
            return
        WalletLedger.apply_entry(
            WalletEntryParams(
                vendor_id=escrow.vendor_id,
                type=WalletTransactionType.CREDIT,
                amount=escrow.vendor_amount,
                idempotency_key=f"escrow-release:{escrow.id}",
                reference=str(escrow.id),
                reference_type="escrow",
                description=f"Sale payment for order {escrow.order_id}",
                created_by=actor.label,
            )
        )

    @classmethod
    def _resolve_active_dispute(
        cls, escrow: EscrowTransaction, reason: str, actor: Actor
    ) -> None:
        dispute = (
            Dispute.objects.select_for_update()
            .filter(escrow=escrow, status__in=DisputeStatus.active())
            .first()
        )
        if dispute is None:
            return

        dispute.resolve(
            outcome=DisputeOutcome.REFUND,
            resolution=reason,
            resolved_by_id=user_id_of(actor),
        )
        dispute.save()

        cls.get_logger().info(
            "Dispute resolved by escrow refund",
            extra={
                "dispute_id": str(dispute.id),
                "escrow_id": str(escrow.id),
                "order_id": escrow.order_id,
                "actor": actor.label,
            },
        )
        send_on_commit(dispute_resolved, Dispute, dispute=dispute)
