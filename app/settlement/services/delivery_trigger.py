"""
Delivery-status trigger.

Turns courier status updates and manual proofs of delivery into escrow
releases. Every event is recorded once in DeliveryStatusEvent; replays of
the same event (courier retries, double uploads) are recognized by their
idempotency key and change nothing.

Usage:
    from settlement.services import DeliveryTrigger
    from settlement.types import DeliveryEvent

    outcome = DeliveryTrigger.handle_event(DeliveryEvent(
        order_id="ORD-1001",
        delivery_id="DLV-77",
        status="delivered",
    ))
    # DeliveryOutcome.RELEASED
"""

from __future__ import annotations

import logging

from django.db import IntegrityError, transaction
from django.utils import timezone

from core.services import BaseService

from settlement.exceptions import AlreadyReleased, Forbidden, InvalidTransition, ProofIncomplete
from settlement.models import DeliveryStatusEvent, EscrowTransaction
from settlement.services.base import translate_lock_errors
from settlement.services.escrow_service import EscrowService
from settlement.state_machines import DeliveryOutcome, DeliverySource, EscrowStatus, ReleaseType
from settlement.types import Actor, DeliveryEvent

logger = logging.getLogger(__name__)

DELIVERED = "delivered"
DELIVERY_ACTOR = Actor.system("delivery_trigger")


class DeliveryTrigger(BaseService):
    """Records delivery events and releases escrow on ``delivered``."""

    @classmethod
    def handle_event(cls, event: DeliveryEvent) -> str:
        """
        Record a delivery event and release the order's escrow if delivered.

        Returns:
            A DeliveryOutcome value:
                duplicate         event seen before, nothing changed
                recorded          non-delivered status, history only
                no_escrow         delivered, but the order has no escrow
                skipped_disputed  delivered, but a dispute froze the escrow
                skipped_terminal  delivered, escrow already released/refunded
                released          escrow released, vendor credited

        Raises:
            ConcurrencyConflict: Lost a database lock race; nothing was
                recorded so a retry is safe
        """
        key = event.idempotency_key
        log_extra = {
            "order_id": event.order_id,
            "delivery_id": event.delivery_id,
            "status": event.status,
            "idempotency_key": key,
        }

        with transaction.atomic():
            try:
                with transaction.atomic():
                    record = DeliveryStatusEvent.objects.create(
                        order_id=event.order_id,
                        delivery_id=event.delivery_id,
                        status=event.status,
                        source=event.source,
                        occurred_at=event.occurred_at,
                        idempotency_key=key,
                        recipient_name=event.recipient_name,
                        photo_ref=event.photo_ref,
                        payload=event.payload,
                    )
            except IntegrityError:
                logger.info("Duplicate delivery event ignored", extra=log_extra)
                return DeliveryOutcome.DUPLICATE

            if event.status == DELIVERED:
                outcome = cls._release_for_delivery(event)
            else:
                outcome = DeliveryOutcome.RECORDED

            record.outcome = outcome
            record.save(update_fields=["outcome"])

        log_extra["outcome"] = outcome
        if outcome in (DeliveryOutcome.NO_ESCROW, DeliveryOutcome.SKIPPED_DISPUTED):
            logger.warning(f"Delivery event not applied: {outcome}", extra=log_extra)
        else:
            logger.info(f"Delivery event handled: {outcome}", extra=log_extra)
        return outcome

    @staticmethod
    def _release_for_delivery(event: DeliveryEvent) -> str:
        escrow = EscrowTransaction.objects.filter(order_id=event.order_id).first()
        if escrow is None:
            return DeliveryOutcome.NO_ESCROW
        if escrow.status == EscrowStatus.DISPUTED:
            return DeliveryOutcome.SKIPPED_DISPUTED
        if escrow.is_terminal:
            return DeliveryOutcome.SKIPPED_TERMINAL

        try:
            EscrowService.release(
                escrow.id,
                reason="Delivery confirmed",
                actor=DELIVERY_ACTOR,
                release_type=ReleaseType.AUTO_DELIVERY,
            )
        except AlreadyReleased:
            return DeliveryOutcome.SKIPPED_TERMINAL
        except InvalidTransition:
            # Status moved between the read above and the row lock
            current = (
                EscrowTransaction.objects.filter(pk=escrow.pk)
                .values_list("status", flat=True)
                .first()
            )
            if current == EscrowStatus.DISPUTED:
                return DeliveryOutcome.SKIPPED_DISPUTED
            return DeliveryOutcome.SKIPPED_TERMINAL
        return DeliveryOutcome.RELEASED

    @classmethod
    def apply_pending_delivery(cls, escrow: EscrowTransaction) -> EscrowTransaction:
        """
        Release a new escrow whose delivery was reported before its payment.

        A ``delivered`` event that found no escrow stays recorded with outcome
        ``no_escrow``. The hold created later for that order picks it up here
        and the event is marked ``released``. Returns the escrow as it is now.
        """
        with translate_lock_errors(), transaction.atomic():
            early = (
                DeliveryStatusEvent.objects.select_for_update()
                .filter(
                    order_id=escrow.order_id,
                    status=DELIVERED,
                    outcome=DeliveryOutcome.NO_ESCROW,
                )
                .order_by("created_at")
                .first()
            )
            if early is None:
                return escrow

            try:
                escrow = EscrowService.release(
                    escrow.id,
                    reason="Delivery confirmed",
                    actor=DELIVERY_ACTOR,
                    release_type=ReleaseType.AUTO_DELIVERY,
                )
            except (AlreadyReleased, InvalidTransition):
                return EscrowTransaction.objects.get(pk=escrow.pk)

            early.outcome = DeliveryOutcome.RELEASED
            early.save(update_fields=["outcome"])

        logger.info(
            "Early delivery event applied to new escrow",
            extra={
                "order_id": escrow.order_id,
                "escrow_id": str(escrow.id),
                "idempotency_key": early.idempotency_key,
            },
        )
        return escrow

    @classmethod
    def record_proof_of_delivery(
        cls,
        order_id: str,
        recipient_name: str,
        photo_ref: str,
        actor: Actor,
    ) -> str:
        """
        Accept a vendor's proof of delivery as a ``delivered`` event.

        Raises:
            ProofIncomplete: Recipient name or photo missing
            NotFound: No escrow for the order
            Forbidden: Actor neither operates the vendor nor is an admin
        """
        recipient_name = (recipient_name or "").strip()
        photo_ref = (photo_ref or "").strip()
        missing = [
            name
            for name, value in (("recipient_name", recipient_name), ("photo_ref", photo_ref))
            if not value
        ]
        if missing:
            raise ProofIncomplete(
                "Proof of delivery needs the recipient name and a photo",
                details={"order_id": order_id, "missing": missing},
            )

        escrow = EscrowService.get_escrow(order_id)
        if not actor.is_privileged and not escrow.vendor.is_operated_by(actor):
            raise Forbidden(
                "Only the order's vendor can upload proof of delivery",
                details={"order_id": order_id, "actor": actor.label},
            )

        return cls.handle_event(
            DeliveryEvent(
                order_id=order_id,
                status=DELIVERED,
                source=DeliverySource.MANUAL_PROOF_UPLOAD,
                occurred_at=timezone.now(),
                recipient_name=recipient_name,
                photo_ref=photo_ref,
                payload={"uploaded_by": actor.label},
            )
        )
