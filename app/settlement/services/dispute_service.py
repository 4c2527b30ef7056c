"""
Dispute override.

A buyer or vendor files a dispute on an order; the escrow is frozen
(held -> disputed) in the same transaction, so a late "delivered" event
can no longer release it. An admin investigates and resolves the dispute
toward the vendor (release plus wallet credit) or the buyer (refund).

Usage:
    from settlement.services import DisputeService

    dispute = DisputeService.file_dispute(
        order_id="ORD-1001",
        filed_by_type=FiledByType.BUYER,
        reason="Parcel never arrived",
        actor=Actor.from_user(buyer),
    )
    DisputeService.resolve(dispute.id, "Courier confirmed loss", DisputeOutcome.REFUND, admin)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction

from core.services import BaseService

from settlement.exceptions import Forbidden, InvalidTransition, NotFound
from settlement.models import Dispute
from settlement.services.base import (
    ensure_admin,
    ensure_choice,
    parse_id,
    require_reason,
    translate_lock_errors,
    user_id_of,
)
from settlement.services.escrow_service import EscrowService
from settlement.signals import dispute_resolved, send_on_commit
from settlement.state_machines import DisputeOutcome, DisputeStatus, DisputeType, FiledByType

if TYPE_CHECKING:
    import uuid
    from collections.abc import Iterable

    from settlement.types import Actor


logger = logging.getLogger(__name__)


def _invalid_transition(dispute: Dispute, action: str) -> InvalidTransition:
    return InvalidTransition(
        f"Cannot {action} dispute in status '{dispute.status}'",
        details={
            "dispute_id": str(dispute.id),
            "status": dispute.status,
            "action": action,
        },
    )


class DisputeService(BaseService):
    """Files disputes and applies admin decisions to the frozen escrow."""

    @classmethod
    def file_dispute(
        cls,
        order_id: str,
        filed_by_type: str,
        reason: str,
        actor: Actor | None = None,
        dispute_type: str = DisputeType.OTHER,
        evidence_urls: Iterable[str] = (),
    ) -> Dispute:
        """
        Open a dispute and freeze the order's escrow.

        Raises:
            ReasonRequired: Empty reason
            ValidationError: Unknown filed_by_type or dispute_type
            NotFound: No escrow for the order
            Forbidden: Actor is not the buyer/vendor they claim to be
            InvalidTransition: Escrow is not held (released, refunded or
                already disputed)
        """
        reason = require_reason(reason, "file a dispute")
        ensure_choice(filed_by_type, FiledByType, "filed_by_type")
        ensure_choice(dispute_type, DisputeType, "dispute_type")

        escrow = EscrowService.get_escrow(order_id)
        if actor is not None and not actor.is_privileged:
            if filed_by_type == FiledByType.BUYER:
                allowed = actor.id == escrow.buyer_id
            else:
                allowed = escrow.vendor.is_operated_by(actor)
            if not allowed:
                raise Forbidden(
                    f"Only the order's {filed_by_type} can file this dispute",
                    details={"order_id": order_id, "actor": actor.label},
                )

        try:
            with transaction.atomic():
                EscrowService.mark_disputed(escrow.id, reason)
                dispute = Dispute.objects.create(
                    escrow=escrow,
                    order_id=order_id,
                    filed_by_id=user_id_of(actor),
                    filed_by_type=filed_by_type,
                    dispute_type=dispute_type,
                    reason=reason,
                    evidence_urls=list(evidence_urls),
                )
        except IntegrityError as exc:
            raise InvalidTransition(
                f"Order {order_id} already has an active dispute",
                details={"order_id": order_id},
            ) from exc

        cls.get_logger().info(
            "Dispute filed",
            extra={
                "dispute_id": str(dispute.id),
                "order_id": order_id,
                "escrow_id": str(escrow.id),
                "filed_by_type": filed_by_type,
                "dispute_type": dispute_type,
            },
        )
        return dispute

    @staticmethod
    def get_dispute(dispute_id: uuid.UUID | str, actor: Actor | None = None) -> Dispute:
        """
        Return a dispute; non-admins only see disputes on their own orders.
        """
        dispute = (
            Dispute.objects.select_related("escrow", "escrow__vendor")
            .filter(pk=parse_id(dispute_id, "Dispute"))
            .first()
        )
        if dispute is None:
            raise NotFound(
                f"Dispute {dispute_id} not found",
                details={"dispute_id": str(dispute_id)},
            )
        if actor is not None and not actor.is_privileged:
            escrow = dispute.escrow
            if actor.id != escrow.buyer_id and not escrow.vendor.is_operated_by(actor):
                raise Forbidden(
                    "You are not a party to this dispute",
                    details={"dispute_id": str(dispute_id), "actor": actor.label},
                )
        return dispute

    @classmethod
    def start_investigation(cls, dispute_id: uuid.UUID | str, actor: Actor) -> Dispute:
        """Admin: open -> investigating."""
        ensure_admin(actor, "investigate disputes")
        with translate_lock_errors(), transaction.atomic():
            dispute = cls._lock(dispute_id)
            if dispute.status != DisputeStatus.OPEN:
                raise _invalid_transition(dispute, "investigate")
            dispute.start_investigation()
            dispute.save()

        cls.get_logger().info(
            "Dispute under investigation",
            extra={"dispute_id": str(dispute.id), "actor": actor.label},
        )
        return dispute

    @classmethod
    def resolve(
        cls,
        dispute_id: uuid.UUID | str,
        resolution: str,
        outcome: str,
        actor: Actor,
    ) -> Dispute:
        """
        Admin: decide a dispute and settle the escrow accordingly.

        The dispute and the escrow change in one transaction; with outcome
        ``release`` the vendor wallet is credited in that transaction too.

        Raises:
            Forbidden: Actor is not an admin
            ReasonRequired: Empty resolution text
            ValidationError: Unknown outcome
            InvalidTransition: Dispute is not open or investigating
        """
        ensure_admin(actor, "resolve disputes")
        resolution = require_reason(resolution, "resolve a dispute")
        ensure_choice(outcome, DisputeOutcome, "outcome")

        with translate_lock_errors(), transaction.atomic():
            dispute = cls._lock(dispute_id)
            if not dispute.is_active:
                raise _invalid_transition(dispute, "resolve")

            EscrowService.resolve_dispute(dispute.escrow_id, outcome, resolution, actor)
            dispute.resolve(
                outcome=outcome,
                resolution=resolution,
                resolved_by_id=user_id_of(actor),
            )
            dispute.save()

        cls.get_logger().info(
            f"Dispute resolved: {outcome}",
            extra={
                "dispute_id": str(dispute.id),
                "order_id": dispute.order_id,
                "outcome": outcome,
                "actor": actor.label,
            },
        )
        send_on_commit(dispute_resolved, Dispute, dispute=dispute)
        return dispute

    @classmethod
    def close(cls, dispute_id: uuid.UUID | str, actor: Actor) -> Dispute:
        """Admin: resolved -> closed."""
        ensure_admin(actor, "close disputes")
        with translate_lock_errors(), transaction.atomic():
            dispute = cls._lock(dispute_id)
            if dispute.status != DisputeStatus.RESOLVED:
                raise _invalid_transition(dispute, "close")
            dispute.close()
            dispute.save()
        return dispute

    @staticmethod
    def _lock(dispute_id: uuid.UUID | str) -> Dispute:
        dispute = (
            Dispute.objects.select_for_update()
            .filter(pk=parse_id(dispute_id, "Dispute"))
            .first()
        )
        if dispute is None:
            raise NotFound(
                f"Dispute {dispute_id} not found",
                details={"dispute_id": str(dispute_id)},
            )
        return dispute

