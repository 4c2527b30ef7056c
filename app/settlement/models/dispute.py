"""
Dispute model: a buyer or vendor complaint that freezes an escrow.

Filing a dispute moves the escrow to DISPUTED so delivery events can no
longer release it. An admin resolves the dispute toward release or refund;
the escrow follows in the same transaction (see
settlement.services.dispute_service).
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin

from settlement.state_machines import (
    DisputeOutcome,
    DisputeStatus,
    DisputeType,
    FiledByType,
)


class Dispute(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    A complaint about an order whose funds are held in escrow.

    State Flow:
        OPEN -> INVESTIGATING -> RESOLVED -> CLOSED
        OPEN -> RESOLVED

    Fields:
        escrow: Escrow frozen by this dispute
        order_id: Denormalized order id for lookups
        filed_by: User who filed (empty for admin-filed disputes)
        filed_by_type: buyer or vendor
        dispute_type: Category of complaint
        reason: Filer's description
        evidence_urls: Links to uploaded evidence
        status: Current FSM state
        outcome: release or refund, set on resolution
        resolution: Admin's resolution text
        resolved_by: Admin who resolved the dispute
        resolved_at: When the dispute was resolved
    """

    escrow = models.ForeignKey(
        "settlement.EscrowTransaction",
        on_delete=models.PROTECT,
        related_name="disputes",
    )

    order_id = models.CharField(max_length=64, db_index=True)

    filed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="filed_disputes",
    )

    filed_by_type = models.CharField(
        max_length=10,
        choices=FiledByType.choices,
    )

    dispute_type = models.CharField(
        max_length=20,
        choices=DisputeType.choices,
        default=DisputeType.OTHER,
    )

    reason = models.TextField(help_text="Description of the problem")

    evidence_urls = models.JSONField(
        default=list,
        blank=True,
        help_text="Links to evidence (photos, chat exports)",
    )

    status = FSMField(
        default=DisputeStatus.OPEN,
        choices=DisputeStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the dispute (managed by FSM)",
    )

    outcome = models.CharField(
        max_length=10,
        choices=DisputeOutcome.choices,
        blank=True,
    )

    resolution = models.TextField(blank=True)

    resolved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="resolved_disputes",
    )

    resolved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        db_table = "disputes"
        constraints = [
            models.UniqueConstraint(
                fields=["escrow"],
                condition=Q(status__in=[DisputeStatus.OPEN, DisputeStatus.INVESTIGATING]),
                name="dispute_one_active_per_escrow",
            ),
        ]

    def __str__(self) -> str:
        return f"Dispute({self.order_id}, {self.status})"

    @property
    def is_active(self) -> bool:
        return self.status in DisputeStatus.active()

    @transition(
        field=status,
        source=DisputeStatus.OPEN,
        target=DisputeStatus.INVESTIGATING,
    )
    def start_investigation(self) -> None:
        """Transition: OPEN -> INVESTIGATING"""

    @transition(
        field=status,
        source=[DisputeStatus.OPEN, DisputeStatus.INVESTIGATING],
        target=DisputeStatus.RESOLVED,
    )
    def resolve(self, outcome: str, resolution: str, resolved_by_id=None) -> None:
        """Transition: OPEN/INVESTIGATING -> RESOLVED"""
        self.outcome = outcome
        self.resolution = resolution
        self.resolved_by_id = resolved_by_id
        self.resolved_at = timezone.now()

    @transition(
        field=status,
        source=DisputeStatus.RESOLVED,
        target=DisputeStatus.CLOSED,
    )
    def close(self) -> None:
        """Transition: RESOLVED -> CLOSED"""
