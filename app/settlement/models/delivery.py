"""
DeliveryStatusEvent model: delivery history and replay protection.

Every courier status update and manual proof of delivery is stored once,
keyed by ``idempotency_key``. The unique key is what makes courier
retries harmless: a second insert with the same key is detected before
any escrow logic runs.
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin

from settlement.state_machines import DeliveryOutcome, DeliverySource


class DeliveryStatusEvent(UUIDPrimaryKeyMixin, models.Model):
    """
    One delivery status change for an order.

    Fields:
        order_id: Order the delivery belongs to
        delivery_id: Courier's delivery id (empty for manual proofs)
        status: Courier vocabulary, lowercased (e.g. out_for_delivery)
        source: courier_webhook or manual_proof_upload
        occurred_at: When the courier says it happened
        idempotency_key: Event id or derived key, unique
        recipient_name, photo_ref: Proof of delivery details
        outcome: What the delivery trigger did with the event
        payload: Raw event for audit
        created_at: When we received it
    """

    order_id = models.CharField(max_length=64, db_index=True)
    delivery_id = models.CharField(max_length=100, blank=True, db_index=True)
    status = models.CharField(max_length=50)
    source = models.CharField(
        max_length=30,
        choices=DeliverySource.choices,
        default=DeliverySource.COURIER_WEBHOOK,
    )
    occurred_at = models.DateTimeField(null=True, blank=True)

    idempotency_key = models.CharField(
        max_length=255,
        unique=True,
        help_text="External event id or derived key - replays are ignored",
    )

    recipient_name = models.CharField(max_length=200, blank=True)
    photo_ref = models.CharField(max_length=500, blank=True)

    outcome = models.CharField(
        max_length=20,
        choices=DeliveryOutcome.choices,
        blank=True,
    )

    payload = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-created_at"]
        db_table = "delivery_status_events"
        verbose_name = "Delivery Status Event"
        verbose_name_plural = "Delivery Status Events"

    def __str__(self) -> str:
        return f"Delivery({self.order_id}, {self.status}, {self.source})"
