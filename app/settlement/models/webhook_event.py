"""
WebhookEvent model for inbound provider webhooks.

Every verified webhook from the payment gateway, the courier or the
payout provider is stored here before processing. The unique
(source, external_event_id) pair turns provider retries into no-ops.

Usage:
    from settlement.models import WebhookEvent

    event, created = WebhookEvent.objects.get_or_create(
        source=WebhookSource.COURIER,
        external_event_id="DLV-77:delivered",
        defaults={"event_type": "delivery.status", "payload": payload},
    )
    if not created and event.is_processed:
        return HttpResponse(status=200)
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from settlement.state_machines import WebhookEventStatus, WebhookSource


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Tracks provider webhook events for idempotent processing.

    Processing Flow:
        1. View verifies the HMAC signature
        2. get_or_create on (source, external_event_id)
        3. Already PROCESSED -> 200, nothing queued
        4. Otherwise queue settlement.tasks.process_webhook_event
        5. Task marks PROCESSING, dispatches, marks PROCESSED or FAILED
        6. retry_failed_webhooks re-queues FAILED events under the retry cap

    Fields:
        source: payment, courier or payout
        external_event_id: Provider event id, or one derived from the payload
        event_type: Handler key (e.g. "payment.confirmed")
        payload: Parsed JSON body
        status: Processing status
        processed_at: When processing succeeded
        error_message: Last failure message
        retry_count: Number of processing attempts
    """

    source = models.CharField(
        max_length=20,
        choices=WebhookSource.choices,
        help_text="Provider that sent the webhook",
    )

    external_event_id = models.CharField(
        max_length=255,
        help_text="Provider event id (or derived key) - unique per source",
    )

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Event type used to pick the handler",
    )

    payload = models.JSONField(
        help_text="Webhook body as received",
    )

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
        help_text="Current processing status",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When event was successfully processed",
    )

    error_message = models.TextField(
        null=True,
        blank=True,
        help_text="Error message if processing failed",
    )

    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of processing attempts",
    )

    class Meta:
        ordering = ["-created_at"]
        db_table = "webhook_events"
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        constraints = [
            models.UniqueConstraint(
                fields=["source", "external_event_id"],
                name="webhook_event_unique_per_source",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "created_at"], name="webhook_status_created_idx"),
            models.Index(fields=["status", "retry_count"], name="webhook_status_retry_idx"),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.source}:{self.external_event_id}, {self.event_type})"

    @property
    def is_processed(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSED

    @property
    def is_failed(self) -> bool:
        return self.status == WebhookEventStatus.FAILED

    @property
    def can_retry(self) -> bool:
        """Failed and still under WEBHOOK_MAX_RETRIES attempts."""
        return self.is_failed and self.retry_count < settings.WEBHOOK_MAX_RETRIES

    # Helpers below do not save - the caller saves.

    def mark_processing(self) -> None:
        self.status = WebhookEventStatus.PROCESSING
        self.retry_count += 1

    def mark_processed(self) -> None:
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.error_message = None

    def mark_failed(self, error_message: str) -> None:
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message
