"""
Webhook event handlers.

Handlers are registered per event type and return a ServiceResult.
The processing task marks the WebhookEvent processed on success and
failed on failure. Terminal domain errors (unknown vendor, invalid
transition) become failures and are not retried; transient errors
(ConcurrencyConflict, ProviderUnavailable) are raised so Celery retries
the task with backoff.

Usage:
    from settlement.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler("courier.custom")
    def handle_custom(webhook_event: WebhookEvent) -> ServiceResult:
        ...

    result = dispatch_webhook(webhook_event)
"""

from __future__ import annotations

import logging
from typing import Callable

from django.utils.dateparse import parse_datetime

from core.exceptions import BaseApplicationError
from core.services import ServiceResult

from settlement.exceptions import DuplicateEscrow
from settlement.models import WebhookEvent
from settlement.services import DeliveryTrigger, EscrowService, PayoutService
from settlement.state_machines import DeliverySource
from settlement.types import DeliveryEvent


logger = logging.getLogger(__name__)

PAYMENT_CONFIRMED = "payment.confirmed"
DELIVERY_STATUS = "delivery.status"
PAYOUT_OUTCOME = "payout.outcome"


# =============================================================================
# Handler Registry
# =============================================================================


WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], ServiceResult]] = {}


def register_handler(event_type: str) -> Callable:
    """Decorator registering a handler for one event type."""

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[event_type] = func
        return func

    return decorator


def dispatch_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Route a webhook event to its handler.

    Unknown event types succeed without doing anything so a provider
    adding new events never blocks the queue.
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)
    log_extra = {
        "webhook_event_id": str(webhook_event.id),
        "source": webhook_event.source,
        "event_type": webhook_event.event_type,
    }

    if not handler:
        logger.info("No handler registered for event type", extra=log_extra)
        return ServiceResult.success(None)

    try:
        return handler(webhook_event)
    except BaseApplicationError as exc:
        if exc.retryable:
            raise
        logger.warning(
            f"Webhook rejected by settlement engine: {exc}",
            extra={**log_extra, "error_code": exc.error_code},
        )
        return ServiceResult.from_exception(exc)


def _missing_fields(payload: dict, *names: str) -> ServiceResult | None:
    missing = [name for name in names if payload.get(name) in (None, "")]
    if not missing:
        return None
    return ServiceResult.failure(
        f"Webhook payload missing fields: {', '.join(missing)}",
        error_code="INVALID_WEBHOOK_PAYLOAD",
        errors={name: ["This field is required."] for name in missing},
    )


# =============================================================================
# Handlers
# =============================================================================


@register_handler(PAYMENT_CONFIRMED)
def handle_payment_confirmed(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Place the confirmed order payment in escrow.

    A second confirmation for the same order is a success: the escrow
    already exists and nothing else needs to happen.
    """
    payload = webhook_event.payload
    invalid = _missing_fields(payload, "orderId", "buyerId", "vendorId", "amount")
    if invalid is not None:
        return invalid

    try:
        escrow = EscrowService.create_hold(
            order_id=str(payload["orderId"]),
            buyer_id=str(payload["buyerId"]),
            vendor_id=payload["vendorId"],
            amount=payload["amount"],
            payment_reference=payload.get("paymentReference"),
        )
    except DuplicateEscrow:
        logger.info(
            "Payment confirmation replayed, escrow already held",
            extra={
                "webhook_event_id": str(webhook_event.id),
                "order_id": payload["orderId"],
            },
        )
        return ServiceResult.success(None)

    return ServiceResult.success(str(escrow.id))


@register_handler(DELIVERY_STATUS)
def handle_delivery_status(webhook_event: WebhookEvent) -> ServiceResult:
    """Feed a courier status update to the delivery trigger."""
    payload = webhook_event.payload
    invalid = _missing_fields(payload, "orderId", "status")
    if invalid is not None:
        return invalid

    occurred_at = payload.get("occurredAt")
    outcome = DeliveryTrigger.handle_event(
        DeliveryEvent(
            order_id=str(payload["orderId"]),
            status=str(payload["status"]),
            source=DeliverySource.COURIER_WEBHOOK,
            delivery_id=str(payload.get("deliveryId") or ""),
            occurred_at=parse_datetime(occurred_at) if occurred_at else None,
            event_id=str(payload.get("eventId") or ""),
            payload=payload,
        )
    )
    return ServiceResult.success(outcome)


@register_handler(PAYOUT_OUTCOME)
def handle_payout_outcome(webhook_event: WebhookEvent) -> ServiceResult:
    """Apply the payout provider's success/failure report."""
    payload = webhook_event.payload
    invalid = _missing_fields(payload, "payoutId", "outcome")
    if invalid is not None:
        return invalid

    result = PayoutService.on_provider_callback(
        payout_ref=str(payload["payoutId"]),
        outcome=str(payload["outcome"]).lower(),
        provider_reference=payload.get("providerReference"),
        failure_reason=payload.get("reason"),
    )
    return ServiceResult.success({"status": result.payout.status, "changed": result.changed})
