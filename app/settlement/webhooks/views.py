"""
Webhook endpoints for the payment gateway, courier and payout provider.

Each view:
1. Verifies the HMAC-SHA256 signature of the raw body
2. Creates/gets the WebhookEvent on (source, external_event_id)
3. Queues processing with Celery
4. Returns immediately

Providers sign the raw request body with a shared secret and send the hex
digest in the ``X-Signature`` header. Without a configured secret every
request is rejected.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from typing import Callable

from django.conf import settings
from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from kombu.exceptions import OperationalError as BrokerError

from settlement.models import WebhookEvent
from settlement.state_machines import WebhookSource
from settlement.webhooks.handlers import DELIVERY_STATUS, PAYMENT_CONFIRMED, PAYOUT_OUTCOME


logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Signature"


def verify_signature(body: bytes, signature: str, secret: str) -> bool:
    """Constant-time check of a hex HMAC-SHA256 signature."""
    if not secret or not signature:
        return False
    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature.strip().lower())


def _payment_event_id(payload: dict) -> str:
    return f"payment:{payload.get('orderId', '')}"


def _courier_event_id(payload: dict) -> str:
    delivery = payload.get("deliveryId") or payload.get("orderId", "")
    return f"{delivery}:{str(payload.get('status', '')).strip().lower()}"


def _payout_event_id(payload: dict) -> str:
    return f"{payload.get('payoutId', '')}:{str(payload.get('outcome', '')).lower()}"


def _receive(
    request: HttpRequest,
    source: str,
    secret: str,
    event_type: str,
    derive_event_id: Callable[[dict], str],
) -> HttpResponse:
    body = request.body
    signature = request.headers.get(SIGNATURE_HEADER, "")

    if not verify_signature(body, signature, secret):
        logger.warning(
            "Webhook signature verification failed",
            extra={"source": source, "has_signature": bool(signature)},
        )
        return HttpResponse("Invalid signature", status=400)

    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("Webhook body is not valid JSON", extra={"source": source})
        return HttpResponse("Invalid payload", status=400)
    if not isinstance(payload, dict):
        return HttpResponse("Invalid payload", status=400)

    external_event_id = str(payload.get("eventId") or derive_event_id(payload))

    webhook_event, created = WebhookEvent.objects.get_or_create(
        source=source,
        external_event_id=external_event_id,
        defaults={"event_type": event_type, "payload": payload},
    )
    log_extra = {
        "source": source,
        "external_event_id": external_event_id,
        "webhook_event_id": str(webhook_event.id),
    }

    if not created and webhook_event.is_processed:
        logger.info("Webhook already processed, returning success", extra=log_extra)
        return HttpResponse("Already processed", status=200)

    try:
        from settlement.tasks import process_webhook_event

        process_webhook_event.delay(str(webhook_event.id))
        logger.info("Webhook queued for processing", extra=log_extra)
    except BrokerError:
        # Stored as pending; retry_failed_webhooks / provider retry picks it up
        logger.error("Failed to queue webhook", extra=log_extra, exc_info=True)

    return HttpResponse("Accepted", status=200)


@csrf_exempt
@require_POST
def payment_webhook(request: HttpRequest) -> HttpResponse:
    """Payment confirmation: places the order payment in escrow."""
    return _receive(
        request,
        WebhookSource.PAYMENT,
        settings.PAYMENT_WEBHOOK_SECRET,
        PAYMENT_CONFIRMED,
        _payment_event_id,
    )


@csrf_exempt
@require_POST
def courier_webhook(request: HttpRequest) -> HttpResponse:
    """Courier delivery status update."""
    return _receive(
        request,
        WebhookSource.COURIER,
        settings.COURIER_WEBHOOK_SECRET,
        DELIVERY_STATUS,
        _courier_event_id,
    )


@csrf_exempt
@require_POST
def payout_webhook(request: HttpRequest) -> HttpResponse:
    """Payout provider outcome callback."""
    return _receive(
        request,
        WebhookSource.PAYOUT,
        settings.PAYOUT_WEBHOOK_SECRET,
        PAYOUT_OUTCOME,
        _payout_event_id,
    )
