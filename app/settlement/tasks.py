"""
Celery tasks for the settlement engine.

- process_webhook_event: apply one stored webhook (queued by the views)
- retry_failed_webhooks: re-queue failed webhooks under the retry cap
- cleanup_stuck_webhooks: reset webhooks a crashed worker left processing
- reconcile_vendor_wallets: hourly ledger audit

Schedules live in django-celery-beat (see migration 0002).

Usage:
    from settlement.tasks import process_webhook_event

    process_webhook_event.delay(str(webhook_event.id))
"""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from kombu.exceptions import OperationalError as BrokerError

from settlement.exceptions import ConcurrencyConflict, LockAcquisitionError, ProviderUnavailable
from settlement.locks import DistributedLock
from settlement.models import WebhookEvent
from settlement.state_machines import WebhookEventStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Webhook Processing Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(ConcurrencyConflict, ProviderUnavailable),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": 5},
    acks_late=True,
)
def process_webhook_event(self, webhook_event_id: str) -> dict:
    """
    Process a stored webhook event.

    A Redis lock keyed on the event keeps two workers from applying the
    same event at once; it is taken before any database transaction.
    The handler's own transactions make the work atomic.

    Returns:
        Dict with the processing status

    Raises:
        ConcurrencyConflict, ProviderUnavailable: Retried by Celery
    """
    from settlement.webhooks.handlers import dispatch_webhook

    webhook_event_id = str(webhook_event_id)
    log_extra = {"webhook_event_id": webhook_event_id}

    try:
        lock = DistributedLock(
            f"webhook:{webhook_event_id}",
            ttl=settings.WEBHOOK_LOCK_TTL_SECONDS,
        )
        lock.acquire()
    except LockAcquisitionError:
        logger.info("Webhook event locked by another worker, skipping", extra=log_extra)
        return {"status": "locked", "webhook_event_id": webhook_event_id}

    try:
        webhook_event = WebhookEvent.objects.filter(id=webhook_event_id).first()
        if webhook_event is None:
            logger.error("WebhookEvent not found", extra=log_extra)
            return {"status": "not_found", "webhook_event_id": webhook_event_id}

        if webhook_event.is_processed:
            logger.info("WebhookEvent already processed, skipping", extra=log_extra)
            return {"status": "already_processed", "webhook_event_id": webhook_event_id}

        webhook_event.mark_processing()
        webhook_event.save(update_fields=["status", "retry_count", "updated_at"])
        log_extra.update(
            source=webhook_event.source,
            event_type=webhook_event.event_type,
            retry_count=webhook_event.retry_count,
        )

        try:
            result = dispatch_webhook(webhook_event)
        except (ConcurrencyConflict, ProviderUnavailable) as exc:
            webhook_event.mark_failed(str(exc))
            webhook_event.save(update_fields=["status", "error_message", "updated_at"])
            logger.warning(f"Webhook processing will be retried: {exc}", extra=log_extra)
            raise
        except Exception as exc:
            webhook_event.mark_failed(f"{type(exc).__name__}: {exc}")
            webhook_event.save(update_fields=["status", "error_message", "updated_at"])
            logger.exception("Webhook processing failed with exception", extra=log_extra)
            raise

        if result.success:
            webhook_event.mark_processed()
            webhook_event.save(
                update_fields=["status", "processed_at", "error_message", "updated_at"]
            )
            logger.info("Webhook processed successfully", extra=log_extra)
            return {"status": "processed", "webhook_event_id": webhook_event_id}

        error_msg = result.error or "Handler returned failure"
        webhook_event.mark_failed(error_msg)
        webhook_event.save(update_fields=["status", "error_message", "updated_at"])
        logger.warning(
            f"Webhook handler failed: {error_msg}",
            extra={**log_extra, "error_code": result.error_code},
        )
        return {
            "status": "handler_failed",
            "webhook_event_id": webhook_event_id,
            "error": error_msg,
        }
    finally:
        lock.release()


@shared_task
def retry_failed_webhooks() -> dict:
    """
    Re-queue failed webhooks that are still under WEBHOOK_MAX_RETRIES.

    Scheduled every 5 minutes.
    """
    failed_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.FAILED,
        retry_count__lt=settings.WEBHOOK_MAX_RETRIES,
    ).order_by("created_at")[:100]

    queued_count = 0
    for webhook in failed_webhooks:
        try:
            process_webhook_event.delay(str(webhook.id))
        except BrokerError:
            logger.error(
                "Failed to queue webhook for retry",
                extra={"webhook_event_id": str(webhook.id)},
                exc_info=True,
            )
            continue
        queued_count += 1

    if queued_count:
        logger.info(
            f"Queued {queued_count} failed webhooks for retry",
            extra={"queued_count": queued_count},
        )
    return {"queued_count": queued_count}


@shared_task
def cleanup_stuck_webhooks() -> dict:
    """
    Reset webhooks stuck in PROCESSING (worker crashed) to FAILED.

    Scheduled every 15 minutes; the next retry_failed_webhooks run picks
    them up.
    """
    threshold = timezone.now() - timedelta(minutes=settings.WEBHOOK_STUCK_THRESHOLD_MINUTES)
    stuck_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.PROCESSING,
        updated_at__lt=threshold,
    )

    reset_count = 0
    for webhook in stuck_webhooks:
        stuck_since = webhook.updated_at
        webhook.mark_failed("Processing timed out - reset for retry")
        webhook.save(update_fields=["status", "error_message", "updated_at"])
        reset_count += 1
        logger.warning(
            "Reset stuck webhook",
            extra={
                "webhook_event_id": str(webhook.id),
                "stuck_since": stuck_since.isoformat(),
            },
        )

    return {"reset_count": reset_count}


# =============================================================================
# Reconciliation
# =============================================================================


@shared_task
def reconcile_vendor_wallets() -> dict:
    """
    Hourly audit of every vendor wallet and escrow credit.

    Each discrepancy is logged at ERROR; nothing is corrected
    automatically.
    """
    from settlement.services import ReconciliationService

    summary = ReconciliationService.run()

    for report in summary.inconsistent_wallets:
        for discrepancy in report.discrepancies:
            logger.error(
                f"Wallet discrepancy: {discrepancy}",
                extra={"vendor_id": str(report.vendor_id)},
            )
    for discrepancy in summary.escrow_discrepancies:
        logger.error(f"Escrow credit discrepancy: {discrepancy}")

    return {
        "vendors_checked": summary.vendors_checked,
        "discrepancy_count": summary.discrepancy_count,
    }
