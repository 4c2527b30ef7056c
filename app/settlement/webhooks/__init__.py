"""
Inbound provider webhooks.

Views verify and store events; handlers apply them through the
settlement services from a Celery worker.
"""

from settlement.webhooks.handlers import dispatch_webhook, register_handler
from settlement.webhooks.views import courier_webhook, payment_webhook, payout_webhook

__all__ = [
    "courier_webhook",
    "dispatch_webhook",
    "payment_webhook",
    "payout_webhook",
    "register_handler",
]
