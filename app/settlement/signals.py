"""
Django signals for the settlement engine.

Notification collaborators (email, push, order status sync) subscribe to
these signals instead of being called by the services. Signals are sent
with ``transaction.on_commit`` so receivers only ever see committed state
and a rolled-back release never notifies anyone.

Usage:
    from django.dispatch import receiver
    from settlement.signals import escrow_released

    @receiver(escrow_released)
    def notify_vendor(sender, escrow, **kwargs):
        ...
"""

from __future__ import annotations

import logging

from django.db import transaction
from django.dispatch import Signal

logger = logging.getLogger(__name__)


# Escrow lifecycle: sender=EscrowTransaction, kwargs: escrow
escrow_held = Signal()
escrow_released = Signal()
escrow_refunded = Signal()
escrow_disputed = Signal()

# Payouts: sender=Payout, kwargs: payout
payout_completed = Signal()
payout_failed = Signal()

# Disputes: sender=Dispute, kwargs: dispute
dispute_resolved = Signal()


def send_on_commit(signal: Signal, sender: type, **kwargs) -> None:
    """
    Send ``signal`` after the current transaction commits.

    Outside a transaction Django runs the callback immediately. Receiver
    errors are logged and do not affect the settlement operation, which
    has already committed.
    """

    def _send() -> None:
        for receiver, response in signal.send_robust(sender=sender, **kwargs):
            if isinstance(response, Exception):
                logger.error(
                    f"Signal receiver {receiver!r} failed: {response}",
                    extra={"sender": sender.__name__},
                    exc_info=response,
                )

    transaction.on_commit(_send)
