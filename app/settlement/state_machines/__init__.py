"""
State machine enums for settlement models.
"""

from settlement.state_machines.states import (
    DeliveryOutcome,
    DeliverySource,
    DisputeOutcome,
    DisputeStatus,
    DisputeType,
    EscrowStatus,
    FiledByType,
    PayoutOutcome,
    PayoutStatus,
    ReleaseType,
    WalletTransactionStatus,
    WalletTransactionType,
    WebhookEventStatus,
    WebhookSource,
)

__all__ = [
    "DeliveryOutcome",
    "DeliverySource",
    "DisputeOutcome",
    "DisputeStatus",
    "DisputeType",
    "EscrowStatus",
    "FiledByType",
    "PayoutOutcome",
    "PayoutStatus",
    "ReleaseType",
    "WalletTransactionStatus",
    "WalletTransactionType",
    "WebhookEventStatus",
    "WebhookSource",
]
