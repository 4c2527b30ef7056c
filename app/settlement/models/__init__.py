"""
Settlement domain models.

- Vendor: Marketplace seller and cached wallet balance
- EscrowTransaction: Buyer funds held per order
- WalletTransaction: Append-only vendor wallet ledger
- Payout: Vendor withdrawal to a bank account
- Dispute: Complaint freezing an escrow until an admin decides
- DeliveryStatusEvent: Delivery history and replay protection
- WebhookEvent: Inbound provider webhooks for idempotent processing
"""

from settlement.models.delivery import DeliveryStatusEvent
from settlement.models.dispute import Dispute
from settlement.models.escrow import EscrowTransaction
from settlement.models.payout import Payout
from settlement.models.vendor import Vendor
from settlement.models.wallet import WalletTransaction
from settlement.models.webhook_event import WebhookEvent

__all__ = [
    "DeliveryStatusEvent",
    "Dispute",
    "EscrowTransaction",
    "Payout",
    "Vendor",
    "WalletTransaction",
    "WebhookEvent",
]
