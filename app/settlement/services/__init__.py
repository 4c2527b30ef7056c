"""
Settlement services.

- WalletLedger: Append-only vendor wallet
- EscrowService: Escrow state machine
- DeliveryTrigger: Delivery events to escrow releases
- PayoutService: Vendor withdrawals and provider callbacks
- DisputeService: Dispute filing and admin resolution
- ReconciliationService: Ledger invariant audit
"""

from settlement.services.delivery_trigger import DeliveryTrigger
from settlement.services.dispute_service import DisputeService
from settlement.services.escrow_service import EscrowService
from settlement.services.payout_service import CallbackResult, PayoutService
from settlement.services.reconciliation_service import (
    ReconciliationService,
    ReconciliationSummary,
    WalletReconciliationReport,
)
from settlement.services.wallet_ledger import WalletLedger

__all__ = [
    "CallbackResult",
    "DeliveryTrigger",
    "DisputeService",
    "EscrowService",
    "PayoutService",
    "ReconciliationService",
    "ReconciliationSummary",
    "WalletLedger",
    "WalletReconciliationReport",
]
