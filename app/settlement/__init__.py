"""
Escrow settlement engine.

Holds buyer payment per order, splits platform fee from vendor proceeds,
keeps an append-only wallet ledger per vendor, and releases or reverses
held funds on delivery, admin and dispute events. Vendor withdrawals are
debited from the wallet and reconciled from payout provider callbacks.

Submodules:
    - models: Ledger store (vendors, escrows, wallet entries, payouts, disputes)
    - fees: Platform fee split
    - services: Escrow state machine, wallet ledger, delivery trigger,
      payout processor, dispute override, reconciliation
    - webhooks: Payment, courier and payout provider callbacks
    - tasks: Celery tasks for webhook processing and reconciliation
"""
