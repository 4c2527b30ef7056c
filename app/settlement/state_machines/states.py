"""
State enums for settlement models.

Django TextChoices used by the django-fsm fields and the plain choice
fields of the settlement models.

State Machines Overview:

EscrowTransaction:
    held → released                 (delivery, buyer confirmation, admin)
    held → refunded                 (admin)
    held → disputed → released      (dispute resolved toward vendor)
    held → disputed → refunded      (dispute resolved toward buyer)

Payout:
    pending → processing → completed
    pending/processing → failed     (compensating wallet reversal)

Dispute:
    open → investigating → resolved → closed
    open → resolved
"""

from django.db import models


class EscrowStatus(models.TextChoices):
    """
    States for the EscrowTransaction lifecycle.

    Terminal states: RELEASED, REFUNDED
    """

    HELD = "held", "Held"
    RELEASED = "released", "Released"
    REFUNDED = "refunded", "Refunded"
    DISPUTED = "disputed", "Disputed"

    @classmethod
    def terminal(cls) -> frozenset[str]:
        return frozenset({cls.RELEASED, cls.REFUNDED})


class ReleaseType(models.TextChoices):
    """How an escrow came to be released."""

    AUTO_DELIVERY = "auto_delivery", "Automatic (delivery confirmed)"
    MANUAL_BUYER = "manual_buyer", "Buyer confirmation"
    ADMIN_OVERRIDE = "admin_override", "Admin override"
    DISPUTE_RESOLUTION = "dispute_resolution", "Dispute resolution"


class WalletTransactionType(models.TextChoices):
    """
    Kinds of wallet ledger entries.

    Sign convention (enforced by the wallet ledger):
        CREDIT, REVERSAL: positive
        DEBIT: negative
        ADJUSTMENT: either sign, never zero
    """

    CREDIT = "credit", "Credit"
    DEBIT = "debit", "Debit"
    ADJUSTMENT = "adjustment", "Adjustment"
    REVERSAL = "reversal", "Reversal"


class WalletTransactionStatus(models.TextChoices):
    """Settlement status of a wallet entry."""

    PENDING = "pending", "Pending"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class PayoutStatus(models.TextChoices):
    """
    States for the Payout lifecycle.

    Terminal states: COMPLETED, FAILED
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"

    @classmethod
    def terminal(cls) -> frozenset[str]:
        return frozenset({cls.COMPLETED, cls.FAILED})


class PayoutOutcome(models.TextChoices):
    """Outcome reported by the payout provider."""

    SUCCESS = "success", "Success"
    FAILURE = "failure", "Failure"
    PROCESSING = "processing", "Processing"


class DisputeStatus(models.TextChoices):
    """States for the Dispute lifecycle."""

    OPEN = "open", "Open"
    INVESTIGATING = "investigating", "Investigating"
    RESOLVED = "resolved", "Resolved"
    CLOSED = "closed", "Closed"

    @classmethod
    def active(cls) -> list[str]:
        return [cls.OPEN, cls.INVESTIGATING]


class DisputeOutcome(models.TextChoices):
    """Where the held funds go when a dispute is resolved."""

    RELEASE = "release", "Release to vendor"
    REFUND = "refund", "Refund to buyer"


class DisputeType(models.TextChoices):
    NON_DELIVERY = "non_delivery", "Non-delivery"
    WRONG_ITEM = "wrong_item", "Wrong item"
    DAMAGED_ITEM = "damaged_item", "Damaged item"
    QUALITY_ISSUE = "quality_issue", "Quality issue"
    OTHER = "other", "Other"


class FiledByType(models.TextChoices):
    BUYER = "buyer", "Buyer"
    VENDOR = "vendor", "Vendor"


class DeliverySource(models.TextChoices):
    """Where a delivery status event came from."""

    COURIER_WEBHOOK = "courier_webhook", "Courier webhook"
    MANUAL_PROOF_UPLOAD = "manual_proof_upload", "Manual proof upload"


class DeliveryOutcome(models.TextChoices):
    """What the delivery trigger did with an event."""

    RELEASED = "released", "Escrow released"
    RECORDED = "recorded", "Recorded as history"
    DUPLICATE = "duplicate", "Duplicate event ignored"
    NO_ESCROW = "no_escrow", "No escrow for order"
    SKIPPED_DISPUTED = "skipped_disputed", "Escrow under dispute"
    SKIPPED_TERMINAL = "skipped_terminal", "Escrow already settled"


class WebhookSource(models.TextChoices):
    """External systems that call our webhook endpoints."""

    PAYMENT = "payment", "Payment gateway"
    COURIER = "courier", "Courier"
    PAYOUT = "payout", "Payout provider"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for WebhookEvent.

    State Flow:
        PENDING → PROCESSING → PROCESSED
        PENDING → PROCESSING → FAILED → PROCESSING (retry)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"
