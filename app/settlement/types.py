"""
Data types for settlement operations.

Dataclasses passed between the webhook/API layer and the services.

Types:
    Money: Amount in minor units with currency
    FeeSplit: Result of the fee calculator
    Actor: Who is performing an operation
    WalletEntryParams: Parameters for one wallet ledger entry
    PayoutDestination: Bank account a payout is sent to
    DeliveryEvent: Normalized delivery status event

Usage:
    from settlement.types import Actor, WalletEntryParams

    params = WalletEntryParams(
        vendor_id=vendor.id,
        type=WalletTransactionType.CREDIT,
        amount=950_000,
        idempotency_key=f"escrow-release:{escrow.id}",
        reference=str(escrow.id),
        reference_type="escrow",
    )
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from settlement.state_machines import DeliverySource

if TYPE_CHECKING:
    from typing import Any


@dataclass(frozen=True)
class Money:
    """
    A monetary amount in the smallest currency unit.

    Example:
        Money(amount=950_000, currency="ngn")  # "9500.00 NGN"
    """

    amount: int
    currency: str = "ngn"

    def __str__(self) -> str:
        return f"{self.amount / 100:.2f} {self.currency.upper()}"

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        if self.currency != other.currency:
            raise ValueError(
                f"Cannot add Money with different currencies: "
                f"{self.currency} and {other.currency}"
            )
        return Money(amount=self.amount + other.amount, currency=self.currency)


@dataclass(frozen=True)
class FeeSplit:
    """Platform fee and vendor share of one order total."""

    platform_fee: int
    vendor_amount: int

    @property
    def total(self) -> int:
        return self.platform_fee + self.vendor_amount


@dataclass(frozen=True)
class Actor:
    """
    Who is performing a settlement operation.

    ``id`` is the user id for people and a component name for automated
    callers (``courier_webhook``, ``payout_callback``). ``label`` is what
    gets stored in audit columns like ``released_by``.
    """

    id: str
    is_admin: bool = False
    is_system: bool = False

    @classmethod
    def system(cls, name: str) -> Actor:
        return cls(id=name, is_system=True)

    @classmethod
    def from_user(cls, user: Any) -> Actor:
        return cls(id=str(user.pk), is_admin=bool(user.is_staff))

    @property
    def is_privileged(self) -> bool:
        """System components and admins bypass ownership checks."""
        return self.is_admin or self.is_system

    @property
    def label(self) -> str:
        if self.is_system:
            return f"system:{self.id}"
        if self.is_admin:
            return f"admin:{self.id}"
        return f"user:{self.id}"


@dataclass
class WalletEntryParams:
    """
    Parameters for one wallet ledger entry.

    Required Attributes:
        vendor_id: Vendor whose wallet changes
        type: WalletTransactionType value
        amount: Signed amount in minor units (positive credits)
        idempotency_key: Unique key; a repeated key returns the first entry

    Optional Attributes:
        reference: Id of the escrow or payout behind the entry
        reference_type: "escrow" or "payout"
        description: Human-readable text shown in wallet history
        created_by: Actor label
    """

    vendor_id: uuid.UUID
    type: str
    amount: int
    idempotency_key: str

    reference: str = ""
    reference_type: str = ""
    description: str = ""
    created_by: str = ""

    def __post_init__(self) -> None:
        if not self.idempotency_key:
            raise ValueError("idempotency_key is required")
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise ValueError("amount must be an integer number of minor units")


@dataclass(frozen=True)
class PayoutDestination:
    """Bank account a payout is sent to."""

    bank_name: str
    account_number: str
    account_name: str
    bank_code: str = ""


@dataclass
class DeliveryEvent:
    """
    A delivery status change from the courier or a manual proof upload.

    ``event_id`` is the provider's id when it sends one; otherwise the
    trigger derives an idempotency key from delivery id and status.
    """

    order_id: str
    status: str
    source: str = DeliverySource.COURIER_WEBHOOK
    delivery_id: str = ""
    occurred_at: datetime | None = None
    event_id: str = ""
    recipient_name: str = ""
    photo_ref: str = ""
    payload: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.status = (self.status or "").strip().lower()

    @property
    def idempotency_key(self) -> str:
        if self.event_id:
            return f"{self.source}:{self.event_id}"
        if self.source == DeliverySource.MANUAL_PROOF_UPLOAD:
            return f"proof:{self.order_id}"
        return f"{self.delivery_id or self.order_id}:{self.status}"
