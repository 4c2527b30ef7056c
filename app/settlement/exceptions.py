"""
Settlement-specific exceptions.

Every error the settlement engine raises derives from core.exceptions, so
the DRF exception handler renders it with the right HTTP status and the
webhook task can decide between "mark failed" and "retry".

Exception Hierarchy:
    ValidationError (400)
    ├── InvalidAmount - Non-positive amount, bad fee rate, wrong entry sign
    ├── ReasonRequired - Manual action without a reason
    └── ProofIncomplete - Proof of delivery missing recipient or photo
    NotFoundError (404)
    └── NotFound - Escrow, vendor, payout or dispute lookup failed
    PermissionDeniedError (403)
    └── Forbidden - Actor may not perform the operation
    ConflictError (409)
    ├── DuplicateEscrow - Escrow already exists for the order
    ├── InvalidTransition - Status does not allow the operation
    ├── AlreadyReleased - Escrow was released before ("already done")
    ├── AlreadyRefunded - Escrow was refunded before ("already done")
    ├── InsufficientFunds - Debit larger than the wallet balance (422)
    ├── ImmutableRecordError - Attempt to edit an append-only ledger row
    └── ConcurrencyConflict - Lost a race, retry (transient)
        └── LockAcquisitionError - Distributed lock held elsewhere
    ExternalServiceError
    └── ProviderUnavailable - Payment/courier provider down (503, transient)

Usage:
    from settlement.exceptions import AlreadyReleased, InvalidTransition

    try:
        EscrowService.release(escrow_id, reason, actor)
    except AlreadyReleased:
        pass  # idempotent replay
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

if TYPE_CHECKING:
    import uuid
    from typing import Any


# =============================================================================
# Validation
# =============================================================================


class InvalidAmount(ValidationError):
    """
    Raised for amounts or fee rates the engine cannot accept.

    Example:
        if amount <= 0:
            raise InvalidAmount(
                "Amount must be a positive integer",
                details={"amount": amount},
            )
    """

    default_error_code: str = "INVALID_AMOUNT"


class ReasonRequired(ValidationError):
    """Raised when an admin or dispute action is submitted without a reason."""

    default_error_code: str = "REASON_REQUIRED"


class ProofIncomplete(ValidationError):
    """Raised when a proof of delivery lacks the recipient name or photo."""

    default_error_code: str = "PROOF_INCOMPLETE"


# =============================================================================
# Lookup & Authorization
# =============================================================================


class NotFound(NotFoundError):
    """Raised when an escrow, vendor, payout or dispute does not exist."""

    default_error_code: str = "NOT_FOUND"


class Forbidden(PermissionDeniedError):
    """
    Raised when the acting user may not perform an operation.

    Example:
        if not actor.is_admin:
            raise Forbidden(
                "Only admins can resolve disputes",
                details={"actor": actor.label},
            )
    """

    default_error_code: str = "FORBIDDEN"


# =============================================================================
# State Conflicts
# =============================================================================


class DuplicateEscrow(ConflictError):
    """Raised when a hold is requested for an order that already has one."""

    default_error_code: str = "DUPLICATE_ESCROW"


class InvalidTransition(ConflictError):
    """
    Raised when the current status does not allow the requested operation.

    Details always include the entity id, its current status and the
    attempted action so the caller can tell what happened.
    """

    default_error_code: str = "INVALID_TRANSITION"


class AlreadyReleased(ConflictError):
    """
    Raised when releasing an escrow that has already been released.

    Kept separate from InvalidTransition: callers treat it as a
    successful replay rather than a failure.
    """

    default_error_code: str = "ALREADY_RELEASED"


class AlreadyRefunded(ConflictError):
    """Raised when refunding an escrow that has already been refunded."""

    default_error_code: str = "ALREADY_REFUNDED"


class InsufficientFunds(ConflictError):
    """
    Raised when a debit would drive a vendor wallet below zero.

    Attributes:
        vendor_id: The vendor whose wallet was checked
        required: Amount requested (minor units)
        available: Wallet balance at the time of the check (minor units)
    """

    default_error_code: str = "INSUFFICIENT_FUNDS"
    status_code: int = 422

    def __init__(
        self,
        vendor_id: uuid.UUID,
        required: int,
        available: int,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.vendor_id = vendor_id
        self.required = required
        self.available = available
        details = {
            **(details or {}),
            "vendor_id": str(vendor_id),
            "required": required,
            "available": available,
        }
        super().__init__(
            f"Insufficient wallet balance: required {required}, available {available}",
            error_code=error_code,
            details=details,
        )


class ImmutableRecordError(ConflictError):
    """Raised when code tries to update or delete an append-only ledger row."""

    default_error_code: str = "IMMUTABLE_RECORD"


# =============================================================================
# Transient Errors
# =============================================================================


class ConcurrencyConflict(ConflictError):
    """
    Raised when a concurrent writer won a race for the same record.

    Covers stale optimistic-lock versions and database lock failures
    (deadlock, lock timeout, serialization failure). The operation did
    not apply; the caller should retry with fresh data.
    """

    default_error_code: str = "CONCURRENCY_CONFLICT"
    retryable: bool = True


class LockAcquisitionError(ConcurrencyConflict):
    """Raised when a distributed lock cannot be acquired."""

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


class ProviderUnavailable(ExternalServiceError):
    """Raised when the payment or courier provider cannot be reached."""

    default_error_code: str = "PROVIDER_UNAVAILABLE"
    status_code: int = 503
    retryable: bool = True


__all__ = [
    "AlreadyRefunded",
    "AlreadyReleased",
    "ConcurrencyConflict",
    "DuplicateEscrow",
    "Forbidden",
    "ImmutableRecordError",
    "InsufficientFunds",
    "InvalidAmount",
    "InvalidTransition",
    "LockAcquisitionError",
    "NotFound",
    "ProofIncomplete",
    "ProviderUnavailable",
    "ReasonRequired",
]
