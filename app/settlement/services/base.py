"""
Lookups, access checks and error translation shared by settlement services.
"""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from typing import TYPE_CHECKING

from django.db import OperationalError

from core.exceptions import ValidationError

from settlement.exceptions import ConcurrencyConflict, Forbidden, NotFound, ReasonRequired
from settlement.models import Vendor

if TYPE_CHECKING:
    from collections.abc import Generator
    from typing import Any

    from settlement.types import Actor


def parse_id(value: Any, entity: str) -> uuid.UUID:
    """
    Coerce an id from a URL or webhook payload to a UUID.

    A malformed id cannot match any row, so it is reported as NotFound.
    """
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise NotFound(
            f"{entity} {value} not found",
            details={f"{entity.lower()}_id": str(value)},
        ) from None


def user_id_of(actor: Actor | None) -> str | None:
    """User id to store on a record; system callers have none."""
    if actor is None or actor.is_system:
        return None
    return actor.id


def get_vendor(vendor_id: Any, for_update: bool = False) -> Vendor:
    """Load a vendor, optionally locking its row, or raise NotFound."""
    queryset = Vendor.objects.select_for_update() if for_update else Vendor.objects
    vendor = queryset.filter(pk=parse_id(vendor_id, "Vendor")).first()
    if vendor is None:
        raise NotFound(
            f"Vendor {vendor_id} not found",
            details={"vendor_id": str(vendor_id)},
        )
    return vendor


def ensure_vendor_access(vendor: Vendor, actor: Actor | None) -> None:
    """Admins and system callers see every vendor; users only their own."""
    if actor is None or actor.is_privileged or vendor.is_operated_by(actor):
        return
    raise Forbidden(
        "You do not operate this vendor",
        details={"vendor_id": str(vendor.pk), "actor": actor.label},
    )


def ensure_admin(actor: Actor, action: str) -> None:
    if not actor.is_admin:
        raise Forbidden(
            f"Only admins can {action}",
            details={"actor": actor.label, "action": action},
        )


def require_reason(reason: str | None, action: str) -> str:
    reason = (reason or "").strip()
    if not reason:
        raise ReasonRequired(
            f"A reason is required to {action}",
            details={"action": action},
        )
    return reason


def ensure_choice(value: str, choices: type, field: str) -> str:
    """Reject values outside a TextChoices enum with a 400."""
    if value not in choices.values:
        raise ValidationError(
            f"Invalid {field}: {value}",
            error_code=f"INVALID_{field.upper()}",
            details={field: value, "allowed": list(choices.values)},
        )
    return value


@contextmanager
def translate_lock_errors() -> Generator[None, None, None]:
    """
    Re-raise database lock failures as ConcurrencyConflict.

    Lock timeouts, deadlocks and serialization failures surface from the
    driver as OperationalError. They mean "retry", not "broken".
    """
    try:
        yield
    except OperationalError as exc:
        raise ConcurrencyConflict(
            "Database lock conflict, retry the operation",
            details={"error": str(exc)},
        ) from exc
