"""
Vendor model holding the cached wallet balance.

Vendor profile management (catalog, KYC, storefront) lives elsewhere; this
model keeps only what the settlement engine needs: who owns the vendor and
the denormalized wallet balance.

``wallet_balance`` is a projection of the vendor's WalletTransaction rows.
It is written only by settlement.services.wallet_ledger.WalletLedger, in
the same database transaction as the entry it mirrors.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin


class Vendor(UUIDPrimaryKeyMixin, BaseModel):
    """
    A marketplace vendor receiving escrow releases and requesting payouts.

    Fields:
        user: Account that operates the vendor (may be empty for imports)
        business_name: Display name
        currency: Wallet currency (ISO 4217, lowercase)
        wallet_balance: Spendable balance in minor units (cached)
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="vendor",
        null=True,
        blank=True,
        help_text="User account operating this vendor",
    )

    business_name = models.CharField(
        max_length=200,
        help_text="Vendor display name",
    )

    currency = models.CharField(
        max_length=3,
        default="ngn",
        help_text="ISO 4217 currency code (lowercase)",
    )

    wallet_balance = models.BigIntegerField(
        default=0,
        editable=False,
        help_text="Cached wallet balance in minor units, maintained by the wallet ledger",
    )

    class Meta:
        ordering = ["business_name"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(wallet_balance__gte=0),
                name="vendor_wallet_balance_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return self.business_name

    def is_operated_by(self, actor) -> bool:
        """Check whether the actor is this vendor's user."""
        return self.user_id is not None and str(self.user_id) == actor.id
