"""
Settlement app configuration.
"""

from django.apps import AppConfig


class SettlementConfig(AppConfig):
    """Configuration for the escrow settlement application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "settlement"
    verbose_name = "Settlement"

    def ready(self) -> None:
        # Register webhook handlers with the dispatcher
        from settlement.webhooks import handlers  # noqa: F401
