"""
URL configuration for the settlement app.

All routes are prefixed with /api/v1/settlement/ when included in the main
URLconf. Webhook routes are plain Django views authenticated by HMAC
signature; everything else is a DRF view.
"""

from django.urls import path

from settlement import views
from settlement.webhooks.views import courier_webhook, payment_webhook, payout_webhook

app_name = "settlement"

urlpatterns = [
    # Escrow
    path("escrows/<str:order_id>/", views.EscrowDetailView.as_view(), name="escrow_detail"),
    path(
        "escrows/<str:order_id>/confirm-receipt/",
        views.ConfirmReceiptView.as_view(),
        name="escrow_confirm_receipt",
    ),
    path(
        "escrows/<uuid:escrow_id>/force-release/",
        views.ForceReleaseView.as_view(),
        name="escrow_force_release",
    ),
    path(
        "escrows/<uuid:escrow_id>/force-refund/",
        views.ForceRefundView.as_view(),
        name="escrow_force_refund",
    ),
    # Wallet
    path("vendors/<uuid:vendor_id>/wallet/", views.WalletBalanceView.as_view(), name="wallet_balance"),
    path(
        "vendors/<uuid:vendor_id>/wallet/transactions/",
        views.WalletTransactionListView.as_view(),
        name="wallet_transactions",
    ),
    # Payouts
    path(
        "vendors/<uuid:vendor_id>/payouts/",
        views.VendorPayoutListView.as_view(),
        name="vendor_payouts",
    ),
    path(
        "payouts/<uuid:payout_id>/processing/",
        views.PayoutProcessingView.as_view(),
        name="payout_processing",
    ),
    path(
        "payouts/<uuid:payout_id>/resolve/",
        views.PayoutResolveView.as_view(),
        name="payout_resolve",
    ),
    # Disputes
    path("disputes/", views.DisputeCreateView.as_view(), name="dispute_create"),
    path("disputes/<uuid:dispute_id>/", views.DisputeDetailView.as_view(), name="dispute_detail"),
    path(
        "disputes/<uuid:dispute_id>/investigate/",
        views.DisputeInvestigateView.as_view(),
        name="dispute_investigate",
    ),
    path(
        "disputes/<uuid:dispute_id>/resolve/",
        views.DisputeResolveView.as_view(),
        name="dispute_resolve",
    ),
    path(
        "disputes/<uuid:dispute_id>/close/",
        views.DisputeCloseView.as_view(),
        name="dispute_close",
    ),
    # Deliveries
    path("deliveries/proof/", views.ProofOfDeliveryView.as_view(), name="delivery_proof"),
    # Webhook endpoints
    path("webhooks/payments/", payment_webhook, name="payment_webhook"),
    path("webhooks/courier/", courier_webhook, name="courier_webhook"),
    path("webhooks/payouts/", payout_webhook, name="payout_webhook"),
]
