"""
URL configuration for the escrow settlement service.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/auth/                  - JWT endpoints (simplejwt)
        token/                     - Obtain access/refresh pair
        token/refresh/             - Refresh access token
        token/verify/              - Verify token
    /api/v1/settlement/            - Settlement endpoints
        escrows/{order_id}/        - Escrow detail
        escrows/{order_id}/confirm-receipt/ - Buyer confirms receipt
        escrows/{id}/force-release/ - Admin release
        escrows/{id}/force-refund/ - Admin refund
        vendors/{id}/wallet/       - Wallet balance
        vendors/{id}/wallet/transactions/ - Wallet history
        vendors/{id}/payouts/      - Payout list/request
        payouts/{id}/processing/   - Admin: mark processing
        payouts/{id}/resolve/      - Admin: resolve by hand
        disputes/                  - File dispute
        disputes/{id}/             - Dispute detail
        disputes/{id}/investigate/ - Admin
        disputes/{id}/resolve/     - Admin
        disputes/{id}/close/       - Admin
        deliveries/proof/          - Proof of delivery upload
        webhooks/payments/         - Payment gateway webhook (POST)
        webhooks/courier/          - Courier webhook (POST)
        webhooks/payouts/          - Payout provider webhook (POST)
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
api_v1_patterns = [
    path("auth/", include("authentication.urls")),
    path("settlement/", include("settlement.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Settlement Admin"
admin.site.site_title = "Settlement Admin"
admin.site.index_title = "Escrow, wallets and payouts"
