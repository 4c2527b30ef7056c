"""
URL configuration for authentication app.

Sign-up and login UIs live in the storefront; this API only issues and
refreshes JWTs (simplejwt) for existing users.

URL structure:
    /api/v1/auth/token/          - Obtain access/refresh pair (email + password)
    /api/v1/auth/token/refresh/  - Exchange a refresh token for a new access token
    /api/v1/auth/token/verify/   - Check a token's signature and expiry
"""

from django.urls import path
from rest_framework_simplejwt.views import (
    TokenObtainPairView,
    TokenRefreshView,
    TokenVerifyView,
)

app_name = "authentication"

urlpatterns = [
    path("token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    path("token/verify/", TokenVerifyView.as_view(), name="token_verify"),
]
