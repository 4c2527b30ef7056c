"""
Authentication application.

Provides the email-based User model and the JWT endpoints (simplejwt)
that buyers, vendor operators and admins use to call the settlement API.

Key components:
    - User model: Custom email-based user authentication
    - UserManager: create_user / create_superuser helpers

Usage:
    from authentication.models import User
"""
