"""
Authentication models.

- User: Custom user model with email-based authentication

Buyers, vendor operators and admins are all Users. ``is_staff`` marks the
admins allowed to override escrow, resolve disputes and settle payouts;
settlement.types.Actor.from_user turns a User into the settlement actor.

Related files:
    - managers.py: Custom user manager for email-based creation

Security:
    - User passwords hashed with Django's password hashers
"""

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from authentication.managers import UserManager


class User(UUIDPrimaryKeyMixin, AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as the primary identifier.

    The primary key is a UUID so user ids can be stored as buyer ids on
    escrow rows and sent to the payment gateway without leaking volumes.

    Fields:
        email: Primary identifier, unique, used for login
        email_verified: Whether the user's email has been verified
        is_active: Whether the user account is active
        is_staff: Admin flag (Django admin and settlement overrides)
        date_joined: When the user account was created
        updated_at: When the user record was last modified

    Usage:
        user = User.objects.create_user(
            email='buyer@example.com',
            password='securepassword'
        )

        admin = User.objects.create_superuser(
            email='ops@example.com',
            password='adminpassword'
        )
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="User's email address (primary identifier)",
    )

    email_verified = models.BooleanField(
        default=False,
        help_text="Whether the user's email has been verified",
    )

    # Account status flags
    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site and settlement overrides.",
    )

    # Timestamps
    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user account was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the user record was last modified",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]

    def __str__(self):
        return self.email

    def get_full_name(self):
        return self.email

    def get_short_name(self):
        return self.email.split("@")[0]
