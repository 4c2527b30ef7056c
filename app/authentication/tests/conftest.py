"""
Test configuration and fixtures for authentication tests.

Usage:
    def test_example(user, api_client):
        response = api_client.post(reverse("authentication:token_obtain_pair"), {...})
"""

import pytest
from rest_framework.test import APIClient

from authentication.models import User
from authentication.tests.factories import UserFactory


@pytest.fixture
def user(db):
    """Create a basic verified user with the default test password."""
    return UserFactory(email_verified=True)


@pytest.fixture
def staff_user(db):
    """Create a staff user (settlement admin)."""
    return UserFactory(is_staff=True, email_verified=True)


@pytest.fixture
def deactivated_user(db):
    return UserFactory(is_active=False)


@pytest.fixture
def superuser(db):
    return User.objects.create_superuser(email="ops@example.com", password="AdminPass123!")


@pytest.fixture
def api_client():
    """Unauthenticated API client."""
    return APIClient()
