"""
Pytest fixtures for settlement tests.

Fixtures provide the three kinds of users (buyer, vendor operator,
admin), a vendor, escrows in each state and authenticated API clients.

Usage:
    def test_release_credits_vendor(held_escrow, system_actor):
        EscrowService.release(held_escrow.id, "Delivered", system_actor)
        assert WalletLedger.get_balance(held_escrow.vendor_id).amount == 950_000
"""

from unittest.mock import MagicMock, patch

import pytest
from rest_framework.test import APIClient

from settlement.services import EscrowService
from settlement.state_machines import EscrowStatus
from settlement.tests.factories import (
    EscrowTransactionFactory,
    UserFactory,
    VendorFactory,
    fund_wallet,
)
from settlement.types import Actor


# =============================================================================
# Users & Actors
# =============================================================================


@pytest.fixture
def buyer(db):
    """Create the buyer who pays for orders."""
    return UserFactory()


@pytest.fixture
def vendor_user(db):
    """Create the user operating the vendor."""
    return UserFactory()


@pytest.fixture
def admin_user(db):
    """Create a staff user allowed to override escrows and disputes."""
    return UserFactory(is_staff=True)


@pytest.fixture
def other_user(db):
    """Create a user unrelated to any order."""
    return UserFactory()


@pytest.fixture
def buyer_actor(buyer):
    return Actor.from_user(buyer)


@pytest.fixture
def vendor_actor(vendor_user):
    return Actor.from_user(vendor_user)


@pytest.fixture
def admin_actor(admin_user):
    return Actor.from_user(admin_user)


@pytest.fixture
def system_actor():
    return Actor.system("tests")


# =============================================================================
# Vendors
# =============================================================================


@pytest.fixture
def vendor(db, vendor_user):
    """Create a vendor with an empty wallet."""
    return VendorFactory(user=vendor_user)


@pytest.fixture
def funded_vendor(vendor):
    """Vendor with ₦10,000 (1,000,000 kobo) spendable balance."""
    fund_wallet(vendor, 1_000_000, key="test-funding:funded_vendor")
    vendor.refresh_from_db()
    return vendor


# =============================================================================
# Escrow State Fixtures
# =============================================================================


@pytest.fixture
def held_escrow(db, vendor, buyer):
    """Held ₦10,000 escrow (fee 50,000, vendor 950,000)."""
    return EscrowTransactionFactory(vendor=vendor, buyer_id=str(buyer.pk))


@pytest.fixture
def released_escrow(held_escrow, system_actor):
    """Escrow released through the service, so the vendor was credited."""
    return EscrowService.release(held_escrow.id, "Delivery confirmed", system_actor)


@pytest.fixture
def refunded_escrow(held_escrow, system_actor):
    return EscrowService.refund(held_escrow.id, "Order cancelled", system_actor)


@pytest.fixture
def disputed_escrow(db, vendor, buyer):
    """Escrow frozen by a dispute (no Dispute row)."""
    return EscrowTransactionFactory(
        vendor=vendor,
        buyer_id=str(buyer.pk),
        status=EscrowStatus.DISPUTED,
    )


# =============================================================================
# Redis
# =============================================================================


@pytest.fixture
def mock_redis_lock():
    """
    Replace the django-redis connection used by DistributedLock.

    Every lock is acquired and released successfully.
    """
    mock_redis = MagicMock()
    mock_redis.set.return_value = True
    mock_redis.get.return_value = None
    mock_redis.delete.return_value = 1
    mock_redis.eval.return_value = 1

    with patch("settlement.locks.get_redis_connection", return_value=mock_redis):
        yield mock_redis


# =============================================================================
# API Clients
# =============================================================================


@pytest.fixture
def api_client():
    """Unauthenticated API client."""
    return APIClient()


@pytest.fixture
def buyer_client(buyer):
    client = APIClient()
    client.force_authenticate(user=buyer)
    return client


@pytest.fixture
def vendor_client(vendor_user):
    client = APIClient()
    client.force_authenticate(user=vendor_user)
    return client


@pytest.fixture
def admin_api_client(admin_user):
    client = APIClient()
    client.force_authenticate(user=admin_user)
    return client


@pytest.fixture
def other_client(other_user):
    client = APIClient()
    client.force_authenticate(user=other_user)
    return client
