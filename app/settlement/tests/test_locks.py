"""
Tests for settlement concurrency helpers.

DistributedLock runs against a mocked django-redis connection;
check_version runs against the test database.
"""

import pytest

from settlement.exceptions import ConcurrencyConflict, LockAcquisitionError, NotFound
from settlement.locks import DistributedLock, check_version
from settlement.models import EscrowTransaction
from settlement.tests.factories import EscrowTransactionFactory


# =============================================================================
# DistributedLock
# =============================================================================


class TestDistributedLock:
    """Tests for the Redis-backed lock used around webhook processing."""

    def test_acquire_sets_key_with_ttl(self, mock_redis_lock):
        """Should SET NX the prefixed key with the configured TTL."""
        lock = DistributedLock("webhook:abc", ttl=60)

        assert lock.acquire() is True

        args, kwargs = mock_redis_lock.set.call_args
        assert args[0] == "lock:webhook:abc"
        assert kwargs == {"nx": True, "ex": 60}

    def test_tokens_differ_between_holders(self, mock_redis_lock):
        """Should give each acquisition its own token."""
        first = DistributedLock("a")
        second = DistributedLock("b")

        first.acquire()
        second.acquire()

        assert first._token != second._token

    def test_held_lock_fails_fast(self, mock_redis_lock):
        """Should raise at once when another worker holds the lock."""
        mock_redis_lock.set.return_value = False
        lock = DistributedLock("webhook:busy")

        with pytest.raises(LockAcquisitionError) as exc_info:
            lock.acquire()

        assert exc_info.value.details == {"key": "lock:webhook:busy"}
        assert exc_info.value.retryable is True
        assert mock_redis_lock.set.call_count == 1
        assert lock.release() is False

    def test_release_runs_token_checked_script(self, mock_redis_lock):
        """Should delete the key only through the token-checking script."""
        lock = DistributedLock("webhook:rel")
        lock.acquire()
        token = lock._token

        assert lock.release() is True

        args = mock_redis_lock.eval.call_args[0]
        assert args[0] == DistributedLock.RELEASE_SCRIPT
        assert args[1:] == (1, "lock:webhook:rel", token)

    def test_release_twice_is_harmless(self, mock_redis_lock):
        lock = DistributedLock("webhook:twice")
        lock.acquire()
        lock.release()

        assert lock.release() is False
        assert mock_redis_lock.eval.call_count == 1

    def test_release_of_expired_lock(self, mock_redis_lock):
        """Should report False when the key expired and was taken by someone else."""
        mock_redis_lock.eval.return_value = 0
        lock = DistributedLock("webhook:expired")
        lock.acquire()

        assert lock.release() is False

    def test_context_manager_releases_on_error(self, mock_redis_lock):
        """Should release the lock even when the body raises."""
        with pytest.raises(RuntimeError):
            with DistributedLock("webhook:ctx"):
                raise RuntimeError("handler crashed")

        mock_redis_lock.eval.assert_called_once()


# =============================================================================
# check_version
# =============================================================================


class TestCheckVersion:
    """Tests for optimistic version checks."""

    def test_returns_row_at_expected_version(self, db):
        """Should return the locked row when the version matches."""
        escrow = EscrowTransactionFactory()

        locked = check_version(EscrowTransaction, escrow.pk, expected_version=1)

        assert locked.pk == escrow.pk

    def test_stale_version_conflicts(self, db):
        """Should raise ConcurrencyConflict when someone saved in between."""
        escrow = EscrowTransactionFactory()
        escrow.mark_disputed(reason="Damaged")
        escrow.save()

        with pytest.raises(ConcurrencyConflict) as exc_info:
            check_version(EscrowTransaction, escrow.pk, expected_version=1)

        assert exc_info.value.details["expected_version"] == 1
        assert exc_info.value.details["current_version"] == 2

    def test_missing_row(self, db):
        """Should raise NotFound for an unknown primary key."""
        EscrowTransactionFactory()

        with pytest.raises(NotFound) as exc_info:
            check_version(EscrowTransaction, "00000000-0000-0000-0000-000000000000", 1)

        assert exc_info.value.error_code == "ESCROWTRANSACTION_NOT_FOUND"
