"""
Concurrency control for settlement operations.

Two mechanisms, used at different layers:

1. **Distributed Locks** (DistributedLock)
   - Redis-based mutual exclusion across Celery workers
   - TTL prevents deadlocks from crashed workers
   - Taken outside database transactions, around webhook processing

2. **Optimistic Locking** (check_version)
   - Version check plus select_for_update on one row
   - Used when an admin acts on a record they loaded earlier

Usage:

    from settlement.locks import DistributedLock, check_version

    with DistributedLock(f"webhook:{event.id}", ttl=60):
        dispatch_webhook(event)

    with transaction.atomic():
        escrow = check_version(EscrowTransaction, escrow_id, expected_version=3)
"""

from __future__ import annotations

import uuid as uuid_module
from typing import TYPE_CHECKING, TypeVar

from django.db import models

from django_redis import get_redis_connection

from settlement.exceptions import ConcurrencyConflict, LockAcquisitionError, NotFound

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis

T = TypeVar("T", bound=models.Model)


# =============================================================================
# Distributed Locks
# =============================================================================


class DistributedLock:
    """
    Redis-based distributed lock with TTL.

    Acquisition never waits: a worker that finds the lock taken skips the
    work, because another worker is already doing it. The lock value is a
    random token, so only the holder can release it; release checks the
    token and deletes the key in one Lua script.

    Args:
        key: Lock identifier (prefixed with "lock:")
        ttl: Seconds before Redis expires the lock on its own

    Raises:
        LockAcquisitionError: From acquire() / __enter__ when the lock is held
    """

    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    def __init__(self, key: str, ttl: int = 30) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self._token: str | None = None
        self._redis: Redis | None = None

    def _get_redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_redis_connection("default")
        return self._redis

    def acquire(self) -> bool:
        token = str(uuid_module.uuid4())
        if not self._get_redis().set(self.key, token, nx=True, ex=self.ttl):
            raise LockAcquisitionError(
                f"Lock '{self.key}' is already held",
                details={"key": self.key},
            )
        self._token = token
        return True

    def release(self) -> bool:
        """Release the lock if we hold it. Safe to call more than once."""
        if self._token is None:
            return False

        redis = self._get_redis()
        result = redis.eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        return bool(result)

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> bool:
        self.release()
        return False


# =============================================================================
# Optimistic Locking
# =============================================================================


def check_version(
    model_class: type[T],
    pk: Any,
    expected_version: int,
) -> T:
    """
    Lock a row for update and verify it is still at ``expected_version``.

    Must be called inside ``transaction.atomic()``; the row lock is held
    until that transaction ends.

    Raises:
        NotFound: No row with this primary key
        ConcurrencyConflict: The row was modified since the caller read it
    """
    instance = (
        model_class.objects.select_for_update()
        .filter(pk=pk, version=expected_version)
        .first()
    )
    if instance is not None:
        return instance

    model_name = model_class.__name__
    current_version = (
        model_class.objects.filter(pk=pk).values_list("version", flat=True).first()
    )
    if current_version is None:
        raise NotFound(
            f"{model_name} {pk} not found",
            error_code=f"{model_name.upper()}_NOT_FOUND",
            details={"pk": str(pk)},
        )

    raise ConcurrencyConflict(
        f"{model_name} {pk} has been modified "
        f"(expected version {expected_version}, current {current_version})",
        details={
            "pk": str(pk),
            "expected_version": expected_version,
            "current_version": current_version,
        },
    )


__all__ = [
    "DistributedLock",
    "check_version",
]
