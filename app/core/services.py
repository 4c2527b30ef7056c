"""
Base service layer patterns for business logic encapsulation.

This module provides foundational patterns for the service layer:
- ServiceResult: Standard result wrapper for consistent success/failure handling
- BaseService: Base class with a per-service logger

Pattern Comparison:
    - Exceptions (core.exceptions): domain services raise them; callers that
      must not raise (webhook handlers, Celery tasks) convert them with
      ServiceResult.from_exception()
    - ServiceResult: returned by handlers whose caller only needs to know
      whether to mark work as done or failed

Usage:
    from core.services import BaseService, ServiceResult

    class EscrowService(BaseService):
        @classmethod
        def release(cls, escrow_id, reason, actor):
            with transaction.atomic():
                escrow = EscrowTransaction.objects.select_for_update().get(id=escrow_id)
                ...
            cls.get_logger().info("Escrow released", extra={"escrow_id": str(escrow_id)})
            return escrow

    # In a webhook handler
    try:
        escrow = EscrowService.create_hold(...)
    except DuplicateEscrow as exc:
        return ServiceResult.from_exception(exc)
    return ServiceResult.success(escrow)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from core.exceptions import BaseApplicationError

# Generic type for ServiceResult data
T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard result wrapper for service operations.

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful (None if failed)
        error: Error message if failed (None if successful)
        error_code: Machine-readable error code for client handling
        errors: Field-level errors for validation failures
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        """Create a successful result."""
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> ServiceResult[T]:
        """
        Create a failed result.

        Args:
            error: Human-readable error message
            error_code: Machine-readable error code for client handling
            errors: Field-level errors (for validation failures)
        """
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            errors=errors,
        )

    @classmethod
    def from_exception(
        cls, exc: Exception, error_code: str | None = None
    ) -> ServiceResult[T]:
        """
        Create a failed result from an exception.

        Application errors keep their own message and error code; other
        exceptions fall back to the class name.

        Example:
            except InvalidTransition as e:
                return ServiceResult.from_exception(e)
        """
        if isinstance(exc, BaseApplicationError):
            return cls(
                success=False,
                error=exc.message,
                error_code=error_code or exc.error_code,
            )
        return cls(
            success=False,
            error=str(exc),
            error_code=error_code or exc.__class__.__name__.upper(),
        )


class BaseService:
    """
    Base class for service layer classes.

    Services are stateless: use @staticmethod or @classmethod. Raise
    core.exceptions for failures the caller must handle.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get a logger named after the service class for easy filtering."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")
