"""
DRF exception handler for application errors.

Maps core.exceptions.BaseApplicationError subclasses to JSON responses so
views can call services directly and let domain errors propagate:

    {"error": "...", "error_code": "...", "details": {...}}

Everything else falls through to DRF's default handler.

Configured in settings:
    REST_FRAMEWORK = {
        "EXCEPTION_HANDLER": "core.exception_handler.api_exception_handler",
    }
"""

from __future__ import annotations

import logging

from rest_framework.response import Response
from rest_framework.views import exception_handler

from core.exceptions import BaseApplicationError

logger = logging.getLogger(__name__)


def api_exception_handler(exc, context):
    """Return a Response for application errors, defer to DRF otherwise."""
    if isinstance(exc, BaseApplicationError):
        view = context.get("view")
        log = logger.warning if exc.status_code < 500 else logger.error
        log(
            f"{exc.__class__.__name__} in {view.__class__.__name__ if view else 'view'}",
            extra={"error_code": exc.error_code, "details": exc.details},
        )
        return Response(exc.to_dict(), status=exc.status_code)

    return exception_handler(exc, context)
