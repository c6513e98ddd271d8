# Overview: Domain error types shared by services and mapped to HTTP status codes by routes.

from __future__ import annotations


class FahamPesaError(Exception):
    """Base class for errors a caller can act on."""
    status_code = 500
    # Extra keys merged into the JSON error body
    payload: dict | None = None


class ValidationError(FahamPesaError, ValueError):
    """Missing or malformed input. The message names the offending field."""
    status_code = 400


class NotFoundError(FahamPesaError):
    """
    Entity absent, or owned by another tenant.

    Cross-tenant lookups raise this too, so callers cannot discover ids
    that belong to someone else.
    """
    status_code = 404


class StateConflictError(FahamPesaError):
    """Requested status transition is not allowed from the current status."""
    status_code = 400


class AlreadyActiveError(StateConflictError):
    """Subscription is already active."""


class InvalidStateError(StateConflictError):
    """Subscription is not in a status that can be activated."""


class AccessDeniedError(FahamPesaError):
    """Caller lacks the permission, role or plan tier for the operation."""
    status_code = 403


class AccessResolutionError(AccessDeniedError):
    """The access store could not be read; treated as a denial."""


def error_response(exc: FahamPesaError) -> tuple[dict, int]:
    """Build the JSON body and status code for a domain error."""
    body = {"success": False, "error": str(exc)}
    if exc.payload:
        body.update(exc.payload)
    return body, exc.status_code
