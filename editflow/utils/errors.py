"""Standardised API error responses.

Usage
-----
    from editflow.utils.errors import api_error, E

    return api_error(E.VALIDATION_REQUIRED, "slot is required")
    return api_error(E.NOT_FOUND, "Draft not found")

Domain exceptions raised by services are turned into the same body by the
handlers installed with ``register_error_handlers``.
"""

from __future__ import annotations

import logging

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from editflow.core.exceptions import (
    ConflictError,
    DependencyFailure,
    EditingError,
    InUseError,
    NotFoundError,
    PermissionDeniedError,
    StructuralError,
)
from editflow.models import db

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants for request-level failures.

    Domain failures carry their own code on the exception
    (``edit-process:*``, ``draft:*``).
    """

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Authentication – HTTP 401
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.UNAUTHENTICATED: 401,
    E.NOT_FOUND: 404,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (``E.*`` or a domain exception code).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (failing step index, conflict kind, etc.).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def status_for(error: EditingError) -> int:
    """HTTP status for a domain exception."""
    if isinstance(error, StructuralError):
        return 400
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, PermissionDeniedError):
        # A user the slot's role limit rejects is a bad request, not a denial
        return 400 if error.kind == "badRole" else 403
    if isinstance(error, (ConflictError, InUseError)):
        return 409
    if isinstance(error, DependencyFailure):
        return 503
    return 400


def register_error_handlers(app):
    """Install app-wide handlers mapping exceptions to ``api_error`` bodies."""

    @app.errorhandler(EditingError)
    def _handle_editing_error(error: EditingError):
        # Services roll back before raising; this covers errors raised mid-flush
        db.session.rollback()
        status = status_for(error)
        if status >= 500:
            logger.warning("Dependency failure on %s: %s", request.path, error,
                           extra={"event_type": error.code})
        else:
            logger.info("Request rejected on %s: %s", request.path, error,
                        extra={"event_type": error.code})
        response, status = api_error(error.code, str(error), status=status, details=error.details)
        if getattr(error, "retryable", False):
            response.headers["Retry-After"] = "1"
        return response, status

    @app.errorhandler(HTTPException)
    def _handle_http_error(error: HTTPException):
        if error.code == 404:
            return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})
        return api_error(
            f"ERR_HTTP_{error.code}", error.description or error.name, status=error.code,
        )

    @app.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        db.session.rollback()
        logger.exception("Unexpected error endpoint=%s", request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")
