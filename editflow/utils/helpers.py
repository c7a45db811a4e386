"""Shared request and lookup helpers used by blueprints and services."""
import logging

from flask import g, request

from editflow.core.exceptions import NotFoundError
from editflow.models import db

logger = logging.getLogger(__name__)


def get_or_raise(model, pk, label=None):
    """Fetch a model instance by primary key or raise NotFoundError.

    Usage::

        draft = get_or_raise(Draft, module_id)
    """
    label = label or model.__name__
    obj = db.session.get(model, pk)
    if obj is None:
        raise NotFoundError(resource=label, resource_id=pk)
    return obj


def current_user_id():
    """Return the acting user's id from the ``X-User-Id`` header.

    Returns None when the header is missing or not an integer. The value is
    also stored on ``flask.g`` for request logging.
    """
    raw = request.headers.get("X-User-Id", "").strip()
    try:
        g.user_id = int(raw) if raw else None
    except ValueError:
        logger.debug("Ignoring non-numeric X-User-Id header %r", raw)
        g.user_id = None
    return g.user_id

