"""
Editing Process Engine
Blueprint registry and shared request helpers.

Layer contract:
    - No business rules here; blueprints parse input, check team
      permissions and call services.
    - Domain exceptions propagate to the handlers installed by
      ``editflow.utils.errors.register_error_handlers``.
"""

from editflow.utils.errors import E, api_error
from editflow.utils.helpers import current_user_id


def require_user():
    """Return ``(user_id, None)`` or ``(None, error_response)`` for anonymous requests."""
    user_id = current_user_id()
    if user_id is None:
        return None, api_error(E.UNAUTHENTICATED, "X-User-Id header is required")
    return user_id, None


def int_field(data: dict, key: str):
    """Integer value of ``data[key]``, or None when missing or not an integer."""
    value = data.get(key)
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    return None
