"""
Module blueprint.

Endpoints:
    POST /api/v1/modules/<module_id>/process — begin an editing process
"""

import logging

from flask import Blueprint, jsonify, request

from editflow.blueprints import int_field, require_user
from editflow.models.module import Module
from editflow.models.team import PERM_MANAGE_PROCESS
from editflow.services import draft_service
from editflow.services.permission_service import require_team_permission
from editflow.utils.errors import E, api_error
from editflow.utils.helpers import get_or_raise

logger = logging.getLogger(__name__)

module_bp = Blueprint("module_bp", __name__, url_prefix="/api/v1/modules")


def _parse_assignments(raw):
    """Accept ``{slot: user}`` or ``[[slot, user], ...]``; return ``{int: int}`` or None."""
    if raw is None:
        return {}
    pairs = raw.items() if isinstance(raw, dict) else raw
    slots = {}
    try:
        for slot_id, user_id in pairs:
            slots[int(slot_id)] = int(user_id)
    except (TypeError, ValueError):
        return None
    return slots


@module_bp.route("/<module_id>/process", methods=["POST"])
def begin_process(module_id: str):
    """Create a draft of a module following a process.

    Body: ``{"process": int, "slots": {slot_id: user_id}}``.
    """
    user_id, err = require_user()
    if err:
        return err
    module = get_or_raise(Module, module_id)
    require_team_permission(user_id, module.team_id, PERM_MANAGE_PROCESS)

    data = request.get_json(silent=True) or {}
    process_id = int_field(data, "process")
    if process_id is None:
        return api_error(E.VALIDATION_REQUIRED, "process is required")
    slots = _parse_assignments(data.get("slots"))
    if slots is None:
        return api_error(E.VALIDATION_INVALID, "slots must map slot ids to user ids")

    draft = draft_service.begin_process(module_id, process_id, slots)
    return jsonify(draft_service.draft_projection(draft, user_id)), 201
