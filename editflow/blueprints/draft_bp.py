"""
Draft blueprint.

Endpoints:
    GET    /api/v1/drafts                           — drafts the caller can access
    GET    /api/v1/drafts/<module_id>               — draft as seen by the caller
    DELETE /api/v1/drafts/<module_id>               — cancel the editing process
    POST   /api/v1/drafts/<module_id>/advance       — follow a link to another step
    GET    /api/v1/drafts/<module_id>/process       — slots with occupants
    DELETE /api/v1/drafts/<module_id>/slots/<slot>  — vacate a slot
"""

import logging

from flask import Blueprint, jsonify, request

from editflow.blueprints import int_field, require_user
from editflow.core.exceptions import PermissionDeniedError
from editflow.models.team import PERM_MANAGE_PROCESS
from editflow.services import draft_service, slot_service
from editflow.services.permission_service import can_access, has_team_permission, require_team_permission
from editflow.utils.errors import E, api_error

logger = logging.getLogger(__name__)

draft_bp = Blueprint("draft_bp", __name__, url_prefix="/api/v1/drafts")


def _accessible_draft(module_id: str, user_id: int):
    draft = draft_service.get_draft(module_id)
    is_manager = has_team_permission(user_id, draft.team_id, PERM_MANAGE_PROCESS)
    if not can_access(draft, user_id, is_manager=is_manager):
        raise PermissionDeniedError("forbidden", "You don't have access to this draft")
    return draft


@draft_bp.route("", methods=["GET"])
def list_drafts():
    user_id, err = require_user()
    if err:
        return err
    return jsonify([
        draft_service.draft_projection(draft, user_id)
        for draft in draft_service.list_drafts_of(user_id)
    ]), 200


@draft_bp.route("/<module_id>", methods=["GET"])
def get_draft(module_id: str):
    user_id, err = require_user()
    if err:
        return err
    draft = _accessible_draft(module_id, user_id)
    return jsonify(draft_service.draft_projection(draft, user_id)), 200


@draft_bp.route("/<module_id>", methods=["DELETE"])
def cancel_draft(module_id: str):
    user_id, err = require_user()
    if err:
        return err
    draft = draft_service.get_draft(module_id)
    require_team_permission(user_id, draft.team_id, PERM_MANAGE_PROCESS)
    draft_service.cancel_draft(module_id)
    return "", 204


@draft_bp.route("/<module_id>/advance", methods=["POST"])
def advance(module_id: str):
    """Advance a draft.

    Body: ``{"target": step_id, "slot": slot_id}``. Responds with
    ``draft:process:advanced`` and the updated draft, or
    ``draft:process:finished`` once the draft has been merged.
    """
    user_id, err = require_user()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    target = int_field(data, "target")
    slot_id = int_field(data, "slot")
    if target is None or slot_id is None:
        return api_error(E.VALIDATION_REQUIRED, "target and slot are required")

    result = draft_service.advance(module_id, user_id, slot_id, target)
    if result.finished:
        return jsonify({"code": result.code}), 200
    return jsonify({
        "code": result.code,
        "draft": draft_service.draft_projection(result.draft, user_id),
    }), 200


@draft_bp.route("/<module_id>/process", methods=["GET"])
def process_status(module_id: str):
    user_id, err = require_user()
    if err:
        return err
    draft = _accessible_draft(module_id, user_id)
    return jsonify({
        "process": [draft.version.process_id, draft.version_id],
        "step": draft.step_id,
        "slots": slot_service.process_status(draft),
    }), 200


@draft_bp.route("/<module_id>/slots/<int:slot_id>", methods=["DELETE"])
def vacate_slot(module_id: str, slot_id: int):
    """Leave a slot. Vacating someone else's slot requires ``editing-process:manage``."""
    user_id, err = require_user()
    if err:
        return err
    draft = draft_service.get_draft(module_id)
    if draft.occupant_of(slot_id) != user_id:
        require_team_permission(user_id, draft.team_id, PERM_MANAGE_PROCESS)
    slot_service.unassign(module_id, slot_id)
    return "", 204
