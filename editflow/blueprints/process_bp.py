"""
Editing process blueprint.

Endpoints:
    GET    /api/v1/processes                               — processes of the caller's teams
    POST   /api/v1/processes                               — create process with first version
    GET    /api/v1/processes/<id>                          — process with its versions
    PUT    /api/v1/processes/<id>                          — rename
    DELETE /api/v1/processes/<id>                          — delete (refused once used)
    GET    /api/v1/processes/<id>/structure                — latest version as a tree
    GET    /api/v1/processes/<id>/versions                 — versions, newest first
    POST   /api/v1/processes/<id>/versions                 — commit a new version
    GET    /api/v1/processes/<id>/versions/<vid>           — one version
    DELETE /api/v1/processes/<id>/versions/<vid>           — delete a version
    GET    /api/v1/processes/<id>/versions/<vid>/structure — version as a tree
    GET    /api/v1/processes/<id>/versions/<vid>/steps/<sid> — step with its grants and links
    POST   /api/v1/processes/slots                         — take (or hand out) a slot
    GET    /api/v1/processes/slots/free                    — slots the caller could take

Changing process definitions requires ``editing-process:edit`` in the
owning team; assigning someone else to a slot requires
``editing-process:manage``.
"""

import logging

from flask import Blueprint, jsonify, request

from editflow.blueprints import int_field, require_user
from editflow.core.exceptions import PermissionDeniedError
from editflow.integrations import collaborators
from editflow.models.team import PERM_EDIT_PROCESS, PERM_MANAGE_PROCESS
from editflow.services import draft_service, process_service, slot_service
from editflow.services.permission_service import has_team_permission, require_team_permission
from editflow.utils.errors import E, api_error

logger = logging.getLogger(__name__)

process_bp = Blueprint("process_bp", __name__, url_prefix="/api/v1/processes")


def _visible_process(process_id: int, user_id: int):
    process = process_service.get_process(process_id)
    if process.team_id not in collaborators().users.teams_of(user_id):
        raise PermissionDeniedError("forbidden", "Process belongs to another team")
    return process


def _editable_process(process_id: int, user_id: int):
    process = process_service.get_process(process_id)
    require_team_permission(user_id, process.team_id, PERM_EDIT_PROCESS)
    return process


def _process_body(process, version=None):
    data = process.to_dict()
    if version is not None:
        data["version"] = version.to_dict()
    return data


# ═════════════════════════════════════════════════════════════════════════
# Processes
# ═════════════════════════════════════════════════════════════════════════


@process_bp.route("", methods=["GET"])
def list_processes():
    user_id, err = require_user()
    if err:
        return err
    team_ids = collaborators().users.teams_of(user_id)
    return jsonify([p.to_dict() for p in process_service.list_processes(team_ids)]), 200


@process_bp.route("", methods=["POST"])
def create_process():
    """Create a process.

    Body: ``{"team": int, "name", "start", "slots", "steps"}`` where the
    last four describe the first version.
    """
    user_id, err = require_user()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    team_id = int_field(data, "team")
    if team_id is None:
        return api_error(E.VALIDATION_REQUIRED, "team is required")
    require_team_permission(user_id, team_id, PERM_EDIT_PROCESS)

    structure = {key: value for key, value in data.items() if key != "team"}
    version = process_service.create_process(team_id, structure)
    return jsonify(_process_body(version.process, version)), 201


@process_bp.route("/<int:process_id>", methods=["GET"])
def get_process(process_id: int):
    user_id, err = require_user()
    if err:
        return err
    process = _visible_process(process_id, user_id)
    data = process.to_dict()
    data["versions"] = [v.to_dict() for v in process_service.list_versions(process)]
    return jsonify(data), 200


@process_bp.route("/<int:process_id>", methods=["PUT"])
def rename_process(process_id: int):
    user_id, err = require_user()
    if err:
        return err
    process = _editable_process(process_id, user_id)
    data = request.get_json(silent=True) or {}
    if "name" not in data:
        return api_error(E.VALIDATION_REQUIRED, "name is required")
    process = process_service.rename_process(process, data["name"])
    return jsonify(process.to_dict()), 200


@process_bp.route("/<int:process_id>", methods=["DELETE"])
def delete_process(process_id: int):
    user_id, err = require_user()
    if err:
        return err
    process = _editable_process(process_id, user_id)
    process_service.delete_process(process)
    return "", 204


@process_bp.route("/<int:process_id>/structure", methods=["GET"])
def get_structure(process_id: int):
    user_id, err = require_user()
    if err:
        return err
    process = _visible_process(process_id, user_id)
    version = process_service.latest_version(process)
    return jsonify(process_service.get_structure(version)), 200


# ═════════════════════════════════════════════════════════════════════════
# Versions
# ═════════════════════════════════════════════════════════════════════════


@process_bp.route("/<int:process_id>/versions", methods=["GET"])
def list_versions(process_id: int):
    user_id, err = require_user()
    if err:
        return err
    process = _visible_process(process_id, user_id)
    return jsonify([v.to_dict() for v in process_service.list_versions(process)]), 200


@process_bp.route("/<int:process_id>/versions", methods=["POST"])
def create_version(process_id: int):
    user_id, err = require_user()
    if err:
        return err
    process = _editable_process(process_id, user_id)
    data = request.get_json(silent=True)
    version = process_service.create_version(process, data)
    return jsonify(version.to_dict()), 201


@process_bp.route("/<int:process_id>/versions/<int:version_id>", methods=["GET"])
def get_version(process_id: int, version_id: int):
    user_id, err = require_user()
    if err:
        return err
    process = _visible_process(process_id, user_id)
    return jsonify(process_service.get_version(process, version_id).to_dict()), 200


@process_bp.route("/<int:process_id>/versions/<int:version_id>", methods=["DELETE"])
def delete_version(process_id: int, version_id: int):
    user_id, err = require_user()
    if err:
        return err
    process = _editable_process(process_id, user_id)
    process_service.delete_version(process_service.get_version(process, version_id))
    return "", 204


@process_bp.route("/<int:process_id>/versions/<int:version_id>/structure", methods=["GET"])
def get_version_structure(process_id: int, version_id: int):
    user_id, err = require_user()
    if err:
        return err
    process = _visible_process(process_id, user_id)
    version = process_service.get_version(process, version_id)
    return jsonify(process_service.get_structure(version)), 200


@process_bp.route("/<int:process_id>/versions/<int:version_id>/steps/<int:step_id>", methods=["GET"])
def get_step(process_id: int, version_id: int, step_id: int):
    user_id, err = require_user()
    if err:
        return err
    process = _visible_process(process_id, user_id)
    version = process_service.get_version(process, version_id)
    step = process_service.get_step(version, step_id)
    data = step.to_dict()
    data["final"] = step.is_final
    return jsonify(data), 200


# ═════════════════════════════════════════════════════════════════════════
# Slots
# ═════════════════════════════════════════════════════════════════════════


@process_bp.route("/slots", methods=["POST"])
def assign_slot():
    """Assign a user to a slot of a draft.

    Body: ``{"draft": module_id, "slot": int, "user": int?}``. Without
    ``user`` the caller takes a free slot themselves. Process managers may
    seat anyone, replacing the current occupant.
    """
    user_id, err = require_user()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    module_id = data.get("draft")
    slot_id = int_field(data, "slot")
    if not module_id or slot_id is None:
        return api_error(E.VALIDATION_REQUIRED, "draft and slot are required")

    assignee = int_field(data, "user") if data.get("user") is not None else user_id
    if assignee is None:
        return api_error(E.VALIDATION_INVALID, "user must be a user id")
    draft = draft_service.get_draft(str(module_id))
    is_manager = has_team_permission(user_id, draft.team_id, PERM_MANAGE_PROCESS)
    if assignee != user_id and not is_manager:
        require_team_permission(user_id, draft.team_id, PERM_MANAGE_PROCESS)

    if is_manager:
        slot_service.assign(draft.module_id, slot_id, assignee)
    else:
        slot_service.claim_slot(draft.module_id, slot_id, user_id)
    return "", 204


@process_bp.route("/slots/free", methods=["GET"])
def list_free_slots():
    user_id, err = require_user()
    if err:
        return err
    return jsonify([
        {**slot.to_dict(), "draft": draft_service.draft_projection(draft, user_id)}
        for draft, slot in slot_service.list_free_slots(user_id)
    ]), 200
