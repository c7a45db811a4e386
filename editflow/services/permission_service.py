"""
Permission resolution for drafts.

A user's permissions in a draft are the union of what the draft's current
step grants to every slot the user occupies. Evaluation is deterministic and
deny-by-default, and always reads current state; nothing is cached, because
the answer changes whenever a draft advances or a slot changes hands.

Team-level permissions (``editing-process:edit``/``manage``) come from the
TeamAuthority collaborator and gate the HTTP layer, not the draft core.
"""

import logging

from sqlalchemy import select

from editflow.core.exceptions import PermissionDeniedError
from editflow.integrations import collaborators
from editflow.models import db
from editflow.models.draft import Draft, DraftSlot
from editflow.models.editing import Slot, SlotPermission, Step, StepSlotPermission

logger = logging.getLogger(__name__)


def permissions_for(draft: Draft, user_id: int) -> frozenset[SlotPermission]:
    """Permissions ``user_id`` holds in ``draft`` at its current step."""
    stmt = (
        select(StepSlotPermission.permission)
        .join(DraftSlot, DraftSlot.slot_id == StepSlotPermission.slot_id)
        .where(
            DraftSlot.draft_id == draft.module_id,
            DraftSlot.user_id == user_id,
            StepSlotPermission.step_id == draft.step_id,
        )
    )
    return frozenset(SlotPermission(p) for p in db.session.execute(stmt).scalars())


def has_permission(draft: Draft, user_id: int, permission: SlotPermission | str) -> bool:
    return SlotPermission(permission) in permissions_for(draft, user_id)


def active_slots(step: Step) -> list[Slot]:
    """Slots the step grants at least one permission to, ordered by id."""
    stmt = (
        select(Slot)
        .join(StepSlotPermission, StepSlotPermission.slot_id == Slot.id)
        .where(StepSlotPermission.step_id == step.id)
        .distinct()
        .order_by(Slot.id)
    )
    return list(db.session.execute(stmt).scalars())


def is_eligible(slot: Slot, user_id: int, team_id: int) -> bool:
    """Whether ``user_id`` may occupy ``slot`` in a draft of ``team_id``.

    The user must be a team member; a slot with a role limit also requires
    one of its roles.
    """
    users = collaborators().users
    if user_id not in users.members_of(team_id):
        return False
    limit = slot.role_limit
    return not limit or bool(limit & users.roles_of(user_id, team_id))


def can_access(draft: Draft, user_id: int, is_manager: bool = False) -> bool:
    """Whether ``user_id`` may see ``draft``.

    Process managers see every draft; anyone else must hold a slot in it,
    or be able to take one of the free slots of its current step.
    """
    if is_manager or user_id in draft.members():
        return True
    occupied = {seat.slot_id for seat in draft.slots}
    return any(
        slot.id not in occupied and is_eligible(slot, user_id, draft.team_id)
        for slot in active_slots(draft.step)
    )


def has_team_permission(user_id: int | None, team_id: int, permission: str) -> bool:
    if user_id is None:
        return False
    return collaborators().teams.has_permission(user_id, team_id, permission)


def require_team_permission(user_id: int | None, team_id: int, permission: str) -> None:
    """Raise PermissionDeniedError unless the user holds ``permission`` in ``team_id``."""
    if not has_team_permission(user_id, team_id, permission):
        logger.info("Team permission %s denied", permission,
                    extra={"user_id": user_id, "team_id": team_id})
        raise PermissionDeniedError(
            "forbidden", f"Missing team permission {permission}",
            code="user:insufficient-permissions",
        )
