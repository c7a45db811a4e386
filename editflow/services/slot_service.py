"""
Slot assignment.

Binds users to the slots of a draft. The low-level helpers (``seat_user``,
``vacate_slot``, ``autofill``) work on an already-locked draft and record
events on the caller's batch; the draft engine composes them inside its own
transaction. ``assign``, ``claim_slot`` and ``unassign`` are the standalone operations:
they lock the draft, mutate, commit and then emit.

Autofill picks, among eligible team members, the one who currently occupies
slots in the fewest live drafts, then the smallest user id.
"""

import logging

from flask import current_app
from sqlalchemy import func, select

from editflow.core.exceptions import ConflictError, NotFoundError, PermissionDeniedError
from editflow.integrations import collaborators
from editflow.models import db
from editflow.models.draft import Draft, DraftSlot
from editflow.models.editing import Slot
from editflow.services.events import EventBatch
from editflow.services.locking import locked_draft
from editflow.services.permission_service import active_slots, is_eligible

logger = logging.getLogger(__name__)


def _slot_of(draft: Draft, slot_id: int) -> Slot:
    slot = db.session.get(Slot, slot_id)
    if slot is None or slot.version_id != draft.version_id:
        raise NotFoundError(resource="Slot", resource_id=slot_id)
    return slot


def _seat(draft: Draft, slot_id: int) -> DraftSlot | None:
    return next((seat for seat in draft.slots if seat.slot_id == slot_id), None)


def check_role(slot: Slot, user_id: int, team_id: int) -> None:
    """Raise ``badRole`` if ``slot`` is role-limited and the user holds none of its roles."""
    limit = slot.role_limit
    if not limit:
        return
    if not limit & collaborators().users.roles_of(user_id, team_id):
        raise PermissionDeniedError(
            "badRole",
            f"User {user_id} does not have a role required by slot {slot.name!r}",
            code="draft:process:bad-role",
        )


# ── Locked-draft helpers (no commit) ──────────────────────────────────────────


def seat_user(draft: Draft, slot: Slot, user_id: int, batch: EventBatch) -> bool:
    """Put ``user_id`` in ``slot``, replacing any current occupant.

    Returns:
        False when the user already held the slot (nothing changes).
    """
    if slot.version_id != draft.version_id:
        raise NotFoundError(resource="Slot", resource_id=slot.id)
    check_role(slot, user_id, draft.team_id)

    seat = _seat(draft, slot.id)
    if seat is not None:
        if seat.user_id == user_id:
            return False
        batch.slot_vacated(draft, slot.id, seat.user_id)
        seat.user_id = user_id
    else:
        draft.slots.append(DraftSlot(slot_id=slot.id, user_id=user_id))
    batch.slot_filled(draft, slot.id, user_id)

    logger.info("Slot %s filled by user %s", slot.id, user_id,
                extra={"draft_id": draft.module_id, "user_id": user_id})
    return True


def vacate_slot(draft: Draft, slot: Slot, batch: EventBatch) -> int | None:
    """Remove the occupant of ``slot``. Returns the former occupant, if any."""
    seat = _seat(draft, slot.id)
    if seat is None:
        return None
    draft.slots.remove(seat)
    batch.slot_vacated(draft, slot.id, seat.user_id)
    logger.info("Slot %s vacated by user %s", slot.id, seat.user_id,
                extra={"draft_id": draft.module_id, "user_id": seat.user_id})
    return seat.user_id


def _live_load(user_ids) -> dict[int, int]:
    """Number of live drafts in which each user occupies at least one slot."""
    stmt = (
        select(DraftSlot.user_id, func.count(func.distinct(DraftSlot.draft_id)))
        .where(DraftSlot.user_id.in_(list(user_ids)))
        .group_by(DraftSlot.user_id)
    )
    return {user_id: count for user_id, count in db.session.execute(stmt)}


def pick_candidate(slot: Slot, team_id: int) -> int | None:
    """Eligible team member for ``slot`` with the lightest live-draft load."""
    users = collaborators().users
    limit = slot.role_limit
    candidates = [
        user_id for user_id in users.members_of(team_id)
        if not limit or limit & users.roles_of(user_id, team_id)
    ]
    if not candidates:
        return None
    load = _live_load(candidates)
    return min(candidates, key=lambda user_id: (load.get(user_id, 0), user_id))


def autofill(draft: Draft, slots, batch: EventBatch) -> list[tuple[int, int]]:
    """Fill every unoccupied autofill slot among ``slots``.

    A slot without an eligible user stays empty.

    Returns:
        ``(slot_id, user_id)`` pairs that were filled.
    """
    if not current_app.config.get("AUTOFILL_ENABLED", True):
        return []

    filled = []
    for slot in slots:
        if not slot.autofill or _seat(draft, slot.id) is not None:
            continue
        user_id = pick_candidate(slot, draft.team_id)
        if user_id is None:
            logger.info("No eligible user to autofill slot %s", slot.id,
                        extra={"draft_id": draft.module_id})
            continue
        seat_user(draft, slot, user_id, batch)
        # so the next slot's load count sees this seat
        db.session.flush()
        filled.append((slot.id, user_id))
    return filled


# ── Standalone operations ─────────────────────────────────────────────────────


def assign(module_id: str, slot_id: int, user_id: int) -> Draft:
    """Assign ``user_id`` to ``slot_id`` in the draft of ``module_id``.

    Raises:
        NotFoundError: No such draft, or the slot is not part of its version.
        PermissionDeniedError: ``badRole``.
    """
    with locked_draft(module_id) as (draft, batch):
        seat_user(draft, _slot_of(draft, slot_id), user_id, batch)
    return draft


def claim_slot(module_id: str, slot_id: int, user_id: int) -> Draft:
    """Let ``user_id`` take a free slot of the draft of ``module_id`` themselves.

    Unlike ``assign`` this never replaces an occupant, and the user must
    belong to the draft's team.

    Raises:
        NotFoundError: No such draft, or the slot is not part of its version.
        PermissionDeniedError: Not a team member (``forbidden``), or ``badRole``.
        ConflictError: Someone else holds the slot.
    """
    with locked_draft(module_id) as (draft, batch):
        slot = _slot_of(draft, slot_id)
        if user_id not in collaborators().users.members_of(draft.team_id):
            raise PermissionDeniedError(
                "forbidden", f"User {user_id} is not a member of the draft's team",
                code="user:insufficient-permissions",
            )
        occupant = draft.occupant_of(slot.id)
        if occupant is not None and occupant != user_id:
            raise ConflictError("draft:slot:occupied", f"Slot {slot.name!r} is already taken",
                                details={"slot": slot.id})
        seat_user(draft, slot, user_id, batch)
    return draft


def unassign(module_id: str, slot_id: int) -> int | None:
    """Vacate ``slot_id`` in the draft of ``module_id``.

    Returns:
        The former occupant, or None if the slot was already empty.
    """
    with locked_draft(module_id) as (draft, batch):
        former = vacate_slot(draft, _slot_of(draft, slot_id), batch)
    return former


def list_free_slots(user_id: int) -> list[tuple[Draft, Slot]]:
    """Unoccupied slots ``user_id`` could take, across all drafts of their teams.

    Only slots that take part in a draft's current step are considered.
    """
    team_ids = collaborators().users.teams_of(user_id)
    if not team_ids:
        return []
    drafts = db.session.execute(
        select(Draft).where(Draft.team_id.in_(list(team_ids))).order_by(Draft.created_at, Draft.module_id)
    ).scalars()

    free = []
    for draft in drafts:
        occupied = {seat.slot_id for seat in draft.slots}
        for slot in active_slots(draft.step):
            if slot.id not in occupied and is_eligible(slot, user_id, draft.team_id):
                free.append((draft, slot))
    return free


def process_status(draft: Draft) -> list[dict]:
    """Every slot of the draft's version with its occupant and current permissions."""
    grants = draft.step.slot_permissions()
    stmt = select(Slot).where(Slot.version_id == draft.version_id).order_by(Slot.id)
    return [
        {
            "slot": slot.to_dict(),
            "user": draft.occupant_of(slot.id),
            "permissions": sorted(p.value for p in grants.get(slot.id, ())),
        }
        for slot in db.session.execute(stmt).scalars()
    ]
