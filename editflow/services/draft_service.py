"""
Draft lifecycle and advancement.

A draft is created bound to the latest version of a process and starts at
that version's start step. It then moves only along links: the acting user
must hold the link's slot, and the link must lead from the current step to
the requested one. Reaching a step without outgoing links concludes the
process: the draft's document is merged into the module and the draft is
removed.

Every mutation runs under the draft's row lock and commits as one unit.
Events are emitted only after that commit, so a failed or rolled-back
operation notifies nobody.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from editflow.core.exceptions import ConflictError, DependencyFailure, NotFoundError, PermissionDeniedError
from editflow.integrations import DocumentStoreError, collaborators
from editflow.models import db
from editflow.models.draft import RUN_ACTIVE, RUN_CANCELLED, RUN_FINISHED, Draft, DraftRun
from editflow.models.editing import Link, Process, Step
from editflow.models.module import Module
from editflow.models.team import PERM_MANAGE_PROCESS
from editflow.services import process_service
from editflow.services.events import EventBatch
from editflow.services.locking import locked_draft
from editflow.services.permission_service import active_slots, can_access, has_team_permission, permissions_for
from editflow.services.slot_service import autofill, seat_user
from editflow.utils.helpers import get_or_raise

logger = logging.getLogger(__name__)

ADVANCED = "draft:process:advanced"
FINISHED = "draft:process:finished"


@dataclass
class AdvanceResult:
    """Outcome of ``advance``. ``draft`` is None once the process has finished."""
    code: str
    module_id: str
    draft: Draft | None = None

    @property
    def finished(self) -> bool:
        return self.code == FINISHED


# ── Lookup ────────────────────────────────────────────────────────────────────


def get_draft(module_id: str) -> Draft:
    return get_or_raise(Draft, module_id)


def list_drafts_of(user_id: int) -> list[Draft]:
    """Drafts ``user_id`` may access: seated in, able to join, or managing."""
    team_ids = collaborators().users.teams_of(user_id)
    if not team_ids:
        return []
    drafts = db.session.execute(
        select(Draft).where(Draft.team_id.in_(list(team_ids))).order_by(Draft.created_at, Draft.module_id)
    ).scalars()
    managed = {t for t in team_ids if has_team_permission(user_id, t, PERM_MANAGE_PROCESS)}
    return [d for d in drafts if can_access(d, user_id, is_manager=d.team_id in managed)]


def draft_projection(draft: Draft, user_id: int) -> dict:
    """Draft as seen by ``user_id``.

    Includes the current step with who sits in each of its slots, the links
    the user can follow from it, and the user's permissions.
    """
    step = draft.step
    grants = step.slot_permissions()
    held = {seat.slot_id for seat in draft.slots if seat.user_id == user_id}

    data = draft.to_dict()
    data["step"] = {
        "id": step.id,
        "name": step.name,
        "final": step.is_final,
        "slots": [
            {
                "slot": slot.to_dict(),
                "user": draft.occupant_of(slot.id),
                "permissions": sorted(p.value for p in grants.get(slot.id, ())),
            }
            for slot in active_slots(step)
        ],
        "links": [link.to_dict() for link in step.links if link.slot_id in held],
    }
    data["permissions"] = sorted(p.value for p in permissions_for(draft, user_id))
    return data


# ── Lifecycle ─────────────────────────────────────────────────────────────────


def _open_run(module_id: str) -> DraftRun | None:
    stmt = (
        select(DraftRun)
        .where(DraftRun.module_id == module_id, DraftRun.outcome == RUN_ACTIVE)
        .order_by(DraftRun.id.desc())
        .limit(1)
    )
    return db.session.execute(stmt).scalar_one_or_none()


def begin_process(module_id: str, process_id: int, slots: dict | None = None) -> Draft:
    """Start an editing process for a module.

    Args:
        module_id: Module to create a draft of.
        process_id: Process to follow; its latest version is used.
        slots: Initial assignments, ``{slot_id: user_id}``.

    Returns:
        The new draft, positioned at the version's start step.

    Raises:
        NotFoundError: Unknown module or process, or a slot outside the version.
        ConflictError: The module already has a draft.
        PermissionDeniedError: ``badRole`` for an initial assignment.
        DependencyFailure: The document store could not copy the module document.
    """
    module = get_or_raise(Module, module_id)
    process = get_or_raise(Process, process_id)
    if process.team_id != module.team_id:
        raise NotFoundError(resource="Process", resource_id=process_id)
    if db.session.get(Draft, module_id) is not None:
        raise ConflictError("draft:create:exists", "Module already has a draft",
                            details={"module": module_id})

    version = process_service.latest_version(process)
    start = version.start_step
    batch = EventBatch()

    try:
        try:
            document_id = collaborators().documents.begin_draft(module)
        except DocumentStoreError as exc:
            logger.error("Copying module document failed: %s", exc, extra={"draft_id": module_id})
            raise DependencyFailure("Could not copy the module document, no draft was created",
                                    details={"module": module_id}) from exc
        draft = Draft(
            module_id=module.id, module=module,
            team_id=module.team_id,
            version_id=version.id, version=version,
            step_id=start.id, step=start,
            document_id=document_id,
        )
        db.session.add(draft)
        db.session.add(DraftRun(module_id=module.id, version_id=version.id))
        db.session.flush()

        for slot_id, user_id in sorted((slots or {}).items()):
            slot = process_service.get_slot(version, int(slot_id))
            seat_user(draft, slot, int(user_id), batch)
        autofill(draft, active_slots(start), batch)
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError("draft:create:exists", "Module already has a draft",
                            details={"module": module_id}) from exc
    except Exception:
        db.session.rollback()
        raise

    batch.flush()
    logger.info("Began process %r", process.name,
                extra={"draft_id": module_id, "process_id": process.id, "version_id": version.id})
    return draft


def cancel_draft(module_id: str) -> None:
    """Discard a draft without merging it.

    Every slot holder is told the process was cancelled.
    """
    with locked_draft(module_id) as (draft, batch):
        holders = draft.members()
        run = _open_run(module_id)
        if run is not None:
            run.close(RUN_CANCELLED)
        db.session.delete(draft)
        batch.process_cancelled(module_id, holders)
    logger.info("Cancelled draft", extra={"draft_id": module_id})


def advance(module_id: str, user_id: int, slot_id: int, target_step_id: int) -> AdvanceResult:
    """Move a draft along the link ``current step -> target_step_id`` for ``slot_id``.

    Args:
        module_id: Draft to advance.
        user_id: Acting user; must currently hold ``slot_id``.
        slot_id: Slot the user acts through.
        target_step_id: Destination step.

    Returns:
        AdvanceResult with ``draft:process:advanced`` and the updated draft,
        or ``draft:process:finished`` when the target step is final.

    Raises:
        NotFoundError: No such draft.
        PermissionDeniedError: ``badUser``. Nothing changes.
        ConflictError: ``badLink``. Nothing changes.
        DependencyFailure: Merging into the module failed. Nothing changes.
    """
    with locked_draft(module_id) as (draft, batch):
        if draft.occupant_of(slot_id) != user_id:
            raise PermissionDeniedError(
                "badUser", f"User {user_id} does not occupy slot {slot_id} in this draft",
                code="draft:advance:bad-user",
            )
        link = db.session.execute(
            select(Link).where(
                Link.from_step_id == draft.step_id,
                Link.to_step_id == target_step_id,
                Link.slot_id == slot_id,
            )
        ).scalar_one_or_none()
        if link is None:
            raise ConflictError(
                "draft:advance:bad-link",
                f"No link from step {draft.step_id} to step {target_step_id} for slot {slot_id}",
                kind="badLink",
            )

        target = db.session.get(Step, target_step_id)
        draft.step_id = target.id
        draft.step = target

        if target.is_final:
            holders = draft.members()
            try:
                collaborators().documents.merge_draft_into_module(draft)
            except DocumentStoreError as exc:
                logger.error("Merging draft into module failed: %s", exc,
                             extra={"draft_id": module_id})
                raise DependencyFailure("Could not merge draft into module, no changes were made",
                                        details={"draft": module_id}) from exc
            run = _open_run(module_id)
            if run is not None:
                run.close(RUN_FINISHED)
            document_id = draft.document_id
            db.session.delete(draft)
            batch.process_ended(module_id, document_id, holders)
            result = AdvanceResult(FINISHED, module_id)
        else:
            autofill(draft, active_slots(target), batch)
            for member in sorted(draft.members()):
                batch.draft_advanced(draft, member, permissions_for(draft, member))
            result = AdvanceResult(ADVANCED, module_id, draft)

    logger.info("Draft %s via link %r", "finished" if result.finished else "advanced", link.name,
                extra={"draft_id": module_id, "user_id": user_id})
    return result

