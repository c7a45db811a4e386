"""
Process definition store.

Processes own an append-only list of immutable versions. Every structural
change goes through ``create_version``: the description is validated by
``editflow.services.structure`` and persisted as fresh step, slot, permission
and link rows in one transaction. Existing versions are never updated.

Deletion is refused once any draft has ever been bound to the target. The
``draft_runs`` history table records every draft, so the check still holds
after drafts have concluded or been cancelled.
"""

import logging

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from editflow.core.exceptions import ConflictError, InUseError, NotFoundError, StructuralError
from editflow.models import db
from editflow.models.draft import DraftRun
from editflow.models.editing import (
    Link,
    Process,
    ProcessVersion,
    Slot,
    Step,
    StepSlotPermission,
)
from editflow.services.structure import MALFORMED, ProcessStructure, validate_structure

logger = logging.getLogger(__name__)

CODE_PROCESS_EXISTS = "edit-process:new:exists"


# ── Lookup ────────────────────────────────────────────────────────────────────


def get_process(process_id: int) -> Process:
    process = db.session.get(Process, process_id)
    if process is None:
        raise NotFoundError(resource="Process", resource_id=process_id)
    return process


def list_processes(team_ids) -> list[Process]:
    """Processes owned by any of ``team_ids``, oldest first."""
    team_ids = list(team_ids)
    if not team_ids:
        return []
    stmt = select(Process).where(Process.team_id.in_(team_ids)).order_by(Process.id)
    return list(db.session.execute(stmt).scalars())


def list_versions(process: Process) -> list[ProcessVersion]:
    """All versions of ``process``, newest first."""
    stmt = (
        select(ProcessVersion)
        .where(ProcessVersion.process_id == process.id)
        .order_by(ProcessVersion.created_at.desc(), ProcessVersion.id.desc())
    )
    return list(db.session.execute(stmt).scalars())


def latest_version(process: Process) -> ProcessVersion:
    """Version with the greatest creation time; ties go to the greater id.

    Always read from the database, never cached on the process.
    """
    stmt = (
        select(ProcessVersion)
        .where(ProcessVersion.process_id == process.id)
        .order_by(ProcessVersion.created_at.desc(), ProcessVersion.id.desc())
        .limit(1)
    )
    version = db.session.execute(stmt).scalar_one_or_none()
    if version is None:
        raise NotFoundError(resource="ProcessVersion", resource_id=f"latest of {process.id}")
    return version


def get_version(process: Process, version_id: int) -> ProcessVersion:
    version = db.session.get(ProcessVersion, version_id)
    if version is None or version.process_id != process.id:
        raise NotFoundError(resource="ProcessVersion", resource_id=version_id)
    return version


def list_slots(version: ProcessVersion) -> list[Slot]:
    stmt = select(Slot).where(Slot.version_id == version.id).order_by(Slot.id)
    return list(db.session.execute(stmt).scalars())


def list_steps(version: ProcessVersion) -> list[Step]:
    stmt = select(Step).where(Step.version_id == version.id).order_by(Step.id)
    return list(db.session.execute(stmt).scalars())


def get_step(version: ProcessVersion, step_id: int) -> Step:
    step = db.session.get(Step, step_id)
    if step is None or step.version_id != version.id:
        raise NotFoundError(resource="Step", resource_id=step_id)
    return step


def get_slot(version: ProcessVersion, slot_id: int) -> Slot:
    slot = db.session.get(Slot, slot_id)
    if slot is None or slot.version_id != version.id:
        raise NotFoundError(resource="Slot", resource_id=slot_id)
    return slot


def get_structure(version: ProcessVersion) -> dict:
    """Describe ``version`` as an index-based tree.

    The result has the shape accepted by ``create_version``, with database
    ids added to steps and slots. ``start``, ``slots[].slot``, ``links[].to``
    and ``links[].slot`` are indices into the returned arrays.
    """
    slots = list_slots(version)
    steps = list_steps(version)
    slot_index = {slot.id: i for i, slot in enumerate(slots)}
    step_index = {step.id: i for i, step in enumerate(steps)}

    start = next((i for i, step in enumerate(steps) if step.is_start), None)

    return {
        "name": version.process.name,
        "start": start,
        "slots": [
            {
                "id": slot.id,
                "name": slot.name,
                "roles": sorted(slot.role_limit),
                "autofill": slot.autofill,
            }
            for slot in slots
        ],
        "steps": [
            {
                "id": step.id,
                "name": step.name,
                "slots": [
                    {"slot": slot_index[entry.slot_id], "permission": entry.permission}
                    for entry in step.permissions
                ],
                "links": [
                    {
                        "name": link.name,
                        "to": step_index[link.to_step_id],
                        "slot": slot_index[link.slot_id],
                    }
                    for link in step.links
                ],
            }
            for step in steps
        ],
    }


# ── Mutation ──────────────────────────────────────────────────────────────────


def _ensure_name_free(name: str, process_id: int | None = None) -> None:
    stmt = select(Process.id).where(Process.name == name)
    existing = db.session.execute(stmt).scalar_one_or_none()
    if existing is not None and existing != process_id:
        raise ConflictError(CODE_PROCESS_EXISTS, f"A process named {name!r} already exists",
                            details={"process": existing})


def _persist_version(process: Process, structure: ProcessStructure) -> ProcessVersion:
    """Insert a version with all of its rows. Caller commits."""
    version = ProcessVersion(process=process)
    db.session.add(version)

    slots = [
        Slot(version=version, name=spec.name, roles=sorted(spec.roles), autofill=spec.autofill)
        for spec in structure.slots
    ]
    steps = [
        Step(version=version, name=spec.name, is_start=(index == structure.start))
        for index, spec in enumerate(structure.steps)
    ]
    db.session.add_all(slots + steps)
    db.session.flush()

    for step, spec in zip(steps, structure.steps):
        for slot_index, permission in spec.permissions:
            db.session.add(StepSlotPermission(
                step_id=step.id, slot_id=slots[slot_index].id, permission=permission.value,
            ))
        for link in spec.links:
            db.session.add(Link(
                from_step_id=step.id,
                to_step_id=steps[link.to].id,
                slot_id=slots[link.slot].id,
                name=link.name,
            ))
    db.session.flush()
    return version


def _commit(process_name: str) -> None:
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error saving process %r: %s", process_name, exc.orig)
        raise ConflictError(CODE_PROCESS_EXISTS, f"A process named {process_name!r} already exists") from exc


def create_process(team_id: int, raw_structure) -> ProcessVersion:
    """Create a process together with its first version.

    Args:
        team_id: Owning team.
        raw_structure: Process description, see ``editflow.services.structure``.

    Returns:
        The first ProcessVersion.

    Raises:
        StructuralError: The description is invalid. Nothing is stored.
        ConflictError: A process with this name already exists.
    """
    structure = validate_structure(raw_structure)
    _ensure_name_free(structure.name)

    process = Process(team_id=team_id, name=structure.name)
    db.session.add(process)
    try:
        version = _persist_version(process, structure)
    except Exception:
        db.session.rollback()
        raise
    _commit(structure.name)

    logger.info("Created process %r", process.name,
                extra={"process_id": process.id, "version_id": version.id, "team_id": team_id})
    return version


def create_version(process: Process, raw_structure) -> ProcessVersion:
    """Commit a new immutable version of ``process``.

    A description whose name differs from the process name also renames the
    process.

    Raises:
        StructuralError: The description is invalid. Nothing is stored.
        ConflictError: The new name is taken by another process.
    """
    structure = validate_structure(raw_structure)
    if structure.name != process.name:
        _ensure_name_free(structure.name, process.id)
        process.name = structure.name
    try:
        version = _persist_version(process, structure)
    except Exception:
        db.session.rollback()
        raise
    _commit(structure.name)

    logger.info("Created version of process %r", process.name,
                extra={"process_id": process.id, "version_id": version.id})
    return version


def rename_process(process: Process, name) -> Process:
    """Change the process name. Versions are left untouched."""
    if not isinstance(name, str) or not name.strip():
        raise StructuralError(MALFORMED, "Process must have a non-empty name")
    name = name.strip()
    if name == process.name:
        return process
    _ensure_name_free(name, process.id)
    process.name = name
    _commit(name)
    logger.info("Renamed process to %r", name, extra={"process_id": process.id})
    return process


def _versions_in_use(version_ids) -> bool:
    stmt = select(DraftRun.id).where(DraftRun.version_id.in_(list(version_ids))).limit(1)
    return db.session.execute(stmt).first() is not None


def delete_version(version: ProcessVersion) -> None:
    """Delete ``version`` and its structure.

    Raises:
        InUseError: A draft has been bound to this version.
    """
    version_id, process_id = version.id, version.process_id
    if _versions_in_use([version_id]):
        raise InUseError("ProcessVersion", version_id)
    # steps, slots, permissions and links go with it via ON DELETE CASCADE
    db.session.execute(delete(ProcessVersion).where(ProcessVersion.id == version_id))
    db.session.commit()
    logger.info("Deleted process version", extra={"process_id": process_id, "version_id": version_id})


def delete_process(process: Process) -> None:
    """Delete ``process`` with every version.

    Raises:
        InUseError: A draft has been bound to any version of the process.
    """
    process_id = process.id
    version_ids = list(db.session.execute(
        select(ProcessVersion.id).where(ProcessVersion.process_id == process_id)
    ).scalars())
    if version_ids and _versions_in_use(version_ids):
        raise InUseError("Process", process_id)
    db.session.execute(delete(ProcessVersion).where(ProcessVersion.process_id == process_id))
    db.session.execute(delete(Process).where(Process.id == process_id))
    db.session.commit()
    logger.info("Deleted process", extra={"process_id": process_id})
