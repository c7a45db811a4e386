"""
Process structure validation.

A structure is the index-based description of a process version, in the
same shape ``process_service.get_structure`` returns:

    {
        "name": "Review",
        "start": 0,
        "slots": [{"name": "Author", "roles": [], "autofill": false}, ...],
        "steps": [
            {
                "name": "Draft",
                "slots": [{"slot": 0, "permission": "edit"}],
                "links": [{"name": "Submit", "to": 1, "slot": 0}],
            },
            ...
        ],
    }

Steps and slots reference each other by position in these arrays; database
ids are assigned only when the validated structure is persisted.

Usage:
    from editflow.services.structure import validate_structure
    structure = validate_structure(request_json)   # raises StructuralError
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any

from editflow.core.exceptions import StructuralError
from editflow.models.editing import EXCLUSIVE_PERMISSIONS, SLOT_PERMISSIONS, SlotPermission

logger = logging.getLogger(__name__)

BAD_REFERENCE = "badReference"
SELF_LOOP = "selfLoop"
DUPLICATE_NAME = "duplicateName"
AMBIGUOUS_TARGET = "ambiguousTarget"
UNREACHABLE_STEP = "unreachableStep"
MALFORMED = "malformed"
NO_FINAL_STEP = "noFinalStep"
EXCLUSIVE_PERMISSION = "exclusivePermission"


# ═════════════════════════════════════════════════════════════════════════════
# Validated structure
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SlotDef:
    name: str
    roles: frozenset[int]
    autofill: bool


@dataclass(frozen=True)
class LinkDef:
    name: str
    to: int
    slot: int


@dataclass(frozen=True)
class StepDef:
    name: str
    permissions: tuple[tuple[int, SlotPermission], ...]
    links: tuple[LinkDef, ...]

    @property
    def is_final(self) -> bool:
        return not self.links


@dataclass(frozen=True)
class ProcessStructure:
    """Validated, immutable process description ready for persistence."""
    name: str
    start: int
    slots: tuple[SlotDef, ...]
    steps: tuple[StepDef, ...]


# ═════════════════════════════════════════════════════════════════════════════
# Parsing
# ═════════════════════════════════════════════════════════════════════════════

def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _name(value: Any, what: str, **details) -> str:
    if not isinstance(value, str) or not value.strip():
        raise StructuralError(MALFORMED, f"{what} must have a non-empty name", details)
    return value.strip()


def _list(value: Any, what: str, **details) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise StructuralError(MALFORMED, f"{what} must be a list", details)
    return value


def _parse_slot(index: int, raw: Any) -> SlotDef:
    if not isinstance(raw, dict):
        raise StructuralError(MALFORMED, "Slot must be an object", {"slot": index})
    roles = _list(raw.get("roles"), "Slot roles", slot=index)
    if not all(_is_int(r) for r in roles):
        raise StructuralError(MALFORMED, "Slot roles must be role ids", {"slot": index})
    autofill = raw.get("autofill", False)
    if not isinstance(autofill, bool):
        raise StructuralError(MALFORMED, "Slot autofill must be a boolean", {"slot": index})
    return SlotDef(
        name=_name(raw.get("name"), "Slot", slot=index),
        roles=frozenset(roles),
        autofill=autofill,
    )


def _parse_step(index: int, raw: Any) -> StepDef:
    if not isinstance(raw, dict):
        raise StructuralError(MALFORMED, "Step must be an object", {"step": index})
    name = _name(raw.get("name"), "Step", step=index)

    permissions: list[tuple[int, SlotPermission]] = []
    for entry in _list(raw.get("slots"), "Step slots", step=index):
        if not isinstance(entry, dict) or not _is_int(entry.get("slot")):
            raise StructuralError(MALFORMED, "Step slot entry must reference a slot index", {"step": index})
        permission = entry.get("permission")
        if permission not in SLOT_PERMISSIONS:
            raise StructuralError(
                MALFORMED,
                f"Unknown slot permission {permission!r}",
                {"step": index, "permission": permission},
            )
        grant = (entry["slot"], SlotPermission(permission))
        if grant not in permissions:
            permissions.append(grant)

    links: list[LinkDef] = []
    for entry in _list(raw.get("links"), "Step links", step=index):
        if not isinstance(entry, dict) or not _is_int(entry.get("to")) or not _is_int(entry.get("slot")):
            raise StructuralError(MALFORMED, "Link must reference a step and a slot index", {"step": index})
        links.append(LinkDef(
            name=_name(entry.get("name"), "Link", step=index),
            to=entry["to"],
            slot=entry["slot"],
        ))

    return StepDef(name=name, permissions=tuple(permissions), links=tuple(links))


def parse_structure(raw: Any) -> ProcessStructure:
    """Convert raw JSON into a ProcessStructure without graph checks."""
    if not isinstance(raw, dict):
        raise StructuralError(MALFORMED, "Process description must be an object")
    start = raw.get("start")
    if not _is_int(start):
        raise StructuralError(MALFORMED, "Process description must name a start step index")
    steps = _list(raw.get("steps"), "Process steps")
    if not steps:
        raise StructuralError(MALFORMED, "Process must have at least one step")

    return ProcessStructure(
        name=_name(raw.get("name"), "Process"),
        start=start,
        slots=tuple(_parse_slot(i, s) for i, s in enumerate(_list(raw.get("slots"), "Process slots"))),
        steps=tuple(_parse_step(i, s) for i, s in enumerate(steps)),
    )


# ═════════════════════════════════════════════════════════════════════════════
# Checks
# ═════════════════════════════════════════════════════════════════════════════

def _check_references(structure: ProcessStructure) -> None:
    n_steps, n_slots = len(structure.steps), len(structure.slots)
    if not 0 <= structure.start < n_steps:
        raise StructuralError(BAD_REFERENCE, "Start step does not exist", {"start": structure.start})
    for index, step in enumerate(structure.steps):
        for slot, _ in step.permissions:
            if not 0 <= slot < n_slots:
                raise StructuralError(
                    BAD_REFERENCE, f"Step {step.name!r} grants a permission to a missing slot",
                    {"step": index, "slot": slot},
                )
        for link in step.links:
            if not 0 <= link.to < n_steps:
                raise StructuralError(
                    BAD_REFERENCE, f"Link {link.name!r} leads to a missing step",
                    {"step": index, "link": link.name, "to": link.to},
                )
            if not 0 <= link.slot < n_slots:
                raise StructuralError(
                    BAD_REFERENCE, f"Link {link.name!r} is usable by a missing slot",
                    {"step": index, "link": link.name, "slot": link.slot},
                )


def _check_names(structure: ProcessStructure) -> None:
    def first_duplicate(names):
        seen = set()
        for index, name in enumerate(names):
            if name in seen:
                return index, name
            seen.add(name)
        return None

    dup = first_duplicate(s.name for s in structure.slots)
    if dup:
        raise StructuralError(DUPLICATE_NAME, f"Duplicate slot name {dup[1]!r}", {"slot": dup[0], "name": dup[1]})
    dup = first_duplicate(s.name for s in structure.steps)
    if dup:
        raise StructuralError(DUPLICATE_NAME, f"Duplicate step name {dup[1]!r}", {"step": dup[0], "name": dup[1]})
    for index, step in enumerate(structure.steps):
        dup = first_duplicate(link.name for link in step.links)
        if dup:
            raise StructuralError(
                DUPLICATE_NAME, f"Duplicate link name {dup[1]!r} in step {step.name!r}",
                {"step": index, "name": dup[1]},
            )


def _check_links(structure: ProcessStructure) -> None:
    targets: dict[tuple[int, int], int] = {}
    for index, step in enumerate(structure.steps):
        for link in step.links:
            if link.to == index:
                raise StructuralError(
                    SELF_LOOP, f"Link {link.name!r} leads back to step {step.name!r}",
                    {"step": index, "link": link.name},
                )
            key = (link.to, link.slot)
            if key in targets:
                raise StructuralError(
                    AMBIGUOUS_TARGET,
                    f"Slot {structure.slots[link.slot].name!r} has more than one link "
                    f"into step {structure.steps[link.to].name!r}",
                    {"step": index, "other_step": targets[key], "to": link.to, "slot": link.slot},
                )
            targets[key] = index


def _check_permissions(structure: ProcessStructure) -> None:
    for index, step in enumerate(structure.steps):
        holders: dict[SlotPermission, list[int]] = {}
        for slot, permission in step.permissions:
            if permission in EXCLUSIVE_PERMISSIONS:
                holders.setdefault(permission, []).append(slot)
        for permission, slots in holders.items():
            if len(slots) > 1:
                raise StructuralError(
                    EXCLUSIVE_PERMISSION,
                    f"Permission {permission.value!r} granted to more than one slot in step {step.name!r}",
                    {"step": index, "permission": permission.value, "slots": slots},
                )
        if len(holders) > 1:
            raise StructuralError(
                EXCLUSIVE_PERMISSION,
                f"Step {step.name!r} grants both editing and proposing changes",
                {"step": index},
            )


def _check_reachability(structure: ProcessStructure) -> None:
    seen = {structure.start}
    queue = deque([structure.start])
    while queue:
        for link in structure.steps[queue.popleft()].links:
            if link.to not in seen:
                seen.add(link.to)
                queue.append(link.to)

    for index, step in enumerate(structure.steps):
        if index not in seen:
            raise StructuralError(
                UNREACHABLE_STEP, f"Step {step.name!r} cannot be reached from the start step",
                {"step": index, "name": step.name},
            )

    if not any(step.is_final for step in structure.steps):
        raise StructuralError(NO_FINAL_STEP, "Process has no final step and could never conclude")


def validate_structure(raw: Any) -> ProcessStructure:
    """Parse and validate a process description.

    Checks run in a fixed order so the same input always reports the same
    failure: malformed input, dangling references, duplicate names, self
    loops and ambiguous targets, exclusive permissions, reachability.

    Returns:
        The validated ProcessStructure.

    Raises:
        StructuralError: with ``kind`` naming the failed check.
    """
    structure = parse_structure(raw)
    _check_references(structure)
    _check_names(structure)
    _check_links(structure)
    _check_permissions(structure)
    _check_reachability(structure)
    logger.debug(
        "Validated process structure %r: %d steps, %d slots",
        structure.name, len(structure.steps), len(structure.slots),
    )
    return structure
