"""
Editing Process Engine
Process definition models.

Models:
    - Process: a named family of editorial workflows owned by a team
    - ProcessVersion: one immutable snapshot of a process graph
    - Slot: a role-constrained seat users occupy within a draft
    - Step: a node of the process graph
    - StepSlotPermission: permission a step grants to a slot
    - Link: a named, slot-qualified transition between two steps

Versions are write-once. Editing a process inserts a brand-new version with
its own steps, slots and links; rows of an existing version are never
updated, so drafts bound to older versions are unaffected.
"""

from datetime import datetime, timezone
from enum import Enum

from editflow.models import db


class SlotPermission(str, Enum):
    """Closed set of permissions a step can grant to a slot."""
    VIEW = "view"
    EDIT = "edit"
    PROPOSE_CHANGES = "propose_changes"
    ACCEPT_CHANGES = "accept_changes"


SLOT_PERMISSIONS = frozenset(p.value for p in SlotPermission)

# At most one slot may hold each of these at a step, and never both at once.
EXCLUSIVE_PERMISSIONS = frozenset({SlotPermission.EDIT, SlotPermission.PROPOSE_CHANGES})


class Process(db.Model):
    """Editing process. Structure lives in its versions."""

    __tablename__ = "edit_processes"

    id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(db.Integer, nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False, unique=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    versions = db.relationship(
        "ProcessVersion", back_populates="process",
        order_by="[ProcessVersion.created_at.desc(), ProcessVersion.id.desc()]",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "team": self.team_id,
            "name": self.name,
        }

    def __repr__(self):
        return f"<Process {self.id}: {self.name}>"


class ProcessVersion(db.Model):
    """Immutable revision of a process graph."""

    __tablename__ = "edit_process_versions"

    id = db.Column(db.Integer, primary_key=True)
    process_id = db.Column(
        db.Integer, db.ForeignKey("edit_processes.id", ondelete="RESTRICT"),
        nullable=False, index=True,
    )
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    process = db.relationship("Process", back_populates="versions")
    steps = db.relationship(
        "Step", back_populates="version", order_by="Step.id",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    slots = db.relationship(
        "Slot", back_populates="version", order_by="Slot.id",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    @property
    def start_step(self):
        return next((s for s in self.steps if s.is_start), None)

    def to_dict(self):
        start = self.start_step
        return {
            "id": self.id,
            "process": self.process_id,
            "name": self.process.name if self.process else None,
            "version": self.created_at.isoformat() if self.created_at else None,
            "start": start.id if start else None,
        }

    def __repr__(self):
        return f"<ProcessVersion {self.id} of process {self.process_id}>"


class Slot(db.Model):
    """
    Abstract seat in a process version.

    ``roles`` holds role ids; an empty list means any team member may occupy
    the slot. ``autofill`` slots are filled automatically when they become
    active in a step.
    """

    __tablename__ = "edit_process_slots"

    id = db.Column(db.Integer, primary_key=True)
    version_id = db.Column(
        db.Integer, db.ForeignKey("edit_process_versions.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    roles = db.Column(db.JSON, nullable=False, default=list)
    autofill = db.Column(db.Boolean, nullable=False, default=False)

    version = db.relationship("ProcessVersion", back_populates="slots")

    __table_args__ = (
        db.UniqueConstraint("version_id", "name", name="uq_edit_process_slot_name"),
    )

    @property
    def role_limit(self) -> frozenset[int]:
        return frozenset(self.roles or ())

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "roles": sorted(self.role_limit),
            "autofill": self.autofill,
        }

    def __repr__(self):
        return f"<Slot {self.id}: {self.name}>"


class Step(db.Model):
    """Node of a process graph. A step with no outgoing links is final."""

    __tablename__ = "edit_process_steps"

    id = db.Column(db.Integer, primary_key=True)
    version_id = db.Column(
        db.Integer, db.ForeignKey("edit_process_versions.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    is_start = db.Column(db.Boolean, nullable=False, default=False)

    version = db.relationship("ProcessVersion", back_populates="steps")
    permissions = db.relationship(
        "StepSlotPermission", order_by="[StepSlotPermission.slot_id, StepSlotPermission.permission]",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    links = db.relationship(
        "Link", foreign_keys="Link.from_step_id", order_by="[Link.slot_id, Link.to_step_id]",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    __table_args__ = (
        db.UniqueConstraint("version_id", "name", name="uq_edit_process_step_name"),
    )

    @property
    def is_final(self) -> bool:
        return not self.links

    def slot_permissions(self) -> dict[int, set[SlotPermission]]:
        """Map slot id -> permissions granted at this step."""
        grants: dict[int, set[SlotPermission]] = {}
        for entry in self.permissions:
            grants.setdefault(entry.slot_id, set()).add(SlotPermission(entry.permission))
        return grants

    def to_dict(self):
        return {
            "id": self.id,
            "process": [self.version.process_id, self.version_id] if self.version else None,
            "name": self.name,
            "slots": [
                {"slot": slot_id, "permissions": sorted(p.value for p in perms)}
                for slot_id, perms in sorted(self.slot_permissions().items())
            ],
            "links": [link.to_dict() for link in self.links],
        }

    def __repr__(self):
        return f"<Step {self.id}: {self.name}>"


class StepSlotPermission(db.Model):
    """Permission granted to a slot while a draft is at a step."""

    __tablename__ = "edit_process_step_slots"

    step_id = db.Column(
        db.Integer, db.ForeignKey("edit_process_steps.id", ondelete="CASCADE"),
        primary_key=True,
    )
    slot_id = db.Column(
        db.Integer, db.ForeignKey("edit_process_slots.id", ondelete="CASCADE"),
        primary_key=True, index=True,
    )
    permission = db.Column(db.String(32), primary_key=True)

    def __repr__(self):
        return f"<StepSlotPermission step={self.step_id} slot={self.slot_id} {self.permission}>"


class Link(db.Model):
    """
    Directed, slot-qualified transition between two steps of one version.

    Only a user occupying ``slot_id`` may move a draft along the link.
    A slot reaches a given destination step through at most one link.
    """

    __tablename__ = "edit_process_links"

    id = db.Column(db.Integer, primary_key=True)
    from_step_id = db.Column(
        db.Integer, db.ForeignKey("edit_process_steps.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    to_step_id = db.Column(
        db.Integer, db.ForeignKey("edit_process_steps.id", ondelete="CASCADE"),
        nullable=False,
    )
    slot_id = db.Column(
        db.Integer, db.ForeignKey("edit_process_slots.id", ondelete="CASCADE"),
        nullable=False,
    )
    name = db.Column(db.String(200), nullable=False)

    __table_args__ = (
        db.UniqueConstraint("from_step_id", "name", name="uq_edit_process_link_name"),
        db.UniqueConstraint("to_step_id", "slot_id", name="uq_edit_process_link_target_slot"),
        db.CheckConstraint("from_step_id <> to_step_id", name="ck_edit_process_link_no_loop"),
    )

    def to_dict(self):
        return {
            "name": self.name,
            "to": self.to_step_id,
            "slot": self.slot_id,
        }

    def __repr__(self):
        return f"<Link {self.from_step_id}->{self.to_step_id} via slot {self.slot_id}: {self.name}>"
