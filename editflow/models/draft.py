"""
Editing Process Engine
Draft domain models.

Models:
    - Draft: live instance of a module progressing through a process version
    - DraftSlot: occupant of a slot within a draft
    - DraftRun: append-only history of every draft ever started

A draft row exists only while its editing process is running. It is removed
when the process concludes (merge into the module) or is cancelled; the
matching DraftRun row survives and records the outcome.
"""

from datetime import datetime, timezone

from editflow.models import db

RUN_ACTIVE = "active"
RUN_FINISHED = "finished"
RUN_CANCELLED = "cancelled"

RUN_OUTCOMES = {RUN_ACTIVE, RUN_FINISHED, RUN_CANCELLED}


class Draft(db.Model):
    """
    Working version of a module during an editing process.

    Keyed by module id, so a module has at most one draft at a time.
    ``step_id`` always belongs to ``version_id``.
    """

    __tablename__ = "drafts"

    module_id = db.Column(
        db.String(36), db.ForeignKey("modules.id", ondelete="CASCADE"),
        primary_key=True,
    )
    team_id = db.Column(db.Integer, nullable=False, index=True)
    version_id = db.Column(
        db.Integer, db.ForeignKey("edit_process_versions.id", ondelete="RESTRICT"),
        nullable=False, index=True,
    )
    step_id = db.Column(
        db.Integer, db.ForeignKey("edit_process_steps.id", ondelete="RESTRICT"),
        nullable=False, index=True,
    )
    document_id = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    module = db.relationship("Module")
    version = db.relationship("ProcessVersion")
    step = db.relationship("Step")
    slots = db.relationship(
        "DraftSlot", back_populates="draft", order_by="DraftSlot.slot_id",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    @property
    def id(self):
        return self.module_id

    def occupant_of(self, slot_id: int) -> int | None:
        for seat in self.slots:
            if seat.slot_id == slot_id:
                return seat.user_id
        return None

    def members(self) -> set[int]:
        """Users holding at least one slot in this draft."""
        return {seat.user_id for seat in self.slots}

    def to_dict(self):
        return {
            "module": self.module_id,
            "team": self.team_id,
            "process": [self.version.process_id, self.version_id] if self.version else None,
            "step": self.step_id,
            "document": self.document_id,
            "title": self.module.title if self.module else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Draft {self.module_id} at step {self.step_id}>"


class DraftSlot(db.Model):
    """A user seated in a slot of a draft. One user per (draft, slot)."""

    __tablename__ = "draft_slots"

    draft_id = db.Column(
        db.String(36), db.ForeignKey("drafts.module_id", ondelete="CASCADE"),
        primary_key=True,
    )
    slot_id = db.Column(
        db.Integer, db.ForeignKey("edit_process_slots.id", ondelete="RESTRICT"),
        primary_key=True,
    )
    user_id = db.Column(db.Integer, nullable=False, index=True)

    draft = db.relationship("Draft", back_populates="slots")
    slot = db.relationship("Slot")

    def to_dict(self):
        return {
            "draft": self.draft_id,
            "slot": self.slot_id,
            "user": self.user_id,
        }

    def __repr__(self):
        return f"<DraftSlot {self.draft_id}/{self.slot_id}: user {self.user_id}>"


class DraftRun(db.Model):
    """
    History record of one editing process run on a module.

    Never deleted. Its existence marks the version as used, which blocks
    deleting the version or its process.
    """

    __tablename__ = "draft_runs"

    id = db.Column(db.Integer, primary_key=True)
    module_id = db.Column(db.String(36), nullable=False, index=True)
    version_id = db.Column(
        db.Integer, db.ForeignKey("edit_process_versions.id", ondelete="RESTRICT"),
        nullable=False, index=True,
    )
    outcome = db.Column(db.String(20), nullable=False, default=RUN_ACTIVE)
    started_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    ended_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def close(self, outcome: str):
        if outcome not in RUN_OUTCOMES or outcome == RUN_ACTIVE:
            raise ValueError(f"Invalid run outcome {outcome!r}")
        self.outcome = outcome
        self.ended_at = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "module": self.module_id,
            "version": self.version_id,
            "outcome": self.outcome,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
        }

    def __repr__(self):
        return f"<DraftRun {self.id}: {self.module_id} {self.outcome}>"
