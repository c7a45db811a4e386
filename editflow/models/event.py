"""
Editing Process Engine
Event model.

Models:
    - Event: per-user notification produced by the editing process engine
"""

from datetime import datetime, timezone

from editflow.models import db


# ── Constants ────────────────────────────────────────────────────────────────

EVENT_ASSIGNED = "assigned"
EVENT_PROCESS_ENDED = "process-ended"
EVENT_PROCESS_CANCELLED = "process-cancelled"
EVENT_SLOT_FILLED = "slot-filled"
EVENT_SLOT_VACATED = "slot-vacated"
EVENT_DRAFT_ADVANCED = "draft-advanced"

EVENT_KINDS = {
    EVENT_ASSIGNED,
    EVENT_PROCESS_ENDED,
    EVENT_PROCESS_CANCELLED,
    EVENT_SLOT_FILLED,
    EVENT_SLOT_VACATED,
    EVENT_DRAFT_ADVANCED,
}


class Event(db.Model):
    """
    Event delivered to a single user.

    One record per recipient per event.
    """

    __tablename__ = "events"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    kind = db.Column(db.String(32), nullable=False)
    payload = db.Column(db.JSON, nullable=False, default=dict)

    is_unread = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "user": self.user_id,
            "kind": self.kind,
            "payload": self.payload,
            "unread": self.is_unread,
            "timestamp": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Event {self.id}: {self.kind} -> user {self.user_id}>"
