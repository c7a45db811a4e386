"""
Editing Process Engine
Module model.

A module is the canonical, published version of a document. Its content is
owned by the document store; ``modules`` only tracks which document revision
is current, and ``documents`` records the revisions the default store hands
out to drafts. Drafts reference modules by id.
"""

import uuid
from datetime import datetime, timezone

from editflow.models import db


class Module(db.Model):
    """Published document. ``document_id`` points at the current revision."""

    __tablename__ = "modules"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    team_id = db.Column(db.Integer, nullable=False, index=True)
    title = db.Column(db.String(300), nullable=False, default="")
    document_id = db.Column(db.Integer, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "team": self.team_id,
            "title": self.title,
            "document": self.document_id,
        }

    def __repr__(self):
        return f"<Module {self.id}: {self.title[:40]}>"


class Document(db.Model):
    """Document revision. A draft edits a copy of its module's current revision."""

    __tablename__ = "documents"

    id = db.Column(db.Integer, primary_key=True)
    source_id = db.Column(db.Integer, nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "source": self.source_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Document {self.id} from {self.source_id}>"
