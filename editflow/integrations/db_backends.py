"""
Database-backed collaborator implementations.

These are the defaults installed by ``create_app``. They read and write the
engine's own tables (``modules``, ``documents``, ``team_members``, ``events``) through the
shared Flask-SQLAlchemy session.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError

from editflow.integrations.protocols import DocumentStoreError
from editflow.models import db
from editflow.models.event import EVENT_KINDS, Event
from editflow.models.module import Document, Module
from editflow.models.team import TeamMember

logger = logging.getLogger(__name__)


class DbDocumentStore:
    """Document revisions in ``documents``, written inside the caller's transaction."""

    def begin_draft(self, module) -> int:
        copy = Document(source_id=module.document_id)
        db.session.add(copy)
        db.session.flush()
        logger.debug("Copied document %s to %s", module.document_id, copy.id,
                     extra={"draft_id": module.id})
        return copy.id

    def merge_draft_into_module(self, draft) -> None:
        module = db.session.get(Module, draft.module_id)
        if module is None:
            raise DocumentStoreError(f"Module {draft.module_id} no longer exists")
        module.document_id = draft.document_id
        module.updated_at = datetime.now(timezone.utc)
        logger.info("Merged draft document %s into module", draft.document_id,
                    extra={"draft_id": draft.module_id})


class DbUserDirectory:
    """User directory over ``team_members``."""

    def roles_of(self, user_id: int, team_id: int) -> set[int]:
        member = db.session.get(TeamMember, (team_id, user_id))
        if member is None or member.role_id is None:
            return set()
        return {member.role_id}

    def members_of(self, team_id: int) -> set[int]:
        rows = db.session.execute(
            db.select(TeamMember.user_id).where(TeamMember.team_id == team_id)
        ).scalars()
        return set(rows)

    def teams_of(self, user_id: int) -> set[int]:
        rows = db.session.execute(
            db.select(TeamMember.team_id).where(TeamMember.user_id == user_id)
        ).scalars()
        return set(rows)


class DbTeamAuthority:
    """Team permission checks over ``team_members.permissions``."""

    def has_permission(self, user_id: int, team_id: int, permission: str) -> bool:
        member = db.session.get(TeamMember, (team_id, user_id))
        return member is not None and member.has_permission(permission)


class DbEventSink:
    """Persists one Event row per recipient and commits them."""

    def emit(self, kind: str, payload: dict, recipients: Iterable[int]) -> None:
        if kind not in EVENT_KINDS:
            raise ValueError(f"Unknown event kind {kind!r}")
        events = [Event(user_id=user_id, kind=kind, payload=payload)
                  for user_id in sorted(set(recipients))]
        if not events:
            return
        db.session.add_all(events)
        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise
        logger.debug("Stored %d %s events", len(events), kind, extra={"event_type": kind})
