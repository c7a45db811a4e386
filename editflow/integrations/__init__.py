"""editflow.integrations — collaborators the editing engine depends on.

The engine never talks to document storage, the user directory, event
delivery or team permissions directly. It goes through the four protocols in
``editflow.integrations.protocols``; the database-backed defaults live in
``editflow.integrations.db_backends``.

Collaborators are resolved per application from ``app.extensions["editflow"]``
so tests and deployments can swap any of them:

    from editflow.integrations import collaborators
    collaborators().events.emit("slot-filled", {...}, {user_id})

    app.extensions["editflow"].replace(events=RecordingEventSink())
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace as _replace

from flask import current_app

from editflow.integrations.db_backends import (
    DbDocumentStore,
    DbEventSink,
    DbTeamAuthority,
    DbUserDirectory,
)
from editflow.integrations.protocols import (
    DocumentStore,
    DocumentStoreError,
    EventSink,
    TeamAuthority,
    UserDirectory,
)

logger = logging.getLogger(__name__)

__all__ = [
    "Collaborators",
    "DocumentStore",
    "DocumentStoreError",
    "EventSink",
    "TeamAuthority",
    "UserDirectory",
    "collaborators",
    "init_collaborators",
]


@dataclass
class Collaborators:
    documents: DocumentStore
    users: UserDirectory
    events: EventSink
    teams: TeamAuthority

    def replace(self, **changes) -> "Collaborators":
        """Swap one or more collaborators in place and return self."""
        updated = _replace(self, **changes)
        self.__dict__.update(updated.__dict__)
        return self


def init_collaborators(app) -> Collaborators:
    """Register the database-backed collaborators on ``app``."""
    registry = Collaborators(
        documents=DbDocumentStore(),
        users=DbUserDirectory(),
        events=DbEventSink(),
        teams=DbTeamAuthority(),
    )
    app.extensions["editflow"] = registry
    logger.debug("Registered default editing collaborators")
    return registry


def collaborators() -> Collaborators:
    """Collaborators of the current application."""
    return current_app.extensions["editflow"]
