"""Interfaces of the external systems the editing engine consumes."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Protocol

if TYPE_CHECKING:
    from editflow.models.draft import Draft
    from editflow.models.module import Module


class DocumentStoreError(Exception):
    """Raised by a DocumentStore when a copy or merge could not be completed."""


class DocumentStore(Protocol):
    def begin_draft(self, module: "Module") -> int:
        """Copy the module's current document and return the copy's id.

        The draft edits the copy; the module keeps its document until the
        draft is merged. Raises DocumentStoreError on failure.
        """

    def merge_draft_into_module(self, draft: "Draft") -> None:
        """Make the draft's document the module's current document.

        All or nothing. Raises DocumentStoreError on failure.
        """


class UserDirectory(Protocol):
    def roles_of(self, user_id: int, team_id: int) -> set[int]:
        """Role ids ``user_id`` holds in ``team_id``."""

    def members_of(self, team_id: int) -> set[int]:
        """Ids of every member of ``team_id``."""

    def teams_of(self, user_id: int) -> set[int]:
        """Ids of every team ``user_id`` belongs to."""


class EventSink(Protocol):
    def emit(self, kind: str, payload: dict, recipients: Iterable[int]) -> None:
        """Deliver one event to each recipient."""


class TeamAuthority(Protocol):
    def has_permission(self, user_id: int, team_id: int, permission: str) -> bool:
        """Whether ``user_id`` holds team permission ``permission`` in ``team_id``."""
