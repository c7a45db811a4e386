"""
Shared pytest fixtures for the editflow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - events: In-memory event sink installed for every test (autouse)
    - client: Flask test client (function-scoped)
    - team: Team 1 with an author, a plain member and one role-R reviewer
    - review: Draft -> Review -> Done process of team 1
    - module: Module of team 1
"""

from types import SimpleNamespace

import pytest

from editflow import create_app
from editflow.integrations import DocumentStoreError
from editflow.integrations.db_backends import DbDocumentStore
from editflow.models import db as _db
from editflow.models.module import Module
from editflow.models.team import PERM_EDIT_PROCESS, PERM_MANAGE_PROCESS, TeamMember
from editflow.services import process_service

TEAM = 1
ROLE_R = 7

U1 = 1          # author, may edit and manage processes
U2 = 2          # plain team member
U_REVIEWER = 3  # only holder of role R


class RecordingEventSink:
    """EventSink that keeps ``(kind, user_id, payload)`` tuples in memory."""

    def __init__(self):
        self.events = []

    def emit(self, kind, payload, recipients):
        for user_id in sorted(set(recipients)):
            self.events.append((kind, user_id, payload))

    def kinds(self):
        return [kind for kind, _, _ in self.events]

    def of_kind(self, kind):
        return [(user_id, payload) for k, user_id, payload in self.events if k == kind]

    def clear(self):
        self.events.clear()


class FailingDocumentStore(DbDocumentStore):
    """DocumentStore whose merges always fail."""

    def __init__(self):
        self.calls = 0

    def merge_draft_into_module(self, draft):
        self.calls += 1
        raise DocumentStoreError("storage backend unavailable")


def review_structure(name="Review"):
    """Draft(start) -> Review -> Done with an Author and an autofilled, role-limited Reviewer."""
    return {
        "name": name,
        "start": 0,
        "slots": [
            {"name": "Author", "roles": [], "autofill": False},
            {"name": "Reviewer", "roles": [ROLE_R], "autofill": True},
        ],
        "steps": [
            {
                "name": "Draft",
                "slots": [{"slot": 0, "permission": "edit"}],
                "links": [{"name": "Submit", "to": 1, "slot": 0}],
            },
            {
                "name": "Review",
                "slots": [{"slot": 1, "permission": "accept_changes"}],
                "links": [{"name": "Approve", "to": 2, "slot": 1}],
            },
            {"name": "Done", "slots": [], "links": []},
        ],
    }


def add_member(user_id, team_id=TEAM, role_id=None, permissions=()):
    member = TeamMember(team_id=team_id, user_id=user_id, role_id=role_id,
                        permissions=list(permissions))
    _db.session.add(member)
    _db.session.commit()
    return member


def add_module(team_id=TEAM, title="Cell biology", document_id=100):
    module = Module(team_id=team_id, title=title, document_id=document_id)
    _db.session.add(module)
    _db.session.commit()
    return module


def describe(version):
    """Ids of a version's slots and steps keyed by name."""
    return SimpleNamespace(
        process=version.process,
        version=version,
        slots={slot.name: slot.id for slot in process_service.list_slots(version)},
        steps={step.name: step.id for step in process_service.list_steps(version)},
    )


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture(autouse=True)
def events(app):
    """Route emitted events into memory; restore the default sink afterwards."""
    registry = app.extensions["editflow"]
    default = registry.events
    sink = RecordingEventSink()
    registry.replace(events=sink)
    yield sink
    registry.replace(events=default)


@pytest.fixture()
def failing_documents(app):
    registry = app.extensions["editflow"]
    default = registry.documents
    store = FailingDocumentStore()
    registry.replace(documents=store)
    yield store
    registry.replace(documents=default)


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def team():
    add_member(U1, permissions=[PERM_EDIT_PROCESS, PERM_MANAGE_PROCESS])
    add_member(U2)
    add_member(U_REVIEWER, role_id=ROLE_R)
    return TEAM


@pytest.fixture()
def review(team):
    version = process_service.create_process(TEAM, review_structure())
    return describe(version)


@pytest.fixture()
def module(team):
    return add_module()
