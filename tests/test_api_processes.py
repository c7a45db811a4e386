"""
Tests — editing process API.

Covers:
    - Process create / read / rename / delete
    - Versions and structures
    - Slot assignment and free slot listing
    - Error bodies for 400 / 401 / 403 / 404 / 409
    - Health checks
"""

import pytest

from conftest import TEAM, U1, U2, U_REVIEWER, describe, review_structure
from editflow.services import draft_service, process_service

BASE = "/api/v1/processes"


def _as(user_id):
    return {"X-User-Id": str(user_id)}


def _create(client, name="Review", user_id=U1):
    res = client.post(BASE, json={"team": TEAM, **review_structure(name)}, headers=_as(user_id))
    assert res.status_code == 201, res.get_json()
    return res.get_json()


# ═════════════════════════════════════════════════════════════════════════════
# PROCESS TESTS
# ═════════════════════════════════════════════════════════════════════════════

class TestProcessCRUD:
    def test_create_process(self, client, team):
        data = _create(client)
        assert data["name"] == "Review"
        assert data["team"] == TEAM
        assert data["version"]["process"] == data["id"]
        assert data["version"]["start"] is not None

    def test_create_requires_user(self, client, team):
        res = client.post(BASE, json={"team": TEAM, **review_structure()})
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHENTICATED"

    def test_create_requires_edit_permission(self, client, team):
        res = client.post(BASE, json={"team": TEAM, **review_structure()}, headers=_as(U2))
        assert res.status_code == 403
        assert res.get_json()["code"] == "user:insufficient-permissions"

    def test_create_requires_team(self, client, team):
        res = client.post(BASE, json=review_structure(), headers=_as(U1))
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_create_invalid_structure(self, client, team):
        raw = review_structure()
        raw["steps"][1]["links"].append({"name": "Loop", "to": 1, "slot": 1})
        res = client.post(BASE, json={"team": TEAM, **raw}, headers=_as(U1))
        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "edit-process:new:invalid-description"
        assert body["details"]["kind"] == "selfLoop"

    def test_create_duplicate_name(self, client, team):
        _create(client)
        res = client.post(BASE, json={"team": TEAM, **review_structure()}, headers=_as(U1))
        assert res.status_code == 409
        assert res.get_json()["code"] == "edit-process:new:exists"

    def test_list_processes_of_my_teams(self, client, team):
        _create(client)
        res = client.get(BASE, headers=_as(U2))
        assert [p["name"] for p in res.get_json()] == ["Review"]
        assert client.get(BASE, headers=_as(99)).get_json() == []

    def test_get_process_with_versions(self, client, team):
        proc = _create(client)
        res = client.get(f"{BASE}/{proc['id']}", headers=_as(U2))
        assert res.status_code == 200
        assert [v["id"] for v in res.get_json()["versions"]] == [proc["version"]["id"]]

    def test_get_process_of_other_team(self, client, team):
        proc = _create(client)
        res = client.get(f"{BASE}/{proc['id']}", headers=_as(99))
        assert res.status_code == 403

    def test_get_missing_process(self, client, team):
        res = client.get(f"{BASE}/999", headers=_as(U1))
        assert res.status_code == 404
        assert res.get_json()["details"]["resource"] == "Process"

    def test_rename(self, client, team):
        proc = _create(client)
        res = client.put(f"{BASE}/{proc['id']}", json={"name": "Copy edit"}, headers=_as(U1))
        assert res.status_code == 200
        assert res.get_json()["name"] == "Copy edit"

    def test_rename_requires_name(self, client, team):
        proc = _create(client)
        res = client.put(f"{BASE}/{proc['id']}", json={}, headers=_as(U1))
        assert res.status_code == 400

    def test_delete_unused(self, client, team):
        proc = _create(client)
        res = client.delete(f"{BASE}/{proc['id']}", headers=_as(U1))
        assert res.status_code == 204
        assert client.get(f"{BASE}/{proc['id']}", headers=_as(U1)).status_code == 404

    def test_delete_used_process(self, client, team, module):
        proc = _create(client)
        draft_service.begin_process(module.id, proc["id"], {})
        res = client.delete(f"{BASE}/{proc['id']}", headers=_as(U1))
        assert res.status_code == 409
        assert res.get_json()["code"] == "edit-process:in-use"


# ═════════════════════════════════════════════════════════════════════════════
# VERSION TESTS
# ═════════════════════════════════════════════════════════════════════════════

class TestVersions:
    def test_structure_of_latest_version(self, client, team):
        proc = _create(client)
        res = client.get(f"{BASE}/{proc['id']}/structure", headers=_as(U2))
        assert res.status_code == 200
        tree = res.get_json()
        assert [s["name"] for s in tree["steps"]] == ["Draft", "Review", "Done"]
        assert tree["steps"][tree["start"]]["name"] == "Draft"

    def test_new_version(self, client, team):
        proc = _create(client)
        raw = review_structure()
        raw["steps"][0]["links"].append({"name": "Publish", "to": 2, "slot": 0})
        res = client.post(f"{BASE}/{proc['id']}/versions", json=raw, headers=_as(U1))
        assert res.status_code == 201
        new_id = res.get_json()["id"]

        versions = client.get(f"{BASE}/{proc['id']}/versions", headers=_as(U1)).get_json()
        assert [v["id"] for v in versions] == [new_id, proc["version"]["id"]]

        old = client.get(f"{BASE}/{proc['id']}/versions/{proc['version']['id']}/structure", headers=_as(U1))
        assert len(old.get_json()["steps"][0]["links"]) == 1

    def test_new_version_without_body(self, client, team):
        proc = _create(client)
        res = client.post(f"{BASE}/{proc['id']}/versions", headers=_as(U1))
        assert res.status_code == 400
        assert res.get_json()["details"]["kind"] == "malformed"

    def test_get_step(self, client, review):
        base = f"{BASE}/{review.process.id}/versions/{review.version.id}/steps"
        res = client.get(f"{base}/{review.steps['Review']}", headers=_as(U2))
        assert res.status_code == 200
        body = res.get_json()
        assert body["name"] == "Review"
        assert body["final"] is False
        assert body["slots"] == [{"slot": review.slots["Reviewer"], "permissions": ["accept_changes"]}]
        assert body["links"] == [{"name": "Approve", "to": review.steps["Done"], "slot": review.slots["Reviewer"]}]

        done = client.get(f"{base}/{review.steps['Done']}", headers=_as(U2)).get_json()
        assert done["final"] is True

    def test_step_of_other_version(self, client, review):
        other = describe(process_service.create_process(TEAM, review_structure("Other")))
        res = client.get(f"{BASE}/{review.process.id}/versions/{review.version.id}/steps/{other.steps['Draft']}",
                         headers=_as(U1))
        assert res.status_code == 404

    def test_version_of_other_process(self, client, team):
        first = _create(client)
        second = _create(client, name="Other")
        res = client.get(f"{BASE}/{first['id']}/versions/{second['version']['id']}", headers=_as(U1))
        assert res.status_code == 404

    def test_delete_version(self, client, team):
        proc = _create(client)
        res = client.post(f"{BASE}/{proc['id']}/versions", json=review_structure(), headers=_as(U1))
        new_id = res.get_json()["id"]
        assert client.delete(f"{BASE}/{proc['id']}/versions/{new_id}", headers=_as(U1)).status_code == 204
        assert client.get(f"{BASE}/{proc['id']}/versions/{new_id}", headers=_as(U1)).status_code == 404


# ═════════════════════════════════════════════════════════════════════════════
# SLOT TESTS
# ═════════════════════════════════════════════════════════════════════════════

class TestSlots:
    @pytest.fixture()
    def draft(self, review, module):
        draft_service.begin_process(module.id, review.process.id, {})
        return module.id

    def test_free_slots(self, client, review, draft):
        res = client.get(f"{BASE}/slots/free", headers=_as(U2))
        assert res.status_code == 200
        data = res.get_json()
        assert [s["name"] for s in data] == ["Author"]
        assert data[0]["draft"]["module"] == draft

    def test_take_slot(self, client, review, draft):
        res = client.post(f"{BASE}/slots", json={"draft": draft, "slot": review.slots["Author"]},
                          headers=_as(U2))
        assert res.status_code == 204
        assert client.get(f"{BASE}/slots/free", headers=_as(U2)).get_json() == []

    def test_assign_someone_else_requires_manage(self, client, review, draft):
        res = client.post(f"{BASE}/slots", json={"draft": draft, "slot": review.slots["Author"], "user": U1},
                          headers=_as(U2))
        assert res.status_code == 403

    def test_manager_assigns_someone_else(self, client, review, draft):
        res = client.post(f"{BASE}/slots", json={"draft": draft, "slot": review.slots["Author"], "user": U2},
                          headers=_as(U1))
        assert res.status_code == 204

    def test_bad_role(self, client, review, draft):
        res = client.post(f"{BASE}/slots", json={"draft": draft, "slot": review.slots["Reviewer"]},
                          headers=_as(U2))
        assert res.status_code == 400
        assert res.get_json()["code"] == "draft:process:bad-role"

    def test_reviewer_may_take_reviewer_slot(self, client, review, draft):
        res = client.post(f"{BASE}/slots", json={"draft": draft, "slot": review.slots["Reviewer"]},
                          headers=_as(U_REVIEWER))
        assert res.status_code == 204

    def test_outsider_cannot_take_free_slot(self, client, review, draft):
        res = client.post(f"{BASE}/slots", json={"draft": draft, "slot": review.slots["Author"]},
                          headers=_as(99))
        assert res.status_code == 403
        assert res.get_json()["code"] == "user:insufficient-permissions"
        assert client.get(f"{BASE}/slots/free", headers=_as(U2)).get_json()[0]["name"] == "Author"

    def test_outsider_cannot_evict_occupant(self, client, review, module):
        draft_service.begin_process(module.id, review.process.id, {review.slots["Author"]: U1})
        res = client.post(f"{BASE}/slots", json={"draft": module.id, "slot": review.slots["Author"]},
                          headers=_as(99))
        assert res.status_code == 403
        res = client.post(f"/api/v1/drafts/{module.id}/advance",
                          json={"target": review.steps["Review"], "slot": review.slots["Author"]},
                          headers=_as(99))
        assert res.status_code == 403
        assert res.get_json()["code"] == "draft:advance:bad-user"

    def test_member_cannot_take_occupied_slot(self, client, review, draft, events):
        client.post(f"{BASE}/slots", json={"draft": draft, "slot": review.slots["Author"]},
                    headers=_as(U_REVIEWER))
        events.clear()
        res = client.post(f"{BASE}/slots", json={"draft": draft, "slot": review.slots["Author"]},
                          headers=_as(U2))
        assert res.status_code == 409
        assert res.get_json()["code"] == "draft:slot:occupied"
        assert events.events == []
        status = client.get(f"/api/v1/drafts/{draft}/process", headers=_as(U1)).get_json()
        assert status["slots"][0]["user"] == U_REVIEWER

    def test_manager_replaces_occupant(self, client, review, draft):
        client.post(f"{BASE}/slots", json={"draft": draft, "slot": review.slots["Author"]},
                    headers=_as(U2))
        res = client.post(f"{BASE}/slots", json={"draft": draft, "slot": review.slots["Author"]},
                          headers=_as(U1))
        assert res.status_code == 204
        status = client.get(f"/api/v1/drafts/{draft}/process", headers=_as(U1)).get_json()
        assert status["slots"][0]["user"] == U1

    def test_missing_fields(self, client, review, draft):
        res = client.post(f"{BASE}/slots", json={"slot": review.slots["Author"]}, headers=_as(U2))
        assert res.status_code == 400


# ═════════════════════════════════════════════════════════════════════════════
# HEALTH & ERROR HANDLING
# ═════════════════════════════════════════════════════════════════════════════

class TestHealth:
    def test_ready(self, client):
        res = client.get("/api/v1/health/ready")
        assert res.status_code == 200
        assert res.get_json() == {"status": "ok"}

    def test_live(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        assert res.get_json()["checks"]["database"]["status"] == "ok"

    def test_unknown_route(self, client):
        res = client.get("/api/v1/nowhere")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_timing_headers(self, client, team):
        res = client.get(BASE, headers=_as(U1))
        assert "X-Request-Duration-Ms" in res.headers
        assert res.headers.get("X-Request-ID")
