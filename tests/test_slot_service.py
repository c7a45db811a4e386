"""
Tests — slot assignment.

Covers:
    1. assign / unassign with role limits and replacement events
    2. claim_slot: membership and free-seat checks
    3. autofill selection and its tie-break
    4. free slot listing and process status
"""

import pytest

from conftest import ROLE_R, TEAM, U1, U2, U_REVIEWER, add_member, add_module, describe, review_structure
from editflow.core.exceptions import ConflictError, NotFoundError, PermissionDeniedError
from editflow.models import db
from editflow.models.draft import Draft, DraftSlot
from editflow.services import draft_service, process_service, slot_service
from editflow.services.events import EventBatch


def _begin(review, module, slots=None):
    if slots is None:
        slots = {review.slots["Author"]: U1}
    return draft_service.begin_process(module.id, review.process.id, slots)


def _occupant(module_id, slot_id):
    seat = db.session.get(DraftSlot, (module_id, slot_id))
    return seat.user_id if seat else None


# ═══════════════════════════════════════════════════════════════════════════
#  assign / unassign
# ═══════════════════════════════════════════════════════════════════════════


class TestAssign:

    def test_initial_assignment_emits_slot_filled(self, review, module, events):
        _begin(review, module)
        document_id = db.session.get(Draft, module.id).document_id
        assert events.of_kind("slot-filled") == [
            (U1, {"slot": review.slots["Author"], "module": module.id, "document": document_id}),
        ]

    def test_replacing_occupant_vacates_then_fills(self, review, module, events):
        _begin(review, module)
        events.clear()

        slot_service.assign(module.id, review.slots["Author"], U2)

        assert _occupant(module.id, review.slots["Author"]) == U2
        assert [(k, u) for k, u, _ in events.events] == [("slot-vacated", U1), ("slot-filled", U2)]

    def test_reassigning_current_occupant_is_a_no_op(self, review, module, events):
        _begin(review, module)
        events.clear()
        slot_service.assign(module.id, review.slots["Author"], U1)
        assert events.events == []

    def test_role_limited_slot_rejects_user_without_role(self, review, module, events):
        _begin(review, module)
        events.clear()
        with pytest.raises(PermissionDeniedError) as exc_info:
            slot_service.assign(module.id, review.slots["Reviewer"], U2)
        assert exc_info.value.kind == "badRole"
        assert _occupant(module.id, review.slots["Reviewer"]) is None
        assert events.events == []

    def test_role_limited_slot_accepts_user_with_role(self, review, module):
        _begin(review, module)
        slot_service.assign(module.id, review.slots["Reviewer"], U_REVIEWER)
        assert _occupant(module.id, review.slots["Reviewer"]) == U_REVIEWER

    def test_slot_from_other_version_is_not_found(self, review, module):
        _begin(review, module)
        other = describe(process_service.create_process(TEAM, review_structure("Other")))
        with pytest.raises(NotFoundError):
            slot_service.assign(module.id, other.slots["Author"], U1)

    def test_assign_to_missing_draft(self, review):
        with pytest.raises(NotFoundError):
            slot_service.assign("no-such-module", review.slots["Author"], U1)

    def test_unassign_emits_slot_vacated(self, review, module, events):
        _begin(review, module)
        events.clear()
        former = slot_service.unassign(module.id, review.slots["Author"])
        assert former == U1
        assert _occupant(module.id, review.slots["Author"]) is None
        assert events.kinds() == ["slot-vacated"]

    def test_unassign_empty_slot(self, review, module, events):
        _begin(review, module)
        events.clear()
        assert slot_service.unassign(module.id, review.slots["Reviewer"]) is None
        assert events.events == []


# ═══════════════════════════════════════════════════════════════════════════
#  claim_slot
# ═══════════════════════════════════════════════════════════════════════════


class TestClaimSlot:

    def test_member_takes_free_slot(self, review, module, events):
        _begin(review, module, slots={})
        slot_service.claim_slot(module.id, review.slots["Author"], U2)
        assert _occupant(module.id, review.slots["Author"]) == U2
        assert [u for u, _ in events.of_kind("slot-filled")] == [U2]

    def test_holder_claiming_own_slot_is_a_no_op(self, review, module, events):
        _begin(review, module)
        events.clear()
        slot_service.claim_slot(module.id, review.slots["Author"], U1)
        assert _occupant(module.id, review.slots["Author"]) == U1
        assert events.events == []

    def test_outsider_is_refused(self, review, module, events):
        _begin(review, module, slots={})
        with pytest.raises(PermissionDeniedError) as exc_info:
            slot_service.claim_slot(module.id, review.slots["Author"], 99)
        assert exc_info.value.kind == "forbidden"
        assert exc_info.value.code == "user:insufficient-permissions"
        assert _occupant(module.id, review.slots["Author"]) is None
        assert events.events == []

    def test_occupied_slot_is_refused(self, review, module, events):
        _begin(review, module)
        events.clear()
        with pytest.raises(ConflictError) as exc_info:
            slot_service.claim_slot(module.id, review.slots["Author"], U2)
        assert exc_info.value.code == "draft:slot:occupied"
        assert _occupant(module.id, review.slots["Author"]) == U1
        assert events.events == []

    def test_role_limit_still_applies(self, review, module):
        _begin(review, module)
        with pytest.raises(PermissionDeniedError) as exc_info:
            slot_service.claim_slot(module.id, review.slots["Reviewer"], U2)
        assert exc_info.value.kind == "badRole"


# ═══════════════════════════════════════════════════════════════════════════
#  autofill
# ═══════════════════════════════════════════════════════════════════════════


def _autofill_structure():
    """Single-step process whose only slot is autofilled from role R."""
    return {
        "name": "Quick check",
        "start": 0,
        "slots": [{"name": "Checker", "roles": [ROLE_R], "autofill": True}],
        "steps": [
            {"name": "Check", "slots": [{"slot": 0, "permission": "view"}],
             "links": [{"name": "Done", "to": 1, "slot": 0}]},
            {"name": "Done"},
        ],
    }


class TestAutofill:

    def test_autofill_at_start_step(self, team, module, events):
        quick = describe(process_service.create_process(TEAM, _autofill_structure()))
        draft_service.begin_process(module.id, quick.process.id, {})
        assert _occupant(module.id, quick.slots["Checker"]) == U_REVIEWER
        assert events.of_kind("slot-filled")[0][0] == U_REVIEWER

    def test_no_eligible_user_leaves_slot_empty(self, events):
        add_member(U1)
        module = add_module()
        quick = describe(process_service.create_process(TEAM, _autofill_structure()))
        draft_service.begin_process(module.id, quick.process.id, {})
        assert _occupant(module.id, quick.slots["Checker"]) is None
        assert events.events == []

    def test_tie_break_prefers_least_loaded_then_lowest_id(self, team, events):
        # U_REVIEWER (3) and 5 both hold role R; 3 has the lower id
        add_member(5, role_id=ROLE_R)
        quick = describe(process_service.create_process(TEAM, _autofill_structure()))

        first = add_module(title="First")
        draft_service.begin_process(first.id, quick.process.id, {})
        assert _occupant(first.id, quick.slots["Checker"]) == U_REVIEWER

        # user 3 now sits in one live draft, user 5 in none
        second = add_module(title="Second")
        draft_service.begin_process(second.id, quick.process.id, {})
        assert _occupant(second.id, quick.slots["Checker"]) == 5

        # both loaded equally again, lowest id wins
        third = add_module(title="Third")
        draft_service.begin_process(third.id, quick.process.id, {})
        assert _occupant(third.id, quick.slots["Checker"]) == U_REVIEWER

    def test_autofill_skips_occupied_and_non_autofill_slots(self, review, module):
        draft = _begin(review, module)
        draft = db.session.get(Draft, draft.module_id)
        batch = EventBatch()
        slots = process_service.list_slots(review.version)
        filled = slot_service.autofill(draft, slots, batch)
        # Author is taken and not autofill; Reviewer gets the only role-R member
        assert filled == [(review.slots["Reviewer"], U_REVIEWER)]
        assert batch.kinds() == ["slot-filled"]
        db.session.rollback()

    def test_autofill_can_be_disabled(self, app, team, module):
        quick = describe(process_service.create_process(TEAM, _autofill_structure()))
        app.config["AUTOFILL_ENABLED"] = False
        try:
            draft_service.begin_process(module.id, quick.process.id, {})
        finally:
            app.config["AUTOFILL_ENABLED"] = True
        assert _occupant(module.id, quick.slots["Checker"]) is None


# ═══════════════════════════════════════════════════════════════════════════
#  Free slots & status
# ═══════════════════════════════════════════════════════════════════════════


class TestFreeSlotsAndStatus:

    def test_free_slots_only_at_current_step(self, review, module):
        _begin(review, module, {})
        free = slot_service.list_free_slots(U2)
        assert [(d.module_id, s.name) for d, s in free] == [(module.id, "Author")]

    def test_occupied_slot_is_not_free(self, review, module):
        _begin(review, module)
        assert slot_service.list_free_slots(U2) == []

    def test_role_limit_applies_to_free_slots(self, review, module):
        _begin(review, module)
        # move the draft to Review, then empty the autofilled Reviewer slot
        draft_service.advance(module.id, U1, review.slots["Author"], review.steps["Review"])
        slot_service.unassign(module.id, review.slots["Reviewer"])

        assert slot_service.list_free_slots(U2) == []
        assert [s.name for _, s in slot_service.list_free_slots(U_REVIEWER)] == ["Reviewer"]

    def test_non_member_sees_no_free_slots(self, review, module):
        _begin(review, module, {})
        assert slot_service.list_free_slots(99) == []

    def test_process_status(self, review, module):
        draft = _begin(review, module)
        status = slot_service.process_status(db.session.get(Draft, draft.module_id))
        assert [(s["slot"]["name"], s["user"], s["permissions"]) for s in status] == [
            ("Author", U1, ["edit"]),
            ("Reviewer", None, []),
        ]
