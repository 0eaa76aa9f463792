"""Integration tests for the guardrails service and the draft plan actions."""

import copy
import shutil
from pathlib import Path

import pytest

from dietguard.actions.draft_actions import DraftPlanService
from dietguard.actions.guardrails_service import GuardrailsService, enforce_meal_plan_guardrails
from dietguard.actions.plan_store import STATUS_APPLIED, STATUS_DRAFT, InMemoryPlanStore, PlanLocks, PlanRecord
from dietguard.data_layer.exceptions import GuardrailsErrorCode
from dietguard.data_layer.plan_snapshot import parse_meal_plan
from dietguard.guardrails.targets import PlanEdit
from dietguard.loaders.cache import OverrideCache, SynonymCache
from dietguard.loaders.household_loader import HouseholdRuleLoader
from dietguard.loaders.ruleset_loader import GuardrailsRulesetLoader
from dietguard.loaders.store import JsonRuleStore


SEED_DIR = Path(__file__).resolve().parent.parent / "data" / "rules"


def _make_service(data_dir) -> GuardrailsService:
    store = JsonRuleStore(str(data_dir))
    return GuardrailsService(
        ruleset_loader=GuardrailsRulesetLoader(store),
        override_cache=OverrideCache(store),
        household_loader=HouseholdRuleLoader(store),
        synonym_cache=SynonymCache(store),
    )


def _make_meal(meal_id, slot, ingredients, name=None):
    return {
        "id": meal_id,
        "name": name or f"{slot} meal",
        "slot": slot,
        "date": "2026-01-05",
        "ingredientRefs": [
            {"nevoCode": f"{meal_id}-{i}", "quantityG": 100, "displayName": text}
            for i, text in enumerate(ingredients)
        ],
    }


def _make_snapshot(lunch=("kipfilet", "broccoli")):
    return {
        "planId": "plan-1",
        "dietKey": "keto",
        "days": [{
            "date": "2026-01-05",
            "meals": [
                _make_meal("m-1", "breakfast", ["ei", "spinazie"]),
                _make_meal("m-2", "lunch", list(lunch)),
                _make_meal("m-3", "dinner", ["zalm", "zoete aardappel"]),
            ],
        }],
    }


def _make_record(status=STATUS_APPLIED, draft=None, **overrides) -> PlanRecord:
    record = PlanRecord(
        plan_id="plan-1",
        status=status,
        plan_snapshot=_make_snapshot(),
        draft_snapshot=draft,
        diet_key="keto",
    )
    for key, value in overrides.items():
        setattr(record, key, value)
    return record


def _slot_payload(ingredients=("kalkoen", "courgette"), slot="lunch", **overrides):
    payload = {
        "planId": "plan-1",
        "date": "2026-01-05",
        "mealSlot": slot,
        "meal": {
            "id": "m-new",
            "name": "Kalkoen met courgette",
            "slot": slot,
            "date": "2026-01-05",
            "ingredientRefs": [
                {"nevoCode": f"new-{i}", "quantityG": 150, "displayName": text}
                for i, text in enumerate(ingredients)
            ],
        },
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def data_dir(tmp_path):
    target = tmp_path / "rules"
    shutil.copytree(SEED_DIR, target)
    return target


@pytest.fixture
def plans():
    return InMemoryPlanStore()


@pytest.fixture
def service(data_dir, plans):
    return DraftPlanService(plans, _make_service(data_dir))


class _StaleReadStore(InMemoryPlanStore):
    """Hands out records one version behind, as if another writer got there first."""

    def get(self, plan_id):
        record = super().get(plan_id)
        record.version -= 1
        return record


class TestGuardrailsService:
    """Loading, merging and evaluating in one call."""

    def test_clean_plan_allowed(self, data_dir):
        evaluation = _make_service(data_dir).evaluate_plan(parse_meal_plan(_make_snapshot()), "keto")
        assert evaluation.outcome.outcome == "allowed"
        assert evaluation.outcome.content_hash == evaluation.ruleset.content_hash

    def test_override_applies_to_seed_rules(self, data_dir):
        """Test that 'zoete aardappel' passes the keto aardappel rule."""
        evaluation = _make_service(data_dir).evaluate_plan(parse_meal_plan(_make_snapshot()), "keto")
        assert evaluation.outcome.counts.matches == 1
        assert evaluation.outcome.counts.applied == 0

    def test_cauliflower_rice_passes_seed_grain_rule(self, data_dir):
        plan = parse_meal_plan(_make_snapshot(lunch=["kipfilet", "bloemkoolrijst"]))
        evaluation = _make_service(data_dir).evaluate_plan(plan, "keto")
        assert evaluation.outcome.outcome == "allowed"
        rice = [m for m in evaluation.outcome.matches if m.rule_id == "db:diet_category_constraints:keto-grains:0"]
        assert [m.suppressed for m in rice] == [True]

    def test_forbidden_ingredient_blocks(self, data_dir):
        plan = parse_meal_plan(_make_snapshot(lunch=["kipfilet", "witte rijst"]))
        evaluation = _make_service(data_dir).evaluate_plan(plan, "keto")
        assert evaluation.outcome.is_blocked
        details = evaluation.violation_details()
        assert details["reasonCodes"] == ["FORBIDDEN_INGREDIENT"]
        assert details["rulesetVersion"] == 1
        assert "householdRuleApplied" not in details

    def test_household_canonical_ban(self, data_dir):
        """Test that a household NEVO ban matches by code whatever the ingredient is called."""
        snapshot = _make_snapshot()
        snapshot["days"][0]["meals"][1]["ingredientRefs"][0]["nevoCode"] = "1234"
        evaluation = _make_service(data_dir).evaluate_plan(
            parse_meal_plan(snapshot), "keto", household_id="household-1"
        )
        assert evaluation.outcome.is_blocked
        assert evaluation.outcome.applied_rule_ids == ["household-avoid-household-1-2"]
        assert evaluation.violation_details()["householdRuleApplied"] is True

    def test_household_rules_do_not_change_hash(self, data_dir):
        plan = parse_meal_plan(_make_snapshot())
        service = _make_service(data_dir)
        plain = service.evaluate_plan(plan, "keto")
        household = service.evaluate_plan(plan, "keto", household_id="household-1")
        assert household.outcome.content_hash == plain.outcome.content_hash
        assert household.household_rule_applied is True

    def test_plan_edit(self, data_dir):
        service = _make_service(data_dir)
        blocked = service.evaluate_plan_edit(PlanEdit(avoid_ingredients=["witte rijst"]), "keto")
        assert blocked.outcome.is_blocked
        allowed = service.evaluate_plan_edit(PlanEdit(notes=["meer groente"]), "keto")
        assert allowed.outcome.outcome == "allowed"


class TestEnforceMealPlanGuardrails:
    """Generation-time gate."""

    def test_allowed_plan_passes(self, data_dir):
        plan = parse_meal_plan(_make_snapshot())
        result = enforce_meal_plan_guardrails(_make_service(data_dir), plan, "keto")
        assert result.ok is True
        assert result.plan is plan
        assert result.details["diagnostics"]["outcome"] == "allowed"

    def test_blocked_plan(self, data_dir):
        plan = parse_meal_plan(_make_snapshot(lunch=["pasta"]))
        result = enforce_meal_plan_guardrails(_make_service(data_dir), plan, "keto")
        assert result.ok is False
        assert result.plan is None
        assert result.details["outcome"] == "blocked"
        assert "FORBIDDEN_INGREDIENT" in result.details["reasonCodes"]

    def test_load_failure_is_blocked(self, data_dir):
        (data_dir / "diet_constraints.json").write_text("{broken")
        result = enforce_meal_plan_guardrails(_make_service(data_dir), parse_meal_plan(_make_snapshot()), "keto")
        assert result.ok is False
        assert result.details == {"outcome": "blocked", "reasonCodes": ["EVALUATOR_ERROR"], "contentHash": ""}


class TestPlanLocks:
    """Per-plan locks are released once nobody uses them."""

    def test_lock_is_dropped_after_use(self):
        locks = PlanLocks()
        with locks.for_plan("plan-1"):
            with locks.for_plan("plan-1"):
                assert locks.active_count() == 1
            with locks.for_plan("plan-2"):
                assert locks.active_count() == 2
            assert locks.active_count() == 1
        assert locks.active_count() == 0

    def test_lock_is_dropped_when_the_body_raises(self):
        locks = PlanLocks()
        with pytest.raises(RuntimeError):
            with locks.for_plan("plan-1"):
                raise RuntimeError("boom")
        assert locks.active_count() == 0

    def test_actions_leave_no_locks_behind(self, plans, data_dir):
        locks = PlanLocks()
        service = DraftPlanService(plans, _make_service(data_dir), locks=locks)
        plans.add(_make_record())
        service.start_review("plan-1")
        service.start_review("missing")
        assert locks.active_count() == 0


class TestReviewLifecycle:
    """start_review / apply_draft / cancel_review."""

    def test_start_review(self, service, plans):
        plans.add(_make_record())
        result = service.start_review("plan-1")
        assert result.ok is True
        assert result.data == {"status": "draft"}
        record = plans.get("plan-1")
        assert record.status == STATUS_DRAFT
        assert record.draft_snapshot == record.plan_snapshot
        assert record.draft_created_at is not None
        assert record.version == 2

    def test_start_review_is_idempotent(self, service, plans):
        plans.add(_make_record())
        service.start_review("plan-1")
        assert service.start_review("plan-1").ok is True
        assert plans.get("plan-1").version == 2

    def test_start_review_without_snapshot(self, service, plans):
        plans.add(_make_record(plan_snapshot=None))
        result = service.start_review("plan-1")
        assert result.error.code is GuardrailsErrorCode.MEAL_PLAN_INVALID_STATE

    def test_unknown_plan(self, service):
        result = service.start_review("missing")
        assert result.ok is False
        assert result.error.code is GuardrailsErrorCode.NOT_FOUND

    def test_apply_clean_draft(self, service, plans):
        draft = _make_snapshot(lunch=["kalkoen", "courgette"])
        plans.add(_make_record(status=STATUS_DRAFT, draft=draft))
        result = service.apply_draft("plan-1")
        assert result.ok is True
        assert result.data == {"status": "applied"}
        record = plans.get("plan-1")
        assert record.status == STATUS_APPLIED
        assert record.plan_snapshot == draft
        assert record.draft_snapshot is None
        assert record.applied_at is not None
        assert record.guardrails_diagnostics["outcome"] == "allowed"

    def test_apply_blocked_draft_persists_nothing(self, service, plans):
        """Test that a blocked draft is rejected and the stored plan is untouched."""
        draft = _make_snapshot(lunch=["kipfilet", "witte rijst"])
        plans.add(_make_record(status=STATUS_DRAFT, draft=draft))
        before = plans.get("plan-1")
        result = service.apply_draft("plan-1")
        assert result.ok is False
        assert result.error.code is GuardrailsErrorCode.GUARDRAILS_VIOLATION
        assert result.error.details["reasonCodes"] == ["FORBIDDEN_INGREDIENT"]
        assert result.to_dict()["error"]["code"] == "GUARDRAILS_VIOLATION"
        assert plans.get("plan-1") == before

    def test_apply_fails_closed_on_load_error(self, service, plans, data_dir):
        (data_dir / "adaptation_rules.json").write_text("not json")
        plans.add(_make_record(status=STATUS_DRAFT, draft=_make_snapshot()))
        result = service.apply_draft("plan-1")
        assert result.ok is False
        assert result.error.code is GuardrailsErrorCode.DB_ERROR
        assert result.error.message == "Failed to load or evaluate diet rules"
        assert plans.get("plan-1").status == STATUS_DRAFT

    def test_household_warning_is_reported(self, service, plans):
        """Test that a soft household match applies the draft with a warning."""
        draft = _make_snapshot(lunch=["kipfilet", "verse koriander"])
        plans.add(_make_record(status=STATUS_DRAFT, draft=draft, household_id="household-1"))
        result = service.apply_draft("plan-1")
        assert result.ok is True
        assert result.data["warning"] == {
            "warned": True,
            "householdRuleApplied": True,
            "reasonCodes": ["FORBIDDEN_INGREDIENT"],
        }
        assert plans.get("plan-1").guardrails_diagnostics["outcome"] == "warned"

    def test_soft_warning_without_household_has_no_warning_entry(self, service, plans):
        draft = _make_snapshot(lunch=["kwark", "honing"])
        plans.add(_make_record(status=STATUS_DRAFT, draft=draft))
        result = service.apply_draft("plan-1")
        assert result.ok is True
        assert "warning" not in result.data

    def test_household_block(self, service, plans):
        draft = _make_snapshot(lunch=["saté", "pindasaus"])
        plans.add(_make_record(status=STATUS_DRAFT, draft=draft, household_id="household-1"))
        result = service.apply_draft("plan-1")
        assert result.error.code is GuardrailsErrorCode.GUARDRAILS_VIOLATION
        assert result.error.details["householdRuleApplied"] is True

    @pytest.mark.parametrize("overrides", [
        {"status": STATUS_APPLIED},
        {"draft_snapshot": None},
        {"diet_key": None},
        {"draft_snapshot": {"planId": "plan-1"}},
    ])
    def test_apply_invalid_state(self, service, plans, overrides):
        record = _make_record(status=STATUS_DRAFT, draft=_make_snapshot())
        for key, value in overrides.items():
            setattr(record, key, value)
        plans.add(record)
        result = service.apply_draft("plan-1")
        assert result.error.code is GuardrailsErrorCode.MEAL_PLAN_INVALID_STATE

    def test_cancel_review(self, service, plans):
        plans.add(_make_record(status=STATUS_DRAFT, draft=_make_snapshot(lunch=["pasta"])))
        result = service.cancel_review("plan-1")
        assert result.data == {"status": "applied"}
        record = plans.get("plan-1")
        assert record.status == STATUS_APPLIED
        assert record.draft_snapshot is None
        assert record.plan_snapshot == _make_snapshot()

    def test_cancel_without_draft(self, service, plans):
        plans.add(_make_record())
        assert service.cancel_review("plan-1").error.code is GuardrailsErrorCode.MEAL_PLAN_INVALID_STATE

    def test_concurrent_write_is_a_conflict(self, data_dir):
        plans = _StaleReadStore()
        plans.add(_make_record())
        result = DraftPlanService(plans, _make_service(data_dir)).start_review("plan-1")
        assert result.ok is False
        assert result.error.code is GuardrailsErrorCode.CONFLICT
        assert result.error.details["actual_version"] == 1


class TestUpdateDraftSlot:
    """Per-slot draft edits."""

    def test_update_slot(self, service, plans):
        plans.add(_make_record(status=STATUS_DRAFT, draft=_make_snapshot()))
        result = service.update_draft_slot(_slot_payload())
        assert result.ok is True
        assert result.data == {"status": "draft"}
        record = plans.get("plan-1")
        lunch = record.draft_snapshot["days"][0]["meals"][1]
        assert lunch["name"] == "Kalkoen met courgette"
        assert lunch["ingredientRefs"][0]["displayName"] == "kalkoen"
        assert record.plan_snapshot == _make_snapshot()
        assert record.version == 2

    def test_blocked_slot_is_not_saved(self, service, plans):
        draft = _make_snapshot()
        plans.add(_make_record(status=STATUS_DRAFT, draft=copy.deepcopy(draft)))
        result = service.update_draft_slot(_slot_payload(ingredients=["spaghetti"]))
        assert result.error.code is GuardrailsErrorCode.GUARDRAILS_VIOLATION
        assert plans.get("plan-1").draft_snapshot == draft

    def test_invalid_payload(self, service, plans):
        plans.add(_make_record(status=STATUS_DRAFT, draft=_make_snapshot()))
        payload = _slot_payload()
        payload["meal"]["ingredientRefs"][0]["quantityG"] = 0
        result = service.update_draft_slot(payload)
        assert result.error.code is GuardrailsErrorCode.VALIDATION_ERROR
        assert result.error.details["errors"]
        assert plans.get("plan-1").version == 1

    def test_payload_requires_ingredients(self, service):
        payload = _slot_payload()
        payload["meal"]["ingredientRefs"] = []
        assert service.update_draft_slot(payload).error.code is GuardrailsErrorCode.VALIDATION_ERROR

    def test_bad_date_format(self, service):
        result = service.update_draft_slot(_slot_payload(date="05-01-2026"))
        assert result.error.code is GuardrailsErrorCode.VALIDATION_ERROR

    def test_missing_slot_in_draft(self, service, plans):
        plans.add(_make_record(status=STATUS_DRAFT, draft=_make_snapshot()))
        result = service.update_draft_slot(_slot_payload(slot="snack"))
        assert result.error.code is GuardrailsErrorCode.MEAL_PLAN_INVALID_STATE
        assert result.error.message == "No snack meal on 2026-01-05"

    def test_requires_draft_status(self, service, plans):
        plans.add(_make_record())
        result = service.update_draft_slot(_slot_payload())
        assert result.error.code is GuardrailsErrorCode.MEAL_PLAN_INVALID_STATE

    def test_household_rules_apply_to_slot_updates(self, service, plans):
        plans.add(_make_record(status=STATUS_DRAFT, draft=_make_snapshot(), household_id="household-1"))
        result = service.update_draft_slot(_slot_payload(ingredients=["pindakaas"]))
        assert result.error.code is GuardrailsErrorCode.GUARDRAILS_VIOLATION
