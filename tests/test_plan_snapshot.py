"""Unit tests for meal-plan snapshot parsing and slot replacement."""

import json
from pathlib import Path

import pytest

from dietguard.data_layer.exceptions import GuardrailsErrorCode, SnapshotStructureError
from dietguard.data_layer.models import Meal
from dietguard.data_layer.plan_snapshot import (
    find_meal,
    meal_plan_to_dict,
    parse_meal,
    parse_meal_plan,
    replace_meal,
)


SAMPLE_PLAN = Path(__file__).resolve().parent.parent / "data" / "plans" / "sample_keto_plan.json"


def _load_sample():
    with open(SAMPLE_PLAN, "r") as f:
        return json.load(f)


def _make_snapshot(**day_overrides):
    day = {
        "date": "2026-01-05",
        "meals": [
            {
                "id": "m-1",
                "name": "Omelet",
                "slot": "breakfast",
                "ingredientRefs": [{"nevoCode": "101", "quantityG": 120, "displayName": "ei"}],
            },
            {
                "id": "m-2",
                "name": "Salade",
                "slot": "lunch",
                "ingredientRefs": [{"nevoCode": "202", "quantityG": 80, "displayName": "sla"}],
            },
        ],
    }
    day.update(day_overrides)
    return {"planId": "plan-1", "dietKey": "keto", "days": [day]}


class TestParseMealPlan:
    """Snapshot parsing."""

    def test_parse_sample_plan(self):
        plan = parse_meal_plan(_load_sample())
        assert plan.plan_id == "plan-sample-1"
        assert plan.diet_key == "keto"
        assert len(plan.days) == 1
        assert [m.slot for m in plan.days[0].meals] == ["breakfast", "lunch", "dinner"]
        lunch = plan.days[0].meals[1]
        assert lunch.ingredient_refs[1].display_name == "witte rijst"
        assert lunch.ingredient_refs[1].quantity_g == 100
        assert lunch.estimated_macros.carbs == 35
        assert plan.days[0].meals[0].ingredient_refs[1].tags == ["leafy"]

    def test_meal_date_defaults_to_day(self):
        plan = parse_meal_plan(_make_snapshot())
        assert plan.days[0].meals[0].date == "2026-01-05"

    def test_macros_accept_both_spellings(self):
        snapshot = _make_snapshot(totalNutrition={"carbs": "12.5", "saturated_fat": 4})
        snapshot["days"][0]["meals"][0]["estimatedMacros"] = {"saturatedFat": 3}
        plan = parse_meal_plan(snapshot)
        assert plan.days[0].total_nutrition.carbs == 12.5
        assert plan.days[0].total_nutrition.saturated_fat == 4
        assert plan.days[0].meals[0].estimated_macros.saturated_fat == 3

    def test_free_text_amount_has_no_quantity(self):
        snapshot = _make_snapshot()
        snapshot["days"][0]["meals"][0]["ingredients"] = [{"name": "zout", "amount": "snufje", "unit": ""}]
        meal = parse_meal_plan(snapshot).days[0].meals[0]
        assert meal.ingredients[0].name == "zout"
        assert meal.ingredients[0].amount is None

    def test_missing_days(self):
        with pytest.raises(SnapshotStructureError) as exc_info:
            parse_meal_plan({"planId": "x"})
        assert exc_info.value.code is GuardrailsErrorCode.MEAL_PLAN_INVALID_STATE
        assert exc_info.value.path == "snapshot.days"

    def test_days_must_be_a_list(self):
        with pytest.raises(SnapshotStructureError):
            parse_meal_plan({"days": {"date": "2026-01-05"}})

    def test_snapshot_must_be_an_object(self):
        with pytest.raises(SnapshotStructureError):
            parse_meal_plan(["not", "a", "plan"])

    def test_meal_without_slot(self):
        snapshot = _make_snapshot()
        del snapshot["days"][0]["meals"][1]["slot"]
        with pytest.raises(SnapshotStructureError) as exc_info:
            parse_meal_plan(snapshot)
        assert exc_info.value.path == "days[0].meals[1].slot"

    def test_meal_must_be_an_object(self):
        with pytest.raises(SnapshotStructureError) as exc_info:
            parse_meal_plan(_make_snapshot(meals=["Omelet"]))
        assert "Expected an object at days[0].meals[0]" in str(exc_info.value)

    def test_invalid_prep_time(self):
        snapshot = _make_snapshot()
        snapshot["days"][0]["meals"][0]["prepTime"] = "kwartier"
        with pytest.raises(SnapshotStructureError) as exc_info:
            parse_meal_plan(snapshot)
        assert exc_info.value.path == "days[0].meals[0].prepTime"

    def test_serialize_and_parse_again(self):
        plan = parse_meal_plan(_load_sample())
        assert parse_meal_plan(meal_plan_to_dict(plan)) == plan


class TestReplaceMeal:
    """Slot lookup and replacement."""

    def _new_meal(self) -> Meal:
        return parse_meal(
            {
                "id": "m-new",
                "name": "Kipsalade",
                "slot": "dinner",
                "ingredientRefs": [{"nevoCode": "303", "quantityG": 150, "displayName": "kipfilet"}],
            },
            "meal",
            "2026-01-09",
        )

    def test_find_meal(self):
        plan = parse_meal_plan(_make_snapshot())
        assert find_meal(plan, "2026-01-05", "lunch") == (0, 1)

    def test_missing_day(self):
        plan = parse_meal_plan(_make_snapshot())
        with pytest.raises(SnapshotStructureError, match="Day 2026-01-06 not found in plan"):
            find_meal(plan, "2026-01-06", "lunch")

    def test_missing_slot(self):
        plan = parse_meal_plan(_make_snapshot())
        with pytest.raises(SnapshotStructureError, match="No dinner meal on 2026-01-05"):
            find_meal(plan, "2026-01-05", "dinner")

    def test_replace_returns_new_plan(self):
        """Test that replacement leaves the input plan unchanged."""
        plan = parse_meal_plan(_make_snapshot(totalNutrition={"calories": 900}))
        updated = replace_meal(plan, "2026-01-05", "lunch", self._new_meal())
        assert plan.days[0].meals[1].name == "Salade"
        assert plan.days[0].total_nutrition.calories == 900
        assert updated.days[0].meals[1].name == "Kipsalade"
        assert updated.days[0].meals[0] is plan.days[0].meals[0]

    def test_replacement_takes_target_date_and_slot(self):
        plan = parse_meal_plan(_make_snapshot())
        meal = replace_meal(plan, "2026-01-05", "lunch", self._new_meal()).days[0].meals[1]
        assert meal.slot == "lunch"
        assert meal.date == "2026-01-05"

    def test_replacement_clears_stored_day_totals(self):
        plan = parse_meal_plan(_make_snapshot(totalNutrition={"calories": 900}))
        updated = replace_meal(plan, "2026-01-05", "lunch", self._new_meal())
        assert updated.days[0].total_nutrition is None
