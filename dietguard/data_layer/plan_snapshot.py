"""Meal-plan snapshots as stored by the application (camelCase JSON).

Example:
    {
      "planId": "plan-1",
      "dietKey": "keto",
      "days": [
        {
          "date": "2026-01-05",
          "totalNutrition": {"calories": 1850, "carbs": 18},
          "meals": [
            {
              "id": "m1", "name": "Omelet", "slot": "breakfast",
              "date": "2026-01-05", "prepTime": 10, "scheduledTime": "08:00",
              "ingredientRefs": [
                {"nevoCode": "123", "quantityG": 120, "displayName": "ei"}
              ],
              "ingredients": [{"name": "spinazie", "amount": 1, "unit": "kop"}],
              "estimatedMacros": {"calories": 420, "protein": 28}
            }
          ]
        }
      ]
    }
"""

from __future__ import annotations

import dataclasses
from typing import Any, Dict, List, Optional, Tuple

from dietguard.data_layer.exceptions import SnapshotStructureError
from dietguard.data_layer.models import (
    LegacyIngredient,
    MacroTotals,
    Meal,
    MealIngredientRef,
    MealPlan,
    MealPlanDay,
)


_MACRO_KEYS = {
    "calories": "calories",
    "protein": "protein",
    "carbs": "carbs",
    "fat": "fat",
    "saturatedFat": "saturated_fat",
}


def _require(data: Any, key: str, path: str) -> Any:
    if not isinstance(data, dict):
        raise SnapshotStructureError(f"Expected an object at {path}", path=path)
    if key not in data or data[key] is None:
        raise SnapshotStructureError(f"Missing '{key}' at {path}", path=f"{path}.{key}")
    return data[key]


def _object(data: Any, path: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise SnapshotStructureError(f"Expected an object at {path}", path=path)
    return data


def _list(data: Dict[str, Any], key: str, path: str) -> List[Any]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise SnapshotStructureError(f"Expected a list at {path}.{key}", path=f"{path}.{key}")
    return value


def _optional_int(data: Dict[str, Any], key: str, path: str) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise SnapshotStructureError(f"Invalid integer at {path}.{key}", path=f"{path}.{key}") from e


def _parse_macros(data: Optional[Dict[str, Any]], path: str) -> Optional[MacroTotals]:
    if data is None:
        return None
    if not isinstance(data, dict):
        raise SnapshotStructureError(f"Expected an object at {path}", path=path)
    values = {}
    for key, attr in _MACRO_KEYS.items():
        raw = data.get(key, data.get(attr))
        if raw is not None:
            try:
                values[attr] = float(raw)
            except (TypeError, ValueError) as e:
                raise SnapshotStructureError(f"Invalid number at {path}.{key}", path=f"{path}.{key}") from e
    return MacroTotals(**values)


def _parse_ref(data: Dict[str, Any], path: str) -> MealIngredientRef:
    data = _object(data, path)
    try:
        quantity = float(data.get("quantityG", 0))
    except (TypeError, ValueError) as e:
        raise SnapshotStructureError(f"Invalid quantity at {path}", path=f"{path}.quantityG") from e
    return MealIngredientRef(
        nevo_code=str(_require(data, "nevoCode", path)),
        quantity_g=quantity,
        display_name=data.get("displayName"),
        tags=[str(t) for t in data.get("tags") or []],
    )


def _parse_legacy(data: Dict[str, Any], path: str) -> LegacyIngredient:
    data = _object(data, path)
    amount = data.get("amount")
    try:
        amount = float(amount) if amount is not None else None
    except (TypeError, ValueError):
        # Free-text amounts ("snufje") carry no quantity
        amount = None
    return LegacyIngredient(
        name=str(_require(data, "name", path)),
        amount=amount,
        unit=data.get("unit"),
        tags=[str(t) for t in data.get("tags") or []],
    )


def parse_meal(data: Dict[str, Any], path: str, day_date: str) -> Meal:
    data = _object(data, path)
    return Meal(
        id=str(data.get("id") or f"{day_date}-{data.get('slot', 'meal')}"),
        name=str(data.get("name") or ""),
        slot=str(_require(data, "slot", path)),
        date=str(data.get("date") or day_date),
        ingredient_refs=[
            _parse_ref(ref, f"{path}.ingredientRefs[{i}]")
            for i, ref in enumerate(_list(data, "ingredientRefs", path))
        ],
        ingredients=[
            _parse_legacy(item, f"{path}.ingredients[{i}]")
            for i, item in enumerate(_list(data, "ingredients", path))
        ],
        estimated_macros=_parse_macros(data.get("estimatedMacros"), f"{path}.estimatedMacros"),
        prep_time=_optional_int(data, "prepTime", path),
        servings=_optional_int(data, "servings", path),
        scheduled_time=data.get("scheduledTime"),
        tags=[str(t) for t in data.get("tags") or []],
    )


def parse_meal_plan(data: Any) -> MealPlan:
    """Parse a stored snapshot into a MealPlan.

    Raises:
        SnapshotStructureError: If `days` is missing or any day/meal is malformed
    """
    days_data = _require(data, "days", "snapshot")
    if not isinstance(days_data, list):
        raise SnapshotStructureError("Expected a list at snapshot.days", path="snapshot.days")

    days = []
    for d, day_data in enumerate(days_data):
        path = f"days[{d}]"
        day_date = str(_require(day_data, "date", path))
        meals = [
            parse_meal(meal, f"{path}.meals[{m}]", day_date)
            for m, meal in enumerate(_list(day_data, "meals", path))
        ]
        days.append(MealPlanDay(
            date=day_date,
            meals=meals,
            total_nutrition=_parse_macros(day_data.get("totalNutrition"), f"{path}.totalNutrition"),
        ))
    return MealPlan(days=days, diet_key=data.get("dietKey"), plan_id=data.get("planId"))


def _macros_to_dict(macros: Optional[MacroTotals]) -> Optional[Dict[str, float]]:
    if macros is None:
        return None
    return {
        key: getattr(macros, attr)
        for key, attr in _MACRO_KEYS.items()
        if getattr(macros, attr) is not None
    }


def meal_to_dict(meal: Meal) -> Dict[str, Any]:
    result: Dict[str, Any] = {
        "id": meal.id,
        "name": meal.name,
        "slot": meal.slot,
        "date": meal.date,
        "ingredientRefs": [
            {
                "nevoCode": ref.nevo_code,
                "quantityG": ref.quantity_g,
                **({"displayName": ref.display_name} if ref.display_name else {}),
                **({"tags": list(ref.tags)} if ref.tags else {}),
            }
            for ref in meal.ingredient_refs
        ],
    }
    if meal.ingredients:
        result["ingredients"] = [
            {
                "name": item.name,
                "amount": item.amount,
                "unit": item.unit,
                **({"tags": list(item.tags)} if item.tags else {}),
            }
            for item in meal.ingredients
        ]
    optional = {
        "estimatedMacros": _macros_to_dict(meal.estimated_macros),
        "prepTime": meal.prep_time,
        "servings": meal.servings,
        "scheduledTime": meal.scheduled_time,
        "tags": list(meal.tags) or None,
    }
    result.update({k: v for k, v in optional.items() if v is not None})
    return result


def meal_plan_to_dict(plan: MealPlan) -> Dict[str, Any]:
    """Inverse of parse_meal_plan."""
    result: Dict[str, Any] = {"days": []}
    if plan.plan_id is not None:
        result["planId"] = plan.plan_id
    if plan.diet_key is not None:
        result["dietKey"] = plan.diet_key
    for day in plan.days:
        day_dict: Dict[str, Any] = {"date": day.date, "meals": [meal_to_dict(m) for m in day.meals]}
        if day.total_nutrition is not None:
            day_dict["totalNutrition"] = _macros_to_dict(day.total_nutrition)
        result["days"].append(day_dict)
    return result


def find_meal(plan: MealPlan, date: str, slot: str) -> Tuple[int, int]:
    """Locate the meal for (date, slot) as (day index, meal index).

    Raises:
        SnapshotStructureError: If the day or the slot does not exist
    """
    for d, day in enumerate(plan.days):
        if day.date != date:
            continue
        for m, meal in enumerate(day.meals):
            if meal.slot == slot:
                return d, m
        raise SnapshotStructureError(f"No {slot} meal on {date}", path=f"days[{d}]")
    raise SnapshotStructureError(f"Day {date} not found in plan", path="days")


def replace_meal(plan: MealPlan, date: str, slot: str, meal: Meal) -> MealPlan:
    """Return a copy of `plan` with the (date, slot) meal replaced. The input is not modified."""
    d, m = find_meal(plan, date, slot)
    meals = list(plan.days[d].meals)
    meals[m] = dataclasses.replace(meal, date=date, slot=slot)
    days = list(plan.days)
    # Stored day totals no longer describe the edited day
    days[d] = dataclasses.replace(plan.days[d], meals=meals, total_nutrition=None)
    return dataclasses.replace(plan, days=days)
