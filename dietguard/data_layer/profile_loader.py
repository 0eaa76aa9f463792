"""Diet profile loader for loading household diet preferences from YAML."""
import yaml
from pathlib import Path
from typing import Any, Dict, List, Optional

from dietguard.data_layer.models import (
    BatchCookingPreference,
    BudgetPreference,
    CalorieTarget,
    DietKey,
    DietProfile,
    MacroRange,
    MacroTargets,
    PantryPreference,
    PrepPreferences,
    VarietyLevel,
)


def _float(value: Any) -> Optional[float]:
    return None if value is None else float(value)


def _int(value: Any) -> Optional[int]:
    return None if value is None else int(value)


def _strings(values: Optional[List[Any]]) -> List[str]:
    return [str(v) for v in (values or [])]


def _macro_range(data: Optional[Dict[str, Any]]) -> Optional[MacroRange]:
    if data is None:
        return None
    return MacroRange(
        min=_float(data.get("min")),
        max=_float(data.get("max")),
        target=_float(data.get("target")),
    )


def profile_from_dict(data: Dict[str, Any]) -> DietProfile:
    """Build a DietProfile from a plain mapping (YAML or JSON).

    Unknown diet keys are kept as given; derivation falls back to
    balanced for them.
    """
    calories = data.get("calorie_target") or {}
    macros = data.get("macro_targets")
    prep = data.get("prep_preferences") or {}
    batch = prep.get("batch_cooking")
    budget = data.get("budget_preference")
    pantry = data.get("pantry_usage")

    return DietProfile(
        diet_key=data.get("diet_key", DietKey.BALANCED.value),
        allergies=_strings(data.get("allergies")),
        dislikes=_strings(data.get("dislikes")),
        calorie_target=CalorieTarget(
            min=_float(calories.get("min")),
            max=_float(calories.get("max")),
            target=_float(calories.get("target")),
        ),
        macro_targets=MacroTargets(
            protein=_macro_range(macros.get("protein")),
            carbs=_macro_range(macros.get("carbs")),
            fat=_macro_range(macros.get("fat")),
        ) if macros else None,
        prep_preferences=PrepPreferences(
            max_prep_minutes=_int(prep.get("max_prep_minutes")),
            per_meal={str(slot): int(minutes) for slot, minutes in (prep.get("per_meal") or {}).items()},
            batch_cooking=BatchCookingPreference(
                enabled=bool(batch.get("enabled", False)),
                preferred_days=_strings(batch.get("preferred_days")),
                max_batch_size=_int(batch.get("max_batch_size")),
            ) if batch else None,
        ),
        budget_preference=BudgetPreference(
            level=budget.get("level"),
            max_per_meal=_float(budget.get("max_per_meal")),
        ) if budget else None,
        pantry_usage=PantryPreference(
            prioritize_existing=bool(pantry.get("prioritize_existing", False)),
            allowed_categories=_strings(pantry.get("allowed_categories")),
        ) if pantry else None,
        servings_default=int(data.get("servings_default", 1)),
        variety_level=str(data.get("variety_level", VarietyLevel.STD.value)),
        strictness=data.get("strictness", "flexible"),
        meal_preferences={
            str(slot): _strings(tags) for slot, tags in (data.get("meal_preferences") or {}).items()
        },
    )


class DietProfileLoader:
    """Loader for diet profile configuration from YAML."""

    def __init__(self, yaml_path: str):
        """Initialize diet profile loader from YAML file.

        Args:
            yaml_path: Path to YAML file containing the profile, either at the
                top level or under a `diet_profile` key
        """
        self.yaml_path = Path(yaml_path)

    def load(self) -> DietProfile:
        """Load diet profile from YAML file.

        Returns:
            DietProfile object

        Raises:
            FileNotFoundError: If YAML file doesn't exist
            ValueError: If a numeric field cannot be converted
        """
        with open(self.yaml_path, "r") as f:
            data = yaml.safe_load(f) or {}

        return profile_from_dict(data.get("diet_profile", data))
