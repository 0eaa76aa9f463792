"""Rule derivation: DietProfile -> DietRuleSet.

Pure and deterministic. One builder per diet key; unknown keys use the
balanced builder. Every builder shares the same treatment of allergies
(always hard), dislikes (profile strictness) and carried-through hints
(calorie target, prep time, budget, pantry, meal preferences).

Diet-intrinsic bans and structural quotas are hard no matter what the
profile's strictness says. Everything else follows the profile.
"""

from __future__ import annotations

import copy
from typing import Callable, Dict, List, Optional

from dietguard.data_layer.models import (
    ConstraintType,
    DietKey,
    DietProfile,
    DietRuleSet,
    IngredientConstraint,
    MacroConstraint,
    MealCountRequirement,
    MealStructureConstraint,
    PerMealConstraint,
    PrepTimeConstraint,
    RequiredCategoryConstraint,
    VarietyLevel,
    VegetableCupsRequirement,
    WeeklyVarietyConstraint,
    resolve_constraint_type,
)


MAIN_SLOTS = ["breakfast", "lunch", "dinner"]

LEAFY_VEGETABLES = ["spinach", "kale", "lettuce", "chard", "collard_greens", "arugula", "bok_choy"]
SULFUR_VEGETABLES = ["broccoli", "cauliflower", "cabbage", "brussels_sprouts", "onion", "garlic", "leek"]
COLORED_VEGETABLES = ["carrot", "beet", "bell_pepper", "sweet_potato", "pumpkin", "squash", "tomato"]


def derive_diet_rule_set(profile: DietProfile) -> DietRuleSet:
    """Derive the diet rule set for a profile.

    Args:
        profile: Household diet profile (not mutated)

    Returns:
        DietRuleSet for the profile's diet, or the balanced rule set when
        the diet key is not recognized
    """
    diet_key = DietKey.parse(profile.diet_key)
    generic = resolve_constraint_type(profile.strictness)
    builder = _BUILDERS.get(diet_key, _build_balanced)
    rule_set = builder(profile, generic)
    _apply_profile_hints(rule_set, profile, generic)
    return rule_set


# --- Shared pieces ---


def _is_high_variety(profile: DietProfile) -> bool:
    # "low" uses the standard thresholds
    return VarietyLevel.parse(profile.variety_level) is VarietyLevel.HIGH


def _macro_min(profile: DietProfile, macro: str, default: float) -> float:
    targets = profile.macro_targets
    if targets is None:
        return default
    macro_range = getattr(targets, macro, None)
    if macro_range is None or macro_range.min is None:
        return default
    return macro_range.min


def _preference_constraints(profile: DietProfile, generic: ConstraintType) -> List[IngredientConstraint]:
    """Allergies are always hard; dislikes follow the profile strictness."""
    constraints = []
    if profile.allergies:
        constraints.append(IngredientConstraint(
            type="forbidden",
            items=list(profile.allergies),
            constraint_type=ConstraintType.HARD,
            reason="allergy",
        ))
    if profile.dislikes:
        constraints.append(IngredientConstraint(
            type="forbidden",
            items=list(profile.dislikes),
            constraint_type=generic,
            reason="dislike",
        ))
    return constraints


def _per_meal(field_name: str, values: Dict[str, float], generic: ConstraintType) -> List[PerMealConstraint]:
    return [
        PerMealConstraint(slot=slot, constraint_type=generic, **{field_name: values[slot]})
        for slot in MAIN_SLOTS
        if slot in values
    ]


def _meal_count(
    generic: ConstraintType,
    min_per_day: Optional[int] = None,
    max_per_day: Optional[int] = None,
    required_slots: Optional[List[str]] = None,
) -> MealStructureConstraint:
    return MealStructureConstraint(
        type="meal_count",
        meal_count=MealCountRequirement(
            min_per_day=min_per_day,
            max_per_day=max_per_day,
            required_slots=list(required_slots or []),
        ),
        constraint_type=generic,
    )


def _apply_profile_hints(rule_set: DietRuleSet, profile: DietProfile, generic: ConstraintType) -> None:
    """Carry calorie, prep, budget, pantry and meal-preference hints into the rule set."""
    if not profile.calorie_target.is_empty():
        rule_set.calorie_target = copy.deepcopy(profile.calorie_target)
        rule_set.calorie_constraint_type = generic
    prep = profile.prep_preferences
    if prep.max_prep_minutes is not None or prep.per_meal or prep.batch_cooking is not None:
        rule_set.prep_time_constraints = PrepTimeConstraint(
            global_max=prep.max_prep_minutes,
            per_meal=dict(prep.per_meal),
            batch_cooking=copy.deepcopy(prep.batch_cooking),
            constraint_type=generic,
        )
    rule_set.budget_constraints = copy.deepcopy(profile.budget_preference)
    rule_set.pantry_usage = copy.deepcopy(profile.pantry_usage)
    rule_set.meal_preferences = {slot: list(tags) for slot, tags in profile.meal_preferences.items()}


# --- Diet builders ---


def _build_wahls_paleo_plus(profile: DietProfile, generic: ConstraintType) -> DietRuleSet:
    """Wahls Paleo Plus: 9 cups of vegetables a day, organ meats, seaweed, no grains/dairy/legumes/sugar."""
    high = _is_high_variety(profile)
    return DietRuleSet(
        diet_key=DietKey.WAHLS_PALEO_PLUS,
        ingredient_constraints=[
            IngredientConstraint(
                type="forbidden",
                categories=["grains", "dairy", "legumes", "processed_sugar"],
                constraint_type=ConstraintType.HARD,
                reason="diet",
            ),
        ] + _preference_constraints(profile, generic),
        required_categories=[
            RequiredCategoryConstraint(
                category="organ_meats",
                min_per_week=2,
                items=["liver", "heart", "kidney"],
                constraint_type=ConstraintType.HARD,
            ),
            RequiredCategoryConstraint(
                category="seaweed_kelp",
                min_per_day=1,
                items=["seaweed", "kelp", "nori", "wakame"],
                constraint_type=ConstraintType.HARD,
            ),
        ],
        per_meal_constraints=_per_meal(
            "min_protein", {"breakfast": 20, "lunch": 25, "dinner": 30}, generic
        ),
        weekly_variety=WeeklyVarietyConstraint(
            max_repeats=1 if high else 2,
            min_unique_meals=15 if high else 10,
            exclude_similar=True,
            constraint_type=generic,
        ),
        macro_constraints=[
            MacroConstraint(
                scope="daily",
                min_protein=_macro_min(profile, "protein", 100),
                min_fat=_macro_min(profile, "fat", 60),
                constraint_type=generic,
            ),
        ],
        meal_structure=[
            MealStructureConstraint(
                type="vegetable_cups",
                vegetable_cups=VegetableCupsRequirement(
                    total_cups=9,
                    leafy_cups=3,
                    sulfur_cups=3,
                    colored_cups=3,
                    leafy_vegetables=list(LEAFY_VEGETABLES),
                    sulfur_vegetables=list(SULFUR_VEGETABLES),
                    colored_vegetables=list(COLORED_VEGETABLES),
                ),
                constraint_type=ConstraintType.HARD,
            ),
            _meal_count(generic, min_per_day=3, required_slots=MAIN_SLOTS),
        ],
    )


def _build_keto(profile: DietProfile, generic: ConstraintType) -> DietRuleSet:
    """Keto: fixed 20g daily carb ceiling, high fat, no grains/sugar/starchy vegetables."""
    high = _is_high_variety(profile)
    return DietRuleSet(
        diet_key=DietKey.KETO,
        ingredient_constraints=[
            IngredientConstraint(
                type="forbidden",
                categories=["grains", "sugar", "starchy_vegetables"],
                constraint_type=ConstraintType.HARD,
                reason="diet",
            ),
        ] + _preference_constraints(profile, generic),
        per_meal_constraints=_per_meal(
            "min_fat", {"breakfast": 15, "lunch": 20, "dinner": 25}, generic
        ),
        weekly_variety=WeeklyVarietyConstraint(
            max_repeats=2 if high else 3,
            min_unique_meals=12 if high else 8,
            exclude_similar=False,
            constraint_type=generic,
        ),
        macro_constraints=[
            # The carb ceiling is diet policy; the fat/protein floors follow strictness.
            MacroConstraint(scope="daily", max_carbs=20, constraint_type=ConstraintType.HARD),
            MacroConstraint(
                scope="daily",
                min_fat=_macro_min(profile, "fat", 100),
                min_protein=_macro_min(profile, "protein", 70),
                constraint_type=generic,
            ),
        ],
        meal_structure=[_meal_count(generic, min_per_day=2, max_per_day=4)],
    )


def _build_mediterranean(profile: DietProfile, generic: ConstraintType) -> DietRuleSet:
    high = _is_high_variety(profile)
    return DietRuleSet(
        diet_key=DietKey.MEDITERRANEAN,
        ingredient_constraints=[
            IngredientConstraint(
                type="allowed",
                categories=[
                    "vegetables", "fruits", "whole_grains", "legumes",
                    "fish", "poultry", "olive_oil", "nuts",
                ],
                constraint_type=generic,
                reason="diet",
            ),
            IngredientConstraint(
                type="forbidden",
                categories=["processed_foods", "refined_sugar"],
                constraint_type=ConstraintType.SOFT,
                reason="diet",
            ),
        ] + _preference_constraints(profile, generic),
        required_categories=[
            RequiredCategoryConstraint(
                category="vegetables", min_per_day=5, constraint_type=generic
            ),
            RequiredCategoryConstraint(
                category="healthy_fats",
                min_per_day=2,
                items=["olive_oil", "nuts", "avocado"],
                constraint_type=generic,
            ),
        ],
        per_meal_constraints=_per_meal("min_protein", {"dinner": 20}, generic),
        weekly_variety=WeeklyVarietyConstraint(
            max_repeats=2 if high else 3,
            min_unique_meals=14 if high else 10,
            exclude_similar=True,
            constraint_type=generic,
        ),
        macro_constraints=[
            MacroConstraint(
                scope="daily",
                min_protein=_macro_min(profile, "protein", 80),
                min_fat=_macro_min(profile, "fat", 50),
                constraint_type=generic,
            ),
        ],
        meal_structure=[_meal_count(generic, min_per_day=3, required_slots=MAIN_SLOTS)],
    )


def _build_vegan(profile: DietProfile, generic: ConstraintType) -> DietRuleSet:
    high = _is_high_variety(profile)
    return DietRuleSet(
        diet_key=DietKey.VEGAN,
        ingredient_constraints=[
            IngredientConstraint(
                type="forbidden",
                categories=["meat", "fish", "poultry", "dairy", "eggs", "honey"],
                constraint_type=ConstraintType.HARD,
                reason="diet",
            ),
        ] + _preference_constraints(profile, generic),
        required_categories=[
            RequiredCategoryConstraint(
                category="plant_protein",
                min_per_day=3,
                items=["legumes", "tofu", "tempeh", "seitan", "nuts", "seeds"],
                constraint_type=generic,
            ),
        ],
        per_meal_constraints=_per_meal(
            "min_protein", {"breakfast": 15, "lunch": 20, "dinner": 25}, generic
        ),
        weekly_variety=WeeklyVarietyConstraint(
            max_repeats=2 if high else 3,
            min_unique_meals=14 if high else 10,
            exclude_similar=True,
            constraint_type=generic,
        ),
        macro_constraints=[
            MacroConstraint(
                scope="daily",
                min_protein=_macro_min(profile, "protein", 60),
                constraint_type=generic,
            ),
        ],
        meal_structure=[_meal_count(generic, min_per_day=3, required_slots=MAIN_SLOTS)],
    )


def _build_balanced(profile: DietProfile, generic: ConstraintType) -> DietRuleSet:
    """Balanced diet, also the fallback for unrecognized diet keys."""
    high = _is_high_variety(profile)
    return DietRuleSet(
        diet_key=DietKey.BALANCED,
        ingredient_constraints=_preference_constraints(profile, generic),
        per_meal_constraints=_per_meal(
            "min_protein", {"breakfast": 15, "lunch": 20, "dinner": 25}, generic
        ),
        weekly_variety=WeeklyVarietyConstraint(
            max_repeats=2 if high else 4,
            min_unique_meals=12 if high else 7,
            exclude_similar=False,
            constraint_type=generic,
        ),
        macro_constraints=[
            MacroConstraint(
                scope="daily",
                min_protein=_macro_min(profile, "protein", 50),
                constraint_type=generic,
            ),
        ],
        meal_structure=[_meal_count(generic, min_per_day=3)],
    )


_BUILDERS: Dict[DietKey, Callable[[DietProfile, ConstraintType], DietRuleSet]] = {
    DietKey.WAHLS_PALEO_PLUS: _build_wahls_paleo_plus,
    DietKey.KETO: _build_keto,
    DietKey.MEDITERRANEAN: _build_mediterranean,
    DietKey.VEGAN: _build_vegan,
    DietKey.BALANCED: _build_balanced,
}


def registered_diet_keys() -> List[DietKey]:
    """Diet keys with a dedicated builder."""
    return list(_BUILDERS)
