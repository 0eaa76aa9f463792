"""Core data models for diet profiles, derived rule sets and meal-plan snapshots."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class DietKey(Enum):
    """Supported diet keys. Unknown keys route to BALANCED."""

    WAHLS_PALEO_PLUS = "wahls_paleo_plus"
    KETO = "keto"
    MEDITERRANEAN = "mediterranean"
    VEGAN = "vegan"
    BALANCED = "balanced"

    @classmethod
    def parse(cls, value: Optional[str]) -> "DietKey":
        """Map a loosely typed diet key to a DietKey, falling back to BALANCED."""
        if isinstance(value, DietKey):
            return value
        if not value:
            return cls.BALANCED
        normalized = str(value).strip().lower()
        for key in cls:
            if key.value == normalized:
                return key
        return cls.BALANCED


class ConstraintType(Enum):
    HARD = "hard"
    SOFT = "soft"


class VarietyLevel(Enum):
    LOW = "low"
    STD = "std"
    HIGH = "high"

    @classmethod
    def parse(cls, value: Optional[str]) -> "VarietyLevel":
        if isinstance(value, VarietyLevel):
            return value
        for level in cls:
            if level.value == (value or "").strip().lower():
                return level
        return cls.STD


class MealSlot(Enum):
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"
    SNACK = "snack"


def resolve_constraint_type(strictness: Optional[str]) -> ConstraintType:
    """Resolve the profile strictness into a constraint type.

    Only "strict" resolves to HARD; "flexible", None and anything else is SOFT.
    """
    return ConstraintType.HARD if strictness == "strict" else ConstraintType.SOFT


# --- Diet profile (input) ---


@dataclass
class MacroRange:
    """Optional min/max/target in grams."""

    min: Optional[float] = None
    max: Optional[float] = None
    target: Optional[float] = None


@dataclass
class MacroTargets:
    protein: Optional[MacroRange] = None
    carbs: Optional[MacroRange] = None
    fat: Optional[MacroRange] = None


@dataclass
class CalorieTarget:
    min: Optional[float] = None
    max: Optional[float] = None
    target: Optional[float] = None

    def is_empty(self) -> bool:
        return self.min is None and self.max is None and self.target is None


@dataclass
class BatchCookingPreference:
    enabled: bool = False
    preferred_days: List[str] = field(default_factory=list)
    max_batch_size: Optional[int] = None


@dataclass
class PrepPreferences:
    """Prep-time preferences: global maximum plus per-slot minutes."""

    max_prep_minutes: Optional[int] = None
    per_meal: Dict[str, int] = field(default_factory=dict)  # slot value -> minutes
    batch_cooking: Optional[BatchCookingPreference] = None


@dataclass
class BudgetPreference:
    level: Optional[str] = None  # "low" | "medium" | "high"
    max_per_meal: Optional[float] = None


@dataclass
class PantryPreference:
    prioritize_existing: bool = False
    allowed_categories: List[str] = field(default_factory=list)


@dataclass
class DietProfile:
    """Household-level diet selection and preferences. Read-only for the engine."""

    diet_key: Optional[str] = DietKey.BALANCED.value
    allergies: List[str] = field(default_factory=list)
    dislikes: List[str] = field(default_factory=list)
    calorie_target: CalorieTarget = field(default_factory=CalorieTarget)
    macro_targets: Optional[MacroTargets] = None
    prep_preferences: PrepPreferences = field(default_factory=PrepPreferences)
    budget_preference: Optional[BudgetPreference] = None
    pantry_usage: Optional[PantryPreference] = None
    servings_default: int = 1
    variety_level: str = VarietyLevel.STD.value
    strictness: Optional[str] = "flexible"  # "strict" | "flexible"
    meal_preferences: Dict[str, List[str]] = field(default_factory=dict)  # slot -> tags


# --- Derived diet rule set ---


@dataclass
class IngredientConstraint:
    """Allowed or forbidden items and/or categories."""

    type: str  # "allowed" | "forbidden"
    items: List[str] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    constraint_type: ConstraintType = ConstraintType.HARD
    reason: Optional[str] = None  # "allergy" | "dislike" | "diet"


@dataclass
class RequiredCategoryConstraint:
    category: str
    min_per_day: Optional[int] = None
    min_per_week: Optional[int] = None
    items: List[str] = field(default_factory=list)
    constraint_type: ConstraintType = ConstraintType.HARD


@dataclass
class PerMealConstraint:
    slot: str  # MealSlot value
    min_protein: Optional[float] = None
    min_carbs: Optional[float] = None
    min_fat: Optional[float] = None
    max_calories: Optional[float] = None
    required_categories: List[str] = field(default_factory=list)
    constraint_type: ConstraintType = ConstraintType.SOFT


@dataclass
class WeeklyVarietyConstraint:
    max_repeats: int
    min_unique_meals: int
    exclude_similar: bool = False
    constraint_type: ConstraintType = ConstraintType.SOFT


@dataclass
class MacroConstraint:
    scope: str = "daily"  # "daily" | "per_meal"
    max_carbs: Optional[float] = None
    max_saturated_fat: Optional[float] = None
    min_protein: Optional[float] = None
    min_fat: Optional[float] = None
    allowed_types: List[str] = field(default_factory=list)
    forbidden_types: List[str] = field(default_factory=list)
    constraint_type: ConstraintType = ConstraintType.SOFT


@dataclass
class VegetableCupsRequirement:
    total_cups: float
    leafy_cups: float
    sulfur_cups: float
    colored_cups: float
    leafy_vegetables: List[str] = field(default_factory=list)
    sulfur_vegetables: List[str] = field(default_factory=list)
    colored_vegetables: List[str] = field(default_factory=list)


@dataclass
class MealTimingWindow:
    slot: str
    earliest: Optional[str] = None  # "HH:MM"
    latest: Optional[str] = None


@dataclass
class MealCountRequirement:
    min_per_day: Optional[int] = None
    max_per_day: Optional[int] = None
    required_slots: List[str] = field(default_factory=list)


@dataclass
class MealStructureConstraint:
    """Diet-specific shape rule. Exactly one of the payload fields is set."""

    type: str  # "vegetable_cups" | "meal_timing" | "meal_count"
    vegetable_cups: Optional[VegetableCupsRequirement] = None
    meal_timing: List[MealTimingWindow] = field(default_factory=list)
    meal_count: Optional[MealCountRequirement] = None
    constraint_type: ConstraintType = ConstraintType.HARD


@dataclass
class PrepTimeConstraint:
    global_max: Optional[int] = None
    per_meal: Dict[str, int] = field(default_factory=dict)
    batch_cooking: Optional[BatchCookingPreference] = None
    constraint_type: ConstraintType = ConstraintType.SOFT


@dataclass
class DietRuleSet:
    """Derived, diet-specific guard-rail bundle. Recomputed per evaluation."""

    diet_key: DietKey
    ingredient_constraints: List[IngredientConstraint] = field(default_factory=list)
    required_categories: List[RequiredCategoryConstraint] = field(default_factory=list)
    per_meal_constraints: List[PerMealConstraint] = field(default_factory=list)
    weekly_variety: Optional[WeeklyVarietyConstraint] = None
    macro_constraints: List[MacroConstraint] = field(default_factory=list)
    meal_structure: List[MealStructureConstraint] = field(default_factory=list)
    calorie_target: Optional[CalorieTarget] = None
    calorie_constraint_type: ConstraintType = ConstraintType.SOFT
    prep_time_constraints: Optional[PrepTimeConstraint] = None
    budget_constraints: Optional[BudgetPreference] = None
    pantry_usage: Optional[PantryPreference] = None
    meal_preferences: Dict[str, List[str]] = field(default_factory=dict)


# --- Meal plan snapshot (evaluation target source) ---


@dataclass
class MealIngredientRef:
    nevo_code: str
    quantity_g: float
    display_name: Optional[str] = None
    tags: List[str] = field(default_factory=list)  # category tags, e.g. "leafy"


@dataclass
class LegacyIngredient:
    """Free-text ingredient from older plans."""

    name: str
    amount: Optional[float] = None
    unit: Optional[str] = None
    tags: List[str] = field(default_factory=list)


@dataclass
class MacroTotals:
    calories: Optional[float] = None
    protein: Optional[float] = None
    carbs: Optional[float] = None
    fat: Optional[float] = None
    saturated_fat: Optional[float] = None


@dataclass
class Meal:
    id: str
    name: str
    slot: str
    date: str
    ingredient_refs: List[MealIngredientRef] = field(default_factory=list)
    ingredients: List[LegacyIngredient] = field(default_factory=list)
    estimated_macros: Optional[MacroTotals] = None
    prep_time: Optional[int] = None  # minutes
    servings: Optional[int] = None
    scheduled_time: Optional[str] = None  # "HH:MM"
    tags: List[str] = field(default_factory=list)


@dataclass
class MealPlanDay:
    date: str
    meals: List[Meal] = field(default_factory=list)
    total_nutrition: Optional[MacroTotals] = None


@dataclass
class MealPlan:
    days: List[MealPlanDay] = field(default_factory=list)
    diet_key: Optional[str] = None
    plan_id: Optional[str] = None
