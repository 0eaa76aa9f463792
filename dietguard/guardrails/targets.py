"""Target extraction: meal-plan snapshot -> flat evaluation targets.

Pure mapping. Every ingredient mention becomes its own atom (duplicates
across meals stay distinct), and every atom and aggregate keeps the date
and slot it came from so violations can cite a specific day.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from dietguard.data_layer.models import MacroTotals, Meal, MealPlan, MealPlanDay


MACRO_FIELDS = ("calories", "protein", "carbs", "fat", "saturated_fat")
DAYS_PER_WEEK = 7


@dataclass(frozen=True)
class TextAtom:
    """One piece of matchable text with a stable path for audit output."""

    text: str  # lowercase
    path: str
    canonical_id: Optional[str] = None
    locale: Optional[str] = None
    date: Optional[str] = None
    slot: Optional[str] = None
    day_index: Optional[int] = None
    meal_index: Optional[int] = None
    quantity: Optional[float] = None
    unit: Optional[str] = None
    tags: Tuple[str, ...] = ()


@dataclass
class MealTarget:
    path: str
    date: str
    slot: str
    day_index: int
    meal_index: int
    name: str
    macros: Optional[MacroTotals] = None
    prep_time: Optional[int] = None
    scheduled_time: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    ingredients: List[TextAtom] = field(default_factory=list)

    def identity(self) -> str:
        """Normalized meal name, used to detect repeated meals.

        Unnamed meals fall back to their ingredient set, and to their path
        when they have no ingredients either.
        """
        name = " ".join(self.name.lower().split())
        if name:
            return name
        ingredients = self.ingredient_set()
        if ingredients:
            return "ingredients:" + ",".join(ingredients)
        return self.path

    def label(self) -> str:
        return self.name or self.path

    def ingredient_set(self) -> Tuple[str, ...]:
        return tuple(sorted({atom.canonical_id or atom.text for atom in self.ingredients}))


@dataclass
class DayTarget:
    path: str
    date: str
    day_index: int
    totals: MacroTotals = field(default_factory=MacroTotals)
    meals: List[MealTarget] = field(default_factory=list)

    @property
    def ingredients(self) -> List[TextAtom]:
        return [atom for meal in self.meals for atom in meal.ingredients]


@dataclass
class WeekTarget:
    path: str = "days"
    days: List[DayTarget] = field(default_factory=list)

    @property
    def meals(self) -> List[MealTarget]:
        return [meal for day in self.days for meal in day.meals]

    def blocks(self, complete_only: bool = False) -> List[List[DayTarget]]:
        """Consecutive 7-day blocks; with complete_only a trailing partial block is dropped."""
        blocks = [self.days[i:i + DAYS_PER_WEEK] for i in range(0, len(self.days), DAYS_PER_WEEK)]
        if complete_only:
            blocks = [block for block in blocks if len(block) == DAYS_PER_WEEK]
        return blocks


@dataclass
class GuardrailsTargets:
    ingredient: List[TextAtom] = field(default_factory=list)
    step: List[TextAtom] = field(default_factory=list)
    metadata: List[TextAtom] = field(default_factory=list)
    meals: List[MealTarget] = field(default_factory=list)
    days: List[DayTarget] = field(default_factory=list)
    week: WeekTarget = field(default_factory=WeekTarget)

    def text_atoms(self, target_type: str) -> List[TextAtom]:
        return getattr(self, target_type)


def extract_targets(plan: MealPlan, locale: Optional[str] = None) -> GuardrailsTargets:
    """Map a meal plan to guardrails targets.

    Args:
        plan: Meal-plan snapshot (read-only)
        locale: Locale recorded on every text atom

    Returns:
        GuardrailsTargets with ingredient/metadata atoms and meal/day/week aggregates
    """
    targets = GuardrailsTargets()
    for day_index, day in enumerate(plan.days):
        day_target = DayTarget(path=f"days[{day_index}]", date=day.date, day_index=day_index)
        for meal_index, meal in enumerate(day.meals):
            meal_target = _extract_meal(targets, meal, day, day_index, meal_index, locale)
            day_target.meals.append(meal_target)
            targets.meals.append(meal_target)
        day_target.totals = _day_totals(day)
        targets.days.append(day_target)
    targets.week = WeekTarget(days=list(targets.days))
    return targets


def _extract_meal(
    targets: GuardrailsTargets,
    meal: Meal,
    day: MealPlanDay,
    day_index: int,
    meal_index: int,
    locale: Optional[str],
) -> MealTarget:
    base = f"days[{day_index}].meals[{meal_index}]"
    date = meal.date or day.date
    location = dict(locale=locale, date=date, slot=meal.slot, day_index=day_index, meal_index=meal_index)

    name = (meal.name or "").strip()
    if name:
        targets.metadata.append(TextAtom(text=name.lower(), path=f"{base}.name", **location))

    meal_atoms: List[TextAtom] = []
    for index, ref in enumerate(meal.ingredient_refs):
        text = (ref.display_name or "").strip() or f"NEVO-{ref.nevo_code}"
        tags = _clean_tags(ref.tags)
        atom = TextAtom(
            text=text.lower(),
            path=f"{base}.ingredients[{index}]",
            canonical_id=ref.nevo_code or None,
            quantity=ref.quantity_g,
            unit="g",
            tags=tags,
            **location,
        )
        meal_atoms.append(atom)
        _append_tag_atoms(targets.metadata, tags, atom.path, location)

    for index, ingredient in enumerate(meal.ingredients):
        text = (ingredient.name or "").strip()
        if not text:
            continue
        tags = _clean_tags(ingredient.tags)
        atom = TextAtom(
            text=text.lower(),
            path=f"{base}.legacyIngredients[{index}]",
            quantity=ingredient.amount,
            unit=(ingredient.unit or "").strip().lower() or None,
            tags=tags,
            **location,
        )
        meal_atoms.append(atom)
        _append_tag_atoms(targets.metadata, tags, atom.path, location)

    targets.ingredient.extend(meal_atoms)
    return MealTarget(
        path=base,
        date=date,
        slot=meal.slot,
        day_index=day_index,
        meal_index=meal_index,
        name=name,
        macros=meal.estimated_macros,
        prep_time=meal.prep_time,
        scheduled_time=meal.scheduled_time,
        tags=list(_clean_tags(meal.tags)),
        ingredients=meal_atoms,
    )


def _clean_tags(tags: Sequence[str]) -> Tuple[str, ...]:
    return tuple(t.strip().lower() for t in tags if t and t.strip())


def _append_tag_atoms(metadata: List[TextAtom], tags: Tuple[str, ...], owner_path: str, location: Dict) -> None:
    for tag_index, tag in enumerate(tags):
        metadata.append(TextAtom(text=tag, path=f"{owner_path}.tags[{tag_index}]", **location))


def _day_totals(day: MealPlanDay) -> MacroTotals:
    """Day macro totals.

    Stored day totals win. Otherwise each field is summed over the meals,
    but only when every meal reports it; a partial sum is left as None.
    """
    stored = day.total_nutrition
    values: Dict[str, Optional[float]] = {}
    for name in MACRO_FIELDS:
        value = getattr(stored, name) if stored is not None else None
        if value is None and day.meals:
            meal_values = [
                getattr(meal.estimated_macros, name) if meal.estimated_macros is not None else None
                for meal in day.meals
            ]
            if all(v is not None for v in meal_values):
                value = float(sum(meal_values))
        values[name] = value
    return MacroTotals(**values)


# --- Plan-chat edits ---


@dataclass
class PlanEdit:
    """A plan-chat edit request, evaluated before it is applied."""

    user_intent_summary: Optional[str] = None
    notes: List[str] = field(default_factory=list)
    avoid_ingredients: List[str] = field(default_factory=list)


def extract_plan_edit_targets(
    edit: PlanEdit,
    snapshot: Optional[MealPlan] = None,
    locale: Optional[str] = None,
) -> GuardrailsTargets:
    """Map a plan edit (and optionally the current snapshot) to targets.

    Intent summary and notes are metadata atoms, avoid-ingredients are
    ingredient atoms. Snapshot atoms are merged in, skipping paths that
    already exist.
    """
    targets = GuardrailsTargets()
    intent = (edit.user_intent_summary or "").strip()
    if intent:
        targets.metadata.append(TextAtom(text=intent.lower(), path="edit.userIntentSummary", locale=locale))
    for index, note in enumerate(edit.notes):
        if note and note.strip():
            targets.metadata.append(TextAtom(text=note.strip().lower(), path=f"edit.notes[{index}]", locale=locale))
    for index, ingredient in enumerate(edit.avoid_ingredients):
        if ingredient and ingredient.strip():
            targets.ingredient.append(TextAtom(
                text=ingredient.strip().lower(),
                path=f"edit.constraints.avoidIngredients[{index}]",
                locale=locale,
            ))

    if snapshot is not None:
        snapshot_targets = extract_targets(snapshot, locale)
        for name in ("ingredient", "metadata"):
            existing = {atom.path for atom in getattr(targets, name)}
            getattr(targets, name).extend(
                atom for atom in getattr(snapshot_targets, name) if atom.path not in existing
            )
        targets.step.extend(snapshot_targets.step)
        targets.meals = snapshot_targets.meals
        targets.days = snapshot_targets.days
        targets.week = snapshot_targets.week
    return targets
