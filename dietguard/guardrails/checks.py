"""Quantitative checks for meal, day and week rules.

Each check takes a rule's constraint object and the extracted targets
and returns the violations it finds. Missing data never counts as a
violation: a meal without macros skips the macro checks, a meal without
a scheduled time skips the timing check.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Type

from dietguard.data_layer.models import (
    CalorieTarget,
    MacroConstraint,
    MacroTotals,
    MealStructureConstraint,
    PerMealConstraint,
    PrepTimeConstraint,
    RequiredCategoryConstraint,
    WeeklyVarietyConstraint,
)
from dietguard.guardrails.matchers import match_word_prefix
from dietguard.guardrails.targets import DAYS_PER_WEEK, DayTarget, GuardrailsTargets, MealTarget, TextAtom
from dietguard.rules.guard_rules import GuardRule, MatchTarget, MealPreferenceRequirement
from dietguard.rules.vocabulary import category_terms, expand_terms


CUP_UNITS = {"cup", "cups", "kop", "kopje", "kopjes"}


@dataclass
class Violation:
    path: str
    detail: str
    date: Optional[str] = None
    slot: Optional[str] = None


def run_check(rule: GuardRule, targets: GuardrailsTargets) -> List[Violation]:
    """Dispatch a quantitative rule to its check.

    Returns an empty list for constraint types without a check.
    """
    check = _CHECKS.get((type(rule.constraint), rule.target))
    if check is None:
        return []
    return check(rule.constraint, targets)


# --- Helpers ---


def _fmt(value: float) -> str:
    return f"{value:g}"


def _meal_violation(meal: MealTarget, problems: List[str]) -> List[Violation]:
    if not problems:
        return []
    return [Violation(path=meal.path, detail="; ".join(problems), date=meal.date, slot=meal.slot)]


def _day_violation(day: DayTarget, problems: List[str]) -> List[Violation]:
    if not problems:
        return []
    return [Violation(path=day.path, detail="; ".join(problems), date=day.date)]


def _macro_problems(macros: Optional[MacroTotals], constraint) -> List[str]:
    """Compare macro totals with min_*/max_* fields present on `constraint`."""
    if macros is None:
        return []
    problems = []
    for field_name, macro in (("min_protein", "protein"), ("min_carbs", "carbs"), ("min_fat", "fat")):
        minimum = getattr(constraint, field_name, None)
        value = getattr(macros, macro)
        if minimum is not None and value is not None and value < minimum:
            problems.append(f"{macro} {_fmt(value)}g below minimum {_fmt(minimum)}g")
    for field_name, macro in (("max_carbs", "carbs"), ("max_saturated_fat", "saturated_fat")):
        maximum = getattr(constraint, field_name, None)
        value = getattr(macros, macro)
        if maximum is not None and value is not None and value > maximum:
            problems.append(f"{macro.replace('_', ' ')} {_fmt(value)}g above maximum {_fmt(maximum)}g")
    return problems


def atom_in_category(atom: TextAtom, terms: Sequence[str], tags: Iterable[str]) -> bool:
    """True if the atom is tagged with the category or one of its terms starts a word."""
    if any(tag in atom.tags for tag in tags):
        return True
    return any(match_word_prefix(atom.text, term) for term in terms)


def _category_vocabulary(constraint: RequiredCategoryConstraint) -> Tuple[List[str], List[str]]:
    terms = expand_terms(constraint.items) if constraint.items else category_terms(constraint.category)
    tags = [constraint.category] + [item.lower() for item in constraint.items]
    return terms, tags


def _count_in_category(atoms: Iterable[TextAtom], terms: Sequence[str], tags: Sequence[str]) -> int:
    return sum(1 for atom in atoms if atom_in_category(atom, terms, tags))


def _cups(atom: TextAtom) -> float:
    if atom.unit in CUP_UNITS and atom.quantity is not None:
        return float(atom.quantity)
    return 1.0


def _minutes(hhmm: str) -> Optional[int]:
    try:
        hours, minutes = hhmm.split(":", 1)
        return int(hours) * 60 + int(minutes[:2])
    except ValueError:
        return None


# --- Meal checks ---


def check_per_meal(constraint: PerMealConstraint, targets: GuardrailsTargets) -> List[Violation]:
    violations = []
    for meal in targets.meals:
        if meal.slot != constraint.slot:
            continue
        problems = _macro_problems(meal.macros, constraint)
        if (
            constraint.max_calories is not None
            and meal.macros is not None
            and meal.macros.calories is not None
            and meal.macros.calories > constraint.max_calories
        ):
            problems.append(
                f"calories {_fmt(meal.macros.calories)} above maximum {_fmt(constraint.max_calories)}"
            )
        for category in constraint.required_categories:
            if _count_in_category(meal.ingredients, category_terms(category), [category]) == 0:
                problems.append(f"missing required category {category}")
        violations.extend(_meal_violation(meal, problems))
    return violations


def check_macro_per_meal(constraint: MacroConstraint, targets: GuardrailsTargets) -> List[Violation]:
    violations = []
    for meal in targets.meals:
        problems = _macro_problems(meal.macros, constraint)
        problems.extend(_forbidden_type_problems(meal.ingredients, constraint))
        violations.extend(_meal_violation(meal, problems))
    return violations


def check_prep_time(constraint: PrepTimeConstraint, targets: GuardrailsTargets) -> List[Violation]:
    violations = []
    for meal in targets.meals:
        if meal.prep_time is None:
            continue
        limit = constraint.per_meal.get(meal.slot, constraint.global_max)
        if limit is not None and meal.prep_time > limit:
            violations.extend(_meal_violation(
                meal, [f"prep time {meal.prep_time} min above limit {limit} min"]
            ))
    return violations


def check_meal_preference(requirement: MealPreferenceRequirement, targets: GuardrailsTargets) -> List[Violation]:
    wanted = [tag.lower() for tag in requirement.tags]
    violations = []
    for meal in targets.meals:
        if meal.slot != requirement.slot:
            continue
        name = meal.name.lower()
        if any(tag in meal.tags or tag in name for tag in wanted):
            continue
        violations.extend(_meal_violation(meal, [f"none of the preferred tags: {', '.join(wanted)}"]))
    return violations


# --- Day checks ---


def _forbidden_type_problems(atoms: List[TextAtom], constraint: MacroConstraint) -> List[str]:
    problems = []
    for macro_type in constraint.forbidden_types:
        tag = macro_type.lower()
        if any(tag in atom.tags for atom in atoms):
            problems.append(f"contains forbidden macro type {tag}")
    return problems


def check_macro_daily(constraint: MacroConstraint, targets: GuardrailsTargets) -> List[Violation]:
    violations = []
    for day in targets.days:
        problems = _macro_problems(day.totals, constraint)
        problems.extend(_forbidden_type_problems(day.ingredients, constraint))
        violations.extend(_day_violation(day, problems))
    return violations


def check_calorie_target(target: CalorieTarget, targets: GuardrailsTargets) -> List[Violation]:
    violations = []
    for day in targets.days:
        calories = day.totals.calories
        if calories is None:
            continue
        problems = []
        if target.min is not None and calories < target.min:
            problems.append(f"calories {_fmt(calories)} below minimum {_fmt(target.min)}")
        if target.max is not None and calories > target.max:
            problems.append(f"calories {_fmt(calories)} above maximum {_fmt(target.max)}")
        violations.extend(_day_violation(day, problems))
    return violations


def check_required_category_daily(constraint: RequiredCategoryConstraint, targets: GuardrailsTargets) -> List[Violation]:
    if constraint.min_per_day is None:
        return []
    terms, tags = _category_vocabulary(constraint)
    violations = []
    for day in targets.days:
        count = _count_in_category(day.ingredients, terms, tags)
        if count < constraint.min_per_day:
            violations.extend(_day_violation(
                day, [f"{constraint.category}: {count} of {constraint.min_per_day} per day"]
            ))
    return violations


def check_meal_structure(structure: MealStructureConstraint, targets: GuardrailsTargets) -> List[Violation]:
    violations = []
    for day in targets.days:
        if structure.type == "vegetable_cups" and structure.vegetable_cups is not None:
            problems = _vegetable_cup_problems(structure, day)
        elif structure.type == "meal_count" and structure.meal_count is not None:
            problems = _meal_count_problems(structure, day)
        elif structure.type == "meal_timing":
            problems = _meal_timing_problems(structure, day)
        else:
            problems = []
        violations.extend(_day_violation(day, problems))
    return violations


def _vegetable_cup_problems(structure: MealStructureConstraint, day: DayTarget) -> List[str]:
    requirement = structure.vegetable_cups
    groups = [
        ("leafy", requirement.leafy_cups, expand_terms(requirement.leafy_vegetables)),
        ("sulfur", requirement.sulfur_cups, expand_terms(requirement.sulfur_vegetables)),
        ("colored", requirement.colored_cups, expand_terms(requirement.colored_vegetables)),
    ]
    tallies = {name: 0.0 for name, _, _ in groups}
    for atom in day.ingredients:
        # An ingredient counts towards the first group it qualifies for
        for name, _, terms in groups:
            if atom_in_category(atom, terms, [name]):
                tallies[name] += _cups(atom)
                break

    total = sum(tallies.values())
    problems = []
    if total < requirement.total_cups:
        breakdown = ", ".join(
            f"{name} {_fmt(tallies[name])}/{_fmt(required)}" for name, required, _ in groups
        )
        problems.append(
            f"vegetable cups {_fmt(total)} of {_fmt(requirement.total_cups)} ({breakdown})"
        )
    else:
        for name, required, _ in groups:
            if tallies[name] < required:
                problems.append(f"{name} vegetable cups {_fmt(tallies[name])} of {_fmt(required)}")
    return problems


def _meal_count_problems(structure: MealStructureConstraint, day: DayTarget) -> List[str]:
    requirement = structure.meal_count
    count = len(day.meals)
    problems = []
    if requirement.min_per_day is not None and count < requirement.min_per_day:
        problems.append(f"{count} meals, minimum {requirement.min_per_day}")
    if requirement.max_per_day is not None and count > requirement.max_per_day:
        problems.append(f"{count} meals, maximum {requirement.max_per_day}")
    present = {meal.slot for meal in day.meals}
    missing = [slot for slot in requirement.required_slots if slot not in present]
    if missing:
        problems.append(f"missing slots: {', '.join(missing)}")
    return problems


def _meal_timing_problems(structure: MealStructureConstraint, day: DayTarget) -> List[str]:
    problems = []
    for window in structure.meal_timing:
        for meal in day.meals:
            if meal.slot != window.slot or not meal.scheduled_time:
                continue
            at = _minutes(meal.scheduled_time)
            if at is None:
                continue
            earliest = _minutes(window.earliest) if window.earliest else None
            latest = _minutes(window.latest) if window.latest else None
            if (earliest is not None and at < earliest) or (latest is not None and at > latest):
                problems.append(
                    f"{meal.slot} at {meal.scheduled_time} outside "
                    f"{window.earliest or '--:--'}-{window.latest or '--:--'}"
                )
    return problems


# --- Week checks ---


def check_required_category_weekly(constraint: RequiredCategoryConstraint, targets: GuardrailsTargets) -> List[Violation]:
    if constraint.min_per_week is None:
        return []
    terms, tags = _category_vocabulary(constraint)
    violations = []
    for block in targets.week.blocks(complete_only=True):
        count = sum(_count_in_category(day.ingredients, terms, tags) for day in block)
        if count < constraint.min_per_week:
            violations.append(Violation(
                path=f"days[{block[0].day_index}:{block[-1].day_index + 1}]",
                detail=f"{constraint.category}: {count} of {constraint.min_per_week} per week",
                date=block[0].date,
            ))
    return violations


def _meal_groups(meals: List[MealTarget], exclude_similar: bool) -> Dict[int, List[MealTarget]]:
    """Group identical meals; with exclude_similar, equal ingredient sets also count as identical."""
    groups: Dict[int, List[MealTarget]] = {}
    by_name: Dict[str, int] = {}
    by_ingredients: Dict[Tuple[str, ...], int] = {}
    for meal in meals:
        key = by_name.get(meal.identity())
        ingredient_set = meal.ingredient_set()
        if key is None and exclude_similar and ingredient_set:
            key = by_ingredients.get(ingredient_set)
        if key is None:
            key = len(groups)
        groups.setdefault(key, []).append(meal)
        by_name.setdefault(meal.identity(), key)
        if ingredient_set:
            by_ingredients.setdefault(ingredient_set, key)
    return groups


def check_weekly_variety(constraint: WeeklyVarietyConstraint, targets: GuardrailsTargets) -> List[Violation]:
    violations = []
    for block in targets.week.blocks():
        meals = [meal for day in block for meal in day.meals]
        groups = _meal_groups(meals, constraint.exclude_similar)
        for members in groups.values():
            repeats = len(members) - 1
            if repeats > constraint.max_repeats:
                last = members[-1]
                violations.append(Violation(
                    path=last.path,
                    detail=f"'{members[0].label()}' repeated {repeats}x, maximum {constraint.max_repeats}",
                    date=last.date,
                    slot=last.slot,
                ))
        if len(block) == DAYS_PER_WEEK and len(groups) < constraint.min_unique_meals:
            violations.append(Violation(
                path=f"days[{block[0].day_index}:{block[-1].day_index + 1}]",
                detail=f"{len(groups)} unique meals, minimum {constraint.min_unique_meals}",
                date=block[0].date,
            ))
    return violations


_CHECKS: Dict[Tuple[Type, MatchTarget], Callable[..., List[Violation]]] = {
    (PerMealConstraint, MatchTarget.MEAL): check_per_meal,
    (MacroConstraint, MatchTarget.MEAL): check_macro_per_meal,
    (MacroConstraint, MatchTarget.DAY): check_macro_daily,
    (PrepTimeConstraint, MatchTarget.MEAL): check_prep_time,
    (MealPreferenceRequirement, MatchTarget.MEAL): check_meal_preference,
    (CalorieTarget, MatchTarget.DAY): check_calorie_target,
    (RequiredCategoryConstraint, MatchTarget.DAY): check_required_category_daily,
    (RequiredCategoryConstraint, MatchTarget.WEEK): check_required_category_weekly,
    (MealStructureConstraint, MatchTarget.DAY): check_meal_structure,
    (WeeklyVarietyConstraint, MatchTarget.WEEK): check_weekly_variety,
}
