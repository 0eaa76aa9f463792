"""Formatters for rule sets and guardrails outcomes (JSON and Markdown)."""

import json
from typing import Any, Dict, List

from dietguard.data_layer.models import DietRuleSet, IngredientConstraint
from dietguard.guardrails.outcome import OUTCOME_ALLOWED, OUTCOME_BLOCKED, EvaluationOutcome
from dietguard.rules.ruleset import to_jsonable


OUTCOME_BADGES = {
    OUTCOME_ALLOWED: "✅ **Allowed**",
    "warned": "⚠️ **Warned**",
    OUTCOME_BLOCKED: "⛔ **Blocked**",
}


def _fmt_number(value: float) -> str:
    return str(int(value)) if value == int(value) else f"{value:.1f}"


def format_ingredient_constraint(constraint: IngredientConstraint) -> str:
    """Format an ingredient constraint as one line (e.g. "forbidden (hard, allergy): pinda")."""
    qualifiers = [constraint.constraint_type.value]
    if constraint.reason:
        qualifiers.append(constraint.reason)
    parts = []
    if constraint.categories:
        parts.append("categories " + ", ".join(constraint.categories))
    if constraint.items:
        parts.append("items " + ", ".join(constraint.items))
    return f"{constraint.type} ({', '.join(qualifiers)}): {'; '.join(parts) or '-'}"


def format_rule_set_markdown(rule_set: DietRuleSet) -> str:
    """Format a derived rule set as Markdown."""
    lines = [f"# Diet Rule Set: {rule_set.diet_key.value}\n"]

    if rule_set.ingredient_constraints:
        lines.append("## Ingredient Constraints")
        for constraint in rule_set.ingredient_constraints:
            lines.append(f"- {format_ingredient_constraint(constraint)}")
        lines.append("")

    if rule_set.required_categories:
        lines.append("## Required Categories")
        for required in rule_set.required_categories:
            amounts = []
            if required.min_per_day is not None:
                amounts.append(f"{required.min_per_day}/day")
            if required.min_per_week is not None:
                amounts.append(f"{required.min_per_week}/week")
            lines.append(
                f"- {required.category}: {', '.join(amounts)} ({required.constraint_type.value})"
            )
        lines.append("")

    if rule_set.per_meal_constraints:
        lines.append("## Per-Meal Constraints")
        for per_meal in rule_set.per_meal_constraints:
            limits = []
            for label, value in (
                ("min protein", per_meal.min_protein),
                ("min carbs", per_meal.min_carbs),
                ("min fat", per_meal.min_fat),
                ("max calories", per_meal.max_calories),
            ):
                if value is not None:
                    limits.append(f"{label} {_fmt_number(value)}")
            if per_meal.required_categories:
                limits.append("requires " + ", ".join(per_meal.required_categories))
            lines.append(f"- {per_meal.slot}: {', '.join(limits)} ({per_meal.constraint_type.value})")
        lines.append("")

    if rule_set.macro_constraints:
        lines.append("## Macro Constraints")
        for macro in rule_set.macro_constraints:
            limits = []
            for label, value in (
                ("max carbs", macro.max_carbs),
                ("max saturated fat", macro.max_saturated_fat),
                ("min protein", macro.min_protein),
                ("min fat", macro.min_fat),
            ):
                if value is not None:
                    limits.append(f"{label} {_fmt_number(value)}g")
            if macro.forbidden_types:
                limits.append("no " + ", ".join(macro.forbidden_types))
            lines.append(f"- {macro.scope}: {', '.join(limits) or '-'} ({macro.constraint_type.value})")
        lines.append("")

    if rule_set.weekly_variety is not None:
        variety = rule_set.weekly_variety
        lines.append("## Weekly Variety")
        lines.append(f"- Max repeats: {variety.max_repeats}")
        lines.append(f"- Min unique meals: {variety.min_unique_meals}")
        lines.append("")

    if rule_set.meal_structure:
        lines.append("## Meal Structure")
        for structure in rule_set.meal_structure:
            lines.append(f"- {structure.type} ({structure.constraint_type.value})")
        lines.append("")

    if rule_set.calorie_target is not None:
        target = rule_set.calorie_target
        bounds = [
            f"{label} {_fmt_number(value)}"
            for label, value in (("min", target.min), ("max", target.max), ("target", target.target))
            if value is not None
        ]
        lines.append("## Calories")
        lines.append(f"- {', '.join(bounds)} kcal ({rule_set.calorie_constraint_type.value})")
        lines.append("")

    return "\n".join(lines)


def format_rule_set_json(rule_set: DietRuleSet) -> Dict[str, Any]:
    """Format a derived rule set as a JSON-compatible dictionary."""
    return to_jsonable(rule_set)


def format_outcome_markdown(outcome: EvaluationOutcome) -> str:
    """Format an evaluation outcome as Markdown."""
    lines = ["# Guardrails Evaluation\n"]
    lines.append(OUTCOME_BADGES.get(outcome.outcome, outcome.outcome))
    lines.append("")
    lines.append(outcome.summary)
    lines.append("")
    lines.append(f"**Ruleset version:** {outcome.ruleset_version}")
    lines.append(f"**Content hash:** `{outcome.content_hash}`")
    if outcome.worst_day:
        lines.append(f"**Worst day:** {outcome.worst_day}")
    lines.append("")

    if outcome.reason_codes:
        lines.append("## Reason Codes")
        for code in outcome.reason_codes:
            lines.append(f"- {code}")
        lines.append("")

    if outcome.primary_matches:
        lines.append("## Violations")
        for path, match in outcome.primary_matches.items():
            lines.append(f"- `{path}`: {match.matched_text} ({match.rule_label}, {match.strictness.value})")
        lines.append("")

    suggestions = _substitutions(outcome)
    if suggestions:
        lines.append("## Suggestions")
        for suggestion in suggestions:
            lines.append(f"- {suggestion}")
        lines.append("")

    return "\n".join(lines)


def _substitutions(outcome: EvaluationOutcome) -> List[str]:
    suggestions = []
    for hint in outcome.remediation_hints:
        if hint.type == "substitute" and hint.payload.get("alternatives"):
            original = hint.payload.get("original", "")
            suggestions.append(f"Replace '{original}' with {' or '.join(hint.payload['alternatives'])}")
    return suggestions


def format_outcome_json(outcome: EvaluationOutcome) -> Dict[str, Any]:
    """Diagnostics plus the primary match per target path."""
    result = outcome.to_diagnostics()
    result["primaryMatches"] = {path: match.to_dict() for path, match in outcome.primary_matches.items()}
    return result


def to_json_string(data: Dict[str, Any], indent: int = 2) -> str:
    return json.dumps(data, indent=indent, ensure_ascii=False)
