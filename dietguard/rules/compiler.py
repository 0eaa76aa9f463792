"""Compile a derived DietRuleSet into guard rules the evaluator can run.

Text bans become one rule per term so that matches, overrides and
reason codes stay attributable to a single term. Forbidden-category
terms match whole words only, so "bloem" does not hit "bloemkool".
Quantitative parts of the rule set become one rule each, carrying the
constraint object.
"""

from __future__ import annotations

from typing import List

from dietguard.data_layer.models import (
    ConstraintType,
    DietRuleSet,
    IngredientConstraint,
    PerMealConstraint,
)
from dietguard.rules.guard_rules import (
    ALLERGY_PRIORITY,
    DEFAULT_PRIORITY,
    DIET_BAN_PRIORITY,
    DISLIKE_PRIORITY,
    GuardRule,
    MatchMode,
    MatchTarget,
    MealPreferenceRequirement,
    ReasonCode,
    RemediationHint,
    RuleAction,
    RuleMatch,
    RuleMetadata,
)
from dietguard.rules.vocabulary import category_terms, expand_terms, item_terms


def compile_diet_rule_set(rule_set: DietRuleSet) -> List[GuardRule]:
    """Compile a diet rule set into guard rules.

    Args:
        rule_set: Derived diet rule set

    Returns:
        Guard rules in derivation order (the evaluator sorts them)
    """
    prefix = f"diet:{rule_set.diet_key.value}"
    rules: List[GuardRule] = []

    for index, constraint in enumerate(rule_set.ingredient_constraints):
        rules.extend(_compile_ingredient_constraint(f"{prefix}:ingredient:{index}", constraint))

    for constraint in rule_set.per_meal_constraints:
        rules.append(_quantitative_rule(
            f"{prefix}:per_meal:{constraint.slot}",
            MatchTarget.MEAL,
            constraint.constraint_type,
            _per_meal_code(constraint),
            f"Per-meal minimums for {constraint.slot}",
            constraint,
        ))

    for index, constraint in enumerate(rule_set.macro_constraints):
        target = MatchTarget.DAY if constraint.scope == "daily" else MatchTarget.MEAL
        rules.append(_quantitative_rule(
            f"{prefix}:macro:{index}",
            target,
            constraint.constraint_type,
            ReasonCode.MACRO_TARGET_MISS.value,
            f"{constraint.scope.replace('_', '-').capitalize()} macro limits",
            constraint,
        ))

    for index, constraint in enumerate(rule_set.required_categories):
        if constraint.min_per_day is not None:
            rules.append(_required_category_rule(
                f"{prefix}:required:{index}:day", MatchTarget.DAY, constraint
            ))
        if constraint.min_per_week is not None:
            rules.append(_required_category_rule(
                f"{prefix}:required:{index}:week", MatchTarget.WEEK, constraint
            ))

    if rule_set.weekly_variety is not None:
        rules.append(_quantitative_rule(
            f"{prefix}:variety",
            MatchTarget.WEEK,
            rule_set.weekly_variety.constraint_type,
            ReasonCode.WEEKLY_VARIETY_VIOLATION.value,
            "Weekly variety",
            rule_set.weekly_variety,
        ))

    for index, structure in enumerate(rule_set.meal_structure):
        rules.append(_quantitative_rule(
            f"{prefix}:structure:{index}:{structure.type}",
            MatchTarget.DAY,
            structure.constraint_type,
            ReasonCode.MEAL_STRUCTURE_VIOLATION.value,
            f"Meal structure ({structure.type.replace('_', ' ')})",
            structure,
        ))

    if rule_set.calorie_target is not None:
        rules.append(_quantitative_rule(
            f"{prefix}:calories",
            MatchTarget.DAY,
            rule_set.calorie_constraint_type,
            ReasonCode.CALORIE_TARGET_MISS.value,
            "Daily calorie target",
            rule_set.calorie_target,
            specificity="user",
        ))

    prep = rule_set.prep_time_constraints
    if prep is not None and (prep.global_max is not None or prep.per_meal):
        rules.append(_quantitative_rule(
            f"{prefix}:prep_time",
            MatchTarget.MEAL,
            prep.constraint_type,
            ReasonCode.PREP_TIME_EXCEEDED.value,
            "Prep time limit",
            prep,
            specificity="user",
        ))

    for slot in sorted(rule_set.meal_preferences):
        tags = rule_set.meal_preferences[slot]
        if not tags:
            continue
        # Preferences are advisory regardless of strictness
        rules.append(_quantitative_rule(
            f"{prefix}:preference:{slot}",
            MatchTarget.MEAL,
            ConstraintType.SOFT,
            ReasonCode.MEAL_PREFERENCE_MISS.value,
            f"Meal preference for {slot}",
            MealPreferenceRequirement(slot=slot, tags=list(tags)),
            specificity="user",
        ))

    return rules


def _compile_ingredient_constraint(prefix: str, constraint: IngredientConstraint) -> List[GuardRule]:
    rules = []
    if constraint.type == "allowed":
        for category in constraint.categories:
            for term in category_terms(category):
                rules.append(GuardRule(
                    id=f"{prefix}:{category}:{term}",
                    action=RuleAction.ALLOW,
                    strictness=constraint.constraint_type,
                    priority=DEFAULT_PRIORITY,
                    target=MatchTarget.INGREDIENT,
                    match=RuleMatch(term=term),
                    metadata=RuleMetadata(
                        rule_code="ALLOWED_CATEGORY",
                        label=f"Allowed category: {category}",
                        category=category,
                        specificity="diet",
                        is_non_enforcing_allow=True,
                    ),
                ))
        return rules

    if constraint.reason == "allergy":
        code, priority, specificity, label = (
            ReasonCode.ALLERGEN_PRESENT, ALLERGY_PRIORITY, "user", "Allergy"
        )
    elif constraint.reason == "dislike":
        code, priority, specificity, label = (
            ReasonCode.DISLIKED_INGREDIENT, DISLIKE_PRIORITY, "user", "Dislike"
        )
    else:
        code, priority, specificity, label = (
            ReasonCode.FORBIDDEN_INGREDIENT, DIET_BAN_PRIORITY, "diet", "Forbidden ingredient"
        )

    for item in constraint.items:
        terms = item_terms(item)
        rules.append(GuardRule(
            id=f"{prefix}:{terms[0]}",
            action=RuleAction.BLOCK,
            strictness=constraint.constraint_type,
            priority=priority,
            target=MatchTarget.INGREDIENT,
            match=RuleMatch(term=terms[0], synonyms=terms[1:]),
            metadata=RuleMetadata(
                rule_code=code.value,
                label=f"{label}: {item}",
                specificity=specificity,
            ),
            remediation=[RemediationHint(type="remove", payload={"term": terms[0]})],
        ))

    for category in constraint.categories:
        for term in category_terms(category):
            rules.append(GuardRule(
                id=f"{prefix}:{category}:{term}",
                action=RuleAction.BLOCK,
                strictness=constraint.constraint_type,
                priority=DIET_BAN_PRIORITY,
                target=MatchTarget.INGREDIENT,
                match=RuleMatch(term=term, preferred_match_mode=MatchMode.WORD_BOUNDARY),
                metadata=RuleMetadata(
                    rule_code=ReasonCode.FORBIDDEN_CATEGORY.value,
                    label=f"Forbidden category: {category}",
                    category=category,
                    specificity="diet",
                ),
                remediation=[RemediationHint(
                    type="substitute", payload={"term": term, "category": category}
                )],
            ))
    return rules


def _required_category_rule(rule_id, target, constraint) -> GuardRule:
    qualifying = expand_terms(constraint.items) if constraint.items else category_terms(constraint.category)
    return _quantitative_rule(
        rule_id,
        target,
        constraint.constraint_type,
        ReasonCode.MISSING_REQUIRED_CATEGORY.value,
        f"Required category: {constraint.category}",
        constraint,
        remediation=[RemediationHint(
            type="add_required",
            payload={"category": constraint.category, "examples": qualifying[:5]},
        )],
    )


def _per_meal_code(constraint: PerMealConstraint) -> str:
    if any(v is not None for v in (constraint.min_protein, constraint.min_carbs, constraint.min_fat)):
        return ReasonCode.MACRO_TARGET_MISS.value
    if constraint.max_calories is not None:
        return ReasonCode.CALORIE_TARGET_MISS.value
    return ReasonCode.MISSING_REQUIRED_CATEGORY.value


def _quantitative_rule(
    rule_id: str,
    target: MatchTarget,
    strictness: ConstraintType,
    rule_code: str,
    label: str,
    constraint,
    specificity: str = "diet",
    remediation=None,
) -> GuardRule:
    return GuardRule(
        id=rule_id,
        action=RuleAction.BLOCK,
        strictness=strictness,
        priority=DEFAULT_PRIORITY,
        target=target,
        metadata=RuleMetadata(rule_code=rule_code, label=label, specificity=specificity),
        constraint=constraint,
        remediation=list(remediation or []),
    )
