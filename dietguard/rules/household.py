"""Map household avoid-rule rows into guard rules."""

from typing import List

from dietguard.data_layer.models import ConstraintType
from dietguard.data_layer.records import HouseholdAvoidRuleRecord
from dietguard.rules.guard_rules import (
    HOUSEHOLD_RULE_PRIORITY,
    GuardRule,
    MatchMode,
    MatchTarget,
    ReasonCode,
    RuleAction,
    RuleMatch,
    RuleMetadata,
)


def household_strictness(record: HouseholdAvoidRuleRecord) -> ConstraintType:
    """A "warning" rule type is always soft; otherwise the strictness column, hard by default."""
    if (record.rule_type or "").strip() == "warning":
        return ConstraintType.SOFT
    if record.strictness == "soft":
        return ConstraintType.SOFT
    return ConstraintType.HARD


def household_rules_from_records(
    household_id: str,
    records: List[HouseholdAvoidRuleRecord],
    priority: int = HOUSEHOLD_RULE_PRIORITY,
) -> List[GuardRule]:
    """Build one ingredient block rule per household avoid row.

    NEVO-code rows match by canonical id; term rows match by lowercase
    substring. All rules share the elevated household priority so their
    metadata wins when a diet rule matches the same ingredient.
    """
    rules = []
    for index, record in enumerate(records):
        if record.match_mode == "nevo_code":
            match = RuleMatch(
                term=record.match_value,
                canonical_id=record.match_value,
                preferred_match_mode=MatchMode.CANONICAL_ID,
            )
        else:
            match = RuleMatch(
                term=record.match_value.lower(),
                preferred_match_mode=MatchMode.SUBSTRING,
            )
        rules.append(GuardRule(
            id=f"household-avoid-{household_id}-{index}",
            action=RuleAction.BLOCK,
            strictness=household_strictness(record),
            priority=priority,
            target=MatchTarget.INGREDIENT,
            match=match,
            metadata=RuleMetadata(
                rule_code=ReasonCode.FORBIDDEN_INGREDIENT.value,
                label="Household avoid rule",
                specificity="user",
            ),
        ))
    return rules
