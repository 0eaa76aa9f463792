"""Guard rule model shared by the compiler, loaders and evaluator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from dietguard.data_layer.models import ConstraintType


class RuleAction(Enum):
    ALLOW = "allow"
    BLOCK = "block"


class MatchTarget(Enum):
    """What a rule is matched against.

    INGREDIENT, STEP and METADATA rules match text atoms. MEAL, DAY and
    WEEK rules carry a quantitative constraint checked against aggregates.
    """

    INGREDIENT = "ingredient"
    STEP = "step"
    METADATA = "metadata"
    MEAL = "meal"
    DAY = "day"
    WEEK = "week"

    @property
    def is_text(self) -> bool:
        return self in (MatchTarget.INGREDIENT, MatchTarget.STEP, MatchTarget.METADATA)


class MatchMode(Enum):
    EXACT = "exact"
    WORD_BOUNDARY = "word_boundary"
    SUBSTRING = "substring"
    CANONICAL_ID = "canonical_id"
    AGGREGATE = "aggregate"  # quantitative rules, never used for text


class ReasonCode(Enum):
    FORBIDDEN_INGREDIENT = "FORBIDDEN_INGREDIENT"
    FORBIDDEN_CATEGORY = "FORBIDDEN_CATEGORY"
    ALLERGEN_PRESENT = "ALLERGEN_PRESENT"
    DISLIKED_INGREDIENT = "DISLIKED_INGREDIENT"
    MISSING_REQUIRED_CATEGORY = "MISSING_REQUIRED_CATEGORY"
    INVALID_CATEGORY = "INVALID_CATEGORY"
    INVALID_NEVO_CODE = "INVALID_NEVO_CODE"
    INVALID_CANONICAL_ID = "INVALID_CANONICAL_ID"
    CALORIE_TARGET_MISS = "CALORIE_TARGET_MISS"
    MACRO_TARGET_MISS = "MACRO_TARGET_MISS"
    MEAL_PREFERENCE_MISS = "MEAL_PREFERENCE_MISS"
    MEAL_STRUCTURE_VIOLATION = "MEAL_STRUCTURE_VIOLATION"
    WEEKLY_VARIETY_VIOLATION = "WEEKLY_VARIETY_VIOLATION"
    PREP_TIME_EXCEEDED = "PREP_TIME_EXCEEDED"
    SOFT_CONSTRAINT_VIOLATION = "SOFT_CONSTRAINT_VIOLATION"
    EVALUATOR_ERROR = "EVALUATOR_ERROR"
    EVALUATOR_WARNING = "EVALUATOR_WARNING"
    RULESET_LOAD_ERROR = "RULESET_LOAD_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"

    @classmethod
    def is_known(cls, code: Optional[str]) -> bool:
        return any(member.value == code for member in cls)


# Specificity scores used for rule ordering
SPECIFICITY_SCORES = {"user": 3, "diet": 2, "global": 1}

HOUSEHOLD_RULE_PRIORITY = 10_000
ALLERGY_PRIORITY = 100
DIET_BAN_PRIORITY = 80
DEFAULT_PRIORITY = 50
DISLIKE_PRIORITY = 40


@dataclass
class RuleMatch:
    """What an ingredient, step or metadata rule matches on."""

    term: str
    synonyms: List[str] = field(default_factory=list)
    canonical_id: Optional[str] = None
    preferred_match_mode: Optional[MatchMode] = None


@dataclass
class RuleMetadata:
    rule_code: str
    label: str
    category: Optional[str] = None
    specificity: str = "diet"  # "user" | "diet" | "global"
    is_non_enforcing_allow: bool = False


@dataclass
class RemediationHint:
    """Suggestion attached to a rule, e.g. a substitute ingredient."""

    type: str  # "substitute" | "remove" | "add_required"
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class MealPreferenceRequirement:
    """Requested tags for a meal slot. At least one tag should appear."""

    slot: str
    tags: List[str] = field(default_factory=list)


@dataclass
class GuardRule:
    """A single guard rule.

    Text rules carry `match`; quantitative rules (meal/day/week targets)
    carry the constraint object they check in `constraint`.
    """

    id: str
    action: RuleAction
    strictness: ConstraintType
    priority: int
    target: MatchTarget
    metadata: RuleMetadata
    match: Optional[RuleMatch] = None
    constraint: Any = None
    remediation: List[RemediationHint] = field(default_factory=list)

    @property
    def specificity_score(self) -> int:
        return SPECIFICITY_SCORES.get(self.metadata.specificity, SPECIFICITY_SCORES["diet"])

    @property
    def is_hard(self) -> bool:
        return self.strictness is ConstraintType.HARD
