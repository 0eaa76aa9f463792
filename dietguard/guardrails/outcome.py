"""Evaluation context, matches, trace and outcome types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from dietguard.data_layer.models import ConstraintType
from dietguard.rules.guard_rules import MatchMode, RemediationHint, RuleAction
from dietguard.rules.ruleset import to_jsonable


OUTCOME_ALLOWED = "allowed"
OUTCOME_WARNED = "warned"
OUTCOME_BLOCKED = "blocked"


@dataclass
class EvaluationContext:
    """Per-call context built fresh by the caller.

    Attributes:
        diet_key: Diet the plan is evaluated for
        locale: Locale of the text atoms ("nl" | "en")
        mode: Evaluation mode ("meal_planner" | "plan_chat" | "recipe_adaptation")
        timestamp: ISO timestamp of the evaluation, used in the trace id
        exclude_overrides: {forbidden_term: exclude_if_contains patterns}
        extra_synonyms: {rule term: additional synonyms}
    """

    diet_key: str
    timestamp: str
    locale: str = "nl"
    mode: str = "meal_planner"
    exclude_overrides: Dict[str, List[str]] = field(default_factory=dict)
    extra_synonyms: Dict[str, List[str]] = field(default_factory=dict)


@dataclass
class GuardRuleMatch:
    """One rule hitting one target."""

    rule_id: str
    matched_text: str
    target_path: str
    match_mode: MatchMode
    rule_code: str
    rule_label: str
    action: RuleAction
    strictness: ConstraintType
    locale: Optional[str] = None
    date: Optional[str] = None
    slot: Optional[str] = None
    suppressed: bool = False  # removed by an override

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ruleId": self.rule_id,
            "matchedText": self.matched_text,
            "targetPath": self.target_path,
            "matchMode": self.match_mode.value,
            "ruleCode": self.rule_code,
            "ruleLabel": self.rule_label,
            "strictness": self.strictness.value,
            "date": self.date,
            "slot": self.slot,
            "suppressed": self.suppressed,
        }


@dataclass
class TraceStep:
    step: int
    rule_id: str
    match_found: bool
    applied: bool
    match_details: Optional[GuardRuleMatch] = None


@dataclass
class DecisionTrace:
    evaluation_id: str
    timestamp: str
    mode: str
    ruleset_version: int
    ruleset_hash: str
    evaluator_version: str
    steps: List[TraceStep] = field(default_factory=list)
    final_outcome: str = OUTCOME_ALLOWED


@dataclass
class OutcomeCounts:
    matches: int = 0  # raw, before override suppression
    applied: int = 0  # survived suppression and affected the outcome


@dataclass
class EvaluationOutcome:
    """Result of one guardrails evaluation.

    `ok` is False exactly when the outcome is blocked.
    """

    ok: bool
    outcome: str
    reason_codes: List[str]
    summary: str
    ruleset_version: int
    content_hash: str
    counts: OutcomeCounts
    matches: List[GuardRuleMatch] = field(default_factory=list)
    applied_rule_ids: List[str] = field(default_factory=list)
    primary_matches: Dict[str, GuardRuleMatch] = field(default_factory=dict)
    remediation_hints: List[RemediationHint] = field(default_factory=list)
    worst_day: Optional[str] = None
    trace: Optional[DecisionTrace] = None

    @property
    def is_blocked(self) -> bool:
        return self.outcome == OUTCOME_BLOCKED

    def to_diagnostics(self) -> Dict[str, Any]:
        """Camel-cased summary stored next to a persisted plan."""
        return {
            "ok": self.ok,
            "outcome": self.outcome,
            "reasonCodes": list(self.reason_codes),
            "summary": self.summary,
            "rulesetVersion": self.ruleset_version,
            "contentHash": self.content_hash,
            "counts": {"matches": self.counts.matches, "applied": self.counts.applied},
            "appliedRuleIds": list(self.applied_rule_ids),
            "worstDay": self.worst_day,
            "matches": [m.to_dict() for m in self.matches if not m.suppressed],
            "remediationHints": [to_jsonable(h) for h in self.remediation_hints],
            "evaluationId": self.trace.evaluation_id if self.trace else None,
        }
