"""Guardrails ruleset: the rules active for one evaluation, with version and content hash."""

from __future__ import annotations

import dataclasses
import hashlib
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from dietguard.data_layer.models import ConstraintType
from dietguard.rules.guard_rules import (
    DEFAULT_PRIORITY,
    GuardRule,
    MatchTarget,
    ReasonCode,
    RemediationHint,
    RuleAction,
    RuleMatch,
    RuleMetadata,
)


@dataclass
class RulesetHeuristics:
    added_sugar_terms: List[str] = field(default_factory=list)


@dataclass
class RulesetProvenance:
    """Where the rules came from. Excluded from the content hash."""

    source: str  # "database" | "profile" | "fallback"
    loaded_at: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GuardrailsRuleset:
    """Rules plus the version/hash pair callers record next to an outcome.

    Attributes:
        diet_key: Diet the rules were loaded for
        version: Rule-table version, bumped on every admin write
        rules: Guard rules (unsorted; the evaluator sorts)
        content_hash: SHA-256 over diet key, rules sorted by id, and heuristics
    """

    diet_key: str
    version: int
    rules: List[GuardRule]
    content_hash: str
    heuristics: Optional[RulesetHeuristics] = None
    provenance: Optional[RulesetProvenance] = None


def to_jsonable(value: Any) -> Any:
    """Convert rules and constraint payloads into plain JSON-compatible values."""
    if isinstance(value, Enum):
        return value.value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def compute_content_hash(
    diet_key: str,
    rules: List[GuardRule],
    heuristics: Optional[RulesetHeuristics] = None,
) -> str:
    """Stable SHA-256 hex digest over the policy payload.

    Rule order does not affect the hash. Provenance and load timestamps
    are not part of the payload.
    """
    payload = {
        "diet_key": diet_key,
        "rules": [to_jsonable(rule) for rule in sorted(rules, key=lambda r: r.id)],
        "heuristics": to_jsonable(heuristics),
    }
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def build_ruleset(
    diet_key: str,
    version: int,
    rules: List[GuardRule],
    heuristics: Optional[RulesetHeuristics] = None,
    provenance: Optional[RulesetProvenance] = None,
) -> GuardrailsRuleset:
    """Build a ruleset with its content hash computed from the rules."""
    return GuardrailsRuleset(
        diet_key=diet_key,
        version=version,
        rules=list(rules),
        content_hash=compute_content_hash(diet_key, rules, heuristics),
        heuristics=heuristics,
        provenance=provenance,
    )


def merge_rules(ruleset: GuardrailsRuleset, extra_rules: List[GuardRule]) -> GuardrailsRuleset:
    """Append rules (household avoid rules) to a ruleset.

    Additive only: existing rules are never replaced. Version and content
    hash stay those of the loaded base ruleset.
    """
    if not extra_rules:
        return ruleset
    return dataclasses.replace(ruleset, rules=list(ruleset.rules) + list(extra_rules))


FALLBACK_ADDED_SUGAR_TERMS = ["suiker", "siroop", "stroop"]


def fallback_ruleset(diet_key: str, loaded_at: str) -> GuardrailsRuleset:
    """Hard-coded minimal ruleset used when no table or profile rules exist."""
    rules = [
        GuardRule(
            id="fallback:melk",
            action=RuleAction.BLOCK,
            strictness=ConstraintType.HARD,
            priority=DEFAULT_PRIORITY,
            target=MatchTarget.INGREDIENT,
            match=RuleMatch(term="melk", synonyms=["koemelk", "volle melk"]),
            metadata=RuleMetadata(
                rule_code=ReasonCode.FORBIDDEN_INGREDIENT.value,
                label="Lactose-intolerantie",
                specificity="global",
            ),
        ),
        GuardRule(
            id="fallback:pasta",
            action=RuleAction.BLOCK,
            strictness=ConstraintType.HARD,
            priority=DEFAULT_PRIORITY,
            target=MatchTarget.INGREDIENT,
            match=RuleMatch(
                term="pasta",
                synonyms=["spaghetti", "penne", "fusilli", "macaroni", "orzo"],
            ),
            metadata=RuleMetadata(
                rule_code=ReasonCode.FORBIDDEN_INGREDIENT.value,
                label="Glutenvrij dieet",
                specificity="global",
            ),
            remediation=[RemediationHint(
                type="substitute",
                payload={"original": "pasta", "alternatives": ["rijstnoedels", "zucchininoedels"]},
            )],
        ),
    ]
    return build_ruleset(
        diet_key=diet_key,
        version=1,
        rules=rules,
        heuristics=RulesetHeuristics(added_sugar_terms=list(FALLBACK_ADDED_SUGAR_TERMS)),
        provenance=RulesetProvenance(
            source="fallback",
            loaded_at=loaded_at,
            metadata={"reason": "No rules found, using hard-coded fallback"},
        ),
    )
