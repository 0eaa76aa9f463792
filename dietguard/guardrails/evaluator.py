"""Guardrails decision procedure.

evaluate_guardrails(ruleset, context, targets) -> EvaluationOutcome

Pure, deterministic, single pass. Rules are sorted by priority,
specificity and id; the order only decides whose metadata is attached
to a target when several rules hit it. Every applied rule contributes
its own strictness to the outcome:

    blocked  at least one hard block rule applied
    warned   only soft block rules applied
    allowed  nothing applied (allow rules never change the outcome)
"""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from dietguard.data_layer.models import ConstraintType
from dietguard.guardrails.checks import run_check
from dietguard.guardrails.matchers import match_text_atom, matched_text
from dietguard.guardrails.outcome import (
    OUTCOME_ALLOWED,
    OUTCOME_BLOCKED,
    OUTCOME_WARNED,
    DecisionTrace,
    EvaluationContext,
    EvaluationOutcome,
    GuardRuleMatch,
    OutcomeCounts,
    TraceStep,
)
from dietguard.guardrails.targets import GuardrailsTargets, TextAtom
from dietguard.rules.guard_rules import (
    GuardRule,
    MatchMode,
    MatchTarget,
    ReasonCode,
    RuleAction,
)
from dietguard.rules.overrides import is_excluded_by_override
from dietguard.rules.ruleset import GuardrailsRuleset


EVALUATOR_VERSION = "1.0.0"


def sort_rules(rules: List[GuardRule]) -> List[GuardRule]:
    """Priority DESC, specificity DESC (user > diet > global), rule id ASC."""
    return sorted(rules, key=lambda r: (-r.priority, -r.specificity_score, r.id))


def validate_rule(rule: GuardRule) -> Optional[ReasonCode]:
    """Return a config-error code for a misconfigured rule, else None.

    Substring matching on step text is not allowed: it produces too many
    false positives in free-form instructions.
    """
    if (
        rule.target is MatchTarget.STEP
        and rule.match is not None
        and rule.match.preferred_match_mode is MatchMode.SUBSTRING
    ):
        return ReasonCode.EVALUATOR_ERROR if rule.is_hard else ReasonCode.EVALUATOR_WARNING
    if not rule.target.is_text and rule.constraint is None:
        return ReasonCode.EVALUATOR_ERROR if rule.is_hard else ReasonCode.EVALUATOR_WARNING
    return None


def resolve_match_mode(rule: GuardRule, target_type: MatchTarget) -> MatchMode:
    """Preferred mode if set, else a per-target default."""
    if rule.match is not None and rule.match.preferred_match_mode is not None:
        return rule.match.preferred_match_mode
    if target_type is MatchTarget.METADATA and rule.match is not None and rule.match.canonical_id:
        return MatchMode.CANONICAL_ID
    if target_type is MatchTarget.INGREDIENT:
        return MatchMode.SUBSTRING
    if target_type is MatchTarget.STEP:
        return MatchMode.WORD_BOUNDARY
    return MatchMode.EXACT


def reason_code_for(rule: GuardRule) -> str:
    if ReasonCode.is_known(rule.metadata.rule_code):
        return rule.metadata.rule_code
    if rule.strictness is ConstraintType.SOFT:
        return ReasonCode.SOFT_CONSTRAINT_VIOLATION.value
    if rule.action is RuleAction.BLOCK:
        return ReasonCode.FORBIDDEN_INGREDIENT.value
    return ReasonCode.UNKNOWN_ERROR.value


def _new_match(rule: GuardRule, atom_path: str, text: str, mode: MatchMode, **extra) -> GuardRuleMatch:
    return GuardRuleMatch(
        rule_id=rule.id,
        matched_text=text,
        target_path=atom_path,
        match_mode=mode,
        rule_code=rule.metadata.rule_code,
        rule_label=rule.metadata.label,
        action=rule.action,
        strictness=rule.strictness,
        **extra,
    )


def _match_atom(
    rule: GuardRule,
    atom: TextAtom,
    terms: List[str],
    mode: MatchMode,
    context: EvaluationContext,
) -> Optional[GuardRuleMatch]:
    """First unsuppressed term hit on an atom; a suppressed hit only if nothing else matched.

    A rule's canonical id is tried first whenever the atom carries one.
    """
    candidates: List[Tuple[str, MatchMode]] = []
    if rule.match.canonical_id and atom.canonical_id and mode is not MatchMode.CANONICAL_ID:
        candidates.append((rule.match.canonical_id, MatchMode.CANONICAL_ID))
    candidates.extend((term, mode) for term in terms)

    suppressed_hit = None
    for term, term_mode in candidates:
        if not match_text_atom(atom, term, term_mode):
            continue
        suppressed = rule.action is RuleAction.BLOCK and (
            is_excluded_by_override(atom.text, term, context.exclude_overrides)
            or is_excluded_by_override(atom.text, rule.match.term, context.exclude_overrides)
        )
        match = _new_match(
            rule,
            atom.path,
            matched_text(atom, term, term_mode),
            term_mode,
            locale=atom.locale,
            date=atom.date,
            slot=atom.slot,
            suppressed=suppressed,
        )
        if not suppressed:
            return match
        if suppressed_hit is None:
            suppressed_hit = match
    return suppressed_hit


def find_rule_matches(
    rule: GuardRule,
    targets: GuardrailsTargets,
    context: EvaluationContext,
) -> List[GuardRuleMatch]:
    """Match a text rule against its targets, at most one match per target path.

    Block rules aimed at ingredients are also run against step text.
    """
    if rule.match is None:
        return []
    slots = [rule.target]
    if rule.action is RuleAction.BLOCK and rule.target is MatchTarget.INGREDIENT:
        slots.append(MatchTarget.STEP)

    terms = [rule.match.term] + list(rule.match.synonyms)
    for synonym in context.extra_synonyms.get(rule.match.term, []):
        if synonym not in terms:
            terms.append(synonym)

    matches: List[GuardRuleMatch] = []
    seen_paths = set()
    for slot in slots:
        atoms = targets.text_atoms(slot.value)
        if not atoms:
            continue
        mode = resolve_match_mode(rule, slot)
        for atom in atoms:
            if atom.path in seen_paths:
                continue
            match = _match_atom(rule, atom, terms, mode, context)
            if match is not None:
                seen_paths.add(atom.path)
                matches.append(match)
    return matches


def find_constraint_matches(rule: GuardRule, targets: GuardrailsTargets) -> List[GuardRuleMatch]:
    """Run a quantitative rule's check and turn each violation into a match."""
    return [
        _new_match(
            rule,
            violation.path,
            violation.detail,
            MatchMode.AGGREGATE,
            date=violation.date,
            slot=violation.slot,
        )
        for violation in run_check(rule, targets)
    ]


def _summary(outcome: str, hard_count: int, soft_count: int, allow_matches: int) -> str:
    if outcome == OUTCOME_BLOCKED:
        return f"Blocked: {hard_count} hard constraint violation(s) detected"
    if outcome == OUTCOME_WARNED:
        return f"Warned: {soft_count} soft constraint violation(s) detected"
    if allow_matches:
        return f"Allowed: {allow_matches} allow rule(s) matched"
    return "Allowed: No violations detected"


def _worst_day(applied: List[GuardRuleMatch], targets: GuardrailsTargets) -> Optional[str]:
    counts: Dict[str, int] = {}
    for match in applied:
        if match.date:
            counts[match.date] = counts.get(match.date, 0) + 1
    if not counts:
        return None
    order = {day.date: day.day_index for day in targets.days}
    return min(counts, key=lambda date: (-counts[date], order.get(date, len(order)), date))


def evaluate_guardrails(
    ruleset: GuardrailsRuleset,
    context: EvaluationContext,
    targets: GuardrailsTargets,
) -> EvaluationOutcome:
    """Evaluate every rule against its targets and aggregate one outcome.

    Args:
        ruleset: Loaded ruleset (with any household rules merged in)
        context: Fresh evaluation context
        targets: Extracted targets

    Returns:
        EvaluationOutcome carrying the ruleset's version and content hash unchanged
    """
    sorted_rules = sort_rules(ruleset.rules)
    trace = DecisionTrace(
        evaluation_id=f"eval-{context.timestamp}-{context.mode}",
        timestamp=context.timestamp,
        mode=context.mode,
        ruleset_version=ruleset.version,
        ruleset_hash=ruleset.content_hash,
        evaluator_version=EVALUATOR_VERSION,
    )

    all_matches: List[GuardRuleMatch] = []
    applied_matches: List[GuardRuleMatch] = []
    applied_rules: List[GuardRule] = []
    reason_codes: List[str] = []
    primary: Dict[str, GuardRuleMatch] = {}
    has_hard = has_soft = False
    allow_matches = 0

    for step, rule in enumerate(sorted_rules, start=1):
        config_error = validate_rule(rule)
        if config_error is not None:
            applied_rules.append(rule)
            reason_codes.append(config_error.value)
            has_hard = has_hard or config_error is ReasonCode.EVALUATOR_ERROR
            has_soft = has_soft or config_error is ReasonCode.EVALUATOR_WARNING
            trace.steps.append(TraceStep(step=step, rule_id=rule.id, match_found=False, applied=True))
            continue

        if rule.target.is_text:
            matches = find_rule_matches(rule, targets, context)
        else:
            matches = find_constraint_matches(rule, targets)
        all_matches.extend(matches)

        effective = [m for m in matches if not m.suppressed]
        applied = False
        if rule.action is RuleAction.ALLOW:
            allow_matches += len(effective)
        elif effective:
            applied = True
            applied_rules.append(rule)
            applied_matches.extend(effective)
            reason_codes.append(reason_code_for(rule))
            if rule.is_hard:
                has_hard = True
            else:
                has_soft = True
            for match in effective:
                primary.setdefault(match.target_path, match)

        trace.steps.append(TraceStep(
            step=step,
            rule_id=rule.id,
            match_found=bool(matches),
            applied=applied,
            match_details=matches[0] if matches else None,
        ))

    if has_hard:
        outcome = OUTCOME_BLOCKED
    elif has_soft:
        outcome = OUTCOME_WARNED
    else:
        outcome = OUTCOME_ALLOWED
    trace.final_outcome = outcome

    hard_count = sum(1 for rule in applied_rules if rule.is_hard)
    soft_count = len(applied_rules) - hard_count
    remediation = [hint for rule in applied_rules for hint in rule.remediation]

    return EvaluationOutcome(
        ok=outcome != OUTCOME_BLOCKED,
        outcome=outcome,
        reason_codes=list(dict.fromkeys(reason_codes)),
        summary=_summary(outcome, hard_count, soft_count, allow_matches),
        ruleset_version=ruleset.version,
        content_hash=ruleset.content_hash,
        counts=OutcomeCounts(matches=len(all_matches), applied=len(applied_matches)),
        matches=all_matches,
        applied_rule_ids=[rule.id for rule in applied_rules],
        primary_matches=primary,
        remediation_hints=remediation,
        worst_day=_worst_day(applied_matches, targets),
        trace=trace,
    )
