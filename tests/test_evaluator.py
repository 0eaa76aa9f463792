"""Unit tests for the guardrails decision procedure."""

import pytest

from dietguard.data_layer.models import (
    ConstraintType,
    MacroConstraint,
    Meal,
    MealIngredientRef,
    MealPlan,
    MealPlanDay,
)
from dietguard.guardrails.evaluator import evaluate_guardrails, resolve_match_mode, sort_rules, validate_rule
from dietguard.guardrails.outcome import EvaluationContext
from dietguard.guardrails.targets import GuardrailsTargets, TextAtom, extract_targets
from dietguard.rules.guard_rules import (
    GuardRule,
    MatchMode,
    MatchTarget,
    RemediationHint,
    RuleAction,
    RuleMatch,
    RuleMetadata,
)
from dietguard.rules.ruleset import build_ruleset


def _make_rule(
    rule_id: str,
    term: str = "rijst",
    strictness: ConstraintType = ConstraintType.HARD,
    action: RuleAction = RuleAction.BLOCK,
    priority: int = 50,
    target: MatchTarget = MatchTarget.INGREDIENT,
    synonyms=None,
    mode=None,
    canonical_id=None,
    specificity: str = "diet",
    rule_code: str = "FORBIDDEN_INGREDIENT",
    constraint=None,
    remediation=None,
) -> GuardRule:
    return GuardRule(
        id=rule_id,
        action=action,
        strictness=strictness,
        priority=priority,
        target=target,
        match=RuleMatch(
            term=term,
            synonyms=list(synonyms or []),
            canonical_id=canonical_id,
            preferred_match_mode=mode,
        ) if target.is_text else None,
        metadata=RuleMetadata(rule_code=rule_code, label=f"Rule {rule_id}", specificity=specificity),
        constraint=constraint,
        remediation=list(remediation or []),
    )


def _make_meal(name, ingredients, date="2026-01-05", slot="lunch", codes=None) -> Meal:
    codes = codes or [str(100 + i) for i in range(len(ingredients))]
    return Meal(
        id=f"{date}-{slot}",
        name=name,
        slot=slot,
        date=date,
        ingredient_refs=[
            MealIngredientRef(nevo_code=code, quantity_g=100, display_name=text)
            for code, text in zip(codes, ingredients)
        ],
    )


def _make_targets(*meals):
    by_date = {}
    for meal in meals:
        by_date.setdefault(meal.date, []).append(meal)
    plan = MealPlan(days=[MealPlanDay(date=date, meals=day_meals) for date, day_meals in by_date.items()])
    return extract_targets(plan, "nl")


def _make_context(overrides=None, synonyms=None) -> EvaluationContext:
    return EvaluationContext(
        diet_key="keto",
        timestamp="2026-01-05T12:00:00+00:00",
        exclude_overrides=overrides or {},
        extra_synonyms=synonyms or {},
    )


def _evaluate(rules, targets, context=None):
    ruleset = build_ruleset("keto", 3, rules)
    return evaluate_guardrails(ruleset, context or _make_context(), targets)


class TestOutcomeAggregation:
    """allowed / warned / blocked."""

    def test_no_rules_is_allowed(self):
        outcome = _evaluate([], _make_targets(_make_meal("Kip", ["kipfilet"])))
        assert outcome.outcome == "allowed"
        assert outcome.ok is True
        assert outcome.reason_codes == []
        assert outcome.summary == "Allowed: No violations detected"

    def test_hard_match_blocks(self):
        """Test that one hard block match blocks the plan."""
        outcome = _evaluate([_make_rule("r-rijst")], _make_targets(_make_meal("Kip", ["kipfilet", "witte rijst"])))
        assert outcome.outcome == "blocked"
        assert outcome.ok is False
        assert outcome.is_blocked
        assert outcome.reason_codes == ["FORBIDDEN_INGREDIENT"]
        assert outcome.counts.applied == 1
        assert outcome.applied_rule_ids == ["r-rijst"]
        assert outcome.summary == "Blocked: 1 hard constraint violation(s) detected"
        match = outcome.primary_matches["days[0].meals[0].ingredients[1]"]
        assert match.matched_text == "rijst"
        assert match.match_mode is MatchMode.SUBSTRING
        assert match.date == "2026-01-05"
        assert match.slot == "lunch"

    def test_soft_match_warns(self):
        rule = _make_rule("r-honing", "honing", strictness=ConstraintType.SOFT)
        outcome = _evaluate([rule], _make_targets(_make_meal("Yoghurt", ["honing"])))
        assert outcome.outcome == "warned"
        assert outcome.ok is True
        assert outcome.summary == "Warned: 1 soft constraint violation(s) detected"

    def test_hard_and_soft_blocks(self):
        rules = [
            _make_rule("r-honing", "honing", strictness=ConstraintType.SOFT),
            _make_rule("r-rijst"),
        ]
        outcome = _evaluate(rules, _make_targets(_make_meal("Bowl", ["rijst", "honing"])))
        assert outcome.outcome == "blocked"
        assert set(outcome.applied_rule_ids) == {"r-honing", "r-rijst"}

    def test_allow_rules_never_change_outcome(self):
        """Test that a matching allow rule leaves the outcome allowed."""
        rule = _make_rule("allow-rijst", action=RuleAction.ALLOW, rule_code="ALLOWED_CATEGORY")
        outcome = _evaluate([rule], _make_targets(_make_meal("Kip", ["rijst"])))
        assert outcome.outcome == "allowed"
        assert outcome.applied_rule_ids == []
        assert outcome.summary == "Allowed: 1 allow rule(s) matched"

    def test_adding_a_hard_rule_never_relaxes(self):
        """Test that adding rules can only keep or worsen the outcome."""
        targets = _make_targets(_make_meal("Bowl", ["rijst", "honing"]))
        soft = _make_rule("r-honing", "honing", strictness=ConstraintType.SOFT)
        assert _evaluate([soft], targets).outcome == "warned"
        assert _evaluate([soft, _make_rule("r-rijst")], targets).outcome == "blocked"
        assert _evaluate([soft, _make_rule("r-rijst"), _make_rule("allow", action=RuleAction.ALLOW)], targets).outcome == "blocked"

    def test_reason_codes_are_unique(self):
        rules = [_make_rule("r-rijst"), _make_rule("r-pasta", "pasta")]
        outcome = _evaluate(rules, _make_targets(_make_meal("Mix", ["rijst", "pasta"])))
        assert outcome.reason_codes == ["FORBIDDEN_INGREDIENT"]

    def test_unknown_rule_code_maps_by_strictness(self):
        rule = _make_rule("r-custom", "honing", strictness=ConstraintType.SOFT, rule_code="CUSTOM")
        outcome = _evaluate([rule], _make_targets(_make_meal("Thee", ["honing"])))
        assert outcome.reason_codes == ["SOFT_CONSTRAINT_VIOLATION"]


class TestRuleOrdering:
    """Deterministic rule order."""

    def test_sort_by_priority_specificity_id(self):
        rules = [
            _make_rule("b", priority=50),
            _make_rule("a", priority=50),
            _make_rule("user", priority=50, specificity="user"),
            _make_rule("high", priority=100, specificity="global"),
        ]
        assert [r.id for r in sort_rules(rules)] == ["high", "user", "a", "b"]

    def test_primary_match_comes_from_highest_priority_rule(self):
        """Test that the household rule's metadata is attached when both rules hit."""
        rules = [
            _make_rule("diet-rijst", priority=80),
            _make_rule("household-avoid-h-0", priority=10_000, specificity="user"),
        ]
        outcome = _evaluate(rules, _make_targets(_make_meal("Kip", ["rijst"])))
        assert outcome.primary_matches["days[0].meals[0].ingredients[0]"].rule_id == "household-avoid-h-0"
        assert outcome.applied_rule_ids == ["household-avoid-h-0", "diet-rijst"]

    def test_evaluation_is_deterministic(self):
        rules = [_make_rule("r-rijst"), _make_rule("r-pasta", "pasta", strictness=ConstraintType.SOFT)]
        targets = _make_targets(_make_meal("Mix", ["rijst", "pasta"]))
        context = _make_context()
        first = _evaluate(rules, targets, context)
        second = _evaluate(list(reversed(rules)), targets, context)
        assert first.to_diagnostics() == second.to_diagnostics()

    def test_version_and_hash_are_carried(self):
        ruleset = build_ruleset("keto", 7, [_make_rule("r-rijst")])
        outcome = evaluate_guardrails(ruleset, _make_context(), _make_targets(_make_meal("Kip", ["kip"])))
        assert outcome.ruleset_version == 7
        assert outcome.content_hash == ruleset.content_hash
        assert outcome.trace.ruleset_hash == ruleset.content_hash

    def test_trace_has_one_step_per_rule(self):
        rules = [_make_rule("r-rijst"), _make_rule("r-pasta", "pasta")]
        outcome = _evaluate(rules, _make_targets(_make_meal("Kip", ["rijst"])))
        assert [s.rule_id for s in outcome.trace.steps] == ["r-pasta", "r-rijst"]
        assert [s.applied for s in outcome.trace.steps] == [False, True]
        assert outcome.trace.final_outcome == "blocked"


class TestMatching:
    """Match modes, synonyms and canonical ids."""

    def test_synonym_match(self):
        rule = _make_rule("r-pasta", "pasta", synonyms=["spaghetti"])
        outcome = _evaluate([rule], _make_targets(_make_meal("Bolognese", ["spaghetti"])))
        assert outcome.outcome == "blocked"
        assert outcome.matches[0].matched_text == "spaghetti"

    def test_word_boundary_mode(self):
        """Test that word-boundary rules ignore compound words."""
        rule = _make_rule("r-suiker", "suiker", mode=MatchMode.WORD_BOUNDARY)
        assert _evaluate([rule], _make_targets(_make_meal("Taart", ["suikervrije jam"]))).outcome == "allowed"
        assert _evaluate([rule], _make_targets(_make_meal("Taart", ["witte suiker"]))).outcome == "blocked"

    def test_word_boundary_reports_the_whole_word_hit(self):
        """Test that the reported text is the standalone word, not a compound that contains it."""
        rule = _make_rule("r-bloem", "bloem", mode=MatchMode.WORD_BOUNDARY)
        outcome = _evaluate([rule], _make_targets(_make_meal("Gratin", ["bloemkool met Bloem"])))
        assert outcome.outcome == "blocked"
        assert outcome.matches[0].matched_text == "bloem"
        assert _evaluate([rule], _make_targets(_make_meal("Gratin", ["bloemkool"]))).outcome == "allowed"

    def test_extra_synonyms_from_context(self):
        rule = _make_rule("r-rijst", mode=MatchMode.WORD_BOUNDARY)
        targets = _make_targets(_make_meal("Curry", ["basmatirijst"]))
        assert _evaluate([rule], targets).outcome == "allowed"
        context = _make_context(synonyms={"rijst": ["basmatirijst"]})
        assert _evaluate([rule], targets, context).outcome == "blocked"

    def test_canonical_id_is_tried_first(self):
        """Test that a rule canonical id matches the ingredient code regardless of its text."""
        rule = _make_rule("r-nevo", "pinda", canonical_id="1234")
        targets = _make_targets(_make_meal("Satay", ["notenmix"], codes=["1234"]))
        outcome = _evaluate([rule], targets)
        assert outcome.outcome == "blocked"
        assert outcome.matches[0].match_mode is MatchMode.CANONICAL_ID
        assert outcome.matches[0].matched_text == "1234"

    def test_default_match_modes(self):
        rule = _make_rule("r", canonical_id="1")
        assert resolve_match_mode(rule, MatchTarget.INGREDIENT) is MatchMode.SUBSTRING
        assert resolve_match_mode(rule, MatchTarget.STEP) is MatchMode.WORD_BOUNDARY
        assert resolve_match_mode(rule, MatchTarget.METADATA) is MatchMode.CANONICAL_ID
        assert resolve_match_mode(_make_rule("r2"), MatchTarget.METADATA) is MatchMode.EXACT

    def test_ingredient_block_rules_also_match_steps(self):
        targets = GuardrailsTargets(step=[TextAtom(text="kook de rijst 12 minuten", path="steps[0]")])
        outcome = _evaluate([_make_rule("r-rijst")], targets)
        assert outcome.outcome == "blocked"
        assert outcome.matches[0].target_path == "steps[0]"
        assert outcome.matches[0].match_mode is MatchMode.WORD_BOUNDARY

    def test_metadata_rule_matches_meal_name(self):
        rule = _make_rule("r-name", "kip met rijst", target=MatchTarget.METADATA)
        outcome = _evaluate([rule], _make_targets(_make_meal("Kip met rijst", ["kipfilet"])))
        assert outcome.matches[0].target_path == "days[0].meals[0].name"

    def test_one_match_per_target_path(self):
        rule = _make_rule("r-rijst", synonyms=["witte rijst"])
        outcome = _evaluate([rule], _make_targets(_make_meal("Kip", ["witte rijst"])))
        assert outcome.counts.matches == 1


class TestOverrides:
    """False-positive override suppression."""

    def test_override_suppresses_match(self):
        """Test that 'zoete aardappel' is not treated as 'aardappel'."""
        rule = _make_rule("r-aardappel", "aardappel")
        context = _make_context(overrides={"aardappel": ["zoete aardappel"]})
        outcome = _evaluate([rule], _make_targets(_make_meal("Ovenschotel", ["zoete aardappel"])), context)
        assert outcome.outcome == "allowed"
        assert outcome.counts.matches == 1
        assert outcome.counts.applied == 0
        assert outcome.matches[0].suppressed is True
        assert outcome.to_diagnostics()["matches"] == []

    def test_override_keeps_plain_term_blocked(self):
        rule = _make_rule("r-aardappel", "aardappel")
        context = _make_context(overrides={"aardappel": ["zoete aardappel"]})
        outcome = _evaluate([rule], _make_targets(_make_meal("Stamppot", ["aardappel"])), context)
        assert outcome.outcome == "blocked"

    def test_override_applies_to_its_own_term_only(self):
        """Test that an override for one term does not suppress another rule."""
        rule = _make_rule("r-kaas", "kaas")
        context = _make_context(overrides={"aardappel": ["geitenkaas"]})
        outcome = _evaluate([rule], _make_targets(_make_meal("Salade", ["geitenkaas"])), context)
        assert outcome.outcome == "blocked"

    def test_override_never_suppresses_allow_rules(self):
        rule = _make_rule("allow-aardappel", "aardappel", action=RuleAction.ALLOW)
        context = _make_context(overrides={"aardappel": ["zoete aardappel"]})
        outcome = _evaluate([rule], _make_targets(_make_meal("Schotel", ["zoete aardappel"])), context)
        assert outcome.matches[0].suppressed is False
        assert outcome.outcome == "allowed"


class TestConfigErrors:
    """Misconfigured rules surface as evaluator reason codes."""

    def test_substring_on_steps_is_a_config_error(self):
        rule = _make_rule("r-step", target=MatchTarget.STEP, mode=MatchMode.SUBSTRING)
        outcome = _evaluate([rule], GuardrailsTargets())
        assert outcome.outcome == "blocked"
        assert outcome.reason_codes == ["EVALUATOR_ERROR"]

    def test_soft_config_error_warns(self):
        rule = _make_rule("r-step", target=MatchTarget.STEP, mode=MatchMode.SUBSTRING, strictness=ConstraintType.SOFT)
        outcome = _evaluate([rule], GuardrailsTargets())
        assert outcome.outcome == "warned"
        assert outcome.reason_codes == ["EVALUATOR_WARNING"]

    def test_quantitative_rule_without_constraint(self):
        rule = _make_rule("r-day", target=MatchTarget.DAY)
        assert validate_rule(rule) is not None

    def test_valid_rule_passes(self):
        assert validate_rule(_make_rule("r-rijst")) is None


class TestQuantitativeRules:
    """Day rules through the evaluator."""

    def test_macro_violation_is_attributed_to_day(self):
        meal = _make_meal("Pasta", ["courgette"])
        meal.estimated_macros = None
        targets = _make_targets(meal)
        targets.days[0].totals.carbs = 35
        rule = _make_rule(
            "diet:keto:macro:0",
            target=MatchTarget.DAY,
            rule_code="MACRO_TARGET_MISS",
            constraint=MacroConstraint(max_carbs=20, constraint_type=ConstraintType.HARD),
        )
        outcome = _evaluate([rule], targets)
        assert outcome.outcome == "blocked"
        assert outcome.reason_codes == ["MACRO_TARGET_MISS"]
        assert outcome.matches[0].match_mode is MatchMode.AGGREGATE
        assert outcome.matches[0].matched_text == "carbs 35g above maximum 20g"
        assert outcome.worst_day == "2026-01-05"


class TestWorstDay:
    def test_day_with_most_violations(self):
        rules = [_make_rule("r-rijst"), _make_rule("r-pasta", "pasta")]
        targets = _make_targets(
            _make_meal("Kip", ["rijst"], date="2026-01-05"),
            _make_meal("Mix", ["rijst", "pasta"], date="2026-01-06"),
        )
        assert _evaluate(rules, targets).worst_day == "2026-01-06"

    def test_no_violations_no_worst_day(self):
        assert _evaluate([], _make_targets(_make_meal("Kip", ["kip"]))).worst_day is None


class TestRemediation:
    def test_hints_of_applied_rules_are_returned(self):
        hint = RemediationHint(type="substitute", payload={"original": "rijst", "alternatives": ["bloemkoolrijst"]})
        rules = [_make_rule("r-rijst", remediation=[hint]), _make_rule("r-pasta", "pasta", remediation=[hint])]
        outcome = _evaluate(rules, _make_targets(_make_meal("Kip", ["rijst"])))
        assert outcome.remediation_hints == [hint]


@pytest.mark.parametrize("text,expected", [
    ("aardappel", "blocked"),
    ("Aardappelen", "blocked"),
    ("zoete-aardappel", "allowed"),
])
def test_override_normalizes_separators(text, expected):
    rule = _make_rule("r-aardappel", "aardappel")
    context = _make_context(overrides={"aardappel": ["zoete aardappel"]})
    assert _evaluate([rule], _make_targets(_make_meal("Schotel", [text])), context).outcome == expected
