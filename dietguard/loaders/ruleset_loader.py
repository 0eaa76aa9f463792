"""Build a GuardrailsRuleset from the rule tables and an optional diet profile."""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from dietguard.data_layer.models import ConstraintType, DietProfile
from dietguard.data_layer.records import (
    AdaptationRuleRecord,
    DietConstraintRecord,
    HeuristicRecord,
    parse_records,
)
from dietguard.loaders.store import (
    ADAPTATION_RULES,
    DIET_CONSTRAINTS,
    HEURISTICS,
    RuleStore,
    rows_for,
)
from dietguard.rules.compiler import compile_diet_rule_set
from dietguard.rules.derivation import derive_diet_rule_set
from dietguard.rules.guard_rules import (
    DEFAULT_PRIORITY,
    GuardRule,
    MatchMode,
    MatchTarget,
    ReasonCode,
    RemediationHint,
    RuleAction,
    RuleMatch,
    RuleMetadata,
)
from dietguard.rules.ruleset import (
    GuardrailsRuleset,
    RulesetHeuristics,
    RulesetProvenance,
    build_ruleset,
    fallback_ruleset,
)


logger = logging.getLogger(__name__)

ADDED_SUGAR_HEURISTIC = "added_sugar"


def constraint_rules(record: DietConstraintRecord) -> List[GuardRule]:
    """One ingredient rule per active item of a category constraint."""
    category = record.category
    action = RuleAction(record.rule_action) if record.rule_action else (
        RuleAction.BLOCK if category.category_type == "forbidden" else RuleAction.ALLOW
    )
    strictness = ConstraintType(record.strictness)

    if category.category_type == "required":
        rule_code = ReasonCode.MISSING_REQUIRED_CATEGORY.value
    elif strictness is ConstraintType.HARD:
        rule_code = ReasonCode.FORBIDDEN_INGREDIENT.value
    else:
        rule_code = ReasonCode.SOFT_CONSTRAINT_VIOLATION.value

    if action is RuleAction.ALLOW:
        label = f"{category.name_nl} (Toegestaan)"
    elif strictness is ConstraintType.HARD:
        label = f"{category.name_nl} (Strikt verboden)"
    else:
        label = f"{category.name_nl} (Niet gewenst)"

    rules = []
    for index, item in enumerate(category.items):
        if not item.is_active:
            continue
        rules.append(GuardRule(
            id=f"db:diet_category_constraints:{record.id}:{index}",
            action=action,
            strictness=strictness,
            priority=record.rule_priority or DEFAULT_PRIORITY,
            target=MatchTarget.INGREDIENT,
            match=RuleMatch(term=item.term, synonyms=list(item.synonyms)),
            metadata=RuleMetadata(
                rule_code=rule_code,
                label=label,
                category=category.code,
                specificity="diet",
                is_non_enforcing_allow=action is RuleAction.ALLOW,
            ),
        ))
    return rules


def adaptation_rule(record: AdaptationRuleRecord) -> GuardRule:
    """Adaptation rules are always block rules; a SOFT rule code makes them soft."""
    rule_code = record.rule_code if ReasonCode.is_known(record.rule_code) else ReasonCode.UNKNOWN_ERROR.value
    remediation = []
    if record.substitution_suggestions:
        remediation.append(RemediationHint(
            type="substitute",
            payload={
                "original": record.term,
                "alternatives": list(record.substitution_suggestions),
            },
        ))
    return GuardRule(
        id=f"db:recipe_adaptation_rules:{record.id}",
        action=RuleAction.BLOCK,
        strictness=ConstraintType.SOFT if "SOFT" in rule_code else ConstraintType.HARD,
        priority=record.priority or DEFAULT_PRIORITY,
        target=MatchTarget(record.target),
        match=RuleMatch(
            term=record.term,
            synonyms=list(record.synonyms),
            preferred_match_mode=MatchMode(record.match_mode or "word_boundary"),
        ),
        metadata=RuleMetadata(rule_code=rule_code, label=record.rule_label, specificity="diet"),
        remediation=remediation,
    )


class GuardrailsRulesetLoader:
    """Loads the ruleset for a diet from a RuleStore.

    Sources, in order (later sources replace earlier rules with the same id):
        1. diet_constraints rows (active, not paused)
        2. rules compiled from the derived rule set, when a profile is given
        3. adaptation_rules rows (active)

    Any read or validation failure raises RulesetLoadError; there is no
    partial ruleset. When no source yields a rule the hard-coded fallback
    ruleset is returned.
    """

    def __init__(self, store: RuleStore):
        self.store = store

    def load(
        self,
        diet_key: str,
        mode: str = "meal_planner",
        locale: str = "nl",
        profile: Optional[DietProfile] = None,
    ) -> GuardrailsRuleset:
        """Load the ruleset for one evaluation.

        Args:
            diet_key: Diet whose table rows are loaded
            mode: Evaluation mode, recorded in provenance
            locale: Locale, recorded in provenance
            profile: Optional profile whose derived rule set is compiled in

        Returns:
            GuardrailsRuleset with version and content hash

        Raises:
            RulesetLoadError: If any table cannot be read or validated
        """
        loaded_at = datetime.now(timezone.utc).isoformat()
        version = self.store.version()

        constraints = parse_records(
            DietConstraintRecord, rows_for(self.store, DIET_CONSTRAINTS, "diet_key", diet_key), DIET_CONSTRAINTS
        )
        adaptations = parse_records(
            AdaptationRuleRecord, rows_for(self.store, ADAPTATION_RULES, "diet_key", diet_key), ADAPTATION_RULES
        )
        heuristic_rows = parse_records(
            HeuristicRecord, rows_for(self.store, HEURISTICS, "diet_key", diet_key), HEURISTICS
        )

        rules: Dict[str, GuardRule] = {}
        counts: Dict[str, int] = {}

        table_rules = [
            rule
            for record in constraints
            if record.is_active and not record.is_paused
            for rule in constraint_rules(record)
        ]
        self._overlay(rules, table_rules)
        counts[DIET_CONSTRAINTS] = len(table_rules)

        if profile is not None:
            profile_rules = compile_diet_rule_set(derive_diet_rule_set(profile))
            self._overlay(rules, profile_rules)
            counts["profile"] = len(profile_rules)

        adaptation_rules = [adaptation_rule(r) for r in adaptations if r.is_active]
        self._overlay(rules, adaptation_rules)
        counts[ADAPTATION_RULES] = len(adaptation_rules)

        if not rules:
            logger.warning(f"No rules found for diet '{diet_key}', using fallback ruleset")
            return fallback_ruleset(diet_key, loaded_at)

        sugar_terms: List[str] = []
        for heuristic in heuristic_rows:
            if heuristic.is_active and heuristic.heuristic_type == ADDED_SUGAR_HEURISTIC:
                sugar_terms.extend(t for t in heuristic.terms if t not in sugar_terms)
        heuristics = RulesetHeuristics(added_sugar_terms=sugar_terms) if sugar_terms else None

        ruleset = build_ruleset(
            diet_key=diet_key,
            version=version,
            rules=sorted(rules.values(), key=lambda r: r.id),
            heuristics=heuristics,
            provenance=RulesetProvenance(
                source="database" if table_rules or adaptation_rules else "profile",
                loaded_at=loaded_at,
                metadata={"mode": mode, "locale": locale, "rule_counts": counts},
            ),
        )
        logger.info(
            f"Loaded {len(ruleset.rules)} rules for diet '{diet_key}' "
            f"(version {version}, hash {ruleset.content_hash[:12]})"
        )
        return ruleset

    @staticmethod
    def _overlay(rules: Dict[str, GuardRule], new_rules: List[GuardRule]) -> None:
        for rule in new_rules:
            if rule.id in rules:
                logger.debug(f"Rule {rule.id} replaced by a later source")
            rules[rule.id] = rule
