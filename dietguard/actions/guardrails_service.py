"""Load rules, build a fresh context and evaluate a plan."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from dietguard.config import GuardrailsSettings
from dietguard.data_layer.exceptions import GuardrailsError
from dietguard.data_layer.models import DietProfile, MealPlan
from dietguard.guardrails.evaluator import evaluate_guardrails
from dietguard.guardrails.outcome import EvaluationContext, EvaluationOutcome
from dietguard.guardrails.targets import GuardrailsTargets, PlanEdit, extract_plan_edit_targets, extract_targets
from dietguard.loaders.cache import TableCache
from dietguard.loaders.household_loader import HouseholdRuleLoader
from dietguard.loaders.ruleset_loader import GuardrailsRulesetLoader
from dietguard.rules.guard_rules import GuardRule
from dietguard.rules.ruleset import GuardrailsRuleset, merge_rules


logger = logging.getLogger(__name__)


@dataclass
class GuardrailsEvaluation:
    """Outcome plus the ruleset it was computed against."""

    outcome: EvaluationOutcome
    ruleset: GuardrailsRuleset
    household_rules: List[GuardRule] = field(default_factory=list)

    @property
    def household_rule_applied(self) -> bool:
        return bool(self.household_rules)

    def violation_details(self) -> Dict[str, Any]:
        details: Dict[str, Any] = {
            "outcome": self.outcome.outcome,
            "reasonCodes": list(self.outcome.reason_codes),
            "contentHash": self.ruleset.content_hash,
            "rulesetVersion": self.ruleset.version,
        }
        if self.household_rules:
            details["householdRuleApplied"] = True
        return details


class GuardrailsService:
    """Runs one guardrails evaluation per call.

    Everything a call needs (ruleset, household rules, overrides,
    synonyms) is loaded at call time; nothing is kept between calls
    except the injected caches.
    """

    def __init__(
        self,
        ruleset_loader: GuardrailsRulesetLoader,
        override_cache: TableCache,
        household_loader: Optional[HouseholdRuleLoader] = None,
        synonym_cache: Optional[TableCache] = None,
        settings: Optional[GuardrailsSettings] = None,
    ):
        self.ruleset_loader = ruleset_loader
        self.override_cache = override_cache
        self.household_loader = household_loader
        self.synonym_cache = synonym_cache
        self.settings = settings or GuardrailsSettings()

    def build_context(self, diet_key: str, mode: Optional[str] = None) -> EvaluationContext:
        return EvaluationContext(
            diet_key=diet_key,
            timestamp=datetime.now(timezone.utc).isoformat(),
            locale=self.settings.locale,
            mode=mode or self.settings.mode,
            exclude_overrides=dict(self.override_cache.get()),
            extra_synonyms=dict(self.synonym_cache.get()) if self.synonym_cache is not None else {},
        )

    def evaluate_targets(
        self,
        targets: GuardrailsTargets,
        diet_key: str,
        mode: Optional[str] = None,
        household_id: Optional[str] = None,
        profile: Optional[DietProfile] = None,
    ) -> GuardrailsEvaluation:
        """Evaluate prepared targets.

        Raises:
            RulesetLoadError: If rules, household rules or overrides cannot be loaded
        """
        mode = mode or self.settings.mode
        ruleset = self.ruleset_loader.load(diet_key, mode=mode, locale=self.settings.locale, profile=profile)
        household_rules: List[GuardRule] = []
        if household_id and self.household_loader is not None:
            household_rules = self.household_loader.load(household_id)

        context = self.build_context(diet_key, mode)
        outcome = evaluate_guardrails(merge_rules(ruleset, household_rules), context, targets)
        logger.debug(
            f"Evaluated diet '{diet_key}' in {mode} mode: {outcome.outcome} "
            f"({outcome.counts.applied} applied match(es))"
        )
        return GuardrailsEvaluation(outcome=outcome, ruleset=ruleset, household_rules=household_rules)

    def evaluate_plan(
        self,
        plan: MealPlan,
        diet_key: str,
        mode: Optional[str] = None,
        household_id: Optional[str] = None,
        profile: Optional[DietProfile] = None,
    ) -> GuardrailsEvaluation:
        targets = extract_targets(plan, self.settings.locale)
        return self.evaluate_targets(targets, diet_key, mode, household_id, profile)

    def evaluate_plan_edit(
        self,
        edit: PlanEdit,
        diet_key: str,
        snapshot: Optional[MealPlan] = None,
        household_id: Optional[str] = None,
    ) -> GuardrailsEvaluation:
        """Evaluate a plan-chat edit request before it is applied."""
        targets = extract_plan_edit_targets(edit, snapshot, self.settings.locale)
        return self.evaluate_targets(targets, diet_key, "plan_chat", household_id)


@dataclass
class EnforcementResult:
    ok: bool
    plan: Optional[MealPlan] = None
    message: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


def enforce_meal_plan_guardrails(
    service: GuardrailsService,
    plan: MealPlan,
    diet_key: str,
    household_id: Optional[str] = None,
    profile: Optional[DietProfile] = None,
) -> EnforcementResult:
    """Gate a freshly generated plan. Never raises for load or evaluation failures.

    A blocked outcome and any load failure both return ok=False; the
    generator decides whether to retry.
    """
    try:
        evaluation = service.evaluate_plan(plan, diet_key, "meal_planner", household_id, profile)
    except GuardrailsError as e:
        logger.error(f"Guardrails evaluation failed for diet '{diet_key}': {e}")
        return EnforcementResult(
            ok=False,
            message="Fout bij evalueren dieetregels",
            details={"outcome": "blocked", "reasonCodes": ["EVALUATOR_ERROR"], "contentHash": ""},
        )

    if evaluation.outcome.is_blocked:
        details = evaluation.violation_details()
        logger.warning(
            f"Guardrails blocked plan: diet={diet_key}, "
            f"reasonCodes={','.join(details['reasonCodes'][:5])}, hash={details['contentHash']}"
        )
        return EnforcementResult(
            ok=False,
            message="Het gegenereerde meal plan voldoet niet aan de dieetregels",
            details=details,
        )
    return EnforcementResult(ok=True, plan=plan, details={"diagnostics": evaluation.outcome.to_diagnostics()})
