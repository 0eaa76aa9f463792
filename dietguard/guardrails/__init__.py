"""Guardrails decision procedure over meal-plan targets."""

from .evaluator import evaluate_guardrails, sort_rules
from .outcome import EvaluationContext, EvaluationOutcome
from .targets import GuardrailsTargets, extract_targets

__all__ = [
    "evaluate_guardrails",
    "sort_rules",
    "EvaluationContext",
    "EvaluationOutcome",
    "GuardrailsTargets",
    "extract_targets",
]
