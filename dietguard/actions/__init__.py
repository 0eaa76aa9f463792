"""Caller layer: guardrails service, draft plan actions and plan storage."""

from .draft_actions import DraftPlanService
from .guardrails_service import (
    EnforcementResult,
    GuardrailsEvaluation,
    GuardrailsService,
    enforce_meal_plan_guardrails,
)
from .plan_store import InMemoryPlanStore, PlanLocks, PlanRecord, PlanStore
from .results import ActionError, ActionResult

__all__ = [
    "DraftPlanService",
    "EnforcementResult",
    "GuardrailsEvaluation",
    "GuardrailsService",
    "enforce_meal_plan_guardrails",
    "InMemoryPlanStore",
    "PlanLocks",
    "PlanRecord",
    "PlanStore",
    "ActionError",
    "ActionResult",
]
