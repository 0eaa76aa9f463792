"""Draft review actions for meal plans.

A plan under review has status "draft" and a draft snapshot next to the
applied one. Every action that persists a draft evaluates it first and
fails closed: a blocked outcome or a rule-loading failure returns an
error result and nothing is written.

Flow:
    start_review      applied snapshot -> draft snapshot, status draft
    update_draft_slot replace one (date, slot) meal in the draft
    apply_draft       draft snapshot -> applied snapshot, status applied
    cancel_review     drop the draft, status applied
"""

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from dietguard.actions.guardrails_service import GuardrailsEvaluation, GuardrailsService
from dietguard.actions.plan_store import STATUS_APPLIED, STATUS_DRAFT, PlanLocks, PlanRecord, PlanStore
from dietguard.actions.results import ActionResult
from dietguard.actions.schemas import DraftSlotUpdatePayload
from dietguard.data_layer.exceptions import (
    GuardrailsError,
    GuardrailsErrorCode,
    RulesetLoadError,
    SnapshotStructureError,
)
from dietguard.data_layer.models import MealPlan
from dietguard.data_layer.plan_snapshot import meal_plan_to_dict, parse_meal, parse_meal_plan, replace_meal


logger = logging.getLogger(__name__)

LOAD_FAILED_MESSAGE = "Failed to load or evaluate diet rules"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _invalid_state(message: str) -> ActionResult:
    return ActionResult.failure(GuardrailsErrorCode.MEAL_PLAN_INVALID_STATE, message)


class DraftPlanService:
    """Draft actions over a PlanStore, gated by a GuardrailsService."""

    def __init__(
        self,
        store: PlanStore,
        guardrails: GuardrailsService,
        locks: Optional[PlanLocks] = None,
    ):
        self.store = store
        self.guardrails = guardrails
        self.locks = locks or PlanLocks()

    def _run(self, plan_id: str, action: Callable[[PlanRecord], ActionResult]) -> ActionResult:
        """Load the plan and run `action` under the plan lock, mapping storage errors to results."""
        with self.locks.for_plan(plan_id):
            try:
                record = self.store.get(plan_id)
                return action(record)
            except GuardrailsError as e:
                # Not found and concurrent-write conflicts; rule loading is handled in _evaluate
                logger.warning(f"Draft action on plan {plan_id} failed: {e}")
                return ActionResult.from_error(e)

    def _evaluate(self, record: PlanRecord, plan: MealPlan):
        """Evaluate a draft. Returns (evaluation, None) or (None, error result)."""
        try:
            evaluation = self.guardrails.evaluate_plan(
                plan,
                record.diet_key,
                mode="plan_chat",
                household_id=record.household_id,
            )
        except RulesetLoadError as e:
            logger.error(f"Guardrails load failed for plan {record.plan_id}: {e}")
            return None, ActionResult.failure(GuardrailsErrorCode.DB_ERROR, LOAD_FAILED_MESSAGE)

        if evaluation.outcome.is_blocked:
            logger.info(
                f"Draft for plan {record.plan_id} blocked: {','.join(evaluation.outcome.reason_codes)}"
            )
            return None, ActionResult.failure(
                GuardrailsErrorCode.GUARDRAILS_VIOLATION,
                evaluation.outcome.summary or "This menu does not meet the diet rules",
                evaluation.violation_details(),
            )
        return evaluation, None

    # --- Actions ---

    def start_review(self, plan_id: str) -> ActionResult:
        """Copy the applied snapshot into a new draft. Idempotent while a draft exists."""

        def action(record: PlanRecord) -> ActionResult:
            if record.status == STATUS_DRAFT and record.draft_snapshot is not None:
                return ActionResult.success({"status": STATUS_DRAFT})
            if record.plan_snapshot is None:
                return _invalid_state("Plan has no snapshot to review")
            record.status = STATUS_DRAFT
            record.draft_snapshot = copy.deepcopy(record.plan_snapshot)
            record.draft_created_at = _now()
            self.store.save(record, expected_version=record.version)
            return ActionResult.success({"status": STATUS_DRAFT})

        return self._run(plan_id, action)

    def apply_draft(self, plan_id: str) -> ActionResult:
        """Evaluate the draft and, unless blocked, make it the applied snapshot.

        Returns:
            ActionResult with {"status": "applied"} and, when the outcome was
            warned under household rules, a "warning" entry
        """

        def action(record: PlanRecord) -> ActionResult:
            if record.status != STATUS_DRAFT:
                return _invalid_state("Only a plan in draft status can be applied")
            if record.draft_snapshot is None:
                return _invalid_state("Plan has no draft to apply")
            if not record.diet_key:
                return _invalid_state("Plan has no diet key")
            try:
                plan = parse_meal_plan(record.draft_snapshot)
            except SnapshotStructureError as e:
                return _invalid_state(f"Draft has no valid plan structure: {e.message}")

            evaluation, error = self._evaluate(record, plan)
            if error is not None:
                return error

            now = _now()
            record.plan_snapshot = record.draft_snapshot
            record.draft_snapshot = None
            record.draft_created_at = None
            record.status = STATUS_APPLIED
            record.applied_at = now
            record.guardrails_diagnostics = evaluation.outcome.to_diagnostics()
            self.store.save(record, expected_version=record.version)
            return ActionResult.success(self._applied_data(evaluation))

        return self._run(plan_id, action)

    @staticmethod
    def _applied_data(evaluation: GuardrailsEvaluation) -> Dict[str, Any]:
        data: Dict[str, Any] = {"status": STATUS_APPLIED}
        if evaluation.outcome.outcome == "warned" and evaluation.household_rule_applied:
            warning: Dict[str, Any] = {"warned": True, "householdRuleApplied": True}
            if evaluation.outcome.reason_codes:
                warning["reasonCodes"] = list(evaluation.outcome.reason_codes)
            data["warning"] = warning
        return data

    def cancel_review(self, plan_id: str) -> ActionResult:
        """Drop the draft. The applied snapshot is unchanged."""

        def action(record: PlanRecord) -> ActionResult:
            if record.status != STATUS_DRAFT:
                return _invalid_state("Only a plan in draft status can be cancelled")
            record.status = STATUS_APPLIED
            record.draft_snapshot = None
            record.draft_created_at = None
            self.store.save(record, expected_version=record.version)
            return ActionResult.success({"status": STATUS_APPLIED})

        return self._run(plan_id, action)

    def update_draft_slot(self, raw: Dict[str, Any]) -> ActionResult:
        """Replace one meal of the draft after validating and evaluating the result.

        Args:
            raw: {"planId", "date", "mealSlot", "meal"} payload

        Returns:
            ActionResult with {"status": "draft"} on success
        """
        try:
            payload = DraftSlotUpdatePayload.model_validate(raw)
        except ValidationError as e:
            return ActionResult.failure(
                GuardrailsErrorCode.VALIDATION_ERROR,
                "Invalid draft slot update",
                {"errors": [
                    {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
                    for err in e.errors(include_url=False)
                ]},
            )

        meal = parse_meal(
            payload.meal.model_dump(by_alias=True, exclude_none=True),
            "meal",
            payload.date,
        )

        def action(record: PlanRecord) -> ActionResult:
            if record.status != STATUS_DRAFT:
                return _invalid_state("Only a plan in draft status can be edited per slot")
            if record.draft_snapshot is None:
                return _invalid_state("Plan has no draft to edit")
            if not record.diet_key:
                return _invalid_state("Plan has no diet key")
            try:
                draft = parse_meal_plan(record.draft_snapshot)
                updated = replace_meal(draft, payload.date, payload.meal_slot, meal)
            except SnapshotStructureError as e:
                return _invalid_state(e.message)

            _, error = self._evaluate(record, updated)
            if error is not None:
                return error

            record.draft_snapshot = meal_plan_to_dict(updated)
            self.store.save(record, expected_version=record.version)
            return ActionResult.success({"status": STATUS_DRAFT})

        return self._run(payload.plan_id, action)
