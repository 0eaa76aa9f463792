"""Structured error types for rule loading and meal-plan mutations.

The pure derivation and evaluation functions never raise for well-formed
input. Everything here belongs to the collaborators around them: loaders
that read rule tables, and the draft actions that persist plans.

A load failure is a configuration error. Callers must treat it as
equivalent to a blocked outcome and never persist the plan.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class GuardrailsErrorCode(Enum):
    """Error codes surfaced to callers of the draft actions.

    Codes are string values so they serialize directly into action results.
    """

    DB_ERROR = "DB_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    EVALUATOR_ERROR = "EVALUATOR_ERROR"
    GUARDRAILS_VIOLATION = "GUARDRAILS_VIOLATION"
    MEAL_PLAN_INVALID_STATE = "MEAL_PLAN_INVALID_STATE"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"


class GuardrailsError(Exception):
    """Base exception for guardrails collaborators.

    Attributes:
        code: GuardrailsErrorCode identifying the failure
        message: Human-readable description
        context: Dictionary of debugging context
    """

    def __init__(
        self,
        code: GuardrailsErrorCode,
        message: str,
        context: Optional[Dict[str, Any]] = None
    ):
        """Initialize guardrails error.

        Args:
            code: Error code enum value
            message: Human-readable message
            context: Additional context dictionary (defaults to empty)
        """
        self.code = code
        self.message = message
        self.context = context or {}
        super().__init__(f"[{code.value}] {message}")

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"code={self.code!r}, "
            f"message={self.message!r}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to a dictionary for action results."""
        return {
            "error_code": self.code.value,
            "message": self.message,
            "context": self.context,
        }


class RulesetLoadError(GuardrailsError):
    """Raised when a rule, override or household table cannot be loaded.

    Context includes:
        - source: Which table or file failed
        - reason: Underlying failure description
    """

    def __init__(self, source: str, reason: str):
        super().__init__(
            code=GuardrailsErrorCode.DB_ERROR,
            message=f"Failed to load {source}: {reason}",
            context={"source": source, "reason": reason},
        )
        self.source = source
        self.reason = reason


class RecordValidationError(RulesetLoadError):
    """Raised when a stored row fails schema validation at the loader boundary.

    Context includes:
        - source: Table the row came from
        - reason: Summary of validation failures
        - errors: Field-level errors reported by the schema
    """

    def __init__(self, source: str, errors: List[Dict[str, Any]]):
        reason = f"{len(errors)} invalid field(s)"
        if errors:
            first = errors[0]
            location = ".".join(str(part) for part in first.get("loc", ()))
            reason += f", first at '{location}': {first.get('msg', 'invalid')}"
        super().__init__(source=source, reason=reason)
        self.context["errors"] = errors
        self.errors = errors


class SnapshotStructureError(GuardrailsError):
    """Raised when a meal-plan snapshot cannot be interpreted.

    Covers malformed snapshots and mutations that reference a missing
    day or slot. Reported before evaluation is attempted.
    """

    def __init__(self, message: str, path: Optional[str] = None):
        context: Dict[str, Any] = {}
        if path is not None:
            context["path"] = path
        super().__init__(
            code=GuardrailsErrorCode.MEAL_PLAN_INVALID_STATE,
            message=message,
            context=context,
        )
        self.path = path


class PlanNotFoundError(GuardrailsError):
    """Raised when a plan id has no stored snapshot."""

    def __init__(self, plan_id: str):
        super().__init__(
            code=GuardrailsErrorCode.NOT_FOUND,
            message=f"Meal plan '{plan_id}' not found",
            context={"plan_id": plan_id},
        )
        self.plan_id = plan_id


class ConcurrentModificationError(GuardrailsError):
    """Raised when a plan was written by someone else since it was read."""

    def __init__(self, plan_id: str, expected_version: int, actual_version: int):
        super().__init__(
            code=GuardrailsErrorCode.CONFLICT,
            message=(
                f"Meal plan '{plan_id}' changed concurrently "
                f"(expected version {expected_version}, found {actual_version})"
            ),
            context={
                "plan_id": plan_id,
                "expected_version": expected_version,
                "actual_version": actual_version,
            },
        )
        self.plan_id = plan_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class DuplicateOverrideError(GuardrailsError):
    """Raised when an override is saved for a term another row already owns."""

    def __init__(self, forbidden_term: str, existing_id: str):
        super().__init__(
            code=GuardrailsErrorCode.CONFLICT,
            message=f"An override for '{forbidden_term}' already exists",
            context={"forbidden_term": forbidden_term, "existing_id": existing_id},
        )
        self.forbidden_term = forbidden_term
        self.existing_id = existing_id
