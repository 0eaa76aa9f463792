"""Action result envelope returned by the draft actions."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from dietguard.data_layer.exceptions import GuardrailsError, GuardrailsErrorCode


@dataclass
class ActionError:
    code: GuardrailsErrorCode
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.details:
            result["details"] = self.details
        return result


@dataclass
class ActionResult:
    """Either `data` (ok) or `error` (not ok). Actions never raise for expected failures."""

    ok: bool
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[ActionError] = None

    @classmethod
    def success(cls, data: Optional[Dict[str, Any]] = None) -> "ActionResult":
        return cls(ok=True, data=data or {})

    @classmethod
    def failure(
        cls,
        code: GuardrailsErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> "ActionResult":
        return cls(ok=False, error=ActionError(code=code, message=message, details=details or {}))

    @classmethod
    def from_error(cls, error: GuardrailsError) -> "ActionResult":
        return cls.failure(error.code, error.message, error.context)

    def to_dict(self) -> Dict[str, Any]:
        if self.ok:
            return {"ok": True, "data": self.data}
        return {"ok": False, "error": self.error.to_dict()}
