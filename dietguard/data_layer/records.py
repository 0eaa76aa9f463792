"""Schema validation for rows read from the rule tables.

Every row that crosses from storage into the engine is parsed here. The
rule compiler, evaluator and caches only ever see these validated models.
"""

from typing import Any, Dict, Iterable, List, Literal, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from dietguard.data_layer.exceptions import RecordValidationError


class _Record(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


def _lower_list(values: List[str]) -> List[str]:
    return [v.strip().lower() for v in values if v and v.strip()]


class CategoryItemRecord(_Record):
    term: str = Field(min_length=1)
    term_nl: Optional[str] = None
    synonyms: List[str] = Field(default_factory=list)
    is_active: bool = True

    @field_validator("term")
    @classmethod
    def _lower_term(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("synonyms")
    @classmethod
    def _lower_synonyms(cls, v: List[str]) -> List[str]:
        return _lower_list(v)


class CategoryRecord(_Record):
    id: str
    code: str = Field(min_length=1)
    name_nl: str
    category_type: Literal["forbidden", "required"]
    items: List[CategoryItemRecord] = Field(default_factory=list)


class DietConstraintRecord(_Record):
    """A diet_category_constraints row joined with its category and items."""

    id: str
    diet_key: str
    rule_action: Optional[Literal["allow", "block"]] = None
    strictness: Literal["hard", "soft"] = "hard"
    rule_priority: int = 50
    is_active: bool = True
    is_paused: bool = False
    updated_at: Optional[str] = None
    category: CategoryRecord


class AdaptationRuleRecord(_Record):
    id: str
    diet_key: str
    term: str = Field(min_length=1)
    synonyms: List[str] = Field(default_factory=list)
    rule_code: str
    rule_label: str
    substitution_suggestions: List[str] = Field(default_factory=list)
    priority: int = 50
    target: Literal["ingredient", "step", "metadata"] = "ingredient"
    match_mode: Optional[Literal["exact", "word_boundary", "substring", "canonical_id"]] = None
    is_active: bool = True
    updated_at: Optional[str] = None

    @field_validator("term")
    @classmethod
    def _lower_term(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("synonyms")
    @classmethod
    def _lower_synonyms(cls, v: List[str]) -> List[str]:
        return _lower_list(v)


class HeuristicRecord(_Record):
    id: str
    diet_key: str
    heuristic_type: str
    terms: List[str] = Field(default_factory=list)
    is_active: bool = True


class OverrideRecord(_Record):
    """False-positive exclusion for one forbidden term."""

    id: str
    forbidden_term: str = Field(min_length=1)
    exclude_if_contains: List[str] = Field(min_length=1)
    is_active: bool = True
    description: Optional[str] = None
    display_order: int = 0

    @field_validator("forbidden_term")
    @classmethod
    def _lower_term(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("exclude_if_contains")
    @classmethod
    def _lower_patterns(cls, v: List[str]) -> List[str]:
        patterns = _lower_list(v)
        if not patterns:
            raise ValueError("at least one non-empty pattern is required")
        return patterns


class SynonymRecord(_Record):
    """Extra synonyms for a rule term, maintained by admins."""

    id: str
    term: str = Field(min_length=1)
    synonyms: List[str] = Field(default_factory=list)
    is_active: bool = True

    @field_validator("term")
    @classmethod
    def _lower_term(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("synonyms")
    @classmethod
    def _lower_synonyms(cls, v: List[str]) -> List[str]:
        return _lower_list(v)


class HouseholdAvoidRuleRecord(_Record):
    id: str
    household_id: str
    match_mode: Literal["nevo_code", "term"]
    match_value: str = Field(min_length=1)
    strictness: Optional[Literal["hard", "soft"]] = None
    rule_type: Optional[str] = None  # "allergy" | "avoid" | "warning"
    note: Optional[str] = None

    @field_validator("match_value")
    @classmethod
    def _strip_value(cls, v: str) -> str:
        value = v.strip()
        if not value:
            raise ValueError("match_value must not be blank")
        return value


RecordT = TypeVar("RecordT", bound=BaseModel)


def parse_records(model: Type[RecordT], rows: Iterable[Dict[str, Any]], source: str) -> List[RecordT]:
    """Validate raw rows into records.

    Args:
        model: Record model to validate against
        rows: Raw rows (dicts) from storage
        source: Table name, used in error context

    Returns:
        Validated records in input order

    Raises:
        RecordValidationError: If any row is invalid
    """
    records = []
    for index, row in enumerate(rows):
        try:
            records.append(model.model_validate(row))
        except ValidationError as e:
            errors = [
                {
                    "loc": [index, *err.get("loc", ())],
                    "msg": err.get("msg", ""),
                    "type": err.get("type", ""),
                }
                for err in e.errors(include_url=False)
            ]
            raise RecordValidationError(source=source, errors=errors) from e
    return records
