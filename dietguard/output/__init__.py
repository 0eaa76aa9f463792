"""Output formatters for rule sets and evaluation outcomes."""

from .formatters import (
    format_outcome_json,
    format_outcome_markdown,
    format_rule_set_json,
    format_rule_set_markdown,
    to_json_string,
)

__all__ = [
    "format_outcome_json",
    "format_outcome_markdown",
    "format_rule_set_json",
    "format_rule_set_markdown",
    "to_json_string",
]
