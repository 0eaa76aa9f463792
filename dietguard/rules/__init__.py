"""Diet rule derivation, rule compilation and ruleset assembly."""

from .derivation import derive_diet_rule_set
from .compiler import compile_diet_rule_set
from .ruleset import GuardrailsRuleset, build_ruleset, merge_rules

__all__ = [
    "derive_diet_rule_set",
    "compile_diet_rule_set",
    "GuardrailsRuleset",
    "build_ruleset",
    "merge_rules",
]
