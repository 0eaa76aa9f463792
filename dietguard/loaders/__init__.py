"""Rule-table storage, caches and ruleset loaders."""

from .admin import OverrideAdmin
from .cache import OverrideCache, SynonymCache, TableCache
from .household_loader import HouseholdRuleLoader
from .ruleset_loader import GuardrailsRulesetLoader
from .store import JsonRuleStore, RuleStore

__all__ = [
    "OverrideAdmin",
    "OverrideCache",
    "SynonymCache",
    "TableCache",
    "HouseholdRuleLoader",
    "GuardrailsRulesetLoader",
    "JsonRuleStore",
    "RuleStore",
]
