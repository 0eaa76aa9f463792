"""Household avoid rules: per-household ingredient bans merged into a ruleset."""

import logging
from typing import List

from dietguard.data_layer.records import HouseholdAvoidRuleRecord, parse_records
from dietguard.loaders.store import HOUSEHOLD_AVOID_RULES, RuleStore, rows_for
from dietguard.rules.guard_rules import HOUSEHOLD_RULE_PRIORITY, GuardRule
from dietguard.rules.household import household_rules_from_records


logger = logging.getLogger(__name__)


class HouseholdRuleLoader:
    """Reads household_avoid_rules rows and maps them to guard rules."""

    def __init__(self, store: RuleStore, priority: int = HOUSEHOLD_RULE_PRIORITY):
        self.store = store
        self.priority = priority

    def load(self, household_id: str) -> List[GuardRule]:
        """Load the avoid rules for one household.

        Raises:
            RulesetLoadError: If the table cannot be read or a row is invalid
        """
        rows = rows_for(self.store, HOUSEHOLD_AVOID_RULES, "household_id", household_id)
        records = parse_records(HouseholdAvoidRuleRecord, rows, HOUSEHOLD_AVOID_RULES)
        rules = household_rules_from_records(household_id, records, priority=self.priority)
        logger.debug(f"Loaded {len(rules)} household avoid rules for {household_id}")
        return rules
