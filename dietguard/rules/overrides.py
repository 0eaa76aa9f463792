"""False-positive override matching.

An override pairs one forbidden term with substrings that, when present in
the same ingredient text, mean the match is not really that ingredient
("zoete aardappel" is not "aardappel"). Overrides only suppress; they
never add violations, and they apply to their own term only.
"""

import re
from typing import Dict, Iterable, List, Mapping, Optional

from dietguard.data_layer.records import OverrideRecord


ExcludeOverrides = Mapping[str, List[str]]

_SEPARATORS = re.compile(r"[,\-–—]+")
_WHITESPACE = re.compile(r"\s+")


def overrides_to_mapping(records: Iterable[OverrideRecord]) -> Dict[str, List[str]]:
    """Collapse active override rows into {forbidden_term: [patterns]}.

    Rows are applied in display order; patterns for a term that appears
    twice are concatenated.
    """
    mapping: Dict[str, List[str]] = {}
    for record in sorted(records, key=lambda r: (r.display_order, r.forbidden_term)):
        if not record.is_active:
            continue
        patterns = mapping.setdefault(record.forbidden_term, [])
        for pattern in record.exclude_if_contains:
            if pattern not in patterns:
                patterns.append(pattern)
    return mapping


def normalize_for_override(text: str) -> str:
    """Lowercase, turn commas and dashes into spaces, collapse whitespace."""
    return _WHITESPACE.sub(" ", _SEPARATORS.sub(" ", text.lower())).strip()


def is_excluded_by_override(
    text: str,
    forbidden_term: str,
    overrides: Optional[ExcludeOverrides],
) -> bool:
    """True if the override for `forbidden_term` suppresses a match on `text`.

    Args:
        text: Ingredient display text the rule matched
        forbidden_term: The exact term (rule term or synonym) that matched
        overrides: {forbidden_term: exclude_if_contains patterns}
    """
    if not overrides:
        return False
    patterns = overrides.get(forbidden_term.lower())
    if not patterns:
        return False
    lowered = text.lower()
    normalized = normalize_for_override(text)
    for pattern in patterns:
        needle = pattern.lower().strip()
        if not needle:
            continue
        normalized_needle = normalize_for_override(needle)
        if needle in lowered or (normalized_needle and normalized_needle in normalized):
            return True
    return False
