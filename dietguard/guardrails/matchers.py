"""Pure text matchers, one per match mode."""

import re

from dietguard.guardrails.targets import TextAtom
from dietguard.rules.guard_rules import MatchMode


def match_exact(text: str, term: str) -> bool:
    """Case-insensitive exact match."""
    return text.lower().strip() == term.lower().strip()


def _word_pattern(term: str) -> str:
    return r"\b" + re.escape(term.lower()) + r"\b"


def match_word_boundary(text: str, term: str) -> bool:
    """Whole-word match: "suiker" matches "suiker" but not "suikervrij"."""
    return re.search(_word_pattern(term), text.lower()) is not None


def match_substring(text: str, term: str) -> bool:
    """Case-insensitive substring match. "pasta" also matches "pastasaus"."""
    return term.lower() in text.lower()


def match_word_prefix(text: str, term: str) -> bool:
    """Term starts a word: "ui" matches "uien" and "rode ui" but not "fruit"."""
    pattern = r"\b" + re.escape(term.lower())
    return re.search(pattern, text.lower()) is not None


def match_canonical_id(atom: TextAtom, canonical_id: str) -> bool:
    """Canonical id equality; falls back to text equality when the atom has no id."""
    if atom.canonical_id:
        return atom.canonical_id == canonical_id
    return atom.text == canonical_id


def match_text_atom(atom: TextAtom, term: str, mode: MatchMode) -> bool:
    if mode is MatchMode.EXACT:
        return match_exact(atom.text, term)
    if mode is MatchMode.WORD_BOUNDARY:
        return match_word_boundary(atom.text, term)
    if mode is MatchMode.SUBSTRING:
        return match_substring(atom.text, term)
    if mode is MatchMode.CANONICAL_ID:
        return match_canonical_id(atom, term)
    return False


def matched_text(atom: TextAtom, term: str, mode: MatchMode) -> str:
    """The part of the atom to report for a match."""
    if mode is MatchMode.CANONICAL_ID and atom.canonical_id:
        return atom.canonical_id
    if mode is MatchMode.WORD_BOUNDARY:
        found = re.search(_word_pattern(term), atom.text.lower())
        if found:
            return atom.text[found.start():found.end()]
    return term
