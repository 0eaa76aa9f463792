"""Rule-table storage.

The engine only depends on the RuleStore protocol. JsonRuleStore keeps
each table in its own JSON file under a data directory, plus a meta file
with the table version that every write bumps.

Layout:
    <data_dir>/diet_constraints.json        {"diet_constraints": [...]}
    <data_dir>/adaptation_rules.json        {"adaptation_rules": [...]}
    <data_dir>/heuristics.json              {"heuristics": [...]}
    <data_dir>/overrides.json               {"overrides": [...]}
    <data_dir>/synonyms.json                {"synonyms": [...]}
    <data_dir>/household_avoid_rules.json   {"household_avoid_rules": [...]}
    <data_dir>/meta.json                    {"version": 3}
"""

import json
import threading
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from dietguard.data_layer.exceptions import RulesetLoadError


DIET_CONSTRAINTS = "diet_constraints"
ADAPTATION_RULES = "adaptation_rules"
HEURISTICS = "heuristics"
OVERRIDES = "overrides"
SYNONYMS = "synonyms"
HOUSEHOLD_AVOID_RULES = "household_avoid_rules"

TABLES = (DIET_CONSTRAINTS, ADAPTATION_RULES, HEURISTICS, OVERRIDES, SYNONYMS, HOUSEHOLD_AVOID_RULES)


class RuleStore(Protocol):
    """Raw row access to the rule tables. Rows are unvalidated dicts."""

    def rows(self, table: str) -> List[Dict[str, Any]]:
        ...

    def version(self) -> int:
        ...

    def upsert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        ...

    def delete(self, table: str, row_id: str) -> bool:
        ...


class JsonRuleStore:
    """File-backed RuleStore.

    Read failures (unreadable file, invalid JSON, wrong shape) raise
    RulesetLoadError. A missing table file is an empty table.
    """

    def __init__(self, data_dir: str):
        """Initialize store.

        Args:
            data_dir: Directory holding the table files (created on first write)
        """
        self.data_dir = Path(data_dir)
        self._lock = threading.Lock()

    def rows(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            return self._read_table(table)

    def version(self) -> int:
        with self._lock:
            meta = self._read_json("meta.json", default={"version": 1})
        try:
            return int(meta.get("version", 1))
        except (TypeError, ValueError, AttributeError) as e:
            raise RulesetLoadError("meta.json", f"invalid version: {e}") from e

    def upsert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        """Insert or replace a row by id, assigning an id when missing. Bumps the version."""
        stored = dict(row)
        stored.setdefault("id", str(uuid.uuid4()))
        with self._lock:
            rows = self._read_table(table)
            for index, existing in enumerate(rows):
                if existing.get("id") == stored["id"]:
                    rows[index] = stored
                    break
            else:
                rows.append(stored)
            self._write_table(table, rows)
            self._bump_version()
        return stored

    def delete(self, table: str, row_id: str) -> bool:
        """Delete a row by id. Returns False (and does not bump) when absent."""
        with self._lock:
            rows = self._read_table(table)
            remaining = [r for r in rows if r.get("id") != row_id]
            if len(remaining) == len(rows):
                return False
            self._write_table(table, remaining)
            self._bump_version()
        return True

    # --- File helpers (callers hold the lock) ---

    def _path(self, name: str) -> Path:
        return self.data_dir / name

    def _read_json(self, name: str, default: Any) -> Any:
        path = self._path(name)
        if not path.exists():
            return default
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise RulesetLoadError(name, str(e)) from e

    def _read_table(self, table: str) -> List[Dict[str, Any]]:
        if table not in TABLES:
            raise RulesetLoadError(table, "unknown table")
        data = self._read_json(f"{table}.json", default={table: []})
        rows = data.get(table) if isinstance(data, dict) else None
        if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
            raise RulesetLoadError(f"{table}.json", f"expected a list of objects under '{table}'")
        return rows

    def _write_json(self, name: str, data: Any) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        path = self._path(name)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        tmp_path.replace(path)

    def _write_table(self, table: str, rows: List[Dict[str, Any]]) -> None:
        self._write_json(f"{table}.json", {table: rows})

    def _bump_version(self) -> None:
        meta = self._read_json("meta.json", default={"version": 1})
        meta["version"] = int(meta.get("version", 1)) + 1
        self._write_json("meta.json", meta)


def rows_for(store: RuleStore, table: str, key: str, value: Optional[str]) -> List[Dict[str, Any]]:
    """Rows of `table` whose `key` equals `value`."""
    return [row for row in store.rows(table) if row.get(key) == value]
