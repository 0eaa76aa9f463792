"""Meal-plan persistence seam and per-plan serialisation.

Only the draft actions write plans. Each write names the version it read;
a mismatch raises ConcurrentModificationError. PlanLocks additionally
serialises read-evaluate-write sequences for one plan inside a process.
"""

import copy
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional, Protocol

from dietguard.data_layer.exceptions import ConcurrentModificationError, PlanNotFoundError


STATUS_DRAFT = "draft"
STATUS_APPLIED = "applied"


@dataclass
class PlanRecord:
    """Stored meal plan row.

    Attributes:
        plan_id: Plan identifier
        status: "draft" while under review, "applied" otherwise
        plan_snapshot: Applied snapshot (camelCase dict)
        draft_snapshot: Draft under review, None outside review
        diet_key: Diet the plan was generated for
        household_id: Household whose avoid rules apply, if any
        version: Optimistic-concurrency counter, bumped by every save
    """

    plan_id: str
    status: str
    plan_snapshot: Optional[Dict[str, Any]]
    draft_snapshot: Optional[Dict[str, Any]] = None
    diet_key: Optional[str] = None
    household_id: Optional[str] = None
    version: int = 1
    draft_created_at: Optional[str] = None
    applied_at: Optional[str] = None
    updated_at: Optional[str] = None
    guardrails_diagnostics: Optional[Dict[str, Any]] = None


class PlanStore(Protocol):
    def get(self, plan_id: str) -> PlanRecord:
        ...

    def save(self, record: PlanRecord, expected_version: int) -> PlanRecord:
        ...


class InMemoryPlanStore:
    """Dict-backed PlanStore. Records are copied on the way in and out."""

    def __init__(self):
        self._plans: Dict[str, PlanRecord] = {}
        self._lock = threading.Lock()

    def add(self, record: PlanRecord) -> None:
        with self._lock:
            self._plans[record.plan_id] = copy.deepcopy(record)

    def get(self, plan_id: str) -> PlanRecord:
        """Raises PlanNotFoundError for unknown ids."""
        with self._lock:
            record = self._plans.get(plan_id)
            if record is None:
                raise PlanNotFoundError(plan_id)
            return copy.deepcopy(record)

    def save(self, record: PlanRecord, expected_version: int) -> PlanRecord:
        """Persist `record` if the stored version still equals `expected_version`.

        Raises:
            PlanNotFoundError: If the plan does not exist
            ConcurrentModificationError: If the stored version moved on
        """
        with self._lock:
            current = self._plans.get(record.plan_id)
            if current is None:
                raise PlanNotFoundError(record.plan_id)
            if current.version != expected_version:
                raise ConcurrentModificationError(record.plan_id, expected_version, current.version)
            stored = copy.deepcopy(record)
            stored.version = expected_version + 1
            stored.updated_at = datetime.now(timezone.utc).isoformat()
            self._plans[record.plan_id] = stored
            return copy.deepcopy(stored)


class PlanLocks:
    """One re-entrant lock per plan id, dropped once no caller holds or waits on it."""

    def __init__(self):
        self._locks: Dict[str, threading.RLock] = {}
        self._users: Dict[str, int] = {}
        self._guard = threading.Lock()

    @contextmanager
    def for_plan(self, plan_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.get(plan_id)
            if lock is None:
                lock = self._locks[plan_id] = threading.RLock()
            self._users[plan_id] = self._users.get(plan_id, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[plan_id] -= 1
                if self._users[plan_id] == 0:
                    del self._users[plan_id]
                    del self._locks[plan_id]

    def active_count(self) -> int:
        """Number of plan ids that currently have a lock."""
        with self._guard:
            return len(self._locks)
