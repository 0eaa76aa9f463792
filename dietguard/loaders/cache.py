"""Explicit caches for admin-editable tables.

A TableCache is constructed once per process and injected where it is
needed. It loads lazily on `get` and stays valid until `invalidate` is
called; there is no TTL. Admin writes go through OverrideAdmin, which
invalidates the matching cache after every successful write.
"""

import logging
import threading
from typing import Callable, Dict, Generic, List, Optional, TypeVar

from dietguard.data_layer.records import OverrideRecord, SynonymRecord, parse_records
from dietguard.loaders.store import OVERRIDES, SYNONYMS, RuleStore
from dietguard.rules.overrides import overrides_to_mapping


logger = logging.getLogger(__name__)

T = TypeVar("T")


class TableCache(Generic[T]):
    """Lazily loaded value with explicit invalidation.

    Usage:
        cache = TableCache("overrides", loader)
        value = cache.get()      # loads once
        cache.invalidate()       # next get() reloads
    """

    def __init__(self, name: str, loader: Callable[[], T]):
        self.name = name
        self._loader = loader
        self._value: Optional[T] = None
        self._loaded = False
        self._generation = 0
        self._lock = threading.Lock()

    def get(self) -> T:
        """Return the cached value, loading it if needed.

        Loader errors propagate and leave the cache empty.
        """
        with self._lock:
            if self._loaded:
                return self._value
            generation = self._generation
        value = self._loader()
        with self._lock:
            # An invalidate() during the load means `value` may be stale
            if generation == self._generation:
                self._value = value
                self._loaded = True
        logger.debug(f"Loaded {self.name} cache")
        return value

    def invalidate(self) -> None:
        with self._lock:
            self._value = None
            self._loaded = False
            self._generation += 1
        logger.info(f"Invalidated {self.name} cache")

    @property
    def is_loaded(self) -> bool:
        with self._lock:
            return self._loaded


class OverrideCache(TableCache[Dict[str, List[str]]]):
    """Active overrides as {forbidden_term: exclude_if_contains patterns}."""

    def __init__(self, store: RuleStore):
        super().__init__(OVERRIDES, lambda: self._load(store))

    @staticmethod
    def _load(store: RuleStore) -> Dict[str, List[str]]:
        records = parse_records(OverrideRecord, store.rows(OVERRIDES), OVERRIDES)
        return overrides_to_mapping(records)


class SynonymCache(TableCache[Dict[str, List[str]]]):
    """Active admin synonyms as {term: synonyms}."""

    def __init__(self, store: RuleStore):
        super().__init__(SYNONYMS, lambda: self._load(store))

    @staticmethod
    def _load(store: RuleStore) -> Dict[str, List[str]]:
        mapping: Dict[str, List[str]] = {}
        for record in parse_records(SynonymRecord, store.rows(SYNONYMS), SYNONYMS):
            if not record.is_active:
                continue
            synonyms = mapping.setdefault(record.term, [])
            synonyms.extend(s for s in record.synonyms if s not in synonyms)
        return mapping
