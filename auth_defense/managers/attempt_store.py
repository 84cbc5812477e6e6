"""
AuthSentry Attempt Store

Storage abstraction for per-identifier failed attempt records.

BruteForceProtection only talks to the AttemptStore interface, so a
single-process dictionary and an externally shared cache are
interchangeable without touching business logic.

Implementations must be safe for concurrent single calls. Multi-step
read-modify-write sequences are serialized by the caller.

Author: AuthSentry Project
License: GNU GPL v3
"""

import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

from ..models import AttemptRecord


class AttemptStore(ABC):
    """Interface for attempt record storage."""

    @abstractmethod
    def get(self, identifier: str) -> Optional[AttemptRecord]:
        """Return a copy of the record for identifier, or None."""

    @abstractmethod
    def set(self, record: AttemptRecord) -> None:
        """Insert or replace the record keyed by record.identifier."""

    @abstractmethod
    def delete(self, identifier: str) -> bool:
        """Remove a record. Returns True if it existed."""

    @abstractmethod
    def sweep(self, predicate: Callable[[AttemptRecord], bool]) -> int:
        """Remove every record for which predicate returns True. Returns count removed."""

    @abstractmethod
    def records(self) -> List[AttemptRecord]:
        """Return copies of all records in insertion order."""

    def __len__(self) -> int:
        return len(self.records())


class InMemoryAttemptStore(AttemptStore):
    """
    Process-local attempt store backed by a dict.

    Records are copied on the way in and out so callers never hold
    references into shared state.
    """

    def __init__(self):
        self._records: Dict[str, AttemptRecord] = {}
        self._lock = threading.Lock()

    def get(self, identifier: str) -> Optional[AttemptRecord]:
        with self._lock:
            record = self._records.get(identifier)
            return record.copy() if record else None

    def set(self, record: AttemptRecord) -> None:
        with self._lock:
            # Re-setting an existing key keeps its insertion position
            self._records[record.identifier] = record.copy()

    def delete(self, identifier: str) -> bool:
        with self._lock:
            return self._records.pop(identifier, None) is not None

    def sweep(self, predicate: Callable[[AttemptRecord], bool]) -> int:
        with self._lock:
            stale = [key for key, record in self._records.items() if predicate(record)]
            for key in stale:
                del self._records[key]
            return len(stale)

    def records(self) -> List[AttemptRecord]:
        with self._lock:
            return [record.copy() for record in self._records.values()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
