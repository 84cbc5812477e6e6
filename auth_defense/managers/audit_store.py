"""
AuthSentry Audit Store

Persistence collaborator interface for audit entries, plus a bounded
in-memory implementation.

The interface maps 1:1 onto what AuditLogger needs:
- insert(entry): durably record one entry
- query(filters): entries matching AuditFilters, newest first, capped at limit

Stores are allowed to raise; AuditLogger is responsible for turning
failures into degraded-mode logging.

Author: AuthSentry Project
License: GNU GPL v3
"""

import threading
from abc import ABC, abstractmethod
from collections import deque
from typing import List

from ..models import AuditEntry, AuditFilters


class AuditStore(ABC):
    """Interface for durable audit entry storage."""

    @abstractmethod
    def insert(self, entry: AuditEntry) -> None:
        """Persist one audit entry."""

    @abstractmethod
    def query(self, filters: AuditFilters) -> List[AuditEntry]:
        """Return entries matching filters, newest first, at most filters.limit."""

    def close(self) -> None:
        """Release any resources held by the store."""


class InMemoryAuditStore(AuditStore):
    """
    Audit store kept in process memory.

    Holds at most ``capacity`` entries; the oldest are discarded first.
    Suitable for tests and single-process deployments that ship the
    audit log lines to an external collector.
    """

    def __init__(self, capacity: int = 10000):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._entries = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def insert(self, entry: AuditEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def query(self, filters: AuditFilters) -> List[AuditEntry]:
        with self._lock:
            snapshot = list(self._entries)

        matched = [entry for entry in snapshot if filters.matches(entry)]
        # Equal timestamps: most recently inserted first
        matched.reverse()
        matched.sort(key=lambda entry: entry.timestamp, reverse=True)
        return matched[:filters.limit]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
