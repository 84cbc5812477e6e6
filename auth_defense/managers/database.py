"""
AuthSentry SQLite Audit Database

SQLite backend for durable audit entry storage.

Provides:
- Append-only audit_log table with JSON details
- Indexed filtering by event type, user, risk level and timestamp
- Retry with exponential backoff when the database is locked
- Query timing in debug mode

Database schema:
- audit_log table: id, event_type, risk_level, user_id, ip, user_agent,
  session_id, timestamp, details

Author: AuthSentry Project
License: GNU GPL v3
"""

import sqlite3
from typing import List
from pathlib import Path
from datetime import datetime
import json
import logging
import time
from contextlib import contextmanager

from ..models import AuditEntry, AuditFilters, RiskLevel, as_utc
from .audit_store import AuditStore


class SQLiteAuditStore(AuditStore):
    """SQLite database manager for audit entry storage"""

    def __init__(self, db_path: str, max_retries: int = 5, retry_delay: float = 0.1):
        """
        Initialize database and create tables.

        Args:
            db_path: Path to SQLite database file (from config)
            max_retries: Attempts before giving up on a locked database
            retry_delay: Initial backoff delay in seconds (doubles per retry)
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.logger = logging.getLogger(__name__)
        self.max_retries = max_retries
        self.retry_delay = retry_delay

        self._init_db()

    @contextmanager
    def _query_timer(self, operation: str):
        """
        Context manager for query performance logging (debug mode only).

        Args:
            operation: Description of the operation being timed
        """
        start_time = time.perf_counter()
        try:
            yield
        finally:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            if self.logger.isEnabledFor(logging.DEBUG):
                self.logger.debug(f"[PERF] {operation}: {elapsed_ms:.2f}ms")

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, timeout=30.0)

    def _init_db(self):
        """Create database tables and indexes if they don't exist."""
        conn = self._connect()
        try:
            # Enable WAL mode for better concurrent read/write performance
            conn.execute("PRAGMA journal_mode=WAL")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS audit_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    event_type TEXT NOT NULL,
                    risk_level TEXT NOT NULL,
                    user_id TEXT,
                    ip TEXT,
                    user_agent TEXT,
                    session_id TEXT,
                    timestamp TEXT NOT NULL,
                    details TEXT
                )
            """)

            conn.execute("CREATE INDEX IF NOT EXISTS idx_event_type ON audit_log(event_type)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_user_id ON audit_log(user_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_risk_level ON audit_log(risk_level)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_timestamp ON audit_log(timestamp DESC)")

            conn.commit()
        finally:
            conn.close()

    def insert(self, entry: AuditEntry) -> None:
        """
        Append one audit entry.

        Implements retry logic with exponential backoff for concurrent access.

        Args:
            entry: AuditEntry to persist

        Raises:
            sqlite3.Error: If the write fails or the database stays locked
        """
        retry_delay = self.retry_delay

        for attempt in range(self.max_retries):
            conn = None
            try:
                conn = self._connect()
                with self._query_timer(f"insert({entry.event_type})"):
                    conn.execute("""
                        INSERT INTO audit_log (
                            event_type, risk_level, user_id, ip,
                            user_agent, session_id, timestamp, details
                        )
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """, (
                        entry.event_type,
                        entry.risk_level.value,
                        entry.user_id,
                        entry.ip,
                        entry.user_agent,
                        entry.session_id,
                        as_utc(entry.timestamp).isoformat(timespec='microseconds'),
                        json.dumps(entry.details, default=str),
                    ))
                    conn.commit()
                return

            except sqlite3.OperationalError as e:
                is_lock_error = "locked" in str(e).lower()

                if is_lock_error and attempt < self.max_retries - 1:
                    self.logger.warning(
                        f"Database locked on attempt {attempt + 1}/{self.max_retries}, "
                        f"retrying in {retry_delay:.2f}s..."
                    )
                    time.sleep(retry_delay)
                    retry_delay *= 2  # Exponential backoff
                    continue
                raise

            finally:
                if conn is not None:
                    conn.close()

    def query(self, filters: AuditFilters) -> List[AuditEntry]:
        """
        Query audit entries matching filters.

        Timestamps are stored as UTC ISO-8601 strings, which sort
        lexicographically in time order.

        Args:
            filters: Validated AuditFilters

        Returns:
            List of AuditEntry, newest first
        """
        query = "SELECT event_type, risk_level, user_id, ip, user_agent, session_id, timestamp, details FROM audit_log WHERE 1=1"
        params = []

        if filters.event_type:
            query += " AND event_type = ?"
            params.append(filters.event_type)

        if filters.user_id:
            query += " AND user_id = ?"
            params.append(filters.user_id)

        if filters.risk_level:
            query += " AND risk_level = ?"
            params.append(filters.risk_level.value)

        if filters.start_date:
            query += " AND timestamp >= ?"
            params.append(filters.start_date.isoformat(timespec='microseconds'))

        if filters.end_date:
            query += " AND timestamp <= ?"
            params.append(filters.end_date.isoformat(timespec='microseconds'))

        # Order by timestamp DESC (uses idx_timestamp index), id breaks ties
        query += " ORDER BY timestamp DESC, id DESC LIMIT ?"
        params.append(filters.limit)

        entries = []

        conn = self._connect()
        try:
            with self._query_timer(f"query(limit={filters.limit})"):
                rows = conn.execute(query, params).fetchall()
        finally:
            conn.close()

        for row in rows:
            try:
                details = json.loads(row[7]) if row[7] else {}
            except json.JSONDecodeError:
                self.logger.warning(f"Corrupt details JSON for {row[0]} at {row[6]}")
                details = {}

            try:
                entries.append(AuditEntry(
                    event_type=row[0],
                    risk_level=RiskLevel(row[1]),
                    user_id=row[2],
                    ip=row[3],
                    user_agent=row[4] or 'unknown',
                    session_id=row[5],
                    timestamp=datetime.fromisoformat(row[6]),
                    details=details,
                ))
            except ValueError as e:
                self.logger.warning(f"Error parsing audit row {row[0]} at {row[6]}: {e}")
                continue

        return entries

    def get_statistics(self) -> dict:
        """
        Calculate audit statistics.

        Returns:
            Dict with total entries and counts by risk level and event type
        """
        conn = self._connect()
        try:
            with self._query_timer("get_statistics"):
                total = conn.execute("SELECT COUNT(*) FROM audit_log").fetchone()[0]
                by_risk = dict(conn.execute(
                    "SELECT risk_level, COUNT(*) FROM audit_log GROUP BY risk_level"
                ).fetchall())
                by_event = dict(conn.execute(
                    "SELECT event_type, COUNT(*) FROM audit_log GROUP BY event_type"
                ).fetchall())
        finally:
            conn.close()

        return {
            'total_entries': total,
            'by_risk_level': by_risk,
            'by_event_type': by_event,
        }
