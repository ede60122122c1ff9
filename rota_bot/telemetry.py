"""Telemetry and operational metrics for the recruitment bot."""
from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class MetricType(Enum):
    """Types of metrics tracked."""
    COMMAND_USAGE = "command_usage"
    ERROR_RATE = "error_rate"
    PERFORMANCE = "performance"
    SYSTEM_EVENT = "system_event"
    SYNC = "sync"
    PERSISTENCE = "persistence"


@dataclass
class MetricEvent:
    """Individual metric event."""
    timestamp: float
    metric_type: MetricType
    name: str
    value: float
    tags: Dict[str, str] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)


class TelemetryCollector:
    """Collects and stores telemetry data for the bot."""

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize telemetry collector with database storage."""
        self.db_path = db_path or Path("telemetry.db")
        self._lock = threading.Lock()
        self._max_buffer = 1000  # Oldest events are dropped past this while the DB is unavailable
        self.available = self._init_database()
        self._start_time = time.time()
        self._metrics_buffer: List[MetricEvent] = []
        self._flush_interval = 60  # Flush to DB every 60 seconds
        self._last_flush = time.time()

    def _init_database(self) -> bool:
        """Initialize telemetry database schema; False if it cannot be opened."""
        try:
            self._create_schema()
        except Exception as e:
            logger.warning(
                "Telemetry database %s unavailable: %s",
                self.db_path,
                e,
                extra={"event": "telemetry.unavailable"},
            )
            return False
        return True

    def _create_schema(self):
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS metrics (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp REAL NOT NULL,
                    metric_type TEXT NOT NULL,
                    name TEXT NOT NULL,
                    value REAL NOT NULL,
                    tags TEXT,
                    metadata TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_metrics_timestamp
                ON metrics(timestamp DESC)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_metrics_type_name
                ON metrics(metric_type, name)
            """)
            conn.commit()

    def track_command(
        self,
        command_name: str,
        user_id: str,
        guild_id: str,
        success: bool = True,
        duration_ms: Optional[float] = None,
        channel_id: Optional[str] = None,
    ):
        """Track Discord command usage."""
        tags = {
            "user_id": user_id,
            "guild_id": guild_id,
            "success": str(success),
        }
        if channel_id:
            tags["channel_id"] = channel_id

        self.record(
            MetricType.COMMAND_USAGE,
            command_name,
            1.0,
            tags=tags,
            metadata={"duration_ms": duration_ms} if duration_ms else {}
        )

    def track_error(
        self,
        error_type: str,
        command: Optional[str] = None,
        user_id: Optional[str] = None,
        error_details: Optional[str] = None
    ):
        """Track errors and failures."""
        tags = {}
        if command:
            tags["command"] = command
        if user_id:
            tags["user_id"] = user_id

        self.record(
            MetricType.ERROR_RATE,
            error_type,
            1.0,
            tags=tags,
            metadata={"error_details": error_details} if error_details else {}
        )

    def track_performance(
        self,
        operation: str,
        duration_ms: float,
        tags: Optional[Dict[str, str]] = None
    ):
        """Track performance metrics."""
        self.record(
            MetricType.PERFORMANCE,
            operation,
            duration_ms,
            tags=tags or {},
            metadata={"unit": "milliseconds"}
        )

    def track_system_event(
        self,
        event: str,
        *,
        source: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        """Record startup, shutdown, or lock maintenance events."""

        tags = {}
        if source:
            tags["source"] = source

        metadata = {}
        if reason:
            metadata["reason"] = reason

        self.record(
            MetricType.SYSTEM_EVENT,
            event,
            1.0,
            tags=tags,
            metadata=metadata,
        )

    def track_sync(
        self,
        outcome: str,
        *,
        duration_ms: float,
        failure_kind: Optional[str] = None,
        commit_message: Optional[str] = None,
    ) -> None:
        """Record the outcome of one stage-commit-push cycle."""

        tags = {"outcome": outcome}
        if failure_kind:
            tags["failure_kind"] = failure_kind
        metadata: Dict[str, Any] = {"duration_ms": duration_ms}
        if commit_message:
            metadata["commit_message"] = commit_message[:200]

        self.record(
            MetricType.SYNC,
            outcome,
            duration_ms,
            tags=tags,
            metadata=metadata,
        )

    def track_persist(self, document: str, *, path: str, success: bool) -> None:
        """Record which persistence path a document write took."""

        self.record(
            MetricType.PERSISTENCE,
            document,
            1.0 if success else 0.0,
            tags={"path": path, "success": str(success)},
        )

    def record(
        self,
        metric_type: MetricType,
        name: str,
        value: float,
        tags: Optional[Dict[str, str]] = None,
        metadata: Optional[Dict[str, Any]] = None
    ):
        """Record a metric event; never raises."""
        try:
            event = MetricEvent(
                timestamp=time.time(),
                metric_type=metric_type,
                name=name,
                value=value,
                tags=tags or {},
                metadata=metadata or {}
            )

            with self._lock:
                self._metrics_buffer.append(event)
                self._trim_buffer()
                # Auto-flush if buffer is getting large or enough time has passed
                due = (self.available and len(self._metrics_buffer) >= 100) or \
                    time.time() - self._last_flush > self._flush_interval
            if due:
                self.flush()
        except Exception as e:
            logger.warning(
                "Failed to record metric %s: %s",
                name,
                e,
                extra={"event": "telemetry.unavailable"},
            )

    def _trim_buffer(self):
        overflow = len(self._metrics_buffer) - self._max_buffer
        if overflow > 0:
            del self._metrics_buffer[:overflow]

    def flush(self):
        """Flush buffered metrics to database."""
        with self._lock:
            events, self._metrics_buffer = self._metrics_buffer, []
        if not events:
            return

        self._last_flush = time.time()
        try:
            if not self.available:
                self._create_schema()
                self.available = True
            with sqlite3.connect(self.db_path) as conn:
                for event in events:
                    conn.execute("""
                        INSERT INTO metrics
                        (timestamp, metric_type, name, value, tags, metadata)
                        VALUES (?, ?, ?, ?, ?, ?)
                    """, (
                        event.timestamp,
                        event.metric_type.value,
                        event.name,
                        event.value,
                        json.dumps(event.tags),
                        json.dumps(event.metadata)
                    ))
                conn.commit()

            logger.info(f"Flushed {len(events)} metrics to database")

        except Exception as e:
            logger.error(f"Failed to flush metrics: {e}")
            with self._lock:
                self._metrics_buffer[:0] = events
                self._trim_buffer()

    def get_command_stats(
        self,
        start_time: Optional[float] = None,
        end_time: Optional[float] = None
    ) -> Dict[str, Dict[str, Any]]:
        """Get command usage statistics."""
        query = """
            SELECT
                name as command,
                COUNT(*) as usage_count,
                AVG(CASE WHEN json_extract(tags, '$.success') = 'True'
                    THEN 1 ELSE 0 END) as success_rate,
                COUNT(DISTINCT json_extract(tags, '$.user_id')) as unique_users
            FROM metrics
            WHERE metric_type = ?
        """
        params = [MetricType.COMMAND_USAGE.value]

        if start_time:
            query += " AND timestamp >= ?"
            params.append(start_time)
        if end_time:
            query += " AND timestamp <= ?"
            params.append(end_time)

        query += " GROUP BY name"

        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(query, params)
            results = {}
            for row in cursor.fetchall():
                results[row[0]] = {
                    "usage_count": row[1],
                    "success_rate": row[2],
                    "unique_users": row[3]
                }
            return results

    def get_error_summary(
        self,
        hours: int = 24
    ) -> Dict[str, int]:
        """Get error counts for the last N hours."""
        start_time = time.time() - (hours * 3600)

        query = """
            SELECT name, COUNT(*) as error_count
            FROM metrics
            WHERE metric_type = ? AND timestamp >= ?
            GROUP BY name
            ORDER BY error_count DESC
        """

        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(query, [
                MetricType.ERROR_RATE.value,
                start_time
            ])
            return {row[0]: row[1] for row in cursor.fetchall()}

    def get_sync_summary(self, hours: int = 24) -> Dict[str, Any]:
        """Summarise remote sync outcomes over the recent window."""

        start_time = time.time() - (hours * 3600)
        query = """
            SELECT
                name,
                json_extract(tags, '$.failure_kind') as failure_kind,
                COUNT(*) as total,
                AVG(value) as avg_duration
            FROM metrics
            WHERE metric_type = ? AND timestamp >= ?
            GROUP BY name, failure_kind
        """

        outcomes: Dict[str, int] = {}
        failures: Dict[str, int] = {}
        durations: Dict[str, float] = {}
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(query, [MetricType.SYNC.value, start_time])
            for name, failure_kind, total, avg_duration in cursor.fetchall():
                outcomes[name] = outcomes.get(name, 0) + total
                durations[name] = avg_duration or 0.0
                if failure_kind:
                    failures[failure_kind] = failures.get(failure_kind, 0) + total
        return {
            "outcomes": outcomes,
            "failures": failures,
            "avg_duration_ms": durations,
        }

    def get_system_events(
        self,
        hours: int = 24,
        limit: int = 10
    ) -> List[Dict[str, Any]]:
        """Return recent system events such as lock cleanups."""

        start_time = time.time() - (hours * 3600)

        query = """
            SELECT
                name,
                timestamp,
                json_extract(tags, '$.source') as source,
                json_extract(metadata, '$.reason') as reason
            FROM metrics
            WHERE metric_type = ? AND timestamp >= ?
            ORDER BY timestamp DESC
            LIMIT ?
        """

        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(query, [
                MetricType.SYSTEM_EVENT.value,
                start_time,
                limit,
            ])
            events = []
            for row in cursor.fetchall():
                events.append(
                    {
                        "event": row[0],
                        "timestamp": datetime.fromtimestamp(row[1]).isoformat(),
                        "source": row[2],
                        "reason": row[3],
                    }
                )
            return events

    def generate_report(self) -> Dict[str, Any]:
        """Generate a compact telemetry report."""
        self.flush()
        report = {
            "generated_at": datetime.now().isoformat(),
            "uptime_seconds": time.time() - self._start_time,
            "command_stats": self.get_command_stats(),
            "errors_24h": self.get_error_summary(24),
            "sync_24h": self.get_sync_summary(24),
            "system_events_24h": self.get_system_events(24, limit=10),
        }

        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute("""
                SELECT
                    COUNT(*) as total_events,
                    MIN(timestamp) as first_event,
                    MAX(timestamp) as last_event
                FROM metrics
            """)
            row = cursor.fetchone()
            report["overall"] = {
                "total_events": row[0],
                "first_event": datetime.fromtimestamp(row[1]).isoformat() if row[1] else None,
                "last_event": datetime.fromtimestamp(row[2]).isoformat() if row[2] else None
            }

        return report

    def cleanup_old_data(self, days_to_keep: int = 30):
        """Clean up old telemetry data."""
        cutoff_time = time.time() - (days_to_keep * 86400)

        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(
                "DELETE FROM metrics WHERE timestamp < ?",
                (cutoff_time,)
            )
            deleted = cursor.rowcount
            conn.commit()

        logger.info(f"Cleaned up {deleted} old metric events")
        return deleted


# Singleton instance
_telemetry: Optional[TelemetryCollector] = None


def get_telemetry() -> TelemetryCollector:
    """Get or create singleton telemetry collector."""
    global _telemetry
    if _telemetry is None:
        _telemetry = TelemetryCollector(Path(os.getenv("ROTA_TELEMETRY_DB", "telemetry.db")))
    return _telemetry


def set_telemetry(collector: Optional[TelemetryCollector]) -> None:
    """Replace the singleton collector (primarily for tests)."""
    global _telemetry
    _telemetry = collector


# Context manager for timing operations
class track_duration:
    """Context manager for tracking operation duration."""

    def __init__(self, operation: str, tags: Optional[Dict[str, str]] = None):
        self.operation = operation
        self.tags = tags or {}
        self.start_time = None

    def __enter__(self):
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration_ms = (time.time() - self.start_time) * 1000
        telemetry = get_telemetry()
        telemetry.track_performance(self.operation, duration_ms, self.tags)

        # Track error if exception occurred
        if exc_type:
            telemetry.track_error(
                exc_type.__name__,
                command=self.operation,
                error_details=str(exc_val)
            )
