"""Signal providers: turn raw data sources into typed snapshots.

A provider exposes ``source`` (the snapshot source name rules refer to) and
``fetch()``, which returns a snapshot or raises. String matching on raw
log text happens here, at parse time, so rules only see typed fields.
"""
import json
import logging
import re
import sqlite3
import time
from contextlib import closing
from datetime import datetime, timedelta, timezone
from functools import partial
from pathlib import Path

from models.signals import (
    LogRecord, LogSnapshot, ErrorCountSnapshot, ApiLatencySnapshot,
    CancellationSnapshot, RevenueSnapshot, DatabaseSnapshot,
)

logger = logging.getLogger("opswatch.monitor.providers")

# (pattern, component, event) applied to lines that don't carry explicit tags
_CLASSIFIERS = [
    (re.compile(r"database.*connection.*fail", re.I), "database", "connection_failed"),
    (re.compile(r"zenith.*push.*fail", re.I), "zenith", "push_failed"),
    (re.compile(r"invalid.*schema|validation.*fail|constraint.*violation|foreign.*key|unique.*constraint", re.I),
     None, "schema_violation"),
]
_SCRAPER = re.compile(r"scraper", re.I)
_BOOKING = re.compile(r"booking", re.I)
_MISSING_VALUE = re.compile(r"\bnull\b|\bundefined\b|missing", re.I)
_DURATION = re.compile(r"([\d.]+)\s*ms")


def parse_timestamp(value):
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000 if value > 1e11 else value, tz=timezone.utc)
    dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _parse_duration(value):
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    match = _DURATION.search(str(value))
    return float(match.group(1)) if match else None


def parse_log_entry(entry):
    """Build a LogRecord from one decoded JSON log line."""
    timestamp = parse_timestamp(entry["timestamp"])
    message = str(entry.get("message", ""))
    raw = json.dumps(entry, default=str)

    component = entry.get("component")
    event = entry.get("event")
    if event is None:
        for pattern, tagged_component, tagged_event in _CLASSIFIERS:
            if pattern.search(raw):
                component = component or tagged_component
                event = tagged_event
                break
    if event is None and _BOOKING.search(message) and _MISSING_VALUE.search(raw):
        event = "missing_booking_data"
    if component is None and _SCRAPER.search(message):
        component = "scraper"

    status = entry.get("statusCode", entry.get("status_code"))
    return LogRecord(
        timestamp=timestamp,
        level=str(entry.get("level", "info")).lower(),
        message=message,
        component=component,
        event=event,
        status_code=int(status) if status is not None else None,
        duration_ms=_parse_duration(entry.get("duration", entry.get("responseTime"))),
    )


class LogDirectoryProvider:
    """Recent structured (JSON lines) log records from a directory of log files."""

    source = LogSnapshot.source

    def __init__(self, path="logs", window_minutes=10, patterns=("*.log", "*.jsonl"), clock=None):
        self.path = Path(path)
        self.window = timedelta(minutes=window_minutes)
        self.patterns = patterns
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _files(self, cutoff):
        if not self.path.is_dir():
            raise FileNotFoundError(f"Log directory not found: {self.path}")
        for pattern in self.patterns:
            for f in sorted(self.path.glob(pattern)):
                if "audit" in f.name:
                    continue
                # Files untouched since the window opened can't hold lines inside it
                if datetime.fromtimestamp(f.stat().st_mtime, tz=timezone.utc) < cutoff:
                    continue
                yield f

    def _read(self, start, end=None):
        records = []
        skipped = 0
        for log_file in self._files(start):
            with open(log_file, encoding="utf-8", errors="replace") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        record = parse_log_entry(json.loads(line))
                    except (ValueError, KeyError, TypeError):
                        skipped += 1
                        continue
                    if record.timestamp >= start and (end is None or record.timestamp <= end):
                        records.append(record)
        records.sort(key=lambda r: r.timestamp)
        if skipped:
            logger.debug(f"Skipped {skipped} unparseable log lines in {self.path}")
        return tuple(records)

    def fetch(self):
        now = self._clock()
        return LogSnapshot(captured_at=now, records=self._read(now - self.window))

    def fetch_range(self, start, end):
        """Records logged between ``start`` and ``end`` inclusive, for historical scans.

        The snapshot is captured at ``end`` so windowed rules look back from there.
        """
        if end < start:
            raise ValueError(f"range end {end.isoformat()} is before start {start.isoformat()}")
        return LogSnapshot(captured_at=end, records=self._read(start, end))


def _first_row(rows):
    return rows[0] if rows else {}


SNAPSHOT_BUILDERS = {
    ErrorCountSnapshot.source: lambda rows: ErrorCountSnapshot.from_row(_first_row(rows)),
    ApiLatencySnapshot.source: ApiLatencySnapshot.from_rows,
    CancellationSnapshot.source: lambda rows: CancellationSnapshot.from_row(_first_row(rows)),
    RevenueSnapshot.source: lambda rows: RevenueSnapshot.from_row(_first_row(rows)),
}


def sqlite_connector(path, timeout=10):
    return partial(sqlite3.connect, str(path), timeout=timeout)


class SqlQueryProvider:
    """Runs one SQL query over a DB-API connection and builds a typed snapshot from the rows."""

    def __init__(self, source, connect, query, builder=None):
        if builder is None and source not in SNAPSHOT_BUILDERS:
            raise ValueError(f"No snapshot builder for source: {source}")
        self.source = source
        self.connect = connect
        self.query = query
        self.builder = builder or SNAPSHOT_BUILDERS[source]

    def fetch(self):
        with closing(self.connect()) as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(self.query)
                columns = [c[0] for c in cursor.description or []]
                rows = [dict(zip(columns, row)) for row in cursor.fetchall()]
            finally:
                cursor.close()
        return self.builder(rows)


class DatabaseProbeProvider:
    """Round-trip probe; connection failures are reported in the snapshot, not raised."""

    source = DatabaseSnapshot.source

    def __init__(self, connect, query="SELECT 1"):
        self.connect = connect
        self.query = query

    def fetch(self):
        start = time.perf_counter()
        try:
            with closing(self.connect()) as conn:
                cursor = conn.cursor()
                cursor.execute(self.query)
                cursor.fetchall()
                cursor.close()
        except Exception as e:
            logger.warning(f"Database probe failed: {e}")
            return DatabaseSnapshot(error=str(e))
        return DatabaseSnapshot(response_ms=(time.perf_counter() - start) * 1000)


class CallableProvider:
    """Adapter for a host-supplied function returning a snapshot."""

    def __init__(self, source, fn):
        self.source = source
        self.fn = fn

    def fetch(self):
        return self.fn()
