"""SQLite sink for alert lifecycle transitions.

Optional: the in-memory store stays authoritative; this table only keeps a
durable trail for the CLI ``history`` command and offline analysis.
"""
import json
import sqlite3
import logging
import threading
from pathlib import Path

logger = logging.getLogger("opswatch.db")


class Database:
    def __init__(self, db_path="data/opswatch.db"):
        self.db_path = db_path
        self.conn = None
        self._lock = threading.Lock()

    def connect(self):
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._create_tables()
        return self

    def close(self):
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, *args):
        self.close()

    def _create_tables(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS alert_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                alert_id TEXT NOT NULL,
                alert_type TEXT NOT NULL,
                transition TEXT NOT NULL,
                severity TEXT NOT NULL,
                category TEXT,
                title TEXT,
                message TEXT,
                metadata TEXT,
                occurrence_count INTEGER DEFAULT 1,
                acknowledged INTEGER DEFAULT 0,
                created_at TEXT NOT NULL,
                recorded_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_alert_history_recorded
                ON alert_history(recorded_at);

            CREATE INDEX IF NOT EXISTS idx_alert_history_type
                ON alert_history(alert_type);
        """)
        self.conn.commit()

    # --- Alert History ---

    def save_transition(self, transition):
        alert = transition.alert
        recorded_at = transition.recorded_at or alert.last_seen_at
        with self._lock:
            self.conn.execute("""
                INSERT INTO alert_history
                (alert_id, alert_type, transition, severity, category, title, message,
                 metadata, occurrence_count, acknowledged, created_at, recorded_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                alert.id, alert.type, transition.kind.value, alert.severity.value,
                alert.category, alert.title, alert.message,
                json.dumps(alert.metadata, default=str), alert.occurrence_count,
                int(alert.acknowledged), alert.created_at.isoformat(), recorded_at.isoformat(),
            ))
            self.conn.commit()
        logger.debug(f"Saved {transition.kind.value} for {alert.id}")

    def get_recent_alerts(self, limit=50, alert_type=None):
        query = "SELECT * FROM alert_history"
        params = []
        if alert_type:
            query += " WHERE alert_type = ?"
            params.append(alert_type)
        query += " ORDER BY recorded_at DESC, id DESC LIMIT ?"
        params.append(limit)
        with self._lock:
            rows = self.conn.execute(query, params).fetchall()
        results = []
        for r in rows:
            d = dict(r)
            d["metadata"] = json.loads(d["metadata"]) if d["metadata"] else {}
            d["acknowledged"] = bool(d["acknowledged"])
            results.append(d)
        return results

    def get_alert_counts(self, since):
        """Count transitions by type recorded at or after ``since`` (datetime)."""
        with self._lock:
            rows = self.conn.execute("""
                SELECT alert_type, COUNT(*) AS count FROM alert_history
                WHERE recorded_at >= ?
                GROUP BY alert_type ORDER BY count DESC
            """, (since.isoformat(),)).fetchall()
        return {r["alert_type"]: r["count"] for r in rows}
