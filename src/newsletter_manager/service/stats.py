"""Persisted scan counters with SQLite storage."""

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from ..models import ScanStats

logger = logging.getLogger(__name__)


class StatsStore:
    """Key-value store for cumulative newsletter counters."""

    def __init__(self, db_path: Path) -> None:
        """Initialize the stats store.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = db_path
        self._ensure_db()

    def _ensure_db(self) -> None:
        """Ensure the database exists and holds the default counters."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS stats (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            """)
            # Defaults on first use only
            defaults = ScanStats().model_dump(mode="json")
            conn.executemany(
                "INSERT OR IGNORE INTO stats (key, value) VALUES (?, ?)",
                [(key, json.dumps(value)) for key, value in defaults.items()],
            )
            conn.commit()

    def get(self) -> ScanStats:
        """Read the current counters."""
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute("SELECT key, value FROM stats")
            values = {key: json.loads(value) for key, value in cursor.fetchall()}
        known = {k: v for k, v in values.items() if k in ScanStats.model_fields}
        return ScanStats.model_validate(known)

    def update(self, **fields: Any) -> ScanStats:
        """Merge fields into the current counters and write them back.

        Raises:
            ValueError: if a field is not a known counter.
        """
        unknown = set(fields) - set(ScanStats.model_fields)
        if unknown:
            raise ValueError(f"Unknown stats fields: {', '.join(sorted(unknown))}")

        merged = self.get().model_copy(update=fields)
        stats = ScanStats.model_validate(merged.model_dump())
        data = stats.model_dump(mode="json")

        with sqlite3.connect(self.db_path) as conn:
            conn.executemany(
                "INSERT OR REPLACE INTO stats (key, value) VALUES (?, ?)",
                [(key, json.dumps(data[key])) for key in fields],
            )
            conn.commit()

        return stats

    def record_scan(self, newsletters_found: int, when: datetime | None = None) -> ScanStats:
        """Store the outcome of a completed scan."""
        logger.debug(f"Recording scan with {newsletters_found} newsletters")
        return self.update(
            newsletters_detected=newsletters_found,
            last_scan=when or datetime.now(),
        )

    def reset(self) -> ScanStats:
        """Restore all counters to their defaults."""
        return self.update(**ScanStats().model_dump())
