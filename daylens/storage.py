from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from .models import ACTIVITY_FIELDS, ActivityRecord
from .utils import ensure_directory

_COLUMNS = ", ".join(ACTIVITY_FIELDS)
_STORED_FORMAT = "%Y-%m-%dT%H:%M:%S.%f+00:00"


def _to_stored(moment: datetime) -> str:
    # Fixed-width UTC text keeps lexical order equal to time order.
    if moment.tzinfo is None:
        raise ValueError("created_at must be timezone-aware")
    return moment.astimezone(timezone.utc).strftime(_STORED_FORMAT)


class ActivityRepository:
    def __init__(self, db_path: Path, tz, log):
        self.db_path = db_path
        self._timezone = tz
        self._logger = log
        ensure_directory(db_path.parent)
        self._initialize()

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path, timeout=30)
        try:
            yield conn
        finally:
            conn.close()

    def _initialize(self) -> None:
        with self._connection() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS activity_records (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    created_at TEXT NOT NULL,
                    app_classification TEXT NOT NULL,
                    goal_relevance TEXT NOT NULL,
                    cognitive_state TEXT NOT NULL,
                    context_switching TEXT NOT NULL,
                    attention_residue TEXT NOT NULL,
                    procrastination_signal TEXT NOT NULL,
                    energy_level TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_activity_records_created_at
                ON activity_records(created_at);
                """
            )
            conn.commit()

    def ping(self) -> bool:
        with self._connection() as conn:
            conn.execute("SELECT 1").fetchone()
        return True

    def insert_activity(self, record: ActivityRecord) -> ActivityRecord:
        created_at = record.created_at if isinstance(record.created_at, datetime) else datetime.now(tz=self._timezone)
        values = [getattr(record, name) for name in ACTIVITY_FIELDS]
        with self._connection() as conn:
            cursor = conn.execute(
                f"INSERT INTO activity_records (created_at, {_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (_to_stored(created_at), *values),
            )
            conn.commit()
            row_id = int(cursor.lastrowid)

        self._logger.debug("Stored activity id=%s (%s)", row_id, record.app_classification)
        return ActivityRecord(
            **{name: getattr(record, name) for name in ACTIVITY_FIELDS},
            created_at=created_at.astimezone(self._timezone),
            id=row_id,
        )

    def query_range(self, start: datetime, end: datetime) -> List[ActivityRecord]:
        """Records with ``start <= created_at < end``, oldest first."""
        with self._connection() as conn:
            rows = conn.execute(
                f"""
                SELECT id, created_at, {_COLUMNS}
                FROM activity_records
                WHERE created_at >= ? AND created_at < ?
                ORDER BY created_at ASC, id ASC
                """,
                (_to_stored(start), _to_stored(end)),
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def day_bounds(self, day: date) -> Tuple[datetime, datetime]:
        start = datetime.combine(day, time.min, tzinfo=self._timezone)
        return start, datetime.combine(day + timedelta(days=1), time.min, tzinfo=self._timezone)

    def daily_activities(self, day: date) -> List[ActivityRecord]:
        start, end = self.day_bounds(day)
        records = self.query_range(start, end)
        self._logger.info("Found %s activities for %s", len(records), day.isoformat())
        return records

    def activities_in_range(self, first_day: date, last_day: date) -> List[ActivityRecord]:
        start, _ = self.day_bounds(first_day)
        _, end = self.day_bounds(last_day)
        return self.query_range(start, end)

    def latest_activity(self) -> Optional[ActivityRecord]:
        with self._connection() as conn:
            row = conn.execute(
                f"SELECT id, created_at, {_COLUMNS} FROM activity_records ORDER BY created_at DESC, id DESC LIMIT 1"
            ).fetchone()
        return self._row_to_record(row) if row else None

    def _row_to_record(self, row) -> ActivityRecord:
        raw_created = row[1]
        try:
            created_at: datetime | str = datetime.fromisoformat(raw_created).astimezone(self._timezone)
        except (TypeError, ValueError):
            # Left as text; segmentation reports it as an invalid timestamp.
            created_at = raw_created
        fields = dict(zip(ACTIVITY_FIELDS, row[2:]))
        return ActivityRecord(**fields, created_at=created_at, id=row[0])
