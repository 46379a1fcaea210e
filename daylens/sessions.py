"""Gap-based segmentation of a day's activity records into work sessions.

Records are walked in timestamp order. Whenever two consecutive records are more
than ``min_gap_minutes`` apart the running session is closed, the interval between
them becomes a :class:`TimeGap`, and the later record opens a new session. Gaps are
measured in whole minutes (half-up), so a 5m20s gap counts as 5 and does not split.
"""

from __future__ import annotations

from datetime import datetime, timezone, tzinfo
from typing import List, Optional, Sequence, Tuple

from .models import ActivityRecord, SessionAnalysis, TimeGap, WorkSession

MIN_GAP_MINUTES = 5
MAX_SESSION_HOURS = 4
APP_CLOSED_AFTER_MINUTES = 60
LOW_QUALITY_WARNING_COUNT = 5
HIGH_QUALITY_MIN_RECORDS = 10
NO_DATA_WARNING = "No activity data provided"


def parse_timestamp(value, tz: Optional[tzinfo] = None) -> Optional[datetime]:
    """Return an aware datetime for ``value``, or None when it is missing or unparsable.

    Naive values are interpreted in ``tz`` (UTC when no zone is given).
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz or timezone.utc)
    return parsed


def whole_minutes(start: datetime, end: datetime) -> int:
    seconds = (end - start).total_seconds()
    return int(seconds / 60 + 0.5)


def gap_reason(duration_minutes: int) -> str:
    return "app_closed" if duration_minutes > APP_CLOSED_AFTER_MINUTES else "away_from_computer"


def data_quality(warning_count: int, record_count: int) -> str:
    if warning_count > LOW_QUALITY_WARNING_COUNT or record_count == 0:
        return "low"
    if warning_count > 0 or record_count < HIGH_QUALITY_MIN_RECORDS:
        return "medium"
    return "high"


def analyze_work_sessions(
    records: Sequence[ActivityRecord],
    min_gap_minutes: int = MIN_GAP_MINUTES,
    max_session_hours: int = MAX_SESSION_HOURS,
    tz: Optional[tzinfo] = None,
) -> SessionAnalysis:
    records = list(records or [])
    if not records:
        return SessionAnalysis(
            sessions=[],
            gaps=[],
            total_active_minutes=0,
            total_gap_minutes=0,
            data_quality="low",
            warnings=[NO_DATA_WARNING],
            record_count=0,
        )

    warnings: List[str] = []
    timed: List[Tuple[datetime, ActivityRecord]] = []
    for index, record in enumerate(records):
        moment = parse_timestamp(record.created_at, tz)
        if moment is None:
            warnings.append(f"Invalid timestamp at index {index}")
            continue
        timed.append((moment, record))

    # Stable sort keeps the store's order for identical timestamps.
    timed.sort(key=lambda item: item[0])

    sessions: List[WorkSession] = []
    gaps: List[TimeGap] = []
    max_session_minutes = max_session_hours * 60
    current: WorkSession | None = None
    previous_time: datetime | None = None

    for moment, record in timed:
        if current is not None and previous_time is not None:
            gap_minutes = whole_minutes(previous_time, moment)
            if gap_minutes > min_gap_minutes:
                current.is_complete = True
                sessions.append(current)
                gaps.append(
                    TimeGap(
                        start=previous_time,
                        end=moment,
                        duration_minutes=gap_minutes,
                        reason=gap_reason(gap_minutes),
                    )
                )
                current = None

        if current is None:
            current = WorkSession(
                id=f"session_{len(sessions) + 1}",
                start=moment,
                end=moment,
                duration_minutes=0,
                activities=[record],
                dominant_cognitive_state=record.cognitive_state,
                apps_used=[record.app_name],
            )
        else:
            current.end = moment
            current.activities.append(record)
            current.duration_minutes = whole_minutes(current.start, current.end)
            if record.app_name not in current.apps_used:
                current.apps_used.append(record.app_name)
            if current.duration_minutes > max_session_minutes:
                warnings.append(f"Session {current.id} exceeds {max_session_hours} hours")

        previous_time = moment

    if current is not None:
        # The last session may still be running.
        current.is_complete = False
        sessions.append(current)

    return SessionAnalysis(
        sessions=sessions,
        gaps=gaps,
        total_active_minutes=sum(session.duration_minutes for session in sessions),
        total_gap_minutes=sum(gap.duration_minutes for gap in gaps),
        data_quality=data_quality(len(warnings), len(records)),
        warnings=warnings,
        record_count=len(records),
    )
