from __future__ import annotations

from collections import Counter
from datetime import tzinfo
from typing import Dict, List, Optional, Sequence

from .models import ActivityRecord, DailyStats, HourlyBucket
from .sessions import parse_timestamp

CAPTURE_INTERVAL_SECONDS = 45
FOCUS_STATES = {"deep_focus", "light_work"}
NO_APP = "None"


def compute_daily_stats(
    records: Sequence[ActivityRecord],
    interval_seconds: int = CAPTURE_INTERVAL_SECONDS,
    tz: Optional[tzinfo] = None,
) -> DailyStats:
    """Quick numbers for a day. Each record stands for one capture interval of tracked time."""
    if not records:
        return DailyStats(
            total_records=0,
            hours_tracked=0.0,
            focus_percentage=0,
            top_app=NO_APP,
            day_start=None,
            day_end=None,
        )

    total = len(records)
    hours_tracked = total * interval_seconds / 3600
    focus_count = sum(1 for record in records if record.cognitive_state in FOCUS_STATES)

    # most_common() orders equal counts by first occurrence.
    app_counts = Counter(record.app_name for record in records)
    top_app = app_counts.most_common(1)[0][0] or NO_APP

    moments = [parse_timestamp(record.created_at, tz) for record in records]
    moments = [moment for moment in moments if moment is not None]
    start = min(moments) if moments else None
    end = max(moments) if moments else None
    if tz is not None and moments:
        start, end = start.astimezone(tz), end.astimezone(tz)

    return DailyStats(
        total_records=total,
        hours_tracked=round(hours_tracked, 1),
        focus_percentage=int(focus_count / total * 100 + 0.5),
        top_app=top_app,
        day_start=start,
        day_end=end,
    )


def hourly_breakdown(records: Sequence[ActivityRecord], tz: Optional[tzinfo] = None) -> List[HourlyBucket]:
    buckets: Dict[int, List[ActivityRecord]] = {}
    for record in records:
        moment = parse_timestamp(record.created_at, tz)
        if moment is None:
            continue
        if tz is not None:
            moment = moment.astimezone(tz)
        buckets.setdefault(moment.hour, []).append(record)

    return [
        HourlyBucket(
            hour=hour,
            count=len(items),
            focus_count=sum(1 for item in items if item.cognitive_state == "deep_focus"),
            goal_related_count=sum(1 for item in items if item.goal_relevance == "goal_related"),
        )
        for hour, items in sorted(buckets.items())
    ]
