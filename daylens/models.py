from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Generic, List, Optional, TypeVar, Union

GOAL_RELEVANCE = ("goal_related", "work_unrelated", "personal", "break", "distraction")
COGNITIVE_STATES = ("deep_focus", "light_work", "browsing", "communication", "break")
CONTEXT_SWITCHING = ("continuing_task", "new_task", "rapid_switching")
ATTENTION_RESIDUE = ("clean_focus", "previous_task_visible", "multiple_contexts")
PROCRASTINATION_SIGNALS = ("none", "social_media_after_work", "research_rabbit_hole", "entertainment")
ENERGY_LEVELS = ("high_focus_work", "medium_complexity", "low_energy_tasks", "break_time")

ACTIVITY_FIELDS = (
    "app_classification",
    "goal_relevance",
    "cognitive_state",
    "context_switching",
    "attention_residue",
    "procrastination_signal",
    "energy_level",
)

GAP_REASONS = ("away_from_computer", "app_closed", "system_idle")
DATA_QUALITY = ("high", "medium", "low")

_APP_SEPARATOR = re.compile(r"\s[-–—]\s")


@dataclass(frozen=True)
class Capture:
    id: str
    path: Path
    captured_at: datetime


@dataclass(frozen=True)
class ActivityRecord:
    app_classification: str
    goal_relevance: str
    cognitive_state: str
    context_switching: str
    attention_residue: str
    procrastination_signal: str
    energy_level: str
    # The store assigns this; it may be a raw string when the stored value is malformed.
    created_at: datetime | str | None = None
    id: Optional[int] = None

    @property
    def app_name(self) -> str:
        return _APP_SEPARATOR.split(self.app_classification, maxsplit=1)[0].strip()

    def to_dict(self) -> dict[str, Any]:
        payload = {name: getattr(self, name) for name in ACTIVITY_FIELDS}
        created = self.created_at
        payload["created_at"] = created.isoformat() if isinstance(created, datetime) else created
        return payload


FALLBACK_ACTIVITY = ActivityRecord(
    app_classification="Unknown - Error in classification",
    goal_relevance="work_unrelated",
    cognitive_state="break",
    context_switching="new_task",
    attention_residue="multiple_contexts",
    procrastination_signal="none",
    energy_level="low_energy_tasks",
)


@dataclass
class WorkSession:
    id: str
    start: datetime
    end: datetime
    duration_minutes: int
    activities: List[ActivityRecord]
    dominant_cognitive_state: str
    apps_used: List[str] = field(default_factory=list)
    is_complete: bool = False


@dataclass(frozen=True)
class TimeGap:
    start: datetime
    end: datetime
    duration_minutes: int
    reason: str


@dataclass(frozen=True)
class SessionAnalysis:
    sessions: List[WorkSession]
    gaps: List[TimeGap]
    total_active_minutes: int
    total_gap_minutes: int
    data_quality: str
    warnings: List[str]
    record_count: int = 0


@dataclass(frozen=True)
class DailyStats:
    total_records: int
    hours_tracked: float
    focus_percentage: int
    top_app: str
    day_start: datetime | None
    day_end: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_records": self.total_records,
            "hours_tracked": self.hours_tracked,
            "focus_percentage": self.focus_percentage,
            "top_app": self.top_app,
            "day_start": self.day_start.strftime("%H:%M:%S") if self.day_start else "No data",
            "day_end": self.day_end.strftime("%H:%M:%S") if self.day_end else "No data",
        }


@dataclass(frozen=True)
class HourlyBucket:
    hour: int
    count: int
    focus_count: int
    goal_related_count: int


@dataclass(frozen=True)
class InsightsMetadata:
    generated_at: datetime
    record_count: int
    session_count: int
    sampled: bool = False


@dataclass(frozen=True)
class DailyInsights:
    executive_summary: str
    productivity_narrative: str
    behavioral_patterns: str
    recommendations: str
    metadata: InsightsMetadata

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["metadata"]["generated_at"] = self.metadata.generated_at.isoformat()
        return payload


@dataclass
class HealthStatus:
    store_ready: bool = False
    classifier_ready: bool = False
    periodic_capture_active: bool = False


T = TypeVar("T")


@dataclass(frozen=True)
class Valid(Generic[T]):
    value: T


@dataclass(frozen=True)
class Invalid:
    reason: str


ParseResult = Union[Valid[T], Invalid]


@dataclass(frozen=True)
class OperationResult:
    success: bool
    data: Any = None
    error: str | None = None

    @classmethod
    def ok(cls, data: Any = None) -> "OperationResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, data: Any = None) -> "OperationResult":
        return cls(success=False, data=data, error=error)
