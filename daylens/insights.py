from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone, tzinfo
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple, TypeVar

from .config import InsightSettings
from .models import (
    ActivityRecord,
    DailyInsights,
    InsightsMetadata,
    Invalid,
    ParseResult,
    SessionAnalysis,
    Valid,
)
from .sessions import analyze_work_sessions
from .utils import parse_json_object

INSIGHT_FIELDS = ("executive_summary", "productivity_narrative", "behavioral_patterns", "recommendations")

SESSIONS_IN_PROMPT = 10
GAPS_IN_PROMPT = 5
RECORDS_IN_PROMPT = 20

T = TypeVar("T")


class InsightsGenerationError(RuntimeError):
    def __init__(self, attempts: int, last_error: str):
        super().__init__(f"Daily insights generation failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


def sample_records(records: Sequence[ActivityRecord], cap: int) -> Tuple[List[ActivityRecord], bool]:
    """Keep every ``len // cap``-th record, at most ``cap`` of them."""
    if len(records) <= cap:
        return list(records), False
    step = max(1, len(records) // cap)
    return list(records[::step])[:cap], True


def _clock(moment: datetime, tz: Optional[tzinfo]) -> str:
    if tz is not None:
        moment = moment.astimezone(tz)
    return moment.strftime("%H:%M")


def _hours(minutes: int) -> float:
    return round(minutes / 60, 1)


def build_insights_prompt(
    analysis: SessionAnalysis,
    records: Sequence[ActivityRecord],
    sampled: bool,
    min_gap_minutes: int = 5,
    tz: Optional[tzinfo] = None,
) -> str:
    lines = [
        "You are an expert productivity analyst. Read one day of classified screen activity",
        "and explain the person's working patterns.",
        "",
        "ANALYSIS CONTEXT:",
        f"- Activity records: {len(records)}{' (sampled)' if sampled else ''}",
        f"- Work sessions: {len(analysis.sessions)}",
        f"- Gaps away from the computer: {len(analysis.gaps)}",
        f"- Active time: {_hours(analysis.total_active_minutes)} hours",
        f"- Gap time: {_hours(analysis.total_gap_minutes)} hours",
        f"- Data quality: {analysis.data_quality}",
    ]
    if analysis.warnings:
        lines.append(f"- Warnings: {'; '.join(analysis.warnings[:3])}")

    lines.extend(["", "WORK SESSIONS:"])
    for number, session in enumerate(analysis.sessions[:SESSIONS_IN_PROMPT], start=1):
        status = "complete" if session.is_complete else "may be ongoing"
        lines.append(
            f"{number}. {session.id}: {_clock(session.start, tz)}-{_clock(session.end, tz)} "
            f"({session.duration_minutes} min, {len(session.activities)} records, {status}); "
            f"apps: {', '.join(session.apps_used)}; state: {session.dominant_cognitive_state}"
        )
    if len(analysis.sessions) > SESSIONS_IN_PROMPT:
        lines.append(f"... and {len(analysis.sessions) - SESSIONS_IN_PROMPT} more sessions")

    lines.extend(["", f"TIME GAPS (> {min_gap_minutes} minutes):"])
    for gap in analysis.gaps[:GAPS_IN_PROMPT]:
        lines.append(f"- {gap.duration_minutes} min ({gap.reason}) from {_clock(gap.start, tz)}")
    if len(analysis.gaps) > GAPS_IN_PROMPT:
        lines.append(f"... and {len(analysis.gaps) - GAPS_IN_PROMPT} more gaps")

    sample = [record.to_dict() for record in records[:RECORDS_IN_PROMPT]]
    lines.extend(["", "SAMPLE ACTIVITY RECORDS:", json.dumps(sample, ensure_ascii=False, indent=2)])
    if len(records) > RECORDS_IN_PROMPT:
        lines.append(f"... and {len(records) - RECORDS_IN_PROMPT} more records")

    lines.extend(
        [
            "",
            "Respond with one JSON object holding four non-empty string fields:",
            '- "executive_summary": overview with active vs away time, session count and the share of goal-related work.',
            '- "productivity_narrative": the day in chronological order, session by session, with times.',
            '- "behavioral_patterns": session length, focus, app clusters, energy and context switching.',
            '- "recommendations": concrete, measurable suggestions that cite times and sessions from this day.',
            "Use exact times and durations from the data and mention data quality issues when present.",
            "No markdown, no prose outside the JSON object.",
        ]
    )
    return "\n".join(lines)


def parse_insights(text: str) -> ParseResult[dict]:
    try:
        payload = parse_json_object(text)
    except ValueError as exc:
        return Invalid(str(exc))

    for name in INSIGHT_FIELDS:
        value = payload.get(name)
        if not isinstance(value, str) or not value.strip():
            return Invalid(f"Missing or invalid field in insights: {name}")
    return Valid({name: payload[name].strip() for name in INSIGHT_FIELDS})


def empty_insights() -> DailyInsights:
    return DailyInsights(
        executive_summary="No activity data recorded for this day.",
        productivity_narrative="No work sessions were recorded.",
        behavioral_patterns="Insufficient data to identify patterns.",
        recommendations="Keep the tracker running during work hours to collect activity data.",
        metadata=InsightsMetadata(generated_at=datetime.now(timezone.utc), record_count=0, session_count=0),
    )


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    attempts: int,
    base_delay: float,
    log,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    last_error = "no attempts made"
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            last_error = str(exc) or exc.__class__.__name__
            log.warning("Attempt %s/%s failed: %s", attempt, attempts, last_error)
            if attempt < attempts:
                await sleep(base_delay * (2 ** (attempt - 1)))
    raise InsightsGenerationError(attempts, last_error)


class InsightSynthesizer:
    def __init__(self, service, settings: InsightSettings, log, timeout_seconds: float | None = 120.0, tz=None):
        self._service = service
        self._settings = settings
        self._logger = log
        self._timeout = timeout_seconds
        self._tz = tz

    def analyze(self, records: Sequence[ActivityRecord]) -> SessionAnalysis:
        return analyze_work_sessions(
            records,
            min_gap_minutes=self._settings.min_gap_minutes,
            max_session_hours=self._settings.max_session_hours,
            tz=self._tz,
        )

    async def generate(self, records: Sequence[ActivityRecord]) -> DailyInsights:
        records = list(records)
        self._logger.info("Generating daily insights for %s records", len(records))
        if not records:
            return empty_insights()

        analysis = self.analyze(records)
        if analysis.data_quality == "low":
            self._logger.warning("Low quality data: %s", "; ".join(analysis.warnings[:5]))

        sample, sampled = sample_records(records, self._settings.max_records_per_prompt)
        if sampled:
            self._logger.warning("Sampled %s of %s records for the prompt", len(sample), len(records))

        prompt = build_insights_prompt(
            analysis, sample, sampled, min_gap_minutes=self._settings.min_gap_minutes, tz=self._tz
        )

        async def attempt() -> dict:
            text = await asyncio.wait_for(asyncio.to_thread(self._service.synthesize, prompt), timeout=self._timeout)
            result = parse_insights(text)
            if isinstance(result, Invalid):
                raise ValueError(result.reason)
            return result.value

        fields = await retry_with_backoff(
            attempt,
            attempts=self._settings.max_attempts,
            base_delay=self._settings.retry_base_delay_seconds,
            log=self._logger,
        )

        self._logger.info("Daily insights generated (%s sessions)", len(analysis.sessions))
        return DailyInsights(
            **fields,
            metadata=InsightsMetadata(
                generated_at=datetime.now(timezone.utc),
                record_count=len(records),
                session_count=len(analysis.sessions),
                sampled=sampled,
            ),
        )
