from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import date, datetime
from typing import List, Optional

from daylens.app import create_model_service
from daylens.config import get_settings
from daylens.insights import InsightsGenerationError, InsightSynthesizer
from daylens.logging_utils import component_logger, init_logger
from daylens.models import ActivityRecord, DailyInsights, DailyStats, HourlyBucket, SessionAnalysis
from daylens.sessions import analyze_work_sessions
from daylens.stats import compute_daily_stats, hourly_breakdown
from daylens.storage import ActivityRepository


def main() -> None:
    parser = argparse.ArgumentParser(description="Summarize Daylens activity for a given day")
    parser.add_argument("--date", help="Target date YYYY-MM-DD (defaults to today)")
    parser.add_argument("--skip-insights", action="store_true", help="Only compute statistics and sessions")
    args = parser.parse_args()

    try:
        settings = get_settings()
    except RuntimeError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(2)

    logger = init_logger("summarizer", settings.logging)
    target_date = date.fromisoformat(args.date) if args.date else datetime.now(tz=settings.timezone).date()

    repository = ActivityRepository(settings.storage.db_path, settings.timezone, component_logger(logger, "storage"))
    records = repository.daily_activities(target_date)
    if not records:
        logger.warning("No activity records for %s", target_date.isoformat())

    stats = compute_daily_stats(records, settings.capture.interval_seconds, tz=settings.timezone)
    analysis = analyze_work_sessions(
        records,
        min_gap_minutes=settings.insights.min_gap_minutes,
        max_session_hours=settings.insights.max_session_hours,
        tz=settings.timezone,
    )
    hours = hourly_breakdown(records, tz=settings.timezone)

    insights: Optional[DailyInsights] = None
    if args.skip_insights:
        logger.info("Skipping insight generation (--skip-insights)")
    elif len(records) < settings.insights.min_records:
        logger.warning(
            "Need at least %s activities to generate meaningful insights (have %s)",
            settings.insights.min_records,
            len(records),
        )
    else:
        insights = generate_insights(settings, records, logger)

    summary_dir = settings.output.summary_dir
    summary_dir.mkdir(parents=True, exist_ok=True)

    compact_date = target_date.strftime("%Y%m%d")
    markdown_path = summary_dir / f"daily-report-{compact_date}.md"
    json_path = summary_dir / f"daily-report-{compact_date}.json"

    markdown_path.write_text(render_markdown(target_date, stats, analysis, hours, insights), encoding="utf-8")
    payload = to_dict(target_date, stats, analysis, hours, insights, records)
    json_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    logger.info("Daily summary saved to %s", markdown_path)


def generate_insights(settings, records: List[ActivityRecord], logger) -> Optional[DailyInsights]:
    """Run the narrative model; any failure is logged and the report is written without insights."""
    try:
        service = create_model_service(settings, component_logger(logger, "model"))
    except Exception as exc:
        logger.error("Failed to initialize %s model service: %s", settings.analyzer.backend, exc)
        return None

    synthesizer = InsightSynthesizer(
        service,
        settings.insights,
        component_logger(logger, "insights"),
        timeout_seconds=settings.analyzer.timeout_seconds,
        tz=settings.timezone,
    )
    try:
        return asyncio.run(synthesizer.generate(records))
    except InsightsGenerationError as exc:
        logger.error("%s", exc)
        return None


def render_markdown(
    day: date,
    stats: DailyStats,
    analysis: SessionAnalysis,
    hours: List[HourlyBucket],
    insights: Optional[DailyInsights],
) -> str:
    summary = stats.to_dict()
    lines = [f"# Daylens report for {day.strftime('%Y/%m/%d')}", ""]
    lines.append(f"- Tracked time: **{stats.hours_tracked:.1f} h** ({stats.total_records} captures)")
    lines.append(f"- Focus: {stats.focus_percentage}%")
    lines.append(f"- Top app: {stats.top_app}")
    lines.append(f"- Day span: {summary['day_start']} - {summary['day_end']}")
    lines.append(f"- Data quality: {analysis.data_quality}")

    if insights is not None:
        lines.append("\n## Summary\n")
        lines.append(insights.executive_summary)
        lines.append("\n## Narrative\n")
        lines.append(insights.productivity_narrative)
        lines.append("\n## Patterns\n")
        lines.append(insights.behavioral_patterns)
        lines.append("\n## Recommendations\n")
        lines.append(insights.recommendations)

    lines.append("\n## Work sessions\n")
    lines.append("| Session | Period | Duration | Records | Main state | Apps |")
    lines.append("| --- | --- | ---: | ---: | --- | --- |")
    for session in analysis.sessions:
        period = f"{session.start.strftime('%H:%M')} - {session.end.strftime('%H:%M')}"
        status = "" if session.is_complete else " (ongoing)"
        apps = ", ".join(session.apps_used[:5]) or "-"
        lines.append(
            f"| {session.id}{status} | {period} | {session.duration_minutes}m | {len(session.activities)} "
            f"| {session.dominant_cognitive_state} | {apps} |"
        )
    if not analysis.sessions:
        lines.append("| (no data) | - | 0m | 0 | - | - |")

    if analysis.gaps:
        lines.append("\n## Gaps\n")
        for gap in analysis.gaps:
            lines.append(
                f"- {gap.start.strftime('%H:%M')} - {gap.end.strftime('%H:%M')}: {gap.duration_minutes}m ({gap.reason})"
            )

    lines.append("\n## Hourly breakdown\n")
    lines.append("| Hour | Captures | Deep focus | Goal related |")
    lines.append("| --- | ---: | ---: | ---: |")
    for bucket in hours:
        lines.append(f"| {bucket.hour:02d}:00 | {bucket.count} | {bucket.focus_count} | {bucket.goal_related_count} |")
    if not hours:
        lines.append("| (no data) | 0 | 0 | 0 |")

    if analysis.warnings:
        lines.append("\n## Data warnings\n")
        for warning in analysis.warnings:
            lines.append(f"- {warning}")

    return "\n".join(lines)


def to_dict(
    day: date,
    stats: DailyStats,
    analysis: SessionAnalysis,
    hours: List[HourlyBucket],
    insights: Optional[DailyInsights],
    records: List[ActivityRecord],
) -> dict:
    return {
        "date": day.isoformat(),
        "stats": stats.to_dict(),
        "analysis": {
            "data_quality": analysis.data_quality,
            "total_active_minutes": analysis.total_active_minutes,
            "total_gap_minutes": analysis.total_gap_minutes,
            "warnings": analysis.warnings,
            "sessions": [
                {
                    "id": session.id,
                    "start": session.start.isoformat(),
                    "end": session.end.isoformat(),
                    "duration_minutes": session.duration_minutes,
                    "record_count": len(session.activities),
                    "dominant_cognitive_state": session.dominant_cognitive_state,
                    "apps_used": session.apps_used,
                    "is_complete": session.is_complete,
                }
                for session in analysis.sessions
            ],
            "gaps": [
                {
                    "start": gap.start.isoformat(),
                    "end": gap.end.isoformat(),
                    "duration_minutes": gap.duration_minutes,
                    "reason": gap.reason,
                }
                for gap in analysis.gaps
            ],
        },
        "hourly": [
            {
                "hour": bucket.hour,
                "count": bucket.count,
                "focus_count": bucket.focus_count,
                "goal_related_count": bucket.goal_related_count,
            }
            for bucket in hours
        ],
        "insights": insights.to_dict() if insights is not None else None,
        "activities": [record.to_dict() for record in records],
    }


if __name__ == "__main__":
    main()
