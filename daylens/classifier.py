from __future__ import annotations

import asyncio

from .images import ImageStore
from .models import (
    ACTIVITY_FIELDS,
    ATTENTION_RESIDUE,
    COGNITIVE_STATES,
    CONTEXT_SWITCHING,
    ENERGY_LEVELS,
    FALLBACK_ACTIVITY,
    GOAL_RELEVANCE,
    PROCRASTINATION_SIGNALS,
    ActivityRecord,
    Capture,
    Invalid,
    ParseResult,
    Valid,
)
from .utils import parse_json_object


def _choices(values) -> str:
    return " | ".join(f'"{value}"' for value in values)


CLASSIFICATION_PROMPT = f"""
You are a productivity behavior analyst. Classify what the person in this screenshot is doing.
Respond strictly as one JSON object with exactly these keys:

{{
  "app_classification": "AppName - DocumentName",
  "goal_relevance": {_choices(GOAL_RELEVANCE)},
  "cognitive_state": {_choices(COGNITIVE_STATES)},
  "context_switching": {_choices(CONTEXT_SWITCHING)},
  "attention_residue": {_choices(ATTENTION_RESIDUE)},
  "procrastination_signal": {_choices(PROCRASTINATION_SIGNALS)},
  "energy_level": {_choices(ENERGY_LEVELS)}
}}

Guidance:
- app_classification: the focused application plus the visible file, page or tab title.
- goal_relevance: work tools (editors, design tools, spreadsheets) are goal_related; social media and entertainment are distraction.
- cognitive_state: one full-screen work app is deep_focus; several work windows is light_work; social or video is browsing.
- attention_residue: a single clean app is clean_focus; many visible apps or tabs is multiple_contexts.
- energy_level: coding, design and writing are high_focus_work; email and admin are low_energy_tasks.
Judge only what is visible. No prose, no markdown.
""".strip()


def parse_classification(text: str) -> ParseResult[ActivityRecord]:
    try:
        payload = parse_json_object(text)
    except ValueError as exc:
        return Invalid(str(exc))

    missing = [name for name in ACTIVITY_FIELDS if payload.get(name) is None]
    if missing:
        return Invalid(f"Missing fields: {', '.join(missing)}")

    return Valid(ActivityRecord(**{name: str(payload[name]).strip() for name in ACTIVITY_FIELDS}))


class ActivityClassifier:
    """Turns one capture into exactly one ActivityRecord; falls back to a fixed record on any failure."""

    def __init__(self, service, images: ImageStore, log, timeout_seconds: float | None = 90.0):
        self._service = service
        self._images = images
        self._logger = log
        self._timeout = timeout_seconds

    async def classify(self, capture: Capture) -> ActivityRecord:
        self._logger.info("Classifying activity from %s", capture.path.name)
        try:
            image_bytes = await asyncio.to_thread(self._images.read, capture.path)
            text = await asyncio.wait_for(
                asyncio.to_thread(self._service.classify, image_bytes, CLASSIFICATION_PROMPT),
                timeout=self._timeout,
            )
            result = parse_classification(text)
        except asyncio.TimeoutError:
            self._logger.error("Classification timed out after %ss for %s", self._timeout, capture.path.name)
            return FALLBACK_ACTIVITY
        except Exception as exc:
            self._logger.error("Failed to classify %s: %s", capture.path.name, exc)
            return FALLBACK_ACTIVITY

        if isinstance(result, Invalid):
            self._logger.warning("Rejected classification for %s: %s", capture.path.name, result.reason)
            return FALLBACK_ACTIVITY

        record = result.value
        self._logger.info("Classified %s -> %s (%s)", capture.path.name, record.app_classification, record.cognitive_state)
        return record
