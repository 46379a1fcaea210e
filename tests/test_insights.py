from __future__ import annotations

import json
import logging
import unittest
from datetime import datetime, timedelta, timezone

from daylens.config import InsightSettings
from daylens.insights import (
    InsightsGenerationError,
    InsightSynthesizer,
    build_insights_prompt,
    parse_insights,
    retry_with_backoff,
    sample_records,
)
from daylens.models import ActivityRecord, Invalid, Valid
from daylens.sessions import analyze_work_sessions

LOG = logging.getLogger("daylens.test.insights")
BASE = datetime(2026, 1, 1, 9, 0, 0, tzinfo=timezone.utc)

REPLY = json.dumps(
    {
        "executive_summary": "Focused morning.",
        "productivity_narrative": "09:00-09:08 coding.",
        "behavioral_patterns": "Short sessions.",
        "recommendations": "Block 90 minutes at 09:00.",
    }
)


def _record(minutes: float) -> ActivityRecord:
    return ActivityRecord(
        app_classification="Code - app.py",
        goal_relevance="goal_related",
        cognitive_state="deep_focus",
        context_switching="continuing_task",
        attention_residue="clean_focus",
        procrastination_signal="none",
        energy_level="high_focus_work",
        created_at=BASE + timedelta(minutes=minutes),
    )


class _Service:
    def __init__(self, replies):
        self._replies = list(replies)
        self.prompts = []

    def synthesize(self, prompt: str) -> str:
        self.prompts.append(prompt)
        reply = self._replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def _synthesizer(service, **overrides) -> InsightSynthesizer:
    settings = InsightSettings(retry_base_delay_seconds=0, **overrides)
    return InsightSynthesizer(service, settings, LOG, timeout_seconds=5)


class ParseInsightsTests(unittest.TestCase):
    def test_valid_fenced_reply(self) -> None:
        result = parse_insights(f"```json\n{REPLY}\n```")
        self.assertIsInstance(result, Valid)
        self.assertEqual(result.value["executive_summary"], "Focused morning.")

    def test_blank_field_is_invalid(self) -> None:
        payload = json.loads(REPLY)
        payload["recommendations"] = "  "
        result = parse_insights(json.dumps(payload))
        self.assertIsInstance(result, Invalid)
        self.assertIn("recommendations", result.reason)


class SamplingTests(unittest.TestCase):
    def test_under_cap_is_untouched(self) -> None:
        records = [_record(i) for i in range(10)]
        sample, sampled = sample_records(records, 200)
        self.assertEqual(sample, records)
        self.assertFalse(sampled)

    def test_over_cap_keeps_every_nth(self) -> None:
        records = [_record(i) for i in range(450)]
        sample, sampled = sample_records(records, 200)
        self.assertTrue(sampled)
        self.assertEqual(len(sample), 200)
        self.assertEqual(sample[1], records[2])

    def test_prompt_mentions_sampling_and_tails(self) -> None:
        records = [_record(i) for i in range(30)]
        prompt = build_insights_prompt(analyze_work_sessions(records), records, sampled=True)
        self.assertIn("(sampled)", prompt)
        self.assertIn("... and 10 more records", prompt)


class RetryTests(unittest.IsolatedAsyncioTestCase):
    async def test_backoff_doubles_and_skips_final_sleep(self) -> None:
        delays = []

        async def fake_sleep(seconds: float) -> None:
            delays.append(seconds)

        async def always_fails():
            raise RuntimeError("boom")

        with self.assertRaises(InsightsGenerationError) as ctx:
            await retry_with_backoff(always_fails, attempts=3, base_delay=1.0, log=LOG, sleep=fake_sleep)
        self.assertEqual(delays, [1.0, 2.0])
        self.assertEqual(ctx.exception.attempts, 3)
        self.assertEqual(ctx.exception.last_error, "boom")


class InsightSynthesizerTests(unittest.IsolatedAsyncioTestCase):
    async def test_succeeds_on_third_attempt(self) -> None:
        service = _Service([RuntimeError("quota"), RuntimeError("quota"), REPLY])
        insights = await _synthesizer(service).generate([_record(m) for m in range(6)])

        self.assertEqual(len(service.prompts), 3)
        self.assertEqual(insights.recommendations, "Block 90 minutes at 09:00.")
        self.assertEqual(insights.metadata.record_count, 6)
        self.assertEqual(insights.metadata.session_count, 1)
        self.assertFalse(insights.metadata.sampled)

    async def test_three_failures_raise(self) -> None:
        service = _Service([RuntimeError("a"), RuntimeError("b"), RuntimeError("c")])
        with self.assertRaises(InsightsGenerationError) as ctx:
            await _synthesizer(service).generate([_record(m) for m in range(6)])
        self.assertEqual(len(service.prompts), 3)
        self.assertEqual(ctx.exception.last_error, "c")

    async def test_invalid_json_counts_as_failed_attempt(self) -> None:
        service = _Service(["not json", '{"executive_summary": "x"}', REPLY])
        insights = await _synthesizer(service).generate([_record(m) for m in range(6)])
        self.assertEqual(len(service.prompts), 3)
        self.assertEqual(insights.executive_summary, "Focused morning.")

    async def test_empty_day_skips_the_model(self) -> None:
        service = _Service([])
        insights = await _synthesizer(service).generate([])
        self.assertEqual(service.prompts, [])
        self.assertEqual(insights.metadata.record_count, 0)
        self.assertTrue(insights.executive_summary)

    async def test_large_day_is_sampled(self) -> None:
        service = _Service([REPLY])
        insights = await _synthesizer(service, max_records_per_prompt=50).generate([_record(m) for m in range(120)])
        self.assertTrue(insights.metadata.sampled)
        self.assertEqual(insights.metadata.record_count, 120)
        self.assertIn("Activity records: 50 (sampled)", service.prompts[0])


if __name__ == "__main__":
    unittest.main()
