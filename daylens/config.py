from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

SUPPORTED_BACKENDS = {"gemini", "local"}


@dataclass(frozen=True)
class CaptureSettings:
    interval_seconds: int
    capture_root: Path
    queue_capacity: int
    delete_after_analysis: bool
    skip_when_idle: bool
    idle_threshold_minutes: int

    @property
    def primary_dir(self) -> Path:
        return self.capture_root / "screenshots"

    @property
    def extra_dir(self) -> Path:
        return self.capture_root / "extra_screenshots"

    @property
    def productivity_dir(self) -> Path:
        return self.capture_root / "productivity"


@dataclass(frozen=True)
class AnalyzerSettings:
    backend: str
    timeout_seconds: float


@dataclass(frozen=True)
class GeminiSettings:
    api_key: str
    model: str
    max_tokens: int
    temperature: float


@dataclass(frozen=True)
class LocalLLMSettings:
    base_url: str
    api_key: str | None
    model: str
    max_tokens: int
    temperature: float
    timeout_seconds: float


@dataclass(frozen=True)
class InsightSettings:
    min_gap_minutes: int = 5
    max_session_hours: int = 4
    max_records_per_prompt: int = 200
    max_attempts: int = 3
    retry_base_delay_seconds: float = 1.0
    min_records: int = 5


@dataclass(frozen=True)
class StorageSettings:
    db_path: Path


@dataclass(frozen=True)
class LoggingSettings:
    directory: Path
    level: str = "INFO"


@dataclass(frozen=True)
class OutputSettings:
    summary_dir: Path


@dataclass(frozen=True)
class AppSettings:
    timezone: ZoneInfo
    capture: CaptureSettings
    analyzer: AnalyzerSettings
    gemini: GeminiSettings | None
    local_llm: LocalLLMSettings
    insights: InsightSettings
    storage: StorageSettings
    logging: LoggingSettings
    output: OutputSettings


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    dotenv_path = Path(__file__).resolve().parents[1] / ".env"
    load_dotenv(dotenv_path=dotenv_path, override=False, encoding="utf-8-sig")

    timezone = ZoneInfo(os.getenv("TIMEZONE", "UTC"))
    data_root = Path(os.getenv("DATA_DIR", "data")).resolve()

    capture = CaptureSettings(
        interval_seconds=int(os.getenv("CAPTURE_INTERVAL_SECONDS", "45")),
        capture_root=Path(os.getenv("CAPTURE_ROOT", str(data_root / "captures"))).resolve(),
        queue_capacity=int(os.getenv("CAPTURE_QUEUE_CAPACITY", "5")),
        delete_after_analysis=_as_bool(os.getenv("DELETE_CAPTURE_AFTER_ANALYSIS"), default=True),
        skip_when_idle=_as_bool(os.getenv("SKIP_CAPTURE_WHEN_IDLE"), default=False),
        idle_threshold_minutes=int(os.getenv("IDLE_THRESHOLD_MINUTES", "5")),
    )

    backend = os.getenv("ANALYZER_BACKEND", "gemini").strip().lower()
    if backend not in SUPPORTED_BACKENDS:
        raise RuntimeError(f"Unsupported ANALYZER_BACKEND '{backend}' (expected one of {sorted(SUPPORTED_BACKENDS)})")

    analyzer = AnalyzerSettings(
        backend=backend,
        timeout_seconds=float(os.getenv("ANALYZER_TIMEOUT_SECONDS", "90")),
    )

    gemini = None
    if backend == "gemini":
        gemini = GeminiSettings(
            api_key=_require("GEMINI_API_KEY"),
            model=os.getenv("GEMINI_MODEL", "gemini-2.0-flash"),
            max_tokens=int(os.getenv("GEMINI_MAX_TOKENS", "8192")),
            temperature=float(os.getenv("GEMINI_TEMPERATURE", "0.7")),
        )

    local_llm = LocalLLMSettings(
        base_url=os.getenv("LOCAL_LLM_BASE_URL", "http://localhost:1234/v1").rstrip("/"),
        api_key=os.getenv("LOCAL_LLM_API_KEY") or None,
        model=os.getenv("LOCAL_LLM_MODEL", "auto"),
        max_tokens=int(os.getenv("LOCAL_LLM_MAX_TOKENS", "2048")),
        temperature=float(os.getenv("LOCAL_LLM_TEMPERATURE", "0.4")),
        timeout_seconds=float(os.getenv("LOCAL_LLM_TIMEOUT_SECONDS", "120")),
    )

    insights = InsightSettings(
        min_gap_minutes=int(os.getenv("MIN_GAP_MINUTES", "5")),
        max_session_hours=int(os.getenv("MAX_SESSION_HOURS", "4")),
        max_records_per_prompt=int(os.getenv("MAX_RECORDS_PER_PROMPT", "200")),
        max_attempts=int(os.getenv("INSIGHTS_MAX_ATTEMPTS", "3")),
        retry_base_delay_seconds=float(os.getenv("INSIGHTS_RETRY_DELAY_SECONDS", "1.0")),
        min_records=int(os.getenv("INSIGHTS_MIN_RECORDS", "5")),
    )

    storage = StorageSettings(
        db_path=Path(os.getenv("DB_PATH", str(data_root / "daylens.db"))).resolve(),
    )

    logging_settings = LoggingSettings(
        directory=Path(os.getenv("LOG_DIR", "logs")).resolve(),
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )

    output_settings = OutputSettings(
        summary_dir=Path(os.getenv("SUMMARY_OUTPUT_DIR", "output")).resolve(),
    )

    return AppSettings(
        timezone=timezone,
        capture=capture,
        analyzer=analyzer,
        gemini=gemini,
        local_llm=local_llm,
        insights=insights,
        storage=storage,
        logging=logging_settings,
        output=output_settings,
    )


def _require(key: str) -> str:
    value = os.getenv(key)
    if not value:
        raise RuntimeError(f"Environment variable '{key}' is required but missing")
    return value


def _as_bool(raw: str | None, default: bool | None = None) -> bool:
    if raw is None:
        if default is None:
            return False
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}
