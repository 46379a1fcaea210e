from __future__ import annotations

from typing import Any

import requests

from .config import LocalLLMSettings
from .utils import png_data_url

SYSTEM_PROMPT = "You are a careful productivity analyst. Reply with a single JSON object and nothing else."


class LocalLLMService:
    """Classification and narrative calls through an OpenAI-compatible HTTP API (e.g. LM Studio).

    Expected base URL: http://localhost:1234/v1
    Endpoint used:     POST {base_url}/chat/completions
    """

    def __init__(self, settings: LocalLLMSettings, log):
        self._settings = settings
        self._logger = log
        self._model = self._resolve_model(settings)

    @property
    def model_name(self) -> str:
        return self._model

    def classify(self, image_bytes: bytes, prompt: str) -> str:
        content = [
            {"type": "text", "text": prompt},
            {"type": "image_url", "image_url": {"url": png_data_url(image_bytes)}},
        ]
        return self._chat(content)

    def synthesize(self, prompt: str) -> str:
        return self._chat(prompt)

    def _chat(self, user_content: Any) -> str:
        url = f"{self._settings.base_url}/chat/completions"
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._settings.api_key:
            headers["Authorization"] = f"Bearer {self._settings.api_key}"

        payload: dict[str, Any] = {
            "model": self._model,
            "temperature": self._settings.temperature,
            "max_tokens": self._settings.max_tokens,
            "stream": False,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": user_content},
            ],
        }
        payload_with_format = dict(payload)
        payload_with_format["response_format"] = {"type": "json_object"}

        res = self._post_with_fallback(url=url, headers=headers, primary=payload_with_format, fallback=payload)
        if res.status_code >= 400:
            raise RuntimeError(f"Local LLM HTTP {res.status_code}: {res.text[:200]}")

        return _extract_text(res.json())

    def _post_with_fallback(
        self,
        *,
        url: str,
        headers: dict[str, str],
        primary: dict[str, Any],
        fallback: dict[str, Any],
    ) -> requests.Response:
        try:
            res = requests.post(url, headers=headers, json=primary, timeout=self._settings.timeout_seconds)
            if res.status_code in {400, 422}:
                # Some servers reject response_format; retry once without it.
                self._logger.debug("Local LLM rejected response_format (HTTP %s); retrying plain", res.status_code)
                res = requests.post(url, headers=headers, json=fallback, timeout=self._settings.timeout_seconds)
            return res
        except requests.RequestException as exc:
            raise RuntimeError(f"Local LLM request failed: {exc}") from exc

    def _resolve_model(self, settings: LocalLLMSettings) -> str:
        configured = (settings.model or "").strip()
        if configured and configured.lower() not in {"local-model", "auto"}:
            return configured

        try:
            res = requests.get(f"{settings.base_url}/models", timeout=min(10.0, settings.timeout_seconds))
            if res.status_code >= 400:
                self._logger.warning("Local LLM model discovery failed (HTTP %s)", res.status_code)
                return "local-model"
            models = res.json().get("data")
            if isinstance(models, list) and models and isinstance(models[0], dict) and models[0].get("id"):
                model_id = str(models[0]["id"])
                self._logger.info("Auto-selected LOCAL_LLM_MODEL=%s", model_id)
                return model_id
        except (requests.RequestException, ValueError) as exc:
            self._logger.warning("Local LLM model discovery failed: %s", exc)

        return "local-model"


def _extract_text(data: dict[str, Any]) -> str:
    choices = data.get("choices") or [{}]
    content = (choices[0].get("message") or {}).get("content")
    if isinstance(content, list):
        # Structured content: keep the text chunks only.
        content = "\n".join(
            str(item.get("text") or "") for item in content if isinstance(item, dict) and item.get("type") == "text"
        )
    if not isinstance(content, str) or not content.strip():
        raise RuntimeError("Local LLM response did not include text content")
    return content
