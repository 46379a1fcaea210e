from __future__ import annotations

import io
from typing import Any

import google.generativeai as genai
from PIL import Image

from .config import GeminiSettings


class GeminiService:
    """Classification and narrative calls against a Gemini model. Returns raw response text."""

    def __init__(self, settings: GeminiSettings, log):
        if not settings.api_key or len(settings.api_key) < 10:
            raise ValueError("Invalid Gemini API key provided")
        self._settings = settings
        self._logger = log
        genai.configure(api_key=settings.api_key)
        self._model = genai.GenerativeModel(settings.model)
        self._logger.info("Gemini model ready: %s", settings.model)

    @property
    def model_name(self) -> str:
        return self._settings.model

    def classify(self, image_bytes: bytes, prompt: str) -> str:
        with Image.open(io.BytesIO(image_bytes)) as image:
            image.load()
            response = self._model.generate_content([prompt, image], generation_config=self._generation_config())
        return self._response_text(response)

    def synthesize(self, prompt: str) -> str:
        response = self._model.generate_content(prompt, generation_config=self._generation_config())
        return self._response_text(response)

    def _generation_config(self) -> dict[str, Any]:
        return {
            "max_output_tokens": self._settings.max_tokens,
            "temperature": self._settings.temperature,
        }

    def _response_text(self, response) -> str:
        text = response.text
        if not text or not text.strip():
            raise RuntimeError("Gemini response did not include text output")
        return text
