"""Photo analysis: body shape, skin tone and a suggested colour palette."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List

import google.generativeai as genai
import requests
from pydantic import BaseModel, Field, ValidationError

from logic.errors import UpstreamFailure
from models.taxonomy import BODY_SHAPES, SKIN_TONES, validate_body_shape, validate_skin_tone
from tools.observability import instrument_call
from tryon_app.logging_config import get_logger, log_event

LOGGER = get_logger(__name__)

ANALYSIS_PROMPT = f"""Analyze this person's photo and provide:
1. Body shape (choose one): {", ".join(BODY_SHAPES)}
2. Skin tone (choose one): {", ".join(SKIN_TONES)}
3. Recommended color palette (3-5 colors that would suit this person)

Respond in JSON format:
{{
  "bodyShape": "...",
  "skinTone": "...",
  "colorPalette": ["color1", "color2", "color3"]
}}"""


class _AnalysisPayload(BaseModel):
    body_shape: str = Field(alias="bodyShape")
    skin_tone: str = Field(alias="skinTone")
    color_palette: List[str] = Field(alias="colorPalette")


@dataclass
class ProfileAnalysis:
    body_shape: str
    skin_tone: str
    color_palette: List[str] = field(default_factory=list)


class ProfileAnalyzer(ABC):
    """Classifies a user photo into the profile taxonomy."""

    @abstractmethod
    def analyze(self, photo_url: str) -> ProfileAnalysis:
        """Return the analysis or raise :class:`UpstreamFailure`."""


def parse_analysis(raw_json: str) -> ProfileAnalysis:
    """Validate a model response and map it onto the canonical labels."""

    try:
        payload = _AnalysisPayload.model_validate(json.loads(raw_json))
        return ProfileAnalysis(
            body_shape=validate_body_shape(payload.body_shape),
            skin_tone=validate_skin_tone(payload.skin_tone),
            color_palette=[color.strip() for color in payload.color_palette if color.strip()],
        )
    except (json.JSONDecodeError, ValidationError, ValueError) as exc:
        raise UpstreamFailure(f"Unusable analysis response: {exc}") from exc


class GeminiProfileAnalyzer(ProfileAnalyzer):
    """Downloads the photo and asks a Gemini model for a JSON classification."""

    def __init__(
        self,
        model_name: str,
        timeout_seconds: float = 10.0,
        max_photo_bytes: int = 10 * 1024 * 1024,
    ) -> None:
        self.model_name = model_name
        self.timeout_seconds = timeout_seconds
        self.max_photo_bytes = max_photo_bytes

    def _download(self, photo_url: str) -> tuple[bytes, str]:
        try:
            response = requests.get(photo_url, timeout=self.timeout_seconds, stream=True)
            response.raise_for_status()
            chunks = []
            size = 0
            for chunk in response.iter_content(chunk_size=64 * 1024):
                size += len(chunk)
                if size > self.max_photo_bytes:
                    raise UpstreamFailure("Photo exceeds the maximum allowed size")
                chunks.append(chunk)
        except requests.RequestException as exc:
            log_event(LOGGER, logging.ERROR, "photo_download_failed", error=str(exc))
            raise UpstreamFailure("Could not download photo") from exc
        mime_type = response.headers.get("Content-Type", "image/jpeg").split(";")[0].strip()
        return b"".join(chunks), mime_type or "image/jpeg"

    @instrument_call("analyze_photo")
    def analyze(self, photo_url: str) -> ProfileAnalysis:
        image_bytes, mime_type = self._download(photo_url)
        try:
            model = genai.GenerativeModel(self.model_name)
            response = model.generate_content(
                [{"mime_type": mime_type, "data": image_bytes}, ANALYSIS_PROMPT],
                generation_config={"response_mime_type": "application/json"},
                request_options={"timeout": self.timeout_seconds},
            )
            raw_json = response.text
        except Exception as exc:
            raise UpstreamFailure("Failed to analyze photo") from exc
        if not raw_json:
            raise UpstreamFailure("Empty response from analysis model")
        return parse_analysis(raw_json)


class MockProfileAnalyzer(ProfileAnalyzer):
    """Offline deterministic analyzer for local runs and tests."""

    def __init__(self, analysis: ProfileAnalysis | None = None) -> None:
        self.analysis = analysis or ProfileAnalysis(
            body_shape="hourglass",
            skin_tone="medium",
            color_palette=["emerald", "navy", "coral"],
        )
        self.calls: List[str] = []

    def analyze(self, photo_url: str) -> ProfileAnalysis:
        self.calls.append(photo_url)
        LOGGER.info("Returning mock profile analysis")
        return ProfileAnalysis(
            body_shape=self.analysis.body_shape,
            skin_tone=self.analysis.skin_tone,
            color_palette=list(self.analysis.color_palette),
        )


__all__ = [
    "ProfileAnalysis",
    "ProfileAnalyzer",
    "GeminiProfileAnalyzer",
    "MockProfileAnalyzer",
    "parse_analysis",
]
