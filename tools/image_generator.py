"""Virtual try-on image generation."""

from __future__ import annotations

import base64
import hashlib
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

import google.generativeai as genai

from logic.errors import UpstreamFailure
from tools.observability import instrument_call
from tryon_app.logging_config import get_logger

LOGGER = get_logger(__name__)


def build_tryon_prompt(fabric_description: str) -> str:
    return (
        f"Generate a realistic virtual try-on image showing a person wearing a {fabric_description} outfit. "
        "The clothing design should match this style. "
        "Create a professional fashion photography style image."
    )


class ImageGenerator(ABC):
    """Blocking collaborator that renders one try-on image."""

    @abstractmethod
    def generate(self, user_photo_url: str, model_image_url: str, fabric_description: str) -> str:
        """Return an image reference or raise."""


class GeminiImageGenerator(ImageGenerator):
    """Calls a Gemini image-capable model and returns the image as a data URL."""

    def __init__(self, model_name: str, timeout_seconds: float = 60.0) -> None:
        self.model_name = model_name
        self.timeout_seconds = timeout_seconds

    @instrument_call("generate_tryon_image")
    def generate(self, user_photo_url: str, model_image_url: str, fabric_description: str) -> str:
        prompt = build_tryon_prompt(fabric_description)
        try:
            model = genai.GenerativeModel(self.model_name)
            response = model.generate_content(
                [prompt, f"Person photo: {user_photo_url}", f"Design reference: {model_image_url}"],
                generation_config={"response_modalities": ["TEXT", "IMAGE"]},
                request_options={"timeout": self.timeout_seconds},
            )
        except Exception as exc:
            raise UpstreamFailure("Image generation request failed") from exc

        image = first_inline_image(response)
        if image is None:
            raise UpstreamFailure("No image data in response")
        mime_type, data = image
        return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def first_inline_image(response: object) -> Optional[Tuple[str, bytes]]:
    """Return ``(mime_type, bytes)`` of the first inline image part, if any."""

    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            inline = getattr(part, "inline_data", None)
            data = getattr(inline, "data", None) if inline is not None else None
            if data:
                if isinstance(data, str):
                    data = base64.b64decode(data)
                return getattr(inline, "mime_type", None) or "image/png", data
    return None


class MockImageGenerator(ImageGenerator):
    """Offline generator: deterministic URLs, or a raised error when ``fail`` is set."""

    def __init__(self, base_url: str = "https://images.example.test/tryon", fail: bool = False) -> None:
        self.base_url = base_url.rstrip("/")
        self.fail = fail
        self.calls: List[Tuple[str, str, str]] = []

    def generate(self, user_photo_url: str, model_image_url: str, fabric_description: str) -> str:
        self.calls.append((user_photo_url, model_image_url, fabric_description))
        if self.fail:
            raise UpstreamFailure("Mock image generation failure")
        digest = hashlib.sha256(
            f"{user_photo_url}|{model_image_url}|{fabric_description}".encode("utf-8")
        ).hexdigest()[:16]
        return f"{self.base_url}/{digest}.png"


__all__ = [
    "ImageGenerator",
    "GeminiImageGenerator",
    "MockImageGenerator",
    "build_tryon_prompt",
    "first_inline_image",
]
