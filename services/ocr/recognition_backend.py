"""Recognition backend contract and factory.

Two kinds of backend exist. A *local* backend turns the processed bitmap into
raw text which the caller normalizes and solves. A *solving* backend (a cloud
vision-language model) is asked for the final LaTeX answer directly, and its
output skips the normalizer and solver.

Every call is single-shot: no retries, and any handle the backend holds is
released before the call returns, whether it succeeded or not.
"""
from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Optional, Union

from PIL import Image

from core.config import Settings
from core.exceptions import SettingError


@dataclass(frozen=True)
class RecognitionResult:
    text: str
    confidence: Optional[float] = None


class LocalRecognitionBackend(abc.ABC):
    """Bitmap -> raw text."""

    name = "local"
    solves_directly = False

    @abc.abstractmethod
    async def recognize(self, bitmap: Image.Image) -> RecognitionResult:
        ...


class SolvingRecognitionBackend(abc.ABC):
    """Bitmap -> final LaTeX solution."""

    name = "cloud"
    solves_directly = True

    @abc.abstractmethod
    async def recognize_and_solve(self, bitmap: Image.Image) -> str:
        ...


RecognitionBackend = Union[LocalRecognitionBackend, SolvingRecognitionBackend]


def get_recognition_backend(settings: Settings) -> RecognitionBackend:
    """Build the backend selected by ``settings.recognition_backend``."""
    name = settings.recognition_backend.strip().lower()
    if name == "tesseract":
        from services.ocr.tesseract_backend import TesseractBackend

        return TesseractBackend(
            tesseract_cmd=settings.tesseract_cmd,
            psm=settings.tesseract_psm,
            char_whitelist=settings.tesseract_whitelist,
            min_confidence=settings.min_confidence,
            timeout=settings.recognition_timeout,
        )
    if name == "openai":
        from services.ocr.openai_vision_backend import OpenAIVisionBackend

        return OpenAIVisionBackend(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            base_url=settings.openai_base_url,
            timeout=settings.recognition_timeout,
        )
    raise SettingError(
        f"unknown recognition backend: {settings.recognition_backend!r}",
        details={"available": ["openai", "tesseract"]},
    )
