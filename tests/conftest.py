"""Pytest configuration for tests."""
from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Callable, Optional

import pytest
from PIL import Image

# Add the project root to the Python path
# This allows imports like "from services.ocr..." to work
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from services.canvas.drawing_surface import ImageSurface  # noqa: E402
from services.ocr.recognition_backend import (  # noqa: E402
    LocalRecognitionBackend,
    RecognitionResult,
    SolvingRecognitionBackend,
)
from services.solve_session import SolveSession  # noqa: E402


class PassthroughPreprocessor:
    name = "passthrough"
    scale = 1

    def __init__(self) -> None:
        self.calls = 0

    def preprocess(self, bitmap: Image.Image) -> Image.Image:
        self.calls += 1
        return bitmap.convert("RGB")


class FakeOCRBackend(LocalRecognitionBackend):
    """Returns canned text; optionally waits on an event or raises."""

    name = "fake-ocr"

    def __init__(
        self,
        text: str = "",
        gate: Optional[asyncio.Event] = None,
        error: Optional[Exception] = None,
        delay: float = 0,
    ) -> None:
        self.text = text
        self.gate = gate
        self.error = error
        self.delay = delay
        self.calls = 0

    async def recognize(self, bitmap: Image.Image) -> RecognitionResult:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return RecognitionResult(self.text, confidence=90.0)


class FakeVisionBackend(SolvingRecognitionBackend):
    name = "fake-vision"

    def __init__(self, answer: str = "x = 2") -> None:
        self.answer = answer
        self.calls = 0

    async def recognize_and_solve(self, bitmap: Image.Image) -> str:
        self.calls += 1
        return self.answer


@pytest.fixture
def stroke_surface() -> ImageSurface:
    """A 200x100 surface with a single diagonal stroke."""
    surface = ImageSurface(width=200, height=100)
    surface.draw_stroke([(20, 20), (180, 80)])
    return surface


@pytest.fixture
def make_session() -> Callable[..., SolveSession]:
    def _make(backend, timeout: float = 5.0, solve_timeout: float = 5.0) -> SolveSession:
        return SolveSession(
            preprocessor=PassthroughPreprocessor(),
            backend=backend,
            recognition_timeout=timeout,
            solve_timeout=solve_timeout,
        )

    return _make


@pytest.fixture
def ocr_backend_cls():
    return FakeOCRBackend


@pytest.fixture
def vision_backend_cls():
    return FakeVisionBackend
