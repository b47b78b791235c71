"""Cloud vision-language backend that returns the solution directly.

The processed canvas is sent as a JPEG together with a prompt asking for the
final answer in LaTeX only. The response bypasses the normalizer and solver.

Usage:
    backend = OpenAIVisionBackend(api_key="sk-...", model="gpt-4o-mini")
    latex = await backend.recognize_and_solve(processed_bitmap)
"""
from __future__ import annotations

import re
from typing import Any, Callable, Optional

import httpx
from openai import AsyncOpenAI, OpenAIError
from PIL import Image

from core.exceptions import ConfigError, RecognitionError
from core.logger import logger
from services.ocr.recognition_backend import SolvingRecognitionBackend
from utils.image_utils import to_data_url, to_jpeg_bytes

SOLVE_PROMPT = (
    "Solve the handwritten equation in the image. Provide only the final solution "
    "in LaTeX format. For example, for '4x^2 + 3 = 1', the output should be "
    "'x = \\pm \\frac{i\\sqrt{2}}{2}'. Do not include any explanations or steps."
)

_FENCE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")


def clean_solution(text: str) -> str:
    """Strip code fences and ``$`` delimiters from a model reply."""
    cleaned = _FENCE.sub("", text.strip())
    cleaned = cleaned.replace("$", "")
    return cleaned.strip()


class OpenAIVisionBackend(SolvingRecognitionBackend):
    """Ask an OpenAI vision model to read and solve the drawing."""

    name = "openai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        base_url: Optional[str] = None,
        timeout: float = 30,
        prompt: str = SOLVE_PROMPT,
        client_factory: Optional[Callable[[], Any]] = None,
    ) -> None:
        """
        Args:
            api_key: OpenAI API key; absence fails the call before any network use
            model: Vision-capable chat model
            base_url: Custom endpoint (Azure OpenAI or compatible providers)
            timeout: HTTP timeout in seconds
            prompt: Instruction sent alongside the image
            client_factory: Builds a fresh async client per call (tests inject fakes)
        """
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.timeout = timeout
        self.prompt = prompt
        self._client_factory = client_factory or self._default_client

    def _default_client(self) -> AsyncOpenAI:
        client_kwargs: dict = {
            "api_key": self.api_key,
            "http_client": httpx.AsyncClient(timeout=self.timeout),
        }
        if self.base_url:
            client_kwargs["base_url"] = self.base_url
        return AsyncOpenAI(**client_kwargs)

    def build_messages(self, bitmap: Image.Image) -> list:
        image_url = to_data_url(to_jpeg_bytes(bitmap), "image/jpeg")
        return [
            {
                "role": "user",
                "content": [
                    {"type": "image_url", "image_url": {"url": image_url}},
                    {"type": "text", "text": self.prompt},
                ],
            }
        ]

    async def recognize_and_solve(self, bitmap: Image.Image) -> str:
        if not self.api_key:
            raise ConfigError(
                "missing credential: set OPENAI_API_KEY",
                details={"env": "OPENAI_API_KEY"},
            )

        messages = self.build_messages(bitmap)
        client = self._client_factory()
        logger.info("[OCR] Sending canvas to OpenAI (model: %s)", self.model)
        try:
            response = await client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=0,
            )
        except OpenAIError as exc:
            raise RecognitionError(f"OpenAI request failed: {exc}") from exc
        finally:
            await client.close()

        try:
            reply = response.choices[0].message.content or ""
        except (AttributeError, IndexError) as exc:
            raise RecognitionError("OpenAI returned an unexpected response") from exc

        logger.info("[OCR] OpenAI reply: %r", reply[:200])
        solution = clean_solution(reply)
        if not solution:
            raise RecognitionError("model returned an empty response")
        return solution
