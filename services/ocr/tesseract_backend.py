"""Local OCR backend using Tesseract via pytesseract."""
from __future__ import annotations

import asyncio
import shutil
from typing import Any, Dict, List, Optional

import pytesseract
from PIL import Image

from core.exceptions import ConfigError, RecognitionError
from core.logger import logger
from services.ocr.recognition_backend import LocalRecognitionBackend, RecognitionResult


class TesseractBackend(LocalRecognitionBackend):
    """Single-line Tesseract recognition restricted to a character whitelist."""

    name = "tesseract"

    def __init__(
        self,
        tesseract_cmd: Optional[str] = None,
        psm: int = 7,
        char_whitelist: str = "",
        min_confidence: Optional[float] = None,
        timeout: float = 30,
    ) -> None:
        self.tesseract_cmd = tesseract_cmd
        self.psm = psm
        self.char_whitelist = char_whitelist
        self.min_confidence = min_confidence
        self.timeout = timeout

    def build_config(self) -> str:
        """Tesseract CLI options: page segmentation mode and whitelist."""
        config = f"--psm {self.psm}"
        if self.char_whitelist:
            config += f" -c tessedit_char_whitelist={self.char_whitelist}"
        return config

    def _initialize_tesseract(self) -> None:
        if self.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = self.tesseract_cmd
            return
        tesseract_path = shutil.which("tesseract")
        if tesseract_path:
            pytesseract.pytesseract.tesseract_cmd = tesseract_path
            logger.info("[OCR] Tesseract auto-detected: %s", tesseract_path)
        else:
            logger.warning("[OCR] Tesseract not found on PATH; set TESSERACT_CMD")

    async def recognize(self, bitmap: Image.Image) -> RecognitionResult:
        return await asyncio.to_thread(self._recognize_blocking, bitmap)

    def _recognize_blocking(self, bitmap: Image.Image) -> RecognitionResult:
        self._initialize_tesseract()
        config = self.build_config()
        logger.info("[OCR] Running Tesseract (%s)", config)
        try:
            # The subprocess is killed once the timeout expires
            data = pytesseract.image_to_data(
                bitmap,
                config=config,
                output_type=pytesseract.Output.DICT,
                timeout=self.timeout,
            )
        except pytesseract.TesseractNotFoundError as exc:
            raise ConfigError(
                "Tesseract OCR is not installed or not on PATH",
                details={"env": "TESSERACT_CMD"},
            ) from exc
        except RuntimeError as exc:
            # pytesseract reports timeouts and TesseractError as RuntimeError
            raise RecognitionError(f"Tesseract failed: {exc}") from exc

        result = self.parse_output(data)
        logger.info("[OCR] Tesseract result: %r (confidence=%s)", result.text, result.confidence)

        if not result.text:
            raise RecognitionError("no text recognized")
        if (
            self.min_confidence is not None
            and result.confidence is not None
            and result.confidence < self.min_confidence
        ):
            raise RecognitionError(
                f"recognition confidence {result.confidence:.1f} below minimum {self.min_confidence:.1f}"
            )
        return result

    @staticmethod
    def parse_output(data: Dict[str, List[Any]]) -> RecognitionResult:
        """Join recognized words and average their confidences."""
        words: List[str] = []
        confidences: List[float] = []
        for text, conf in zip(data.get("text", []), data.get("conf", [])):
            text = str(text).strip()
            if not text:
                continue
            words.append(text)
            try:
                value = float(conf)
            except (TypeError, ValueError):
                continue
            if value >= 0:
                confidences.append(value)

        confidence = sum(confidences) / len(confidences) if confidences else None
        return RecognitionResult(text=" ".join(words), confidence=confidence)
