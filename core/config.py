"""Configuration management for the handwritten equation solver."""
from __future__ import annotations

import os
import shutil
import string
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


def _get_base_dir() -> Path:
    """Get base directory, handling both development and frozen executables."""
    if getattr(sys, "frozen", False):
        if sys.platform == "win32":
            appdata = os.getenv("APPDATA", os.path.expanduser("~"))
            return Path(appdata) / "EquationSolver"
        return Path.home() / ".equation_solver"
    return Path(__file__).resolve().parents[1]


# Load .env from the project root (development only)
try:
    from dotenv import load_dotenv

    if not getattr(sys, "frozen", False):
        env_path = _get_base_dir() / ".env"
        if env_path.exists():
            load_dotenv(env_path)
except ImportError:
    pass


def _find_tesseract_path() -> str | None:
    """Auto-detect the Tesseract binary."""
    if env_path := os.getenv("TESSERACT_CMD"):
        if Path(env_path).exists():
            return env_path

    for program_files in [os.getenv("ProgramFiles"), os.getenv("ProgramFiles(x86)")]:
        if program_files:
            for candidate in (
                Path(program_files) / "Tesseract-OCR" / "tesseract.exe",
                Path(program_files) / "Tesseract" / "tesseract.exe",
            ):
                if candidate.exists():
                    return str(candidate)

    return shutil.which("tesseract")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str) -> Optional[float]:
    value = os.getenv(name, "").strip()
    return float(value) if value else None


# Letters stay in so confusable glyphs can be corrected after recognition
DEFAULT_WHITELIST = "0123456789+-*/=^()." + string.ascii_letters


@dataclass
class Settings:
    """Application settings."""

    base_dir: Path = _get_base_dir()
    data_dir: Path = base_dir / "data"
    debug_dir: Path = data_dir / "debug"
    save_debug_images: bool = _env_bool("EQSOLVER_SAVE_DEBUG_IMAGES", False)
    host: str = os.getenv("EQSOLVER_HOST", "127.0.0.1")
    port: int = int(os.getenv("EQSOLVER_PORT", "8000"))
    log_level: str = os.getenv("EQSOLVER_LOG_LEVEL", "INFO")

    preprocessing_strategy: str = os.getenv("EQSOLVER_PREPROCESSING", "invert")
    recognition_backend: str = os.getenv("EQSOLVER_BACKEND", "openai")
    recognition_timeout: float = float(os.getenv("EQSOLVER_RECOGNITION_TIMEOUT", "30"))
    solve_timeout: float = float(os.getenv("EQSOLVER_SOLVE_TIMEOUT", "10"))
    min_confidence: Optional[float] = _env_float("EQSOLVER_MIN_CONFIDENCE")
    equation_aware: bool = _env_bool("EQSOLVER_EQUATION_AWARE", False)

    tesseract_cmd: str | None = os.getenv("TESSERACT_CMD") or _find_tesseract_path()
    tesseract_psm: int = int(os.getenv("EQSOLVER_TESSERACT_PSM", "7"))
    tesseract_whitelist: str = os.getenv("EQSOLVER_TESSERACT_WHITELIST", DEFAULT_WHITELIST)

    openai_api_key: str | None = os.getenv("OPENAI_API_KEY")
    openai_model: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    openai_base_url: str | None = os.getenv("OPENAI_BASE_URL")

    show_guide_lines: bool = _env_bool("EQSOLVER_GUIDE_LINES", True)
    canvas_width: int = int(os.getenv("EQSOLVER_CANVAS_WIDTH", "900"))
    canvas_height: int = int(os.getenv("EQSOLVER_CANVAS_HEIGHT", "400"))
    max_sessions: int = int(os.getenv("EQSOLVER_MAX_SESSIONS", "256"))
    allowed_image_types: frozenset[str] = field(
        default_factory=lambda: frozenset({"image/png", "image/jpeg", "image/webp"})
    )


settings = Settings()
