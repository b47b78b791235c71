"""Error taxonomy shared by every stage of the solve workflow."""
from __future__ import annotations

from typing import Any, Dict, Optional


class ErrorCode:
    # Input (1000-1999)
    EMPTY_INPUT = "INPUT_1001"
    BUSY = "INPUT_1002"
    UNSUPPORTED_MEDIA = "INPUT_1003"

    # Configuration (2000-2999)
    MISSING_CREDENTIAL = "CONFIG_2001"
    BAD_SETTING = "CONFIG_2002"

    # Recognition (3000-3999)
    RECOGNITION_FAILED = "OCR_3001"

    # Solving (4000-4999)
    PARSE_ERROR = "SOLVE_4001"
    UNSUPPORTED = "SOLVE_4002"
    EVALUATION_ERROR = "SOLVE_4003"

    # Presentation (5000-5999)
    PRESENTATION_ERROR = "VIEW_5001"


class EquationSolverError(Exception):
    """Base class for all expected workflow failures."""

    code = "SYS_9001"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class InputError(EquationSolverError):
    """Empty or missing drawing."""

    code = ErrorCode.EMPTY_INPUT


class AttemptInProgressError(EquationSolverError):
    """A solve request arrived while another attempt was still in flight."""

    code = ErrorCode.BUSY


class ConfigError(EquationSolverError):
    """Missing credential or unavailable external tool."""

    code = ErrorCode.MISSING_CREDENTIAL


class SettingError(ConfigError):
    """A configured name (strategy, backend) that does not exist."""

    code = ErrorCode.BAD_SETTING


class RecognitionError(EquationSolverError):
    """Recognition backend call failed or returned no text."""

    code = ErrorCode.RECOGNITION_FAILED


class ParseError(EquationSolverError):
    code = ErrorCode.PARSE_ERROR


class UnsupportedError(EquationSolverError):
    """Multi-variable systems and other shapes the solver does not handle."""

    code = ErrorCode.UNSUPPORTED


class EvaluationError(EquationSolverError):
    """Division by zero, domain errors and non-finite results."""

    code = ErrorCode.EVALUATION_ERROR


class PresentationError(EquationSolverError):
    """Typesetting failure; always absorbed by the typesetter fallback."""

    code = ErrorCode.PRESENTATION_ERROR
