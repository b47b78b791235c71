"""Equation-solving workflow for one drawing session.

    Idle -> Capturing -> Preprocessing -> Recognizing
         -> (Normalizing -> Solving ->) Done
    any in-flight phase -> Failed;  clear(): any phase -> Idle

Each attempt carries a token. ``clear()`` and every new attempt bump the
token, and an attempt only commits state while its token is current, so a
late result from a cleared attempt never reaches ``SessionState``. A second
``solve()`` while an attempt is in flight is rejected with
``AttemptInProgressError``.
"""
from __future__ import annotations

import asyncio
import threading
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, TypeVar

from core.config import Settings
from core.exceptions import (
    AttemptInProgressError,
    EquationSolverError,
    EvaluationError,
    InputError,
    ParseError,
    RecognitionError,
)
from core.logger import logger
from services.canvas.drawing_surface import DrawingSurface
from services.ocr.recognition_backend import RecognitionBackend, get_recognition_backend
from services.ocr.text_normalizer import TextNormalizer
from services.preprocess.image_preprocessor import PreprocessingStrategy, get_preprocessor
from services.solver.expression_solver import (
    Failure,
    SolveResult,
    Value,
    VariableAssignment,
    solve,
)
from services.typeset.math_typesetter import MathTypesetter
from utils.image_utils import save_debug_image

T = TypeVar("T")

EMPTY_DRAWING_MESSAGE = "Please draw something first!"


class Phase(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    PREPROCESSING = "preprocessing"
    RECOGNIZING = "recognizing"
    NORMALIZING = "normalizing"
    SOLVING = "solving"
    DONE = "done"
    FAILED = "failed"


PHASE_ORDER = (
    Phase.IDLE,
    Phase.CAPTURING,
    Phase.PREPROCESSING,
    Phase.RECOGNIZING,
    Phase.NORMALIZING,
    Phase.SOLVING,
    Phase.DONE,
)
IN_FLIGHT = frozenset(PHASE_ORDER[1:-1])


@dataclass(frozen=True)
class SessionState:
    phase: Phase = Phase.IDLE
    attempt: int = 0
    raw_text: str = ""
    expression: str = ""
    result: Optional[SolveResult] = None
    solution_latex: str = ""
    markup: str = ""
    error: Optional[str] = None
    error_kind: Optional[str] = None
    transcript: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "attempt": self.attempt,
            "raw_text": self.raw_text,
            "expression": self.expression,
            "result": result_to_dict(self.result),
            "solution_latex": self.solution_latex,
            "markup": self.markup,
            "error": self.error,
            "error_kind": self.error_kind,
            "transcript": list(self.transcript),
        }


def result_to_dict(result: Optional[SolveResult]) -> Optional[Dict[str, Any]]:
    if result is None:
        return None
    if isinstance(result, Value):
        value = result.value
        return {
            "type": "value",
            "value": str(value) if isinstance(value, complex) else value,
            "text": str(result),
        }
    if isinstance(result, VariableAssignment):
        return {
            "type": "assignment",
            "variable": result.variable,
            "values": list(result.values),
            "text": str(result),
        }
    return {"type": "failure", "reason": result.reason, "kind": result.kind}


class _StaleAttempt(Exception):
    """Raised inside an attempt whose token is no longer current."""


class SolveSession:
    """Preprocess -> recognize -> (normalize -> solve ->) typeset for one user session."""

    def __init__(
        self,
        preprocessor: PreprocessingStrategy,
        backend: RecognitionBackend,
        normalizer: Optional[TextNormalizer] = None,
        typesetter: Optional[MathTypesetter] = None,
        recognition_timeout: float = 30.0,
        solve_timeout: float = 10.0,
        debug_dir: Optional[Path] = None,
    ) -> None:
        self.preprocessor = preprocessor
        self.backend = backend
        self.normalizer = normalizer or TextNormalizer()
        self.typesetter = typesetter or MathTypesetter()
        self.recognition_timeout = recognition_timeout
        self.solve_timeout = solve_timeout
        self.debug_dir = debug_dir
        self._lock = threading.Lock()
        self._token = 0
        self._state = SessionState()

    @classmethod
    def from_settings(cls, settings: Settings) -> "SolveSession":
        return cls(
            preprocessor=get_preprocessor(settings.preprocessing_strategy),
            backend=get_recognition_backend(settings),
            normalizer=TextNormalizer(equation_aware=settings.equation_aware),
            recognition_timeout=settings.recognition_timeout,
            solve_timeout=settings.solve_timeout,
            debug_dir=settings.debug_dir if settings.save_debug_images else None,
        )

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_busy(self) -> bool:
        return self._state.phase in IN_FLIGHT

    def clear(self, surface: Optional[DrawingSurface] = None) -> SessionState:
        """Back to Idle; any in-flight attempt loses the right to commit."""
        with self._lock:
            self._token += 1
            self._state = SessionState(attempt=self._token)
        if surface is not None:
            surface.clear()
        logger.info("[SESSION] Cleared (token=%d)", self._token)
        return self._state

    async def solve(self, surface: DrawingSurface) -> SessionState:
        """Run one attempt against the surface and return the resulting state."""
        with self._lock:
            if self._state.phase in IN_FLIGHT:
                raise AttemptInProgressError(
                    "a solve attempt is already in progress",
                    details={"phase": self._state.phase.value},
                )
            self._token += 1
            token = self._token
            self._state = SessionState(phase=Phase.CAPTURING, attempt=token)
        logger.info("[SESSION] Attempt %d started", token)

        try:
            await self._run(token, surface)
        except _StaleAttempt:
            logger.info("[SESSION] Attempt %d superseded; result discarded", token)
        except EquationSolverError as exc:
            self._fail(token, exc.message, type(exc).__name__)
        except asyncio.CancelledError:
            self._fail(token, "cancelled", "CancelledError")
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("[SESSION] Attempt %d crashed: %s", token, exc)
            self._fail(token, str(exc) or type(exc).__name__, type(exc).__name__)
        return self._state

    async def _run(self, token: int, surface: DrawingSurface) -> None:
        if surface.is_empty():
            raise InputError("empty input")
        bitmap = surface.get_bitmap()

        self._advance(token, Phase.PREPROCESSING, "Preprocessing image...")
        processed = self.preprocessor.preprocess(bitmap)
        if self.debug_dir is not None:
            save_debug_image(processed, self.debug_dir, f"attempt_{token}")

        self._advance(token, Phase.RECOGNIZING, f"Initializing {self.backend.name}...")
        self._note(token, f"Sending to {self.backend.name}...")
        if self.backend.solves_directly:
            solution = await self._recognize(self.backend.recognize_and_solve(processed))
            self._advance(
                token,
                Phase.DONE,
                f"AI Response: {solution}",
                solution_latex=solution,
                markup=self.typesetter.to_display_markup(solution),
            )
            return

        recognized = await self._recognize(self.backend.recognize(processed))
        self._advance(
            token, Phase.NORMALIZING, f"OCR Result: {recognized.text}", raw_text=recognized.text
        )

        expression = self.normalizer.normalize(recognized.text)
        if not expression:
            raise ParseError("empty expression")
        self._advance(token, Phase.SOLVING, f"Normalized: {expression}", expression=expression)

        result = await self._solve(expression)
        if isinstance(result, Failure):
            self._fail(token, result.reason, result.kind, result=result)
            return

        latex = result.to_latex()
        self._advance(
            token,
            Phase.DONE,
            f"Result: {result}",
            result=result,
            solution_latex=latex,
            markup=self.typesetter.to_display_markup(latex),
        )

    async def _recognize(self, call: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self.recognition_timeout)
        except asyncio.TimeoutError as exc:
            raise RecognitionError("timeout") from exc

    async def _solve(self, expression: str) -> SolveResult:
        """Run the solver off the event loop; a runaway computation fails as a timeout."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(solve, expression), timeout=self.solve_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("[SESSION] Solving %r exceeded %.1fs", expression, self.solve_timeout)
            return Failure("timeout", kind=EvaluationError.__name__)

    def _advance(self, token: int, phase: Phase, line: str, **changes: Any) -> None:
        with self._lock:
            if token != self._token:
                raise _StaleAttempt()
            current = self._state.phase
            if PHASE_ORDER.index(phase) <= PHASE_ORDER.index(current):
                raise RuntimeError(f"illegal transition {current.value} -> {phase.value}")
            self._state = replace(
                self._state,
                phase=phase,
                transcript=self._state.transcript + (line,),
                **changes,
            )
        logger.info("[SESSION] %s: %s", phase.value, line)

    def _note(self, token: int, line: str) -> None:
        with self._lock:
            if token != self._token:
                raise _StaleAttempt()
            self._state = replace(self._state, transcript=self._state.transcript + (line,))

    def _fail(self, token: int, reason: str, kind: str, **changes: Any) -> None:
        message = EMPTY_DRAWING_MESSAGE if kind == InputError.__name__ else reason
        with self._lock:
            if token != self._token or self._state.phase not in IN_FLIGHT:
                return
            self._state = replace(
                self._state,
                phase=Phase.FAILED,
                error=message,
                error_kind=kind,
                transcript=self._state.transcript + (f"Error: {reason}",),
                **changes,
            )
        logger.warning("[SESSION] Attempt %d failed (%s): %s", token, kind, reason)


class SessionRegistry:
    """One ``SolveSession`` per client id, created on first use.

    Ids are always minted here; an unknown id from a client gets a fresh
    session under a new id. Past ``max_sessions`` the least recently used
    idle session is dropped.
    """

    def __init__(self, factory: Callable[[], SolveSession], max_sessions: int = 256) -> None:
        self.factory = factory
        self.max_sessions = max_sessions
        self._sessions: "OrderedDict[str, SolveSession]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, session_id: Optional[str]) -> Tuple[str, SolveSession]:
        with self._lock:
            if session_id and session_id in self._sessions:
                self._sessions.move_to_end(session_id)
                return session_id, self._sessions[session_id]

            session_id = uuid.uuid4().hex
            session = self.factory()
            self._sessions[session_id] = session
            self._evict(keep=session_id)
        logger.info("[SESSION] Opened session %s (%d active)", session_id[:8], len(self._sessions))
        return session_id, session

    def _evict(self, keep: str) -> None:
        while len(self._sessions) > self.max_sessions:
            idle = next(
                (key for key, s in self._sessions.items() if key != keep and not s.is_busy),
                None,
            )
            if idle is None:
                return
            del self._sessions[idle]
