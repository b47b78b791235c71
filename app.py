"""Application entry point for the handwritten equation solver (FastAPI and PyQt6)."""
from __future__ import annotations

import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, Optional, Tuple

import uvicorn
from fastapi import FastAPI, File, Request, UploadFile
from fastapi.responses import HTMLResponse, JSONResponse

from core.config import settings
from core.exceptions import AttemptInProgressError, EquationSolverError, ErrorCode
from core.logger import init_logging, logger
from services.canvas.drawing_surface import ImageSurface
from services.solve_session import SessionRegistry, SolveSession
from utils.file_utils import ensure_directories
from utils.image_utils import load_image_bytes

SESSION_COOKIE = "eqsolver_session"

INDEX_PAGE = """
<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <title>Handwritten Equation Solver</title>
    <style>
        body { font-family: Arial, sans-serif; max-width: 1000px; margin: 0 auto; padding: 20px; background: #1e1e1e; color: white; }
        h1 { color: #0078d4; }
        .board { position: relative; width: __WIDTH__px; height: __HEIGHT__px; }
        .board canvas { position: absolute; left: 0; top: 0; border-radius: 4px; }
        #ink { background: black; cursor: crosshair; }
        #guides { pointer-events: none; }
        button { background: #0078d4; color: white; padding: 10px 20px; border: none; border-radius: 4px; cursor: pointer; font-size: 16px; margin: 10px 10px 0 0; }
        button:hover { background: #106ebe; }
        #result { background: white; color: black; font-size: 160%; padding: 15px; margin-top: 15px; border-radius: 4px; min-height: 40px; }
        #error { color: #ff6b6b; margin-top: 10px; }
        #log { background: #2b2b2b; padding: 10px; margin-top: 10px; border-radius: 4px; white-space: pre-wrap; font-family: monospace; }
    </style>
</head>
<body>
    <h1>Handwritten Equation Solver</h1>
    <div class="board">
        <canvas id="ink" width="__WIDTH__" height="__HEIGHT__"></canvas>
        <canvas id="guides" width="__WIDTH__" height="__HEIGHT__"></canvas>
    </div>
    <button onclick="solve()">Solve</button>
    <button onclick="clearBoard()">Clear</button>
    <div id="error"></div>
    <div id="result"></div>
    <div id="log"></div>

    <script>
        const ink = document.getElementById('ink');
        const ctx = ink.getContext('2d');
        let drawing = false;

        function resetInk() {
            ctx.fillStyle = 'black';
            ctx.fillRect(0, 0, ink.width, ink.height);
        }

        function drawGuides() {
            if (!__GUIDES__) return;
            const g = document.getElementById('guides').getContext('2d');
            g.strokeStyle = 'rgba(255, 255, 255, 0.1)';
            g.setLineDash([5, 5]);
            const center = Math.floor(ink.height / 2);
            [center - 50, center, center + 50].forEach(y => {
                g.beginPath(); g.moveTo(0, y); g.lineTo(ink.width, y); g.stroke();
            });
        }

        function point(e) {
            const rect = ink.getBoundingClientRect();
            return [e.clientX - rect.left, e.clientY - rect.top];
        }

        ink.addEventListener('pointerdown', e => {
            drawing = true;
            ctx.strokeStyle = 'white';
            ctx.lineWidth = 4;
            ctx.lineCap = 'round';
            ctx.lineJoin = 'round';
            ctx.beginPath();
            ctx.moveTo(...point(e));
        });
        ink.addEventListener('pointermove', e => {
            if (!drawing) return;
            ctx.lineTo(...point(e));
            ctx.stroke();
        });
        window.addEventListener('pointerup', () => { drawing = false; });

        function show(state) {
            document.getElementById('error').textContent = state.error || '';
            document.getElementById('result').innerHTML = state.phase === 'done' ? state.markup : '';
            document.getElementById('log').textContent = (state.transcript || []).join('\\n');
        }

        async function solve() {
            const blob = await new Promise(resolve => ink.toBlob(resolve, 'image/png'));
            const formData = new FormData();
            formData.append('file', blob, 'canvas.png');
            document.getElementById('log').textContent = 'Preprocessing image...';
            try {
                const response = await fetch('/solve', { method: 'POST', body: formData });
                const data = await response.json();
                if (response.ok) {
                    show(data);
                } else {
                    document.getElementById('error').textContent = data.message || 'Request failed';
                }
            } catch (error) {
                document.getElementById('error').textContent = error.message;
            }
        }

        async function clearBoard() {
            resetInk();
            const response = await fetch('/clear', { method: 'POST' });
            show(await response.json());
        }

        resetInk();
        drawGuides();
    </script>
</body>
</html>
"""


def render_index_page() -> str:
    return (
        INDEX_PAGE.replace("__WIDTH__", str(settings.canvas_width))
        .replace("__HEIGHT__", str(settings.canvas_height))
        .replace("__GUIDES__", "true" if settings.show_guide_lines else "false")
    )


def create_app(session_factory: Optional[Callable[[], SolveSession]] = None) -> FastAPI:
    """Create FastAPI app with the canvas page and solve routes.

    Each browser gets its own ``SolveSession``, keyed by a cookie.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        init_logging()
        ensure_directories()
        logger.info("FastAPI service started")
        yield

    app = FastAPI(title="Handwritten Equation Solver", version="0.1.0", lifespan=lifespan)
    app.state.sessions = SessionRegistry(
        session_factory or (lambda: SolveSession.from_settings(settings)),
        max_sessions=settings.max_sessions,
    )

    def session_for(request: Request) -> Tuple[str, SolveSession]:
        return app.state.sessions.get(request.cookies.get(SESSION_COOKIE))

    def respond(content: Dict[str, Any], session_id: str, status_code: int = 200) -> JSONResponse:
        response = JSONResponse(content, status_code=status_code)
        response.set_cookie(SESSION_COOKIE, session_id, httponly=True, samesite="lax")
        return response

    @app.get("/", response_class=HTMLResponse)
    async def root() -> str:
        """Serve the drawing page."""
        return render_index_page()

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/session")
    async def get_session(request: Request) -> JSONResponse:
        session_id, session = session_for(request)
        return respond(session.state.to_dict(), session_id)

    @app.post("/clear")
    async def clear_session(request: Request) -> JSONResponse:
        session_id, session = session_for(request)
        return respond(session.clear().to_dict(), session_id)

    @app.post("/solve")
    async def solve_drawing(request: Request, file: UploadFile = File(...)) -> JSONResponse:
        """Solve an uploaded canvas image."""
        if file.content_type and file.content_type not in settings.allowed_image_types:
            return JSONResponse(
                {"code": ErrorCode.UNSUPPORTED_MEDIA, "message": f"unsupported image type: {file.content_type}"},
                status_code=415,
            )
        try:
            bitmap = load_image_bytes(await file.read())
        except EquationSolverError as exc:
            logger.warning("[API] Rejected upload: %s", exc.message)
            return JSONResponse(exc.to_dict(), status_code=400)

        session_id, session = session_for(request)
        surface = ImageSurface.from_image(bitmap)
        try:
            state = await session.solve(surface)
        except AttemptInProgressError as exc:
            return respond(exc.to_dict(), session_id, status_code=409)
        return respond(state.to_dict(), session_id)

    return app


def main() -> None:
    """Entry point for CLI; starts FastAPI or PyQt based on args."""
    init_logging()
    ensure_directories()

    mode: Optional[str] = sys.argv[1] if len(sys.argv) > 1 else None
    if mode == "api":
        logger.info("Starting FastAPI server at %s:%s", settings.host, settings.port)
        uvicorn.run(create_app(), host=settings.host, port=settings.port)
    else:
        logger.info("Starting PyQt6 UI")
        # PyQt6 is only loaded in GUI mode
        from ui.main_window import run_qt_app

        run_qt_app()


if __name__ == "__main__":
    main()
