"""Main PyQt6 window for the handwritten equation solver."""
from __future__ import annotations

import asyncio
import sys
from typing import Optional

from PyQt6 import QtCore, QtWidgets

from core.config import settings
from core.exceptions import AttemptInProgressError
from core.logger import logger
from services.canvas.drawing_surface import ImageSurface
from services.solve_session import Phase, SessionState, SolveSession
from ui.drawing_canvas import DrawingCanvas
from utils.file_utils import ensure_directories

RESULT_PAGE = """
<!DOCTYPE html>
<html>
<head>
<meta charset="UTF-8">
<style>
body {{
    background: #ffffff;
    font-family: 'Segoe UI', sans-serif;
    font-size: 160%;
    margin: 0;
    display: flex;
    align-items: center;
    justify-content: center;
    min-height: 100vh;
}}
</style>
</head>
<body>{body}</body>
</html>
"""


class SolveWorker(QtCore.QThread):
    """Runs one solve attempt off the GUI thread."""

    rejected = QtCore.pyqtSignal(str)

    def __init__(self, session: SolveSession, surface: ImageSurface, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self.session = session
        self.surface = surface

    def run(self) -> None:
        try:
            asyncio.run(self.session.solve(self.surface))
        except AttemptInProgressError as exc:
            self.rejected.emit(exc.message)


class MainWindow(QtWidgets.QMainWindow):
    """Canvas, Solve/Clear buttons, typeset result and a progress log."""

    def __init__(self, session: Optional[SolveSession] = None) -> None:
        super().__init__()
        ensure_directories()
        self.setWindowTitle("Handwritten Equation Solver")
        self.session = session or SolveSession.from_settings(settings)
        self._worker: Optional[SolveWorker] = None
        self._shown_transcript = 0
        self._shown_markup: Optional[str] = None

        self.canvas = DrawingCanvas(
            width=settings.canvas_width,
            height=settings.canvas_height,
            show_guide_lines=settings.show_guide_lines,
        )

        self.solve_button = QtWidgets.QPushButton("Solve")
        self.clear_button = QtWidgets.QPushButton("Clear")
        self.solve_button.clicked.connect(self._on_solve)
        self.clear_button.clicked.connect(self._on_clear)

        buttons = QtWidgets.QHBoxLayout()
        buttons.addWidget(self.solve_button)
        buttons.addWidget(self.clear_button)
        buttons.addStretch()

        self.status_label = QtWidgets.QLabel("Draw an equation and press Solve")
        self.error_label = QtWidgets.QLabel("")
        self.error_label.setStyleSheet("color: #d13438;")
        self.result_view = self._create_result_view()
        self.log_view = QtWidgets.QPlainTextEdit()
        self.log_view.setReadOnly(True)
        self.log_view.setMaximumHeight(140)

        central = QtWidgets.QWidget()
        layout = QtWidgets.QVBoxLayout(central)
        layout.addWidget(self.canvas)
        layout.addLayout(buttons)
        layout.addWidget(self.status_label)
        layout.addWidget(self.error_label)
        layout.addWidget(self.result_view)
        layout.addWidget(self.log_view)
        self.setCentralWidget(central)

        self._poll = QtCore.QTimer(self)
        self._poll.setInterval(100)
        self._poll.timeout.connect(self._render_state)

    def _create_result_view(self) -> QtWidgets.QWidget:
        """QtWebEngine renders MathML; without it the result is plain text."""
        try:
            from PyQt6.QtWebEngineWidgets import QWebEngineView
        except ImportError as exc:
            logger.warning("[UI] QtWebEngine not available, showing plain text: %s", exc)
            view = QtWidgets.QTextBrowser()
            view.setMinimumHeight(120)
            return view

        view = QWebEngineView()
        view.setMinimumHeight(120)
        view.setHtml(RESULT_PAGE.format(body=""))
        return view

    def _on_solve(self) -> None:
        if self.session.is_busy:
            self.status_label.setText("Already solving...")
            return
        self.error_label.clear()
        self.log_view.clear()
        self._shown_transcript = 0

        surface = ImageSurface.from_image(self.canvas.get_bitmap())
        self._worker = SolveWorker(self.session, surface, self)
        self._worker.rejected.connect(self.status_label.setText)
        self._worker.finished.connect(self._on_finished)
        self.solve_button.setEnabled(False)
        self._poll.start()
        self._worker.start()

    def _on_clear(self) -> None:
        self.session.clear(self.canvas)
        self.error_label.clear()
        self.log_view.clear()
        self._shown_transcript = 0
        self.solve_button.setEnabled(True)
        self._render_state()

    def _on_finished(self) -> None:
        if self.session.is_busy:
            return
        self._poll.stop()
        self.solve_button.setEnabled(True)
        self._render_state()

    def _render_state(self) -> None:
        state: SessionState = self.session.state
        self.status_label.setText(f"Status: {state.phase.value}")

        for line in state.transcript[self._shown_transcript:]:
            self.log_view.appendPlainText(line)
        self._shown_transcript = len(state.transcript)

        if state.phase is Phase.FAILED and state.error:
            self.error_label.setText(state.error)
        self._show_markup(state.markup if state.phase is Phase.DONE else "", state.solution_latex)

    def _show_markup(self, markup: str, fallback: str) -> None:
        if markup == self._shown_markup:
            return
        self._shown_markup = markup
        if isinstance(self.result_view, QtWidgets.QTextBrowser):
            self.result_view.setPlainText(fallback if markup else "")
            return
        self.result_view.setHtml(RESULT_PAGE.format(body=markup))


def run_qt_app() -> None:
    """Launch the PyQt application."""
    try:
        QtCore.QCoreApplication.setAttribute(QtCore.Qt.ApplicationAttribute.AA_ShareOpenGLContexts, True)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Could not set AA_ShareOpenGLContexts: %s", exc)

    app = QtWidgets.QApplication(sys.argv)
    window = MainWindow()
    window.show()
    sys.exit(app.exec())
