"""Freehand drawing canvas widget."""
from __future__ import annotations

from typing import Optional

from PIL import Image
from PyQt6 import QtCore, QtGui, QtWidgets

from services.canvas.drawing_surface import guide_line_rows


class DrawingCanvas(QtWidgets.QWidget):
    """White ink on black; guide lines are painted on screen only."""

    def __init__(
        self,
        width: int = 900,
        height: int = 400,
        show_guide_lines: bool = True,
        pen_width: int = 4,
        parent: Optional[QtWidgets.QWidget] = None,
    ) -> None:
        super().__init__(parent)
        self.show_guide_lines = show_guide_lines
        self.pen_width = pen_width
        self.setFixedSize(width, height)
        self.setCursor(QtCore.Qt.CursorShape.CrossCursor)

        self._image = QtGui.QImage(width, height, QtGui.QImage.Format.Format_RGBA8888)
        self._image.fill(QtGui.QColor("black"))
        self._last_point: Optional[QtCore.QPointF] = None
        self._dirty = False

    # --- DrawingSurface -------------------------------------------------
    def get_bitmap(self) -> Image.Image:
        """Copy of the strokes as an RGBA PIL image (no guide lines)."""
        image = self._image.convertToFormat(QtGui.QImage.Format.Format_RGBA8888)
        ptr = image.constBits()
        ptr.setsize(image.sizeInBytes())
        return Image.frombuffer(
            "RGBA",
            (image.width(), image.height()),
            bytes(ptr),
            "raw",
            "RGBA",
            image.bytesPerLine(),
            1,
        ).copy()

    def is_empty(self) -> bool:
        return not self._dirty

    def clear(self) -> None:
        self._image.fill(QtGui.QColor("black"))
        self._last_point = None
        self._dirty = False
        self.update()

    # --- Qt events ------------------------------------------------------
    def _pen(self) -> QtGui.QPen:
        return QtGui.QPen(
            QtGui.QColor("white"),
            self.pen_width,
            QtCore.Qt.PenStyle.SolidLine,
            QtCore.Qt.PenCapStyle.RoundCap,
            QtCore.Qt.PenJoinStyle.RoundJoin,
        )

    def mousePressEvent(self, event: QtGui.QMouseEvent) -> None:
        if event.button() != QtCore.Qt.MouseButton.LeftButton:
            return
        point = event.position()
        painter = QtGui.QPainter(self._image)
        painter.setRenderHint(QtGui.QPainter.RenderHint.Antialiasing)
        painter.setPen(self._pen())
        painter.drawPoint(point)
        painter.end()
        self._last_point = point
        self._dirty = True
        self.update()

    def mouseMoveEvent(self, event: QtGui.QMouseEvent) -> None:
        if self._last_point is None or not (event.buttons() & QtCore.Qt.MouseButton.LeftButton):
            return
        point = event.position()
        painter = QtGui.QPainter(self._image)
        painter.setRenderHint(QtGui.QPainter.RenderHint.Antialiasing)
        painter.setPen(self._pen())
        painter.drawLine(self._last_point, point)
        painter.end()
        self._last_point = point
        self.update()

    def mouseReleaseEvent(self, event: QtGui.QMouseEvent) -> None:
        if event.button() == QtCore.Qt.MouseButton.LeftButton and self._last_point is not None:
            self._last_point = None

    def paintEvent(self, event: QtGui.QPaintEvent) -> None:
        painter = QtGui.QPainter(self)
        painter.drawImage(0, 0, self._image)
        if self.show_guide_lines:
            pen = QtGui.QPen(QtGui.QColor(255, 255, 255, 26), 1, QtCore.Qt.PenStyle.DashLine)
            painter.setPen(pen)
            for row in guide_line_rows(self.height()):
                painter.drawLine(0, row, self.width(), row)
        painter.end()
