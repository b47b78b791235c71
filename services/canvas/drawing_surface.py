"""In-memory drawing surface.

Mirrors the desktop canvas: white ink on a black background. Guide lines
are a display concern of the front ends and never reach the bitmap.
"""
from __future__ import annotations

from typing import List, Optional, Protocol, Sequence, Tuple

import numpy as np
from PIL import Image, ImageDraw

Point = Tuple[float, float]

BACKGROUND = (0, 0, 0, 255)
INK = (255, 255, 255, 255)
GUIDE_OFFSET = 50


class DrawingSurface(Protocol):
    def get_bitmap(self) -> Image.Image:
        ...

    def is_empty(self) -> bool:
        ...

    def clear(self) -> None:
        ...


def guide_line_rows(height: int) -> List[int]:
    """Centre line plus one line 50 px above and below it."""
    center = height // 2
    return [row for row in (center - GUIDE_OFFSET, center, center + GUIDE_OFFSET) if 0 <= row < height]


class ImageSurface:
    """PIL-backed drawing surface used by the HTTP service and tests."""

    def __init__(
        self,
        width: int = 900,
        height: int = 400,
        pen_width: int = 4,
    ) -> None:
        self.width = width
        self.height = height
        self.pen_width = pen_width
        self._image = Image.new("RGBA", (width, height), BACKGROUND)
        self._dirty = False

    @classmethod
    def from_image(cls, image: Image.Image) -> "ImageSurface":
        """Wrap an already captured bitmap (e.g. an uploaded canvas PNG)."""
        surface = cls(image.width, image.height)
        surface.load(image)
        return surface

    def load(self, image: Image.Image) -> None:
        self._image = image.convert("RGBA").copy()
        self._dirty = True

    def draw_stroke(self, points: Sequence[Point], width: Optional[int] = None) -> None:
        if not points:
            return
        draw = ImageDraw.Draw(self._image)
        pen = width or self.pen_width
        if len(points) == 1:
            x, y = points[0]
            r = pen / 2
            draw.ellipse((x - r, y - r, x + r, y + r), fill=INK)
        else:
            draw.line(list(points), fill=INK, width=pen, joint="curve")
        self._dirty = True

    def get_bitmap(self) -> Image.Image:
        """Copy of the current bitmap."""
        return self._image.copy()

    def is_empty(self) -> bool:
        if not self._dirty:
            return True
        pixels = np.asarray(self._image)
        first = pixels[0, 0]
        return bool(np.all(pixels == first))

    def clear(self) -> None:
        self._image = Image.new("RGBA", (self.width, self.height), BACKGROUND)
        self._dirty = False
