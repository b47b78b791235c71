"""Tests for the in-memory drawing surface."""
from __future__ import annotations

from PIL import Image

from services.canvas.drawing_surface import ImageSurface, guide_line_rows


def test_new_surface_is_empty() -> None:
    surface = ImageSurface(width=120, height=80)
    assert surface.is_empty()
    assert surface.get_bitmap().size == (120, 80)


def test_stroke_draws_white_ink_on_black() -> None:
    surface = ImageSurface(width=100, height=60)
    surface.draw_stroke([(10, 30), (90, 30)])

    bitmap = surface.get_bitmap()
    assert not surface.is_empty()
    assert bitmap.getpixel((50, 30)) == (255, 255, 255, 255)
    assert bitmap.getpixel((50, 5)) == (0, 0, 0, 255)


def test_single_point_stroke_leaves_a_dot() -> None:
    surface = ImageSurface(width=40, height=40)
    surface.draw_stroke([(20, 20)])
    assert not surface.is_empty()


def test_bitmap_is_a_copy(stroke_surface) -> None:
    bitmap = stroke_surface.get_bitmap()
    bitmap.paste((0, 0, 0, 255), (0, 0, bitmap.width, bitmap.height))
    assert not stroke_surface.is_empty()


def test_clear_resets(stroke_surface) -> None:
    stroke_surface.clear()
    assert stroke_surface.is_empty()
    assert stroke_surface.get_bitmap().getextrema()[0] == (0, 0)


def test_uploaded_blank_image_counts_as_empty() -> None:
    blank = Image.new("RGBA", (300, 100), (0, 0, 0, 255))
    assert ImageSurface.from_image(blank).is_empty()


def test_guide_rows_centre_on_the_canvas() -> None:
    assert guide_line_rows(400) == [150, 200, 250]


def test_guide_rows_stay_inside_small_canvas() -> None:
    assert guide_line_rows(60) == [30]
