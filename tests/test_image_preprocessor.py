"""Tests for the canvas preprocessing strategies."""
from __future__ import annotations

import numpy as np
import pytest

from core.exceptions import ConfigError, InputError
from services.preprocess.image_preprocessor import (
    InvertPreprocessor,
    OtsuPreprocessor,
    build_histogram,
    get_preprocessor,
    otsu_threshold,
)


def _canvas(height: int = 40, width: int = 60) -> np.ndarray:
    """Opaque black canvas with a white horizontal bar of ink."""
    canvas = np.zeros((height, width, 4), dtype=np.uint8)
    canvas[..., 3] = 255
    canvas[18:22, 10:50, :3] = 255
    return canvas


class TestOtsuThreshold:
    def test_two_clusters_split_between_them(self) -> None:
        values = np.concatenate([np.arange(10, 31), np.arange(190, 211)]).astype(np.uint8)
        gray = np.repeat(values, 50)
        threshold = otsu_threshold(build_histogram(gray))
        assert 30 <= threshold < 190

    def test_ties_keep_lowest_threshold(self) -> None:
        histogram = np.zeros(256, dtype=np.int64)
        histogram[30] = 100
        histogram[190] = 100
        # Every t in [30, 189] separates the clusters identically
        assert otsu_threshold(histogram) == 30

    def test_deterministic(self) -> None:
        rng = np.random.default_rng(7)
        gray = rng.integers(0, 256, size=5000).astype(np.uint8)
        histogram = build_histogram(gray)
        assert otsu_threshold(histogram) == otsu_threshold(histogram.copy())

    def test_empty_histogram(self) -> None:
        assert otsu_threshold(np.zeros(256, dtype=np.int64)) == 0


class TestOtsuPreprocessor:
    def test_upscales_three_times_on_white(self) -> None:
        result = OtsuPreprocessor().preprocess(_canvas())
        assert result.size == (180, 120)
        pixels = np.asarray(result)
        assert tuple(pixels[0, 0]) == (255, 255, 255)
        assert tuple(pixels[-1, -1]) == (255, 255, 255)

    def test_ink_becomes_dark(self) -> None:
        pixels = np.asarray(OtsuPreprocessor().preprocess(_canvas()))
        # Middle of the bar, away from interpolated edges
        assert tuple(pixels[60, 90]) == (0, 0, 0)

    def test_transparent_pixels_count_as_white(self) -> None:
        canvas = np.zeros((10, 10, 4), dtype=np.uint8)
        pixels = np.asarray(OtsuPreprocessor().preprocess(canvas))
        assert np.all(pixels == 255)

    def test_input_not_mutated(self) -> None:
        canvas = _canvas()
        before = canvas.copy()
        OtsuPreprocessor().preprocess(canvas)
        np.testing.assert_array_equal(canvas, before)


class TestInvertPreprocessor:
    def test_upscales_twice_and_inverts(self) -> None:
        result = InvertPreprocessor().preprocess(_canvas())
        assert result.size == (120, 80)
        pixels = np.asarray(result)
        assert tuple(pixels[0, 0]) == (255, 255, 255)
        assert tuple(pixels[40, 60]) == (0, 0, 0)

    def test_accepts_pil_image(self, stroke_surface) -> None:
        result = InvertPreprocessor().preprocess(stroke_surface.get_bitmap())
        assert result.size == (400, 200)
        assert result.mode == "RGB"

    def test_same_input_same_output(self) -> None:
        first = np.asarray(InvertPreprocessor().preprocess(_canvas()))
        second = np.asarray(InvertPreprocessor().preprocess(_canvas()))
        np.testing.assert_array_equal(first, second)


def test_zero_size_bitmap_rejected() -> None:
    with pytest.raises(InputError):
        InvertPreprocessor().preprocess(np.zeros((0, 0, 4), dtype=np.uint8))


def test_get_preprocessor_by_name() -> None:
    assert isinstance(get_preprocessor("otsu"), OtsuPreprocessor)
    assert isinstance(get_preprocessor(" Invert "), InvertPreprocessor)
    with pytest.raises(ConfigError) as excinfo:
        get_preprocessor("sharpen")
    assert excinfo.value.code == "CONFIG_2002"
    assert excinfo.value.details == {"available": ["invert", "otsu"]}
