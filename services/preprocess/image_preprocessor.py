"""Canvas bitmap preprocessing for character recognition.

Two interchangeable strategies turn the raw drawing-surface bitmap into a
clean, upscaled bitmap with dark ink on a uniform white background:

- ``OtsuPreprocessor`` binarizes around an Otsu threshold and upscales 3x.
- ``InvertPreprocessor`` inverts light-on-dark ink and upscales 2x.

Both work on a private copy of the input and are deterministic.
"""
from __future__ import annotations

from typing import Dict, Protocol, Type

import cv2
import numpy as np
from PIL import Image

from core.exceptions import InputError, SettingError
from core.logger import logger
from utils.image_utils import BitmapLike, composite_on_white, to_rgba_array


def build_histogram(gray: np.ndarray) -> np.ndarray:
    """256-bucket intensity histogram of a uint8 grayscale image."""
    return np.bincount(gray.ravel(), minlength=256)[:256]


def otsu_threshold(histogram: np.ndarray) -> int:
    """Threshold maximizing the between-class variance wB*wF*(mB-mF)^2.

    ``wB`` counts samples <= t and ``wF`` samples > t. The comparison is done
    on exact integers so equal variances keep the lowest ``t``.
    """
    counts = [int(c) for c in histogram]
    total = sum(counts)
    if total == 0:
        return 0
    sum_all = sum(t * c for t, c in enumerate(counts))

    w_b = 0
    sum_b = 0
    best_num, best_den = -1, 1
    threshold = 0
    for t, count in enumerate(counts):
        w_b += count
        if w_b == 0:
            continue
        w_f = total - w_b
        if w_f == 0:
            break
        sum_b += t * count
        # wB*wF*(mB-mF)^2 == (sum_b*total - sum_all*wB)^2 / (wB*wF)
        num = (sum_b * total - sum_all * w_b) ** 2
        den = w_b * w_f
        if num * best_den > best_num * den:
            best_num, best_den = num, den
            threshold = t
    return threshold


def grayscale_average(rgb: np.ndarray) -> np.ndarray:
    """Per-pixel channel average, truncated to uint8."""
    return (rgb.astype(np.uint16).sum(axis=2) // 3).astype(np.uint8)


def upscale_on_white(channels: np.ndarray, factor: int) -> np.ndarray:
    """Upscale an already white-backed image by an integer factor with cubic smoothing.

    Returns an HxWx3 RGB array.
    """
    height, width = channels.shape[:2]
    resized = cv2.resize(
        channels, (width * factor, height * factor), interpolation=cv2.INTER_CUBIC
    )
    if resized.ndim == 2:
        resized = np.repeat(resized[..., None], 3, axis=2)
    return np.ascontiguousarray(resized, dtype=np.uint8)


class PreprocessingStrategy(Protocol):
    name: str
    scale: int

    def preprocess(self, bitmap: BitmapLike) -> Image.Image:
        ...


class OtsuPreprocessor:
    """Binarize around the Otsu threshold and upscale 3x."""

    name = "otsu"
    scale = 3

    def preprocess(self, bitmap: BitmapLike) -> Image.Image:
        rgba = _working_copy(bitmap)
        rgb = composite_on_white(rgba[..., :3], rgba[..., 3])
        gray = grayscale_average(rgb)

        threshold = otsu_threshold(build_histogram(gray))
        binary = np.where(gray > threshold, 255, 0).astype(np.uint8)

        # Background is the majority class; keep it white
        black = int(np.count_nonzero(binary == 0))
        if black > binary.size - black:
            binary = 255 - binary
            logger.debug("[PREPROCESS] Flipped polarity (light ink on dark background)")

        logger.info(
            "[PREPROCESS] Otsu threshold=%d size=%dx%d scale=%d",
            threshold, binary.shape[1], binary.shape[0], self.scale,
        )
        return Image.fromarray(upscale_on_white(binary, self.scale))


class InvertPreprocessor:
    """Invert light-on-dark ink to dark-on-light and upscale 2x."""

    name = "invert"
    scale = 2

    def preprocess(self, bitmap: BitmapLike) -> Image.Image:
        rgba = _working_copy(bitmap)
        rgba[..., :3] = 255 - rgba[..., :3]
        rgb = composite_on_white(rgba[..., :3], rgba[..., 3])

        logger.info(
            "[PREPROCESS] Inverted size=%dx%d scale=%d",
            rgb.shape[1], rgb.shape[0], self.scale,
        )
        return Image.fromarray(upscale_on_white(rgb, self.scale))


def _working_copy(bitmap: BitmapLike) -> np.ndarray:
    rgba = to_rgba_array(bitmap)
    if rgba.shape[0] == 0 or rgba.shape[1] == 0:
        raise InputError("empty input")
    return rgba


STRATEGIES: Dict[str, Type[PreprocessingStrategy]] = {
    OtsuPreprocessor.name: OtsuPreprocessor,
    InvertPreprocessor.name: InvertPreprocessor,
}


def get_preprocessor(name: str) -> PreprocessingStrategy:
    """Look up a preprocessing strategy by its configured name."""
    try:
        return STRATEGIES[name.strip().lower()]()
    except KeyError as exc:
        raise SettingError(
            f"unknown preprocessing strategy: {name!r}",
            details={"available": sorted(STRATEGIES)},
        ) from exc
