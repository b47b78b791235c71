"""Image helper utilities."""
from __future__ import annotations

import base64
import io
from pathlib import Path
from typing import Union

import numpy as np
from PIL import Image, UnidentifiedImageError

from core.exceptions import InputError
from core.logger import logger

BitmapLike = Union[Image.Image, np.ndarray]


def load_image_bytes(content: bytes) -> Image.Image:
    """Decode uploaded image bytes into an RGBA PIL image."""
    if not content:
        raise InputError("empty input")
    try:
        with Image.open(io.BytesIO(content)) as img:
            img.load()
            return img.convert("RGBA")
    except (UnidentifiedImageError, OSError) as exc:
        raise InputError(f"could not decode image: {exc}") from exc


def to_rgba_array(bitmap: BitmapLike) -> np.ndarray:
    """Return a fresh HxWx4 uint8 copy of the bitmap."""
    if isinstance(bitmap, Image.Image):
        return np.array(bitmap.convert("RGBA"), dtype=np.uint8)

    array = np.asarray(bitmap)
    if array.ndim == 2:
        array = np.stack([array, array, array, np.full_like(array, 255)], axis=-1)
    elif array.ndim == 3 and array.shape[2] == 3:
        alpha = np.full(array.shape[:2] + (1,), 255, dtype=array.dtype)
        array = np.concatenate([array, alpha], axis=-1)
    elif array.ndim != 3 or array.shape[2] != 4:
        raise InputError(f"unsupported bitmap shape: {array.shape}")
    return array.astype(np.uint8, copy=True)


def composite_on_white(rgb: np.ndarray, alpha: np.ndarray) -> np.ndarray:
    """Blend RGB samples over a white backdrop using the alpha channel."""
    weight = alpha.astype(np.float32)[..., None] / 255.0
    blended = rgb.astype(np.float32) * weight + 255.0 * (1.0 - weight)
    return np.clip(np.rint(blended), 0, 255).astype(np.uint8)


def to_png_bytes(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def to_jpeg_bytes(image: Image.Image, quality: int = 92) -> bytes:
    buffer = io.BytesIO()
    image.convert("RGB").save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


def to_data_url(content: bytes, mime_type: str) -> str:
    encoded = base64.b64encode(content).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def save_debug_image(image: Image.Image, directory: Path, name: str) -> Path:
    """Write a processed bitmap to the debug directory for later inspection."""
    directory.mkdir(parents=True, exist_ok=True)
    out_path = directory / f"{name}.png"
    image.save(out_path, format="PNG")
    logger.debug("Saved debug image to %s (size: %dx%d)", out_path, image.width, image.height)
    return out_path
