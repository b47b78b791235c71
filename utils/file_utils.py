"""File utilities."""
from __future__ import annotations

from core.config import settings
from core.logger import logger


def ensure_directories() -> None:
    """Create the data directory, plus the debug image directory when enabled."""
    paths = [settings.data_dir]
    if settings.save_debug_images:
        paths.append(settings.debug_dir)
    for path in paths:
        path.mkdir(parents=True, exist_ok=True)
        logger.debug("Ensured directory: %s", path)
