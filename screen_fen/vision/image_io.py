"""Raster helpers shared by every stage (OpenCV BGR / BGRA convention)."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Union

import cv2
import numpy as np

from screen_fen.errors import MalformedInput

log = logging.getLogger(__name__)

ImageSource = Union[str, Path, np.ndarray]


def load_image(source: ImageSource) -> np.ndarray:
    """Return the image as a ``uint8`` array.

    *source* is either an in-memory array (gray, BGR or BGRA) or a path
    readable by ``cv2.imread``.  16-bit input keeps its high byte;
    floating-point input in [0, 1] is scaled to [0, 255].  Anything else
    is clipped.
    """
    if isinstance(source, np.ndarray):
        image = source
    else:
        path = Path(source)
        image = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
        if image is None:
            raise MalformedInput(f"Could not read image: {path}")
        log.debug("Loaded %s  shape=%s", path, image.shape)

    if image.size == 0 or image.ndim not in (2, 3):
        raise MalformedInput(f"Unsupported image shape {image.shape}")
    if image.ndim == 3 and image.shape[2] not in (1, 3, 4):
        raise MalformedInput(f"Unsupported channel count {image.shape[2]}")
    if image.dtype == np.uint16:
        image = (image >> 8).astype(np.uint8)
    elif np.issubdtype(image.dtype, np.floating) and image.max(initial=0.0) <= 1.0:
        image = (np.clip(image, 0.0, 1.0) * 255.0).round().astype(np.uint8)
    elif image.dtype != np.uint8:
        image = np.clip(image, 0, 255).astype(np.uint8)
    return image


def to_gray(image: np.ndarray) -> np.ndarray:
    """Convert gray / BGR / BGRA to a single-channel image."""
    if image.ndim == 2:
        return image
    channels = image.shape[2]
    if channels == 1:
        return image[:, :, 0]
    if channels == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


def resize_square(image: np.ndarray, size: int) -> np.ndarray:
    """Resize to ``size × size`` with area (shrink) or cubic (enlarge) filtering."""
    h, w = image.shape[:2]
    if (h, w) == (size, size):
        return image.copy()
    interpolation = cv2.INTER_AREA if size < max(h, w) else cv2.INTER_CUBIC
    return cv2.resize(image, (size, size), interpolation=interpolation)
