"""
Normalisation – Crop & Resize to the Canonical Board
====================================================

The located region is cropped out of the native capture and resized to a
fixed ``canonical_size × canonical_size`` image, so every downstream cell
has the same geometry as the piece templates.

Area interpolation is used when shrinking (no aliasing on thin piece
outlines) and cubic when enlarging.  The output always has the canonical
shape; the locator's near-square guarantee keeps the distortion small.
"""

from __future__ import annotations

import logging

import numpy as np

from screen_fen.config import CANONICAL_SIZE
from screen_fen.errors import MalformedInput
from screen_fen.vision.board_locator import Region
from screen_fen.vision.image_io import resize_square

log = logging.getLogger(__name__)


def normalize(
    image: np.ndarray,
    region: Region,
    canonical_size: int = CANONICAL_SIZE,
) -> np.ndarray:
    """Crop *region* out of *image* and resize it to the canonical square.

    Parameters
    ----------
    image : np.ndarray
        Native capture (gray, BGR or BGRA).
    region : Region
        Board region, as returned by ``BoardLocator.locate``.
    canonical_size : int
        Output side length; must divide evenly into 8 cells.

    Returns
    -------
    np.ndarray
        ``(canonical_size, canonical_size[, C])`` image with the same
        channel layout as *image*.
    """
    if canonical_size <= 0 or canonical_size % 8 != 0:
        raise MalformedInput(
            f"Canonical size {canonical_size} does not split into 8 equal cells"
        )
    h, w = image.shape[:2]
    if not region.is_within(w, h):
        raise MalformedInput(f"Region {region} lies outside the {w}×{h} image")

    crop = image[region.y:region.bottom, region.x:region.right]
    board = resize_square(crop, canonical_size)
    log.debug(
        "Normalised %d×%d crop → %d×%d",
        region.width, region.height, canonical_size, canonical_size,
    )
    return board
