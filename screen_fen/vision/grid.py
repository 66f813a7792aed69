"""
Grid Splitting
==============

Partitions the canonical board into an 8×8 array of single-channel cell
images.  ``grid[0][0]`` is the top-left cell of the image (the first
square of the first FEN rank) and ``grid[7][7]`` the bottom-right one.

The board is converted to grayscale once, up front; cells are views into
that single array.
"""

from __future__ import annotations

from typing import List, Sequence, TypeVar

import numpy as np

from screen_fen.errors import MalformedInput
from screen_fen.vision.image_io import to_gray

T = TypeVar("T")

CellGrid = List[List[np.ndarray]]


def split(canonical_image: np.ndarray) -> CellGrid:
    """Split a square canonical image into 8×8 grayscale cells."""
    gray = to_gray(canonical_image)
    h, w = gray.shape[:2]
    if h != w or h % 8 != 0:
        raise MalformedInput(
            f"Canonical image must be square and divisible by 8 (got {w}×{h})"
        )
    cell = h // 8
    return [
        [gray[row * cell:(row + 1) * cell, col * cell:(col + 1) * cell] for col in range(8)]
        for row in range(8)
    ]


def orient(grid: Sequence[Sequence[T]], player_side: str = "white") -> List[List[T]]:
    """Return *grid* in FEN order for the given on-screen orientation.

    With white at the bottom the screen order already matches FEN order.
    With black at the bottom the screen shows h1 in the top-left corner,
    so the grid is rotated by 180°.
    """
    if player_side == "black":
        return [list(reversed(row)) for row in reversed(grid)]
    return [list(row) for row in grid]
