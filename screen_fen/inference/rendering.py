"""
Synthetic Board Rendering
=========================

Composites piece templates onto a two-colour checkerboard to produce a
canonical board image for a given placement.  Used to sanity-check a
template style (render → recognise must round-trip) and by the test-suite.

Templates are drawn at their native (prepared) resolution, so the
rendered image is ``8 × cell_size`` pixels square.  Pixels of a template
that equal ``transparent`` (when given) let the square colour through,
mimicking the alpha compositing of RGBA piece sprites.
"""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np
from PIL import Image

from screen_fen.inference.fen_utils import decode_placement
from screen_fen.models.templates import EMPTY, TemplateSet

# (light, dark) grayscale square colours
DEFAULT_SQUARE_COLORS: Tuple[int, int] = (235, 120)


def render_position(
    placement: str,
    templates: TemplateSet,
    square_colors: Tuple[int, int] = DEFAULT_SQUARE_COLORS,
    transparent: Optional[int] = None,
) -> np.ndarray:
    """Render *placement* as a grayscale ``uint8`` board image."""
    grid = decode_placement(placement)
    cell = templates.cell_size
    light, dark = square_colors

    board = Image.new("L", (cell * 8, cell * 8), light)
    for row in range(8):
        for col in range(8):
            is_light = (row + col) % 2 == 0
            square = Image.new("L", (cell, cell), light if is_light else dark)

            symbol = grid[row][col]
            if symbol != EMPTY:
                piece = Image.fromarray(np.ascontiguousarray(templates[symbol]))
                if transparent is None:
                    square.paste(piece, (0, 0))
                else:
                    mask = Image.fromarray(
                        np.where(np.asarray(templates[symbol]) == transparent, 0, 255)
                        .astype(np.uint8),
                    )
                    square.paste(piece, (0, 0), mask)

            board.paste(square, (col * cell, row * cell))

    return np.asarray(board, dtype=np.uint8).copy()


def embed_board(
    board: np.ndarray,
    canvas_size: Tuple[int, int],
    origin: Tuple[int, int],
    background: int = 128,
    noise_sigma: float = 0.0,
    seed: int = 0,
) -> np.ndarray:
    """Place *board* on a larger grayscale canvas (``(width, height)``)."""
    width, height = canvas_size
    x, y = origin
    rng = np.random.default_rng(seed)

    canvas = np.full((height, width), float(background))
    if noise_sigma > 0:
        canvas += rng.normal(0.0, noise_sigma, size=canvas.shape)
    bh, bw = board.shape[:2]
    canvas[y:y + bh, x:x + bw] = board
    return np.clip(canvas, 0, 255).astype(np.uint8)
