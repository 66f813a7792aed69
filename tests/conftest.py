"""Shared synthetic fixtures: procedural piece templates and board images."""

from __future__ import annotations

from pathlib import Path
from typing import Dict

import cv2
import numpy as np
import pytest

from screen_fen.config import PipelineConfig
from screen_fen.models.templates import SYMBOL_ORDER, TemplateLibrary, template_filename

CELL = 64
STYLE = "synthetic"
DARK, BRIGHT = 20, 235


def block_pattern(code: int, cell: int = CELL) -> np.ndarray:
    """4×4 block image; block ``j`` is bright when ``popcount(code & j)`` is odd.

    Distinct non-zero codes are rows of a Walsh–Hadamard code, so any two
    patterns differ in exactly half of their blocks.
    """
    block = cell // 4
    img = np.full((cell, cell), DARK, dtype=np.uint8)
    for j in range(16):
        if bin(code & j).count("1") % 2 == 1:
            r, c = divmod(j, 4)
            img[r * block:(r + 1) * block, c * block:(c + 1) * block] = BRIGHT
    return img


def make_templates(cell: int = CELL) -> Dict[str, np.ndarray]:
    return {symbol: block_pattern(i + 1, cell) for i, symbol in enumerate(SYMBOL_ORDER)}


def write_style(root: Path, style: str = STYLE, cell: int = CELL) -> Path:
    style_dir = root / style
    style_dir.mkdir(parents=True, exist_ok=True)
    for symbol, img in make_templates(cell).items():
        cv2.imwrite(str(style_dir / template_filename(symbol)), img)
    return style_dir


def checkerboard(size: int, light: int = 200, dark: int = 60) -> np.ndarray:
    cell = size / 8
    yy, xx = np.mgrid[0:size, 0:size]
    parity = ((yy // cell).astype(int) + (xx // cell).astype(int)) % 2
    return np.where(parity == 0, light, dark).astype(np.uint8)


@pytest.fixture
def templates_root(tmp_path: Path) -> Path:
    root = tmp_path / "templates"
    write_style(root)
    return root


@pytest.fixture
def config() -> PipelineConfig:
    return PipelineConfig(canonical_size=CELL * 8, match_threshold=0.15)


@pytest.fixture
def library(templates_root: Path) -> TemplateLibrary:
    return TemplateLibrary(templates_root, cell_size=CELL)


@pytest.fixture
def template_set(library: TemplateLibrary):
    return library.load(STYLE)
