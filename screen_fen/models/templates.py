"""
Piece Templates – Symbol Table, TemplateSet & TemplateLibrary
=============================================================

Asset layout (one directory per visual style, e.g. a chess site)::

    templates/
      chesscom/
        wp.png  wn.png  wb.png  wr.png  wq.png  wk.png
        bp.png  bn.png  bb.png  br.png  bq.png  bk.png
      lichess/
        ...

File names are ``{color}{piece}.png``; the colour prefix means case never
distinguishes two files, so the layout survives case-insensitive
filesystems.

Every template is converted once, at load time, to the representation
grid cells use: single channel, ``cell_size × cell_size``.  Comparison is
then a direct pixelwise operation.

Design notes:
  • A style loads completely or not at all – ``MissingTemplate`` lists
    every absent / unreadable file.
  • ``TemplateSet`` is immutable (read-only arrays, mapping proxy) and may
    be shared by any number of concurrent classification calls.
  • ``TemplateLibrary`` caches one set per style; storage is read again
    only after an explicit ``invalidate``.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional

import cv2
import numpy as np

from screen_fen.config import CANONICAL_SIZE
from screen_fen.errors import MalformedInput, MissingTemplate
from screen_fen.vision.image_io import resize_square, to_gray

log = logging.getLogger(__name__)


# ── Canonical symbol table ─────────────────────────────────────────────

EMPTY: str = ""

# Fixed total order over piece symbols.  Template scores that tie are
# resolved in favour of the symbol listed first.
SYMBOL_ORDER: tuple[str, ...] = (
    "K", "Q", "R", "B", "N", "P",
    "k", "q", "r", "b", "n", "p",
)

SYMBOL_NAMES: dict[str, str] = {
    "K": "white_king",
    "Q": "white_queen",
    "R": "white_rook",
    "B": "white_bishop",
    "N": "white_knight",
    "P": "white_pawn",
    "k": "black_king",
    "q": "black_queen",
    "r": "black_rook",
    "b": "black_bishop",
    "n": "black_knight",
    "p": "black_pawn",
}

TEMPLATE_SUFFIX: str = ".png"


def template_stem(symbol: str) -> str:
    """``'P'`` → ``'wp'``, ``'k'`` → ``'bk'``."""
    if symbol not in SYMBOL_NAMES:
        raise KeyError(f"Unknown piece symbol: {symbol!r}")
    return ("w" if symbol.isupper() else "b") + symbol.lower()


def template_filename(symbol: str) -> str:
    return template_stem(symbol) + TEMPLATE_SUFFIX


def prepare_template(image: np.ndarray, cell_size: int) -> np.ndarray:
    """Grayscale + resize to one cell; the result is read-only."""
    prepared = np.ascontiguousarray(resize_square(to_gray(image), cell_size))
    prepared.setflags(write=False)
    return prepared


# ── TemplateSet ────────────────────────────────────────────────────────

@dataclass(frozen=True, eq=False)
class TemplateSet:
    """The 12 prepared templates of one style.

    Iteration and ``stack`` follow ``SYMBOL_ORDER``.
    """
    style: str
    templates: Mapping[str, np.ndarray]
    cell_size: int = field(init=False)
    stack: np.ndarray = field(init=False, repr=False)

    def __post_init__(self) -> None:
        keys = set(self.templates)
        if keys != set(SYMBOL_ORDER):
            raise ValueError(
                f"TemplateSet needs exactly the 12 piece symbols; "
                f"missing={sorted(set(SYMBOL_ORDER) - keys)} "
                f"extra={sorted(keys - set(SYMBOL_ORDER))}"
            )
        shapes = {self.templates[s].shape for s in SYMBOL_ORDER}
        if len(shapes) != 1:
            raise ValueError(f"Templates have mixed shapes: {sorted(shapes)}")
        shape = shapes.pop()
        if len(shape) != 2 or shape[0] != shape[1]:
            raise ValueError(f"Templates must be square single-channel images (got {shape})")

        frozen: Dict[str, np.ndarray] = {}
        for symbol in SYMBOL_ORDER:
            arr = np.array(self.templates[symbol], dtype=np.uint8, copy=True)
            arr.setflags(write=False)
            frozen[symbol] = arr
        stack = np.stack([frozen[s] for s in SYMBOL_ORDER]).astype(np.float32)
        stack.setflags(write=False)

        object.__setattr__(self, "templates", MappingProxyType(frozen))
        object.__setattr__(self, "cell_size", shape[0])
        object.__setattr__(self, "stack", stack)

    def __getitem__(self, symbol: str) -> np.ndarray:
        return self.templates[symbol]

    def __iter__(self) -> Iterator[str]:
        return iter(SYMBOL_ORDER)

    def __len__(self) -> int:
        return len(SYMBOL_ORDER)


# ── TemplateLibrary ────────────────────────────────────────────────────

class TemplateLibrary:
    """Load and cache template sets from the asset directory.

    Parameters
    ----------
    root : str | Path
        Directory holding one sub-directory per style.
    cell_size : int
        Side length every template is resized to (canonical size / 8).
    """

    def __init__(self, root: str | Path, cell_size: int = CANONICAL_SIZE // 8) -> None:
        if cell_size <= 0:
            raise MalformedInput(f"Invalid template cell size {cell_size}")
        self.root = Path(root)
        self.cell_size = cell_size
        self._cache: Dict[str, TemplateSet] = {}
        self._lock = threading.Lock()
        self.disk_loads = 0

    @property
    def styles(self) -> List[str]:
        if not self.root.is_dir():
            return []
        return sorted(d.name for d in self.root.iterdir() if d.is_dir())

    def load(self, style: str) -> TemplateSet:
        """Return the cached set for *style*, reading storage on first use."""
        with self._lock:
            cached = self._cache.get(style)
            if cached is not None:
                log.debug("Template cache hit for style '%s'", style)
                return cached
            template_set = self._read(style)
            self._cache[style] = template_set
            return template_set

    def invalidate(self, style: Optional[str] = None) -> None:
        """Forget one cached style, or all of them."""
        with self._lock:
            if style is None:
                self._cache.clear()
            else:
                self._cache.pop(style, None)

    def missing(self, style: str) -> List[str]:
        """File names required by *style* that are absent or unreadable."""
        _, missing = self._read_files(style)
        return missing

    # ── Internals ──────────────────────────────────────────────────────

    def _read_files(self, style: str) -> tuple[Dict[str, np.ndarray], List[str]]:
        style_dir = self.root / style
        images: Dict[str, np.ndarray] = {}
        missing: List[str] = []
        for symbol in SYMBOL_ORDER:
            name = template_filename(symbol)
            path = style_dir / name
            if not path.is_file():
                missing.append(name)
                continue
            img = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
            if img is None or img.size == 0:
                log.warning("Unreadable template %s", path)
                missing.append(name)
                continue
            images[symbol] = img
        return images, sorted(missing)

    def _read(self, style: str) -> TemplateSet:
        images, missing = self._read_files(style)
        if missing:
            raise MissingTemplate(style, missing)

        prepared = {s: prepare_template(img, self.cell_size) for s, img in images.items()}
        self.disk_loads += 1
        log.info(
            "Loaded %d templates for style '%s' from %s (cell %dpx)",
            len(prepared), style, self.root / style, self.cell_size,
        )
        return TemplateSet(style=style, templates=prepared)
