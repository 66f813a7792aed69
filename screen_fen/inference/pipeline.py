"""
Recognition Pipeline – Screen Capture → FEN
===========================================

Thin driver over independently callable stages:

  1. Board location    – edge-density candidate search (``BoardLocator``)
  2. Normalisation     – crop + resize to the canonical square
  3. Grid splitting    – 8×8 grayscale cells
  4. Classification    – variance gate + template matching (×64)
  5. FEN encoding      – placement + caller-supplied fields
  6. Validation        – legality check; failure is a full-cycle failure

Templates are loaded once, when the pipeline is built (or on an explicit
style change), never inside a cycle.  Every ``ScreenFenError`` raised by a
stage is stamped with the stage name and propagated unchanged; there is no
best-effort partial output.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar

import cv2
import numpy as np

from screen_fen.config import PipelineConfig
from screen_fen.errors import InvalidPosition, ScreenFenError
from screen_fen.inference.fen_utils import (
    BoardGrid,
    encode,
    encode_placement,
    restrict_castling,
    validate_fen,
)
from screen_fen.models.classifier import SquareClassifier, SquareMatch
from screen_fen.models.templates import EMPTY, TemplateLibrary, TemplateSet
from screen_fen.vision.board_locator import BoardLocator, Region
from screen_fen.vision.grid import orient, split
from screen_fen.vision.image_io import ImageSource, load_image
from screen_fen.vision.normalizer import normalize

log = logging.getLogger(__name__)

T = TypeVar("T")


def run_stage(stage: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Call *func*, stamping *stage* onto any pipeline error it raises."""
    try:
        return func(*args, **kwargs)
    except ScreenFenError as exc:
        if exc.stage is None:
            exc.stage = stage
        raise


# ── Result dataclass ──────────────────────────────────────────────────

@dataclass
class RecognitionResult:
    """Full output of one recognition cycle."""
    fen: str                                   # Full FEN (6 fields)
    placement: str                             # Piece-placement field only
    grid: BoardGrid                            # 8×8 symbols in FEN order
    square_matches: List[List[SquareMatch]]    # Per-cell details, screen order
    board_image: np.ndarray                    # Canonical board (screen orientation)
    region: Optional[Region] = None            # None when the board was supplied pre-cropped
    edge_density: Optional[float] = None
    style: str = ""
    timings_ms: Dict[str, float] = field(default_factory=dict)


# ── Pipeline class ─────────────────────────────────────────────────────

class BoardRecognitionPipeline:
    """End-to-end screen capture → FEN pipeline.

    Parameters
    ----------
    templates_root : str | Path
        Directory with one template sub-directory per style.
    style : str
        Style identifier (e.g. ``"chesscom"``) selecting the TemplateSet.
    config : PipelineConfig, optional
        Tunables; defaults are used when omitted.
    library : TemplateLibrary, optional
        Share an existing library (and its cache) between pipelines.
    """

    def __init__(
        self,
        templates_root: str | Path,
        style: str,
        config: Optional[PipelineConfig] = None,
        library: Optional[TemplateLibrary] = None,
    ) -> None:
        self.config = config or PipelineConfig()
        self.library = library or TemplateLibrary(
            templates_root, cell_size=self.config.cell_size,
        )
        self.locator = BoardLocator(self.config)
        self.classifier = SquareClassifier.from_config(self.config)
        self.style = style
        self.templates: TemplateSet = run_stage("templates", self.library.load, style)

        log.info(
            "Pipeline ready  style=%s  canonical=%dpx  player_side=%s  workers=%d",
            style,
            self.config.canonical_size,
            self.config.player_side,
            self.config.classify_workers,
        )

    # ── Public API ─────────────────────────────────────────────────────

    def set_style(self, style: str) -> None:
        """Switch template style; storage is read only on first use."""
        if style == self.style:
            return
        self.templates = run_stage("templates", self.library.load, style)
        self.style = style
        log.info("Switched template style to %s", style)

    def recognize(
        self,
        image: ImageSource,
        side_to_move: Optional[str] = None,
        castling: Optional[str] = None,
        en_passant: Optional[str] = None,
        halfmove_clock: Optional[int] = None,
        fullmove_number: Optional[int] = None,
    ) -> RecognitionResult:
        """Run the full cycle on a raw capture (array or path).

        The trailing FEN fields default to the config values.
        """
        timings: Dict[str, float] = {}

        # 1. Load + locate
        t0 = time.perf_counter()
        raw = run_stage("locate", load_image, image)
        location = run_stage("locate", self.locator.locate_detailed, raw)
        timings["locate"] = _elapsed(t0)

        # 2. Crop + resize
        t0 = time.perf_counter()
        board = run_stage(
            "normalize", normalize, raw, location.region, self.config.canonical_size,
        )
        timings["normalize"] = _elapsed(t0)

        result = self._recognize_canonical(
            board, timings, side_to_move, castling, en_passant,
            halfmove_clock, fullmove_number,
        )
        result.region = location.region
        result.edge_density = location.edge_density
        return result

    def recognize_board(
        self,
        board_image: ImageSource,
        side_to_move: Optional[str] = None,
        castling: Optional[str] = None,
        en_passant: Optional[str] = None,
        halfmove_clock: Optional[int] = None,
        fullmove_number: Optional[int] = None,
    ) -> RecognitionResult:
        """Run the cycle on an image that is already just the board."""
        timings: Dict[str, float] = {}
        t0 = time.perf_counter()
        raw = run_stage("normalize", load_image, board_image)
        h, w = raw.shape[:2]
        board = run_stage(
            "normalize", normalize, raw, Region(0, 0, w, h), self.config.canonical_size,
        )
        timings["normalize"] = _elapsed(t0)
        return self._recognize_canonical(
            board, timings, side_to_move, castling, en_passant,
            halfmove_clock, fullmove_number,
        )

    # ── Stages 3–6 ─────────────────────────────────────────────────────

    def _recognize_canonical(
        self,
        board: np.ndarray,
        timings: Dict[str, float],
        side_to_move: Optional[str],
        castling: Optional[str],
        en_passant: Optional[str],
        halfmove_clock: Optional[int],
        fullmove_number: Optional[int],
    ) -> RecognitionResult:
        cfg = self.config

        # 3. Split
        t0 = time.perf_counter()
        cells = run_stage("split", split, board)
        timings["split"] = _elapsed(t0)

        # 4. Classify
        t0 = time.perf_counter()
        matches = run_stage(
            "classify",
            self.classifier.classify_grid,
            cells,
            self.templates,
            workers=cfg.classify_workers,
        )
        grid = orient(
            [[m.symbol for m in row] for row in matches], cfg.player_side,
        )
        timings["classify"] = _elapsed(t0)

        # 5. Encode
        t0 = time.perf_counter()
        placement = run_stage("encode", encode_placement, grid)
        rights = castling if castling is not None else cfg.castling
        if cfg.restrict_castling:
            rights = restrict_castling(placement, rights)
        fen = run_stage(
            "encode",
            encode,
            grid,
            side_to_move=side_to_move or cfg.side_to_move,
            castling=rights,
            en_passant=en_passant or cfg.en_passant,
            halfmove_clock=cfg.halfmove_clock if halfmove_clock is None else halfmove_clock,
            fullmove_number=cfg.fullmove_number if fullmove_number is None else fullmove_number,
        )
        timings["encode"] = _elapsed(t0)

        # 6. Validate
        t0 = time.perf_counter()
        is_valid, violations = validate_fen(fen)
        timings["validate"] = _elapsed(t0)
        if not is_valid:
            raise InvalidPosition(fen, violations, stage="validate")

        log.info(
            "Recognised %s  (%s)",
            fen,
            "  ".join(f"{k}={v:.0f}ms" for k, v in timings.items()),
        )
        return RecognitionResult(
            fen=fen,
            placement=placement,
            grid=grid,
            square_matches=matches,
            board_image=board,
            style=self.style,
            timings_ms=timings,
        )

    # ── Debug visualisation ────────────────────────────────────────────

    def visualize(
        self,
        result: RecognitionResult,
        show: bool = False,
        save_path: Optional[str | Path] = None,
    ) -> np.ndarray:
        """Draw symbol and match score on each cell of the canonical board.

        Green: accepted piece.  Yellow: closest template rejected as
        low-confidence.  Gated empties are left unlabelled.
        """
        vis = result.board_image.copy()
        if vis.ndim == 2:
            vis = cv2.cvtColor(vis, cv2.COLOR_GRAY2BGR)
        elif vis.shape[2] == 4:
            vis = cv2.cvtColor(vis, cv2.COLOR_BGRA2BGR)
        h, w = vis.shape[:2]
        cell_h, cell_w = h // 8, w // 8

        for row, matches in enumerate(result.square_matches):
            for col, match in enumerate(matches):
                x, y = col * cell_w, row * cell_h
                cv2.rectangle(vis, (x, y), (x + cell_w, y + cell_h), (80, 80, 80), 1)
                if match.gated:
                    continue

                if match.symbol != EMPTY:
                    label, color = match.symbol, (0, 200, 0)
                else:
                    label, color = f"{match.best_symbol}?", (0, 200, 255)
                cv2.putText(
                    vis, label,
                    (x + 4, y + cell_h // 2 + 6),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.6, color, 2,
                )
                cv2.putText(
                    vis, f"{match.score:.3f}",
                    (x + 4, y + cell_h - 6),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.35, color, 1,
                )

        if save_path:
            cv2.imwrite(str(save_path), vis)
            log.info("Saved debug image to %s", save_path)

        if show:
            cv2.imshow("Board Recognition", vis)
            cv2.waitKey(0)
            cv2.destroyAllWindows()

        return vis

    def save_debug(self, result: RecognitionResult, directory: str | Path) -> Path:
        """Write the canonical board and its annotated overlay to *directory*."""
        out = Path(directory)
        out.mkdir(parents=True, exist_ok=True)
        cv2.imwrite(str(out / "cropped_board.png"), result.board_image)
        self.visualize(result, save_path=out / "annotated_board.png")
        return out


def _elapsed(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0
