"""
Board Location – Edge-Density Candidate Search
==============================================

Finds the square sub-region of an arbitrary screen capture that most
likely contains the board.

Algorithm:
  1. **Grayscale + downsample** – the search runs on a working copy whose
     longest side is at most ``working_size``; high-DPI captures cost the
     same as a 1080p one.
  2. **Edge map** – Gaussian blur followed by Canny hysteresis (weak edges
     survive only when connected to strong ones).
  3. **Coarse sweep** – square candidates from ``min_board_size`` up to the
     short image side in ``size_step`` increments; neighbouring candidates
     overlap by ``candidate_overlap`` so a board can never fall between
     two sample points.  Edge counts come from an integral image, so each
     candidate is O(1).  The total is capped at ``max_candidates`` by
     coarsening the sweep.
  4. **Scoring** – ``score = edge_density × area`` (i.e. the edge count).
     Density alone prefers a dense 3×3 cluster of pieces over the whole
     board.  Only candidates with density ≥ ``min_edge_density`` compete;
     among candidates within ``tie_tolerance`` of the best score the
     smallest wins, which keeps empty margins out of the region.
  5. **Refinement** – a bounded local search around the winner with a
     shrinking step, then a single-pixel hill climb until the winner
     stops moving (at most ``MAX_REFINE_PASSES`` passes).

Design notes:
  • The returned ``Region`` is in native image coordinates, square, and
    fully inside the image.
  • Failing every threshold raises ``BoardNotFound`` rather than returning
    a low-quality guess.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

import cv2
import numpy as np

from screen_fen.config import PipelineConfig
from screen_fen.errors import BoardNotFound, MalformedInput
from screen_fen.vision.image_io import to_gray

log = logging.getLogger(__name__)

REFINE_DIVISIONS: int = 16
MAX_REFINE_PASSES: int = 64


# ── Data classes ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class Region:
    """Axis-aligned rectangle inside an image."""
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def aspect(self) -> float:
        return self.width / self.height if self.height else float("inf")

    def is_within(self, width: int, height: int) -> bool:
        return (
            self.x >= 0 and self.y >= 0
            and self.width > 0 and self.height > 0
            and self.right <= width and self.bottom <= height
        )

    def iou(self, other: "Region") -> float:
        """Intersection-over-union with *other*."""
        ix = max(0, min(self.right, other.right) - max(self.x, other.x))
        iy = max(0, min(self.bottom, other.bottom) - max(self.y, other.y))
        inter = ix * iy
        union = self.area + other.area - inter
        return inter / union if union else 0.0


@dataclass
class BoardLocation:
    """Diagnostic result of ``BoardLocator.locate_detailed``."""
    region: Region               # Native-resolution board region
    edge_density: float          # Edge pixels / area of the winner
    score: float                 # density × area (working resolution)
    candidates_evaluated: int
    scale: float                 # working / native
    elapsed_ms: float


# ── Edge map ───────────────────────────────────────────────────────────

def compute_edge_map(gray: np.ndarray, low: int, high: int) -> np.ndarray:
    """Return a binary (0/1) edge map of *gray*, same shape."""
    blurred = cv2.GaussianBlur(gray, (5, 5), 0)
    edges = cv2.Canny(blurred, low, high)
    return (edges > 0).astype(np.uint8)


# ── Candidate generation ───────────────────────────────────────────────

def _span(start: int, stop: int, step: int) -> List[int]:
    """``range(start, stop + 1, step)`` that always ends on *stop*."""
    values = list(range(start, stop + 1, step))
    if not values or values[-1] != stop:
        values.append(stop)
    return values


def _sweep(
    height: int, width: int, min_size: int, size_step: int, overlap: float, coarsen: int,
) -> Iterator[Tuple[int, List[int], List[int]]]:
    for size in _span(min_size, min(height, width), size_step * coarsen):
        stride = max(1, int(size * (1.0 - overlap))) * coarsen
        yield size, _span(0, width - size, stride), _span(0, height - size, stride)


def generate_candidates(
    height: int,
    width: int,
    min_size: int,
    size_step: int,
    overlap: float,
    max_candidates: int,
) -> np.ndarray:
    """Return an ``(N, 3)`` array of ``(x, y, size)`` square candidates.

    The sweep is coarsened (size step and stride doubled) until
    ``N <= max_candidates``.
    """
    coarsen = 1
    while True:
        total = sum(
            len(xs) * len(ys)
            for _, xs, ys in _sweep(height, width, min_size, size_step, overlap, coarsen)
        )
        if total <= max_candidates or coarsen >= max(height, width):
            break
        coarsen *= 2

    if coarsen > 1:
        log.debug("Candidate sweep coarsened ×%d (%d candidates)", coarsen, total)

    blocks = []
    for size, xs, ys in _sweep(height, width, min_size, size_step, overlap, coarsen):
        gx, gy = np.meshgrid(np.asarray(xs), np.asarray(ys))
        blocks.append(np.stack(
            [gx.ravel(), gy.ravel(), np.full(gx.size, size)], axis=1,
        ))
    return np.concatenate(blocks).astype(np.int64)[:max_candidates]


def _edge_counts(integral: np.ndarray, candidates: np.ndarray) -> np.ndarray:
    x, y, s = candidates[:, 0], candidates[:, 1], candidates[:, 2]
    return (
        integral[y + s, x + s] - integral[y, x + s]
        - integral[y + s, x] + integral[y, x]
    ).astype(np.float64)


def _select(
    candidates: np.ndarray,
    counts: np.ndarray,
    min_density: float,
    tie_tolerance: float,
    reference: float = 0.0,
) -> Tuple[Optional[int], float]:
    """Pick the winning candidate.

    Returns ``(index, best_score)``; *index* is ``None`` when no candidate
    is dense enough.  Ties (within *tie_tolerance* of the best score, or
    of *reference* when that is higher) resolve to the smallest size, then
    top-most, then left-most candidate.
    """
    sizes = candidates[:, 2].astype(np.float64)
    density = counts / (sizes * sizes)
    eligible = (density >= min_density) & (counts > 0)
    if not eligible.any():
        return None, reference

    best = max(float(counts[eligible].max()), reference)
    near = np.flatnonzero(eligible & (counts >= best * (1.0 - tie_tolerance)))
    if near.size == 0:
        return None, best
    order = np.lexsort((
        candidates[near, 0], candidates[near, 1], candidates[near, 2],
    ))
    return int(near[order[0]]), best


def _neighbourhood(
    best: np.ndarray,
    height: int,
    width: int,
    min_size: int,
    radius: int,
    shrink: int,
    grow: int,
) -> Tuple[np.ndarray, int, int]:
    """Candidates around *best*; returns them with the position / size steps used."""
    x0, y0, s0 = (int(v) for v in best)
    pos_step = max(1, (2 * radius) // REFINE_DIVISIONS)
    size_step = max(1, (shrink + grow) // REFINE_DIVISIONS)
    max_size = min(height, width)

    sizes = set(_span(max(min_size, s0 - shrink), min(max_size, s0 + grow), size_step))
    sizes.add(s0)

    blocks = [best.reshape(1, 3)]
    for size in sorted(sizes):
        xs = _span(max(0, x0 - radius), min(width - size, x0 + radius), pos_step)
        ys = _span(max(0, y0 - radius), min(height - size, y0 + radius), pos_step)
        xs = [x for x in xs if 0 <= x <= width - size]
        ys = [y for y in ys if 0 <= y <= height - size]
        if not xs or not ys:
            continue
        gx, gy = np.meshgrid(np.asarray(xs), np.asarray(ys))
        blocks.append(np.stack(
            [gx.ravel(), gy.ravel(), np.full(gx.size, size)], axis=1,
        ))
    return np.concatenate(blocks).astype(np.int64), pos_step, size_step


# ── Locator ────────────────────────────────────────────────────────────

class BoardLocator:
    """Locate the board region in a raw capture.

    Parameters
    ----------
    config : PipelineConfig, optional
        Thresholds for density, size sweep and shape tolerance.
    """

    def __init__(self, config: Optional[PipelineConfig] = None) -> None:
        self.config = config or PipelineConfig()

    def locate(self, image: np.ndarray) -> Region:
        """Return the board ``Region`` or raise ``BoardNotFound``."""
        return self.locate_detailed(image).region

    def locate_detailed(self, image: np.ndarray) -> BoardLocation:
        cfg = self.config
        start = time.perf_counter()

        if image is None or not isinstance(image, np.ndarray) or image.size == 0:
            raise MalformedInput("No image supplied to board locator")
        h, w = image.shape[:2]
        if min(h, w) < cfg.min_board_size:
            raise MalformedInput(
                f"Image {w}×{h} is smaller than the minimum board size "
                f"{cfg.min_board_size}px"
            )

        # 1. Grayscale working copy
        gray = to_gray(image)
        scale = min(1.0, cfg.working_size / max(h, w))
        if scale < 1.0:
            work = cv2.resize(
                gray,
                (max(1, int(round(w * scale))), max(1, int(round(h * scale)))),
                interpolation=cv2.INTER_AREA,
            )
        else:
            work = gray
        wh, ww = work.shape[:2]

        # 2. Edge map → integral image
        edges = compute_edge_map(work, cfg.canny_low, cfg.canny_high)
        integral = cv2.integral(edges)

        # 3. Coarse sweep
        min_size = min(
            max(8, int(math.ceil(cfg.min_board_size * scale))), min(wh, ww),
        )
        candidates = generate_candidates(
            wh, ww, min_size, cfg.size_step, cfg.candidate_overlap, cfg.max_candidates,
        )
        counts = _edge_counts(integral, candidates)
        evaluated = len(candidates)

        idx, reference = _select(
            candidates, counts, cfg.min_edge_density, cfg.tie_tolerance,
        )
        if idx is None:
            peak = float((counts / candidates[:, 2].astype(np.float64) ** 2).max())
            raise BoardNotFound(
                f"No candidate reached edge density {cfg.min_edge_density:.3f} "
                f"(best {peak:.3f} over {evaluated} candidates)"
            )
        best, best_count = candidates[idx], float(counts[idx])

        # 4. Local refinement: shrinking step, then single-pixel hill climb
        radius = shrink = max(1, int(best[2]) // 2)
        grow = cfg.size_step
        for _ in range(MAX_REFINE_PASSES):
            local, pos_step, size_step = _neighbourhood(
                best, wh, ww, min_size, radius, shrink, grow,
            )
            local_counts = _edge_counts(integral, local)
            evaluated += len(local)
            idx, reference = _select(
                local, local_counts, cfg.min_edge_density, cfg.tie_tolerance, reference,
            )
            previous = best
            if idx is not None:
                best, best_count = local[idx], float(local_counts[idx])
            if pos_step == 1 and size_step == 1 and np.array_equal(best, previous):
                break
            radius, shrink, grow = max(2, pos_step), max(2, size_step), max(2, size_step)

        # 5. Back to native coordinates
        region = self._to_native(best, scale, w, h)
        density = best_count / float(best[2]) ** 2
        self._check(region, density, w, h)

        elapsed = (time.perf_counter() - start) * 1000.0
        log.info(
            "Board located at %s  density=%.3f  candidates=%d  %.0fms",
            region, density, evaluated, elapsed,
        )
        return BoardLocation(
            region=region,
            edge_density=density,
            score=best_count,
            candidates_evaluated=evaluated,
            scale=scale,
            elapsed_ms=elapsed,
        )

    # ── Helpers ────────────────────────────────────────────────────────

    @staticmethod
    def _to_native(best: np.ndarray, scale: float, width: int, height: int) -> Region:
        x, y, s = (int(v) for v in best)
        size = min(int(round(s / scale)), width, height)
        nx = min(max(0, int(round(x / scale))), width - size)
        ny = min(max(0, int(round(y / scale))), height - size)
        return Region(nx, ny, size, size)

    def _check(self, region: Region, density: float, width: int, height: int) -> None:
        cfg = self.config
        if density < cfg.min_edge_density:
            raise BoardNotFound(
                f"Edge density {density:.3f} below minimum {cfg.min_edge_density:.3f}"
            )
        if not _is_roughly_square(region, cfg.square_tolerance):
            raise BoardNotFound(f"Region {region} is not square (aspect {region.aspect:.2f})")
        if min(region.width, region.height) < cfg.min_board_size:
            raise BoardNotFound(
                f"Region {region} is smaller than {cfg.min_board_size}px"
            )
        if not region.is_within(width, height):
            raise BoardNotFound(f"Region {region} exceeds image bounds {width}×{height}")


def _is_roughly_square(region: Region, tol: float) -> bool:
    return (1.0 - tol) <= region.aspect <= (1.0 + tol)
