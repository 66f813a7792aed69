"""
Pipeline Configuration
======================

All tunables consumed by the vision pipeline live in ``PipelineConfig``.
Defaults are the module-level constants below; a JSON file (one per site
or visual style, e.g. ``configs/chesscom.json``) may override any subset
of them.

Example JSON::

    {
        "min_edge_density": 0.03,
        "canonical_size": 640,
        "match_threshold": 0.1,
        "player_side": "black"
    }
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict

from screen_fen.errors import ConfigurationError

log = logging.getLogger(__name__)


# ── Board location ─────────────────────────────────────────────────────

MIN_EDGE_DENSITY: float = 0.02     # edge pixels / area
MIN_BOARD_SIZE: int = 64           # native pixels
SIZE_STEP: int = 16                # working pixels between candidate sizes
CANDIDATE_OVERLAP: float = 0.75    # fraction shared by neighbouring candidates
MAX_CANDIDATES: int = 50_000
WORKING_SIZE: int = 960            # longest side used for the search
SQUARE_TOLERANCE: float = 0.10
CANNY_LOW: int = 50
CANNY_HIGH: int = 150
TIE_TOLERANCE: float = 0.03

# ── Normalisation & classification ─────────────────────────────────────

CANONICAL_SIZE: int = 512
EMPTY_VARIANCE_THRESHOLD: float = 25.0
MATCH_THRESHOLD: float = 0.08
CLASSIFY_WORKERS: int = 1

# ── Position fields that cannot be read from pixels ────────────────────

SIDE_TO_MOVE: str = "w"
CASTLING: str = "KQkq"
EN_PASSANT: str = "-"

PLAYER_SIDES = ("white", "black")


@dataclass(frozen=True)
class PipelineConfig:
    """Tunables for one recognition session.

    ``tie_tolerance`` widens the locator's winning band: candidates whose
    edge count is within that fraction of the best count are treated as
    ties and the smallest of them wins, so the chosen region may score up
    to ``tie_tolerance`` below the maximum.  ``tie_tolerance=0`` selects
    strictly the maximum-scoring candidate (ties still go to the smallest,
    then top-most, then left-most).
    """

    min_edge_density: float = MIN_EDGE_DENSITY
    min_board_size: int = MIN_BOARD_SIZE
    size_step: int = SIZE_STEP
    candidate_overlap: float = CANDIDATE_OVERLAP
    max_candidates: int = MAX_CANDIDATES
    working_size: int = WORKING_SIZE
    square_tolerance: float = SQUARE_TOLERANCE
    canny_low: int = CANNY_LOW
    canny_high: int = CANNY_HIGH
    tie_tolerance: float = TIE_TOLERANCE

    canonical_size: int = CANONICAL_SIZE
    empty_variance_threshold: float = EMPTY_VARIANCE_THRESHOLD
    match_threshold: float = MATCH_THRESHOLD
    classify_workers: int = CLASSIFY_WORKERS

    side_to_move: str = SIDE_TO_MOVE
    castling: str = CASTLING
    en_passant: str = EN_PASSANT
    halfmove_clock: int = 0
    fullmove_number: int = 1
    player_side: str = "white"
    restrict_castling: bool = True

    def __post_init__(self) -> None:
        self.validate()

    @property
    def cell_size(self) -> int:
        return self.canonical_size // 8

    def validate(self) -> None:
        """Raise ``ConfigurationError`` describing every bad value."""
        problems = []
        if self.canonical_size <= 0 or self.canonical_size % 8 != 0:
            problems.append(
                f"canonical_size must be a positive multiple of 8 (got {self.canonical_size})"
            )
        if not 0.0 <= self.candidate_overlap < 1.0:
            problems.append(
                f"candidate_overlap must be in [0, 1) (got {self.candidate_overlap})"
            )
        if not 0.0 <= self.min_edge_density <= 1.0:
            problems.append(
                f"min_edge_density must be in [0, 1] (got {self.min_edge_density})"
            )
        if not 0.0 <= self.match_threshold <= 1.0:
            problems.append(
                f"match_threshold must be in [0, 1] (got {self.match_threshold})"
            )
        if not 0.0 <= self.tie_tolerance < 1.0:
            problems.append(
                f"tie_tolerance must be in [0, 1) (got {self.tie_tolerance})"
            )
        if self.empty_variance_threshold < 0:
            problems.append("empty_variance_threshold must be >= 0")
        if self.square_tolerance < 0:
            problems.append("square_tolerance must be >= 0")
        if self.min_board_size < 8:
            problems.append(f"min_board_size must be >= 8 (got {self.min_board_size})")
        if self.size_step < 1:
            problems.append("size_step must be >= 1")
        if self.max_candidates < 1:
            problems.append("max_candidates must be >= 1")
        if self.working_size < self.min_board_size:
            problems.append("working_size must be >= min_board_size")
        if not 0 <= self.canny_low <= self.canny_high:
            problems.append("canny thresholds must satisfy 0 <= low <= high")
        if self.classify_workers < 1:
            problems.append("classify_workers must be >= 1")
        if self.side_to_move not in ("w", "b"):
            problems.append(f"side_to_move must be 'w' or 'b' (got {self.side_to_move!r})")
        if self.player_side not in PLAYER_SIDES:
            problems.append(
                f"player_side must be one of {PLAYER_SIDES} (got {self.player_side!r})"
            )
        if problems:
            raise ConfigurationError("; ".join(problems))

    def with_overrides(self, **overrides: Any) -> "PipelineConfig":
        """Return a copy with the non-``None`` overrides applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        unknown = set(changes) - {f.name for f in fields(self)}
        if unknown:
            raise ConfigurationError(f"Unknown config keys: {sorted(unknown)}")
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def load_config(path: str | Path) -> PipelineConfig:
    """Load a JSON config file on top of the defaults."""
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Config file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Config file {path} is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a JSON object")

    config = PipelineConfig().with_overrides(**data)
    log.info("Loaded config from %s (%d overrides)", path, len(data))
    return config
