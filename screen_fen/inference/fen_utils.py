"""
FEN Utilities – Encoding, Parsing & Validation
==============================================

Responsibilities:
  1. Serialise an 8×8 symbol grid into the FEN piece-placement field and
     append the caller-supplied side-to-move / castling / en-passant /
     clock fields verbatim.  Those fields cannot be read from a single
     static image, so they are inputs, never inferred.
  2. Parse a placement field back into a grid.
  3. Validate a full FEN: rank widths, exactly one king per side, at most
     8 pawns per side, no pawns on the back ranks, then a structural check
     with ``python-chess``.
  4. Drop castling letters the piece placement makes impossible (king off
     its home square, rook off its corner).  Rights are only ever removed.
"""

from __future__ import annotations

from typing import List, Sequence, Tuple

import chess

from screen_fen.models.templates import EMPTY, SYMBOL_NAMES

BoardGrid = List[List[str]]

RANK_SEPARATOR: str = "/"
STARTING_PLACEMENT: str = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR"


# ── Encoding ───────────────────────────────────────────────────────────

def encode_placement(grid: Sequence[Sequence[str]]) -> str:
    """Convert an 8×8 grid (row 0 = rank 8, column 0 = file a) to a FEN
    placement field, e.g. ``rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR``.
    """
    if len(grid) != 8 or any(len(row) != 8 for row in grid):
        raise ValueError("Board grid must be 8×8")

    rows: List[str] = []
    for row in grid:
        row_chars: List[str] = []
        empty_count = 0

        for symbol in row:
            if symbol == EMPTY:
                empty_count += 1
                continue
            if symbol not in SYMBOL_NAMES:
                raise ValueError(f"Unknown piece symbol: {symbol!r}")
            if empty_count > 0:
                row_chars.append(str(empty_count))
                empty_count = 0
            row_chars.append(symbol)

        if empty_count > 0:
            row_chars.append(str(empty_count))

        rows.append("".join(row_chars))

    return RANK_SEPARATOR.join(rows)


def encode(
    grid: Sequence[Sequence[str]],
    side_to_move: str = "w",
    castling: str = "KQkq",
    en_passant: str = "-",
    halfmove_clock: int = 0,
    fullmove_number: int = 1,
) -> str:
    """Full FEN: encoded placement followed by the supplied fields."""
    return (
        f"{encode_placement(grid)} {side_to_move} {castling} {en_passant} "
        f"{halfmove_clock} {fullmove_number}"
    )


# ── Parsing ────────────────────────────────────────────────────────────

def decode_placement(placement: str) -> BoardGrid:
    """Parse a placement field (or a full FEN) into an 8×8 grid."""
    ranks = (placement.split() or [""])[0].split(RANK_SEPARATOR)
    if len(ranks) != 8:
        raise ValueError(f"Expected 8 ranks, got {len(ranks)}")

    grid: BoardGrid = []
    for rank_idx, rank in enumerate(ranks):
        row: List[str] = []
        for ch in rank:
            if ch in "12345678":
                row.extend([EMPTY] * int(ch))
            elif ch in SYMBOL_NAMES:
                row.append(ch)
            else:
                raise ValueError(f"Invalid character {ch!r} in rank {8 - rank_idx}")
        if len(row) != 8:
            raise ValueError(f"Rank {8 - rank_idx} has {len(row)} squares (expected 8)")
        grid.append(row)
    return grid


# ── Castling ───────────────────────────────────────────────────────────

_CASTLING_SQUARES = {
    # right: (row, king col, rook col, king, rook)
    "K": (7, 4, 7, "K", "R"),
    "Q": (7, 4, 0, "K", "R"),
    "k": (0, 4, 7, "k", "r"),
    "q": (0, 4, 0, "k", "r"),
}


def restrict_castling(placement: str, castling: str) -> str:
    """Remove castling rights the placement rules out; ``-`` if none remain."""
    grid = decode_placement(placement)
    kept = []
    for right in castling:
        if right not in _CASTLING_SQUARES:
            continue
        row, king_col, rook_col, king, rook = _CASTLING_SQUARES[right]
        if grid[row][king_col] == king and grid[row][rook_col] == rook:
            kept.append(right)
    return "".join(kept) or "-"


# ── Validation ─────────────────────────────────────────────────────────

def validate_fen(fen: str) -> Tuple[bool, List[str]]:
    """Check a full FEN; returns ``(is_valid, list_of_violation_strings)``."""
    violations: List[str] = []
    fields = fen.split()
    if len(fields) != 6:
        violations.append(f"Expected 6 FEN fields, got {len(fields)}")
        return False, violations

    ranks = fields[0].split(RANK_SEPARATOR)
    if len(ranks) != 8:
        violations.append(f"Expected 8 ranks, got {len(ranks)}")
        return False, violations

    all_pieces: List[str] = []
    for rank_idx, rank in enumerate(ranks):
        width = 0
        for ch in rank:
            if ch in "0123456789":
                width += int(ch)
            elif ch in SYMBOL_NAMES:
                width += 1
                all_pieces.append(ch)
            else:
                violations.append(f"Invalid character {ch!r} in rank {8 - rank_idx}")
        if width != 8:
            violations.append(f"Rank {8 - rank_idx} has {width} squares (expected 8)")

    # King counts
    for king, colour in (("K", "White"), ("k", "Black")):
        count = all_pieces.count(king)
        if count != 1:
            violations.append(f"{colour} king count = {count} (expected 1)")

    # Pawn counts
    for pawn, colour in (("P", "White"), ("p", "Black")):
        count = all_pieces.count(pawn)
        if count > 8:
            violations.append(f"{colour} pawn count = {count} (max 8)")

    # Pawns on rank 1 or 8
    if any(ch in ("P", "p") for ch in ranks[0] + ranks[7]):
        violations.append("Pawn found on rank 1 or 8 (illegal)")

    if violations:
        return False, violations

    # Structural / legality check
    try:
        board = chess.Board(fen)
    except ValueError as exc:
        return False, [f"Unparseable FEN: {exc}"]

    # Turn is assumed by the caller, so check on the side not to move is not an error
    status = board.status() & ~chess.STATUS_OPPOSITE_CHECK
    for flag in chess.Status:
        if flag and status & flag:
            violations.append(flag.name)

    return not violations, violations
