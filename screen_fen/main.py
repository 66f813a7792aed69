"""
Screen FEN – Main Entry Point
=============================

Commands:

  1. **Recognize**        – Locate the board in a screen capture and print
                            the FEN.
  2. **Render**           – Draw a placement with a template style (useful
                            to check a freshly captured style).
  3. **Check-templates**  – Report which template files a style is missing.

Usage examples
--------------

**Recognition**::

    python screen_fen.py recognize \\
        --image screenshots/current_board.png \\
        --templates templates \\
        --style chesscom \\
        --config configs/chesscom.json \\
        --save-debug screenshots/debug

**Rendering**::

    python screen_fen.py render \\
        --templates templates --style chesscom \\
        --placement rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR \\
        --output start.png
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

import cv2

from screen_fen.config import PipelineConfig, load_config
from screen_fen.errors import InvalidPosition, ScreenFenError

log = logging.getLogger("screen_fen")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _build_config(args: argparse.Namespace) -> PipelineConfig:
    config = load_config(args.config) if args.config else PipelineConfig()
    return config.with_overrides(
        side_to_move=getattr(args, "side_to_move", None),
        castling=getattr(args, "castling", None),
        player_side=getattr(args, "player_side", None),
        canonical_size=getattr(args, "canonical_size", None),
        classify_workers=getattr(args, "workers", None),
    )


# ═══════════════════════════════════════════════════════════════════════
# Recognition
# ═══════════════════════════════════════════════════════════════════════

def cmd_recognize(args: argparse.Namespace) -> int:
    """Run the recognition pipeline on an image."""
    from screen_fen.inference.pipeline import BoardRecognitionPipeline

    pipeline = BoardRecognitionPipeline(
        templates_root=args.templates,
        style=args.style,
        config=_build_config(args),
    )
    if args.board_only:
        result = pipeline.recognize_board(args.image)
    else:
        result = pipeline.recognize(args.image)

    if args.save_debug:
        pipeline.save_debug(result, args.save_debug)

    if args.json:
        print(json.dumps({
            "fen": result.fen,
            "placement": result.placement,
            "region": None if result.region is None else {
                "x": result.region.x,
                "y": result.region.y,
                "width": result.region.width,
                "height": result.region.height,
            },
            "edge_density": result.edge_density,
            "timings_ms": {k: round(v, 1) for k, v in result.timings_ms.items()},
        }, indent=2))
        return 0

    print("\n" + "=" * 60)
    print("  BOARD RECOGNITION RESULT")
    print("=" * 60)
    print(f"  FEN            : {result.fen}")
    print(f"  Style          : {result.style}")
    if result.region is not None:
        print(f"  Board region   : x={result.region.x} y={result.region.y} "
              f"size={result.region.width}")
        print(f"  Edge density   : {result.edge_density:.3f}")
    total = sum(result.timings_ms.values())
    print(f"  Latency        : {total:.0f}ms")
    print("=" * 60 + "\n")
    return 0


# ═══════════════════════════════════════════════════════════════════════
# Rendering & template checks
# ═══════════════════════════════════════════════════════════════════════

def cmd_render(args: argparse.Namespace) -> int:
    """Render a placement with a template style."""
    from screen_fen.inference.rendering import render_position
    from screen_fen.models.templates import TemplateLibrary

    config = _build_config(args)
    library = TemplateLibrary(args.templates, cell_size=config.cell_size)
    templates = library.load(args.style)
    try:
        board = render_position(args.placement, templates)
    except ValueError as exc:
        log.error("Bad placement %r: %s", args.placement, exc)
        return 1
    if not cv2.imwrite(args.output, board):
        log.error("Could not write %s", args.output)
        return 1
    log.info("Rendered %s → %s", args.placement, args.output)
    return 0


def cmd_check_templates(args: argparse.Namespace) -> int:
    """Report missing / unreadable template files."""
    from screen_fen.models.templates import TemplateLibrary

    library = TemplateLibrary(args.templates)
    missing = library.missing(args.style)
    if missing:
        print(f"Style '{args.style}' is missing: {', '.join(missing)}")
        return 1
    print(f"Style '{args.style}' is complete (12 templates)")
    return 0


# ═══════════════════════════════════════════════════════════════════════
# CLI
# ═══════════════════════════════════════════════════════════════════════

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="screen_fen",
        description="Read a chess position from a screen capture.",
    )
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", help="Available commands")

    # ── recognize ──
    p_rec = sub.add_parser("recognize", help="Recognize a screen capture")
    p_rec.add_argument("--image", required=True, help="Path to the capture")
    p_rec.add_argument("--templates", required=True,
                       help="Template root directory (one sub-dir per style)")
    p_rec.add_argument("--style", default="chesscom", help="Template style id")
    p_rec.add_argument("--config", default=None, help="JSON config overrides")
    p_rec.add_argument("--side-to-move", default=None, choices=["w", "b"])
    p_rec.add_argument("--castling", default=None, help="Castling field, e.g. KQkq")
    p_rec.add_argument("--player-side", default=None, choices=["white", "black"],
                       help="Colour shown at the bottom of the board")
    p_rec.add_argument("--workers", type=int, default=None,
                       help="Threads used for square classification")
    p_rec.add_argument("--board-only", action="store_true",
                       help="Image is already cropped to the board")
    p_rec.add_argument("--save-debug", default=None,
                       help="Directory for cropped / annotated board images")
    p_rec.add_argument("--json", action="store_true", help="Print JSON output")

    # ── render ──
    p_ren = sub.add_parser("render", help="Render a placement with a style")
    p_ren.add_argument("--templates", required=True)
    p_ren.add_argument("--style", default="chesscom")
    p_ren.add_argument("--placement", required=True, help="FEN placement field")
    p_ren.add_argument("--output", required=True)
    p_ren.add_argument("--config", default=None)
    p_ren.add_argument("--canonical-size", type=int, default=None)

    # ── check-templates ──
    p_chk = sub.add_parser("check-templates", help="List missing template files")
    p_chk.add_argument("--templates", required=True)
    p_chk.add_argument("--style", default="chesscom")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=LOG_FORMAT,
    )

    if args.command is None:
        parser.print_help()
        return 0

    dispatch = {
        "recognize": cmd_recognize,
        "render": cmd_render,
        "check-templates": cmd_check_templates,
    }

    try:
        return dispatch[args.command](args)
    except InvalidPosition as exc:
        log.error("Recognised position is invalid: %s", exc.fen)
        for violation in exc.violations:
            log.error("  %s", violation)
        return 1
    except ScreenFenError as exc:
        log.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
