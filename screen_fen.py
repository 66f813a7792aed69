"""
Root entry point – delegates to the screen_fen package.

Usage:
    python screen_fen.py recognize --image capture.png --templates templates --style chesscom
    python screen_fen.py render --templates templates --placement 8/8/8/8/8/8/8/8 --output out.png
    python screen_fen.py check-templates --templates templates --style lichess
"""

import sys

from screen_fen.main import main

if __name__ == "__main__":
    sys.exit(main())
