"""
Screen FEN
==========

Reads a chess position from a raw screen capture of any application
window and outputs a FEN string.

Architecture:
    1. Board Location   – edge-density candidate search (no fixed window)
    2. Normalisation    – crop + resize to a 512×512 canonical board
    3. Grid Splitting   – 8×8 grayscale cells
    4. Classification   – variance gate + template matching per style
    5. FEN Encoding     – placement + caller-supplied game-state fields
    6. Validation       – legality check via python-chess
"""

__version__ = "0.1.0"
