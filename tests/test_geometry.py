"""Tests for normalisation, grid splitting and orientation."""

import cv2
import numpy as np
import pytest

from screen_fen.errors import MalformedInput
from screen_fen.vision.board_locator import Region
from screen_fen.vision.grid import orient, split
from screen_fen.vision.image_io import load_image, to_gray
from screen_fen.vision.normalizer import normalize


def labelled_board(cell=16):
    """Board whose cell (r, c) is filled with the value r * 8 + c."""
    board = np.zeros((cell * 8, cell * 8), np.uint8)
    for r in range(8):
        for c in range(8):
            board[r * cell:(r + 1) * cell, c * cell:(c + 1) * cell] = r * 8 + c
    return board


class TestNormalize:

    @pytest.mark.parametrize("region", [
        Region(10, 20, 100, 100),
        Region(0, 0, 300, 300),
        Region(50, 5, 210, 200),
    ])
    def test_always_canonical_size(self, region):
        img = np.random.default_rng(0).integers(0, 255, (400, 500, 3), dtype=np.uint8)
        board = normalize(img, region, 512)
        assert board.shape == (512, 512, 3)

    def test_keeps_single_channel(self):
        img = np.zeros((100, 100), np.uint8)
        assert normalize(img, Region(0, 0, 64, 64), 128).shape == (128, 128)

    def test_crop_is_taken_from_region(self):
        img = np.zeros((200, 200), np.uint8)
        img[50:150, 50:150] = 255
        board = normalize(img, Region(50, 50, 100, 100), 64)
        assert board.min() == 255

    def test_region_outside_image(self):
        with pytest.raises(MalformedInput):
            normalize(np.zeros((100, 100), np.uint8), Region(50, 50, 80, 80), 64)

    def test_size_must_split_into_eight(self):
        with pytest.raises(MalformedInput):
            normalize(np.zeros((100, 100), np.uint8), Region(0, 0, 100, 100), 100)


class TestSplit:

    def test_ordering(self):
        grid = split(labelled_board())
        assert len(grid) == 8 and all(len(row) == 8 for row in grid)
        for r in range(8):
            for c in range(8):
                assert grid[r][c].shape == (16, 16)
                assert np.all(grid[r][c] == r * 8 + c)

    def test_converts_colour_once(self):
        board = np.dstack([labelled_board()] * 3)
        grid = split(board)
        assert grid[0][0].ndim == 2
        assert np.all(grid[7][7] == 63)

    def test_rejects_non_square(self):
        with pytest.raises(MalformedInput):
            split(np.zeros((128, 120), np.uint8))

    def test_rejects_indivisible(self):
        with pytest.raises(MalformedInput):
            split(np.zeros((100, 100), np.uint8))


class TestOrient:

    GRID = [[f"{r}{c}" for c in range(8)] for r in range(8)]

    def test_white_is_identity(self):
        assert orient(self.GRID, "white") == self.GRID

    def test_black_rotates_180(self):
        rotated = orient(self.GRID, "black")
        assert rotated[0][0] == "77"
        assert rotated[7][7] == "00"
        assert rotated[0][7] == "70"
        assert orient(rotated, "black") == self.GRID


class TestImageIO:

    def test_rejects_empty(self):
        with pytest.raises(MalformedInput):
            load_image(np.zeros((0, 0), np.uint8))

    def test_rejects_missing_file(self, tmp_path):
        with pytest.raises(MalformedInput):
            load_image(tmp_path / "nope.png")

    def test_float_input_is_clipped(self):
        img = load_image(np.full((10, 10), 300.0))
        assert img.dtype == np.uint8
        assert img.max() == 255

    def test_uint16_is_rescaled(self):
        img = load_image(np.full((10, 10), 0x8000, np.uint16))
        assert img.dtype == np.uint8
        assert np.all(img == 128)

    def test_sixteen_bit_png(self, tmp_path):
        path = tmp_path / "deep.png"
        ramp = np.tile(np.arange(0, 65536, 4096, dtype=np.uint16), (16, 1))
        cv2.imwrite(str(path), ramp)
        img = load_image(path)
        assert img.dtype == np.uint8
        assert img[0, 0] == 0 and img[0, -1] == 240

    def test_unit_float_is_scaled(self):
        img = load_image(np.full((10, 10), 0.5))
        assert img.dtype == np.uint8
        assert np.all(img == 128)

    @pytest.mark.parametrize("channels", [1, 3, 4])
    def test_to_gray(self, channels):
        img = np.full((8, 8, channels), 100, np.uint8)
        gray = to_gray(img)
        assert gray.shape == (8, 8)
        assert np.all(gray == 100)
