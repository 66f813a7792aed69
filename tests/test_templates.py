"""Tests for template loading, caching and the TemplateSet invariants."""

import itertools

import numpy as np
import pytest

from conftest import CELL, STYLE, make_templates, write_style
from screen_fen.errors import MissingTemplate
from screen_fen.models.templates import (
    SYMBOL_ORDER,
    TemplateLibrary,
    TemplateSet,
    template_filename,
)

ALL_FILES = sorted(template_filename(s) for s in SYMBOL_ORDER)


class TestNaming:

    def test_filenames_never_differ_only_by_case(self):
        lowered = {name.lower() for name in ALL_FILES}
        assert len(lowered) == 12

    def test_known_names(self):
        assert template_filename("P") == "wp.png"
        assert template_filename("k") == "bk.png"

    def test_unknown_symbol(self):
        with pytest.raises(KeyError):
            template_filename("x")


class TestTemplateSet:

    def test_loaded_set_shape(self, template_set):
        assert len(template_set) == 12
        assert list(template_set) == list(SYMBOL_ORDER)
        assert template_set.cell_size == CELL
        assert template_set.stack.shape == (12, CELL, CELL)
        for symbol in SYMBOL_ORDER:
            assert template_set[symbol].shape == (CELL, CELL)
            assert template_set[symbol].ndim == 2

    def test_is_read_only(self, template_set):
        with pytest.raises(ValueError):
            template_set["K"][0, 0] = 1
        with pytest.raises(TypeError):
            template_set.templates["K"] = np.zeros((CELL, CELL), np.uint8)

    def test_requires_all_twelve(self):
        templates = make_templates()
        del templates["q"]
        with pytest.raises(ValueError):
            TemplateSet(style="x", templates=templates)

    def test_requires_identical_shapes(self):
        templates = make_templates()
        templates["q"] = np.zeros((CELL, CELL + 1), np.uint8)
        with pytest.raises(ValueError):
            TemplateSet(style="x", templates=templates)


class TestTemplateLibrary:

    def test_cached_after_first_load(self, library):
        first = library.load(STYLE)
        second = library.load(STYLE)
        assert first is second
        assert library.disk_loads == 1

    def test_invalidate_forces_reload(self, library):
        first = library.load(STYLE)
        library.invalidate(STYLE)
        second = library.load(STYLE)
        assert first is not second
        assert library.disk_loads == 2

    def test_resizes_to_cell_size(self, tmp_path):
        write_style(tmp_path, "big", cell=128)
        loaded = TemplateLibrary(tmp_path, cell_size=CELL).load("big")
        assert loaded.cell_size == CELL

    def test_color_templates_become_single_channel(self, tmp_path):
        import cv2

        style_dir = tmp_path / "color"
        style_dir.mkdir()
        for symbol, img in make_templates().items():
            cv2.imwrite(str(style_dir / template_filename(symbol)),
                        cv2.cvtColor(img, cv2.COLOR_GRAY2BGRA))
        loaded = TemplateLibrary(tmp_path, cell_size=CELL).load("color")
        assert loaded["K"].ndim == 2

    def test_styles(self, library):
        assert library.styles == [STYLE]

    def test_unknown_style_lists_all_files(self, library):
        with pytest.raises(MissingTemplate) as exc_info:
            library.load("nope")
        assert exc_info.value.missing == ALL_FILES

    @pytest.mark.parametrize("removed", [
        ("wp.png",),
        ("bk.png", "wq.png"),
        ("bb.png", "bn.png", "br.png", "wn.png", "wr.png"),
    ])
    def test_missing_subset_names_exactly_the_missing_files(self, templates_root, removed):
        for name in removed:
            (templates_root / STYLE / name).unlink()
        library = TemplateLibrary(templates_root, cell_size=CELL)

        with pytest.raises(MissingTemplate) as exc_info:
            library.load(STYLE)

        assert exc_info.value.missing == sorted(removed)
        assert library.disk_loads == 0
        # A failed load is not cached as a partial set
        with pytest.raises(MissingTemplate):
            library.load(STYLE)

    def test_every_subset_of_two(self, templates_root):
        library = TemplateLibrary(templates_root, cell_size=CELL)
        style_dir = templates_root / STYLE
        originals = {name: (style_dir / name).read_bytes() for name in ALL_FILES}
        for pair in itertools.islice(itertools.combinations(ALL_FILES, 2), 0, None, 7):
            for name in pair:
                (style_dir / name).unlink()
            assert library.missing(STYLE) == sorted(pair)
            for name in pair:
                (style_dir / name).write_bytes(originals[name])
        assert library.missing(STYLE) == []

    def test_unreadable_file_counts_as_missing(self, templates_root):
        (templates_root / STYLE / "wk.png").write_bytes(b"not an image")
        library = TemplateLibrary(templates_root, cell_size=CELL)
        with pytest.raises(MissingTemplate) as exc_info:
            library.load(STYLE)
        assert exc_info.value.missing == ["wk.png"]
        assert "wk.png" in str(exc_info.value)
