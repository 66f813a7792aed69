"""Tests for the command-line entry point."""

import json

import cv2

from screen_fen.inference.fen_utils import STARTING_PLACEMENT
from screen_fen.inference.rendering import render_position
from screen_fen.main import main
from screen_fen.models.templates import template_filename

from conftest import STYLE


def test_check_templates_complete(templates_root, capsys):
    assert main(["check-templates", "--templates", str(templates_root), "--style", STYLE]) == 0
    assert "complete" in capsys.readouterr().out


def test_check_templates_missing(templates_root, capsys):
    (templates_root / STYLE / template_filename("N")).unlink()
    assert main(["check-templates", "--templates", str(templates_root), "--style", STYLE]) == 1
    assert template_filename("N") in capsys.readouterr().out


def test_recognize_board_only_json(templates_root, template_set, tmp_path, capsys):
    path = tmp_path / "board.png"
    cv2.imwrite(str(path), render_position(STARTING_PLACEMENT, template_set))
    code = main([
        "recognize", "--image", str(path), "--templates", str(templates_root),
        "--style", STYLE, "--board-only", "--json",
    ])
    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["fen"] == STARTING_PLACEMENT + " w KQkq - 0 1"
    assert payload["region"] is None


def test_recognize_missing_image(templates_root, tmp_path):
    code = main([
        "recognize", "--image", str(tmp_path / "none.png"),
        "--templates", str(templates_root), "--style", STYLE,
    ])
    assert code == 1


def test_render(templates_root, tmp_path):
    out = tmp_path / "start.png"
    code = main([
        "render", "--templates", str(templates_root), "--style", STYLE,
        "--placement", STARTING_PLACEMENT, "--output", str(out),
    ])
    assert code == 0
    image = cv2.imread(str(out), cv2.IMREAD_GRAYSCALE)
    assert image.shape == (512, 512)


def test_no_command(capsys):
    assert main([]) == 0


def test_render_bad_placement(templates_root, tmp_path):
    out = tmp_path / "bad.png"
    code = main([
        "render", "--templates", str(templates_root), "--style", STYLE,
        "--placement", "rnbqkbnr/pppppppp/9/8", "--output", str(out),
    ])
    assert code == 1
    assert not out.exists()
