"""Tests for terminal rendering helpers."""

from __future__ import annotations

from holloway.cli import renderer
from holloway.services.diff_engine import compute_changes, render_changes


class TestDiffStyles:
    def test_line_styles(self):
        old, new = "a\nb\nc\n", "a\nB\nc\n"
        styles = {
            line: renderer._diff_line_style(line)
            for line in render_changes(compute_changes(old, new), "f.txt", old, new).split("\n")
        }
        assert styles["   2 │ - b"] == "red"
        assert styles["   2 │ + B"] == "green"
        assert styles["   1 │   a"] == "grey62"
        assert styles[" f.txt"] == "cyan"
        assert any(style == "bold cyan" for line, style in styles.items() if line.startswith("@@"))

    def test_render_diff_prints_every_line(self, monkeypatch):
        printed = []
        monkeypatch.setattr(renderer.console, "print", lambda *args, **kwargs: printed.append(args))
        renderer.render_diff("one\ntwo")
        texts = [str(args[0]) for args in printed if args]
        assert texts == ["one", "two"]


def test_stop_thinking_without_spinner():
    assert renderer.stop_thinking() == 0.0
