"""Tests for the Rich console factory and theme."""

from __future__ import annotations

from histctl.output.console import HIST_THEME, create_console, get_output, style_for_status


class TestCreateConsole:
    def test_renders_to_buffer(self) -> None:
        console = create_console()
        console.print("hello")
        assert get_output(console) == "hello\n"

    def test_width_override(self) -> None:
        assert create_console(width=40).width == 40

    def test_theme_styles_available(self) -> None:
        console = create_console(no_color=True)
        console.print("[hist.ok]OK[/hist.ok]")
        assert get_output(console) == "OK\n"


class TestStyleForStatus:
    def test_known_status(self) -> None:
        assert style_for_status("applied") == "hist.status.applied"
        assert "hist.status.applied" in HIST_THEME.styles

    def test_unknown_status(self) -> None:
        assert style_for_status("submitted") == ""
