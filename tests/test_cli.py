"""
Tests for the CLI event rendering and the command-line parser.

Run with:
$ pytest -q
"""

import io

import pytest

from praxis.client.cli import format_event
from praxis.common import (
    AnsiColors,
    color_enabled,
    colored_print,
    colorize,
)
from praxis.main import _build_parser


def test_colorize_wraps_in_reset() -> None:
    """Colored text ends with the reset sequence."""

    assert colorize("hi", AnsiColors.RED) == "\033[91mhi\033[0m"
    assert colorize("hi", AnsiColors.RED, enabled=False) == "hi"


class _Terminal(io.StringIO):
    def isatty(self) -> bool:
        return True


def test_colors_follow_the_output_stream(monkeypatch) -> None:
    """Escape codes go to terminals only, and never when NO_COLOR is set."""

    monkeypatch.delenv("NO_COLOR", raising=False)
    piped = io.StringIO()
    colored_print("plain", AnsiColors.GREEN, file=piped)
    assert piped.getvalue() == "plain\n"

    terminal = _Terminal()
    colored_print("green", AnsiColors.GREEN, end="", file=terminal)
    assert terminal.getvalue() == "\033[92mgreen\033[0m"

    monkeypatch.setenv("NO_COLOR", "1")
    assert color_enabled(_Terminal()) is False


def test_format_stage_events() -> None:
    """Stage events render as short bracketed lines."""

    assert format_event({"type": "thinking", "status": "start"}) == (
        "\n[thinking]\n",
        AnsiColors.GREY,
    )
    text, _ = format_event(
        {"type": "planning", "status": "complete", "todos": [{"title": "Read README"}]}
    )
    assert text == "[plan]\n  1. Read README\n"
    text, _ = format_event({"type": "planning", "status": "complete", "todos": []})
    assert "(no TODOs)" in text


def test_format_tool_events_truncate_results() -> None:
    """Long tool results are cut to a preview."""

    start, color = format_event(
        {
            "type": "tool_call_start",
            "tool_call": {"display_name": "Read file", "arguments": {"path": "a"}},
        }
    )
    assert start == '\n[Read file] {"path": "a"}\n'
    assert color == AnsiColors.MAGENTA

    result, _ = format_event({"type": "tool_call_result", "result": "x" * 1000})
    assert result.endswith("...\n")
    assert len(result) < 400


def test_silent_events_render_nothing() -> None:
    """Events without a terminal representation return None."""

    assert format_event({"type": "context_selection", "status": "start"}) is None
    assert format_event({"type": "tool_call_update"}) is None


def test_parser_defaults_and_choices() -> None:
    """--mode is case-insensitive and restricted to api/cli."""

    args = _build_parser().parse_args(["--mode", "CLI", "--log-level", "DEBUG"])
    assert args.mode == "cli"
    assert args.log_level == "debug"
    with pytest.raises(SystemExit):
        _build_parser().parse_args(["--mode", "web"])
