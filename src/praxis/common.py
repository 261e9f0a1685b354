"""Terminal helpers shared by the API banner and the CLI client."""

import os
import sys
from enum import Enum
from typing import (
    Any,
    TextIO,
)

RESET = "\033[0m"


class AnsiColors(Enum):
    """
    ANSI color codes for terminal output.
    """

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[33m"
    BLUE = "\033[94m"
    MAGENTA = "\033[95m"
    GREY = "\033[90m"


def color_enabled(stream: TextIO | None = None) -> bool:
    """
    Whether escape codes should be written to *stream* (stdout by default).

    Colors are off when ``NO_COLOR`` is set to anything non-empty or the stream is not a
    terminal, so piped CLI output stays plain text.
    """
    if os.environ.get("NO_COLOR"):
        return False
    stream = stream if stream is not None else sys.stdout
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


def colorize(text: str, color: AnsiColors, enabled: bool = True) -> str:
    return f"{color.value}{text}{RESET}" if enabled else text


def colored_print(text: str, color: AnsiColors, *args: Any, **kwargs: Any) -> None:
    """
    Print text in color when the target stream supports it.

    Args:
        text: The text to print
        color: The color to use (AnsiColors enum)
        args: Additional positional arguments for print
        kwargs: Additional keyword arguments for print (``file`` selects the stream)
    """
    enabled = color_enabled(kwargs.get("file"))
    print(colorize(text, color, enabled), *args, **kwargs)
