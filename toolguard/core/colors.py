"""
Terminal styling for Toolguard output.

Escape codes are only emitted when stdout is a terminal and NO_COLOR is not
set. Rendered reports that end up in files, pipes or CI logs stay plain, and
strip_ansi() recovers plain text from anything already styled.
"""

import os
import re
import sys
from typing import Sequence


class Colors:
    RED = '\033[91m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    BLUE = '\033[94m'

    BOLD = '\033[1m'
    DIM = '\033[2m'

    RESET = '\033[0m'


ANSI_PATTERN = re.compile(r'\033\[[0-9;]*m')

# Keyed by Status / Verdict values
STATUS_COLORS = {
    'pass': Colors.GREEN,
    'fail': Colors.RED,
    'error': Colors.YELLOW,
    'skipped': Colors.DIM,
}
VERDICT_COLORS = {
    'healthy': Colors.GREEN,
    'degraded': Colors.YELLOW,
    'broken': Colors.RED,
}


def colors_enabled() -> bool:
    return sys.stdout.isatty() and 'NO_COLOR' not in os.environ


def colorize(text: str, color: str) -> str:
    """Wrap text in an escape code, or return it unchanged when colors are off."""
    if not color or not colors_enabled():
        return text
    return f"{color}{text}{Colors.RESET}"


def strip_ansi(text: str) -> str:
    return ANSI_PATTERN.sub('', text)


def visible_len(text: str) -> int:
    """Length of text as displayed, ignoring escape codes."""
    return len(strip_ansi(text))


def success(text: str) -> str:
    return colorize(text, Colors.GREEN)


def error(text: str) -> str:
    return colorize(text, Colors.RED)


def warning(text: str) -> str:
    return colorize(text, Colors.YELLOW)


def info(text: str) -> str:
    return colorize(text, Colors.BLUE)


def bold(text: str) -> str:
    return colorize(text, Colors.BOLD)


def paint_status(status: str, text: str) -> str:
    """
    Style text by rule status.

    Args:
        status: Status value ("pass", "fail", "error", "skipped")
        text: Text to style

    Returns:
        Styled text (unknown statuses are left plain)
    """
    return colorize(text, STATUS_COLORS.get(status, ''))


def paint_verdict(verdict: str, text: str) -> str:
    return colorize(text, VERDICT_COLORS.get(verdict, ''))


def render_box(lines: Sequence[str], title: str = "", width: int = 60) -> str:
    """
    Frame lines in a rounded box.

    Lines wider than the box are cut and lose their styling. Padding is
    computed on visible width so styled lines stay aligned.

    Args:
        lines: Content lines (may contain escape codes)
        title: Optional title centered in the top border
        width: Total width including borders

    Returns:
        The box as one string
    """
    inner = width - 2
    side = bold('│')

    if title:
        label = f" {title} "
        left = (inner - len(label)) // 2
        top = '╭' + '─' * left + label + '─' * (inner - len(label) - left) + '╮'
    else:
        top = '╭' + '─' * inner + '╮'

    out = [bold(top), side + ' ' * inner + side]
    room = inner - 4
    for line in lines:
        if visible_len(line) > room:
            line = strip_ansi(line)[:room - 3] + "..."
        out.append(f"{side}  {line}{' ' * (inner - 2 - visible_len(line))}{side}")
    out.append(side + ' ' * inner + side)
    out.append(bold('╰' + '─' * inner + '╯'))
    return '\n'.join(out)
