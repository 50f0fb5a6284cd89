"""Plain-text output helpers for the ``craftrec`` CLI.

File: src/craft_reconciler/ui/render.py

Purpose
- Render status lines, recipe tables, and key/value pairs deterministically.
- Highlight faulted recipes in red when stdout is a terminal, unless
  ``NO_COLOR`` or ``--no-color`` disables it.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

_RED = "\033[31m"
_RESET = "\033[0m"


def _color_allowed(no_color_flag: bool) -> bool:
    if no_color_flag:
        return False
    if os.environ.get("NO_COLOR", ""):
        return False
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


class CLIRenderer:
    """Thin CLI output renderer writing to stdout."""

    def __init__(self, *, no_color: bool = False, verbose: bool = False) -> None:
        self.verbose = verbose
        self._color = _color_allowed(no_color)

    def kv(self, key: str, value: object) -> None:
        print(f"{key}: {value}")

    def text(self, line: str) -> None:
        print(line)

    def section(self, title: str) -> None:
        print(f"\n{title}")

    def error(self, text: str) -> str:
        """Return ``text`` highlighted as an error when color is enabled."""
        return f"{_RED}{text}{_RESET}" if self._color else text

    def table(self, headers: Sequence[str], rows: Sequence[Sequence[str]]) -> None:
        """Print rows as left-aligned columns; cell widths ignore color codes."""

        if not rows:
            return

        widths = [len(header) for header in headers]
        for row in rows:
            for index, cell in enumerate(row[: len(headers)]):
                widths[index] = max(widths[index], len(_strip_color(cell)))

        def _pad(cells: Sequence[str]) -> str:
            parts = []
            for index, width in enumerate(widths):
                cell = cells[index] if index < len(cells) else ""
                parts.append(cell + " " * (width - len(_strip_color(cell))))
            return "  ".join(parts).rstrip()

        print(f"  {_pad(headers)}")
        print(f"  {'  '.join('-' * width for width in widths)}")
        for row in rows:
            print(f"  {_pad(row)}")


def _strip_color(cell: str) -> str:
    return cell.replace(_RED, "").replace(_RESET, "")


def create_renderer(*, no_color: bool = False, verbose: bool = False) -> CLIRenderer:
    return CLIRenderer(no_color=no_color, verbose=verbose)


__all__ = ["CLIRenderer", "create_renderer"]
