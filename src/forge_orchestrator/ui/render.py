"""Output rendering for the forge CLI.

File: src/forge_orchestrator/ui/render.py
Last updated: 2026-10-19

Purpose
- Provide a thin rendering layer for CLI output on top of ``rich``.
- Respect the NO_COLOR environment variable and the --no-color CLI flag.

Functional requirements
- Tables, key/value lines and pass/fail markers go through one ``rich.console.Console``
  so tests can capture output by passing their own console.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table
from rich.text import Text

if TYPE_CHECKING:
    from collections.abc import Sequence


def _color_allowed(no_color_flag: bool) -> bool:
    if no_color_flag:
        return False
    return not os.environ.get("NO_COLOR", "")


class CLIRenderer:
    """Thin CLI output renderer over a ``rich`` console."""

    def __init__(
        self,
        *,
        no_color: bool = False,
        verbose: bool = False,
        console: Console | None = None,
    ) -> None:
        self.verbose = verbose
        color = _color_allowed(no_color)
        self.console = (
            console
            if console is not None
            else Console(no_color=not color, highlight=False, soft_wrap=True)
        )

    def heading(self, text: str) -> None:
        self.console.print(Text(text, style="bold"))

    def kv(self, key: str, value: object) -> None:
        line = Text()
        line.append(f"{key}: ", style="bold")
        line.append(str(value))
        self.console.print(line)

    def text(self, line: str) -> None:
        self.console.print(Text(line))

    def blank(self) -> None:
        self.console.print()

    def section(self, title: str) -> None:
        self.console.print()
        self.console.print(Text(title, style="bold underline"))

    def warning(self, text: str) -> None:
        self.console.print(Text(f"  Warning: {text}", style="yellow"))

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self.console.print(Text(f"  {prefix}{entry}"))

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[object]],
        *,
        title: str | None = None,
    ) -> None:
        """Render a table; nothing is printed for an empty row set."""

        if not rows:
            return
        table = Table(title=title, title_justify="left", show_lines=False)
        for header in headers:
            table.add_column(header, overflow="fold")
        for row in rows:
            cells = [str(cell) if cell is not None else "-" for cell in row]
            cells.extend("" for _ in range(len(headers) - len(cells)))
            table.add_row(*cells[: len(headers)])
        self.console.print(table)

    def ok(self, label: str) -> None:
        line = Text("  OK    ", style="green")
        line.append(label)
        self.console.print(line)

    def fail(self, label: str) -> None:
        line = Text("  FAIL  ", style="red")
        line.append(label)
        self.console.print(line)


def create_renderer(
    *,
    no_color: bool = False,
    verbose: bool = False,
    console: Console | None = None,
) -> CLIRenderer:
    return CLIRenderer(no_color=no_color, verbose=verbose, console=console)


__all__ = ["CLIRenderer", "create_renderer"]
