"""Terminal output for the mwaction command line.

Status and errors go to stderr; listings and JSON go to stdout.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from typing import Any

from rich.console import Console
from rich.table import Table

# stderr console for status messages
err_console = Console(stderr=True)

# stdout console for data output (JSON, tables)
out_console = Console()


def success(message: str, *, console: Console | None = None) -> None:
    """Print a success message (green checkmark) to stderr."""
    c = console or err_console
    c.print(f"[green]  ✓ {message}[/green]")


def error(message: str, *, console: Console | None = None) -> None:
    """Print an error message (red X) to stderr."""
    c = console or err_console
    c.print(f"[red]  ✗ {message}[/red]")


def warn(message: str, *, console: Console | None = None) -> None:
    c = console or err_console
    c.print(f"[yellow]  ⚠ {message}[/yellow]")


def info(message: str, *, console: Console | None = None) -> None:
    c = console or err_console
    c.print(f"[dim]  {message}[/dim]")


def records_table(
    title: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
    *,
    console: Console | None = None,
) -> None:
    """Print rows as a table on stdout; ``None`` cells render empty."""
    table = Table(
        title=title,
        title_style="bold",
        header_style="bold cyan",
        border_style="dim",
    )
    for column in columns:
        table.add_column(column)
    for row in rows:
        table.add_row(*("" if cell is None else str(cell) for cell in row))
    (console or out_console).print(table)


def print_json(data: Any, *, console: Console | None = None) -> None:
    """Print *data* as indented JSON on stdout."""
    (console or out_console).print_json(json.dumps(data, default=str))


def print_text(text: str, *, console: Console | None = None) -> None:
    """Print raw text (e.g. wikitext) on stdout without markup or highlighting."""
    (console or out_console).print(text, markup=False, highlight=False, soft_wrap=True)
