"""
Terminal output for minipm commands, rendered with Rich.

Everything the user is meant to read (status lines, the install table)
goes through here; diagnostics belong in :mod:`minipm.utils.logger`.
A single :class:`~rich.console.Console` is shared per process and is
rebuilt by :func:`reconfigure_console` after ``--no-color`` changes the
environment.
"""

from __future__ import annotations

import os
import sys
import threading
from typing import Any, Dict, List, Mapping, Optional

from rich.table import Table
from rich.theme import Theme
from rich.console import Console

MINIPM_THEME = Theme(
    {
        "success": "bold green",
        "error": "bold red",
        "warning": "bold yellow",
        "info": "bold cyan",
        "dim": "dim",
        "package": "bold cyan",
    }
)

#: Status kind -> default prefix. The kind doubles as the theme style.
_PREFIXES: Dict[str, str] = {
    "success": "[OK]",
    "error": "[ERROR]",
    "warning": "[WARNING]",
}

#: Lockfile change label -> Rich colour.
_CHANGE_COLORS: Dict[str, str] = {
    "major": "red",
    "minor": "yellow",
    "patch": "green",
    "new": "cyan",
    "removed": "magenta",
    "downgrade": "red",
    "update": "yellow",
}

_console: Optional[Console] = None
_console_lock = threading.Lock()


def _should_use_color() -> bool:
    """Colour only on an interactive stdout with neither NO_COLOR nor CI set."""
    if os.environ.get("NO_COLOR") or os.environ.get("CI"):
        return False
    try:
        return sys.stdout.isatty()
    except (AttributeError, OSError):
        return False


def _get_console() -> Console:
    global _console

    if _console is None:
        with _console_lock:
            if _console is None:
                _console = Console(
                    theme=MINIPM_THEME,
                    no_color=not _should_use_color(),
                    highlight=False,
                )
    return _console


def reconfigure_console() -> None:
    """Forget the shared console; the next print builds a fresh one."""
    global _console
    with _console_lock:
        _console = None


def get_raw_console() -> Console:
    return _get_console()


# ---------------------------------------------------------------------------
# Status lines
# ---------------------------------------------------------------------------


def _emit(kind: str, message: str, prefix: Optional[str]) -> None:
    # Package names and ranges contain "[" and "]"; never treat them as markup.
    label = _PREFIXES[kind] if prefix is None else prefix
    _get_console().print(f"{label} {message}", style=kind, markup=False)


def print_success(message: str, *, prefix: Optional[str] = None) -> None:
    _emit("success", message, prefix)


def print_error(message: str, *, prefix: Optional[str] = None) -> None:
    _emit("error", message, prefix)


def print_warning(message: str, *, prefix: Optional[str] = None) -> None:
    _emit("warning", message, prefix)


def print_info(message: str) -> None:
    """Print a plain line; Rich markup such as ``[dim]`` is honoured."""
    _get_console().print(message)


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------


def _build_table(
    headers: List[str],
    title: Optional[str],
    column_styles: Mapping[str, Mapping[str, Any]],
) -> Table:
    table = Table(title=title, show_header=True, header_style="bold")
    for header in headers:
        options = column_styles.get(header, {})
        table.add_column(
            header,
            style=options.get("style"),
            justify=options.get("justify", "default"),
            no_wrap=options.get("no_wrap", False),
        )
    return table


def print_table(
    data: List[Dict[str, Any]],
    *,
    headers: Optional[List[str]] = None,
    title: Optional[str] = None,
    column_styles: Optional[Dict[str, Dict[str, Any]]] = None,
) -> None:
    """Render row dictionaries as a table; nothing is printed for no rows.

    Args:
        data: One dictionary per row. Missing cells render empty.
        headers: Column order; defaults to the first row's keys.
        title: Table caption.
        column_styles: Per-column ``style``, ``justify`` and ``no_wrap``.
    """
    if not data:
        return

    columns = headers if headers is not None else list(data[0])
    table = _build_table(columns, title, column_styles or {})
    for row in data:
        table.add_row(*(str(row.get(column, "")) for column in columns))

    _get_console().print(table)


def colorize_update_type(update_type: str) -> str:
    """Wrap a change label (``major``, ``new``, ...) in its Rich colour."""
    color = _CHANGE_COLORS.get(update_type.lower())
    if color is None:
        return update_type
    return f"[{color}]{update_type}[/{color}]"
