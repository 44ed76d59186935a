"""Shared CLI utilities for SQLBridge."""

from __future__ import annotations

import asyncio
import traceback
from typing import Any, Awaitable

import pandas as pd
from rich.console import Console
from rich.table import Table

# Single console instance reused across CLI modules
console = Console()


def print_exception(message: str, error: Exception, verbose: bool = False) -> None:
    """Render a formatted exception message.

    Args:
        message: Friendly context message to display before the exception.
        error: Original exception instance.
        verbose: When True, render the full traceback for debugging.
    """
    console.print(f"[red]{message}: {error}[/red]")
    if verbose:
        console.print(
            "".join(traceback.format_exception(type(error), error, error.__traceback__)),
            style="dim",
            markup=False,
        )


def run_async(coro: Awaitable[Any]) -> Any:
    """Run a coroutine from a synchronous click command."""
    return asyncio.run(coro)


def _cell(value: Any) -> str:
    if pd.api.types.is_scalar(value) and pd.isna(value):
        return "NULL"
    return str(value)


def frame_table(frame: pd.DataFrame, title: str | None = None) -> Table:
    """Render a DataFrame as a rich table, showing missing values as NULL."""
    table = Table(show_header=True, header_style="bold magenta", title=title)
    for column in frame.columns:
        table.add_column(str(column), style="cyan")
    for row in frame.itertuples(index=False, name=None):
        table.add_row(*(_cell(value) for value in row))
    return table
