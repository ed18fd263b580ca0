"""User-facing terminal output built on rich."""

import json
from typing import Any, Optional

from rich.console import Console
from rich.markup import escape as _escape
from rich.table import Table


class OutputFormatter:
    """Formats messages, tables and JSON for the terminal.

    Informational messages go to stdout, warnings and errors to stderr.
    ``quiet`` suppresses informational output but never errors.
    """

    def __init__(
        self,
        json_output: bool = False,
        quiet: bool = False,
        console: Optional[Console] = None,
        err_console: Optional[Console] = None,
    ):
        self.json_output = json_output
        self.quiet = quiet
        self.console = console or Console(highlight=False, soft_wrap=True)
        self.err_console = err_console or Console(
            stderr=True, highlight=False, soft_wrap=True
        )

    def print(self, message: str = "") -> None:
        """Print a plain line (log lines, file lists)."""
        self.console.print(message, markup=False)

    def info(self, message: str) -> None:
        if not self.quiet:
            self.console.print(message, markup=False)

    def success(self, message: str) -> None:
        if not self.quiet:
            self.console.print(f"[green]{_escape(message)}[/green]")

    def warning(self, message: str) -> None:
        self.err_console.print(f"[yellow]{_escape(message)}[/yellow]")

    def error(self, message: str) -> None:
        self.err_console.print(f"[red]{_escape(message)}[/red]")

    def output_json(self, data: Any) -> None:
        self.console.print_json(json.dumps(data))

    def output_table(
        self, columns: list[str], rows: list[list[str]], title: Optional[str] = None
    ) -> None:
        """Print rows as a table, or as JSON objects in JSON mode."""
        if self.json_output:
            self.output_json([dict(zip(columns, row)) for row in rows])
            return
        table = Table(title=title)
        for column in columns:
            table.add_column(column)
        for row in rows:
            table.add_row(*row)
        self.console.print(table)
