"""Console output helpers for the CLI."""

import json
import sys
from typing import Any, Optional

from rich.console import Console
from rich.markup import escape


class OutputFormatter:
    """Prints status messages, or JSON documents in ``--json`` mode.

    Errors always go to stderr; everything else is suppressed in quiet mode.
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
        if self.quiet or self.json_output:
            return
        self.console.print(escape(message))

    def info(self, message: str) -> None:
        if self.quiet or self.json_output:
            return
        self.console.print(escape(message))

    def success(self, message: str) -> None:
        if self.quiet or self.json_output:
            return
        self.console.print(f"[green]✓[/green] {escape(message)}")

    def warning(self, message: str) -> None:
        if self.quiet or self.json_output:
            return
        self.console.print(f"[yellow]⚠[/yellow] {escape(message)}")

    def error(self, message: str) -> None:
        self.err_console.print(f"[red]✗ Error:[/red] {escape(message)}")

    def output_json(self, data: Any) -> None:
        """Write ``data`` as JSON to stdout (always, even in quiet mode)."""
        sys.stdout.write(json.dumps(data, indent=2, default=str))
        sys.stdout.write("\n")
        sys.stdout.flush()
