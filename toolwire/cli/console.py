"""
toolwire.cli.console - Terminal rendering

Renders server log events, tool catalogs and tool results with rich.
"""

from __future__ import annotations

import json

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from toolwire.core.catalog import ToolCatalog
from toolwire.models import LogEvent, Tool, ToolCallResult

LEVEL_STYLES: dict[str, str] = {
    "debug": "dim",
    "info": "blue",
    "warning": "yellow",
    "error": "red",
}

LEVEL_LABELS: dict[str, str] = {
    "debug": "DEBUG",
    "info": "INFO",
    "warning": "WARN",
    "error": "ERROR",
}


class SessionConsole:
    """
    Terminal view of a tool server session.

    Args:
        console: Rich console (creates new one if not provided)
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def format_event(self, event: LogEvent) -> Text:
        style = LEVEL_STYLES.get(event.level, "")
        text = Text()
        text.append(f"{LEVEL_LABELS.get(event.level, event.level.upper()):<5} ", style=style)
        text.append("[server] ", style="bold " + style if style else "bold")
        text.append(event.message, style=style)
        return text

    def show_launch(self, command: str) -> None:
        self.console.print(f"[cyan]Starting tool server:[/cyan] [yellow]{escape(command)}[/yellow]")

    def show_event(self, event: LogEvent) -> None:
        """Print one log event, colored by level. Usable as a Session log handler."""
        self.console.print(self.format_event(event))

    def show_catalog(self, catalog: ToolCatalog) -> None:
        table = Table(title="Available tools", show_header=True)
        table.add_column("#", style="cyan", justify="right")
        table.add_column("Tool", style="green")
        table.add_column("Arguments")
        table.add_column("Description", style="dim")

        for index, tool in enumerate(catalog, start=1):
            table.add_row(str(index), tool.name, describe_arguments(tool), tool.description or "")

        self.console.print(table)

    def show_result(self, result: ToolCallResult) -> None:
        body = result.text
        if not body:
            body = json.dumps(result.structured_content or result.content, indent=2, default=str)
        style = "red" if result.is_error else "green"
        title = f"{result.tool_name} ({'error' if result.is_error else 'ok'})"
        self.console.print(Panel(Text(body), title=title, border_style=style))

    def show_error(self, message: str, error: BaseException | None = None) -> None:
        text = Text(message, style="bold red")
        if error is not None:
            text.append(f" {error}", style="red")
        self.console.print(text)


def describe_arguments(tool: Tool) -> str:
    """One-line summary like ``a: number*, label: string`` (* = required)."""
    parts = [
        f"{name}: {kind}{'*' if tool.is_required(name) else ''}"
        for name, kind in tool.properties.items()
    ]
    return ", ".join(parts)
