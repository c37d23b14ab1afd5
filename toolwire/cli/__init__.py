"""
toolwire.cli - Command-Line Interface

Starts a stdio tool server, lists its tools, and calls them either once
(--call) or from an interactive prompt.

Usage:
    toolwire path/to/server.py                 # uv --directory path/to run path/to/server.py
    toolwire "uv --directory ./weather run"    # main.py is appended
    toolwire --preset memory
    toolwire --command "python server.py" --call add --arg a=1 --arg b=2
    python -m toolwire.cli --preset filesystem --list
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from collections.abc import Callable, Sequence
from typing import Any

from toolwire.cli.console import SessionConsole
from toolwire.exceptions import ConnectionExhaustedError, InvalidCommandError, ToolwireError
from toolwire.models import Tool
from toolwire.session import Session
from toolwire.settings import get_settings

logger = logging.getLogger(__name__)

DEFAULT_SCRIPT = "main.py"
MEMORY_COMMAND = "npx -y @modelcontextprotocol/server-memory"
FILESYSTEM_COMMAND = "npx -y @modelcontextprotocol/server-filesystem"

QUIT_WORDS = frozenset({"quit", "exit", "q"})

Ask = Callable[[str], str]


# ---------------------------------------------------------------------------
# Launch command resolution
# ---------------------------------------------------------------------------


def uv_command(directory: str) -> str:
    return f"uv --directory {directory} run"


def resolve_launch_command(args: argparse.Namespace, cwd: str | None = None) -> str:
    """Turn parsed CLI arguments into a launch command string.

    Priority: --command, then --preset, then the positional target, then
    the default ``uv --directory <cwd> run main.py``.
    """
    cwd = cwd or os.getcwd()

    if args.command:
        return args.command

    if args.preset == "memory":
        return MEMORY_COMMAND
    if args.preset == "filesystem":
        return f"{FILESYSTEM_COMMAND} {cwd}"

    target = args.target
    if not target:
        return f"{uv_command(cwd)} {DEFAULT_SCRIPT}"

    if "--directory" in target:
        # A full uv command without the script
        return f"{target} {DEFAULT_SCRIPT}"

    script_path = os.path.abspath(os.path.join(cwd, target))
    return f"{uv_command(os.path.dirname(script_path))} {script_path}"


def _key_value(raw: str) -> tuple[str, str]:
    key, sep, value = raw.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got '{raw}'")
    return key, value


# ---------------------------------------------------------------------------
# Interactive prompting
# ---------------------------------------------------------------------------


def select_tool(tools: Sequence[Tool], choice: str) -> Tool | None:
    """Pick a tool by 1-based number or by name."""
    choice = choice.strip()
    if choice.isdigit():
        index = int(choice) - 1
        if 0 <= index < len(tools):
            return tools[index]
        return None
    return next((tool for tool in tools if tool.name == choice), None)


async def prompt_tool_arguments(tool: Tool, ask: Ask) -> dict[str, Any]:
    """Ask for each schema argument; blank optional answers are left out.

    Values are returned as text; the invoker coerces them to the declared kinds.
    """
    arguments: dict[str, Any] = {}
    for name, kind in tool.properties.items():
        required = tool.is_required(name)
        label = "required" if required else "optional"
        value = await asyncio.to_thread(ask, f"{name} [{kind}, {label}]: ")
        if value or required:
            arguments[name] = value
    return arguments


async def interactive_loop(session: Session, view: SessionConsole, ask: Ask | None = None) -> None:
    """Select and call tools until the user quits."""
    ask = ask or view.console.input

    while True:
        tools = session.list_tools()
        view.show_catalog(session.catalog)
        try:
            choice = await asyncio.to_thread(ask, f"Select a tool (1-{len(tools)}) or 'quit': ")
        except EOFError:
            break

        if choice.strip().lower() in QUIT_WORDS:
            break

        tool = select_tool(tools, choice)
        if tool is None:
            view.show_error(f"Invalid tool selection: {choice.strip()!r}")
            continue

        try:
            arguments = await prompt_tool_arguments(tool, ask)
            result = await session.invoke(tool.name, arguments)
        except EOFError:
            break
        except ToolwireError as e:
            view.show_error("Tool call failed:", e)
            continue

        view.show_result(result)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def run(args: argparse.Namespace) -> int:
    """Connect, then list / call / prompt. Returns the process exit code."""
    view = SessionConsole()
    command = resolve_launch_command(args)
    view.show_launch(command)

    async with Session() as session:
        session.subscribe(view.show_event)

        try:
            catalog = await session.connect(command, max_attempts=args.attempts)
        except (InvalidCommandError, ConnectionExhaustedError) as e:
            view.show_error("Could not start tool server:", e)
            return 1

        if args.call:
            try:
                result = await session.invoke(args.call, dict(args.arg or []))
            except ToolwireError as e:
                view.show_error("Tool call failed:", e)
                return 1
            view.show_result(result)
            return 1 if result.is_error else 0

        if args.list:
            view.show_catalog(catalog)
            return 0

        await interactive_loop(session, view)

    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="toolwire",
        description="toolwire - Call tools on a stdio MCP server",
    )
    parser.add_argument(
        "target",
        nargs="?",
        help="Server script path, or a full 'uv --directory DIR run' command",
    )
    parser.add_argument("--command", help="Raw launch command, used as-is")
    parser.add_argument(
        "--preset",
        choices=["memory", "filesystem"],
        help="Launch a well-known reference server",
    )
    parser.add_argument("--list", action="store_true", help="List tools and exit")
    parser.add_argument("--call", metavar="TOOL", help="Call one tool and exit")
    parser.add_argument(
        "--arg",
        action="append",
        type=_key_value,
        metavar="KEY=VALUE",
        help="Argument for --call (repeatable)",
    )
    parser.add_argument(
        "--attempts",
        type=int,
        default=None,
        help="Connection attempts (default: TOOLWIRE_MAX_ATTEMPTS or 3)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Client logging level (default: TOOLWIRE_LOG_LEVEL or WARNING)",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.attempts is not None and args.attempts < 1:
        parser.error("--attempts must be at least 1")

    log_level = args.log_level or get_settings().log_level.upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.WARNING),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    try:
        exit_code = asyncio.run(run(args))
    except KeyboardInterrupt:
        exit_code = 130
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
