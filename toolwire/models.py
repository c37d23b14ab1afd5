"""
toolwire.models - Session Data Models

Data models shared by the connection manager, the tool invoker and the
log pipeline: launch commands, tool definitions, call results, log events
and the connection state.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from toolwire.exceptions import InvalidCommandError

LogLevel = Literal["debug", "info", "warning", "error"]

# JSON-schema argument types the invoker knows how to coerce.
# Anything else is passed through as an uninterpreted string.
ArgumentKind = Literal["string", "number", "integer", "boolean", "object", "array"]


class ConnectionState(str, Enum):
    """Lifecycle state of a server connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


class LaunchCommand(BaseModel):
    """
    Executable plus ordered arguments used to start a tool server.

    Example:
        >>> cmd = LaunchCommand.parse("npx -y @modelcontextprotocol/server-memory")
        >>> cmd.executable
        'npx'
        >>> cmd.args
        ('-y', '@modelcontextprotocol/server-memory')
    """

    model_config = ConfigDict(frozen=True)

    executable: str = Field(..., min_length=1, description="Program to execute")
    args: tuple[str, ...] = Field(default=(), description="Arguments, in order")

    @classmethod
    def parse(cls, raw: str) -> LaunchCommand:
        """Split a raw command line on whitespace.

        The first token is the executable, the rest are its arguments. At
        least one argument is required, which catches a command given
        without its script path.

        Raises:
            InvalidCommandError: If the command is empty or has no arguments.
        """
        tokens = raw.split()
        if not tokens:
            raise InvalidCommandError("Launch command is empty")
        if len(tokens) < 2:
            raise InvalidCommandError(
                f"Invalid launch command '{raw.strip()}': "
                "provide both the command and its script path or arguments"
            )
        return cls(executable=tokens[0], args=tuple(tokens[1:]))

    @property
    def argv(self) -> list[str]:
        return [self.executable, *self.args]

    def __str__(self) -> str:
        return " ".join(self.argv)


def _property_kind(spec: Any) -> str:
    if not isinstance(spec, dict):
        return "string"
    kind = spec.get("type")
    if isinstance(kind, list):
        kind = next((k for k in kind if k != "null"), None)
    return kind if isinstance(kind, str) else "string"


class Tool(BaseModel):
    """
    Tool exposed by a connected server.

    Built from a catalog entry of the form
    ``{name, description?, inputSchema: {type, properties?, required?}}``.

    Example:
        >>> tool = Tool.from_wire({
        ...     "name": "add",
        ...     "description": "Add two numbers",
        ...     "inputSchema": {
        ...         "type": "object",
        ...         "properties": {"a": {"type": "number"}, "b": {"type": "number"}},
        ...         "required": ["a", "b"],
        ...     },
        ... })
        >>> tool.properties
        {'a': 'number', 'b': 'number'}
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Tool name, unique within a catalog")
    description: str | None = Field(default=None, description="Human-readable description")
    properties: dict[str, str] = Field(
        default_factory=dict, description="Argument name -> declared kind, in schema order"
    )
    required: frozenset[str] = Field(
        default_factory=frozenset, description="Names of required arguments"
    )
    input_schema: dict[str, Any] = Field(
        default_factory=dict, description="Raw input schema as received"
    )

    @classmethod
    def from_wire(cls, entry: dict[str, Any]) -> Tool:
        """Build a Tool from a ``tools/list`` entry."""
        schema = entry.get("inputSchema") or entry.get("input_schema") or {}
        raw_properties = schema.get("properties") or {}
        return cls(
            name=entry["name"],
            description=entry.get("description"),
            properties={key: _property_kind(spec) for key, spec in raw_properties.items()},
            required=frozenset(schema.get("required") or ()),
            input_schema=schema,
        )

    def is_required(self, argument: str) -> bool:
        return argument in self.required


class ToolCallResult(BaseModel):
    """
    Result of a ``tools/call`` round-trip.

    ``content`` is the server's content block list, kept opaque apart from
    the ``text`` convenience accessor.
    """

    tool_name: str
    content: list[dict[str, Any]] = Field(default_factory=list)
    is_error: bool = Field(default=False, description="Server reported a tool-level failure")
    structured_content: dict[str, Any] | None = None

    @property
    def success(self) -> bool:
        return not self.is_error

    @property
    def text(self) -> str:
        """Text blocks joined with newlines."""
        texts = [
            block["text"]
            for block in self.content
            if block.get("type", "text") == "text" and isinstance(block.get("text"), str)
        ]
        return "\n".join(texts)

    @classmethod
    def from_wire(cls, tool_name: str, result: dict[str, Any]) -> ToolCallResult:
        content = result.get("content") or []
        return cls(
            tool_name=tool_name,
            content=[block for block in content if isinstance(block, dict)],
            is_error=bool(result.get("isError", False)),
            structured_content=result.get("structuredContent"),
        )


class LogEvent(BaseModel):
    """
    Leveled diagnostic event derived from server output.

    Example:
        >>> event = LogEvent(level="error", message="disk full")
        >>> event.source
        'stderr'
    """

    level: LogLevel
    message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    source: Literal["stderr", "notification", "client"] = "stderr"


__all__ = [
    "ArgumentKind",
    "ConnectionState",
    "LaunchCommand",
    "LogEvent",
    "LogLevel",
    "Tool",
    "ToolCallResult",
]
