"""
toolwire.core.invoker - Tool Invocation

Validates a requested tool call against the catalog schema, coerces raw
argument values to their declared kinds, and submits the call over the
transport.

Coercion is lenient on purpose: argument values usually arrive as text
typed by a person. An "object" argument that is not valid JSON is passed
as the raw string, since some servers label free-form text as "object".
"""

from __future__ import annotations

import asyncio
import json
import logging
from time import time
from typing import TYPE_CHECKING, Any

from toolwire.exceptions import (
    InvalidArgumentError,
    MissingArgumentError,
    NotConnectedError,
    TransportError,
    UnknownToolError,
)
from toolwire.models import Tool, ToolCallResult

if TYPE_CHECKING:
    from toolwire.core.connection import ConnectionManager

logger = logging.getLogger(__name__)


def _coerce_number(tool: Tool, key: str, value: str) -> int | float:
    text = value.strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        raise InvalidArgumentError(tool.name, key, f"'{value}' is not a number") from None
    if number != number or number in (float("inf"), float("-inf")):
        raise InvalidArgumentError(tool.name, key, f"'{value}' is not a finite number")
    return number


def _coerce_integer(tool: Tool, key: str, value: str) -> int:
    try:
        return int(value.strip())
    except ValueError:
        raise InvalidArgumentError(tool.name, key, f"'{value}' is not an integer") from None


def _coerce_structured(value: str) -> Any:
    try:
        return json.loads(value)
    except ValueError:
        return value


def coerce_value(tool: Tool, key: str, kind: str, value: Any) -> Any:
    """Coerce one present argument value to its declared kind.

    Only text is coerced; values that already have a type pass through.
    """
    if not isinstance(value, str):
        return value
    if kind == "number":
        return _coerce_number(tool, key, value)
    if kind == "integer":
        return _coerce_integer(tool, key, value)
    if kind == "boolean":
        return value.lower() == "true"
    if kind in ("object", "array"):
        return _coerce_structured(value)
    return value


def coerce_arguments(tool: Tool, args: dict[str, Any] | None) -> dict[str, Any]:
    """Validate and coerce invocation arguments against a tool's schema.

    Args:
        tool: Tool whose schema the arguments must satisfy
        args: Raw arguments (missing keys and None values count as absent)

    Returns:
        New argument mapping ready to send

    Raises:
        MissingArgumentError: If a required argument is absent
        InvalidArgumentError: If a numeric argument cannot be parsed

    Example:
        >>> coerce_arguments(tool, {"count": "42", "verbose": "TRUE"})
        {'count': 42, 'verbose': True}
    """
    raw = dict(args or {})
    coerced: dict[str, Any] = {}

    for key, kind in tool.properties.items():
        value = raw.pop(key, None)
        if value is None:
            if tool.is_required(key):
                raise MissingArgumentError(tool.name, key)
            continue
        coerced[key] = coerce_value(tool, key, kind, value)

    # Arguments outside the schema (and required names without a declared property)
    for key, value in raw.items():
        coerced[key] = value

    missing = [key for key in sorted(tool.required) if key not in coerced]
    if missing:
        raise MissingArgumentError(tool.name, missing[0])

    return coerced


class ToolInvoker:
    """
    Dispatches tool calls for a connection.

    Calls are serialized: one tools/call is in flight per invoker at a time.

    Example:
        >>> invoker = ToolInvoker(connection)
        >>> result = await invoker.invoke("add", {"a": "1", "b": "2"})
        >>> result.text
        '3'
    """

    def __init__(self, connection: ConnectionManager) -> None:
        self._connection = connection
        self._lock = asyncio.Lock()

    def prepare(self, name: str, args: dict[str, Any] | None = None) -> tuple[Tool, dict[str, Any]]:
        """Look up a tool and coerce its arguments without sending anything.

        Raises:
            UnknownToolError: If the tool is not in the catalog
            MissingArgumentError: If a required argument is absent
            InvalidArgumentError: If an argument cannot be coerced
        """
        tool = self._connection.catalog.get(name)
        if tool is None:
            raise UnknownToolError(name)
        return tool, coerce_arguments(tool, args)

    async def invoke(self, name: str, args: dict[str, Any] | None = None) -> ToolCallResult:
        """Validate and execute a tool call.

        Args:
            name: Tool name from the catalog
            args: Raw arguments, coerced to the schema's kinds

        Returns:
            ToolCallResult with the server's content

        Raises:
            UnknownToolError: If the tool is not in the catalog
            MissingArgumentError: If a required argument is absent
            InvalidArgumentError: If an argument cannot be coerced
            NotConnectedError: If there is no open transport
            TransportError: If the round-trip fails (tagged with the tool name)
        """
        tool, arguments = self.prepare(name, args)

        async with self._lock:
            transport = self._connection.transport
            if transport is None:
                raise NotConnectedError(f"Cannot call tool '{name}': not connected")

            logger.info(
                f"Calling tool {tool.name}",
                extra={"tool_name": tool.name, "arguments": list(arguments)},
            )
            start_time = time()
            try:
                result = await transport.call_tool(tool.name, arguments)
            except TransportError as e:
                e.tool_name = tool.name
                logger.warning(
                    f"Tool {tool.name} failed: {e}",
                    extra={"tool_name": tool.name, "error": str(e)},
                )
                raise

        call_result = ToolCallResult.from_wire(tool.name, result)
        duration_ms = (time() - start_time) * 1000
        logger.info(
            f"Tool {tool.name} returned {'an error' if call_result.is_error else 'successfully'}",
            extra={
                "tool_name": tool.name,
                "duration_ms": duration_ms,
                "is_error": call_result.is_error,
            },
        )
        return call_result
