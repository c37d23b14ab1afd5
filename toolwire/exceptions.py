"""
toolwire.exceptions - Error taxonomy for tool server sessions

Provides a hierarchy of domain-specific exceptions so callers can tell
configuration mistakes, startup failures, protocol failures and their own
invocation mistakes apart.

Example:
    >>> from toolwire.exceptions import ConnectionExhaustedError
    >>>
    >>> try:
    ...     await session.connect("uv --directory ./server run main.py")
    ... except ConnectionExhaustedError as e:
    ...     logger.error(f"Server never came up: {e.last_error}")
"""

from __future__ import annotations


class ToolwireError(Exception):
    """Base exception for all toolwire errors."""


class InvalidCommandError(ToolwireError, ValueError):
    """
    Raised when a launch command is malformed.

    This is a configuration error and is never retried. It occurs when:
    - The command string is empty
    - No argument follows the executable (e.g. a missing script path)
    """


class SpawnError(ToolwireError):
    """
    Raised when the server process could not be started.

    This can occur due to:
    - Executable not found
    - Permission denied
    - Other OS-level failures while creating the process
    """


class TransportError(ToolwireError):
    """
    Raised on protocol or framing failures on the stdio channel.

    This can occur due to:
    - A malformed message from the server
    - Unexpected EOF (the server exited or closed stdout)
    - A JSON-RPC error response
    - A request timeout
    - Writing to a closed pipe
    """

    def __init__(
        self,
        message: str,
        *,
        code: int | None = None,
        tool_name: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.tool_name = tool_name

    def __str__(self) -> str:
        message = super().__str__()
        if self.tool_name:
            return f"{message} (tool: {self.tool_name})"
        return message


class ConnectionExhaustedError(ToolwireError):
    """Raised when every connection attempt failed. Wraps the last failure."""

    def __init__(self, attempts: int, last_error: BaseException | None) -> None:
        super().__init__(f"Failed to connect after {attempts} attempt(s): {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class AlreadyConnectingError(ToolwireError):
    """Raised when connect() is called while a connect sequence is running."""


class NotConnectedError(ToolwireError):
    """Raised when a tool is invoked without an established connection."""


class UnknownToolError(ToolwireError):
    """Raised when invoking a tool that is not in the current catalog."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Unknown tool: {tool_name}")
        self.tool_name = tool_name


class MissingArgumentError(ToolwireError):
    """Raised when a required schema argument is absent from an invocation."""

    def __init__(self, tool_name: str, argument: str) -> None:
        super().__init__(f"Missing required argument '{argument}' for tool '{tool_name}'")
        self.tool_name = tool_name
        self.argument = argument


class InvalidArgumentError(ToolwireError, ValueError):
    """Raised when an argument value cannot be coerced to its declared kind."""

    def __init__(self, tool_name: str, argument: str, reason: str) -> None:
        super().__init__(f"Invalid argument '{argument}' for tool '{tool_name}': {reason}")
        self.tool_name = tool_name
        self.argument = argument


__all__ = [
    "AlreadyConnectingError",
    "ConnectionExhaustedError",
    "InvalidArgumentError",
    "InvalidCommandError",
    "MissingArgumentError",
    "NotConnectedError",
    "SpawnError",
    "ToolwireError",
    "TransportError",
    "UnknownToolError",
]
