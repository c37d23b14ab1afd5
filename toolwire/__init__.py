"""
toolwire - Client sessions for stdio tool servers

Launches a Model Context Protocol server as a child process, talks to it
over stdin/stdout, discovers its tools and invokes them, and turns its
stderr chatter into leveled log events.

Example:
    >>> from toolwire import Session
    >>>
    >>> async with Session() as session:
    ...     await session.connect("uv --directory ./weather run main.py")
    ...     result = await session.invoke("get_forecast", {"latitude": "52.5"})
    ...     print(result.text)
"""

__version__ = "0.1.0"

from toolwire.core import ConnectionManager, LogEventBus, ToolCatalog, classify
from toolwire.exceptions import (
    AlreadyConnectingError,
    ConnectionExhaustedError,
    InvalidArgumentError,
    InvalidCommandError,
    MissingArgumentError,
    NotConnectedError,
    SpawnError,
    ToolwireError,
    TransportError,
    UnknownToolError,
)
from toolwire.models import ConnectionState, LaunchCommand, LogEvent, Tool, ToolCallResult
from toolwire.session import Session

__all__ = [
    "AlreadyConnectingError",
    "ConnectionExhaustedError",
    "ConnectionManager",
    "ConnectionState",
    "InvalidArgumentError",
    "InvalidCommandError",
    "LaunchCommand",
    "LogEvent",
    "LogEventBus",
    "MissingArgumentError",
    "NotConnectedError",
    "Session",
    "SpawnError",
    "Tool",
    "ToolCallResult",
    "ToolCatalog",
    "ToolwireError",
    "TransportError",
    "UnknownToolError",
    "__version__",
    "classify",
]
