"""
toolwire.session - Session Facade

The surface exposed to hosts (chat panels, CLIs, agents): connect to a tool
server, list its tools, invoke them, observe its log events, shut down.

Example:
    >>> async with Session() as session:
    ...     session.subscribe(lambda event: print(event.level, event.message))
    ...     await session.connect("npx -y @modelcontextprotocol/server-memory")
    ...     for tool in session.list_tools():
    ...         print(tool.name)
    ...     result = await session.invoke("read_graph", {})
    ...     print(result.text)
"""

from __future__ import annotations

import asyncio
from types import TracebackType
from typing import Any

from toolwire.core.catalog import ToolCatalog
from toolwire.core.connection import ConnectionManager
from toolwire.core.invoker import ToolInvoker
from toolwire.core.logs import LogEventBus, LogHandler
from toolwire.models import ConnectionState, LaunchCommand, LogEvent, Tool, ToolCallResult
from toolwire.settings import ToolwireSettings


class Session:
    """
    One tool server session: a process, its transport and its catalog.

    Session state is not persisted; a new connect() starts from scratch.
    """

    def __init__(
        self,
        settings: ToolwireSettings | None = None,
        *,
        env: dict[str, str] | None = None,
        cwd: str | None = None,
    ) -> None:
        self._log_bus = LogEventBus()
        self._connection = ConnectionManager(settings, log_bus=self._log_bus, env=env, cwd=cwd)
        self._invoker = ToolInvoker(self._connection)

    async def __aenter__(self) -> Session:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.disconnect()

    @property
    def state(self) -> ConnectionState:
        return self._connection.state

    @property
    def catalog(self) -> ToolCatalog:
        return self._connection.catalog

    @property
    def server_info(self) -> dict[str, Any]:
        return self._connection.server_info

    @property
    def connection(self) -> ConnectionManager:
        return self._connection

    async def connect(
        self, command: str | LaunchCommand, max_attempts: int | None = None
    ) -> ToolCatalog:
        """Launch the server and discover its tools. See ConnectionManager.connect."""
        return await self._connection.connect(command, max_attempts=max_attempts)

    def list_tools(self) -> list[Tool]:
        """Tools of the current catalog, in the order the server reported them."""
        return list(self._connection.catalog)

    def get_tool(self, name: str) -> Tool | None:
        return self._connection.catalog.get(name)

    async def invoke(self, name: str, args: dict[str, Any] | None = None) -> ToolCallResult:
        """Validate arguments and call a tool. See ToolInvoker.invoke."""
        return await self._invoker.invoke(name, args)

    def subscribe(self, handler: LogHandler) -> None:
        """Receive every LogEvent from the server."""
        self._log_bus.subscribe(handler)

    def unsubscribe(self, handler: LogHandler) -> bool:
        return self._log_bus.unsubscribe(handler)

    def open_log_queue(self, maxsize: int = 0) -> asyncio.Queue[LogEvent]:
        """Open a queue receiving every LogEvent from now on."""
        return self._log_bus.open_queue(maxsize)

    def close_log_queue(self, queue: asyncio.Queue[LogEvent]) -> bool:
        return self._log_bus.close_queue(queue)

    async def disconnect(self) -> None:
        """Terminate the server and release the transport. Idempotent."""
        await self._connection.disconnect()

    async def cleanup(self) -> None:
        """Alias of disconnect()."""
        await self.disconnect()
