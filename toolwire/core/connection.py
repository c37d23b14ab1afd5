"""
toolwire.core.connection - Connect/Retry State Machine

Orchestrates ProcessSupervisor, Transport and ToolCatalog for one tool
server.

State machine:
    DISCONNECTED --connect--> CONNECTING --tools listed--> CONNECTED
                                   |
                                   +--attempts exhausted--> FAILED
    CONNECTED / FAILED --disconnect--> DISCONNECTED

The protocol has no readiness signal beyond "the tool list request
succeeds", so each attempt waits a fixed settle delay after spawning and
after starting the handshake, and failed attempts are retried after a
constant backoff.

Example:
    >>> manager = ConnectionManager(log_bus=bus)
    >>> catalog = await manager.connect("uv --directory ./server run main.py")
    >>> manager.state
    <ConnectionState.CONNECTED: 'connected'>
    >>> await manager.disconnect()
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from mcp.types import Implementation

from toolwire.core.catalog import ToolCatalog
from toolwire.core.logs import (
    LOG_NOTIFICATION_METHODS,
    LogEventBus,
    classify,
    event_from_notification,
)
from toolwire.core.process import ProcessSupervisor
from toolwire.core.transport import TOOLS_LIST_CHANGED, Transport
from toolwire.exceptions import (
    AlreadyConnectingError,
    ConnectionExhaustedError,
    NotConnectedError,
)
from toolwire.models import ConnectionState, LaunchCommand, LogEvent
from toolwire.settings import ToolwireSettings, get_settings

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Owns the connection to one tool server and its tool catalog.

    Only one connect sequence runs at a time. disconnect() is unconditional:
    it terminates the process and closes the transport whatever the current
    state, including in the middle of a retry loop.
    """

    def __init__(
        self,
        settings: ToolwireSettings | None = None,
        *,
        log_bus: LogEventBus | None = None,
        env: dict[str, str] | None = None,
        cwd: str | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.log_bus = log_bus or LogEventBus()
        self._env = env
        self._cwd = cwd

        self._state = ConnectionState.DISCONNECTED
        self._catalog = ToolCatalog.empty()
        self._supervisor: ProcessSupervisor | None = None
        self._transport: Transport | None = None
        self._server_info: dict[str, Any] = {}
        self._connect_task: asyncio.Task[Any] | None = None
        self._refresh_task: asyncio.Task[None] | None = None
        self._teardown_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def catalog(self) -> ToolCatalog:
        return self._catalog

    @property
    def transport(self) -> Transport | None:
        return self._transport

    @property
    def supervisor(self) -> ProcessSupervisor | None:
        return self._supervisor

    @property
    def server_info(self) -> dict[str, Any]:
        """The server's initialize result from the current connection."""
        return self._server_info

    # ------------------------------------------------------------------
    # Connect / disconnect
    # ------------------------------------------------------------------

    async def connect(
        self,
        launch_command: str | LaunchCommand,
        max_attempts: int | None = None,
    ) -> ToolCatalog:
        """Start the server and discover its tools, retrying on failure.

        Args:
            launch_command: Raw command line or parsed LaunchCommand
            max_attempts: Attempt limit (defaults to settings.max_attempts)

        Returns:
            The new ToolCatalog

        Raises:
            AlreadyConnectingError: If a connect sequence is already running
            InvalidCommandError: If the command has no arguments (not retried)
            ConnectionExhaustedError: If every attempt failed
        """
        if self._state is ConnectionState.CONNECTING:
            raise AlreadyConnectingError("A connect sequence is already in progress")

        command = (
            launch_command
            if isinstance(launch_command, LaunchCommand)
            else LaunchCommand.parse(launch_command)
        )
        attempts = self.settings.max_attempts if max_attempts is None else max_attempts
        if attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {attempts}")

        self._state = ConnectionState.CONNECTING
        self._connect_task = asyncio.current_task()
        try:
            return await self._connect_with_retries(command, attempts)
        except asyncio.CancelledError:
            logger.info("Connect cancelled, tearing down", extra={"command": str(command)})
            await self._teardown()
            self._catalog = ToolCatalog.empty()
            self._state = ConnectionState.DISCONNECTED
            raise
        finally:
            self._connect_task = None

    async def _connect_with_retries(self, command: LaunchCommand, attempts: int) -> ToolCatalog:
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            logger.info(
                f"Starting tool server (attempt {attempt}/{attempts}): {command}",
                extra={"command": str(command), "attempt": attempt, "max_attempts": attempts},
            )
            try:
                catalog = await self._attempt(command)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                last_error = e
                logger.warning(
                    f"Attempt {attempt}/{attempts} failed: {e}",
                    extra={
                        "command": str(command),
                        "attempt": attempt,
                        "error_type": type(e).__name__,
                        "error": str(e),
                    },
                )
                await self._teardown()

                if attempt >= attempts:
                    break

                logger.info(f"Retrying in {self.settings.retry_backoff_seconds}s")
                await self._delay(self.settings.retry_backoff_seconds)
                continue

            self._catalog = catalog
            self._state = ConnectionState.CONNECTED
            logger.info(
                f"Connected to tool server, {len(catalog)} tools available",
                extra={"command": str(command), "tools": catalog.names},
            )
            return catalog

        self._catalog = ToolCatalog.empty()
        self._state = ConnectionState.FAILED
        logger.error(
            f"Could not connect to tool server after {attempts} attempts",
            extra={"command": str(command), "error": str(last_error)},
        )
        raise ConnectionExhaustedError(attempts, last_error) from last_error

    async def _attempt(self, command: LaunchCommand) -> ToolCatalog:
        """One connection attempt: spawn, settle, handshake, settle, list tools."""
        await self._teardown()

        supervisor = ProcessSupervisor(
            command,
            on_stderr_line=self._handle_stderr_line,
            on_exit=self._handle_exit,
            grace_seconds=self.settings.terminate_grace_seconds,
            stream_limit=self.settings.stream_limit_bytes,
            env=self._env,
            cwd=self._cwd,
        )
        self._supervisor = supervisor
        await supervisor.spawn()

        logger.debug("Waiting for server to initialize")
        await self._delay(self.settings.spawn_settle_seconds)

        transport = Transport(
            supervisor.stdout,
            supervisor.stdin,
            request_timeout=self.settings.request_timeout_seconds,
            on_notification=self._handle_notification,
            client_info=Implementation(
                name=self.settings.client_name, version=self.settings.client_version
            ),
        )
        self._transport = transport
        await transport.open()

        handshake = asyncio.create_task(transport.initialize())
        try:
            logger.debug("Waiting for connection to settle")
            await self._delay(self.settings.handshake_settle_seconds)
            self._server_info = await handshake
        finally:
            if not handshake.done():
                handshake.cancel()

        return await self._list_tools(transport)

    async def _list_tools(self, transport: Transport) -> ToolCatalog:
        """Fetch every page of tools/list."""
        entries: list[dict[str, Any]] = []
        cursor: str | None = None
        while True:
            result = await transport.list_tools(cursor)
            entries.extend(entry for entry in result.get("tools") or [] if isinstance(entry, dict))
            cursor = result.get("nextCursor")
            if not cursor:
                break
        return ToolCatalog.from_wire(entries)

    async def refresh_tools(self) -> ToolCatalog:
        """Re-query the tool list and replace the catalog.

        Raises:
            NotConnectedError: If not connected
            TransportError: If the request fails
        """
        if self._state is not ConnectionState.CONNECTED or self._transport is None:
            raise NotConnectedError("Cannot refresh tools: not connected")
        catalog = await self._list_tools(self._transport)
        self._catalog = catalog
        logger.info(
            f"Tool catalog refreshed, {len(catalog)} tools available",
            extra={"tools": catalog.names},
        )
        return catalog

    async def disconnect(self) -> None:
        """Tear everything down and return to DISCONNECTED. Idempotent."""
        connect_task = self._connect_task
        if connect_task is not None and connect_task is not asyncio.current_task():
            connect_task.cancel()
            # Let the connect sequence unwind; its teardown is joined below
            await asyncio.wait([connect_task])

        await self._teardown()
        self._catalog = ToolCatalog.empty()
        self._server_info = {}
        self._state = ConnectionState.DISCONNECTED
        logger.info("Disconnected from tool server")

    async def _teardown(self) -> None:
        """Close the transport and stop the process. Errors are logged, never raised.

        Runs in its own task, so it finishes even when the caller is
        cancelled. A second caller joins the teardown in progress.
        """
        task = self._teardown_task
        if task is None or task.done():
            task = self._teardown_task = asyncio.create_task(self._release())
        await asyncio.shield(task)

    async def _release(self) -> None:
        refresh_task, self._refresh_task = self._refresh_task, None
        if refresh_task is not None and not refresh_task.done():
            refresh_task.cancel()

        transport, self._transport = self._transport, None
        supervisor, self._supervisor = self._supervisor, None

        if transport is not None:
            try:
                await transport.close()
            except Exception as e:
                logger.warning(
                    f"Error closing stale transport: {e}",
                    exc_info=True,
                    extra={"error": str(e)},
                )

        if supervisor is not None:
            try:
                await supervisor.terminate()
            except Exception as e:
                logger.warning(
                    f"Error terminating stale server process: {e}",
                    exc_info=True,
                    extra={"error": str(e), "pid": supervisor.pid},
                )

    async def _delay(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)

    # ------------------------------------------------------------------
    # Server output
    # ------------------------------------------------------------------

    def _handle_stderr_line(self, line: str) -> None:
        self.log_bus.publish(classify(line))

    def _handle_notification(self, method: str, params: dict[str, Any]) -> None:
        if method in LOG_NOTIFICATION_METHODS:
            self.log_bus.publish(event_from_notification(params))
        elif method == TOOLS_LIST_CHANGED:
            if self._state is ConnectionState.CONNECTED:
                self._schedule_refresh()
        else:
            logger.debug(f"Unhandled server notification {method}", extra={"method": method})

    def _schedule_refresh(self) -> None:
        if self._refresh_task is not None and not self._refresh_task.done():
            return
        self._refresh_task = asyncio.create_task(self._refresh_quietly())

    async def _refresh_quietly(self) -> None:
        try:
            await self.refresh_tools()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.warning("Automatic tool catalog refresh failed", exc_info=True)

    def _handle_exit(self, returncode: int) -> None:
        # Teardown detaches the supervisor before terminating it
        if self._supervisor is None or self._state is not ConnectionState.CONNECTED:
            return
        self.log_bus.publish(
            LogEvent(
                level="warning",
                message=f"Tool server process exited with code {returncode}",
                source="client",
            )
        )
