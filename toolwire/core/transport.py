"""
toolwire.core.transport - MCP client session over a supervised process

Runs an `mcp.ClientSession` on top of the stdin/stdout pipes that
ProcessSupervisor owns. The SDK's own stdio_client spawns the process
itself, which would take stderr and the exit status away from the
supervisor, so this module does the part of stdio_client that moves
messages:

- stdout lines -> JSONRPCMessage -> SessionMessage on an anyio memory stream
- SessionMessage from the session's write stream -> one JSON line on stdin

Everything else (request ids, response correlation, read timeouts, the
initialize handshake, answering ping) is the session's job.

SDK errors are mapped onto TransportError: McpError keeps its error code,
a closed stream becomes "Unexpected EOF from server" or "Transport closed".

Example:
    >>> transport = Transport(process.stdout, process.stdin, request_timeout=30)
    >>> await transport.open()
    >>> await transport.initialize()
    >>> page = await transport.list_tools()
    >>> await transport.close()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Iterator
from datetime import timedelta
from http import HTTPStatus
from typing import Any

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from mcp import ClientSession, McpError
from mcp.shared.message import SessionMessage
from mcp.types import (
    CONNECTION_CLOSED,
    Implementation,
    JSONRPCMessage,
    JSONRPCNotification,
    LoggingMessageNotification,
    LoggingMessageNotificationParams,
    PaginatedRequestParams,
    ServerNotification,
    ToolListChangedNotification,
)
from pydantic import BaseModel, ValidationError

from toolwire.exceptions import TransportError

logger = logging.getLogger(__name__)

NotificationHandler = Callable[[str, dict[str, Any]], None]

LOG_MESSAGE = "notifications/message"
TOOLS_LIST_CHANGED = "notifications/tools/list_changed"

# Bare "log" notifications predate notifications/message and are not part of
# the SDK's ServerNotification union, so they are delivered before validation.
LEGACY_LOG_METHOD = "log"

# Longest message excerpt quoted in errors and logs
_EXCERPT_CHARS = 200


def _excerpt(text: str) -> str:
    if len(text) <= _EXCERPT_CHARS:
        return text
    return text[:_EXCERPT_CHARS] + "..."


def _to_wire(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(by_alias=True, mode="json", exclude_none=True)


class Transport:
    """
    MCP client session bound to one server process's stdio pipes.

    Results are returned as wire-shaped dicts (camelCase keys). close() is
    idempotent and safe on a transport that was never opened.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        request_timeout: float | None = None,
        on_notification: NotificationHandler | None = None,
        client_info: Implementation | None = None,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._request_timeout = request_timeout
        self._on_notification = on_notification
        self._client_info = client_info

        self._session: ClientSession | None = None
        self._inbound: MemoryObjectSendStream[SessionMessage | Exception] | None = None
        self._runner: asyncio.Task[None] | None = None
        self._started = asyncio.Event()
        self._closed = False
        self._eof = False
        self._write_error: Exception | None = None

    @property
    def is_open(self) -> bool:
        return self._session is not None and not self._closed and not self._eof

    @property
    def is_closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Start the client session and the stdio pumps."""
        if self._closed:
            raise TransportError("Transport is closed")
        if self._runner is None:
            self._runner = asyncio.create_task(self._run())
        await self._started.wait()
        if self._closed:
            raise TransportError("Transport is closed")

    async def close(self) -> None:
        """End the session, close stdin and fail any pending requests."""
        if self._closed:
            return
        self._closed = True

        self._started.set()
        runner, self._runner = self._runner, None
        if runner is None:
            return

        # Ending the inbound stream lets the session fail pending requests
        # and close its write stream, which in turn stops the runner.
        if self._inbound is not None:
            self._inbound.close()
        else:
            runner.cancel()
        try:
            await runner
        except asyncio.CancelledError:
            if not runner.cancelled():
                raise
        finally:
            if not self._writer.is_closing():
                self._writer.close()
                with contextlib.suppress(ConnectionError):
                    await self._writer.wait_closed()

        logger.debug("Transport closed")

    async def _run(self) -> None:
        inbound, read_stream = anyio.create_memory_object_stream[SessionMessage | Exception](0)
        write_stream, outbound = anyio.create_memory_object_stream[SessionMessage](0)
        self._inbound = inbound

        read_timeout = (
            timedelta(seconds=self._request_timeout) if self._request_timeout is not None else None
        )
        async with anyio.create_task_group() as tg:
            tg.start_soon(self._pump_stdout, inbound)
            async with ClientSession(
                read_stream,
                write_stream,
                read_timeout_seconds=read_timeout,
                logging_callback=self._handle_log_message,
                message_handler=self._handle_message,
                client_info=self._client_info,
            ) as session:
                self._session = session
                self._started.set()
                # Returns once the session closes its write stream
                await self._pump_stdin(outbound)
            tg.cancel_scope.cancel()

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def initialize(self) -> dict[str, Any]:
        """Run the MCP handshake and return the server's initialize result."""
        session = self._ensure_usable()
        try:
            result = await self._call("initialize", session.initialize())
        except RuntimeError as e:
            # Raised by the session for an unsupported protocol version
            raise TransportError(str(e)) from e

        logger.info(
            f"Handshake complete with {result.serverInfo.name}",
            extra={
                "server_name": result.serverInfo.name,
                "server_version": result.serverInfo.version,
                "protocol_version": str(result.protocolVersion),
            },
        )
        return _to_wire(result)

    async def list_tools(self, cursor: str | None = None) -> dict[str, Any]:
        """Fetch one page of tools/list."""
        session = self._ensure_usable()
        params = PaginatedRequestParams(cursor=cursor) if cursor else None
        return _to_wire(await self._call("tools/list", session.list_tools(params=params)))

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Send tools/call and return the raw result."""
        session = self._ensure_usable()
        return _to_wire(await self._call("tools/call", session.call_tool(name, arguments)))

    def _ensure_usable(self) -> ClientSession:
        if self._closed:
            raise TransportError("Transport is closed")
        if self._session is None:
            raise TransportError("Transport is not open")
        if self._eof:
            raise TransportError("Unexpected EOF from server")
        return self._session

    async def _call(self, method: str, request: Awaitable[Any]) -> Any:
        with self._translate_errors(method):
            return await request

    @contextlib.contextmanager
    def _translate_errors(self, method: str) -> Iterator[None]:
        try:
            yield
        except McpError as e:
            code = e.error.code
            if code == CONNECTION_CLOSED:
                raise TransportError(self._closed_reason(), code=code) from e
            if code == HTTPStatus.REQUEST_TIMEOUT:
                raise TransportError(
                    f"Request '{method}' timed out after {self._request_timeout}s", code=code
                ) from e
            raise TransportError(f"Server error {code}: {e.error.message}", code=code) from e
        except (anyio.ClosedResourceError, anyio.BrokenResourceError) as e:
            raise TransportError(self._closed_reason()) from e
        except ValidationError as e:
            raise TransportError(f"Invalid '{method}' result from server: {e}") from e

    def _closed_reason(self) -> str:
        if self._write_error is not None:
            return f"Failed to write to server: {self._write_error}"
        if self._closed:
            return "Transport closed"
        return "Unexpected EOF from server"

    # ------------------------------------------------------------------
    # Pumps
    # ------------------------------------------------------------------

    async def _pump_stdout(
        self, inbound: MemoryObjectSendStream[SessionMessage | Exception]
    ) -> None:
        async with inbound:
            try:
                while True:
                    try:
                        line = await self._reader.readline()
                    except ValueError:
                        logger.warning("Discarded oversized message from tool server")
                        continue
                    if not line:
                        break

                    text = line.decode("utf-8", errors="replace").strip()
                    if not text:
                        continue

                    try:
                        message = JSONRPCMessage.model_validate_json(text)
                    except ValidationError:
                        await inbound.send(
                            TransportError(f"Malformed message from server: {_excerpt(text)}")
                        )
                        continue

                    root = message.root
                    if isinstance(root, JSONRPCNotification) and root.method == LEGACY_LOG_METHOD:
                        self._deliver(root.method, root.params or {})
                        continue
                    await inbound.send(SessionMessage(message))
            except anyio.ClosedResourceError:
                # close() ended the inbound stream
                return

            if not self._closed:
                self._eof = True
                logger.info("Tool server closed its output stream")

    async def _pump_stdin(self, outbound: MemoryObjectReceiveStream[SessionMessage]) -> None:
        async with outbound:
            async for session_message in outbound:
                if self._write_error is not None:
                    continue
                payload = session_message.message.model_dump_json(by_alias=True, exclude_none=True)
                try:
                    self._writer.write((payload + "\n").encode("utf-8"))
                    await self._writer.drain()
                except (ConnectionError, RuntimeError) as e:
                    logger.warning(
                        f"Failed to write to server: {e}",
                        extra={"error": str(e)},
                    )
                    self._write_error = e
                    if self._inbound is not None:
                        self._inbound.close()

    # ------------------------------------------------------------------
    # Server-initiated messages
    # ------------------------------------------------------------------

    async def _handle_log_message(self, params: LoggingMessageNotificationParams) -> None:
        self._deliver(LOG_MESSAGE, _to_wire(params))

    async def _handle_message(self, message: Any) -> None:
        if isinstance(message, Exception):
            logger.warning(str(message), extra={"error_type": type(message).__name__})
        elif isinstance(message, ServerNotification):
            if isinstance(message.root, ToolListChangedNotification):
                self._deliver(TOOLS_LIST_CHANGED, {})
            elif not isinstance(message.root, LoggingMessageNotification):
                logger.debug(f"Unhandled server notification {message.root.method}")

    def _deliver(self, method: str, params: dict[str, Any]) -> None:
        if self._on_notification is None:
            logger.debug(f"Ignoring notification {method}")
            return
        try:
            self._on_notification(method, params)
        except Exception:
            logger.error(
                f"Notification handler failed for {method}",
                exc_info=True,
                extra={"method": method},
            )
