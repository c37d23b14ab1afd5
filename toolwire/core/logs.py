"""
toolwire.core.logs - Server Log Classification and Publishing

Turns raw diagnostic output from a tool server into leveled LogEvents and
publishes them to subscribers.

Servers are written against different logging conventions, so
classification is tolerant:
1. A JSON log notification carrying an explicit level wins.
2. A leveled text line ("... - ERROR - ...") is matched by level name.
3. Anything else is informational.

Example:
    >>> classify("2024-01-01 10:00:00 - ERROR - disk full").level
    'error'
    >>> bus = LogEventBus()
    >>> bus.subscribe(lambda event: print(event.level, event.message))
    >>> bus.publish(classify("plain output with no markers"))
    info plain output with no markers
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any

from toolwire.models import LogEvent, LogLevel

logger = logging.getLogger(__name__)

LogHandler = Callable[[LogEvent], None]

# Notification methods that carry server log records
LOG_NOTIFICATION_METHODS = frozenset({"log", "notifications/message"})

FIELD_SEPARATOR = " - "

# Checked in priority order against leveled text lines
TEXT_LEVEL_MARKERS: tuple[tuple[str, LogLevel], ...] = (
    ("ERROR", "error"),
    ("WARNING", "warning"),
    ("INFO", "info"),
    ("DEBUG", "debug"),
)

# Syslog-style levels folded onto the four event levels
_LEVEL_ALIASES: dict[str, LogLevel] = {
    "debug": "debug",
    "info": "info",
    "notice": "info",
    "warning": "warning",
    "warn": "warning",
    "error": "error",
    "critical": "error",
    "alert": "error",
    "emergency": "error",
}


def normalize_level(level: Any) -> LogLevel:
    """Map a protocol log level onto debug/info/warning/error."""
    if not isinstance(level, str):
        return "info"
    return _LEVEL_ALIASES.get(level.lower(), "info")


def event_from_notification(params: dict[str, Any], source: str = "notification") -> LogEvent:
    """Build a LogEvent from log notification params (``level`` + ``data``)."""
    data = params.get("data")
    if data is None:
        message = "No message data"
    elif isinstance(data, str):
        message = data
    else:
        message = json.dumps(data, default=str)
    logger_name = params.get("logger")
    if isinstance(logger_name, str) and logger_name:
        message = f"[{logger_name}] {message}"
    return LogEvent(level=normalize_level(params.get("level")), message=message, source=source)


def _parse_notification(line: str) -> dict[str, Any] | None:
    if not line.startswith("{"):
        return None
    try:
        payload = json.loads(line)
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    if payload.get("method") not in LOG_NOTIFICATION_METHODS:
        return None
    params = payload.get("params")
    return params if isinstance(params, dict) else None


def classify(line: str, source: str = "stderr") -> LogEvent:
    """Classify one line of server diagnostic output.

    Args:
        line: A single line of text, without its trailing newline
        source: Where the line came from (recorded on the event)

    Returns:
        LogEvent with the detected level and the line as message
    """
    params = _parse_notification(line.strip())
    if params is not None:
        return event_from_notification(params, source=source)

    level: LogLevel = "info"
    if FIELD_SEPARATOR in line:
        for marker, marker_level in TEXT_LEVEL_MARKERS:
            if marker in line:
                level = marker_level
                break

    return LogEvent(level=level, message=line, source=source)


class LogEventBus:
    """Publish/subscribe channel for LogEvents.

    Handlers are plain callables receiving each event. Queues opened with
    open_queue() receive every event too, for consumers that prefer to
    pull. Handler failures are logged but never propagate to the publisher.

    Example:
        >>> bus = LogEventBus()
        >>> queue = bus.open_queue()
        >>> bus.publish(LogEvent(level="info", message="ready"))
        >>> queue.get_nowait().message
        'ready'
    """

    def __init__(self) -> None:
        self._handlers: list[LogHandler] = []
        self._queues: list[asyncio.Queue[LogEvent]] = []

    def subscribe(self, handler: LogHandler) -> None:
        """Register a handler for every published event."""
        self._handlers.append(handler)

    def unsubscribe(self, handler: LogHandler) -> bool:
        """Unregister a handler. Returns True if found."""
        if handler in self._handlers:
            self._handlers.remove(handler)
            return True
        return False

    def open_queue(self, maxsize: int = 0) -> asyncio.Queue[LogEvent]:
        """Open a queue that receives every event published from now on."""
        queue: asyncio.Queue[LogEvent] = asyncio.Queue(maxsize=maxsize)
        self._queues.append(queue)
        return queue

    def close_queue(self, queue: asyncio.Queue[LogEvent]) -> bool:
        """Stop feeding a queue. Returns True if it was open."""
        if queue in self._queues:
            self._queues.remove(queue)
            return True
        return False

    def publish(self, event: LogEvent) -> None:
        """Deliver an event to every handler and open queue."""
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception:
                handler_name = getattr(handler, "__qualname__", repr(handler))
                logger.error(
                    f"Log handler {handler_name} failed",
                    exc_info=True,
                    extra={"log_handler": handler_name, "event_level": event.level},
                )
        for queue in list(self._queues):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.debug("Log queue full, dropping event", extra={"event_level": event.level})

    def has_subscribers(self) -> bool:
        return bool(self._handlers or self._queues)

    def clear(self) -> None:
        """Remove all handlers and queues."""
        self._handlers.clear()
        self._queues.clear()
