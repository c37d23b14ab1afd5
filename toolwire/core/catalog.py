"""
toolwire.core.catalog - Tool Catalog

Immutable, ordered mapping from tool name to Tool, built from a server's
tools/list response. A reconnect or refresh builds a new catalog rather
than mutating the current one, so readers never observe a half-updated
catalog.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from typing import Any

from toolwire.models import Tool

logger = logging.getLogger(__name__)


class ToolCatalog:
    """
    Tools discovered from a connected server, in the order received.

    Example:
        >>> catalog = ToolCatalog.from_wire([
        ...     {"name": "echo", "inputSchema": {"type": "object"}},
        ... ])
        >>> "echo" in catalog
        True
        >>> catalog.get("missing") is None
        True
    """

    __slots__ = ("_by_name", "_tools")

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        ordered: list[Tool] = []
        by_name: dict[str, Tool] = {}
        for tool in tools:
            if tool.name in by_name:
                logger.warning(
                    f"Duplicate tool '{tool.name}' in catalog, keeping the first",
                    extra={"tool_name": tool.name},
                )
                continue
            by_name[tool.name] = tool
            ordered.append(tool)
        self._tools: tuple[Tool, ...] = tuple(ordered)
        self._by_name: dict[str, Tool] = by_name

    @classmethod
    def empty(cls) -> ToolCatalog:
        return cls()

    @classmethod
    def from_wire(cls, entries: Iterable[dict[str, Any]]) -> ToolCatalog:
        """Build a catalog from raw tools/list entries."""
        return cls(Tool.from_wire(entry) for entry in entries)

    @property
    def tools(self) -> tuple[Tool, ...]:
        return self._tools

    @property
    def names(self) -> list[str]:
        return [tool.name for tool in self._tools]

    def get(self, name: str) -> Tool | None:
        """Look up a tool by name."""
        return self._by_name.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools)

    def __len__(self) -> int:
        return len(self._tools)

    def __bool__(self) -> bool:
        return bool(self._tools)

    def __repr__(self) -> str:
        return f"ToolCatalog({self.names!r})"
