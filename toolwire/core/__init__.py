"""
toolwire.core - Session Core

Architecture:
- process.py: ProcessSupervisor (spawn, stderr drain, exit, terminate)
- transport.py: Transport (mcp.ClientSession over the process's stdin/stdout)
- logs.py: classify() and LogEventBus for server diagnostics
- catalog.py: ToolCatalog discovered from tools/list
- invoker.py: ToolInvoker (argument coercion and tools/call)
- connection.py: ConnectionManager (connect/retry state machine)
"""

from .catalog import ToolCatalog
from .connection import ConnectionManager
from .invoker import ToolInvoker, coerce_arguments
from .logs import LogEventBus, classify
from .process import ProcessSupervisor
from .transport import Transport

__all__ = [
    "ConnectionManager",
    "LogEventBus",
    "ProcessSupervisor",
    "ToolCatalog",
    "ToolInvoker",
    "Transport",
    "classify",
    "coerce_arguments",
]
