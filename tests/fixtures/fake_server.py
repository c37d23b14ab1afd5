"""
Minimal stdio tool server used by the integration tests.

Speaks newline-delimited JSON-RPC on stdin/stdout and writes leveled text
logs to stderr. Behaviour switches:

    --exit-immediately   print an error to stderr and exit with code 3
    --ignore-sigterm     ignore SIGTERM (forces SIGKILL escalation)
    --hang-tools-list    never answer tools/list
    --paginate           split tools/list over two pages
    --linger             keep running for a minute after stdin closes
"""

import json
import signal
import sys
import time

TOOLS = [
    {
        "name": "add",
        "description": "Add two numbers",
        "inputSchema": {
            "type": "object",
            "properties": {"a": {"type": "number"}, "b": {"type": "number"}},
            "required": ["a", "b"],
        },
    },
    {
        "name": "echo",
        "description": "Echo the arguments back as JSON",
        "inputSchema": {
            "type": "object",
            "properties": {
                "text": {"type": "string"},
                "loud": {"type": "boolean"},
                "meta": {"type": "object"},
            },
            "required": ["text"],
        },
    },
    {
        "name": "fail",
        "description": "Always reports a tool-level error",
        "inputSchema": {"type": "object"},
    },
    {
        "name": "mutate",
        "description": "Adds a tool and announces the catalog change",
        "inputSchema": {"type": "object"},
    },
]

EXTRA_TOOL = {
    "name": "extra",
    "description": "Appears after mutate",
    "inputSchema": {"type": "object"},
}


def send(message):
    sys.stdout.write(json.dumps(message) + "\n")
    sys.stdout.flush()


def log(text):
    sys.stderr.write(text + "\n")
    sys.stderr.flush()


def text_result(text, is_error=False):
    return {"content": [{"type": "text", "text": text}], "isError": is_error}


def main():
    flags = set(sys.argv[1:])

    if "--ignore-sigterm" in flags:
        signal.signal(signal.SIGTERM, signal.SIG_IGN)

    log("2024-01-01 10:00:00 - INFO - fake server starting")

    if "--exit-immediately" in flags:
        log("2024-01-01 10:00:00 - ERROR - cannot start")
        sys.exit(3)

    tools = list(TOOLS)

    while True:
        raw = sys.stdin.readline()
        if not raw:
            break
        raw = raw.strip()
        if not raw:
            continue
        message = json.loads(raw)
        method = message.get("method")
        request_id = message.get("id")
        params = message.get("params") or {}

        if request_id is None:
            if method == "notifications/initialized":
                send(
                    {
                        "jsonrpc": "2.0",
                        "method": "notifications/message",
                        "params": {"level": "info", "logger": "fake", "data": "client initialized"},
                    }
                )
            continue

        if method == "initialize":
            result = {
                "protocolVersion": params.get("protocolVersion"),
                "capabilities": {"tools": {"listChanged": True}},
                "serverInfo": {"name": "fake-server", "version": "1.0.0"},
            }
        elif method == "tools/list":
            if "--hang-tools-list" in flags:
                continue
            if "--paginate" in flags:
                if params.get("cursor") == "page-2":
                    result = {"tools": tools[2:]}
                else:
                    result = {"tools": tools[:2], "nextCursor": "page-2"}
            else:
                result = {"tools": tools}
        elif method == "tools/call":
            name = params.get("name")
            arguments = params.get("arguments") or {}
            if name == "add":
                total = arguments["a"] + arguments["b"]
                result = text_result(str(total))
            elif name == "echo":
                result = text_result(json.dumps(arguments, sort_keys=True))
            elif name == "fail":
                log("2024-01-01 10:00:01 - WARNING - fail tool called")
                result = text_result("it failed", is_error=True)
            elif name == "mutate":
                if EXTRA_TOOL not in tools:
                    tools.append(EXTRA_TOOL)
                send({"jsonrpc": "2.0", "method": "notifications/tools/list_changed"})
                result = text_result("mutated")
            else:
                send(
                    {
                        "jsonrpc": "2.0",
                        "id": request_id,
                        "error": {"code": -32602, "message": f"Unknown tool: {name}"},
                    }
                )
                continue
        else:
            send(
                {
                    "jsonrpc": "2.0",
                    "id": request_id,
                    "error": {"code": -32601, "message": f"Method not found: {method}"},
                }
            )
            continue

        send({"jsonrpc": "2.0", "id": request_id, "result": result})

    if "--linger" in flags:
        log("2024-01-01 10:00:02 - INFO - stdin closed, lingering")
        time.sleep(60)

    log("2024-01-01 10:00:02 - INFO - stdin closed, exiting")


if __name__ == "__main__":
    main()
