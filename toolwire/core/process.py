"""
toolwire.core.process - Tool Server Process Supervision

Owns the child process of a stdio tool server: spawning it with piped
stdin/stdout/stderr, draining stderr line by line, reporting exit once,
and terminating it (SIGTERM, then SIGKILL after a grace period).

Retry policy does not live here. A failed spawn raises SpawnError and the
ConnectionManager decides whether to try again.

Example:
    >>> supervisor = ProcessSupervisor(
    ...     LaunchCommand.parse("python server.py"),
    ...     on_stderr_line=lambda line: print("server:", line),
    ... )
    >>> await supervisor.spawn()
    >>> ...
    >>> await supervisor.terminate()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable

from toolwire.exceptions import SpawnError
from toolwire.models import LaunchCommand

logger = logging.getLogger(__name__)

LineHandler = Callable[[str], None]
ExitHandler = Callable[[int], None]

DEFAULT_GRACE_SECONDS = 0.5
DEFAULT_STREAM_LIMIT = 16 * 1024 * 1024

# How long to wait for a SIGKILLed process to be reaped
_KILL_WAIT_SECONDS = 5.0
# How long to wait for readers to reach EOF after exit
_DRAIN_WAIT_SECONDS = 1.0


class ProcessSupervisor:
    """
    Lifecycle owner for one tool server process.

    Each instance supervises at most one process; a reconnect creates a new
    supervisor. terminate() is idempotent and safe to call at any point,
    including before spawn() or after the process has exited on its own.
    """

    def __init__(
        self,
        command: LaunchCommand,
        *,
        on_stderr_line: LineHandler | None = None,
        on_exit: ExitHandler | None = None,
        grace_seconds: float = DEFAULT_GRACE_SECONDS,
        stream_limit: int = DEFAULT_STREAM_LIMIT,
        env: dict[str, str] | None = None,
        cwd: str | None = None,
    ) -> None:
        self.command = command
        self._on_stderr_line = on_stderr_line
        self._on_exit = on_exit
        self._grace_seconds = grace_seconds
        self._stream_limit = stream_limit
        self._env = env
        self._cwd = cwd

        self._process: asyncio.subprocess.Process | None = None
        self._stderr_task: asyncio.Task[None] | None = None
        self._exit_task: asyncio.Task[None] | None = None
        self._exit_notified = False
        self._spawned = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def returncode(self) -> int | None:
        return self._process.returncode if self._process else None

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    @property
    def stdin(self) -> asyncio.StreamWriter:
        if self._process is None or self._process.stdin is None:
            raise RuntimeError("Process not started or stdin not available")
        return self._process.stdin

    @property
    def stdout(self) -> asyncio.StreamReader:
        if self._process is None or self._process.stdout is None:
            raise RuntimeError("Process not started or stdout not available")
        return self._process.stdout

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def spawn(self) -> None:
        """Start the server process with three piped streams.

        Raises:
            SpawnError: If the executable cannot be started
            RuntimeError: If this supervisor already spawned a process
        """
        if self._spawned:
            raise RuntimeError("ProcessSupervisor already spawned a process")
        self._spawned = True

        try:
            self._process = await asyncio.create_subprocess_exec(
                self.command.executable,
                *self.command.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=self._stream_limit,
                env=self._env,
                cwd=self._cwd,
            )
        except FileNotFoundError as e:
            raise SpawnError(f"Executable not found: '{self.command.executable}'") from e
        except PermissionError as e:
            raise SpawnError(f"Permission denied: '{self.command.executable}'") from e
        except OSError as e:
            raise SpawnError(f"Failed to start '{self.command}': {e}") from e

        logger.info(
            f"Spawned tool server: {self.command}",
            extra={"pid": self._process.pid, "executable": self.command.executable},
        )

        self._stderr_task = asyncio.create_task(self._drain_stderr())
        self._exit_task = asyncio.create_task(self._watch_exit())

    async def wait(self) -> int:
        """Wait for the process to exit and return its exit code."""
        if self._process is None:
            raise RuntimeError("Process not started")
        return await self._process.wait()

    async def terminate(self) -> None:
        """Stop the process: SIGTERM, grace period, then SIGKILL.

        Idempotent. Also waits for the stderr drain to finish so no output
        is lost. If cancelled during the grace period the process is
        killed before the cancellation propagates.
        """
        process = self._process
        if process is not None and process.returncode is None:
            logger.info("Terminating tool server", extra={"pid": process.pid})
            with contextlib.suppress(ProcessLookupError):
                process.terminate()
            try:
                await asyncio.wait_for(process.wait(), timeout=self._grace_seconds)
            except asyncio.CancelledError:
                # Never leave the process behind mid-grace
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                raise
            except TimeoutError:
                logger.warning(
                    "Tool server did not exit after SIGTERM, killing",
                    extra={"pid": process.pid, "grace_seconds": self._grace_seconds},
                )
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                try:
                    await asyncio.wait_for(process.wait(), timeout=_KILL_WAIT_SECONDS)
                except TimeoutError:
                    logger.error(
                        "Tool server did not exit after SIGKILL",
                        extra={"pid": process.pid},
                    )

        await self._finish_task(self._stderr_task)
        await self._finish_task(self._exit_task)

        # The exit watcher may have been cut short while pipes stayed open
        if process is not None and process.returncode is not None:
            self._notify_exit(process.returncode)

    async def _finish_task(self, task: asyncio.Task[None] | None) -> None:
        if task is None or task.done():
            return
        try:
            await asyncio.wait_for(task, timeout=max(self._grace_seconds, _DRAIN_WAIT_SECONDS))
        except TimeoutError:
            # wait_for cancels the task on timeout
            pass
        except asyncio.CancelledError:
            if task.cancelled():
                return
            raise

    # ------------------------------------------------------------------
    # Background readers
    # ------------------------------------------------------------------

    async def _drain_stderr(self) -> None:
        """Read stderr until EOF so the child never blocks on a full pipe."""
        process = self._process
        if process is None or process.stderr is None:
            return
        stream = process.stderr
        while True:
            try:
                chunk = await stream.readline()
            except ValueError:
                # Line longer than the stream limit; the reader already dropped it
                logger.warning("Discarded oversized stderr line from tool server")
                continue
            if not chunk:
                break
            text = chunk.decode("utf-8", errors="replace")
            for line in text.splitlines():
                line = line.strip()
                if line:
                    self._emit_line(line)

    def _emit_line(self, line: str) -> None:
        if self._on_stderr_line is None:
            return
        try:
            self._on_stderr_line(line)
        except Exception:
            logger.error("stderr line handler failed", exc_info=True)

    async def _watch_exit(self) -> None:
        process = self._process
        if process is None:
            return
        returncode = await process.wait()
        self._notify_exit(returncode)

    def _notify_exit(self, returncode: int) -> None:
        if self._exit_notified:
            return
        self._exit_notified = True
        logger.info(
            f"Tool server exited with code {returncode}",
            extra={"pid": self.pid, "returncode": returncode},
        )
        if self._on_exit is None:
            return
        try:
            self._on_exit(returncode)
        except Exception:
            logger.error("exit handler failed", exc_info=True)
