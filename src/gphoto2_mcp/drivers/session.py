"""Command session: serialized access to one gphoto2 camera.

A camera behind gphoto2 handles exactly one command at a time; two
overlapping gphoto2 invocations against the same USB device corrupt its
state or drop the link. CommandSession funnels every command from any
number of caller threads through one FIFO queue drained by a single
worker thread, so at most one command is ever in flight, whichever
transport it uses.

Guarantees:
    - Commands are dispatched in the order submit() was called.
    - Exactly one command executes against the camera at any instant.
    - A failing command resolves only its own future; the worker moves
      on to the next command.
    - Every future resolves exactly once, with output or an exception.

Example:
    session = CommandSession(one_shot, interactive, stats=CommandStats())

    # From any thread
    future = session.submit("get-config /main/imgsettings/iso")
    text = future.result()

    # Blocking shortcut
    abilities = session.execute("--abilities", interactive=False)

    session.close()  # fails pending commands, stops worker, kills shell

A command still running when close() is called gets close_timeout
seconds to finish; after that its process is killed so shutdown never
hangs on an unresponsive camera.
"""

from __future__ import annotations

import itertools
import queue
import threading
import time
from collections.abc import Mapping
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from gphoto2_mcp.drivers.errors import ProcessError
from gphoto2_mcp.drivers.types import TransportKind
from gphoto2_mcp.observability import CommandStats, LogContext, get_logger

__all__ = [
    "Command",
    "CommandSession",
    "CommandTransport",
    "PersistentTransport",
]

logger = get_logger(__name__)

SESSION_CLOSED_MESSAGE = "session closed"
DEFAULT_CLOSE_TIMEOUT = 5.0


@runtime_checkable
class CommandTransport(Protocol):  # pragma: no cover
    """Anything that executes one command and returns its text output."""

    def run(self, command_text: str) -> str:
        """Execute a command synchronously."""
        ...

    def terminate(self) -> None:
        """Kill the process a blocked run() is waiting on. Thread-safe."""
        ...


@runtime_checkable
class PersistentTransport(CommandTransport, Protocol):  # pragma: no cover
    """Transport that owns a long-lived resource released by close()."""

    def close(self) -> None:
        """Release the resource. Must be idempotent."""
        ...


@dataclass
class Command:
    """One queued request.

    Attributes:
        text: Command text handed to the transport.
        transport: Which transport executes it.
        sequence: Submission order within the session, starting at 1.
        future: Resolved exactly once by the worker (or by close()).
    """

    text: str
    transport: TransportKind
    sequence: int
    future: Future[str] = field(default_factory=Future)


class CommandSession:
    """FIFO command queue with a single worker thread.

    Thread-safe: submit(), execute() and close() may be called from any
    thread. The transports are run only by the worker thread; close()
    may terminate() them while a command hangs and closes the shell once
    the worker has stopped.
    """

    def __init__(
        self,
        one_shot: CommandTransport,
        interactive: PersistentTransport,
        stats: CommandStats | None = None,
        log_context: Mapping[str, Any] | None = None,
        name: str = "gphoto2-session",
        close_timeout: float | None = DEFAULT_CLOSE_TIMEOUT,
    ) -> None:
        """Create a session and start its worker thread.

        Args:
            one_shot: Executes commands in a fresh process each.
            interactive: Executes commands in the persistent shell.
            stats: Receives one record per dispatched command. A private
                CommandStats is created when None.
            log_context: Structured fields added to every log record the
                worker emits (e.g. camera and port).
            name: Worker thread name.
            close_timeout: Seconds close() lets the command in flight run
                before killing its process. None waits indefinitely.
        """
        self._transports: dict[TransportKind, CommandTransport] = {
            TransportKind.ONE_SHOT: one_shot,
            TransportKind.INTERACTIVE: interactive,
        }
        self._interactive = interactive
        self._stats = stats if stats is not None else CommandStats()
        self._log_context = dict(log_context or {})
        self._close_timeout = close_timeout

        self._queue: queue.Queue[Command | None] = queue.Queue()
        self._sequence = itertools.count(1)
        self._lock = threading.Lock()
        self._closed = False

        self._worker = threading.Thread(target=self._run, name=name, daemon=True)
        self._worker.start()

    @property
    def stats(self) -> CommandStats:
        """Per-transport command statistics."""
        return self._stats

    @property
    def is_closed(self) -> bool:
        """True once close() has been called."""
        return self._closed

    @property
    def pending(self) -> int:
        """Approximate number of commands waiting for dispatch."""
        return self._queue.qsize()

    def submit(self, command_text: str, interactive: bool = True) -> Future[str]:
        """Enqueue a command and return its future.

        Args:
            command_text: Text for the transport (shell command or
                gphoto2 arguments).
            interactive: True for the persistent shell, False for a
                one-shot process.

        Returns:
            Future resolved with the output text or the typed failure.

        Raises:
            ProcessError: If the session has been closed.
        """
        kind = TransportKind.INTERACTIVE if interactive else TransportKind.ONE_SHOT

        with self._lock:
            if self._closed:
                raise ProcessError(SESSION_CLOSED_MESSAGE, details=command_text)
            command = Command(
                text=command_text,
                transport=kind,
                sequence=next(self._sequence),
            )
            self._queue.put(command)

        return command.future

    def execute(
        self,
        command_text: str,
        interactive: bool = True,
        timeout: float | None = None,
    ) -> str:
        """Submit a command and block until it resolves.

        Args:
            command_text: Command text.
            interactive: Transport selector, see submit().
            timeout: Seconds to wait for the result, None for no limit.
                Expiry abandons the wait only; the command still runs.

        Returns:
            Output text.

        Raises:
            CameraError: Whatever the command failed with.
            concurrent.futures.TimeoutError: If timeout expires first.
        """
        return self.submit(command_text, interactive=interactive).result(timeout)

    def _run(self) -> None:
        """Worker loop. Never raises; stops on the None sentinel."""
        with LogContext(**self._log_context):
            logger.debug("Session worker started")
            while True:
                command = self._queue.get()
                if command is None:
                    break
                self._dispatch(command)
            logger.debug("Session worker stopped")

    def _dispatch(self, command: Command) -> None:
        """Execute one command and resolve its future."""
        if not command.future.set_running_or_notify_cancel():
            logger.debug("Skipping cancelled command", sequence=command.sequence)
            return

        transport = self._transports[command.transport]
        logger.debug(
            "Dispatching command",
            sequence=command.sequence,
            transport=command.transport.value,
            command=command.text,
        )

        start = time.perf_counter()
        try:
            output = transport.run(command.text)
        except Exception as e:  # noqa: BLE001
            duration_ms = (time.perf_counter() - start) * 1000
            self._stats.record_command(
                command.transport.value,
                duration_ms=duration_ms,
                success=False,
                error_type=type(e).__name__,
            )
            logger.warning(
                "Command failed",
                sequence=command.sequence,
                transport=command.transport.value,
                command=command.text,
                error_type=type(e).__name__,
                error=str(e),
            )
            command.future.set_exception(e)
        else:
            duration_ms = (time.perf_counter() - start) * 1000
            self._stats.record_command(
                command.transport.value,
                duration_ms=duration_ms,
                success=True,
            )
            logger.debug(
                "Command completed",
                sequence=command.sequence,
                duration_ms=round(duration_ms, 2),
            )
            command.future.set_result(output)

    def close(self) -> None:
        """Shut the session down. Idempotent.

        Commands still waiting are failed with ProcessError("session
        closed"). The command in flight, if any, gets close_timeout
        seconds to finish; after that the transports' processes are
        killed and it fails with ProcessError. The worker is stopped and
        joined, then the interactive shell is terminated.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True

        failed = 0
        while True:
            try:
                command = self._queue.get_nowait()
            except queue.Empty:
                break
            if command is not None and command.future.set_running_or_notify_cancel():
                command.future.set_exception(
                    ProcessError(SESSION_CLOSED_MESSAGE, details=command.text)
                )
                failed += 1

        self._queue.put(None)
        if threading.current_thread() is not self._worker:
            self._join_worker()

        self._interactive.close()
        with LogContext(**self._log_context):
            logger.info("Session closed", failed_pending=failed)

    def _join_worker(self) -> None:
        """Wait for the worker, killing a command that outlives close_timeout."""
        self._worker.join(self._close_timeout)
        while self._worker.is_alive():
            with LogContext(**self._log_context):
                logger.warning(
                    "Command still running at close, killing its process",
                    timeout_s=self._close_timeout,
                )
            for transport in self._transports.values():
                transport.terminate()
            self._worker.join(self._close_timeout)

    def __enter__(self) -> CommandSession:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
