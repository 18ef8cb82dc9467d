"""gphoto2 transports: one process per command, or one persistent shell.

Both transports build their argument lines from the same persistent
standard arguments (camera model and port selectors), force the child's
LANG so output is parseable, and run the error detector over every
response, because gphoto2 reports most failures as plain text with a
successful exit status.

run() is not thread-safe. Both transports are driven exclusively by the
CommandSession worker thread, which guarantees one command at a time.
terminate() is the exception: any thread may call it to kill the child
a stuck run() is waiting on.

Classes:
    OneShotTransport: Spawn ``gphoto2 <std args> <args>`` per command
    InteractiveTransport: Drive one long-lived ``gphoto2 --shell`` child

Example:
    launcher = SubprocessLauncher()
    std_args = build_standard_args("Canon EOS 700D", "usb:001,004")

    one_shot = OneShotTransport(launcher, std_args)
    abilities = one_shot.run("--abilities")

    shell = InteractiveTransport(launcher, std_args, read_timeout=10.0)
    names = shell.run("list-config")
    shell.close()
"""

from __future__ import annotations

import contextlib
import os
import shlex
import subprocess
import threading
from collections.abc import Sequence
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError

from gphoto2_mcp.drivers.errors import ProcessError, detect_camera_errors
from gphoto2_mcp.drivers.parsing import ShellResponseFramer
from gphoto2_mcp.drivers.process import (
    ChildProcess,
    ProcessLauncher,
    build_environment,
)
from gphoto2_mcp.observability import get_logger

__all__ = [
    "DEFAULT_LOCALE",
    "DEFAULT_PROGRAM",
    "InteractiveTransport",
    "OneShotTransport",
    "build_standard_args",
]

logger = get_logger(__name__)

DEFAULT_PROGRAM = "gphoto2"
DEFAULT_LOCALE = "en_US.UTF-8"
SHELL_FLAG = "--shell"


def build_standard_args(
    camera: str | None = None,
    port: str | None = None,
    quiet: bool = False,
) -> list[str]:
    """Build the persistent arguments that select one camera.

    Args:
        camera: Camera model as listed by ``gphoto2 --auto-detect``.
        port: Port path (e.g. "usb:001,004").
        quiet: Add ``--quiet`` to suppress progress chatter.

    Returns:
        Argument list, empty when no selector is given.

    Example:
        >>> build_standard_args("Canon EOS 700D", "usb:001,004")
        ['--camera', 'Canon EOS 700D', '--port', 'usb:001,004']
    """
    args: list[str] = []
    if camera:
        args.extend(["--camera", camera])
    if port:
        args.extend(["--port", port])
    if quiet:
        args.append("--quiet")
    return args


def _split_command(command_text: str) -> list[str]:
    """Split a command line the way a POSIX shell would."""
    try:
        return shlex.split(command_text)
    except ValueError as e:
        raise ProcessError(f"Malformed command line: {e}", details=command_text) from e


class OneShotTransport:
    """Run each command in a freshly spawned gphoto2 process.

    Used for commands that need no shell state, such as ``--abilities``.
    The full output is read to EOF and the process reaped before the text
    is examined.
    """

    def __init__(
        self,
        launcher: ProcessLauncher,
        standard_args: Sequence[str] = (),
        program: str = DEFAULT_PROGRAM,
        locale: str = DEFAULT_LOCALE,
        timeout: float | None = None,
    ) -> None:
        """Create a one-shot transport.

        Args:
            launcher: Starts processes (real or digital twin).
            standard_args: Arguments placed before every command's own.
            program: Executable name or path.
            locale: LANG value forced on every child.
            timeout: Seconds to wait for the process, None to wait forever.
        """
        self._launcher = launcher
        self._standard_args = list(standard_args)
        self._program = program
        self._env = build_environment(locale)
        self._timeout = timeout
        self._running: ChildProcess | None = None
        self._lock = threading.Lock()

    @property
    def standard_args(self) -> list[str]:
        """Persistent arguments (copy)."""
        return list(self._standard_args)

    def build_args(self, command_text: str) -> list[str]:
        """Full argument vector for one command."""
        return [self._program, *self._standard_args, *_split_command(command_text)]

    def run(self, command_text: str) -> str:
        """Execute one command in a new process.

        Device errors are checked before the exit status so an announced
        failure surfaces as DeviceError with gphoto2's own message.

        Args:
            command_text: gphoto2 arguments, e.g. "--abilities".

        Returns:
            Complete standard output text.

        Raises:
            ProcessError: Spawn failure, timeout, or non-zero exit status.
            DeviceError: Output announces a camera error.
        """
        args = self.build_args(command_text)

        try:
            child = self._launcher.launch(args, self._env)
        except OSError as e:
            raise ProcessError(f"Failed to start {self._program}: {e}") from e

        with self._lock:
            self._running = child
        try:
            output, _ = child.communicate(timeout=self._timeout)
        except subprocess.TimeoutExpired as e:
            child.kill()
            child.wait()
            raise ProcessError(
                f"{self._program} did not finish within {self._timeout}s",
                details=command_text,
            ) from e
        finally:
            with self._lock:
                self._running = None

        output = output or ""
        detect_camera_errors(output)

        if child.returncode:
            raise ProcessError(
                f"{self._program} exited with status {child.returncode}",
                details=output.strip() or None,
                returncode=child.returncode,
            )

        logger.debug(
            "One-shot command finished",
            command=command_text,
            output_chars=len(output),
        )
        return output

    def terminate(self) -> None:
        """Kill the process of the command in flight, if any. Thread-safe.

        The blocked run() then returns with whatever the process printed
        and fails on its exit status.
        """
        with self._lock:
            child = self._running
        if child is not None and child.poll() is None:
            logger.warning("Killing one-shot gphoto2 process")
            child.kill()


class InteractiveTransport:
    """Drive one persistent ``gphoto2 --shell`` child process.

    The child is started lazily by the first command and reused by every
    later one. A child found dead is replaced before the next write, so a
    crashed shell costs at most the command that was in flight.

    Framing:
        Each command is written as one line. Output is read one character
        at a time into a ShellResponseFramer, which drops the banner and
        echo lines and stops at the next prompt. Reading stops right at
        the prompt marker; the rest of that prompt is consumed as the
        first line of the next response.

    Timeouts:
        With read_timeout set, reading happens on a helper thread. When
        the timeout expires the child is killed, which ends the helper's
        read, and the command fails with ProcessError. The next command
        starts a fresh shell.
    """

    def __init__(
        self,
        launcher: ProcessLauncher,
        standard_args: Sequence[str] = (),
        program: str = DEFAULT_PROGRAM,
        locale: str = DEFAULT_LOCALE,
        read_timeout: float | None = None,
    ) -> None:
        """Create an interactive transport without starting the shell.

        Args:
            launcher: Starts processes (real or digital twin).
            standard_args: Arguments passed to the shell at launch.
            program: Executable name or path.
            locale: LANG value forced on the child.
            read_timeout: Seconds to wait for one response, None to wait
                until the prompt or EOF.
        """
        self._launcher = launcher
        self._standard_args = list(standard_args)
        self._program = program
        self._env = build_environment(locale)
        self._read_timeout = read_timeout
        self._child: ChildProcess | None = None
        self._launch_count = 0
        # Guards _child against terminate() from other threads.
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        """True while a live shell child exists."""
        return self._child is not None and self._child.poll() is None

    @property
    def launch_count(self) -> int:
        """Number of shell children started so far."""
        return self._launch_count

    def build_args(self) -> list[str]:
        """Argument vector used to start the shell."""
        return [self._program, SHELL_FLAG, *self._standard_args]

    def _ensure_child(self) -> ChildProcess:
        """Return the live child, starting a new one when needed."""
        if self._child is not None and self._child.poll() is not None:
            logger.warning(
                "gphoto2 shell exited, restarting",
                returncode=self._child.returncode,
            )
            self._discard_child()

        if self._child is None:
            try:
                child = self._launcher.launch(self.build_args(), self._env)
            except OSError as e:
                raise ProcessError(
                    f"Failed to start {self._program} {SHELL_FLAG}: {e}"
                ) from e
            with self._lock:
                self._child = child
            self._launch_count += 1
            logger.info("gphoto2 shell started", launches=self._launch_count)

        return self._child

    def _discard_child(self) -> None:
        """Kill and reap the current child, if any."""
        with self._lock:
            child, self._child = self._child, None
        if child is None:
            return

        if child.poll() is None:
            child.kill()
        child.wait()

        for stream in (child.stdin, child.stdout):
            if stream is not None:
                with contextlib.suppress(OSError, ValueError):
                    stream.close()

    def _read_response(self, child: ChildProcess) -> str:
        """Read one framed response from the child's output.

        Raises:
            ProcessError: If output ends before the terminating prompt.
        """
        stdout = child.stdout
        if stdout is None:
            raise ProcessError("gphoto2 shell has no output pipe")

        framer = ShellResponseFramer()
        while True:
            char = stdout.read(1)
            if not char:
                raise ProcessError(
                    "gphoto2 shell closed its output before the prompt",
                    details=framer.response() or None,
                    returncode=child.poll(),
                )
            if framer.feed(char):
                return framer.response(os.linesep)

    def _read_into(self, child: ChildProcess, result: Future[str]) -> None:
        """Helper-thread body: read one response into a future."""
        try:
            result.set_result(self._read_response(child))
        except Exception as e:  # noqa: BLE001
            result.set_exception(e)

    def _read_with_timeout(self, child: ChildProcess) -> str:
        """Read one response, giving up after read_timeout seconds."""
        result: Future[str] = Future()
        reader = threading.Thread(
            target=self._read_into,
            args=(child, result),
            daemon=True,
            name="gphoto2-shell-reader",
        )
        reader.start()

        try:
            return result.result(timeout=self._read_timeout)
        except FutureTimeoutError as e:
            logger.warning(
                "gphoto2 shell response timed out",
                timeout_s=self._read_timeout,
            )
            self._discard_child()
            reader.join()
            raise ProcessError(
                f"No prompt from gphoto2 shell within {self._read_timeout}s"
            ) from e

    def run(self, command_text: str) -> str:
        """Execute one command in the shell.

        Args:
            command_text: Shell command, e.g. "get-config /main/imgsettings/iso".

        Returns:
            Response lines joined with os.linesep.

        Raises:
            ProcessError: Command text spans several lines (nothing is
                written and the child is kept). Spawn failure, broken
                pipe, EOF before the prompt, or read timeout (the child is
                discarded).
            DeviceError: Response announces a camera error. The child is
                kept.
        """
        if "\n" in command_text or "\r" in command_text:
            raise ProcessError(
                "Shell commands must be a single line", details=command_text
            )

        child = self._ensure_child()

        try:
            if child.stdin is None:
                raise ProcessError("gphoto2 shell has no input pipe")
            child.stdin.write(command_text + "\n")
            child.stdin.flush()

            if self._read_timeout is None:
                output = self._read_response(child)
            else:
                output = self._read_with_timeout(child)
        except OSError as e:
            self._discard_child()
            raise ProcessError(f"Lost connection to gphoto2 shell: {e}") from e
        except ProcessError:
            self._discard_child()
            raise

        detect_camera_errors(output)
        logger.debug(
            "Shell command finished",
            command=command_text,
            output_chars=len(output),
        )
        return output

    def terminate(self) -> None:
        """Kill the shell child without reaping it. Thread-safe.

        A run() blocked on the child's output then sees EOF, fails its
        command with ProcessError and discards the child itself.
        """
        with self._lock:
            child = self._child
        if child is not None and child.poll() is None:
            logger.warning("Killing gphoto2 shell")
            child.kill()

    def close(self) -> None:
        """Terminate the shell child. Safe to call repeatedly."""
        if self._child is not None:
            logger.debug("Stopping gphoto2 shell")
        self._discard_child()
