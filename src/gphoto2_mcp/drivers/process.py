"""Process launch protocols for the gphoto2 transports.

Provides a thin seam over subprocess so the transports can be tested with
scripted child processes, and so the digital twin can stand in for the real
gphoto2 executable.

Protocols:
    ChildProcess: The subset of subprocess.Popen the transports use
    ProcessLauncher: Starts a ChildProcess for an argument list

Classes:
    SubprocessLauncher: Real launcher built on subprocess.Popen

Example:
    # For testing - create mock implementations
    class MockChildProcess:
        def __init__(self, output):
            self.stdin = io.StringIO()
            self.stdout = io.StringIO(output)
            self.returncode = None

        def poll(self):
            return self.returncode

        def communicate(self, timeout=None):
            self.returncode = 0
            return self.stdout.read(), None

        def kill(self):
            self.returncode = -9

        def wait(self, timeout=None):
            return self.returncode

    class MockLauncher:
        def launch(self, args, env):
            return MockChildProcess("Label: ISO Speed\\n")

    transport = OneShotTransport(MockLauncher())

Testing:
    See tests/drivers/test_transports.py for the MockChildProcess and
    MockLauncher doubles.
"""

from __future__ import annotations

import os
import subprocess
from collections.abc import Mapping, Sequence
from typing import IO, Protocol, runtime_checkable

from gphoto2_mcp.observability import get_logger

__all__ = [
    "ChildProcess",
    "ProcessLauncher",
    "SubprocessLauncher",
    "build_environment",
]

logger = get_logger(__name__)


@runtime_checkable
class ChildProcess(Protocol):  # pragma: no cover
    """Protocol for a launched gphoto2 process.

    Matches the subset of subprocess.Popen used by the transports, so a
    Popen opened in text mode satisfies it directly.

    Attributes:
        stdin: Text stream connected to the child's standard input.
        stdout: Text stream carrying the child's standard output (and
            standard error, merged).
        returncode: Exit status once the child has exited, else None.
    """

    stdin: IO[str] | None
    stdout: IO[str] | None
    returncode: int | None

    def poll(self) -> int | None:
        """Return the exit status if the child has exited, else None."""
        ...

    def communicate(
        self, input: str | None = None, timeout: float | None = None
    ) -> tuple[str, str | None]:
        """Read all output until EOF and wait for exit.

        Returns:
            Tuple of (stdout text, stderr text or None).
        """
        ...

    def kill(self) -> None:
        """Terminate the child immediately."""
        ...

    def wait(self, timeout: float | None = None) -> int:
        """Wait for the child to exit and return its status."""
        ...


@runtime_checkable
class ProcessLauncher(Protocol):  # pragma: no cover
    """Protocol for starting gphoto2 processes.

    Implementations: SubprocessLauncher (real executable) and
    DigitalTwinLauncher (in-process simulation).
    """

    def launch(self, args: Sequence[str], env: Mapping[str, str]) -> ChildProcess:
        """Start a process.

        Args:
            args: Full argument vector, program name first.
            env: Complete environment for the child.

        Returns:
            Running ChildProcess with text-mode pipes.

        Raises:
            OSError: If the program cannot be started.
        """
        ...


def build_environment(
    locale: str, base: Mapping[str, str] | None = None
) -> dict[str, str]:
    """Copy an environment with LANG forced to the given locale.

    gphoto2 localizes its labels and messages; forcing LANG keeps the text
    the parsers match on stable regardless of the host's language.

    Args:
        locale: Value for LANG (e.g. "en_US.UTF-8").
        base: Environment to copy, os.environ when None.

    Returns:
        New environment dict.

    Example:
        >>> build_environment("en_US.UTF-8", {"PATH": "/usr/bin"})
        {'PATH': '/usr/bin', 'LANG': 'en_US.UTF-8'}
    """
    env = dict(os.environ if base is None else base)
    env["LANG"] = locale
    return env


class SubprocessLauncher:
    """Launch the real gphoto2 executable with subprocess.Popen.

    Pipes are opened in UTF-8 text mode and standard error is merged into
    standard output, so error announcements gphoto2 writes to stderr reach
    the error detector and a full stderr pipe can never stall the child.
    """

    def launch(
        self, args: Sequence[str], env: Mapping[str, str]
    ) -> subprocess.Popen[str]:
        """Start a gphoto2 process.

        Args:
            args: Full argument vector, program name first.
            env: Complete environment for the child.

        Returns:
            Running Popen with text-mode stdin/stdout pipes.

        Raises:
            OSError: If the executable is missing or not runnable.
        """
        logger.debug("Launching process", argv=" ".join(args))
        return subprocess.Popen(
            list(args),
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            env=dict(env),
            text=True,
            encoding="utf-8",
            errors="replace",
        )
