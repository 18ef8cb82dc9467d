"""Unit tests for the one-shot and interactive gphoto2 transports.

Uses scripted child processes (io.StringIO pipes) so argument lines,
framing, error detection and child lifecycle can be checked without
gphoto2 installed.

Example:
    Run all transport tests:
        pdm run pytest tests/drivers/test_transports.py -v
"""

from __future__ import annotations

import io
import os
import subprocess
import threading

import pytest

from gphoto2_mcp.drivers.errors import DeviceError, ProcessError
from gphoto2_mcp.drivers.transports import (
    InteractiveTransport,
    OneShotTransport,
    build_standard_args,
)

STD_ARGS = ["--camera", "Canon EOS 700D", "--port", "usb:001,004"]
PROMPT = "gphoto2: {/} /> "
WAIT = 5.0


class MockChildProcess:
    """Scripted child process with in-memory pipes."""

    def __init__(self, output: str = "", returncode: int = 0):
        self.stdin = io.StringIO()
        self.stdout = io.StringIO(output)
        self.returncode: int | None = None
        self.final_returncode = returncode
        self.killed = False
        self.communicate_timeout: float | None = None

    def poll(self):
        return self.returncode

    def communicate(self, input=None, timeout=None):
        self.communicate_timeout = timeout
        self.returncode = self.final_returncode
        return self.stdout.read(), None

    def kill(self):
        self.killed = True
        self.returncode = -9

    def wait(self, timeout=None):
        if self.returncode is None:
            self.returncode = self.final_returncode
        return self.returncode


class TimeoutChildProcess(MockChildProcess):
    """Child whose communicate() always times out."""

    def communicate(self, input=None, timeout=None):
        raise subprocess.TimeoutExpired(cmd="gphoto2", timeout=timeout)


class BlockingChildProcess(MockChildProcess):
    """Child whose communicate() blocks until the child is killed."""

    def __init__(self):
        super().__init__()
        self.started = threading.Event()
        self._killed = threading.Event()

    def communicate(self, input=None, timeout=None):
        self.started.set()
        self._killed.wait(WAIT)
        return "", None

    def kill(self):
        super().kill()
        self._killed.set()


class BrokenStdin(io.StringIO):
    """stdin of a child that already went away."""

    def write(self, text):
        raise BrokenPipeError(32, "Broken pipe")


class MockLauncher:
    """Launcher handing out prepared children in order."""

    def __init__(self, *children: MockChildProcess, error: Exception | None = None):
        self.children = list(children)
        self.error = error
        self.launches: list[list[str]] = []
        self.envs: list[dict[str, str]] = []

    def launch(self, args, env):
        self.launches.append(list(args))
        self.envs.append(dict(env))
        if self.error is not None:
            raise self.error
        return self.children.pop(0)


def shell_transcript(*responses: tuple[str, list[str]]) -> str:
    """Render what gphoto2 --shell prints for a series of commands."""
    text = PROMPT
    for command, lines in responses:
        text += "\n" + command + "\n"
        text += "".join(line + "\n" for line in lines)
        text += PROMPT
    return text


class TestBuildStandardArgs:
    """Tests for build_standard_args()."""

    def test_camera_and_port(self):
        assert build_standard_args("Canon EOS 700D", "usb:001,004") == STD_ARGS

    def test_quiet(self):
        assert build_standard_args(quiet=True) == ["--quiet"]

    def test_nothing_selected(self):
        assert build_standard_args() == []

    def test_port_only(self):
        assert build_standard_args(port="usb:001,004") == ["--port", "usb:001,004"]


class TestOneShotTransport:
    """Tests for OneShotTransport."""

    def test_argument_line_and_environment(self):
        """Verifies program, standard args, command args and LANG.

        Arrangement:
        1. Launcher with one successful child.
        2. Transport with camera/port standard args and a custom locale.

        Action:
        Runs "--abilities".

        Assertion Strategy:
        - Launched argv is program + standard args + command args.
        - The child's LANG is the configured locale.
        - Output is returned unchanged.
        """
        launcher = MockLauncher(MockChildProcess("USB support : yes\n"))
        transport = OneShotTransport(launcher, STD_ARGS, locale="C.UTF-8")

        output = transport.run("--abilities")

        assert launcher.launches == [["gphoto2", *STD_ARGS, "--abilities"]]
        assert launcher.envs[0]["LANG"] == "C.UTF-8"
        assert output == "USB support : yes\n"

    def test_default_locale(self):
        launcher = MockLauncher(MockChildProcess())

        OneShotTransport(launcher).run("--version")

        assert launcher.envs[0]["LANG"] == "en_US.UTF-8"

    def test_command_split_like_a_shell(self):
        """Quoted arguments survive as single argv entries."""
        launcher = MockLauncher(MockChildProcess())
        transport = OneShotTransport(launcher, program="/usr/bin/gphoto2")

        transport.run("--set-config '/main/settings/ownername=Jane Doe'")

        assert launcher.launches[0] == [
            "/usr/bin/gphoto2",
            "--set-config",
            "/main/settings/ownername=Jane Doe",
        ]

    def test_standard_args_is_a_copy(self):
        transport = OneShotTransport(MockLauncher(), STD_ARGS)

        transport.standard_args.append("--quiet")

        assert transport.standard_args == STD_ARGS

    def test_malformed_command_not_launched(self):
        launcher = MockLauncher(MockChildProcess())

        with pytest.raises(ProcessError, match="Malformed"):
            OneShotTransport(launcher).run("--get-config 'unterminated")

        assert launcher.launches == []

    def test_nonzero_exit(self):
        """A failing exit status without announcements is a ProcessError."""
        launcher = MockLauncher(MockChildProcess("usage: gphoto2\n", returncode=2))

        with pytest.raises(ProcessError) as exc_info:
            OneShotTransport(launcher).run("--bogus")

        assert exc_info.value.returncode == 2
        assert exc_info.value.details == "usage: gphoto2"

    def test_device_error_takes_precedence(self):
        """Announced errors surface as DeviceError even with a bad exit."""
        output = "*** Error (-105: 'Unknown model') ***\n"
        launcher = MockLauncher(MockChildProcess(output, returncode=1))

        with pytest.raises(DeviceError) as exc_info:
            OneShotTransport(launcher, STD_ARGS).run("--abilities")

        assert exc_info.value.details == "Unknown model"

    def test_device_error_with_zero_exit(self):
        output = "*** Error (-1): 'Could not detect any camera' ***\n"
        launcher = MockLauncher(MockChildProcess(output))

        with pytest.raises(DeviceError):
            OneShotTransport(launcher).run("--abilities")

    def test_spawn_failure(self):
        launcher = MockLauncher(error=FileNotFoundError(2, "No such file"))

        with pytest.raises(ProcessError, match="Failed to start gphoto2"):
            OneShotTransport(launcher).run("--abilities")

    def test_timeout_kills_child(self):
        """Verifies a hung one-shot process is killed and reported.

        Arrangement:
        1. Child whose communicate() raises TimeoutExpired.

        Action:
        Runs a command with timeout=5.

        Assertion Strategy:
        ProcessError is raised and the child was killed.
        """
        child = TimeoutChildProcess()
        transport = OneShotTransport(MockLauncher(child), timeout=5.0)

        with pytest.raises(ProcessError, match="did not finish"):
            transport.run("--abilities")

        assert child.killed

    def test_timeout_passed_to_communicate(self):
        child = MockChildProcess()

        OneShotTransport(MockLauncher(child), timeout=3.0).run("--version")

        assert child.communicate_timeout == 3.0

    def test_none_output_treated_as_empty(self):
        child = MockChildProcess()
        child.communicate = lambda input=None, timeout=None: (None, None)
        child.returncode = 0

        assert OneShotTransport(MockLauncher(child)).run("--version") == ""


class TestInteractiveTransport:
    """Tests for InteractiveTransport."""

    def test_not_started_until_first_command(self):
        launcher = MockLauncher()
        transport = InteractiveTransport(launcher, STD_ARGS)

        assert not transport.is_running
        assert transport.launch_count == 0
        assert launcher.launches == []

    def test_shell_argument_line(self):
        transport = InteractiveTransport(MockLauncher(), STD_ARGS)

        assert transport.build_args() == ["gphoto2", "--shell", *STD_ARGS]

    def test_command_and_response(self):
        """Verifies one command is written and its body framed.

        Arrangement:
        1. Child scripted with the banner, echo, two names and prompt.

        Action:
        Runs "list-config".

        Assertion Strategy:
        - The command line went to stdin with a newline.
        - The banner and echo are not part of the output.
        - Lines are joined with os.linesep.
        """
        child = MockChildProcess(
            shell_transcript(("list-config", ["/main/a", "/main/b"]))
        )
        launcher = MockLauncher(child)
        transport = InteractiveTransport(launcher, STD_ARGS, locale="C.UTF-8")

        output = transport.run("list-config")

        assert output == "/main/a" + os.linesep + "/main/b"
        assert child.stdin.getvalue() == "list-config\n"
        assert launcher.launches == [["gphoto2", "--shell", *STD_ARGS]]
        assert launcher.envs[0]["LANG"] == "C.UTF-8"

    def test_child_reused_across_commands(self):
        """Verifies later commands use the same shell and framing continues.

        The rest of each prompt becomes the banner line of the next
        response, so the second response frames exactly like the first.
        """
        child = MockChildProcess(
            shell_transcript(
                ("list-config", ["/main/a"]),
                ("get-config /main/a", ["Label: A", "Type: TEXT", "Current: x"]),
            )
        )
        launcher = MockLauncher(child)
        transport = InteractiveTransport(launcher)

        assert transport.run("list-config") == "/main/a"
        second = transport.run("get-config /main/a")

        assert second.split(os.linesep) == ["Label: A", "Type: TEXT", "Current: x"]
        assert len(launcher.launches) == 1
        assert transport.launch_count == 1
        assert transport.is_running

    def test_dead_child_restarted(self):
        """A child that exited between commands is replaced."""
        first = MockChildProcess(shell_transcript(("list-config", ["/main/a"])))
        second = MockChildProcess(shell_transcript(("list-config", ["/main/b"])))
        launcher = MockLauncher(first, second)
        transport = InteractiveTransport(launcher)

        transport.run("list-config")
        first.returncode = 1

        assert transport.run("list-config") == "/main/b"
        assert transport.launch_count == 2
        assert not first.killed

    def test_eof_before_prompt(self):
        """Verifies a shell that stops talking fails the command and is dropped.

        Arrangement:
        1. First child's output ends mid-response.
        2. Second child answers normally.

        Action:
        Runs a command (fails), then another.

        Assertion Strategy:
        - First command raises ProcessError.
        - The first child was killed.
        - The next command starts a fresh shell.
        """
        broken = MockChildProcess(PROMPT + "\nlist-config\n/main/a\n")
        healthy = MockChildProcess(shell_transcript(("list-config", ["/main/a"])))
        launcher = MockLauncher(broken, healthy)
        transport = InteractiveTransport(launcher)

        with pytest.raises(ProcessError, match="closed its output"):
            transport.run("list-config")

        assert broken.killed
        assert not transport.is_running
        assert transport.run("list-config") == "/main/a"
        assert transport.launch_count == 2

    def test_broken_pipe(self):
        child = MockChildProcess()
        child.stdin = BrokenStdin()
        transport = InteractiveTransport(MockLauncher(child))

        with pytest.raises(ProcessError, match="Lost connection"):
            transport.run("list-config")

        assert child.killed
        assert not transport.is_running

    def test_device_error_keeps_child(self):
        """An error announced by the shell fails the command, not the shell."""
        child = MockChildProcess(
            shell_transcript(
                (
                    "get-config /main/nope",
                    ["*** Error ***", "/main/nope not found in configuration tree."],
                ),
                ("list-config", ["/main/a"]),
            )
        )
        transport = InteractiveTransport(MockLauncher(child))

        with pytest.raises(DeviceError) as exc_info:
            transport.run("get-config /main/nope")

        assert "not found" in exc_info.value.details
        assert transport.is_running
        assert transport.run("list-config") == "/main/a"

    def test_spawn_failure(self):
        launcher = MockLauncher(error=FileNotFoundError(2, "No such file"))
        transport = InteractiveTransport(launcher)

        with pytest.raises(ProcessError, match="Failed to start gphoto2 --shell"):
            transport.run("list-config")

        assert transport.launch_count == 0

    def test_close_kills_child(self):
        child = MockChildProcess(shell_transcript(("list-config", [])))
        transport = InteractiveTransport(MockLauncher(child))
        transport.run("list-config")

        transport.close()

        assert child.killed
        assert child.stdout.closed
        assert not transport.is_running

    def test_close_idempotent(self):
        """close() before start and twice after are both harmless."""
        child = MockChildProcess(shell_transcript(("list-config", [])))
        transport = InteractiveTransport(MockLauncher(child))

        transport.close()
        transport.run("list-config")
        transport.close()
        transport.close()

        assert not transport.is_running

    def test_read_with_timeout_returns_response(self):
        """With a timeout configured, responses arriving in time are returned."""
        child = MockChildProcess(shell_transcript(("list-config", ["/main/a"])))
        transport = InteractiveTransport(MockLauncher(child), read_timeout=5.0)

        assert transport.run("list-config") == "/main/a"

    def test_multiline_command_refused(self):
        """Verifies a command spanning lines is never written to the shell.

        Arrangement:
        1. Shell already running one command.

        Action:
        run() with text containing a newline, then a normal command.

        Assertion Strategy:
        - ProcessError naming the single-line rule.
        - Nothing extra written; the same child answers the next command.
        """
        child = MockChildProcess(
            shell_transcript(("list-config", ["/main/a"]), ("list-config", ["/main/a"]))
        )
        launcher = MockLauncher(child)
        transport = InteractiveTransport(launcher)
        transport.run("list-config")

        with pytest.raises(ProcessError, match="single line") as exc_info:
            transport.run("set-config /main/owner=Jo\nlist-config")

        assert exc_info.value.details == "set-config /main/owner=Jo\nlist-config"
        assert child.stdin.getvalue() == "list-config\n"
        assert transport.run("list-config") == "/main/a"
        assert transport.launch_count == 1

    @pytest.mark.parametrize("text", ["list-config\r", "a\r\nb"])
    def test_carriage_return_refused_before_launch(self, text):
        launcher = MockLauncher()
        transport = InteractiveTransport(launcher)

        with pytest.raises(ProcessError, match="single line"):
            transport.run(text)

        assert launcher.launches == []

    def test_terminate_kills_without_discarding(self):
        child = MockChildProcess(shell_transcript(("list-config", [])))
        transport = InteractiveTransport(MockLauncher(child))
        transport.run("list-config")

        transport.terminate()

        assert child.killed
        assert not child.stdout.closed

    def test_terminate_without_child(self):
        InteractiveTransport(MockLauncher()).terminate()


class TestOneShotTerminate:
    """Tests for OneShotTransport.terminate()."""

    def test_terminate_unblocks_running_command(self):
        """Verifies terminate() from another thread ends a stuck process.

        Arrangement:
        1. One-shot child whose communicate() blocks until killed.

        Action:
        run() on a helper thread, then terminate() once it is waiting.

        Assertion Strategy:
        - The child was killed.
        - run() fails with ProcessError for the kill status.
        """
        child = BlockingChildProcess()
        transport = OneShotTransport(MockLauncher(child))
        errors = []

        def run():
            try:
                transport.run("--abilities")
            except ProcessError as e:
                errors.append(e)

        runner = threading.Thread(target=run)
        runner.start()
        assert child.started.wait(WAIT)

        transport.terminate()
        runner.join(WAIT)

        assert not runner.is_alive()
        assert child.killed
        assert len(errors) == 1
        assert errors[0].returncode == -9

    def test_terminate_when_idle(self):
        child = MockChildProcess("Abilities for camera\n")
        transport = OneShotTransport(MockLauncher(child))
        transport.run("--abilities")

        transport.terminate()

        assert not child.killed
