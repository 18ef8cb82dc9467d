"""Digital Twin gphoto2 - Simulated Camera Program for Testing.

Provides an in-process stand-in for the gphoto2 executable. It speaks the
same text protocol the transports parse: ``--abilities`` blocks, the
``--shell`` prompt/echo framing, ``get-config`` descriptions and the
asterisk-delimited error announcements. Plugs in as a ProcessLauncher, so
the whole stack (session, settings, camera, MCP tools) runs unchanged
without hardware.

Supported invocations:
    One-shot: --abilities, --list-config, --get-config NAME,
        --set-config NAME=VALUE, --version
    Shell (--shell): list-config, get-config NAME, set-config NAME=VALUE,
        exit / quit / q

Classes:
    TwinSetting: One simulated configuration widget
    DigitalTwinConfig: Camera identity, settings and fault injection
    DigitalTwinCamera: Shared camera state across launched processes
    DigitalTwinProcess: One simulated gphoto2 process (ChildProcess)
    DigitalTwinLauncher: ProcessLauncher producing DigitalTwinProcess

Example:
    from gphoto2_mcp.drivers.twin import DigitalTwinLauncher

    launcher = DigitalTwinLauncher()
    shell = InteractiveTransport(launcher, build_standard_args(
        "Canon EOS 700D", "usb:001,004"
    ))
    print(shell.run("get-config /main/imgsettings/iso"))
"""

from __future__ import annotations

import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from gphoto2_mcp.observability import get_logger

__all__ = [
    "DEFAULT_TWIN_MODEL",
    "DEFAULT_TWIN_PORT",
    "DigitalTwinCamera",
    "DigitalTwinConfig",
    "DigitalTwinLauncher",
    "DigitalTwinProcess",
    "TwinSetting",
    "default_twin_settings",
]

logger = get_logger(__name__)

DEFAULT_TWIN_MODEL = "Canon EOS 700D"
DEFAULT_TWIN_PORT = "usb:001,004"

SHELL_PROMPT = "gphoto2: {/} /> "
EXIT_COMMANDS = frozenset({"exit", "quit", "q"})
KILLED_RETURNCODE = -9


@dataclass
class TwinSetting:
    """One simulated configuration widget.

    Attributes:
        label: Label printed on the ``Label:`` line.
        widget: Widget type name (TEXT, RADIO, MENU, TOGGLE, DATE, RANGE).
        value: Current value.
        choices: Legal values for RADIO and MENU widgets.
        readonly: Reject set-config when True.
    """

    label: str
    widget: str
    value: str
    choices: list[str] = field(default_factory=list)
    readonly: bool = False

    def describe(self) -> list[str]:
        """Render the ``get-config`` response lines."""
        lines = [
            f"Label: {self.label}",
            f"Readonly: {1 if self.readonly else 0}",
            f"Type: {self.widget}",
            f"Current: {self.value}",
        ]
        if self.widget == "DATE":
            lines.append(f"Printable: {self.value}")
            lines.append("Help: Use 'now' as the current time when setting.")
        elif self.widget == "RANGE":
            lines.extend(["Bottom: -5", "Top: 5", "Step: 1"])
        for index, choice in enumerate(self.choices):
            lines.append(f"Choice: {index} {choice}")
        lines.append("END")
        return lines


def default_twin_settings(model: str = DEFAULT_TWIN_MODEL) -> dict[str, TwinSetting]:
    """Build the configuration tree of a typical DSLR.

    Args:
        model: Reported by /main/status/cameramodel.

    Returns:
        Ordered mapping of setting path to TwinSetting.
    """
    return {
        "/main/actions/viewfinder": TwinSetting("Canon EOS Viewfinder", "TOGGLE", "0"),
        "/main/settings/datetime": TwinSetting(
            "Camera Date and Time", "DATE", "1700000000"
        ),
        "/main/settings/ownername": TwinSetting("Owner Name", "TEXT", ""),
        "/main/settings/copyright": TwinSetting("Copyright", "TEXT", ""),
        "/main/settings/capturetarget": TwinSetting(
            "Capture Target", "RADIO", "Internal RAM", ["Internal RAM", "Memory card"]
        ),
        "/main/status/serialnumber": TwinSetting(
            "Serial Number", "TEXT", "0a1b2c3d4e5f", readonly=True
        ),
        "/main/status/manufacturer": TwinSetting(
            "Camera Manufacturer", "TEXT", "Canon Inc.", readonly=True
        ),
        "/main/status/cameramodel": TwinSetting(
            "Camera Model", "TEXT", model, readonly=True
        ),
        "/main/status/deviceversion": TwinSetting(
            "Device Version", "TEXT", "3-1.0.0", readonly=True
        ),
        "/main/status/batterylevel": TwinSetting(
            "Battery Level", "TEXT", "100%", readonly=True
        ),
        "/main/status/lensname": TwinSetting(
            "Lens Name", "TEXT", "EF-S18-55mm f/3.5-5.6 IS STM", readonly=True
        ),
        "/main/status/imageformat": TwinSetting(
            "Image Format",
            "RADIO",
            "Large Fine JPEG",
            ["Large Fine JPEG", "Medium Fine JPEG", "RAW", "RAW + Large Fine JPEG"],
        ),
        "/main/imgsettings/iso": TwinSetting(
            "ISO Speed",
            "RADIO",
            "400",
            ["Auto", "100", "200", "400", "800", "1600", "3200", "6400"],
        ),
        "/main/imgsettings/whitebalance": TwinSetting(
            "WhiteBalance",
            "RADIO",
            "Auto",
            ["Auto", "Daylight", "Shadow", "Cloudy", "Tungsten", "Fluorescent"],
        ),
        "/main/imgsettings/colorspace": TwinSetting(
            "Color Space", "RADIO", "sRGB", ["sRGB", "AdobeRGB"]
        ),
        "/main/imgsettings/exposurecompensation": TwinSetting(
            "Exposure Compensation",
            "RADIO",
            "0",
            ["-1", "-0.6", "-0.3", "0", "0.3", "0.6", "1"],
        ),
        "/main/capturesettings/shutterspeed": TwinSetting(
            "Shutter Speed", "RADIO", "1/125", ["1/30", "1/60", "1/125", "1/250"]
        ),
        "/main/capturesettings/aperture": TwinSetting(
            "Aperture", "RADIO", "5.6", ["3.5", "4", "5.6", "8", "11"]
        ),
        "/main/capturesettings/focusmode": TwinSetting(
            "Focus Mode", "RADIO", "One Shot", ["One Shot", "AI Focus", "AI Servo"]
        ),
        "/main/capturesettings/drivemode": TwinSetting(
            "Drive Mode", "MENU", "Single", ["Single", "Continuous", "Timer 10 sec"]
        ),
        "/main/capturesettings/picturestyle": TwinSetting(
            "Picture Style",
            "RADIO",
            "Standard",
            ["Standard", "Portrait", "Landscape", "Neutral", "Monochrome"],
        ),
        "/main/capturesettings/meteringmode": TwinSetting(
            "Metering Mode",
            "RADIO",
            "Evaluative",
            ["Evaluative", "Partial", "Center-weighted average"],
        ),
        "/main/capturesettings/bracketmode": TwinSetting(
            "Bracket Mode", "TEXT", "", readonly=True
        ),
        "/main/capturesettings/aeb": TwinSetting(
            "Auto Exposure Bracketing", "RADIO", "off", ["off", "+/- 1/3", "+/- 2/3"]
        ),
        "/main/capturesettings/flashcompensation": TwinSetting(
            "Flash Compensation", "RANGE", "0"
        ),
    }


DEFAULT_ABILITIES = {
    "Serial port support": ["no"],
    "USB support": ["yes"],
    "Capture choices": ["", "Image", "Preview", "Trigger Capture"],
    "Configuration support": ["yes"],
    "Delete selected files on camera": ["yes"],
    "Delete all files on camera": ["no"],
    "File preview (thumbnail) support": ["yes"],
    "File upload support": ["yes"],
}


@dataclass
class DigitalTwinConfig:
    """Configuration for the simulated camera.

    Attributes:
        model: Camera model; a --camera argument naming another model is
            rejected the way gphoto2 rejects unknown models.
        port: Port the camera is attached to, for --auto-detect style info.
        settings: Configuration tree, default_twin_settings() when None.
        abilities: Ability name to values, DEFAULT_ABILITIES when None.
        hang_commands: Shell commands that never return a prompt, for
            exercising read timeouts.
    """

    model: str = DEFAULT_TWIN_MODEL
    port: str = DEFAULT_TWIN_PORT
    settings: dict[str, TwinSetting] | None = None
    abilities: dict[str, list[str]] | None = None
    hang_commands: frozenset[str] = frozenset()


class DigitalTwinCamera:
    """Camera state shared by every process a launcher starts.

    Settings written through one process are visible to the next, as on
    real hardware. Thread-safe.
    """

    def __init__(self, config: DigitalTwinConfig | None = None) -> None:
        self.config = config or DigitalTwinConfig()
        self._settings = (
            self.config.settings
            if self.config.settings is not None
            else default_twin_settings(self.config.model)
        )
        self._abilities = (
            self.config.abilities
            if self.config.abilities is not None
            else DEFAULT_ABILITIES
        )
        self._lock = threading.Lock()

    def get_value(self, name: str) -> str | None:
        """Current value of a setting, None when it does not exist."""
        with self._lock:
            setting = self._settings.get(name)
            return None if setting is None else setting.value

    def accepts_model(self, model: str | None) -> bool:
        """True when a --camera selector names this camera (or is absent)."""
        return model is None or model.strip().lower() == self.config.model.lower()

    def abilities(self) -> list[str]:
        """Render ``--abilities`` output lines."""
        width = 33
        lines = [f"{'Abilities for camera':<{width}}: {self.config.model}"]
        for name, values in self._abilities.items():
            first, *rest = values or [""]
            lines.append(f"{name:<{width}}: {first}".rstrip())
            lines.extend(f"{'':<{width}}: {value}" for value in rest)
        return lines

    def list_config(self) -> list[str]:
        with self._lock:
            return list(self._settings)

    def get_config(self, name: str) -> list[str]:
        """Render a ``get-config`` response, or an error block."""
        with self._lock:
            setting = self._settings.get(name)
            if setting is None:
                return [
                    "*** Error ***              ",
                    f"{name} not found in configuration tree.",
                ]
            return setting.describe()

    def set_config(self, assignment: str) -> list[str]:
        """Apply ``NAME=VALUE``; returns response lines (errors only)."""
        name, equals, value = assignment.partition("=")
        name = name.strip()
        if not equals:
            return ["*** Error ***              ", f"{assignment}: missing value."]

        with self._lock:
            setting = self._settings.get(name)
            if setting is None:
                return [
                    "*** Error ***              ",
                    f"{name} not found in configuration tree.",
                ]
            if setting.readonly:
                return ["*** Error (-6): 'Unsupported operation' ***"]
            if setting.choices and value not in setting.choices:
                return [
                    "*** Error ***              ",
                    f"Choice {value} not found within list of choices.",
                ]
            setting.value = value
        logger.debug("Twin setting changed", setting=name, value=value)
        return []


class _OutputPipe:
    """Readable text stream fed by the simulated process."""

    def __init__(self) -> None:
        self._buffer = ""
        self._eof = False
        self._closed = False
        self._cond = threading.Condition()

    def feed(self, text: str) -> None:
        with self._cond:
            if not self._eof:
                self._buffer += text
                self._cond.notify_all()

    def finish(self) -> None:
        """Signal EOF to readers once the buffer is drained."""
        with self._cond:
            self._eof = True
            self._cond.notify_all()

    def read(self, size: int = -1) -> str:
        """Block until data or EOF, like a pipe.

        Returns:
            Up to size characters (all remaining at EOF when size < 0),
            "" at EOF.
        """
        with self._cond:
            if self._closed:
                raise ValueError("I/O operation on closed file")
            if size < 0:
                while not self._eof:
                    self._cond.wait()
            else:
                while not self._buffer and not self._eof:
                    self._cond.wait()
            if size < 0:
                chunk, self._buffer = self._buffer, ""
            else:
                chunk, self._buffer = self._buffer[:size], self._buffer[size:]
            return chunk

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._eof = True
            self._cond.notify_all()


class _InputPipe:
    """Writable text stream delivering complete lines to a handler."""

    def __init__(self, process: DigitalTwinProcess) -> None:
        self._process = process
        self._buffer = ""
        self._closed = False

    def write(self, text: str) -> int:
        if self._closed or self._process.poll() is not None:
            raise BrokenPipeError(32, "Broken pipe")
        self._buffer += text
        while "\n" in self._buffer:
            line, _, self._buffer = self._buffer.partition("\n")
            self._process.handle_line(line)
        return len(text)

    def flush(self) -> None:
        if self._closed:
            raise ValueError("I/O operation on closed file")

    def close(self) -> None:
        self._closed = True


class DigitalTwinProcess:
    """One simulated gphoto2 process.

    Satisfies the ChildProcess protocol. One-shot invocations produce all
    their output and exit during construction; shell invocations print
    the prompt and answer each line written to stdin synchronously.
    """

    def __init__(self, camera: DigitalTwinCamera, args: Sequence[str]) -> None:
        self.args = list(args)
        self.returncode: int | None = None
        self.commands: list[str] = []
        self.stdout = _OutputPipe()
        self.stdin = _InputPipe(self)
        self._camera = camera

        self._model: str | None = None
        self._shell = False
        options = self._parse_args(self.args[1:])

        if not camera.accepts_model(self._model):
            self._emit(["*** Error (-105: 'Unknown model') ***"])
            self._exit(1)
        elif self._shell:
            self.stdout.feed(SHELL_PROMPT)
        else:
            self._run_options(options)

    def _parse_args(self, args: list[str]) -> list[str]:
        """Consume selector flags; return the remaining options."""
        options: list[str] = []
        index = 0
        while index < len(args):
            arg = args[index]
            if arg in ("--camera", "--port") and index + 1 < len(args):
                if arg == "--camera":
                    self._model = args[index + 1]
                index += 2
                continue
            if arg == "--shell":
                self._shell = True
            elif arg != "--quiet":
                options.append(arg)
            index += 1
        return options

    def _emit(self, lines: list[str]) -> None:
        for line in lines:
            self.stdout.feed(line + "\n")

    def _exit(self, code: int) -> None:
        if self.returncode is None:
            self.returncode = code
        self.stdout.finish()

    def _run_options(self, options: list[str]) -> None:
        """Execute a one-shot invocation and exit."""
        option = options[0] if options else ""
        argument = options[1] if len(options) > 1 else ""

        if option == "--abilities":
            lines = self._camera.abilities()
        elif option == "--list-config":
            lines = self._camera.list_config()
        elif option == "--get-config":
            lines = self._camera.get_config(argument)
        elif option == "--set-config":
            lines = self._camera.set_config(argument)
        elif option == "--version":
            lines = ["gphoto2 2.5.28 (digital twin)"]
        else:
            self._emit([f"gphoto2: unrecognized option '{option}'"])
            self._exit(1)
            return

        self._emit(lines)
        self._exit(0)

    def handle_line(self, line: str) -> None:
        """Answer one shell command: echo, response, prompt."""
        command = line.strip()
        self.commands.append(command)
        verb, _, argument = command.partition(" ")

        self.stdout.feed("\n" + command + "\n")

        if verb in EXIT_COMMANDS:
            self._exit(0)
            return
        if command in self._camera.config.hang_commands:
            return

        if verb == "list-config":
            self._emit(self._camera.list_config())
        elif verb == "get-config":
            self._emit(self._camera.get_config(argument.strip()))
        elif verb == "set-config":
            self._emit(self._camera.set_config(argument.strip()))
        elif verb:
            self._emit(["*** Error ***              ", f"Unknown command '{verb}'."])
        self.stdout.feed(SHELL_PROMPT)

    def poll(self) -> int | None:
        return self.returncode

    def communicate(
        self, input: str | None = None, timeout: float | None = None
    ) -> tuple[str, str | None]:
        """Feed optional input, then read output to EOF."""
        if input:
            self.stdin.write(input)
        self.stdin.close()
        if self.returncode is None:
            self._exit(0)
        return self.stdout.read(), None

    def kill(self) -> None:
        self._exit(KILLED_RETURNCODE)

    def wait(self, timeout: float | None = None) -> int:
        if self.returncode is None:
            self._exit(0)
        return self.returncode  # type: ignore[return-value]


class DigitalTwinLauncher:
    """ProcessLauncher that starts simulated gphoto2 processes.

    Every launch is recorded, which tests use to check argument lines and
    shell reuse.

    Example:
        launcher = DigitalTwinLauncher()
        process = launcher.launch(["gphoto2", "--abilities"], {})
        print(process.communicate()[0])
    """

    def __init__(self, config: DigitalTwinConfig | None = None) -> None:
        self.camera = DigitalTwinCamera(config)
        self.launches: list[list[str]] = []
        self.processes: list[DigitalTwinProcess] = []
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"DigitalTwinLauncher(model={self.camera.config.model!r})"

    def launch(
        self, args: Sequence[str], env: Mapping[str, str]
    ) -> DigitalTwinProcess:
        """Start a simulated gphoto2 process.

        Args:
            args: Full argument vector, program name first.
            env: Child environment (LANG is logged, otherwise unused).

        Returns:
            DigitalTwinProcess with output ready to read.
        """
        process = DigitalTwinProcess(self.camera, args)
        with self._lock:
            self.launches.append(list(args))
            self.processes.append(process)
        logger.debug(
            "Twin process launched",
            argv=" ".join(args),
            lang=env.get("LANG"),
        )
        return process
