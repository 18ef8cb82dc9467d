"""Driver configuration and factory.

Supports switching between the real gphoto2 executable and the digital
twin for testing and development without a camera attached. Everything a
command session needs (program name, locale, quiet flag, read timeout) is
explicit configuration here rather than process-wide state.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from gphoto2_mcp.drivers.process import ProcessLauncher, SubprocessLauncher
from gphoto2_mcp.drivers.session import DEFAULT_CLOSE_TIMEOUT, CommandSession
from gphoto2_mcp.drivers.transports import (
    DEFAULT_LOCALE,
    DEFAULT_PROGRAM,
    InteractiveTransport,
    OneShotTransport,
    build_standard_args,
)
from gphoto2_mcp.drivers.twin import DigitalTwinConfig, DigitalTwinLauncher
from gphoto2_mcp.observability import CommandStats, get_logger
from gphoto2_mcp.observability.stats import DEFAULT_STATS_WINDOW_SIZE

logger = get_logger(__name__)


class DriverMode(Enum):
    """Driver mode selection."""

    HARDWARE = "hardware"  # Real gphoto2 executable
    DIGITAL_TWIN = "digital_twin"  # Simulated gphoto2 for testing


@dataclass
class DriverConfig:
    """Configuration for process launching and command sessions.

    Attributes:
        mode: HARDWARE for the real gphoto2, DIGITAL_TWIN for simulation.
        program: gphoto2 executable name or path.
        locale: LANG forced on every child so output parses the same on
            any host.
        quiet: Pass ``--quiet`` to every invocation.
        read_timeout: Seconds to wait for one shell response (None waits
            for the prompt or EOF). Also bounds one-shot processes.
        stats_window_size: Command records kept per transport.
        close_timeout: Seconds a session's close() waits for the command in
            flight before killing its process (None waits indefinitely).
        twin: Simulated camera used in DIGITAL_TWIN mode (None=default).
    """

    mode: DriverMode = DriverMode.DIGITAL_TWIN
    program: str = DEFAULT_PROGRAM
    locale: str = DEFAULT_LOCALE
    quiet: bool = False
    read_timeout: float | None = None
    stats_window_size: int = DEFAULT_STATS_WINDOW_SIZE
    close_timeout: float | None = DEFAULT_CLOSE_TIMEOUT
    twin: DigitalTwinConfig | None = None


class DriverFactory:
    """Factory for launchers, transports and sessions based on configuration.

    In DIGITAL_TWIN mode one DigitalTwinLauncher is shared by everything
    the factory creates, so state written through one session is visible
    to the next, as it would be on a real camera.

    Thread Safety:
        Not thread-safe. Configure once at startup and create sessions
        before concurrent access.
    """

    def __init__(self, config: DriverConfig | None = None):
        """Initialize the factory.

        Args:
            config: Driver configuration. None defaults to DriverConfig()
                (digital twin).

        Example:
            >>> factory = DriverFactory()  # Digital twin mode
            >>> session = factory.create_session("Canon EOS 700D", "usb:001,004")
        """
        self.config = config or DriverConfig()
        self._launcher: ProcessLauncher | None = None

    def create_launcher(self) -> ProcessLauncher:
        """Return the process launcher for the configured mode.

        Returns:
            SubprocessLauncher in HARDWARE mode, the shared
            DigitalTwinLauncher in DIGITAL_TWIN mode.
        """
        if self._launcher is None:
            if self.config.mode == DriverMode.HARDWARE:
                self._launcher = SubprocessLauncher()
            else:
                self._launcher = DigitalTwinLauncher(self.config.twin)
        return self._launcher

    def create_session(
        self,
        camera: str | None = None,
        port: str | None = None,
    ) -> CommandSession:
        """Create a command session bound to one camera.

        Args:
            camera: Camera model (``--camera``), None for gphoto2's choice.
            port: Port path (``--port``), None for gphoto2's choice.

        Returns:
            Running CommandSession with both transports.
        """
        launcher = self.create_launcher()
        standard_args = build_standard_args(camera, port, self.config.quiet)

        one_shot = OneShotTransport(
            launcher,
            standard_args,
            program=self.config.program,
            locale=self.config.locale,
            timeout=self.config.read_timeout,
        )
        interactive = InteractiveTransport(
            launcher,
            standard_args,
            program=self.config.program,
            locale=self.config.locale,
            read_timeout=self.config.read_timeout,
        )

        logger.debug(
            "Creating command session",
            mode=self.config.mode.value,
            camera=camera,
            port=port,
        )
        return CommandSession(
            one_shot,
            interactive,
            stats=CommandStats(self.config.stats_window_size),
            log_context={"camera": camera, "port": port},
            close_timeout=self.config.close_timeout,
        )


# =============================================================================
# Global Singleton
# =============================================================================
# Not thread-safe. Configure once at startup before spawning threads.

_factory: DriverFactory | None = None


def get_factory() -> DriverFactory:
    """Get the global driver factory, creating a digital twin one on first use.

    Example:
        >>> factory = get_factory()  # Default digital twin
        >>> use_hardware()
        >>> factory = get_factory()  # New factory, hardware mode
    """
    global _factory
    if _factory is None:
        _factory = DriverFactory()
    return _factory


def configure(config: DriverConfig) -> None:
    """Replace the global factory with one using the given configuration.

    Sessions created earlier keep their launcher and settings.

    Args:
        config: New driver configuration.

    Example:
        >>> configure(DriverConfig(mode=DriverMode.HARDWARE, read_timeout=10.0))
    """
    global _factory
    _factory = DriverFactory(config)
    logger.info("Driver configuration changed", mode=config.mode.value)


def _copy_config_with_mode(mode: DriverMode) -> DriverConfig:
    """Current configuration with only the mode changed."""
    return replace(get_factory().config, mode=mode)


def use_digital_twin(preserve_config: bool = False) -> None:
    """Switch to the digital twin.

    Args:
        preserve_config: Keep program, locale, timeouts etc. from the
            current configuration instead of resetting to defaults.
    """
    if preserve_config:
        configure(_copy_config_with_mode(DriverMode.DIGITAL_TWIN))
    else:
        configure(DriverConfig(mode=DriverMode.DIGITAL_TWIN))


def use_hardware(preserve_config: bool = False) -> None:
    """Switch to the real gphoto2 executable.

    Args:
        preserve_config: Keep program, locale, timeouts etc. from the
            current configuration instead of resetting to defaults.
    """
    if preserve_config:
        configure(_copy_config_with_mode(DriverMode.HARDWARE))
    else:
        configure(DriverConfig(mode=DriverMode.HARDWARE))


def reset_factory() -> None:
    """Drop the global factory (tests)."""
    global _factory
    _factory = None
