"""Tests for the MCP server entry point."""

import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from mcp.server import Server

from gphoto2_mcp import server
from gphoto2_mcp.devices import get_registry, shutdown_registry
from gphoto2_mcp.drivers.config import DriverConfig, DriverMode, get_factory
from gphoto2_mcp.drivers.twin import DEFAULT_TWIN_MODEL, DEFAULT_TWIN_PORT
from gphoto2_mcp.observability import configure_logging, reset_logging
from gphoto2_mcp.observability.logging import ROOT_LOGGER_NAME, JSONFormatter


@pytest.fixture(autouse=True)
def clean_registry():
    yield
    shutdown_registry()


class TestParseArgs:
    """Tests for parse_args()."""

    def test_defaults(self):
        args = server.parse_args([])

        assert args.mode == "digital_twin"
        assert args.camera == DEFAULT_TWIN_MODEL
        assert args.port == DEFAULT_TWIN_PORT
        assert args.program == "gphoto2"
        assert args.locale == "en_US.UTF-8"
        assert args.read_timeout is None
        assert args.log_level == "info"
        assert args.json_logs is False

    def test_all_options(self):
        """Verifies every option is parsed and converted.

        Arrangement:
        1. Argument list setting each option.

        Action:
        Calls parse_args().

        Assertion Strategy:
        Namespace carries each value, read_timeout as float.
        """
        args = server.parse_args(
            [
                "--mode",
                "hardware",
                "--camera",
                "Nikon DSC D5100",
                "--port",
                "usb:002,003",
                "--program",
                "/usr/local/bin/gphoto2",
                "--locale",
                "C.UTF-8",
                "--read-timeout",
                "7.5",
                "--log-level",
                "debug",
                "--json-logs",
            ]
        )

        assert args.mode == "hardware"
        assert args.camera == "Nikon DSC D5100"
        assert args.port == "usb:002,003"
        assert args.program == "/usr/local/bin/gphoto2"
        assert args.locale == "C.UTF-8"
        assert args.read_timeout == 7.5
        assert args.log_level == "debug"
        assert args.json_logs is True

    @pytest.mark.parametrize("value", ["0", "-1"])
    def test_read_timeout_must_be_positive(self, value):
        with pytest.raises(SystemExit):
            server.parse_args(["--read-timeout", value])

    def test_invalid_mode(self):
        with pytest.raises(SystemExit):
            server.parse_args(["--mode", "simulation"])


class TestCreateServer:
    """Tests for create_server()."""

    def test_returns_server_with_camera(self):
        """Verifies the default server runs on the twin with a camera registered.

        Arrangement:
        1. Default arguments (digital twin).

        Action:
        Calls create_server().

        Assertion Strategy:
        - An MCP Server is returned.
        - The global factory is in DIGITAL_TWIN mode.
        - The registry holds an initialized camera.
        """
        mcp_server = server.create_server()

        assert isinstance(mcp_server, Server)
        assert get_factory().config.mode == DriverMode.DIGITAL_TWIN
        camera = get_registry()
        assert camera.is_initialized
        assert camera.name == DEFAULT_TWIN_MODEL

    def test_config_mode_overridden(self):
        config = DriverConfig(mode=DriverMode.HARDWARE, read_timeout=3.0)

        server.create_server(config=config)

        assert get_factory().config.mode == DriverMode.DIGITAL_TWIN
        assert get_factory().config.read_timeout == 3.0

    def test_hardware_mode(self):
        """Hardware mode configures the factory before opening the camera."""
        with patch("gphoto2_mcp.devices.init_registry") as init_registry:
            server.create_server("Nikon DSC D5100", "usb:002,003", mode="hardware")

        assert get_factory().config.mode == DriverMode.HARDWARE
        init_registry.assert_called_once_with("Nikon DSC D5100", "usb:002,003")

    def test_repeated_calls_replace_camera(self):
        server.create_server()
        first = get_registry()

        server.create_server()

        assert first.is_closed
        assert get_registry() is not first


class TestRunServer:
    """Tests for run_server() and main()."""

    @pytest.mark.asyncio
    async def test_registry_shut_down_on_exit(self):
        """The camera is closed when the stdio loop ends."""
        stdio = MagicMock()
        stdio.__aenter__ = AsyncMock(return_value=(MagicMock(), MagicMock()))
        stdio.__aexit__ = AsyncMock(return_value=False)

        with (
            patch.object(server, "stdio_server", return_value=stdio),
            patch.object(Server, "run", new=AsyncMock()),
        ):
            await server.run_server()

        with pytest.raises(RuntimeError):
            get_registry()

    @pytest.mark.asyncio
    async def test_registry_shut_down_on_error(self):
        with patch.object(server, "create_server", side_effect=RuntimeError("x")):
            with pytest.raises(RuntimeError):
                await server.run_server()

        with pytest.raises(RuntimeError, match="Registry not initialized"):
            get_registry()

    def test_main(self):
        """Verifies main() wires arguments into logging and the server."""
        argv = ["gphoto2-mcp", "--read-timeout", "4", "--log-level", "debug"]
        with (
            patch("sys.argv", argv),
            patch.object(server, "configure_logging") as configure_logging,
            patch.object(server, "run_server", new=MagicMock()) as run_server,
            patch.object(server.asyncio, "run") as asyncio_run,
        ):
            server.main()

        configure_logging.assert_called_once_with(
            level="DEBUG", json_format=False, force=True
        )
        asyncio_run.assert_called_once_with(run_server.return_value)
        camera, port, mode, config = run_server.call_args.args
        assert (camera, port, mode) == (
            DEFAULT_TWIN_MODEL,
            DEFAULT_TWIN_PORT,
            "digital_twin",
        )
        assert config.read_timeout == 4.0

    def test_main_applies_logging_options(self):
        """Verifies --log-level and --json-logs take effect after import.

        Arrangement:
        1. Server module imported, so default logging is already installed.
        2. run_server and asyncio.run patched out.

        Action:
        Calls main() with --log-level debug --json-logs.

        Assertion Strategy:
        The package logger is at DEBUG with a single JSON handler.
        """
        argv = ["gphoto2-mcp", "--log-level", "debug", "--json-logs"]
        try:
            with (
                patch("sys.argv", argv),
                patch.object(server, "run_server", new=MagicMock()),
                patch.object(server.asyncio, "run"),
            ):
                server.main()

            root = logging.getLogger(ROOT_LOGGER_NAME)
            assert root.level == logging.DEBUG
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, JSONFormatter)
        finally:
            reset_logging()
            configure_logging(force=True)
