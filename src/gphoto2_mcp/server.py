"""MCP Server entry point for gphoto2 camera control."""

import argparse
import asyncio
from dataclasses import replace
from typing import Literal

from mcp.server import Server
from mcp.server.stdio import stdio_server

from gphoto2_mcp.drivers.config import (
    DriverConfig,
    DriverMode,
    configure,
    get_factory,
)
from gphoto2_mcp.drivers.transports import DEFAULT_LOCALE, DEFAULT_PROGRAM
from gphoto2_mcp.drivers.twin import DEFAULT_TWIN_MODEL, DEFAULT_TWIN_PORT
from gphoto2_mcp.observability import configure_logging, get_logger
from gphoto2_mcp.tools import settings

logger = get_logger(__name__)


def create_server(
    camera: str = DEFAULT_TWIN_MODEL,
    port: str = DEFAULT_TWIN_PORT,
    mode: Literal["hardware", "digital_twin"] = "digital_twin",
    config: DriverConfig | None = None,
) -> Server:
    """Create and configure the MCP server for AI agent camera control.

    Configures the driver mode, opens the camera through the registry
    (abilities and settings catalogue are discovered here) and registers
    the settings tools.

    Args:
        camera: Camera model passed to ``--camera``.
        port: Port path passed to ``--port``.
        mode: "hardware" for the real gphoto2, "digital_twin" for the
            simulation. Defaults to "digital_twin" for safety.
        config: Full driver configuration; its mode is overridden by
            ``mode``. None uses defaults.

    Returns:
        Configured MCP Server instance.

    Raises:
        CameraError: If the camera cannot be opened.

    Example:
        >>> server = create_server("Nikon DSC D5100", "usb:002,003", "hardware")
    """
    server = Server("gphoto2-mcp")

    driver_mode = (
        DriverMode.HARDWARE if mode.lower() == "hardware" else DriverMode.DIGITAL_TWIN
    )
    configure(replace(config or DriverConfig(), mode=driver_mode))
    if driver_mode == DriverMode.HARDWARE:
        logger.info(
            "Using HARDWARE mode (real gphoto2)",
            program=get_factory().config.program,
        )
    else:
        logger.info("Using DIGITAL_TWIN mode (simulated gphoto2)")

    from gphoto2_mcp.devices import init_registry

    init_registry(camera, port)

    # Register tool handlers
    settings.register(server)

    return server


async def run_server(
    camera: str = DEFAULT_TWIN_MODEL,
    port: str = DEFAULT_TWIN_PORT,
    mode: Literal["hardware", "digital_twin"] = "digital_twin",
    config: DriverConfig | None = None,
) -> None:
    """Run the MCP server over stdio.

    Creates the server, then runs the MCP protocol over stdin/stdout until
    the client disconnects. The registered camera is always closed on
    exit, terminating the gphoto2 shell.

    Args:
        camera: Camera model.
        port: Port path.
        mode: "hardware" or "digital_twin".
        config: Driver configuration, see create_server().
    """
    try:
        server = create_server(camera, port, mode, config)
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options(),
            )
    finally:
        from gphoto2_mcp.devices import shutdown_registry

        shutdown_registry()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Args:
        argv: Arguments to parse, sys.argv[1:] when None.

    Returns:
        argparse.Namespace with mode, camera, port, program, locale,
        read_timeout, log_level and json_logs.

    Raises:
        SystemExit: On invalid arguments or --help.
    """
    parser = argparse.ArgumentParser(
        description="gphoto2 MCP Server - Inspect and configure a camera via gphoto2"
    )
    parser.add_argument(
        "--mode",
        type=str,
        choices=["hardware", "digital_twin"],
        default="digital_twin",
        help="Driver mode: hardware (real gphoto2) or digital_twin (simulation)",
    )
    parser.add_argument(
        "--camera",
        type=str,
        default=DEFAULT_TWIN_MODEL,
        help="Camera model as listed by 'gphoto2 --auto-detect'",
    )
    parser.add_argument(
        "--port",
        type=str,
        default=DEFAULT_TWIN_PORT,
        help="Camera port as listed by 'gphoto2 --auto-detect' (e.g. usb:001,004)",
    )
    parser.add_argument(
        "--program",
        type=str,
        default=DEFAULT_PROGRAM,
        help="gphoto2 executable name or path",
    )
    parser.add_argument(
        "--locale",
        type=str,
        default=DEFAULT_LOCALE,
        help="LANG value forced on gphoto2 so its output can be parsed",
    )
    parser.add_argument(
        "--read-timeout",
        type=float,
        default=None,
        help="Seconds to wait for one gphoto2 response (default: no limit)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["critical", "error", "warning", "info", "debug"],
        default="info",
        help="Log level (default: info)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit logs as JSON lines",
    )
    args = parser.parse_args(argv)

    if args.read_timeout is not None and args.read_timeout <= 0:
        parser.error("--read-timeout must be positive")

    return args


def main() -> None:
    """Main entry point for the gphoto2-mcp server.

    Parses arguments, configures structured logging (stderr, since stdout
    carries the MCP protocol) and runs the server until the client
    disconnects.

    Example:
        >>> # MCP client config:
        >>> # "command": "gphoto2-mcp", "args": ["--mode", "hardware",
        >>> #     "--camera", "Canon EOS 700D", "--port", "usb:001,004"]
    """
    args = parse_args()

    # Module loggers already installed the defaults at import time.
    configure_logging(
        level=args.log_level.upper(), json_format=args.json_logs, force=True
    )

    config = DriverConfig(
        program=args.program,
        locale=args.locale,
        read_timeout=args.read_timeout,
    )

    logger.info(
        "Starting MCP server",
        mode=args.mode,
        camera=args.camera,
        port=args.port,
    )
    asyncio.run(run_server(args.camera, args.port, args.mode, config))


if __name__ == "__main__":  # pragma: no cover
    main()
