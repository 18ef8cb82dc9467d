"""MCP Tools for camera settings.

Uses the device layer through the camera registry. Works the same against
the real gphoto2 and the digital twin.

Every device call blocks on the command session, so the handlers run it
in the default executor and keep the event loop free for other requests.
"""

import asyncio
import json
from collections.abc import Callable
from typing import Any, TypeVar

from mcp.server import Server
from mcp.types import TextContent, Tool

from gphoto2_mcp.devices import get_registry
from gphoto2_mcp.drivers.errors import CameraError
from gphoto2_mcp.observability import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# Tool definitions
TOOLS = [
    Tool(
        name="get_camera_info",
        description="Get the camera identity and its capability flags",
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    Tool(
        name="list_settings",
        description="List the names of all settings the camera exposes",
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    Tool(
        name="describe_setting",
        description=(
            "Read a setting's label, type, legal choices and current value "
            "from the camera"
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "name": {
                    "type": "string",
                    "description": "Setting path (e.g. /main/imgsettings/iso)",
                },
            },
            "required": ["name"],
        },
    ),
    Tool(
        name="set_setting",
        description=(
            "Set a camera setting. The value is validated against the "
            "setting's type and choices before it is sent"
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "name": {
                    "type": "string",
                    "description": "Setting path (e.g. /main/imgsettings/iso)",
                },
                "value": {
                    "type": "string",
                    "description": (
                        "New value: a listed choice for option settings, "
                        "0 or 1 for toggles, UNIX seconds for dates"
                    ),
                },
            },
            "required": ["name", "value"],
        },
    ),
    Tool(
        name="get_command_stats",
        description="Get gphoto2 command statistics per transport",
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
]


def register(server: Server) -> None:
    """Register camera settings tools with the MCP server.

    Tools registered:
    - get_camera_info: Identity and capability flags
    - list_settings: Setting catalogue
    - describe_setting: Schema and current value of one setting
    - set_setting: Validated write of one setting
    - get_command_stats: Per-transport command statistics

    Args:
        server: MCP Server instance, not yet running.

    Example:
        >>> server = Server("gphoto2-mcp")
        >>> register(server)
    """

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        """Return available camera tools."""
        return TOOLS

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        """Route tool calls to their implementations.

        Args:
            name: Tool name from TOOLS.
            arguments: Arguments matching the tool's inputSchema.

        Returns:
            Single TextContent with a JSON result or an error message.
        """
        return await dispatch(name, arguments)


async def dispatch(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Call the implementation for a tool name."""
    if name == "get_camera_info":
        return await _get_camera_info()
    elif name == "list_settings":
        return await _list_settings()
    elif name == "describe_setting":
        return await _describe_setting(arguments["name"])
    elif name == "set_setting":
        return await _set_setting(arguments["name"], str(arguments["value"]))
    elif name == "get_command_stats":
        return await _get_command_stats()
    else:
        return [TextContent(type="text", text=f"Unknown tool: {name}")]


def _text(result: Any) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(result, indent=2))]


def _error_text(action: str, error: Exception) -> list[TextContent]:
    """Format an error, appending gphoto2 details when present."""
    message = f"Error {action}: {error}"
    if isinstance(error, CameraError) and error.details:
        message = f"{message}\n{error.details}"
    return [TextContent(type="text", text=message)]


async def _run_blocking(func: Callable[..., T], *args: Any) -> T:
    """Run a blocking device call in the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, func, *args)


# Tool implementations using device layer


async def _get_camera_info() -> list[TextContent]:
    """Return camera identity, capability flags and catalogue size.

    Returns:
        JSON of Camera.info(), or an error message.
    """
    try:
        camera = get_registry()
        return _text(camera.info())
    except Exception as e:
        logger.error("Error getting camera info", error=str(e))
        return _error_text("getting camera info", e)


async def _list_settings() -> list[TextContent]:
    """Return the setting catalogue.

    The catalogue was read when the camera was opened; no device I/O.

    Returns:
        JSON {"count": int, "settings": [name, ...]}.
    """
    try:
        camera = get_registry()
        names = [setting.name for setting in camera.settings]
        return _text({"count": len(names), "settings": names})
    except Exception as e:
        logger.error("Error listing settings", error=str(e))
        return _error_text("listing settings", e)


async def _describe_setting(name: str) -> list[TextContent]:
    """Describe one setting (one get-config round-trip).

    Args:
        name: Setting path.

    Returns:
        JSON of SettingDescription.to_dict(), or an error message.

    Example:
        >>> result = await _describe_setting("/main/imgsettings/iso")
        >>> json.loads(result[0].text)["type"]
        'option'
    """
    try:
        setting = get_registry().get_setting(name)
        description = await _run_blocking(setting.describe)
        return _text(description.to_dict())
    except Exception as e:
        logger.error("Error describing setting", setting=name, error=str(e))
        return _error_text(f"describing setting {name}", e)


async def _set_setting(name: str, value: str) -> list[TextContent]:
    """Validate and write one setting, then read it back.

    Args:
        name: Setting path.
        value: New value in string form.

    Returns:
        JSON {"name", "requested", "value"} where value is read back from
        the camera, or an error message (validation failures included).
    """
    try:
        setting = get_registry().get_setting(name)
        await _run_blocking(setting.set_value, value)
        current = await _run_blocking(setting.get_value)
        return _text({"name": name, "requested": value, "value": current})
    except Exception as e:
        logger.error(
            "Error setting value", setting=name, value=value, error=str(e)
        )
        return _error_text(f"setting {name}", e)


async def _get_command_stats() -> list[TextContent]:
    """Return per-transport command statistics of the camera's session."""
    try:
        camera = get_registry()
        return _text(camera.session.stats.to_dict())
    except Exception as e:
        logger.error("Error getting command stats", error=str(e))
        return _error_text("getting command stats", e)
