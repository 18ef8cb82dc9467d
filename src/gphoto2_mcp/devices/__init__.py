"""Logical device layer - camera handle, settings model and registry."""

from gphoto2_mcp.devices.camera import Camera
from gphoto2_mcp.devices.registry import (
    get_registry,
    init_registry,
    shutdown_registry,
)
from gphoto2_mcp.devices.setting import (
    CameraSetting,
    CameraSettings,
    list_settings,
    validate_value,
)
from gphoto2_mcp.drivers.errors import (
    CameraError,
    DeviceError,
    ParseError,
    ProcessError,
    SettingNotFoundError,
    ValidationError,
)
from gphoto2_mcp.drivers.types import SettingDescription, SettingType

__all__ = [
    # Camera
    "Camera",
    # Settings
    "CameraSetting",
    "CameraSettings",
    "SettingDescription",
    "SettingType",
    "list_settings",
    "validate_value",
    # Errors
    "CameraError",
    "DeviceError",
    "ParseError",
    "ProcessError",
    "SettingNotFoundError",
    "ValidationError",
    # Registry
    "get_registry",
    "init_registry",
    "shutdown_registry",
]
