"""Process-wide camera handle for the server and its MCP tools.

The MCP tool handlers are plain module-level coroutines with no place to
carry a handle, so the server opens one Camera at startup and the tools
look it up here (Service Locator pattern).

Example:
    from gphoto2_mcp.devices.registry import (
        get_registry,
        init_registry,
        shutdown_registry,
    )

    init_registry("Canon EOS 700D", "usb:001,004")  # at startup

    camera = get_registry()  # anywhere
    camera.get_setting("/main/imgsettings/iso").get_value()

    shutdown_registry()  # at teardown
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from gphoto2_mcp.devices.camera import Camera
from gphoto2_mcp.observability import get_logger

if TYPE_CHECKING:
    from gphoto2_mcp.drivers.config import DriverFactory

__all__ = ["get_registry", "init_registry", "shutdown_registry"]

logger = get_logger(__name__)

_default_camera: Camera | None = None
_registry_lock = threading.Lock()


def init_registry(
    name: str,
    port: str,
    factory: DriverFactory | None = None,
) -> Camera:
    """Open a camera and make it the process-wide handle.

    A previously registered camera is closed first, so its shell is gone
    before the new one starts talking to the device.

    Args:
        name: Camera model.
        port: Port path.
        factory: Driver factory; the global one when None.

    Returns:
        The initialized Camera, also returned by get_registry().

    Raises:
        CameraError: If the camera cannot be opened. The registry is left
            empty.
    """
    global _default_camera
    with _registry_lock:
        previous, _default_camera = _default_camera, None
        if previous is not None:
            previous.close()
        _default_camera = Camera.open(name, port, factory)
        logger.info("Camera registered", camera=name, port=port)
        return _default_camera


def get_registry() -> Camera:
    """Return the registered camera.

    Raises:
        RuntimeError: If init_registry() has not been called.
    """
    camera = _default_camera
    if camera is None:
        raise RuntimeError("Registry not initialized. Call init_registry() first.")
    return camera


def shutdown_registry() -> None:
    """Close and forget the registered camera. Safe to call repeatedly."""
    global _default_camera
    with _registry_lock:
        camera, _default_camera = _default_camera, None
    if camera is not None:
        camera.close()
        logger.info("Camera registry shut down")
