"""gphoto2 driver layer: processes, transports, framing and the command session."""

from gphoto2_mcp.drivers.config import (
    DriverConfig,
    DriverFactory,
    DriverMode,
    configure,
    get_factory,
    use_digital_twin,
    use_hardware,
)
from gphoto2_mcp.drivers.errors import (
    CameraError,
    DeviceError,
    ParseError,
    ProcessError,
    SettingNotFoundError,
    ValidationError,
    detect_camera_errors,
)
from gphoto2_mcp.drivers.process import (
    ChildProcess,
    ProcessLauncher,
    SubprocessLauncher,
)
from gphoto2_mcp.drivers.session import CommandSession
from gphoto2_mcp.drivers.transports import (
    InteractiveTransport,
    OneShotTransport,
    build_standard_args,
)
from gphoto2_mcp.drivers.twin import DigitalTwinConfig, DigitalTwinLauncher
from gphoto2_mcp.drivers.types import SettingDescription, SettingType, TransportKind

__all__ = [
    # Configuration
    "DriverConfig",
    "DriverFactory",
    "DriverMode",
    "configure",
    "get_factory",
    "use_digital_twin",
    "use_hardware",
    # Errors
    "CameraError",
    "DeviceError",
    "ParseError",
    "ProcessError",
    "SettingNotFoundError",
    "ValidationError",
    "detect_camera_errors",
    # Processes
    "ChildProcess",
    "ProcessLauncher",
    "SubprocessLauncher",
    "DigitalTwinConfig",
    "DigitalTwinLauncher",
    # Transports and session
    "CommandSession",
    "InteractiveTransport",
    "OneShotTransport",
    "build_standard_args",
    # Types
    "SettingDescription",
    "SettingType",
    "TransportKind",
]
