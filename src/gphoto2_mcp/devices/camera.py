"""Camera device handle.

Aggregates one CommandSession, the abilities gphoto2 reports for the
model, and the catalogue of settings. External code talks to a camera
only through this handle; every command it issues is serialized by the
session.

A Camera is usable only after initialize() has completed both discovery
steps (abilities, then the settings catalogue). Camera.open() builds the
session from the driver factory and initializes in one call, so callers
never observe a half-initialized handle.

Example:
    from gphoto2_mcp.devices import Camera, CameraSettings

    with Camera.open("Canon EOS 700D", "usb:001,004") as camera:
        print(camera.can_be_configured)
        iso = camera.get_setting(CameraSettings.ISO_SPEED)
        iso.set_value("800")
"""

from __future__ import annotations

from types import TracebackType
from typing import TYPE_CHECKING, Any

from gphoto2_mcp.drivers.errors import CameraError, SettingNotFoundError
from gphoto2_mcp.drivers.parsing import parse_abilities, parse_response
from gphoto2_mcp.drivers.session import CommandSession
from gphoto2_mcp.devices.setting import CameraSetting, list_settings
from gphoto2_mcp.observability import LogContext, get_logger

if TYPE_CHECKING:
    from gphoto2_mcp.drivers.config import DriverFactory

__all__ = ["Camera"]

logger = get_logger(__name__)

ABILITIES_COMMAND = "--abilities"

# Ability names and values as upper-cased by parse_abilities()
CAPTURE_CHOICES = "CAPTURE CHOICES"
CONFIGURATION_SUPPORT = "CONFIGURATION SUPPORT"
DELETE_SELECTED_FILES = "DELETE SELECTED FILES ON CAMERA"
DELETE_ALL_FILES = "DELETE ALL FILES ON CAMERA"
FILE_PREVIEW_SUPPORT = "FILE PREVIEW (THUMBNAIL) SUPPORT"
FILE_UPLOAD_SUPPORT = "FILE UPLOAD SUPPORT"
YES = "YES"


class Camera:
    """Handle for one camera reached through gphoto2.

    Attributes:
        name: Camera model as passed to ``--camera``.
        port: Port path as passed to ``--port``.

    Thread Safety:
        All methods may be called from any thread once initialized.
        Device access is serialized by the session.
    """

    def __init__(self, name: str, port: str, session: CommandSession) -> None:
        """Bind a handle to an existing session without any I/O.

        Call initialize() (or use Camera.open()) before anything else.

        Args:
            name: Camera model.
            port: Port path.
            session: Session whose transports already carry the camera's
                standard arguments.
        """
        self.name = name
        self.port = port
        self._session = session
        self._abilities: dict[str, list[str]] = {}
        self._settings: list[CameraSetting] = []
        self._settings_by_name: dict[str, CameraSetting] = {}
        self._initialized = False
        self._closed = False

    @classmethod
    def open(
        cls,
        name: str,
        port: str,
        factory: DriverFactory | None = None,
    ) -> Camera:
        """Create a session for a camera and initialize the handle.

        Args:
            name: Camera model.
            port: Port path.
            factory: Driver factory; the global one when None.

        Returns:
            Initialized Camera.

        Raises:
            CameraError: If discovery fails. The session is closed.
        """
        if factory is None:
            from gphoto2_mcp.drivers.config import get_factory

            factory = get_factory()

        camera = cls(name, port, factory.create_session(name, port))
        camera.initialize()
        return camera

    def initialize(self) -> Camera:
        """Discover abilities and settings.

        Runs ``--abilities`` through the one-shot transport, then lists
        the settings through the shell. On any failure the session is
        closed and the error re-raised.

        Returns:
            self, for chaining.

        Raises:
            CameraError: Discovery failed.
        """
        with LogContext(camera=self.name, port=self.port):
            try:
                output = self._session.execute(ABILITIES_COMMAND, interactive=False)
                abilities = parse_response(parse_abilities, output)
                settings = list_settings(self._session)
            except CameraError as e:
                logger.error(
                    "Camera initialization failed",
                    error_type=type(e).__name__,
                    error=str(e),
                    details=e.details,
                )
                self.close()
                raise
            except BaseException:
                self.close()
                raise

            self._abilities = abilities
            self._settings = settings
            self._settings_by_name = {setting.name: setting for setting in settings}
            self._initialized = True
            logger.info(
                "Camera initialized",
                abilities=len(abilities),
                settings=len(settings),
            )
        return self

    @property
    def session(self) -> CommandSession:
        return self._session

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def abilities(self) -> dict[str, list[str]]:
        """Ability map (copy): upper-cased name to upper-cased values."""
        return {name: list(values) for name, values in self._abilities.items()}

    def _has_ability(self, name: str, value: str) -> bool:
        return value in self._abilities.get(name, [])

    @property
    def can_capture_images(self) -> bool:
        return self._has_ability(CAPTURE_CHOICES, "IMAGE")

    @property
    def can_capture_previews(self) -> bool:
        return self._has_ability(CAPTURE_CHOICES, "PREVIEW")

    @property
    def can_be_configured(self) -> bool:
        return self._has_ability(CONFIGURATION_SUPPORT, YES)

    @property
    def can_delete_files(self) -> bool:
        return self._has_ability(DELETE_SELECTED_FILES, YES)

    @property
    def can_delete_all_files(self) -> bool:
        return self._has_ability(DELETE_ALL_FILES, YES)

    @property
    def can_preview_files(self) -> bool:
        return self._has_ability(FILE_PREVIEW_SUPPORT, YES)

    @property
    def can_upload_files(self) -> bool:
        return self._has_ability(FILE_UPLOAD_SUPPORT, YES)

    @property
    def settings(self) -> list[CameraSetting]:
        """Settings catalogue in gphoto2's order (copy)."""
        return list(self._settings)

    def get_setting(self, name: str) -> CameraSetting:
        """Look up a catalogued setting by path.

        Raises:
            SettingNotFoundError: If the camera does not expose it.
        """
        try:
            return self._settings_by_name[name]
        except KeyError:
            raise SettingNotFoundError(
                f"Camera {self.name} has no setting {name}"
            ) from None

    def has_setting(self, name: str) -> bool:
        return name in self._settings_by_name

    def info(self) -> dict[str, Any]:
        """Serializable summary: identity, capability flags, catalogue size."""
        return {
            "name": self.name,
            "port": self.port,
            "initialized": self._initialized,
            "capabilities": {
                "can_capture_images": self.can_capture_images,
                "can_capture_previews": self.can_capture_previews,
                "can_be_configured": self.can_be_configured,
                "can_delete_files": self.can_delete_files,
                "can_delete_all_files": self.can_delete_all_files,
                "can_preview_files": self.can_preview_files,
                "can_upload_files": self.can_upload_files,
            },
            "abilities": self.abilities,
            "setting_count": len(self._settings),
        }

    def close(self) -> None:
        """Close the session and its shell. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._session.close()
        logger.info("Camera closed", camera=self.name, port=self.port)

    def __enter__(self) -> Camera:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Camera(name={self.name!r}, port={self.port!r})"
