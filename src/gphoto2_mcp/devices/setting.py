"""Camera settings: a lazy, self-describing property model.

gphoto2 exposes a camera's configuration as a tree of named widgets.
Nothing about a widget is known up front: CameraSetting asks the camera
for its schema (label, type, choices) on first use and validates every
write against that schema before any command is queued.

Lifecycle:
    Uninitialized: created by list_settings() with only a name.
    Populated: after the first describe(). The schema is kept for the
        object's lifetime; the current value is re-read by every
        describe() because the camera can change it on its own (e.g. a
        capture, the mode dial, the battery draining).

Every device round-trip is an explicit call: describe(), get_value() and
set_value(). The schema accessors (label, setting_type, choices) describe
at most once.

Example:
    settings = list_settings(session)
    iso = next(s for s in settings if s.name == CameraSettings.ISO_SPEED)

    print(iso.label, iso.choices)   # one get-config round-trip
    print(iso.get_value())          # another, always fresh
    iso.set_value("800")            # validated, then set-config
"""

from __future__ import annotations

import re
import threading
from dataclasses import replace

from gphoto2_mcp.drivers.errors import ValidationError
from gphoto2_mcp.drivers.parsing import (
    parse_response,
    parse_setting_description,
    parse_setting_names,
)
from gphoto2_mcp.drivers.session import CommandSession
from gphoto2_mcp.drivers.types import SettingDescription, SettingType
from gphoto2_mcp.observability import get_logger

__all__ = [
    "CameraSetting",
    "CameraSettings",
    "list_settings",
    "validate_value",
]

logger = get_logger(__name__)

_DIGITS = re.compile(r"[0-9]+")
_TOGGLE_VALUES = ("0", "1")
_LINE_BREAKS = re.compile(r"[\r\n]")


class CameraSettings:
    """Paths of well-known settings found on most cameras.

    Availability depends on the camera model; check the catalogue returned
    by list_settings() before relying on one.
    """

    DATE_TIME = "/main/settings/datetime"
    OWNER_NAME = "/main/settings/ownername"
    COPYRIGHT = "/main/settings/copyright"
    SERIAL_NUMBER = "/main/status/serialnumber"
    MANUFACTURER = "/main/status/manufacturer"
    CAMERA_MODEL = "/main/status/cameramodel"
    DEVICE_VERSION = "/main/status/deviceversion"
    BATTERY_LEVEL = "/main/status/batterylevel"
    LENS_NAME = "/main/status/lensname"
    IMAGE_FORMAT = "/main/status/imageformat"
    ISO_SPEED = "/main/imgsettings/iso"
    WHITE_BALANCE = "/main/imgsettings/whitebalance"
    COLOR_SPACE = "/main/imgsettings/colorspace"
    EXPOSURE_COMPENSATION = "/main/imgsettings/exposurecompensation"
    SHUTTER_SPEED = "/main/capturesettings/shutterspeed"
    APERTURE = "/main/capturesettings/aperture"
    FOCUS_MODE = "/main/capturesettings/focusmode"
    DRIVE_MODE = "/main/capturesettings/drivemode"
    PICTURE_STYLE = "/main/capturesettings/picturestyle"
    METERING_MODE = "/main/capturesettings/meteringmode"
    BRACKET_MODE = "/main/capturesettings/bracketmode"
    AUTO_EXPOSURE_BRACKETING = "/main/capturesettings/aeb"


def validate_value(description: SettingDescription, value: str) -> None:
    """Check a value against a setting's schema.

    Rules by type:
        TEXT: anything.
        OPTION: exact (case-sensitive) member of the choices.
        TOGGLE: "0" or "1".
        DATE_TIME: one or more ASCII digits (UNIX seconds).
        UNKNOWN: never writable.
    Read-only settings reject every value. No type accepts a line break,
    since the value is sent as one shell command line.

    Args:
        description: Schema from a previous describe.
        value: Candidate value.

    Raises:
        ValidationError: If the value does not fit.

    Example:
        >>> iso = SettingDescription(
        ...     "/main/imgsettings/iso", "ISO Speed", SettingType.OPTION,
        ...     "400", ("100", "400"),
        ... )
        >>> validate_value(iso, "400")
        >>> validate_value(iso, "200")
        Traceback (most recent call last):
        ...
        ValidationError: '200' is not a valid choice for /main/imgsettings/iso
    """
    name = description.name

    if description.read_only:
        raise ValidationError(f"{name} is read-only", details=value)

    if _LINE_BREAKS.search(value):
        raise ValidationError(
            f"Value for {name} must not contain line breaks", details=value
        )

    setting_type = description.setting_type
    if setting_type is SettingType.TEXT:
        return
    if setting_type is SettingType.OPTION:
        if value not in description.choices:
            raise ValidationError(
                f"{value!r} is not a valid choice for {name}",
                details=", ".join(description.choices),
            )
        return
    if setting_type is SettingType.TOGGLE:
        if value not in _TOGGLE_VALUES:
            raise ValidationError(f"{name} is a toggle and accepts only 0 or 1")
        return
    if setting_type is SettingType.DATE_TIME:
        if not _DIGITS.fullmatch(value):
            raise ValidationError(
                f"{name} expects a UNIX timestamp in digits, got {value!r}"
            )
        return

    raise ValidationError(f"{name} has an unknown type and cannot be set")


class CameraSetting:
    """One named camera setting bound to a command session.

    Thread-safe: concurrent describes are serialized by the session; the
    cached schema is guarded by a lock.
    """

    def __init__(self, name: str, session: CommandSession) -> None:
        """Create an uninitialized setting.

        Args:
            name: Setting path, e.g. "/main/imgsettings/iso".
            session: Session all commands go through.
        """
        self.name = name
        self._session = session
        self._schema: SettingDescription | None = None
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        state = "populated" if self.is_populated else "uninitialized"
        return f"CameraSetting({self.name!r}, {state})"

    @property
    def is_populated(self) -> bool:
        """True once the schema has been read."""
        return self._schema is not None

    def describe(self) -> SettingDescription:
        """Query the camera for this setting.

        Issues one interactive ``get-config`` command. The first call
        fixes the schema; every call refreshes the value.

        Returns:
            Schema from the first describe with the value just read.

        Raises:
            DeviceError: gphoto2 reported an error (e.g. unknown setting).
            ParseError: Response lacks the label, type or current line.
            ProcessError: The shell could not be run.
        """
        output = self._session.execute(f"get-config {self.name}")
        fresh = parse_response(parse_setting_description, output, self.name)

        with self._lock:
            if self._schema is None:
                self._schema = fresh
                logger.debug(
                    "Setting described",
                    setting=self.name,
                    type=fresh.setting_type.value,
                    choices=len(fresh.choices),
                )
            return replace(self._schema, value=fresh.value)

    def _ensure_schema(self) -> SettingDescription:
        schema = self._schema
        if schema is None:
            return self.describe()
        return schema

    @property
    def label(self) -> str:
        """Human-readable label (describes once on first access)."""
        return self._ensure_schema().label

    @property
    def setting_type(self) -> SettingType:
        """Declared type (describes once on first access)."""
        return self._ensure_schema().setting_type

    @property
    def choices(self) -> tuple[str, ...]:
        """Legal values for OPTION settings (describes once on first access)."""
        return self._ensure_schema().choices

    @property
    def read_only(self) -> bool:
        """True if the camera refuses writes (describes once on first access)."""
        return self._ensure_schema().read_only

    def get_value(self) -> str:
        """Read the current value from the camera. Always a round-trip."""
        return self.describe().value

    def set_value(self, value: str) -> None:
        """Validate and write a new value.

        The schema is read first if unknown; validation happens before
        anything is queued, so an invalid value never reaches the camera.

        Args:
            value: New value in string form.

        Raises:
            ValidationError: Value does not fit the schema.
            DeviceError: The camera rejected the write.
            ProcessError: The shell could not be run.
        """
        validate_value(self._ensure_schema(), value)
        self._session.execute(f"set-config {self.name}={value}")
        logger.info("Setting changed", setting=self.name, value=value)


def list_settings(session: CommandSession) -> list[CameraSetting]:
    """List every setting the camera exposes.

    One ``list-config`` round-trip regardless of how many settings exist;
    each returned setting is uninitialized.

    Args:
        session: Session for the camera.

    Returns:
        Settings in the order gphoto2 lists them.
    """
    output = session.execute("list-config")
    names = parse_response(parse_setting_names, output)
    return [CameraSetting(name, session) for name in names]
