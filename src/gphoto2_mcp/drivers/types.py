"""Shared types for the gphoto2 driver layer.

Defines the transport selector and the immutable records produced by the
response parsers. The device layer re-exports these so callers never have
to reach into the driver package.

Enums:
    TransportKind: Which transport executes a command
    SettingType: Declared type of a camera setting

Dataclasses:
    SettingDescription: One parsed ``get-config`` response
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

__all__ = [
    "SettingDescription",
    "SettingType",
    "TransportKind",
]


class TransportKind(Enum):
    """Transport used to execute a command."""

    ONE_SHOT = "one_shot"  # Fresh gphoto2 process per command
    INTERACTIVE = "interactive"  # Persistent gphoto2 --shell child


class SettingType(Enum):
    """Declared type of a camera setting.

    gphoto2 widget types map as text -> TEXT, radio/menu -> OPTION,
    toggle -> TOGGLE, date -> DATE_TIME; anything else (range, button,
    section) is UNKNOWN and cannot be written.
    """

    UNKNOWN = "unknown"
    TEXT = "text"
    OPTION = "option"
    TOGGLE = "toggle"  # Written as "0" or "1"
    DATE_TIME = "date_time"  # Written as UNIX seconds

    @classmethod
    def from_widget_name(cls, widget: str) -> SettingType:
        """Map a gphoto2 widget type name to a SettingType.

        Args:
            widget: Type name as printed after ``Type:`` (any case).

        Returns:
            Matching SettingType, UNKNOWN when unrecognized.

        Example:
            >>> SettingType.from_widget_name("RADIO")
            <SettingType.OPTION: 'option'>
        """
        return _WIDGET_TYPES.get(widget.strip().upper(), cls.UNKNOWN)


_WIDGET_TYPES = {
    "TEXT": SettingType.TEXT,
    "RADIO": SettingType.OPTION,
    "MENU": SettingType.OPTION,
    "DATE": SettingType.DATE_TIME,
    "TOGGLE": SettingType.TOGGLE,
}


@dataclass(frozen=True)
class SettingDescription:
    """Schema and current value of one camera setting.

    Attributes:
        name: Path-like setting identifier (e.g. "/main/imgsettings/iso").
        label: Human-readable label reported by the camera.
        setting_type: Declared type.
        value: Current value in string form, as read by this describe.
        choices: Legal values; non-empty only for OPTION settings.
        read_only: True when gphoto2 flagged the setting read-only.
    """

    name: str
    label: str
    setting_type: SettingType
    value: str
    choices: tuple[str, ...] = field(default_factory=tuple)
    read_only: bool = False

    def to_dict(self) -> dict[str, object]:
        """Convert to a JSON-serializable dict."""
        return {
            "name": self.name,
            "label": self.label,
            "type": self.setting_type.value,
            "value": self.value,
            "choices": list(self.choices),
            "read_only": self.read_only,
        }
