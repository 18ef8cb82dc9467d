"""Error taxonomy and in-band error detection for gphoto2 output.

gphoto2 reports most operational failures as ordinary text on stdout while
still exiting with status 0 (or, in shell mode, not exiting at all). Every
transport therefore scans each response with detect_camera_errors() before
handing it to a parser.

Recognized formats:
    *** Error (-1): 'Could not detect any camera' ***
    *** Error (-105: 'Unknown model') ***
    *** Error ***
    <message on the following line>

Exceptions:
    CameraError: Base class, carries optional details text
    ProcessError: Spawn failure, non-zero exit, dead shell, read timeout
    DeviceError: Error announced by gphoto2 inside its output
    ValidationError: Value rejected against a discovered setting schema
    ParseError: Response does not have the mandatory shape
    SettingNotFoundError: Setting name not in the camera's catalogue
"""

from __future__ import annotations

import re

__all__ = [
    "CameraError",
    "DeviceError",
    "ParseError",
    "ProcessError",
    "SettingNotFoundError",
    "ValidationError",
    "detect_camera_errors",
]


class CameraError(Exception):
    """Base exception for all camera and gphoto2 failures.

    Attributes:
        details: Extra diagnostic text (gphoto2 messages, process output),
            or None.
    """

    def __init__(self, message: str, details: str | None = None) -> None:
        super().__init__(message)
        self.details = details


class ProcessError(CameraError):
    """Raised when the gphoto2 process cannot be run or misbehaves.

    Attributes:
        returncode: Exit status when the process exited, else None.
    """

    def __init__(
        self,
        message: str,
        details: str | None = None,
        returncode: int | None = None,
    ) -> None:
        super().__init__(message, details)
        self.returncode = returncode


class DeviceError(CameraError):
    """Raised when gphoto2 output contains an error announcement."""

    pass


class ValidationError(CameraError):
    """Raised when a value does not fit the discovered setting schema."""

    pass


class ParseError(CameraError):
    """Raised when a response lacks its mandatory structure."""

    pass


class SettingNotFoundError(CameraError):
    """Raised when a setting name is not in the camera's catalogue."""

    pass


# "*** Error (<code>): '<message>' ***", closing parenthesis before the
# colon or after the quoted message.
_INLINE_ERROR_PATTERN = re.compile(
    r"^\*\*\* Error \((?P<code>[-0-9]*)\)?: '(?P<message>.*)'\)? \*\*\*.*$",
    re.MULTILINE,
)

# "*** Error ***" header with the message on the next line.
_BLOCK_ERROR_PATTERN = re.compile(
    r"^\*\*\* Error \*\*\*.*?\r?\n(?P<message>.*)$",
    re.MULTILINE,
)

DEVICE_ERROR_MESSAGE = (
    "An error occurred during the processing of the command sent to the camera."
)


def find_camera_errors(output: str) -> list[str]:
    """Return every error message announced in gphoto2 output.

    Inline errors come first, then two-line block errors, each in order of
    appearance.

    Args:
        output: Raw text written by gphoto2.

    Returns:
        Messages without the surrounding markers, empty when none found.

    Example:
        >>> find_camera_errors("*** Error (-1): 'Could not detect any camera' ***")
        ['Could not detect any camera']
    """
    messages = [
        match.group("message").strip()
        for match in _INLINE_ERROR_PATTERN.finditer(output)
    ]
    messages.extend(
        match.group("message").strip()
        for match in _BLOCK_ERROR_PATTERN.finditer(output)
    )
    return messages


def detect_camera_errors(output: str) -> None:
    """Raise DeviceError when gphoto2 output announces an error.

    All announcements found are joined with newlines into the exception's
    details so a multi-error response is reported in one failure.

    Args:
        output: Raw text written by gphoto2.

    Returns:
        None when the output is clean.

    Raises:
        DeviceError: If at least one error announcement is present.

    Example:
        >>> detect_camera_errors("Label: ISO Speed")  # no-op
        >>> detect_camera_errors("*** Error ***\\nPTP Device Busy")
        Traceback (most recent call last):
        ...
        DeviceError: An error occurred during the processing of ...
    """
    messages = find_camera_errors(output)
    if messages:
        raise DeviceError(DEVICE_ERROR_MESSAGE, details="\n".join(messages))
