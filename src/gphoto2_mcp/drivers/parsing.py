"""Response parsers for gphoto2 text output.

Pure functions and a small state machine; nothing here performs I/O.

Shell framing:
    In ``--shell`` mode gphoto2 never closes its output, so the end of a
    response is recognized by the prompt marker ``gphoto2:`` coming back.
    The first line the reader sees is the banner prompt (or the remainder
    of the previous prompt) and the second is the echoed command; both are
    discarded, as are blank lines. A prompt-looking line only terminates
    the response once both have been read.

    Known ambiguity: a body line that itself starts with ``gphoto2:``
    (e.g. a setting value) ends the response early. gphoto2 offers no
    framing that would tell the two apart.

Record parsers:
    parse_abilities: ``--abilities`` block -> {NAME: [VALUES]}
    parse_setting_names: ``list-config`` -> [names]
    parse_setting_description: ``get-config <name>`` -> SettingDescription

Example:
    >>> frame_shell_response("gphoto2: {/} \\nlist-config\\n/main/a\\ngphoto2: ")
    ['/main/a']
"""

from __future__ import annotations

import re
from collections.abc import Callable
from enum import Enum
from typing import Any, TypeVar

from gphoto2_mcp.drivers.errors import CameraError, ParseError
from gphoto2_mcp.drivers.types import SettingDescription, SettingType

__all__ = [
    "PROMPT_MARKER",
    "ShellResponseFramer",
    "ShellState",
    "frame_shell_response",
    "parse_abilities",
    "parse_response",
    "parse_setting_description",
    "parse_setting_names",
]

#: Prompt printed by ``gphoto2 --shell`` when it is ready for a command.
PROMPT_MARKER = "gphoto2:"

_CHOICE_PATTERN = re.compile(r"^Choice: [0-9]+ (?P<choice>.+)$")
_CURRENT_PREFIX = "Current:"
_READONLY_PREFIX = "Readonly:"

T = TypeVar("T")


# =============================================================================
# Shell response framing
# =============================================================================


class ShellState(Enum):
    """Position of the framer within one shell response."""

    BANNER = "banner"  # First line: banner prompt or rest of previous prompt
    ECHO = "echo"  # Second line: the command echoed back
    BODY = "body"  # Response lines until the prompt reappears
    DONE = "done"  # Terminating prompt seen


class ShellResponseFramer:
    """Incremental framer for one interactive gphoto2 response.

    Feed characters as they arrive; feed() returns True as soon as the
    terminating prompt has been recognized. Reading must stop there: the
    rest of the prompt line stays in the pipe and becomes the BANNER line
    of the next response.

    Example:
        framer = ShellResponseFramer()
        while not framer.feed(stdout.read(1)):
            pass
        text = framer.response()
    """

    def __init__(self, prompt: str = PROMPT_MARKER) -> None:
        """Create a framer in the BANNER state.

        Args:
            prompt: Prompt marker; matched case-insensitively at line start.
        """
        self._prompt = prompt.upper()
        self._state = ShellState.BANNER
        self._current = ""
        self._lines: list[str] = []
        self._line_number = 1

    @property
    def state(self) -> ShellState:
        """Current framing state."""
        return self._state

    @property
    def line_number(self) -> int:
        """1-based number of the line currently being read."""
        return self._line_number

    @property
    def lines(self) -> list[str]:
        """Retained body lines so far (copy)."""
        return list(self._lines)

    @property
    def done(self) -> bool:
        """True once the terminating prompt has been recognized."""
        return self._state is ShellState.DONE

    def feed(self, char: str) -> bool:
        """Consume one character of shell output.

        Carriage returns are ignored so both LF and CRLF output frame the
        same way.

        Args:
            char: Single character read from the child's stdout.

        Returns:
            True when the response is complete.

        Raises:
            RuntimeError: If called after the response completed.
        """
        if self._state is ShellState.DONE:
            raise RuntimeError("Response already complete")

        if char == "\r":
            return False

        if char == "\n":
            self._complete_line()
        else:
            self._current += char

        if self._state is ShellState.BODY and self._current.upper().startswith(
            self._prompt
        ):
            self._state = ShellState.DONE
        return self.done

    def feed_text(self, text: str) -> bool:
        """Feed characters until the text is used up or the response ends.

        Returns:
            True when the response is complete. Characters after the
            terminating prompt are not consumed.
        """
        for char in text:
            if self.feed(char):
                return True
        return False

    def _complete_line(self) -> None:
        """Finish the current line and advance the state."""
        if self._state is ShellState.BODY and self._current.strip():
            self._lines.append(self._current)

        self._current = ""
        self._line_number += 1

        if self._state is ShellState.BANNER:
            self._state = ShellState.ECHO
        elif self._state is ShellState.ECHO:
            self._state = ShellState.BODY

    def response(self, separator: str = "\n") -> str:
        """Join the retained lines into the response text."""
        return separator.join(self._lines)


def frame_shell_response(text: str, prompt: str = PROMPT_MARKER) -> list[str]:
    """Frame a complete captured shell transcript.

    Args:
        text: Output starting at the banner line.
        prompt: Prompt marker.

    Returns:
        Body lines of the first response in the transcript.

    Raises:
        ParseError: If the transcript ends before the terminating prompt.

    Example:
        >>> frame_shell_response(
        ...     "gphoto2: ...\\ncommand_echo\\nLine A\\nLine B\\ngphoto2: /\\n"
        ... )
        ['Line A', 'Line B']
    """
    framer = ShellResponseFramer(prompt)
    if not framer.feed_text(text):
        raise ParseError(
            "Shell output ended before the prompt reappeared",
            details=text,
        )
    return framer.lines


# =============================================================================
# Record parsers
# =============================================================================


def parse_abilities(output: str) -> dict[str, list[str]]:
    """Parse ``gphoto2 --abilities`` output into an ability map.

    Each line is ``name : value``. A line with an empty name continues the
    value list of the previous ability. Names and values are upper-cased so
    capability checks are case-insensitive. Lines that do not split into
    exactly two fields are skipped.

    Args:
        output: Text returned by the one-shot transport.

    Returns:
        Ordered mapping of ability name to its values.

    Example:
        >>> parse_abilities(
        ...     "Capture choices                  :\\n"
        ...     "                                 : Image\\n"
        ...     "                                 : Preview\\n"
        ...     "Configuration support            : yes\\n"
        ... )
        {'CAPTURE CHOICES': ['', 'IMAGE', 'PREVIEW'], 'CONFIGURATION SUPPORT': ['YES']}
    """
    abilities: dict[str, list[str]] = {}
    current_name = ""

    for line in output.splitlines():
        if not line.strip():
            continue

        fields = line.split(":")
        if len(fields) != 2:
            continue

        name = fields[0].strip().upper()
        value = fields[1].strip().upper()

        if name:
            abilities.setdefault(name, []).append(value)
            current_name = name
        elif current_name:
            abilities[current_name].append(value)

    return abilities


def parse_setting_names(output: str) -> list[str]:
    """Parse ``list-config`` output: one setting name per non-blank line."""
    return [line.strip() for line in output.splitlines() if line.strip()]


def _header_value(line: str, what: str, output: str) -> str:
    """Return the text after the first colon of a mandatory header line."""
    _, colon, rest = line.partition(":")
    if not colon:
        raise ParseError(f"Malformed {what} line in setting description", output)
    return rest.strip()


def parse_setting_description(name: str, output: str) -> SettingDescription:
    """Parse a ``get-config <name>`` response.

    Layout:
        Label: <label>
        [Readonly: 0|1]
        Type: <widget type>
        Current: <value>
        Choice: <n> <value>      (zero or more, OPTION settings only)

    The label, type and current value lines are mandatory and positional.
    The optional Readonly line printed by newer gphoto2 releases is
    accepted before the type. Every later line that does not match the
    choice shape (Printable:, Help:, Bottom:, ...) is skipped.

    Args:
        name: Setting name the command was issued for.
        output: Response text (blank lines already removed or not).

    Returns:
        SettingDescription for the setting.

    Raises:
        ParseError: If a mandatory line is missing or malformed.

    Example:
        >>> d = parse_setting_description(
        ...     "/main/imgsettings/iso",
        ...     "Label: ISO Speed\\nType: RADIO\\nCurrent: 400\\n"
        ...     "Choice: 0 100\\nChoice: 1 400\\n",
        ... )
        >>> d.setting_type, d.label, d.value, d.choices
        (<SettingType.OPTION: 'option'>, 'ISO Speed', '400', ('100', '400'))
    """
    lines = [line.strip() for line in output.splitlines() if line.strip()]

    if not lines:
        raise ParseError(f"Empty description for setting {name}", output)
    label = _header_value(lines[0], "label", output)
    index = 1

    read_only = False
    if index < len(lines) and lines[index].startswith(_READONLY_PREFIX):
        read_only = lines[index][len(_READONLY_PREFIX) :].strip() == "1"
        index += 1

    if index >= len(lines):
        raise ParseError(f"Missing type line for setting {name}", output)
    setting_type = SettingType.from_widget_name(
        _header_value(lines[index], "type", output)
    )
    index += 1

    if index >= len(lines) or not lines[index].startswith(_CURRENT_PREFIX):
        raise ParseError(f"Missing current value for setting {name}", output)
    value = lines[index][len(_CURRENT_PREFIX) :].strip()
    index += 1

    choices: list[str] = []
    if setting_type is SettingType.OPTION:
        for line in lines[index:]:
            match = _CHOICE_PATTERN.match(line)
            if match is None:
                continue
            choice = match.group("choice")
            if choice.strip():
                choices.append(choice)

    return SettingDescription(
        name=name,
        label=label,
        setting_type=setting_type,
        value=value,
        choices=tuple(choices),
        read_only=read_only,
    )


def parse_response(parser: Callable[..., T], output: str, *args: Any) -> T:
    """Run a parser, converting unexpected failures into ParseError.

    CameraError subclasses raised by the parser pass through unchanged;
    anything else is wrapped with the raw output attached and the original
    exception chained.

    Args:
        parser: Parser taking the output text as its last argument.
        output: Raw response text.
        *args: Leading arguments for the parser (e.g. a setting name).

    Returns:
        Whatever the parser returns.

    Raises:
        CameraError: From the parser, or ParseError wrapping other errors.
    """
    try:
        return parser(*args, output)
    except CameraError:
        raise
    except Exception as e:
        raise ParseError(
            f"Could not parse gphoto2 response: {e}", details=output
        ) from e
