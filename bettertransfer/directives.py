"""bettertransfer/directives.py

Extracts tool-call directives embedded in model output.

A directive looks like::

    <TOOL_CALL>find_internships(major="Biology", limit="3")</TOOL_CALL>

The argument list is either empty or a comma-separated sequence of
``key="value"`` pairs.  Anything else inside the wrapper makes the directive
malformed, and malformed directives are skipped.
"""

from __future__ import annotations

# Standard Library
import dataclasses
import logging
import re

logger = logging.getLogger(__name__)

ParamValue = str | int | float

MAX_ARGS_LENGTH = 4096
MAX_VALUE_LENGTH = 1024

# One <TOOL_CALL>...</TOOL_CALL> span at a time; the body never crosses a
# wrapper tag, so a broken directive cannot swallow the one after it.
_WRAPPER_PATTERN: re.Pattern[str] = re.compile(
    r"<TOOL_CALL>((?:(?!</?TOOL_CALL>).){0,%d})</TOOL_CALL>" % (MAX_ARGS_LENGTH + 256)
)
_CALL_PATTERN: re.Pattern[str] = re.compile(r"([A-Za-z0-9_]+)\((.*)\)")
_PARAM_PATTERN: re.Pattern[str] = re.compile(r'([A-Za-z0-9_]+)="([^"]*)"')
_ARGS_PATTERN: re.Pattern[str] = re.compile(
    r'\s*(?:[A-Za-z0-9_]+="[^"]*"(?:\s*,\s*[A-Za-z0-9_]+="[^"]*")*)?\s*'
)
_NUMBER_PATTERN: re.Pattern[str] = re.compile(
    r"[+-]?(?:\d+(?P<frac>\.\d*)?|(?P<lead>\.\d+))(?P<exp>[eE][+-]?\d+)?",
    re.ASCII,
)


@dataclasses.dataclass(frozen=True, slots=True)
class ToolCall:
    """One tool invocation requested by the model.

    Attributes:
        tool_name: Tool identifier as written by the model.
        params: Parameter values, numeric where the text is a plain number.
    """

    tool_name: str
    params: dict[str, ParamValue] = dataclasses.field(default_factory=dict)


def coerce_value(raw: str) -> ParamValue:
    """Convert a quoted parameter value to a number when it is one.

    ``"5"`` becomes ``5``, ``"2.5"`` becomes ``2.5``; ``"Biology"`` and
    ``""`` stay strings.
    """
    match = _NUMBER_PATTERN.fullmatch(raw)
    if match is None:
        return raw
    if match.group("frac") or match.group("lead") or match.group("exp"):
        return float(raw)
    return int(raw)


def parse_tool_calls(text: str) -> list[ToolCall]:
    """Return every well-formed directive in ``text``, left to right.

    Args:
        text: Raw assistant reply.

    Returns:
        Parsed tool calls; empty when the reply contains none.
    """
    calls: list[ToolCall] = []
    for wrapper in _WRAPPER_PATTERN.finditer(text):
        match = _CALL_PATTERN.fullmatch(wrapper.group(1))
        if match is None:
            logger.debug("Skipping malformed directive: %r", wrapper.group(1)[:80])
            continue
        tool_name, args = match.group(1), match.group(2)

        if len(args) > MAX_ARGS_LENGTH or not _ARGS_PATTERN.fullmatch(args):
            logger.debug("Skipping malformed directive for %s: %r", tool_name, args[:80])
            continue

        params: dict[str, ParamValue] = {}
        oversized = False
        for key, value in _PARAM_PATTERN.findall(args):
            if len(value) > MAX_VALUE_LENGTH:
                oversized = True
                break
            params[key] = coerce_value(value)
        if oversized:
            logger.warning("Skipping directive for %s: parameter value too long", tool_name)
            continue

        calls.append(ToolCall(tool_name=tool_name, params=params))
    return calls
