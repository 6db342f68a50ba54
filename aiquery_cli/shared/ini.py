"""Line scanner for the INI-like configuration format.

The scanner only understands syntax. It turns text into a stream of
``SectionHeader``, ``KeyValue`` and ``SkippedKey`` events and leaves the
decisions about which sections and keys mean something to the config builder.

Grammar, one item per line after stripping surrounding whitespace and a
trailing carriage return:

    # comment
    [section]
    key = "quoted \\" value"    # optional comment
    key = 'single quoted'
    key = bare-token            # optional comment
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Union

from .exceptions import ConfigParseError

MAX_CONFIG_LINE_LENGTH = 4096

_KEY_CHARS = frozenset("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_")
_QUOTES = ("'", '"')
_BLANKS = " \t"


@dataclass(frozen=True, slots=True)
class SectionHeader:
    name: str
    line_number: int


@dataclass(frozen=True, slots=True)
class KeyValue:
    key: str
    value: str
    line_number: int


@dataclass(frozen=True, slots=True)
class SkippedKey:
    """A key whose quoted value never closed; the caller warns and moves on."""

    key: str
    line_number: int


IniEvent = Union[SectionHeader, KeyValue, SkippedKey]


class _UnterminatedQuote(Exception):
    pass


def scan(content: str) -> Iterator[IniEvent]:
    """Yield events for every meaningful line in ``content``.

    Raises ConfigParseError for over-long lines and lines that are neither a
    section header nor a ``key = value`` pair.
    """
    for line_number, raw_line in enumerate(content.split("\n"), start=1):
        if len(raw_line) >= MAX_CONFIG_LINE_LENGTH:
            raise ConfigParseError(f"Line {line_number} is too long (limit {MAX_CONFIG_LINE_LENGTH} characters).")
        line = raw_line.rstrip("\r").strip(_BLANKS)
        if not line or line.startswith("#"):
            continue

        if line.startswith("["):
            closing = line.find("]")
            if closing != -1:
                yield SectionHeader(name=line[1:closing].strip(), line_number=line_number)
                continue

        try:
            key, value = parse_key_value(line, line_number)
        except _UnterminatedQuote as exc:
            yield SkippedKey(key=str(exc), line_number=line_number)
            continue
        yield KeyValue(key=key, value=value, line_number=line_number)


def parse_key_value(line: str, line_number: int = 0) -> tuple[str, str]:
    """Split a stripped ``key = value`` line into its key and decoded value."""
    pos = 0
    while pos < len(line) and line[pos] in _KEY_CHARS:
        pos += 1
    key = line[:pos]
    if not key:
        raise _format_error(line_number)

    pos = _skip_blanks(line, pos)
    if pos >= len(line) or line[pos] != "=":
        raise _format_error(line_number)
    pos = _skip_blanks(line, pos + 1)

    rest = line[pos:]
    if rest[:1] in _QUOTES:
        closing = find_closing_quote(rest, rest[0])
        if closing == -1:
            raise _UnterminatedQuote(key)
        value = unescape_quotes(rest[1:closing])
        trailer = rest[closing + 1 :].strip(_BLANKS)
    else:
        end = 0
        while end < len(rest) and rest[end] not in _BLANKS and rest[end] != "#":
            if rest[end] in _QUOTES:
                raise _format_error(line_number)
            end += 1
        value = rest[:end]
        trailer = rest[end:].strip(_BLANKS)

    if trailer and not trailer.startswith("#"):
        raise _format_error(line_number)
    return key, value


def find_closing_quote(value: str, quote: str) -> int:
    """Return the index of the first unescaped ``quote`` after position 0, or -1."""
    escaped = False
    for index in range(1, len(value)):
        char = value[index]
        if escaped:
            escaped = False
            continue
        if char == "\\":
            escaped = True
            continue
        if char == quote:
            return index
    return -1


def unescape_quotes(value: str) -> str:
    """Drop the backslash in ``\\"``, ``\\'`` and ``\\\\``; keep other escapes verbatim."""
    out: list[str] = []
    index = 0
    while index < len(value):
        char = value[index]
        if char == "\\" and index + 1 < len(value) and value[index + 1] in ("'", '"', "\\"):
            out.append(value[index + 1])
            index += 2
            continue
        out.append(char)
        index += 1
    return "".join(out)


def _skip_blanks(line: str, pos: int) -> int:
    while pos < len(line) and line[pos] in _BLANKS:
        pos += 1
    return pos


def _format_error(line_number: int) -> ConfigParseError:
    return ConfigParseError(f"Line {line_number} does not match INI format (expected [section] or key = value).")
