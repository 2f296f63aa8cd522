"""
histformat.py - Reading and writing shell history files

Two on-disk encodings are understood:

Plain / commented (bash with HISTTIMEFORMAT, or no timestamps at all)
    #1746142083
    cargo build --workspace --profile release

Extended (zsh EXTENDED_HISTORY)
    : 1746142083:0;cargo build --workspace --profile release

The format is decided once for the whole file: a single extended line anywhere
makes it an extended file. Plain handling also covers files without any
timestamp markers.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import Iterable, Iterator

# ============================================================================
# CONSTANTS & PATTERNS
# ============================================================================

PLAIN_TIMESTAMP_RE = re.compile(r"^#([0-9]{8}[0-9]*)$")
EXTENDED_LINE_RE = re.compile(r"^: ([0-9]{8}[0-9]*):([0-9]*);(.*)$")

MAX_TIMESTAMP = 2**32 - 1
CONTINUATION = "\\"


class TimestampOverflowError(ValueError):
    """A timestamp marker whose digits do not fit in 32 bits."""


class HistoryFormat(enum.Enum):
    PLAIN = "plain"
    EXTENDED = "extended"


# ============================================================================
# DATA STRUCTURES
# ============================================================================


@dataclass(frozen=True)
class CommandRecord:
    """One history entry as extracted from the file, before any filtering."""

    timestamp: int
    text: str


# ============================================================================
# PARSING
# ============================================================================


def split_lines(contents: str) -> list[str]:
    """→ Splits file contents on newlines only, dropping a trailing '\\r' per line"""
    lines = contents.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def parse_timestamp(digits: str) -> int:
    value = int(digits)
    if value > MAX_TIMESTAMP:
        raise TimestampOverflowError(f"Timestamp {digits} does not fit in 32 bits")
    return value


def parse_plain_marker(line: str) -> int | None:
    """→ Returns the timestamp of a '#<digits>' marker line, or None for any other line"""
    m = PLAIN_TIMESTAMP_RE.match(line)
    if m:
        return parse_timestamp(m.group(1))
    return None


def is_extended_history(lines: Iterable[str]) -> bool:
    return any(EXTENDED_LINE_RE.match(line) for line in lines)


def detect_format(lines: Iterable[str]) -> HistoryFormat:
    """→ Decides the format of the whole file from a full pre-scan"""
    return HistoryFormat.EXTENDED if is_extended_history(lines) else HistoryFormat.PLAIN


def iter_plain_records(lines: Iterable[str]) -> Iterator[CommandRecord]:
    """
    Yields one record per '#<timestamp>' marker, carrying the lines that preceded it.

    A marker closes the *previous* command, so the first record is whatever came
    before the first marker (usually empty, emitted at timestamp 0) and the last
    command is flushed after the loop. Empty records are yielded as-is; the
    filtering stage drops them.
    """
    timestamp = 0
    command: list[str] = []
    for line in lines:
        new_timestamp = parse_plain_marker(line)
        if new_timestamp is None:
            command.append(f"{line}\n")
            continue
        yield CommandRecord(timestamp, "".join(command))
        timestamp = new_timestamp
        command = []

    yield CommandRecord(timestamp, "".join(command))


def iter_extended_records(lines: Iterable[str]) -> Iterator[CommandRecord]:
    """
    Yields one record per ': <timestamp>:<duration>;<command>' line.

    Multi-line commands are stored by zsh with a trailing backslash on every line
    but the last; those lines are joined back together, keeping the backslashes,
    so the record re-emits unchanged. Running out of input mid-continuation ends
    the command where it is. The duration field is ignored.
    """
    it = iter(lines)
    for line in it:
        m = EXTENDED_LINE_RE.match(line)
        if not m:
            continue
        timestamp = parse_timestamp(m.group(1))
        command = m.group(3).strip()
        while command.endswith(CONTINUATION):
            continuation = next(it, None)
            if continuation is None:
                break
            command = f"{command}\n{continuation}"
        yield CommandRecord(timestamp, command.strip() + "\n")


def iter_records(lines: Iterable[str], fmt: HistoryFormat) -> Iterator[CommandRecord]:
    if fmt is HistoryFormat.EXTENDED:
        return iter_extended_records(lines)
    return iter_plain_records(lines)


# ============================================================================
# EMITTING
# ============================================================================


def escape_continuations(command: str) -> str:
    """
    Marks every line break of a multi-line command with a trailing backslash.

    zsh stores multi-line commands this way in extended history; without the
    markers only the first line would be read back. Lines that already end in a
    backslash (commands that came from extended history) are left alone.
    """
    lines = command[:-1].split("\n") if command.endswith("\n") else command.split("\n")
    marked = [
        line if line.endswith(CONTINUATION) else line + CONTINUATION for line in lines[:-1]
    ]
    return "\n".join([*marked, lines[-1]]) + ("\n" if command.endswith("\n") else "")


def format_record(timestamp: int, command: str, fmt: HistoryFormat) -> str:
    """→ Serializes one command (already newline-terminated) in the target format"""
    # Padded to 8 digits so a timestamp of 0 still reads back as a marker.
    if fmt is HistoryFormat.EXTENDED:
        return f": {timestamp:08d}:0;{escape_continuations(command)}"
    return f"#{timestamp:08d}\n{command}"


def emit_history(records: Iterable[tuple[int, str]], fmt: HistoryFormat) -> str:
    return "".join(format_record(timestamp, command, fmt) for timestamp, command in records)
