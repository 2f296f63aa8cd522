"""
histfilter.py - Sanitizing, deduplicating and filtering history records

Every record goes through the same fixed sequence of steps:

1.  **Empty check:** empty records are dropped before anything else.
2.  **Redaction:** secrets (bearer tokens, password assignments) are replaced
    with a placeholder. Each rule sees the output of the previous one.
3.  **Gate:** the *redacted* text is dropped if it was already seen, matches an
    exclusion pattern, or is shorter than the minimum length.
4.  **Flagging:** accepted commands that still look sensitive are noted for the
    report. Flagging never removes anything.
5.  **Size classification:** big commands are noted for the report.
6.  **Keep:** the command is stored under its timestamp.

Because redaction happens before deduplication, two commands that differ only
in a password value collapse into one.

The rule lists live in `ShrinkConfig`, which can be loaded from a JSON file to
replace or extend the built-in defaults.
"""

from __future__ import annotations

import enum
import json
import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Iterable, Iterator

from histformat import CommandRecord, HistoryFormat, detect_format, iter_records

logger = logging.getLogger(__name__)

# ============================================================================
# CONFIGURATION & CONSTANTS
# ============================================================================

DEFAULT_MIN_LENGTH = 0
DEFAULT_BIG_THRESHOLD = 200

# My most common commands, found with:
#   grep -v '^#' $HISTFILE | awk '{count[$1]++} END {for (w in count) print count[w], w}' | sort -rn | head -n 20
# cd, git, l, vi, rm, mv, cat, docker, curl, echo, cp... over half of the history.
DEFAULT_EXCLUDE_PATTERNS: tuple[str, ...] = (
    # Common commands not worth keeping
    r"^echo ",
    r"^en ",
    r"^cd ",
    r"^cd$",
    r"^ls ",
    r"^ls$",
    r"^l ",
    r"^l$",
    r"^la ",
    r"^la$",
    r"^lt ",
    r"^lt$",
    r"^vi ",
    r"^md ",
    r"^rd ",
    r"^mv ",
    r"^rm ",
    r"^cp ",
    r"^ij ",
    r"^rr ",
    r"^s ",
    r"^type ",
    r"^sk8s ",
    r"^history",
    r"^fexpr ",
    r"^git add",
    r"^git pull",
    r"^gpull",
    r"^gst",
    r"^git status",
    r"^git checkout",
    r"^git mv",
    r"^git rm",
    r"^git diff",
    # All sk8s shortcuts (8l, 8h, 8logs)
    r"^8",
    r"help",
    # Commands with potential secrets
    r"echo.*\| *pbcopy",
    r"en .*\| *pbcopy",
    r"echo.*\| *clip.exe",
    r"en .*\| *clip.exe",
    r"echo.*\| *base64",
    r"en .*\| *base64",
)

DEFAULT_REDACTIONS: tuple[tuple[str, str], ...] = (
    (r"Authorization: Bearer [^'\"\n]*", "Authorization: Bearer xxx"),
    (r"password=\"[^$\n][^ \n]*", "password=XXX"),
    (r"password=[^$\n][^ \n]*", "password=XXX"),
    (r"password: ?[^ \n]*", "password: XXX"),
)

DEFAULT_FLAG_PATTERNS: tuple[str, ...] = (
    r"password",
    r"ssh",
    r"secret",
    r"base64",
    r"jasypt",
)


class ConfigError(ValueError):
    """Raised for an unreadable or malformed rules file."""


def _compile(pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ConfigError(f"Invalid regex pattern '{pattern}': {e}") from e


@dataclass(frozen=True)
class ShrinkConfig:
    """Immutable rule set for one run. Patterns are compiled once, up front."""

    exclude_patterns: tuple[re.Pattern[str], ...]
    redactions: tuple[tuple[re.Pattern[str], str], ...]
    flag_patterns: tuple[re.Pattern[str], ...]
    min_length: int = DEFAULT_MIN_LENGTH
    big_threshold: int = DEFAULT_BIG_THRESHOLD

    @classmethod
    def from_patterns(
        cls,
        exclude: Iterable[str] = DEFAULT_EXCLUDE_PATTERNS,
        redact: Iterable[tuple[str, str]] = DEFAULT_REDACTIONS,
        flag: Iterable[str] = DEFAULT_FLAG_PATTERNS,
        min_length: int = DEFAULT_MIN_LENGTH,
        big_threshold: int = DEFAULT_BIG_THRESHOLD,
    ) -> ShrinkConfig:
        return cls(
            exclude_patterns=tuple(_compile(p) for p in exclude),
            redactions=tuple((_compile(p), replacement) for p, replacement in redact),
            flag_patterns=tuple(_compile(p) for p in flag),
            min_length=min_length,
            big_threshold=big_threshold,
        )

    @classmethod
    def default(cls) -> ShrinkConfig:
        return cls.from_patterns()

    @classmethod
    def from_dict(cls, data: dict) -> ShrinkConfig:
        """
        Builds a config from a parsed rules file.

        Keys: "exclude", "redact" ([pattern, replacement] pairs), "flag",
        "min_length", "big_threshold", "extend_defaults". Missing lists fall
        back to the defaults; with "extend_defaults" the given lists are
        appended to the defaults instead of replacing them.
        """
        if not isinstance(data, dict):
            raise ConfigError("Rules file must contain a JSON object")

        extend = bool(data.get("extend_defaults", False))

        def rule_list(key: str, defaults: tuple) -> list:
            value = data.get(key)
            if value is None:
                return list(defaults)
            if not isinstance(value, list):
                raise ConfigError(f"'{key}' must be a list")
            return [*defaults, *value] if extend else value

        def pattern_list(key: str, defaults: tuple) -> list[str]:
            patterns = rule_list(key, defaults)
            for pattern in patterns:
                if not isinstance(pattern, str):
                    raise ConfigError(f"'{key}' entries must be strings: {pattern!r}")
            return patterns

        exclude = pattern_list("exclude", DEFAULT_EXCLUDE_PATTERNS)
        flag = pattern_list("flag", DEFAULT_FLAG_PATTERNS)
        redact = []
        for rule in rule_list("redact", DEFAULT_REDACTIONS):
            if (
                not isinstance(rule, (list, tuple))
                or len(rule) != 2
                or not all(isinstance(part, str) for part in rule)
            ):
                raise ConfigError(f"Redaction rule must be a [pattern, replacement] pair of strings: {rule!r}")
            redact.append((rule[0], rule[1]))

        thresholds = {"min_length": DEFAULT_MIN_LENGTH, "big_threshold": DEFAULT_BIG_THRESHOLD}
        for key in thresholds:
            value = data.get(key)
            if value is None:
                continue
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ConfigError(f"'{key}' must be a non-negative integer")
            thresholds[key] = value

        return cls.from_patterns(
            exclude=exclude,
            redact=redact,
            flag=flag,
            **thresholds,
        )

    @classmethod
    def from_file(cls, path: Path) -> ShrinkConfig:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise ConfigError(f"Error reading rules file '{path}': {e}") from e
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in rules file '{path}': {e}") from e
        return cls.from_dict(data)

    def with_overrides(self, min_length: int | None = None, big_threshold: int | None = None) -> ShrinkConfig:
        """→ Returns a copy with the given thresholds replaced (None keeps the current value)"""
        changes = {}
        if min_length is not None:
            changes["min_length"] = min_length
        if big_threshold is not None:
            changes["big_threshold"] = big_threshold
        return replace(self, **changes)


# ============================================================================
# DATA STRUCTURES
# ============================================================================


class Verdict(enum.Enum):
    KEPT = "kept"
    EMPTY = "empty"
    DUPLICATE = "duplicate"
    EXCLUDED = "excluded"
    TOO_SHORT = "too short"


@dataclass(frozen=True)
class FilteredRecord:
    """A record after redaction. `raw_text` is what the file actually contained."""

    timestamp: int
    text: str
    raw_text: str


@dataclass
class ShrinkResult:
    """Everything a run produced: the commands to write and what to report."""

    fmt: HistoryFormat
    commands: dict[int, list[str]]
    big_commands: dict[int, list[str]]
    flagged: list[str]
    flag_details: list[tuple[str, str]]
    counts: dict[Verdict, int] = field(default_factory=dict)

    def iter_commands(self) -> Iterator[tuple[int, str]]:
        """→ Yields (timestamp, command) by ascending timestamp, first-seen order within one"""
        for timestamp in sorted(self.commands):
            for command in self.commands[timestamp]:
                yield timestamp, command

    @property
    def records_read(self) -> int:
        return sum(self.counts.values())

    @property
    def kept(self) -> int:
        return self.counts.get(Verdict.KEPT, 0)


# ============================================================================
# PIPELINE STEPS
# ============================================================================


def redact_command(command: str, redactions: Iterable[tuple[re.Pattern[str], str]]) -> str:
    """→ Applies each redaction rule in turn to the output of the previous one"""
    filtered = command
    for regex, replacement in redactions:
        # Literal replacement, backslashes in it are not group references.
        new_filtered = regex.sub(lambda _m: replacement, filtered)
        if new_filtered != filtered:
            logger.debug("Replaced %s with %s in %s", regex.pattern, replacement, command.rstrip("\n"))
            filtered = new_filtered
    return filtered


def first_match(command: str, patterns: Iterable[re.Pattern[str]]) -> re.Pattern[str] | None:
    """→ Returns the first pattern found anywhere in the command, in list order"""
    return next((regex for regex in patterns if regex.search(command)), None)


def flag_message(regex: re.Pattern[str], command: str) -> str:
    command = command.rstrip("\n")
    return f"Flagged for '{regex.pattern}': {command}"


# ============================================================================
# AGGREGATION
# ============================================================================


class HistoryShrinker:
    """
    Feeds records through the pipeline and accumulates the survivors.

    `seen` and `commands` move in lockstep: a command is stored under its
    timestamp exactly when its redacted text enters `seen`.
    """

    def __init__(self, config: ShrinkConfig | None = None):
        self.config = config or ShrinkConfig.default()
        self.seen: set[str] = set()
        self.commands: dict[int, list[str]] = defaultdict(list)
        self.big_commands: dict[int, list[str]] = defaultdict(list)
        # message -> (pattern, command), in first-flagged order
        self.flagged: dict[str, tuple[str, str]] = {}
        self.counts: dict[Verdict, int] = {verdict: 0 for verdict in Verdict}

    def add(self, record: CommandRecord) -> Verdict:
        verdict = self._add(record)
        self.counts[verdict] += 1
        return verdict

    def _add(self, record: CommandRecord) -> Verdict:
        if not record.text:
            return Verdict.EMPTY

        filtered = FilteredRecord(
            timestamp=record.timestamp,
            text=redact_command(record.text, self.config.redactions),
            raw_text=record.text,
        )
        command = filtered.text

        if command in self.seen:
            return Verdict.DUPLICATE
        if regex := first_match(command, self.config.exclude_patterns):
            logger.debug("Cmd matches %s: %s", regex.pattern, command.rstrip("\n"))
            return Verdict.EXCLUDED
        if len(command.rstrip("\n")) < self.config.min_length:
            logger.debug("Cmd shorter than %d: %s", self.config.min_length, command.rstrip("\n"))
            return Verdict.TOO_SHORT
        self.seen.add(command)

        if regex := first_match(command, self.config.flag_patterns):
            self.flagged[flag_message(regex, command)] = (regex.pattern, command)

        if len(command) >= self.config.big_threshold:
            self.big_commands[len(command)].append(command)

        self.commands[filtered.timestamp].append(command)
        return Verdict.KEPT

    def add_all(self, records: Iterable[CommandRecord]) -> None:
        for record in records:
            self.add(record)

    def result(self, fmt: HistoryFormat) -> ShrinkResult:
        return ShrinkResult(
            fmt=fmt,
            commands={ts: list(cmds) for ts, cmds in self.commands.items()},
            big_commands={length: list(cmds) for length, cmds in self.big_commands.items()},
            flagged=list(self.flagged),
            flag_details=list(self.flagged.values()),
            counts=dict(self.counts),
        )


def shrink_history(
    lines: list[str], config: ShrinkConfig | None = None, fmt: HistoryFormat | None = None
) -> ShrinkResult:
    """→ Detects the format (unless given), extracts records and runs them through the pipeline"""
    if fmt is None:
        fmt = detect_format(lines)
    shrinker = HistoryShrinker(config)
    shrinker.add_all(iter_records(lines, fmt))
    return shrinker.result(fmt)
