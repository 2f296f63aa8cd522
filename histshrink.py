#!/usr/bin/env python3
# /// script
# requires-python = ">=3.10"
# dependencies = ["rich", "pygments"]
# ///
"""
histshrink.py - Shrink and sanitize a shell history file

Reads a bash (plain or `#<timestamp>`-commented) or zsh EXTENDED_HISTORY file and
writes a smaller copy of it:

- duplicates are dropped, keeping the first occurrence;
- common low-value commands (`cd`, `ls`, `git status`...) are dropped;
- secrets (bearer tokens, `password=...`) are replaced with placeholders;
- commands are written back ordered by timestamp, in the input's format.

Nothing is removed for being "sensitive-looking": such commands are kept but
listed in a FLAGGED COMMANDS report so you can review them. Commands at or
above `--big-threshold` characters are listed at `--log trace`.

Input file resolution: `--input`, then `$HISTFILE`, then `~/.bash_history`.
The original file is never modified.

Usage
-----
    histshrink.py --input ~/.zsh_history --output shrunk_history
    histshrink.py --config rules.json --min-length 15 --show-flagged

Rules file
----------
A JSON object with optional "exclude", "flag" (lists of regexes), "redact"
(list of [regex, replacement]), "min_length", "big_threshold", and
"extend_defaults" (append to the built-in lists instead of replacing them).
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

from histfilter import ConfigError, ShrinkConfig, ShrinkResult, Verdict, shrink_history
from histformat import HistoryFormat, TimestampOverflowError, emit_history, split_lines
from shell_lexer import command_syntax

logger = logging.getLogger(__name__)

# ============================================================================
# CONFIGURATION & CONSTANTS
# ============================================================================

CUSTOM_THEME = Theme({
    "title": "bold #C678DD",
    "reason": "bold #98C379",
    "context": "#5C6370",
    "border": "#4B5263",
    "info": "#61AFEF",
    "success": "#98C379",
    "warning": "#E5C07B",
    "error": "#E06C75",
    "logging.level.trace": "#5C6370",
})

console = Console(stderr=True, theme=CUSTOM_THEME)

DEFAULT_OUTPUT = "shrunk_history"
DEFAULT_HISTORY_NAME = ".bash_history"

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

LOG_LEVELS = {
    "off": logging.CRITICAL + 1,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": TRACE,
}


def setup_logging(level: int) -> None:
    """→ Routes all log records through a RichHandler on the shared stderr console"""
    root = logging.getLogger()
    root.setLevel(level)
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        root.addHandler(RichHandler(console=console, show_time=False, show_path=False, markup=False))


def resolve_history_path(input_arg: str | None) -> Path:
    """→ Explicit argument, then $HISTFILE, then ~/.bash_history"""
    if input_arg:
        return Path(input_arg).expanduser()
    if env_var := os.environ.get("HISTFILE"):
        return Path(env_var).expanduser()
    return Path.home() / DEFAULT_HISTORY_NAME


# ============================================================================
# FILE I/O
# ============================================================================


def read_history_file(file_path: Path) -> str | None:
    """→ File I/O: Reads the whole history file, handling errors"""
    try:
        return file_path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        console.print(f"[error]Error: History file not found at '{file_path}'[/error]")
        return None
    except OSError as e:
        console.print(f"[error]Error reading file '{file_path}': {e}[/error]")
        return None


def write_history_file(file_path: Path, contents: str) -> bool:
    """→ File I/O: Writes the shrunk history in one go"""
    try:
        with file_path.open("w", encoding="utf-8", newline="") as f:
            f.write(contents)
    except OSError as e:
        console.print(f"[error]Error writing to history file {file_path}: {e!r}[/error]")
        return False
    return True


# ============================================================================
# REPORTING
# ============================================================================


def report_big_commands(result: ShrinkResult) -> None:
    for length in sorted(result.big_commands):
        commands = result.big_commands[length]
        logger.log(TRACE, "%d Commands of length %d", len(commands), length)
        for command in commands:
            logger.log(TRACE, "%s", command.rstrip())


def report_flagged_commands(result: ShrinkResult) -> None:
    if not result.flagged:
        return
    logger.info("+=======================+")
    logger.info("| %3d FLAGGED COMMANDS  |", len(result.flagged))
    logger.info("+=======================+")
    for message in result.flagged:
        logger.info("%s", message.rstrip())


def report_summary(result: ShrinkResult, output_path: Path) -> None:
    dropped = ", ".join(
        f"{verdict.value}={count}"
        for verdict, count in result.counts.items()
        if verdict is not Verdict.KEPT and count
    )
    logger.info(
        "Read %d %s records, kept %d%s",
        result.records_read,
        result.fmt.value,
        result.kept,
        f" (dropped: {dropped})" if dropped else "",
    )
    logger.info("Shrunk history saved to %s", output_path)


def render_flagged_panel(pattern: str, command: str) -> Panel:
    """→ Rich panel showing one flagged command with the matching pattern"""
    meta_table = Table.grid(padding=(0, 1))
    meta_table.add_column(style="context")
    meta_table.add_column()
    meta_table.add_row("Reason:", f"[reason]Matches '{pattern}'[/reason]")
    meta_table.add_row("Command:", command_syntax(command))
    return Panel(
        meta_table,
        box=box.ROUNDED,
        title="[title]Flagged Command[/title]",
        border_style="border",
        padding=(1, 2),
    )


def show_flagged_commands(result: ShrinkResult) -> None:
    for pattern, command in result.flag_details:
        console.print(render_flagged_panel(pattern, command))


# ============================================================================
# MAIN
# ============================================================================


def non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {value}")
    return number


def log_level(value: str) -> int:
    try:
        return LOG_LEVELS[value.lower()]
    except KeyError:
        raise argparse.ArgumentTypeError(
            f"invalid level '{value}' (choose from {', '.join(LOG_LEVELS)})"
        ) from None


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description="Reduce a shell history file: drop duplicates and common commands, scrub secrets",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    ap.add_argument(
        "-i",
        "--input",
        help="History file to process (default: $HISTFILE, otherwise ~/.bash_history)",
    )
    ap.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path(DEFAULT_OUTPUT),
        help=f"Output file (default: {DEFAULT_OUTPUT})",
    )
    ap.add_argument(
        "-m",
        "--min-length",
        type=non_negative_int,
        help="Drop commands shorter than this many characters (default: 0, keep all)",
    )
    ap.add_argument(
        "-b",
        "--big-threshold",
        type=non_negative_int,
        help="Report commands at least this long at trace level (default: 200)",
    )
    ap.add_argument(
        "-l",
        "--log",
        type=log_level,
        default=logging.INFO,
        metavar="LEVEL",
        help="Logging level: off, error, warn, info, debug, trace (default: info)",
    )
    ap.add_argument(
        "-c",
        "--config",
        type=Path,
        metavar="FILE",
        help="JSON rules file replacing or extending the built-in patterns",
    )
    ap.add_argument(
        "-f",
        "--format",
        choices=["auto", *(fmt.value for fmt in HistoryFormat)],
        default="auto",
        help="Output format (default: auto, same as the input)",
    )
    ap.add_argument(
        "--show-flagged",
        action="store_true",
        help="Also print each flagged command as a highlighted panel",
    )
    return ap


def main(argv: list[str] | None = None) -> int:
    """→ Main: read, shrink, report, write"""
    args = build_parser().parse_args(argv)
    setup_logging(args.log)

    try:
        config = ShrinkConfig.from_file(args.config) if args.config else ShrinkConfig.default()
    except ConfigError as e:
        console.print(f"[error]Error: {e}[/error]")
        return 1
    config = config.with_overrides(min_length=args.min_length, big_threshold=args.big_threshold)

    history_path = resolve_history_path(args.input)
    logger.debug("Reading history from %s", history_path)
    contents = read_history_file(history_path)
    if contents is None:
        return 1

    try:
        result = shrink_history(split_lines(contents), config)
    except TimestampOverflowError as e:
        console.print(f"[error]Error in '{history_path}': {e}[/error]")
        return 1

    report_big_commands(result)
    report_flagged_commands(result)
    if args.show_flagged:
        show_flagged_commands(result)

    output_path = args.output.expanduser()
    output_format = result.fmt if args.format == "auto" else HistoryFormat(args.format)
    if not write_history_file(output_path, emit_history(result.iter_commands(), output_format)):
        return 1

    report_summary(result, output_path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
