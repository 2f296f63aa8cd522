"""Tests for history format detection, record extraction and emission."""

import pytest

from histformat import (
    CommandRecord,
    HistoryFormat,
    TimestampOverflowError,
    detect_format,
    emit_history,
    escape_continuations,
    format_record,
    is_extended_history,
    iter_extended_records,
    iter_plain_records,
    iter_records,
    parse_plain_marker,
    split_lines,
)


class TestSplitLines:
    def test_drops_final_empty_line(self):
        assert split_lines("a\nb\n") == ["a", "b"]

    def test_no_trailing_newline(self):
        assert split_lines("a\nb") == ["a", "b"]

    def test_strips_carriage_returns(self):
        assert split_lines("a\r\nb\r\n") == ["a", "b"]

    def test_keeps_form_feed_inside_line(self):
        assert split_lines("printf '\x0c'\n") == ["printf '\x0c'"]

    def test_empty(self):
        assert split_lines("") == []


class TestDetectFormat:
    def test_extended_line_anywhere(self):
        lines = ["ls", "#1700000000", ": 1700000000:0;git log"]
        assert is_extended_history(lines)
        assert detect_format(lines) is HistoryFormat.EXTENDED

    def test_plain_with_markers(self):
        assert detect_format(["#1700000000", "git log"]) is HistoryFormat.PLAIN

    def test_no_markers_at_all(self):
        assert detect_format(["git log", "make"]) is HistoryFormat.PLAIN

    def test_short_timestamp_is_not_extended(self):
        assert not is_extended_history([": 1234567:0;ls"])

    def test_empty_duration_still_extended(self):
        assert is_extended_history([": 12345678:;ls"])


class TestPlainRecords:
    def test_two_records(self):
        records = list(iter_plain_records(split_lines("#100000000\ncmd1\n#200000000\ncmd2\n")))
        assert records == [
            CommandRecord(0, ""),
            CommandRecord(100000000, "cmd1\n"),
            CommandRecord(200000000, "cmd2\n"),
        ]

    def test_single_record_is_flushed(self):
        records = list(iter_plain_records(["#100000000", "cmd1"]))
        assert records[-1] == CommandRecord(100000000, "cmd1\n")

    def test_multi_line_command(self):
        records = list(iter_plain_records(["#100000000", "for f in *; do", "  echo $f", "done"]))
        assert records[-1] == CommandRecord(100000000, "for f in *; do\n  echo $f\ndone\n")

    def test_content_before_first_marker_gets_timestamp_zero(self):
        records = list(iter_plain_records(["make", "#100000000", "make test"]))
        assert records == [CommandRecord(0, "make\n"), CommandRecord(100000000, "make test\n")]

    def test_file_without_markers_is_one_record(self):
        records = list(iter_plain_records(["make", "make test"]))
        assert records == [CommandRecord(0, "make\nmake test\n")]

    def test_consecutive_markers_yield_empty_record(self):
        records = list(iter_plain_records(["#100000000", "#200000000", "ls -la"]))
        assert CommandRecord(100000000, "") in records
        assert records[-1] == CommandRecord(200000000, "ls -la\n")

    def test_short_hash_line_is_content(self):
        records = list(iter_plain_records(["#100000000", "#1234", "make"]))
        assert records[-1] == CommandRecord(100000000, "#1234\nmake\n")

    def test_timestamp_overflow(self):
        with pytest.raises(TimestampOverflowError):
            list(iter_plain_records(["#99999999999", "ls"]))

    def test_max_timestamp_fits(self):
        assert parse_plain_marker("#4294967295") == 4294967295

    def test_non_marker(self):
        assert parse_plain_marker("# 1700000000") is None


class TestExtendedRecords:
    def test_simple(self):
        records = list(iter_extended_records([": 1700000000:0;git log --oneline"]))
        assert records == [CommandRecord(1700000000, "git log --oneline\n")]

    def test_multi_line_command(self):
        records = list(iter_extended_records([": 10000000:0;echo \\", "world"]))
        assert records == [CommandRecord(10000000, "echo \\\nworld\n")]

    def test_several_continuations(self):
        lines = [": 10000000:0;docker run \\", "  -it \\", "  ubuntu", ": 10000001:0;ls"]
        records = list(iter_extended_records(lines))
        assert records == [
            CommandRecord(10000000, "docker run \\\n  -it \\\n  ubuntu\n"),
            CommandRecord(10000001, "ls\n"),
        ]

    def test_truncated_continuation_is_accepted(self):
        records = list(iter_extended_records([": 10000000:0;echo \\"]))
        assert records == [CommandRecord(10000000, "echo \\\n")]

    def test_command_is_trimmed(self):
        records = list(iter_extended_records([": 10000000:12;   make   "]))
        assert records == [CommandRecord(10000000, "make\n")]

    def test_unmatched_lines_are_ignored(self):
        lines = ["garbage", ": 10000000:0;make", "stray line", ": 10000001:0;make test"]
        records = list(iter_extended_records(lines))
        assert [r.text for r in records] == ["make\n", "make test\n"]

    def test_timestamp_overflow(self):
        with pytest.raises(TimestampOverflowError):
            list(iter_extended_records([": 4294967296:0;ls"]))

    def test_is_lazy(self):
        def lines():
            yield ": 10000000:0;make"
            raise AssertionError("read too far")

        records = iter_extended_records(lines())
        assert next(records) == CommandRecord(10000000, "make\n")

    def test_iter_records_dispatch(self):
        lines = [": 10000000:0;make"]
        assert list(iter_records(lines, HistoryFormat.EXTENDED)) == [CommandRecord(10000000, "make\n")]
        assert list(iter_records(lines, HistoryFormat.PLAIN)) == [CommandRecord(0, ": 10000000:0;make\n")]


class TestEmit:
    def test_extended_record(self):
        assert format_record(1700000000, "make\n", HistoryFormat.EXTENDED) == ": 1700000000:0;make\n"

    def test_plain_record(self):
        assert format_record(1700000000, "make\n", HistoryFormat.PLAIN) == "#1700000000\nmake\n"

    def test_timestamp_zero_is_padded(self):
        assert format_record(0, "make\n", HistoryFormat.PLAIN) == "#00000000\nmake\n"
        assert parse_plain_marker("#00000000") == 0

    def test_emit_keeps_order_and_multi_line_commands(self):
        records = [(100000000, "a\n"), (100000000, "b \\\nc\n"), (200000000, "d\n")]
        assert emit_history(records, HistoryFormat.EXTENDED) == (
            ": 100000000:0;a\n: 100000000:0;b \\\nc\n: 200000000:0;d\n"
        )

    def test_emitted_extended_reads_back(self):
        text = emit_history([(100000000, "echo \\\nworld\n")], HistoryFormat.EXTENDED)
        assert list(iter_extended_records(split_lines(text))) == [
            CommandRecord(100000000, "echo \\\nworld\n")
        ]

    def test_plain_multi_line_to_extended_reads_back(self):
        command = "for x in 1 2; do\n  make $x\ndone\n"
        text = emit_history([(100000000, command)], HistoryFormat.EXTENDED)
        assert text == ": 100000000:0;for x in 1 2; do\\\n  make $x\\\ndone\n"
        assert list(iter_extended_records(split_lines(text))) == [
            CommandRecord(100000000, "for x in 1 2; do\\\n  make $x\\\ndone\n")
        ]

    def test_extended_multi_line_to_plain_reads_back(self):
        text = emit_history([(100000000, "echo \\\nworld\n")], HistoryFormat.PLAIN)
        assert text == "#100000000\necho \\\nworld\n"
        assert list(iter_plain_records(split_lines(text)))[-1] == CommandRecord(100000000, "echo \\\nworld\n")

    def test_existing_continuations_are_not_doubled(self):
        assert escape_continuations("echo \\\nworld\n") == "echo \\\nworld\n"
        assert escape_continuations("a\n\nb\n") == "a\\\n\\\nb\n"
        assert escape_continuations("make\n") == "make\n"

    def test_emit_nothing(self):
        assert emit_history([], HistoryFormat.PLAIN) == ""
