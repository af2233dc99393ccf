"""
Unit tests for the stream parsers (consar_ingest.parsers).

Streams are built in memory from the conftest line builders; both text
and binary inputs are exercised.
"""

from __future__ import annotations

import io
import threading

import pytest

from consar_ingest.config import ParserSettings
from consar_ingest.exceptions import ParseCancelledError, StreamReadError, UnknownFileKindError
from consar_ingest.layout_registry import HEADER_CODE
from consar_ingest.models import FileKind, RecordRole
from consar_ingest.parsers import parse
from consar_ingest.parsers.record_count import RecordCountParser
from tests.conftest import (
    marker_control,
    marker_footer,
    marker_header,
    payroll_detail,
    portfolio_301,
    portfolio_309,
    record_count_header,
)

PORTFOLIO = FileKind.CARTERA_SIEFORE


def _text(lines: list[str], terminator: str = "\n") -> io.StringIO:
    return io.StringIO("".join(line + terminator for line in lines))


def _binary(lines: list[str], terminator: str = "\r\n") -> io.BytesIO:
    return io.BytesIO("".join(line + terminator for line in lines).encode("latin-1"))


def _warning_codes(result) -> list[str]:
    return [w.code for w in result.warnings]


# ---------------------------------------------------------------------------
# Record-count files
# ---------------------------------------------------------------------------

class TestRecordCountParser:
    """Tests for .0300-style streams."""

    def test_happy_path(self):
        result = parse(_text([record_count_header(2), portfolio_301(), portfolio_301()]), PORTFOLIO)
        assert result.header is not None
        assert result.detail_count == 2
        assert result.valid_detail_count == 2
        assert result.expected_record_count == 2
        assert result.errors == []
        assert result.warnings == []
        assert result.is_valid
        assert result.schema_version == "1.0"
        assert result.total_lines == 3

    def test_binary_crlf_stream(self):
        result = parse(_binary([record_count_header(1), portfolio_301()]), PORTFOLIO)
        assert result.detail_count == 1
        assert result.details[0].raw_line == portfolio_301()

    def test_count_mismatch_is_a_warning(self):
        result = parse(_text([record_count_header(3), portfolio_301()]), PORTFOLIO)
        assert _warning_codes(result) == ["RECORD_COUNT"]
        assert result.is_valid

    def test_zero_declared_count_not_checked(self):
        result = parse(_text([record_count_header(0), portfolio_301()]), PORTFOLIO)
        assert "RECORD_COUNT" not in _warning_codes(result)

    def test_blank_lines_skipped_but_counted(self):
        result = parse(_text([record_count_header(1), "", "   ", portfolio_301()]), PORTFOLIO)
        assert result.total_lines == 4
        assert result.blank_lines == 2
        assert result.decoded_lines == 2
        assert result.details[0].line_number == 4

    def test_header_after_leading_blank_line(self):
        """The first non-blank line is the header."""
        result = parse(_text(["", record_count_header(1), portfolio_301()]), PORTFOLIO)
        assert result.header.line_number == 2
        assert result.detail_count == 1

    def test_bad_lines_become_errors(self):
        short = portfolio_301()[:120]
        result = parse(_text([record_count_header(2), short, "999" + " " * 10]), PORTFOLIO)
        assert [e.code for e in result.errors] == ["LineTooShort", "UnknownRecordType"]
        assert result.errors[0].line_number == 2
        assert result.errors[0].raw_line == short
        assert result.detail_count == 0
        assert not result.is_valid

    def test_record_diagnostics_become_warnings(self):
        result = parse(_text([record_count_header(1), portfolio_301(titulos="ABC")]), PORTFOLIO)
        (warning,) = result.warnings
        assert warning.code == "NumericCoerced"
        assert warning.line_number == 2

    def test_footer_and_data_after_footer(self):
        lines = [record_count_header(2), portfolio_301(), portfolio_309(1), portfolio_301()]
        result = parse(_text(lines), PORTFOLIO)
        assert result.footer.record_type_code == "309"
        assert result.detail_count == 2
        assert "DATA_AFTER_FOOTER" in _warning_codes(result)

    def test_last_footer_wins(self):
        lines = [record_count_header(1), portfolio_301(), portfolio_309(1), portfolio_309(9)]
        result = parse(_text(lines), PORTFOLIO)
        assert result.footer.line_number == 4

    def test_short_header(self):
        result = parse(_text(["00000001", portfolio_301()]), PORTFOLIO)
        assert result.header is None
        assert [e.code for e in result.errors] == ["HeaderTooShort"]
        assert result.detail_count == 1

    def test_empty_stream(self):
        result = parse(_text([]), PORTFOLIO)
        assert result.header is None
        assert _warning_codes(result) == ["EMPTY_FILE"]

    def test_records_in_line_order(self):
        lines = [record_count_header(1), portfolio_301(), portfolio_309(1)]
        result = parse(_text(lines), PORTFOLIO)
        assert [r.line_number for r in result.records] == [1, 2, 3]

    def test_strict_policy_from_settings(self):
        settings = ParserSettings(numeric_policy="strict")
        result = parse(
            _text([record_count_header(1), portfolio_301(titulos="ABC")]), PORTFOLIO,
            settings=settings,
        )
        assert result.detail_count == 1
        assert result.valid_detail_count == 0

    def test_parser_instance_is_reusable(self):
        parser = RecordCountParser(PORTFOLIO)
        first = parser.parse(_text([record_count_header(1), portfolio_301()]))
        second = parser.parse(_text([record_count_header(1), portfolio_301()]))
        assert first.detail_count == second.detail_count == 1
        assert first is not second

    def test_same_bytes_parse_identically(self):
        data = _binary([
            record_count_header(3),
            portfolio_301(),
            portfolio_301()[:120],
            portfolio_301(titulos="ABC"),
            "999" + " " * 10,
            portfolio_309(3),
        ]).getvalue()

        first = parse(io.BytesIO(data), PORTFOLIO)
        second = parse(io.BytesIO(data), PORTFOLIO)

        assert len(first.records) == len(second.records) == 4
        assert [r.values for r in first.records] == [r.values for r in second.records]
        assert first.errors == second.errors
        assert [e.code for e in first.errors] == ["LineTooShort", "UnknownRecordType"]
        assert first.warnings == second.warnings
        assert "NumericCoerced" in _warning_codes(first)

    def test_first_line_is_header_whatever_it_holds(self):
        result = parse(_text([portfolio_301(), portfolio_301()]), PORTFOLIO)
        assert result.header.line_number == 1
        assert result.header.record_type_code == HEADER_CODE
        assert result.header.role is RecordRole.HEADER
        assert [r.line_number for r in result.details] == [2]

    def test_duration_recorded(self):
        result = parse(_text([record_count_header(0)]), PORTFOLIO)
        assert result.duration.total_seconds() >= 0


class TestStreamControl:
    """Tests for progress, cancellation and stream failures."""

    def test_progress_reported_every_interval(self):
        seen: list[int] = []
        lines = [record_count_header(4)] + [portfolio_301()] * 4
        parse(_text(lines), PORTFOLIO, progress=seen.append,
              settings=ParserSettings(progress_interval=2))
        assert seen == [2, 4]

    def test_cancel_before_start(self):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(ParseCancelledError) as exc_info:
            parse(_text([record_count_header(1), portfolio_301()]), PORTFOLIO, cancel=cancel)
        assert exc_info.value.line_number == 1

    def test_cancel_mid_stream(self):
        cancel = threading.Event()

        def on_progress(line_number: int) -> None:
            cancel.set()

        lines = [record_count_header(3)] + [portfolio_301()] * 3
        with pytest.raises(ParseCancelledError) as exc_info:
            parse(_text(lines), PORTFOLIO, progress=on_progress, cancel=cancel,
                  settings=ParserSettings(progress_interval=2))
        assert exc_info.value.line_number == 3

    def test_read_failure_keeps_partial_result(self):
        def lines():
            yield record_count_header(2) + "\n"
            yield portfolio_301() + "\n"
            raise OSError("device not ready")

        with pytest.raises(StreamReadError) as exc_info:
            parse(lines(), PORTFOLIO)
        partial = exc_info.value.partial
        assert partial.header is not None
        assert partial.detail_count == 1

    def test_undecodable_bytes(self):
        stream = [record_count_header(1).encode("latin-1") + b"\n", b"301\xff\n"]
        with pytest.raises(StreamReadError):
            parse(stream, PORTFOLIO, settings=ParserSettings(encoding="ascii"))

    def test_unknown_kind(self):
        with pytest.raises(UnknownFileKindError):
            parse(_text([]), FileKind.UNKNOWN)


# ---------------------------------------------------------------------------
# Type-marker files
# ---------------------------------------------------------------------------

class TestTypeMarkerParser:
    """Tests for .0100-style streams."""

    def test_happy_path(self):
        lines = [marker_header(), payroll_detail(), payroll_detail(), marker_control(), marker_footer(2)]
        result = parse(_text(lines), FileKind.NOMINA)
        assert result.header.role is RecordRole.HEADER
        assert result.detail_count == 2
        assert len(result.control_records) == 1
        assert result.footer.get("total_registros") == 2
        assert result.warnings == []

    def test_99_footer(self):
        lines = [marker_header(), payroll_detail(), marker_footer(1, marker="99")]
        result = parse(_text(lines), FileKind.NOMINA)
        assert result.footer.record_type_code == "99"

    def test_header_not_first(self):
        lines = [payroll_detail(), marker_header(), marker_footer(1)]
        result = parse(_text(lines), FileKind.NOMINA)
        assert result.header.line_number == 2
        assert _warning_codes(result) == ["HEADER_NOT_FIRST"]

    def test_duplicate_header(self):
        lines = [marker_header(), marker_header(), payroll_detail(), marker_footer(1)]
        result = parse(_text(lines), FileKind.NOMINA)
        assert result.header.line_number == 1
        assert _warning_codes(result) == ["DUPLICATE_HEADER"]

    def test_no_record_count_check(self):
        """Type-marker counts are checked structurally, not by the parser."""
        lines = [marker_header(), payroll_detail(), marker_footer(5)]
        result = parse(_text(lines), FileKind.NOMINA)
        assert result.warnings == []
        assert result.expected_record_count is None
