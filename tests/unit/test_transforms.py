"""
Unit tests for the transform layer (consar_ingest.transforms).

Covers the record splitter, DataFrame projection and the pipeline
orchestrator using small in-memory parses.
"""

from __future__ import annotations

import io
from datetime import date
from decimal import Decimal

import pandas as pd

from consar_ingest.config import IngestConfig, OutputConfig, SourceConfig
from consar_ingest.models import FileKind, Severity
from consar_ingest.parsers import parse
from consar_ingest.parsers.base import ParseWarning
from consar_ingest.transforms.frames import (
    ERROR_COLUMNS,
    RECORD_COLUMNS,
    errors_to_frame,
    findings_to_frame,
    records_to_frame,
    warnings_to_frame,
)
from consar_ingest.transforms.pipeline import TransformPipeline
from consar_ingest.transforms.splitter import drop_invalid, split_records, table_name_for
from consar_ingest.validator import StructuralFinding
from tests.conftest import (
    amount,
    fixed_width,
    portfolio_301,
    portfolio_309,
    record_count_header,
)

PORTFOLIO = FileKind.CARTERA_SIEFORE


def _equity_303() -> str:
    return fixed_width(300, {0: "303", 3: "ACCI", 7: "US0378331005".ljust(15), 42: amount(50, 16)})


def _parse(lines: list[str]):
    return parse(io.StringIO("".join(line + "\n" for line in lines)), PORTFOLIO)


def _config(include_invalid: bool = True) -> IngestConfig:
    return IngestConfig(
        source=SourceConfig(input_path="x.0300", file_kind=PORTFOLIO),
        output=OutputConfig(include_invalid=include_invalid),
    )


# ---------------------------------------------------------------------------
# Splitter
# ---------------------------------------------------------------------------

class TestSplitter:
    """Tests for split_records() / drop_invalid()."""

    def test_groups_by_code_in_first_appearance_order(self):
        result = _parse([record_count_header(3), _equity_303(), portfolio_301(), _equity_303()])
        groups = split_records(result.details)
        assert list(groups) == ["detail_303", "detail_301"]
        assert [r.line_number for r in groups["detail_303"]] == [2, 4]

    def test_table_name(self):
        assert table_name_for("3040") == "detail_3040"

    def test_drop_invalid(self):
        result = _parse([record_count_header(2), portfolio_301(), portfolio_301(isin="")])
        kept, dropped = drop_invalid(result.details)
        assert dropped == 1
        assert [r.line_number for r in kept] == [2]


# ---------------------------------------------------------------------------
# Frames
# ---------------------------------------------------------------------------

class TestFrames:
    """Tests for the DataFrame builders."""

    def test_record_frame_columns_and_types(self):
        result = _parse([record_count_header(1), portfolio_301()])
        df = records_to_frame(result.details)
        assert list(df.columns[:5]) == RECORD_COLUMNS
        assert df.loc[0, "isin"] == "MX0MGO0000P2"
        assert df.loc[0, "valor_mercado"] == Decimal("123.45")
        assert df.loc[0, "fecha_vencimiento"] == date(2026, 12, 31)
        assert bool(df.loc[0, "es_gobierno"]) is True
        assert df.loc[0, "is_valid"]

    def test_diagnostics_column(self):
        result = _parse([record_count_header(1), portfolio_301(isin="")])
        df = records_to_frame(result.details)
        assert "isin" in df.loc[0, "diagnostics"]
        assert not df.loc[0, "is_valid"]

    def test_empty_records(self):
        df = records_to_frame([])
        assert list(df.columns) == RECORD_COLUMNS
        assert len(df) == 0

    def test_errors_frame(self):
        result = _parse([record_count_header(1), "399   "])
        df = errors_to_frame(result.errors)
        assert list(df.columns) == ERROR_COLUMNS
        assert df.loc[0, "code"] == "UnknownRecordType"
        assert df.loc[0, "raw_line"] == "399   "

    def test_warnings_frame_nullable_line_numbers(self):
        df = warnings_to_frame([
            ParseWarning(None, "RECORD_COUNT", "count"),
            ParseWarning(4, "NumericCoerced", "coerced"),
        ])
        assert str(df["line_number"].dtype) == "Int64"
        assert pd.isna(df.loc[0, "line_number"])
        assert df.loc[1, "line_number"] == 4

    def test_findings_frame(self):
        df = findings_to_frame([
            StructuralFinding("STRUCT_004", "mismatch", Severity.ERROR, line_number=9, value=1, expected=3),
        ])
        row = df.iloc[0]
        assert (row["code"], row["severity"], row["value"], row["expected"]) == ("STRUCT_004", "error", "1", "3")


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class TestTransformPipeline:
    """Tests for TransformPipeline.run()."""

    def test_tables_produced(self):
        result = _parse([record_count_header(2), portfolio_301(), _equity_303(), portfolio_309(2)])
        out = TransformPipeline(_config()).run(result)
        assert list(out.tables) == ["header", "detail_301", "detail_303", "footer", "errors", "warnings"]
        assert out.records_total == 2
        assert out.records_dropped == 0
        assert out.tables["header"].loc[0, "total_registros"] == 2

    def test_invalid_records_dropped_when_configured(self):
        result = _parse([record_count_header(2), portfolio_301(), portfolio_301(isin="")])
        out = TransformPipeline(_config(include_invalid=False)).run(result)
        assert out.records_dropped == 1
        assert len(out.tables["detail_301"]) == 1

    def test_invalid_records_kept_by_default(self):
        result = _parse([record_count_header(2), portfolio_301(), portfolio_301(isin="")])
        out = TransformPipeline(_config()).run(result)
        assert len(out.tables["detail_301"]) == 2

    def test_findings_table_optional(self):
        result = _parse([record_count_header(0)])
        out = TransformPipeline(_config()).run(result, findings=[])
        assert "findings" in out.tables
        assert "findings" not in TransformPipeline(_config()).run(result).tables
