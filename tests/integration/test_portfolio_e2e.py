"""
Integration tests: .0300 portfolio files from disk.

Covers detection + parse through parse_file(), structural validation
through validate_file(), and the file -> tables export.
"""

from __future__ import annotations

import pytest

from consar_ingest import FileKind, parse_file, validate_file
from consar_ingest.models import Severity
from tests.conftest import (
    PORTFOLIO_NAME,
    portfolio_301,
    portfolio_309,
    record_count_header,
    write_lines,
)


def _write_portfolio(tmp_path, declared: int = 2, extra: tuple[str, ...] = ()):
    lines = [
        record_count_header(declared),
        portfolio_301(),
        portfolio_301(isin="MX0MGO0000Q0", emisora="CETES", valor_mercado=500),
        *extra,
        portfolio_309(2),
    ]
    return write_lines(tmp_path / PORTFOLIO_NAME, lines)


@pytest.mark.integration
class TestPortfolioParse:
    """parse_file() on a well-formed .0300 file."""

    def test_detected_and_parsed(self, tmp_path):
        result = parse_file(_write_portfolio(tmp_path))

        assert result.file_kind is FileKind.CARTERA_SIEFORE
        assert result.source_name == PORTFOLIO_NAME
        assert result.detection.method == "Combined.Consistent"
        assert result.detection.issuer_code == "053"
        assert result.detail_count == 2
        assert result.valid_detail_count == 2
        assert result.footer.get("total_registros") == 2
        assert result.errors == []
        assert result.warnings == []

    def test_typed_values(self, tmp_path):
        result = parse_file(_write_portfolio(tmp_path))
        cetes = result.details[1]
        assert cetes.get("emisora") == "CETES"
        assert cetes.get("es_cete") is True
        assert cetes.get("es_bono") is False
        assert str(cetes.get("valor_mercado")) == "5.00"

    def test_crlf_and_lf_give_same_records(self, tmp_path):
        crlf = parse_file(_write_portfolio(tmp_path))
        lf_dir = tmp_path / "lf"
        lf_dir.mkdir()
        lf_path = write_lines(
            lf_dir / PORTFOLIO_NAME,
            [record_count_header(2), portfolio_301(), portfolio_301(), portfolio_309(2)],
            terminator="\n",
        )
        lf = parse_file(lf_path)
        assert [r.raw_line for r in lf.details] == [crlf.details[0].raw_line] * 2

    def test_explicit_kind_skips_detection(self, tmp_path):
        result = parse_file(_write_portfolio(tmp_path), FileKind.CARTERA_SIEFORE)
        assert result.detection is None

    def test_count_mismatch_warns(self, tmp_path):
        result = parse_file(_write_portfolio(tmp_path, declared=5))
        assert [w.code for w in result.warnings] == ["RECORD_COUNT"]
        assert result.is_valid

    def test_unknown_record_type_is_error(self, tmp_path):
        result = parse_file(_write_portfolio(tmp_path, extra=("399" + " " * 50,)))
        assert [e.code for e in result.errors] == ["UnknownRecordType"]
        assert result.errors[0].line_number == 4
        assert result.detail_count == 2


@pytest.mark.integration
class TestPortfolioValidation:
    """validate_file() on .0300 files."""

    def test_clean_file(self, tmp_path):
        report = validate_file(_write_portfolio(tmp_path))
        assert report.findings == []
        assert report.is_valid
        assert report.record_count == 4
        assert report.valid_record_count == 4
        assert report.downstream_rules[0].code == "CART_STR_01"
        assert report.parse_result.source_name == PORTFOLIO_NAME

    def test_declared_count_mismatch(self, tmp_path):
        report = validate_file(_write_portfolio(tmp_path, declared=3))
        assert report.codes == ["STRUCT_SIEFORE_001"]
        finding = report.findings[0]
        assert finding.severity is Severity.WARNING
        assert (finding.value, finding.expected) == (2, 3)
        assert report.is_valid

    def test_parser_errors_fold_in(self, tmp_path):
        report = validate_file(_write_portfolio(tmp_path, extra=("399" + " " * 50,)))
        assert "UnknownRecordType" in report.codes
        assert not report.is_valid
        assert not report.has_critical
