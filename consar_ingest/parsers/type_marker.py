"""
Parser for type-marker files (.0100, .0200, .0400, .0500, .0600, .0700).

Every line starts with a 2-digit marker that decides its role:
01 header, 02 detail, 03 / 99 footer, 04 control. Unknown markers are
decoded as details. Ordering problems are reported as warnings:

- DUPLICATE_HEADER: a second 01 record.
- HEADER_NOT_FIRST: the 01 record appears after data.
- DATA_AFTER_FOOTER: a detail after a footer (base class).
"""

from __future__ import annotations

from consar_ingest.parsers.base import BaseParser, ParseResult, ParseWarning
from consar_ingest.records import DecodedRecord


class TypeMarkerParser(BaseParser):
    """Parser for layouts that mark every line with a record type."""

    def _decode(self, raw_line: str, line_number: int, result: ParseResult) -> DecodedRecord:
        return self._decode_with_layout(raw_line, line_number)

    def _on_header(self, record: DecodedRecord, result: ParseResult) -> None:
        if result.header is None and (result.details or result.control_records or result.footer):
            result.warnings.append(ParseWarning(
                record.line_number, "HEADER_NOT_FIRST",
                f"Line {record.line_number}: header record appears after data",
            ))
        super()._on_header(record, result)
