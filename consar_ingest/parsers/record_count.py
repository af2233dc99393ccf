"""
Parser for record-count header files (.0300, .0314, .0316, .0317, .0321, .1101).

The first non-blank line is always the header, whatever it contains. Its
first 8 digits declare how many detail records follow. Every other line
is dispatched on its record type prefix (3, 4 or 5 characters, per layout).

Once the stream is exhausted, a declared count that differs from the
number of detail records is reported as a RECORD_COUNT warning, not an
error: historical files were observed with off-by-one header counts.
"""

from __future__ import annotations

import logging

from consar_ingest.parsers.base import BaseParser, ParseResult, ParseWarning
from consar_ingest.records import DecodedRecord

logger = logging.getLogger(__name__)


class RecordCountParser(BaseParser):
    """Parser for layouts whose header is the first line."""

    def _decode(self, raw_line: str, line_number: int, result: ParseResult) -> DecodedRecord:
        return self._decode_with_layout(
            raw_line, line_number, is_header=result.decoded_lines == 0,
        )

    def _finish(self, result: ParseResult) -> None:
        expected = result.expected_record_count
        if not expected or expected == result.detail_count:
            return
        message = (
            f"Header declares {expected} records but {result.detail_count} "
            "detail records were parsed"
        )
        logger.warning("%s (%s)", message, self.file_kind.value)
        result.warnings.append(ParseWarning(None, "RECORD_COUNT", message))
