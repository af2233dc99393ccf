"""
Base stream parser for consar-ingest.

All file kinds share one single-pass loop over the input stream:

1. Read a line (bytes are decoded with the configured single-byte
   encoding; only the trailing CR/LF is removed).
2. Check the cancel event. Cancellation is cooperative and takes effect
   at the next line boundary.
3. Report progress every ``progress_interval`` lines.
4. Skip blank lines (they still count towards ``total_lines``).
5. Decode the line and route it into header / detail / footer / control
   buckets, or into ``errors`` when the decode failed.

Subclasses decide what "header" means (first line vs. 01 marker) and
which stream-level warnings apply once the stream is exhausted.

Why an ABC:
- Enforces a consistent interface across header styles.
- Makes it easy to add a new header style without touching existing code.
- Keeps per-parse state inside ParseResult, so one parser instance can
  be reused and concurrent parses never share mutable state.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from datetime import timedelta
from typing import IO, Any

from consar_ingest.config import ParserSettings
from consar_ingest.decoder import decode_line, resolve_layout
from consar_ingest.exceptions import ParseCancelledError, StreamReadError
from consar_ingest.layout_registry import LayoutSchema, SchemaCatalog
from consar_ingest.models import DetectionResult, FileKind, RecordRole
from consar_ingest.records import DecodedRecord

logger = logging.getLogger(__name__)

ProgressSink = Callable[[int], None]


@dataclass(frozen=True)
class ParseError:
    """A line that could not be decoded. The raw line is kept for diagnostics."""

    line_number: int
    code: str
    message: str
    raw_line: str = ""


@dataclass(frozen=True)
class ParseWarning:
    """A non-fatal finding. ``line_number`` is None for stream-level warnings."""

    line_number: int | None
    code: str
    message: str


@dataclass
class ParseResult:
    """Standardized output from any parser.

    Attributes:
        file_kind: Kind the stream was parsed as.
        schema_version: Version of the layout used.
        header: The header record, if one was found.
        footer: The last footer record seen, if any.
        details: Detail records in line order.
        control_records: Control (04) records in line order.
        errors: Lines that could not be decoded.
        warnings: Per-record and stream-level warnings.
        total_lines: Physical lines read, blank lines included.
        blank_lines: Blank / whitespace-only lines skipped.
        decoded_lines: Non-blank lines handed to the decoder.
        duration: Wall-clock time spent parsing.
        detection: Detection outcome, when the kind was detected.
        source_name: File name or other label of the input.
    """

    file_kind: FileKind
    schema_version: str = ""
    header: DecodedRecord | None = None
    footer: DecodedRecord | None = None
    details: list[DecodedRecord] = field(default_factory=list)
    control_records: list[DecodedRecord] = field(default_factory=list)
    errors: list[ParseError] = field(default_factory=list)
    warnings: list[ParseWarning] = field(default_factory=list)
    total_lines: int = 0
    blank_lines: int = 0
    decoded_lines: int = 0
    duration: timedelta = timedelta(0)
    detection: DetectionResult | None = None
    source_name: str | None = None

    @property
    def records(self) -> list[DecodedRecord]:
        """Every decoded record (header, details, control, footer) in line order."""
        found = list(self.details) + list(self.control_records)
        if self.header is not None:
            found.append(self.header)
        if self.footer is not None:
            found.append(self.footer)
        return sorted(found, key=lambda r: r.line_number)

    @property
    def detail_count(self) -> int:
        return len(self.details)

    @property
    def valid_detail_count(self) -> int:
        return sum(1 for r in self.details if r.is_valid)

    @property
    def expected_record_count(self) -> int | None:
        """Detail count declared by the header, if the header declares one."""
        if self.header is None:
            return None
        return self.header.get("total_registros")

    @property
    def is_valid(self) -> bool:
        """True if no line failed to decode. Warnings do not count."""
        return not self.errors


class BaseParser(ABC):
    """Abstract base class for CONSAR stream parsers.

    Args:
        file_kind: Kind of file being parsed.
        layout: Layout to decode with. Resolved from *catalog* (honouring
            *version*) when omitted.
        settings: Parser settings (encoding, progress cadence, numeric policy).
        catalog: Schema catalog (default: the built-in one).
        version: Layout version to request from the catalog.
    """

    def __init__(
        self,
        file_kind: FileKind,
        layout: LayoutSchema | None = None,
        settings: ParserSettings | None = None,
        catalog: SchemaCatalog | None = None,
        version: str | None = None,
    ) -> None:
        self.file_kind = file_kind
        self.layout = layout or resolve_layout(file_kind, version, catalog=catalog)
        self.settings = settings or ParserSettings()

    # -- Hooks ---------------------------------------------------------------

    @abstractmethod
    def _decode(self, raw_line: str, line_number: int, result: ParseResult) -> DecodedRecord:
        """Decode one non-blank line."""

    def _finish(self, result: ParseResult) -> None:
        """Add stream-level warnings once the stream is exhausted."""

    # -- Template ------------------------------------------------------------

    def _iter_lines(self, stream: IO[Any] | Iterable[Any]) -> Iterator[str]:
        encoding = self.settings.encoding
        for raw in stream:
            if isinstance(raw, (bytes, bytearray)):
                raw = raw.decode(encoding)
            yield raw.rstrip("\r\n")

    def parse(
        self,
        stream: IO[Any] | Iterable[Any],
        progress: ProgressSink | None = None,
        cancel: threading.Event | None = None,
    ) -> ParseResult:
        """Parse a whole stream.

        Args:
            stream: Binary or text stream (or any iterable of lines).
            progress: Called with the current line number every
                ``progress_interval`` lines.
            cancel: When set, parsing stops at the next line boundary.

        Raises:
            ParseCancelledError: If *cancel* was set.
            StreamReadError: If the stream could not be read or decoded.
                ``exc.partial`` holds what was parsed so far.
        """
        result = ParseResult(file_kind=self.file_kind, schema_version=self.layout.version)
        interval = self.settings.progress_interval
        started = time.perf_counter()

        try:
            for line_number, raw_line in enumerate(self._iter_lines(stream), start=1):
                if cancel is not None and cancel.is_set():
                    raise ParseCancelledError(line_number)
                result.total_lines = line_number
                if progress is not None and line_number % interval == 0:
                    progress(line_number)

                if not raw_line.strip():
                    result.blank_lines += 1
                    continue

                record = self._decode(raw_line, line_number, result)
                result.decoded_lines += 1
                self._route(record, result)
        except (OSError, UnicodeDecodeError) as exc:
            result.duration = timedelta(seconds=time.perf_counter() - started)
            raise StreamReadError(
                f"Failed to read stream after line {result.total_lines}: {exc}",
                partial=result,
            ) from exc

        if result.decoded_lines == 0:
            result.warnings.append(ParseWarning(None, "EMPTY_FILE", "The stream has no data lines"))
        self._finish(result)

        result.duration = timedelta(seconds=time.perf_counter() - started)
        logger.info(
            "Parsed %s: %d lines, %d details, %d errors, %d warnings in %.3fs",
            self.file_kind.value, result.total_lines, result.detail_count,
            len(result.errors), len(result.warnings), result.duration.total_seconds(),
        )
        return result

    def _decode_with_layout(
        self,
        raw_line: str,
        line_number: int,
        is_header: bool | None = None,
    ) -> DecodedRecord:
        return decode_line(
            raw_line,
            line_number,
            self.file_kind,
            layout=self.layout,
            is_header=is_header,
            numeric_policy=self.settings.numeric_policy,
        )

    def _route(self, record: DecodedRecord, result: ParseResult) -> None:
        """Place a decoded record into its bucket."""
        if record.values is None:
            diag = record.diagnostics[0]
            result.errors.append(ParseError(
                line_number=record.line_number,
                code=diag.code,
                message=diag.message,
                raw_line=record.raw_line,
            ))
            return

        for diag in record.diagnostics:
            result.warnings.append(ParseWarning(record.line_number, diag.code, diag.message))

        if record.role is RecordRole.HEADER:
            self._on_header(record, result)
        elif record.role is RecordRole.FOOTER:
            result.footer = record
        elif record.role is RecordRole.CONTROL:
            result.control_records.append(record)
        else:
            if result.footer is not None:
                result.warnings.append(ParseWarning(
                    record.line_number, "DATA_AFTER_FOOTER",
                    f"Line {record.line_number}: detail record after the footer",
                ))
            result.details.append(record)

    def _on_header(self, record: DecodedRecord, result: ParseResult) -> None:
        if result.header is not None:
            result.warnings.append(ParseWarning(
                record.line_number, "DUPLICATE_HEADER",
                f"Line {record.line_number}: additional header record ignored",
            ))
            return
        result.header = record
