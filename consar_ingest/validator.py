"""
Structural validation for consar-ingest.

Runs the stream parser and cross-checks what the header and footer
declare against what was actually parsed:

- STRUCT_001 (critical): the stream could not be read.
- STRUCT_002 (critical): no header record.
- STRUCT_003 (critical): no footer record (type-marker kinds only).
- STRUCT_004 (error): footer count differs from the detail count
  (type-marker kinds).
- STRUCT_SIEFORE_001 (warning): header count differs from the detail
  count (record-count kinds).
- STRUCT_SIEFORE_002 (error): header has no AFORE code.
- STRUCT_SIEFORE_003 (warning): header generation date is not a valid date.

Every line-level parse error is folded in as an ERROR finding under its
own code. Semantic rules (balances, limits, thresholds) are out of scope:
the report only carries the list of downstream rules to run next, taken
from the ValidatorCatalog the caller passes in.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import timedelta
from typing import IO, Any

from consar_ingest.config import ParserSettings
from consar_ingest.exceptions import StreamReadError
from consar_ingest.layout_registry import SchemaCatalog, get_schema
from consar_ingest.models import FileKind, Severity
from consar_ingest.parsers import parse
from consar_ingest.parsers.base import ParseResult, ProgressSink
from consar_ingest.validator_catalog import ValidatorCatalog, ValidatorInfo

logger = logging.getLogger(__name__)

STRUCTURE_VALIDATOR = "Structure"
PARSER_VALIDATOR = "Parser"


@dataclass(frozen=True)
class StructuralFinding:
    """One structural problem.

    Attributes:
        code: Finding code (STRUCT_* or a parser error code).
        message: Human-readable description.
        severity: CRITICAL, ERROR, WARNING or INFO.
        validator_name: "Structure" for structural checks, "Parser" for
            folded-in line errors.
        line_number: Line the finding refers to, if any.
        value: Observed value (e.g. parsed detail count).
        expected: Declared value (e.g. footer count).
    """

    code: str
    message: str
    severity: Severity
    validator_name: str = STRUCTURE_VALIDATOR
    line_number: int | None = None
    value: Any = None
    expected: Any = None


@dataclass
class StructuralReport:
    """Outcome of validate_structure().

    A critical finding means downstream semantic validation should not run.

    Attributes:
        record_count: Physical lines read, blank lines and the header
            included (``ParseResult.total_lines``).
        valid_record_count: Decoded records, of any role, that are valid.
    """

    file_kind: FileKind
    findings: list[StructuralFinding] = field(default_factory=list)
    record_count: int = 0
    valid_record_count: int = 0
    duration: timedelta = timedelta(0)
    parse_result: ParseResult | None = None
    downstream_rules: list[ValidatorInfo] = field(default_factory=list)

    @property
    def has_critical(self) -> bool:
        return any(f.severity is Severity.CRITICAL for f in self.findings)

    @property
    def is_valid(self) -> bool:
        """True if there are no critical or error findings."""
        return not any(
            f.severity in (Severity.CRITICAL, Severity.ERROR) for f in self.findings
        )

    def by_severity(self, severity: Severity) -> list[StructuralFinding]:
        return [f for f in self.findings if f.severity is severity]

    @property
    def codes(self) -> list[str]:
        return [f.code for f in self.findings]


def _check_type_marker(result: ParseResult) -> list[StructuralFinding]:
    findings: list[StructuralFinding] = []
    if result.header is None:
        findings.append(StructuralFinding(
            "STRUCT_002", "Header record (type 01) is missing", Severity.CRITICAL,
        ))
    if result.footer is None:
        findings.append(StructuralFinding(
            "STRUCT_003", "Footer record (type 03/99) is missing", Severity.CRITICAL,
        ))
        return findings

    declared = result.footer.get("total_registros")
    if declared and declared != result.detail_count:
        findings.append(StructuralFinding(
            "STRUCT_004",
            f"Footer declares {declared} records but {result.detail_count} were parsed",
            Severity.ERROR,
            line_number=result.footer.line_number,
            value=result.detail_count,
            expected=declared,
        ))
    return findings


def _check_record_count(result: ParseResult) -> list[StructuralFinding]:
    header = result.header
    if header is None:
        return [StructuralFinding(
            "STRUCT_002", "Header record (line 1) is missing or unreadable", Severity.CRITICAL,
        )]

    findings: list[StructuralFinding] = []
    declared = result.expected_record_count
    if declared and declared != result.detail_count:
        findings.append(StructuralFinding(
            "STRUCT_SIEFORE_001",
            f"Header declares {declared} records but {result.detail_count} were parsed",
            Severity.WARNING,
            line_number=header.line_number,
            value=result.detail_count,
            expected=declared,
        ))
    if header.get("codigo_afore") is None:
        findings.append(StructuralFinding(
            "STRUCT_SIEFORE_002", "Header has no AFORE code", Severity.ERROR,
            line_number=header.line_number,
        ))
    if header.get("fecha_generacion") is None:
        findings.append(StructuralFinding(
            "STRUCT_SIEFORE_003", "Header generation date is missing or invalid", Severity.WARNING,
            line_number=header.line_number,
        ))
    return findings


def _parser_findings(result: ParseResult) -> list[StructuralFinding]:
    return [
        StructuralFinding(
            err.code, err.message, Severity.ERROR,
            validator_name=PARSER_VALIDATOR,
            line_number=err.line_number,
        )
        for err in result.errors
    ]


def validate_parse_result(
    result: ParseResult,
    catalog: SchemaCatalog | None = None,
) -> list[StructuralFinding]:
    """Structural findings for a completed parse."""
    layout = get_schema(result.file_kind, result.schema_version or None, catalog=catalog)
    if layout is not None and layout.header_style == "type_marker":
        findings = _check_type_marker(result)
    else:
        findings = _check_record_count(result)
    return findings + _parser_findings(result)


def validate_structure(
    stream: IO[Any] | Iterable[Any],
    file_kind: FileKind,
    *,
    settings: ParserSettings | None = None,
    catalog: SchemaCatalog | None = None,
    validator_catalog: ValidatorCatalog | None = None,
    version: str | None = None,
    progress: ProgressSink | None = None,
    cancel: threading.Event | None = None,
) -> StructuralReport:
    """Parse *stream* and report its structural problems.

    A stream failure does not raise: it becomes a STRUCT_001 finding and
    the report covers whatever was parsed before the failure.

    Raises:
        UnknownFileKindError: If *file_kind* cannot be parsed.
        ParseCancelledError: If *cancel* was set during the parse.
    """
    started = time.perf_counter()
    report = StructuralReport(file_kind=file_kind)

    try:
        result = parse(
            stream, file_kind, progress=progress, cancel=cancel,
            settings=settings, catalog=catalog, version=version,
        )
        report.findings.extend(validate_parse_result(result, catalog=catalog))
    except StreamReadError as exc:
        logger.warning("Stream failure during structural validation: %s", exc)
        result = exc.partial if isinstance(exc.partial, ParseResult) else None
        report.findings.append(StructuralFinding("STRUCT_001", str(exc), Severity.CRITICAL))
        if result is not None:
            report.findings.extend(_parser_findings(result))

    if result is not None:
        report.parse_result = result
        report.record_count = result.total_lines
        report.valid_record_count = sum(1 for r in result.records if r.is_valid)
    if validator_catalog is not None:
        report.downstream_rules = validator_catalog.validators_for(file_kind)

    report.duration = timedelta(seconds=time.perf_counter() - started)
    logger.info(
        "Structural validation of %s: %d findings (critical=%s)",
        file_kind.value, len(report.findings), report.has_critical,
    )
    return report
