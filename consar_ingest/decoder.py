"""
Record decoder for consar-ingest.

Turns one raw fixed-width line into a DecodedRecord using the layout
catalog as the single source of truth for offsets:

1. Decide whether the line is the file header (record-count layouts:
   the first line) or slice its record type code (``code_width`` chars).
2. Look the code up in the layout's dispatch table, falling back to the
   layout's fallback record if it has one.
3. Gate on the record's minimum length. A short line produces exactly
   one LineTooShort (or HeaderTooShort) diagnostic and no values.
4. Convert every field per its FieldType, then compute derived flags and
   heuristic scans, and build the record's typed value model.

Decoding a line never raises. Every problem becomes a Diagnostic on the
returned record and the remaining fields are still extracted.
"""

from __future__ import annotations

import logging
from decimal import InvalidOperation
from typing import Any

from consar_ingest.derived import evaluate_derived, evaluate_scan
from consar_ingest.exceptions import UnknownFileKindError
from consar_ingest.fields import (
    NumericPolicy,
    is_numeric_text,
    parse_boolean,
    parse_date_yymmdd,
    parse_date_yyyymmdd,
    parse_implied_decimal,
    parse_integer,
    parse_string,
    slice_field,
)
from consar_ingest.layout_registry import (
    HEADER_CODE,
    FieldSchema,
    LayoutSchema,
    RecordSchema,
    SchemaCatalog,
    get_schema,
)
from consar_ingest.models import FieldType, FileKind, RecordRole, Severity
from consar_ingest.records import DecodedRecord, Diagnostic

logger = logging.getLogger(__name__)

UNKNOWN_CATEGORY = "Desconocido"

_TEXT_TYPES = {FieldType.STRING, FieldType.ISIN, FieldType.LEI, FieldType.CURRENCY}


def resolve_layout(
    file_kind: FileKind,
    version: str | None = None,
    catalog: SchemaCatalog | None = None,
) -> LayoutSchema:
    """Return the layout for *file_kind* or raise UnknownFileKindError."""
    if file_kind is FileKind.UNKNOWN or file_kind.is_container:
        raise UnknownFileKindError(f"File kind '{file_kind.value}' cannot be decoded")
    layout = get_schema(file_kind, version, catalog=catalog)
    if layout is None:
        raise UnknownFileKindError(f"No layout registered for file kind {file_kind.value}")
    return layout


def slice_record_code(raw_line: str, layout: LayoutSchema) -> str:
    """Slice the record type prefix (may be shorter than code_width)."""
    return raw_line[:layout.code_width]


# ---------------------------------------------------------------------------
# Field conversion
# ---------------------------------------------------------------------------

def _convert_numeric(
    fs: FieldSchema,
    text: str,
    policy: NumericPolicy,
    diagnostics: list[Diagnostic],
) -> Any:
    if fs.type is FieldType.INTEGER:
        value = parse_integer(text, policy)
    else:
        value = parse_implied_decimal(text, fs.scale, policy)

    if text.strip() and not is_numeric_text(text):
        if policy == "lenient":
            diagnostics.append(Diagnostic(
                code="NumericCoerced",
                message=f"Field '{fs.name}': non-numeric value '{text.strip()}' read as 0",
                field=fs.name,
                severity=Severity.INFO,
            ))
        else:
            diagnostics.append(Diagnostic(
                code="FieldExtraction",
                message=f"Field '{fs.name}': non-numeric value '{text.strip()}'",
                field=fs.name,
            ))
    return value


def _convert(
    fs: FieldSchema,
    text: str,
    policy: NumericPolicy,
    diagnostics: list[Diagnostic],
) -> Any:
    if fs.type in _TEXT_TYPES:
        return parse_string(text)
    if fs.type in (FieldType.INTEGER, FieldType.DECIMAL):
        return _convert_numeric(fs, text, policy, diagnostics)
    if fs.type is FieldType.DATE_YYYYMMDD:
        return parse_date_yyyymmdd(text)
    if fs.type is FieldType.DATE_YYMMDD:
        return parse_date_yymmdd(text)
    if fs.type is FieldType.BOOLEAN:
        return parse_boolean(text)
    raise ValueError(f"Field type {fs.type.value} cannot be read from a line")


def extract_values(
    raw_line: str,
    schema: RecordSchema,
    policy: NumericPolicy = "lenient",
) -> tuple[dict[str, Any], list[Diagnostic]]:
    """Extract wire fields, derived flags and scans for one record.

    The caller has already checked the minimum length. Fields that end
    past the end of the line are optional trailing fields and decode to
    None without a diagnostic.
    """
    values: dict[str, Any] = {}
    diagnostics: list[Diagnostic] = []

    for fs in schema.fields:
        if fs.end > len(raw_line):
            values[fs.name] = None
        else:
            text = slice_field(raw_line, fs.start, fs.length)
            try:
                values[fs.name] = _convert(fs, text, policy, diagnostics)
            except (ValueError, InvalidOperation) as exc:
                values[fs.name] = None
                diagnostics.append(Diagnostic(
                    code="FieldExtraction",
                    message=f"Field '{fs.name}': {exc}",
                    field=fs.name,
                ))
        if fs.required and values[fs.name] is None:
            diagnostics.append(Diagnostic(
                code="RequiredFieldMissing",
                message=f"Required field '{fs.name}' is blank",
                field=fs.name,
            ))

    for derived in schema.derived:
        sources = [values.get(name) for name in derived.source]
        values[derived.name] = evaluate_derived(derived.rule, sources, values)

    for scan in schema.scans:
        values[scan.name] = evaluate_scan(scan.rule, raw_line)

    return values, diagnostics


# ---------------------------------------------------------------------------
# Line decoding
# ---------------------------------------------------------------------------

def _failed(
    raw_line: str,
    line_number: int,
    code: str,
    category: str,
    role: RecordRole,
    diagnostic: Diagnostic,
) -> DecodedRecord:
    logger.debug("Line %d: %s", line_number, diagnostic.message)
    return DecodedRecord(
        line_number=line_number,
        record_type_code=code,
        category=category,
        raw_line=raw_line,
        role=role,
        values=None,
        diagnostics=(diagnostic,),
    )


def decode_line(
    raw_line: str,
    line_number: int,
    file_kind: FileKind,
    record_type_code: str | None = None,
    *,
    layout: LayoutSchema | None = None,
    is_header: bool | None = None,
    numeric_policy: NumericPolicy = "lenient",
    catalog: SchemaCatalog | None = None,
) -> DecodedRecord:
    """Decode one line into a DecodedRecord.

    Args:
        raw_line: The line without its terminator.
        line_number: 1-based physical line number.
        file_kind: Kind of the file the line belongs to.
        record_type_code: Dispatch code; sliced from the line when omitted.
        layout: Layout to decode with. Looked up in *catalog* when omitted.
        is_header: For record-count layouts, whether this line is the file
            header. Defaults to ``line_number == 1``.
        numeric_policy: ``"lenient"`` or ``"strict"`` (see fields.py).
        catalog: Schema catalog to use (default: the built-in one).

    Raises:
        UnknownFileKindError: If *file_kind* has no layout.
    """
    layout = layout or resolve_layout(file_kind, catalog=catalog)

    if layout.header_style == "record_count":
        if is_header is None:
            is_header = line_number == 1
    else:
        is_header = False

    if is_header:
        schema = layout.header
        code = HEADER_CODE
    else:
        code = record_type_code or slice_record_code(raw_line, layout)
        if len(code) < layout.code_width:
            return _failed(raw_line, line_number, code, UNKNOWN_CATEGORY, RecordRole.DETAIL, Diagnostic(
                code="LineTooShort",
                message=(
                    f"Line {line_number}: length {len(raw_line)} is too short to "
                    f"read a {layout.code_width}-character record type"
                ),
            ))
        schema = layout.record_for(code)
        if schema is None:
            return _failed(raw_line, line_number, code, UNKNOWN_CATEGORY, RecordRole.DETAIL, Diagnostic(
                code="UnknownRecordType",
                message=f"Line {line_number}: unknown record type '{code}' for {file_kind.label}",
            ))

    if len(raw_line) < schema.min_length:
        return _failed(raw_line, line_number, code, schema.category, schema.role, Diagnostic(
            code="HeaderTooShort" if is_header else "LineTooShort",
            message=(
                f"Line {line_number}: length {len(raw_line)} < required "
                f"{schema.min_length} for record type {code}"
            ),
        ))

    values, diagnostics = extract_values(raw_line, schema, numeric_policy)

    if is_header and layout.expected_layout_codes:
        layout_code = values.get("codigo_layout")
        if layout_code not in layout.expected_layout_codes:
            diagnostics.append(Diagnostic(
                code="UnexpectedLayoutCode",
                message=f"Unexpected layout code in header: {layout_code}",
                field="codigo_layout",
                severity=Severity.INFO,
            ))

    model = layout.model_for(schema.code)
    return DecodedRecord(
        line_number=line_number,
        record_type_code=code,
        category=schema.category,
        raw_line=raw_line,
        role=schema.role,
        values=model(**values),
        diagnostics=tuple(diagnostics),
    )

