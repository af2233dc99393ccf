"""
File type detection for CONSAR interchange files.

Two independent signals, each producing a DetectionResult:

- File name: the canonical pattern
  ``YYYYMMDD_<PS|SB|SA|SV>_<issuer:3>_<fund:6>[_<seq>].<ext:4>``, container
  suffixes (.zip / .gpg), metadata sidecars (.meta.json) and, as a weaker
  fallback, the numeric extension alone.
- Header content: the record-count header carries an 8-digit count, a
  4-character layout code at offset 10 and, somewhere in offsets 14-20,
  a 3-digit AFORE code.

detect_combined() reconciles both. Detection never raises: the worst
case is FileKind.UNKNOWN with confidence 0 and a warning explaining why.

Design: Strategy Pattern
- get_parser() maps a file kind to its parser class via the layout's
  header style ("record_count" / "type_marker").
- New file kinds only need a layout YAML; no parser changes.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from datetime import date
from pathlib import Path

from consar_ingest.exceptions import UnknownFileKindError
from consar_ingest.layout_registry import SchemaCatalog, get_schema
from consar_ingest.models import DetectionResult, FileCategory, FileKind
from consar_ingest.parsers.base import BaseParser

logger = logging.getLogger(__name__)

_FILENAME_PATTERN = re.compile(r"^[0-9]{8}_(PS|SB|SA|SV)_([0-9]{3})_([0-9]{6})(?:_[0-9]+)?\.([0-9]{4})$")
_RECORD_COUNT_PATTERN = re.compile(r"[0-9]{8}")

MIN_HEADER_LENGTH = 30

# Layout codes observed in record-count headers
_LAYOUT_CODE_KINDS = {
    "3030": FileKind.CARTERA_SIEFORE,
    "0300": FileKind.CARTERA_SIEFORE,
    "8031": FileKind.DERIVADOS,
    "0314": FileKind.DERIVADOS,
    "6032": FileKind.FONDOS_BMRPREV,
    "7110": FileKind.TOTALES_CONCILIACION,
    "0317": FileKind.CONTROL_CARTERA,
    "0316": FileKind.CONFIRMACIONES,
}

# AFORE codes start with one of these prefixes
_ISSUER_PREFIXES = ("04", "05", "03")

# Maps header_style to parser class
_PARSER_MAP: dict[str, type[BaseParser]] = {}


def _get_parser_map() -> dict[str, type[BaseParser]]:
    """Lazily build the parser map to avoid circular imports."""
    if not _PARSER_MAP:
        from consar_ingest.parsers.record_count import RecordCountParser
        from consar_ingest.parsers.type_marker import TypeMarkerParser

        _PARSER_MAP["record_count"] = RecordCountParser
        _PARSER_MAP["type_marker"] = TypeMarkerParser
    return _PARSER_MAP


def kind_from_extension(extension: str) -> FileKind:
    """Map a 4-digit extension code to a data FileKind (UNKNOWN if none)."""
    try:
        kind = FileKind(extension)
    except ValueError:
        return FileKind.UNKNOWN
    return FileKind.UNKNOWN if kind.is_container else kind


def _parse_name_date(text: str) -> date | None:
    try:
        return date(int(text[:4]), int(text[4:6]), int(text[6:8]))
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Name-based detection
# ---------------------------------------------------------------------------

def detect_from_name(filename: str | Path) -> DetectionResult:
    """Classify a file by its name only."""
    name = Path(str(filename)).name if str(filename).strip() else ""
    if not name:
        return DetectionResult(method="FileName", warnings=("Empty file name",))

    lowered = name.lower()
    if lowered.endswith(".zip"):
        return DetectionResult(FileKind.PAQUETE_ZIP, 100, "FileName.Extension")
    if lowered.endswith(".gpg"):
        return DetectionResult(FileKind.ARCHIVO_GPG, 100, "FileName.Extension")
    if lowered.endswith(".meta.json"):
        return DetectionResult(
            FileKind.UNKNOWN, 100, "FileName.MetaFile",
            warnings=("Metadata file, not a data file",),
        )

    match = _FILENAME_PATTERN.match(name)
    if match:
        warnings: list[str] = []
        file_date = _parse_name_date(name[:8])
        if file_date is None:
            warnings.append(f"Invalid date in file name: {name[:8]}")
        category, issuer, fund, extension = match.groups()
        return DetectionResult(
            file_kind=kind_from_extension(extension),
            confidence=95,
            method="FileName.StandardPattern",
            category=FileCategory(category),
            issuer_code=issuer,
            fund_code=fund,
            file_date=file_date,
            warnings=tuple(warnings),
        )

    suffix = Path(name).suffix
    if suffix[1:].isascii() and suffix[1:].isdigit():
        kind = kind_from_extension(suffix[1:])
        if kind is not FileKind.UNKNOWN:
            return DetectionResult(
                kind, 60, "FileName.ExtensionOnly",
                warnings=("File name does not follow the standard CONSAR pattern",),
            )

    return DetectionResult(
        FileKind.UNKNOWN, 0, "FileName.NoMatch",
        warnings=(f"Could not determine file type from name: {name}",),
    )


# ---------------------------------------------------------------------------
# Content-based detection
# ---------------------------------------------------------------------------

def detect_from_content(header_line: str) -> DetectionResult:
    """Classify a file from its first line.

    Confidence is a weighted sum: +50 for a known layout code, +20 for a
    positive record count, +15 for a layout code, +15 for an issuer code.
    """
    header_line = header_line.rstrip("\r\n")
    if len(header_line) < MIN_HEADER_LENGTH:
        return DetectionResult(
            method="Content", warnings=("Header too short for analysis",),
        )
    if header_line[0] not in "0123456789":
        return DetectionResult(
            method="Content.InvalidStart", warnings=("Header does not start with digits",),
        )

    count_text = header_line[:8]
    expected_count = int(count_text) if _RECORD_COUNT_PATTERN.fullmatch(count_text) else None
    layout_code = header_line[10:14]
    file_kind = _LAYOUT_CODE_KINDS.get(layout_code, FileKind.UNKNOWN)

    issuer_code = None
    for i in range(14, min(20, len(header_line) - 3) + 1):
        candidate = header_line[i:i + 3]
        if candidate.startswith(_ISSUER_PREFIXES):
            issuer_code = candidate
            break

    confidence = 0
    if file_kind is not FileKind.UNKNOWN:
        confidence += 50
    if expected_count:
        confidence += 20
    if layout_code:
        confidence += 15
    if issuer_code:
        confidence += 15

    return DetectionResult(
        file_kind=file_kind,
        confidence=min(100, confidence),
        method="Content.HeaderAnalysis",
        layout_code=layout_code,
        issuer_code=issuer_code,
        expected_record_count=expected_count,
    )


# ---------------------------------------------------------------------------
# Combined detection
# ---------------------------------------------------------------------------

def detect_combined(filename: str | Path, header_line: str) -> DetectionResult:
    """Run both detectors and reconcile them.

    - Same kind: that kind, confidence ``min(100, a + b) // 2 + 25``.
    - Different kinds: a warning naming both; the higher confidence wins
      and a tie goes to the name-based result.
    - One side UNKNOWN: the other side.

    Category, date and fund always come from the name; layout and issuer
    prefer the header; the expected record count comes from the header.
    """
    by_name = detect_from_name(filename)
    by_content = detect_from_content(header_line)
    warnings = list(by_name.warnings) + list(by_content.warnings)

    merged = DetectionResult(
        category=by_name.category,
        layout_code=by_content.layout_code or by_name.layout_code,
        issuer_code=by_content.issuer_code or by_name.issuer_code,
        fund_code=by_name.fund_code or by_content.fund_code,
        expected_record_count=by_content.expected_record_count,
        file_date=by_name.file_date,
    )

    name_known = by_name.file_kind is not FileKind.UNKNOWN
    content_known = by_content.file_kind is not FileKind.UNKNOWN

    if name_known and content_known and by_name.file_kind is by_content.file_kind:
        return replace(
            merged,
            file_kind=by_name.file_kind,
            confidence=min(100, by_name.confidence + by_content.confidence) // 2 + 25,
            method="Combined.Consistent",
            warnings=tuple(warnings),
        )

    if name_known and content_known:
        warnings.append(
            f"Discrepancy: name suggests {by_name.file_kind.label}, "
            f"content suggests {by_content.file_kind.label}"
        )
        logger.warning(
            "Detection discrepancy for %s: name=%s content=%s",
            filename, by_name.file_kind.value, by_content.file_kind.value,
        )
        best = by_name if by_name.confidence >= by_content.confidence else by_content
    elif content_known:
        best = by_content
    else:
        best = by_name

    return replace(
        merged,
        file_kind=best.file_kind,
        confidence=best.confidence,
        method=f"Combined.BestOf({best.method})",
        warnings=tuple(warnings),
    )


def read_first_line(path: str | Path, encoding: str = "latin-1") -> str:
    """Read the first line of *path* without its terminator ('' if empty)."""
    with open(path, "r", encoding=encoding, newline="") as f:
        return f.readline().rstrip("\r\n")


def detect_file(path: str | Path, encoding: str = "latin-1") -> DetectionResult:
    """Detect a file on disk from its name and first line."""
    path = Path(path)
    result = detect_combined(path.name, read_first_line(path, encoding))
    logger.info(
        "Detected %s for %s (confidence %d, %s)",
        result.file_kind.value, path.name, result.confidence, result.method,
    )
    return result


def get_parser(
    file_kind: FileKind,
    catalog: SchemaCatalog | None = None,
) -> type[BaseParser]:
    """Return the parser class for *file_kind*.

    Raises:
        UnknownFileKindError: If the kind is UNKNOWN, a container, or has
            no layout in the catalog.
    """
    if file_kind is FileKind.UNKNOWN or file_kind.is_container:
        raise UnknownFileKindError(f"File kind '{file_kind.value}' cannot be parsed")
    layout = get_schema(file_kind, catalog=catalog)
    if layout is None:
        raise UnknownFileKindError(f"No layout registered for file kind {file_kind.value}")
    return _get_parser_map()[layout.header_style]
