"""
Meta table builder for consar-ingest.

Builds the flat _meta table that is output alongside the data tables.
One row per parse run.

Purpose:
  The _meta table is DESCRIPTIVE: it records what the pipeline did,
  providing data lineage and processing statistics. This complements the
  ingest config YAML which is PRESCRIPTIVE (records what the user wants).

  Key information captured:
  - Source-level: filename, SHA-256, file kind, layout version, detection.
  - Parse-level: line, detail, error and warning counts, duration.
  - Processing: records dropped as invalid, structural finding count,
    the downstream rule codes for the file kind, timestamp.
"""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timezone
from functools import partial
from pathlib import Path

import pandas as pd

from consar_ingest.config import IngestConfig
from consar_ingest.parsers.base import ParseResult
from consar_ingest.validator import StructuralFinding
from consar_ingest.validator_catalog import ValidatorInfo

logger = logging.getLogger(__name__)

META_COLUMNS = [
    "source_file", "source_hash", "file_kind", "file_kind_label", "schema_version",
    "detection_method", "detection_confidence", "total_lines", "blank_lines",
    "detail_records", "valid_detail_records", "expected_records", "parse_errors",
    "parse_warnings", "records_dropped", "structural_findings", "downstream_rules",
    "parse_seconds", "processed_at",
]


_HASH_CHUNK = 1 << 20


def _compute_file_hash(path: Path) -> str:
    """SHA-256 of the raw bytes, so a re-delivered file can be told apart."""
    digest = hashlib.sha256()
    with path.open("rb") as f:
        for block in iter(partial(f.read, _HASH_CHUNK), b""):
            digest.update(block)
    return digest.hexdigest()


def build_meta_table(
    config: IngestConfig,
    result: ParseResult,
    records_dropped: int = 0,
    findings: list[StructuralFinding] | None = None,
    downstream_rules: list[ValidatorInfo] | None = None,
) -> pd.DataFrame:
    """Build the one-row _meta table for a parse run.

    Args:
        config: The IngestConfig used for this run.
        result: The ParseResult that was exported.
        records_dropped: Detail records removed as invalid by the pipeline.
        findings: Structural findings for the parse, if validation ran.
        downstream_rules: Semantic rules the rule engine should run next;
            stored as a comma-separated list of codes.

    Returns:
        DataFrame with the columns listed in ``META_COLUMNS``.
    """
    source_path = Path(config.source.input_path)

    # Parses of in-memory streams have no file on disk
    try:
        source_hash = _compute_file_hash(source_path)
    except FileNotFoundError:
        logger.warning("No source file to hash at %s; source_hash left empty", source_path)
        source_hash = ""

    detection = result.detection
    row = {
        "source_file": source_path.name,
        "source_hash": source_hash,
        "file_kind": result.file_kind.value,
        "file_kind_label": result.file_kind.label,
        "schema_version": result.schema_version,
        "detection_method": detection.method if detection else None,
        "detection_confidence": detection.confidence if detection else None,
        "total_lines": result.total_lines,
        "blank_lines": result.blank_lines,
        "detail_records": result.detail_count,
        "valid_detail_records": result.valid_detail_count,
        "expected_records": result.expected_record_count,
        "parse_errors": len(result.errors),
        "parse_warnings": len(result.warnings),
        "records_dropped": records_dropped,
        "structural_findings": len(findings) if findings is not None else None,
        "downstream_rules": ",".join(r.code for r in downstream_rules or []),
        "parse_seconds": result.duration.total_seconds(),
        "processed_at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
    }
    logger.info("Built _meta table for %s", source_path.name)
    return pd.DataFrame([row], columns=META_COLUMNS)
