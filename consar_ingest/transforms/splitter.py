"""
Record splitter transform for consar-ingest.

Groups detail records by record type code so that each output table has
a single, homogeneous column set (one typed value model per code).

Why splitting:
  A .0300 file mixes government bonds (301), equities (303) and
  international ETFs (307) whose field tables have nothing in common.
  One table per record type keeps every column meaningful.
"""

from __future__ import annotations

import logging

from consar_ingest.records import DecodedRecord

logger = logging.getLogger(__name__)


def table_name_for(record_type_code: str) -> str:
    """Output table name for a detail record type code."""
    return f"detail_{record_type_code}"


def split_records(records: list[DecodedRecord]) -> dict[str, list[DecodedRecord]]:
    """Group records by output table, keeping line order within each group.

    Groups are returned in order of first appearance.
    """
    groups: dict[str, list[DecodedRecord]] = {}
    for record in records:
        groups.setdefault(table_name_for(record.record_type_code), []).append(record)
    for table_name, members in groups.items():
        logger.debug("Table '%s': %d records", table_name, len(members))
    return groups


def drop_invalid(records: list[DecodedRecord]) -> tuple[list[DecodedRecord], int]:
    """Remove records with blocking diagnostics.

    Returns:
        (kept records, number dropped)
    """
    kept = [r for r in records if r.is_valid]
    return kept, len(records) - len(kept)
