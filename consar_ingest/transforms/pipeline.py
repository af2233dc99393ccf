"""
Transform pipeline orchestrator for consar-ingest.

Runs a fixed sequence of steps on a ParseResult:

1. **InvalidDropper**: Remove records with blocking diagnostics
   (skipped when ``include_invalid`` is True, the default).
2. **RecordSplitter**: Group detail records by record type code.
3. **FrameBuilder**: Build one DataFrame per group, plus ``header``,
   ``footer``, ``control``, ``errors`` and ``warnings`` tables (and
   ``findings`` when structural findings are passed in).

The pipeline receives the full ``IngestConfig`` so each step can check
relevant flags.

Returns a ``PipelineResult`` with the tables and drop statistics (both
needed by the ``_meta`` table builder).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import pandas as pd

from consar_ingest.config import IngestConfig
from consar_ingest.parsers.base import ParseResult
from consar_ingest.transforms.frames import (
    errors_to_frame,
    findings_to_frame,
    records_to_frame,
    warnings_to_frame,
)
from consar_ingest.transforms.splitter import drop_invalid, split_records
from consar_ingest.validator import StructuralFinding

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Output of the transform pipeline.

    Attributes:
        tables: Dict mapping table_name -> DataFrame.
        records_total: Detail records before the invalid drop.
        records_dropped: Detail records removed as invalid (0 when
            ``include_invalid`` is enabled).
    """

    tables: dict[str, pd.DataFrame] = field(default_factory=dict)
    records_total: int = 0
    records_dropped: int = 0


class TransformPipeline:
    """Orchestrates the sequence of transforms.

    The pipeline is **stateless**: each call to ``run()`` processes a
    fresh ParseResult independently.
    """

    def __init__(self, config: IngestConfig) -> None:
        self.config = config

    def run(
        self,
        result: ParseResult,
        findings: list[StructuralFinding] | None = None,
    ) -> PipelineResult:
        """Run all transforms and return the output tables."""
        details = list(result.details)
        total = len(details)

        # -- Step 1: Invalid record drop (configurable) -------------------
        dropped = 0
        if self.config.output.include_invalid:
            logger.info("Step 1/3: Invalid record drop SKIPPED (include_invalid enabled)")
        else:
            logger.info("Step 1/3: Dropping invalid records")
            details, dropped = drop_invalid(details)
            logger.info("  Records: %d total, %d dropped", total, dropped)

        # -- Step 2: Split by record type (always runs) -------------------
        groups = split_records(details)
        logger.info("Step 2/3: Split %d detail records into %d table(s)", len(details), len(groups))

        # -- Step 3: Build frames (always runs) ---------------------------
        logger.info("Step 3/3: Building DataFrames")
        tables: dict[str, pd.DataFrame] = {}
        if result.header is not None:
            tables["header"] = records_to_frame([result.header])
        for table_name, records in groups.items():
            tables[table_name] = records_to_frame(records)
        if result.control_records:
            tables["control"] = records_to_frame(result.control_records)
        if result.footer is not None:
            tables["footer"] = records_to_frame([result.footer])
        tables["errors"] = errors_to_frame(result.errors)
        tables["warnings"] = warnings_to_frame(result.warnings)
        if findings is not None:
            tables["findings"] = findings_to_frame(findings)

        return PipelineResult(tables=tables, records_total=total, records_dropped=dropped)
