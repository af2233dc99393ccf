"""
Internal pipeline orchestration for consar-ingest.

Extracted from ``__init__.py`` so that ``init()`` and ``ingest()`` reuse
the same validate -> pipeline -> meta -> export sequence.

This module is **not** part of the public API.
"""

from __future__ import annotations

import logging

from consar_ingest.config import IngestConfig
from consar_ingest.export import export_tables
from consar_ingest.layout_registry import SchemaCatalog
from consar_ingest.meta import build_meta_table
from consar_ingest.parsers.base import ParseResult
from consar_ingest.transforms.pipeline import TransformPipeline
from consar_ingest.validator import validate_parse_result
from consar_ingest.validator_catalog import load_validator_catalog

logger = logging.getLogger(__name__)


def run_pipeline_and_export(
    config: IngestConfig,
    parse_result: ParseResult,
    catalog: SchemaCatalog | None = None,
) -> list[str]:
    """Validate structure, run the transform pipeline, build ``_meta``, export.

    Steps:
      1. Structural findings for the parse result.
      2. Run the transform pipeline (invalid drop -> split -> frames).
      3. Build the ``_meta`` DataFrame, including the downstream rule
         codes from the configured validator catalog.
      4. Export all tables + ``_meta`` to disk.

    Returns:
        List of output file paths that were written.
    """
    # 1. Structural findings
    findings = validate_parse_result(parse_result, catalog=catalog)
    if findings:
        logger.warning("%d structural finding(s) for %s", len(findings), parse_result.source_name)

    # 2. Transform pipeline
    pipeline_result = TransformPipeline(config).run(parse_result, findings=findings)

    # 3. Build _meta table
    validators = load_validator_catalog(config.validators.catalog_path)
    meta_df = build_meta_table(
        config=config,
        result=parse_result,
        records_dropped=pipeline_result.records_dropped,
        findings=findings,
        downstream_rules=validators.validators_for(parse_result.file_kind),
    )

    # 4. Export
    written = export_tables(
        tables=pipeline_result.tables,
        meta_df=meta_df,
        output_dir=config.output.output_dir,
        output_format=config.output.output_format,
    )

    logger.info("Pipeline complete: wrote %d files", len(written))
    return written
