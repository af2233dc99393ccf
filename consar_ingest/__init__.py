"""
consar-ingest: Python library for parsing CONSAR fixed-width interchange files.

Public API surface:

- ``parse_file(path, ...)`` -- **recommended entry point**. Detects the
  file kind from the name and first line (unless given), parses the file
  in one pass and returns a ``ParseResult``.

- ``validate_file(path, ...)`` -- Parses the file and returns a
  ``StructuralReport`` (header / footer / count checks plus the list of
  downstream semantic rules for the kind).

- ``init(...)`` -- First-run workflow. Detects the file kind, writes an
  ingest config YAML, and optionally exports the parsed tables.

- ``ingest(...)`` -- Subsequent-run workflow. Loads and validates the
  config YAML, then re-parses and re-exports the file.

Lower-level building blocks are re-exported as well: ``parse`` (any
stream), ``decode_line`` (one line), the ``detect_*`` functions, the
layout catalog accessors and the validator catalog loader.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from consar_ingest._pipeline import run_pipeline_and_export
from consar_ingest.config import (
    IngestConfig,
    ParserSettings,
    generate_default_config,
    load_config,
    save_config,
    validate_config_against_catalog,
)
from consar_ingest.decoder import decode_line
from consar_ingest.detect import detect_combined, detect_file, detect_from_content, detect_from_name
from consar_ingest.exceptions import UnknownFileKindError
from consar_ingest.layout_registry import SchemaCatalog, get_schema, list_versions
from consar_ingest.models import DetectionResult, FileKind
from consar_ingest.parsers import parse
from consar_ingest.parsers.base import ParseResult, ParseWarning, ProgressSink
from consar_ingest.validator import StructuralReport, validate_structure
from consar_ingest.validator_catalog import ValidatorCatalog, load_validator_catalog

__all__ = [
    "parse_file",
    "validate_file",
    "init",
    "ingest",
    "parse",
    "decode_line",
    "detect_file",
    "detect_from_name",
    "detect_from_content",
    "detect_combined",
    "get_schema",
    "list_versions",
    "load_validator_catalog",
    "validate_structure",
    "FileKind",
    "ParseResult",
    "StructuralReport",
]

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------

def _resolve_kind(
    path: Path,
    file_kind: FileKind | None,
    encoding: str,
) -> tuple[FileKind, DetectionResult | None]:
    """Return the kind to parse *path* as, detecting it when not given.

    Raises:
        UnknownFileKindError: If detection does not yield a data file kind.
    """
    if file_kind is not None:
        return file_kind, None
    detection = detect_file(path, encoding)
    if not detection.is_data_file:
        reasons = "; ".join(detection.warnings) or "no matching rule"
        raise UnknownFileKindError(
            f"Cannot parse {path.name}: detected {detection.file_kind.value} ({reasons})"
        )
    return detection.file_kind, detection


def _attach_detection(result: ParseResult, detection: DetectionResult) -> None:
    """Store *detection* on *result*, its warnings first under ``DETECTION``."""
    result.detection = detection
    result.warnings[:0] = [ParseWarning(None, "DETECTION", w) for w in detection.warnings]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def parse_file(
    path: str | Path,
    file_kind: FileKind | None = None,
    *,
    settings: ParserSettings | None = None,
    catalog: SchemaCatalog | None = None,
    version: str | None = None,
    progress: ProgressSink | None = None,
    cancel: threading.Event | None = None,
) -> ParseResult:
    """Parse a CONSAR file from disk.

    When *file_kind* is omitted it is detected from the file name and
    first line. Detection warnings are prepended to ``result.warnings``
    under the ``DETECTION`` code and the detection outcome is stored in
    ``result.detection``.

    Examples::

        result = consar_ingest.parse_file("20240131_SB_530_000123.0300")
        for record in result.details:
            print(record.record_type_code, record.get("isin"))

    Raises:
        FileNotFoundError: If *path* does not exist.
        UnknownFileKindError: If the kind is unknown, a container, or
            has no layout.
        ParseCancelledError: If *cancel* was set during the parse.
        StreamReadError: If the file could not be read.
    """
    path = Path(path)
    settings = settings or ParserSettings()
    kind, detection = _resolve_kind(path, file_kind, settings.encoding)

    with open(path, "rb") as f:
        result = parse(
            f, kind, progress=progress, cancel=cancel,
            settings=settings, catalog=catalog, version=version,
        )

    result.source_name = path.name
    if detection is not None:
        _attach_detection(result, detection)
    return result


def validate_file(
    path: str | Path,
    file_kind: FileKind | None = None,
    *,
    settings: ParserSettings | None = None,
    catalog: SchemaCatalog | None = None,
    validator_catalog: ValidatorCatalog | None = None,
    version: str | None = None,
    progress: ProgressSink | None = None,
    cancel: threading.Event | None = None,
) -> StructuralReport:
    """Run structural validation on a CONSAR file from disk.

    The built-in validator catalog is used for ``downstream_rules`` when
    *validator_catalog* is omitted.

    Raises:
        FileNotFoundError: If *path* does not exist.
        UnknownFileKindError: If the kind cannot be parsed.
        ParseCancelledError: If *cancel* was set during the parse.
    """
    path = Path(path)
    settings = settings or ParserSettings()
    kind, detection = _resolve_kind(path, file_kind, settings.encoding)
    validator_catalog = validator_catalog or load_validator_catalog()

    with open(path, "rb") as f:
        report = validate_structure(
            f, kind, settings=settings, catalog=catalog,
            validator_catalog=validator_catalog, version=version,
            progress=progress, cancel=cancel,
        )

    if report.parse_result is not None:
        report.parse_result.source_name = path.name
        report.parse_result.detection = detection
    return report


def init(
    input_path: str,
    output_dir: str = "outputs/",
    config_path: str = "consar_config.yaml",
    run_immediately: bool = True,
    file_kind: FileKind | None = None,
) -> IngestConfig:
    """First-run entry point: detect kind, generate config, optionally export.

    Orchestration:
      1. ``detect_file()`` -> ``DetectionResult`` (skipped if *file_kind* given)
      2. ``generate_default_config()`` -> ``IngestConfig``
      3. ``save_config()`` to *config_path*
      4. If *run_immediately* is True, ``parse_file()`` and
         ``run_pipeline_and_export()``.

    Returns:
        The generated IngestConfig.

    Raises:
        UnknownFileKindError: If the input is not a parseable data file.
    """
    logger.info("init() -- input_path=%s, output_dir=%s", input_path, output_dir)

    path = Path(input_path)
    kind, detection = _resolve_kind(path, file_kind, ParserSettings().encoding)
    logger.info("File kind: %s", kind.label)

    config = generate_default_config(
        input_path=input_path,
        file_kind=kind,
        output_dir=output_dir,
    )
    save_config(config, config_path)

    if run_immediately:
        logger.info("run_immediately=True -- running pipeline")
        result = parse_file(path, kind, settings=config.parser)
        if detection is not None:
            _attach_detection(result, detection)
        run_pipeline_and_export(config, result)

    return config


def ingest(config_path: str = "consar_config.yaml") -> list[str]:
    """Subsequent-run entry point: load config, validate, re-export.

    Orchestration:
      1. ``load_config()`` -> ``IngestConfig`` (Pydantic validation on load).
      2. ``validate_config_against_catalog()`` -- the kind and any pinned
         layout version must exist.
      3. ``parse_file()`` with the configured kind, version and settings.
      4. ``run_pipeline_and_export()`` -- validate, transform, build meta, export.

    Returns:
        List of output file paths that were written.

    Raises:
        FileNotFoundError: If *config_path* or the source file does not exist.
        pydantic.ValidationError: If the config fails Pydantic validation.
        ConfigValidationError: If the configured kind / version has no layout.
    """
    logger.info("ingest() -- config_path=%s", config_path)

    config = load_config(config_path)
    validate_config_against_catalog(config)

    result = parse_file(
        config.source.input_path,
        config.source.file_kind,
        settings=config.parser,
        version=config.source.schema_version,
    )
    return run_pipeline_and_export(config, result)
