"""
Ingest configuration for consar-ingest.

One YAML file per input file, written by ``init()`` and read back by
``ingest()``. It has four sections:

- ``source``: which file, as which FileKind, optionally pinned to a
  layout version (operators pin a version when CONSAR publishes a new
  layout but older files still have to be re-read).
- ``parser``: ParserSettings, the object parsers and the decoder
  receive: stream encoding, progress cadence, numeric policy.
- ``output``: where the tables go, in which format, and whether records
  with blocking diagnostics are exported.
- ``validators``: an alternate validator catalog, if any.

The Pydantic models reject what cannot work before any parsing starts:
an Unknown or container kind, a zero progress interval, an unknown
output format. ``validate_config_against_catalog`` adds the checks that
need the layout catalog.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, model_validator

from consar_ingest.exceptions import ConfigValidationError
from consar_ingest.layout_registry import SchemaCatalog, default_catalog
from consar_ingest.models import FileKind

logger = logging.getLogger(__name__)


class SourceConfig(BaseModel):
    """The input file, its kind and an optional pinned layout version."""

    input_path: str = Field(..., description="Path to the CONSAR interchange file")
    file_kind: FileKind = Field(..., description="Detected or declared file kind")
    schema_version: str | None = Field(
        None, description="Layout version to decode with; None uses the baseline"
    )

    @model_validator(mode="after")
    def _check_parseable_kind(self) -> SourceConfig:
        if self.file_kind is FileKind.UNKNOWN or self.file_kind.is_container:
            raise ValueError(
                f"file_kind '{self.file_kind.value}' is not a parseable data file kind"
            )
        return self


class ParserSettings(BaseModel):
    """Stream parser settings."""

    encoding: str = Field("latin-1", description="Single-byte encoding of the input")
    progress_interval: int = Field(
        1000, gt=0, description="Report progress every N lines"
    )
    numeric_policy: Literal["lenient", "strict"] = Field(
        "lenient",
        description=(
            "'lenient': non-numeric amounts read as 0 (flagged NumericCoerced); "
            "'strict': they read as null with a FieldExtraction diagnostic"
        ),
    )


class OutputConfig(BaseModel):
    """Where and how the parsed tables are written."""

    output_dir: str = Field("outputs/", description="Directory the tables are written into")
    output_format: Literal["csv", "parquet"] = Field(
        "parquet", description="Table file format (Parquet keeps exact decimals)"
    )
    include_invalid: bool = Field(
        True, description="If False, records with blocking diagnostics are not exported"
    )


class ValidatorsConfig(BaseModel):
    """Validator catalog settings."""

    catalog_path: str | None = Field(
        None, description="Alternate validator catalog YAML; None uses the built-in one"
    )


class IngestConfig(BaseModel):
    """Top-level configuration for consar-ingest."""

    source: SourceConfig
    parser: ParserSettings = Field(default_factory=ParserSettings)
    output: OutputConfig = Field(default_factory=OutputConfig)
    validators: ValidatorsConfig = Field(default_factory=ValidatorsConfig)


_CONFIG_HEADER = (
    "# consar-ingest configuration for {name}\n"
    "# File kind {kind} ({label}). Set source.schema_version to pin a layout\n"
    "# version; set output.include_invalid to false to skip invalid records.\n\n"
)


def load_config(path: str | Path) -> IngestConfig:
    """Read an ingest config YAML.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ConfigValidationError: If the file is empty or is not a mapping.
        pydantic.ValidationError: If a section fails validation (for
            example an unknown file kind or output format).
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    if raw is None:
        raise ConfigValidationError(f"Config file is empty: {path}")
    if not isinstance(raw, dict):
        raise ConfigValidationError(
            f"Config file must contain a mapping, got {type(raw).__name__}: {path}"
        )
    config = IngestConfig.model_validate(raw)
    logger.info("Loaded config from %s (file kind %s)", path, config.source.file_kind.value)
    return config


def save_config(config: IngestConfig, path: str | Path) -> None:
    """Write *config* as YAML, sections in model order, under a comment header."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    kind = config.source.file_kind
    header = _CONFIG_HEADER.format(
        name=Path(config.source.input_path).name, kind=kind.value, label=kind.label,
    )
    body = yaml.safe_dump(
        config.model_dump(mode="json"), allow_unicode=True, sort_keys=False,
    )
    path.write_text(header + body, encoding="utf-8")
    logger.info("Saved config to %s", path)


def generate_default_config(
    input_path: str,
    file_kind: FileKind,
    output_dir: str = "outputs/",
    schema_version: str | None = None,
) -> IngestConfig:
    """Build an IngestConfig for a detected file (used on first run)."""
    return IngestConfig(
        source=SourceConfig(
            input_path=input_path,
            file_kind=file_kind,
            schema_version=schema_version,
        ),
        output=OutputConfig(output_dir=output_dir),
    )


def validate_config_against_catalog(
    config: IngestConfig,
    catalog: SchemaCatalog | None = None,
) -> None:
    """Check that the configured kind (and pinned version) has a layout.

    Raises:
        ConfigValidationError: If the kind has no layout, or the pinned
            version does not exist for it.
    """
    catalog = catalog or default_catalog()
    kind = config.source.file_kind
    versions = catalog.list_versions(kind)
    if not versions:
        raise ConfigValidationError(f"No layout available for file kind {kind.value}")
    pinned = config.source.schema_version
    if pinned is not None and pinned not in versions:
        raise ConfigValidationError(
            f"Layout version {pinned} does not exist for file kind {kind.value}. "
            f"Available versions: {versions}"
        )
    logger.info("Config validation passed: %s v%s", kind.value, pinned or versions[0])
