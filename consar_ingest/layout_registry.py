"""
Layout schema catalog for consar-ingest.

Loads layout YAML files from consar_ingest/layouts/ and provides
structured, versioned access via Pydantic models. Each layout defines:
- file_kind / version / effective window
- header_style: "record_count" (8-digit count header on line 1) or
  "type_marker" (01/02/03/04/99 marker lines)
- code_width: width of the record type prefix for this file kind
- header: the line-1 header schema (record_count layouts only)
- records: record type code -> RecordSchema (field offsets, types,
  minimum line length, derived flags, heuristic scans)
- fallback: record code used for unrecognised record types, if any

Why YAML instead of hardcoded offsets:
- A regulator layout revision is a new YAML version, no decoder change.
- Offsets are easy to review against the published layout tables.
- Separation of structure knowledge (YAML) from decoding logic (Python).

A YAML file holds either one layout mapping or a ``layouts:`` list
(plus an optional ``shared:`` section used only for YAML anchors).
"""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, PrivateAttr, ValidationError, model_validator

from consar_ingest.derived import output_type, referenced_fields, validate_rule
from consar_ingest.exceptions import SchemaError
from consar_ingest.models import FieldType, FileKind, RecordRole
from consar_ingest.records import RecordValues, build_record_model

logger = logging.getLogger(__name__)

# Directory containing layout YAML files (sibling package)
_LAYOUTS_DIR = Path(__file__).parent / "layouts"

BASELINE_VERSION = "1.0"

# Header record code for record_count layouts (the header has no type prefix)
HEADER_CODE = "HDR"


class FieldSchema(BaseModel):
    """One fixed-width column: 0-based start offset and length."""

    name: str
    start: int = Field(..., ge=0)
    length: int = Field(..., gt=0)
    type: FieldType = FieldType.STRING
    scale: int = Field(0, ge=0, description="Implied decimal places (decimal only)")
    required: bool = False

    @property
    def end(self) -> int:
        return self.start + self.length


class DerivedField(BaseModel):
    """A convenience projection computed from already-decoded fields."""

    name: str
    rule: str
    source: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _source_as_list(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("source"), str):
            data = {**data, "source": [data["source"]]}
        return data

    @model_validator(mode="after")
    def _check_rule(self) -> DerivedField:
        validate_rule(self.rule, scan=False)
        return self

    @property
    def type(self) -> FieldType:
        return output_type(self.rule)


class ScanField(BaseModel):
    """A best-effort value found by scanning the raw line, not by offset."""

    name: str
    rule: str

    @model_validator(mode="after")
    def _check_rule(self) -> ScanField:
        validate_rule(self.rule, scan=True)
        return self

    @property
    def type(self) -> FieldType:
        return output_type(self.rule)


class RecordSchema(BaseModel):
    """Field table for one record type code."""

    code: str
    category: str
    role: RecordRole = RecordRole.DETAIL
    min_length: int = Field(..., gt=0)
    description: str = ""
    fields: list[FieldSchema] = Field(default_factory=list)
    derived: list[DerivedField] = Field(default_factory=list)
    scans: list[ScanField] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_names(self) -> RecordSchema:
        """Reject duplicate names and derived rules with unknown sources."""
        seen: set[str] = set()
        for name in self.attribute_names:
            if name in seen:
                raise ValueError(f"Record '{self.code}': duplicate field '{name}'")
            seen.add(name)
        known = {f.name for f in self.fields}
        for d in self.derived:
            needed = d.source + referenced_fields(d.rule)
            missing = [s for s in needed if s not in known]
            if missing:
                raise ValueError(
                    f"Record '{self.code}': derived '{d.name}' uses unknown "
                    f"source field(s) {missing}"
                )
            known.add(d.name)
        return self

    @property
    def attribute_names(self) -> list[str]:
        """Wire fields, then derived fields, then scans (model attribute order)."""
        return (
            [f.name for f in self.fields]
            + [d.name for d in self.derived]
            + [s.name for s in self.scans]
        )


class LayoutSchema(BaseModel):
    """A complete, versioned layout for one file kind."""

    file_kind: FileKind
    version: str = BASELINE_VERSION
    effective_from: date
    effective_to: date | None = None
    description: str = ""
    header_style: Literal["record_count", "type_marker"]
    code_width: int = Field(..., ge=2, le=5)
    header: RecordSchema | None = None
    expected_layout_codes: list[str] = Field(default_factory=list)
    records: dict[str, RecordSchema]
    fallback: str | None = None

    _models: dict[str, type[RecordValues]] = PrivateAttr(default_factory=dict)

    @model_validator(mode="after")
    def _check_structure(self) -> LayoutSchema:
        if self.header_style == "record_count" and self.header is None:
            raise ValueError(f"Layout {self.file_kind.value}: record_count layouts need a header")
        if self.fallback is not None and self.fallback not in self.records:
            raise ValueError(
                f"Layout {self.file_kind.value}: fallback '{self.fallback}' is not a record code"
            )
        return self

    def model_post_init(self, __context: Any) -> None:
        # One typed model per record schema, built once so the catalog is
        # read-only afterwards.
        for schema in self.all_records():
            self._models[schema.code] = build_record_model(
                _model_name(self.file_kind, schema.code), schema
            )

    def all_records(self) -> list[RecordSchema]:
        """Header (if any) followed by every record schema."""
        schemas = [self.header] if self.header is not None else []
        return schemas + list(self.records.values())

    def record_for(self, code: str) -> RecordSchema | None:
        """Dispatch a record type code, falling back if the layout allows it."""
        schema = self.records.get(code)
        if schema is None and self.fallback is not None:
            schema = self.records[self.fallback]
        return schema

    def model_for(self, code: str) -> type[RecordValues]:
        return self._models[code]

    @property
    def footer_codes(self) -> list[str]:
        return [c for c, s in self.records.items() if s.role is RecordRole.FOOTER]


def _model_name(kind: FileKind, code: str) -> str:
    suffix = "Generic" if code == "*" else code
    return f"{kind.label}{suffix}"


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def _normalise_records(raw_records: dict[str, Any]) -> dict[str, Any]:
    """Copy each record mapping and inject its code from the mapping key.

    Records may be YAML aliases of a shared anchor, so they are copied
    rather than mutated.
    """
    result: dict[str, Any] = {}
    for code, body in raw_records.items():
        code = str(code)
        result[code] = {**body, "code": code}
    return result


def _build_layout(raw: dict[str, Any], source: Path) -> LayoutSchema:
    raw = dict(raw)
    raw["records"] = _normalise_records(raw.get("records") or {})
    if raw.get("header") is not None:
        raw["header"] = {**raw["header"], "code": HEADER_CODE, "role": RecordRole.HEADER.value}
    try:
        return LayoutSchema.model_validate(raw)
    except ValidationError as exc:
        raise SchemaError(f"Invalid layout in {source.name}: {exc}") from exc


def load_layout_file(path: Path) -> list[LayoutSchema]:
    """Load every layout defined in one YAML file."""
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)
    if not raw:
        raise SchemaError(f"Layout file is empty: {path}")
    entries = raw["layouts"] if "layouts" in raw else [raw]
    return [_build_layout(entry, path) for entry in entries]


class SchemaCatalog:
    """Read-only lookup of layouts by (file kind, version).

    Safe to share across concurrent parses: all state is built in
    ``__init__`` and never mutated afterwards.
    """

    def __init__(self, layouts: list[LayoutSchema]) -> None:
        self._layouts: dict[FileKind, dict[str, LayoutSchema]] = {}
        for layout in layouts:
            versions = self._layouts.setdefault(layout.file_kind, {})
            if layout.version in versions:
                logger.warning(
                    "Duplicate layout %s v%s; keeping the first definition",
                    layout.file_kind.value, layout.version,
                )
                continue
            versions[layout.version] = layout

    def get_schema(self, file_kind: FileKind, version: str | None = None) -> LayoutSchema | None:
        """Return the layout for *file_kind*.

        *version* defaults to the baseline ("1.0"). When there is no exact
        match, the lexicographically latest available version is returned.
        Returns None when the kind has no layout at all.
        """
        versions = self._layouts.get(file_kind)
        if not versions:
            return None
        wanted = version or BASELINE_VERSION
        if wanted in versions:
            return versions[wanted]
        latest = sorted(versions, reverse=True)[0]
        logger.debug(
            "No layout %s v%s; falling back to v%s", file_kind.value, wanted, latest
        )
        return versions[latest]

    def list_versions(self, file_kind: FileKind) -> list[str]:
        return sorted(self._layouts.get(file_kind, {}))

    @property
    def file_kinds(self) -> list[FileKind]:
        return list(self._layouts)


def load_catalog(layouts_dir: Path | None = None) -> SchemaCatalog:
    """Load all layout YAML files into a SchemaCatalog.

    Args:
        layouts_dir: Directory to scan for .yaml files. Defaults to
            the built-in layouts/ directory.

    Files that fail to load are logged and skipped.
    """
    layouts_dir = layouts_dir or _LAYOUTS_DIR
    layouts: list[LayoutSchema] = []
    for yaml_path in sorted(layouts_dir.glob("*.yaml")):
        try:
            loaded = load_layout_file(yaml_path)
        except (SchemaError, OSError, yaml.YAMLError) as e:
            logger.warning("Failed to load layout from %s: %s", yaml_path, e)
            continue
        for layout in loaded:
            logger.debug(
                "Loaded layout: %s v%s from %s",
                layout.file_kind.value, layout.version, yaml_path.name,
            )
        layouts.extend(loaded)
    logger.info("Loaded %d layouts", len(layouts))
    return SchemaCatalog(layouts)


_DEFAULT_CATALOG: list[SchemaCatalog] = []


def default_catalog() -> SchemaCatalog:
    """Lazily load the built-in catalog (once per process)."""
    if not _DEFAULT_CATALOG:
        _DEFAULT_CATALOG.append(load_catalog())
    return _DEFAULT_CATALOG[0]


def get_schema(
    file_kind: FileKind,
    version: str | None = None,
    catalog: SchemaCatalog | None = None,
) -> LayoutSchema | None:
    """Look up a layout in *catalog* (default: the built-in catalog)."""
    return (catalog or default_catalog()).get_schema(file_kind, version)


def list_versions(file_kind: FileKind, catalog: SchemaCatalog | None = None) -> list[str]:
    """List available layout versions for *file_kind*, sorted ascending."""
    return (catalog or default_catalog()).list_versions(file_kind)
