"""
Downstream validator catalog for consar-ingest.

Exposes, per file kind, the ordered list of semantic rules an external
rule engine should run (code, name, group, order, required). Nothing in
this package executes those rules.

The catalog is plain data loaded from YAML into Pydantic models and is
passed explicitly to whoever needs it (validate_structure(), the rule
engine). There is no module-level instance: callers load one with
load_validator_catalog() and hand it over.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from consar_ingest.exceptions import SchemaError
from consar_ingest.models import FileKind

logger = logging.getLogger(__name__)

_DEFAULT_CATALOG_PATH = Path(__file__).parent / "catalogs" / "validators.yaml"


class ValidatorInfo(BaseModel):
    """Metadata for one downstream rule."""

    model_config = {"frozen": True}

    code: str
    name: str
    group: str
    order: int = Field(..., ge=0)
    required: bool = True


class ValidatorCatalog(BaseModel):
    """Rule metadata keyed by file kind."""

    validators: dict[FileKind, list[ValidatorInfo]] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_unique_codes(self) -> ValidatorCatalog:
        for kind, rules in self.validators.items():
            codes = [r.code for r in rules]
            duplicates = sorted({c for c in codes if codes.count(c) > 1})
            if duplicates:
                raise ValueError(f"Duplicate validator codes for {kind.value}: {duplicates}")
        return self

    def validators_for(self, file_kind: FileKind) -> list[ValidatorInfo]:
        """Rules for *file_kind* sorted by execution order (empty if none)."""
        return sorted(self.validators.get(file_kind, []), key=lambda v: v.order)

    def required_for(self, file_kind: FileKind) -> list[ValidatorInfo]:
        return [v for v in self.validators_for(file_kind) if v.required]

    def groups_for(self, file_kind: FileKind) -> list[str]:
        """Distinct rule groups, in order of first appearance."""
        groups: list[str] = []
        for v in self.validators_for(file_kind):
            if v.group not in groups:
                groups.append(v.group)
        return groups

    def find(self, code: str) -> ValidatorInfo | None:
        for rules in self.validators.values():
            for v in rules:
                if v.code == code:
                    return v
        return None


def load_validator_catalog(path: str | Path | None = None) -> ValidatorCatalog:
    """Load a validator catalog YAML (default: the built-in catalog).

    Raises:
        FileNotFoundError: If *path* does not exist.
        SchemaError: If the YAML does not describe a valid catalog.
    """
    path = Path(path) if path is not None else _DEFAULT_CATALOG_PATH
    if not path.exists():
        raise FileNotFoundError(f"Validator catalog not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    try:
        catalog = ValidatorCatalog.model_validate(raw)
    except ValidationError as exc:
        raise SchemaError(f"Invalid validator catalog {path.name}: {exc}") from exc
    logger.info(
        "Loaded validator catalog from %s: %d rules for %d file kinds",
        path.name, sum(len(v) for v in catalog.validators.values()), len(catalog.validators),
    )
    return catalog
