"""
Decoded record types for consar-ingest.

Every RecordSchema in the layout catalog gets its own frozen Pydantic
model (``RecordValues`` subclass) whose attributes are the schema's wire
fields, then its derived flags, then its scan results. Field names and
types are therefore checked once, at catalog load time, instead of being
looked up by string on every access.

DecodedRecord wraps one input line: where it came from, the typed values
(None when the decode failed outright) and the diagnostics gathered
while decoding.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, create_model

from consar_ingest.models import FieldType, RecordRole, Severity

if TYPE_CHECKING:
    from consar_ingest.layout_registry import RecordSchema

# Diagnostic codes that make a record invalid. Everything else is advisory.
BLOCKING_CODES = frozenset({
    "LineTooShort",
    "HeaderTooShort",
    "UnknownRecordType",
    "RequiredFieldMissing",
    "FieldExtraction",
})

_PYTHON_TYPES: dict[FieldType, Any] = {
    FieldType.STRING: str,
    FieldType.ISIN: str,
    FieldType.LEI: str,
    FieldType.CURRENCY: str,
    FieldType.INTEGER: int,
    FieldType.DECIMAL: Decimal,
    FieldType.DATE_YYYYMMDD: date,
    FieldType.DATE_YYMMDD: date,
    FieldType.BOOLEAN: bool,
    FieldType.DECIMAL_LIST: list[Decimal],
}


class RecordValues(BaseModel):
    """Base class for the generated per-record-type value models."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    def as_dict(self) -> dict[str, Any]:
        """Field name -> value, in schema order."""
        return {name: getattr(self, name) for name in type(self).model_fields}


def build_record_model(model_name: str, schema: RecordSchema) -> type[RecordValues]:
    """Create the frozen value model for *schema*.

    Every attribute is optional: a field can be blank on the wire, a
    trailing field can be absent, and a derived flag may have no input.
    """
    definitions: dict[str, Any] = {}
    for fs in schema.fields:
        definitions[fs.name] = (_PYTHON_TYPES[fs.type] | None, None)
    for extra in [*schema.derived, *schema.scans]:
        definitions[extra.name] = (_PYTHON_TYPES[extra.type] | None, None)
    return create_model(model_name, __base__=RecordValues, **definitions)


@dataclass(frozen=True)
class Diagnostic:
    """One problem found while decoding a line.

    Attributes:
        code: Machine-readable code (e.g. "LineTooShort").
        message: Human-readable description.
        field: Field the problem relates to, if any.
        severity: ERROR for blocking codes, otherwise WARNING or INFO.
    """

    code: str
    message: str
    field: str | None = None
    severity: Severity = Severity.ERROR

    @property
    def is_blocking(self) -> bool:
        return self.code in BLOCKING_CODES


@dataclass(frozen=True)
class DecodedRecord:
    """One decoded input line. Never mutated after decoding.

    Attributes:
        line_number: 1-based physical line number.
        record_type_code: Dispatch code sliced from the line prefix
            ("HDR" for record-count headers).
        category: Category label from the record schema.
        raw_line: The line as read, without its line terminator.
        role: Structural role (header/detail/footer/control).
        values: Typed values, or None when the line could not be decoded.
        diagnostics: Problems found while decoding.
    """

    line_number: int
    record_type_code: str
    category: str
    raw_line: str
    role: RecordRole = RecordRole.DETAIL
    values: RecordValues | None = None
    diagnostics: tuple[Diagnostic, ...] = field(default_factory=tuple)

    @property
    def is_valid(self) -> bool:
        return self.values is not None and not any(d.is_blocking for d in self.diagnostics)

    @property
    def messages(self) -> list[str]:
        return [d.message for d in self.diagnostics]

    @property
    def line_length(self) -> int:
        return len(self.raw_line)

    def get(self, name: str, default: Any = None) -> Any:
        """Value of *name*, or *default* when absent or undecoded."""
        if self.values is None:
            return default
        value = getattr(self.values, name, None)
        return default if value is None else value
