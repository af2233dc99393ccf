"""
Shared enumerations and value types for consar-ingest.

- FileKind: regulator file families, keyed by their 4-digit extension.
- FileCategory: the 2-letter fund category from the canonical filename.
- FieldType / RecordRole: vocabulary used by the layout catalog.
- Severity: structural finding levels.
- DetectionResult: immutable outcome of a detection call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum


class FileKind(str, Enum):
    """Supported file families. Values are the regulator's extension codes."""

    UNKNOWN = "unknown"

    # Type-marker files (01 header / 02 detail / 03, 99 footer)
    NOMINA = "0100"
    CONTABLE = "0200"
    REGULARIZACION = "0400"
    RETIROS = "0500"
    TRASPASOS = "0600"
    APORTACIONES_VOLUNTARIAS = "0700"

    # Record-count header files (investment positions)
    CARTERA_SIEFORE = "0300"
    DERIVADOS = "0314"
    CONFIRMACIONES = "0316"
    CONTROL_CARTERA = "0317"
    FONDOS_BMRPREV = "0321"
    TOTALES_CONCILIACION = "1101"

    # Containers (never parsed)
    PAQUETE_ZIP = "zip"
    ARCHIVO_GPG = "gpg"

    @property
    def is_container(self) -> bool:
        return self in (FileKind.PAQUETE_ZIP, FileKind.ARCHIVO_GPG)

    @property
    def label(self) -> str:
        return _KIND_LABELS.get(self, self.name)


_KIND_LABELS = {
    FileKind.UNKNOWN: "Desconocido",
    FileKind.NOMINA: "Nomina",
    FileKind.CONTABLE: "Contable",
    FileKind.REGULARIZACION: "Regularizacion",
    FileKind.RETIROS: "Retiros",
    FileKind.TRASPASOS: "Traspasos",
    FileKind.APORTACIONES_VOLUNTARIAS: "AportacionesVoluntarias",
    FileKind.CARTERA_SIEFORE: "CarteraSiefore",
    FileKind.DERIVADOS: "Derivados",
    FileKind.CONFIRMACIONES: "Confirmaciones",
    FileKind.CONTROL_CARTERA: "ControlCartera",
    FileKind.FONDOS_BMRPREV: "FondosBmrprev",
    FileKind.TOTALES_CONCILIACION: "TotalesConciliacion",
    FileKind.PAQUETE_ZIP: "PaqueteZip",
    FileKind.ARCHIVO_GPG: "ArchivoCifradoGpg",
}


class FileCategory(str, Enum):
    """Fund category encoded in the canonical filename."""

    UNKNOWN = ""
    PS = "PS"
    SB = "SB"
    SA = "SA"
    SV = "SV"

    @property
    def description(self) -> str:
        return {
            FileCategory.PS: "Pensiones",
            FileCategory.SB: "SubcuentaBasica",
            FileCategory.SA: "SubcuentaAhorro",
            FileCategory.SV: "SubcuentaVivienda",
        }.get(self, "Desconocido")


class FieldType(str, Enum):
    """Semantic type of a fixed-width field."""

    STRING = "string"
    INTEGER = "integer"
    DECIMAL = "decimal"
    DATE_YYYYMMDD = "date_yyyymmdd"
    DATE_YYMMDD = "date_yymmdd"
    ISIN = "isin"
    LEI = "lei"
    CURRENCY = "currency"
    BOOLEAN = "boolean"
    # Only produced by derived rules / scans, never read from the wire
    DECIMAL_LIST = "decimal_list"


class RecordRole(str, Enum):
    """Structural role of a decoded line."""

    HEADER = "header"
    DETAIL = "detail"
    FOOTER = "footer"
    CONTROL = "control"


class Severity(str, Enum):
    """Severity of a structural finding."""

    CRITICAL = "critical"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class DetectionResult:
    """Outcome of a detection call.

    Detection never fails hard: the worst case is ``FileKind.UNKNOWN`` with
    confidence 0 and an explanatory warning.

    Attributes:
        file_kind: Detected file family.
        confidence: 0-100.
        method: Which rule produced the result (e.g. "FileName.StandardPattern").
        category: Fund category from the filename, if any.
        layout_code: 4-character layout code (header or extension).
        issuer_code: 3-digit AFORE code.
        fund_code: 6-digit SIEFORE code from the filename.
        expected_record_count: Record count declared by the header.
        file_date: Date from the filename.
        warnings: Human-readable detection warnings.
    """

    file_kind: FileKind = FileKind.UNKNOWN
    confidence: int = 0
    method: str = ""
    category: FileCategory = FileCategory.UNKNOWN
    layout_code: str | None = None
    issuer_code: str | None = None
    fund_code: str | None = None
    expected_record_count: int | None = None
    file_date: date | None = None
    warnings: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_data_file(self) -> bool:
        """True if the detected kind carries fixed-width records."""
        return self.file_kind is not FileKind.UNKNOWN and not self.file_kind.is_container
