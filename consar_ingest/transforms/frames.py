"""
DataFrame projection of parse results for consar-ingest.

Each table starts with the same bookkeeping columns:

    line_number, record_type_code, category, is_valid, diagnostics

followed by the record's typed fields in schema order. Values keep their
Python types (Decimal, date, bool) so Parquet stores exact decimals and
real dates. Records whose decode failed have no values and never reach
these tables; they are listed in the ``errors`` table instead.
"""

from __future__ import annotations

import pandas as pd

from consar_ingest.parsers.base import ParseError, ParseWarning
from consar_ingest.records import DecodedRecord
from consar_ingest.validator import StructuralFinding

RECORD_COLUMNS = ["line_number", "record_type_code", "category", "is_valid", "diagnostics"]
ERROR_COLUMNS = ["line_number", "code", "message", "raw_line"]
WARNING_COLUMNS = ["line_number", "code", "message"]
FINDING_COLUMNS = [
    "line_number", "code", "severity", "validator_name", "message", "value", "expected",
]


def records_to_frame(records: list[DecodedRecord]) -> pd.DataFrame:
    """Build one DataFrame from records that share a value model.

    Field columns follow the first record's model; records with a
    different model contribute null for columns they do not have.
    """
    value_columns: list[str] = []
    rows: list[dict] = []
    for record in records:
        if record.values is None:
            continue
        values = record.values.as_dict()
        for name in values:
            if name not in value_columns and name not in RECORD_COLUMNS:
                value_columns.append(name)
        rows.append({
            "line_number": record.line_number,
            "record_type_code": record.record_type_code,
            "category": record.category,
            "is_valid": record.is_valid,
            "diagnostics": "; ".join(record.messages) or None,
            **values,
        })
    # Explicit column order ensures a consistent schema even when rows is empty
    return pd.DataFrame(rows, columns=RECORD_COLUMNS + value_columns)


def errors_to_frame(errors: list[ParseError]) -> pd.DataFrame:
    rows = [
        {"line_number": e.line_number, "code": e.code, "message": e.message, "raw_line": e.raw_line}
        for e in errors
    ]
    return pd.DataFrame(rows, columns=ERROR_COLUMNS)


def warnings_to_frame(warnings: list[ParseWarning]) -> pd.DataFrame:
    rows = [
        {"line_number": w.line_number, "code": w.code, "message": w.message}
        for w in warnings
    ]
    df = pd.DataFrame(rows, columns=WARNING_COLUMNS)
    # Stream-level warnings have no line number
    df["line_number"] = df["line_number"].astype("Int64")
    return df


def findings_to_frame(findings: list[StructuralFinding]) -> pd.DataFrame:
    rows = [
        {
            "line_number": f.line_number,
            "code": f.code,
            "severity": f.severity.value,
            "validator_name": f.validator_name,
            "message": f.message,
            "value": None if f.value is None else str(f.value),
            "expected": None if f.expected is None else str(f.expected),
        }
        for f in findings
    ]
    df = pd.DataFrame(rows, columns=FINDING_COLUMNS)
    df["line_number"] = df["line_number"].astype("Int64")
    return df
