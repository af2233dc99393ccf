"""
Exporter for consar-ingest.

Writes the record tables of one parse run, plus its ``_meta`` row, into
the output directory as ``{table_name}.{format}`` files
(``detail_301.parquet``, ``errors.csv``, ``_meta.parquet``, ...).

Value handling:
- Parquet: every column holding ``Decimal`` values is written as
  ``decimal128(38, s)``, where *s* is the largest scale seen in that
  column, so implied-decimal amounts stay exact and one column never
  mixes scales. Dates are stored as ``date32``.
- CSV: decimals are rendered in positional notation (``0.00000000``,
  never ``0E-8``). Files carry a UTF-8 BOM so accented names open
  correctly in Excel.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from pathlib import Path
from typing import Literal

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from consar_ingest.exceptions import ExportError

logger = logging.getLogger(__name__)

OutputFormat = Literal["csv", "parquet"]

_FORMATS = ("csv", "parquet")
_DECIMAL_PRECISION = 38


# ---------------------------------------------------------------------------
# Column handling
# ---------------------------------------------------------------------------

def _decimal_scale(series: pd.Series) -> int | None:
    """Largest scale among the Decimal values in *series*, or None if there are none."""
    if series.dtype != object:
        return None
    scales = [-v.as_tuple().exponent for v in series if isinstance(v, Decimal)]
    if not scales:
        return None
    return max(0, *scales)


def _to_arrow(df: pd.DataFrame) -> pa.Table:
    schema = pa.Schema.from_pandas(df, preserve_index=False)
    for i, name in enumerate(df.columns):
        scale = _decimal_scale(df[name])
        if scale is not None:
            schema = schema.set(i, pa.field(name, pa.decimal128(_DECIMAL_PRECISION, scale)))
    return pa.Table.from_pandas(df, schema=schema, preserve_index=False)


def _to_csv_frame(df: pd.DataFrame) -> pd.DataFrame:
    out = df.copy()
    for name in out.columns:
        if _decimal_scale(out[name]) is not None:
            out[name] = out[name].map(lambda v: format(v, "f") if isinstance(v, Decimal) else v)
    return out


def _write_table(df: pd.DataFrame, path: Path, output_format: OutputFormat) -> None:
    """Write one table.

    Raises:
        ExportError: If the file cannot be written or the values cannot be
            converted for the format.
    """
    try:
        if output_format == "parquet":
            pq.write_table(_to_arrow(df), path)
        else:
            _to_csv_frame(df).to_csv(path, index=False, encoding="utf-8-sig")
    except (OSError, ValueError, pa.ArrowException) as exc:
        raise ExportError(f"Could not write {path.name} ({output_format}): {exc}") from exc


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def export_tables(
    tables: dict[str, pd.DataFrame],
    meta_df: pd.DataFrame,
    output_dir: str | Path,
    output_format: OutputFormat = "parquet",
) -> list[str]:
    """Write *tables* and the ``_meta`` table into *output_dir*.

    The directory is created if needed. Existing files with the same
    names are overwritten.

    Returns:
        Paths written, in table order, with ``_meta`` last.

    Raises:
        ExportError: If *output_format* is not supported or a write fails.
    """
    if output_format not in _FORMATS:
        raise ExportError(
            f"Unsupported output format: '{output_format}' (expected one of {', '.join(_FORMATS)})"
        )

    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    written: list[str] = []
    for table_name, df in [*tables.items(), ("_meta", meta_df)]:
        path = out / f"{table_name}.{output_format}"
        _write_table(df, path, output_format)
        written.append(str(path))
        logger.info("Wrote %s (%d rows x %d cols)", path.name, len(df), len(df.columns))
    return written
