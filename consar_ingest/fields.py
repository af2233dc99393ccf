"""
Fixed-width field converters for consar-ingest.

CONSAR files encode every value as text inside a column range:
- Integers and amounts are zero-padded digit strings.
- Amounts carry *implied decimals*: "000000000000012345" with scale 2
  means 123.45. No decimal point is ever written.
- Dates come as YYYYMMDD or YYMMDD, with all-zero placeholders for
  "no date".

Numeric policy:
- ``"lenient"`` (default): blank or non-numeric integer/decimal fields
  decode to 0. The decoder separately flags non-numeric text (see
  ``is_numeric_text``) so a coerced zero can be told apart from a real one.
- ``"strict"``: blank or non-numeric fields decode to None.

Dates never raise: placeholders and impossible calendar dates give None.
"""

from __future__ import annotations

import re
from datetime import date
from decimal import Decimal
from typing import Literal

NumericPolicy = Literal["lenient", "strict"]

_INTEGER_PATTERN = re.compile(r"^[+-]?\d+$")
_DATE8_PATTERN = re.compile(r"^\d{8}$")
_DATE6_PATTERN = re.compile(r"^\d{6}$")

# Two-digit years up to this value belong to the 2000s, the rest to the 1900s
_TWO_DIGIT_YEAR_PIVOT = 49

_TRUE_MARKERS = {"1", "S", "Y", "T", "V"}
_FALSE_MARKERS = {"0", "N", "F"}


def slice_field(line: str, start: int, length: int) -> str:
    """Return the raw column range, clipped to the line length."""
    return line[start:start + length]


def is_numeric_text(text: str) -> bool:
    """True if *text* (after trimming) is an optionally signed digit run."""
    return bool(_INTEGER_PATTERN.match(text.strip()))


def parse_string(text: str) -> str | None:
    """Trim a text field. Blank fields decode to None."""
    value = text.strip()
    return value or None


def parse_integer(text: str, policy: NumericPolicy = "lenient") -> int | None:
    """Parse a zero-padded integer field.

    Examples:
        >>> parse_integer("00000042")
        42
        >>> parse_integer("ABC")
        0
        >>> parse_integer("ABC", policy="strict") is None
        True
    """
    value = text.strip()
    if not value or not _INTEGER_PATTERN.match(value):
        return 0 if policy == "lenient" else None
    return int(value)


def parse_implied_decimal(
    text: str,
    scale: int,
    policy: NumericPolicy = "lenient",
) -> Decimal | None:
    """Parse a digits-only amount with *scale* implied decimal places.

    The result is exact: the digit string D decodes to D / 10**scale with
    no binary floating point involved.

    Examples:
        >>> parse_implied_decimal("000000000000012345", 2)
        Decimal('123.45')
        >>> parse_implied_decimal("000000000100000000", 8)
        Decimal('1.00000000')
    """
    raw = parse_integer(text, policy)
    if raw is None:
        return None
    return Decimal(raw).scaleb(-scale)


def parse_date_yyyymmdd(text: str) -> date | None:
    """Parse an 8-digit YYYYMMDD date. Placeholders and bad dates give None."""
    value = text.strip()
    if not _DATE8_PATTERN.match(value) or value == "00000000":
        return None
    try:
        return date(int(value[:4]), int(value[4:6]), int(value[6:8]))
    except ValueError:
        return None


def parse_date_yymmdd(text: str) -> date | None:
    """Parse a 6-digit YYMMDD date.

    Years 00-49 map to 2000-2049 and 50-99 to 1950-1999.
    """
    value = text.strip()
    if not _DATE6_PATTERN.match(value) or value == "000000":
        return None
    yy = int(value[:2])
    year = 2000 + yy if yy <= _TWO_DIGIT_YEAR_PIVOT else 1900 + yy
    try:
        return date(year, int(value[2:4]), int(value[4:6]))
    except ValueError:
        return None


def parse_boolean(text: str) -> bool | None:
    """Parse a single-character flag (1/S/Y/T/V vs 0/N/F)."""
    value = text.strip().upper()
    if value in _TRUE_MARKERS:
        return True
    if value in _FALSE_MARKERS:
        return False
    return None
