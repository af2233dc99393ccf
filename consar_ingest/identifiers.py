"""
Mexican personal/tax identifier checks used by payroll-style layouts.

- NSS: 11-digit IMSS social security number, Luhn-variant check digit.
- CURP: 18-character population registry key, RENAPO check digit,
  state code and birth date checks.
- RFC: 12 (company) or 13 (individual) character tax id, SAT mod-11
  check digit. Generic RFCs (public at large, foreigners) are accepted.

These only feed derived ``*_valido`` flags on decoded records. They
never reject a line.
"""

from __future__ import annotations

import re
from datetime import date

_NSS_PATTERN = re.compile(r"^\d{11}$")
_CURP_PATTERN = re.compile(
    r"^[A-Z][AEIOUX][A-Z]{2}\d{6}[HMX][A-Z]{2}[B-DF-HJ-NP-TV-Z]{3}[A-Z0-9]\d$"
)
_RFC_PERSON_PATTERN = re.compile(r"^[A-ZÑ&]{4}\d{6}[A-Z0-9]{3}$")
_RFC_COMPANY_PATTERN = re.compile(r"^[A-ZÑ&]{3}\d{6}[A-Z0-9]{3}$")

_CURP_ALPHABET = "0123456789ABCDEFGHIJKLMNÑOPQRSTUVWXYZ"
_RFC_ALPHABET = "0123456789ABCDEFGHIJKLMN&OPQRSTUVWXYZ Ñ"

_CURP_STATES = {
    "AS", "BC", "BS", "CC", "CL", "CM", "CS", "CH", "DF", "DG",
    "GT", "GR", "HG", "JC", "MC", "MN", "MS", "NT", "NL", "OC",
    "PL", "QT", "QR", "SP", "SL", "SR", "TC", "TS", "TL", "VZ",
    "YN", "ZS", "NE",
}

_GENERIC_RFCS = {"XAXX010101000", "XEXX010101000", "XOXX010101000"}


def _two_digit_date(text: str) -> date | None:
    """Decode YYMMDD where 00-30 is the 2000s and 31-99 the 1900s."""
    yy, mm, dd = int(text[:2]), int(text[2:4]), int(text[4:6])
    year = 2000 + yy if yy <= 30 else 1900 + yy
    try:
        return date(year, mm, dd)
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# NSS
# ---------------------------------------------------------------------------

def _nss_check_digit(nss10: str) -> str:
    total = 0
    for i, ch in enumerate(nss10):
        digit = int(ch)
        if i % 2 == 0:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return str((10 - total % 10) % 10)


def is_valid_nss(value: str | None) -> bool:
    """Validate an IMSS social security number (NSS)."""
    if not value or not value.strip():
        return False
    normalized = value.strip().replace(" ", "").replace("-", "")
    if not _NSS_PATTERN.match(normalized):
        return False
    if not 1 <= int(normalized[:2]) <= 99:
        return False
    return _nss_check_digit(normalized[:10]) == normalized[10]


# ---------------------------------------------------------------------------
# CURP
# ---------------------------------------------------------------------------

def _curp_check_digit(curp17: str) -> str:
    total = 0
    for i, ch in enumerate(curp17):
        index = _CURP_ALPHABET.find(ch)
        total += max(index, 0) * (18 - i)
    return str((10 - total % 10) % 10)


def is_valid_curp(value: str | None, today: date | None = None) -> bool:
    """Validate a CURP: pattern, state code, birth date and check digit."""
    if not value or not value.strip():
        return False
    normalized = value.strip().upper()
    if len(normalized) != 18 or not _CURP_PATTERN.match(normalized):
        return False
    if normalized[11:13] not in _CURP_STATES:
        return False
    birth = _two_digit_date(normalized[4:10])
    if birth is None or birth < date(1900, 1, 1) or birth > (today or date.today()):
        return False
    return _curp_check_digit(normalized[:17]) == normalized[17]


# ---------------------------------------------------------------------------
# RFC
# ---------------------------------------------------------------------------

def _rfc_check_digit(body: str) -> str:
    padded = " " + body if len(body) == 11 else body
    total = 0
    for i, ch in enumerate(padded[:12]):
        index = _RFC_ALPHABET.find(ch)
        total += max(index, 0) * (13 - i)
    remainder = total % 11
    if remainder == 0:
        return "0"
    if remainder == 1:
        return "A"
    return _RFC_ALPHABET[11 - remainder]


def is_valid_rfc(value: str | None) -> bool:
    """Validate an RFC for individuals (13 chars) or companies (12 chars)."""
    if not value or not value.strip():
        return False
    normalized = value.strip().upper()
    if normalized in _GENERIC_RFCS:
        return True
    if len(normalized) == 13:
        pattern, date_at = _RFC_PERSON_PATTERN, 4
    elif len(normalized) == 12:
        pattern, date_at = _RFC_COMPANY_PATTERN, 3
    else:
        return False
    if not pattern.match(normalized):
        return False
    if _two_digit_date(normalized[date_at:date_at + 6]) is None:
        return False
    return _rfc_check_digit(normalized[:-1]) == normalized[-1]


VALIDATORS = {
    "nss": is_valid_nss,
    "curp": is_valid_curp,
    "rfc": is_valid_rfc,
}
