"""
Shared test helpers and markers for consar-ingest tests.

CONSAR files are plain fixed-width text, so tests build their input lines
here instead of shipping fixture files. Every builder returns a line
without its terminator; offsets mirror the layout YAML files.
"""

from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Canonical sample identifiers
# ---------------------------------------------------------------------------
VALID_NSS = "12345678907"
INVALID_NSS = "12345678903"
VALID_CURP = "GODE561231HDFRRN00"
VALID_RFC = "GODE561231AB5"

PORTFOLIO_NAME = "20240131_SB_530_000123.0300"
DERIVATIVES_NAME = "20240131_SB_530_000123.0314"
PAYROLL_NAME = "20240131_PS_530_000001.0100"


# ---------------------------------------------------------------------------
# Line builders
# ---------------------------------------------------------------------------

def fixed_width(width: int, fields: dict[int, str]) -> str:
    """Lay out *fields* (start offset -> text) on a space-filled line."""
    buf = [" "] * width
    for start, text in fields.items():
        buf[start:start + len(text)] = list(text)
    return "".join(buf)[:width]


def amount(raw: int, width: int = 18) -> str:
    """Zero-padded digit string (implied decimals are the caller's concern)."""
    return f"{raw:0{width}d}"


def record_count_header(
    count: int,
    layout_code: str = "0300",
    afore: str = "0530",
    sequence: str = "000001",
    file_type: str = "SB",
    generated: str = "20240131",
) -> str:
    """34-character record-count header (line 1 of .0300/.0314/... files)."""
    return f"{count:08d}01{layout_code}{afore}{sequence}{file_type}{generated}"


def portfolio_301(
    isin: str = "MX0MGO0000P2",
    emisora: str = "BONOS",
    valor_mercado: int = 12345,
    titulos: str | None = None,
    width: int = 200,
) -> str:
    """Government instrument (301) line for a .0300 file."""
    return fixed_width(width, {
        0: "301",
        3: isin.ljust(15),
        18: "M 261231",
        26: "GOBFED",
        32: emisora.ljust(7),
        39: "261231",
        47: titulos if titulos is not None else amount(1000),
        65: amount(100000),
        83: amount(10000000000),
        101: amount(valor_mercado),
        173: "MXN",
    })


def portfolio_309(count: int, total: int = 24690) -> str:
    """Totals footer (309) for a .0300 file."""
    return fixed_width(100, {0: "309", 3: "TOTL", 7: f"{count:08d}", 15: amount(total)})


def option_3040(
    option_type: str = "C",
    strike_raw: int = 100_000_000,
    spot_raw: int = 110_000_000,
) -> str:
    """Option (3040) line for a .0314 file. Prices carry 6 implied decimals."""
    return fixed_width(350, {
        0: "3040",
        4: option_type,
        5: "E",
        6: "SPX".ljust(15),
        21: "OPT0001".ljust(20),
        41: "5493001KJTIIGC8Y1R12",
        61: "20241220",
        69: amount(strike_raw),
        87: amount(10, 14),
        101: "L",
        102: amount(150000),
        120: amount(spot_raw),
        216: "USD",
    })


def forward_3010(direction_token: str = "", trade_date: str = "20240115") -> str:
    """Forward (3010) line for a .0314 file."""
    fields = {
        0: "3010",
        22: "FWD1",
        26: "USDMXN",
        32: "240630",
        38: "FWD000000001",
        50: "5493001KJTIIGC8Y1R12",
        140: trade_date,
        250: amount(1712345678),
    }
    if direction_token:
        fields[300] = direction_token
    return fixed_width(400, fields)


def marker_header(kind: str = "0100", afore: str = "530", generated: str = "20240131") -> str:
    """Type-marker header (01)."""
    return f"01{kind}{afore}{generated}"


def payroll_detail(
    nss: str = VALID_NSS,
    curp: str = VALID_CURP,
    rfc: str = VALID_RFC,
    importe: int = 150000,
    marker: str = "02",
) -> str:
    """Detail (02) line for a .0100 payroll file."""
    return fixed_width(132, {
        0: marker,
        2: nss.ljust(11),
        13: curp.ljust(18),
        31: rfc.ljust(13),
        44: "00000000001",
        55: amount(importe, 15),
        70: "20240115",
        78: "A",
        79: "PEREZ LOPEZ JUAN".ljust(40),
        119: "AAA010101AAA ",
    })


def marker_footer(count: int, total: int = 0, marker: str = "03") -> str:
    """Footer (03 / 99) with the declared detail count."""
    return f"{marker}{count:08d}{amount(total)}"


def marker_control(kind: str = "TOT1", value: int = 0) -> str:
    """Control (04) record."""
    return f"04{kind}{amount(value)}"


def write_lines(path: Path, lines: list[str], terminator: str = "\r\n") -> Path:
    """Write *lines* as a latin-1 file and return its path."""
    path.write_bytes("".join(line + terminator for line in lines).encode("latin-1"))
    return path


# ---------------------------------------------------------------------------
# Pytest markers
# ---------------------------------------------------------------------------
def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test (runs the full file -> tables flow)",
    )
