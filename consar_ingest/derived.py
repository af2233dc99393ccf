"""
Derived projections and heuristic scans for consar-ingest.

Layouts declare convenience values next to their wire fields as compact
rule strings, e.g.::

    derived:
      - {name: es_gobierno, rule: "startswith:MX", source: isin}
      - {name: posicion, rule: "map:L=Long,*=Short", source: codigo_posicion}
    scans:
      - {name: fecha_operacion, rule: "date_scan:140:200"}

Derived rules read already-decoded values:

- Boolean rules:
  ``startswith:A,B``, ``not_startswith:A,B``, ``contains:A,B``,
  ``equals:X``, ``not_equals:X``, ``length:N``, ``differs:<field>``,
  ``equals_field:<field>``, ``const:true|false``,
  ``identifier:nss|curp|rfc``.
  With several sources, containment/prefix rules match if any source does.
- String rules: ``slice:a:b``, ``map:K=V,...,*=Default``, ``moneyness``
  (sources: strike, underlying price, option type).

Scan rules read the raw line and are a best-effort fallback layered behind
the schema offsets:

- ``date_scan:start:end``: first valid YYYYMMDD starting with "20".
- ``marker:TEXT:length``: the *length* characters starting at TEXT.
- ``presence:TOKEN:yes:no``: *yes* if TOKEN occurs in the line, else *no*.
- ``numeric_chunks:width:scale``: non-zero implied-decimal chunks.

A missing input never raises: boolean rules give False and string rules
give None.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from consar_ingest.fields import is_numeric_text, parse_date_yyyymmdd, parse_implied_decimal
from consar_ingest.identifiers import VALIDATORS
from consar_ingest.models import FieldType

_BOOL_RULES = {
    "startswith", "not_startswith", "contains", "equals", "not_equals",
    "length", "differs", "equals_field", "const", "identifier",
}
_STRING_RULES = {"slice", "map", "moneyness"}
_SCAN_TYPES = {
    "date_scan": FieldType.DATE_YYYYMMDD,
    "marker": FieldType.STRING,
    "presence": FieldType.STRING,
    "numeric_chunks": FieldType.DECIMAL_LIST,
}

# Rules whose argument names another field of the same record
_FIELD_REFERENCE_RULES = {"differs", "equals_field"}


def _split(rule: str) -> tuple[str, str]:
    keyword, _, argument = rule.partition(":")
    return keyword.strip(), argument


def _int_args(keyword: str, argument: str, count: int) -> list[int]:
    parts = argument.split(":")
    if len(parts) != count or not all(p.isdigit() for p in parts):
        raise ValueError(f"Rule '{keyword}' expects {count} integer argument(s), got '{argument}'")
    return [int(p) for p in parts]


def _parse_map(argument: str) -> dict[str, str]:
    mapping: dict[str, str] = {}
    for pair in argument.split(","):
        key, sep, value = pair.partition("=")
        if not sep:
            raise ValueError(f"Invalid map entry '{pair}' (expected KEY=VALUE)")
        mapping[key.strip()] = value.strip()
    return mapping


def validate_rule(rule: str, scan: bool) -> None:
    """Raise ValueError if *rule* is not a well-formed derived/scan rule."""
    keyword, argument = _split(rule)
    if scan:
        if keyword not in _SCAN_TYPES:
            raise ValueError(f"Unknown scan rule '{keyword}'")
        if keyword == "date_scan":
            start, end = _int_args(keyword, argument, 2)
            if end - start < 8:
                raise ValueError(f"date_scan window {start}:{end} is narrower than 8")
        elif keyword == "numeric_chunks":
            _int_args(keyword, argument, 2)
        elif keyword == "marker":
            text, _, length = argument.rpartition(":")
            if not text or not length.isdigit():
                raise ValueError(f"marker rule expects TEXT:LENGTH, got '{argument}'")
        elif keyword == "presence":
            if len(argument.split(":")) != 3:
                raise ValueError(f"presence rule expects TOKEN:YES:NO, got '{argument}'")
        return

    if keyword not in _BOOL_RULES and keyword not in _STRING_RULES:
        raise ValueError(f"Unknown derived rule '{keyword}'")
    if keyword == "length":
        _int_args(keyword, argument, 1)
    elif keyword == "slice":
        start, end = _int_args(keyword, argument, 2)
        if end <= start:
            raise ValueError(f"Empty slice {start}:{end}")
    elif keyword == "map":
        _parse_map(argument)
    elif keyword == "identifier" and argument not in VALIDATORS:
        raise ValueError(f"Unknown identifier kind '{argument}'")
    elif keyword == "const" and argument not in ("true", "false"):
        raise ValueError(f"const rule expects true/false, got '{argument}'")
    elif keyword in ("startswith", "not_startswith", "contains", "equals", "not_equals") and not argument:
        raise ValueError(f"Rule '{keyword}' needs an argument")


def output_type(rule: str) -> FieldType:
    """FieldType produced by *rule* (used to type the record model)."""
    keyword, _ = _split(rule)
    if keyword in _SCAN_TYPES:
        return _SCAN_TYPES[keyword]
    if keyword in _BOOL_RULES:
        return FieldType.BOOLEAN
    return FieldType.STRING


def referenced_fields(rule: str) -> list[str]:
    """Field names a rule reads besides its declared sources."""
    keyword, argument = _split(rule)
    if keyword in _FIELD_REFERENCE_RULES:
        return [argument.strip()]
    return []


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

def _texts(sources: list[Any]) -> list[str]:
    return [str(v) for v in sources if v is not None and str(v) != ""]


def _moneyness(strike: Any, spot: Any, option_type: Any) -> str | None:
    if not isinstance(strike, Decimal) or not isinstance(spot, Decimal):
        return None
    if strike <= 0 or spot <= 0:
        return None
    is_call = str(option_type or "").strip().upper() in ("C", "CALL")
    if spot == strike:
        return "ATM"
    in_the_money = spot > strike if is_call else spot < strike
    return "ITM" if in_the_money else "OTM"


def evaluate_derived(rule: str, sources: list[Any], values: dict[str, Any]) -> Any:
    """Compute a derived value from its source values.

    Args:
        rule: Rule string (validated at catalog load).
        sources: Values of the declared source fields, in order.
        values: Everything decoded so far for the record, for rules that
            compare against another field.
    """
    keyword, argument = _split(rule)
    texts = _texts(sources)

    if keyword == "const":
        return argument == "true"
    if keyword == "startswith":
        prefixes = tuple(argument.split(","))
        return any(t.startswith(prefixes) for t in texts)
    if keyword == "not_startswith":
        prefixes = tuple(argument.split(","))
        return bool(texts) and not any(t.startswith(prefixes) for t in texts)
    if keyword == "contains":
        needles = argument.split(",")
        return any(n in t for t in texts for n in needles)
    if keyword == "equals":
        return bool(texts) and texts[0] == argument
    if keyword == "not_equals":
        return bool(texts) and texts[0] != argument
    if keyword == "length":
        return bool(texts) and len(texts[0]) == int(argument)
    if keyword in ("differs", "equals_field"):
        other = values.get(argument.strip())
        if not texts or other is None:
            return False
        same = texts[0] == str(other)
        return not same if keyword == "differs" else same
    if keyword == "identifier":
        return bool(texts) and VALIDATORS[argument](texts[0])

    if keyword == "slice":
        start, end = (int(p) for p in argument.split(":"))
        if not texts or len(texts[0]) < end:
            return None
        return texts[0][start:end]
    if keyword == "map":
        mapping = _parse_map(argument)
        if not texts:
            return mapping.get("*")
        key = texts[0].strip()
        if key in mapping:
            return mapping[key]
        return mapping.get("*", key)
    if keyword == "moneyness":
        padded = list(sources) + [None] * (3 - len(sources))
        return _moneyness(*padded[:3])

    raise ValueError(f"Unknown derived rule '{keyword}'")


def _scan_date(line: str, start: int, end: int) -> Any:
    end = min(end, len(line))
    for i in range(start, end - 7):
        candidate = line[i:i + 8]
        if candidate.startswith("20"):
            parsed = parse_date_yyyymmdd(candidate)
            if parsed is not None:
                return parsed
    return None


def _scan_chunks(line: str, width: int, scale: int) -> list[Decimal] | None:
    found: list[Decimal] = []
    for i in range(0, len(line) - width + 1, width):
        chunk = line[i:i + width]
        if not is_numeric_text(chunk):
            continue
        value = parse_implied_decimal(chunk, scale)
        if value:
            found.append(value)
    return found or None


def evaluate_scan(rule: str, line: str) -> Any:
    """Run a heuristic scan over the raw line."""
    keyword, argument = _split(rule)
    if keyword == "date_scan":
        start, end = (int(p) for p in argument.split(":"))
        return _scan_date(line, start, end)
    if keyword == "marker":
        text, _, length = argument.rpartition(":")
        idx = line.find(text)
        if idx > 0 and idx + int(length) < len(line):
            return line[idx:idx + int(length)].strip() or None
        return None
    if keyword == "presence":
        token, yes, no = argument.split(":")
        return yes if token in line else no
    if keyword == "numeric_chunks":
        width, scale = (int(p) for p in argument.split(":"))
        return _scan_chunks(line, width, scale)
    raise ValueError(f"Unknown scan rule '{keyword}'")
