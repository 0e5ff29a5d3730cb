"""Normalization rules applied to extracted vehicle fields.

- Thousands separators are stripped before parsing ("1.250.000" -> 1250000).
- Currency symbols and codes are ignored ("US$ 15,900" -> 15900).
- A stated range collapses to its lower bound ("10.000 - 12.000" -> 10000).
- Years are clamped to [1900, current_year + 1].
"""

import math
import re
from datetime import datetime, timezone

MIN_YEAR = 1900

_NUMBER_TOKEN = re.compile(r"\d[\d.,]*")
_GROUPED_THOUSANDS = re.compile(r"\d{1,3}(?:[.,]\d{3})+")
_RANGE_SEPARATOR = re.compile(r"\d\s*(?:-|–|—|~|\bto\b|\ba\b|\bhasta\b)\s*\D{0,4}\d", re.IGNORECASE)


def _token_to_float(token: str) -> float | None:
    token = token.rstrip(".,")
    if not token:
        return None
    if _GROUPED_THOUSANDS.fullmatch(token):
        token = re.sub(r"[.,]", "", token)
    elif "." in token and "," in token:
        # Whichever separator comes last is the decimal mark
        decimal = "." if token.rfind(".") > token.rfind(",") else ","
        thousands = "," if decimal == "." else "."
        token = token.replace(thousands, "").replace(decimal, ".")
    elif "," in token:
        token = token.replace(",", ".") if token.count(",") == 1 else token.replace(",", "")
    elif token.count(".") > 1:
        token = token.replace(".", "")
    try:
        number = float(token)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def parse_number(value) -> float | None:
    """Parse a human-written number. Returns None when nothing numeric is present."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
        return number if math.isfinite(number) else None
    text = str(value).strip()
    if not text:
        return None

    tokens = [t for t in (_token_to_float(m) for m in _NUMBER_TOKEN.findall(text)) if t is not None]
    if not tokens:
        return None
    if len(tokens) >= 2 and _RANGE_SEPARATOR.search(text):
        return min(tokens[0], tokens[1])
    return tokens[0]


def parse_price(value) -> float | None:
    """Parse a price, ignoring currency symbols. Non-positive prices become None."""
    number = parse_number(value)
    if number is None or number <= 0:
        return None
    return number


def clamp_year(year: int, now: datetime | None = None) -> int:
    now = now or datetime.now(timezone.utc)
    return max(MIN_YEAR, min(year, now.year + 1))
