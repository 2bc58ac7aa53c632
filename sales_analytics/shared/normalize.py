from __future__ import annotations

import re
from typing import Optional

REGION_CODES = {
    "NA": "North America",
    "EU": "Europe",
    "ME": "Middle East",
    "APAC": "APAC",
    "LA": "LATAM",
    "LATAM": "LATAM",
    "Global": "Global",
}

LOGO_TYPE_ALIASES = {
    "New": "New Logo",
    "New Logo": "New Logo",
    "Cross Sell": "Cross-Sell",
    "Cross-Sell": "Cross-Sell",
    "Renewal/Extn": "Extension",
    "Renewal/Extension": "Extension",
}

_NUMBER_NOISE = re.compile(r"[$%,\s]")


def normalize_text(value: Optional[str]) -> str:
    if value is None:
        return ""
    return str(value).strip()


def normalize_region(value: Optional[str]) -> str:
    text = normalize_text(value)
    return REGION_CODES.get(text, text)


def normalize_logo_type(value: Optional[str]) -> str:
    text = normalize_text(value)
    return LOGO_TYPE_ALIASES.get(text, text)


def parse_number(value: object) -> float:
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = _NUMBER_NOISE.sub("", str(value))
    if not cleaned:
        return 0.0
    try:
        return float(cleaned)
    except ValueError:
        return 0.0


def normalize_numeric_id(value: Optional[str]) -> str:
    """Undo spreadsheet scientific notation on ids, e.g. ``3.08157E+11``."""
    text = normalize_text(value)
    if re.fullmatch(r"[\d.]+E\+\d+", text, flags=re.IGNORECASE):
        try:
            return f"{float(text):.0f}"
        except ValueError:
            return text
    return text
