from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

_UNIT_SUFFIXES = ("€/kg", "€", "%", "kg", "g")


def parse_user_number(value: Any) -> Decimal | None:
    """Parse a number typed in a form field or read from a spreadsheet cell.

    Accepts French decimal commas ("12,5"), spaces as thousands separators
    and a trailing unit ("12,5 %", "300 g"). Returns None when the value
    is empty or not a finite number.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, (int, float)):
        parsed = Decimal(str(value))
        return parsed if parsed.is_finite() else None

    text = str(value).strip().replace("\u00a0", " ").replace("\u202f", " ")
    if not text:
        return None

    lowered = text.lower()
    for suffix in _UNIT_SUFFIXES:
        if lowered.endswith(suffix):
            text = text[: -len(suffix)]
            break

    cleaned = text.replace(" ", "")
    if "," in cleaned:
        cleaned = cleaned.replace(".", "")
        cleaned = cleaned.replace(",", ".")

    if not cleaned:
        return None
    try:
        parsed = Decimal(cleaned)
    except (InvalidOperation, ValueError):
        return None
    return parsed if parsed.is_finite() else None


def parse_quantity(value: Any) -> Decimal:
    """Parse a percent/grams entry; invalid, empty or negative input is 0."""
    parsed = parse_user_number(value)
    if parsed is None or parsed < 0:
        return Decimal("0")
    return parsed
