from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from domain.services.number_parser import parse_user_number

# Narrow no-break space, as used by French number formatting.
THOUSANDS_SEPARATOR = "\u202f"


def _to_decimal(value: Any) -> Decimal | None:
    return parse_user_number(value)


def fmt_decimal(value: Any, decimals: int = 2, thousands: bool = True) -> str:
    dec = _to_decimal(value)
    if dec is None:
        return "-"
    quant = Decimal("1") if decimals <= 0 else Decimal(f"1.{'0' * decimals}")
    dec = dec.quantize(quant, rounding=ROUND_HALF_UP)
    pattern = f"{{:,.{decimals}f}}" if thousands else f"{{:.{decimals}f}}"
    formatted = pattern.format(dec)
    if thousands:
        return formatted.replace(",", "X").replace(".", ",").replace("X", THOUSANDS_SEPARATOR)
    return formatted.replace(".", ",")


def fmt_money(value: Any, decimals: int = 2, thousands: bool = True) -> str:
    dec = _to_decimal(value)
    if dec is None:
        return "-"
    return f"{fmt_decimal(dec, decimals=decimals, thousands=thousands)} €"


def fmt_percent(value: Any, decimals: int = 2) -> str:
    dec = _to_decimal(value)
    if dec is None:
        return "-"
    return f"{fmt_decimal(dec, decimals=decimals)} %"


def fmt_qty(value: Any, unit: str = "g", decimals: int = 2, thousands: bool = False) -> str:
    return f"{fmt_decimal(value, decimals=decimals, thousands=thousands)} {unit}"


def fmt_input(value: Any, decimals: int = 2) -> str:
    """Value shown inside an editable cell (no unit, no thousands separator)."""
    dec = _to_decimal(value)
    if dec is None:
        return ""
    return fmt_decimal(dec, decimals=decimals, thousands=False)
