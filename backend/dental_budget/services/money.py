from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from dental_budget.core.exceptions import RecordValidationError
from dental_budget.core.settings import Settings, settings as default_settings

CENT = Decimal("0.01")

_AMOUNT_CHARS = re.compile(r"[^\d,.\-]")


def _normalize_amount_text(text: str) -> str:
    cleaned = _AMOUNT_CHARS.sub("", text)
    has_comma = "," in cleaned
    has_dot = "." in cleaned
    if has_comma and has_dot:
        decimal_sep = "," if cleaned.rfind(",") > cleaned.rfind(".") else "."
        thousands_sep = "." if decimal_sep == "," else ","
        cleaned = cleaned.replace(thousands_sep, "").replace(decimal_sep, ".")
    elif has_comma or has_dot:
        sep = "," if has_comma else "."
        if cleaned.count(sep) > 1:
            cleaned = cleaned.replace(sep, "")
        else:
            cleaned = cleaned.replace(sep, ".")
    return cleaned


def to_decimal(value: object) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value))
    text = _normalize_amount_text(str(value))
    if not any(ch.isdigit() for ch in text):
        return None
    try:
        return Decimal(text)
    except InvalidOperation as exc:
        raise RecordValidationError(f"Invalid amount: {value!r}", missing=("amount",)) from exc


def parse_amount(value: object) -> int:
    """Parse a major-unit amount ("1.234,56", "12.5", 200, 19.9) into cents.

    Empty input parses as 0.
    """
    amount = to_decimal(value)
    if amount is None:
        return 0
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_masked_amount(text: str | None) -> int:
    digits = re.sub(r"\D", "", text or "")
    return int(digits) if digits else 0


def to_major(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT, rounding=ROUND_HALF_UP)


def wire_amount(cents: int) -> float:
    return float(to_major(cents))


def format_amount(cents: int) -> str:
    return f"{to_major(cents):.2f}"


def format_currency(cents: int, config: Settings | None = None) -> str:
    config = config or default_settings
    sign = "-" if cents < 0 else ""
    grouped = f"{to_major(abs(cents)):,.2f}"
    grouped = (
        grouped.replace(",", "\0")
        .replace(".", config.decimal_separator)
        .replace("\0", config.thousands_separator)
    )
    return f"{sign}{config.currency_symbol} {grouped}"
