from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation

from dental_budget.services.money import parse_amount

MIN_PRICE_CENTS = 1
MAX_PERCENT = Decimal("99.99")


class DiscountMode(str, enum.Enum):
    percent = "percent"
    amount = "amount"


@dataclass(frozen=True)
class PercentDiscount:
    percent: Decimal

    mode = DiscountMode.percent


@dataclass(frozen=True)
class AmountDiscount:
    cents: int

    mode = DiscountMode.amount


Discount = PercentDiscount | AmountDiscount


def clamp_percent(value: Decimal | int | float | str | None) -> Decimal:
    try:
        percent = Decimal(str(value)) if value is not None else Decimal(0)
    except InvalidOperation:
        percent = Decimal(0)
    if not percent.is_finite():
        percent = Decimal(0)
    return min(MAX_PERCENT, max(Decimal(0), percent))


def apply_floor(cents: int) -> int:
    return max(MIN_PRICE_CENTS, cents)


def compute_final_price(base_cents: int, discount: Discount | None = None) -> int:
    final = base_cents
    if isinstance(discount, PercentDiscount):
        percent = clamp_percent(discount.percent)
        discounted = Decimal(base_cents) * (1 - percent / 100)
        final = int(discounted.to_integral_value(rounding=ROUND_DOWN))
    elif isinstance(discount, AmountDiscount):
        final = base_cents - discount.cents
    return apply_floor(final)


def line_total_cents(unit_cents: int, quantity: int = 1, discount_percent: Decimal | int = 0) -> int:
    gross = Decimal(unit_cents) * quantity
    net = gross * (1 - Decimal(discount_percent) / 100)
    return int(net.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_percent(raw: str) -> Decimal:
    stripped = raw.strip()
    # Keep a leading minus so clamp_percent sends it to 0.
    sign = "-" if stripped.startswith("-") else ""
    cleaned = sign + re.sub(r"[^\d.,]", "", stripped).replace(",", ".")
    try:
        return Decimal(cleaned) if cleaned else Decimal(0)
    except InvalidOperation:
        return Decimal(0)


def parse_discount(mode: DiscountMode | str, raw: str | None) -> Discount | None:
    if raw is None or not raw.strip():
        return None
    if DiscountMode(mode) == DiscountMode.percent:
        return PercentDiscount(clamp_percent(parse_percent(raw)))
    return AmountDiscount(parse_amount(raw))


@dataclass
class LinePrice:
    """Price being edited for one record: list price plus the discount typed over it.

    The discount is always applied to ``base_cents``; the result is never fed back
    in as a new base.
    """

    base_cents: int = 0
    mode: DiscountMode = DiscountMode.percent
    discount_input: str = ""
    _discount: Discount | None = field(default=None, init=False, repr=False)

    @property
    def discount(self) -> Discount | None:
        return self._discount

    @property
    def final_cents(self) -> int:
        return compute_final_price(self.base_cents, self._discount)

    def set_base(self, cents: int) -> int:
        self.base_cents = apply_floor(cents)
        self.clear_discount()
        return self.final_cents

    def set_discount(self, raw: str | None) -> int:
        self.discount_input = raw or ""
        self._discount = parse_discount(self.mode, self.discount_input)
        return self.final_cents

    def switch_mode(self, mode: DiscountMode | str) -> int:
        self.mode = DiscountMode(mode)
        self.clear_discount()
        return self.final_cents

    def clear_discount(self) -> None:
        self.discount_input = ""
        self._discount = None

    def reset(self) -> None:
        self.base_cents = 0
        self.mode = DiscountMode.percent
        self.clear_discount()
