from decimal import Decimal

import pytest

from dental_budget.services.pricing import (
    MIN_PRICE_CENTS,
    AmountDiscount,
    DiscountMode,
    LinePrice,
    PercentDiscount,
    clamp_percent,
    compute_final_price,
    line_total_cents,
    parse_discount,
    parse_percent,
)


def test_percent_discount_over_base():
    assert compute_final_price(20000, PercentDiscount(Decimal("10"))) == 18000


def test_amount_discount_larger_than_base_hits_floor():
    assert compute_final_price(20000, AmountDiscount(25000)) == MIN_PRICE_CENTS


def test_no_discount_keeps_base():
    assert compute_final_price(20000, None) == 20000


def test_zero_base_is_raised_to_floor():
    assert compute_final_price(0, None) == MIN_PRICE_CENTS


def test_full_percent_is_clamped_below_hundred():
    assert compute_final_price(20000, PercentDiscount(Decimal("100"))) == 2


@pytest.mark.parametrize("base", [2, 3, 101, 19999, 20000, 1234567])
@pytest.mark.parametrize("percent", ["0.01", "1", "33.33", "50", "99.99", "150"])
def test_positive_percent_discount_always_lowers_price(base: int, percent: str):
    final = compute_final_price(base, PercentDiscount(Decimal(percent)))
    assert MIN_PRICE_CENTS <= final < base


@pytest.mark.parametrize("discount", [PercentDiscount(Decimal("50")), AmountDiscount(1), AmountDiscount(10**9)])
def test_price_never_drops_below_floor(discount):
    assert compute_final_price(1, discount) == MIN_PRICE_CENTS


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("-5", Decimal("0")),
        ("0", Decimal("0")),
        ("12.5", Decimal("12.5")),
        ("100", Decimal("99.99")),
        ("nan", Decimal("0")),
        (None, Decimal("0")),
    ],
)
def test_clamp_percent(raw, expected):
    assert clamp_percent(raw) == expected


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("10", Decimal("10")),
        ("12,5", Decimal("12.5")),
        ("15%", Decimal("15")),
        (" 7 % ", Decimal("7")),
        ("abc", Decimal("0")),
        ("1.2.3", Decimal("0")),
        ("-5", Decimal("-5")),
        (" -2,5%", Decimal("-2.5")),
    ],
)
def test_parse_percent_tolerates_stray_characters(raw: str, expected: Decimal):
    assert parse_percent(raw) == expected


def test_parse_discount_empty_is_none():
    assert parse_discount(DiscountMode.percent, "") is None
    assert parse_discount("amount", "   ") is None
    assert parse_discount("amount", None) is None


def test_negative_percent_is_no_discount():
    discount = parse_discount("percent", "-5")

    assert discount == PercentDiscount(Decimal(0))
    assert compute_final_price(20000, discount) == 20000

    price = LinePrice()
    price.set_base(20000)
    assert price.set_discount("-5") == 20000


def test_parse_discount_amount_reads_currency_text():
    assert parse_discount("amount", "R$ 250,00") == AmountDiscount(25000)


def test_parse_discount_rejects_unknown_mode():
    with pytest.raises(ValueError):
        parse_discount("fixed", "10")


@pytest.mark.parametrize(
    ("unit", "quantity", "percent", "expected"),
    [
        (15050, 3, Decimal("10"), 40635),
        (333, 1, Decimal("50"), 167),
        (20000, 1, Decimal("0"), 20000),
        (1000, 2, 0, 2000),
    ],
)
def test_line_total_cents(unit: int, quantity: int, percent, expected: int):
    assert line_total_cents(unit, quantity, percent) == expected


def test_line_price_applies_discount_to_base_only():
    price = LinePrice()
    price.set_base(20000)

    assert price.set_discount("10") == 18000
    # A second entry replaces the first; it does not compound.
    assert price.set_discount("20") == 16000
    assert price.base_cents == 20000


def test_line_price_mode_switch_round_trip_restores_base():
    price = LinePrice()
    price.set_base(20000)
    price.set_discount("10")

    assert price.switch_mode("amount") == 20000
    assert price.discount_input == ""
    assert price.set_discount("250,00") == MIN_PRICE_CENTS
    assert price.switch_mode(DiscountMode.percent) == 20000
    assert price.set_discount("10%") == 18000


def test_line_price_empty_discount_restores_base_exactly():
    price = LinePrice()
    price.set_base(19999)
    price.set_discount("33.33")

    assert price.set_discount("") == 19999
    assert price.discount is None


def test_line_price_new_base_clears_discount():
    price = LinePrice()
    price.set_base(20000)
    price.set_discount("50")

    assert price.set_base(30000) == 30000
    assert price.discount_input == ""


def test_line_price_reset():
    price = LinePrice(base_cents=5000, mode=DiscountMode.amount)
    price.set_discount("10")
    price.reset()

    assert price.base_cents == 0
    assert price.mode == DiscountMode.percent
    assert price.final_cents == MIN_PRICE_CENTS
