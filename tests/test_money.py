from decimal import Decimal

from domain.payment.money import from_minor_units, quantize_amount, to_minor_units


def test_to_minor_units_two_decimal_currency():
    assert to_minor_units(Decimal("129.99"), "usd") == 12999
    assert to_minor_units(Decimal("0.01"), "USD") == 1


def test_to_minor_units_rounds_half_up():
    assert to_minor_units(Decimal("10.005"), "usd") == 1001
    assert to_minor_units(Decimal("10.004"), "usd") == 1000


def test_zero_decimal_currency_has_no_scaling():
    assert to_minor_units(Decimal("1500"), "jpy") == 1500
    assert from_minor_units(1500, "JPY") == Decimal("1500")


def test_from_minor_units_is_exact_inverse():
    for amount in ("0.00", "0.10", "19.99", "129.99", "100000.01"):
        value = Decimal(amount)
        assert from_minor_units(to_minor_units(value, "usd"), "usd") == value


def test_quantize_amount():
    assert quantize_amount(Decimal("8.4288"), "usd") == Decimal("8.43")
    assert quantize_amount(Decimal("0.125"), "usd") == Decimal("0.13")
