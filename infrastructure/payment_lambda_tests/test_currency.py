from decimal import Decimal
import pytest

from lambdas.common.currency import (
    CurrencyParseError,
    calculate_percentage,
    format_amount,
    from_paisa,
    parse_amount,
    round_amount,
    to_paisa,
)


def test_format_uses_lakh_grouping_and_symbol():
    assert format_amount(1234567.89) == "৳12,34,567.89"
    assert format_amount(Decimal("100")) == "৳100.00"
    assert format_amount(1000) == "৳1,000.00"
    assert format_amount(123456789) == "৳12,34,56,789.00"
    assert format_amount(1000, show_symbol=False) == "1,000.00"

def test_format_none_and_negative():
    assert format_amount(None) == "৳0.00"
    assert format_amount(-1500.5) == "-৳1,500.50"

def test_format_rejects_non_finite():
    with pytest.raises(ValueError):
        format_amount(float("inf"))
    with pytest.raises(ValueError):
        format_amount(Decimal("NaN"))

def test_parse_grouped_string():
    assert parse_amount("৳12,34,567.89") == Decimal("1234567.89")
    assert parse_amount(" 1 000.50 ") == Decimal("1000.50")
    assert parse_amount("-৳1,500.50") == Decimal("-1500.50")
    assert parse_amount("৳-20") == Decimal("-20")

@pytest.mark.parametrize("bad", ["", "abc", "৳", "1.2.3", "NaN", "Infinity", "12a", None, 1.5])
def test_parse_rejects_garbage(bad):
    with pytest.raises(CurrencyParseError):
        parse_amount(bad)

def test_round_half_up_goes_through_str_for_floats():
    assert round_amount(1000.555) == Decimal("1000.56")
    assert round_amount(Decimal("0.005")) == Decimal("0.01")
    assert round_amount(2.675) == Decimal("2.68")
    assert round_amount(None) == Decimal("0.00")

@pytest.mark.parametrize("x", [0, 1, 999.99, 1000.555, Decimal("1234567.891"), -42.1, 10 ** 9])
def test_round_parse_format_is_idempotent(x):
    assert round_amount(parse_amount(format_amount(x))) == round_amount(x)

def test_paisa_and_percentage():
    assert to_paisa(12.345) == 1235
    assert from_paisa(1235) == Decimal("12.35")
    assert calculate_percentage(800, 25) == Decimal("200.00")

def test_round_rejects_bool():
    with pytest.raises(TypeError):
        round_amount(True)
