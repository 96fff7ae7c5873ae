from decimal import Decimal

import pytest

from fleetpay.utils.money import format_rupees, parse_amount_paise, to_paise


@pytest.mark.parametrize("amount, expected", [
    (Decimal("250"), 25000),
    (Decimal("250.5"), 25050),
    ("499.99", 49999),
    (1, 100),
    ("0.01", 1),
])
def test_to_paise(amount, expected):
    assert to_paise(amount) == expected


@pytest.mark.parametrize("amount", ["1.001", "-5", "abc", "NaN"])
def test_to_paise_rejects(amount):
    with pytest.raises(ValueError):
        to_paise(amount)


def test_format_rupees_always_two_decimals():
    assert format_rupees(25000) == "250.00"
    assert format_rupees(1) == "0.01"
    assert format_rupees(49999) == "499.99"


@pytest.mark.parametrize("value, expected", [
    ("250.00", 25000),
    ("₹ 250", 25000),
    (499.99, 49999),
    ("1,000.50", 100050),
    ("", None),
    ("n/a", None),
    (None, None),
])
def test_parse_amount_paise(value, expected):
    assert parse_amount_paise(value) == expected
