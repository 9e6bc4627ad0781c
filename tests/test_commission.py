"""
佣金计算器测试
"""
from decimal import Decimal

import pytest

from ff_core.services.commission import CommissionCalculator
from ff_core.utils.errors import ValidationError


@pytest.fixture
def calculator():
    return CommissionCalculator()


def test_basic_split(calculator):
    result = calculator.calculate(Decimal("100.00"), 2, Decimal("15"))

    assert result.total_price == Decimal("200.00")
    assert result.commission == Decimal("30.00")
    assert result.supplier_revenue == Decimal("170.00")


def test_commission_rounds_half_up(calculator):
    # 10.05 * 15% = 1.5075
    result = calculator.calculate("10.05", 1, "15")

    assert result.commission == Decimal("1.51")
    assert result.supplier_revenue == Decimal("8.54")


def test_total_price_rounds_half_up(calculator):
    result = calculator.calculate("0.125", 1, "0")

    assert result.total_price == Decimal("0.13")
    assert result.commission == Decimal("0.00")


@pytest.mark.parametrize("unit_price, quantity, rate", [
    ("19.99", 3, "15"),
    ("0.01", 1, "50"),
    ("7.77", 7, "12.5"),
    ("1234.56", 13, "33.33"),
    ("0", 5, "15"),
    ("49.95", 1, "100"),
])
def test_commission_plus_revenue_equals_total(calculator, unit_price, quantity, rate):
    result = calculator.calculate(unit_price, quantity, rate)

    assert result.commission + result.supplier_revenue == result.total_price
    assert result.total_price == (Decimal(unit_price) * quantity).quantize(Decimal("0.01"))


def test_accepts_rate_boundaries(calculator):
    assert calculator.calculate("10", 1, 0).commission == Decimal("0.00")
    assert calculator.calculate("10", 1, 100).supplier_revenue == Decimal("0.00")


@pytest.mark.parametrize("unit_price, quantity, rate", [
    ("10", 0, "15"),
    ("10", -1, "15"),
    ("10", 1.5, "15"),
    ("-0.01", 1, "15"),
    ("10", 1, "-1"),
    ("10", 1, "100.01"),
    ("abc", 1, "15"),
    ("10", 1, None),
    ("NaN", 1, "15"),
    ("10", True, "15"),
])
def test_rejects_invalid_input(calculator, unit_price, quantity, rate):
    with pytest.raises(ValidationError) as exc_info:
        calculator.calculate(unit_price, quantity, rate)

    assert exc_info.value.code == "INVALID_INPUT"
    assert exc_info.value.status == 422
