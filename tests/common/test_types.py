"""
Tests for the shared Money type and Result helpers.
"""

from decimal import Decimal

import pytest

from apps.common.types import (
    BusinessError,
    ConcurrencyConflict,
    ConfigurationError,
    DiscountUsageExceeded,
    DiscountValidationError,
    Err,
    ExternalGatewayError,
    IntegrationError,
    Money,
    Ok,
    ValidationError,
)


class TestMoney:
    def test_percentage_of_whole_amount(self):
        assert Money(5000).percentage(20) == Money(1000)

    def test_percentage_truncating_case(self):
        assert Money(100).percentage(33) == Money(33)

    def test_percentage_rounds_half_up(self):
        assert Money(101).percentage(50) == Money(51)
        assert Money(25).percentage(Decimal("12.5")).amount == 3

    def test_rejects_float_amounts(self):
        with pytest.raises(TypeError):
            Money(10.5)  # type: ignore[arg-type]

    def test_rejects_unknown_currency(self):
        with pytest.raises(ValueError):
            Money(100, "XYZ")

    def test_currency_mismatch(self):
        with pytest.raises(ValueError, match="Currency mismatch"):
            Money(100, "USD") + Money(100, "CAD")

    def test_arithmetic(self):
        assert Money(1500) + Money(250) == Money(1750)
        assert Money(1500) - Money(250) == Money(1250)
        assert Money(1500).multiply(3) == Money(4500)

    def test_clamp(self):
        assert Money(-50).clamp(0) == Money(0)
        assert Money(9000).clamp(0, 5000) == Money(5000)

    def test_from_decimal_and_back(self):
        money = Money.from_decimal("12.345")
        assert money.amount == 1235
        assert money.to_decimal() == Decimal("12.35")

    def test_format(self):
        assert Money(123456).format() == "1,234.56 USD"
        assert str(Money(-5, "CAD")) == "-0.05 CAD"


class TestResult:
    def test_ok(self):
        result = Ok(3)
        assert result.is_ok()
        assert result.unwrap() == 3
        assert result.map(lambda v: v * 2).unwrap() == 6

    def test_err(self):
        result = Err("boom")
        assert result.is_err()
        assert result.unwrap_or(7) == 7
        assert result.unwrap_err() == "boom"
        with pytest.raises(ValueError):
            result.unwrap()


class TestExceptions:
    def test_discount_usage_exceeded_carries_code(self):
        error = DiscountUsageExceeded()
        assert isinstance(error, DiscountValidationError)
        assert isinstance(error, ValidationError)
        assert error.code == "USAGE_EXCEEDED"
        assert error.field == "discount_code"

    def test_taxonomy(self):
        for error_class in (ValidationError, ConcurrencyConflict, IntegrationError, ConfigurationError):
            assert issubclass(error_class, BusinessError)
        assert issubclass(ExternalGatewayError, IntegrationError)

    def test_gateway_error_names_gateway(self):
        error = ExternalGatewayError("square", "timeout")
        assert error.gateway == "square"
        assert str(error) == "[square] timeout"
