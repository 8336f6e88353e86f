"""
Type system for the Dojo billing platform
Rust-inspired Result pattern, integer-cents Money and the shared exception hierarchy.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Generic, TypeVar

# Type variables for generic Result
T = TypeVar("T")  # Success type
E = TypeVar("E")  # Error type

# ===============================================================================
# RESULT TYPES
# ===============================================================================


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Success result containing a value"""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        """Get the success value"""
        return self.value

    def unwrap_or(self, default: T) -> T:
        """Get the success value (ignores default)"""
        return self.value

    def map(self, func: Callable[[T], Any]) -> Result[Any, Any]:
        """Transform the success value"""
        try:
            return Ok(func(self.value))
        except Exception as e:
            return Err(str(e))

    def unwrap_err(self) -> Any:
        """Raises an exception since this is success, not error - provides consistent API"""
        raise ValueError(f"Called unwrap_err on Ok: {self.value}")


@dataclass(frozen=True)
class Err(Generic[E]):
    """Error result containing an error value"""

    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> Any:
        """Raises an exception - use unwrap_or() for safe access"""
        raise ValueError(f"Called unwrap on Err: {self.error}")

    def unwrap_or(self, default: T) -> T:
        """Get the default value since this is an error"""
        return default

    def map(self, func: Callable[[Any], Any]) -> Result[Any, E]:
        """No-op for error results"""
        return self

    def unwrap_err(self) -> E:
        """Get the error value"""
        return self.error


# Result type alias
Result = Ok[T] | Err[E]

# ===============================================================================
# BUSINESS TYPES
# ===============================================================================

SUPPORTED_CURRENCIES = frozenset({"USD", "CAD", "EUR", "GBP"})

# ===============================================================================
# MONEY
# ===============================================================================


@dataclass(frozen=True, order=True)
class Money:
    """Money type stored as integer cents - no floating point anywhere"""

    amount: int  # Store in cents for precision
    currency: str = "USD"

    def __post_init__(self) -> None:
        if not isinstance(self.amount, int) or isinstance(self.amount, bool):
            raise TypeError(f"Money amount must be integer cents, got {type(self.amount).__name__}")
        if self.currency not in SUPPORTED_CURRENCIES:
            raise ValueError(f"Unsupported currency: {self.currency}")

    @classmethod
    def zero(cls, currency: str = "USD") -> Money:
        return cls(0, currency)

    @classmethod
    def from_decimal(cls, amount: Decimal | str, currency: str = "USD") -> Money:
        """Create Money from a major-unit decimal amount (e.g. Decimal("12.34"))"""
        cents = (Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        return cls(int(cents), currency)

    def to_decimal(self) -> Decimal:
        """Get major-unit decimal amount (display boundary only)"""
        return Decimal(self.amount) / Decimal(100)

    def _check_currency(self, other: Money) -> None:
        if self.currency != other.currency:
            raise ValueError(f"Currency mismatch: {self.currency} vs {other.currency}")

    def __add__(self, other: Money) -> Money:
        self._check_currency(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: Money) -> Money:
        self._check_currency(other)
        return Money(self.amount - other.amount, self.currency)

    def multiply(self, quantity: int) -> Money:
        return Money(self.amount * int(quantity), self.currency)

    def percentage(self, percent: int | Decimal) -> Money:
        """
        Percentage of this amount, rounded half-up to whole cents.

        33% of 100 cents is 33; 50% of 101 cents is 50.5 which rounds to 51.
        """
        raw = Decimal(self.amount) * Decimal(str(percent)) / Decimal(100)
        return Money(int(raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP)), self.currency)

    def clamp(self, minimum: int = 0, maximum: int | None = None) -> Money:
        value = max(minimum, self.amount)
        if maximum is not None:
            value = min(value, maximum)
        return Money(value, self.currency)

    def is_zero(self) -> bool:
        return self.amount == 0

    def format(self) -> str:
        """Human-readable amount; the only place cents become a decimal string"""
        sign = "-" if self.amount < 0 else ""
        dollars, cents = divmod(abs(self.amount), 100)
        return f"{sign}{dollars:,}.{cents:02d} {self.currency}"

    def __str__(self) -> str:
        return self.format()


# ===============================================================================
# COMMON EXCEPTIONS
# ===============================================================================


class BusinessError(Exception):
    """Base exception for business logic errors"""


class ValidationError(BusinessError):
    """Validation error with field information"""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class DiscountValidationError(ValidationError):
    """Discount code rejected - user-facing, carries a machine-readable code"""

    def __init__(self, code: str, message: str):
        self.code = code
        super().__init__("discount_code", message)


class DiscountUsageExceeded(DiscountValidationError):
    """Lost the race for the last remaining use of a discount code"""

    def __init__(self, message: str = "Discount code usage limit reached"):
        super().__init__("USAGE_EXCEEDED", message)


class ConcurrencyConflict(BusinessError):
    """A conditional update matched no rows - state changed underneath us"""


class IntegrationError(BusinessError):
    """External integration error"""


class ExternalGatewayError(IntegrationError):
    """Network/API failure talking to a payment gateway"""

    def __init__(self, gateway: str, message: str):
        self.gateway = gateway
        super().__init__(f"[{gateway}] {message}")


class ConfigurationError(BusinessError):
    """Missing credentials or malformed configuration"""

