"""
Allocation Calculator

Splits an income amount across the jars by percentage.

Amounts are whole currency units (VND has no subdivision). Each jar's share
is rounded on its own with ROUND_HALF_UP, so the six shares may not add up
to the income exactly. That rounding drift is accepted, never redistributed:
for integer amounts it is never more than 2 in either direction.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional

from dailymoney.jars.catalog import JarCatalog, get_catalog


class InvalidAmountError(ValueError):
    """Amount is non-numeric, fractional, or not positive."""

    def __init__(self, value: object, reason: str):
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid amount {value!r}: {reason}")


def to_amount(value: object, allow_zero: bool = False) -> int:
    """
    Normalise a currency amount to whole units.

    Accepts int, Decimal, float and numeric strings. Rejects booleans,
    NaN/infinity, fractional values and non-positive values (zero is
    accepted when `allow_zero` is set).

    Raises:
        InvalidAmountError: if the value is not an acceptable amount
    """
    if isinstance(value, bool) or value is None:
        raise InvalidAmountError(value, "not a number")

    try:
        number = Decimal(str(value).strip()) if isinstance(value, str) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmountError(value, "not a number") from None

    if not number.is_finite():
        raise InvalidAmountError(value, "not a finite number")
    if number != number.to_integral_value():
        raise InvalidAmountError(value, "currency has no fractional units")
    if number < 0 or (number == 0 and not allow_zero):
        raise InvalidAmountError(value, "must be greater than zero")

    return int(number)


def allocate(amount: int, percentage: int) -> int:
    """
    Share of `amount` for a jar holding `percentage` percent.

    round(amount * percentage / 100), ROUND_HALF_UP, whole units.
    """
    if not 0 <= percentage <= 100:
        raise ValueError(f"Percentage must be between 0 and 100, got {percentage}")
    share = Decimal(amount) * Decimal(percentage) / Decimal(100)
    return int(share.quantize(Decimal(1), rounding=ROUND_HALF_UP))


class AllocationCalculator:
    """Computes per-jar allocations from a catalog's percentages."""

    def __init__(self, catalog: Optional[JarCatalog] = None):
        self._catalog = catalog or get_catalog()

    @property
    def catalog(self) -> JarCatalog:
        return self._catalog

    def allocate(self, amount: int, percentage: int) -> int:
        return allocate(amount, percentage)

    def allocate_all(self, amount: object) -> dict[str, int]:
        """
        One allocation per catalog jar, in catalog order.

        Zero is accepted so callers can inspect the split of an empty
        amount; the income workflow rejects it before reaching here.
        """
        whole = to_amount(amount, allow_zero=True)
        return {
            jar.code: allocate(whole, jar.percentage)
            for jar in self._catalog.definitions()
        }

    @staticmethod
    def rounding_drift(amount: int, allocations: dict[str, int]) -> int:
        """amount - sum(allocations); positive means under-allocated."""
        return amount - sum(allocations.values())
