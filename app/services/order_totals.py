"""
Order totals and tax.

All amounts are Decimal and are never rounded here; rounding happens once,
when a value is rendered for a response (round_for_display).
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, Optional, Union

Number = Union[Decimal, int, float, str]

TWO_PLACES = Decimal("0.01")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    tax_amount: Decimal
    grand_total: Decimal


def to_decimal(value: Optional[Number]) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # str() keeps the literal the caller wrote (0.1 stays 0.1)
        return Decimal(str(value))
    return Decimal(value)


def _field(line: Any, name: str):
    if isinstance(line, dict):
        return line.get(name)
    return getattr(line, name, None)


def line_subtotal(line: Any) -> Decimal:
    """Explicit line subtotal if present, else quantity x unit_price."""
    explicit = _field(line, "subtotal")
    if explicit is not None:
        return to_decimal(explicit)
    quantity = to_decimal(_field(line, "quantity"))
    unit_price = to_decimal(_field(line, "unit_price"))
    return quantity * unit_price


def compute_subtotal(lines: Iterable[Any]) -> Decimal:
    return sum((line_subtotal(line) for line in lines), Decimal("0"))


def compute_tax_amount(subtotal: Number, tax_percent: Number) -> Decimal:
    return to_decimal(subtotal) * to_decimal(tax_percent) / HUNDRED


def compute_with_tax(lines: Iterable[Any], tax_percent: Number = 0) -> OrderTotals:
    """Subtotal, tax and grand total for a set of lines."""
    subtotal = compute_subtotal(lines)
    tax_amount = compute_tax_amount(subtotal, tax_percent)
    return OrderTotals(
        subtotal=subtotal,
        tax_amount=tax_amount,
        grand_total=subtotal + tax_amount,
    )


def validate_tax_percent(tax_percent: Number) -> Decimal:
    """Return the percent as Decimal; raise ValueError outside [0, 100]."""
    value = to_decimal(tax_percent)
    if value < 0 or value > HUNDRED:
        raise ValueError(f"Tax percent must be between 0 and 100, got {value}")
    return value


def round_for_display(amount: Optional[Number]) -> Optional[Decimal]:
    """Two decimals, half-up. Only for values leaving the service boundary."""
    if amount is None:
        return None
    return to_decimal(amount).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
