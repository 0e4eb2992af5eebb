"""
Inventory movements implied by an order.

plan_movements is deterministic and does no I/O: the same order always
yields the same list, in line order.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional
from uuid import UUID

from app.models.order import OrderType


class MovementType(str, Enum):
    DELIVERY = "delivery"
    PICKUP = "pickup"
    EXCHANGE = "exchange"


FULL = "full"
EMPTY = "empty"


@dataclass(frozen=True)
class InventoryMovement:
    product_id: UUID
    variant_key: str
    qty_full_change: int
    qty_empty_change: int
    movement_type: MovementType
    description: str


@dataclass
class PlannedMovements:
    movements: List[InventoryMovement] = field(default_factory=list)
    # 1-based positions of lines that had no product and were left out
    skipped_lines: List[int] = field(default_factory=list)

    @property
    def full_movements(self) -> List[InventoryMovement]:
        return [m for m in self.movements if m.qty_full_change]

    @property
    def empty_movements(self) -> List[InventoryMovement]:
        return [m for m in self.movements if m.qty_empty_change]


@dataclass
class OrderTypeValidation:
    valid: bool
    errors: List[str] = field(default_factory=list)


def _order_type(value: Any) -> Optional[OrderType]:
    try:
        return OrderType(value)
    except ValueError:
        return None


def _line_movements(order_type: OrderType, line: Any, exchange_qty: int) -> List[InventoryMovement]:
    product_id = line.product_id
    quantity = line.quantity
    name = line.product_name or str(product_id)

    if order_type == OrderType.DELIVERY:
        return [
            InventoryMovement(product_id, FULL, -quantity, 0, MovementType.DELIVERY,
                              f"Delivered {quantity} full {name}"),
        ]
    if order_type == OrderType.REFILL:
        return [
            InventoryMovement(product_id, FULL, -quantity, 0, MovementType.DELIVERY,
                              f"Delivered {quantity} full {name}"),
            InventoryMovement(product_id, EMPTY, 0, quantity, MovementType.PICKUP,
                              f"Picked up {quantity} empty {name}"),
        ]
    if order_type == OrderType.EXCHANGE:
        return [
            InventoryMovement(product_id, FULL, -quantity, 0, MovementType.DELIVERY,
                              f"Exchanged {quantity} full {name}"),
            InventoryMovement(product_id, EMPTY, 0, exchange_qty, MovementType.EXCHANGE,
                              f"Collected {exchange_qty} empty {name}"),
        ]
    # pickup
    return [
        InventoryMovement(product_id, EMPTY, 0, exchange_qty, MovementType.PICKUP,
                          f"Picked up {exchange_qty} empty {name}"),
    ]


def plan_movements(order: Any) -> PlannedMovements:
    """
    Full/empty cylinder movements for every line of an order.

    Lines without a product are skipped and reported in skipped_lines.
    """
    return plan_line_movements(order.order_type, order.order_lines, order.exchange_empty_qty)


def plan_line_movements(order_type: Any, lines: Any, exchange_empty_qty: Optional[int] = 0) -> PlannedMovements:
    """Movements for lines that are not (yet) attached to an order."""
    planned = PlannedMovements()
    kind = _order_type(order_type)
    if kind is None:
        return planned

    exchange_qty = int(exchange_empty_qty or 0)
    for position, line in enumerate(lines or [], start=1):
        if not getattr(line, "product_id", None):
            planned.skipped_lines.append(position)
            continue
        planned.movements.extend(_line_movements(kind, line, exchange_qty))
    return planned


def validate_order_type(order_type: Any, exchange_empty_qty: int = 0, requires_pickup: bool = False) -> OrderTypeValidation:
    """Business rules tying the order type to empty-cylinder collection."""
    errors: List[str] = []
    kind = _order_type(order_type)
    qty = exchange_empty_qty or 0

    if kind is None:
        errors.append(f"Unknown order type: {order_type}")
    elif kind == OrderType.REFILL:
        if qty <= 0:
            errors.append("Refill orders must specify quantity of empty cylinders to exchange")
    elif kind == OrderType.EXCHANGE:
        if not requires_pickup:
            errors.append("Exchange orders must require pickup of empty cylinders")
        if qty <= 0:
            errors.append("Exchange orders must specify quantity of empty cylinders")
    elif kind == OrderType.PICKUP:
        if qty <= 0:
            errors.append("Pickup orders must specify quantity of cylinders to collect")

    return OrderTypeValidation(valid=not errors, errors=errors)


def should_require_pickup(order_type: Any) -> bool:
    return _order_type(order_type) in (OrderType.EXCHANGE, OrderType.PICKUP)


def draws_full_stock(order_type: Any) -> bool:
    """Pickup orders only collect empties; every other type ships full cylinders."""
    return _order_type(order_type) in (OrderType.DELIVERY, OrderType.REFILL, OrderType.EXCHANGE)


def calculate_exchange_quantity(order_type: Any, exchange_empty_qty: int = 0) -> int:
    """Empties expected back: the stated quantity for refill/exchange, else 0."""
    if _order_type(order_type) in (OrderType.REFILL, OrderType.EXCHANGE):
        return exchange_empty_qty or 0
    return 0
