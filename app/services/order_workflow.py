"""
Order State Machine

This module is the SINGLE SOURCE OF TRUTH for all order status transitions.
All status changes must go through this module.

    draft -> confirmed -> scheduled -> en_route -> delivered -> invoiced
      |          |            |
      +----------+------------+--> cancelled
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, FrozenSet, List, Optional, Union

from app.core.exceptions import InvalidTransitionError
from app.models.order import OrderStatus


StatusLike = Union[OrderStatus, str]


# =============================================================================
# TRANSITION RULES
# =============================================================================

ORDER_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.DRAFT: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.SCHEDULED, OrderStatus.CANCELLED}),
    OrderStatus.SCHEDULED: frozenset({OrderStatus.EN_ROUTE, OrderStatus.CANCELLED}),
    OrderStatus.EN_ROUTE: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.INVOICED}),
    OrderStatus.INVOICED: frozenset(),   # Terminal state
    OrderStatus.CANCELLED: frozenset(),  # Terminal state
}

# Display order of statuses; also the order of each step's allowed transitions
STATUS_SEQUENCE: List[OrderStatus] = [
    OrderStatus.DRAFT,
    OrderStatus.CONFIRMED,
    OrderStatus.SCHEDULED,
    OrderStatus.EN_ROUTE,
    OrderStatus.DELIVERED,
    OrderStatus.INVOICED,
    OrderStatus.CANCELLED,
]

STATUS_LABELS: Dict[OrderStatus, str] = {
    OrderStatus.DRAFT: "Draft",
    OrderStatus.CONFIRMED: "Confirmed",
    OrderStatus.SCHEDULED: "Scheduled",
    OrderStatus.EN_ROUTE: "En Route",
    OrderStatus.DELIVERED: "Delivered",
    OrderStatus.INVOICED: "Invoiced",
    OrderStatus.CANCELLED: "Cancelled",
}

STATUS_DESCRIPTIONS: Dict[OrderStatus, str] = {
    OrderStatus.DRAFT: "Order is being created",
    OrderStatus.CONFIRMED: "Order confirmed, stock reserved",
    OrderStatus.SCHEDULED: "Delivery date scheduled",
    OrderStatus.EN_ROUTE: "Out for delivery",
    OrderStatus.DELIVERED: "Successfully delivered",
    OrderStatus.INVOICED: "Invoice generated",
    OrderStatus.CANCELLED: "Order cancelled",
}

EDITABLE_STATUSES = frozenset({OrderStatus.DRAFT, OrderStatus.CONFIRMED})
CANCELLABLE_STATUSES = frozenset({OrderStatus.DRAFT, OrderStatus.CONFIRMED, OrderStatus.SCHEDULED})


@dataclass
class OrderValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass
class OrderWorkflowStep:
    status: OrderStatus
    label: str
    description: str
    allowed_transitions: List[OrderStatus]


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def _coerce(status: StatusLike) -> Optional[OrderStatus]:
    try:
        return OrderStatus(status)
    except ValueError:
        return None


def _label(status: StatusLike) -> str:
    coerced = _coerce(status)
    return STATUS_LABELS[coerced] if coerced else str(status)


def can_transition_to(current_status: StatusLike, new_status: StatusLike) -> bool:
    """Check if a transition is allowed."""
    current, new = _coerce(current_status), _coerce(new_status)
    if current is None or new is None:
        return False
    return new in ORDER_TRANSITIONS[current]


def get_next_possible_statuses(current_status: StatusLike) -> List[OrderStatus]:
    """Statuses reachable from the current one, in workflow order."""
    current = _coerce(current_status)
    if current is None:
        return []
    allowed = ORDER_TRANSITIONS[current]
    return [s for s in STATUS_SEQUENCE if s in allowed]


def validate_transition(current_status: StatusLike, new_status: StatusLike) -> OrderValidationResult:
    """
    Validate a status transition without raising.

    A self-transition is never valid, even for terminal statuses.
    """
    errors: List[str] = []

    if _coerce(new_status) is None:
        errors.append(f"Unknown order status: {new_status}")
        return OrderValidationResult(valid=False, errors=errors)
    if _coerce(current_status) is None:
        errors.append(f"Unknown order status: {current_status}")
        return OrderValidationResult(valid=False, errors=errors)

    if _coerce(current_status) == _coerce(new_status):
        errors.append("New status must be different from current status")

    if not can_transition_to(current_status, new_status):
        allowed = ", ".join(_label(s) for s in get_next_possible_statuses(current_status)) or "none"
        errors.append(
            f"Cannot transition from {_label(current_status)} to {_label(new_status)}. "
            f"Allowed transitions: {allowed}"
        )

    return OrderValidationResult(valid=not errors, errors=errors)


def ensure_transition(current_status: StatusLike, new_status: StatusLike) -> None:
    """
    Validate a status transition. Raises InvalidTransitionError if invalid.

    Use this in services before changing status.
    """
    result = validate_transition(current_status, new_status)
    if not result.valid:
        current, new = _coerce(current_status), _coerce(new_status)
        raise InvalidTransitionError(
            current.value if current else str(current_status),
            new.value if new else str(new_status),
            result.errors,
        )


# =============================================================================
# STATUS CHECK HELPERS
# =============================================================================

def is_terminal(status: StatusLike) -> bool:
    """Is this a terminal (final) state?"""
    coerced = _coerce(status)
    return coerced is not None and not ORDER_TRANSITIONS[coerced]


def is_editable(status: StatusLike) -> bool:
    """Can the lines of an order in this status be changed?"""
    return _coerce(status) in EDITABLE_STATUSES


def is_cancellable(status: StatusLike) -> bool:
    return _coerce(status) in CANCELLABLE_STATUSES


def get_order_workflow() -> List[OrderWorkflowStep]:
    """Ordered description of the whole workflow, derived from the transition table."""
    return [
        OrderWorkflowStep(
            status=status,
            label=STATUS_LABELS[status],
            description=STATUS_DESCRIPTIONS[status],
            allowed_transitions=get_next_possible_statuses(status),
        )
        for status in STATUS_SEQUENCE
    ]


# =============================================================================
# READINESS CHECKS
# =============================================================================

def validate_order_for_confirmation(order) -> OrderValidationResult:
    """
    Check an order is complete enough to be confirmed.

    Works on an Order model or any object exposing customer_id,
    delivery_address_id and order_lines.
    """
    errors: List[str] = []

    if not getattr(order, "customer_id", None):
        errors.append("Customer is required")
    if not getattr(order, "delivery_address_id", None):
        errors.append("Delivery address is required")

    lines = list(getattr(order, "order_lines", None) or [])
    if not lines:
        errors.append("At least one product is required")

    for index, line in enumerate(lines, start=1):
        if not line.quantity or line.quantity <= 0:
            errors.append(f"Line {index}: Quantity must be greater than 0")
        if not line.unit_price or line.unit_price <= 0:
            errors.append(f"Line {index}: Unit price must be greater than 0")
        if not line.product_id:
            errors.append(f"Line {index}: Product is required")

    return OrderValidationResult(valid=not errors, errors=errors)


def validate_order_for_scheduling(order, today: Optional[date] = None) -> OrderValidationResult:
    """Check an order has a delivery address and a scheduled date that is not in the past."""
    errors: List[str] = []
    today = today or date.today()

    scheduled = getattr(order, "scheduled_date", None)
    if not scheduled:
        errors.append("Scheduled date is required")
    if not getattr(order, "delivery_address_id", None):
        errors.append("Delivery address is required")

    if scheduled:
        scheduled_day = scheduled.date() if hasattr(scheduled, "date") and callable(scheduled.date) else scheduled
        if scheduled_day < today:
            errors.append("Scheduled date cannot be in the past")

    return OrderValidationResult(valid=not errors, errors=errors)
