"""
Multi-SKU transfer validation.

Pure functions: every check works on in-memory drafts and stock snapshots
and accumulates all problems instead of stopping at the first one. The
transfer status table also lives here.
"""
import secrets
import string
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from app.core.exceptions import InvalidTransitionError
from app.models.stock_transfer import TransferStatus


# =============================================================================
# TRANSITION RULES
# =============================================================================

TRANSFER_TRANSITIONS: Dict[TransferStatus, FrozenSet[TransferStatus]] = {
    TransferStatus.DRAFT: frozenset({TransferStatus.PENDING, TransferStatus.CANCELLED}),
    TransferStatus.PENDING: frozenset({TransferStatus.APPROVED, TransferStatus.CANCELLED}),
    TransferStatus.APPROVED: frozenset({TransferStatus.IN_TRANSIT, TransferStatus.CANCELLED}),
    TransferStatus.IN_TRANSIT: frozenset({TransferStatus.COMPLETED, TransferStatus.CANCELLED}),
    TransferStatus.COMPLETED: frozenset(),  # Terminal state
    TransferStatus.CANCELLED: frozenset(),  # Terminal state
}

# Statuses that still occupy stock/loading capacity at the source
ACTIVE_TRANSFER_STATUSES = frozenset({
    TransferStatus.PENDING.value, TransferStatus.APPROVED.value, TransferStatus.IN_TRANSIT.value,
})
SCHEDULED_TRANSFER_STATUSES = frozenset({TransferStatus.PENDING.value, TransferStatus.APPROVED.value})


def can_transfer_transition(current_status: str, new_status: str) -> bool:
    try:
        current, new = TransferStatus(current_status), TransferStatus(new_status)
    except ValueError:
        return False
    return new in TRANSFER_TRANSITIONS[current]


def ensure_transfer_transition(current_status: str, new_status: str) -> None:
    """Raise InvalidTransitionError unless the transfer may move to new_status."""
    if not can_transfer_transition(current_status, new_status):
        raise InvalidTransitionError(current_status, new_status)


# =============================================================================
# DATA
# =============================================================================

# Standard cylinder weights (kg) keyed by net capacity
CYLINDER_WEIGHTS: Dict[int, Dict[str, int]] = {
    6: {"full": 16, "empty": 10},
    13: {"full": 27, "empty": 14},
    48: {"full": 98, "empty": 50},
    90: {"full": 180, "empty": 90},
}
DEFAULT_TARE_WEIGHT_KG = Decimal("10")

LOW_STOCK_RATIO = Decimal("0.9")


@dataclass(frozen=True)
class TransferLimits:
    """Thresholds for advisory transfer warnings and conflicts."""
    max_items_warning: int = 100
    max_weight_kg_warning: Decimal = Decimal("5000")
    large_quantity: int = 1000
    conflict_item_limit: int = 50


DEFAULT_LIMITS = TransferLimits()


@dataclass
class TransferItemDraft:
    product_id: Optional[UUID]
    quantity_to_transfer: Any
    product_name: str = ""
    product_sku: str = ""
    variant_name: Optional[str] = None
    available_stock: Optional[int] = None
    reserved_stock: Optional[int] = None
    unit_weight_kg: Decimal = Decimal("0")
    total_weight_kg: Decimal = Decimal("0")
    unit_cost: Decimal = Decimal("0")
    total_cost: Decimal = Decimal("0")
    is_valid: bool = True
    validation_errors: List[str] = field(default_factory=list)
    validation_warnings: List[str] = field(default_factory=list)

    @property
    def key(self) -> Tuple[Optional[UUID], Optional[str]]:
        return self.product_id, self.variant_name or None


@dataclass
class TransferDraft:
    source_warehouse_id: Optional[UUID]
    destination_warehouse_id: Optional[UUID]
    transfer_date: Optional[date]
    items: List[TransferItemDraft] = field(default_factory=list)
    status: str = TransferStatus.DRAFT.value
    priority: str = "normal"
    notes: Optional[str] = None

    @property
    def total_items(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class WarehouseStockInfo:
    """Read-only stock snapshot for one (warehouse, product, variant)."""
    warehouse_id: UUID
    product_id: UUID
    qty_available: int
    qty_reserved: int = 0
    variant_name: Optional[str] = None
    product_name: str = ""
    product_sku: str = ""
    reorder_level: Optional[int] = None


@dataclass
class ItemValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class TransferValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    blocked_items: List[UUID] = field(default_factory=list)
    total_weight_kg: Decimal = Decimal("0")
    estimated_cost: Optional[Decimal] = None


@dataclass
class TransferConflictReport:
    has_conflicts: bool
    conflicts: List[str] = field(default_factory=list)


@dataclass
class CapacityCheck:
    can_accommodate: bool
    warnings: List[str] = field(default_factory=list)


@dataclass
class TransferSummary:
    total_products: int
    total_quantity: int
    total_weight_kg: Decimal
    total_cost: Optional[Decimal]
    unique_variants: int
    heaviest_item: Optional[TransferItemDraft]
    most_expensive_item: Optional[TransferItemDraft]
    valid_items: int
    invalid_items: int
    items_with_warnings: int


# =============================================================================
# VALIDATION
# =============================================================================

def _variant(value: Optional[str]) -> Optional[str]:
    return value or None


def find_stock(item: TransferItemDraft, stock: Iterable[WarehouseStockInfo]) -> Optional[WarehouseStockInfo]:
    for row in stock:
        if row.product_id == item.product_id and _variant(row.variant_name) == _variant(item.variant_name):
            return row
    return None


def _is_whole(quantity: Any) -> bool:
    try:
        return Decimal(str(quantity)) % 1 == 0
    except ArithmeticError:
        return False


def validate_item(
    item: TransferItemDraft,
    stock: Sequence[WarehouseStockInfo],
    limits: TransferLimits = DEFAULT_LIMITS,
) -> ItemValidationResult:
    """Validate one transfer line against the source warehouse snapshot."""
    errors: List[str] = []
    warnings: List[str] = []
    quantity = item.quantity_to_transfer

    if not item.product_id:
        errors.append("Product ID is required")

    if quantity is None or quantity <= 0:
        errors.append("Transfer quantity must be greater than 0")
    elif not _is_whole(quantity):
        errors.append("Transfer quantity must be a whole number")

    stock_info = find_stock(item, stock) if item.product_id else None
    if stock_info is None:
        errors.append("Stock information not found for this product")
    elif quantity is not None:
        available_for_transfer = stock_info.qty_available - (stock_info.qty_reserved or 0)
        if quantity > available_for_transfer:
            errors.append(f"Insufficient stock. Available: {available_for_transfer}, Requested: {quantity}")

        if quantity > stock_info.qty_available * LOW_STOCK_RATIO:
            warnings.append("Transferring more than 90% of available stock")

        if stock_info.reorder_level and stock_info.qty_available - quantity < stock_info.reorder_level:
            warnings.append(f"Stock will fall below reorder level ({stock_info.reorder_level})")

    if quantity is not None and quantity > limits.large_quantity:
        warnings.append("Large quantity transfer may require special approval")

    return ItemValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def validate_transfer(
    transfer: TransferDraft,
    stock: Sequence[WarehouseStockInfo],
    today: Optional[date] = None,
    limits: TransferLimits = DEFAULT_LIMITS,
) -> TransferValidationResult:
    """
    Validate a complete multi-SKU transfer.

    Item results are also written back onto each item (is_valid,
    validation_errors, validation_warnings) so they can be persisted.
    """
    errors: List[str] = []
    warnings: List[str] = []
    blocked_items: List[UUID] = []
    total_weight = Decimal("0")
    estimated_cost = Decimal("0")
    today = today or date.today()

    if not transfer.source_warehouse_id:
        errors.append("Source warehouse is required")
    if not transfer.destination_warehouse_id:
        errors.append("Destination warehouse is required")
    if transfer.source_warehouse_id == transfer.destination_warehouse_id:
        errors.append("Source and destination warehouses must be different")

    if not transfer.transfer_date:
        errors.append("Transfer date is required")
    elif transfer.transfer_date < today:
        errors.append("Transfer date cannot be in the past")

    if not transfer.items:
        errors.append("At least one item must be selected for transfer")

    for item in transfer.items:
        result = validate_item(item, stock, limits)
        item.is_valid = result.is_valid
        item.validation_errors = list(result.errors)
        item.validation_warnings = list(result.warnings)

        if not result.is_valid:
            blocked_items.append(item.product_id)
            errors.extend(f"{item.product_name}: {e}" for e in result.errors)
        warnings.extend(f"{item.product_name}: {w}" for w in result.warnings)

        total_weight += item.total_weight_kg or Decimal("0")
        estimated_cost += item.total_cost or Decimal("0")

    keys = [item.key for item in transfer.items]
    if len(keys) != len(set(keys)):
        errors.append("Duplicate products with same variant are not allowed")

    if len(transfer.items) > limits.max_items_warning:
        warnings.append(
            f"Large transfers with over {limits.max_items_warning} items may take longer to process"
        )
    if total_weight > limits.max_weight_kg_warning:
        warnings.append(
            f"Heavy transfer (over {limits.max_weight_kg_warning} kg) may require special handling"
        )

    return TransferValidationResult(
        is_valid=not errors,
        errors=errors,
        warnings=warnings,
        blocked_items=blocked_items,
        total_weight_kg=total_weight,
        estimated_cost=estimated_cost if estimated_cost > 0 else None,
    )


def check_conflicts(
    new_transfer: TransferDraft,
    existing_transfers: Sequence[Any],
    limits: TransferLimits = DEFAULT_LIMITS,
) -> TransferConflictReport:
    """
    Advisory checks against transfers already scheduled from the same source.

    ``existing_transfers`` may be Transfer models or drafts; each needs
    source_warehouse_id, transfer_date, status, total_items and items.
    """
    conflicts: List[str] = []
    if not new_transfer.items or not new_transfer.source_warehouse_id:
        return TransferConflictReport(has_conflicts=False, conflicts=conflicts)

    same_day = [
        t for t in existing_transfers
        if t.source_warehouse_id == new_transfer.source_warehouse_id
        and t.transfer_date == new_transfer.transfer_date
    ]

    active = [t for t in same_day if t.status in ACTIVE_TRANSFER_STATUSES]
    if active:
        combined = sum((t.total_items or 0) for t in active) + len(new_transfer.items)
        if combined > limits.conflict_item_limit:
            conflicts.append(f"High volume of transfers scheduled for this date ({combined} total items)")

    scheduled = [t for t in same_day if t.status in SCHEDULED_TRANSFER_STATUSES]
    for item in new_transfer.items:
        overlapping = any(
            existing.product_id == item.product_id
            and _variant(existing.variant_name) == _variant(item.variant_name)
            for t in scheduled
            for existing in t.items
        )
        if overlapping:
            conflicts.append(f"Product {item.product_name} is already scheduled for transfer on this date")

    return TransferConflictReport(has_conflicts=bool(conflicts), conflicts=conflicts)


# =============================================================================
# ITEM DETAILS & SUMMARY
# =============================================================================

def calculate_item_details(item: TransferItemDraft, product: Any) -> TransferItemDraft:
    """
    Fill in unit/total weight and cost for an item from its catalog product.

    Cylinder variants use the standard full/empty weights for their
    capacity; other products weigh capacity plus tare.
    """
    unit_weight = Decimal("0")
    capacity = product.capacity_kg

    if product.is_variant and product.variant_name and product.parent_product_id:
        if capacity is not None and Decimal(capacity) % 1 == 0:
            weights = CYLINDER_WEIGHTS.get(int(capacity))
            variant = product.variant_name.lower()
            if weights and variant in weights:
                unit_weight = Decimal(weights[variant])
    elif capacity:
        tare = product.tare_weight_kg if product.tare_weight_kg else DEFAULT_TARE_WEIGHT_KG
        unit_weight = Decimal(capacity) + Decimal(tare)

    unit_cost = Decimal(getattr(product, "unit_cost", None) or 0)
    quantity = Decimal(str(item.quantity_to_transfer or 0))

    item.unit_weight_kg = unit_weight
    item.total_weight_kg = unit_weight * quantity
    item.unit_cost = unit_cost
    item.total_cost = unit_cost * quantity
    if not item.product_name:
        item.product_name = product.name
    if not item.product_sku:
        item.product_sku = product.sku
    return item


def generate_transfer_summary(items: Sequence[TransferItemDraft]) -> TransferSummary:
    total_weight = sum((i.total_weight_kg or Decimal("0") for i in items), Decimal("0"))
    total_cost = sum((i.total_cost or Decimal("0") for i in items), Decimal("0"))

    heaviest = max(items, key=lambda i: i.total_weight_kg or 0, default=None)
    most_expensive = max(items, key=lambda i: i.total_cost or 0, default=None)

    return TransferSummary(
        total_products=len(items),
        total_quantity=sum(int(i.quantity_to_transfer or 0) for i in items),
        total_weight_kg=total_weight,
        total_cost=total_cost if total_cost > 0 else None,
        unique_variants=len({i.variant_name or "default" for i in items}),
        heaviest_item=heaviest if heaviest and (heaviest.total_weight_kg or 0) > 0 else None,
        most_expensive_item=most_expensive if most_expensive and (most_expensive.total_cost or 0) > 0 else None,
        valid_items=sum(1 for i in items if i.is_valid),
        invalid_items=sum(1 for i in items if not i.is_valid),
        items_with_warnings=sum(1 for i in items if i.validation_warnings),
    )


def validate_warehouse_capacity(
    items: Sequence[TransferItemDraft],
    capacity_kg: Optional[Decimal],
    current_load_kg: Decimal = Decimal("0"),
) -> CapacityCheck:
    """Check the destination can hold the incoming weight on top of its current load."""
    if not capacity_kg:
        return CapacityCheck(
            can_accommodate=True,
            warnings=["Warehouse capacity not defined - cannot validate space availability"],
        )

    capacity = Decimal(capacity_kg)
    incoming = sum((i.total_weight_kg or Decimal("0") for i in items), Decimal("0"))
    load_after = Decimal(current_load_kg) + incoming
    utilization = load_after / capacity * 100

    if utilization > 100:
        return CapacityCheck(
            can_accommodate=False,
            warnings=[f"Transfer would exceed warehouse capacity by {load_after - capacity:.0f}kg"],
        )

    warnings = []
    if utilization > 90:
        warnings.append(f"Transfer will utilize {utilization:.1f}% of warehouse capacity")
    return CapacityCheck(can_accommodate=True, warnings=warnings)


def generate_transfer_reference(source_code: str, destination_code: str, transfer_date: date) -> str:
    """TR-<SRC>-<DST>-<YYYYMMDD>-<4 random uppercase alphanumerics>."""
    alphabet = string.ascii_uppercase + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(4))
    return f"TR-{source_code}-{destination_code}-{transfer_date:%Y%m%d}-{suffix}"


def format_validation_errors(result: TransferValidationResult) -> List[Dict[str, str]]:
    messages = [{"severity": "error", "message": e} for e in result.errors]
    messages.extend({"severity": "warning", "message": w} for w in result.warnings)
    return messages
