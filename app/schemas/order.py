from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import date, datetime
from decimal import Decimal
import uuid

from app.models.order import OrderStatus, OrderType
from app.schemas.base import BaseResponseSchema, BaseCreateSchema, Money
from app.services.inventory_movement import MovementType


# ==================== ORDER LINE SCHEMAS ====================

class OrderLineCreate(BaseCreateSchema):
    """Order line creation schema."""
    product_id: uuid.UUID
    quantity: int = Field(..., ge=1)
    unit_price: Optional[Decimal] = Field(None, gt=0)  # Current price used when omitted
    expected_price: Optional[Decimal] = Field(None, gt=0)  # Price the client last saw
    price_list_id: Optional[uuid.UUID] = None


class OrderLineResponse(BaseResponseSchema):
    """Order line response schema."""
    id: uuid.UUID
    line_number: int
    product_id: Optional[uuid.UUID] = None
    product_name: Optional[str] = None
    product_sku: Optional[str] = None
    quantity: int
    unit_price: Money
    subtotal: Optional[Money] = None
    price_list_id: Optional[uuid.UUID] = None


# ==================== ORDER SCHEMAS ====================

class OrderCreate(BaseCreateSchema):
    """Order creation schema."""
    customer_id: uuid.UUID
    delivery_address_id: Optional[uuid.UUID] = None
    source_warehouse_id: Optional[uuid.UUID] = None
    order_type: OrderType = OrderType.DELIVERY
    scheduled_date: Optional[date] = None
    exchange_empty_qty: int = Field(0, ge=0)
    requires_pickup: Optional[bool] = None  # Derived from order_type when omitted
    tax_percent: Optional[Decimal] = Field(None, ge=0, le=100)
    notes: Optional[str] = None
    order_lines: List[OrderLineCreate] = Field(..., min_length=1)

    # Processing options
    idempotency_key: Optional[str] = Field(None, max_length=255)
    validate_pricing: bool = True
    skip_inventory_check: bool = False


class OrderResponse(BaseResponseSchema):
    """Order response schema."""
    id: uuid.UUID
    order_number: str
    customer_id: uuid.UUID
    delivery_address_id: Optional[uuid.UUID] = None
    source_warehouse_id: Optional[uuid.UUID] = None
    status: str
    order_type: str
    scheduled_date: Optional[date] = None
    subtotal: Money
    tax_percent: Decimal
    tax_amount: Money
    total_amount: Money
    exchange_empty_qty: int
    requires_pickup: bool
    notes: Optional[str] = None
    order_lines: List[OrderLineResponse] = []
    created_at: datetime
    updated_at: datetime


class OrderCreateResponse(BaseModel):
    """Created order plus non-blocking warnings."""
    order: OrderResponse
    warnings: List[str] = []


class OrderListResponse(BaseModel):
    """Paginated order list."""
    items: List[OrderResponse]
    total: int
    page: int
    size: int
    pages: int


class OrderStatusUpdate(BaseModel):
    """Status change request."""
    status: OrderStatus
    scheduled_date: Optional[date] = None
    reason: Optional[str] = None


class OrderTaxUpdate(BaseModel):
    tax_percent: Decimal = Field(..., ge=0, le=100)


class OrderLinesReplace(BaseCreateSchema):
    """Replace all lines of an editable order."""
    order_lines: List[OrderLineCreate] = Field(..., min_length=1)
    validate_pricing: bool = True


# ==================== WORKFLOW SCHEMAS ====================

class WorkflowStepResponse(BaseModel):
    status: OrderStatus
    label: str
    description: str
    allowed_transitions: List[OrderStatus]


class TransitionValidateRequest(BaseModel):
    current_status: str
    new_status: str


class TransitionValidateResponse(BaseModel):
    valid: bool
    errors: List[str] = []


class TotalsLine(BaseModel):
    quantity: int = Field(..., ge=0)
    unit_price: Decimal = Field(..., ge=0)
    subtotal: Optional[Decimal] = None


class CalculateTotalsRequest(BaseModel):
    lines: List[TotalsLine]
    tax_percent: Decimal = Field(Decimal("0"), ge=0, le=100)


class TotalsResponse(BaseModel):
    subtotal: Money
    tax_amount: Money
    grand_total: Money


# ==================== INVENTORY MOVEMENT SCHEMAS ====================

class InventoryMovementResponse(BaseResponseSchema):
    product_id: uuid.UUID
    variant_key: str
    qty_full_change: int
    qty_empty_change: int
    movement_type: MovementType
    description: str


class InventoryMovementPlanResponse(BaseModel):
    order_id: uuid.UUID
    movements: List[InventoryMovementResponse]
    skipped_lines: List[int] = []
