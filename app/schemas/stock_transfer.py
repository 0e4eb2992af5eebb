"""Transfer schemas for API requests/responses."""
from pydantic import BaseModel, Field

from app.schemas.base import BaseResponseSchema, BaseCreateSchema, Money
from typing import Optional, List
from datetime import date, datetime
from decimal import Decimal
import uuid

from app.models.stock_transfer import TransferPriority


# ==================== TRANSFER ITEM SCHEMAS ====================

class TransferItemCreate(BaseCreateSchema):
    """Transfer item creation schema.

    quantity_to_transfer is not range-checked here; the transfer validator
    reports non-positive and fractional quantities together with every
    other problem.
    """
    product_id: uuid.UUID
    variant_name: Optional[str] = None  # Taken from the catalog when omitted
    quantity_to_transfer: Decimal
    product_name: Optional[str] = None


class TransferItemResponse(BaseResponseSchema):
    """Transfer item response schema."""
    id: uuid.UUID
    line_number: int
    product_id: uuid.UUID
    product_name: Optional[str] = None
    product_sku: Optional[str] = None
    variant_name: Optional[str] = None
    quantity_to_transfer: int
    available_stock: Optional[int] = None
    reserved_stock: Optional[int] = None
    unit_weight_kg: Optional[Decimal] = None
    total_weight_kg: Optional[Decimal] = None
    unit_cost: Optional[Money] = None
    total_cost: Optional[Money] = None
    is_valid: bool = True
    validation_errors: List[str] = []
    validation_warnings: List[str] = []


# ==================== TRANSFER SCHEMAS ====================

class TransferCreate(BaseCreateSchema):
    """Transfer creation / validation request."""
    source_warehouse_id: Optional[uuid.UUID] = None
    destination_warehouse_id: Optional[uuid.UUID] = None
    transfer_date: Optional[date] = None
    priority: TransferPriority = TransferPriority.NORMAL
    notes: Optional[str] = None
    items: List[TransferItemCreate] = []


class TransferResponse(BaseResponseSchema):
    """Transfer response schema."""
    id: uuid.UUID
    transfer_reference: str
    status: str
    priority: Optional[str] = None
    source_warehouse_id: uuid.UUID
    destination_warehouse_id: uuid.UUID
    transfer_date: date
    total_items: int
    total_quantity: int
    total_weight_kg: Optional[Decimal] = None
    total_cost: Optional[Money] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    approved_by: Optional[str] = None
    created_at: datetime
    approved_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    items: List[TransferItemResponse] = []


class ValidationMessage(BaseModel):
    severity: str
    message: str


class TransferValidationResponse(BaseModel):
    """Outcome of validating a transfer; advisory conflicts never block it."""
    is_valid: bool
    errors: List[str] = []
    warnings: List[str] = []
    blocked_items: List[uuid.UUID] = []
    total_weight_kg: Decimal = Decimal("0")
    estimated_cost: Optional[Money] = None
    conflicts: List[str] = []
    messages: List[ValidationMessage] = []


class TransferAllocateResponse(BaseModel):
    transfer: TransferResponse
    validation: TransferValidationResponse


class TransferStatusAction(BaseModel):
    """Optional note attached to a status action."""
    notes: Optional[str] = Field(None, max_length=1000)
