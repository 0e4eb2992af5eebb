"""Order API endpoints."""
from typing import List, Optional
import uuid
from math import ceil

from fastapi import APIRouter, Query, status

from app.api.deps import ActorId, Orders
from app.models.order import OrderStatus
from app.schemas.order import (
    CalculateTotalsRequest,
    InventoryMovementPlanResponse,
    InventoryMovementResponse,
    OrderCreate,
    OrderCreateResponse,
    OrderLinesReplace,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
    OrderTaxUpdate,
    TotalsResponse,
    TransitionValidateRequest,
    TransitionValidateResponse,
    WorkflowStepResponse,
)
from app.services import order_workflow
from app.services.order_service import OrderResult


router = APIRouter(tags=["Orders"])


def _created(result: OrderResult) -> OrderCreateResponse:
    return OrderCreateResponse(
        order=OrderResponse.model_validate(result.order),
        warnings=result.warnings,
    )


# ==================== WORKFLOW (stateless) ====================

@router.get("/workflow", response_model=List[WorkflowStepResponse])
async def get_workflow():
    """Order statuses in lifecycle order with their allowed next statuses."""
    return [
        WorkflowStepResponse(
            status=step.status,
            label=step.label,
            description=step.description,
            allowed_transitions=step.allowed_transitions,
        )
        for step in order_workflow.get_order_workflow()
    ]


@router.post("/workflow/validate-transition", response_model=TransitionValidateResponse)
async def validate_transition(data: TransitionValidateRequest):
    result = order_workflow.validate_transition(data.current_status, data.new_status)
    return TransitionValidateResponse(valid=result.valid, errors=result.errors)


@router.post("/workflow/calculate-totals", response_model=TotalsResponse)
async def calculate_totals(data: CalculateTotalsRequest, service: Orders):
    """Preview totals for a set of lines without touching any order."""
    totals = service.calculate_totals(data.lines, data.tax_percent)
    return TotalsResponse(
        subtotal=totals.subtotal,
        tax_amount=totals.tax_amount,
        grand_total=totals.grand_total,
    )


# ==================== ORDERS ====================

@router.get("", response_model=OrderListResponse)
async def list_orders(
    service: Orders,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    status: Optional[OrderStatus] = Query(None),
    customer_id: Optional[uuid.UUID] = Query(None),
):
    """Get paginated list of orders."""
    skip = (page - 1) * size
    orders, total = await service.list_orders(
        status=status.value if status else None,
        customer_id=customer_id,
        skip=skip,
        limit=size,
    )

    return OrderListResponse(
        items=[OrderResponse.model_validate(o) for o in orders],
        total=total,
        page=page,
        size=size,
        pages=ceil(total / size) if total > 0 else 1,
    )


@router.post("", response_model=OrderCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_order(data: OrderCreate, service: Orders, actor_id: ActorId):
    """
    Create a draft order.

    Sending the same idempotency_key again returns the first result
    instead of creating a second order.
    """
    result = await service.create_order(data, actor_id=actor_id)
    return _created(result)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: uuid.UUID, service: Orders):
    order = await service.get_order(order_id)
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: uuid.UUID,
    data: OrderStatusUpdate,
    service: Orders,
    actor_id: ActorId,
):
    """Move the order to a new status, reserving or releasing stock as needed."""
    order = await service.change_status(
        order_id,
        data.status,
        scheduled_date=data.scheduled_date,
        reason=data.reason,
        actor_id=actor_id,
    )
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/calculate-total", response_model=OrderResponse)
async def recalculate_order_total(order_id: uuid.UUID, service: Orders):
    order = await service.recompute_order_total(order_id)
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/update-tax", response_model=OrderResponse)
async def update_order_tax(order_id: uuid.UUID, data: OrderTaxUpdate, service: Orders):
    order = await service.update_tax(order_id, data.tax_percent)
    return OrderResponse.model_validate(order)


@router.put("/{order_id}/lines", response_model=OrderCreateResponse)
async def replace_order_lines(
    order_id: uuid.UUID,
    data: OrderLinesReplace,
    service: Orders,
    actor_id: ActorId,
):
    result = await service.replace_order_lines(
        order_id,
        data.order_lines,
        validate_pricing=data.validate_pricing,
        actor_id=actor_id,
    )
    return _created(result)


@router.get("/{order_id}/inventory-movements", response_model=InventoryMovementPlanResponse)
async def get_inventory_movements(order_id: uuid.UUID, service: Orders):
    """Stock movements delivering this order would produce."""
    planned = await service.plan_inventory_movements(order_id)
    return InventoryMovementPlanResponse(
        order_id=order_id,
        movements=[InventoryMovementResponse.model_validate(m) for m in planned.movements],
        skipped_lines=planned.skipped_lines,
    )
