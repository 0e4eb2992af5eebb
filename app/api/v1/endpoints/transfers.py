"""Stock Transfer API endpoints."""
from typing import Optional
import uuid

from fastapi import APIRouter, status

from app.api.deps import ActorId, Transfers
from app.schemas.stock_transfer import (
    TransferAllocateResponse,
    TransferCreate,
    TransferResponse,
    TransferStatusAction,
    TransferValidationResponse,
    ValidationMessage,
)
from app.services.transfer_validation import (
    TransferValidationResult,
    format_validation_errors,
)


router = APIRouter(tags=["Stock Transfers"])


def _validation_response(result: TransferValidationResult, conflicts) -> TransferValidationResponse:
    return TransferValidationResponse(
        is_valid=result.is_valid,
        errors=result.errors,
        warnings=result.warnings,
        blocked_items=result.blocked_items,
        total_weight_kg=result.total_weight_kg,
        estimated_cost=result.estimated_cost,
        conflicts=list(conflicts),
        messages=[ValidationMessage(**m) for m in format_validation_errors(result)],
    )


@router.post("/validate", response_model=TransferValidationResponse)
async def validate_transfer(data: TransferCreate, service: Transfers):
    """
    Check a transfer against current source stock without saving it.

    Always 200; problems are reported in the body.
    """
    result, conflicts = await service.validate(data)
    return _validation_response(result, conflicts.conflicts)


@router.post("", response_model=TransferAllocateResponse, status_code=status.HTTP_201_CREATED)
async def create_transfer(data: TransferCreate, service: Transfers, actor_id: ActorId):
    """Validate and save a draft transfer; invalid transfers are rejected with 400."""
    allocated = await service.allocate_transfer(data, actor_id=actor_id)
    return TransferAllocateResponse(
        transfer=TransferResponse.model_validate(allocated.transfer),
        validation=_validation_response(allocated.validation, allocated.conflicts),
    )


@router.get("/{transfer_id}", response_model=TransferResponse)
async def get_transfer(transfer_id: uuid.UUID, service: Transfers):
    transfer = await service.get_transfer(transfer_id)
    return TransferResponse.model_validate(transfer)


@router.post("/{transfer_id}/submit", response_model=TransferResponse)
async def submit_transfer(
    transfer_id: uuid.UUID,
    service: Transfers,
    data: Optional[TransferStatusAction] = None,
):
    transfer = await service.submit_transfer(transfer_id, notes=data.notes if data else None)
    return TransferResponse.model_validate(transfer)


@router.post("/{transfer_id}/approve", response_model=TransferAllocateResponse)
async def approve_transfer(
    transfer_id: uuid.UUID,
    service: Transfers,
    actor_id: ActorId,
    data: Optional[TransferStatusAction] = None,
):
    """Approve a pending transfer. Stock is re-checked first."""
    approved = await service.approve_transfer(
        transfer_id, actor_id=actor_id, notes=data.notes if data else None
    )
    return TransferAllocateResponse(
        transfer=TransferResponse.model_validate(approved.transfer),
        validation=_validation_response(approved.validation, approved.conflicts),
    )


@router.post("/{transfer_id}/dispatch", response_model=TransferResponse)
async def dispatch_transfer(
    transfer_id: uuid.UUID,
    service: Transfers,
    data: Optional[TransferStatusAction] = None,
):
    transfer = await service.dispatch_transfer(transfer_id, notes=data.notes if data else None)
    return TransferResponse.model_validate(transfer)


@router.post("/{transfer_id}/complete", response_model=TransferResponse)
async def complete_transfer(
    transfer_id: uuid.UUID,
    service: Transfers,
    data: Optional[TransferStatusAction] = None,
):
    """Move the stock to the destination warehouse."""
    transfer = await service.complete_transfer(transfer_id, notes=data.notes if data else None)
    return TransferResponse.model_validate(transfer)


@router.post("/{transfer_id}/cancel", response_model=TransferResponse)
async def cancel_transfer(
    transfer_id: uuid.UUID,
    service: Transfers,
    data: Optional[TransferStatusAction] = None,
):
    transfer = await service.cancel_transfer(transfer_id, notes=data.notes if data else None)
    return TransferResponse.model_validate(transfer)
