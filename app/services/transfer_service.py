"""
Warehouse-to-warehouse stock transfers.

Validation is done in memory by app.services.transfer_validation; this
service loads the data it needs, persists the outcome and runs the
status workflow. Stock only moves on completion.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional, Tuple
import uuid
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, settings as app_settings
from app.core.exceptions import (
    ConcurrentModificationError,
    NotFoundError,
    StockOperationFailed,
    TransferValidationError,
)
from app.models.stock_transfer import Transfer, TransferItem, TransferStatus
from app.schemas.stock_transfer import TransferCreate
from app.services.interfaces import (
    ProductCatalog,
    StockStore,
    StockTransferLine,
    TransferRepository,
)
from app.services.inventory_service import InventoryService
from app.services.product_service import ProductService
from app.services.transfer_repository import SQLTransferRepository
from app.services.transfer_validation import (
    TransferConflictReport,
    TransferDraft,
    TransferItemDraft,
    TransferLimits,
    TransferValidationResult,
    calculate_item_details,
    check_conflicts,
    ensure_transfer_transition,
    find_stock,
    generate_transfer_reference,
    generate_transfer_summary,
    validate_transfer,
)

logger = logging.getLogger(__name__)


@dataclass
class TransferResult:
    transfer: Transfer
    validation: TransferValidationResult
    conflicts: List[str] = field(default_factory=list)


def limits_from_settings(settings: Settings) -> TransferLimits:
    return TransferLimits(
        max_items_warning=settings.TRANSFER_MAX_ITEMS_WARNING,
        max_weight_kg_warning=settings.TRANSFER_MAX_WEIGHT_KG_WARNING,
        large_quantity=settings.TRANSFER_LARGE_QUANTITY,
        conflict_item_limit=settings.TRANSFER_CONFLICT_ITEM_LIMIT,
    )


class TransferService:
    """Service for validating, allocating and moving transfers."""

    def __init__(
        self,
        db: Optional[AsyncSession] = None,
        *,
        stock: Optional[StockStore] = None,
        catalog: Optional[ProductCatalog] = None,
        transfers: Optional[TransferRepository] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.stock = stock or InventoryService(db)
        self.catalog = catalog or ProductService(db)
        self.transfers = transfers or SQLTransferRepository(db)
        self.limits = limits_from_settings(settings or app_settings)

    # ==================== VALIDATION ====================

    async def build_draft(self, data: TransferCreate) -> TransferDraft:
        """Turn a request into a draft with catalog names, weights and costs filled in."""
        products = await self.catalog.get_products([item.product_id for item in data.items])

        items = []
        for item in data.items:
            draft = TransferItemDraft(
                product_id=item.product_id,
                quantity_to_transfer=item.quantity_to_transfer,
                product_name=item.product_name or "",
                variant_name=item.variant_name,
            )
            product = products.get(item.product_id)
            if product:
                if draft.variant_name is None and product.is_variant:
                    draft.variant_name = product.variant_name
                calculate_item_details(draft, product)
            items.append(draft)

        return TransferDraft(
            source_warehouse_id=data.source_warehouse_id,
            destination_warehouse_id=data.destination_warehouse_id,
            transfer_date=data.transfer_date,
            items=items,
            priority=data.priority.value,
            notes=data.notes,
        )

    async def validate_draft(
        self,
        draft: TransferDraft,
        today: Optional[date] = None,
        exclude_transfer_id: Optional[uuid.UUID] = None,
    ) -> Tuple[TransferValidationResult, TransferConflictReport]:
        stock = []
        if draft.source_warehouse_id:
            stock = await self.stock.get_stock_snapshot(
                draft.source_warehouse_id,
                [item.product_id for item in draft.items if item.product_id],
            )
        for item in draft.items:
            row = find_stock(item, stock)
            if row:
                item.available_stock = row.qty_available
                item.reserved_stock = row.qty_reserved
        result = validate_transfer(draft, stock, today=today, limits=self.limits)

        existing = []
        if draft.source_warehouse_id and draft.transfer_date:
            existing = await self.transfers.list_for_source_date(draft.source_warehouse_id, draft.transfer_date)
            existing = [t for t in existing if t.id != exclude_transfer_id]
        conflicts = check_conflicts(draft, existing, limits=self.limits)

        if conflicts.has_conflicts:
            logger.info(f"Transfer conflicts for source {draft.source_warehouse_id}: {conflicts.conflicts}")
        return result, conflicts

    async def validate(
        self, data: TransferCreate, today: Optional[date] = None
    ) -> Tuple[TransferValidationResult, TransferConflictReport]:
        """Validate a transfer request without writing anything."""
        draft = await self.build_draft(data)
        return await self.validate_draft(draft, today)

    # ==================== ALLOCATION ====================

    async def allocate_transfer(
        self, data: TransferCreate, actor_id: Optional[str] = None, today: Optional[date] = None
    ) -> TransferResult:
        """Validate and persist a draft transfer. Nothing is written when validation fails."""
        draft = await self.build_draft(data)
        result, conflicts = await self.validate_draft(draft, today)
        if not result.is_valid:
            logger.info(f"Transfer rejected: {result.errors}")
            raise TransferValidationError("Transfer validation failed", result)

        warehouses = await self.transfers.get_warehouses(
            [draft.source_warehouse_id, draft.destination_warehouse_id]
        )
        source = warehouses.get(draft.source_warehouse_id)
        destination = warehouses.get(draft.destination_warehouse_id)
        if not source or not destination:
            raise NotFoundError("Source or destination warehouse not found")

        summary = generate_transfer_summary(draft.items)
        transfer = Transfer(
            id=uuid.uuid4(),
            transfer_reference=generate_transfer_reference(source.code, destination.code, draft.transfer_date),
            status=TransferStatus.DRAFT.value,
            priority=draft.priority,
            source_warehouse_id=draft.source_warehouse_id,
            destination_warehouse_id=draft.destination_warehouse_id,
            transfer_date=draft.transfer_date,
            total_items=summary.total_products,
            total_quantity=summary.total_quantity,
            total_weight_kg=summary.total_weight_kg,
            total_cost=summary.total_cost,
            notes=draft.notes,
            created_by=actor_id,
            created_at=datetime.now(timezone.utc),
            items=[self._to_item(index, item) for index, item in enumerate(draft.items, start=1)],
        )
        await self.transfers.add(transfer)

        logger.info(
            f"Transfer {transfer.transfer_reference} allocated: {summary.total_products} items, "
            f"{summary.total_quantity} units, {summary.total_weight_kg} kg"
        )
        return TransferResult(transfer=transfer, validation=result, conflicts=conflicts.conflicts)

    @staticmethod
    def _to_item(line_number: int, item: TransferItemDraft) -> TransferItem:
        return TransferItem(
            id=uuid.uuid4(),
            line_number=line_number,
            product_id=item.product_id,
            product_name=item.product_name,
            product_sku=item.product_sku,
            variant_name=item.variant_name,
            quantity_to_transfer=int(item.quantity_to_transfer),
            available_stock=item.available_stock,
            reserved_stock=item.reserved_stock,
            unit_weight_kg=item.unit_weight_kg,
            total_weight_kg=item.total_weight_kg,
            unit_cost=item.unit_cost,
            total_cost=item.total_cost,
            is_valid=item.is_valid,
            validation_errors=list(item.validation_errors),
            validation_warnings=list(item.validation_warnings),
        )

    # ==================== STATUS ====================

    async def get_transfer(self, transfer_id: uuid.UUID) -> Transfer:
        transfer = await self.transfers.get(transfer_id)
        if not transfer:
            raise NotFoundError(f"Transfer {transfer_id} not found")
        return transfer

    async def _move(self, transfer: Transfer, new_status: TransferStatus, notes: Optional[str] = None, **values) -> Transfer:
        current = transfer.status
        ensure_transfer_transition(current, new_status.value)
        if notes:
            values["notes"] = f"{transfer.notes}\n{notes}" if transfer.notes else notes

        updated = await self.transfers.update_status_if(transfer.id, current, new_status.value, **values)
        if not updated:
            raise ConcurrentModificationError(
                f"Transfer {transfer.transfer_reference} was modified by another request"
            )

        transfer.status = new_status.value
        for attr, value in values.items():
            setattr(transfer, attr, value)
        logger.info(f"Transfer {transfer.transfer_reference}: {current} -> {new_status.value}")
        return transfer

    async def submit_transfer(self, transfer_id: uuid.UUID, notes: Optional[str] = None) -> Transfer:
        transfer = await self.get_transfer(transfer_id)
        return await self._move(transfer, TransferStatus.PENDING, notes)

    async def approve_transfer(
        self,
        transfer_id: uuid.UUID,
        actor_id: Optional[str] = None,
        notes: Optional[str] = None,
        today: Optional[date] = None,
    ) -> TransferResult:
        """Approve a pending transfer after re-checking it against current stock."""
        transfer = await self.get_transfer(transfer_id)
        ensure_transfer_transition(transfer.status, TransferStatus.APPROVED.value)

        draft = self._draft_from(transfer)
        result, conflicts = await self.validate_draft(draft, today, exclude_transfer_id=transfer.id)
        if not result.is_valid:
            logger.info(f"Transfer {transfer.transfer_reference} failed revalidation: {result.errors}")
            raise TransferValidationError(
                f"Transfer {transfer.transfer_reference} no longer passes validation", result
            )

        for model_item, draft_item in zip(transfer.items, draft.items):
            model_item.available_stock = draft_item.available_stock
            model_item.reserved_stock = draft_item.reserved_stock
            model_item.validation_warnings = list(draft_item.validation_warnings)

        transfer = await self._move(
            transfer, TransferStatus.APPROVED, notes,
            approved_by=actor_id, approved_at=datetime.now(timezone.utc),
        )
        return TransferResult(transfer=transfer, validation=result, conflicts=conflicts.conflicts)

    @staticmethod
    def _draft_from(transfer: Transfer) -> TransferDraft:
        return TransferDraft(
            source_warehouse_id=transfer.source_warehouse_id,
            destination_warehouse_id=transfer.destination_warehouse_id,
            transfer_date=transfer.transfer_date,
            items=[
                TransferItemDraft(
                    product_id=item.product_id,
                    quantity_to_transfer=item.quantity_to_transfer,
                    product_name=item.product_name or "",
                    product_sku=item.product_sku or "",
                    variant_name=item.variant_name,
                    unit_weight_kg=item.unit_weight_kg or Decimal("0"),
                    total_weight_kg=item.total_weight_kg or Decimal("0"),
                    unit_cost=item.unit_cost or Decimal("0"),
                    total_cost=item.total_cost or Decimal("0"),
                )
                for item in transfer.items
            ],
            status=transfer.status,
            priority=transfer.priority or "normal",
            notes=transfer.notes,
        )

    async def dispatch_transfer(self, transfer_id: uuid.UUID, notes: Optional[str] = None) -> Transfer:
        transfer = await self.get_transfer(transfer_id)
        return await self._move(transfer, TransferStatus.IN_TRANSIT, notes)

    async def complete_transfer(self, transfer_id: uuid.UUID, notes: Optional[str] = None) -> Transfer:
        """
        Move the stock and mark the transfer completed.

        Each item moves atomically on its own. If any item fails the
        transfer stays in_transit and StockOperationFailed lists the failures.
        """
        transfer = await self.get_transfer(transfer_id)
        ensure_transfer_transition(transfer.status, TransferStatus.COMPLETED.value)

        lines = [StockTransferLine(item.product_id, item.quantity_to_transfer) for item in transfer.items]
        failures = await self.stock.transfer(
            transfer.source_warehouse_id, transfer.destination_warehouse_id, lines
        )
        if failures:
            for failure in failures:
                logger.error(
                    f"Transfer {transfer.transfer_reference}: item {failure.get('product_id')} "
                    f"failed: {failure.get('error')}"
                )
            raise StockOperationFailed(
                f"Transfer {transfer.transfer_reference}: {len(failures)} of {len(lines)} items could not be moved",
                failures,
            )

        return await self._move(
            transfer, TransferStatus.COMPLETED, notes, completed_at=datetime.now(timezone.utc)
        )

    async def cancel_transfer(self, transfer_id: uuid.UUID, notes: Optional[str] = None) -> Transfer:
        transfer = await self.get_transfer(transfer_id)
        return await self._move(transfer, TransferStatus.CANCELLED, notes)
