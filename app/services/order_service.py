from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple, Type
from datetime import date, datetime, timezone
from decimal import Decimal
import uuid
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, settings as app_settings
from app.core.exceptions import (
    DomainError,
    AccountClosedError,
    AccountOnHoldError,
    ConcurrentDuplicateError,
    ConcurrentModificationError,
    InsufficientStockError,
    MinimumOrderAmountError,
    NoPricingFoundError,
    NotFoundError,
    OrderNotEditableError,
    OrderValidationError,
    PriceMismatchError,
    ProductInactiveError,
    StockOperationFailed,
)
from app.models.customer import AccountStatus
from app.models.idempotency import IdempotencyStatus
from app.models.order import Order, OrderLine, OrderStatus
from app.schemas.order import OrderCreate, OrderLineCreate
from app.services import order_totals
from app.services.idempotency_service import IdempotencyService, hash_idempotency_key
from app.services.interfaces import (
    CustomerDirectory,
    IdempotencyStore,
    OrderRepository,
    PricingCollaborator,
    ProductCatalog,
    StockStore,
)
from app.services.inventory_movement import (
    PlannedMovements,
    draws_full_stock,
    plan_line_movements,
    plan_movements,
    should_require_pickup,
    validate_order_type,
)
from app.services.inventory_service import InventoryService
from app.services.order_repository import SQLCustomerDirectory, SQLOrderRepository
from app.services.order_totals import OrderTotals
from app.services.order_workflow import (
    ensure_transition,
    is_editable,
    is_terminal,
    validate_order_for_confirmation,
    validate_order_for_scheduling,
)
from app.services.pricing_service import PricingService
from app.services.product_service import ProductService

logger = logging.getLogger(__name__)


@dataclass
class OrderResult:
    """Created (or replayed) order plus non-blocking warnings."""
    order: Order
    warnings: List[str] = field(default_factory=list)
    replayed: bool = False


@dataclass(frozen=True)
class StockStep:
    """One stock side effect of a status change; the unit of compensation."""
    action: str  # reserve, release, fulfill, unfulfill, adjust_empty
    warehouse_id: uuid.UUID
    product_id: uuid.UUID
    quantity: int


# Inverse of every stock action, used to undo applied steps
COMPENSATIONS = {
    "reserve": "release",
    "release": "reserve",
    "fulfill": "unfulfill",
    "unfulfill": "fulfill",
    "adjust_empty": "adjust_empty",
}


class OrderService:
    """
    Order lifecycle: creation, status changes with stock side effects,
    line edits and totals.

    Collaborators default to the SQL implementations bound to ``db``;
    any of them can be passed in explicitly.
    """

    def __init__(
        self,
        db: Optional[AsyncSession] = None,
        *,
        stock: Optional[StockStore] = None,
        pricing: Optional[PricingCollaborator] = None,
        catalog: Optional[ProductCatalog] = None,
        idempotency: Optional[IdempotencyStore] = None,
        orders: Optional[OrderRepository] = None,
        customers: Optional[CustomerDirectory] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.stock = stock or InventoryService(db)
        self.pricing = pricing or PricingService(db)
        self.catalog = catalog or ProductService(db)
        self.idempotency = idempotency or IdempotencyService(db)
        self.orders = orders or SQLOrderRepository(db)
        self.customers = customers or SQLCustomerDirectory(db)
        self.settings = settings or app_settings

    # ==================== QUERIES ====================

    async def get_order(self, order_id: uuid.UUID) -> Order:
        order = await self.orders.get(order_id)
        if not order:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    async def list_orders(
        self,
        status: Optional[str] = None,
        customer_id: Optional[uuid.UUID] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Order], int]:
        return await self.orders.list(status=status, customer_id=customer_id, limit=limit, offset=skip)

    # ==================== CREATE ====================

    async def create_order(self, data: OrderCreate, actor_id: Optional[str] = None) -> OrderResult:
        """
        Create a draft order.

        With an idempotency key the whole operation runs at most once per
        (key, actor): a completed key replays the stored result, a key still
        being processed raises ConcurrentDuplicateError, a failed key runs again.
        """
        claim = None
        if data.idempotency_key:
            operation = self.settings.IDEMPOTENCY_OPERATION_ORDER_CREATE
            key_hash = hash_idempotency_key(operation, data.idempotency_key, actor_id)
            claim = await self.idempotency.claim(key_hash, operation, data.model_dump(mode="json"))

            if claim.exists:
                if claim.in_process:
                    raise ConcurrentDuplicateError(
                        "An order with this idempotency key is already being processed"
                    )
                logger.info(f"Replaying order create for idempotency key {claim.key_id}")
                return await self._replay(claim.stored_response)

        logger.info(f"Creating order for customer {data.customer_id} ({len(data.order_lines)} lines)")
        try:
            result = await self._create_order(data, actor_id)
        except Exception as exc:
            if claim:
                await self._fail_claim(claim.key_id, exc)
            raise

        if claim:
            await self.idempotency.complete(
                claim.key_id,
                {
                    "order_id": str(result.order.id),
                    "order_number": result.order.order_number,
                    "warnings": result.warnings,
                },
                IdempotencyStatus.COMPLETED.value,
            )

        if result.warnings:
            logger.warning(f"Order {result.order.order_number} created with warnings: {result.warnings}")
        logger.info(
            f"Order {result.order.order_number} created: total={result.order.total_amount}, "
            f"lines={len(result.order.order_lines)}"
        )
        return result

    async def _fail_claim(self, key_id: uuid.UUID, exc: Exception) -> None:
        response = exc.to_dict() if isinstance(exc, DomainError) else {"error": str(exc)}
        try:
            await self.idempotency.complete(key_id, response, IdempotencyStatus.FAILED.value)
        except SQLAlchemyError:
            logger.exception(f"Could not mark idempotency key {key_id} as failed")

    async def _replay(self, stored: Optional[dict]) -> OrderResult:
        stored = stored or {}
        order_id = stored.get("order_id")
        order = await self.orders.get(uuid.UUID(order_id)) if order_id else None
        if not order:
            raise NotFoundError("Order recorded for this idempotency key no longer exists")
        return OrderResult(order=order, warnings=list(stored.get("warnings") or []), replayed=True)

    async def _create_order(self, data: OrderCreate, actor_id: Optional[str]) -> OrderResult:
        customer = await self.customers.get_customer(data.customer_id)
        if not customer:
            raise NotFoundError("Customer not found")
        if customer.account_status == AccountStatus.CREDIT_HOLD.value:
            raise AccountOnHoldError("Cannot create order for customer on credit hold")
        if customer.account_status == AccountStatus.CLOSED.value:
            raise AccountClosedError("Cannot create order for closed customer account")

        if data.delivery_address_id:
            address = await self.customers.get_address(data.customer_id, data.delivery_address_id)
            if not address:
                raise NotFoundError("Delivery address not found or does not belong to customer")

        requires_pickup = (
            data.requires_pickup if data.requires_pickup is not None
            else should_require_pickup(data.order_type)
        )
        type_check = validate_order_type(data.order_type, data.exchange_empty_qty, requires_pickup)
        if not type_check.valid:
            raise OrderValidationError("Order type validation failed", type_check.errors)

        lines, warnings = await self._build_lines(
            data.order_lines,
            customer_id=data.customer_id,
            warehouse_id=data.source_warehouse_id,
            validate_pricing=data.validate_pricing,
            check_stock=not data.skip_inventory_check and draws_full_stock(data.order_type),
        )

        tax_percent = data.tax_percent if data.tax_percent is not None else self.settings.DEFAULT_TAX_PERCENT
        totals = order_totals.compute_with_tax(lines, tax_percent)
        minimum = self.settings.MINIMUM_ORDER_AMOUNT
        if totals.subtotal < minimum:
            raise MinimumOrderAmountError(
                f"Order total ({order_totals.round_for_display(totals.subtotal)}) "
                f"is below minimum order amount ({minimum})"
            )

        order = Order(
            id=uuid.uuid4(),
            order_number=await self.orders.next_order_number(),
            customer_id=data.customer_id,
            delivery_address_id=data.delivery_address_id,
            source_warehouse_id=data.source_warehouse_id,
            status=OrderStatus.DRAFT.value,
            order_type=data.order_type.value,
            scheduled_date=data.scheduled_date,
            subtotal=totals.subtotal,
            tax_percent=Decimal(tax_percent),
            tax_amount=totals.tax_amount,
            total_amount=totals.grand_total,
            price_list_id=next((line.price_list_id for line in lines if line.price_list_id), None),
            exchange_empty_qty=data.exchange_empty_qty,
            requires_pickup=requires_pickup,
            notes=data.notes,
            created_by=actor_id,
            created_at=datetime.now(timezone.utc),
            updated_at=datetime.now(timezone.utc),
            order_lines=lines,
        )
        await self.orders.add(order)
        await self.orders.add_status_history(order.id, None, OrderStatus.DRAFT.value, actor_id, "Order created")

        order = await self.recompute_order_total(order.id)
        return OrderResult(order=order, warnings=warnings)

    async def _build_lines(
        self,
        requested: Sequence[OrderLineCreate],
        customer_id: uuid.UUID,
        warehouse_id: Optional[uuid.UUID],
        validate_pricing: bool,
        check_stock: bool,
    ) -> Tuple[List[OrderLine], List[str]]:
        """
        Validate requested lines with one batched lookup per collaborator.

        Every problem is collected; if any, the error type of the first one
        is raised carrying all messages.
        """
        product_ids = [line.product_id for line in requested]
        products = await self.catalog.get_products(product_ids)
        prices = await self.pricing.get_current_prices(product_ids, customer_id) if validate_pricing else {}
        available = await self.stock.get_available(product_ids, warehouse_id) if check_stock else {}

        tolerance = self.settings.PRICE_TOLERANCE
        warning_ratio = self.settings.ORDER_STOCK_WARNING_RATIO
        failures: List[Tuple[Type[DomainError], str]] = []
        warnings: List[str] = []
        demand: dict = {}
        lines: List[OrderLine] = []

        for index, item in enumerate(requested, start=1):
            product = products.get(item.product_id)
            if not product:
                failures.append((OrderValidationError, f"Product not found for line {index}"))
                continue
            if not product.is_active:
                failures.append((ProductInactiveError, f"Product {product.sku} is not active"))
                continue

            unit_price = item.unit_price
            price_list_id = item.price_list_id
            if validate_pricing:
                quote = prices.get(item.product_id)
                if not quote:
                    failures.append((NoPricingFoundError, f"No pricing found for product {product.sku}"))
                    continue
                if unit_price is None:
                    unit_price = quote.final_price
                elif abs(unit_price - quote.final_price) > tolerance:
                    current = order_totals.round_for_display(quote.final_price)
                    if item.expected_price is not None and abs(item.expected_price - quote.final_price) <= tolerance:
                        message = (
                            f"Price for {product.sku} has changed. "
                            f"Expected: {item.expected_price}, Current: {current}"
                        )
                    else:
                        message = f"Invalid price for {product.sku}. Provided: {unit_price}, Current: {current}"
                    failures.append((PriceMismatchError, message))
                    continue
                if item.price_list_id and item.price_list_id != quote.price_list_id:
                    failures.append((PriceMismatchError, f"Price list mismatch for product {product.sku}"))
                    continue
                price_list_id = quote.price_list_id
            elif unit_price is None:
                failures.append((
                    OrderValidationError,
                    f"Unit price is required for product {product.sku} when pricing validation is disabled",
                ))
                continue

            if check_stock:
                free = available.get(item.product_id)
                if free is None:
                    warnings.append(f"No inventory found for product {product.sku}")
                else:
                    # Several lines for one product draw on the same stock
                    wanted = demand.get(item.product_id, 0) + item.quantity
                    demand[item.product_id] = wanted
                    if wanted > free:
                        failures.append((
                            InsufficientStockError,
                            f"Insufficient stock for {product.sku}. Requested: {wanted}, Available: {free}",
                        ))
                        continue
                    if wanted > free * warning_ratio:
                        warnings.append(f"Large quantity requested for {product.sku} ({wanted}/{free} available)")

            lines.append(
                OrderLine(
                    id=uuid.uuid4(),
                    line_number=index,
                    product_id=item.product_id,
                    product_name=product.name,
                    product_sku=product.sku,
                    quantity=item.quantity,
                    unit_price=unit_price,
                    subtotal=unit_price * item.quantity,
                    price_list_id=price_list_id,
                )
            )

        if failures:
            messages = [message for _, message in failures]
            error_class = failures[0][0]
            logger.info(f"Order lines rejected: {messages}")
            raise error_class(f"Order validation failed: {'; '.join(messages)}", messages)

        return lines, warnings

    # ==================== TOTALS ====================

    def calculate_totals(self, lines: Sequence[Any], tax_percent: Any = 0) -> OrderTotals:
        """Stateless totals preview."""
        return order_totals.compute_with_tax(lines, tax_percent)

    async def recompute_order_total(self, order_id: uuid.UUID) -> Order:
        """
        Re-derive subtotal and total from the current lines.

        The stored tax_amount is authoritative here and is not recomputed
        from tax_percent; use update_tax for that.
        """
        order = await self.orders.get(order_id)
        if not order:
            raise NotFoundError(f"Order {order_id} not found")
        if not order.order_lines:
            raise NotFoundError(f"Order {order.order_number} has no lines")

        subtotal = order_totals.compute_subtotal(order.order_lines)
        order.subtotal = subtotal
        order.total_amount = subtotal + (order.tax_amount or Decimal("0"))
        return await self.orders.save(order)

    async def update_tax(self, order_id: uuid.UUID, tax_percent: Any) -> Order:
        """Set tax_percent and derive tax_amount and total_amount from it."""
        try:
            percent = order_totals.validate_tax_percent(tax_percent)
        except ValueError as exc:
            raise OrderValidationError(str(exc))

        order = await self.get_order(order_id)
        if is_terminal(order.status):
            raise OrderNotEditableError(f"Order {order.order_number} is {order.status} and cannot be changed")

        self._apply_tax(order, percent)
        logger.info(f"Order {order.order_number} tax set to {percent}%")
        return await self.orders.save(order)

    @staticmethod
    def _apply_tax(order: Order, percent: Decimal) -> None:
        subtotal = order_totals.compute_subtotal(order.order_lines or [])
        tax_amount = order_totals.compute_tax_amount(subtotal, percent)
        order.subtotal = subtotal
        order.tax_percent = percent
        order.tax_amount = tax_amount
        order.total_amount = subtotal + tax_amount

    # ==================== LINE EDITS ====================

    async def replace_order_lines(
        self,
        order_id: uuid.UUID,
        requested: Sequence[OrderLineCreate],
        validate_pricing: bool = True,
        actor_id: Optional[str] = None,
    ) -> OrderResult:
        """
        Replace all lines of a draft or confirmed order.

        For confirmed orders the reservation follows the lines: old lines are
        released and new ones reserved as one compensated unit.
        """
        order = await self.get_order(order_id)
        if not is_editable(order.status):
            raise OrderNotEditableError(
                f"Order {order.order_number} cannot be edited in status {order.status}"
            )

        confirmed = order.status == OrderStatus.CONFIRMED.value
        new_lines, warnings = await self._build_lines(
            requested,
            customer_id=order.customer_id,
            warehouse_id=order.source_warehouse_id,
            validate_pricing=validate_pricing,
            # reserve() enforces availability instead
            check_stock=not confirmed and draws_full_stock(order.order_type),
        )

        if confirmed and order.source_warehouse_id:
            steps = self._full_steps("release", order, order.order_lines)
            steps += self._full_steps("reserve", order, new_lines)
            await self._apply_steps(steps, order)

        order.order_lines = new_lines
        self._apply_tax(order, Decimal(order.tax_percent or 0))
        await self.orders.save(order)
        logger.info(f"Order {order.order_number} lines replaced by {actor_id or 'system'}: {len(new_lines)} lines")
        return OrderResult(order=order, warnings=warnings)

    # ==================== STATUS ====================

    async def change_status(
        self,
        order_id: uuid.UUID,
        new_status: Any,
        scheduled_date: Optional[date] = None,
        reason: Optional[str] = None,
        actor_id: Optional[str] = None,
        today: Optional[date] = None,
    ) -> Order:
        """
        Move an order to new_status, applying its stock side effects.

        The status write is conditional on the status read here; if another
        request changed it first, applied stock steps are undone and
        ConcurrentModificationError is raised.
        """
        order = await self.get_order(order_id)
        current = order.status
        ensure_transition(current, new_status)
        target = OrderStatus(new_status)

        if scheduled_date:
            order.scheduled_date = scheduled_date

        if target == OrderStatus.CONFIRMED:
            check = validate_order_for_confirmation(order)
            errors = list(check.errors)
            if order.order_lines and not order.source_warehouse_id:
                errors.append("Source warehouse is required to reserve stock")
            if errors:
                raise OrderValidationError(f"Order {order.order_number} cannot be confirmed", errors)
        elif target == OrderStatus.SCHEDULED:
            check = validate_order_for_scheduling(order, today)
            if not check.valid:
                raise OrderValidationError(f"Order {order.order_number} cannot be scheduled", check.errors)

        steps = self._stock_steps(order, OrderStatus(current), target)
        applied = await self._apply_steps(steps, order)

        now = datetime.now(timezone.utc)
        values = {}
        if scheduled_date:
            values["scheduled_date"] = scheduled_date
        if target == OrderStatus.CONFIRMED:
            values["confirmed_at"] = now
        elif target == OrderStatus.DELIVERED:
            values["delivered_at"] = now

        updated = await self.orders.update_status_if(order.id, current, target.value, **values)
        if not updated:
            logger.warning(f"Order {order.order_number} changed concurrently; undoing {len(applied)} stock steps")
            await self._compensate(applied, order)
            raise ConcurrentModificationError(
                f"Order {order.order_number} was modified by another request"
            )

        order.status = target.value
        for attr, value in values.items():
            setattr(order, attr, value)
        await self.orders.add_status_history(order.id, current, target.value, actor_id, reason)
        logger.info(f"Order {order.order_number}: {current} -> {target.value}")
        return order

    def _full_steps(self, action: str, order: Order, lines: Sequence[OrderLine]) -> List[StockStep]:
        """One step per planned full-cylinder movement; pickup lines plan none."""
        planned = plan_line_movements(order.order_type, lines, order.exchange_empty_qty)
        return [
            StockStep(action, order.source_warehouse_id, m.product_id, -m.qty_full_change)
            for m in planned.full_movements
        ]

    def _stock_steps(self, order: Order, current: OrderStatus, target: OrderStatus) -> List[StockStep]:
        """Stock side effects implied by a transition, in application order."""
        if not order.source_warehouse_id:
            if target in (OrderStatus.DELIVERED, OrderStatus.CANCELLED) and current != OrderStatus.DRAFT:
                logger.warning(f"Order {order.order_number} has no source warehouse; no stock side effects")
            return []

        if target == OrderStatus.CONFIRMED and current == OrderStatus.DRAFT:
            return self._full_steps("reserve", order, order.order_lines)

        if target == OrderStatus.CANCELLED and current in (OrderStatus.CONFIRMED, OrderStatus.SCHEDULED):
            return self._full_steps("release", order, order.order_lines)

        if target == OrderStatus.DELIVERED:
            planned = self.plan_movements_for(order)
            steps = [
                StockStep("fulfill", order.source_warehouse_id, m.product_id, -m.qty_full_change)
                for m in planned.full_movements
            ]
            steps += [
                StockStep("adjust_empty", order.source_warehouse_id, m.product_id, m.qty_empty_change)
                for m in planned.empty_movements
            ]
            return steps

        return []

    async def _run_step(self, step: StockStep) -> None:
        operation = getattr(self.stock, step.action)
        await operation(step.warehouse_id, step.product_id, step.quantity)

    async def _apply_steps(self, steps: Sequence[StockStep], order: Order) -> List[StockStep]:
        """Apply steps in order; on failure undo the applied ones in reverse and re-raise."""
        applied: List[StockStep] = []
        for step in steps:
            try:
                await self._run_step(step)
            except StockOperationFailed as exc:
                logger.error(
                    f"Stock {step.action} failed for order {order.order_number} "
                    f"(product {step.product_id}, qty {step.quantity}); compensating {len(applied)} steps"
                )
                await self._compensate(applied, order)
                raise StockOperationFailed(
                    f"Stock update failed for order {order.order_number}: {exc.message}",
                    exc.failures,
                )
            applied.append(step)
        return applied

    async def _compensate(self, applied: Sequence[StockStep], order: Order) -> None:
        for step in reversed(applied):
            inverse = COMPENSATIONS[step.action]
            quantity = -step.quantity if step.action == "adjust_empty" else step.quantity
            undo = StockStep(inverse, step.warehouse_id, step.product_id, quantity)
            try:
                await self._run_step(undo)
                logger.info(f"Compensated {step.action} for order {order.order_number} with {inverse}")
            except StockOperationFailed:
                logger.exception(
                    f"Compensation {inverse} failed for order {order.order_number}, product {step.product_id}"
                )

    # ==================== MOVEMENTS ====================

    def plan_movements_for(self, order: Order) -> PlannedMovements:
        planned = plan_movements(order)
        if planned.skipped_lines:
            logger.warning(
                f"Order {order.order_number}: lines {planned.skipped_lines} have no product; "
                f"left out of inventory movements"
            )
        return planned

    async def plan_inventory_movements(self, order_id: uuid.UUID) -> PlannedMovements:
        order = await self.get_order(order_id)
        return self.plan_movements_for(order)
