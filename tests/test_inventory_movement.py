"""Tests for the inventory movement planner and order-type rules."""
from types import SimpleNamespace
import uuid

import pytest

from app.services.inventory_movement import (
    EMPTY,
    FULL,
    MovementType,
    calculate_exchange_quantity,
    draws_full_stock,
    plan_line_movements,
    plan_movements,
    should_require_pickup,
    validate_order_type,
)


def _order(order_type, lines, exchange_empty_qty=0):
    return SimpleNamespace(order_type=order_type, order_lines=lines, exchange_empty_qty=exchange_empty_qty)


def _line(quantity=2, name="13kg Cylinder", product_id="auto"):
    return SimpleNamespace(
        product_id=uuid.uuid4() if product_id == "auto" else product_id,
        quantity=quantity,
        product_name=name,
    )


class TestPlanMovements:

    def test_delivery_takes_full_cylinders_out(self):
        line = _line(3)
        planned = plan_movements(_order("delivery", [line]))
        assert len(planned.movements) == 1
        movement = planned.movements[0]
        assert movement.product_id == line.product_id
        assert movement.variant_key == FULL
        assert movement.qty_full_change == -3
        assert movement.qty_empty_change == 0
        assert movement.movement_type == MovementType.DELIVERY

    def test_refill_produces_two_movements_per_line(self):
        lines = [_line(2), _line(5)]
        planned = plan_movements(_order("refill", lines, exchange_empty_qty=7))
        assert len(planned.movements) == 4
        full, empty = planned.movements[2], planned.movements[3]
        assert (full.qty_full_change, full.qty_empty_change) == (-5, 0)
        assert (empty.variant_key, empty.qty_empty_change, empty.movement_type) == (EMPTY, 5, MovementType.PICKUP)

    def test_exchange_collects_the_stated_quantity(self):
        planned = plan_movements(_order("exchange", [_line(4)], exchange_empty_qty=3))
        assert [(m.qty_full_change, m.qty_empty_change) for m in planned.movements] == [(-4, 0), (0, 3)]
        assert planned.movements[1].movement_type == MovementType.EXCHANGE

    def test_pickup_single_empty_movement(self):
        planned = plan_movements(_order("pickup", [_line(1)], exchange_empty_qty=5))
        assert len(planned.movements) == 1
        movement = planned.movements[0]
        assert movement.variant_key == EMPTY
        assert movement.qty_empty_change == 5
        assert movement.qty_full_change == 0
        assert movement.movement_type == MovementType.PICKUP

    def test_lines_without_product_are_reported(self):
        planned = plan_movements(_order("delivery", [_line(), _line(product_id=None), _line()]))
        assert len(planned.movements) == 2
        assert planned.skipped_lines == [2]

    def test_deterministic(self):
        order = _order("refill", [_line(2), _line(3)], exchange_empty_qty=5)
        assert plan_movements(order).movements == plan_movements(order).movements

    def test_empty_movements(self):
        planned = plan_movements(_order("refill", [_line(2)], exchange_empty_qty=2))
        assert [m.qty_empty_change for m in planned.empty_movements] == [2]

    def test_pickup_plans_no_full_movements(self):
        planned = plan_movements(_order("pickup", [_line(2), _line(4)], exchange_empty_qty=5))
        assert planned.full_movements == []
        assert [m.qty_empty_change for m in planned.empty_movements] == [5, 5]

    def test_line_movements_without_an_order(self):
        line = _line(3)
        planned = plan_line_movements("exchange", [line], 2)
        assert [(m.qty_full_change, m.qty_empty_change) for m in planned.movements] == [(-3, 0), (0, 2)]
        assert [m.product_id for m in planned.full_movements] == [line.product_id]

    def test_unknown_type_plans_nothing(self):
        assert plan_movements(_order("teleport", [_line()])).movements == []


class TestOrderTypeRules:

    def test_delivery_needs_nothing(self):
        assert validate_order_type("delivery").valid

    def test_refill_needs_quantity(self):
        result = validate_order_type("refill", 0)
        assert result.errors == ["Refill orders must specify quantity of empty cylinders to exchange"]

    def test_exchange_needs_pickup_and_quantity(self):
        result = validate_order_type("exchange", 0, requires_pickup=False)
        assert result.errors == [
            "Exchange orders must require pickup of empty cylinders",
            "Exchange orders must specify quantity of empty cylinders",
        ]
        assert validate_order_type("exchange", 2, requires_pickup=True).valid

    def test_pickup_needs_quantity(self):
        assert not validate_order_type("pickup", 0, requires_pickup=True).valid

    def test_unknown_type(self):
        assert validate_order_type("teleport").errors == ["Unknown order type: teleport"]

    @pytest.mark.parametrize("order_type,expected", [
        ("delivery", False), ("refill", False), ("exchange", True), ("pickup", True),
    ])
    def test_should_require_pickup(self, order_type, expected):
        assert should_require_pickup(order_type) is expected

    def test_exchange_quantity(self):
        assert calculate_exchange_quantity("refill", 4) == 4
        assert calculate_exchange_quantity("exchange", 2) == 2
        assert calculate_exchange_quantity("delivery", 9) == 0

    @pytest.mark.parametrize("order_type,expected", [
        ("delivery", True), ("refill", True), ("exchange", True), ("pickup", False), ("bogus", False),
    ])
    def test_draws_full_stock(self, order_type, expected):
        assert draws_full_stock(order_type) is expected
