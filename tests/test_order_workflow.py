"""Tests for the order status transition table and readiness checks."""
from datetime import date, timedelta
from decimal import Decimal
from itertools import product
from types import SimpleNamespace
import uuid

import pytest

from app.core.exceptions import InvalidTransitionError
from app.models.order import OrderStatus
from app.services.order_workflow import (
    can_transition_to,
    ensure_transition,
    get_next_possible_statuses,
    get_order_workflow,
    is_cancellable,
    is_editable,
    is_terminal,
    validate_order_for_confirmation,
    validate_order_for_scheduling,
    validate_transition,
)


def _line(**overrides):
    values = {"product_id": uuid.uuid4(), "quantity": 2, "unit_price": Decimal("1000")}
    values.update(overrides)
    return SimpleNamespace(**values)


class TestTransitions:

    def test_exactly_eight_valid_pairs(self):
        valid = {
            (a, b) for a, b in product(OrderStatus, OrderStatus)
            if validate_transition(a, b).valid
        }
        assert len(list(product(OrderStatus, OrderStatus))) == 49
        assert valid == {
            (OrderStatus.DRAFT, OrderStatus.CONFIRMED),
            (OrderStatus.DRAFT, OrderStatus.CANCELLED),
            (OrderStatus.CONFIRMED, OrderStatus.SCHEDULED),
            (OrderStatus.CONFIRMED, OrderStatus.CANCELLED),
            (OrderStatus.SCHEDULED, OrderStatus.EN_ROUTE),
            (OrderStatus.SCHEDULED, OrderStatus.CANCELLED),
            (OrderStatus.EN_ROUTE, OrderStatus.DELIVERED),
            (OrderStatus.DELIVERED, OrderStatus.INVOICED),
        }

    def test_valid_pairs_agree_with_can_transition_to(self):
        for a, b in product(OrderStatus, OrderStatus):
            assert validate_transition(a, b).valid == can_transition_to(a, b)

    @pytest.mark.parametrize("status", list(OrderStatus))
    def test_self_transition_never_valid(self, status):
        result = validate_transition(status, status)
        assert not result.valid
        assert "New status must be different from current status" in result.errors

    def test_en_route_cannot_go_back_to_scheduled(self):
        result = validate_transition("en_route", "scheduled")
        assert not result.valid
        assert "Cannot transition from En Route to Scheduled. Allowed transitions: Delivered" in result.errors

    def test_en_route_cannot_be_cancelled(self):
        assert not can_transition_to(OrderStatus.EN_ROUTE, OrderStatus.CANCELLED)

    def test_unknown_status(self):
        result = validate_transition("draft", "shipped")
        assert not result.valid
        assert result.errors == ["Unknown order status: shipped"]

    def test_next_statuses_in_workflow_order(self):
        assert get_next_possible_statuses("draft") == [OrderStatus.CONFIRMED, OrderStatus.CANCELLED]
        assert get_next_possible_statuses("invoiced") == []

    def test_ensure_transition_raises_with_errors(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            ensure_transition("delivered", OrderStatus.DRAFT)
        assert exc_info.value.current_status == "delivered"
        assert exc_info.value.new_status == "draft"
        assert exc_info.value.errors[0].startswith("Cannot transition from Delivered to Draft")

    def test_ensure_transition_passes(self):
        ensure_transition("draft", "confirmed")


class TestStatusHelpers:

    def test_terminal(self):
        assert is_terminal("invoiced")
        assert is_terminal(OrderStatus.CANCELLED)
        assert not is_terminal("delivered")

    def test_editable_and_cancellable(self):
        assert is_editable("draft") and is_editable("confirmed")
        assert not is_editable("scheduled")
        assert is_cancellable("scheduled")
        assert not is_cancellable("en_route")

    def test_workflow_description(self):
        steps = get_order_workflow()
        assert [s.status for s in steps][0] == OrderStatus.DRAFT
        assert len(steps) == 7
        delivered = next(s for s in steps if s.status == OrderStatus.DELIVERED)
        assert delivered.label == "Delivered"
        assert delivered.allowed_transitions == [OrderStatus.INVOICED]


class TestReadiness:

    def test_complete_order_can_be_confirmed(self):
        order = SimpleNamespace(customer_id=uuid.uuid4(), delivery_address_id=uuid.uuid4(), order_lines=[_line()])
        assert validate_order_for_confirmation(order).valid

    def test_confirmation_collects_every_problem(self):
        order = SimpleNamespace(
            customer_id=None,
            delivery_address_id=None,
            order_lines=[_line(quantity=0, unit_price=Decimal("0"), product_id=None)],
        )
        result = validate_order_for_confirmation(order)
        assert not result.valid
        assert result.errors == [
            "Customer is required",
            "Delivery address is required",
            "Line 1: Quantity must be greater than 0",
            "Line 1: Unit price must be greater than 0",
            "Line 1: Product is required",
        ]

    def test_confirmation_needs_lines(self):
        order = SimpleNamespace(customer_id=uuid.uuid4(), delivery_address_id=uuid.uuid4(), order_lines=[])
        assert "At least one product is required" in validate_order_for_confirmation(order).errors

    def test_scheduling_in_the_past(self):
        today = date(2026, 10, 19)
        order = SimpleNamespace(scheduled_date=today - timedelta(days=1), delivery_address_id=uuid.uuid4())
        result = validate_order_for_scheduling(order, today=today)
        assert result.errors == ["Scheduled date cannot be in the past"]

    def test_scheduling_today_is_fine(self):
        today = date(2026, 10, 19)
        order = SimpleNamespace(scheduled_date=today, delivery_address_id=uuid.uuid4())
        assert validate_order_for_scheduling(order, today=today).valid

    def test_scheduling_requires_date_and_address(self):
        order = SimpleNamespace(scheduled_date=None, delivery_address_id=None)
        result = validate_order_for_scheduling(order)
        assert result.errors == ["Scheduled date is required", "Delivery address is required"]
