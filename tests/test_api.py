"""HTTP-level tests through the ASGI app on SQLite."""
from datetime import date, timedelta
from decimal import Decimal
import uuid

import pytest
from httpx import ASGITransport, AsyncClient

from app.database import async_session_factory
from app.main import app
from app.models.customer import Customer, CustomerAddress
from app.models.inventory import InventoryBalance
from app.models.pricing import PriceList, PriceListItem
from app.models.product import Product
from app.models.warehouse import Warehouse


@pytest.fixture
async def client(db_tables):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http


@pytest.fixture
async def seeded(db_tables):
    """Customer, 13 kg cylinder at 1000 and 10 full cylinders in NBO."""
    ids = {
        "customer": uuid.uuid4(),
        "address": uuid.uuid4(),
        "product": uuid.uuid4(),
        "warehouse": uuid.uuid4(),
        "destination": uuid.uuid4(),
    }
    async with async_session_factory() as session:
        session.add_all([
            Customer(id=ids["customer"], name="Mama Mboga Kiosk"),
            Product(id=ids["product"], sku="CYL-13-FULL", name="13kg Cylinder", capacity_kg=Decimal("13")),
            Warehouse(id=ids["warehouse"], code="NBO", name="Nairobi Depot"),
            Warehouse(id=ids["destination"], code="MSA", name="Mombasa Depot"),
        ])
        await session.flush()
        price_list = PriceList(
            id=uuid.uuid4(), name="Standard", start_date=date.today() - timedelta(days=1), is_default=True
        )
        session.add_all([
            CustomerAddress(id=ids["address"], customer_id=ids["customer"], address_line1="Moi Avenue 12"),
            price_list,
            PriceListItem(price_list_id=price_list.id, product_id=ids["product"], unit_price=Decimal("1000")),
            InventoryBalance(warehouse_id=ids["warehouse"], product_id=ids["product"], qty_full=10),
        ])
        await session.commit()
    return ids


def _order_payload(ids, quantity=2, **extra):
    payload = {
        "customer_id": str(ids["customer"]),
        "delivery_address_id": str(ids["address"]),
        "source_warehouse_id": str(ids["warehouse"]),
        "order_lines": [{"product_id": str(ids["product"]), "quantity": quantity}],
    }
    payload.update(extra)
    return payload


class TestWorkflowEndpoints:

    async def test_workflow(self, client):
        response = await client.get("/api/v1/orders/workflow")
        assert response.status_code == 200
        steps = response.json()
        assert steps[0]["status"] == "draft"
        assert steps[0]["allowed_transitions"] == ["confirmed", "cancelled"]

    async def test_validate_transition(self, client):
        response = await client.post(
            "/api/v1/orders/workflow/validate-transition",
            json={"current_status": "en_route", "new_status": "cancelled"},
        )
        assert response.status_code == 200
        assert response.json()["valid"] is False

    async def test_calculate_totals(self, client):
        response = await client.post(
            "/api/v1/orders/workflow/calculate-totals",
            json={"lines": [{"quantity": 1, "unit_price": "1000"}], "tax_percent": "16"},
        )
        assert response.status_code == 200
        assert response.json() == {"subtotal": "1000.00", "tax_amount": "160.00", "grand_total": "1160.00"}


class TestOrderEndpoints:

    async def test_create_get_and_confirm(self, client, seeded):
        headers = {"X-User-Id": "user-1"}
        created = await client.post("/api/v1/orders", json=_order_payload(seeded), headers=headers)
        assert created.status_code == 201
        body = created.json()
        assert body["warnings"] == []
        order = body["order"]
        assert order["status"] == "draft"
        assert order["total_amount"] == "2000.00"
        assert order["order_lines"][0]["unit_price"] == "1000.00"

        fetched = await client.get(f"/api/v1/orders/{order['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["order_number"] == order["order_number"]

        confirmed = await client.post(
            f"/api/v1/orders/{order['id']}/status", json={"status": "confirmed"}, headers=headers
        )
        assert confirmed.status_code == 200
        assert confirmed.json()["status"] == "confirmed"

        listed = await client.get("/api/v1/orders", params={"status": "confirmed"})
        assert listed.json()["total"] == 1

    async def test_idempotent_create(self, client, seeded):
        payload = _order_payload(seeded, idempotency_key="client-42")
        first = await client.post("/api/v1/orders", json=payload, headers={"X-User-Id": "user-1"})
        second = await client.post("/api/v1/orders", json=payload, headers={"X-User-Id": "user-1"})
        assert first.status_code == second.status_code == 201
        assert first.json()["order"]["id"] == second.json()["order"]["id"]

    async def test_update_tax(self, client, seeded):
        created = await client.post("/api/v1/orders", json=_order_payload(seeded))
        order_id = created.json()["order"]["id"]

        response = await client.post(f"/api/v1/orders/{order_id}/update-tax", json={"tax_percent": "16"})
        assert response.status_code == 200
        assert response.json()["tax_amount"] == "320.00"
        assert response.json()["total_amount"] == "2320.00"

    async def test_inventory_movements(self, client, seeded):
        created = await client.post("/api/v1/orders", json=_order_payload(seeded))
        order_id = created.json()["order"]["id"]

        response = await client.get(f"/api/v1/orders/{order_id}/inventory-movements")
        assert response.status_code == 200
        movements = response.json()["movements"]
        assert [(m["qty_full_change"], m["movement_type"]) for m in movements] == [(-2, "delivery")]

    async def test_invalid_transition_is_409(self, client, seeded):
        created = await client.post("/api/v1/orders", json=_order_payload(seeded))
        order_id = created.json()["order"]["id"]

        response = await client.post(f"/api/v1/orders/{order_id}/status", json={"status": "delivered"})
        assert response.status_code == 409
        assert response.json()["code"] == "INVALID_TRANSITION"

    async def test_insufficient_stock_is_400(self, client, seeded):
        response = await client.post("/api/v1/orders", json=_order_payload(seeded, quantity=11))
        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "INSUFFICIENT_STOCK"
        assert body["errors"] == ["Insufficient stock for CYL-13-FULL. Requested: 11, Available: 10"]

    async def test_unknown_order_is_404(self, client):
        response = await client.get(f"/api/v1/orders/{uuid.uuid4()}")
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"


class TestTransferEndpoints:

    def _payload(self, ids, quantity=4, destination="destination"):
        return {
            "source_warehouse_id": str(ids["warehouse"]),
            "destination_warehouse_id": str(ids[destination]),
            "transfer_date": date.today().isoformat(),
            "items": [{"product_id": str(ids["product"]), "quantity_to_transfer": quantity}],
        }

    async def test_validate_reports_problems_with_200(self, client, seeded):
        response = await client.post("/api/v1/transfers/validate", json=self._payload(seeded, destination="warehouse"))
        assert response.status_code == 200
        body = response.json()
        assert body["is_valid"] is False
        assert "Source and destination warehouses must be different" in body["errors"]
        assert body["messages"][0]["severity"] == "error"

    async def test_rejected_allocation_is_400(self, client, seeded):
        response = await client.post("/api/v1/transfers", json=self._payload(seeded, quantity=50))
        assert response.status_code == 400
        assert response.json()["blocked_items"] == [str(seeded["product"])]

    async def test_lifecycle(self, client, seeded):
        created = await client.post(
            "/api/v1/transfers", json=self._payload(seeded), headers={"X-User-Id": "user-1"}
        )
        assert created.status_code == 201
        transfer = created.json()["transfer"]
        assert transfer["transfer_reference"].startswith("TR-NBO-MSA-")
        assert transfer["total_weight_kg"] in ("92", "92.00")

        for action in ("submit", "approve", "dispatch", "complete"):
            response = await client.post(f"/api/v1/transfers/{transfer['id']}/{action}")
            assert response.status_code == 200, response.text

        final = await client.get(f"/api/v1/transfers/{transfer['id']}")
        assert final.json()["status"] == "completed"

    async def test_completing_a_draft_is_409(self, client, seeded):
        created = await client.post("/api/v1/transfers", json=self._payload(seeded))
        transfer_id = created.json()["transfer"]["id"]
        response = await client.post(f"/api/v1/transfers/{transfer_id}/complete")
        assert response.status_code == 409


class TestHealth:

    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["checks"]["database"] == "connected"
        assert "X-Request-ID" in response.headers
