"""
Inventory tests.

Verifies:
- CRUD through the API with validation errors mapped to 400
- Updates may restock but never lower quantity
- Quantities are bounded; lock conflicts surface as 409
- Deleting an item keeps its historical sales
- Low-stock list and stats
"""

import pytest
from sqlalchemy.exc import OperationalError

from haven.models import InventoryItem, Sale
from haven.services import inventory_service, sales_service
from haven.validation import MAX_QUANTITY, ConflictError


NEW_ITEM = {
    "name": "Victorian Writing Desk",
    "category": "Furniture",
    "description": "Mahogany, leather top",
    "buying_price_cents": 25000,
    "selling_price_cents": 60000,
    "quantity": 2,
}


class TestInventoryApi:
    def test_create_and_get(self, client, owner_headers, owner_user):
        resp = client.post("/api/inventory", json=NEW_ITEM, headers=owner_headers)
        assert resp.status_code == 201
        created = resp.json["item"]
        assert created["name"] == "Victorian Writing Desk"
        assert created["modified_by"]["id"] == owner_user.id

        resp = client.get(f"/api/inventory/{created['id']}", headers=owner_headers)
        assert resp.status_code == 200
        assert resp.json["item"]["quantity"] == 2

    def test_missing_fields(self, client, owner_headers):
        resp = client.post("/api/inventory", json={"name": "Chair"}, headers=owner_headers)
        assert resp.status_code == 400
        assert "Missing required fields" in resp.json["error"]

    def test_rejects_float_prices(self, client, owner_headers):
        payload = dict(NEW_ITEM, buying_price_cents=12.5)
        resp = client.post("/api/inventory", json=payload, headers=owner_headers)
        assert resp.status_code == 400
        assert resp.json["field"] == "buying_price_cents"

    def test_rejects_unknown_fields(self, client, owner_headers):
        payload = dict(NEW_ITEM, version_id=99)
        resp = client.post("/api/inventory", json=payload, headers=owner_headers)
        assert resp.status_code == 400
        assert resp.json["field"] == "version_id"

    def test_list_filters_by_category(self, client, attendant_headers, item):
        resp = client.get("/api/inventory?category=Clocks", headers=attendant_headers)
        assert resp.status_code == 200
        assert [i["id"] for i in resp.json["items"]] == [item.id]

        resp = client.get("/api/inventory?category=Rugs", headers=attendant_headers)
        assert resp.json["items"] == []

    def test_missing_item_404(self, client, owner_headers):
        resp = client.get("/api/inventory/9999", headers=owner_headers)
        assert resp.status_code == 404

    def test_quantity_bound_on_create(self, client, owner_headers):
        for quantity in (10**19, MAX_QUANTITY + 1):
            payload = dict(NEW_ITEM, quantity=quantity)
            resp = client.post("/api/inventory", json=payload, headers=owner_headers)
            assert resp.status_code == 400
            assert resp.json["field"] == "quantity"

        payload = dict(NEW_ITEM, quantity=MAX_QUANTITY)
        assert client.post("/api/inventory", json=payload, headers=owner_headers).status_code == 201

    def test_restock_over_bound_rejected(self, client, owner_headers, item):
        resp = client.put(
            f"/api/inventory/{item.id}", json={"quantity": MAX_QUANTITY + 1}, headers=owner_headers
        )
        assert resp.status_code == 400
        assert resp.json["field"] == "quantity"

    def test_restock(self, client, owner_headers, item):
        resp = client.put(f"/api/inventory/{item.id}", json={"quantity": 9}, headers=owner_headers)
        assert resp.status_code == 200
        assert resp.json["item"]["quantity"] == 9

    def test_lowering_quantity_rejected(self, client, owner_headers, item, db_session):
        resp = client.put(f"/api/inventory/{item.id}", json={"quantity": 1}, headers=owner_headers)
        assert resp.status_code == 400
        assert resp.json["field"] == "quantity"

        db_session.expire_all()
        assert db_session.get(InventoryItem, item.id).quantity == 5

    def test_price_update(self, client, owner_headers, item):
        resp = client.put(
            f"/api/inventory/{item.id}",
            json={"selling_price_cents": 12000},
            headers=owner_headers,
        )
        assert resp.status_code == 200
        assert resp.json["item"]["selling_price_cents"] == 12000
        assert resp.json["item"]["quantity"] == 5

    def test_delete(self, client, owner_headers, item):
        resp = client.delete(f"/api/inventory/{item.id}", headers=owner_headers)
        assert resp.status_code == 204

        resp = client.get(f"/api/inventory/{item.id}", headers=owner_headers)
        assert resp.status_code == 404


class TestDeleteKeepsSales:
    def test_sales_survive_item_deletion(self, db_session, item, attendant_user):
        sale = sales_service.create_sale(item.id, 2, 9000, attendant_user.id)
        sale_id = sale.id

        inventory_service.delete_item(item.id)

        db_session.expire_all()
        kept = db_session.get(Sale, sale_id)
        assert kept is not None
        assert kept.item_id is None
        assert kept.item_name == "Mantel Clock"
        assert kept.quantity == 2
        assert kept.profit_cents == 10000
        assert db_session.get(InventoryItem, item.id) is None


class TestStockReports:
    def test_low_stock_uses_configured_threshold(self, client, attendant_headers, db_session, item):
        db_session.add(InventoryItem(
            name="Tea Set", category="Ceramics",
            buying_price_cents=1000, selling_price_cents=3000, quantity=20,
        ))
        db_session.commit()

        resp = client.get("/api/inventory/low-stock", headers=attendant_headers)
        assert resp.status_code == 200
        assert resp.json["threshold"] == 5
        assert [i["name"] for i in resp.json["items"]] == ["Mantel Clock"]

        resp = client.get("/api/inventory/low-stock?threshold=2", headers=attendant_headers)
        assert resp.json["items"] == []

    def test_stats(self, owner_user, db_session, item):
        stats = inventory_service.inventory_stats()
        assert stats["total_items"] == 1
        assert stats["total_buying_value_cents"] == 4000
        assert stats["total_selling_value_cents"] == 10000
        assert stats["category_breakdown"] == [
            {"category": "Clocks", "item_count": 1, "total_quantity": 5}
        ]


class TestLockConflicts:
    @pytest.fixture()
    def always_locked(self, monkeypatch):
        def _locked_item(item_id):
            raise OperationalError("SELECT", {}, Exception("database is locked"))

        monkeypatch.setattr(inventory_service, "_locked_item", _locked_item)
        monkeypatch.setattr("haven.services.concurrency.time.sleep", lambda s: None)

    def test_update_conflict_is_409(self, client, owner_headers, item, always_locked, db_session):
        resp = client.put(f"/api/inventory/{item.id}", json={"quantity": 9}, headers=owner_headers)
        assert resp.status_code == 409

        db_session.expire_all()
        assert db_session.get(InventoryItem, item.id).quantity == 5

    def test_delete_conflict_is_409(self, client, owner_headers, item, always_locked, db_session):
        resp = client.delete(f"/api/inventory/{item.id}", headers=owner_headers)
        assert resp.status_code == 409

        db_session.expire_all()
        assert db_session.get(InventoryItem, item.id) is not None

    def test_service_raises_conflict(self, item, always_locked):
        with pytest.raises(ConflictError):
            inventory_service.delete_item(item.id)
