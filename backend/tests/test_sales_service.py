"""
Sale transaction tests.

Verifies:
- A sale inserts the Sale row and decrements stock together
- Profit is (selling - buying) * quantity, negative when below cost
- Insufficient stock writes nothing
- Conflicts are retried, then surfaced as TransactionConflictError
"""

import pytest
from sqlalchemy.exc import OperationalError

from haven.models import InventoryItem, Sale
from haven.services import sales_service
from haven.services.sales_service import (
    InsufficientStockError,
    ItemNotFoundError,
    SaleError,
    TransactionConflictError,
)
from haven.validation import MAX_QUANTITY, MAX_PRICE_CENTS, ValidationError


def _reload(db_session, item_id):
    db_session.expire_all()
    return db_session.get(InventoryItem, item_id)


class TestCreateSale:
    def test_records_sale_and_decrements_stock(self, db_session, item, attendant_user):
        sale = sales_service.create_sale(item.id, 2, 9000, attendant_user.id)

        assert sale.id is not None
        assert sale.quantity == 2
        assert sale.selling_price_cents == 9000
        assert sale.profit_cents == (9000 - 4000) * 2
        assert sale.item_name == "Mantel Clock"
        assert sale.item_category == "Clocks"
        assert sale.attendant_id == attendant_user.id
        assert sale.sale_date is not None

        assert _reload(db_session, item.id).quantity == 3

    def test_selling_entire_stock(self, db_session, item, attendant_user):
        sales_service.create_sale(item.id, 5, 10000, attendant_user.id)
        assert _reload(db_session, item.id).quantity == 0

    def test_below_cost_sale_succeeds_with_negative_profit(self, db_session, item, attendant_user):
        sale = sales_service.create_sale(item.id, 1, 3000, attendant_user.id)

        assert sale.profit_cents == -1000
        assert sales_service.margin_warnings(sale, 10) == ["BELOW_COST"]
        assert _reload(db_session, item.id).quantity == 4

    def test_bumps_version(self, db_session, item, attendant_user):
        before = item.version_id
        sales_service.create_sale(item.id, 1, 10000, attendant_user.id)
        assert _reload(db_session, item.id).version_id == before + 1


class TestRejectedSales:
    def test_insufficient_stock_writes_nothing(self, db_session, item, attendant_user):
        with pytest.raises(InsufficientStockError) as exc:
            sales_service.create_sale(item.id, 6, 10000, attendant_user.id)

        assert exc.value.details["on_hand"] == 5
        assert exc.value.details["requested_quantity"] == 6
        assert _reload(db_session, item.id).quantity == 5
        assert db_session.query(Sale).count() == 0

    def test_missing_item(self, db_session, attendant_user):
        with pytest.raises(ItemNotFoundError):
            sales_service.create_sale(999, 1, 100, attendant_user.id)

    def test_missing_attendant(self, db_session, item):
        with pytest.raises(SaleError):
            sales_service.create_sale(item.id, 1, 100, 999)

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, "2", None, True, MAX_QUANTITY + 1])
    def test_bad_quantity(self, db_session, item, attendant_user, quantity):
        with pytest.raises(ValidationError) as exc:
            sales_service.create_sale(item.id, quantity, 100, attendant_user.id)
        assert exc.value.field == "quantity"

    @pytest.mark.parametrize("price", [0, -100, 99.5, None])
    def test_bad_price(self, db_session, item, attendant_user, price):
        with pytest.raises(ValidationError) as exc:
            sales_service.create_sale(item.id, 1, price, attendant_user.id)
        assert exc.value.field == "selling_price_cents"

    def test_rejection_leaves_stock_usable(self, db_session, item, attendant_user):
        with pytest.raises(InsufficientStockError):
            sales_service.create_sale(item.id, 10, 10000, attendant_user.id)

        sales_service.create_sale(item.id, 5, 10000, attendant_user.id)
        assert _reload(db_session, item.id).quantity == 0


class TestRetry:
    def test_transient_conflict_is_retried(self, db_session, item, attendant_user, monkeypatch):
        real = sales_service._create_sale_locked
        calls = []

        def flaky(*args, **kwargs):
            calls.append(1)
            if len(calls) == 1:
                raise OperationalError("SELECT", {}, Exception("database is locked"))
            return real(*args, **kwargs)

        monkeypatch.setattr(sales_service, "_create_sale_locked", flaky)
        monkeypatch.setattr("haven.services.concurrency.time.sleep", lambda s: None)

        sale = sales_service.create_sale(item.id, 1, 10000, attendant_user.id)

        assert len(calls) == 2
        assert sale.id is not None
        assert _reload(db_session, item.id).quantity == 4

    def test_exhausted_retries_raise_conflict(self, db_session, item, attendant_user, monkeypatch):
        def always_locked(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("database is locked"))

        monkeypatch.setattr(sales_service, "_create_sale_locked", always_locked)
        monkeypatch.setattr("haven.services.concurrency.time.sleep", lambda s: None)

        with pytest.raises(TransactionConflictError) as exc:
            sales_service.create_sale(item.id, 1, 10000, attendant_user.id, attempts=2)

        assert exc.value.details["attempts"] == 2
        assert _reload(db_session, item.id).quantity == 5
        assert db_session.query(Sale).count() == 0


class TestMarginWarnings:
    def test_healthy_margin_has_no_warnings(self):
        sale = Sale(quantity=1, selling_price_cents=10000, profit_cents=6000)
        assert sales_service.margin_warnings(sale, 10) == []

    def test_low_margin(self):
        sale = Sale(quantity=2, selling_price_cents=1000, profit_cents=100)
        assert sales_service.margin_warnings(sale, 10) == ["LOW_MARGIN"]

    def test_break_even_is_low_margin_not_below_cost(self):
        sale = Sale(quantity=1, selling_price_cents=4000, profit_cents=0)
        assert sales_service.margin_warnings(sale, 10) == ["LOW_MARGIN"]


class TestReads:
    def test_list_newest_first_and_stats(self, db_session, item, attendant_user):
        first = sales_service.create_sale(item.id, 1, 10000, attendant_user.id)
        second = sales_service.create_sale(item.id, 2, 5000, attendant_user.id)

        listed = sales_service.list_sales()
        assert [s.id for s in listed] == [second.id, first.id]

        stats = sales_service.sale_stats()
        assert stats["totals"]["sales"] == 2
        assert stats["totals"]["quantity"] == 3
        assert stats["totals"]["revenue_cents"] == 10000 + 2 * 5000
        assert stats["totals"]["profit_cents"] == 6000 + 2000
        assert stats["top_products"][0]["name"] == "Mantel Clock"
        assert stats["attendant_performance"][0]["total_sales"] == 2


class TestTenUnitStock:
    @pytest.fixture()
    def vase(self, db_session):
        vase = InventoryItem(
            name="Ming-style Vase", category="Ceramics",
            buying_price_cents=100, selling_price_cents=250, quantity=10,
        )
        db_session.add(vase)
        db_session.commit()
        return vase

    def test_profit_and_remaining_stock(self, db_session, vase, attendant_user):
        sale = sales_service.create_sale(vase.id, 2, 200, attendant_user.id)
        assert sale.profit_cents == 200
        assert _reload(db_session, vase.id).quantity == 8

    def test_oversell_leaves_stock_unchanged(self, db_session, vase, attendant_user):
        with pytest.raises(InsufficientStockError):
            sales_service.create_sale(vase.id, 15, 200, attendant_user.id)
        assert _reload(db_session, vase.id).quantity == 10


class TestLargeSales:
    def test_profit_wider_than_32_bits(self, client, attendant_headers, db_session):
        safe = InventoryItem(
            name="Bank Vault Door", category="Hardware",
            buying_price_cents=0, selling_price_cents=MAX_PRICE_CENTS, quantity=1000,
        )
        db_session.add(safe)
        db_session.commit()

        resp = client.post(
            "/api/sales",
            json={"item_id": safe.id, "quantity": 1000, "selling_price_cents": MAX_PRICE_CENTS},
            headers=attendant_headers,
        )
        assert resp.status_code == 201
        assert resp.json["sale"]["profit_cents"] == MAX_PRICE_CENTS * 1000
        assert resp.json["sale"]["profit_cents"] > 2**31

        stats = sales_service.sale_stats()
        assert stats["totals"]["revenue_cents"] == MAX_PRICE_CENTS * 1000
        assert _reload(db_session, safe.id).quantity == 0


class TestSaleRequestBody:
    def test_item_id_must_be_json_integer(self, client, attendant_headers, item):
        resp = client.post(
            "/api/sales",
            json={"item_id": str(item.id), "quantity": 1, "selling_price_cents": 10000},
            headers=attendant_headers,
        )
        assert resp.status_code == 400
        assert resp.json == {"error": "item_id must be an integer", "field": "item_id"}

    def test_item_id_missing(self, client, attendant_headers):
        resp = client.post(
            "/api/sales", json={"quantity": 1, "selling_price_cents": 10000}, headers=attendant_headers
        )
        assert resp.status_code == 400
        assert resp.json["error"] == "item_id is required"
