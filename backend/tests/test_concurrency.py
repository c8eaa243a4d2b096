"""
Concurrent sale tests against a file-backed SQLite database.

Threads each run their own app context (and so their own session and
connection), the way concurrent requests do under a threaded server.

Verifies:
- Stock never goes negative under contention
- Every committed sale is matched by exactly one decrement
"""

import os
import tempfile
import threading

import pytest

from haven import create_app
from haven.extensions import db
from haven.models import InventoryItem, Sale, User
from haven.services import sales_service
from haven.services.sales_service import InsufficientStockError


@pytest.fixture()
def file_app():
    tmpdir = tempfile.TemporaryDirectory()
    db_path = os.path.join(tmpdir.name, "concurrency.db")
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{db_path}",
    })

    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()
    tmpdir.cleanup()


def _seed(app, quantity: int) -> tuple[int, int]:
    with app.app_context():
        user = User(
            username="concurrent_user",
            full_name="Concurrent User",
            email="concurrent@haven.test",
            password_hash="dummy",
            role="ATTENDANT",
        )
        db.session.add(user)
        db.session.commit()

        item = InventoryItem(
            name="Brass Lamp",
            category="Lighting",
            buying_price_cents=1000,
            selling_price_cents=2500,
            quantity=quantity,
        )
        db.session.add(item)
        db.session.commit()
        return user.id, item.id


def _run_sales(app, item_id: int, user_id: int, quantity: int, workers: int) -> list:
    results = []
    lock = threading.Lock()
    start = threading.Barrier(workers)

    def worker():
        with app.app_context():
            try:
                start.wait()
                sales_service.create_sale(item_id, quantity, 2500, user_id, attempts=5)
                with lock:
                    results.append("sold")
            except Exception as exc:
                with lock:
                    results.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


def _state(app, item_id: int) -> tuple[int, int, int]:
    with app.app_context():
        item = db.session.get(InventoryItem, item_id)
        sales = db.session.query(Sale).filter_by(item_id=item_id).all()
        return item.quantity, len(sales), sum(s.quantity for s in sales)


def test_oversell_is_impossible(file_app):
    user_id, item_id = _seed(file_app, quantity=3)

    results = _run_sales(file_app, item_id, user_id, quantity=1, workers=8)

    sold = [r for r in results if r == "sold"]
    rejected = [r for r in results if isinstance(r, InsufficientStockError)]
    assert len(sold) == 3
    assert len(rejected) == 5

    on_hand, sale_count, sold_units = _state(file_app, item_id)
    assert on_hand == 0
    assert sale_count == 3
    assert sold_units == 3


def test_competing_large_sales_only_one_wins(file_app):
    user_id, item_id = _seed(file_app, quantity=5)

    results = _run_sales(file_app, item_id, user_id, quantity=3, workers=4)

    assert results.count("sold") == 1
    assert all(isinstance(r, InsufficientStockError) for r in results if r != "sold")

    on_hand, sale_count, sold_units = _state(file_app, item_id)
    assert on_hand == 2
    assert sale_count == 1
    assert sold_units == 3


def test_two_sales_of_six_against_ten(file_app):
    user_id, item_id = _seed(file_app, quantity=10)

    results = _run_sales(file_app, item_id, user_id, quantity=6, workers=2)

    assert results.count("sold") == 1
    assert sum(isinstance(r, InsufficientStockError) for r in results) == 1

    on_hand, sale_count, _ = _state(file_app, item_id)
    assert on_hand == 4
    assert sale_count == 1
