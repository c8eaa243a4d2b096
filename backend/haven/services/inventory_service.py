# Overview: Service-layer operations for inventory items; encapsulates business logic and database work.

"""
Inventory item CRUD and stock reports.

QUANTITY INVARIANT: this module never lowers InventoryItem.quantity. Updates
take the same row lock as sales and may only restock. Decrements belong to
sales_service.create_sale.
"""

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import InventoryItem, Sale
from ..validation import (
    ModelValidationPolicy,
    ConflictError,
    ValidationError,
    NotFoundError,
    validate_payload,
    enforce_rules_inventory,
)
from .concurrency import lock_for_update, begin_immediate, transaction, run_with_retry, RETRYABLE_ERRORS


INVENTORY_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "category", "description",
        "buying_price_cents", "selling_price_cents",
        "quantity", "image_url",
    },
    required_on_create={"name", "category", "buying_price_cents", "selling_price_cents", "quantity"},
    min_lengths={"name": 2, "category": 1},
)


def create_item(payload: dict, user_id: int | None = None) -> InventoryItem:
    patch = validate_payload(model=InventoryItem, payload=payload, policy=INVENTORY_CREATE_POLICY, partial=False)
    enforce_rules_inventory(patch)

    item = InventoryItem(**patch, modified_by_user_id=user_id)
    db.session.add(item)
    db.session.commit()
    return item


def list_items(category: str | None = None) -> list[InventoryItem]:
    query = db.session.query(InventoryItem)
    if category:
        query = query.filter(InventoryItem.category == category)
    return query.order_by(InventoryItem.name.asc(), InventoryItem.id.asc()).all()


def get_item(item_id: int) -> InventoryItem:
    item = db.session.query(InventoryItem).filter_by(id=item_id).first()
    if not item:
        raise NotFoundError("Inventory item not found")
    return item


def _run_locked(op, item_id: int, verb: str):
    try:
        return run_with_retry(op)
    except RETRYABLE_ERRORS as exc:
        raise ConflictError(
            f"Inventory item {item_id} could not be {verb} because of concurrent updates; please retry"
        ) from exc


def _locked_item(item_id: int) -> InventoryItem:
    begin_immediate()
    item = lock_for_update(db.session.query(InventoryItem).filter_by(id=item_id)).first()
    if not item:
        raise NotFoundError("Inventory item not found")
    return item


def update_item(item_id: int, payload: dict, user_id: int | None = None) -> InventoryItem:
    """
    Partial update. Serialized with sales on the same row; a quantity lower
    than the current one is rejected because only sales may decrement stock.
    Raises ConflictError when concurrent writers exhaust the retries.
    """
    patch = validate_payload(model=InventoryItem, payload=payload, policy=INVENTORY_CREATE_POLICY, partial=True)
    enforce_rules_inventory(patch)

    def _op():
        with transaction():
            item = _locked_item(item_id)

            new_quantity = patch.get("quantity")
            if new_quantity is not None and new_quantity < item.quantity:
                raise ValidationError(
                    f"quantity cannot be lowered from {item.quantity}; stock is only decremented by sales",
                    "quantity",
                )

            for key, value in patch.items():
                setattr(item, key, value)
            item.modified_by_user_id = user_id
            return item

    return _run_locked(_op, item_id, "updated")


def delete_item(item_id: int) -> None:
    """
    Delete an item under the same row lock as sales. Historical sales keep
    their snapshot, quantity and profit; only their item reference is cleared.
    """
    def _op():
        with transaction():
            item = _locked_item(item_id)
            db.session.query(Sale).filter(Sale.item_id == item.id).update(
                {Sale.item_id: None}, synchronize_session="fetch"
            )
            db.session.delete(item)

    _run_locked(_op, item_id, "deleted")


def low_stock_items(threshold: int) -> list[InventoryItem]:
    return (
        db.session.query(InventoryItem)
        .filter(InventoryItem.quantity <= threshold)
        .order_by(InventoryItem.quantity.asc(), InventoryItem.name.asc())
        .all()
    )


def inventory_stats() -> dict:
    count, buying, selling = db.session.query(
        func.count(InventoryItem.id),
        func.coalesce(func.sum(InventoryItem.buying_price_cents), 0),
        func.coalesce(func.sum(InventoryItem.selling_price_cents), 0),
    ).one()

    categories = (
        db.session.query(
            InventoryItem.category,
            func.count(InventoryItem.id).label("item_count"),
            func.coalesce(func.sum(InventoryItem.quantity), 0).label("total_quantity"),
        )
        .group_by(InventoryItem.category)
        .order_by(InventoryItem.category)
        .all()
    )

    return {
        "total_items": int(count or 0),
        "total_buying_value_cents": int(buying or 0),
        "total_selling_value_cents": int(selling or 0),
        "category_breakdown": [
            {
                "category": row.category,
                "item_count": int(row.item_count or 0),
                "total_quantity": int(row.total_quantity or 0),
            }
            for row in categories
        ],
    }
