"""
Sales Service - the sale transaction

WHY: A sale and its inventory decrement are one atomic unit. The stock check,
the Sale insert and the quantity decrement all happen under the item's row
lock, so two concurrent sales can never both pass the check against the same
stale quantity.

Below-cost sales are allowed. margin_warnings() reports them to the caller
without blocking the transaction.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, cast, func

from ..extensions import db
from ..models import Sale, InventoryItem, User
from ..validation import enforce_rules_sale
from haven.time_utils import utcnow
from .concurrency import lock_for_update, begin_immediate, transaction, run_with_retry, RETRYABLE_ERRORS


WARNING_BELOW_COST = "BELOW_COST"
WARNING_LOW_MARGIN = "LOW_MARGIN"


class SaleError(Exception):
    """Raised for sale operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ItemNotFoundError(SaleError):
    """The inventory item referenced by the sale does not exist."""


class InsufficientStockError(SaleError):
    """Requested quantity exceeds the quantity on hand. Nothing was written."""


class TransactionConflictError(SaleError):
    """Concurrent writers kept conflicting; the caller may resubmit."""


def compute_profit_cents(selling_price_cents: int, buying_price_cents: int, quantity: int) -> int:
    return (selling_price_cents - buying_price_cents) * quantity


def _create_sale_locked(item_id: int, quantity: int, selling_price_cents: int, attendant_id: int) -> Sale:
    item = lock_for_update(db.session.query(InventoryItem).filter_by(id=item_id)).first()
    if not item:
        raise ItemNotFoundError("Inventory item not found", details={"item_id": item_id})

    if item.quantity < quantity:
        raise InsufficientStockError(
            "Insufficient inventory",
            details={
                "item_id": item.id,
                "requested_quantity": quantity,
                "on_hand": item.quantity,
            },
        )

    sale = Sale(
        item_id=item.id,
        item_name=item.name,
        item_category=item.category,
        quantity=quantity,
        selling_price_cents=selling_price_cents,
        profit_cents=compute_profit_cents(selling_price_cents, item.buying_price_cents, quantity),
        attendant_id=attendant_id,
        sale_date=utcnow(),
    )
    db.session.add(sale)

    # version_id_col turns a lost update into StaleDataError at flush
    item.quantity = item.quantity - quantity
    item.modified_by_user_id = attendant_id

    db.session.flush()
    return sale


def create_sale(
    item_id: int,
    quantity: int,
    selling_price_cents: int,
    attendant_id: int,
    *,
    attempts: int = 3,
) -> Sale:
    """
    Sell ``quantity`` units of an item at ``selling_price_cents`` each.

    Inserts the Sale and decrements the item in one transaction; on any
    failure neither takes effect. Conflicts with concurrent writers re-run the
    whole read-check-decrement sequence up to ``attempts`` times.

    Raises:
        ValidationError: quantity or price not positive or over its bound
        ItemNotFoundError: no such item
        InsufficientStockError: not enough stock, nothing written
        TransactionConflictError: retries exhausted
    """
    enforce_rules_sale(quantity, selling_price_cents)

    attendant = db.session.query(User).filter_by(id=attendant_id).first()
    if not attendant:
        raise SaleError("Attendant not found", details={"attendant_id": attendant_id})

    def _op():
        with transaction():
            begin_immediate()
            return _create_sale_locked(item_id, quantity, selling_price_cents, attendant_id)

    try:
        return run_with_retry(_op, attempts=attempts)
    except RETRYABLE_ERRORS as exc:
        raise TransactionConflictError(
            "Sale could not be committed because of concurrent updates; please retry",
            details={"item_id": item_id, "attempts": attempts},
        ) from exc


def margin_warnings(sale: Sale, low_margin_percent: int | float) -> list[str]:
    """
    Warning codes for a completed sale. Never blocks anything.

    - BELOW_COST: profit is negative
    - LOW_MARGIN: profit / revenue is under ``low_margin_percent``
    """
    warnings = []
    if sale.profit_cents < 0:
        warnings.append(WARNING_BELOW_COST)
        return warnings

    revenue = sale.revenue_cents
    if revenue > 0 and (sale.profit_cents * 100) < (low_margin_percent * revenue):
        warnings.append(WARNING_LOW_MARGIN)
    return warnings


def _date_filtered(query, start: datetime | None, end: datetime | None):
    if start:
        query = query.filter(Sale.sale_date >= start)
    if end:
        query = query.filter(Sale.sale_date <= end)
    return query


def list_sales(start: datetime | None = None, end: datetime | None = None) -> list[Sale]:
    """All sales, newest first; the date range is inclusive on both ends."""
    query = _date_filtered(db.session.query(Sale), start, end)
    return query.order_by(Sale.sale_date.desc(), Sale.id.desc()).all()


def sale_stats(start: datetime | None = None, end: datetime | None = None, *, top: int = 5) -> dict:
    """Totals, averages, top items by profit and per-attendant performance."""
    revenue_expr = cast(Sale.selling_price_cents, BigInteger) * Sale.quantity

    totals = _date_filtered(
        db.session.query(
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.profit_cents), 0),
            func.coalesce(func.sum(Sale.quantity), 0),
            func.coalesce(func.sum(revenue_expr), 0),
            func.avg(Sale.profit_cents),
            func.avg(revenue_expr),
        ),
        start,
        end,
    ).one()
    count, profit, quantity, revenue, avg_profit, avg_value = totals

    top_items = _date_filtered(
        db.session.query(
            Sale.item_id,
            Sale.item_name,
            func.sum(Sale.quantity).label("quantity_sold"),
            func.sum(Sale.profit_cents).label("total_profit"),
        ),
        start,
        end,
    ).group_by(Sale.item_id, Sale.item_name).order_by(func.sum(Sale.profit_cents).desc()).limit(top).all()

    attendants = _date_filtered(
        db.session.query(
            Sale.attendant_id,
            User.full_name,
            func.count(Sale.id).label("total_sales"),
            func.sum(Sale.profit_cents).label("total_profit"),
        ).join(User, User.id == Sale.attendant_id),
        start,
        end,
    ).group_by(Sale.attendant_id, User.full_name).order_by(Sale.attendant_id).all()

    return {
        "totals": {
            "sales": int(count or 0),
            "profit_cents": int(profit or 0),
            "quantity": int(quantity or 0),
            "revenue_cents": int(revenue or 0),
        },
        "averages": {
            "profit_cents": float(avg_profit or 0),
            "sale_value_cents": float(avg_value or 0),
        },
        "top_products": [
            {
                "item_id": row.item_id,
                "name": row.item_name,
                "quantity_sold": int(row.quantity_sold or 0),
                "total_profit_cents": int(row.total_profit or 0),
            }
            for row in top_items
        ],
        "attendant_performance": [
            {
                "attendant_id": row.attendant_id,
                "name": row.full_name,
                "total_sales": int(row.total_sales or 0),
                "total_profit_cents": int(row.total_profit or 0),
            }
            for row in attendants
        ],
    }
