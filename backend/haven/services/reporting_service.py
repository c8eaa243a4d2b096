# Overview: Service-layer operations for reporting; encapsulates business logic and database work.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, cast, func

from ..extensions import db
from ..models import Sale, Expense, InventoryItem
from haven.time_utils import parse_iso_datetime, to_utc_z
from . import sales_service, expense_service, inventory_service


class ReportError(Exception):
    """Raised when report generation fails."""
    pass


def parse_range(start: str | None, end: str | None) -> tuple[datetime, datetime]:
    """Both ends are required and inclusive."""
    if not start or not end:
        raise ReportError("start_date and end_date are required")
    try:
        start_dt = parse_iso_datetime(start)
        end_dt = parse_iso_datetime(end, end_of_day=True)
    except ValueError:
        raise ReportError("Dates must be ISO-8601")
    if end_dt < start_dt:
        raise ReportError("end_date must not be before start_date")
    return start_dt, end_dt


def sales_summary(start: datetime, end: datetime) -> dict:
    stats = sales_service.sale_stats(start, end)
    return {
        "period": {"start": to_utc_z(start), "end": to_utc_z(end)},
        "summary": {
            "total_sales_cents": stats["totals"]["revenue_cents"],
            "total_profit_cents": stats["totals"]["profit_cents"],
            "total_quantity": stats["totals"]["quantity"],
            "sale_count": stats["totals"]["sales"],
            "average_profit_cents": stats["averages"]["profit_cents"],
            "average_sale_value_cents": stats["averages"]["sale_value_cents"],
        },
        "top_products": stats["top_products"],
        "attendant_performance": stats["attendant_performance"],
    }


def profit_analysis(start: datetime, end: datetime) -> dict:
    """Daily profit trend, profit per category, period expenses and net profit."""
    day_expr = func.date(Sale.sale_date)
    revenue_expr = cast(Sale.selling_price_cents, BigInteger) * Sale.quantity

    trend = (
        db.session.query(
            day_expr.label("day"),
            func.sum(Sale.profit_cents).label("profit"),
            func.sum(revenue_expr).label("revenue"),
        )
        .filter(Sale.sale_date >= start, Sale.sale_date <= end)
        .group_by(day_expr)
        .order_by(day_expr)
        .all()
    )

    # Category comes from the sale snapshot so deleted items still count
    categories = (
        db.session.query(
            Sale.item_category,
            func.sum(Sale.profit_cents).label("profit"),
            func.sum(revenue_expr).label("revenue"),
        )
        .filter(Sale.sale_date >= start, Sale.sale_date <= end)
        .group_by(Sale.item_category)
        .order_by(func.sum(Sale.profit_cents).desc())
        .all()
    )

    total_expenses = (
        db.session.query(func.coalesce(func.sum(Expense.amount_cents), 0))
        .filter(Expense.date >= start, Expense.date <= end)
        .scalar()
    )

    total_profit = sum(int(row.profit or 0) for row in trend)
    total_expenses = int(total_expenses or 0)

    return {
        "period": {"start": to_utc_z(start), "end": to_utc_z(end)},
        "profit_trend": [
            {
                "date": str(row.day),
                "profit_cents": int(row.profit or 0),
                "revenue_cents": int(row.revenue or 0),
            }
            for row in trend
        ],
        "category_profits": [
            {
                "category": row.item_category,
                "profit_cents": int(row.profit or 0),
                "revenue_cents": int(row.revenue or 0),
            }
            for row in categories
        ],
        "total_profit_cents": total_profit,
        "total_expenses_cents": total_expenses,
        "net_profit_cents": total_profit - total_expenses,
    }


def inventory_value(threshold: int) -> dict:
    """Stock valued at cost and at retail (unit price times quantity on hand)."""
    cost_expr = cast(InventoryItem.buying_price_cents, BigInteger) * InventoryItem.quantity
    retail_expr = cast(InventoryItem.selling_price_cents, BigInteger) * InventoryItem.quantity

    cost, retail = db.session.query(
        func.coalesce(func.sum(cost_expr), 0),
        func.coalesce(func.sum(retail_expr), 0),
    ).one()

    categories = (
        db.session.query(
            InventoryItem.category,
            func.sum(cost_expr).label("cost"),
            func.sum(retail_expr).label("retail"),
            func.sum(InventoryItem.quantity).label("quantity"),
        )
        .group_by(InventoryItem.category)
        .order_by(InventoryItem.category)
        .all()
    )

    low_stock = inventory_service.low_stock_items(threshold)

    return {
        "current_value": {
            "cost_cents": int(cost or 0),
            "retail_cents": int(retail or 0),
        },
        "category_value": [
            {
                "category": row.category,
                "cost_cents": int(row.cost or 0),
                "retail_cents": int(row.retail or 0),
                "quantity": int(row.quantity or 0),
            }
            for row in categories
        ],
        "low_stock_threshold": threshold,
        "low_stock": [
            {"id": i.id, "name": i.name, "category": i.category, "quantity": i.quantity}
            for i in low_stock
        ],
    }


def expense_summary(start: datetime, end: datetime) -> dict:
    stats = expense_service.expense_stats(start, end)
    return {
        "period": {"start": to_utc_z(start), "end": to_utc_z(end)},
        "summary": {
            "total_expenses_cents": stats["total_cents"],
            "average_expense_cents": stats["average_cents"],
            "total_transactions": stats["count"],
        },
        "category_breakdown": stats["category_breakdown"],
        "trend": stats["trend"],
    }
