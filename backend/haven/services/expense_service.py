# Overview: Service-layer operations for expenses; encapsulates business logic and database work.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from ..extensions import db
from ..models import Expense
from ..validation import (
    ModelValidationPolicy,
    NotFoundError,
    validate_payload,
    enforce_rules_expense,
)


EXPENSE_POLICY = ModelValidationPolicy(
    writable_fields={"description", "amount_cents", "category", "date"},
    required_on_create={"description", "amount_cents", "category", "date"},
    min_lengths={"description": 2, "category": 1},
)


def _get_expense(expense_id: int) -> Expense:
    expense = db.session.query(Expense).filter_by(id=expense_id).first()
    if not expense:
        raise NotFoundError("Expense not found")
    return expense


def _filtered(query, *, category: str | None = None, start: datetime | None = None, end: datetime | None = None):
    if category:
        query = query.filter(Expense.category == category)
    if start:
        query = query.filter(Expense.date >= start)
    if end:
        query = query.filter(Expense.date <= end)
    return query


def create_expense(payload: dict, user_id: int) -> Expense:
    patch = validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=False)
    enforce_rules_expense(patch)

    expense = Expense(**patch, added_by_user_id=user_id)
    db.session.add(expense)
    db.session.commit()
    return expense


def list_expenses(
    *,
    category: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[Expense]:
    query = _filtered(db.session.query(Expense), category=category, start=start, end=end)
    return query.order_by(Expense.date.desc(), Expense.id.desc()).all()


def update_expense(expense_id: int, payload: dict) -> Expense:
    patch = validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=True)
    enforce_rules_expense(patch)

    expense = _get_expense(expense_id)
    for key, value in patch.items():
        setattr(expense, key, value)
    db.session.commit()
    return expense


def delete_expense(expense_id: int) -> None:
    expense = _get_expense(expense_id)
    db.session.delete(expense)
    db.session.commit()


def expense_stats(start: datetime | None = None, end: datetime | None = None) -> dict:
    """Total, average, per-category breakdown and per-day trend."""
    total, average, count = _filtered(
        db.session.query(
            func.coalesce(func.sum(Expense.amount_cents), 0),
            func.avg(Expense.amount_cents),
            func.count(Expense.id),
        ),
        start=start,
        end=end,
    ).one()

    categories = _filtered(
        db.session.query(
            Expense.category,
            func.sum(Expense.amount_cents).label("amount"),
            func.count(Expense.id).label("count"),
        ),
        start=start,
        end=end,
    ).group_by(Expense.category).order_by(func.sum(Expense.amount_cents).desc()).all()

    day_expr = func.date(Expense.date)
    trend = _filtered(
        db.session.query(
            day_expr.label("day"),
            func.sum(Expense.amount_cents).label("amount"),
        ),
        start=start,
        end=end,
    ).group_by(day_expr).order_by(day_expr).all()

    return {
        "total_cents": int(total or 0),
        "average_cents": float(average or 0),
        "count": int(count or 0),
        "category_breakdown": [
            {
                "category": row.category,
                "amount_cents": int(row.amount or 0),
                "count": int(row.count or 0),
            }
            for row in categories
        ],
        "trend": [
            {"date": str(row.day), "amount_cents": int(row.amount or 0)}
            for row in trend
        ],
    }
