# Overview: Service-layer operations for user administration; encapsulates business logic and database work.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import User, Sale, Expense, InventoryItem
from ..models.auth import USER_STATUS_INACTIVE
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    NotFoundError,
    ConflictError,
    validate_payload,
    enforce_rules_user,
)
from . import auth_service, session_service


USER_POLICY = ModelValidationPolicy(
    writable_fields={"username", "full_name", "email", "role"},
    required_on_create={"username", "full_name", "email", "role"},
    min_lengths={"username": 3, "full_name": 2},
)


def _split_password(payload: dict) -> tuple[dict, str | None]:
    if payload is None or not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    fields = dict(payload)
    password = fields.pop("password", None)
    return fields, password


def create_user(payload: dict) -> User:
    fields, password = _split_password(payload)
    patch = validate_payload(model=User, payload=fields, policy=USER_POLICY, partial=False)
    enforce_rules_user(patch)
    if not password:
        raise ValidationError("password is required", "password")

    return auth_service.create_user(
        username=patch["username"],
        full_name=patch["full_name"],
        email=patch["email"],
        password=password,
        role=patch["role"],
    )


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.id.asc()).all()


def get_user(user_id: int) -> User:
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise NotFoundError("User not found")
    return user


def get_user_detail(user_id: int, *, limit: int = 20) -> dict:
    """Profile plus recent sales, expenses and modified inventory."""
    user = get_user(user_id)

    sales = (
        db.session.query(Sale).filter_by(attendant_id=user.id)
        .order_by(Sale.sale_date.desc()).limit(limit).all()
    )
    expenses = (
        db.session.query(Expense).filter_by(added_by_user_id=user.id)
        .order_by(Expense.date.desc()).limit(limit).all()
    )
    items = (
        db.session.query(InventoryItem).filter_by(modified_by_user_id=user.id)
        .order_by(InventoryItem.updated_at.desc()).limit(limit).all()
    )

    data = user.to_dict()
    data["sales"] = [
        {"id": s.id, "sale_date": s.to_dict()["sale_date"], "profit_cents": s.profit_cents}
        for s in sales
    ]
    data["expenses"] = [
        {"id": e.id, "description": e.description, "amount_cents": e.amount_cents, "date": e.to_dict()["date"]}
        for e in expenses
    ]
    data["modified_inventory"] = [
        {"id": i.id, "name": i.name, "updated_at": i.to_dict()["updated_at"]}
        for i in items
    ]
    return data


def update_user(user_id: int, payload: dict) -> User:
    """
    Update profile fields, role or password.

    A role or password change revokes the user's sessions so the next
    request re-authenticates with the new claim.
    """
    fields, password = _split_password(payload)
    patch = validate_payload(model=User, payload=fields, policy=USER_POLICY, partial=True)
    enforce_rules_user(patch)

    user = get_user(user_id)

    for key in ("username", "email"):
        if key in patch and patch[key] != getattr(user, key):
            taken = db.session.query(User).filter(
                getattr(User, key) == patch[key], User.id != user.id
            ).first()
            if taken:
                raise ConflictError(f"{key} already exists")

    revoke_reason = None
    if "role" in patch and patch["role"] != user.role:
        revoke_reason = "Role changed"
    if password:
        user.password_hash = auth_service.hash_password(password)
        revoke_reason = revoke_reason or "Password changed"

    for key, value in patch.items():
        setattr(user, key, value)

    if revoke_reason:
        session_service.revoke_all_user_sessions(user.id, reason=revoke_reason, commit=False)

    db.session.commit()
    return user


def deactivate_user(user_id: int) -> User:
    user = get_user(user_id)
    user.status = USER_STATUS_INACTIVE
    session_service.revoke_all_user_sessions(user.id, reason="User account deactivated", commit=False)
    db.session.commit()
    return user


def user_stats(user_id: int) -> dict:
    user = get_user(user_id)

    sales_count, profit, items_sold = db.session.query(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.profit_cents), 0),
        func.coalesce(func.sum(Sale.quantity), 0),
    ).filter(Sale.attendant_id == user.id).one()

    expense_count, expense_total = db.session.query(
        func.count(Expense.id),
        func.coalesce(func.sum(Expense.amount_cents), 0),
    ).filter(Expense.added_by_user_id == user.id).one()

    return {
        "user_id": user.id,
        "total_sales": int(sales_count or 0),
        "total_profit_cents": int(profit or 0),
        "items_sold": int(items_sold or 0),
        "total_expenses_cents": int(expense_total or 0),
        "expense_count": int(expense_count or 0),
    }
