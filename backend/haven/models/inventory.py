from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class InventoryItem(db.Model):
    """
    A stocked antique or product line.

    QUANTITY INVARIANT: quantity never goes negative. The only code path that
    lowers it is sales_service.create_sale, inside the sale transaction.
    Updates may restock (raise) the quantity but never lower it.

    version_id is an optimistic-lock counter: a concurrent writer that read a
    stale row fails with StaleDataError and is retried by the caller.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_inventory_items_quantity_nonneg"),
        db.CheckConstraint("buying_price_cents >= 0", name="ck_inventory_items_buying_nonneg"),
        db.CheckConstraint("selling_price_cents >= 0", name="ck_inventory_items_selling_nonneg"),
        db.Index("ix_inventory_items_category", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in cents (frontend may only format for display)
    buying_price_cents = db.Column(db.Integer, nullable=False)
    selling_price_cents = db.Column(db.Integer, nullable=False)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    image_url = db.Column(db.String(512), nullable=True)

    modified_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    modifier = db.relationship("User", foreign_keys=[modified_by_user_id])
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<InventoryItem id={self.id} name={self.name!r} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "buying_price_cents": self.buying_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "quantity": self.quantity,
            "image_url": self.image_url,
            "modified_by": self.modifier.to_summary() if self.modifier else None,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
