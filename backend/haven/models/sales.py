from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Sale(db.Model):
    """
    A completed sale of one inventory item.

    Immutable once written: there is no update path. item_name is a snapshot
    so the row stays meaningful after the item is deleted (item_id is then
    cleared). quantity and profit_cents never change after insert.

    profit_cents = (selling_price_cents - item.buying_price_cents) * quantity
    and may be negative for below-cost sales.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sales_quantity_positive"),
        db.Index("ix_sales_sale_date", "sale_date"),
        db.Index("ix_sales_attendant_date", "attendant_id", "sale_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    item_id = db.Column(
        db.Integer,
        db.ForeignKey("inventory_items.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    item_name = db.Column(db.String(255), nullable=False)
    item_category = db.Column(db.String(64), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)

    # Unit price charged, in cents
    selling_price_cents = db.Column(db.Integer, nullable=False)
    # (price - cost) * quantity can pass 2**31
    profit_cents = db.Column(db.BigInteger, nullable=False)

    attendant_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Server-assigned at commit time
    sale_date = db.Column(db.DateTime(timezone=True), nullable=False)

    item = db.relationship("InventoryItem", foreign_keys=[item_id])
    attendant = db.relationship("User", foreign_keys=[attendant_id])

    @property
    def revenue_cents(self) -> int:
        return self.selling_price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "item_name": self.item_name,
            "item_category": self.item_category,
            "quantity": self.quantity,
            "selling_price_cents": self.selling_price_cents,
            "revenue_cents": self.revenue_cents,
            "profit_cents": self.profit_cents,
            "attendant_id": self.attendant_id,
            "attendant": self.attendant.to_summary() if self.attendant else None,
            "sale_date": to_utc_z(self.sale_date),
        }
