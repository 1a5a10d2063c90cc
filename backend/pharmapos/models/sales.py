from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


SALE_STATUS_PENDING = "PENDING"
SALE_STATUS_COMMITTED = "COMMITTED"
SALE_STATUS_PARTIAL = "PARTIAL"
SALE_STATUS_FAILED = "FAILED"
SALE_STATUS_COMPENSATED = "COMPENSATED"


class Sale(db.Model):
    """
    Committed checkout, decoupled from the live cart.

    Lines are snapshots copied at checkout time. A sale is PENDING while its
    stock is deducted and immutable once COMMITTED or PARTIAL; the only later
    writes are the credit account link and the FAILED -> COMPENSATED
    transition after offsetting stock events.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_cashier_created", "cashier_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "INV-000042")
    document_number = db.Column(db.String(64), nullable=True, unique=True)

    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_PENDING, index=True)

    # Amounts in cents; total = subtotal - discount + tax
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(32), nullable=False, index=True)

    cashier_id = db.Column(db.String(128), nullable=False)
    cashier_name = db.Column(db.String(255), nullable=True)
    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(64), nullable=True)

    source_prescription_id = db.Column(db.Integer, db.ForeignKey("prescriptions.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    lines = db.relationship(
        "SaleLine",
        order_by="SaleLine.line_number",
        cascade="all, delete-orphan",
        back_populates="sale",
    )

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "document_number": self.document_number,
            "status": self.status,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "cashier_id": self.cashier_id,
            "cashier_name": self.cashier_name,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "source_prescription_id": self.source_prescription_id,
            "created_at": to_utc_z(self.created_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class SaleLine(db.Model):
    """Snapshot of one cart line as it was sold."""
    __tablename__ = "sale_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)

    item_id = db.Column(db.Integer, db.ForeignKey("catalog_items.id"), nullable=False)
    item_name = db.Column(db.String(255), nullable=False)
    unit_type = db.Column(db.String(32), nullable=False)
    unit_base_quantity = db.Column(db.Integer, nullable=False, default=1)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    # Set once the stock deduction for this line has been appended
    stock_event_id = db.Column(db.Integer, db.ForeignKey("stock_events.id"), nullable=True)

    sale = db.relationship("Sale", back_populates="lines")

    @property
    def base_quantity_total(self) -> int:
        return self.quantity * self.unit_base_quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "line_number": self.line_number,
            "item_id": self.item_id,
            "item_name": self.item_name,
            "unit_type": self.unit_type,
            "unit_base_quantity": self.unit_base_quantity,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "stock_event_id": self.stock_event_id,
        }
