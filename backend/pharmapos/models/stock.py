from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


REASON_SALE = "SALE"
REASON_PURCHASE = "PURCHASE"
REASON_ADJUSTMENT = "ADJUSTMENT"
REASON_LOSS = "LOSS"
REASON_RETURN = "RETURN"
REASON_EXPIRED = "EXPIRED"
REASON_INTERNAL_USE = "INTERNAL_USE"

VALID_REASONS = [
    REASON_SALE,
    REASON_PURCHASE,
    REASON_ADJUSTMENT,
    REASON_LOSS,
    REASON_RETURN,
    REASON_EXPIRED,
    REASON_INTERNAL_USE,
]

# Reasons that only ever add stock; no upper bound is enforced for them.
ADDITION_REASONS = {REASON_PURCHASE, REASON_RETURN}


class StockEvent(db.Model):
    """
    Append-only stock ledger entry.

    IMMUTABLE: rows are never updated or deleted. An item's on-hand quantity
    is SUM(delta) over its events; balance_after snapshots that running total
    at the moment the event was appended.
    """
    __tablename__ = "stock_events"
    __table_args__ = (
        db.Index("ix_stock_events_item_occurred", "item_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("catalog_items.id"), nullable=False, index=True)

    # Signed; negative for deductions
    delta = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(32), nullable=False, index=True)
    balance_after = db.Column(db.Integer, nullable=False)

    unit_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.String(64), nullable=True, index=True)
    note = db.Column(db.String(255), nullable=True)

    performed_by = db.Column(db.String(128), nullable=False)
    performed_by_role = db.Column(db.String(32), nullable=False)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    item = db.relationship("CatalogItem", backref=db.backref("stock_events", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "delta": self.delta,
            "reason": self.reason,
            "balance_after": self.balance_after,
            "unit_type": self.unit_type,
            "reference_id": self.reference_id,
            "note": self.note,
            "performed_by": self.performed_by,
            "performed_by_role": self.performed_by_role,
            "occurred_at": to_utc_z(self.occurred_at),
        }
