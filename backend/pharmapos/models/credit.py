from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


CREDIT_STATUS_PENDING = "PENDING"
CREDIT_STATUS_PARTIAL = "PARTIAL"
CREDIT_STATUS_PAID = "PAID"


class CreditAccount(db.Model):
    """
    Deferred-payment sub-ledger for one sale.

    INVARIANTS:
    - balance_cents == total_cents - paid_cents, never negative
    - status PAID iff balance_cents == 0; PENDING iff paid_cents == 0; else PARTIAL
    - PAID is terminal
    """
    __tablename__ = "credit_accounts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, unique=True)

    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(64), nullable=True)

    total_cents = db.Column(db.Integer, nullable=False)
    paid_cents = db.Column(db.Integer, nullable=False, default=0)
    balance_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=CREDIT_STATUS_PENDING, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    sale = db.relationship("Sale", backref=db.backref("credit_account", uselist=False))
    payments = db.relationship(
        "CreditPayment",
        order_by="CreditPayment.id",
        cascade="all, delete-orphan",
        back_populates="account",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "total_cents": self.total_cents,
            "paid_cents": self.paid_cents,
            "balance_cents": self.balance_cents,
            "status": self.status,
            "payments": [p.to_dict() for p in self.payments],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CreditPayment(db.Model):
    """Append-only payment against a credit account."""
    __tablename__ = "credit_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("credit_accounts.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(32), nullable=False)
    received_by = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    account = db.relationship("CreditAccount", back_populates="payments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount_cents": self.amount_cents,
            "method": self.method,
            "received_by": self.received_by,
            "created_at": to_utc_z(self.created_at),
        }
