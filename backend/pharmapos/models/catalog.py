from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..time_utils import to_utc_z


UNIT_SINGLE = "SINGLE"
UNIT_STRIP = "STRIP"
UNIT_BOX = "BOX"
UNIT_PAIR = "PAIR"
UNIT_BOTTLE = "BOTTLE"

KNOWN_UNIT_TYPES = [UNIT_SINGLE, UNIT_STRIP, UNIT_BOX, UNIT_PAIR, UNIT_BOTTLE]


def normalize_unit_type(value: str | None) -> str:
    """Unit types are free-form; store them upper-cased."""
    return (value or "").strip().upper()


class CatalogItem(db.Model):
    """
    Sellable catalog item (medicine or retail product).

    STOCK DESIGN DECISION:
    The stock ledger (StockEvent) is the source of truth for quantity on hand.
    on_hand_quantity is a cache written only by stock_service.append_stock_event
    inside the same DB transaction as the event that changes it.

    UNITS:
    Exactly one UnitDefinition has base_quantity == 1 (the atomic unit);
    the rest declare how many atomic units they contain.
    """
    __tablename__ = "catalog_items"
    __table_args__ = (
        db.Index("ix_catalog_items_name", "name"),
        db.Index("ix_catalog_items_category", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    generic_name = db.Column(db.String(255), nullable=True)
    category = db.Column(db.String(128), nullable=False, default="General")
    manufacturer = db.Column(db.String(255), nullable=True)
    batch_number = db.Column(db.String(64), nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)

    reorder_level = db.Column(db.Integer, nullable=False, default=0)
    on_hand_quantity = db.Column(db.Integer, nullable=False, default=0)

    # Cost per base unit, in cents
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    units = db.relationship(
        "UnitDefinition",
        order_by="UnitDefinition.position",
        cascade="all, delete-orphan",
        back_populates="item",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<CatalogItem id={self.id} name={self.name!r} on_hand={self.on_hand_quantity}>"

    def find_unit(self, unit_type: str) -> "UnitDefinition | None":
        wanted = normalize_unit_type(unit_type)
        for unit in self.units:
            if unit.type == wanted:
                return unit
        return None

    @property
    def base_unit(self) -> "UnitDefinition | None":
        for unit in self.units:
            if unit.base_quantity == 1:
                return unit
        return None

    @property
    def is_out_of_stock(self) -> bool:
        return (self.on_hand_quantity or 0) == 0

    @property
    def is_low_stock(self) -> bool:
        return (self.on_hand_quantity or 0) <= (self.reorder_level or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "generic_name": self.generic_name,
            "category": self.category,
            "manufacturer": self.manufacturer,
            "batch_number": self.batch_number,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "units": [unit.to_dict() for unit in self.units],
            "reorder_level": self.reorder_level,
            "on_hand_quantity": self.on_hand_quantity,
            "cost_price_cents": self.cost_price_cents,
            "is_low_stock": self.is_low_stock,
            "is_out_of_stock": self.is_out_of_stock,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class UnitDefinition(db.Model):
    """One sellable unit of a catalog item (single, strip, box, ...)."""
    __tablename__ = "unit_definitions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("catalog_items.id"), nullable=False, index=True)

    # Declaration order; the first unit is the default selling unit
    position = db.Column(db.Integer, nullable=False, default=0)

    type = db.Column(db.String(32), nullable=False)
    base_quantity = db.Column(db.Integer, nullable=False, default=1)
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    item = db.relationship("CatalogItem", back_populates="units")

    @property
    def price_per_base_unit(self) -> Decimal:
        return Decimal(self.price_cents) / Decimal(self.base_quantity)

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "base_quantity": self.base_quantity,
            "price_cents": self.price_cents,
        }
