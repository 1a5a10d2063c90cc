# Overview: Catalog store; item lookup, filtering, and creation with derived unit prices.

from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy import func, or_

from ..errors import InvalidInputError, NotFoundError, UnitNotFoundError
from ..extensions import db
from ..models import CatalogItem, UnitDefinition
from ..models.catalog import normalize_unit_type
from ..models.stock import REASON_PURCHASE
from .concurrency import run_with_retry
from .pricing_service import (
    UnitSpec,
    derive_price_per_base,
    reprice_units,
    validate_unit_layout,
)
from .stock_service import append_stock_event


def get_item(item_id: int) -> CatalogItem:
    item = db.session.get(CatalogItem, item_id)
    if item is None:
        raise NotFoundError("catalog item not found", details={"item_id": item_id})
    return item


def list_items(
    *,
    search: str | None = None,
    category: str | None = None,
    in_stock_only: bool = False,
    include_inactive: bool = False,
) -> list[CatalogItem]:
    """
    List catalog items in name order.

    search matches name or generic name, case-insensitively. The till uses
    in_stock_only=True so items with nothing on hand are never offered.
    """
    q = CatalogItem.query
    if not include_inactive:
        q = q.filter(CatalogItem.is_active.is_(True))
    if search:
        pattern = f"%{search.strip().lower()}%"
        q = q.filter(or_(
            func.lower(CatalogItem.name).like(pattern),
            func.lower(func.coalesce(CatalogItem.generic_name, "")).like(pattern),
        ))
    if category:
        q = q.filter(CatalogItem.category == category)
    if in_stock_only:
        q = q.filter(CatalogItem.on_hand_quantity > 0)
    return q.order_by(CatalogItem.name.asc(), CatalogItem.id.asc()).all()


def list_categories() -> list[str]:
    rows = (
        db.session.query(CatalogItem.category)
        .filter(CatalogItem.is_active.is_(True))
        .distinct()
        .order_by(CatalogItem.category.asc())
        .all()
    )
    return [row[0] for row in rows]


def _unit_specs(raw_units) -> list[UnitSpec]:
    specs = []
    for raw in raw_units or []:
        if isinstance(raw, UnitSpec):
            specs.append(raw)
            continue
        specs.append(UnitSpec(
            type=raw.get("type"),
            base_quantity=raw.get("base_quantity"),
            price_cents=raw.get("price_cents") or 0,
        ))
    return specs


def create_item(
    *,
    name: str,
    units,
    category: str = "General",
    generic_name: str | None = None,
    manufacturer: str | None = None,
    batch_number: str | None = None,
    expiry_date: date | None = None,
    reorder_level: int | None = None,
    cost_price_cents: int = 0,
    source_unit_type: str | None = None,
    source_price_cents: int | None = None,
    opening_quantity: int = 0,
    performed_by: str = "system",
    performed_by_role: str = "admin",
) -> CatalogItem:
    """
    Create a catalog item.

    When source_unit_type/source_price_cents are given, every unit price is
    derived from that unit; otherwise the per-unit price_cents supplied are
    stored as-is. A positive opening_quantity (base units) is booked as a
    PURCHASE stock event so the ledger stays the source of truth.
    """
    if not name or not name.strip():
        raise InvalidInputError("name is required")
    if reorder_level is None:
        reorder_level = current_app.config.get("LOW_STOCK_DEFAULT_REORDER_LEVEL", 10)
    if reorder_level < 0:
        raise InvalidInputError("reorder_level cannot be negative")
    if cost_price_cents is None or cost_price_cents < 0:
        raise InvalidInputError("cost_price_cents cannot be negative")
    if opening_quantity is None or opening_quantity < 0:
        raise InvalidInputError("opening_quantity cannot be negative")

    specs = _unit_specs(units)
    validate_unit_layout(specs)

    if source_unit_type is not None and source_price_cents is not None:
        specs = reprice_units(specs, source_unit_type, source_price_cents)
    elif any(spec.price_cents is None or spec.price_cents < 0 for spec in specs):
        raise InvalidInputError("unit prices cannot be negative")
    else:
        specs = [UnitSpec(normalize_unit_type(s.type), s.base_quantity, s.price_cents) for s in specs]

    def _op():
        item = CatalogItem(
            name=name.strip(),
            generic_name=generic_name,
            category=category or "General",
            manufacturer=manufacturer,
            batch_number=batch_number,
            expiry_date=expiry_date,
            reorder_level=reorder_level,
            cost_price_cents=cost_price_cents,
            on_hand_quantity=0,
            is_active=True,
        )
        item.units = [
            UnitDefinition(
                position=i,
                type=spec.type,
                base_quantity=spec.base_quantity,
                price_cents=spec.price_cents,
            )
            for i, spec in enumerate(specs)
        ]
        db.session.add(item)
        db.session.commit()
        return item

    item = run_with_retry(_op)

    if opening_quantity:
        append_stock_event(
            item_id=item.id,
            delta=opening_quantity,
            reason=REASON_PURCHASE,
            performed_by=performed_by,
            performed_by_role=performed_by_role,
            note="Opening stock",
        )
        db.session.refresh(item)
    return item


def reprice_item(item_id: int, *, source_unit_type: str, source_price_cents: int) -> CatalogItem:
    """Re-derive every unit price of an item from one unit's new price."""
    def _op():
        item = get_item(item_id)
        priced = reprice_units(item.units, source_unit_type, source_price_cents)
        for unit, spec in zip(item.units, priced):
            unit.price_cents = spec.price_cents
        db.session.commit()
        return item

    return run_with_retry(_op)


def price_per_base_unit(item: CatalogItem, unit_type: str | None = None):
    """Price of one atomic unit as implied by the given (default: first) unit."""
    unit = item.find_unit(unit_type) if unit_type else (item.units[0] if item.units else None)
    if unit is None:
        raise UnitNotFoundError("item has no such unit", details={"unit_type": unit_type})
    return derive_price_per_base(unit.price_cents, unit.base_quantity)
