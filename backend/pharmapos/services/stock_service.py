# Overview: Stock ledger; append-only stock events and ledger-derived balances.

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func

from ..errors import InsufficientStockError, InvalidInputError, NotFoundError, UnitNotFoundError
from ..extensions import db
from ..models import CatalogItem, StockEvent
from ..models.stock import (
    ADDITION_REASONS,
    REASON_ADJUSTMENT,
    REASON_EXPIRED,
    REASON_INTERNAL_USE,
    REASON_LOSS,
    REASON_PURCHASE,
    REASON_RETURN,
    REASON_SALE,
    VALID_REASONS,
)
from ..time_utils import utcnow
from .concurrency import begin_immediate, lock_for_update, run_with_retry
from .pricing_service import round_cents
"""
Stock Ledger Invariants (authoritative)

- StockEvent rows are append-only: never updated, never deleted.
- Quantity on hand is SUM(delta) over an item's events (optionally as-of,
  inclusive: occurred_at <= as_of). CatalogItem.on_hand_quantity caches the
  same number and is written only here, in the same DB transaction.
- A deducting event (SALE, LOSS, EXPIRED, INTERNAL_USE, ADJUSTMENT < 0) may
  never drive the balance below zero. A rejected event is not recorded.
- PURCHASE and RETURN only add and have no upper bound.
- Appends are serialized per item (row lock; BEGIN IMMEDIATE on SQLite).
  Multi-item operations are NOT atomic across items: each append stands alone.
"""

logger = logging.getLogger(__name__)

DEDUCTION_REASONS = {REASON_SALE, REASON_LOSS, REASON_EXPIRED, REASON_INTERNAL_USE}


def _load_item(item_id: int, *, lock: bool = False) -> CatalogItem:
    query = db.session.query(CatalogItem).filter_by(id=item_id)
    if lock:
        query = lock_for_update(query)
    item = query.first()
    if item is None:
        raise NotFoundError("catalog item not found", details={"item_id": item_id})
    return item


def _check_delta(delta: int, reason: str) -> None:
    if reason not in VALID_REASONS:
        raise InvalidInputError(f"Invalid stock reason: {reason}. Must be one of {VALID_REASONS}")
    if not isinstance(delta, int) or isinstance(delta, bool) or delta == 0:
        raise InvalidInputError("stock delta must be a non-zero integer", details={"delta": delta})
    if reason in ADDITION_REASONS and delta < 0:
        raise InvalidInputError(f"{reason} events must add stock", details={"delta": delta})
    if reason in DEDUCTION_REASONS and delta > 0:
        raise InvalidInputError(f"{reason} events must deduct stock", details={"delta": delta})


def balance_as_of(item_id: int, as_of: datetime | None = None) -> int:
    """Running total of an item's stock events; the authoritative on-hand quantity."""
    q = db.session.query(func.coalesce(func.sum(StockEvent.delta), 0)).filter(
        StockEvent.item_id == item_id,
    )
    if as_of is not None:
        q = q.filter(StockEvent.occurred_at <= as_of)
    return int(q.scalar() or 0)


def _append_locked(
    *,
    item_id: int,
    delta: int,
    reason: str,
    performed_by: str,
    performed_by_role: str,
    reference_id: str | None = None,
    unit_type: str | None = None,
    note: str | None = None,
) -> StockEvent:
    """Core append: lock, check, insert, refresh cache. No commit."""
    _check_delta(delta, reason)
    item = _load_item(item_id, lock=True)

    current = balance_as_of(item_id)
    new_balance = current + delta
    if delta < 0 and new_balance < 0:
        raise InsufficientStockError(
            "stock event would make on-hand negative",
            details={
                "item_id": item_id,
                "item_name": item.name,
                "on_hand": current,
                "requested": -delta,
                "reason": reason,
            },
        )

    event = StockEvent(
        item_id=item_id,
        delta=delta,
        reason=reason,
        balance_after=new_balance,
        unit_type=unit_type,
        reference_id=reference_id,
        note=note,
        performed_by=performed_by,
        performed_by_role=performed_by_role,
        occurred_at=utcnow(),
    )
    db.session.add(event)
    item.on_hand_quantity = new_balance
    db.session.flush()
    return event


def append_stock_event(
    *,
    item_id: int,
    delta: int,
    reason: str,
    performed_by: str,
    performed_by_role: str,
    reference_id: str | None = None,
    unit_type: str | None = None,
    note: str | None = None,
    commit: bool = True,
) -> StockEvent:
    """
    Append one stock event; event.balance_after is the item's new balance.

    With commit=False the caller owns the transaction (and its rollback).
    Raises InsufficientStockError without recording anything when a
    deduction would make the balance negative.
    """
    kwargs = dict(
        item_id=item_id,
        delta=delta,
        reason=reason,
        performed_by=performed_by,
        performed_by_role=performed_by_role,
        reference_id=reference_id,
        unit_type=unit_type,
        note=note,
    )
    if not commit:
        return _append_locked(**kwargs)

    def _op():
        begin_immediate()
        try:
            event = _append_locked(**kwargs)
        except InsufficientStockError as exc:
            db.session.rollback()
            logger.info("Rejected %s event for item %s: %s", reason, item_id, exc.details)
            raise
        except (InvalidInputError, NotFoundError):
            db.session.rollback()
            raise
        db.session.commit()
        return event

    return run_with_retry(_op)


def record_movement(
    *,
    item_id: int,
    quantity: int,
    reason: str,
    performed_by: str,
    performed_by_role: str,
    unit_type: str | None = None,
    reference_id: str | None = None,
    note: str | None = None,
) -> StockEvent:
    """
    Record a manual stock movement from a positive quantity.

    PURCHASE/RETURN add; LOSS/EXPIRED/INTERNAL_USE deduct; ADJUSTMENT takes
    a signed quantity. When unit_type is given, quantity counts that unit
    and is converted to base units.
    """
    if reason == REASON_SALE:
        raise InvalidInputError("SALE events are recorded by checkout only")
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity == 0:
        raise InvalidInputError("quantity must be a non-zero integer", details={"quantity": quantity})
    if reason != REASON_ADJUSTMENT and quantity < 0:
        raise InvalidInputError("quantity must be positive", details={"quantity": quantity})

    base_multiplier = 1
    if unit_type:
        item = _load_item(item_id)
        unit = item.find_unit(unit_type)
        if unit is None:
            raise UnitNotFoundError(
                f"unit {unit_type} is not defined on item",
                details={"item_id": item_id, "unit_type": unit_type},
            )
        base_multiplier = unit.base_quantity
        unit_type = unit.type
        # end the read so the append below can take the write lock first
        db.session.commit()

    delta = quantity * base_multiplier
    if reason in DEDUCTION_REASONS:
        delta = -delta

    return append_stock_event(
        item_id=item_id,
        delta=delta,
        reason=reason,
        performed_by=performed_by,
        performed_by_role=performed_by_role,
        reference_id=reference_id,
        unit_type=unit_type,
        note=note,
    )


def list_events(item_id: int, limit: int = 200) -> list[StockEvent]:
    _load_item(item_id)
    return (
        StockEvent.query.filter_by(item_id=item_id)
        .order_by(StockEvent.occurred_at.desc(), StockEvent.id.desc())
        .limit(limit)
        .all()
    )


def low_stock_items() -> list[CatalogItem]:
    """Active items at or below their reorder level (out-of-stock included)."""
    return (
        CatalogItem.query.filter(
            CatalogItem.is_active.is_(True),
            CatalogItem.on_hand_quantity <= CatalogItem.reorder_level,
        )
        .order_by(CatalogItem.on_hand_quantity.asc(), CatalogItem.name.asc())
        .all()
    )


def out_of_stock_items() -> list[CatalogItem]:
    return (
        CatalogItem.query.filter(
            CatalogItem.is_active.is_(True),
            CatalogItem.on_hand_quantity == 0,
        )
        .order_by(CatalogItem.name.asc())
        .all()
    )


def stock_value_cents(item: CatalogItem) -> int:
    """
    Retail value of on-hand stock: on-hand x single-unit price per base unit,
    falling back to cost price when the item has no priced atomic unit.
    """
    on_hand = item.on_hand_quantity or 0
    if on_hand == 0:
        return 0
    unit = item.base_unit
    if unit is not None and unit.price_cents > 0:
        return round_cents(on_hand * unit.price_per_base_unit)
    return on_hand * (item.cost_price_cents or 0)


def stock_audit() -> list[dict]:
    """Per-item movement totals (in base units) next to the current balance."""
    rows = (
        db.session.query(
            StockEvent.item_id,
            StockEvent.reason,
            func.coalesce(func.sum(StockEvent.delta), 0),
        )
        .group_by(StockEvent.item_id, StockEvent.reason)
        .all()
    )
    totals: dict[int, dict[str, int]] = {}
    for item_id, reason, total in rows:
        totals.setdefault(item_id, {})[reason] = int(total)

    report = []
    for item in CatalogItem.query.order_by(CatalogItem.name.asc()).all():
        by_reason = totals.get(item.id, {})
        report.append({
            "item_id": item.id,
            "item_name": item.name,
            "total_sold": -by_reason.get(REASON_SALE, 0),
            "total_purchased": by_reason.get(REASON_PURCHASE, 0),
            "total_returned": by_reason.get(REASON_RETURN, 0),
            "total_lost": -(by_reason.get(REASON_LOSS, 0) + by_reason.get(REASON_EXPIRED, 0)),
            "total_internal_use": -by_reason.get(REASON_INTERNAL_USE, 0),
            "total_adjusted": by_reason.get(REASON_ADJUSTMENT, 0),
            "current_stock": sum(by_reason.values()),
        })
    return report
