# Overview: Flask API routes for the stock ledger; parses input and returns JSON responses.

# backend/pharmapos/routes/stock.py
"""
Stock ledger routes.

Time semantics:
- as_of accepts ISO-8601 datetimes with Z/offsets; normalized to UTC-naive.
- as_of filtering is inclusive: occurred_at <= as_of.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_operator, require_role
from ..errors import InvalidInputError, PosError
from ..identity import ROLE_ADMIN, ROLE_MANAGER, ROLE_PHARMACIST
from ..services import catalog_service, stock_service
from ..time_utils import parse_iso_datetime, to_utc_z
from ..validation import get_int, get_str

stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")

STOCK_WRITERS = (ROLE_ADMIN, ROLE_MANAGER, ROLE_PHARMACIST)


@stock_bp.post("/movements")
@require_operator
@require_role(*STOCK_WRITERS)
def record_movement_route():
    """
    Record a manual movement.

    Body: {item_id, quantity, reason, unit_type?, reference_id?, note?}
    reason: PURCHASE, RETURN, ADJUSTMENT (signed quantity), LOSS, EXPIRED,
    INTERNAL_USE. Quantities are positive; deductions are signed here.
    """
    payload = request.get_json(silent=True) or {}

    try:
        reason = (get_str(payload, "reason", required=True, max_length=32) or "").upper()
        event = stock_service.record_movement(
            item_id=get_int(payload, "item_id", required=True),
            quantity=get_int(payload, "quantity", required=True),
            reason=reason,
            performed_by=g.operator.display_name,
            performed_by_role=g.operator.role,
            unit_type=get_str(payload, "unit_type", max_length=32),
            reference_id=get_str(payload, "reference_id", max_length=64),
            note=get_str(payload, "note"),
        )
        return jsonify({"event": event.to_dict()}), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record stock movement")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/items/<int:item_id>/balance")
@require_operator
def balance_route(item_id: int):
    """Ledger balance; as_of (optional) is inclusive."""
    try:
        try:
            as_of = parse_iso_datetime(request.args.get("as_of"))
        except ValueError:
            raise InvalidInputError("as_of must be an ISO-8601 datetime")
        item = catalog_service.get_item(item_id)
        return jsonify({
            "item_id": item.id,
            "as_of": to_utc_z(as_of),
            "quantity_on_hand": stock_service.balance_as_of(item.id, as_of),
            "stock_value_cents": stock_service.stock_value_cents(item),
        }), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@stock_bp.get("/items/<int:item_id>/events")
@require_operator
def list_events_route(item_id: int):
    try:
        limit = get_int(request.args, "limit", default=200, minimum=1)
        events = stock_service.list_events(item_id, limit=min(limit, 1000))
        return jsonify({"events": [event.to_dict() for event in events]}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@stock_bp.get("/low")
@require_operator
def low_stock_route():
    low = stock_service.low_stock_items()
    out = stock_service.out_of_stock_items()
    return jsonify({
        "low_stock": [item.to_dict() for item in low],
        "out_of_stock": [item.to_dict() for item in out],
    }), 200


@stock_bp.get("/audit")
@require_operator
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def stock_audit_route():
    try:
        return jsonify({"items": stock_service.stock_audit()}), 200
    except Exception:
        current_app.logger.exception("Failed to build stock audit")
        return jsonify({"error": "Internal server error"}), 500
