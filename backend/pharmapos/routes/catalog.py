# Overview: Flask API routes for the catalog; parses input and returns JSON responses.

# backend/pharmapos/routes/catalog.py
"""
Catalog routes.

Reads are open to every operator. Creating items and repricing require an
admin, manager or pharmacist.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_operator, require_role
from ..errors import PosError
from ..identity import ROLE_ADMIN, ROLE_MANAGER, ROLE_PHARMACIST
from ..services import catalog_service
from ..services.pricing_service import format_markup
from ..validation import get_bool, get_cents, get_date, get_int, get_str, parse_units

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/catalog")

CATALOG_WRITERS = (ROLE_ADMIN, ROLE_MANAGER, ROLE_PHARMACIST)


def _item_payload(item) -> dict:
    data = item.to_dict()
    base = item.base_unit
    data["markup"] = format_markup(item.cost_price_cents or 0, base.price_cents) if base else "N/A"
    return data


@catalog_bp.get("/items")
@require_operator
def list_items_route():
    """
    Query params:
    - search: str (optional) - matches name or generic name
    - category: str (optional)
    - in_stock: bool (optional) - only items with stock on hand
    - include_inactive: bool (optional)
    """
    try:
        items = catalog_service.list_items(
            search=request.args.get("search"),
            category=request.args.get("category"),
            in_stock_only=get_bool(request.args, "in_stock", default=False),
            include_inactive=get_bool(request.args, "include_inactive", default=False),
        )
        return jsonify({"items": [_item_payload(item) for item in items]}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list catalog items")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.post("/items")
@require_operator
@require_role(*CATALOG_WRITERS)
def create_item_route():
    """
    Create a catalog item.

    Body:
    - name (required), generic_name, category, manufacturer, batch_number,
      expiry_date (YYYY-MM-DD), reorder_level, cost_price_cents
    - units (required): [{type, base_quantity, price_cents}]
    - source_unit_type + source_price_cents: derive all unit prices from one unit
    - opening_quantity: base units booked as a PURCHASE event
    """
    payload = request.get_json(silent=True) or {}

    try:
        source_unit_type = get_str(payload, "source_unit_type", max_length=32)
        item = catalog_service.create_item(
            name=get_str(payload, "name", required=True),
            units=parse_units(payload.get("units")),
            category=get_str(payload, "category") or "General",
            generic_name=get_str(payload, "generic_name"),
            manufacturer=get_str(payload, "manufacturer"),
            batch_number=get_str(payload, "batch_number", max_length=64),
            expiry_date=get_date(payload, "expiry_date"),
            reorder_level=get_int(payload, "reorder_level", minimum=0),
            cost_price_cents=get_cents(payload, "cost_price_cents"),
            source_unit_type=source_unit_type,
            source_price_cents=get_cents(payload, "source_price_cents", required=bool(source_unit_type), default=None),
            opening_quantity=get_int(payload, "opening_quantity", default=0, minimum=0),
            performed_by=g.operator.display_name,
            performed_by_role=g.operator.role,
        )
        return jsonify({"item": _item_payload(item)}), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create catalog item")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/items/<int:item_id>")
@require_operator
def get_item_route(item_id: int):
    try:
        item = catalog_service.get_item(item_id)
        return jsonify({"item": _item_payload(item)}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@catalog_bp.post("/items/<int:item_id>/prices")
@require_operator
@require_role(*CATALOG_WRITERS)
def reprice_item_route(item_id: int):
    """Re-derive every unit price from {source_unit_type, source_price_cents}."""
    payload = request.get_json(silent=True) or {}

    try:
        item = catalog_service.reprice_item(
            item_id,
            source_unit_type=get_str(payload, "source_unit_type", required=True, max_length=32),
            source_price_cents=get_cents(payload, "source_price_cents", required=True),
        )
        current_app.logger.info("Item %s repriced by %s", item_id, g.operator.operator_id)
        return jsonify({"item": _item_payload(item)}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reprice catalog item")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/categories")
@require_operator
def list_categories_route():
    return jsonify({"categories": catalog_service.list_categories()}), 200
