# Overview: Flask API routes for checkout and sales; parses input and returns JSON responses.

# backend/pharmapos/routes/checkout.py
"""
Checkout and sale routes.

POST /api/checkout commits the operator's cart. A stock race answers 409
with the failed line, the lines already deducted and the sale id; a
manager can then compensate the FAILED sale.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_operator, require_role
from ..errors import PosError
from ..identity import ROLE_ADMIN, ROLE_MANAGER, ROLE_CASHIER
from ..services import checkout_service
from ..validation import get_bool, get_cents, get_int, get_str

checkout_bp = Blueprint("checkout", __name__, url_prefix="/api")


@checkout_bp.post("/checkout")
@require_operator
def checkout_route():
    """
    Body:
    - payment_method: cash, mpesa, card or a deferred method (default: cart's, then cash)
    - discount_cents / discount: whole-sale discount, at most the subtotal
    - tax_cents / tax: tax amount added to the total
    - accept_partial: keep the deducted lines if stock runs out mid-way
    """
    payload = request.get_json(silent=True) or {}

    try:
        result = checkout_service.checkout(
            g.operator,
            payment_method=get_str(payload, "payment_method", max_length=32),
            discount_cents=get_cents(payload, "discount_cents"),
            tax_cents=get_cents(payload, "tax_cents"),
            accept_partial=get_bool(payload, "accept_partial"),
        )
        current_app.logger.info(
            "Sale %s committed by %s (%s)",
            result.sale.document_number, g.operator.operator_id, result.sale.status,
        )
        return jsonify(result.to_dict()), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Checkout failed")
        return jsonify({"error": "Internal server error"}), 500


@checkout_bp.get("/sales")
@require_operator
def list_sales_route():
    """
    Cashiers see their own sales; other roles may filter by cashier_id.
    """
    try:
        cashier_id = request.args.get("cashier_id")
        if g.operator.role == ROLE_CASHIER:
            cashier_id = g.operator.operator_id
        limit = get_int(request.args, "limit", default=100, minimum=1)
        sales = checkout_service.list_sales(cashier_id=cashier_id, limit=min(limit, 500))
        return jsonify({"sales": [sale.to_dict(include_lines=False) for sale in sales]}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@checkout_bp.get("/sales/<int:sale_id>")
@require_operator
def get_sale_route(sale_id: int):
    try:
        sale = checkout_service.get_sale(sale_id)
        return jsonify({"sale": sale.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@checkout_bp.post("/sales/<int:sale_id>/compensate")
@require_operator
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def compensate_sale_route(sale_id: int):
    """Return the stock of a FAILED sale's deducted lines."""
    try:
        sale = checkout_service.compensate_sale(sale_id, g.operator)
        return jsonify({"sale": sale.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to compensate sale")
        return jsonify({"error": "Internal server error"}), 500
