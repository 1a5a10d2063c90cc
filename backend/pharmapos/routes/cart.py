# Overview: Flask API routes for the operator's cart; parses input and returns JSON responses.

# backend/pharmapos/routes/cart.py
"""
Cart routes. Every route works on the calling operator's own cart
(X-Operator-Id); carts are never shared between operators.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_operator
from ..errors import PosError
from ..services import cart_service, prescription_service
from ..validation import get_int, get_str

cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


def _cart_response(status: int = 200, **extra):
    body = {"cart": cart_service.get_cart(g.operator).to_dict()}
    body.update(extra)
    return jsonify(body), status


@cart_bp.get("")
@require_operator
def get_cart_route():
    return _cart_response()


@cart_bp.delete("")
@require_operator
def clear_cart_route():
    cart_service.clear_cart(g.operator)
    return _cart_response()


@cart_bp.put("/customer")
@require_operator
def set_customer_route():
    """Body: {customer_name?, customer_phone?}; blank values clear the customer."""
    payload = request.get_json(silent=True) or {}
    try:
        cart_service.set_customer(
            g.operator,
            get_str(payload, "customer_name"),
            get_str(payload, "customer_phone", max_length=32),
        )
        return _cart_response()
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@cart_bp.put("/payment-method")
@require_operator
def set_payment_method_route():
    """Body: {payment_method}; used by checkout when the request names none."""
    payload = request.get_json(silent=True) or {}
    try:
        cart_service.set_payment_method(g.operator, get_str(payload, "payment_method", max_length=32))
        return _cart_response()
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@cart_bp.post("/lines")
@require_operator
def add_line_route():
    """
    Add an item to the cart.

    Body: {item_id, unit_type, quantity?}. quantity defaults to 1 and is
    added to an existing line for the same item and unit. Stock is not
    checked here; checkout does that.
    """
    payload = request.get_json(silent=True) or {}
    try:
        line = cart_service.add_line(
            g.operator,
            get_int(payload, "item_id", required=True),
            get_str(payload, "unit_type", required=True, max_length=32),
            get_int(payload, "quantity", default=1),
        )
        return _cart_response(201, line=line.to_dict() if line else None)
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add cart line")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.patch("/lines/<line_id>")
@require_operator
def adjust_line_route(line_id: str):
    """Body: {delta}. A line brought to zero or below is removed."""
    payload = request.get_json(silent=True) or {}
    try:
        line = cart_service.adjust_quantity(g.operator, line_id, get_int(payload, "delta", required=True))
        return _cart_response(line=line.to_dict() if line else None)
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@cart_bp.delete("/lines/<line_id>")
@require_operator
def remove_line_route(line_id: str):
    try:
        cart_service.remove_line(g.operator, line_id)
        return _cart_response()
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@cart_bp.post("/prescriptions/<int:prescription_id>")
@require_operator
def load_prescription_route(prescription_id: int):
    """
    Replace the cart with a resolved prescription.

    The response lists the resolved lines (with any shortfall against
    stock) and the medicines that could not be matched.
    """
    try:
        resolution = prescription_service.load_into_cart(g.operator, prescription_id)
        return _cart_response(resolution=resolution.to_dict())
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load prescription into cart")
        return jsonify({"error": "Internal server error"}), 500
