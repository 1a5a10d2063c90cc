# Overview: Flask API routes for credit accounts; parses input and returns JSON responses.

# backend/pharmapos/routes/credit.py
"""Credit account routes: listing, summary and partial payments."""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_operator
from ..errors import PosError
from ..services import credit_service
from ..validation import get_cents, get_str

credit_bp = Blueprint("credit", __name__, url_prefix="/api/credit")


@credit_bp.get("")
@require_operator
def list_accounts_route():
    """
    Query params:
    - status: PENDING, PARTIAL, PAID or UNPAID (PENDING + PARTIAL)
    """
    try:
        accounts = credit_service.list_accounts(request.args.get("status"))
        return jsonify({"accounts": [account.to_dict() for account in accounts]}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@credit_bp.get("/summary")
@require_operator
def credit_summary_route():
    return jsonify({"summary": credit_service.credit_summary()}), 200


@credit_bp.get("/<int:account_id>")
@require_operator
def get_account_route(account_id: int):
    try:
        account = credit_service.get_account(account_id)
        return jsonify({"account": account.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@credit_bp.post("/<int:account_id>/payments")
@require_operator
def record_payment_route(account_id: int):
    """
    Record a payment against a credit account.

    Body: {amount_cents | amount, method}; method is cash, mpesa or card.
    Errors carry the account's current balance_cents and status.
    """
    payload = request.get_json(silent=True) or {}

    try:
        account = credit_service.record_payment(
            account_id,
            get_cents(payload, "amount_cents", required=True),
            get_str(payload, "method", required=True, max_length=32),
            received_by=g.operator.display_name,
        )
        return jsonify({"account": account.to_dict()}), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record credit payment")
        return jsonify({"error": "Internal server error"}), 500
