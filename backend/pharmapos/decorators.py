# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .identity import OperatorContext, VALID_ROLES, ROLE_CASHIER

OPERATOR_ID_HEADER = "X-Operator-Id"
OPERATOR_NAME_HEADER = "X-Operator-Name"
OPERATOR_ROLE_HEADER = "X-Operator-Role"


def require_operator(f):
    """
    Require an operator identity and expose it as g.operator.

    Authentication itself happens in front of this service; the session
    layer forwards who is at the till in these headers:
    - X-Operator-Id (required): scopes the cart, stamps cashier_id
    - X-Operator-Name: stamps cashier_name / performed_by
    - X-Operator-Role: admin, manager, pharmacist or cashier (default cashier)

    Returns 401 without an operator id, 400 for an unknown role.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        operator_id = (request.headers.get(OPERATOR_ID_HEADER) or "").strip()
        if not operator_id:
            return jsonify({"error": "Operator identity required"}), 401

        role = (request.headers.get(OPERATOR_ROLE_HEADER) or ROLE_CASHIER).strip().lower()
        if role not in VALID_ROLES:
            return jsonify({"error": f"Unknown operator role: {role}"}), 400

        g.operator = OperatorContext(
            operator_id=operator_id,
            name=(request.headers.get(OPERATOR_NAME_HEADER) or "").strip() or None,
            role=role,
        )
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Restrict a route to the given operator roles (use after require_operator)."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            operator = getattr(g, "operator", None)
            if operator is None:
                return jsonify({"error": "Operator identity required"}), 401
            if operator.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "details": {"required_roles": list(roles), "role": operator.role},
                }), 403
            return f(*args, **kwargs)

        return decorated_function

    return decorator
