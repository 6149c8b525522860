# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


OPERATOR_ID_HEADER = "X-Operator-Id"
OPERATOR_NAME_HEADER = "X-Operator-Name"


def require_operator(f):
    """
    Require an operator identity and expose it to the route.

    Authentication happens upstream (login screens, PIN pads); by the time a
    request reaches this service the auth layer has resolved who is at the
    terminal and forwards it in headers. Sets:
    - g.operator_id: opaque operator identifier - REQUIRED
    - g.operator_name: display name, may be None

    Returns 401 if the operator header is missing or blank.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        operator_id = (request.headers.get(OPERATOR_ID_HEADER) or "").strip()

        if not operator_id:
            return jsonify({"error": "Operator identity required", "header": OPERATOR_ID_HEADER}), 401

        g.operator_id = operator_id
        g.operator_name = (request.headers.get(OPERATOR_NAME_HEADER) or "").strip() or None

        return f(*args, **kwargs)

    return decorated_function


def json_body() -> dict:
    """Request JSON as a dict; empty or non-object bodies become {}."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
