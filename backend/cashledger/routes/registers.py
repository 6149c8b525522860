# Overview: Flask API routes for the register registry; parses input and returns JSON responses.

# backend/cashledger/routes/registers.py
"""
Register Registry API Routes

WHY: Terminals need to know which registers exist and who is responsible
for each drawer before any cash moves.

DESIGN:
- Register CRUD (delete is soft; a deleted register is gone from every view)
- Exclusive operator assignment, idempotent for the same operator
- Drawer status is attached from the ledger, never stored on the register
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..models import Register
from ..services import register_service, ledger_service
from ..errors import CashLedgerError
from ..validation import ValidationError, ModelValidationPolicy, validate_payload
from ..decorators import require_operator, json_body


registers_bp = Blueprint("registers", __name__, url_prefix="/api/registers")


REGISTER_POLICY = ModelValidationPolicy(
    writable_fields={"register_number", "name", "location", "is_active"},
    required_on_create={"register_number", "name"},
)


def _register_with_session(register: Register) -> dict:
    data = register.to_dict()
    data["session"] = ledger_service.get_session(register.id).to_dict()
    return data


# =============================================================================
# REGISTER MANAGEMENT
# =============================================================================

@registers_bp.post("/")
@registers_bp.post("")
@require_operator
def create_register_route():
    """
    Create a new register.

    Request body:
    {
        "register_number": "REG-01",
        "name": "Front Counter 1",
        "location": "Front of store"  // optional
    }
    """
    try:
        patch = validate_payload(model=Register, payload=json_body(), policy=REGISTER_POLICY, partial=False)
        register = register_service.create_register(**patch)
        return jsonify({"register": register.to_dict()}), 201

    except CashLedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create register")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/")
@registers_bp.get("")
def list_registers_route():
    """
    List live registers with their derived session.

    Query params:
    - available: 1 to list only registers with no assigned operator
    - active: 1 to hide inactive registers
    """
    available = request.args.get("available", "0").lower() in ("1", "true")
    active_only = request.args.get("active", "0").lower() in ("1", "true")

    try:
        if available:
            registers = register_service.list_available()
        else:
            registers = register_service.list_registers(include_inactive=not active_only)

        return jsonify({
            "registers": [_register_with_session(r) for r in registers]
        }), 200

    except Exception:
        current_app.logger.exception("Failed to list registers")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/<int:register_id>")
def get_register_route(register_id: int):
    try:
        register = register_service.require_register(register_id)
        return jsonify({"register": _register_with_session(register)}), 200

    except CashLedgerError as e:
        return jsonify(e.to_dict()), e.http_status


@registers_bp.patch("/<int:register_id>")
@require_operator
def update_register_route(register_id: int):
    """
    Partially update a register's metadata.

    Request body (all optional):
    {
        "name": "Updated Name",
        "register_number": "REG-02",
        "location": "New Location",
        "is_active": true
    }
    """
    try:
        patch = validate_payload(model=Register, payload=json_body(), policy=REGISTER_POLICY, partial=True)
        register = register_service.update_register(register_id, **patch)
        return jsonify({"register": register.to_dict()}), 200

    except CashLedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update register")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.delete("/<int:register_id>")
@require_operator
def delete_register_route(register_id: int):
    """Soft-delete a register. Deleting an absent register reports deleted=false."""
    try:
        deleted = register_service.delete_register(register_id)
        return jsonify({"deleted": deleted}), 200

    except Exception:
        current_app.logger.exception("Failed to delete register")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# OPERATOR ASSIGNMENT
# =============================================================================

@registers_bp.post("/<int:register_id>/assign")
@require_operator
def assign_operator_route(register_id: int):
    """
    Assign an operator to a register.

    Request body (optional; defaults to the calling operator):
    {
        "operator_id": "op-42",
        "operator_name": "Ana"
    }
    """
    data = json_body()
    operator_id = data.get("operator_id") or g.operator_id
    operator_name = data.get("operator_name") or (g.operator_name if operator_id == g.operator_id else None)

    try:
        register = register_service.assign_operator(register_id, str(operator_id), operator_name)
        return jsonify({"register": register.to_dict()}), 200

    except CashLedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to assign operator")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.post("/<int:register_id>/unassign")
@require_operator
def unassign_operator_route(register_id: int):
    try:
        register = register_service.unassign_operator(register_id)
        return jsonify({"register": register.to_dict()}), 200

    except CashLedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to unassign operator")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/operators/<operator_id>")
def operator_register_route(operator_id: str):
    """The register an operator is currently assigned to."""
    register = register_service.get_operator_register(operator_id)
    if register is None:
        return jsonify({"error": "Operator has no register", "code": "RegisterNotFound"}), 404
    return jsonify({"register": _register_with_session(register)}), 200
