# Overview: Flask API routes for the cash session ledger; parses input and returns JSON responses.

# backend/cashledger/routes/ledger.py
"""
Cash Session Ledger API Routes

WHY: Opening, funding, bleeding and closing a drawer are the only ways cash
state changes. Each call appends exactly one immutable ledger event or is
rejected without writing anything.

The acting operator comes from the X-Operator-Id header; the close
authorizer is whatever the client sends (the approval prompt lives in
the terminal UI).
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import ledger_service
from ..errors import CashLedgerError
from ..validation import ValidationError
from ..decorators import require_operator, json_body
from cashledger.time_utils import parse_iso_datetime


ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")


def _parse_time(key: str, value):
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be an ISO-8601 datetime")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{key} must be an ISO-8601 datetime")


def _event_response(event, status: int = 201):
    return jsonify({
        "event": event.to_dict(),
        "session": ledger_service.get_session(event.register_id).to_dict(),
    }), status


def _error_response(e: Exception, action: str):
    if isinstance(e, CashLedgerError):
        return jsonify(e.to_dict()), e.http_status
    if isinstance(e, ValidationError):
        return jsonify({"error": str(e)}), 400
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# TRANSITIONS
# =============================================================================

@ledger_bp.post("/<int:register_id>/open")
@require_operator
def open_register_route(register_id: int):
    """
    Open the drawer.

    Request body:
    {
        "opening_cash_cents": 10000,
        "occurred_at": "2024-05-01T08:00:00Z"  // optional
    }
    """
    data = json_body()
    try:
        event = ledger_service.open_register(
            register_id,
            g.operator_id,
            data.get("opening_cash_cents"),
            occurred_at=_parse_time("occurred_at", data.get("occurred_at")),
        )
        return _event_response(event)
    except Exception as e:
        return _error_response(e, "open register")


@ledger_bp.post("/<int:register_id>/deposit")
@require_operator
def deposit_route(register_id: int):
    """
    Add cash to an open drawer.

    Request body:
    {
        "amount_cents": 5000,
        "reason": "Change fund top-up"  // optional
    }
    """
    data = json_body()
    try:
        event = ledger_service.deposit(
            register_id,
            g.operator_id,
            data.get("amount_cents"),
            data.get("reason"),
            occurred_at=_parse_time("occurred_at", data.get("occurred_at")),
        )
        return _event_response(event)
    except Exception as e:
        return _error_response(e, "record deposit")


@ledger_bp.post("/<int:register_id>/withdraw")
@require_operator
def withdraw_route(register_id: int):
    """
    Remove cash from an open drawer (cash drop, bank run).

    Request body:
    {
        "amount_cents": 3000,
        "reason": "Safe drop"  // optional
    }
    """
    data = json_body()
    try:
        event = ledger_service.withdraw(
            register_id,
            g.operator_id,
            data.get("amount_cents"),
            data.get("reason"),
            occurred_at=_parse_time("occurred_at", data.get("occurred_at")),
        )
        return _event_response(event)
    except Exception as e:
        return _error_response(e, "record withdrawal")


@ledger_bp.post("/<int:register_id>/close")
@require_operator
def close_register_route(register_id: int):
    """
    Close the drawer with the counted cash.

    Request body:
    {
        "counted_cash_cents": 15000,
        "discrepancy_reason": "till miscount",  // kept on shortage only
        "authorized_by": "Manager B"            // kept on shortage only
    }

    Returns the CLOSE event, including expected_cash_cents and the signed
    discrepancy_cents when the count differs.
    """
    data = json_body()
    try:
        event = ledger_service.close_register(
            register_id,
            g.operator_id,
            data.get("counted_cash_cents"),
            data.get("discrepancy_reason"),
            data.get("authorized_by"),
            occurred_at=_parse_time("occurred_at", data.get("occurred_at")),
        )
        return _event_response(event)
    except Exception as e:
        return _error_response(e, "close register")


# =============================================================================
# READS
# =============================================================================

@ledger_bp.get("/<int:register_id>/balance")
def balance_route(register_id: int):
    try:
        session = ledger_service.get_session(register_id)
        return jsonify({
            "register_id": register_id,
            "is_open": session.is_open,
            "balance_cents": session.balance_cents,
        }), 200
    except Exception as e:
        return _error_response(e, "compute balance")


@ledger_bp.get("/<int:register_id>/session")
def session_route(register_id: int):
    try:
        session = ledger_service.get_session(register_id)
        return jsonify({"register_id": register_id, "session": session.to_dict()}), 200
    except Exception as e:
        return _error_response(e, "load session")


@ledger_bp.get("/<int:register_id>/latest")
def latest_event_route(register_id: int):
    try:
        event = ledger_service.latest_event(register_id)
        return jsonify({"event": event.to_dict() if event else None}), 200
    except Exception as e:
        return _error_response(e, "load latest event")


@ledger_bp.get("/<int:register_id>/events")
def register_events_route(register_id: int):
    """
    A register's ledger, oldest first.

    Query params:
    - since, until: ISO-8601 bounds on occurred_at (inclusive)
    """
    try:
        events = ledger_service.events_for_register(
            register_id,
            since=_parse_time("since", request.args.get("since")),
            until=_parse_time("until", request.args.get("until")),
        )
        return jsonify({"events": [e.to_dict() for e in events]}), 200
    except Exception as e:
        return _error_response(e, "list register events")


@ledger_bp.get("/operators/<operator_id>/events")
def operator_events_route(operator_id: str):
    """Every ledger event an operator performed, across registers, oldest first."""
    try:
        events = ledger_service.events_for_operator(
            operator_id,
            since=_parse_time("since", request.args.get("since")),
            until=_parse_time("until", request.args.get("until")),
        )
        return jsonify({"events": [e.to_dict() for e in events]}), 200
    except Exception as e:
        return _error_response(e, "list operator events")
