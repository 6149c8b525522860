from flask import Blueprint, jsonify, request, current_app

from cashledger.errors import CashLedgerError
from cashledger.services import reporting_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/cash-operations")
def cash_operations_report():
    """
    Query params:
    - start, end: ISO-8601 dates or datetimes (inclusive)
    - operator_id, register_id: optional filters
    - report_type: operations | closings | shortages
    """
    try:
        report = reporting_service.operations_report(
            start=request.args.get("start"),
            end=request.args.get("end"),
            operator_id=request.args.get("operator_id"),
            register_id=request.args.get("register_id", type=int),
            report_type=request.args.get("report_type", "operations"),
        )
        return jsonify(report), 200
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400


@reports_bp.get("/registers/<int:register_id>/history")
def register_history_report(register_id: int):
    try:
        return jsonify({
            "register_id": register_id,
            "days": reporting_service.register_history(register_id),
        }), 200
    except CashLedgerError as exc:
        return jsonify(exc.to_dict()), exc.http_status


@reports_bp.get("/registers/<int:register_id>/summary")
def register_summary_report(register_id: int):
    try:
        return jsonify(reporting_service.session_summary(register_id)), 200
    except CashLedgerError as exc:
        return jsonify(exc.to_dict()), exc.http_status
    except Exception:
        current_app.logger.exception("Failed to build session summary")
        return jsonify({"error": "Internal server error"}), 500
