# backend/cashledger/routes/system.py
"""
System health, version and outbox endpoints.

Health covers the local store and the outbox backlog; the remote store is
reported but never makes the terminal unhealthy, since the ledger works
offline.
"""

import sys
import time
from flask import Blueprint, current_app, jsonify, request
from ..extensions import db, replay_cache
from ..models import Register, LedgerEvent
from ..services import outbox_service
from ..services.remote_store import RemoteEventStore
from cashledger.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        register_count = db.session.query(Register).filter(Register.deleted_at.is_(None)).count()
        event_count = db.session.query(LedgerEvent).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "registers": register_count,
                "ledger_events": event_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_outbox_health() -> dict:
    """
    Outbox backlog. Pending entries are normal offline; the check degrades
    when a remote store is configured and entries are stuck retrying.
    """
    start_time = time.time()
    try:
        status = outbox_service.outbox_status()
        remote_configured = bool(current_app.config.get("REMOTE_STORE_URL"))
        elapsed_ms = (time.time() - start_time) * 1000

        result = {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {**status, "remote_configured": remote_configured},
        }
        if remote_configured and status["pending"]:
            result["status"] = "degraded"
            result["warning"] = f"{status['pending']} ledger events not yet acknowledged by the remote store"
        return result
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Outbox health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Outbox error"
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: local store unusable
    """
    start_time = time.time()

    database_health = check_database_health()
    outbox_health = check_outbox_health()

    all_checks = [database_health, outbox_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200  # Degraded is still operational
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "outbox": outbox_health,
            "replay_cache": {
                "status": "healthy",
                "enabled": replay_cache.enabled,
                "entries": len(replay_cache),
                "hits": replay_cache.hits,
                "misses": replay_cache.misses,
            },
        }
    }, http_status


@system_bp.get("/version")
def version():
    """
    Non-sensitive deployment information. Does NOT expose secret keys,
    database credentials or the remote store token.
    """
    env = "production" if not current_app.debug else "development"

    return {
        "api_version": "1.0.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }


@system_bp.get("/api/outbox")
def outbox_route():
    """
    Outbox counts plus the most recent entries.

    Query params:
    - status: PENDING | IN_FLIGHT | ACKNOWLEDGED
    - limit: default 50
    """
    status = request.args.get("status")
    limit = request.args.get("limit", 50, type=int)

    return jsonify({
        "status": outbox_service.outbox_status(),
        "entries": [e.to_dict() for e in outbox_service.list_entries(status, limit=limit)],
    }), 200


@system_bp.post("/api/outbox/drain")
def drain_outbox_route():
    """Run one reconciler pass now. 409 when no remote store is configured."""
    remote = RemoteEventStore.from_config(current_app.config)
    if remote is None:
        return jsonify({"error": "No remote store configured", "code": "RemoteStoreNotConfigured"}), 409

    try:
        with remote:
            result = outbox_service.drain_outbox(remote)
        return jsonify(result.to_dict()), 200
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Outbox drain failed")
        return jsonify({"error": "Internal server error"}), 500
