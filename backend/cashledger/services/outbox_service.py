# Overview: Outbox reconciler; drains locally queued ledger events to the remote store with backoff.

from __future__ import annotations

"""
Outbox Invariants

- Every local ledger append has exactly one outbox entry (same transaction).
- PENDING -> IN_FLIGHT -> ACKNOWLEDGED is the happy path; a failed push
  returns the entry to PENDING with attempts+1 and an exponential delay.
- IN_FLIGHT entries whose claim is older than the lease go back to PENDING
  (the reconciler that claimed them died mid-push).
- Failures here never reach ledger callers; the local log stays
  authoritative for this terminal.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import OutboxEntry
from ..models.ledger import OUTBOX_PENDING, OUTBOX_IN_FLIGHT, OUTBOX_ACKNOWLEDGED
from cashledger.time_utils import utcnow, to_utc_z
from .concurrency import lock_for_update, backoff_delay
from .remote_store import RemoteEventStore, RemoteStoreError


@dataclass
class DrainResult:
    acknowledged: int = 0
    failed: int = 0
    recovered: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "acknowledged": self.acknowledged,
            "failed": self.failed,
            "recovered": self.recovered,
            "errors": self.errors,
        }


def recover_stale_claims(*, now: datetime | None = None, lease_seconds: int | None = None) -> int:
    """Return IN_FLIGHT entries whose claim outlived the lease to PENDING."""
    now = now or utcnow()
    if lease_seconds is None:
        lease_seconds = current_app.config.get("OUTBOX_LEASE_SECONDS", 60)
    cutoff = now - timedelta(seconds=lease_seconds)

    stale = db.session.query(OutboxEntry).filter(
        OutboxEntry.status == OUTBOX_IN_FLIGHT,
        OutboxEntry.claimed_at < cutoff,
    ).all()
    for entry in stale:
        entry.status = OUTBOX_PENDING
        entry.claimed_at = None
        entry.next_attempt_at = now
    if stale:
        db.session.commit()
    return len(stale)


def claim_due_entries(*, now: datetime | None = None, batch_size: int | None = None) -> list[OutboxEntry]:
    """Mark up to batch_size due PENDING entries IN_FLIGHT, oldest first."""
    now = now or utcnow()
    if batch_size is None:
        batch_size = current_app.config.get("OUTBOX_BATCH_SIZE", 50)

    entries = lock_for_update(
        db.session.query(OutboxEntry).filter(
            OutboxEntry.status == OUTBOX_PENDING,
            OutboxEntry.next_attempt_at <= now,
        ).order_by(OutboxEntry.id.asc()).limit(batch_size)
    ).all()

    for entry in entries:
        entry.status = OUTBOX_IN_FLIGHT
        entry.claimed_at = now
    db.session.commit()
    return entries


def _mark_acknowledged(entry: OutboxEntry, now: datetime) -> None:
    entry.status = OUTBOX_ACKNOWLEDGED
    entry.acknowledged_at = now
    entry.claimed_at = None
    entry.last_error = None


def _mark_failed(entry: OutboxEntry, now: datetime, error: str) -> None:
    config = current_app.config
    delay = backoff_delay(
        entry.attempts,
        base=config.get("OUTBOX_BACKOFF_BASE", 2.0),
        cap=config.get("OUTBOX_BACKOFF_MAX", 300),
    )
    entry.attempts += 1
    entry.status = OUTBOX_PENDING
    entry.claimed_at = None
    entry.last_error = error
    entry.next_attempt_at = now + timedelta(seconds=delay)


def drain_outbox(remote, *, batch_size: int | None = None, now: datetime | None = None) -> DrainResult:
    """
    Push due outbox entries to the remote store.

    Each entry is acknowledged or rescheduled individually, so one bad event
    does not hold back the rest of the batch.
    """
    now = now or utcnow()
    result = DrainResult()
    result.recovered = recover_stale_claims(now=now)

    for entry in claim_due_entries(now=now, batch_size=batch_size):
        try:
            remote.append_event(entry.payload)
        except RemoteStoreError as exc:
            _mark_failed(entry, now, str(exc))
            result.failed += 1
            result.errors.append(f"{entry.event_uid}: {exc}")
            current_app.logger.warning(
                "Outbox push failed for %s (attempt %s): %s", entry.event_uid, entry.attempts, exc
            )
        else:
            _mark_acknowledged(entry, now)
            result.acknowledged += 1
        db.session.commit()

    if result.acknowledged or result.failed:
        current_app.logger.info(
            "Outbox drain: %s acknowledged, %s failed", result.acknowledged, result.failed
        )
    return result


def outbox_status() -> dict:
    counts = dict(
        db.session.query(OutboxEntry.status, func.count(OutboxEntry.id))
        .group_by(OutboxEntry.status)
        .all()
    )
    oldest_pending = db.session.query(func.min(OutboxEntry.created_at)).filter(
        OutboxEntry.status == OUTBOX_PENDING
    ).scalar()
    return {
        "pending": counts.get(OUTBOX_PENDING, 0),
        "in_flight": counts.get(OUTBOX_IN_FLIGHT, 0),
        "acknowledged": counts.get(OUTBOX_ACKNOWLEDGED, 0),
        "oldest_pending_at": to_utc_z(oldest_pending),
    }


def list_entries(status: str | None = None, *, limit: int = 100) -> list[OutboxEntry]:
    q = db.session.query(OutboxEntry)
    if status:
        q = q.filter(OutboxEntry.status == status)
    return q.order_by(OutboxEntry.id.desc()).limit(limit).all()


# =============================================================================
# BACKGROUND RECONCILER
# =============================================================================

def start_reconciler(app, remote: RemoteEventStore | None = None) -> threading.Event | None:
    """
    Drain the outbox every OUTBOX_DRAIN_INTERVAL seconds on a daemon thread.

    Returns the stop event, or None when no remote store is configured.
    """
    remote = remote or RemoteEventStore.from_config(app.config)
    if remote is None:
        app.logger.info("No remote store configured; outbox reconciler not started")
        return None

    interval = app.config.get("OUTBOX_DRAIN_INTERVAL", 30)
    stop = threading.Event()

    def _loop():
        while not stop.is_set():
            with app.app_context():
                try:
                    drain_outbox(remote)
                except Exception:
                    db.session.rollback()
                    app.logger.exception("Outbox reconciler pass failed")
                finally:
                    db.session.remove()
            stop.wait(interval)

    thread = threading.Thread(target=_loop, name="cashledger-outbox", daemon=True)
    thread.start()
    app.logger.info("Outbox reconciler started (every %ss)", interval)
    return stop
