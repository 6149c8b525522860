# Overview: Durable ledger event log; local append with a transactional outbox entry, ordered reads.

from __future__ import annotations

"""
Ledger Event Store

The session ledger talks to storage only through this module:
- append_event(): local insert + outbox entry in one transaction
- list_events() / list_events_for_operator(): ordered local reads
- pull_remote_events(): import events other terminals pushed upstream

No network I/O happens on the append path. Pushing to the remote store is
the outbox reconciler's job (outbox_service), so a terminal with no
connectivity keeps working and catches up later.
"""

import uuid
from datetime import datetime

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db, replay_cache
from ..models import LedgerEvent, OutboxEntry, Register
from ..models.ledger import OUTBOX_PENDING
from cashledger.time_utils import utcnow
from .concurrency import run_with_retry
from .remote_store import RemoteStoreError


def new_event_uid() -> str:
    return str(uuid.uuid4())


def append_event(event: LedgerEvent, *, commit: bool = True) -> LedgerEvent:
    """
    Append an event to the local log and queue it for the remote store.

    commit=False lets the caller bundle other row changes (e.g. the
    register's is_active flag) into the same transaction; the caller must
    then commit and call invalidate_register().
    """
    if not event.event_uid:
        event.event_uid = new_event_uid()
    if event.occurred_at is None:
        event.occurred_at = utcnow()

    def _write():
        db.session.add(event)
        db.session.flush()  # assigns event.id
        db.session.add(OutboxEntry(
            event_uid=event.event_uid,
            payload=event.to_payload(),
            status=OUTBOX_PENDING,
            attempts=0,
            next_attempt_at=event.occurred_at,
        ))
        if commit:
            db.session.commit()
        else:
            db.session.flush()
        return event

    if commit:
        run_with_retry(_write)
        invalidate_register(event.register_id)
        return event
    return _write()


def invalidate_register(register_id: int) -> None:
    replay_cache.invalidate(register_id)


def _ordered(query):
    return query.order_by(LedgerEvent.occurred_at.asc(), LedgerEvent.id.asc())


def list_events(register_id: int, *, since: datetime | None = None, until: datetime | None = None) -> list[LedgerEvent]:
    """All events of one register, oldest first."""
    q = db.session.query(LedgerEvent).filter(LedgerEvent.register_id == register_id)
    if since is not None:
        q = q.filter(LedgerEvent.occurred_at >= since)
    if until is not None:
        q = q.filter(LedgerEvent.occurred_at <= until)
    return _ordered(q).all()


def list_events_for_operator(operator_id: str, *, since: datetime | None = None, until: datetime | None = None) -> list[LedgerEvent]:
    """Everything one operator did, across registers, oldest first."""
    q = db.session.query(LedgerEvent).filter(LedgerEvent.operator_id == operator_id)
    if since is not None:
        q = q.filter(LedgerEvent.occurred_at >= since)
    if until is not None:
        q = q.filter(LedgerEvent.occurred_at <= until)
    return _ordered(q).all()


def list_all_events(*, since: datetime | None = None, until: datetime | None = None) -> list[LedgerEvent]:
    q = db.session.query(LedgerEvent)
    if since is not None:
        q = q.filter(LedgerEvent.occurred_at >= since)
    if until is not None:
        q = q.filter(LedgerEvent.occurred_at <= until)
    return _ordered(q).all()


def last_event_id(register_id: int) -> int | None:
    """Highest local id for the register; the replay cache version."""
    return db.session.query(func.max(LedgerEvent.id)).filter(
        LedgerEvent.register_id == register_id
    ).scalar()


def latest_event(register_id: int) -> LedgerEvent | None:
    return db.session.query(LedgerEvent).filter(
        LedgerEvent.register_id == register_id
    ).order_by(LedgerEvent.occurred_at.desc(), LedgerEvent.id.desc()).first()


def pull_remote_events(remote, register_id: int) -> int:
    """
    Import events the remote store has but this terminal does not.

    Imported rows are marked origin="remote" and get no outbox entry (they
    are already upstream). Returns the number of events imported.
    """
    register = db.session.get(Register, register_id)
    if register is None:
        return 0

    payloads = remote.list_events(register_id)

    # event_uid is unique across all registers, not just this one
    offered = {p.get("event_uid") for p in payloads if isinstance(p, dict) and p.get("event_uid")}
    known = {
        uid for (uid,) in db.session.query(LedgerEvent.event_uid).filter(
            LedgerEvent.event_uid.in_(offered)
        )
    } if offered else set()

    imported = 0
    for payload in payloads:
        if not isinstance(payload, dict) or payload.get("event_uid") in known:
            continue
        try:
            event = LedgerEvent.from_payload(payload, origin="remote")
        except (KeyError, ValueError, TypeError) as exc:
            current_app.logger.warning("Skipping malformed remote event for register %s: %s", register_id, exc)
            continue
        if event.register_id != register_id:
            continue
        db.session.add(event)
        known.add(event.event_uid)
        imported += 1

    if imported:
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise RemoteStoreError(
                f"Remote events for register {register_id} conflict with the local ledger; nothing imported"
            ) from exc
        invalidate_register(register_id)
        current_app.logger.info("Imported %s remote ledger event(s) for register %s", imported, register_id)
    return imported
