# Overview: Cashier session ledger; derives drawer state by replay and validates every transition.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from flask import current_app

from ..extensions import db, replay_cache
from ..models import LedgerEvent, Register
from ..models.ledger import OPEN, CLOSE, DEPOSIT, WITHDRAWAL
from ..errors import AlreadyOpenError, RegisterNotOpenError, InsufficientBalanceError
from ..validation import ValidationError, require_amount_cents, optional_text
from cashledger.time_utils import utcnow, to_utc_naive, to_utc_z
from . import event_store, register_service, sales_feed
from .concurrency import run_with_retry

"""
Cashier Session Ledger Invariants (authoritative)

- Status and balance are never stored; they are replayed from the register's
  append-only events (oldest first) plus cash sales since the last OPEN.
- CLOSED -> OPEN -> CLOSED ... is the only lifecycle; DEPOSIT and WITHDRAWAL
  are legal only while OPEN and never change the status.
- A WITHDRAWAL never exceeds the balance computed immediately before it.
- Every rule is checked before anything is written: a rejected operation
  appends nothing.
- Operations on one register are assumed to be serialized by the caller
  (one operator, one terminal). Nothing here stops two terminals racing
  past the CLOSED check on the same register.
"""

STATUS_OPEN = "OPEN"
STATUS_CLOSED = "CLOSED"


@dataclass(frozen=True)
class SessionState:
    """Result of folding a register's events; no sales included."""
    status: str
    balance_cents: int = 0
    open_event_id: Optional[int] = None
    opened_at: Optional[datetime] = None
    opening_cash_cents: Optional[int] = None
    opened_by: Optional[str] = None
    last_event_id: Optional[int] = None

    @property
    def is_open(self) -> bool:
        return self.status == STATUS_OPEN


@dataclass(frozen=True)
class SessionView:
    """Replayed session plus the cash sales folded in since it opened."""
    state: SessionState
    cash_sales_cents: int = 0

    @property
    def is_open(self) -> bool:
        return self.state.is_open

    @property
    def balance_cents(self) -> int:
        if not self.state.is_open:
            return 0
        return self.state.balance_cents + self.cash_sales_cents

    def to_dict(self) -> dict:
        return {
            "status": self.state.status,
            "is_open": self.is_open,
            "balance_cents": self.balance_cents,
            "ledger_balance_cents": self.state.balance_cents,
            "cash_sales_cents": self.cash_sales_cents,
            "opened_at": to_utc_z(self.state.opened_at),
            "opening_cash_cents": self.state.opening_cash_cents,
            "opened_by": self.state.opened_by,
            "last_event_id": self.state.last_event_id,
        }


# =============================================================================
# REPLAY
# =============================================================================

def _replay_order(event: LedgerEvent):
    return (event.occurred_at, event.id or 0)


def replay_events(events: Iterable[LedgerEvent]) -> SessionState:
    """
    Fold a register's events into its current session state.

    1. Order events by (occurred_at, id).
    2. Find the last OPEN; without one the drawer is CLOSED with balance 0.
    3. From that OPEN: OPEN sets the balance, DEPOSIT adds, WITHDRAWAL
       subtracts. A CLOSE after it ends the session (CLOSED, balance 0).

    Pure function: no database access, safe to memoize.
    """
    ordered = sorted(events, key=_replay_order)
    if not ordered:
        return SessionState(status=STATUS_CLOSED)

    last_event_id = max((e.id for e in ordered if e.id is not None), default=None)

    start = None
    for idx, event in enumerate(ordered):
        if event.kind == OPEN:
            start = idx

    if start is None:
        return SessionState(status=STATUS_CLOSED, last_event_id=last_event_id)

    opened = ordered[start]
    balance = 0
    for event in ordered[start:]:
        if event.kind == OPEN:
            balance = event.amount_cents
        elif event.kind == DEPOSIT:
            balance += event.amount_cents
        elif event.kind == WITHDRAWAL:
            balance -= event.amount_cents
        elif event.kind == CLOSE:
            return SessionState(status=STATUS_CLOSED, last_event_id=last_event_id)

    return SessionState(
        status=STATUS_OPEN,
        balance_cents=balance,
        open_event_id=opened.id,
        opened_at=opened.occurred_at,
        opening_cash_cents=opened.amount_cents,
        opened_by=opened.operator_id,
        last_event_id=last_event_id,
    )


def _replayed_state(register_id: int) -> SessionState:
    version = event_store.last_event_id(register_id)
    return replay_cache.get_or_compute(
        register_id,
        version,
        lambda: replay_events(event_store.list_events(register_id)),
    )


def _session_for(register_id: int) -> SessionView:
    state = _replayed_state(register_id)
    if not state.is_open:
        return SessionView(state=state)
    return SessionView(
        state=state,
        cash_sales_cents=sales_feed.cash_sales_total(register_id, state.opened_at),
    )


# =============================================================================
# READS
# =============================================================================

def get_session(register_id: int) -> SessionView:
    """Current derived session of a register (RegisterNotFound if absent)."""
    register_service.require_register(register_id)
    return _session_for(register_id)


def current_balance(register_id: int) -> int:
    """Opening float + deposits - withdrawals + cash sales since open; 0 when closed."""
    return get_session(register_id).balance_cents


def is_open(register_id: int) -> bool:
    register_service.require_register(register_id)
    return _replayed_state(register_id).is_open


def latest_event(register_id: int) -> LedgerEvent | None:
    register_service.require_register(register_id)
    return event_store.latest_event(register_id)


def events_for_register(register_id: int, *, since: datetime | None = None, until: datetime | None = None) -> list[LedgerEvent]:
    register_service.require_register(register_id)
    return event_store.list_events(register_id, since=since, until=until)


def events_for_operator(operator_id: str, *, since: datetime | None = None, until: datetime | None = None) -> list[LedgerEvent]:
    return event_store.list_events_for_operator(operator_id, since=since, until=until)


# =============================================================================
# TRANSITIONS
# =============================================================================

def _require_operator(operator_id) -> str:
    if operator_id is None or str(operator_id).strip() == "":
        raise ValidationError("operator_id required")
    return str(operator_id)


def _resolve_occurred_at(register_id: int, occurred_at: datetime | None) -> datetime:
    """
    Business time of the new event; never earlier than the register's latest.

    An explicit timestamp that would reorder history is rejected, as is one
    further ahead of the server clock than LEDGER_MAX_CLOCK_SKEW_SECONDS. The server
    clock stepping backwards is absorbed by pinning to the latest event.
    """
    latest = event_store.latest_event(register_id)
    latest_at = to_utc_naive(latest.occurred_at) if latest is not None else None
    if occurred_at is None:
        now = utcnow()
        if latest_at is not None and now < latest_at:
            return latest_at
        return now

    occurred_at = to_utc_naive(occurred_at)
    if latest_at is not None and occurred_at < latest_at:
        raise ValidationError("occurred_at cannot precede the register's latest ledger event")
    skew = timedelta(seconds=current_app.config.get("LEDGER_MAX_CLOCK_SKEW_SECONDS", 300))
    if occurred_at > utcnow() + skew:
        raise ValidationError("occurred_at is too far in the future")
    return occurred_at


def _append(event: LedgerEvent, register: Register, *, is_active: bool | None = None) -> LedgerEvent:
    """Write the event, its outbox entry and the register flag in one commit."""
    def _write():
        if is_active is not None:
            register.is_active = is_active
            register.updated_at = utcnow()
        event_store.append_event(event, commit=False)
        db.session.commit()
        return event

    run_with_retry(_write)
    event_store.invalidate_register(register.id)
    return event


def open_register(
    register_id: int,
    operator_id: str,
    opening_cash_cents: int,
    *,
    occurred_at: datetime | None = None,
) -> LedgerEvent:
    """
    Open the drawer with a starting float.

    Raises:
        RegisterNotFoundError: unknown register
        AlreadyOpenError: the register's current session is open
    """
    opening_cash_cents = require_amount_cents("opening_cash_cents", opening_cash_cents)
    operator_id = _require_operator(operator_id)
    register = register_service.require_register(register_id)

    state = _replayed_state(register.id)
    if state.is_open:
        raise AlreadyOpenError(
            f"Register {register.register_number} is already open (since {to_utc_z(state.opened_at)})",
            register_id=register.id,
            opened_at=to_utc_z(state.opened_at),
            opened_by=state.opened_by,
        )

    event = LedgerEvent(
        register_id=register.id,
        operator_id=operator_id,
        kind=OPEN,
        amount_cents=opening_cash_cents,
        opening_cash_cents=opening_cash_cents,
        occurred_at=_resolve_occurred_at(register.id, occurred_at),
    )
    _append(event, register, is_active=True)

    current_app.logger.info(
        "Register %s opened by %s with %s cents", register.id, operator_id, opening_cash_cents
    )
    return event


def deposit(
    register_id: int,
    operator_id: str,
    amount_cents: int,
    reason: str | None = None,
    *,
    occurred_at: datetime | None = None,
) -> LedgerEvent:
    """
    Add cash to an open drawer.

    Raises:
        RegisterNotOpenError: the drawer is closed
    """
    amount_cents = require_amount_cents("amount_cents", amount_cents, allow_zero=False)
    reason = optional_text("reason", reason)
    operator_id = _require_operator(operator_id)
    register = register_service.require_register(register_id)

    if not _replayed_state(register.id).is_open:
        raise RegisterNotOpenError(
            f"Register {register.register_number} must be open to receive a deposit",
            register_id=register.id,
        )

    event = LedgerEvent(
        register_id=register.id,
        operator_id=operator_id,
        kind=DEPOSIT,
        amount_cents=amount_cents,
        reason=reason,
        occurred_at=_resolve_occurred_at(register.id, occurred_at),
    )
    return _append(event, register)


def withdraw(
    register_id: int,
    operator_id: str,
    amount_cents: int,
    reason: str | None = None,
    *,
    occurred_at: datetime | None = None,
) -> LedgerEvent:
    """
    Remove cash from an open drawer, never more than it holds.

    Raises:
        RegisterNotOpenError: the drawer is closed
        InsufficientBalanceError: amount exceeds the current balance
    """
    amount_cents = require_amount_cents("amount_cents", amount_cents, allow_zero=False)
    reason = optional_text("reason", reason)
    operator_id = _require_operator(operator_id)
    register = register_service.require_register(register_id)

    session = _session_for(register.id)
    if not session.is_open:
        raise RegisterNotOpenError(
            f"Register {register.register_number} must be open to make a withdrawal",
            register_id=register.id,
        )

    balance = session.balance_cents
    if amount_cents > balance:
        raise InsufficientBalanceError(
            f"Insufficient balance: requested {amount_cents} cents, drawer holds {balance} cents",
            register_id=register.id,
            balance_cents=balance,
            requested_cents=amount_cents,
        )

    event = LedgerEvent(
        register_id=register.id,
        operator_id=operator_id,
        kind=WITHDRAWAL,
        amount_cents=amount_cents,
        reason=reason,
        occurred_at=_resolve_occurred_at(register.id, occurred_at),
    )
    return _append(event, register)


def close_register(
    register_id: int,
    operator_id: str,
    counted_cash_cents: int,
    discrepancy_reason: str | None = None,
    authorized_by: str | None = None,
    *,
    occurred_at: datetime | None = None,
) -> LedgerEvent:
    """
    Close the drawer with the cash actually counted.

    The expected balance is replayed before the CLOSE is written. When the
    count differs, the signed difference (counted - expected) is stored.
    On a shortage the reason and authorizer are stored exactly as given;
    they are not required (the authorization gate sits in front of this
    call) and are dropped for overages and exact counts.

    Raises:
        RegisterNotOpenError: the drawer is not open
    """
    counted_cash_cents = require_amount_cents("counted_cash_cents", counted_cash_cents)
    discrepancy_reason = optional_text("discrepancy_reason", discrepancy_reason)
    authorized_by = optional_text("authorized_by", authorized_by)
    operator_id = _require_operator(operator_id)
    register = register_service.require_register(register_id)

    session = _session_for(register.id)
    if not session.is_open:
        raise RegisterNotOpenError(
            f"Register {register.register_number} is not open",
            register_id=register.id,
        )

    expected = session.balance_cents
    difference = counted_cash_cents - expected
    shortage = difference < 0

    event = LedgerEvent(
        register_id=register.id,
        operator_id=operator_id,
        kind=CLOSE,
        amount_cents=counted_cash_cents,
        closing_cash_cents=counted_cash_cents,
        expected_cash_cents=expected,
        discrepancy_cents=difference if difference != 0 else None,
        discrepancy_reason=discrepancy_reason if shortage else None,
        authorized_by=authorized_by if shortage else None,
        occurred_at=_resolve_occurred_at(register.id, occurred_at),
    )
    _append(event, register, is_active=False)

    if difference == 0:
        current_app.logger.info("Register %s closed by %s, count matches", register.id, operator_id)
    elif shortage and not discrepancy_reason:
        current_app.logger.warning(
            "Register %s closed by %s short %s cents without a discrepancy reason",
            register.id, operator_id, -difference,
        )
    else:
        current_app.logger.info(
            "Register %s closed by %s with discrepancy %s cents (authorized by %s)",
            register.id, operator_id, difference, event.authorized_by,
        )
    return event
