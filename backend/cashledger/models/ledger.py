from __future__ import annotations

from ..extensions import db
from cashledger.time_utils import to_utc_z, parse_iso_datetime

# Event kinds
OPEN = "OPEN"
CLOSE = "CLOSE"
DEPOSIT = "DEPOSIT"
WITHDRAWAL = "WITHDRAWAL"
EVENT_KINDS = (OPEN, CLOSE, DEPOSIT, WITHDRAWAL)

# Outbox lifecycle
OUTBOX_PENDING = "PENDING"
OUTBOX_IN_FLIGHT = "IN_FLIGHT"
OUTBOX_ACKNOWLEDGED = "ACKNOWLEDGED"


class LedgerEvent(db.Model):
    """
    One entry in a register's cash ledger.

    APPEND-ONLY: rows are inserted by event_store.append_event and never
    updated or deleted. Session status and balance are replayed from these
    rows in (occurred_at, id) order.

    EVENT KINDS:
    - OPEN: drawer opened with amount_cents as the opening float
    - DEPOSIT: cash added to the drawer
    - WITHDRAWAL: cash removed from the drawer
    - CLOSE: final count; amount_cents is the counted cash

    event_uid is the identity shared with the remote store; id is the local
    insertion order and doubles as the replay cache version.
    """
    __tablename__ = "cash_ledger_events"
    __table_args__ = (
        db.Index("ix_cash_ledger_register_occurred", "register_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_uid = db.Column(db.String(36), nullable=False, unique=True)
    register_id = db.Column(db.Integer, db.ForeignKey("registers.id"), nullable=False, index=True)
    operator_id = db.Column(db.String(64), nullable=False, index=True)

    kind = db.Column(db.String(16), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False, default=0)
    reason = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    # Session snapshots
    opening_cash_cents = db.Column(db.Integer, nullable=True)  # OPEN
    closing_cash_cents = db.Column(db.Integer, nullable=True)  # CLOSE: counted
    expected_cash_cents = db.Column(db.Integer, nullable=True)  # CLOSE: replayed balance

    # Discrepancy (CLOSE only): counted - expected, set only when non-zero
    discrepancy_cents = db.Column(db.Integer, nullable=True)
    discrepancy_reason = db.Column(db.String(255), nullable=True)
    authorized_by = db.Column(db.String(255), nullable=True)

    origin = db.Column(db.String(16), nullable=False, default="local")
    recorded_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    register = db.relationship("Register", backref=db.backref("ledger_events", lazy=True))

    @property
    def is_shortage(self) -> bool:
        return self.kind == CLOSE and (self.discrepancy_cents or 0) < 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_uid": self.event_uid,
            "register_id": self.register_id,
            "operator_id": self.operator_id,
            "kind": self.kind,
            "amount_cents": self.amount_cents,
            "reason": self.reason,
            "occurred_at": to_utc_z(self.occurred_at),
            "opening_cash_cents": self.opening_cash_cents,
            "closing_cash_cents": self.closing_cash_cents,
            "expected_cash_cents": self.expected_cash_cents,
            "discrepancy_cents": self.discrepancy_cents,
            "discrepancy_reason": self.discrepancy_reason,
            "authorized_by": self.authorized_by,
            "origin": self.origin,
        }

    def to_payload(self) -> dict:
        """Wire form pushed to the remote store (no local id)."""
        payload = self.to_dict()
        payload.pop("id")
        payload.pop("origin")
        return payload

    @classmethod
    def from_payload(cls, payload: dict, *, origin: str = "remote") -> "LedgerEvent":
        kind = payload["kind"]
        if kind not in EVENT_KINDS:
            raise ValueError(f"Unknown ledger event kind: {kind}")
        if not payload.get("event_uid"):
            raise ValueError("event_uid is required")
        occurred_at = parse_iso_datetime(payload["occurred_at"])
        if occurred_at is None:
            raise ValueError("occurred_at is required")
        return cls(
            event_uid=payload["event_uid"],
            register_id=int(payload["register_id"]),
            operator_id=str(payload["operator_id"]),
            kind=kind,
            amount_cents=int(payload.get("amount_cents") or 0),
            reason=payload.get("reason"),
            occurred_at=occurred_at,
            opening_cash_cents=payload.get("opening_cash_cents"),
            closing_cash_cents=payload.get("closing_cash_cents"),
            expected_cash_cents=payload.get("expected_cash_cents"),
            discrepancy_cents=payload.get("discrepancy_cents"),
            discrepancy_reason=payload.get("discrepancy_reason"),
            authorized_by=payload.get("authorized_by"),
            origin=origin,
        )


class OutboxEntry(db.Model):
    """
    Ledger event awaiting acknowledgement by the remote store.

    Written in the same transaction as its LedgerEvent so a local append
    can never be lost for sync purposes.

    LIFECYCLE:
    - PENDING: waiting for (another) push attempt at next_attempt_at
    - IN_FLIGHT: claimed by a reconciler; returns to PENDING if the claim
      outlives its lease
    - ACKNOWLEDGED: remote store accepted the event
    """
    __tablename__ = "cash_ledger_outbox"
    __table_args__ = (
        db.Index("ix_cash_ledger_outbox_status_next", "status", "next_attempt_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_uid = db.Column(db.String(36), nullable=False, unique=True)
    payload = db.Column(db.JSON, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=OUTBOX_PENDING, index=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)

    next_attempt_at = db.Column(db.DateTime(timezone=True), nullable=False)
    claimed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    acknowledged_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_uid": self.event_uid,
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "next_attempt_at": to_utc_z(self.next_attempt_at),
            "created_at": to_utc_z(self.created_at),
            "acknowledged_at": to_utc_z(self.acknowledged_at),
        }
