# Overview: Cash operation reports, per-register history and session summaries built from the ledger.

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime

from ..models import LedgerEvent
from ..models.ledger import CLOSE, DEPOSIT, WITHDRAWAL
from cashledger.time_utils import parse_iso_datetime, to_utc_z, day_bounds
from . import event_store, ledger_service, register_service


REPORT_TYPES = ("operations", "closings", "shortages")


class ReportError(Exception):
    """Raised when report generation fails."""
    pass


def _parse_range(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    """
    ISO-8601 bounds, both inclusive. A bare date as `end` covers that whole
    day, so start=end=2024-05-01 is a one-day report.
    """
    try:
        start_dt = parse_iso_datetime(start) if start else None
        end_dt = parse_iso_datetime(end) if end else None
    except ValueError:
        raise ReportError("start and end must be ISO-8601 dates or datetimes")

    if end_dt is not None and len(end.strip()) == 10:
        end_dt = day_bounds(end_dt.date())[1]
    if start_dt and end_dt and start_dt > end_dt:
        raise ReportError("start must not be after end")
    return start_dt, end_dt


def shortage_cents(event: LedgerEvent) -> int | None:
    """Cash missing at a CLOSE (positive), 0 if none; None for other kinds."""
    if event.kind != CLOSE:
        return None
    if event.discrepancy_cents is not None and event.discrepancy_cents < 0:
        return -event.discrepancy_cents
    return 0


def operations_report(
    *,
    start: str | None,
    end: str | None,
    operator_id: str | None = None,
    register_id: int | None = None,
    report_type: str = "operations",
) -> dict:
    """
    Cash operations in a period, newest first.

    report_type:
    - operations: every ledger event
    - closings: CLOSE events only
    - shortages: CLOSE events where counted cash was below expected
    """
    if report_type not in REPORT_TYPES:
        raise ReportError(f"report_type must be one of: {', '.join(REPORT_TYPES)}")
    start_dt, end_dt = _parse_range(start, end)

    if operator_id:
        events = event_store.list_events_for_operator(operator_id, since=start_dt, until=end_dt)
    else:
        events = event_store.list_all_events(since=start_dt, until=end_dt)

    if register_id is not None:
        events = [e for e in events if e.register_id == register_id]
    if report_type == "closings":
        events = [e for e in events if e.kind == CLOSE]
    elif report_type == "shortages":
        events = [e for e in events if e.is_shortage]

    events = sorted(events, key=lambda e: (e.occurred_at, e.id), reverse=True)

    report = {
        "report_type": report_type,
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "operator_id": operator_id,
        "operations": [e.to_dict() for e in events],
        "total_operations": len(events),
        "total_amount_cents": sum(e.amount_cents for e in events),
    }

    if report_type == "shortages":
        report["shortages"] = [
            {
                "event_id": e.id,
                "register_id": e.register_id,
                "operator_id": e.operator_id,
                "amount_cents": shortage_cents(e),
                "reason": e.discrepancy_reason or "",
                "authorized_by": e.authorized_by or "",
                "occurred_at": to_utc_z(e.occurred_at),
            }
            for e in events
        ]
        report["total_shortage_cents"] = sum(s["amount_cents"] for s in report["shortages"])

    return report


def register_history(register_id: int) -> list[dict]:
    """
    A register's ledger grouped by UTC day: newest day first, events within
    a day oldest first. CLOSE entries carry their shortage.
    """
    events = ledger_service.events_for_register(register_id)

    days: OrderedDict[str, list[dict]] = OrderedDict()
    for event in sorted(events, key=lambda e: (e.occurred_at, e.id)):
        row = event.to_dict()
        if event.kind == CLOSE:
            row["shortage_cents"] = shortage_cents(event)
            row["has_discrepancy"] = bool(event.discrepancy_reason) or row["shortage_cents"] > 0
        days.setdefault(event.occurred_at.date().isoformat(), []).append(row)

    return [
        {"date": day, "operations": ops}
        for day, ops in sorted(days.items(), key=lambda item: item[0], reverse=True)
    ]


def session_summary(register_id: int) -> dict:
    """Breakdown of the current session's expected cash."""
    register = register_service.require_register(register_id)
    session = ledger_service.get_session(register_id)

    summary = {
        "register": register.to_dict(),
        "session": session.to_dict(),
        "deposits_cents": 0,
        "withdrawals_cents": 0,
        "deposit_count": 0,
        "withdrawal_count": 0,
        "cash_sales_cents": session.cash_sales_cents,
        "expected_cash_cents": session.balance_cents,
    }
    if not session.is_open:
        return summary

    opened_key = (session.state.opened_at, session.state.open_event_id)
    for event in event_store.list_events(register_id, since=session.state.opened_at):
        if (event.occurred_at, event.id) < opened_key:
            continue
        if event.kind == DEPOSIT:
            summary["deposits_cents"] += event.amount_cents
            summary["deposit_count"] += 1
        elif event.kind == WITHDRAWAL:
            summary["withdrawals_cents"] += event.amount_cents
            summary["withdrawal_count"] += 1
    return summary
