"""
Tests for the cashier session ledger.

Covers the open/deposit/withdraw/close state machine, balance derivation,
discrepancy capture, and that rejected operations append nothing.

Run with: pytest tests/test_ledger_service.py -v
"""

from datetime import timedelta

import pytest

from cashledger.errors import (
    AlreadyOpenError,
    RegisterNotOpenError,
    InsufficientBalanceError,
    RegisterNotFoundError,
)
from cashledger.models import LedgerEvent, OutboxEntry
from cashledger.models.ledger import OPEN, CLOSE, DEPOSIT, WITHDRAWAL, OUTBOX_PENDING
from cashledger.services import ledger_service, register_service, sales_feed
from cashledger.time_utils import utcnow
from cashledger.validation import ValidationError


def _event_count(db_session, register_id):
    return db_session.query(LedgerEvent).filter_by(register_id=register_id).count()


class TestDrawerScenario:
    """The end-to-end shift used as the reference example."""

    def test_full_shift(self, db_session, register):
        ledger_service.open_register(register.id, "A", 10000)
        assert ledger_service.current_balance(register.id) == 10000
        assert ledger_service.is_open(register.id) is True

        ledger_service.deposit(register.id, "A", 5000)
        ledger_service.withdraw(register.id, "A", 3000)
        assert ledger_service.current_balance(register.id) == 12000

        with pytest.raises(InsufficientBalanceError):
            ledger_service.withdraw(register.id, "A", 50000)
        assert ledger_service.current_balance(register.id) == 12000

        sales_feed.record_sale(total_cents=4000, payment_method="cash", register_id=register.id)
        assert ledger_service.current_balance(register.id) == 16000

        close = ledger_service.close_register(register.id, "A", 15000, "till miscount", "Manager B")
        assert close.kind == CLOSE
        assert close.expected_cash_cents == 16000
        assert close.discrepancy_cents == -1000
        assert close.discrepancy_reason == "till miscount"
        assert close.authorized_by == "Manager B"
        assert ledger_service.is_open(register.id) is False
        assert ledger_service.current_balance(register.id) == 0

        ledger_service.open_register(register.id, "A", 10000)
        with pytest.raises(AlreadyOpenError):
            ledger_service.open_register(register.id, "A", 10000)


class TestOpenRegister:

    def test_open_appends_open_event_and_flags_register(self, db_session, register):
        event = ledger_service.open_register(register.id, "op-a", 2500)

        assert event.kind == OPEN
        assert event.amount_cents == 2500
        assert event.opening_cash_cents == 2500
        assert event.operator_id == "op-a"
        assert event.event_uid
        assert register_service.get_register(register.id).is_active is True

    def test_open_with_zero_float(self, db_session, register):
        ledger_service.open_register(register.id, "op-a", 0)
        assert ledger_service.is_open(register.id) is True
        assert ledger_service.current_balance(register.id) == 0

    def test_open_twice_fails_and_appends_nothing(self, db_session, register):
        ledger_service.open_register(register.id, "op-a", 1000)
        before = _event_count(db_session, register.id)

        with pytest.raises(AlreadyOpenError) as exc_info:
            ledger_service.open_register(register.id, "op-b", 500)

        assert exc_info.value.code == "AlreadyOpen"
        assert exc_info.value.details["opened_by"] == "op-a"
        assert _event_count(db_session, register.id) == before
        assert ledger_service.current_balance(register.id) == 1000

    def test_open_unknown_register(self, db_session):
        with pytest.raises(RegisterNotFoundError):
            ledger_service.open_register(999999, "op-a", 1000)

    def test_open_deleted_register(self, db_session, register):
        register_service.delete_register(register.id)
        with pytest.raises(RegisterNotFoundError):
            ledger_service.open_register(register.id, "op-a", 1000)

    @pytest.mark.parametrize("amount", [-1, 1.5, "12.50", None, True])
    def test_invalid_opening_amount(self, db_session, register, amount):
        with pytest.raises(ValidationError):
            ledger_service.open_register(register.id, "op-a", amount)
        assert _event_count(db_session, register.id) == 0

    def test_operator_required(self, db_session, register):
        with pytest.raises(ValidationError):
            ledger_service.open_register(register.id, "", 1000)


class TestDepositWithdraw:

    def test_deposit_requires_open_drawer(self, db_session, register):
        with pytest.raises(RegisterNotOpenError):
            ledger_service.deposit(register.id, "op-a", 500)
        assert _event_count(db_session, register.id) == 0

    def test_withdraw_requires_open_drawer(self, db_session, register):
        with pytest.raises(RegisterNotOpenError):
            ledger_service.withdraw(register.id, "op-a", 500)

    def test_amount_must_be_positive(self, db_session, register):
        ledger_service.open_register(register.id, "op-a", 1000)
        with pytest.raises(ValidationError):
            ledger_service.deposit(register.id, "op-a", 0)
        with pytest.raises(ValidationError):
            ledger_service.withdraw(register.id, "op-a", 0)

    def test_reason_kept_verbatim(self, db_session, register):
        ledger_service.open_register(register.id, "op-a", 1000)
        event = ledger_service.deposit(register.id, "op-a", 500, "  change fund ")

        assert event.kind == DEPOSIT
        assert event.reason == "  change fund "

    def test_withdraw_exact_balance_allowed(self, db_session, register):
        ledger_service.open_register(register.id, "op-a", 1000)
        event = ledger_service.withdraw(register.id, "op-a", 1000, "safe drop")

        assert event.kind == WITHDRAWAL
        assert ledger_service.current_balance(register.id) == 0

    def test_over_withdrawal_rejected_with_details(self, db_session, register):
        ledger_service.open_register(register.id, "op-a", 1000)
        before = _event_count(db_session, register.id)

        with pytest.raises(InsufficientBalanceError) as exc_info:
            ledger_service.withdraw(register.id, "op-a", 1001)

        assert exc_info.value.details["balance_cents"] == 1000
        assert exc_info.value.details["requested_cents"] == 1001
        assert _event_count(db_session, register.id) == before

    def test_withdraw_may_spend_cash_sales(self, db_session, register):
        ledger_service.open_register(register.id, "op-a", 1000)
        sales_feed.record_sale(total_cents=2000, payment_method="cash", register_id=register.id)

        ledger_service.withdraw(register.id, "op-a", 2500)
        assert ledger_service.current_balance(register.id) == 500


class TestCloseRegister:

    def test_exact_count_stores_no_discrepancy(self, db_session, register):
        ledger_service.open_register(register.id, "op-a", 1000)
        close = ledger_service.close_register(register.id, "op-a", 1000, "ignored", "Manager")

        assert close.expected_cash_cents == 1000
        assert close.closing_cash_cents == 1000
        assert close.discrepancy_cents is None
        assert close.discrepancy_reason is None
        assert close.authorized_by is None

    def test_long_authorizer_stored_verbatim(self, db_session, register):
        ledger_service.open_register(register.id, "op-a", 1000)
        authorizer = "  Manager " + "x" * 190 + "  "

        close = ledger_service.close_register(register.id, "op-a", 900, "short", authorizer)

        assert close.authorized_by == authorizer
        assert ledger_service.latest_event(register.id).authorized_by == authorizer

    def test_authorizer_over_255_chars_rejected(self, db_session, register):
        ledger_service.open_register(register.id, "op-a", 1000)

        with pytest.raises(ValidationError):
            ledger_service.close_register(register.id, "op-a", 900, "short", "m" * 256)

        assert ledger_service.is_open(register.id) is True

    def test_overage_drops_reason_and_authorizer(self, db_session, register):
        ledger_service.open_register(register.id, "op-a", 1000)
        close = ledger_service.close_register(register.id, "op-a", 1200, "found cash", "Manager")

        assert close.discrepancy_cents == 200
        assert close.discrepancy_reason is None
        assert close.authorized_by is None
        assert close.is_shortage is False

    def test_shortage_without_reason_still_closes(self, db_session, register):
        ledger_service.open_register(register.id, "op-a", 1000)
        close = ledger_service.close_register(register.id, "op-a", 900)

        assert close.discrepancy_cents == -100
        assert close.discrepancy_reason is None
        assert close.is_shortage is True
        assert ledger_service.is_open(register.id) is False

    def test_close_requires_open_drawer(self, db_session, register):
        with pytest.raises(RegisterNotOpenError):
            ledger_service.close_register(register.id, "op-a", 0)

    def test_close_twice_fails(self, db_session, register):
        ledger_service.open_register(register.id, "op-a", 1000)
        ledger_service.close_register(register.id, "op-a", 1000)

        with pytest.raises(RegisterNotOpenError):
            ledger_service.close_register(register.id, "op-a", 1000)

    def test_close_clears_active_flag(self, db_session, register):
        ledger_service.open_register(register.id, "op-a", 1000)
        ledger_service.close_register(register.id, "op-a", 1000)

        assert register_service.get_register(register.id).is_active is False

    def test_sales_before_reopen_do_not_carry_over(self, db_session, register):
        ledger_service.open_register(register.id, "op-a", 1000)
        sales_feed.record_sale(total_cents=700, payment_method="cash", register_id=register.id)
        ledger_service.close_register(register.id, "op-a", 1700)

        ledger_service.open_register(register.id, "op-a", 500)
        assert ledger_service.current_balance(register.id) == 500


class TestBalanceProperty:

    def test_balance_before_close_matches_formula(self, db_session, register):
        ledger_service.open_register(register.id, "op-a", 5000)
        deposits = [1200, 300, 4500]
        withdrawals = [2000, 700]
        for amount in deposits:
            ledger_service.deposit(register.id, "op-a", amount)
        for amount in withdrawals:
            ledger_service.withdraw(register.id, "op-a", amount)
        sales_feed.record_sale(total_cents=990, payment_method="cash", register_id=register.id)
        sales_feed.record_sale(
            total_cents=3000,
            payment_method="mixed",
            register_id=register.id,
            tenders=[
                {"method": "cash", "amount_cents": 1000},
                {"method": "debit_card", "amount_cents": 2000},
            ],
        )
        sales_feed.record_sale(total_cents=8000, payment_method="credit_card", register_id=register.id)

        expected = 5000 + sum(deposits) - sum(withdrawals) + 990 + 1000
        assert ledger_service.current_balance(register.id) == expected

        close = ledger_service.close_register(register.id, "op-a", expected)
        assert close.expected_cash_cents == expected
        assert close.discrepancy_cents is None

    def test_registers_are_independent(self, db_session, register_factory):
        first = register_factory()
        second = register_factory()

        ledger_service.open_register(first.id, "op-a", 1000)
        ledger_service.open_register(second.id, "op-b", 300)
        ledger_service.deposit(first.id, "op-a", 50)

        assert ledger_service.current_balance(first.id) == 1050
        assert ledger_service.current_balance(second.id) == 300


class TestEventTiming:

    def test_explicit_time_before_latest_rejected(self, db_session, register):
        ledger_service.open_register(register.id, "op-a", 1000)

        with pytest.raises(ValidationError):
            ledger_service.deposit(register.id, "op-a", 100, occurred_at=utcnow() - timedelta(hours=1))

    def test_explicit_future_time_within_skew_accepted(self, db_session, register):
        ledger_service.open_register(register.id, "op-a", 1000)
        later = utcnow() + timedelta(minutes=1)

        event = ledger_service.deposit(register.id, "op-a", 100, occurred_at=later)

        assert event.occurred_at == later
        assert ledger_service.latest_event(register.id).id == event.id

    def test_implicit_time_never_precedes_latest(self, db_session, register):
        later = utcnow() + timedelta(minutes=1)
        ledger_service.open_register(register.id, "op-a", 1000, occurred_at=later)

        event = ledger_service.deposit(register.id, "op-a", 100)

        assert event.occurred_at >= later

    def test_open_far_in_future_rejected(self, db_session, register):
        with pytest.raises(ValidationError):
            ledger_service.open_register(register.id, "op-a", 1000, occurred_at=utcnow() + timedelta(hours=1))

        assert ledger_service.events_for_register(register.id) == []
        assert ledger_service.is_open(register.id) is False

    def test_future_open_cannot_hide_cash_sales(self, db_session, register):
        # sales rung before a post-dated OPEN would fall outside the session
        with pytest.raises(ValidationError):
            ledger_service.open_register(register.id, "op-a", 1000, occurred_at=utcnow() + timedelta(days=1))

        ledger_service.open_register(register.id, "op-a", 1000)
        sales_feed.record_sale(total_cents=500, payment_method="cash", register_id=register.id)

        assert ledger_service.current_balance(register.id) == 1500


class TestReads:

    def test_events_for_register_in_order(self, db_session, register):
        ledger_service.open_register(register.id, "op-a", 1000)
        ledger_service.deposit(register.id, "op-a", 100)
        ledger_service.close_register(register.id, "op-a", 1100)

        kinds = [e.kind for e in ledger_service.events_for_register(register.id)]
        assert kinds == [OPEN, DEPOSIT, CLOSE]

    def test_events_for_operator_spans_registers(self, db_session, register_factory):
        first = register_factory()
        second = register_factory()
        ledger_service.open_register(first.id, "op-a", 1000)
        ledger_service.open_register(second.id, "op-b", 1000)
        ledger_service.deposit(second.id, "op-a", 100)

        events = ledger_service.events_for_operator("op-a")
        assert [(e.register_id, e.kind) for e in events] == [(first.id, OPEN), (second.id, DEPOSIT)]

    def test_latest_event_none_without_history(self, db_session, register):
        assert ledger_service.latest_event(register.id) is None

    def test_session_view(self, db_session, register):
        ledger_service.open_register(register.id, "op-a", 1000)
        session = ledger_service.get_session(register.id).to_dict()

        assert session["status"] == ledger_service.STATUS_OPEN
        assert session["opening_cash_cents"] == 1000
        assert session["opened_by"] == "op-a"
        assert session["balance_cents"] == 1000


class TestOutboxCoupling:

    def test_every_append_queues_one_pending_entry(self, db_session, register):
        ledger_service.open_register(register.id, "op-a", 1000)
        ledger_service.deposit(register.id, "op-a", 100)

        events = ledger_service.events_for_register(register.id)
        entries = db_session.query(OutboxEntry).all()

        assert sorted(e.event_uid for e in entries) == sorted(e.event_uid for e in events)
        assert all(e.status == OUTBOX_PENDING for e in entries)
        assert all(e.attempts == 0 for e in entries)

    def test_rejected_operation_queues_nothing(self, db_session, register):
        with pytest.raises(RegisterNotOpenError):
            ledger_service.deposit(register.id, "op-a", 100)

        assert db_session.query(OutboxEntry).count() == 0
