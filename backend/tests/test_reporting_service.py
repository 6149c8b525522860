"""Tests for cash operation reports, register history and session summaries."""

from datetime import datetime, timedelta

import pytest

from cashledger.errors import RegisterNotFoundError
from cashledger.models.ledger import CLOSE
from cashledger.services import ledger_service, reporting_service, sales_feed


DAY1 = datetime(2024, 5, 1, 9, 0, 0)
DAY2 = datetime(2024, 5, 2, 9, 0, 0)


@pytest.fixture
def two_day_history(register):
    """Day 1 closes short, day 2 closes over."""
    ledger_service.open_register(register.id, "op-a", 10000, occurred_at=DAY1)
    ledger_service.deposit(register.id, "op-a", 2000, "change", occurred_at=DAY1 + timedelta(hours=1))
    ledger_service.close_register(register.id, "op-a", 11500, "till miscount", "Manager B",
                                  occurred_at=DAY1 + timedelta(hours=8))
    ledger_service.open_register(register.id, "op-b", 5000, occurred_at=DAY2)
    ledger_service.close_register(register.id, "op-b", 5100, occurred_at=DAY2 + timedelta(hours=8))
    return register


class TestOperationsReport:

    def test_operations_newest_first(self, two_day_history):
        report = reporting_service.operations_report(start="2024-05-01", end="2024-05-02")

        assert report["total_operations"] == 5
        times = [op["occurred_at"] for op in report["operations"]]
        assert times == sorted(times, reverse=True)
        assert report["total_amount_cents"] == 10000 + 2000 + 11500 + 5000 + 5100

    def test_bare_end_date_covers_whole_day(self, two_day_history):
        report = reporting_service.operations_report(start="2024-05-01", end="2024-05-01")
        assert report["total_operations"] == 3

    def test_filter_by_operator(self, two_day_history):
        report = reporting_service.operations_report(start=None, end=None, operator_id="op-b")
        assert {op["operator_id"] for op in report["operations"]} == {"op-b"}
        assert report["total_operations"] == 2

    def test_closings(self, two_day_history):
        report = reporting_service.operations_report(start=None, end=None, report_type="closings")
        assert [op["kind"] for op in report["operations"]] == [CLOSE, CLOSE]

    def test_shortages(self, two_day_history):
        report = reporting_service.operations_report(start=None, end=None, report_type="shortages")

        assert report["total_operations"] == 1
        shortage = report["shortages"][0]
        assert shortage["amount_cents"] == 500
        assert shortage["reason"] == "till miscount"
        assert shortage["authorized_by"] == "Manager B"
        assert report["total_shortage_cents"] == 500

    def test_invalid_report_type(self, db_session):
        with pytest.raises(reporting_service.ReportError):
            reporting_service.operations_report(start=None, end=None, report_type="refunds")

    def test_invalid_range(self, db_session):
        with pytest.raises(reporting_service.ReportError):
            reporting_service.operations_report(start="2024-05-02", end="2024-05-01")
        with pytest.raises(reporting_service.ReportError):
            reporting_service.operations_report(start="yesterday", end=None)


class TestRegisterHistory:

    def test_grouped_by_day_newest_first(self, two_day_history):
        days = reporting_service.register_history(two_day_history.id)

        assert [d["date"] for d in days] == ["2024-05-02", "2024-05-01"]
        day1_kinds = [op["kind"] for op in days[1]["operations"]]
        assert day1_kinds == ["OPEN", "DEPOSIT", "CLOSE"]

    def test_close_annotated_with_shortage(self, two_day_history):
        days = reporting_service.register_history(two_day_history.id)

        day1_close = days[1]["operations"][-1]
        day2_close = days[0]["operations"][-1]
        assert day1_close["shortage_cents"] == 500
        assert day1_close["has_discrepancy"] is True
        assert day2_close["shortage_cents"] == 0

    def test_unknown_register(self, db_session):
        with pytest.raises(RegisterNotFoundError):
            reporting_service.register_history(999999)


class TestSessionSummary:

    def test_open_session_breakdown(self, register):
        ledger_service.open_register(register.id, "op-a", 10000)
        ledger_service.deposit(register.id, "op-a", 5000)
        ledger_service.withdraw(register.id, "op-a", 3000)
        ledger_service.withdraw(register.id, "op-a", 1000)
        sales_feed.record_sale(total_cents=4000, payment_method="cash", register_id=register.id)

        summary = reporting_service.session_summary(register.id)

        assert summary["session"]["opening_cash_cents"] == 10000
        assert summary["deposits_cents"] == 5000
        assert summary["deposit_count"] == 1
        assert summary["withdrawals_cents"] == 4000
        assert summary["withdrawal_count"] == 2
        assert summary["cash_sales_cents"] == 4000
        assert summary["expected_cash_cents"] == 15000

    def test_previous_session_excluded(self, two_day_history):
        ledger_service.open_register(two_day_history.id, "op-a", 300)

        summary = reporting_service.session_summary(two_day_history.id)

        assert summary["deposits_cents"] == 0
        assert summary["expected_cash_cents"] == 300

    def test_closed_register(self, register):
        summary = reporting_service.session_summary(register.id)
        assert summary["session"]["is_open"] is False
        assert summary["expected_cash_cents"] == 0
