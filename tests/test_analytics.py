"""Tests for revenue figures, the daily brief and attendance heuristics."""
import datetime

import pytest

from ai_module.analytics import GymAI
from models.account import Profile
from models.attendance import AttendanceRecord
from models.member import Member
from models.payment import Payment
from models.plan import Plan
from models.snapshot import Snapshot
from services.analytics_service import generate_daily_brief
from services.finance_service import average_payment, monthly_revenue, total_revenue

DAY = datetime.date(2025, 3, 10)
UTC = datetime.timezone.utc


def payment(amount, day, status="done"):
    return Payment(id=f"p{amount}", member_id="m1", amount=amount, payment_method="cash",
                   payment_date=day, status=status, member_name="Priya")


def visit(member_id, moment):
    return AttendanceRecord(id=f"a-{member_id}-{moment.isoformat()}", member_id=member_id,
                            member_name=member_id, check_in=moment)


@pytest.fixture
def payments():
    return [
        payment(1000, datetime.date(2025, 3, 10)),
        payment(500, datetime.date(2025, 3, 1)),
        payment(2000, datetime.date(2025, 2, 14)),
        payment(700, datetime.date(2025, 3, 10), status="pending"),
    ]


class TestFinance:

    def test_totals_count_only_done(self, payments):
        assert total_revenue(payments) == 3500
        assert average_payment(payments) == 875
        assert average_payment([]) == 0

    def test_monthly(self, payments):
        assert list(monthly_revenue(payments).items()) == [("2025-03", 1500), ("2025-02", 2000)]


class TestDailyBrief:

    def make_snapshot(self, members, payments=(), attendance=()):
        profile = Profile("acct", "Ravi", "r@example.com", "", "Iron Temple", "owner")
        snap = Snapshot(account_id="acct", as_of=DAY, profile=profile,
                        plans=[Plan(id="pl1", name="Quarterly", price=2500, duration=3)])
        return snap.with_members(members).with_payments(list(payments))

    def test_quiet_day(self):
        brief = generate_daily_brief(self.make_snapshot([]), DAY)
        assert "Iron Temple" in brief
        assert "quiet day" in brief
        assert "March 10, 2025" in brief

    def test_busy_day(self, payments):
        joiners = [
            Member(id=str(i), name=f"New {i}", phone="1", plan_duration=3, joining_date=DAY,
                   expiry_date=DAY + datetime.timedelta(days=90), status="active")
            for i in range(3)
        ]
        brief = generate_daily_brief(self.make_snapshot(joiners, payments), DAY)
        assert "busy day" in brief
        assert "**Quarterly** plan" in brief
        assert " • New 2" in brief
        assert "₹1,000" in brief


class TestGymAI:

    def test_peak_hour(self):
        records = [
            visit("a", datetime.datetime(2025, 3, 1, 18, 5)),
            visit("b", datetime.datetime(2025, 3, 2, 18, 40)),
            visit("c", datetime.datetime(2025, 3, 2, 7, 0)),
        ]
        assert GymAI(records).predict_peak_hours() == "Peak time is 6 PM."
        assert GymAI([]).predict_peak_hours() == "Not enough data to predict peak hours yet."

    def test_churn_risk(self):
        now = datetime.datetime(2025, 3, 30, tzinfo=UTC)
        records = [
            visit("gone", datetime.datetime(2025, 3, 1, tzinfo=UTC)),
            visit("drifting", datetime.datetime(2025, 3, 14, tzinfo=UTC)),
            visit("regular", datetime.datetime(2025, 3, 28, tzinfo=UTC)),
        ]
        ai = GymAI(records)
        assert ai.get_churn_risk("gone", now).startswith("High Risk")
        assert ai.get_churn_risk("drifting", now).startswith("Medium Risk")
        assert ai.get_churn_risk("regular", now) == "Low Risk (Active)"
        assert ai.get_churn_risk("never", now) == "No attendance history."
