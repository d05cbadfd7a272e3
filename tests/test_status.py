"""Tests for membership status derivation and renewal reminders."""
import datetime
from dataclasses import dataclass

import pytest

from core.status import (ACTIVE, EXPIRED, EXPIRING, compute_reminders, days_left,
                         derive_status, plan_label)

TODAY = datetime.date(2025, 3, 10)


@dataclass
class M:
    id: str
    name: str
    expiry_date: object
    phone: str = "555"
    plan_duration: int = 1


def in_days(n):
    return TODAY + datetime.timedelta(days=n)


class TestDeriveStatus:

    def test_three_days_left_is_expiring(self):
        """Should be expiring three days before expiry."""
        assert derive_status(in_days(3), TODAY) == EXPIRING

    def test_expiry_day_is_expiring(self):
        assert days_left(TODAY, TODAY) == 0
        assert derive_status(TODAY, TODAY) == EXPIRING

    def test_yesterday_is_expired(self):
        assert derive_status(in_days(-1), TODAY) == EXPIRED

    @pytest.mark.parametrize("days,expected", [(7, EXPIRING), (8, ACTIVE), (365, ACTIVE), (-30, EXPIRED)])
    def test_window_edges(self, days, expected):
        assert derive_status(in_days(days), TODAY) == expected

    def test_time_of_day_is_ignored(self):
        """A check just before midnight and just after it agree with the calendar day."""
        late = datetime.datetime(2025, 3, 10, 23, 59, 59)
        early = datetime.datetime(2025, 3, 10, 0, 0, 1)
        expiry = datetime.datetime(2025, 3, 9, 23, 0)
        assert derive_status(expiry, late) == EXPIRED
        assert derive_status(expiry, early) == EXPIRED
        assert derive_status("2025-03-17T06:00:00Z", late) == EXPIRING

    def test_accepts_iso_strings(self):
        assert derive_status("2025-03-18", "2025-03-10") == ACTIVE


class TestComputeReminders:

    def test_scenarios(self):
        members = [
            M("a", "Three", in_days(3)),
            M("b", "Today", TODAY),
            M("c", "Yesterday", in_days(-1)),
            M("d", "Later", in_days(30)),
        ]
        reminders = compute_reminders(members, TODAY)

        assert [r.member_id for r in reminders] == ["a"]
        assert reminders[0].days_left == 3
        assert reminders[0].status == "pending"

    def test_sorted_with_stable_ties(self):
        members = [
            M("x", "X", in_days(5)),
            M("y", "Y", in_days(1)),
            M("z", "Z", in_days(5)),
            M("w", "W", in_days(7)),
        ]
        reminders = compute_reminders(members, TODAY)
        assert [r.member_id for r in reminders] == ["y", "x", "z", "w"]
        assert all(0 < r.days_left <= 7 for r in reminders)

    def test_plan_label_and_contact(self):
        reminders = compute_reminders([M("a", "A", in_days(2), phone="123", plan_duration=3)], TODAY)
        assert reminders[0].plan == "3 months"
        assert reminders[0].phone == "123"
        assert plan_label(1) == "1 month"

    def test_fresh_list_each_call(self):
        members = [M("a", "A", in_days(2))]
        first = compute_reminders(members, TODAY)
        second = compute_reminders(members, TODAY)
        assert first == second
        assert first is not second
