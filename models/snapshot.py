"""
The in-memory copy of one account's data at a point in time.

Snapshots are immutable: every change produces a new Snapshot through the
with_* helpers, which also keep the derived reminder list in step with members.
"""
import datetime
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from core.status import compute_reminders
from models.account import Branch, Profile, Session, StaffMember
from models.attendance import AttendanceRecord
from models.member import Member
from models.payment import Payment
from models.plan import Plan
from models.reminder import Reminder


@dataclass(frozen=True)
class Snapshot:
    account_id: str
    as_of: datetime.date  # day the derived fields were computed for
    profile: Profile
    branches: List[Branch] = field(default_factory=list)
    staff: List[StaffMember] = field(default_factory=list)
    members: List[Member] = field(default_factory=list)
    payments: List[Payment] = field(default_factory=list)
    plans: List[Plan] = field(default_factory=list)
    attendance: List[AttendanceRecord] = field(default_factory=list)
    reminders: List[Reminder] = field(default_factory=list)
    fetched_at: Optional[datetime.datetime] = None

    @classmethod
    def from_tables(cls, account_id: str, tables: Dict[str, Any], today: datetime.date,
                    session: Optional[Session] = None) -> "Snapshot":
        """
        Builds a snapshot from the raw rows of a full fetch.
        Member statuses and reminders are derived here; store-supplied values are discarded.
        """
        members = [Member.from_row(r, today) for r in tables.get("members") or []]
        return cls(
            account_id=account_id,
            as_of=today,
            profile=Profile.from_row(account_id, tables.get("users"), session),
            branches=[Branch.from_row(r) for r in tables.get("branches") or []],
            staff=[StaffMember.from_row(r) for r in tables.get("staff_members") or []],
            members=members,
            payments=[Payment.from_row(r) for r in tables.get("payments") or []],
            plans=[Plan.from_row(r) for r in tables.get("plans") or []],
            attendance=[AttendanceRecord.from_row(r) for r in tables.get("attendance") or []],
            reminders=compute_reminders(members, today),
            fetched_at=datetime.datetime.now(datetime.timezone.utc),
        )

    @property
    def current_branch(self) -> Optional[Branch]:
        return self.branches[0] if self.branches else None

    # --- DERIVED STATE ---

    def restamped(self, today: datetime.date) -> "Snapshot":
        """Re-derives statuses and reminders for a new day. Returns self if already current."""
        if today == self.as_of:
            return self
        members = [m.with_status(today) for m in self.members]
        return replace(self, as_of=today, members=members,
                       reminders=compute_reminders(members, today))

    def with_members(self, members: List[Member]) -> "Snapshot":
        return replace(self, members=list(members),
                       reminders=compute_reminders(members, self.as_of))

    def with_payments(self, payments: List[Payment]) -> "Snapshot":
        return replace(self, payments=list(payments))

    def with_plans(self, plans: List[Plan]) -> "Snapshot":
        return replace(self, plans=list(plans))

    def with_profile(self, profile: Profile) -> "Snapshot":
        return replace(self, profile=profile)

    # --- LOOKUPS ---
    # Payments and attendance may reference deleted members; lookups return None.

    def find_member(self, member_id: str) -> Optional[Member]:
        return next((m for m in self.members if m.id == member_id), None)

    def find_payment(self, payment_id: str) -> Optional[Payment]:
        return next((p for p in self.payments if p.id == payment_id), None)

    def find_plan(self, plan_id: str) -> Optional[Plan]:
        return next((p for p in self.plans if p.id == plan_id), None)

    def member_name_for(self, member_id: str, fallback: str = "") -> str:
        member = self.find_member(member_id)
        return member.name if member else fallback
