import datetime
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from core.status import derive_status
from core.utils import to_date


@dataclass(frozen=True)
class Member:
    """
    Represents a single gym member's profile and subscription details.
    `status` is derived from expiry_date and today's date; it is never read from the store.
    """
    id: str
    name: str
    phone: str
    plan_duration: int  # months
    joining_date: Optional[datetime.date]
    expiry_date: datetime.date
    status: str  # 'active', 'expiring' or 'expired'
    email: str = ""
    qr_token: Optional[str] = None
    branch_id: Optional[str] = None
    user_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any], today: datetime.date) -> "Member":
        """
        Builds a Member from a store row. Any status column in the row is ignored
        and re-derived for `today`.
        """
        expiry = to_date(row["expiry_date"])
        return cls(
            id=str(row["id"]),
            name=row.get("name") or "",
            phone=row.get("phone") or "",
            plan_duration=int(row.get("plan_duration") or 1),
            joining_date=to_date(row.get("joining_date")),
            expiry_date=expiry,
            status=derive_status(expiry, today),
            email=row.get("email") or "",
            qr_token=row.get("qr_token"),
            branch_id=row.get("branch_id"),
            user_id=row.get("user_id"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def with_status(self, today: datetime.date) -> "Member":
        status = derive_status(self.expiry_date, today)
        return self if status == self.status else replace(self, status=status)
