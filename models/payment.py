import datetime
from dataclasses import dataclass
from typing import Any, Dict, Optional

from core.utils import to_date

PAYMENT_DONE = "done"
PAYMENT_PENDING = "pending"


@dataclass(frozen=True)
class Payment:
    """
    A payment recorded against a member. `member_name` is a snapshot taken when the
    payment was recorded, so it stays readable after the member is deleted.
    """
    id: str
    member_id: str
    amount: float
    payment_method: str  # cash/card/upi/online...
    payment_date: Optional[datetime.date]
    status: str = PAYMENT_DONE
    member_name: str = ""
    plan_name: Optional[str] = None
    branch_id: Optional[str] = None
    user_id: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Payment":
        return cls(
            id=str(row["id"]),
            member_id=str(row.get("member_id") or ""),
            amount=float(row.get("amount") or 0),
            payment_method=row.get("payment_method") or "",
            payment_date=to_date(row.get("payment_date")),
            # The store may leave status empty; an unset status means the payment is done
            status=row.get("status") or PAYMENT_DONE,
            member_name=row.get("member_name") or "",
            plan_name=row.get("plan_name"),
            branch_id=row.get("branch_id"),
            user_id=row.get("user_id"),
            created_at=row.get("created_at"),
        )
