import datetime
from dataclasses import dataclass
from typing import Any, Dict, Optional

from core.utils import to_datetime


@dataclass(frozen=True)
class AttendanceRecord:
    """A single check-in. `member_name` is a snapshot taken at check-in time."""
    id: str
    member_id: str
    member_name: str
    check_in: datetime.datetime
    source: Optional[str] = None  # 'qr' or 'manual'
    device_id: Optional[str] = None
    branch_id: Optional[str] = None
    user_id: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "AttendanceRecord":
        return cls(
            id=str(row["id"]),
            member_id=str(row.get("member_id") or ""),
            member_name=row.get("member_name") or "",
            check_in=to_datetime(row["check_in"]),
            source=row.get("source"),
            device_id=row.get("device_id"),
            branch_id=row.get("branch_id"),
            user_id=row.get("user_id"),
        )


@dataclass(frozen=True)
class CheckInResult:
    """Outcome of a QR or manual check-in."""
    success: bool
    error: Optional[str] = None
    member_info: Optional[Dict[str, Any]] = None
