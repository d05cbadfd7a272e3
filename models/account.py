from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Session:
    """The signed-in gym owner. `account_id` scopes every read and write."""
    account_id: str
    email: str = ""
    name: Optional[str] = None
    access_token: Optional[str] = None


@dataclass(frozen=True)
class Profile:
    id: str
    owner_name: str
    email: str
    phone: str
    gym_name: str
    role: str  # owner/manager/trainer/front_desk

    @classmethod
    def from_row(cls, account_id: str, row: Optional[Dict[str, Any]],
                 session: Optional[Session] = None) -> "Profile":
        """
        Builds the owner profile, falling back to session details (and then to
        generic defaults) when the profile row is missing or incomplete.
        """
        row = row or {}
        email = row.get("email") or (session.email if session else "") or ""
        owner_name = (
            row.get("name")
            or (session.name if session else None)
            or (email.split("@")[0] if email else "")
            or "User"
        )
        return cls(
            id=account_id,
            owner_name=owner_name,
            email=email,
            phone=row.get("phone") or "",
            gym_name=row.get("gym_name") or "My Gym",
            role=row.get("role") or "owner",
        )


@dataclass(frozen=True)
class Branch:
    id: str
    owner_id: str
    name: str
    address: str = ""
    phone: str = ""
    is_main: bool = False
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Branch":
        return cls(
            id=str(row["id"]),
            owner_id=str(row.get("owner_id") or ""),
            name=row.get("name") or "",
            address=row.get("address") or "",
            phone=row.get("phone") or "",
            is_main=bool(row.get("is_main")),
            created_at=row.get("created_at"),
        )


@dataclass(frozen=True)
class StaffMember:
    id: str
    user_id: str
    name: str
    email: str = ""
    phone: str = ""
    role: str = "front_desk"
    branch_id: Optional[str] = None
    is_active: bool = True

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "StaffMember":
        return cls(
            id=str(row["id"]),
            user_id=str(row.get("user_id") or ""),
            name=row.get("name") or "",
            email=row.get("email") or "",
            phone=row.get("phone") or "",
            role=row.get("role") or "front_desk",
            branch_id=row.get("branch_id"),
            is_active=bool(row.get("is_active", True)),
        )


@dataclass(frozen=True)
class ActivityEntry:
    """Audit trail entry written after a confirmed mutation."""
    activity_type: str  # e.g. 'member_added'
    description: str
    created_at: str
