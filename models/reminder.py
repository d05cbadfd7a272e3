from dataclasses import dataclass


@dataclass(frozen=True)
class Reminder:
    """
    A renewal reminder for a member whose plan ends within the reminder window.
    Derived on every read, never stored.
    """
    member_id: str
    member_name: str
    phone: str
    plan: str  # e.g. '3 months'
    days_left: int
    status: str = "pending"
