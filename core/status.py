"""
Member lifecycle rules: status derivation and renewal reminders.

Both functions are pure. Dates are compared by calendar day, so the time of day
at which a check runs never changes the result.
"""
import datetime
from typing import Iterable, List, Union

import config
from core.utils import to_date
from models.reminder import Reminder

ACTIVE = "active"
EXPIRING = "expiring"
EXPIRED = "expired"

DateLike = Union[str, datetime.date, datetime.datetime]


def days_left(expiry_date: DateLike, now: DateLike) -> int:
    """
    Whole calendar days from `now` until `expiry_date`.
    Negative once the expiry day has passed, 0 on the expiry day itself.
    """
    return (to_date(expiry_date) - to_date(now)).days


def derive_status(expiry_date: DateLike, now: DateLike) -> str:
    """
    Returns 'expired', 'expiring' or 'active' for a membership ending on expiry_date.

    Args:
        expiry_date: Stored expiry date (date, datetime or ISO string).
        now: The reference moment; only its calendar day is used.
    """
    left = days_left(expiry_date, now)
    if left < 0:
        return EXPIRED
    if left <= config.REMINDER_WINDOW_DAYS:
        return EXPIRING
    return ACTIVE


def plan_label(plan_duration: int) -> str:
    months = int(plan_duration or 0)
    return f"{months} month{'s' if months > 1 else ''}"


def compute_reminders(members: Iterable, now: DateLike) -> List[Reminder]:
    """
    Builds the renewal reminder list for members expiring within the window.

    Members due today (0 days left) are not reminded even though their status is
    already 'expiring'. The list is sorted by days left; sorted() is stable so ties
    keep the input order. A new list is returned on every call.
    """
    reminders = []
    for member in members:
        left = days_left(member.expiry_date, now)
        if 0 < left <= config.REMINDER_WINDOW_DAYS:
            reminders.append(Reminder(
                member_id=member.id,
                member_name=member.name,
                phone=member.phone,
                plan=plan_label(member.plan_duration),
                days_left=left,
            ))
    return sorted(reminders, key=lambda r: r.days_left)
