import datetime
from typing import Iterable, Optional, Union

from core.errors import ValidationError
from core.utils import add_months, to_date
from models.actions import Action, MemberForm
from models.member import Member


def build_member_form(name: str, phone: str, plan_duration: int,
                      joining_date: Union[str, datetime.date, None] = None,
                      expiry_date: Union[str, datetime.date, None] = None,
                      email: str = "", branch_id: Optional[str] = None) -> MemberForm:
    """
    Prepares the form for a new member.
    If no expiry is given it is derived as joining date + plan months.

    Args:
        name (str): Member name.
        phone (str): Contact number.
        plan_duration (int): Plan length in months.
        joining_date (date | str, optional): Defaults to today.
        expiry_date (date | str, optional): Overrides the derived expiry.
    """
    joined = to_date(joining_date) or datetime.date.today()
    try:
        months = int(plan_duration)
    except (TypeError, ValueError):
        raise ValidationError("Plan duration must be a number of months")
    expiry = to_date(expiry_date) or add_months(joined, months)
    return MemberForm(
        name=name,
        phone=phone,
        plan_duration=months,
        joining_date=joined,
        expiry_date=expiry,
        email=email,
        branch_id=branch_id,
    )


def renew_member(member: Member, today: Optional[datetime.date] = None,
                 plan_duration: Optional[int] = None) -> Action:
    """
    Renews a membership from today for the member's plan (or a new plan length).
    The joining date is kept; only the expiry moves.

    Returns:
        Action: An UPDATE_MEMBER action for GymDataCache.apply_mutation.
    """
    today = today or datetime.date.today()
    months = int(plan_duration or member.plan_duration)
    form = MemberForm(
        name=member.name,
        phone=member.phone,
        plan_duration=months,
        joining_date=member.joining_date or today,
        expiry_date=add_months(today, months),
        email=member.email,
        branch_id=member.branch_id,
    )
    return Action.update_member(member.id, form)


def find_member_by_name(members: Iterable[Member], name: str) -> Optional[Member]:
    """Case-insensitive exact name match; the first match wins."""
    wanted = (name or "").strip().lower()
    if not wanted:
        return None
    return next((m for m in members if m.name.strip().lower() == wanted), None)
