import datetime
from typing import Dict, List, Optional

from core.status import plan_label
from core.utils import to_date
from models.snapshot import Snapshot
from services.attendance_service import attendance_on
from services.finance_service import revenue_on


def _plan_name(snapshot: Snapshot, months: int) -> str:
    plan = next((p for p in snapshot.plans if p.duration == months), None)
    if plan is not None:
        return plan.name
    return plan_label(months)


def generate_daily_brief(snapshot: Snapshot, target_date: Optional[datetime.date] = None) -> str:
    """
    Generates a text report for a specific day from the cached snapshot.
    Covers new joiners, check-ins, collected payments and the most popular plan.

    Args:
        snapshot (Snapshot): Current data for the account.
        target_date (datetime.date, optional): The date to report on. Defaults to today.

    Returns:
        str: A formatted string containing the daily briefing.
    """
    if not target_date:
        target_date = datetime.date.today()

    # 1. Gather Data
    new_members = [m for m in snapshot.members if to_date(m.joining_date) == target_date]
    plan_counts: Dict[str, int] = {}
    for m in new_members:
        plan = _plan_name(snapshot, m.plan_duration)
        plan_counts[plan] = plan_counts.get(plan, 0) + 1

    check_ins = attendance_on(snapshot.attendance, target_date)
    revenue = revenue_on(snapshot.payments, target_date)

    # 2. Build the Narrative
    count = len(new_members)

    lines: List[str] = []
    lines.append(f"📅 **EVENING BRIEFING** for {snapshot.profile.gym_name} ({target_date.strftime('%B %d, %Y')})")
    lines.append("-" * 40)
    lines.append("")

    # Activity Section
    if count == 0:
        lines.append("📉 **Activity:** It was a quiet day. No new memberships were recorded today.")
    elif count < 3:
        lines.append(f"⚖️ **Activity:** Steady pace today. You had **{count} new joiners**.")
    else:
        lines.append(f"🚀 **Activity:** It was a busy day! You welcomed **{count} new members**.")

    lines.append(f"🏋️ **Check-ins:** {len(check_ins)}")
    lines.append(f"💰 **Collected:** ₹{revenue:,.0f}")
    lines.append("")

    # Details Section
    if count > 0:
        if plan_counts:
            best_plan = max(plan_counts, key=plan_counts.get)
            lines.append(f"🏆 **Most Popular:** The majority of people today chose the **{best_plan}** plan.")
            lines.append("")

        lines.append("📝 **New Joiners:**")
        for m in new_members:
            lines.append(f" • {m.name}")

    if snapshot.reminders:
        lines.append("")
        lines.append(f"⏰ **Renewals due:** {len(snapshot.reminders)} member(s) expire within a week.")

    # Footer
    lines.append("")
    lines.append("-" * 40)
    lines.append("End of Report. Have a good evening! 🌙")

    return "\n".join(lines)
