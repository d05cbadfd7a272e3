import datetime
from collections import Counter
from typing import Iterable, Optional

from models.attendance import AttendanceRecord


class GymAI:
    """Attendance heuristics over the cached check-in history."""

    def __init__(self, records: Iterable[AttendanceRecord]):
        self.records = list(records)

    def predict_peak_hours(self) -> str:
        """
        Analyzes check-in history to find the busiest hour of the day.
        Returns: String message (e.g., "Peak time is 6 PM")
        """
        if not self.records:
            return "Not enough data to predict peak hours yet."

        # Hours in local time
        hours = [r.check_in.astimezone().hour if r.check_in.tzinfo else r.check_in.hour
                 for r in self.records]

        # most_common is the hour (0-23)
        most_common, _count = Counter(hours).most_common(1)[0]

        if most_common == 0:
            return "Peak time is Midnight."
        if most_common == 12:
            return "Peak time is 12 PM (Noon)."
        if most_common < 12:
            return f"Peak time is {most_common} AM."

        return f"Peak time is {most_common - 12} PM."

    def get_churn_risk(self, member_id: str, now: Optional[datetime.datetime] = None) -> str:
        """
        Checks how long ago a member last visited.
        """
        visits = [r.check_in for r in self.records if r.member_id == member_id]
        if not visits:
            return "No attendance history."

        now = now or datetime.datetime.now(datetime.timezone.utc)
        last_visit = max(visits)
        if last_visit.tzinfo is None:
            last_visit = last_visit.replace(tzinfo=datetime.timezone.utc)

        days_since = (now - last_visit).days

        if days_since > 21:
            return "High Risk (Absent 3+ weeks)"
        elif days_since > 14:
            return "Medium Risk (Absent 2 weeks)"
        else:
            return "Low Risk (Active)"
