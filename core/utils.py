import datetime
import calendar
import uuid
from pathlib import Path
from typing import Any, Optional, Union

import config

TEMP_ID_PREFIX = "temp-"


def ensure_folder(p: Path) -> None:
    """Creates the folder if it does not exist."""
    p.mkdir(parents=True, exist_ok=True)


def add_months(start_date: datetime.date, months: int) -> datetime.date:
    """
    Calculates the date N months from the start_date.
    Handles year rollovers and end-of-month adjustments (e.g., Jan 31 + 1 month -> Feb 28).
    """
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1

    # Get the number of days in the new month to ensure valid date
    # monthrange returns (weekday_of_first_day, number_of_days)
    days_in_new_month = calendar.monthrange(year, month)[1]

    # Clamp the day (e.g., if start was 31st but new month only has 30 days)
    day = min(start_date.day, days_in_new_month)

    return datetime.date(year, month, day)


def to_date(value: Union[str, datetime.date, datetime.datetime, None]) -> Optional[datetime.date]:
    """
    Normalizes a stored date value to a calendar date (time of day is dropped).
    Accepts 'YYYY-MM-DD', full ISO timestamps, date and datetime objects.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    text = str(value).strip()
    # ISO timestamps start with the calendar date
    return datetime.date.fromisoformat(text[:10])


def to_datetime(value: Union[str, datetime.datetime, None]) -> Optional[datetime.datetime]:
    """Parses an ISO timestamp (a trailing 'Z' is accepted)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime.datetime):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.datetime.fromisoformat(text)


def now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat(timespec="seconds")


def new_qr_token() -> str:
    """Attendance QR token: the configured prefix followed by a random uuid."""
    return f"{config.QR_PREFIX}{uuid.uuid4().hex}"


def new_row_id() -> str:
    return str(uuid.uuid4())


def new_temp_id() -> str:
    """Identifier for optimistic entities; never collides with store-issued uuids."""
    return f"{TEMP_ID_PREFIX}{uuid.uuid4().hex[:12]}"


def is_temp_id(entity_id: Any) -> bool:
    return isinstance(entity_id, str) and entity_id.startswith(TEMP_ID_PREFIX)
