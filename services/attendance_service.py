import csv
import datetime
import logging
import platform
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from PySide6 import QtCore

import config
from core.errors import AuthRequiredError, InvalidQRTokenError, ValidationError
from core.utils import now_iso
from models.attendance import AttendanceRecord, CheckInResult
from models.snapshot import Snapshot
from workers.remote_worker import WorkerHost

logger = logging.getLogger(__name__)


def validate_qr_token(token: str) -> str:
    """
    Checks a scanned payload against the member QR convention.

    Returns:
        str: The token, stripped of surrounding whitespace.

    Raises:
        InvalidQRTokenError: If the payload is not a member QR code.
    """
    token = (token or "").strip()
    if not token.startswith(config.QR_PREFIX):
        raise InvalidQRTokenError("This is not a valid member QR code.")
    return token


def _local_day(moment: datetime.datetime) -> datetime.date:
    # Naive timestamps are taken as local time
    return moment.astimezone().date() if moment.tzinfo else moment.date()


def attendance_on(records: List[AttendanceRecord], day: datetime.date) -> List[AttendanceRecord]:
    """Check-ins whose local calendar day is `day`."""
    return [r for r in records if _local_day(r.check_in) == day]


def export_attendance_csv(snapshot: Snapshot, day: datetime.date, path: Union[str, Path]) -> Path:
    """
    Writes one day's check-ins as CSV (name, phone, check-in time, status).
    Phone and status come from the current member list; deleted members show '-'.
    """
    path = Path(path)
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(["Member Name", "Phone", "Check-In Time", "Status"])
        for record in attendance_on(snapshot.attendance, day):
            member = snapshot.find_member(record.member_id)
            writer.writerow([
                record.member_name,
                member.phone if member else "-",
                record.check_in.astimezone().strftime("%I:%M %p"),
                member.status if member else "-",
            ])
    return path


class AttendanceDesk(WorkerHost):
    """
    Front-desk check-in for the account open in a GymDataCache.

    Signals:
        checked_in (CheckInResult): A member was marked present.
        check_in_failed (str): The check-in was refused or the call failed.
    """
    checked_in = QtCore.Signal(object)
    check_in_failed = QtCore.Signal(str)

    def __init__(self, cache, device_id: Optional[str] = None,
                 runner: Optional[Callable] = None, parent: Optional[QtCore.QObject] = None):
        super().__init__(runner, parent)
        self.cache = cache
        self.device_id = device_id or platform.node() or "desk"

    def _account(self) -> str:
        if self.cache.account_id is None:
            raise AuthRequiredError()
        return self.cache.account_id

    def todays_attendance(self, today: Optional[datetime.date] = None) -> List[AttendanceRecord]:
        return attendance_on(self.cache.attendance, today or datetime.date.today())

    # --- QR CHECK-IN ---

    def handle_scanned_token(self, token: str) -> None:
        """
        Checks a member in from a scanned QR payload.

        Raises:
            InvalidQRTokenError: Before any remote call, if the payload is not a member QR code.
            AuthRequiredError: If no account is open.
        """
        token = validate_qr_token(token)
        account_id = self._account()

        snapshot = self.cache.snapshot
        branch = snapshot.current_branch if snapshot else None
        params = {
            "p_user_id": account_id,
            "p_qr_token": token,
            "p_branch_id": branch.id if branch else None,
            "p_device_id": self.device_id,
        }
        self._submit(
            "check_in_by_qr", self.cache.store.rpc, "check_in_by_qr", params,
            on_done=self._on_qr_result,
            on_error=self._on_call_failed,
        )

    def _on_qr_result(self, data: Any) -> None:
        # Some clients wrap a single-row function result in a list
        if isinstance(data, list):
            data = data[0] if data else {}
        data = data or {}
        result = CheckInResult(
            success=bool(data.get("success")),
            error=data.get("error"),
            member_info=data.get("member"),
        )
        if not result.success:
            message = result.error or "Could not check in member."
            logger.info("QR check-in refused: %s", message)
            self.check_in_failed.emit(message)
            return

        name = (result.member_info or {}).get("name", "Member")
        logger.info("%s checked in by QR", name)
        self.checked_in.emit(result)
        self._refresh_cache()

    # --- MANUAL CHECK-IN ---

    def manual_check_in(self, member_id: str) -> None:
        """
        Marks a member present without a QR scan.

        Raises:
            ValidationError: If the member is unknown or already checked in today.
        """
        account_id = self._account()
        snapshot = self.cache.snapshot
        member = snapshot.find_member(member_id) if snapshot else None
        if member is None:
            raise ValidationError("Member not found")
        if any(r.member_id == member.id for r in self.todays_attendance()):
            raise ValidationError(f"{member.name} has already checked in today.")

        row = {
            "member_id": member.id,
            "member_name": member.name,
            "check_in": now_iso(),
            "source": "manual",
            "device_id": self.device_id,
        }
        if snapshot.current_branch is not None:
            row["branch_id"] = snapshot.current_branch.id

        info = {"id": member.id, "name": member.name, "status": member.status}
        self._submit(
            "insert attendance", self.cache.store.insert, "attendance", account_id, row,
            on_done=lambda _row: self._on_manual_done(info),
            on_error=self._on_call_failed,
        )

    def _on_manual_done(self, info: Dict[str, Any]) -> None:
        logger.info("%s checked in manually", info["name"])
        self.checked_in.emit(CheckInResult(True, None, info))
        self._refresh_cache()

    # --- HELPERS ---

    def _on_call_failed(self, exc: Exception) -> None:
        message = getattr(exc, "message", str(exc)) or "Failed to record attendance."
        logger.error("Check-in call failed: %s", exc)
        self.check_in_failed.emit(message)

    def _refresh_cache(self) -> None:
        if self.cache.account_id is not None:
            self.cache.refresh()
