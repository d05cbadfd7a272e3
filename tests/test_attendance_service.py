"""Tests for QR and manual check-in at the attendance desk."""
import csv
import datetime

import pytest

from conftest import member_row
from core.errors import AuthRequiredError, InvalidQRTokenError, RemoteError, ValidationError
from services.attendance_service import (AttendanceDesk, export_attendance_csv,
                                         validate_qr_token)


@pytest.fixture
def real_today(today):
    # The local check-in procedure works on the real calendar day
    today.value = datetime.date.today()
    return today.value


@pytest.fixture
def desk(cache, runner):
    return AttendanceDesk(cache, device_id="desk-1", runner=runner)


@pytest.fixture
def results(desk):
    record = {"ok": [], "failed": []}
    desk.checked_in.connect(record["ok"].append)
    desk.check_in_failed.connect(record["failed"].append)
    return record


@pytest.fixture
def member(seed, account_id, real_today):
    return seed.insert("members", account_id, member_row("Priya", today=real_today, qr_token="MDQR_abc"))


@pytest.fixture
def ready_cache(cache, runner, account_id, member):
    cache.open(account_id)
    runner.run_all()
    return cache


def test_validate_qr_token():
    assert validate_qr_token("  MDQR_123 ") == "MDQR_123"
    with pytest.raises(InvalidQRTokenError):
        validate_qr_token("https://example.com")
    with pytest.raises(InvalidQRTokenError):
        validate_qr_token("")


class TestQrCheckIn:

    def test_bad_prefix_makes_no_remote_call(self, ready_cache, desk, runner, store):
        with pytest.raises(InvalidQRTokenError):
            desk.handle_scanned_token("uid-12345-abc")
        assert runner.labels == []
        assert not any(call[0] == "rpc" for call in store.calls)

    def test_requires_open_account(self, cache, desk):
        with pytest.raises(AuthRequiredError):
            desk.handle_scanned_token("MDQR_abc")

    def test_success_refreshes_cache(self, ready_cache, desk, runner, store, results, account_id):
        desk.handle_scanned_token("MDQR_abc")
        assert runner.labels == ["check_in_by_qr"]

        runner.run_next()
        assert results["ok"][0].success
        assert results["ok"][0].member_info["name"] == "Priya"
        assert runner.labels == ["fetch #2"]

        rpc = next(call for call in store.calls if call[0] == "rpc")
        params = rpc[2]
        assert params["p_user_id"] == account_id
        assert params["p_device_id"] == "desk-1"
        assert params["p_branch_id"] == ready_cache.snapshot.current_branch.id

        runner.run_all()
        assert [a.member_name for a in ready_cache.attendance] == ["Priya"]
        assert len(desk.todays_attendance()) == 1

    def test_second_scan_is_refused(self, ready_cache, desk, runner, results):
        desk.handle_scanned_token("MDQR_abc")
        runner.run_all()
        desk.handle_scanned_token("MDQR_abc")
        runner.run_all()
        assert results["failed"] == ["Already checked in today"]

    def test_unknown_token(self, ready_cache, desk, runner, results):
        desk.handle_scanned_token("MDQR_unknown")
        runner.run_all()
        assert results["failed"] == ["Invalid QR code"]
        assert results["ok"] == []

    def test_call_failure(self, ready_cache, desk, runner, store, results):
        store.fail("rpc", RemoteError("network", "offline"))
        desk.handle_scanned_token("MDQR_abc")
        runner.run_all()
        assert results["failed"] == ["offline"]


class TestManualCheckIn:

    def test_manual_check_in(self, ready_cache, desk, runner, results, seed, account_id, member):
        desk.manual_check_in(member["id"])
        assert runner.labels == ["insert attendance"]
        runner.run_all()

        assert results["ok"][0].member_info["name"] == "Priya"
        stored = seed.select("attendance", account_id)
        assert stored[0]["source"] == "manual"
        assert [a.member_id for a in ready_cache.attendance] == [member["id"]]

        with pytest.raises(ValidationError):
            desk.manual_check_in(member["id"])

    def test_unknown_member(self, ready_cache, desk, runner):
        with pytest.raises(ValidationError):
            desk.manual_check_in("nobody")
        assert runner.labels == []


def test_export_csv(ready_cache, desk, runner, tmp_path, real_today):
    desk.handle_scanned_token("MDQR_abc")
    runner.run_all()

    path = export_attendance_csv(ready_cache.snapshot, real_today, tmp_path / "attendance.csv")
    with open(path, newline="", encoding="utf-8") as f:
        rows = list(csv.reader(f))

    assert rows[0] == ["Member Name", "Phone", "Check-In Time", "Status"]
    assert rows[1][0] == "Priya"
    assert rows[1][1] == "9876543210"
    assert rows[1][3] == "active"
