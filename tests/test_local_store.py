"""Tests for the SQLite store and its check_in_by_qr procedure."""
import datetime

import pytest

from conftest import member_row
from core.errors import RemoteError, RemoteReadError
from services.change_channel import ChangeEvent
from services.local_store import LocalStore
from services.remote_store import SNAPSHOT_READS, fetch_snapshot_tables


@pytest.fixture
def events(channel, account_id):
    channel.subscribe(account_id)
    received = []
    channel.changed.connect(received.append)
    return received


@pytest.fixture
def local(db_file, channel):
    return LocalStore(db_file, channel=channel)


def today_member(**extra):
    return member_row(today=datetime.date.today(), **extra)


class TestCrud:

    def test_insert_sets_owner_and_publishes(self, local, events, account_id, other_account_id):
        row = local.insert("members", other_account_id, dict(member_row("Sneaky"), user_id=account_id))
        assert row["user_id"] == other_account_id
        # Not the subscribed account
        assert events == []

        local.insert("members", account_id, member_row("Priya"))
        assert events == [ChangeEvent("members", "INSERT")]

    def test_select_is_scoped_and_ordered(self, local, account_id, other_account_id):
        local.insert("payments", account_id, {"member_id": "m1", "amount": 100, "payment_method": "cash",
                                              "payment_date": "2025-01-01"})
        local.insert("payments", account_id, {"member_id": "m1", "amount": 200, "payment_method": "cash",
                                              "payment_date": "2025-02-01"})
        local.insert("payments", other_account_id, {"member_id": "m2", "amount": 999,
                                                    "payment_method": "card"})

        rows = local.select("payments", account_id, order_by="payment_date", descending=True)
        assert [r["amount"] for r in rows] == [200, 100]

    def test_profile_hides_password(self, local, account_id):
        profile = local.select_one("users", account_id)
        assert profile["email"] == "owner@example.com"
        assert "password_hash" not in profile

    def test_update_missing_row(self, local, account_id):
        with pytest.raises(RemoteError) as err:
            local.update("members", account_id, "missing", {"name": "X"})
        assert err.value.code == "PGRST116"

    def test_delete_reports_whether_a_row_went(self, local, events, account_id):
        row = local.insert("plans", account_id, {"name": "Basic", "price": 999, "duration": 1})
        assert local.delete("plans", account_id, row["id"]) is True
        assert local.delete("plans", account_id, row["id"]) is False
        assert events[-1] == ChangeEvent("plans", "DELETE")
        assert len(events) == 2

    def test_constraint_violation_becomes_remote_error(self, local, account_id):
        local.insert("members", account_id, member_row("A", qr_token="MDQR_same"))
        with pytest.raises(RemoteError) as err:
            local.insert("members", account_id, member_row("B", qr_token="MDQR_same"))
        assert err.value.code == "23505"

    def test_unknown_order_column(self, local, account_id):
        with pytest.raises(RemoteError):
            local.select("members", account_id, order_by="name; DROP TABLE members")


class TestSnapshotRead:

    def test_reads_every_table(self, local, account_id):
        tables = fetch_snapshot_tables(local, account_id)
        assert set(tables) == {table for table, _, _ in SNAPSHOT_READS}
        assert tables["users"]["name"] == "Ravi"
        assert len(tables["branches"]) == 1

    def test_any_failed_read_fails_the_whole_fetch(self, tmp_path, account_id):
        broken = LocalStore(tmp_path / "missing-dir" / "nothing.db")
        with pytest.raises(RemoteReadError):
            fetch_snapshot_tables(broken, account_id)


class TestCheckInByQr:

    def test_success_then_duplicate(self, local, events, account_id):
        local.insert("members", account_id, today_member(name="Priya", qr_token="MDQR_abc"))
        params = {"p_user_id": account_id, "p_qr_token": "MDQR_abc",
                  "p_branch_id": None, "p_device_id": "desk-1"}

        result = local.rpc("check_in_by_qr", params)
        assert result["success"] is True
        assert result["member"]["name"] == "Priya"
        assert events[-1] == ChangeEvent("attendance", "INSERT")

        record = local.select("attendance", account_id)[0]
        assert (record["source"], record["device_id"]) == ("qr", "desk-1")

        again = local.rpc("check_in_by_qr", params)
        assert again == {"success": False, "error": "Already checked in today"}
        assert len(local.select("attendance", account_id)) == 1

    def test_unknown_token(self, local, account_id):
        result = local.check_in_by_qr(account_id, "MDQR_nope")
        assert result == {"success": False, "error": "Invalid QR code"}

    def test_token_of_other_account(self, local, account_id, other_account_id):
        local.insert("members", other_account_id, today_member(qr_token="MDQR_theirs"))
        assert local.check_in_by_qr(account_id, "MDQR_theirs")["error"] == "Invalid QR code"

    def test_expired_member(self, local, account_id):
        local.insert("members", account_id, today_member(days=-1, qr_token="MDQR_old"))
        result = local.check_in_by_qr(account_id, "MDQR_old")
        assert result == {"success": False, "error": "Membership expired"}

    def test_unknown_procedure(self, local):
        with pytest.raises(RemoteError):
            local.rpc("drop_everything", {})
