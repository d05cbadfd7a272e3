"""
Offline data store on SQLite.

Implements the same contract as SupabaseStore (including the check_in_by_qr
procedure) and publishes a change notification after every committed write,
the way the hosted store's realtime feed does.
"""
import datetime
import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import config
from core.database import connect
from core.errors import RemoteError
from core.status import EXPIRED, derive_status
from core.utils import new_row_id, now_iso, to_datetime
from services.change_channel import LocalChangeChannel
from services.remote_store import RemoteStore, owner_column

logger = logging.getLogger(__name__)

# Columns stored as JSON text
JSON_COLUMNS = {"plans": ("features",)}
# Never returned to callers
HIDDEN_COLUMNS = {"users": ("password_hash",)}
# Tables without a created_at column
NO_CREATED_AT = {"attendance"}


class LocalStore(RemoteStore):
    """
    RemoteStore on a local SQLite file.

    Args:
        db_file (str | Path, optional): Database path. Defaults to config.DB_FILE.
        channel (LocalChangeChannel, optional): Receives a notification per write.
    """

    def __init__(self, db_file: Optional[Union[str, Path]] = None,
                 channel: Optional[LocalChangeChannel] = None):
        self.db_file = db_file or config.DB_FILE
        self.channel = channel
        self._columns: Dict[str, List[str]] = {}

    # --- HELPERS ---

    def _columns_of(self, conn: sqlite3.Connection, table: str) -> List[str]:
        if table not in self._columns:
            self._columns[table] = [r["name"] for r in conn.execute(f"PRAGMA table_info({table})")]
        return self._columns[table]

    def _to_dict(self, table: str, row: sqlite3.Row) -> Dict[str, Any]:
        data = dict(row)
        for col in HIDDEN_COLUMNS.get(table, ()):
            data.pop(col, None)
        for col in JSON_COLUMNS.get(table, ()):
            if isinstance(data.get(col), str):
                data[col] = json.loads(data[col] or "[]")
        return data

    def _encode(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        data = dict(row)
        for col in JSON_COLUMNS.get(table, ()):
            if col in data and not isinstance(data[col], str):
                data[col] = json.dumps(list(data[col] or []))
        return data

    def _publish(self, table: str, operation: str, account_id: str) -> None:
        if self.channel is not None:
            self.channel.publish(table, operation, account_id)

    def _run(self, fn, *args):
        """Runs fn(conn, *args) in a short-lived connection; sqlite errors become RemoteError."""
        try:
            conn = connect(self.db_file)
        except (sqlite3.Error, RuntimeError) as e:
            raise RemoteError("network", f"Database unavailable: {e}")
        try:
            with conn:
                return fn(conn, *args)
        except sqlite3.IntegrityError as e:
            raise RemoteError("23505", str(e))
        except sqlite3.Error as e:
            raise RemoteError("sqlite", str(e))
        finally:
            conn.close()

    # --- CONTRACT ---

    def select(self, table, account_id, order_by=None, descending=False):
        column = owner_column(table)

        def query(conn):
            sql = f"SELECT * FROM {table} WHERE {column} = ?"
            if order_by:
                if order_by not in self._columns_of(conn, table):
                    raise RemoteError("42703", f"Unknown column {order_by}")
                sql += f" ORDER BY {order_by} {'DESC' if descending else 'ASC'}"
            return [self._to_dict(table, r) for r in conn.execute(sql, (account_id,))]

        return self._run(query)

    def select_one(self, table, account_id):
        rows = self.select(table, account_id)
        return rows[0] if rows else None

    def insert(self, table, account_id, row):
        column = owner_column(table)
        data = self._encode(table, row)
        data[column] = account_id
        data.setdefault("id", new_row_id())
        if table not in NO_CREATED_AT:
            data.setdefault("created_at", now_iso())

        def write(conn):
            known = self._columns_of(conn, table)
            data_cols = [c for c in data if c in known]
            placeholders = ", ".join("?" for _ in data_cols)
            conn.execute(
                f"INSERT INTO {table} ({', '.join(data_cols)}) VALUES ({placeholders})",
                [data[c] for c in data_cols],
            )
            stored = conn.execute(f"SELECT * FROM {table} WHERE id = ?", (data["id"],)).fetchone()
            return self._to_dict(table, stored)

        stored = self._run(write)
        self._publish(table, "INSERT", account_id)
        return stored

    def update(self, table, account_id, row_id, changes):
        column = owner_column(table)
        data = {k: v for k, v in self._encode(table, changes).items() if k not in ("id", column)}

        def write(conn):
            known = self._columns_of(conn, table)
            if "updated_at" in known:
                data["updated_at"] = now_iso()
            data_cols = [c for c in data if c in known]
            if data_cols:
                assignments = ", ".join(f"{c} = ?" for c in data_cols)
                cur = conn.execute(
                    f"UPDATE {table} SET {assignments} WHERE id = ? AND {column} = ?",
                    [data[c] for c in data_cols] + [row_id, account_id],
                )
                if cur.rowcount == 0:
                    raise RemoteError("PGRST116", f"No {table} row {row_id} for this account")
            stored = conn.execute(
                f"SELECT * FROM {table} WHERE id = ? AND {column} = ?", (row_id, account_id)
            ).fetchone()
            if stored is None:
                raise RemoteError("PGRST116", f"No {table} row {row_id} for this account")
            return self._to_dict(table, stored)

        stored = self._run(write)
        self._publish(table, "UPDATE", account_id)
        return stored

    def delete(self, table, account_id, row_id):
        column = owner_column(table)

        def write(conn):
            cur = conn.execute(f"DELETE FROM {table} WHERE id = ? AND {column} = ?", (row_id, account_id))
            return cur.rowcount > 0

        deleted = self._run(write)
        if deleted:
            self._publish(table, "DELETE", account_id)
        return deleted

    def rpc(self, name, params):
        if name == "check_in_by_qr":
            return self.check_in_by_qr(**params)
        raise RemoteError("PGRST202", f"Unknown procedure {name}")

    # --- PROCEDURES ---

    def check_in_by_qr(self, p_user_id: str, p_qr_token: str, p_branch_id: Optional[str] = None,
                       p_device_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Checks a member in by QR token.

        Returns:
            Dict: {'success': bool, 'error': str} or {'success': True, 'member': {...}}.
        """
        today = datetime.date.today()

        def procedure(conn):
            member = conn.execute(
                "SELECT id, name, expiry_date FROM members WHERE user_id = ? AND qr_token = ?",
                (p_user_id, p_qr_token),
            ).fetchone()
            if member is None:
                return {"success": False, "error": "Invalid QR code"}

            status = derive_status(member["expiry_date"], today)
            if status == EXPIRED:
                return {"success": False, "error": "Membership expired"}

            for row in conn.execute(
                "SELECT check_in FROM attendance WHERE user_id = ? AND member_id = ?",
                (p_user_id, member["id"]),
            ):
                if to_datetime(row["check_in"]).astimezone().date() == today:
                    return {"success": False, "error": "Already checked in today"}

            conn.execute(
                "INSERT INTO attendance (id, user_id, branch_id, member_id, member_name, check_in, source, device_id) "
                "VALUES (?, ?, ?, ?, ?, ?, 'qr', ?)",
                (new_row_id(), p_user_id, p_branch_id, member["id"], member["name"], now_iso(), p_device_id),
            )
            return {"success": True, "member": {"id": member["id"], "name": member["name"], "status": status}}

        result = self._run(procedure)
        if result.get("success"):
            self._publish("attendance", "INSERT", p_user_id)
        return result
