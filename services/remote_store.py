"""
Data-store contract and the Supabase implementation.

Every call is scoped to one account through the table's owner column, so a
guessed row id from another account never matches anything.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

import httpx
from postgrest.exceptions import APIError
from supabase import Client, create_client

from core.errors import RemoteError, RemoteReadError

logger = logging.getLogger(__name__)

# table -> column holding the owning account id
OWNER_COLUMNS = {
    "users": "id",
    "branches": "owner_id",
    "members": "user_id",
    "payments": "user_id",
    "plans": "user_id",
    "staff_members": "user_id",
    "attendance": "user_id",
    "activity_log": "user_id",
}

# The seven reads that make up one snapshot: (table, order column, descending)
SNAPSHOT_READS = [
    ("users", None, False),
    ("branches", "created_at", True),
    ("members", "created_at", True),
    ("payments", "payment_date", True),
    ("plans", "duration", False),
    ("staff_members", "created_at", True),
    ("attendance", "check_in", True),
]


def owner_column(table: str) -> str:
    try:
        return OWNER_COLUMNS[table]
    except KeyError:
        raise ValueError(f"Unknown table: {table}")


class RemoteStore:
    """
    Table-scoped select/insert/update/delete with account filtering.
    Every method raises RemoteError(code, message) on failure.
    """

    def select(self, table: str, account_id: str, order_by: Optional[str] = None,
               descending: bool = False) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def select_one(self, table: str, account_id: str) -> Optional[Dict[str, Any]]:
        """Returns the single row owned by the account (used for the profile)."""
        raise NotImplementedError

    def insert(self, table: str, account_id: str, row: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def update(self, table: str, account_id: str, row_id: str,
               changes: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def delete(self, table: str, account_id: str, row_id: str) -> bool:
        """Returns True if a row was removed, False if nothing matched."""
        raise NotImplementedError

    def rpc(self, name: str, params: Dict[str, Any]) -> Any:
        raise NotImplementedError


def fetch_snapshot_tables(store: RemoteStore, account_id: str) -> Dict[str, Any]:
    """
    Issues the seven snapshot reads in parallel.

    The result is all-or-nothing: if any read fails, RemoteReadError is raised
    and no partial data is returned.

    Returns:
        Dict: table name -> rows ('users' maps to the profile row or None).
    """
    def read(entry):
        table, order_by, descending = entry
        if table == "users":
            return table, store.select_one(table, account_id)
        return table, store.select(table, account_id, order_by=order_by, descending=descending)

    with ThreadPoolExecutor(max_workers=len(SNAPSHOT_READS)) as executor:
        futures = [executor.submit(read, entry) for entry in SNAPSHOT_READS]
        tables = {}
        for future in futures:
            try:
                table, rows = future.result()
            except RemoteError as e:
                raise RemoteReadError(e.code, e.message)
            except Exception as e:
                raise RemoteReadError("unknown", str(e))
            tables[table] = rows
    return tables


class SupabaseStore(RemoteStore):
    """RemoteStore backed by Supabase (PostgREST)."""

    def __init__(self, client: Optional[Client] = None, url: Optional[str] = None,
                 key: Optional[str] = None):
        if client is None:
            if not url or not key:
                raise ValueError("Supabase URL and key are required.")
            client = create_client(url, key)
        self.client = client

    def _execute(self, query) -> Any:
        try:
            return query.execute()
        except APIError as e:
            raise RemoteError(e.code, e.message or str(e))
        except httpx.HTTPError as e:
            raise RemoteError("network", str(e))

    def select(self, table, account_id, order_by=None, descending=False):
        query = self.client.table(table).select("*").eq(owner_column(table), account_id)
        if order_by:
            query = query.order(order_by, desc=descending)
        return self._execute(query).data or []

    def select_one(self, table, account_id):
        query = self.client.table(table).select("*").eq(owner_column(table), account_id).limit(1)
        rows = self._execute(query).data or []
        return rows[0] if rows else None

    def insert(self, table, account_id, row):
        payload = dict(row)
        payload[owner_column(table)] = account_id
        rows = self._execute(self.client.table(table).insert(payload)).data or []
        if not rows:
            raise RemoteError("no_data", f"Insert into {table} returned no row")
        return rows[0]

    def update(self, table, account_id, row_id, changes):
        payload = {k: v for k, v in changes.items() if k not in ("id", owner_column(table))}
        query = (
            self.client.table(table)
            .update(payload)
            .eq("id", row_id)
            .eq(owner_column(table), account_id)
        )
        rows = self._execute(query).data or []
        if not rows:
            raise RemoteError("PGRST116", f"No {table} row {row_id} for this account")
        return rows[0]

    def delete(self, table, account_id, row_id):
        query = (
            self.client.table(table)
            .delete()
            .eq("id", row_id)
            .eq(owner_column(table), account_id)
        )
        rows = self._execute(query).data or []
        return bool(rows)

    def rpc(self, name, params):
        return self._execute(self.client.rpc(name, params)).data
