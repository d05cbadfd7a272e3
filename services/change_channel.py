"""
Change-notification channels.

A notification only says "something changed in this table"; listeners are
expected to refetch rather than patch. Both channels re-emit notifications as
the Qt `changed` signal so that receivers in the main thread get them queued.
"""
import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Optional

from PySide6 import QtCore
from supabase import acreate_client

logger = logging.getLogger(__name__)

# table -> owner column used to filter notifications to one account
WATCHED_TABLES = {
    "members": "user_id",
    "payments": "user_id",
    "plans": "user_id",
    "attendance": "user_id",
    "users": "id",
    "staff_members": "user_id",
}


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    operation: str  # INSERT/UPDATE/DELETE, or '*' when the source does not say


class ChangeChannel(QtCore.QObject):
    """
    Base channel: one subscription per account, idempotent to resubscribe.

    Signals:
        changed (ChangeEvent): Emitted for every change on a watched table.
    """
    changed = QtCore.Signal(object)

    def __init__(self, parent: Optional[QtCore.QObject] = None):
        super().__init__(parent)
        self.account_id: Optional[str] = None

    @property
    def is_subscribed(self) -> bool:
        return self.account_id is not None

    def subscribe(self, account_id: str, access_token: Optional[str] = None) -> None:
        """
        Args:
            account_id (str): Account whose rows are watched.
            access_token (str, optional): The session token the subscription authenticates with.
        """
        if self.account_id == account_id:
            return
        if self.account_id is not None:
            self.unsubscribe()
        self.account_id = account_id
        self._open(account_id, access_token)
        logger.info("Subscribed to changes for account %s", account_id)

    def unsubscribe(self) -> None:
        if self.account_id is None:
            return
        account_id, self.account_id = self.account_id, None
        self._close()
        logger.info("Unsubscribed from changes for account %s", account_id)

    def _open(self, account_id: str, access_token: Optional[str]) -> None:
        pass

    def _close(self) -> None:
        pass


class LocalChangeChannel(ChangeChannel):
    """Delivers the local SQLite store's own writes as notifications."""

    def publish(self, table: str, operation: str, account_id: str) -> None:
        """Called by LocalStore after each committed write."""
        if table not in WATCHED_TABLES or account_id != self.account_id:
            return
        self.changed.emit(ChangeEvent(table, operation))


class SupabaseChangeChannel(ChangeChannel):
    """
    Supabase Realtime subscription running on a private asyncio loop.

    The realtime client is async-only, so the loop lives in a daemon thread and
    callbacks are forwarded through the `changed` signal.
    """

    def __init__(self, url: str, key: str, parent: Optional[QtCore.QObject] = None):
        super().__init__(parent)
        self.url = url
        self.key = key
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._client = None
        self._channel = None

    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.new_event_loop()
            self._thread = threading.Thread(target=self._loop.run_forever,
                                            name="supabase-realtime", daemon=True)
            self._thread.start()
        return self._loop

    def _open(self, account_id: str, access_token: Optional[str]) -> None:
        future = asyncio.run_coroutine_threadsafe(self._join(account_id, access_token),
                                                  self._ensure_loop())
        future.add_done_callback(self._log_failure)

    def _close(self) -> None:
        if self._loop is None:
            return
        future = asyncio.run_coroutine_threadsafe(self._leave(), self._loop)
        future.add_done_callback(self._log_failure)

    async def _join(self, account_id: str, access_token: Optional[str] = None) -> None:
        if self._client is None:
            self._client = await acreate_client(self.url, self.key)
        # Row-level security filters events by the token of the account being joined
        if access_token:
            await self._client.realtime.set_auth(access_token)

        channel = self._client.channel(f"user-{account_id}")
        for table, column in WATCHED_TABLES.items():
            channel.on_postgres_changes(
                "*",
                schema="public",
                table=table,
                filter=f"{column}=eq.{account_id}",
                callback=self._forward(table),
            )
        await channel.subscribe()
        self._channel = channel

    async def _leave(self) -> None:
        if self._client is not None and self._channel is not None:
            await self._client.remove_channel(self._channel)
        self._channel = None

    def _forward(self, table: str):
        def callback(payload) -> None:
            data = payload.get("data", payload) if isinstance(payload, dict) else {}
            operation = data.get("type") or data.get("eventType") or "*"
            self.changed.emit(ChangeEvent(table, str(operation)))
        return callback

    @staticmethod
    def _log_failure(future) -> None:
        exc = future.exception()
        if exc is not None:
            logger.error("Realtime subscription error: %s", exc)
