"""
Account-scoped cache of members, payments, plans and attendance.

The cache is the single in-memory source of truth for one signed-in account.
It is written only by two entry points:

* fetch (refresh/retry/open): a full seven-table read that replaces the snapshot
  wholesale. Results of superseded or closed-session fetches are dropped.
* apply_mutation: publishes an optimistic snapshot first, then writes to the
  store. Success swaps in the confirmed row; failure refetches from the store
  instead of undoing the change locally.

Change notifications never patch the snapshot; they only schedule a refetch.
All handlers run on the Qt event loop, so no derived state is seen half-built.
"""
import collections
import dataclasses
import datetime
import logging
import time
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any, Callable, Deque, Dict, List, Optional

from PySide6 import QtCore

import config
from core.errors import (AuthRequiredError, RemoteReadError, RemoteWriteError,
                         ValidationError, is_not_found)
from core.status import derive_status
from core.utils import is_temp_id, new_qr_token, new_temp_id, now_iso
from models.account import ActivityEntry, Session
from models.actions import Action, ActionKind, MutationOutcome
from models.attendance import AttendanceRecord
from models.member import Member
from models.payment import Payment
from models.plan import Plan
from models.reminder import Reminder
from models.snapshot import Snapshot
from services.change_channel import ChangeChannel, ChangeEvent
from services.remote_store import RemoteStore, fetch_snapshot_tables
from workers.remote_worker import WorkerHost

logger = logging.getLogger(__name__)


class CacheState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    LOADING = "loading"
    READY = "ready"
    REFRESHING = "refreshing"
    ERROR = "error"


@dataclass(frozen=True)
class PendingWrite:
    """An optimistic entity waiting for the store to confirm it."""
    kind: ActionKind
    temp_id: str
    submitted_at: float


# entity -> (store table, snapshot attribute)
_COLLECTIONS = {
    "member": ("members", "members"),
    "payment": ("payments", "payments"),
    "plan": ("plans", "plans"),
}

_LABELS = {"member": "Member", "payment": "Payment", "plan": "Plan"}


class GymDataCache(WorkerHost):
    """
    Reconciling cache for one account at a time.

    Lifecycle: open(account_id) / close(), or bind_auth(provider) to follow sign-in
    and sign-out. States: unauthenticated -> loading -> ready <-> refreshing, with
    error when the first fetch fails (retry() goes back to loading).

    Signals:
        snapshot_changed (Snapshot | None): A new snapshot was published (None on close).
        state_changed (str): The CacheState value changed.
        mutation_finished (MutationOutcome): The store answered an applied action.
        notice (str): User-facing success message.
        error (str): User-facing failure message.
    """
    snapshot_changed = QtCore.Signal(object)
    state_changed = QtCore.Signal(str)
    mutation_finished = QtCore.Signal(object)
    notice = QtCore.Signal(str)
    error = QtCore.Signal(str)

    def __init__(self, store: RemoteStore, channel: Optional[ChangeChannel] = None,
                 runner: Optional[Callable] = None,
                 clock: Optional[Callable[[], float]] = None,
                 today: Optional[Callable[[], datetime.date]] = None,
                 min_refresh_interval: Optional[float] = None,
                 parent: Optional[QtCore.QObject] = None):
        super().__init__(runner, parent)
        self.store = store
        self.channel = channel
        self.min_refresh_interval = (config.REFRESH_MIN_INTERVAL
                                     if min_refresh_interval is None else min_refresh_interval)
        self._clock = clock or time.monotonic
        self._today = today or datetime.date.today

        self._state = CacheState.UNAUTHENTICATED
        self.account_id: Optional[str] = None
        self.session: Optional[Session] = None
        self._snapshot: Optional[Snapshot] = None
        self.pending: Dict[str, PendingWrite] = {}
        self._activity: Deque[ActivityEntry] = collections.deque(maxlen=config.ACTIVITY_LOG_LIMIT)

        # Fetch bookkeeping
        self._generation = 0  # bumped on open/close; older results are ignored
        self._fetch_seq = 0  # id of the most recently issued fetch
        self._fetch_in_flight: Optional[int] = None
        self._refetch_queued = False
        self._notify_queued = False  # change arrived mid-fetch, refetch is throttled
        self._last_fetch_started: Optional[float] = None

        self._throttle_timer = QtCore.QTimer(self)
        self._throttle_timer.setSingleShot(True)
        self._throttle_timer.timeout.connect(self._run_scheduled_refresh)

        self._auth_unsubscribe: Optional[Callable[[], None]] = None

        if channel is not None:
            channel.changed.connect(self._on_change_event)

    # --- READ ACCESS ---

    @property
    def state(self) -> CacheState:
        return self._state

    @property
    def snapshot(self) -> Optional[Snapshot]:
        """The current snapshot, with statuses and reminders derived for today."""
        if self._snapshot is None:
            return None
        return self._snapshot.restamped(self._today())

    @property
    def members(self) -> List[Member]:
        snap = self.snapshot
        return snap.members if snap else []

    @property
    def payments(self) -> List[Payment]:
        snap = self.snapshot
        return snap.payments if snap else []

    @property
    def plans(self) -> List[Plan]:
        snap = self.snapshot
        return snap.plans if snap else []

    @property
    def attendance(self) -> List[AttendanceRecord]:
        snap = self.snapshot
        return snap.attendance if snap else []

    @property
    def reminders(self) -> List[Reminder]:
        snap = self.snapshot
        return snap.reminders if snap else []

    @property
    def activity(self) -> List[ActivityEntry]:
        return list(self._activity)

    @property
    def refresh_scheduled(self) -> bool:
        return self._throttle_timer.isActive() or self._refetch_queued or self._notify_queued

    # --- LIFECYCLE ---

    def bind_auth(self, provider) -> None:
        """
        Follows an auth provider: opens on sign-in, closes on sign-out and
        re-opens when the signed-in account changes.
        """
        if self._auth_unsubscribe is not None:
            self._auth_unsubscribe()
        self._auth_unsubscribe = provider.on_session_change(self._on_session_change)
        session = provider.get_session()
        if session is not None:
            self.open(session.account_id, session)

    def _on_session_change(self, session: Optional[Session]) -> None:
        if session is None:
            self.close()
        else:
            self.open(session.account_id, session)

    def open(self, account_id: str, session: Optional[Session] = None) -> None:
        """Starts a session for account_id: subscribes to changes and loads the first snapshot."""
        if not account_id:
            raise AuthRequiredError()
        if account_id == self.account_id:
            self.session = session or self.session
            return
        if self.account_id is not None:
            self.close()

        self.account_id = account_id
        self.session = session
        self._generation += 1
        logger.info("Opening gym data for account %s", account_id)

        if self.channel is not None:
            self.channel.subscribe(account_id, session.access_token if session else None)
        self._start_fetch()

    def close(self) -> None:
        """Discards all cached state and releases the change subscription."""
        if self.account_id is None:
            return
        logger.info("Closing gym data for account %s", self.account_id)
        self._generation += 1
        self._throttle_timer.stop()
        if self.channel is not None:
            self.channel.unsubscribe()

        self.account_id = None
        self.session = None
        self._snapshot = None
        self.pending.clear()
        self._activity.clear()
        self._fetch_in_flight = None
        self._refetch_queued = False
        self._notify_queued = False
        self._last_fetch_started = None

        self._set_state(CacheState.UNAUTHENTICATED)
        self.snapshot_changed.emit(None)

    # --- FETCH ---

    def refresh(self, force: bool = False) -> None:
        """
        Requests a full reload from the store.

        Args:
            force (bool): Start a new fetch even if one is running; the running
                fetch's result is then ignored. Otherwise requests made while a
                fetch is in flight collapse into one follow-up fetch.
        """
        self._require_account()
        if force:
            self._start_fetch()
        else:
            self._request_fetch()

    def retry(self) -> None:
        """Reloads after a failed fetch."""
        self.refresh(force=True)

    def _request_fetch(self) -> None:
        if self._fetch_in_flight is not None:
            self._refetch_queued = True
            logger.debug("Fetch #%s in flight, coalescing request", self._fetch_in_flight)
            return
        self._start_fetch()

    def _start_fetch(self) -> None:
        self._fetch_seq += 1
        seq = self._fetch_seq
        self._fetch_in_flight = seq
        self._refetch_queued = False
        self._notify_queued = False
        self._last_fetch_started = self._clock()
        self._throttle_timer.stop()
        self._set_state(CacheState.LOADING if self._snapshot is None else CacheState.REFRESHING)

        generation = self._generation
        self._submit(
            f"fetch #{seq}", fetch_snapshot_tables, self.store, self.account_id,
            on_done=partial(self._on_fetch_done, generation, seq),
            on_error=partial(self._on_fetch_failed, generation, seq),
        )

    def _is_current_fetch(self, generation: int, seq: int) -> bool:
        if generation != self._generation or seq != self._fetch_seq:
            logger.debug("Dropping stale fetch #%s", seq)
            return False
        return True

    def _on_fetch_done(self, generation: int, seq: int, tables: Dict[str, Any]) -> None:
        if not self._is_current_fetch(generation, seq):
            return
        self._fetch_in_flight = None

        snapshot = Snapshot.from_tables(self.account_id, tables, self._today(), self.session)
        self._publish(snapshot)
        self._set_state(CacheState.READY)
        logger.info("Loaded %d members, %d payments, %d plans (%d reminders)",
                    len(snapshot.members), len(snapshot.payments), len(snapshot.plans),
                    len(snapshot.reminders))
        self._drain_queue()

    def _on_fetch_failed(self, generation: int, seq: int, exc: Exception) -> None:
        if not self._is_current_fetch(generation, seq):
            return
        self._fetch_in_flight = None

        err = exc if isinstance(exc, RemoteReadError) else RemoteReadError(
            getattr(exc, "code", "unknown"), getattr(exc, "message", str(exc)))
        logger.error("Snapshot fetch failed: %s", err)

        # A previous snapshot stays usable; without one there is nothing to show
        self._set_state(CacheState.READY if self._snapshot is not None else CacheState.ERROR)
        self.error.emit(f"Could not load gym data: {err.message}")
        self._drain_queue()

    def _drain_queue(self) -> None:
        if self._fetch_in_flight is not None:
            return
        if self._refetch_queued:
            self._start_fetch()
        elif self._notify_queued:
            self._notify_queued = False
            self._schedule_refresh()

    # --- CHANGE NOTIFICATIONS ---

    @QtCore.Slot(object)
    def _on_change_event(self, event: ChangeEvent) -> None:
        if self.account_id is None:
            return
        logger.debug("Change on %s (%s)", event.table, event.operation)
        self._schedule_refresh()

    def _schedule_refresh(self) -> None:
        """Refetch for a notification, at most once per min_refresh_interval."""
        if self._fetch_in_flight is not None:
            self._notify_queued = True
            return
        if self._last_fetch_started is not None:
            remaining = self.min_refresh_interval - (self._clock() - self._last_fetch_started)
            if remaining > 0:
                if not self._throttle_timer.isActive():
                    self._throttle_timer.start(max(1, int(remaining * 1000)))
                return
        self._start_fetch()

    @QtCore.Slot()
    def _run_scheduled_refresh(self) -> None:
        if self.account_id is not None:
            self._request_fetch()

    # --- MUTATIONS ---

    def apply_mutation(self, action: Action) -> Optional[str]:
        """
        Applies an action optimistically and submits it to the store.

        Returns:
            str: Id of the affected entity (a temporary id for adds).

        Raises:
            AuthRequiredError: No account is open.
            ValidationError: The action is incomplete or targets an unknown or unsaved entity.
        """
        self._require_account()
        action.validate()
        if self._snapshot is None:
            raise ValidationError("Gym data is still loading, try again in a moment")

        if action.kind is ActionKind.UPDATE_PROFILE:
            return self._update_profile(action)
        if action.kind.verb == "add":
            return self._add(action)
        if action.kind.verb == "update":
            return self._update(action)
        return self._delete(action)

    def _add(self, action: Action) -> str:
        entity = action.kind.entity
        table, _ = _COLLECTIONS[entity]
        snap = self.snapshot
        today = self._today()

        # 1. Derived fields against the current snapshot
        row = action.form.to_row()
        if entity == "member":
            row["status"] = derive_status(row["expiry_date"], today)
            row["qr_token"] = new_qr_token()
        elif entity == "payment":
            member = snap.find_member(row["member_id"])
            if member is None:
                raise ValidationError("Member not found")
            row["member_name"] = row.get("member_name") or member.name
            row.setdefault("payment_date", today.isoformat())
        if snap.current_branch is not None and entity != "plan":
            row.setdefault("branch_id", snap.current_branch.id)

        # 2. Optimistic snapshot with a temporary id
        temp_id = new_temp_id()
        optimistic = self._build(entity, dict(row, id=temp_id, user_id=self.account_id))
        self._publish(self._with_items(snap, entity, [optimistic] + self._items(snap, entity)))
        self.pending[temp_id] = PendingWrite(action.kind, temp_id, self._clock())

        # 3. Store write scoped to the account
        generation = self._generation
        self._submit(
            f"insert {table}", self.store.insert, table, self.account_id, row,
            on_done=partial(self._confirm_add, generation, action, temp_id),
            on_error=partial(self._write_failed, generation, action, temp_id),
        )
        return temp_id

    def _confirm_add(self, generation: int, action: Action, temp_id: str,
                     stored_row: Dict[str, Any]) -> None:
        self.pending.pop(temp_id, None)
        if generation != self._generation:
            return
        entity = action.kind.entity
        confirmed = self._build(entity, stored_row)

        snap = self.snapshot
        items = []
        placed = False
        for item in self._items(snap, entity):
            if item.id in (temp_id, confirmed.id):
                if not placed:
                    items.append(confirmed)
                    placed = True
                continue
            items.append(item)
        if not placed:
            items.insert(0, confirmed)
        self._publish(self._with_items(snap, entity, items))

        self._record_activity(f"{entity}_added", self._describe(action, confirmed))
        self._finish(action, confirmed.id, f"{_LABELS[entity]} added successfully!")

    def _update(self, action: Action) -> str:
        entity = action.kind.entity
        table, _ = _COLLECTIONS[entity]
        target_id = action.target_id
        snap = self.snapshot

        existing = self._find(snap, entity, target_id)
        self._check_target(entity, target_id, existing)

        row = action.form.to_row()
        if entity == "member":
            row["status"] = derive_status(row["expiry_date"], self._today())
        elif entity == "payment" and not row.get("member_name"):
            if row["member_id"] == existing.member_id:
                row["member_name"] = existing.member_name
            else:
                member = snap.find_member(row["member_id"])
                if member is None:
                    raise ValidationError("Member not found")
                row["member_name"] = member.name

        merged = dict(dataclasses.asdict(existing), **row)
        optimistic = self._build(entity, merged)
        self._publish(self._with_items(snap, entity, self._replaced(snap, entity, optimistic)))

        generation = self._generation
        self._submit(
            f"update {table}", self.store.update, table, self.account_id, target_id, row,
            on_done=partial(self._confirm_update, generation, action),
            on_error=partial(self._write_failed, generation, action, None),
        )
        return target_id

    def _confirm_update(self, generation: int, action: Action, stored_row: Dict[str, Any]) -> None:
        if generation != self._generation:
            return
        entity = action.kind.entity
        confirmed = self._build(entity, stored_row)
        snap = self.snapshot
        self._publish(self._with_items(snap, entity, self._replaced(snap, entity, confirmed)))

        self._record_activity(f"{entity}_updated", self._describe(action, confirmed))
        self._finish(action, confirmed.id, f"{_LABELS[entity]} updated successfully!")

    def _delete(self, action: Action) -> str:
        entity = action.kind.entity
        table, _ = _COLLECTIONS[entity]
        target_id = action.target_id
        if is_temp_id(target_id):
            raise ValidationError(f"{_LABELS[entity]} is still being saved")

        snap = self.snapshot
        existing = self._find(snap, entity, target_id)
        remaining = [item for item in self._items(snap, entity) if item.id != target_id]
        self._publish(self._with_items(snap, entity, remaining))

        generation = self._generation
        self._submit(
            f"delete {table}", self.store.delete, table, self.account_id, target_id,
            on_done=partial(self._confirm_delete, generation, action, existing),
            on_error=partial(self._delete_failed, generation, action, existing),
        )
        return target_id

    def _confirm_delete(self, generation: int, action: Action, existing: Any, deleted: bool) -> None:
        if generation != self._generation:
            return
        if existing is not None and deleted:
            self._record_activity(f"{action.kind.entity}_deleted", self._describe(action, existing))
        self._finish(action, action.target_id, f"{_LABELS[action.kind.entity]} deleted successfully!")

    def _delete_failed(self, generation: int, action: Action, existing: Any, exc: Exception) -> None:
        if is_not_found(exc):
            # Already gone: deletes are idempotent
            self._confirm_delete(generation, action, existing, False)
            return
        self._write_failed(generation, action, None, exc)

    def _update_profile(self, action: Action) -> str:
        snap = self.snapshot
        row = action.form.to_row()
        profile = dataclasses.replace(snap.profile, owner_name=row["name"],
                                      email=row.get("email") or snap.profile.email,
                                      gym_name=row["gym_name"])
        self._publish(snap.with_profile(profile))

        generation = self._generation
        self._submit(
            "update users", self.store.update, "users", self.account_id, self.account_id, row,
            on_done=partial(self._confirm_profile, generation, action),
            on_error=partial(self._write_failed, generation, action, None),
        )
        return self.account_id

    def _confirm_profile(self, generation: int, action: Action, stored_row: Dict[str, Any]) -> None:
        if generation != self._generation:
            return
        self._finish(action, self.account_id, "Profile updated successfully!")
        self._request_fetch()

    def _write_failed(self, generation: int, action: Action, temp_id: Optional[str],
                      exc: Exception) -> None:
        """Surfaces a rejected write and resynchronizes from the store."""
        if temp_id is not None:
            self.pending.pop(temp_id, None)
        if generation != self._generation:
            return

        err = RemoteWriteError(getattr(exc, "code", "unknown"), getattr(exc, "message", str(exc)))
        logger.error("%s failed: %s", action.kind.value, err)

        if temp_id is not None:
            snap = self.snapshot
            entity = action.kind.entity
            items = [item for item in self._items(snap, entity) if item.id != temp_id]
            self._publish(self._with_items(snap, entity, items))

        message = f"Error: {err.message}"
        self.mutation_finished.emit(MutationOutcome(action.kind, False, temp_id or action.target_id, message))
        self.error.emit(message)
        self._request_fetch()

    # --- HELPERS ---

    def _require_account(self) -> None:
        if self.account_id is None:
            raise AuthRequiredError()

    def _set_state(self, state: CacheState) -> None:
        if state != self._state:
            logger.debug("Cache state %s -> %s", self._state.value, state.value)
            self._state = state
            self.state_changed.emit(state.value)

    def _publish(self, snapshot: Snapshot) -> None:
        self._snapshot = snapshot
        self.snapshot_changed.emit(snapshot)

    def _finish(self, action: Action, entity_id: Optional[str], message: str) -> None:
        self.mutation_finished.emit(MutationOutcome(action.kind, True, entity_id, message))
        self.notice.emit(message)

    def _build(self, entity: str, row: Dict[str, Any]):
        if entity == "member":
            return Member.from_row(row, self._today())
        if entity == "payment":
            return Payment.from_row(row)
        return Plan.from_row(row)

    @staticmethod
    def _items(snap: Snapshot, entity: str) -> list:
        return list(getattr(snap, _COLLECTIONS[entity][1]))

    @staticmethod
    def _with_items(snap: Snapshot, entity: str, items: list) -> Snapshot:
        if entity == "member":
            return snap.with_members(items)
        if entity == "payment":
            return snap.with_payments(items)
        return snap.with_plans(items)

    def _find(self, snap: Snapshot, entity: str, entity_id: str):
        return next((item for item in self._items(snap, entity) if item.id == entity_id), None)

    def _replaced(self, snap: Snapshot, entity: str, updated) -> list:
        return [updated if item.id == updated.id else item for item in self._items(snap, entity)]

    @staticmethod
    def _check_target(entity: str, target_id: str, existing: Any) -> None:
        if is_temp_id(target_id):
            raise ValidationError(f"{_LABELS[entity]} is still being saved")
        if existing is None:
            raise ValidationError(f"{_LABELS[entity]} not found")

    @staticmethod
    def _describe(action: Action, item: Any) -> str:
        entity = action.kind.entity
        verb = {"add": "added", "update": "updated", "delete": "deleted"}[action.kind.verb]
        if entity == "payment":
            if action.kind is ActionKind.ADD_PAYMENT:
                return f"Payment of ₹{item.amount:g} added for {item.member_name}"
            return f"Payment for {item.member_name} {verb}"
        return f'{_LABELS[entity]} "{item.name}" {verb}'

    def _record_activity(self, activity_type: str, description: str) -> None:
        """Keeps the entry locally and persists it; a failed persist is only logged."""
        self._activity.appendleft(ActivityEntry(activity_type, description, now_iso()))

        def persisted_failed(exc: Exception) -> None:
            logger.warning("Could not persist activity '%s': %s", activity_type, exc)

        self._submit(
            "insert activity_log", self.store.insert, "activity_log", self.account_id,
            {"activity_type": activity_type, "description": description},
            on_error=persisted_failed,
        )
