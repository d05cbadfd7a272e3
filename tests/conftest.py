"""Shared fixtures: a Qt core application, a manual worker runner and a seeded SQLite store."""
import datetime

import pytest
from PySide6 import QtCore

from core.database import init_db
from services.auth_service import LocalAuthProvider
from services.change_channel import LocalChangeChannel
from services.data_cache import GymDataCache
from services.local_store import LocalStore
from services.remote_store import RemoteStore

TODAY = datetime.date(2025, 3, 10)


@pytest.fixture(scope="session", autouse=True)
def core_app():
    """One QCoreApplication for the whole run; QObjects and timers need it."""
    app = QtCore.QCoreApplication.instance() or QtCore.QCoreApplication([])
    yield app


class ManualRunner:
    """Collects submitted workers and runs them on demand, in the test's thread."""

    def __init__(self):
        self.queue = []

    def __call__(self, worker):
        self.queue.append(worker)

    @property
    def labels(self):
        return [w.label for w in self.queue]

    def run_next(self):
        worker = self.queue.pop(0)
        worker.run()
        return worker

    def run_label(self, label):
        worker = next(w for w in self.queue if w.label == label)
        self.queue.remove(worker)
        worker.run()
        return worker

    def run_all(self):
        while self.queue:
            self.run_next()


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class Day:
    """Settable 'today' for the cache."""

    def __init__(self, value=TODAY):
        self.value = value

    def __call__(self):
        return self.value


class FlakyStore(RemoteStore):
    """Delegates to a real store; queued failures are raised instead of calling it."""

    def __init__(self, inner):
        self.inner = inner
        self.failures = {}
        self.calls = []

    def fail(self, method, exc, times=1):
        self.failures.setdefault(method, []).extend([exc] * times)

    def _call(self, method, *args):
        self.calls.append((method,) + args)
        pending = self.failures.get(method)
        if pending:
            raise pending.pop(0)
        return getattr(self.inner, method)(*args)

    def select(self, table, account_id, order_by=None, descending=False):
        return self._call("select", table, account_id, order_by, descending)

    def select_one(self, table, account_id):
        return self._call("select_one", table, account_id)

    def insert(self, table, account_id, row):
        return self._call("insert", table, account_id, row)

    def update(self, table, account_id, row_id, changes):
        return self._call("update", table, account_id, row_id, changes)

    def delete(self, table, account_id, row_id):
        return self._call("delete", table, account_id, row_id)

    def rpc(self, name, params):
        return self._call("rpc", name, params)


@pytest.fixture
def db_file(tmp_path):
    path = tmp_path / "gymdesk.db"
    init_db(path)
    return path


@pytest.fixture
def auth(db_file):
    return LocalAuthProvider(db_file)


@pytest.fixture
def account_id(auth):
    session = auth.sign_up("owner@example.com", "secret123", name="Ravi", gym_name="Iron Temple")
    auth.sign_out()
    return session.account_id


@pytest.fixture
def other_account_id(auth):
    session = auth.sign_up("rival@example.com", "secret456", name="Asha", gym_name="Rival Gym")
    auth.sign_out()
    return session.account_id


@pytest.fixture
def seed(db_file):
    """Writes rows without notifying anyone (another device, as far as the cache knows)."""
    return LocalStore(db_file)


@pytest.fixture
def channel():
    return LocalChangeChannel()


@pytest.fixture
def store(db_file, channel):
    return FlakyStore(LocalStore(db_file, channel=channel))


@pytest.fixture
def runner():
    return ManualRunner()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def today():
    return Day()


@pytest.fixture
def cache(store, channel, runner, clock, today):
    c = GymDataCache(store, channel, runner=runner, clock=clock, today=today,
                     min_refresh_interval=2.0)
    yield c
    c.close()


@pytest.fixture
def signals(cache):
    """Records everything the cache emits."""
    record = {"snapshots": [], "states": [], "outcomes": [], "notices": [], "errors": []}
    cache.snapshot_changed.connect(record["snapshots"].append)
    cache.state_changed.connect(record["states"].append)
    cache.mutation_finished.connect(record["outcomes"].append)
    cache.notice.connect(record["notices"].append)
    cache.error.connect(record["errors"].append)
    return record


def member_row(name="Priya", days=30, phone="9876543210", plan=1, today=TODAY, **extra):
    row = {
        "name": name,
        "phone": phone,
        "plan_duration": plan,
        "joining_date": (today - datetime.timedelta(days=5)).isoformat(),
        "expiry_date": (today + datetime.timedelta(days=days)).isoformat(),
    }
    row.update(extra)
    return row
