import sys
import threading
import time
import types

import pytest

try:
    import ibm_db  # noqa: F401
except ImportError:
    # Without the IBM CLI driver, provide a lightweight ``ibm_db`` module so
    # the driver and CLI tests can patch DB2 client functions.
    ibm_db = types.ModuleType("ibm_db")
    ibm_db.SQL_ATTR_INFO_PROGRAMNAME = 0
    ibm_db.SQL_ATTR_INFO_WRKSTNNAME = 1
    ibm_db.SQL_ATTR_INFO_ACCTSTR = 2
    ibm_db.SQL_ATTR_INFO_APPLNAME = 3

    def _unavailable(*args, **kwargs):  # pragma: no cover - always patched
        raise RuntimeError("ibm_db is not installed")

    for _name in ("connect", "prepare", "execute", "num_fields", "fetch_tuple",
                  "free_stmt", "active", "commit", "close"):
        setattr(ibm_db, _name, _unavailable)
    sys.modules["ibm_db"] = ibm_db

from db2Pool.config_manager import Credentials, Endpoint
from db2Pool.connection_pool import ConnectionPool


class StubConnection:
    """In-memory stand-in for a driver connection."""

    def __init__(self, number):
        self.number = number
        self.valid = True
        self.closed = False
        self.close_calls = 0

    def is_valid(self):
        return self.valid and not self.closed

    def close(self):
        self.close_calls += 1
        self.closed = True

    def __repr__(self):
        return f"<StubConnection {self.number}>"


class StubDriver:
    """Driver whose ``connect`` fails on the attempt numbers in ``fail_on``."""

    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.attempts = 0
        self.created = []
        self._lock = threading.Lock()

    def connect(self, endpoint, credentials):
        with self._lock:
            self.attempts += 1
            if self.attempts in self.fail_on:
                raise ConnectionError(f"connect attempt {self.attempts} refused")
            conn = StubConnection(self.attempts)
            self.created.append(conn)
            return conn


def wait_until(predicate, timeout=2.0, interval=0.005):
    """Poll ``predicate`` until it is true or ``timeout`` elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def endpoint():
    return Endpoint(db_host="localhost", db_port=50000, db_name="testdb")


@pytest.fixture
def credentials():
    return Credentials(db_user="user", db_passwd="pass")


@pytest.fixture
def driver():
    return StubDriver()


@pytest.fixture
def make_pool(driver, endpoint, credentials):
    """Factory building pools against the stub driver; shuts them all down afterwards."""
    pools = []

    def factory(pool_size=2, **kwargs):
        pool_driver = kwargs.pop("driver", driver)
        pool = ConnectionPool(pool_driver, endpoint, credentials, pool_size, **kwargs)
        pools.append(pool)
        return pool

    yield factory
    for pool in pools:
        pool.shutdown(grace_period=0)
