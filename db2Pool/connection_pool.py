import contextlib
import logging
import threading
import time
from collections import deque

from pydantic import BaseModel

from db2Pool.errors import AcquireTimeout, InvalidRelease, PoolClosed, PoolInitError

logger = logging.getLogger(__name__)

OPEN = "open"
CLOSING = "closing"
CLOSED = "closed"


class PoolStats(BaseModel):
    pool_size: int
    idle: int
    checked_out: int
    waiting: int
    closed: bool


class ConnectionPool:
    """Fixed-size, thread-safe pool of database connections.

    All ``pool_size`` connections are opened eagerly through ``driver`` when the
    pool is built. Idle connections are handed out most-recently-released
    first (LIFO), which keeps a small warm set in rotation under light load.

    Parameters
    ----------
    driver:
        Object with a ``connect(endpoint, credentials)`` method returning a
        connection that provides ``is_valid()`` and ``close()``.
    endpoint, credentials:
        Passed through to ``driver.connect`` unchanged.
    pool_size:
        Number of connections owned by the pool. Never changes.
    name:
        Label used in log lines and metrics.
    exporter:
        Optional :class:`CustomExporter` receiving pool gauges.
    validate_on_acquire:
        Check ``is_valid()`` before handing a connection out and replace it
        through the driver if it has gone stale.
    shutdown_grace_period:
        Default number of seconds :meth:`shutdown` waits for checked-out
        connections before closing them forcibly. ``None`` waits forever.
    """

    def __init__(
        self,
        driver,
        endpoint,
        credentials,
        pool_size: int = 10,
        *,
        name: str = "default",
        exporter=None,
        validate_on_acquire: bool = False,
        shutdown_grace_period: float | None = 30.0,
    ):
        if isinstance(pool_size, bool) or not isinstance(pool_size, int) or pool_size <= 0:
            raise ValueError(f"pool_size must be a positive integer, got {pool_size!r}")

        self._driver = driver
        self._endpoint = endpoint
        self._credentials = credentials
        self._pool_size = pool_size
        self.name = name
        self.exporter = exporter
        self.validate_on_acquire = validate_on_acquire
        self.shutdown_grace_period = shutdown_grace_period

        self._cond = threading.Condition(threading.Lock())
        # Right end is the top of the stack.
        self._idle: deque = deque()
        # Keyed by id() so connection objects need not be hashable.
        self._checked_out: dict[int, object] = {}
        self._waiting = 0
        self._state = OPEN
        # Set once every connection has been closed.
        self._shutdown_done = threading.Event()

        created = []
        for i in range(pool_size):
            try:
                created.append(self._create())
            except Exception as e:
                logger.error(
                    f"[{self.name}] failed to create connection {i + 1}/{pool_size}: {e}"
                )
                for conn in created:
                    self._close_quietly(conn)
                raise PoolInitError(e, len(created)) from e

        with self._cond:
            self._idle.extend(created)
            self._publish()
        logger.info(f"[{self.name}] pool ready with {pool_size} connections")

    @property
    def pool_size(self) -> int:
        return self._pool_size

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._state != OPEN

    def stats(self) -> PoolStats:
        """Return a consistent snapshot of the pool counters."""
        with self._cond:
            return PoolStats(
                pool_size=self._pool_size,
                idle=len(self._idle),
                checked_out=len(self._checked_out),
                waiting=self._waiting,
                closed=self._state != OPEN,
            )

    def acquire(self, timeout: float | None = None):
        """
        Take an idle connection, blocking until one is released.

        Raises :class:`AcquireTimeout` if ``timeout`` seconds pass without a
        connection becoming idle, and :class:`PoolClosed` if the pool is shut
        down before or while waiting.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                if self._state != OPEN:
                    raise PoolClosed(f"pool '{self.name}' is closed")
                # Checked before the deadline so a wakeup that races the
                # timeout still hands the connection over.
                if self._idle:
                    break
                remaining = None
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        logger.warning(
                            f"[{self.name}] acquire timed out after {timeout}s"
                        )
                        self._publish()
                        if self.exporter is not None:
                            self.exporter.inc_gauge(
                                "db2pool_acquire_timeouts", 1, {"pool": self.name}
                            )
                        raise AcquireTimeout(timeout)
                self._waiting += 1
                self._publish()
                try:
                    self._cond.wait(remaining)
                finally:
                    self._waiting -= 1

            conn = self._idle.pop()
            self._checked_out[id(conn)] = conn
            self._publish()

        logger.debug(f"[{self.name}] connection acquired")
        if self.validate_on_acquire:
            conn = self._revalidate(conn)
        return conn

    def release(self, conn) -> None:
        """Return a connection obtained from :meth:`acquire`."""
        with self._cond:
            if self._checked_out.get(id(conn)) is not conn:
                if self._state == CLOSED:
                    raise PoolClosed(
                        f"pool '{self.name}' is closed; connection was already closed"
                    )
                raise InvalidRelease(
                    f"connection is not checked out from pool '{self.name}'"
                )
            del self._checked_out[id(conn)]
            self._idle.append(conn)
            self._wake()
            self._publish()
        logger.debug(f"[{self.name}] connection released")

    @contextlib.contextmanager
    def connection(self, timeout: float | None = None):
        """Acquire a connection for the duration of a ``with`` block."""
        conn = self.acquire(timeout)
        try:
            yield conn
        finally:
            self.release(conn)

    def shutdown(self, grace_period: float | None = None) -> None:
        """
        Close the pool and every connection it owns.

        New and waiting acquirers get :class:`PoolClosed` immediately.
        Checked-out connections are given ``grace_period`` seconds (defaults
        to ``shutdown_grace_period``) to be released before they are closed
        underneath their holders. A second call closes nothing; it returns
        once the first call has finished closing connections.
        """
        if grace_period is None:
            grace_period = self.shutdown_grace_period

        with self._cond:
            first = self._state == OPEN
            if first:
                self._state = CLOSING
                self._cond.notify_all()
        if not first:
            logger.debug(f"[{self.name}] shutdown already requested, waiting for it")
            self._shutdown_done.wait()
            return

        try:
            self._drain(grace_period)
        finally:
            self._shutdown_done.set()

    def _drain(self, grace_period) -> None:
        with self._cond:
            logger.info(
                f"[{self.name}] shutting down, waiting for "
                f"{len(self._checked_out)} checked-out connections"
            )

            deadline = None if grace_period is None else time.monotonic() + grace_period
            while self._checked_out:
                if deadline is None:
                    self._cond.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self._cond.wait(remaining)

            outstanding = list(self._checked_out.values())
            idle = list(self._idle)
            self._checked_out.clear()
            self._idle.clear()
            self._state = CLOSED
            self._publish()

        if outstanding:
            logger.warning(
                f"[{self.name}] grace period of {grace_period}s expired, "
                f"force-closing {len(outstanding)} checked-out connections"
            )
        for conn in outstanding + idle:
            self._close_quietly(conn)
        logger.info(f"[{self.name}] pool closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()

    def __repr__(self):
        s = self.stats()
        return (
            f"<ConnectionPool {self.name!r} size={s.pool_size} idle={s.idle} "
            f"checked_out={s.checked_out} closed={s.closed}>"
        )

    def _create(self):
        return self._driver.connect(self._endpoint, self._credentials)

    def _revalidate(self, conn):
        try:
            valid = conn.is_valid()
        except Exception as e:
            logger.warning(f"[{self.name}] validity check failed: {e}")
            valid = False
        if valid:
            return conn

        logger.warning(f"[{self.name}] stale connection detected, reconnecting")
        try:
            fresh = self._create()
        except Exception as e:
            logger.error(f"[{self.name}] failed to replace stale connection: {e}")
            with self._cond:
                if self._checked_out.get(id(conn)) is conn:
                    del self._checked_out[id(conn)]
                    # Bottom of the stack so healthy connections go first.
                    self._idle.appendleft(conn)
                    self._wake()
                    self._publish()
            raise

        with self._cond:
            owned = self._checked_out.get(id(conn)) is conn
            if owned:
                del self._checked_out[id(conn)]
                self._checked_out[id(fresh)] = fresh
        if not owned:
            # Shutdown force-closed the slot, stale connection included,
            # while we were reconnecting.
            self._close_quietly(fresh)
            raise PoolClosed(f"pool '{self.name}' is closed")
        self._close_quietly(conn)
        return fresh

    def _close_quietly(self, conn) -> None:
        try:
            conn.close()
        except Exception as e:
            logger.error(f"[{self.name}] failed to close connection: {e}")

    def _wake(self) -> None:
        # Caller holds the lock.
        if self._state == OPEN:
            self._cond.notify()
        else:
            # Only shutdown is left waiting on the condition.
            self._cond.notify_all()

    def _publish(self) -> None:
        # Caller holds the lock.
        if self.exporter is None:
            return
        labels = {"pool": self.name}
        self.exporter.set_gauge("db2pool_idle_connections", len(self._idle), labels)
        self.exporter.set_gauge(
            "db2pool_checked_out_connections", len(self._checked_out), labels
        )
        self.exporter.set_gauge("db2pool_waiting_acquirers", self._waiting, labels)
