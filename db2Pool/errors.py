class PoolError(Exception):
    """Base class for every error raised by :class:`ConnectionPool`."""


class PoolInitError(PoolError):
    """A connection could not be created while the pool was being built.

    Parameters
    ----------
    cause:
        The exception raised by the driver.
    created:
        Number of connections successfully created before the failure. They
        have all been closed by the time this error is raised.
    """

    def __init__(self, cause: BaseException, created: int):
        super().__init__(
            f"failed to create connection {created + 1}: {cause}"
        )
        self.cause = cause
        self.created = created


class AcquireTimeout(PoolError):
    """No connection became idle before the caller's deadline."""

    def __init__(self, timeout: float):
        super().__init__(f"no connection available within {timeout}s")
        self.timeout = timeout


class PoolClosed(PoolError):
    """The pool has been shut down (or is shutting down)."""


class InvalidRelease(PoolError):
    """A connection was released that is not checked out from this pool."""
