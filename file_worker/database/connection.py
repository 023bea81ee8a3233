from collections.abc import Generator
from contextlib import contextmanager
from types import TracebackType
from typing import Any

import psycopg
from psycopg_pool import ConnectionPool


class ConnectionProvider:
    """Owns one connection pool; open on process start, close on stop.

    Usable as a context manager so the pool is released even when the
    worker loop exits with an error.
    """

    def __init__(self, conninfo: str, min_size: int = 1, max_size: int = 10) -> None:
        self._conninfo = conninfo
        self._min_size = min_size
        self._max_size = max_size
        self._pool: ConnectionPool | None = None

    def open(self) -> None:
        """Create the pool. Calling it twice is a no-op."""
        if self._pool is None:
            self._pool = ConnectionPool(
                self._conninfo,
                min_size=self._min_size,
                max_size=self._max_size,
                open=True,
            )

    def close(self) -> None:
        """Close the pool."""
        if self._pool is not None:
            self._pool.close()
            self._pool = None

    def __enter__(self) -> "ConnectionProvider":
        self.open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    @contextmanager
    def connection(self) -> Generator[psycopg.Connection[Any], None, None]:
        """Yield a connection from the pool. Caller manages commit/rollback."""
        if self._pool is None:
            raise RuntimeError("Connection pool not initialized. Call open() first.")
        with self._pool.connection() as conn:
            yield conn
