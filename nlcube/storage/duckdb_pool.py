# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Thread-safe DuckDB connection management, one database file per subject.

Each subject database gets a single shared connection protected by a
reentrant lock. DuckDB's C++ engine is not safe for concurrent cursor
access from a single connection, so execute+fetch cycles hold the lock.
The handle is synchronous: callers in async code must dispatch to a
worker thread rather than touch it from the event loop.

Usage:
    pool = DuckDBConnectionPool("/path/to/sales/sales.duckdb")
    with pool.connection() as conn:
        rows = conn.execute("SELECT * FROM orders").fetchall()

    connections = SubjectConnections(directory)
    with connections.connection("sales") as conn:
        conn.execute("SELECT 1").fetchone()
"""

import asyncio
import atexit
import functools
import logging
import threading
import time
import weakref
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Generator, Optional, TYPE_CHECKING

import duckdb

from nlcube.core.errors import UnknownSubjectError

if TYPE_CHECKING:
    from nlcube.storage.subjects import SubjectDirectory

logger = logging.getLogger(__name__)

# Track all live pools so they can be closed before process exit
_all_pools: weakref.WeakSet["DuckDBConnectionPool"] = weakref.WeakSet()


def close_all_pools() -> None:
    """Close all live DuckDBConnectionPool instances.

    Call before process exit to avoid SIGABRT from DuckDB's C++ destructors.
    """
    for pool in list(_all_pools):
        try:
            pool.close()
        except Exception as e:
            logger.debug(f"Error closing pool {pool.db_path}: {e}")


# Worker threads for blocking DuckDB calls, kept apart from the event loop default executor
_blocking_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="duckdb-worker")


def _shutdown_blocking_executor() -> None:
    _blocking_executor.shutdown(wait=False, cancel_futures=True)


# Release DuckDB file locks on interpreter exit
atexit.register(close_all_pools)
atexit.register(_shutdown_blocking_executor)


async def run_blocking(
    func: Callable[..., Any],
    *args,
    executor: Optional[ThreadPoolExecutor] = None,
    **kwargs,
) -> Any:
    """Run a blocking call (anything touching a DuckDB handle) on a worker thread.

    There is no cancellation: abandoning the awaiting coroutine does not stop
    the underlying engine call.
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(
        executor or _blocking_executor,
        functools.partial(func, *args, **kwargs),
    )


class DuckDBConnectionPool:
    """Serialized access to a single DuckDB connection.

    Attributes:
        _db_path: Path to the DuckDB database file
        _read_only: Whether the connection is read-only
    """

    def __init__(
        self,
        db_path: str | Path,
        read_only: bool = False,
        config: Optional[dict] = None,
        connect_retries: int = 5,
    ):
        self._db_path = str(db_path)
        self._read_only = read_only
        self._config = config or {}
        self._closed = False
        self._lock = threading.RLock()

        # Retry on lock conflict with another process holding the file
        last_err = None
        for attempt in range(connect_retries):
            try:
                self._conn = duckdb.connect(
                    self._db_path,
                    read_only=self._read_only,
                    config=self._config,
                )
                last_err = None
                break
            except duckdb.IOException as e:
                if "Could not set lock" in str(e) and attempt < connect_retries - 1:
                    last_err = e
                    logger.warning(f"DuckDB lock conflict on {self._db_path}, retrying in {attempt + 1}s...")
                    time.sleep(attempt + 1)
                else:
                    raise
        if last_err is not None:
            raise last_err
        _all_pools.add(self)

    @property
    def db_path(self) -> str:
        return self._db_path

    @property
    def closed(self) -> bool:
        return self._closed

    @contextmanager
    def connection(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """Context manager for the shared connection (holds lock for duration).

        Raises:
            RuntimeError: If the pool has been closed
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("Connection pool has been closed")
            yield self._conn

    def close(self) -> None:
        """Close the shared connection."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            try:
                self._conn.close()
            except Exception as e:
                logger.warning(f"Error closing DuckDB connection: {e}")

    def __enter__(self) -> "DuckDBConnectionPool":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class SubjectConnections:
    """Lazily opened DuckDB handles keyed by subject name.

    A subject's database file is opened on first use and kept open until
    close() / close_all(). Opening the file directly makes the subject name
    the database (catalog) name, so "subject"."table" resolves.
    """

    def __init__(self, directory: "SubjectDirectory", read_only: bool = False):
        self.directory = directory
        self.read_only = read_only
        self._pools: dict[str, DuckDBConnectionPool] = {}
        self._lock = threading.Lock()

    def pool(self, subject: str) -> DuckDBConnectionPool:
        """Get (opening if needed) the pool for a subject.

        Raises:
            UnknownSubjectError: If the subject is not active on disk
        """
        with self._lock:
            pool = self._pools.get(subject)
            if pool is not None and not pool.closed:
                return pool
            if not self.directory.is_active(subject):
                raise UnknownSubjectError(subject)
            db_path = self.directory.database_path(subject)
            logger.debug(f"Opening subject database {subject} at {db_path}")
            pool = DuckDBConnectionPool(db_path, read_only=self.read_only)
            self._pools[subject] = pool
            return pool

    @contextmanager
    def connection(self, subject: str) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        with self.pool(subject).connection() as conn:
            yield conn

    def close(self, subject: str) -> None:
        with self._lock:
            pool = self._pools.pop(subject, None)
        if pool is not None:
            pool.close()

    def close_all(self) -> None:
        with self._lock:
            pools = list(self._pools.values())
            self._pools.clear()
        for pool in pools:
            pool.close()

    def open_subjects(self) -> list[str]:
        with self._lock:
            return sorted(s for s, p in self._pools.items() if not p.closed)
