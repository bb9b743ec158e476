"""Per-thread SQLite connections for the run archive."""
from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

logger = logging.getLogger(__name__)

DB_BUSY_TIMEOUT_MS = 30000

_PRAGMAS = (
    "journal_mode=WAL",
    f"busy_timeout={DB_BUSY_TIMEOUT_MS}",
    "foreign_keys=ON",
)


class ConnectionPool:
    """Hands each thread its own connection to one archive file.

    Connections are opened lazily with the ``_PRAGMAS`` applied and
    ``sqlite3.Row`` rows; ``close`` shuts every connection the pool opened.
    """

    def __init__(self, db_path: str | Path, timeout: float = 30.0) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._timeout = timeout
        self._local = threading.local()
        self._lock = threading.Lock()
        self._open: list[sqlite3.Connection] = []

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=self._timeout)
        conn.row_factory = sqlite3.Row
        for pragma in _PRAGMAS:
            conn.execute(f"PRAGMA {pragma}")
        return conn

    def get(self) -> sqlite3.Connection:
        """Return this thread's connection, opening it on first use."""
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = self._connect()
            self._local.conn = conn
            with self._lock:
                self._open.append(conn)
        return conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Yield this thread's connection; commit on exit, roll back on error."""
        conn = self.get()
        try:
            yield conn
        except BaseException:
            conn.rollback()
            raise
        conn.commit()

    def close(self) -> None:
        with self._lock:
            opened, self._open = self._open, []
        for conn in opened:
            try:
                conn.close()
            except sqlite3.Error as exc:
                logger.debug("Ignoring error closing %s: %s", self._db_path, exc)
        self._local.conn = None
