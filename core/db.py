from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Sequence, Tuple

__all__ = [
    "CATALOG_SCHEMA_VERSION",
    "DEFAULT_BUSY_TIMEOUT_MS",
    "configure_connection",
    "connect",
    "ensure_catalog_schema",
    "transaction",
]

LOGGER = logging.getLogger("mediascanner.db")

DEFAULT_BUSY_TIMEOUT_MS = 5000

# (version, statements) applied in order; PRAGMA user_version records progress
_CATALOG_MIGRATIONS: Sequence[Tuple[int, Sequence[str]]] = (
    (
        1,
        (
            """
            CREATE TABLE IF NOT EXISTS media (
                id TEXT PRIMARY KEY,
                rev TEXT NOT NULL,
                doc_json TEXT NOT NULL,
                thumb_blob BLOB,
                updated_utc TEXT NOT NULL
            )
            """,
        ),
    ),
)

CATALOG_SCHEMA_VERSION = _CATALOG_MIGRATIONS[-1][0]


def connect(db_path: str | Path, *, timeout: float = 5.0) -> sqlite3.Connection:
    """Open the catalog database in autocommit mode, shareable across threads.

    Callers serialise access themselves and group writes with :func:`transaction`.
    """

    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(
        str(path),
        timeout=timeout,
        isolation_level=None,
        check_same_thread=False,
    )
    configure_connection(conn)
    return conn


def configure_connection(conn: sqlite3.Connection, *, enable_wal: bool = True) -> None:
    conn.execute(f"PRAGMA busy_timeout={int(DEFAULT_BUSY_TIMEOUT_MS)}")
    if enable_wal:
        try:
            conn.execute("PRAGMA journal_mode=WAL")
        except sqlite3.DatabaseError:
            pass


def ensure_catalog_schema(conn: sqlite3.Connection) -> int:
    """Bring the catalog tables up to :data:`CATALOG_SCHEMA_VERSION`; return it."""

    current = int(conn.execute("PRAGMA user_version").fetchone()[0])
    if current > CATALOG_SCHEMA_VERSION:
        raise sqlite3.DatabaseError(
            f"catalog schema version {current} is newer than supported {CATALOG_SCHEMA_VERSION}"
        )
    for version, statements in _CATALOG_MIGRATIONS:
        if version <= current:
            continue
        with transaction(conn):
            for statement in statements:
                conn.execute(statement)
            conn.execute(f"PRAGMA user_version={int(version)}")
        LOGGER.info("Catalog schema upgraded to version %d", version)
        current = version
    return current


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    try:
        conn.execute("BEGIN IMMEDIATE")
        yield conn
    except Exception:
        conn.rollback()
        raise
    else:
        conn.commit()
