"""SQLite database layer for activity records."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional, Sequence, Union


TIMESTAMP_FMT = "%Y-%m-%dT%H:%M:%SZ"

_TAG_EXPR = (
    "CASE WHEN instr(title, ': ') > 0 "
    "THEN substr(title, 1, instr(title, ': ') - 1) ELSE title END"
)


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FMT)


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 timestamp with any offset into UTC."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        raise ValueError(f"timestamp has no UTC offset: {value!r}")
    return parsed.astimezone(timezone.utc)


def open_database(
    path: Union[Path, str], *, check_same_thread: bool = True
) -> sqlite3.Connection:
    """Open (and initialize) the SQLite database."""
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        check_same_thread=check_same_thread,
        timeout=10.0,
    )
    conn.row_factory = sqlite3.Row
    initialize_schema(conn)
    return conn


@contextmanager
def database_connection(
    path: Union[Path, str], *, check_same_thread: bool = True
) -> Iterator[sqlite3.Connection]:
    conn = open_database(path, check_same_thread=check_same_thread)
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def immediate_transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Hold the database write lock for a check-then-write sequence."""
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS clocking (
            id INTEGER PRIMARY KEY,
            title TEXT NOT NULL,
            start TEXT NOT NULL,
            end TEXT NULL,
            notes TEXT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_clocking_start
            ON clocking(start);

        CREATE INDEX IF NOT EXISTS idx_clocking_title_start
            ON clocking(title, start);
        """
    )


def fetch_open_activity(conn: sqlite3.Connection) -> Optional[sqlite3.Row]:
    return conn.execute(
        """
        SELECT id, title, start, notes
        FROM clocking
        WHERE end IS NULL
        ORDER BY id DESC
        LIMIT 1
        """
    ).fetchone()


def activity_exists(conn: sqlite3.Connection, title: str, start: str) -> bool:
    row = conn.execute(
        "SELECT count(1) FROM clocking WHERE title = ? AND start = ?",
        (title, start),
    ).fetchone()
    return row[0] > 0


def insert_activity(
    conn: sqlite3.Connection,
    title: str,
    start: str,
    end: Optional[str],
    notes: str,
) -> None:
    conn.execute(
        """
        INSERT INTO clocking (title, start, end, notes)
        VALUES (?, ?, ?, ?)
        """,
        (title, start, end, notes),
    )


def close_activity(
    conn: sqlite3.Connection, activity_id: int, end: str, notes: str
) -> None:
    conn.execute(
        """
        UPDATE clocking
        SET end = ?, notes = IFNULL(notes, '') || ?
        WHERE id = ?
        """,
        (end, notes, activity_id),
    )


def fetch_recent_titles(conn: sqlite3.Connection, limit: int) -> list[str]:
    rows = conn.execute(
        """
        SELECT title, max(start) AS last_start
        FROM clocking
        WHERE end IS NOT NULL
        GROUP BY title
        ORDER BY last_start DESC
        LIMIT ?
        """,
        (limit,),
    )
    return [row["title"] for row in rows]


def fetch_last_closed(
    conn: sqlite3.Connection, title: Optional[str] = None
) -> Optional[sqlite3.Row]:
    clause = "AND title = ?" if title else ""
    params: tuple[object, ...] = (title,) if title else ()
    return conn.execute(
        f"""
        SELECT title, start, end, notes
        FROM clocking
        WHERE end IS NOT NULL {clause}
        ORDER BY start DESC, id DESC
        LIMIT 1
        """,
        params,
    ).fetchone()


def fetch_closed(
    conn: sqlite3.Connection,
    start: str,
    end: str,
    values: Sequence[str] = (),
    *,
    as_tag: bool = False,
) -> list[sqlite3.Row]:
    """Fetch closed records whose start lies in ``[start, end]``, oldest first."""
    clause = ""
    params: list[object] = [start, end]
    if values:
        column = _TAG_EXPR if as_tag else "title"
        marks = ", ".join("?" for _ in values)
        clause = f"AND {column} IN ({marks})"
        params.extend(values)

    return list(
        conn.execute(
            f"""
            SELECT title, start, end, notes
            FROM clocking
            WHERE end IS NOT NULL
                AND start >= ? AND start <= ?
                {clause}
            ORDER BY start, id
            """,
            params,
        )
    )
