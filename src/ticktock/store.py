"""Query store for activity records backed by SQLite."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from pathlib import Path
from typing import Iterator, Optional, Union

from .db import (
    activity_exists,
    close_activity,
    fetch_closed,
    fetch_last_closed,
    fetch_open_activity,
    fetch_recent_titles,
    format_timestamp,
    immediate_transaction,
    insert_activity,
    open_database,
    parse_timestamp,
)
from .errors import (
    DuplicateRecordError,
    NonUTCTimeError,
    OngoingExistsError,
    StorageError,
)
from .models import ClosedActivity, OpenActivity, QueryArg

logger = logging.getLogger(__name__)

DEFAULT_TITLE_LIMIT = 5


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    try:
        yield
    except (sqlite3.Error, ValueError) as exc:
        logger.error("Storage failure while trying to %s: %s", action, exc)
        raise StorageError(f"failed to {action}: {exc}") from exc


def _require_utc(value: datetime, name: str) -> None:
    if value.utcoffset() != timedelta(0):
        raise NonUTCTimeError(f"{name} must be a UTC time, got {value.isoformat()}")


def _closed_from_row(row: sqlite3.Row) -> ClosedActivity:
    return ClosedActivity.create(
        title=row["title"],
        start=parse_timestamp(row["start"]),
        end=parse_timestamp(row["end"]),
        notes=row["notes"] or "",
    )


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def local_days_to_utc(
    start_day: date, end_day: date, tz: Optional[tzinfo] = None
) -> tuple[datetime, datetime]:
    """UTC bounds covering local ``start_day 00:00:00`` through ``end_day 23:59:59``."""
    bounds = []
    for day, at in ((start_day, time(0, 0, 0)), (end_day, time(23, 59, 59))):
        moment = datetime.combine(day, at)
        moment = moment.astimezone() if tz is None else moment.replace(tzinfo=tz)
        bounds.append(moment.astimezone(timezone.utc))
    return bounds[0], bounds[1]


class ActivityStore:
    """Persist activities and answer the queries the reports are built from.

    At most one activity is open at any time. The check for an open activity
    and the insert share one ``BEGIN IMMEDIATE`` transaction, so concurrent
    writers (threads or processes) cannot both start one.
    """

    def __init__(self, db_path: Union[Path, str], *, check_same_thread: bool = True) -> None:
        self.db_path = db_path
        with _storage_errors("open the database"):
            self._conn = open_database(db_path, check_same_thread=check_same_thread)

    def __enter__(self) -> "ActivityStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._conn.close()

    def start(self, activity: OpenActivity) -> None:
        """Start ``activity``.

        Raises OngoingExistsError if any activity is open, otherwise
        DuplicateRecordError if a record with the same title and start exists.
        """
        start = format_timestamp(activity.start)
        with _storage_errors("start an activity"):
            with immediate_transaction(self._conn):
                ongoing = fetch_open_activity(self._conn)
                if ongoing is not None:
                    raise OngoingExistsError(ongoing["title"])
                if activity_exists(self._conn, activity.title, start):
                    raise DuplicateRecordError(activity.title, start)
                insert_activity(self._conn, activity.title, start, None, activity.notes)
        logger.debug("Started %r at %s", activity.title, start)

    def start_title(self, title: str, notes: str = "") -> OpenActivity:
        activity = OpenActivity(title=title, start=utc_now(), notes=notes)
        self.start(activity)
        return activity

    def close_activity(self, notes: str = "") -> Optional[str]:
        """Close the open activity, appending ``notes``.

        Returns its title, or None when nothing was open.
        """
        with _storage_errors("close the ongoing activity"):
            with immediate_transaction(self._conn):
                ongoing = fetch_open_activity(self._conn)
                if ongoing is None:
                    return None
                end = format_timestamp(utc_now())
                close_activity(self._conn, ongoing["id"], end, notes)
        logger.debug("Closed %r at %s", ongoing["title"], end)
        return ongoing["title"]

    def recent_titles(self, limit: int = DEFAULT_TITLE_LIMIT) -> list[str]:
        with _storage_errors("list recent titles"):
            return fetch_recent_titles(self._conn, limit)

    def ongoing(self) -> Optional[OpenActivity]:
        with _storage_errors("fetch the ongoing activity"):
            row = fetch_open_activity(self._conn)
            if row is None:
                return None
            return OpenActivity(
                title=row["title"],
                start=parse_timestamp(row["start"]),
                notes=row["notes"] or "",
            )

    def last_closed(self, title: Optional[str] = None) -> Optional[ClosedActivity]:
        with _storage_errors("fetch the last closed activity"):
            row = fetch_last_closed(self._conn, title)
            return _closed_from_row(row) if row is not None else None

    def closed(
        self,
        query_start: datetime,
        query_end: datetime,
        query: Optional[QueryArg] = None,
    ) -> list[ClosedActivity]:
        """Closed activities starting within ``[query_start, query_end]``.

        Both bounds must carry a zero UTC offset; anything else raises
        NonUTCTimeError rather than being converted.
        """
        _require_utc(query_start, "query start")
        _require_utc(query_end, "query end")
        values = () if query is None or query.empty else tuple(query.values)
        as_tag = query is not None and query.as_tag
        with _storage_errors("query closed activities"):
            rows = fetch_closed(
                self._conn,
                format_timestamp(query_start),
                format_timestamp(query_end),
                values,
                as_tag=as_tag,
            )
            return [_closed_from_row(row) for row in rows]

    def add(self, activity: ClosedActivity) -> None:
        """Insert an already closed activity, e.g. when backfilling."""
        if activity.end < activity.start:
            raise ValueError("end must not be before start")
        start = format_timestamp(activity.start)
        with _storage_errors("add an activity"):
            with immediate_transaction(self._conn):
                if activity_exists(self._conn, activity.title, start):
                    raise DuplicateRecordError(activity.title, start)
                insert_activity(
                    self._conn,
                    activity.title,
                    start,
                    format_timestamp(activity.end),
                    activity.notes,
                )
        logger.debug("Added %r starting %s", activity.title, start)
