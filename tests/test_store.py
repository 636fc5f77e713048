from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import pytest

from conftest import closed, utc
from ticktock.db import database_connection, insert_activity
from ticktock.errors import (
    DuplicateRecordError,
    NonUTCTimeError,
    OngoingExistsError,
    StorageError,
)
from ticktock.models import OpenActivity, QueryArg
from ticktock.store import ActivityStore, local_days_to_utc

DAY_START = utc(2024, 3, 1)
DAY_END = utc(2024, 3, 1, 23, 59, 59)


def test_start_and_ongoing(store: ActivityStore) -> None:
    started = store.start_title("coding", "first notes")
    ongoing = store.ongoing()
    assert ongoing == started
    assert ongoing.start.tzinfo is not None
    assert ongoing.start.microsecond == 0


def test_start_while_ongoing_fails(store: ActivityStore) -> None:
    store.start_title("coding")
    with pytest.raises(OngoingExistsError):
        store.start_title("reading")


def test_start_duplicate_fails(store: ActivityStore) -> None:
    activity = OpenActivity(title="coding", start=utc(2024, 3, 1, 9))
    store.start(activity)
    assert store.close_activity() == "coding"
    with pytest.raises(DuplicateRecordError):
        store.start(activity)


def test_ongoing_check_precedes_duplicate_check(store: ActivityStore) -> None:
    store.add(closed("coding", utc(2024, 3, 1, 9), utc(2024, 3, 1, 10)))
    store.start_title("reading")
    with pytest.raises(OngoingExistsError):
        store.start(OpenActivity(title="coding", start=utc(2024, 3, 1, 9)))


def test_close_without_ongoing_is_not_an_error(store: ActivityStore) -> None:
    assert store.close_activity("notes") is None
    assert store.ongoing() is None


def test_close_appends_notes(store: ActivityStore) -> None:
    store.start_title("coding", "plan\n")
    assert store.close_activity("done") == "coding"
    last = store.last_closed("coding")
    assert last.notes == "plan\ndone"
    assert last.end >= last.start
    assert store.ongoing() is None


def test_recent_titles(store: ActivityStore) -> None:
    store.add(closed("a", utc(2024, 3, 1, 9), utc(2024, 3, 1, 10)))
    store.add(closed("b", utc(2024, 3, 1, 10), utc(2024, 3, 1, 11)))
    store.add(closed("a", utc(2024, 3, 1, 11), utc(2024, 3, 1, 12)))
    store.add(closed("c", utc(2024, 3, 1, 8), utc(2024, 3, 1, 9)))
    store.start_title("open")

    assert store.recent_titles() == ["a", "b", "c"]
    assert store.recent_titles(2) == ["a", "b"]


def test_last_closed(store: ActivityStore) -> None:
    assert store.last_closed() is None
    store.add(closed("a", utc(2024, 3, 1, 9), utc(2024, 3, 1, 10), "old"))
    store.add(closed("a", utc(2024, 3, 2, 9), utc(2024, 3, 2, 10), "new"))
    store.add(closed("b", utc(2024, 3, 1, 12), utc(2024, 3, 1, 13)))

    assert store.last_closed("a").notes == "new"
    assert store.last_closed().title == "a"
    assert store.last_closed("missing") is None


@pytest.mark.parametrize(
    ("query_start", "query_end"),
    [
        (DAY_START.astimezone(timezone(timedelta(hours=8))), DAY_END),
        (DAY_START, DAY_END.astimezone(timezone(timedelta(hours=-5)))),
        (DAY_START.replace(tzinfo=None), DAY_END),
    ],
)
def test_closed_requires_utc_bounds(
    store: ActivityStore, query_start: datetime, query_end: datetime
) -> None:
    with pytest.raises(NonUTCTimeError):
        store.closed(query_start, query_end)


def test_closed_range_and_order(store: ActivityStore) -> None:
    store.add(closed("late", utc(2024, 3, 1, 23, 59, 59), utc(2024, 3, 2, 0, 30)))
    store.add(closed("early", utc(2024, 3, 1, 0, 0, 0), utc(2024, 3, 1, 1)))
    store.add(closed("outside", utc(2024, 3, 2, 0, 0, 0), utc(2024, 3, 2, 1)))
    store.add(closed("before", utc(2024, 2, 29, 23), utc(2024, 3, 1, 0, 30)))
    store.start_title("open")

    titles = [activity.title for activity in store.closed(DAY_START, DAY_END)]
    assert titles == ["early", "late"]


def test_closed_filters(store: ActivityStore) -> None:
    for hour, title in enumerate(["book: Dune", "book", "bookish: x", "music: jazz", "a: b"]):
        store.add(closed(title, utc(2024, 3, 1, hour + 1), utc(2024, 3, 1, hour + 2)))

    def titles(query):
        return [activity.title for activity in store.closed(DAY_START, DAY_END, query)]

    assert titles(QueryArg.tags(["book"])) == ["book: Dune", "book"]
    assert titles(QueryArg.tags(["book", "music"])) == ["book: Dune", "book", "music: jazz"]
    assert titles(QueryArg.tags(["a: b"])) == []
    assert titles(QueryArg.titles(["book", "a: b"])) == ["book", "a: b"]
    assert len(titles(QueryArg.titles([]))) == 5
    assert len(titles(None)) == 5


def test_sql_filters_agree_with_query_arg_predicate(store: ActivityStore) -> None:
    everything = ["book: Dune", "book", "bookish: x", "music: jazz", "a: b", ": odd"]
    for hour, title in enumerate(everything):
        store.add(closed(title, utc(2024, 3, 1, hour + 1), utc(2024, 3, 1, hour + 2)))
    stored = store.closed(DAY_START, DAY_END)

    queries = [
        QueryArg.tags(["book"]),
        QueryArg.tags(["", "music", "a: b"]),
        QueryArg.titles(["book", "a: b", "missing"]),
        QueryArg.tags([]),
    ]
    for query in queries:
        expected = [activity for activity in stored if query.matches(activity)]
        assert store.closed(DAY_START, DAY_END, query) == expected


def _insert_raw(db_path: Path, title: str, start: str, end: str | None) -> None:
    with database_connection(db_path) as conn:
        insert_activity(conn, title, start, end, "")


def test_reads_rfc3339_offsets(store: ActivityStore, db_path: Path) -> None:
    _insert_raw(db_path, "coding", "2024-03-01T17:00:00+08:00", "2024-03-01T18:30:00+08:00")

    [activity] = store.closed(DAY_START, DAY_END)
    assert activity.start == utc(2024, 3, 1, 9)
    assert activity.end == utc(2024, 3, 1, 10, 30)
    assert activity.start.utcoffset() == timedelta(0)
    assert store.last_closed("coding") == activity


def test_unreadable_timestamps_raise_storage_error(store: ActivityStore, db_path: Path) -> None:
    _insert_raw(db_path, "broken", "2024-03-01T10:00:00Z", "yesterday-ish")
    with pytest.raises(StorageError):
        store.closed(DAY_START, DAY_END)
    with pytest.raises(StorageError):
        store.last_closed("broken")

    _insert_raw(db_path, "open", "2024-03-01 10:00:00", None)
    with pytest.raises(StorageError):
        store.ongoing()


def test_add_rejects_duplicates_and_inverted_spans(store: ActivityStore) -> None:
    activity = closed("coding", utc(2024, 3, 1, 9), utc(2024, 3, 1, 10))
    store.add(activity)
    with pytest.raises(DuplicateRecordError):
        store.add(activity)
    with pytest.raises(ValueError):
        store.add(closed("coding", utc(2024, 3, 1, 10), utc(2024, 3, 1, 9)))


def test_single_open_activity_across_connections(db_path: Path) -> None:
    with ActivityStore(db_path) as first, ActivityStore(db_path) as second:
        first.start_title("coding")
        with pytest.raises(OngoingExistsError):
            second.start_title("reading")
        assert second.close_activity() == "coding"


def test_unopenable_database_raises_storage_error(tmp_path: Path) -> None:
    with pytest.raises(StorageError):
        ActivityStore(tmp_path)


def test_local_days_to_utc() -> None:
    east = timezone(timedelta(hours=8))
    start, end = local_days_to_utc(date(2024, 3, 1), date(2024, 3, 2), tz=east)
    assert start == utc(2024, 2, 29, 16)
    assert end == utc(2024, 3, 2, 15, 59, 59)
    assert start.utcoffset() == timedelta(0)
