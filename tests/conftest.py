from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from ticktock.models import ClosedActivity
from ticktock.store import ActivityStore


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def closed(title: str, start: datetime, end: datetime, notes: str = "") -> ClosedActivity:
    return ClosedActivity.create(title, start, end, notes)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "ticktock.db"


@pytest.fixture
def store(db_path: Path):
    with ActivityStore(db_path) as activity_store:
        yield activity_store
