"""Domain models for recorded activity."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo
from typing import Optional, Sequence

TAG_SEPARATOR = ": "
DISPLAY_FMT = "%Y-%m-%d %H:%M:%S"


@dataclass(slots=True)
class OpenActivity:
    """An activity that has started but not yet ended."""

    title: str
    start: datetime
    notes: str = ""

    def __post_init__(self) -> None:
        if not self.title:
            raise ValueError("title must not be empty")


@dataclass(slots=True, frozen=True)
class ClosedActivity:
    """A finished activity: the open activity it was plus an end time."""

    activity: OpenActivity
    end: datetime

    @classmethod
    def create(
        cls, title: str, start: datetime, end: datetime, notes: str = ""
    ) -> "ClosedActivity":
        return cls(OpenActivity(title=title, start=start, notes=notes), end)

    @property
    def title(self) -> str:
        return self.activity.title

    @property
    def start(self) -> datetime:
        return self.activity.start

    @property
    def notes(self) -> str:
        return self.activity.notes

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


def tag(title: str) -> str:
    """Return the part of ``title`` before the first ``": "``, or the whole title."""
    return title.split(TAG_SEPARATOR, 1)[0]


def activity_tag(activity: ClosedActivity) -> str:
    return tag(activity.title)


def format_activity(activity: ClosedActivity, tz: Optional[tzinfo] = None) -> str:
    """Render a closed activity as title, time span and indented notes."""
    lines = [
        activity.title,
        "{} ~ {}".format(
            activity.start.astimezone(tz).strftime(DISPLAY_FMT),
            activity.end.astimezone(tz).strftime(DISPLAY_FMT),
        ),
    ]
    lines.extend(f"    {line}" for line in activity.notes.split("\n"))
    return "\n".join(lines).rstrip("\n ")


@dataclass(slots=True)
class QueryArg:
    """Filter closed activities by exact titles or by tags."""

    values: Sequence[str] = field(default_factory=tuple)
    as_tag: bool = False

    @classmethod
    def titles(cls, titles: Optional[Sequence[str]]) -> Optional["QueryArg"]:
        if titles is None:
            return None
        return cls(values=tuple(titles), as_tag=False)

    @classmethod
    def tags(cls, tags: Optional[Sequence[str]]) -> Optional["QueryArg"]:
        if tags is None:
            return None
        return cls(values=tuple(tags), as_tag=True)

    @property
    def empty(self) -> bool:
        return not self.values

    def matches(self, activity: ClosedActivity) -> bool:
        if self.empty:
            return True
        if self.as_tag:
            return tag(activity.title) in self.values
        return activity.title in self.values
