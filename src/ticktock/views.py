"""Report views built from closed activities.

Every view groups activities by a key function (the title unless told
otherwise) and buckets them by the local calendar day of their start.
Durations are rounded to the nearest minute, halves rounding up, and
printed as ``1h30m``, ``1h`` or ``45m``.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from enum import Enum
from typing import Callable, Iterable, NamedTuple, Optional, Sequence, Union

from .config import WorkdaySettings
from .errors import UnknownReportTypeError
from .models import ClosedActivity

IDLE_TITLE = "<idle>"
MIN_IDLE = timedelta(minutes=1)

DAY_FMT = "%Y-%m-%d"
DETAIL_START_FMT = "%Y-%m-%d %a %H:%M"
DETAIL_END_FMT = "%H:%M"
DIST_TIME_FMT = "%H:%M:%S"

KeyFunc = Callable[[ClosedActivity], str]

_MINUTE_US = 60_000_000


class ReportType(str, Enum):
    SUMMARY = "summary"
    DETAIL = "detail"
    DIST = "dist"
    EFFORTS = "efforts"

    @classmethod
    def parse(cls, value: Union["ReportType", str]) -> "ReportType":
        try:
            return cls(value)
        except ValueError:
            raise UnknownReportTypeError(value) from None


class DistRecord(NamedTuple):
    """One row of the distribution view, real or idle."""

    key: str
    start: datetime
    end: datetime
    idle: bool = False

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


def by_title(activity: ClosedActivity) -> str:
    return activity.title


def round_minutes(duration: timedelta) -> int:
    """Whole minutes in ``duration``; exactly 30 seconds rounds away from zero."""
    micros = duration // timedelta(microseconds=1)
    minutes, remainder = divmod(abs(micros), _MINUTE_US)
    if remainder * 2 >= _MINUTE_US:
        minutes += 1
    return -minutes if micros < 0 else minutes


def format_duration(duration: timedelta) -> str:
    minutes = round_minutes(duration)
    sign = "-" if minutes < 0 else ""
    hours, minutes = divmod(abs(minutes), 60)
    if hours and minutes:
        return f"{sign}{hours}h{minutes}m"
    if hours:
        return f"{sign}{hours}h"
    return f"{sign}{minutes}m"


def local_day(moment: datetime, tz: Optional[tzinfo] = None) -> date:
    return moment.astimezone(tz).date()


def _at(day: date, time_of_day: time, tz: Optional[tzinfo]) -> datetime:
    naive = datetime.combine(day, time_of_day)
    if tz is None:
        return naive.astimezone()
    return naive.replace(tzinfo=tz)


def _join_sections(sections: Iterable[list[str]]) -> str:
    return "\n\n".join("\n".join(lines) for lines in sections).rstrip("\n")


# Summary ---------------------------------------------------------------------


def build_summary(
    activities: Iterable[ClosedActivity],
    key: KeyFunc = by_title,
    tz: Optional[tzinfo] = None,
) -> dict[date, dict[str, timedelta]]:
    summary: defaultdict[date, defaultdict[str, timedelta]] = defaultdict(
        lambda: defaultdict(timedelta)
    )
    for activity in activities:
        summary[local_day(activity.start, tz)][key(activity)] += activity.duration
    return {day: dict(totals) for day, totals in summary.items()}


def render_summary(summary: dict[date, dict[str, timedelta]]) -> str:
    sections = []
    for day in sorted(summary):
        totals = summary[day]
        lines = [day.strftime(DAY_FMT)]
        lines.extend(f"  {name}: {format_duration(spent)}" for name, spent in totals.items())
        lines.append(f"(Total): {format_duration(sum(totals.values(), timedelta()))}")
        sections.append(lines)
    return _join_sections(sections)


# Detail ----------------------------------------------------------------------


def build_detail(
    activities: Iterable[ClosedActivity], key: KeyFunc = by_title
) -> dict[str, list[ClosedActivity]]:
    detail: defaultdict[str, list[ClosedActivity]] = defaultdict(list)
    for activity in activities:
        detail[key(activity)].append(activity)
    return dict(detail)


def render_detail(
    detail: dict[str, list[ClosedActivity]], tz: Optional[tzinfo] = None
) -> str:
    sections = []
    for name, activities in detail.items():
        lines = [name]
        for activity in activities:
            lines.append(
                "  {} ~ {} | {}".format(
                    activity.start.astimezone(tz).strftime(DETAIL_START_FMT),
                    activity.end.astimezone(tz).strftime(DETAIL_END_FMT),
                    format_duration(activity.duration),
                )
            )
        sections.append(lines)
    return _join_sections(sections)


# Efforts ---------------------------------------------------------------------


def build_efforts(
    activities: Iterable[ClosedActivity], key: KeyFunc = by_title
) -> dict[str, timedelta]:
    efforts: defaultdict[str, timedelta] = defaultdict(timedelta)
    for activity in activities:
        efforts[key(activity)] += activity.duration
    return dict(efforts)


def render_efforts(efforts: dict[str, timedelta]) -> str:
    return "\n".join(
        f"{name}: {format_duration(spent)}" for name, spent in efforts.items()
    )


# Distribution ----------------------------------------------------------------


def fill_idles(
    records: Sequence[DistRecord],
    window_start: datetime,
    window_end: datetime,
    now: Optional[datetime] = None,
) -> list[DistRecord]:
    """Insert idle records for gaps of a minute or more inside the window.

    ``records`` must be ordered by start. The window end is clamped to
    ``now`` so an unfinished day shows no idle time in the future.
    """
    now = now or datetime.now(timezone.utc)
    result: list[DistRecord] = []
    cursor = window_start
    for record in records:
        if record.start - cursor >= MIN_IDLE:
            result.append(DistRecord(IDLE_TITLE, cursor, record.start, idle=True))
        result.append(record)
        cursor = max(cursor, record.end)

    end = min(window_end, now)
    if end - cursor >= MIN_IDLE:
        result.append(DistRecord(IDLE_TITLE, cursor, end, idle=True))
    return result


def build_distribution(
    activities: Iterable[ClosedActivity],
    key: KeyFunc = by_title,
    settings: Optional[WorkdaySettings] = None,
    tz: Optional[tzinfo] = None,
    now: Optional[datetime] = None,
) -> dict[date, list[DistRecord]]:
    settings = settings or WorkdaySettings.from_env()
    days: defaultdict[date, list[DistRecord]] = defaultdict(list)
    for activity in activities:
        days[local_day(activity.start, tz)].append(
            DistRecord(key(activity), activity.start, activity.end)
        )

    distribution: dict[date, list[DistRecord]] = {}
    for day, records in days.items():
        records.sort(key=lambda record: record.start)
        distribution[day] = fill_idles(
            records,
            _at(day, settings.day_start, tz),
            _at(day, settings.day_end, tz),
            now,
        )
    return distribution


def render_distribution(
    distribution: dict[date, list[DistRecord]], tz: Optional[tzinfo] = None
) -> str:
    sections = []
    for day in sorted(distribution):
        lines = [day.strftime(DAY_FMT)]
        idle = timedelta()
        for record in distribution[day]:
            if record.idle:
                idle += record.duration
            lines.append(
                "  {} ~ {} | {:<7} | {}".format(
                    record.start.astimezone(tz).strftime(DIST_TIME_FMT),
                    record.end.astimezone(tz).strftime(DIST_TIME_FMT),
                    format_duration(record.duration),
                    record.key,
                )
            )
        lines.append(f"(Idle: {format_duration(idle)})")
        sections.append(lines)
    return _join_sections(sections)


# Entry point -----------------------------------------------------------------


def render(
    activities: Sequence[ClosedActivity],
    report_type: Union[ReportType, str],
    key: Optional[KeyFunc] = None,
    *,
    settings: Optional[WorkdaySettings] = None,
    tz: Optional[tzinfo] = None,
    now: Optional[datetime] = None,
) -> str:
    """Render ``activities`` as one of the report types.

    ``tz`` selects the zone used for day bucketing and display; None means
    the system local zone. Raises UnknownReportTypeError for an unknown
    ``report_type`` before any work is done.
    """
    report_type = ReportType.parse(report_type)
    key = key or by_title

    if report_type is ReportType.SUMMARY:
        return render_summary(build_summary(activities, key, tz))
    if report_type is ReportType.DETAIL:
        return render_detail(build_detail(activities, key), tz)
    if report_type is ReportType.EFFORTS:
        return render_efforts(build_efforts(activities, key))
    return render_distribution(
        build_distribution(activities, key, settings, tz, now), tz
    )
