"""Configuration models and helpers for ticktock."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, time
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

DAY_START_ENV = "TICKTOCK_DAY_START"
DAY_END_ENV = "TICKTOCK_DAY_END"
TIME_OF_DAY_FMT = "%H:%M"

DEFAULT_DAY_START = time(8, 30)
DEFAULT_DAY_END = time(21, 0)


@dataclass(slots=True, frozen=True)
class WorkdaySettings:
    """Local time-of-day window that the distribution report fills with idles."""

    day_start: time = DEFAULT_DAY_START
    day_end: time = DEFAULT_DAY_END

    @classmethod
    def from_strings(
        cls, day_start: Optional[str] = None, day_end: Optional[str] = None
    ) -> "WorkdaySettings":
        return cls(
            day_start=_parse_time_of_day(day_start, DEFAULT_DAY_START),
            day_end=_parse_time_of_day(day_end, DEFAULT_DAY_END),
        )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "WorkdaySettings":
        env = os.environ if environ is None else environ
        return cls.from_strings(env.get(DAY_START_ENV), env.get(DAY_END_ENV))


def _parse_time_of_day(value: Optional[str], default: time) -> time:
    if not value:
        return default
    try:
        return datetime.strptime(value.strip(), TIME_OF_DAY_FMT).time()
    except ValueError:
        logger.warning(
            "Ignoring invalid time of day %r; using %s",
            value,
            default.strftime(TIME_OF_DAY_FMT),
        )
        return default
