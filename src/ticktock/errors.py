"""Exception types raised by the store and the report engine."""

from __future__ import annotations


class TicktockError(Exception):
    """Base class for all recoverable ticktock errors."""


class DuplicateRecordError(TicktockError):
    """An activity with the same title and start already exists."""

    def __init__(self, title: str, start: str) -> None:
        super().__init__(f"activity already started: {title!r} at {start}")
        self.title = title
        self.start = start


class OngoingExistsError(TicktockError):
    """Another activity is still open."""

    def __init__(self, title: str) -> None:
        super().__init__(f"ongoing activity exists: {title!r}")
        self.title = title


class NonUTCTimeError(TicktockError, ValueError):
    """A query bound was not expressed in UTC."""


class UnknownReportTypeError(TicktockError, ValueError):
    def __init__(self, report_type: object) -> None:
        super().__init__(f"unknown report type: {report_type!r}")
        self.report_type = report_type


class NotFoundError(TicktockError, LookupError):
    """No record matched the request."""


class StorageError(TicktockError):
    """The backing database failed."""
