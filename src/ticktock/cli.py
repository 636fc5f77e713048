"""Command-line interface for ticktock."""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator, List, Optional

import typer

from .config import DAY_END_ENV, DAY_START_ENV, WorkdaySettings
from .errors import NotFoundError, TicktockError
from .models import ClosedActivity, QueryArg, activity_tag, format_activity
from .paths import DB_ENV, ensure_parent, get_db_path
from .store import DEFAULT_TITLE_LIMIT, ActivityStore, local_days_to_utc
from .views import ReportType, render

app = typer.Typer(help="Track what you spend your time on.")

logger = logging.getLogger(__name__)


@app.callback(no_args_is_help=True)
def main(
    ctx: typer.Context,
    db_path: Optional[Path] = typer.Option(
        None,
        "--db",
        envvar=DB_ENV,
        path_type=Path,
        help="Location of the ticktock SQLite database.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs."),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    ctx.obj = ensure_parent(get_db_path(db_path))
    logger.debug("Using database %s", ctx.obj)


@contextmanager
def _store(ctx: typer.Context) -> Iterator[ActivityStore]:
    """Open the store and turn ticktock errors into a failed command."""
    try:
        with ActivityStore(ctx.obj) as store:
            yield store
    except TicktockError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def _choose_title(title: Optional[str], store: ActivityStore) -> str:
    if title:
        return title
    candidates = store.recent_titles(DEFAULT_TITLE_LIMIT)
    if not candidates:
        raise NotFoundError("no recent titles to choose from")
    for index, candidate in enumerate(candidates, start=1):
        typer.echo(f"{index}: {candidate}")
    index = typer.prompt("Choose index", default=1, type=int)
    if not 1 <= index <= len(candidates):
        raise typer.BadParameter(f"index must be between 1 and {len(candidates)}")
    return candidates[index - 1]


@app.command()
def start(
    ctx: typer.Context,
    title: Optional[str] = typer.Argument(
        None, help="Title of the activity. Chosen interactively if not given."
    ),
    notes: str = typer.Option("", "--notes", help="Notes of the activity."),
    wait: bool = typer.Option(
        False,
        "--wait",
        "-w",
        help="Read notes from stdin until EOF, then finish the activity.",
    ),
) -> None:
    """Start an activity."""
    with _store(ctx) as store:
        title = _choose_title(title, store)
        store.start_title(title, notes)
        typer.echo(f"(Started: {title})")

        if wait:
            typer.echo("Waiting for notes input, Ctrl-D ends the input and finishes the activity:")
            finished = store.close_activity(sys.stdin.read())
            typer.echo(f"(Finished: {finished})")


@app.command()
def finish(
    ctx: typer.Context,
    notes: Optional[List[str]] = typer.Option(
        None,
        "--notes",
        help="Notes to append, one line each. A single '-' reads from stdin.",
    ),
) -> None:
    """Finish the ongoing activity."""
    text = ""
    if notes and list(notes) == ["-"]:
        text = sys.stdin.read()
    elif notes:
        text = "\n".join(notes)

    with _store(ctx) as store:
        title = store.close_activity(text)
    typer.echo(f"(Finished: {title})" if title else "(NothingToFinish)")


@app.command()
def titles(
    ctx: typer.Context,
    limit: int = typer.Option(
        DEFAULT_TITLE_LIMIT, "--limit", "-n", min=1, help="Number of titles to display."
    ),
    index: bool = typer.Option(
        False, "--index", "-i", help="Prefix titles with an index starting from 1."
    ),
) -> None:
    """Print recent finished titles."""
    with _store(ctx) as store:
        recent = store.recent_titles(limit)
    for position, title in enumerate(recent, start=1):
        typer.echo(f"{position}: {title}" if index else title)


@app.command()
def ongoing(ctx: typer.Context) -> None:
    """Show the ongoing activity."""
    with _store(ctx) as store:
        activity = store.ongoing()
    if activity is None:
        typer.echo("No ongoing entry.")
        return
    elapsed = datetime.now(timezone.utc) - activity.start
    typer.echo(activity.title)
    typer.echo(f"{elapsed.total_seconds() / 60:.0f} minutes ago")


@app.command()
def last(
    ctx: typer.Context,
    title: Optional[str] = typer.Argument(
        None, help="Title of the activity. Chosen interactively if not given."
    ),
) -> None:
    """Show details of the last finished activity with a title."""
    with _store(ctx) as store:
        title = _choose_title(title, store)
        activity = store.last_closed(title)
        if activity is None:
            raise NotFoundError(f"no finished activity titled {title!r}")
    typer.echo(format_activity(activity))


@app.command()
def report(
    ctx: typer.Context,
    report_type: ReportType = typer.Option(
        ReportType.SUMMARY,
        "--type",
        case_sensitive=False,
        help="Type of the report: summary, detail, dist (distribution) or efforts.",
    ),
    days_from: int = typer.Option(
        0,
        "--from",
        "-f",
        min=0,
        help="Report from 00:00:00 of today minus this many days.",
    ),
    days_to: int = typer.Option(
        0,
        "--to",
        "-t",
        min=0,
        help="Report to 23:59:59 of today minus this many days.",
    ),
    title: Optional[List[str]] = typer.Option(None, "--title", help="Filter by titles."),
    tag: Optional[List[str]] = typer.Option(None, "--tag", help="Filter by tags."),
    by_tag: bool = typer.Option(False, "--by-tag", help="Group by tag instead of title."),
) -> None:
    """Show a time usage report."""
    today = date.today()
    query_start, query_end = local_days_to_utc(
        today - timedelta(days=days_from), today - timedelta(days=days_to)
    )
    query = QueryArg.titles(title) if title else QueryArg.tags(tag)

    with _store(ctx) as store:
        activities = store.closed(query_start, query_end, query)
        text = render(activities, report_type, activity_tag if by_tag else None)
    typer.echo(text)


@app.command()
def add(
    ctx: typer.Context,
    title: str = typer.Argument(..., help="Title of the activity."),
    start_at: str = typer.Option(
        ..., "--start", help="Start time in ISO format; local time unless an offset is given."
    ),
    end_at: str = typer.Option(
        ..., "--end", help="End time in ISO format; local time unless an offset is given."
    ),
    notes: str = typer.Option("", "--notes", help="Notes of the activity."),
) -> None:
    """Add an already finished activity."""
    if not title:
        raise typer.BadParameter("title must not be empty")
    start_time = _parse_moment(start_at, "--start")
    end_time = _parse_moment(end_at, "--end")
    if end_time < start_time:
        raise typer.BadParameter("--end must not be before --start")

    with _store(ctx) as store:
        store.add(ClosedActivity.create(title, start_time, end_time, notes))
    typer.echo(f"(Added: {title})")


@app.command()
def server(
    ctx: typer.Context,
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the server."),
    port: int = typer.Option(
        8765, "--port", min=1, max=65535, help="TCP port for the server."
    ),
    open_browser: bool = typer.Option(
        False,
        "--open-browser/--no-open-browser",
        help="Launch the web UI in your default browser.",
    ),
    day_start: Optional[str] = typer.Option(
        None,
        "--day-start",
        envvar=DAY_START_ENV,
        help="Start of the working day (HH:MM) for distribution reports.",
    ),
    day_end: Optional[str] = typer.Option(
        None,
        "--day-end",
        envvar=DAY_END_ENV,
        help="End of the working day (HH:MM) for distribution reports.",
    ),
    log_level: str = typer.Option("info", "--log-level", help="Uvicorn log level."),
) -> None:
    """Start the local web server."""
    from .server_runner import run_server

    run_server(
        host=host,
        port=port,
        db_path=ctx.obj,
        settings=WorkdaySettings.from_strings(day_start, day_end),
        open_browser=open_browser,
        log_level=log_level,
    )


def _parse_moment(value: str, name: str) -> datetime:
    try:
        moment = datetime.fromisoformat(value)
    except ValueError as exc:
        raise typer.BadParameter(f"{name} is not an ISO date time: {value!r}") from exc
    return moment.astimezone(timezone.utc).replace(microsecond=0)
