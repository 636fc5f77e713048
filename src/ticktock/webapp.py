"""FastAPI application that exposes a local web UI and API for ticktock."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ConfigDict, Field

from .config import WorkdaySettings
from .errors import (
    DuplicateRecordError,
    NonUTCTimeError,
    NotFoundError,
    OngoingExistsError,
    TicktockError,
    UnknownReportTypeError,
)
from .models import ClosedActivity, OpenActivity, QueryArg, activity_tag
from .paths import ensure_parent, get_db_path
from .store import ActivityStore, local_days_to_utc
from .views import render

logger = logging.getLogger(__name__)

_ERROR_STATUS: tuple[tuple[type[TicktockError], int], ...] = (
    (NonUTCTimeError, 400),
    (UnknownReportTypeError, 400),
    (NotFoundError, 404),
    (OngoingExistsError, 409),
    (DuplicateRecordError, 409),
)


class ActivityPayload(BaseModel):
    title: str = Field(min_length=1)
    start: datetime
    end: datetime
    notes: str = ""

    model_config = ConfigDict(extra="forbid")


def create_app(
    *,
    db_path: Optional[Path] = None,
    settings: Optional[WorkdaySettings] = None,
) -> FastAPI:
    """Instantiate the FastAPI application."""
    resolved_db_path = ensure_parent(Path(db_path or get_db_path()))

    app = FastAPI(title="ticktock", version="0.3.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.db_path = resolved_db_path
    app.state.settings = settings

    static_dir = Path(__file__).parent / "static"
    if static_dir.exists():
        app.mount("/static", StaticFiles(directory=static_dir), name="static")

    @app.exception_handler(TicktockError)
    async def _ticktock_error(request: Request, exc: TicktockError) -> JSONResponse:
        status = next(
            (code for kind, code in _ERROR_STATUS if isinstance(exc, kind)), 500
        )
        if status == 500:
            logger.error("Request %s failed: %s", request.url.path, exc)
        return JSONResponse(status_code=status, content={"detail": str(exc)})

    @app.get("/api/status")
    def status(request: Request) -> Dict[str, Any]:
        workday = request.app.state.settings or WorkdaySettings.from_env()
        return {
            "database_path": str(request.app.state.db_path),
            "day_start": workday.day_start.strftime("%H:%M"),
            "day_end": workday.day_end.strftime("%H:%M"),
        }

    @app.get("/api/recent")
    def recent(
        request: Request,
        limit: int = Query(default=5, ge=1, le=100),
    ) -> List[str]:
        with ActivityStore(request.app.state.db_path) as store:
            return store.recent_titles(limit)

    @app.get("/api/latest/{title}")
    def latest(title: str, request: Request) -> Dict[str, Any]:
        with ActivityStore(request.app.state.db_path) as store:
            last = store.last_closed(title)
        if last is None:
            raise NotFoundError(f"no closed activity titled {title!r}")
        return _closed_payload(last)

    @app.get("/api/unfinished")
    def unfinished(request: Request) -> Optional[Dict[str, Any]]:
        with ActivityStore(request.app.state.db_path) as store:
            ongoing = store.ongoing()
        return _open_payload(ongoing) if ongoing is not None else None

    @app.post("/api/start/{title}")
    def start(title: str, request: Request) -> Dict[str, Any]:
        with ActivityStore(request.app.state.db_path) as store:
            activity = store.start_title(title)
        logger.info("Started %r", title)
        return _open_payload(activity)

    @app.post("/api/finish")
    async def finish(request: Request) -> Dict[str, Any]:
        try:
            notes = (await request.body()).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise HTTPException(status_code=400, detail="notes must be UTF-8") from exc
        title = await run_in_threadpool(_close_ongoing, request.app.state.db_path, notes)
        return {"title": title}

    @app.post("/api/activities")
    def add_activity(payload: ActivityPayload, request: Request) -> Dict[str, Any]:
        start_at = _as_utc(payload.start)
        end_at = _as_utc(payload.end)
        if end_at < start_at:
            raise HTTPException(status_code=400, detail="end must not be before start")
        activity = ClosedActivity.create(payload.title, start_at, end_at, payload.notes)
        with ActivityStore(request.app.state.db_path) as store:
            store.add(activity)
        return _closed_payload(activity)

    @app.get("/api/report-by-date/{start}/{end}")
    def report_by_date(
        start: str,
        end: str,
        request: Request,
        view_type: str = Query(default="summary", description="summary, detail, dist or efforts."),
        title: List[str] = Query(default=[], description="Only include these titles."),
        tag: List[str] = Query(default=[], description="Only include titles with these tags."),
        by_tag: bool = Query(default=False, description="Group by tag instead of title."),
    ) -> PlainTextResponse:
        start_day = _parse_date(start, "query start")
        end_day = _parse_date(end, "query end")
        if end_day < start_day:
            raise HTTPException(
                status_code=400, detail="end date must be on or after start date"
            )
        query_start, query_end = local_days_to_utc(start_day.date(), end_day.date())
        query = QueryArg.titles(title) if title else QueryArg.tags(tag or None)

        with ActivityStore(request.app.state.db_path) as store:
            activities = store.closed(query_start, query_end, query)
        text = render(
            activities,
            view_type,
            activity_tag if by_tag else None,
            settings=request.app.state.settings,
        )
        return PlainTextResponse(text)

    @app.get("/")
    def index(request: Request):
        index_path = (Path(__file__).parent / "static" / "index.html").resolve()
        if not index_path.exists():
            raise HTTPException(status_code=404, detail="UI not found")
        return FileResponse(index_path)

    return app


def _close_ongoing(db_path: Path, notes: str) -> Optional[str]:
    with ActivityStore(db_path) as store:
        return store.close_activity(notes)


def _parse_date(value: str, name: str) -> datetime:
    try:
        return datetime.strptime(value, "%Y-%m-%d")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid format of {name}") from exc


def _as_utc(value: datetime) -> datetime:
    return value.astimezone(timezone.utc).replace(microsecond=0)


def _open_payload(activity: OpenActivity) -> Dict[str, Any]:
    return {
        "title": activity.title,
        "start": activity.start.isoformat(),
        "notes": activity.notes,
    }


def _closed_payload(activity: ClosedActivity) -> Dict[str, Any]:
    return {
        "title": activity.title,
        "start": activity.start.isoformat(),
        "end": activity.end.isoformat(),
        "notes": activity.notes,
        "duration_seconds": activity.duration.total_seconds(),
    }
