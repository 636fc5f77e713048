"""Helpers to launch the local web server."""

from __future__ import annotations

import logging
import threading
import time
import webbrowser
from pathlib import Path
from typing import Optional

import uvicorn

from .config import WorkdaySettings
from .paths import get_db_path
from .webapp import create_app

logger = logging.getLogger(__name__)


def run_server(
    *,
    host: str = "127.0.0.1",
    port: int = 8765,
    db_path: Optional[Path] = None,
    settings: Optional[WorkdaySettings] = None,
    open_browser: bool = False,
    log_level: str = "info",
) -> None:
    """Start the FastAPI server and optional browser tab."""
    app = create_app(db_path=db_path or get_db_path(), settings=settings)

    url = f"http://{host}:{port}"
    logger.info("Serving ticktock at %s", url)
    if open_browser:
        threading.Thread(
            target=_launch_browser_after_delay, args=(url,), daemon=True
        ).start()

    logging.getLogger("uvicorn.error").setLevel(log_level.upper())
    uvicorn.run(app, host=host, port=port, log_level=log_level)


def _launch_browser_after_delay(url: str) -> None:
    time.sleep(1.0)
    try:
        webbrowser.open(url)
    except Exception:
        logger.exception("Failed to launch browser for %s", url)
