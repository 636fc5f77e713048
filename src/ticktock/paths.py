"""Helpers for locating the ticktock database."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Optional

from platformdirs import PlatformDirs


APP_NAME = "ticktock"
DB_ENV = "TICKTOCK_DB"
DB_FILENAME = "db"


def get_data_dir(environ: Optional[Mapping[str, str]] = None) -> Path:
    """Return the base directory for persistent data.

    ``$XDG_DATA_HOME/ticktock`` when set, otherwise the platform user data dir.
    """
    env = os.environ if environ is None else environ
    xdg_home = env.get("XDG_DATA_HOME")
    if xdg_home:
        return Path(xdg_home) / APP_NAME
    dirs = PlatformDirs(appname=APP_NAME, appauthor=False)
    return Path(dirs.user_data_path)


def get_db_path(
    explicit: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None
) -> Path:
    """Resolve the database file: explicit path, $TICKTOCK_DB, then the data dir."""
    env = os.environ if environ is None else environ
    if explicit:
        return Path(explicit)
    if env.get(DB_ENV):
        return Path(env[DB_ENV])
    return get_data_dir(env) / DB_FILENAME


def ensure_parent(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    return path
