"""Filesystem layout: watched folder, record store and sidecar paths."""
import os
import sys
from pathlib import Path

RECORDINGS_FOLDER = "Game Recordings"
VIDEOS_SUBFOLDER = "Videos"
RECORD_DB_NAME = "record.db"
PROGRESS_SUFFIX = ".progress"


def videos_dir() -> Path:
    """Platform's standard videos location."""
    xdg = os.getenv("XDG_VIDEOS_DIR")
    if xdg:
        return Path(os.path.expandvars(xdg)).expanduser()
    if sys.platform == "darwin":
        return Path.home() / "Movies"
    return Path.home() / "Videos"


def recordings_dir() -> Path:
    return videos_dir() / RECORDINGS_FOLDER


def default_watch_dir() -> Path:
    return recordings_dir() / VIDEOS_SUBFOLDER


def default_record_db() -> Path:
    return recordings_dir() / RECORD_DB_NAME


def progress_path_for(path: Path) -> Path:
    """Sidecar marker for a resumable transfer of *path* (video.mp4 -> video.mp4.progress)."""
    path = Path(path)
    return path.with_name(f"{path.name}{PROGRESS_SUFFIX}")


def is_progress_file(name: str) -> bool:
    return name.lower().endswith(PROGRESS_SUFFIX)
