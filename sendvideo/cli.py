"""Command line host for the sendvideo monitor."""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Sequence, Tuple

from rich.logging import RichHandler

from .cli_progress import UploadProgressReporter, render_configuration_summary
from .models import DEFAULT_SETTLE_SECONDS, InFlightGuard, MonitorConfig, RemoteConfig
from .orchestrator import UploadMonitor
from .services import HttpBlobUploader, RecordStore, RecordStoreError, Scanner
from .utils.paths import default_record_db, default_watch_dir

DEFAULT_LOG_DIR = Path.home() / ".cache" / "sendvideo" / "logs"
RUN_LOG_NAME = "sendvideo.log"

_run_log_path: Optional[Path] = None


class CLIError(RuntimeError):
    """Raised when CLI validation/execution fails."""


def _get_log_paths() -> Optional[Path]:
    return _run_log_path


def _setup_logging(debug: bool, silent: bool, log_level: Optional[str]) -> str:
    """
    Configure logging.

    Console gets a RichHandler at the effective level (INFO by default,
    ERROR with --silent); a rotating run log in SENDVIDEO_LOG_DIR always
    records INFO and above. Returns the effective console level name.
    """
    global _run_log_path

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    if debug:
        level = logging.DEBUG
    elif silent:
        level = logging.ERROR
    else:
        name = log_level or os.getenv("LOG_LEVEL") or "INFO"
        level = getattr(logging, name.upper(), logging.INFO)

    console_handler = RichHandler(
        rich_tracebacks=True,
        markup=False,
        show_time=True,
        show_path=False,
    )
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    console_handler.setLevel(level)
    root_logger.addHandler(console_handler)

    log_dir = Path(os.getenv("SENDVIDEO_LOG_DIR") or DEFAULT_LOG_DIR)
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        _run_log_path = log_dir / RUN_LOG_NAME
        file_handler = RotatingFileHandler(
            _run_log_path, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
        )
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        file_handler.setLevel(min(level, logging.INFO))
        root_logger.addHandler(file_handler)
    except OSError as exc:
        _run_log_path = None
        print(f"WARNING: cannot write run log in {log_dir}: {exc}", file=sys.stderr)

    root_logger.setLevel(min(level, logging.INFO))
    # Request-level chatter from the HTTP client is not useful at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return logging.getLevelName(level)


def _strip_optional_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def _load_env_file(path: Path, override: bool = False) -> None:
    if not path.exists():
        raise CLIError(f"env file not found: {path}")
    if not path.is_file():
        raise CLIError(f"env path is not a file: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CLIError(f"could not read env file {path}: {exc}") from exc

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue

        value = _strip_optional_quotes(value.strip())
        if override or key not in os.environ:
            os.environ[key] = value


def _resolve_default_env_file() -> Optional[Path]:
    default_env = Path(".env")
    return default_env if default_env.exists() and default_env.is_file() else None


def _env_number(name: str, cast, default):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError as exc:
        raise CLIError(f"{name} must be a number, got {raw!r}") from exc


def _build_configs(args: argparse.Namespace) -> Tuple[MonitorConfig, RemoteConfig]:
    """Merge CLI flags over SENDVIDEO_* environment variables."""
    watch_dir = args.watch_dir or os.getenv("SENDVIDEO_WATCH_DIR")
    record_db = args.db or os.getenv("SENDVIDEO_DB")
    interval = args.interval if args.interval is not None else _env_number("SENDVIDEO_INTERVAL", float, 10.0)
    retention_days = (
        args.retention_days
        if args.retention_days is not None
        else _env_number("SENDVIDEO_RETENTION_DAYS", int, 7)
    )
    settle_seconds = (
        args.settle
        if args.settle is not None
        else _env_number("SENDVIDEO_SETTLE_SECONDS", float, DEFAULT_SETTLE_SECONDS)
    )
    guard_name = args.guard or os.getenv("SENDVIDEO_GUARD") or InFlightGuard.SIDECAR.value

    if interval <= 0:
        raise CLIError("poll interval must be positive")
    if retention_days < 0:
        raise CLIError("retention days cannot be negative")
    if settle_seconds < 0:
        raise CLIError("settle seconds cannot be negative")
    try:
        guard = InFlightGuard(guard_name.lower())
    except ValueError as exc:
        raise CLIError(f"unknown in-flight guard: {guard_name}") from exc

    monitor_config = MonitorConfig(
        watch_dir=Path(watch_dir).expanduser() if watch_dir else default_watch_dir(),
        record_db=Path(record_db).expanduser() if record_db else default_record_db(),
        poll_interval=interval,
        retention_days=retention_days,
        in_flight_guard=guard,
        settle_seconds=settle_seconds,
    )

    endpoint = args.endpoint or os.getenv("SENDVIDEO_ENDPOINT")
    bucket = args.bucket or os.getenv("SENDVIDEO_BUCKET")
    if not endpoint:
        raise CLIError("SENDVIDEO_ENDPOINT environment variable (or --endpoint) is not set")
    if not bucket:
        raise CLIError("SENDVIDEO_BUCKET environment variable (or --bucket) is not set")

    remote_config = RemoteConfig(
        endpoint=endpoint,
        bucket=bucket,
        access_key=os.getenv("SENDVIDEO_ACCESS_KEY", ""),
        secret_key=os.getenv("SENDVIDEO_SECRET_KEY", ""),
    )
    return monitor_config, remote_config


async def _run_monitor(
    config: MonitorConfig,
    remote: RemoteConfig,
    show_progress: bool,
    once: bool,
) -> int:
    reporter = UploadProgressReporter() if show_progress else None
    try:
        with RecordStore(config.record_db) as store:
            scanner = Scanner(config.watch_dir, store, settle_seconds=config.settle_seconds)
            async with HttpBlobUploader(remote) as uploader:
                monitor = UploadMonitor(store, scanner, uploader, config, reporter=reporter)
                await monitor.run_forever(max_ticks=1 if once else None)
    finally:
        if reporter is not None:
            reporter.close()
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sendvideo",
        description="Watch a recordings folder and upload finished videos to a blob store.",
    )
    parser.add_argument(
        "-w",
        "--watch-dir",
        default=None,
        help="Folder to watch (default from SENDVIDEO_WATCH_DIR or <Videos>/Game Recordings/Videos)",
    )
    parser.add_argument(
        "--db",
        default=None,
        help="Record store file (default from SENDVIDEO_DB or record.db beside the watched folder)",
    )
    parser.add_argument(
        "-i",
        "--interval",
        type=float,
        default=None,
        help="Seconds between scans (default from SENDVIDEO_INTERVAL or 10)",
    )
    parser.add_argument(
        "-r",
        "--retention-days",
        type=int,
        default=None,
        help="Delete local copies this many days after upload (default 7)",
    )
    parser.add_argument("--endpoint", default=None, help="Blob store base URL")
    parser.add_argument("--bucket", default=None, help="Destination bucket")
    parser.add_argument(
        "--guard",
        choices=[g.value for g in InFlightGuard],
        default=None,
        help="When an uploading record blocks new uploads (default: sidecar)",
    )
    parser.add_argument(
        "--settle",
        type=float,
        default=None,
        help="Seconds a new file must stay unchanged before admission (default from SENDVIDEO_SETTLE_SECONDS, 5 on POSIX, 0 on Windows)",
    )
    parser.add_argument("--once", action="store_true", help="Run a single pass and exit")
    parser.add_argument("--no-progress", action="store_true", help="Do not draw progress bars")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load environment variables from this .env file",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logs")
    parser.add_argument("--silent", action="store_true", help="Only print errors")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Explicit log level (DEBUG/INFO/WARNING/ERROR)",
    )
    parser.add_argument("--version", action="version", version="sendvideo 0.1.0")
    return parser


def run_cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    used_env_file = args.env_file or _resolve_default_env_file()
    if used_env_file is not None:
        try:
            _load_env_file(Path(used_env_file))
        except CLIError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1

    effective_log_mode = _setup_logging(
        debug=args.debug,
        silent=args.silent,
        log_level=args.log_level,
    )

    try:
        monitor_config, remote_config = _build_configs(args)
    except CLIError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    show_progress = not args.no_progress and not args.silent
    if not args.silent:
        render_configuration_summary(
            {
                "Watch Dir": str(monitor_config.watch_dir),
                "Record Store": str(monitor_config.record_db),
                "Interval": f"{monitor_config.poll_interval:g}s",
                "Retention": f"{monitor_config.retention_days} days",
                "Guard": monitor_config.in_flight_guard.value,
                "Settle": f"{monitor_config.settle_seconds:g}s",
                "Endpoint": remote_config.endpoint,
                "Bucket": remote_config.bucket,
                "Credentials": "set" if remote_config.access_key else "(none)",
                "Env File": str(used_env_file) if used_env_file else "-",
                "Logging": effective_log_mode,
                "Run Log": str(_get_log_paths() or "-"),
            }
        )

    try:
        return asyncio.run(
            _run_monitor(
                monitor_config,
                remote_config,
                show_progress=show_progress,
                once=args.once,
            )
        )
    except RecordStoreError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Stopped.", file=sys.stderr)
        return 130


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
