"""Core orchestrator - the monitoring loop and per-file state machine."""
import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Set

from ..models import (
    InFlightGuard,
    MonitorConfig,
    RecordStatus,
    TickReport,
    UploadOutcome,
)
from ..protocols import IBlobUploader, IProgressReporter, IRecordStore
from ..services.naming import InvalidNameError, to_remote_key
from ..services.scanner import Scanner
from ..utils.events import ProgressRelay
from ..utils.paths import progress_path_for
from .retention import RetentionSweeper
from .retry import RetryPolicy, dispatch_with_retry

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UploadMonitor:
    """
    Reconciles the record store with the watched folder and drives uploads.

    Every tick runs under one coarse lock, so no two ticks (and no other
    holder of the same lock) interleave record or file mutations:

        reconcile stale UPLOADING -> admit -> in-flight guard
        -> dispatch INTERRUPTED, then NOT_UPLOADED -> retention sweep

    Usage:
        monitor = UploadMonitor(store, scanner, uploader, config)
        await monitor.run_forever()
    """

    def __init__(
        self,
        store: IRecordStore,
        scanner: Scanner,
        uploader: IBlobUploader,
        config: Optional[MonitorConfig] = None,
        lock: Optional[asyncio.Lock] = None,
        reporter: Optional[IProgressReporter] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = _utcnow
    ):
        """
        Initialize monitor with dependencies.

        Args:
            store: Record store (single source of truth for lifecycle)
            scanner: Admits new files from the watched folder
            uploader: Remote blob store transfer
            config: Monitor configuration
            lock: Mutual-exclusion resource held for the whole tick body
            reporter: Optional operator-facing progress sink
            sleep: Backoff sleep between upload attempts
            clock: Source of "now" for upload dates and retention
        """
        self._store = store
        self._scanner = scanner
        self._uploader = uploader
        self._config = config or MonitorConfig(watch_dir=scanner.watch_dir)
        self._lock = lock or asyncio.Lock()
        self._sleep = sleep
        self._clock = clock
        self._relay = ProgressRelay()
        if reporter is not None:
            self._relay.add(reporter)
        self._policy = RetryPolicy(
            max_attempts=max(1, self._config.max_attempts),
            backoff_base=self._config.backoff_base,
        )
        self._retention = RetentionSweeper(store, self.watch_dir, self._config.retention)

        self._in_flight: Set[str] = set()
        self._abandoned: Set[str] = set()  # permanent failures, until restart
        self._needs_reset: Set[str] = set()  # left UPLOADING by a failed dispatch
        self._reconciled = False
        self._stop = asyncio.Event()

    @property
    def watch_dir(self) -> Path:
        return self._scanner.watch_dir

    @property
    def lock(self) -> asyncio.Lock:
        return self._lock

    @property
    def abandoned(self) -> Set[str]:
        return set(self._abandoned)

    def stop(self) -> None:
        """End run_forever at the next sleep boundary. An in-flight upload completes first."""
        self._stop.set()

    async def run_forever(self, max_ticks: Optional[int] = None) -> None:
        """Tick, sleep, repeat. A failing tick is logged and never ends the loop."""
        logger.info(
            "Monitoring %s every %ss (retention %d days)",
            self.watch_dir, self._config.poll_interval, self._config.retention_days
        )
        ticks = 0
        while not self._stop.is_set():
            try:
                report = await self.tick()
                self._log_report(report)
            except Exception:
                logger.exception(
                    "Monitor tick failed, retrying in %ss", self._config.poll_interval
                )
            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                break
            await self._wait(self._config.poll_interval)
        logger.info("Monitor stopped")

    async def _wait(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def tick(self) -> TickReport:
        """Run one full pass. Store errors propagate to the caller."""
        async with self._lock:
            report = TickReport()

            if not self._reconciled:
                report.reconciled.extend(self.reconcile_stale())
                self._reconciled = True

            if not self.watch_dir.is_dir():
                logger.info(
                    "Waiting for %s to be created, retrying in %ss",
                    self.watch_dir, self._config.poll_interval
                )
                report.waiting_for_folder = True
                return report

            report.admitted.extend(self._scanner.discover())

            blocker = self._find_in_flight(report)
            if blocker:
                report.blocked_by = blocker
                logger.info("%s is still uploading, waiting for it to finish", blocker)
            else:
                await self._dispatch_pending(report)

            report.retained.extend(self._retention.sweep(now=self._clock()))
            return report

    def reconcile_stale(self) -> List[str]:
        """
        Reset UPLOADING records this process is not uploading to INTERRUPTED.

        Nothing in memory survives a restart, so any such record is left over
        from a crash mid-upload.
        """
        reset = []
        for record in self._store.list_all():
            if record.status is not RecordStatus.UPLOADING:
                continue
            if record.file_name in self._in_flight:
                continue
            self._store.set_status(record.file_name, RecordStatus.INTERRUPTED)
            logger.info("Reset %s from uploading to interrupted", record.file_name)
            reset.append(record.file_name)
        return reset

    def _find_in_flight(self, report: TickReport) -> Optional[str]:
        """
        Return the name of a genuinely in-progress upload, if any.

        Every stale UPLOADING record is reset before deciding, so one live
        upload never shields others from reconciliation.
        """
        blocker = None
        for record in self._store.list_by_status(RecordStatus.UPLOADING):
            name = record.file_name
            if self._is_live(name):
                blocker = blocker or name
                continue

            self._store.set_status(name, RecordStatus.INTERRUPTED)
            self._needs_reset.discard(name)
            report.reconciled.append(name)
            logger.info("Cleared stale uploading status of %s", name)
        return blocker

    def _is_live(self, name: str) -> bool:
        if name in self._in_flight:
            return True
        if name in self._needs_reset:
            return False
        if self._config.in_flight_guard is InFlightGuard.ANY:
            return True
        path = self.watch_dir / name
        return path.exists() and progress_path_for(path).exists()

    async def _dispatch_pending(self, report: TickReport) -> None:
        # Recovery before fresh work
        for expected in (RecordStatus.INTERRUPTED, RecordStatus.NOT_UPLOADED):
            for record in self._store.list_by_status(expected):
                await self._handle(record.file_name, expected, report)

    async def _handle(self, file_name: str, expected: RecordStatus, report: TickReport) -> None:
        if file_name in self._abandoned:
            return

        path = self.watch_dir / file_name
        if not path.exists():
            self._store.mark_local_deleted(file_name)
            report.vanished.append(file_name)
            logger.info("%s no longer exists locally, skipping upload", file_name)
            return

        current = self._store.find_by_name(file_name)
        if current is None or current.status is not expected or not current.is_eligible:
            logger.debug("%s changed since listing, skipping", file_name)
            return

        try:
            remote_key = to_remote_key(file_name)
        except InvalidNameError as e:
            logger.error("Cannot derive remote key for %s: %s", file_name, e)
            self._store.set_status(file_name, RecordStatus.INTERRUPTED)
            self._abandoned.add(file_name)
            report.failed.append(file_name)
            return

        report.dispatched.append(file_name)
        callback = self._relay.callback_for(path) if self._relay else None
        self._in_flight.add(file_name)
        try:
            result = await dispatch_with_retry(
                self._store,
                self._uploader,
                path,
                remote_key,
                policy=self._policy,
                sleep=self._sleep,
                progress_callback=callback,
                clock=self._clock,
            )
        except Exception:
            self._reset_after_fault(file_name)
            raise
        finally:
            self._in_flight.discard(file_name)

        if result.success:
            report.uploaded.append(file_name)
            return

        report.failed.append(file_name)
        if result.result.outcome is UploadOutcome.PERMANENT:
            self._abandoned.add(file_name)

    def _reset_after_fault(self, file_name: str) -> None:
        """Best-effort INTERRUPTED reset when dispatch itself failed."""
        try:
            self._store.set_status(file_name, RecordStatus.INTERRUPTED)
        except Exception as e:
            # Retried by the in-flight guard on the next tick
            self._needs_reset.add(file_name)
            logger.error("Could not reset %s to interrupted: %s", file_name, e)
        else:
            logger.warning("Reset %s to interrupted after a failed dispatch", file_name)

    @staticmethod
    def _log_report(report: TickReport) -> None:
        if report.idle and not report.failed:
            logger.debug("Tick idle")
            return
        logger.info(
            "Tick: %d admitted, %d uploaded, %d failed, %d vanished, %d retained, %d reconciled",
            len(report.admitted), len(report.uploaded), len(report.failed),
            len(report.vanished), len(report.retained), len(report.reconciled)
        )
