"""
Models for sendvideo.

Records, upload outcomes and monitor configuration.
"""
import sys
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Optional, List

from .utils.paths import default_record_db, default_watch_dir

# Exclusive open already rejects files a producer is writing on Windows
DEFAULT_SETTLE_SECONDS = 0.0 if sys.platform == "win32" else 5.0


class RecordStatus(Enum):
    """Lifecycle status of a watched file."""
    NOT_UPLOADED = "not_uploaded"
    UPLOADING = "uploading"
    INTERRUPTED = "interrupted"
    UPLOADED = "uploaded"


class UploadOutcome(Enum):
    """Three-way classification returned by a blob uploader."""
    SUCCESS = "success"
    TRANSIENT = "transient"  # 5xx, 429, 408, transport errors
    PERMANENT = "permanent"  # not found, bad request, other 4xx


class ProbeResult(Enum):
    """Result of the exclusive-open stability probe."""
    READY = "ready"
    BUSY = "busy"  # producer still holds the file
    MISSING = "missing"


class InFlightGuard(Enum):
    """
    How an UPLOADING record blocks dispatch.

    SIDECAR: only when both the file and its .progress sidecar exist;
    a record missing either is reconciled to INTERRUPTED.
    ANY: any UPLOADING record blocks dispatch for the tick.
    """
    SIDECAR = "sidecar"
    ANY = "any"


@dataclass(frozen=True)
class VideoRecord:
    """One row of the record store."""
    file_name: str
    status: RecordStatus = RecordStatus.NOT_UPLOADED
    upload_date: Optional[datetime] = None
    is_local_deleted: bool = False

    @property
    def is_uploaded(self) -> bool:
        return self.status is RecordStatus.UPLOADED

    @property
    def is_eligible(self) -> bool:
        """Whether the record may still be dispatched."""
        if self.is_local_deleted:
            return False
        return self.status in (RecordStatus.NOT_UPLOADED, RecordStatus.INTERRUPTED)


@dataclass(frozen=True)
class UploadResult:
    """Immutable result of one uploader call."""
    outcome: UploadOutcome
    remote_key: str
    status_code: Optional[int] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome is UploadOutcome.SUCCESS

    @property
    def retryable(self) -> bool:
        return self.outcome is UploadOutcome.TRANSIENT

    @classmethod
    def ok(cls, remote_key: str, status_code: int = 200):
        return cls(outcome=UploadOutcome.SUCCESS, remote_key=remote_key, status_code=status_code)

    @classmethod
    def transient(cls, remote_key: str, error: str, status_code: Optional[int] = None):
        return cls(
            outcome=UploadOutcome.TRANSIENT,
            remote_key=remote_key,
            status_code=status_code,
            error=error
        )

    @classmethod
    def permanent(cls, remote_key: str, error: str, status_code: Optional[int] = None):
        return cls(
            outcome=UploadOutcome.PERMANENT,
            remote_key=remote_key,
            status_code=status_code,
            error=error
        )

    @classmethod
    def from_status_code(cls, remote_key: str, status_code: int, detail: str = ""):
        """Classify an HTTP-style status code."""
        if 200 <= status_code < 300:
            return cls.ok(remote_key, status_code)
        error = f"HTTP {status_code}" + (f": {detail}" if detail else "")
        if status_code >= 500 or status_code in (408, 429):
            return cls.transient(remote_key, error, status_code)
        return cls.permanent(remote_key, error, status_code)


@dataclass(frozen=True)
class MonitorConfig:
    """Immutable configuration for the upload monitor."""
    watch_dir: Path = field(default_factory=default_watch_dir)
    record_db: Path = field(default_factory=default_record_db)
    poll_interval: float = 10.0
    retention_days: int = 7
    max_attempts: int = 3
    backoff_base: float = 1.0
    in_flight_guard: InFlightGuard = InFlightGuard.SIDECAR
    settle_seconds: float = DEFAULT_SETTLE_SECONDS

    @property
    def retention(self) -> timedelta:
        return timedelta(days=self.retention_days)


@dataclass(frozen=True)
class RemoteConfig:
    """Destination store settings, opaque to the monitor itself."""
    endpoint: str
    bucket: str
    access_key: str = ""
    secret_key: str = ""
    timeout: float = 300.0
    chunk_size: int = 4 * 1024 * 1024  # 4 MB

    def object_url(self, remote_key: str) -> str:
        return f"{self.endpoint.rstrip('/')}/{self.bucket}/{remote_key}"


@dataclass
class TickReport:
    """What one orchestrator tick did."""
    reconciled: List[str] = field(default_factory=list)
    admitted: List[str] = field(default_factory=list)
    dispatched: List[str] = field(default_factory=list)
    uploaded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    vanished: List[str] = field(default_factory=list)
    retained: List[str] = field(default_factory=list)
    blocked_by: Optional[str] = None  # record name that held the in-flight guard
    waiting_for_folder: bool = False

    @property
    def idle(self) -> bool:
        return not (self.admitted or self.dispatched or self.retained or self.reconciled)
