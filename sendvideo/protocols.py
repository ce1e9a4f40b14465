"""
Protocols (Interfaces) for Dependency Inversion.

The monitor only talks to its collaborators through these.
"""
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Set, runtime_checkable

from .models import RecordStatus, UploadResult, VideoRecord


ProgressCallback = Callable[[int, int], None]


@runtime_checkable
class IBlobUploader(Protocol):
    """Interface for the remote blob store transfer."""

    async def upload(
        self,
        local_path: Path,
        source_name: str,
        remote_key: str,
        progress_callback: Optional[ProgressCallback] = None
    ) -> UploadResult:
        """Transfer one file and classify the outcome."""
        ...


@runtime_checkable
class IProgressReporter(Protocol):
    """Operator-facing progress sink. Return value is ignored."""

    def __call__(self, bytes_sent: int, total_bytes: int, label: str) -> None:
        ...


class IRecordStore(ABC):
    """Interface for durable lifecycle records (Repository Pattern)."""

    @abstractmethod
    def upsert_new(self, file_name: str) -> bool:
        """Insert as NOT_UPLOADED if absent. Returns True when a row was created."""
        pass

    @abstractmethod
    def list_by_status(self, status: RecordStatus) -> List[VideoRecord]:
        """Non-locally-deleted records in *status*, insertion order."""
        pass

    @abstractmethod
    def list_all(self) -> List[VideoRecord]:
        pass

    @abstractmethod
    def known_names(self) -> Set[str]:
        pass

    @abstractmethod
    def set_status(
        self,
        file_name: str,
        status: RecordStatus,
        *,
        when: Optional[datetime] = None
    ) -> None:
        pass

    @abstractmethod
    def mark_local_deleted(self, file_name: str) -> None:
        pass

    @abstractmethod
    def find_by_name(self, file_name: str) -> Optional[VideoRecord]:
        pass

    @abstractmethod
    def list_uploaded_older_than(
        self,
        age: timedelta,
        *,
        now: Optional[datetime] = None
    ) -> List[VideoRecord]:
        pass
