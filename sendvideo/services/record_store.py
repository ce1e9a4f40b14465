"""
Record Store - Single Responsibility: durable upload lifecycle records.

One SQLite table keyed by file name. Rows are never deleted; the listing
order is insertion order (rowid), so repeated listings are stable.
"""
import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional, Set

from ..models import RecordStatus, VideoRecord
from ..protocols import IRecordStore

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS video_records (
    file_name TEXT PRIMARY KEY,
    status TEXT NOT NULL,
    upload_date TEXT,
    is_local_deleted INTEGER NOT NULL DEFAULT 0
)
"""

_COLUMNS = "file_name, status, upload_date, is_local_deleted"


class RecordStoreError(RuntimeError):
    """Raised when the record store cannot be read or written."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_text(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _from_text(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class RecordStore(IRecordStore):
    """
    SQLite-backed record store.

    Usage:
        with RecordStore(Path("record.db")) as store:
            store.upsert_new("alpha_clip1.mp4")
            pending = store.list_by_status(RecordStatus.NOT_UPLOADED)
    """

    def __init__(self, db_path: Path):
        """
        Open (and create if needed) the store.

        Args:
            db_path: SQLite file; ``":memory:"`` keeps everything in memory
        """
        self._db_path = db_path if str(db_path) == ":memory:" else Path(db_path)
        if isinstance(self._db_path, Path):
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = sqlite3.connect(str(self._db_path))
            with self._conn:
                self._conn.execute(_SCHEMA)
        except sqlite3.Error as e:
            raise RecordStoreError(f"cannot open record store {self._db_path}: {e}") from e
        logger.debug("RecordStore: opened %s", self._db_path)

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def close(self) -> None:
        self._conn.close()

    @property
    def path(self):
        return self._db_path

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            with self._conn:
                return self._conn.execute(sql, params)
        except sqlite3.Error as e:
            raise RecordStoreError(f"record store query failed: {e}") from e

    def _select(self, sql: str, params: tuple = ()) -> List[VideoRecord]:
        return [self._row_to_record(row) for row in self._execute(sql, params).fetchall()]

    @staticmethod
    def _row_to_record(row) -> VideoRecord:
        file_name, status, upload_date, is_local_deleted = row
        return VideoRecord(
            file_name=file_name,
            status=RecordStatus(status),
            upload_date=_from_text(upload_date),
            is_local_deleted=bool(is_local_deleted),
        )

    def upsert_new(self, file_name: str) -> bool:
        cursor = self._execute(
            "INSERT OR IGNORE INTO video_records (file_name, status, upload_date, is_local_deleted) "
            "VALUES (?, ?, NULL, 0)",
            (file_name, RecordStatus.NOT_UPLOADED.value),
        )
        created = cursor.rowcount == 1
        if created:
            logger.debug("RecordStore: added %s", file_name)
        return created

    def list_by_status(self, status: RecordStatus) -> List[VideoRecord]:
        return self._select(
            f"SELECT {_COLUMNS} FROM video_records "
            "WHERE status = ? AND is_local_deleted = 0 ORDER BY rowid",
            (status.value,),
        )

    def list_all(self) -> List[VideoRecord]:
        return self._select(f"SELECT {_COLUMNS} FROM video_records ORDER BY rowid")

    def known_names(self) -> Set[str]:
        rows = self._execute("SELECT file_name FROM video_records").fetchall()
        return {row[0] for row in rows}

    def set_status(
        self,
        file_name: str,
        status: RecordStatus,
        *,
        when: Optional[datetime] = None
    ) -> None:
        """
        Move *file_name* to *status*.

        UPLOADED always carries an upload date: *when* if given, else now.
        """
        if status is RecordStatus.UPLOADED:
            self._execute(
                "UPDATE video_records SET status = ?, upload_date = ? WHERE file_name = ?",
                (status.value, _to_text(when or _utcnow()), file_name),
            )
        else:
            self._execute(
                "UPDATE video_records SET status = ? WHERE file_name = ?",
                (status.value, file_name),
            )

    def mark_local_deleted(self, file_name: str) -> None:
        self._execute(
            "UPDATE video_records SET is_local_deleted = 1 WHERE file_name = ?",
            (file_name,),
        )

    def find_by_name(self, file_name: str) -> Optional[VideoRecord]:
        records = self._select(
            f"SELECT {_COLUMNS} FROM video_records WHERE file_name = ?",
            (file_name,),
        )
        return records[0] if records else None

    def list_uploaded_older_than(
        self,
        age: timedelta,
        *,
        now: Optional[datetime] = None
    ) -> List[VideoRecord]:
        # ISO strings in UTC compare chronologically; compare in Python anyway
        # so rows written with other offsets stay correct.
        threshold = (now or _utcnow()) - age
        if threshold.tzinfo is None:
            threshold = threshold.replace(tzinfo=timezone.utc)
        uploaded = self.list_by_status(RecordStatus.UPLOADED)
        return [
            record for record in uploaded
            if record.is_uploaded
            and record.upload_date is not None
            and record.upload_date < threshold
        ]
