"""Retention sweep: remove local copies of files uploaded long enough ago."""
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional

from ..protocols import IRecordStore

logger = logging.getLogger(__name__)


class RetentionSweeper:
    """
    Deletes uploaded files older than the retention window.

    The record is marked locally deleted whether or not the physical delete
    succeeded: a file already gone is the correct terminal state, and a
    failed delete should not be retried on every tick.
    """

    def __init__(self, store: IRecordStore, watch_dir: Path, retention: timedelta):
        self._store = store
        self._watch_dir = Path(watch_dir)
        self._retention = retention

    def sweep(self, now: Optional[datetime] = None) -> List[str]:
        """
        Run one sweep.

        Returns:
            Names of records marked locally deleted
        """
        swept = []
        for record in self._store.list_uploaded_older_than(self._retention, now=now):
            path = self._watch_dir / record.file_name
            try:
                path.unlink()
                logger.info("[retention] Deleted local file %s", record.file_name)
            except FileNotFoundError:
                logger.debug("[retention] %s already gone", record.file_name)
            except OSError as e:
                logger.warning("[retention] Could not delete %s: %s", record.file_name, e)
            self._store.mark_local_deleted(record.file_name)
            swept.append(record.file_name)
        return swept
