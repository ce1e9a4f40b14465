"""
Scanner - admits newly completed files from the watched folder.

Two gates before a file becomes a record:
1. Stability probe: the producer may still be copying the file.
   On POSIX the file must also have settled (see Scanner).
2. Name validation: names without a remote key mapping are deleted.
"""
import logging
import sys
import time
from pathlib import Path
from typing import Callable, Dict, List, Set, Tuple

from ..models import DEFAULT_SETTLE_SECONDS, ProbeResult
from ..protocols import IRecordStore
from ..utils.paths import is_progress_file
from .naming import InvalidNameError, parse_source_name

if sys.platform != "win32":
    import fcntl

logger = logging.getLogger(__name__)


def probe_file(path: Path) -> ProbeResult:
    """
    Try to open *path* for exclusive read access.

    On Windows a file still being written by another process fails to open
    with a sharing violation; on POSIX the producer's advisory lock makes
    the non-blocking exclusive flock fail. Either way the file is BUSY.
    """
    try:
        with open(path, "rb") as f:
            if sys.platform != "win32":
                fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)
    except FileNotFoundError:
        return ProbeResult.MISSING
    except (PermissionError, BlockingIOError):
        return ProbeResult.BUSY
    return ProbeResult.READY


class Scanner:
    """
    Lists the watched folder and admits stable, validly named files.

    On POSIX the exclusive-open probe cannot see producers that write
    without taking a lock (cp, ffmpeg, capture tools), so a file must also
    be settled: its size and mtime unchanged since the previous scan, or
    untouched for ``settle_seconds``. ``settle_seconds=0`` disables this.

    Usage:
        scanner = Scanner(watch_dir, store)
        admitted = scanner.discover()
    """

    def __init__(
        self,
        watch_dir: Path,
        store: IRecordStore,
        probe: Callable[[Path], ProbeResult] = probe_file,
        settle_seconds: float = DEFAULT_SETTLE_SECONDS,
        clock: Callable[[], float] = time.time
    ):
        self._watch_dir = Path(watch_dir)
        self._store = store
        self._probe = probe
        self._settle_seconds = settle_seconds
        self._clock = clock
        # name -> (size, mtime_ns) seen while the file was still changing
        self._last_seen: Dict[str, Tuple[int, int]] = {}
        self._undeletable: Set[str] = set()

    @property
    def watch_dir(self) -> Path:
        return self._watch_dir

    def candidates(self) -> List[Path]:
        """Regular files not yet known to the store, sidecars excluded."""
        known = self._store.known_names()
        found = []
        for entry in sorted(self._watch_dir.iterdir(), key=lambda p: p.name):
            if not entry.is_file():
                continue
            if is_progress_file(entry.name) or entry.name in known:
                continue
            found.append(entry)
        return found

    def discover(self) -> List[str]:
        """
        Admit new files.

        Returns:
            Names of files that became NOT_UPLOADED records in this call
        """
        admitted = []
        changing = set()
        for path in self.candidates():
            probe = self._probe(path)
            if probe is ProbeResult.READY and self._settle_seconds > 0:
                probe = self._settled(path)
            if probe is ProbeResult.BUSY:
                changing.add(path.name)
                logger.debug("[scan] %s is still being written, retrying next tick", path.name)
                continue
            if probe is ProbeResult.MISSING:
                logger.debug("[scan] %s vanished before admission", path.name)
                continue

            try:
                parse_source_name(path.name)
            except InvalidNameError as e:
                self._reject(path, e)
                continue

            if self._store.upsert_new(path.name):
                logger.info("[scan] Added %s as not uploaded", path.name)
                admitted.append(path.name)

        for name in set(self._last_seen) - changing:
            del self._last_seen[name]
        return admitted

    def _settled(self, path: Path) -> ProbeResult:
        try:
            stat = path.stat()
        except FileNotFoundError:
            return ProbeResult.MISSING

        signature = (stat.st_size, stat.st_mtime_ns)
        previous = self._last_seen.get(path.name)
        self._last_seen[path.name] = signature
        if previous == signature:
            return ProbeResult.READY
        if previous is None and self._clock() - stat.st_mtime >= self._settle_seconds:
            return ProbeResult.READY
        return ProbeResult.BUSY

    def _reject(self, path: Path, reason: InvalidNameError) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            if path.name not in self._undeletable:
                self._undeletable.add(path.name)
                logger.warning("[scan] Could not delete invalid file %s: %s", path.name, e)
            return
        self._undeletable.discard(path.name)
        logger.warning("[scan] Deleted %s: %s", path.name, reason)
