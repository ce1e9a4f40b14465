"""Progress fan-out for operator display."""
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional
import logging
logger = logging.getLogger(__name__)

ProgressListener = Callable[[int, int, str], None]


@dataclass
class FileProgress:
    """Progress information for a single file."""
    filename: str
    file_path: Path
    bytes_uploaded: int = 0
    total_bytes: int = 0


class ProgressRelay:
    """
    Fire-and-forget progress relay.

    Listener errors are logged and dropped so a broken display can never
    change an upload's outcome.
    """

    def __init__(self, listeners: Optional[List[ProgressListener]] = None):
        self._listeners: List[ProgressListener] = list(listeners or [])
        self._failed: set = set()

    def add(self, listener: ProgressListener):
        """Subscribe a listener."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def __bool__(self) -> bool:
        return bool(self._listeners)

    def emit(self, progress: FileProgress):
        for listener in self._listeners[:]:
            try:
                listener(progress.bytes_uploaded, progress.total_bytes, progress.filename)
            except Exception as e:
                # Log once per listener to avoid flooding on every chunk
                if id(listener) not in self._failed:
                    self._failed.add(id(listener))
                    logger.warning(f"Progress listener failed for {progress.filename}: {e}")

    def callback_for(self, path: Path, label: Optional[str] = None) -> Callable[[int, int], None]:
        """Bind a (bytes_sent, total_bytes) callback for one file."""
        progress = FileProgress(filename=label or Path(path).name, file_path=Path(path))

        def callback(bytes_sent: int, total_bytes: int) -> None:
            progress.bytes_uploaded = bytes_sent
            progress.total_bytes = total_bytes
            self.emit(progress)

        return callback
