"""
sendvideo - watch a recordings folder and upload finished videos.

Each file moves through a durable lifecycle (not uploaded -> uploading ->
uploaded, or interrupted on failure) stored in SQLite, so a crash or a
half-finished upload is recovered on the next start.

Usage:
    from sendvideo import UploadMonitor, RecordStore, Scanner, HttpBlobUploader

    store = RecordStore(config.record_db)
    scanner = Scanner(config.watch_dir, store)
    async with HttpBlobUploader(remote) as uploader:
        monitor = UploadMonitor(store, scanner, uploader, config)
        await monitor.run_forever()
"""
from .models import (
    InFlightGuard,
    MonitorConfig,
    ProbeResult,
    RecordStatus,
    RemoteConfig,
    TickReport,
    UploadOutcome,
    UploadResult,
    VideoRecord,
)
from .orchestrator import UploadMonitor
from .services import HttpBlobUploader, RecordStore, RecordStoreError, Scanner

__version__ = "0.1.0"
__all__ = [
    # Main
    "UploadMonitor",
    # Models
    "InFlightGuard",
    "MonitorConfig",
    "ProbeResult",
    "RecordStatus",
    "RemoteConfig",
    "TickReport",
    "UploadOutcome",
    "UploadResult",
    "VideoRecord",
    # Services
    "HttpBlobUploader",
    "RecordStore",
    "RecordStoreError",
    "Scanner",
]
