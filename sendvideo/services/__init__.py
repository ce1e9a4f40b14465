"""Services for sendvideo."""
from .naming import InvalidNameError, SourceName, parse_source_name, to_remote_key
from .record_store import RecordStore, RecordStoreError
from .scanner import Scanner, probe_file
from .http_uploader import HttpBlobUploader

__all__ = [
    "InvalidNameError",
    "SourceName",
    "parse_source_name",
    "to_remote_key",
    "RecordStore",
    "RecordStoreError",
    "Scanner",
    "probe_file",
    "HttpBlobUploader",
]
