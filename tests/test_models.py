"""Tests for sendvideo models."""
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from sendvideo.models import (
    InFlightGuard,
    MonitorConfig,
    RecordStatus,
    RemoteConfig,
    UploadOutcome,
    UploadResult,
    VideoRecord,
)


class TestUploadResult:
    def test_ok_result(self):
        result = UploadResult.ok("alpha/clip1.mp4")
        assert result.success is True
        assert result.retryable is False
        assert result.status_code == 200
        assert result.outcome == UploadOutcome.SUCCESS

    def test_transient_result(self):
        result = UploadResult.transient("alpha/clip1.mp4", "timeout")
        assert result.success is False
        assert result.retryable is True
        assert result.error == "timeout"

    def test_permanent_result(self):
        result = UploadResult.permanent("alpha/clip1.mp4", "bad request", status_code=400)
        assert result.success is False
        assert result.retryable is False
        assert result.status_code == 400

    @pytest.mark.parametrize("code", [500, 502, 503, 408, 429])
    def test_from_status_code_transient(self, code):
        assert UploadResult.from_status_code("k", code).outcome == UploadOutcome.TRANSIENT

    @pytest.mark.parametrize("code", [400, 401, 403, 404, 413])
    def test_from_status_code_permanent(self, code):
        assert UploadResult.from_status_code("k", code).outcome == UploadOutcome.PERMANENT

    def test_from_status_code_success(self):
        result = UploadResult.from_status_code("k", 201)
        assert result.success is True
        assert result.status_code == 201

    def test_from_status_code_keeps_detail(self):
        result = UploadResult.from_status_code("k", 503, "slow down")
        assert result.error == "HTTP 503: slow down"

    def test_immutable(self):
        result = UploadResult.ok("k")
        with pytest.raises(Exception):
            result.remote_key = "other"


class TestVideoRecord:
    def test_new_record_defaults(self):
        record = VideoRecord("alpha_clip1.mp4")
        assert record.status == RecordStatus.NOT_UPLOADED
        assert record.upload_date is None
        assert record.is_local_deleted is False
        assert record.is_eligible is True

    def test_interrupted_is_eligible(self):
        assert VideoRecord("a_b.mp4", RecordStatus.INTERRUPTED).is_eligible is True

    def test_locally_deleted_is_never_eligible(self):
        record = VideoRecord("a_b.mp4", RecordStatus.INTERRUPTED, is_local_deleted=True)
        assert record.is_eligible is False

    def test_uploaded_is_not_eligible(self):
        record = VideoRecord(
            "a_b.mp4", RecordStatus.UPLOADED, upload_date=datetime.now(timezone.utc)
        )
        assert record.is_uploaded is True
        assert record.is_eligible is False


class TestMonitorConfig:
    def test_defaults(self):
        config = MonitorConfig(watch_dir=Path("/tmp/w"), record_db=Path("/tmp/record.db"))
        assert config.retention_days == 7
        assert config.retention == timedelta(days=7)
        assert config.max_attempts == 3
        assert config.backoff_base == 1.0
        assert config.in_flight_guard == InFlightGuard.SIDECAR

    def test_default_paths_share_recordings_folder(self):
        config = MonitorConfig()
        assert config.watch_dir.parent == config.record_db.parent
        assert config.record_db.name == "record.db"


class TestRemoteConfig:
    def test_object_url(self):
        remote = RemoteConfig(endpoint="https://blobs.example.com/", bucket="rec")
        assert remote.object_url("alpha/clip1.mp4") == "https://blobs.example.com/rec/alpha/clip1.mp4"
