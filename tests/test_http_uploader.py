"""Tests for the HTTP blob uploader adapter."""
import json

import httpx
import pytest

from sendvideo.models import RemoteConfig, UploadOutcome
from sendvideo.services import http_uploader as http_uploader_module
from sendvideo.services.hashing import blake3_file
from sendvideo.services.http_uploader import HASH_HEADER, HttpBlobUploader
from sendvideo.utils.paths import progress_path_for

KEY = "alpha/clip1.mp4"


def _remote(chunk_size=4):
    return RemoteConfig(endpoint="https://blobs.test", bucket="rec", chunk_size=chunk_size)


def _uploader(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpBlobUploader(_remote(**kwargs), client=client)


@pytest.fixture
def video(tmp_path):
    path = tmp_path / "alpha_clip1.mp4"
    path.write_bytes(b"0123456789")
    return path


class TestUpload:
    @pytest.mark.asyncio
    async def test_success_puts_file_with_digest(self, video):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200)

        async with _uploader(handler) as uploader:
            result = await uploader.upload(video, video.name, KEY)

        assert result.success is True
        assert len(requests) == 1
        request = requests[0]
        assert request.method == "PUT"
        assert str(request.url) == "https://blobs.test/rec/alpha/clip1.mp4"
        assert request.content == b"0123456789"
        assert request.headers[HASH_HEADER] == await blake3_file(video)

    @pytest.mark.asyncio
    async def test_sidecar_is_left_for_the_monitor(self, video):
        async with _uploader(lambda request: httpx.Response(200)) as uploader:
            await uploader.upload(video, video.name, KEY)

        sidecar = progress_path_for(video)
        assert sidecar.exists()
        data = json.loads(sidecar.read_text(encoding="utf-8"))
        assert data["remote_key"] == KEY
        assert data["size"] == 10

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", [500, 503, 429, 408])
    async def test_retryable_status_is_transient(self, video, code):
        async with _uploader(lambda request: httpx.Response(code)) as uploader:
            result = await uploader.upload(video, video.name, KEY)

        assert result.outcome == UploadOutcome.TRANSIENT
        assert result.status_code == code

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", [400, 403, 404])
    async def test_client_error_is_permanent(self, video, code):
        async with _uploader(lambda request: httpx.Response(code, text="nope")) as uploader:
            result = await uploader.upload(video, video.name, KEY)

        assert result.outcome == UploadOutcome.PERMANENT
        assert "nope" in result.error

    @pytest.mark.asyncio
    async def test_transport_error_is_transient(self, video):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with _uploader(handler) as uploader:
            result = await uploader.upload(video, video.name, KEY)

        assert result.outcome == UploadOutcome.TRANSIENT
        assert "ConnectError" in result.error

    @pytest.mark.asyncio
    async def test_missing_file_is_permanent_without_request(self, tmp_path):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200)

        async with _uploader(handler) as uploader:
            result = await uploader.upload(tmp_path / "gone_x.mp4", "gone_x.mp4", "gone/x.mp4")

        assert result.outcome == UploadOutcome.PERMANENT
        assert result.status_code == 404
        assert requests == []

    @pytest.mark.asyncio
    async def test_empty_file(self, tmp_path):
        empty = tmp_path / "alpha_empty.mp4"
        empty.write_bytes(b"")
        bodies = []

        def handler(request):
            bodies.append(request.content)
            return httpx.Response(200)

        async with _uploader(handler) as uploader:
            result = await uploader.upload(empty, empty.name, "alpha/empty.mp4")

        assert result.success is True
        assert bodies == [b""]

    @pytest.mark.asyncio
    async def test_progress_reported_per_chunk(self, video):
        events = []

        async with _uploader(lambda request: httpx.Response(200), chunk_size=4) as uploader:
            await uploader.upload(
                video, video.name, KEY, progress_callback=lambda sent, total: events.append((sent, total))
            )

        assert events == [(4, 10), (8, 10), (10, 10)]

    @pytest.mark.asyncio
    async def test_unchanged_file_reuses_sidecar_digest(self, video, monkeypatch):
        async with _uploader(lambda request: httpx.Response(503)) as uploader:
            await uploader.upload(video, video.name, KEY)

            async def no_rehash(path):
                raise AssertionError("digest should come from the sidecar")

            monkeypatch.setattr(http_uploader_module, "blake3_file", no_rehash)
            result = await uploader.upload(video, video.name, KEY)

        assert result.outcome == UploadOutcome.TRANSIENT

    @pytest.mark.asyncio
    async def test_sidecar_lock_is_released(self, video):
        async with _uploader(lambda request: httpx.Response(500)) as uploader:
            await uploader.upload(video, video.name, KEY)
            assert uploader.locks._locks == {}

    @pytest.mark.asyncio
    async def test_requires_context(self, video):
        uploader = HttpBlobUploader(_remote())
        with pytest.raises(RuntimeError):
            await uploader.upload(video, video.name, KEY)

    @pytest.mark.asyncio
    async def test_chunks_are_read_off_the_event_loop(self, video, monkeypatch):
        offloaded = []
        to_thread = http_uploader_module.asyncio.to_thread

        async def recording_to_thread(func, *args, **kwargs):
            offloaded.append(getattr(func, "__name__", repr(func)))
            return await to_thread(func, *args, **kwargs)

        monkeypatch.setattr(http_uploader_module.asyncio, "to_thread", recording_to_thread)
        async with _uploader(lambda request: httpx.Response(200), chunk_size=4) as uploader:
            result = await uploader.upload(video, video.name, KEY)

        assert result.success is True
        # three chunks plus the terminating empty read
        assert offloaded.count("read") == 4
