"""
HTTP blob uploader - thin adapter implementing IBlobUploader.

PUTs the file to ``{endpoint}/{bucket}/{remote_key}`` and classifies the
response. A ``.progress`` sidecar beside the source marks the transfer as
in progress; it is only removed by the monitor after a confirmed success.
"""
import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from ..models import RemoteConfig, UploadResult
from ..protocols import ProgressCallback
from ..utils.locks import KeyedLockRegistry
from ..utils.paths import progress_path_for
from .hashing import blake3_file

logger = logging.getLogger(__name__)

HASH_HEADER = "X-Content-Blake3"


class HttpBlobUploader:
    """
    Upload files to an HTTP blob store.

    Usage:
        async with HttpBlobUploader(remote_config) as uploader:
            result = await uploader.upload(path, path.name, "alpha/clip1.mp4")
    """

    def __init__(
        self,
        config: RemoteConfig,
        client: Optional[httpx.AsyncClient] = None,
        locks: Optional[KeyedLockRegistry] = None
    ):
        """
        Initialize uploader.

        Args:
            config: Destination endpoint, bucket and credentials
            client: Pre-built client (tests pass one with a MockTransport)
            locks: Sidecar lock registry, shareable between uploaders
        """
        self._config = config
        self._client = client
        self._owns_client = client is None
        self._locks = locks or KeyedLockRegistry()

    async def __aenter__(self):
        if self._client is None:
            auth = None
            if self._config.access_key:
                auth = httpx.BasicAuth(self._config.access_key, self._config.secret_key)
            self._client = httpx.AsyncClient(auth=auth, timeout=self._config.timeout)
        return self

    async def __aexit__(self, *args):
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    @property
    def locks(self) -> KeyedLockRegistry:
        return self._locks

    async def upload(
        self,
        local_path: Path,
        source_name: str,
        remote_key: str,
        progress_callback: Optional[ProgressCallback] = None
    ) -> UploadResult:
        if not self._client:
            raise RuntimeError("HttpBlobUploader not initialized. Use 'async with' context.")

        local_path = Path(local_path)
        if not local_path.is_file():
            logger.error("[upload] %s does not exist, cannot upload", local_path)
            return UploadResult.permanent(remote_key, "local file does not exist", status_code=404)

        sidecar = progress_path_for(local_path.with_name(source_name))
        if self._locks.locked(sidecar):
            logger.info("[upload] Progress file %s is busy, waiting", sidecar.name)

        async with self._locks.hold(sidecar):
            return await self._put(local_path, sidecar, remote_key, progress_callback)

    async def _put(
        self,
        local_path: Path,
        sidecar: Path,
        remote_key: str,
        progress_callback: Optional[ProgressCallback]
    ) -> UploadResult:
        try:
            stat = local_path.stat()
            digest = await self._digest(local_path, sidecar, stat)
            self._write_sidecar(sidecar, remote_key, stat, digest)
        except FileNotFoundError:
            return UploadResult.permanent(remote_key, "local file vanished", status_code=404)
        except OSError as e:
            return UploadResult.transient(remote_key, f"cannot prepare upload: {e}")

        size = stat.st_size
        if size == 0:
            logger.info("[upload] %s is empty, sending an empty body", local_path.name)

        headers = {
            "Content-Length": str(size),
            "Content-Type": "application/octet-stream",
            HASH_HEADER: digest,
        }
        url = self._config.object_url(remote_key)
        try:
            response = await self._client.put(
                url,
                content=self._stream(local_path, size, progress_callback),
                headers=headers,
            )
        except httpx.TransportError as e:
            logger.warning("[upload] Transport error for %s: %s", remote_key, e)
            return UploadResult.transient(remote_key, f"{type(e).__name__}: {e}")
        except OSError as e:
            return UploadResult.transient(remote_key, f"read failed: {e}")

        result = UploadResult.from_status_code(remote_key, response.status_code, response.text[:200])
        if result.success:
            logger.info("[upload] %s -> %s (%d bytes)", local_path.name, remote_key, size)
        else:
            logger.warning("[upload] %s failed: %s (%s)", remote_key, result.error, result.outcome.value)
        return result

    async def _stream(
        self,
        path: Path,
        size: int,
        progress_callback: Optional[ProgressCallback]
    ) -> AsyncIterator[bytes]:
        sent = 0
        with open(path, "rb") as f:
            while True:
                chunk = await asyncio.to_thread(f.read, self._config.chunk_size)
                if not chunk:
                    break
                sent += len(chunk)
                if progress_callback:
                    progress_callback(sent, size)
                yield chunk

    async def _digest(self, path: Path, sidecar: Path, stat) -> str:
        """Reuse the sidecar's digest when the file is unchanged since it was written."""
        previous = self._read_sidecar(sidecar)
        if (
            previous
            and previous.get("size") == stat.st_size
            and previous.get("mtime") == stat.st_mtime
            and previous.get("blake3")
        ):
            logger.debug("[upload] Resuming %s with cached digest", path.name)
            return previous["blake3"]
        return await blake3_file(path)

    @staticmethod
    def _read_sidecar(sidecar: Path) -> Optional[Dict[str, Any]]:
        try:
            with open(sidecar, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as e:
            logger.debug("[upload] Ignoring unreadable progress file %s: %s", sidecar.name, e)
            return None

    @staticmethod
    def _write_sidecar(sidecar: Path, remote_key: str, stat, digest: str) -> None:
        with open(sidecar, "w", encoding="utf-8") as f:
            json.dump({
                "remote_key": remote_key,
                "size": stat.st_size,
                "mtime": stat.st_mtime,
                "blake3": digest,
                "started_at": datetime.now(timezone.utc).isoformat(),
            }, f, indent=2)
