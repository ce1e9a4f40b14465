"""Bounded retry with exponential backoff around one uploader call."""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable, Optional

from ..models import RecordStatus, UploadResult
from ..protocols import IBlobUploader, IRecordStore, ProgressCallback
from ..utils.paths import progress_path_for

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Attempts per tick and the backoff between them (1s, 2s, 4s, ...)."""
    max_attempts: int = 3
    backoff_base: float = 1.0

    def delay_for(self, attempt: int) -> float:
        """Sleep after the zero-based *attempt* failed."""
        return self.backoff_base * (2 ** attempt)


@dataclass
class DispatchResult:
    """Outcome of dispatching one record."""
    file_name: str
    result: UploadResult
    attempts: int
    slept: float = 0.0

    @property
    def success(self) -> bool:
        return self.result.success


def remove_sidecar(local_path: Path) -> bool:
    """Best-effort delete of the .progress marker after a confirmed upload."""
    sidecar = progress_path_for(local_path)
    try:
        sidecar.unlink()
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning("[retry] Could not delete %s: %s", sidecar.name, e)
        return False
    return True


async def dispatch_with_retry(
    store: IRecordStore,
    uploader: IBlobUploader,
    local_path: Path,
    remote_key: str,
    policy: RetryPolicy = RetryPolicy(),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    progress_callback: Optional[ProgressCallback] = None,
    clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)
) -> DispatchResult:
    """
    Upload *local_path* as *remote_key*, updating its record on every attempt.

    The record is UPLOADING only while a call is in flight; any failure flips
    it back to INTERRUPTED before the backoff sleep, so a crash between
    attempts never leaves it UPLOADING. Permanent outcomes stop immediately.
    """
    file_name = local_path.name
    slept = 0.0
    result: Optional[UploadResult] = None
    attempts = 0

    for attempt in range(policy.max_attempts):
        attempts = attempt + 1
        logger.info("[retry] Uploading %s (attempt %d/%d)", file_name, attempts, policy.max_attempts)
        store.set_status(file_name, RecordStatus.UPLOADING)
        try:
            result = await uploader.upload(local_path, file_name, remote_key, progress_callback)
        except Exception as e:
            logger.warning("[retry] Upload of %s raised %s: %s", file_name, type(e).__name__, e)
            logger.debug("[retry] Traceback for %s", file_name, exc_info=True)
            result = UploadResult.transient(remote_key, f"{type(e).__name__}: {e}")

        if result.success:
            store.set_status(file_name, RecordStatus.UPLOADED, when=clock())
            remove_sidecar(local_path)
            logger.info("[retry] %s uploaded as %s", file_name, remote_key)
            return DispatchResult(file_name, result, attempts, slept)

        store.set_status(file_name, RecordStatus.INTERRUPTED)

        if not result.retryable:
            logger.error(
                "[retry] %s failed permanently (%s), not retrying",
                file_name, result.error
            )
            break

        logger.warning(
            "[retry] %s failed (%s), attempt %d/%d",
            file_name, result.error, attempts, policy.max_attempts
        )
        if attempt < policy.max_attempts - 1:
            delay = policy.delay_for(attempt)
            await sleep(delay)
            slept += delay
    else:
        logger.error("[retry] %s still failing after %d attempts", file_name, policy.max_attempts)

    return DispatchResult(file_name, result, attempts, slept)
