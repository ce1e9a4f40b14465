"""Content hashing for upload integrity."""
import asyncio
from pathlib import Path

from blake3 import blake3

CHUNK_SIZE = 1024 * 1024  # 1 MB


async def blake3_file(path: Path) -> str:
    """Calculate BLAKE3 hash of file asynchronously (non-blocking)."""
    def _hash_file():
        hasher = blake3()
        with open(path, 'rb') as f:
            while True:
                chunk = f.read(CHUNK_SIZE)
                if not chunk:
                    break
                hasher.update(chunk)
        return hasher.hexdigest()

    # Video files are large; keep the event loop free
    return await asyncio.to_thread(_hash_file)
