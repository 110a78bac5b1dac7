"""Streaming spool of request bodies to local temp files.

The request body is copied to disk and hashed in the same pass, so the
payload is never held in memory and the digest always describes exactly the
bytes that were written.
"""

import hashlib
import os
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from typing import AsyncIterator, BinaryIO, Iterator, Optional

import anyio.to_thread

from upload_service.core.exceptions import InvalidUploadError, PayloadTooLargeError, SpoolStorageError
from upload_service.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CHUNK_SIZE = 32 * 1024


@dataclass(frozen=True)
class SpoolResult:
    """Digest and byte count of a spooled body."""

    sha256: str
    size: int


@contextmanager
def spooled_tempfile(directory: Optional[str] = None) -> Iterator[BinaryIO]:
    """Yield an exclusively owned temp file, removed on every exit path."""
    try:
        tmp = tempfile.NamedTemporaryFile(mode="w+b", prefix="upload-", dir=directory, delete=False)
    except OSError as exc:
        raise SpoolStorageError(str(exc)) from exc

    try:
        yield tmp
    finally:
        tmp.close()
        try:
            os.remove(tmp.name)
        except FileNotFoundError:
            pass
        logger.debug("spool_file_removed", path=tmp.name)


async def hash_and_save(
    source: AsyncIterator[bytes],
    dest: BinaryIO,
    max_bytes: int,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> SpoolResult:
    """Copy ``source`` into ``dest`` while computing its SHA-256.

    Bytes are written in pieces of at most ``chunk_size``; each piece goes to
    the file and the digest before the next one is taken. More than
    ``max_bytes`` in total fails the copy. On success ``dest`` is synced to
    disk and rewound to offset zero.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")

    hasher = hashlib.sha256()
    written = 0

    try:
        async for chunk in source:
            if not chunk:
                continue
            view = memoryview(chunk)
            for start in range(0, len(view), chunk_size):
                piece = view[start : start + chunk_size]
                if written + len(piece) > max_bytes:
                    raise PayloadTooLargeError(max_bytes)
                dest.write(piece)
                hasher.update(piece)
                written += len(piece)

        dest.flush()
        await anyio.to_thread.run_sync(os.fsync, dest.fileno())
        dest.seek(0)
    except OSError as exc:
        raise InvalidUploadError(str(exc)) from exc

    return SpoolResult(sha256=hasher.hexdigest(), size=written)


async def iter_file(fileobj: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
    """Adapt a blocking readable into an async chunk iterator."""
    while True:
        chunk = fileobj.read(chunk_size)
        if not chunk:
            break
        yield chunk
