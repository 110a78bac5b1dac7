"""Upload pipeline: spool and hash the body, push it, describe the result."""

from typing import AsyncIterator, Awaitable, BinaryIO, Callable, Optional, Protocol

import anyio

from upload_service.core.config import Settings
from upload_service.core.exceptions import UploadCancelledError
from upload_service.core.logging import get_logger
from upload_service.schemas.responses import UploadResult
from upload_service.services.object_store import StoredObject
from upload_service.services.spooler import hash_and_save, spooled_tempfile

logger = get_logger(__name__)

# Returns once the caller has gone away
DisconnectListener = Callable[[], Awaitable[None]]


class Uploader(Protocol):
    async def upload_file(self, fileobj: BinaryIO) -> StoredObject: ...


async def process_upload(
    body: AsyncIterator[bytes],
    uploader: Uploader,
    settings: Settings,
    wait_for_disconnect: Optional[DisconnectListener] = None,
) -> UploadResult:
    """Run one upload end to end.

    The spool file lives exactly as long as this call. Any failure aborts
    the remaining stages and propagates as a service exception.
    """
    with spooled_tempfile(settings.spool_dir) as tmp:
        spooled = await hash_and_save(
            body,
            tmp,
            max_bytes=settings.max_upload_bytes,
            chunk_size=settings.spool_chunk_size,
        )
        logger.info("upload_spooled", size=spooled.size, sha256=spooled.sha256)

        stored = await _push_unless_disconnected(uploader, tmp, wait_for_disconnect)

    result = UploadResult.from_location(stored.location, spooled.sha256, spooled.size)
    logger.info("upload_stored", file_id=result.file_id, size=result.size, location=result.location)
    return result


async def _push_unless_disconnected(
    uploader: Uploader,
    fileobj: BinaryIO,
    wait_for_disconnect: Optional[DisconnectListener],
) -> StoredObject:
    """Race the push against the caller going away; the loser is cancelled."""
    if wait_for_disconnect is None:
        return await uploader.upload_file(fileobj)

    stored: Optional[StoredObject] = None
    error: Optional[Exception] = None

    async with anyio.create_task_group() as tg:

        async def push() -> None:
            nonlocal stored, error
            try:
                stored = await uploader.upload_file(fileobj)
            except Exception as exc:
                # re-raised below, outside the task group
                error = exc
            finally:
                tg.cancel_scope.cancel()

        async def listen() -> None:
            await wait_for_disconnect()
            tg.cancel_scope.cancel()

        tg.start_soon(push)
        tg.start_soon(listen)

    if error is not None:
        raise error
    if stored is None:
        logger.warning("upload_cancelled")
        raise UploadCancelledError()
    return stored
