"""Uploads endpoint."""

from typing import AsyncIterator

from fastapi import APIRouter, Depends, Request
from starlette.requests import ClientDisconnect

from upload_service.core.config import Settings
from upload_service.core.exceptions import InvalidUploadError, PayloadTooLargeError
from upload_service.schemas.responses import UploadResult
from upload_service.services.uploads import Uploader, process_upload


router = APIRouter(tags=["uploads"])


def settings_from_state(request: Request) -> Settings:
    return request.app.state.settings


def uploader_from_state(request: Request) -> Uploader:
    return request.app.state.uploader


def _check_declared_length(request: Request, limit: int) -> None:
    declared = request.headers.get("content-length")
    if declared is None:
        return
    try:
        length = int(declared)
    except ValueError:
        raise InvalidUploadError("bad Content-Length header")
    if length > limit:
        raise PayloadTooLargeError(limit)


async def _read_body(request: Request) -> AsyncIterator[bytes]:
    try:
        async for chunk in request.stream():
            yield chunk
    except ClientDisconnect as exc:
        raise InvalidUploadError("client disconnected before the body was received") from exc


async def _listen_for_disconnect(request: Request) -> None:
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            return


@router.post("/v1/upload", response_model=UploadResult)
async def upload_file(
    request: Request,
    settings: Settings = Depends(settings_from_state),
    uploader: Uploader = Depends(uploader_from_state),
) -> UploadResult:
    """Store the raw request body as a new object and describe it."""
    _check_declared_length(request, settings.max_upload_bytes)
    return await process_upload(
        _read_body(request),
        uploader,
        settings,
        wait_for_disconnect=lambda: _listen_for_disconnect(request),
    )
