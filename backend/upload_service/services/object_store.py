"""S3 object store uploader.

Objects are written under ``<prefix><uuid4>`` so keys never depend on client
input or content, and concurrent pushes never collide. Multi-part transfer
is left to the aioboto3 transfer manager.
"""

import asyncio
import uuid
from dataclasses import dataclass
from typing import Any, BinaryIO, Optional
from urllib.parse import quote

import aioboto3
import anyio
from boto3.exceptions import Boto3Error
from boto3.s3.transfer import TransferConfig
from botocore.exceptions import BotoCoreError, ClientError

from upload_service.core.config import Settings
from upload_service.core.exceptions import ObjectStoreError, UploadTimeoutError
from upload_service.core.logging import get_logger

logger = get_logger(__name__)

# Upper bound on multi-part cleanup after an interrupted push
ABORT_TIMEOUT_SECONDS = 30

_ERROR_MESSAGES = {
    "NoSuchBucket": "bucket '{bucket}' does not exist",
    "AccessDenied": "access denied to bucket '{bucket}'; check credentials and bucket permissions",
    "InvalidAccessKeyId": "invalid AWS credentials",
    "SignatureDoesNotMatch": "invalid AWS credentials",
}


@dataclass(frozen=True)
class StoredObject:
    key: str
    location: str


class S3Uploader:
    """Pushes spooled files to a single S3 bucket."""

    def __init__(
        self,
        bucket: str,
        region: str,
        key_prefix: str = "raw/",
        timeout: float = 30 * 60,
        endpoint_url: Optional[str] = None,
        transfer_config: Optional[TransferConfig] = None,
        session: Optional[Any] = None,
    ) -> None:
        if not bucket:
            raise ValueError("S3 bucket name is required")
        if not region:
            raise ValueError("AWS region is required")

        self.bucket = bucket
        self.region = region
        self.key_prefix = key_prefix if not key_prefix or key_prefix.endswith("/") else key_prefix + "/"
        self.timeout = timeout
        self.endpoint_url = endpoint_url.rstrip("/") if endpoint_url else None
        self.transfer_config = transfer_config or TransferConfig()
        # Credentials come from the default provider chain
        self.session = session or aioboto3.Session(region_name=region)

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3Uploader":
        return cls(
            bucket=settings.s3_bucket,
            region=settings.aws_region,
            key_prefix=settings.object_key_prefix,
            timeout=settings.upload_timeout_seconds,
            endpoint_url=settings.s3_endpoint_url,
            transfer_config=TransferConfig(
                multipart_threshold=settings.multipart_threshold_bytes,
                multipart_chunksize=settings.multipart_chunk_bytes,
            ),
        )

    def new_object_key(self) -> str:
        return f"{self.key_prefix}{uuid.uuid4()}"

    def location_for(self, key: str) -> str:
        """Return the canonical URL of ``key`` in this bucket."""
        quoted = quote(key, safe="/")
        if self.endpoint_url:
            return f"{self.endpoint_url}/{self.bucket}/{quoted}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{quoted}"

    async def upload_file(self, fileobj: BinaryIO) -> StoredObject:
        """Upload ``fileobj`` from its current position under a fresh key.

        The whole push is bounded by ``timeout``; on timeout or any client
        error the transfer is abandoned and an ``ObjectStoreError`` raised.
        """
        key = self.new_object_key()
        try:
            await asyncio.wait_for(self._push(fileobj, key), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("s3_upload_timeout", bucket=self.bucket, key=key, timeout=self.timeout)
            with anyio.move_on_after(ABORT_TIMEOUT_SECONDS):
                await self._abort_incomplete(key)
            raise UploadTimeoutError(self.timeout) from exc
        except asyncio.CancelledError:
            with anyio.move_on_after(ABORT_TIMEOUT_SECONDS, shield=True):
                await self._abort_incomplete(key)
            raise
        except ClientError as exc:
            error_info = exc.response.get("Error", {}) if isinstance(exc.response, dict) else {}
            code = error_info.get("Code")
            template = _ERROR_MESSAGES.get(code or "")
            message = template.format(bucket=self.bucket) if template else error_info.get("Message", str(exc))
            logger.error("s3_upload_failed", bucket=self.bucket, key=key, code=code, error=message)
            raise ObjectStoreError(message, code=code) from exc
        except (Boto3Error, BotoCoreError, OSError) as exc:
            logger.error("s3_upload_failed", bucket=self.bucket, key=key, error=str(exc))
            raise ObjectStoreError(str(exc)) from exc

        location = self.location_for(key)
        logger.info("s3_upload_complete", bucket=self.bucket, key=key, location=location)
        return StoredObject(key=key, location=location)

    async def _push(self, fileobj: BinaryIO, key: str) -> None:
        async with self.session.client("s3", endpoint_url=self.endpoint_url) as s3_client:
            await s3_client.upload_fileobj(fileobj, self.bucket, key, Config=self.transfer_config)

    async def _abort_incomplete(self, key: str) -> None:
        """Abort multi-part uploads left behind for ``key`` by an interrupted push.

        The transfer manager aborts on ordinary errors only, not on timeout
        or cancellation. Failures here are logged, never raised.
        """
        try:
            async with self.session.client("s3", endpoint_url=self.endpoint_url) as s3_client:
                listing = await s3_client.list_multipart_uploads(Bucket=self.bucket, Prefix=key)
                for upload in listing.get("Uploads", []):
                    if upload.get("Key") != key:
                        continue
                    await s3_client.abort_multipart_upload(Bucket=self.bucket, Key=key, UploadId=upload["UploadId"])
                    logger.info("s3_multipart_aborted", bucket=self.bucket, key=key, upload_id=upload["UploadId"])
        except (ClientError, BotoCoreError) as exc:
            logger.warning("s3_multipart_abort_failed", bucket=self.bucket, key=key, error=str(exc))
