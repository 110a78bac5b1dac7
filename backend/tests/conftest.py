# tests/conftest.py
from __future__ import annotations

import threading
import uuid
from typing import BinaryIO, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from upload_service.core.config import Settings
from upload_service.core.exceptions import ObjectStoreError
from upload_service.main import create_app
from upload_service.services.object_store import StoredObject


# --------------------------------------------------------------------
# In-process stand-in for the S3 uploader
# --------------------------------------------------------------------
class FakeUploader:
    """Keeps pushed objects in memory, keyed like the real uploader."""

    def __init__(self, fail_with: Optional[Exception] = None):
        self.fail_with = fail_with
        self.objects: Dict[str, bytes] = {}
        self.spool_paths: List[str] = []

    async def upload_file(self, fileobj: BinaryIO) -> StoredObject:
        self.spool_paths.append(fileobj.name)
        if self.fail_with is not None:
            raise self.fail_with
        key = f"raw/{uuid.uuid4()}"
        self.objects[key] = fileobj.read()
        return StoredObject(key=key, location=f"https://test-bucket.s3.us-east-1.amazonaws.com/{key}")


@pytest.fixture
def spool_dir(tmp_path):
    d = tmp_path / "spool"
    d.mkdir()
    return d


@pytest.fixture
def settings(spool_dir) -> Settings:
    return Settings(
        _env_file=None,
        aws_region="us-east-1",
        s3_bucket="test-bucket",
        spool_dir=str(spool_dir),
        max_upload_bytes=1024,
        spool_chunk_size=8,
        log_format="text",
    )


@pytest.fixture
def uploader() -> FakeUploader:
    return FakeUploader()


@pytest.fixture
def client(settings, uploader) -> TestClient:
    return TestClient(create_app(settings, uploader=uploader))


@pytest.fixture
def failing_uploader() -> FakeUploader:
    return FakeUploader(fail_with=ObjectStoreError("connection reset by peer"))


@pytest.fixture
def failing_client(settings, failing_uploader) -> TestClient:
    return TestClient(create_app(settings, uploader=failing_uploader))


# --------------------------------------------------------------------
# Requests that must answer within a deadline, so a stuck handler fails
# the test instead of hanging the run
# --------------------------------------------------------------------
REQUEST_DEADLINE_SECONDS = 5.0


@pytest.fixture
def post_within():
    def _post(client: TestClient, url: str, deadline: float = REQUEST_DEADLINE_SECONDS, **kwargs):
        outcome: dict = {}

        def _send():
            try:
                outcome["response"] = client.post(url, **kwargs)
            except BaseException as exc:
                outcome["error"] = exc

        worker = threading.Thread(target=_send, daemon=True)
        worker.start()
        worker.join(deadline)
        assert not worker.is_alive(), f"POST {url} did not return within {deadline}s"
        if "error" in outcome:
            raise outcome["error"]
        return outcome["response"]

    return _post
