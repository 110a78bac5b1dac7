import asyncio
import hashlib
import io
import os

import pytest

from upload_service.core.exceptions import InvalidUploadError, PayloadTooLargeError, SpoolStorageError
from upload_service.services.spooler import hash_and_save, iter_file, spooled_tempfile


async def _aiter(chunks):
    for chunk in chunks:
        yield chunk


class _RecordingFile:
    """Wraps a real file and remembers the size of every write."""

    def __init__(self, raw):
        self._raw = raw
        self.writes = []

    def write(self, b):
        self.writes.append(len(b))
        return self._raw.write(b)

    def __getattr__(self, name):
        return getattr(self._raw, name)


@pytest.fixture
def recording_file(tmp_path):
    with spooled_tempfile(str(tmp_path)) as tmp:
        yield _RecordingFile(tmp)


def test_digest_and_size_match_input(tmp_path):
    data = os.urandom(100_000)
    with spooled_tempfile(str(tmp_path)) as tmp:
        result = asyncio.run(hash_and_save(iter_file(io.BytesIO(data), 4096), tmp, max_bytes=1 << 20, chunk_size=1000))
        assert result.size == len(data)
        assert result.sha256 == hashlib.sha256(data).hexdigest()
        # cursor is rewound so a reader sees the exact bytes from offset zero
        assert tmp.tell() == 0
        assert tmp.read() == data


def test_hello_digest(tmp_path):
    with spooled_tempfile(str(tmp_path)) as tmp:
        result = asyncio.run(hash_and_save(_aiter([b"he", b"", b"llo"]), tmp, max_bytes=10))
    assert result.size == 5
    assert result.sha256 == "2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824"

def test_writes_never_exceed_chunk_size(recording_file):
    result = asyncio.run(
        hash_and_save(_aiter([b"a" * 25, b"b" * 3]), recording_file, max_bytes=100, chunk_size=10)
    )
    assert result.size == 28
    assert recording_file.writes == [10, 10, 5, 3]
    assert recording_file.read() == b"a" * 25 + b"b" * 3


def test_exceeding_bound_fails_instead_of_truncating(recording_file):
    with pytest.raises(PayloadTooLargeError) as exc_info:
        asyncio.run(hash_and_save(_aiter([b"x" * 6, b"x" * 6]), recording_file, max_bytes=10, chunk_size=4))
    assert exc_info.value.status_code == 400
    assert exc_info.value.details == {"limit": 10}
    # nothing past the bound reaches the file
    assert sum(recording_file.writes) <= 10


def test_exact_bound_is_allowed(recording_file):
    result = asyncio.run(hash_and_save(_aiter([b"x" * 10]), recording_file, max_bytes=10))
    assert result.size == 10


def test_write_failure_is_input_error(recording_file):
    def _full_disk(b):
        raise OSError(28, "No space left on device")

    recording_file.write = _full_disk
    with pytest.raises(InvalidUploadError) as exc_info:
        asyncio.run(hash_and_save(_aiter([b"data"]), recording_file, max_bytes=100))
    assert exc_info.value.status_code == 400
    assert "No space left on device" in str(exc_info.value)


def test_invalid_chunk_size(recording_file):
    with pytest.raises(ValueError):
        asyncio.run(hash_and_save(_aiter([b"data"]), recording_file, max_bytes=100, chunk_size=0))


def test_tempfile_removed_after_success(tmp_path):
    with spooled_tempfile(str(tmp_path)) as tmp:
        path = tmp.name
        assert os.path.basename(path).startswith("upload-")
        assert os.path.exists(path)
    assert not os.path.exists(path)
    assert os.listdir(tmp_path) == []


def test_tempfile_removed_after_error(tmp_path):
    with pytest.raises(RuntimeError):
        with spooled_tempfile(str(tmp_path)) as tmp:
            path = tmp.name
            tmp.write(b"partial")
            raise RuntimeError("boom")
    assert not os.path.exists(path)


def test_tempfile_creation_failure(tmp_path):
    with pytest.raises(SpoolStorageError) as exc_info:
        with spooled_tempfile(str(tmp_path / "missing")):
            pass
    assert exc_info.value.status_code == 500
