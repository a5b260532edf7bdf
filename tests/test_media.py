import asyncio
import io
import os

import pytest
from fastapi import UploadFile

from media import FFprobeInspector, LocalUploader, discard, save_upload
from responses import UpstreamFailure


def test_local_uploader_copies_file(tmp_path):
    source = tmp_path / "clip.mp4"
    source.write_bytes(b"video-bytes")
    uploader = LocalUploader(str(tmp_path / "uploads"))

    result = uploader.upload(str(source))

    assert result["url"].startswith("/static/")
    assert result["url"].endswith(".mp4")
    stored = tmp_path / "uploads" / os.path.basename(result["url"])
    assert stored.read_bytes() == b"video-bytes"


def test_local_uploader_missing_source(tmp_path):
    uploader = LocalUploader(str(tmp_path / "uploads"))
    with pytest.raises(UpstreamFailure):
        uploader.upload(str(tmp_path / "does-not-exist.mp4"))


def test_missing_ffprobe_is_upstream_failure(tmp_path):
    source = tmp_path / "clip.mp4"
    source.write_bytes(b"not really a video")
    inspector = FFprobeInspector(ffprobe_path=str(tmp_path / "no-such-ffprobe"))
    with pytest.raises(UpstreamFailure):
        inspector.get_duration(str(source))


def test_save_upload_and_discard(tmp_path):
    upload = UploadFile(file=io.BytesIO(b"payload"), filename="thumb.jpg")
    path = asyncio.run(save_upload(upload, str(tmp_path)))

    assert path.endswith(".jpg")
    with open(path, "rb") as f:
        assert f.read() == b"payload"
    discard(path, None)
    assert not os.path.exists(path)


def test_save_upload_without_file():
    assert asyncio.run(save_upload(None)) is None
