"""File uploads and media inspection.

Routes write incoming ``UploadFile`` bodies to a temporary path with
``save_upload``; mutations hand those paths to an uploader (which stores the
file and returns its public URL) and to the media inspector (which reads the
duration). Both collaborators live on ``app.state`` so tests can swap them.
"""

import logging
import os
import shutil
import subprocess
import tempfile
from typing import Dict, Optional, Protocol

from bson import ObjectId
from fastapi import Request, UploadFile

from responses import UpstreamFailure

logger = logging.getLogger(__name__)


class Uploader(Protocol):
    def upload(self, local_path: str) -> Dict[str, str]:
        ...


class MediaInspector(Protocol):
    def get_duration(self, local_path: str) -> float:
        ...


class LocalUploader:
    """Stores files in the uploads directory that the app serves under ``/static``."""

    def __init__(self, upload_dir: str, base_url: str = "/static"):
        self.upload_dir = upload_dir
        self.base_url = base_url.rstrip("/")

    def upload(self, local_path: str) -> Dict[str, str]:
        ext = os.path.splitext(local_path)[1]
        filename = f"{ObjectId()}{ext}"
        try:
            os.makedirs(self.upload_dir, exist_ok=True)
            shutil.copyfile(local_path, os.path.join(self.upload_dir, filename))
        except OSError as exc:
            logger.warning("Upload of %s failed: %s", local_path, exc)
            raise UpstreamFailure("Error while uploading file")
        return {"url": f"{self.base_url}/{filename}"}


class FFprobeInspector:
    def __init__(self, ffprobe_path: str = "ffprobe", timeout: float = 60):
        self.ffprobe_path = ffprobe_path
        self.timeout = timeout

    def get_duration(self, local_path: str) -> float:
        """Duration of the media file in seconds, as reported by ffprobe."""

        try:
            result = subprocess.run(
                [
                    self.ffprobe_path, "-v", "error", "-show_entries",
                    "format=duration", "-of",
                    "default=noprint_wrappers=1:nokey=1", local_path,
                ],
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=self.timeout,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            logger.warning("ffprobe could not run on %s: %s", local_path, exc)
            raise UpstreamFailure("Could not read video duration")

        output = result.stdout.decode().strip()
        try:
            duration = float(output)
        except ValueError:
            logger.warning("ffprobe returned no duration for %s: %s", local_path, result.stderr.decode().strip())
            raise UpstreamFailure("Could not read video duration")
        if duration < 0:
            raise UpstreamFailure("Could not read video duration")
        return duration


# -------------------- Temporary files --------------------

async def save_upload(upload: Optional[UploadFile], directory: Optional[str] = None) -> Optional[str]:
    """Write an uploaded body to a temp file and return its path (None when nothing was sent)."""

    if upload is None or not upload.filename:
        return None
    ext = os.path.splitext(upload.filename)[1]
    fd, path = tempfile.mkstemp(suffix=ext, dir=directory)
    with os.fdopen(fd, "wb") as f:
        f.write(await upload.read())
    return path


def discard(*paths: Optional[str]) -> None:
    for path in paths:
        if path and os.path.exists(path):
            os.remove(path)


# -------------------- Dependencies --------------------

def get_uploader(request: Request) -> Uploader:
    return request.app.state.uploader


def get_media_inspector(request: Request) -> MediaInspector:
    return request.app.state.media_inspector
