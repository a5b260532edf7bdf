import os

import mongomock
import pytest
from fastapi.testclient import TestClient

from database import create_document
from main import create_app
from media import get_media_inspector, get_uploader
from responses import UpstreamFailure
from schemas import Video
from security import create_access_token, hash_password
from settings import Settings


class FakeUploader:
    """Records uploaded paths instead of storing files."""

    def __init__(self):
        self.uploaded = []
        self.fail = False

    def upload(self, local_path):
        if self.fail:
            raise UpstreamFailure("Error while uploading file")
        self.uploaded.append(local_path)
        ext = os.path.splitext(local_path)[1]
        return {"url": f"https://cdn.example.com/media/{len(self.uploaded)}{ext}"}


class FakeInspector:
    def __init__(self, duration=42.5):
        self.duration = duration
        self.fail = False

    def get_duration(self, local_path):
        if self.fail:
            raise UpstreamFailure("Could not read video duration")
        return self.duration


@pytest.fixture
def settings(tmp_path):
    return Settings(
        DB_NAME="videotube_test",
        UPLOAD_DIR=str(tmp_path / "uploads"),
        ACCESS_TOKEN_SECRET="test-access-secret",
        REFRESH_TOKEN_SECRET="test-refresh-secret",
        COOKIE_SECURE=False,
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def mongo():
    return mongomock.MongoClient()


@pytest.fixture
def uploader():
    return FakeUploader()


@pytest.fixture
def inspector():
    return FakeInspector()


@pytest.fixture
def app(settings, mongo, uploader, inspector):
    app = create_app(settings, client=mongo)
    # Override the external collaborators: no disk copies and no ffprobe in tests
    app.dependency_overrides[get_uploader] = lambda: uploader
    app.dependency_overrides[get_media_inspector] = lambda: inspector
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db(client, mongo, settings):
    return mongo[settings.db_name]


@pytest.fixture
def make_user(db, settings):
    """Insert a user directly and return ``(user, auth_headers)``."""

    counter = {"n": 0}

    def _make_user(username=None, password="secret123"):
        counter["n"] += 1
        username = username or f"user{counter['n']}"
        user = create_document(
            db,
            "user",
            {
                "username": username,
                "email": f"{username}@example.com",
                "fullname": f"User {username}",
                "avatar": f"https://cdn.example.com/avatars/{username}.png",
                "coverImage": "",
                "watchHistory": [],
                "password": hash_password(password),
            },
        )
        token = create_access_token(user, settings)
        return user, {"Authorization": f"Bearer {token}"}

    return _make_user


@pytest.fixture
def make_video(db):
    def _make_video(owner, title="A video", views=0, is_published=True, duration=10.0):
        video = Video(
            videoFile="https://cdn.example.com/media/video.mp4",
            thumbnail="https://cdn.example.com/media/thumb.jpg",
            title=title,
            description=f"About {title}",
            duration=duration,
            views=views,
            isPublished=is_published,
            owner=owner["_id"],
        )
        return create_document(db, "video", video)

    return _make_video
