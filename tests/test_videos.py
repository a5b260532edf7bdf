from bson import ObjectId
from fastapi.concurrency import run_in_threadpool

import api


def _publish(client, headers, title="My first video"):
    return client.post(
        "/api/v1/videos",
        data={"title": title, "description": "A short clip"},
        files={
            "videoFile": ("clip.mp4", b"\x00\x00\x00\x18ftypmp42", "video/mp4"),
            "thumbnail": ("thumb.jpg", b"\xff\xd8\xff\xe0", "image/jpeg"),
        },
        headers=headers,
    )


def test_publish_video(client, db, make_user, uploader, inspector):
    user, headers = make_user()
    r = _publish(client, headers)
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["success"] is True
    video = body["data"]
    assert video["title"] == "My first video"
    assert video["duration"] == inspector.duration
    assert video["views"] == 0
    assert video["isPublished"] is True
    assert video["owner"] == str(user["_id"])
    assert video["videoFile"].endswith(".mp4")
    assert video["thumbnail"].endswith(".jpg")
    assert len(uploader.uploaded) == 2
    assert db["video"].count_documents({}) == 1


def test_publish_requires_files(client, db, make_user):
    _, headers = make_user()
    r = client.post("/api/v1/videos", data={"title": "t", "description": "d"}, headers=headers)
    assert r.status_code == 400
    assert db["video"].count_documents({}) == 0


def test_publish_upload_failure_writes_nothing(client, db, make_user, uploader):
    _, headers = make_user()
    uploader.fail = True
    r = _publish(client, headers)
    assert r.status_code == 502
    assert r.json()["success"] is False
    assert db["video"].count_documents({}) == 0


def test_publish_duration_failure_skips_upload(client, db, make_user, uploader, inspector):
    _, headers = make_user()
    inspector.fail = True
    r = _publish(client, headers)
    assert r.status_code == 502
    assert uploader.uploaded == []
    assert db["video"].count_documents({}) == 0


def test_list_videos_hides_unpublished(client, make_user, make_video):
    owner, owner_headers = make_user()
    _, viewer_headers = make_user()
    make_video(owner, title="Public")
    make_video(owner, title="Draft", is_published=False)

    r = client.get("/api/v1/videos", headers=viewer_headers)
    assert r.status_code == 200
    titles = [v["title"] for v in r.json()["data"]]
    assert titles == ["Public"]
    assert r.json()["data"][0]["owner"]["username"] == owner["username"]
    assert "password" not in r.json()["data"][0]["owner"]

    # The owner browsing their own channel sees drafts too
    r = client.get("/api/v1/videos", params={"userId": str(owner["_id"])}, headers=owner_headers)
    assert sorted(v["title"] for v in r.json()["data"]) == ["Draft", "Public"]


def test_list_videos_search_and_sort(client, make_user, make_video):
    owner, headers = make_user()
    make_video(owner, title="Cats compilation", views=5)
    make_video(owner, title="Dogs compilation", views=50)
    make_video(owner, title="cat facts", views=20)

    r = client.get("/api/v1/videos", params={"query": "cat", "sortBy": "views", "sortType": "asc"}, headers=headers)
    assert [v["title"] for v in r.json()["data"]] == ["Cats compilation", "cat facts"]


def test_list_videos_pages_are_disjoint(client, make_user, make_video):
    owner, headers = make_user()
    for i in range(7):
        make_video(owner, title=f"Video {i}")

    seen = []
    for page in (1, 2, 3):
        r = client.get("/api/v1/videos", params={"page": page, "limit": 3}, headers=headers)
        items = r.json()["data"]
        assert len(items) <= 3
        seen.extend(v["id"] for v in items)
    assert len(seen) == 7
    assert len(set(seen)) == 7


def test_list_videos_rejects_bad_paging(client, make_user):
    _, headers = make_user()
    for params in ({"page": 0}, {"limit": 101}, {"page": "abc"}, {"sortBy": "password"}):
        r = client.get("/api/v1/videos", params=params, headers=headers)
        assert r.status_code == 400, params
        assert r.json()["success"] is False


def test_get_video_counts_view_and_updates_history(client, db, make_user, make_video):
    owner, _ = make_user()
    viewer, headers = make_user()
    first = make_video(owner, title="First")
    second = make_video(owner, title="Second")

    client.get(f"/api/v1/videos/{first['_id']}", headers=headers)
    client.get(f"/api/v1/videos/{second['_id']}", headers=headers)
    r = client.get(f"/api/v1/videos/{first['_id']}", headers=headers)

    assert r.status_code == 200
    video = r.json()["data"]
    assert video["views"] == 2
    assert video["likesCount"] == 0
    assert video["isLiked"] is False
    assert video["owner"]["username"] == owner["username"]
    history = db["user"].find_one({"_id": viewer["_id"]})["watchHistory"]
    assert history == [first["_id"], second["_id"]]

    r = client.get("/api/v1/users/history", headers=headers)
    assert [v["title"] for v in r.json()["data"]] == ["First", "Second"]


def test_unpublished_video_is_not_found_for_others(client, make_user, make_video):
    owner, owner_headers = make_user()
    _, headers = make_user()
    draft = make_video(owner, is_published=False)

    assert client.get(f"/api/v1/videos/{draft['_id']}", headers=headers).status_code == 404
    assert client.get(f"/api/v1/videos/{draft['_id']}", headers=owner_headers).status_code == 200


def test_update_video_by_non_owner_is_forbidden(client, db, make_user, make_video):
    owner, _ = make_user()
    _, other_headers = make_user()
    video = make_video(owner, title="Original")

    r = client.patch(f"/api/v1/videos/{video['_id']}", data={"title": "Hijacked"}, headers=other_headers)
    assert r.status_code == 403
    assert db["video"].find_one({"_id": video["_id"]})["title"] == "Original"


def test_update_video(client, make_user, make_video):
    owner, headers = make_user()
    video = make_video(owner, title="Original")
    r = client.patch(f"/api/v1/videos/{video['_id']}", data={"title": "Renamed"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["data"]["title"] == "Renamed"
    assert r.json()["data"]["description"] == video["description"]


def test_update_video_requires_a_field(client, make_user, make_video):
    owner, headers = make_user()
    video = make_video(owner)
    r = client.patch(f"/api/v1/videos/{video['_id']}", data={}, headers=headers)
    assert r.status_code == 400


def test_toggle_publish_status(client, make_user, make_video):
    owner, headers = make_user()
    video = make_video(owner)
    r = client.patch(f"/api/v1/videos/toggle/publish/{video['_id']}", headers=headers)
    assert r.json()["data"]["isPublished"] is False
    r = client.patch(f"/api/v1/videos/toggle/publish/{video['_id']}", headers=headers)
    assert r.json()["data"]["isPublished"] is True


def test_delete_video_cascades(client, db, make_user, make_video):
    owner, headers = make_user()
    viewer, viewer_headers = make_user()
    video = make_video(owner)
    vid = str(video["_id"])

    comment = client.post(f"/api/v1/comments/{vid}", json={"content": "nice"}, headers=viewer_headers).json()["data"]
    client.post(f"/api/v1/likes/toggle/v/{vid}", headers=viewer_headers)
    client.post(f"/api/v1/likes/toggle/c/{comment['id']}", headers=headers)
    playlist = client.post("/api/v1/playlist", json={"name": "Mix", "description": "d"}, headers=headers).json()["data"]
    client.patch(f"/api/v1/playlist/add/{vid}/{playlist['id']}", headers=headers)
    client.get(f"/api/v1/videos/{vid}", headers=viewer_headers)

    r = client.delete(f"/api/v1/videos/{vid}", headers=headers)
    assert r.status_code == 200
    assert r.json()["data"]["id"] == vid
    assert db["video"].count_documents({}) == 0
    assert db["comment"].count_documents({}) == 0
    assert db["like"].count_documents({}) == 0
    assert db["playlist"].find_one({"_id": ObjectId(playlist["id"])})["videos"] == []
    assert db["user"].find_one({"_id": viewer["_id"]})["watchHistory"] == []


def test_publish_uploads_thumbnail_before_video(client, make_user, uploader):
    _, headers = make_user()
    assert _publish(client, headers).status_code == 201
    assert [path.rsplit(".", 1)[1] for path in uploader.uploaded] == ["jpg", "mp4"]


def test_multipart_writes_run_in_threadpool(client, make_user, make_video, monkeypatch):
    owner, headers = make_user()
    video = make_video(owner)
    called = []

    async def recording(func, *args, **kwargs):
        called.append(func.__name__)
        return await run_in_threadpool(func, *args, **kwargs)

    monkeypatch.setattr(api, "run_in_threadpool", recording)
    assert _publish(client, headers).status_code == 201
    r = client.patch(f"/api/v1/videos/{video['_id']}", data={"title": "Renamed"}, headers=headers)
    assert r.status_code == 200
    r = client.patch("/api/v1/users/avatar", files={"avatar": ("new.png", b"\x89PNG", "image/png")}, headers=headers)
    assert r.status_code == 200
    assert called == ["publish_video", "update_video", "update_avatar"]


def test_delete_video_by_non_owner_is_forbidden(client, db, make_user, make_video):
    owner, _ = make_user()
    _, other_headers = make_user()
    video = make_video(owner)

    r = client.delete(f"/api/v1/videos/{video['_id']}", headers=other_headers)
    assert r.status_code == 403
    assert r.json()["success"] is False
    assert db["video"].count_documents({"_id": video["_id"]}) == 1
