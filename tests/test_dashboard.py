def test_stats_default_to_zero(client, make_user):
    _, headers = make_user()
    r = client.get("/api/v1/dashboard/stats", headers=headers)
    assert r.status_code == 200
    assert r.json()["data"] == {
        "totalVideos": 0,
        "totalSubscribers": 0,
        "totalVideoLikes": 0,
        "totalTweetLikes": 0,
        "totalCommentLikes": 0,
        "totalLikes": 0,
        "totalViews": 0,
    }


def test_publish_then_view_updates_stats(client, make_user):
    _, headers = make_user()
    _, viewer_headers = make_user()
    video = client.post(
        "/api/v1/videos",
        data={"title": "V1", "description": "first"},
        files={"videoFile": ("v1.mp4", b"data", "video/mp4"), "thumbnail": ("v1.png", b"png", "image/png")},
        headers=headers,
    ).json()["data"]

    stats = client.get("/api/v1/dashboard/stats", headers=headers).json()["data"]
    assert stats["totalVideos"] == 1
    assert stats["totalViews"] == 0

    client.get(f"/api/v1/videos/{video['id']}", headers=viewer_headers)
    stats = client.get("/api/v1/dashboard/stats", headers=headers).json()["data"]
    assert stats["totalViews"] == 1


def test_likes_rolled_up_across_targets(client, make_user, make_video):
    creator, headers = make_user()
    _, fan_headers = make_user()
    video = make_video(creator)
    tweet = client.post("/api/v1/tweets", json={"content": "news"}, headers=headers).json()["data"]
    comment = client.post(f"/api/v1/comments/{video['_id']}", json={"content": "pinned"}, headers=headers).json()["data"]

    client.post(f"/api/v1/likes/toggle/v/{video['_id']}", headers=fan_headers)
    client.post(f"/api/v1/likes/toggle/t/{tweet['id']}", headers=fan_headers)
    client.post(f"/api/v1/likes/toggle/c/{comment['id']}", headers=fan_headers)
    client.post(f"/api/v1/subscriptions/c/{creator['_id']}", headers=fan_headers)

    stats = client.get("/api/v1/dashboard/stats", headers=headers).json()["data"]
    assert stats["totalVideoLikes"] == 1
    assert stats["totalTweetLikes"] == 1
    assert stats["totalCommentLikes"] == 1
    assert stats["totalLikes"] == 3
    assert stats["totalSubscribers"] == 1


def test_channel_videos_include_unpublished(client, make_user, make_video):
    creator, headers = make_user()
    make_video(creator, title="Live")
    make_video(creator, title="Draft", is_published=False)

    r = client.get("/api/v1/dashboard/videos", headers=headers)
    assert r.status_code == 200
    assert [v["title"] for v in r.json()["data"]] == ["Draft", "Live"]
