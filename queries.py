"""Read operations: paginated lists, single-entity views and channel statistics.

Every list returns a (possibly empty) list; only single-entity reads raise NotFound.
"""

from typing import Any, Dict, List, Optional, Sequence

from bson import ObjectId
from pymongo.database import Database

import pipelines
from database import objid
from pipelines import ListParams, OWNER_FIELDS, PUBLIC_USER_PROJECTION
from responses import NotFound, ValidationFailed

OWNER_PROJECTION = {name: 1 for name in OWNER_FIELDS}


def _run(db: Database, collection_name: str, pipeline) -> List[dict]:
    stages = pipeline.stages() if isinstance(pipeline, pipelines.ListPipeline) else pipeline
    return list(db[collection_name].aggregate(stages))


def _in_order(docs: Sequence[dict], ids: Sequence[ObjectId]) -> List[dict]:
    by_id = {doc["_id"]: doc for doc in docs}
    return [by_id[_id] for _id in ids if _id in by_id]


def _require_visible_video(db: Database, video_id: ObjectId, viewer: dict) -> None:
    if db["video"].count_documents({"_id": video_id, **pipelines.visible_to(viewer["_id"])}, limit=1) == 0:
        raise NotFound("Video not found")


# -------------------- Videos --------------------

def list_videos(db: Database, viewer: dict, params: ListParams, user_id: Optional[str] = None) -> List[dict]:
    owner_id = objid(user_id, "user id") if user_id else None
    # Owners browsing their own channel also see unpublished uploads.
    published_only = owner_id is None or owner_id != viewer["_id"]
    return _run(db, "video", pipelines.videos_pipeline(params, owner_id=owner_id, published_only=published_only))


def get_video(db: Database, viewer: dict, video_id: str) -> dict:
    vid = objid(video_id, "video id")
    found = _run(db, "video", pipelines.video_detail_pipeline(vid, viewer["_id"]))
    if not found:
        raise NotFound("Video not found")
    video = found[0]
    video["likesCount"] = db["like"].count_documents({"targetType": "video", "target": vid})
    video["isLiked"] = (
        db["like"].count_documents({"targetType": "video", "target": vid, "likedBy": viewer["_id"]}, limit=1) > 0
    )
    return video


def list_liked_videos(db: Database, user: dict, params: ListParams) -> List[dict]:
    liked = _run(db, "like", pipelines.liked_videos_pipeline(user["_id"], params))
    for like in liked:
        owner = like.pop("videoOwner", None)
        if owner:
            like["video"]["owner"] = owner
    return liked


def get_watch_history(db: Database, user: dict) -> List[dict]:
    history = (db["user"].find_one({"_id": user["_id"]}, {"watchHistory": 1}) or {}).get("watchHistory", [])
    if not history:
        return []
    found = _run(db, "video", pipelines.videos_by_ids_pipeline(history, viewer_id=user["_id"]))
    return _in_order(found, history)


# -------------------- Comments --------------------

def list_video_comments(db: Database, viewer: dict, video_id: str, params: ListParams) -> List[dict]:
    vid = objid(video_id, "video id")
    _require_visible_video(db, vid, viewer)
    return _run(db, "comment", pipelines.comments_pipeline(vid, params))


# -------------------- Tweets --------------------

def list_user_tweets(db: Database, user_id: str, params: ListParams) -> List[dict]:
    owner_id = objid(user_id, "user id")
    return _run(db, "tweet", pipelines.tweets_pipeline(owner_id, params))


# -------------------- Playlists --------------------

def list_user_playlists(db: Database, user_id: str, params: ListParams) -> List[dict]:
    owner_id = objid(user_id, "user id")
    return _run(db, "playlist", pipelines.playlists_pipeline(owner_id, params))


def get_playlist(db: Database, viewer: dict, playlist_id: str) -> dict:
    pid = objid(playlist_id, "playlist id")
    playlist = db["playlist"].find_one({"_id": pid})
    if not playlist:
        raise NotFound("Playlist not found")
    video_ids = playlist.get("videos", [])
    found = _run(db, "video", pipelines.videos_by_ids_pipeline(video_ids, viewer_id=viewer["_id"])) if video_ids else []
    playlist["videos"] = _in_order(found, video_ids)
    playlist["totalVideos"] = len(playlist["videos"])
    playlist["totalViews"] = sum(video.get("views", 0) for video in playlist["videos"])
    owner = db["user"].find_one({"_id": playlist["owner"]}, OWNER_PROJECTION)
    if owner:
        playlist["owner"] = owner
    return playlist


# -------------------- Subscriptions --------------------

def list_channel_subscribers(db: Database, channel_id: str, params: ListParams) -> List[dict]:
    cid = objid(channel_id, "channel id")
    return _run(db, "subscription", pipelines.subscribers_pipeline(cid, params))


def list_subscribed_channels(db: Database, subscriber_id: str, params: ListParams) -> List[dict]:
    sid = objid(subscriber_id, "subscriber id")
    return _run(db, "subscription", pipelines.subscribed_channels_pipeline(sid, params))


# -------------------- Users --------------------

def get_channel_profile(db: Database, viewer: dict, username: str) -> dict:
    username = (username or "").strip().lower()
    if not username:
        raise ValidationFailed("username is missing")
    channel = db["user"].find_one({"username": username}, {**PUBLIC_USER_PROJECTION, "watchHistory": 0})
    if not channel:
        raise NotFound("Channel does not exist")
    channel["subscribersCount"] = db["subscription"].count_documents({"channel": channel["_id"]})
    channel["channelsSubscribedToCount"] = db["subscription"].count_documents({"subscriber": channel["_id"]})
    channel["isSubscribed"] = (
        db["subscription"].count_documents({"channel": channel["_id"], "subscriber": viewer["_id"]}, limit=1) > 0
    )
    return channel


# -------------------- Dashboard --------------------

def _likes_on(db: Database, collection_name: str, target_type: str, owner_id: ObjectId) -> int:
    owned_ids = db[collection_name].distinct("_id", {"owner": owner_id})
    if not owned_ids:
        return 0
    return db["like"].count_documents({"targetType": target_type, "target": {"$in": owned_ids}})


def get_channel_stats(db: Database, user: dict) -> Dict[str, Any]:
    owner_id = user["_id"]
    views = _run(db, "video", pipelines.total_views_pipeline(owner_id))
    stats = {
        "totalVideos": db["video"].count_documents({"owner": owner_id}),
        "totalSubscribers": db["subscription"].count_documents({"channel": owner_id}),
        "totalVideoLikes": _likes_on(db, "video", "video", owner_id),
        "totalTweetLikes": _likes_on(db, "tweet", "tweet", owner_id),
        "totalCommentLikes": _likes_on(db, "comment", "comment", owner_id),
        "totalViews": views[0]["totalViews"] if views else 0,
    }
    stats["totalLikes"] = stats["totalVideoLikes"] + stats["totalTweetLikes"] + stats["totalCommentLikes"]
    return stats


def list_channel_videos(db: Database, user: dict, params: ListParams) -> List[dict]:
    return _run(db, "video", pipelines.channel_videos_pipeline(user["_id"], params))
