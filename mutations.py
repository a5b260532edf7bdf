"""Write operations.

Each mutation checks its input in the same order before touching the store:
identifier format, required fields, existence of the target, then ownership.
Updates return the document after the write; deletes return the removed one.
"""

import logging
from typing import Any, Optional, Tuple, Type

from bson import ObjectId
from pydantic import BaseModel, ValidationError
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import create_document, objid, update_document, utcnow
from media import MediaInspector, Uploader
from pipelines import PUBLIC_USER_PROJECTION, visible_to
from responses import Conflict, Forbidden, InvalidIdentifier, NotFound, Unauthorized, ValidationFailed
from schemas import Comment, Like, LikeTarget, Playlist, Subscription, Tweet, User, Video
from security import create_access_token, create_refresh_token, decode_token, hash_password, verify_password
from settings import Settings

logger = logging.getLogger(__name__)

LIKE_TARGET_COLLECTIONS = {
    LikeTarget.VIDEO: "video",
    LikeTarget.COMMENT: "comment",
    LikeTarget.TWEET: "tweet",
}


def _clean(value: Optional[str]) -> str:
    return value.strip() if isinstance(value, str) else ""


def _require(*values: Optional[str], message: str = "All fields are required") -> None:
    if any(not _clean(value) for value in values):
        raise ValidationFailed(message)


def _build(model: Type[BaseModel], **data: Any) -> BaseModel:
    try:
        return model(**data)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        raise ValidationFailed(f"{field}: {first.get('msg')}" if field else first.get("msg"))


def _load(db: Database, collection_name: str, _id: ObjectId, label: str, projection=None) -> dict:
    doc = db[collection_name].find_one({"_id": _id}, projection)
    if not doc:
        raise NotFound(f"{label} not found")
    return doc


def _load_owned(db: Database, collection_name: str, _id: ObjectId, user: dict, label: str) -> dict:
    doc = _load(db, collection_name, _id, label)
    if doc.get("owner") != user["_id"]:
        raise Forbidden(f"You are not the owner of this {label.lower()}")
    return doc


def _load_visible_video(db: Database, video_id: ObjectId, user: dict) -> dict:
    video = db["video"].find_one({"_id": video_id, **visible_to(user["_id"])}, {"_id": 1})
    if not video:
        raise NotFound("Video not found")
    return video


def _public(user: dict) -> dict:
    return {k: v for k, v in user.items() if k not in PUBLIC_USER_PROJECTION}


# -------------------- Users --------------------

def register_user(
    db: Database,
    uploader: Uploader,
    *,
    fullname: str,
    email: str,
    username: str,
    password: str,
    avatar_path: Optional[str],
    cover_image_path: Optional[str] = None,
) -> dict:
    _require(fullname, email, username, password)
    if not avatar_path:
        raise ValidationFailed("Avatar file is required")
    username = _clean(username).lower()
    email = _clean(email).lower()
    if db["user"].find_one({"$or": [{"username": username}, {"email": email}]}, {"_id": 1}):
        raise Conflict("User with email or username already exists")

    # Validated before any upload; the image URLs are filled in afterwards.
    user = _build(
        User,
        fullname=_clean(fullname),
        email=email,
        username=username,
        password=hash_password(password),
        avatar="",
    )
    user.avatar = uploader.upload(avatar_path)["url"]
    if cover_image_path:
        user.coverImage = uploader.upload(cover_image_path)["url"]
    created = create_document(db, "user", user)
    logger.info("Registered user %s", username)
    return _public(created)


def _issue_tokens(db: Database, user: dict, settings: Settings) -> Tuple[str, str]:
    access_token = create_access_token(user, settings)
    refresh_token = create_refresh_token(user, settings)
    db["user"].update_one({"_id": user["_id"]}, {"$set": {"refreshToken": refresh_token}})
    return access_token, refresh_token


def login_user(
    db: Database,
    settings: Settings,
    *,
    password: str,
    username: Optional[str] = None,
    email: Optional[str] = None,
) -> Tuple[dict, str, str]:
    """Check credentials and return ``(user, access_token, refresh_token)``."""

    username, email = _clean(username).lower(), _clean(email).lower()
    if not username and not email:
        raise ValidationFailed("username or email is required")
    _require(password, message="password is required")

    conditions = []
    if username:
        conditions.append({"username": username})
    if email:
        conditions.append({"email": email})
    user = db["user"].find_one({"$or": conditions})
    if not user:
        raise NotFound("User does not exist")
    if not verify_password(password, user["password"]):
        raise Unauthorized("Invalid user credentials")

    access_token, refresh_token = _issue_tokens(db, user, settings)
    logger.info("User %s logged in", user["username"])
    return _public(user), access_token, refresh_token


def logout_user(db: Database, user: dict) -> None:
    db["user"].update_one({"_id": user["_id"]}, {"$unset": {"refreshToken": 1}})


def refresh_access_token(db: Database, settings: Settings, incoming_token: Optional[str]) -> Tuple[str, str]:
    """Exchange a valid, current refresh token for a fresh token pair."""

    if not incoming_token:
        raise Unauthorized("Unauthorized request")
    payload = decode_token(incoming_token, settings.refresh_token_secret.get_secret_value())
    try:
        user_id = objid(payload.get("_id"), "user id")
    except InvalidIdentifier:
        raise Unauthorized("Invalid refresh token")
    user = db["user"].find_one({"_id": user_id})
    if not user:
        raise Unauthorized("Invalid refresh token")
    if user.get("refreshToken") != incoming_token:
        raise Unauthorized("Refresh token is expired or used")
    return _issue_tokens(db, user, settings)


def change_password(db: Database, user: dict, old_password: str, new_password: str) -> None:
    _require(old_password, new_password)
    stored = _load(db, "user", user["_id"], "User", {"password": 1})
    if not verify_password(old_password, stored["password"]):
        raise ValidationFailed("Invalid old password")
    update_document(db, "user", {"_id": user["_id"]}, {"password": hash_password(new_password)})


def update_account_details(db: Database, user: dict, fullname: str, email: str) -> dict:
    _require(fullname, email)
    email = _clean(email).lower()
    if db["user"].find_one({"email": email, "_id": {"$ne": user["_id"]}}, {"_id": 1}):
        raise Conflict("Email is already in use")
    return update_document(
        db, "user", {"_id": user["_id"]},
        {"fullname": _clean(fullname), "email": email},
        projection=PUBLIC_USER_PROJECTION,
    )


def _update_user_image(db: Database, uploader: Uploader, user: dict, path: Optional[str], field: str, label: str) -> dict:
    if not path:
        raise ValidationFailed(f"{label} file is missing")
    uploaded = uploader.upload(path)
    return update_document(db, "user", {"_id": user["_id"]}, {field: uploaded["url"]}, projection=PUBLIC_USER_PROJECTION)


def update_avatar(db: Database, uploader: Uploader, user: dict, avatar_path: Optional[str]) -> dict:
    return _update_user_image(db, uploader, user, avatar_path, "avatar", "Avatar")


def update_cover_image(db: Database, uploader: Uploader, user: dict, cover_image_path: Optional[str]) -> dict:
    return _update_user_image(db, uploader, user, cover_image_path, "coverImage", "Cover image")


# -------------------- Videos --------------------

def publish_video(
    db: Database,
    uploader: Uploader,
    inspector: MediaInspector,
    user: dict,
    *,
    title: str,
    description: str,
    video_path: Optional[str],
    thumbnail_path: Optional[str],
) -> dict:
    """Upload the video and its thumbnail, then record it; nothing is written if any step fails."""

    _require(title, description)
    if not video_path:
        raise ValidationFailed("Video file is required")
    if not thumbnail_path:
        raise ValidationFailed("Thumbnail is required")

    duration = inspector.get_duration(video_path)
    # The uploader has no delete, so the smaller file goes first.
    thumbnail = uploader.upload(thumbnail_path)
    video_file = uploader.upload(video_path)

    video = _build(
        Video,
        title=_clean(title),
        description=_clean(description),
        videoFile=video_file["url"],
        thumbnail=thumbnail["url"],
        duration=duration,
        owner=user["_id"],
    )
    created = create_document(db, "video", video)
    logger.info("User %s published %r (%.1fs)", user["username"], created["title"], duration)
    return created


def update_video(
    db: Database,
    uploader: Uploader,
    user: dict,
    video_id: str,
    *,
    title: Optional[str] = None,
    description: Optional[str] = None,
    thumbnail_path: Optional[str] = None,
) -> dict:
    vid = objid(video_id, "video id")
    title, description = _clean(title), _clean(description)
    if not (title or description or thumbnail_path):
        raise ValidationFailed("At least one of title, description or thumbnail is required")
    _load_owned(db, "video", vid, user, "Video")

    changes = {}
    if title:
        changes["title"] = title
    if description:
        changes["description"] = description
    if thumbnail_path:
        changes["thumbnail"] = uploader.upload(thumbnail_path)["url"]
    return update_document(db, "video", {"_id": vid}, changes)


def delete_video(db: Database, user: dict, video_id: str) -> dict:
    vid = objid(video_id, "video id")
    video = _load_owned(db, "video", vid, user, "Video")

    db["video"].delete_one({"_id": vid})
    comment_ids = db["comment"].distinct("_id", {"video": vid})
    db["like"].delete_many(
        {
            "$or": [
                {"targetType": LikeTarget.VIDEO.value, "target": vid},
                {"targetType": LikeTarget.COMMENT.value, "target": {"$in": comment_ids}},
            ]
        }
    )
    db["comment"].delete_many({"video": vid})
    db["playlist"].update_many({"videos": vid}, {"$pull": {"videos": vid}})
    db["user"].update_many({"watchHistory": vid}, {"$pull": {"watchHistory": vid}})
    logger.info("User %s deleted video %s", user["username"], vid)
    return video


def toggle_publish_status(db: Database, user: dict, video_id: str) -> dict:
    vid = objid(video_id, "video id")
    video = _load_owned(db, "video", vid, user, "Video")
    return update_document(db, "video", {"_id": vid}, {"isPublished": not video.get("isPublished", True)})


def record_view(db: Database, viewer: dict, video_id: str) -> None:
    """Count a view and move the video to the front of the viewer's watch history."""

    vid = objid(video_id, "video id")
    visible = {"_id": vid, **visible_to(viewer["_id"])}
    if not db["video"].find_one_and_update(visible, {"$inc": {"views": 1}}, projection={"_id": 1}):
        raise NotFound("Video not found")
    db["user"].update_one({"_id": viewer["_id"]}, {"$pull": {"watchHistory": vid}})
    db["user"].update_one(
        {"_id": viewer["_id"]},
        {"$push": {"watchHistory": {"$each": [vid], "$position": 0}}},
    )


# -------------------- Comments --------------------

def add_comment(db: Database, user: dict, video_id: str, content: str) -> dict:
    vid = objid(video_id, "video id")
    _require(content, message="Comment content is required")
    _load_visible_video(db, vid, user)
    return create_document(db, "comment", Comment(content=_clean(content), video=vid, owner=user["_id"]))


def update_comment(db: Database, user: dict, comment_id: str, content: str) -> dict:
    cid = objid(comment_id, "comment id")
    _require(content, message="Comment content is required")
    _load_owned(db, "comment", cid, user, "Comment")
    return update_document(db, "comment", {"_id": cid}, {"content": _clean(content)})


def delete_comment(db: Database, user: dict, comment_id: str) -> dict:
    cid = objid(comment_id, "comment id")
    comment = _load_owned(db, "comment", cid, user, "Comment")
    db["comment"].delete_one({"_id": cid})
    db["like"].delete_many({"targetType": LikeTarget.COMMENT.value, "target": cid})
    return comment


# -------------------- Tweets --------------------

def create_tweet(db: Database, user: dict, content: str) -> dict:
    _require(content, message="Tweet content is required")
    return create_document(db, "tweet", Tweet(content=_clean(content), owner=user["_id"]))


def update_tweet(db: Database, user: dict, tweet_id: str, content: str) -> dict:
    tid = objid(tweet_id, "tweet id")
    _require(content, message="Tweet content is required")
    _load_owned(db, "tweet", tid, user, "Tweet")
    return update_document(db, "tweet", {"_id": tid}, {"content": _clean(content)})


def delete_tweet(db: Database, user: dict, tweet_id: str) -> dict:
    tid = objid(tweet_id, "tweet id")
    tweet = _load_owned(db, "tweet", tid, user, "Tweet")
    db["tweet"].delete_one({"_id": tid})
    db["like"].delete_many({"targetType": LikeTarget.TWEET.value, "target": tid})
    return tweet


# -------------------- Likes --------------------

def toggle_like(db: Database, user: dict, target_type: LikeTarget, target_id: str) -> Tuple[bool, dict]:
    """Like the target, or remove the like if it exists; returns ``(is_liked, like)``."""

    target_type = LikeTarget(target_type)
    tid = objid(target_id, f"{target_type.value} id")
    if target_type is LikeTarget.VIDEO:
        _load_visible_video(db, tid, user)
    else:
        _load(db, LIKE_TARGET_COLLECTIONS[target_type], tid, target_type.value.capitalize(), {"_id": 1})

    key = {"likedBy": user["_id"], "targetType": target_type.value, "target": tid}
    removed = db["like"].find_one_and_delete(key)
    if removed:
        return False, removed
    try:
        return True, create_document(db, "like", Like(**key))
    except DuplicateKeyError:
        raise Conflict("Like was changed by a concurrent request")


# -------------------- Subscriptions --------------------

def toggle_subscription(db: Database, user: dict, channel_id: str) -> Tuple[bool, dict]:
    cid = objid(channel_id, "channel id")
    if cid == user["_id"]:
        raise ValidationFailed("You cannot subscribe to your own channel")
    _load(db, "user", cid, "Channel", {"_id": 1})

    key = {"subscriber": user["_id"], "channel": cid}
    removed = db["subscription"].find_one_and_delete(key)
    if removed:
        return False, removed
    try:
        return True, create_document(db, "subscription", Subscription(**key))
    except DuplicateKeyError:
        raise Conflict("Subscription was changed by a concurrent request")


# -------------------- Playlists --------------------

def create_playlist(db: Database, user: dict, name: str, description: str) -> dict:
    _require(name, description)
    return create_document(
        db, "playlist", Playlist(name=_clean(name), description=_clean(description), owner=user["_id"])
    )


def update_playlist(db: Database, user: dict, playlist_id: str, name: str, description: str) -> dict:
    pid = objid(playlist_id, "playlist id")
    _require(name, description)
    _load_owned(db, "playlist", pid, user, "Playlist")
    return update_document(db, "playlist", {"_id": pid}, {"name": _clean(name), "description": _clean(description)})


def delete_playlist(db: Database, user: dict, playlist_id: str) -> dict:
    pid = objid(playlist_id, "playlist id")
    playlist = _load_owned(db, "playlist", pid, user, "Playlist")
    db["playlist"].delete_one({"_id": pid})
    return playlist


def _change_playlist_videos(db: Database, user: dict, video_id: str, playlist_id: str, operator: str) -> dict:
    vid = objid(video_id, "video id")
    pid = objid(playlist_id, "playlist id")
    _load_owned(db, "playlist", pid, user, "Playlist")
    if operator == "$addToSet":
        _load_visible_video(db, vid, user)
    return db["playlist"].find_one_and_update(
        {"_id": pid},
        {operator: {"videos": vid}, "$set": {"updatedAt": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )


def add_video_to_playlist(db: Database, user: dict, video_id: str, playlist_id: str) -> dict:
    return _change_playlist_videos(db, user, video_id, playlist_id, "$addToSet")


def remove_video_from_playlist(db: Database, user: dict, video_id: str, playlist_id: str) -> dict:
    return _change_playlist_videos(db, user, video_id, playlist_id, "$pull")
