"""HTTP routes for the video sharing backend, all mounted under ``/api/v1``."""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pymongo.database import Database
from pymongo.errors import PyMongoError

import mutations
import queries
from database import get_db, to_str_id
from media import MediaInspector, Uploader, discard, get_media_inspector, get_uploader, save_upload
from pipelines import DEFAULT_LIMIT, DEFAULT_PAGE, MAX_LIMIT, ListParams
from responses import UpstreamFailure, api_response
from schemas import (
    AccountUpdateRequest,
    ChangePasswordRequest,
    ContentRequest,
    LikeTarget,
    LoginRequest,
    PlaylistRequest,
    RefreshTokenRequest,
)
from security import get_current_user
from settings import Settings, get_app_settings

router = APIRouter(prefix="/api/v1")


def list_params(
    page: int = Query(DEFAULT_PAGE, ge=1),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    sortBy: str = Query("createdAt"),
    sortType: str = Query("desc"),
    query: Optional[str] = Query(None),
) -> ListParams:
    return ListParams(page=page, limit=limit, sort_by=sortBy, sort_type=sortType, query=query)


def ok(data=None, message: str = "Success", status_code: int = 200) -> JSONResponse:
    return api_response(status_code, to_str_id(data) if data is not None else None, message)


def _set_auth_cookies(response: JSONResponse, settings: Settings, access_token: str, refresh_token: str) -> None:
    options = {"httponly": True, "secure": settings.cookie_secure, "samesite": "lax"}
    response.set_cookie("accessToken", access_token, max_age=settings.access_token_expiry_minutes * 60, **options)
    response.set_cookie("refreshToken", refresh_token, max_age=settings.refresh_token_expiry_days * 86400, **options)


# -------------------- Health --------------------
@router.get("/healthcheck")
def healthcheck(db: Database = Depends(get_db)):
    try:
        db.command("ping")
    except PyMongoError:
        raise UpstreamFailure("Database is not reachable")
    return ok({"status": "OK", "database": db.name}, "Service is healthy")


# -------------------- Users --------------------
@router.post("/users/register")
async def register(
    fullname: str = Form(...),
    email: str = Form(...),
    username: str = Form(...),
    password: str = Form(...),
    avatar: Optional[UploadFile] = File(None),
    coverImage: Optional[UploadFile] = File(None),
    db: Database = Depends(get_db),
    uploader: Uploader = Depends(get_uploader),
):
    avatar_path = await save_upload(avatar)
    cover_path = await save_upload(coverImage)
    try:
        user = await run_in_threadpool(
            mutations.register_user, db, uploader,
            fullname=fullname, email=email, username=username, password=password,
            avatar_path=avatar_path, cover_image_path=cover_path,
        )
    finally:
        discard(avatar_path, cover_path)
    return ok(user, "User registered successfully", 201)


@router.post("/users/login")
def login(
    payload: LoginRequest,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    user, access_token, refresh_token = mutations.login_user(
        db, settings, username=payload.username, email=payload.email, password=payload.password
    )
    response = ok(
        {"user": user, "accessToken": access_token, "refreshToken": refresh_token},
        "User logged in successfully",
    )
    _set_auth_cookies(response, settings, access_token, refresh_token)
    return response


@router.post("/users/logout")
def logout(db: Database = Depends(get_db), user: dict = Depends(get_current_user)):
    mutations.logout_user(db, user)
    response = ok({}, "User logged out")
    response.delete_cookie("accessToken")
    response.delete_cookie("refreshToken")
    return response


@router.post("/users/refresh-token")
def refresh_token(
    request: Request,
    payload: Optional[RefreshTokenRequest] = None,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    incoming = request.cookies.get("refreshToken") or (payload.refreshToken if payload else None)
    access_token, new_refresh_token = mutations.refresh_access_token(db, settings, incoming)
    response = ok({"accessToken": access_token, "refreshToken": new_refresh_token}, "Access token refreshed")
    _set_auth_cookies(response, settings, access_token, new_refresh_token)
    return response


@router.post("/users/change-password")
def change_password(
    payload: ChangePasswordRequest,
    db: Database = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    mutations.change_password(db, user, payload.oldPassword, payload.newPassword)
    return ok({}, "Password changed successfully")


@router.get("/users/current-user")
def current_user(user: dict = Depends(get_current_user)):
    return ok(user, "Current user fetched successfully")


@router.patch("/users/update-account")
def update_account(
    payload: AccountUpdateRequest,
    db: Database = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    updated = mutations.update_account_details(db, user, payload.fullname, payload.email)
    return ok(updated, "Account details updated successfully")


@router.patch("/users/avatar")
async def update_avatar(
    avatar: Optional[UploadFile] = File(None),
    db: Database = Depends(get_db),
    uploader: Uploader = Depends(get_uploader),
    user: dict = Depends(get_current_user),
):
    path = await save_upload(avatar)
    try:
        updated = await run_in_threadpool(mutations.update_avatar, db, uploader, user, path)
    finally:
        discard(path)
    return ok(updated, "Avatar updated successfully")


@router.patch("/users/cover-image")
async def update_cover_image(
    coverImage: Optional[UploadFile] = File(None),
    db: Database = Depends(get_db),
    uploader: Uploader = Depends(get_uploader),
    user: dict = Depends(get_current_user),
):
    path = await save_upload(coverImage)
    try:
        updated = await run_in_threadpool(mutations.update_cover_image, db, uploader, user, path)
    finally:
        discard(path)
    return ok(updated, "Cover image updated successfully")


@router.get("/users/c/{username}")
def channel_profile(username: str, db: Database = Depends(get_db), user: dict = Depends(get_current_user)):
    return ok(queries.get_channel_profile(db, user, username), "Channel fetched successfully")


@router.get("/users/history")
def watch_history(db: Database = Depends(get_db), user: dict = Depends(get_current_user)):
    return ok(queries.get_watch_history(db, user), "Watch history fetched successfully")


# -------------------- Videos --------------------
@router.get("/videos")
def list_videos(
    userId: Optional[str] = Query(None),
    params: ListParams = Depends(list_params),
    db: Database = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    return ok(queries.list_videos(db, user, params, userId), "Videos fetched successfully")


@router.post("/videos")
async def publish_video(
    title: str = Form(...),
    description: str = Form(...),
    videoFile: Optional[UploadFile] = File(None),
    thumbnail: Optional[UploadFile] = File(None),
    db: Database = Depends(get_db),
    uploader: Uploader = Depends(get_uploader),
    inspector: MediaInspector = Depends(get_media_inspector),
    user: dict = Depends(get_current_user),
):
    video_path = await save_upload(videoFile)
    thumbnail_path = await save_upload(thumbnail)
    try:
        video = await run_in_threadpool(
            mutations.publish_video, db, uploader, inspector, user,
            title=title, description=description,
            video_path=video_path, thumbnail_path=thumbnail_path,
        )
    finally:
        discard(video_path, thumbnail_path)
    return ok(video, "Video published successfully", 201)


@router.get("/videos/{videoId}")
def get_video(videoId: str, db: Database = Depends(get_db), user: dict = Depends(get_current_user)):
    mutations.record_view(db, user, videoId)
    return ok(queries.get_video(db, user, videoId), "Video fetched successfully")


@router.patch("/videos/{videoId}")
async def update_video(
    videoId: str,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    thumbnail: Optional[UploadFile] = File(None),
    db: Database = Depends(get_db),
    uploader: Uploader = Depends(get_uploader),
    user: dict = Depends(get_current_user),
):
    path = await save_upload(thumbnail)
    try:
        video = await run_in_threadpool(
            mutations.update_video, db, uploader, user, videoId, title=title, description=description, thumbnail_path=path
        )
    finally:
        discard(path)
    return ok(video, "Video updated successfully")


@router.delete("/videos/{videoId}")
def delete_video(videoId: str, db: Database = Depends(get_db), user: dict = Depends(get_current_user)):
    return ok(mutations.delete_video(db, user, videoId), "Video deleted successfully")


@router.patch("/videos/toggle/publish/{videoId}")
def toggle_publish(videoId: str, db: Database = Depends(get_db), user: dict = Depends(get_current_user)):
    video = mutations.toggle_publish_status(db, user, videoId)
    return ok(video, "Video published" if video["isPublished"] else "Video unpublished")


# -------------------- Comments --------------------
@router.get("/comments/{videoId}")
def list_comments(
    videoId: str,
    params: ListParams = Depends(list_params),
    db: Database = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    return ok(queries.list_video_comments(db, user, videoId, params), "Comments fetched successfully")


@router.post("/comments/{videoId}")
def add_comment(
    videoId: str,
    payload: ContentRequest,
    db: Database = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    return ok(mutations.add_comment(db, user, videoId, payload.content), "Comment added successfully", 201)


@router.patch("/comments/c/{commentId}")
def update_comment(
    commentId: str,
    payload: ContentRequest,
    db: Database = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    return ok(mutations.update_comment(db, user, commentId, payload.content), "Comment updated successfully")


@router.delete("/comments/c/{commentId}")
def delete_comment(commentId: str, db: Database = Depends(get_db), user: dict = Depends(get_current_user)):
    return ok(mutations.delete_comment(db, user, commentId), "Comment deleted successfully")


# -------------------- Likes --------------------
def _toggle_like(db: Database, user: dict, target_type: LikeTarget, target_id: str) -> JSONResponse:
    liked, like = mutations.toggle_like(db, user, target_type, target_id)
    if liked:
        return ok({"isLiked": True, "like": like}, f"{target_type.value.capitalize()} liked", 201)
    return ok({"isLiked": False, "like": like}, f"{target_type.value.capitalize()} unliked")


@router.post("/likes/toggle/v/{videoId}")
def toggle_video_like(videoId: str, db: Database = Depends(get_db), user: dict = Depends(get_current_user)):
    return _toggle_like(db, user, LikeTarget.VIDEO, videoId)


@router.post("/likes/toggle/c/{commentId}")
def toggle_comment_like(commentId: str, db: Database = Depends(get_db), user: dict = Depends(get_current_user)):
    return _toggle_like(db, user, LikeTarget.COMMENT, commentId)


@router.post("/likes/toggle/t/{tweetId}")
def toggle_tweet_like(tweetId: str, db: Database = Depends(get_db), user: dict = Depends(get_current_user)):
    return _toggle_like(db, user, LikeTarget.TWEET, tweetId)


@router.get("/likes/videos")
def liked_videos(
    params: ListParams = Depends(list_params),
    db: Database = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    return ok(queries.list_liked_videos(db, user, params), "Liked videos fetched successfully")


# -------------------- Tweets --------------------
@router.post("/tweets")
def create_tweet(payload: ContentRequest, db: Database = Depends(get_db), user: dict = Depends(get_current_user)):
    return ok(mutations.create_tweet(db, user, payload.content), "Tweet created successfully", 201)


@router.get("/tweets/user/{userId}")
def user_tweets(
    userId: str,
    params: ListParams = Depends(list_params),
    db: Database = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    return ok(queries.list_user_tweets(db, userId, params), "Tweets fetched successfully")


@router.patch("/tweets/{tweetId}")
def update_tweet(
    tweetId: str,
    payload: ContentRequest,
    db: Database = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    return ok(mutations.update_tweet(db, user, tweetId, payload.content), "Tweet updated successfully")


@router.delete("/tweets/{tweetId}")
def delete_tweet(tweetId: str, db: Database = Depends(get_db), user: dict = Depends(get_current_user)):
    return ok(mutations.delete_tweet(db, user, tweetId), "Tweet deleted successfully")


# -------------------- Subscriptions --------------------
@router.post("/subscriptions/c/{channelId}")
def toggle_subscription(channelId: str, db: Database = Depends(get_db), user: dict = Depends(get_current_user)):
    subscribed, subscription = mutations.toggle_subscription(db, user, channelId)
    if subscribed:
        return ok({"subscribed": True, "subscription": subscription}, "Subscribed successfully", 201)
    return ok({"subscribed": False, "subscription": subscription}, "Unsubscribed successfully")


@router.get("/subscriptions/c/{channelId}")
def channel_subscribers(
    channelId: str,
    params: ListParams = Depends(list_params),
    db: Database = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    return ok(queries.list_channel_subscribers(db, channelId, params), "Subscribers fetched successfully")


@router.get("/subscriptions/u/{subscriberId}")
def subscribed_channels(
    subscriberId: str,
    params: ListParams = Depends(list_params),
    db: Database = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    return ok(queries.list_subscribed_channels(db, subscriberId, params), "Subscribed channels fetched successfully")


# -------------------- Playlists --------------------
@router.post("/playlist")
def create_playlist(payload: PlaylistRequest, db: Database = Depends(get_db), user: dict = Depends(get_current_user)):
    playlist = mutations.create_playlist(db, user, payload.name, payload.description)
    return ok(playlist, "Playlist created successfully", 201)


@router.get("/playlist/user/{userId}")
def user_playlists(
    userId: str,
    params: ListParams = Depends(list_params),
    db: Database = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    return ok(queries.list_user_playlists(db, userId, params), "Playlists fetched successfully")


@router.get("/playlist/{playlistId}")
def get_playlist(playlistId: str, db: Database = Depends(get_db), user: dict = Depends(get_current_user)):
    return ok(queries.get_playlist(db, user, playlistId), "Playlist fetched successfully")


@router.patch("/playlist/{playlistId}")
def update_playlist(
    playlistId: str,
    payload: PlaylistRequest,
    db: Database = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    playlist = mutations.update_playlist(db, user, playlistId, payload.name, payload.description)
    return ok(playlist, "Playlist updated successfully")


@router.delete("/playlist/{playlistId}")
def delete_playlist(playlistId: str, db: Database = Depends(get_db), user: dict = Depends(get_current_user)):
    return ok(mutations.delete_playlist(db, user, playlistId), "Playlist deleted successfully")


@router.patch("/playlist/add/{videoId}/{playlistId}")
def add_video_to_playlist(
    videoId: str,
    playlistId: str,
    db: Database = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    playlist = mutations.add_video_to_playlist(db, user, videoId, playlistId)
    return ok(playlist, "Video added to playlist")


@router.patch("/playlist/remove/{videoId}/{playlistId}")
def remove_video_from_playlist(
    videoId: str,
    playlistId: str,
    db: Database = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    playlist = mutations.remove_video_from_playlist(db, user, videoId, playlistId)
    return ok(playlist, "Video removed from playlist")


# -------------------- Dashboard --------------------
@router.get("/dashboard/stats")
def channel_stats(db: Database = Depends(get_db), user: dict = Depends(get_current_user)):
    return ok(queries.get_channel_stats(db, user), "Channel stats fetched successfully")


@router.get("/dashboard/videos")
def channel_videos(
    params: ListParams = Depends(list_params),
    db: Database = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    return ok(queries.list_channel_videos(db, user, params), "Channel videos fetched successfully")
