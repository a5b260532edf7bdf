"""
Database Schemas for the Video Sharing backend

Each Pydantic model maps to a MongoDB collection. The collection name is the lowercase of the class name.
References to other documents are stored as ObjectIds; createdAt/updatedAt are stamped by
database.create_document.

Collections:
- User -> user
- Video -> video
- Comment -> comment
- Like -> like
- Tweet -> tweet
- Playlist -> playlist
- Subscription -> subscription
"""

from enum import Enum
from typing import List, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field


class DocumentModel(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)


class User(DocumentModel):
    username: str = Field(..., min_length=1, description="Stored lowercase")
    email: EmailStr
    fullname: str = Field(..., min_length=1)
    avatar: str = Field(..., description="Avatar URL")
    coverImage: str = ""
    watchHistory: List[ObjectId] = Field(default_factory=list)
    password: str = Field(..., description="Bcrypt hash, never plaintext")
    refreshToken: Optional[str] = None


class Video(DocumentModel):
    videoFile: str
    thumbnail: str
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    duration: float = Field(..., ge=0, description="Seconds, read from the uploaded file")
    views: int = 0
    isPublished: bool = True
    owner: ObjectId


class Comment(DocumentModel):
    content: str = Field(..., min_length=1)
    video: ObjectId
    owner: ObjectId


class LikeTarget(str, Enum):
    VIDEO = "video"
    COMMENT = "comment"
    TWEET = "tweet"


class Like(DocumentModel):
    """A like points at exactly one target: targetType names the collection of target."""

    likedBy: ObjectId
    targetType: LikeTarget
    target: ObjectId

    model_config = ConfigDict(arbitrary_types_allowed=True, use_enum_values=True)


class Tweet(DocumentModel):
    content: str = Field(..., min_length=1)
    owner: ObjectId


class Playlist(DocumentModel):
    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    videos: List[ObjectId] = Field(default_factory=list)
    owner: ObjectId


class Subscription(DocumentModel):
    subscriber: ObjectId = Field(..., description="The user who subscribes")
    channel: ObjectId = Field(..., description="The user being subscribed to")


# -------------------- Request bodies --------------------

class LoginRequest(BaseModel):
    username: Optional[str] = None
    email: Optional[EmailStr] = None
    password: str


class RefreshTokenRequest(BaseModel):
    refreshToken: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    oldPassword: str
    newPassword: str


class AccountUpdateRequest(BaseModel):
    fullname: str
    email: EmailStr


class ContentRequest(BaseModel):
    content: str


class PlaylistRequest(BaseModel):
    name: str
    description: str
