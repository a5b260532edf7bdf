"""Password hashing, token issuing/verification and the current-user dependency."""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, Request
from passlib.context import CryptContext
from pymongo.database import Database

from database import get_db, objid
from pipelines import PUBLIC_USER_PROJECTION
from responses import InvalidIdentifier, Unauthorized
from settings import Settings, get_app_settings

ALGORITHM = "HS256"

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    return pwd_context.verify(password, hashed)


def create_access_token(user: dict, settings: Settings) -> str:
    payload = {
        "_id": str(user["_id"]),
        "email": user["email"],
        "username": user["username"],
        "fullname": user["fullname"],
        "exp": datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expiry_minutes),
    }
    return jwt.encode(payload, settings.access_token_secret.get_secret_value(), algorithm=ALGORITHM)


def create_refresh_token(user: dict, settings: Settings) -> str:
    payload = {
        "_id": str(user["_id"]),
        "exp": datetime.now(timezone.utc) + timedelta(days=settings.refresh_token_expiry_days),
    }
    return jwt.encode(payload, settings.refresh_token_secret.get_secret_value(), algorithm=ALGORITHM)


def decode_token(token: str, secret: str) -> dict:
    """Verify signature and expiry; any failure is reported as Unauthorized."""

    try:
        return jwt.decode(token, secret, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token has expired")
    except jwt.InvalidTokenError:
        raise Unauthorized("Invalid token")


def _token_from_request(request: Request) -> Optional[str]:
    token = request.cookies.get("accessToken")
    if token:
        return token
    header = request.headers.get("Authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return None


def get_current_user(
    request: Request,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> dict:
    token = _token_from_request(request)
    if not token:
        raise Unauthorized("User needs to be logged in")
    payload = decode_token(token, settings.access_token_secret.get_secret_value())
    try:
        user_id = objid(payload.get("_id"), "user id")
    except InvalidIdentifier:
        raise Unauthorized("Invalid access token")
    user = db["user"].find_one({"_id": user_id}, PUBLIC_USER_PROJECTION)
    if not user:
        raise Unauthorized("Invalid access token")
    return user
