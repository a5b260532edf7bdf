"""MongoDB connection and document helpers.

The client is created once per process (see ``main.create_app``) and the
database handle lives on ``app.state.db``; routes receive it through ``get_db``.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Request
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.database import Database

from responses import InvalidIdentifier
from settings import Settings

logger = logging.getLogger(__name__)


def connect(settings: Settings) -> MongoClient:
    client = MongoClient(settings.mongodb_uri)
    logger.info("MongoDB client created for database %r", settings.db_name)
    return client


def ensure_indexes(db: Database) -> None:
    """Create the unique and lookup indexes the collections rely on."""

    db["user"].create_index("username", unique=True)
    db["user"].create_index("email", unique=True)
    db["user"].create_index("fullname", unique=True)
    db["video"].create_index("owner")
    db["comment"].create_index("video")
    db["tweet"].create_index("owner")
    db["playlist"].create_index("owner")
    db["like"].create_index(
        [("likedBy", ASCENDING), ("targetType", ASCENDING), ("target", ASCENDING)],
        unique=True,
    )
    db["subscription"].create_index([("subscriber", ASCENDING), ("channel", ASCENDING)], unique=True)
    logger.info("Indexes ensured on %s", db.name)


def get_db(request: Request) -> Database:
    return request.app.state.db


def utcnow() -> datetime:
    # Mongo stores milliseconds only
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def objid(id_str: Any, label: str = "id") -> ObjectId:
    if isinstance(id_str, ObjectId):
        return id_str
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise InvalidIdentifier(f"Invalid {label}")


def create_document(db: Database, collection_name: str, data: Union[BaseModel, Mapping[str, Any]]) -> dict:
    """Insert a document stamped with createdAt/updatedAt and return it with its _id."""

    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    now = utcnow()
    doc["createdAt"] = now
    doc["updatedAt"] = now
    doc["_id"] = db[collection_name].insert_one(doc).inserted_id
    return doc


def update_document(
    db: Database,
    collection_name: str,
    filter_dict: Mapping[str, Any],
    changes: Mapping[str, Any],
    projection: Optional[Mapping[str, Any]] = None,
) -> Optional[dict]:
    """Apply ``$set`` changes and return the post-write document (None if nothing matched)."""

    return db[collection_name].find_one_and_update(
        dict(filter_dict),
        {"$set": {**changes, "updatedAt": utcnow()}},
        projection=projection,
        return_document=ReturnDocument.AFTER,
    )


def to_str_id(doc):
    if not doc:
        return doc
    if isinstance(doc, list):
        return [to_str_id(item) for item in doc]
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, datetime):
        return doc.isoformat()
    if not isinstance(doc, Mapping):
        return doc
    d = {}
    for k, v in doc.items():
        d["id" if k == "_id" else k] = to_str_id(v)
    return d
