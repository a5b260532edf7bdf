"""Aggregation pipelines expressed as data.

Every list read is a :class:`ListPipeline`: a filter stage, zero or more joins,
a projection, a sort and a page window. Each stage builder returns plain
dictionaries so pipelines can be inspected without a database, and
``ListPipeline.stages()`` flattens them in that fixed order for
``Collection.aggregate``.

Joins never produce arrays: ``$lookup`` is always followed by an ``$unwind``
so the joined reference becomes a single sub-document, or is left absent when
nothing matched.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from bson import ObjectId

from responses import ValidationFailed

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100
SORT_DIRECTIONS = {"asc": 1, "desc": -1}

# Only profile fields ever leave the user collection through a join.
OWNER_FIELDS = ("_id", "username", "fullname", "avatar")
PUBLIC_USER_PROJECTION = {"password": 0, "refreshToken": 0}

VIDEO_FIELDS = (
    "videoFile",
    "thumbnail",
    "title",
    "description",
    "duration",
    "views",
    "isPublished",
    "createdAt",
    "updatedAt",
)
VIDEO_SORT_FIELDS = ("createdAt", "updatedAt", "views", "duration", "title")
COMMENT_FIELDS = ("content", "createdAt", "updatedAt")
TWEET_FIELDS = ("content", "createdAt", "updatedAt")
PLAYLIST_FIELDS = ("name", "description", "createdAt", "updatedAt")


@dataclass(frozen=True)
class ListParams:
    """Validated paging, sorting and search input for a list read."""

    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT
    sort_by: str = "createdAt"
    sort_type: str = "desc"
    query: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.page, int) or self.page < 1:
            raise ValidationFailed("page must be a positive integer")
        if not isinstance(self.limit, int) or self.limit < 1:
            raise ValidationFailed("limit must be a positive integer")
        if self.limit > MAX_LIMIT:
            raise ValidationFailed(f"limit must not exceed {MAX_LIMIT}")
        if self.sort_type not in SORT_DIRECTIONS:
            raise ValidationFailed("sortType must be 'asc' or 'desc'")

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def direction(self) -> int:
        return SORT_DIRECTIONS[self.sort_type]

    def require_sortable(self, allowed: Iterable[str]) -> "ListParams":
        allowed = tuple(allowed)
        if self.sort_by not in allowed:
            raise ValidationFailed(f"sortBy must be one of: {', '.join(allowed)}")
        return self


# -------------------- Stage builders --------------------

def visible_to(viewer_id: ObjectId, prefix: str = "") -> Dict[str, Any]:
    """Condition matching videos that are published or owned by the viewer."""
    return {"$or": [{f"{prefix}isPublished": True}, {f"{prefix}owner": viewer_id}]}


def match_stage(
    scope: Optional[Mapping[str, Any]] = None,
    *,
    query: Optional[str] = None,
    search_field: str = "title",
) -> Dict[str, Any]:
    """Filter on the scoping fields plus a case-insensitive substring search."""

    conditions: Dict[str, Any] = dict(scope or {})
    if query and query.strip():
        conditions[search_field] = {"$regex": re.escape(query.strip()), "$options": "i"}
    return {"$match": conditions}


def join_stages(
    from_collection: str,
    local_field: str,
    as_field: Optional[str] = None,
    *,
    keep_unmatched: bool = True,
) -> List[Dict[str, Any]]:
    """Join one reference as a single embedded object.

    With ``keep_unmatched`` the source document survives a missing reference
    and the joined field is simply absent; otherwise it is dropped.
    """

    as_field = as_field or local_field
    return [
        {
            "$lookup": {
                "from": from_collection,
                "localField": local_field,
                "foreignField": "_id",
                "as": as_field,
            }
        },
        {"$unwind": {"path": f"${as_field}", "preserveNullAndEmptyArrays": keep_unmatched}},
    ]


def project_stage(
    fields: Sequence[str],
    joined: Optional[Mapping[str, Sequence[str]]] = None,
    computed: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """Whitelist projection; ``joined`` maps an embedded field to its allowed sub-fields."""

    spec: Dict[str, Any] = {name: 1 for name in fields}
    for prefix, sub_fields in (joined or {}).items():
        for sub_field in sub_fields:
            spec[f"{prefix}.{sub_field}"] = 1
    spec.update(computed or {})
    return {"$project": spec}


def sort_stage(sort_by: str, direction: int) -> Dict[str, Any]:
    """Sort by one field; ``_id`` breaks ties so page boundaries are stable."""

    spec = {sort_by: direction}
    if sort_by != "_id":
        spec["_id"] = direction
    return {"$sort": spec}


def paginate_stages(page: int, limit: int) -> List[Dict[str, Any]]:
    return [{"$skip": (page - 1) * limit}, {"$limit": limit}]


@dataclass
class ListPipeline:
    filter: Dict[str, Any]
    project: Dict[str, Any]
    sort: Dict[str, Any]
    paginate: List[Dict[str, Any]]
    joins: List[Dict[str, Any]] = field(default_factory=list)

    def stages(self) -> List[Dict[str, Any]]:
        return [self.filter, *self.joins, self.project, self.sort, *self.paginate]


def _window(params: ListParams) -> Dict[str, Any]:
    return {
        "sort": sort_stage(params.sort_by, params.direction),
        "paginate": paginate_stages(params.page, params.limit),
    }


# -------------------- Named pipelines --------------------

def videos_pipeline(
    params: ListParams,
    *,
    owner_id: Optional[ObjectId] = None,
    published_only: bool = True,
) -> ListPipeline:
    params.require_sortable(VIDEO_SORT_FIELDS)
    scope: Dict[str, Any] = {}
    if owner_id is not None:
        scope["owner"] = owner_id
    if published_only:
        scope["isPublished"] = True
    return ListPipeline(
        filter=match_stage(scope, query=params.query, search_field="title"),
        joins=join_stages("user", "owner"),
        project=project_stage(VIDEO_FIELDS, joined={"owner": OWNER_FIELDS}),
        **_window(params),
    )


def video_detail_pipeline(video_id: ObjectId, viewer_id: ObjectId) -> List[Dict[str, Any]]:
    """A single video with its owner, hidden from everyone but the owner while unpublished."""

    visible = {"_id": video_id, **visible_to(viewer_id)}
    return [
        match_stage(visible),
        *join_stages("user", "owner"),
        project_stage(VIDEO_FIELDS, joined={"owner": OWNER_FIELDS}),
    ]


def comments_pipeline(video_id: ObjectId, params: ListParams) -> ListPipeline:
    params.require_sortable(("createdAt", "updatedAt"))
    return ListPipeline(
        filter=match_stage({"video": video_id}, query=params.query, search_field="content"),
        joins=[*join_stages("video", "video"), *join_stages("user", "owner")],
        project=project_stage(
            COMMENT_FIELDS,
            joined={"owner": OWNER_FIELDS, "video": ("_id", "title", "thumbnail")},
        ),
        **_window(params),
    )


def liked_videos_pipeline(user_id: ObjectId, params: ListParams) -> ListPipeline:
    params.require_sortable(("createdAt",))
    return ListPipeline(
        filter=match_stage({"likedBy": user_id, "targetType": "video"}),
        joins=[
            *join_stages("video", "target", "video", keep_unmatched=False),
            match_stage(visible_to(user_id, "video.")),
            *join_stages("user", "video.owner", "videoOwner"),
        ],
        project=project_stage(
            ("createdAt",),
            joined={"video": ("_id", *VIDEO_FIELDS), "videoOwner": OWNER_FIELDS},
        ),
        **_window(params),
    )


def tweets_pipeline(owner_id: ObjectId, params: ListParams) -> ListPipeline:
    params.require_sortable(("createdAt", "updatedAt"))
    return ListPipeline(
        filter=match_stage({"owner": owner_id}, query=params.query, search_field="content"),
        joins=join_stages("user", "owner"),
        project=project_stage(TWEET_FIELDS, joined={"owner": OWNER_FIELDS}),
        **_window(params),
    )


def playlists_pipeline(owner_id: ObjectId, params: ListParams) -> ListPipeline:
    params.require_sortable(("createdAt", "updatedAt", "name"))
    return ListPipeline(
        filter=match_stage({"owner": owner_id}, query=params.query, search_field="name"),
        project=project_stage(
            (*PLAYLIST_FIELDS, "owner"),
            computed={"totalVideos": {"$size": "$videos"}},
        ),
        **_window(params),
    )


def subscribers_pipeline(channel_id: ObjectId, params: ListParams) -> ListPipeline:
    """Profiles of the users subscribed to ``channel_id``."""
    params.require_sortable(("createdAt",))
    return ListPipeline(
        filter=match_stage({"channel": channel_id}),
        joins=join_stages("user", "subscriber", keep_unmatched=False),
        project=project_stage(("createdAt",), joined={"subscriber": OWNER_FIELDS}),
        **_window(params),
    )


def subscribed_channels_pipeline(subscriber_id: ObjectId, params: ListParams) -> ListPipeline:
    """Profiles of the channels ``subscriber_id`` follows."""
    params.require_sortable(("createdAt",))
    return ListPipeline(
        filter=match_stage({"subscriber": subscriber_id}),
        joins=join_stages("user", "channel", keep_unmatched=False),
        project=project_stage(("createdAt",), joined={"channel": OWNER_FIELDS}),
        **_window(params),
    )


def channel_videos_pipeline(owner_id: ObjectId, params: ListParams) -> ListPipeline:
    params.require_sortable(VIDEO_SORT_FIELDS)
    return ListPipeline(
        filter=match_stage({"owner": owner_id}, query=params.query, search_field="title"),
        project=project_stage(VIDEO_FIELDS),
        **_window(params),
    )


def videos_by_ids_pipeline(video_ids: Sequence[ObjectId], *, viewer_id: ObjectId) -> List[Dict[str, Any]]:
    """Videos among ``video_ids`` visible to the viewer, with owners joined; order is not preserved."""

    scope = {"_id": {"$in": list(video_ids)}, **visible_to(viewer_id)}
    return [
        match_stage(scope),
        *join_stages("user", "owner"),
        project_stage(VIDEO_FIELDS, joined={"owner": OWNER_FIELDS}),
    ]


def total_views_pipeline(owner_id: ObjectId) -> List[Dict[str, Any]]:
    return [
        match_stage({"owner": owner_id}),
        {"$group": {"_id": None, "totalViews": {"$sum": "$views"}}},
    ]
