"""
Typed views of the site's JSON payloads.

Only the fields the crawl needs are read. Anything structurally wrong raises a
PayloadError subclass instead of leaking KeyError/TypeError into the worker pool.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from igcrawler.errors import InvalidJsonError


class MediaType(str, Enum):
    """__typename of a timeline media node."""

    IMAGE = "GraphImage"
    SIDECAR = "GraphSidecar"  # gallery post, children need a second fetch
    VIDEO = "GraphVideo"


@dataclass(frozen=True)
class Resource:
    """One photo or video file discovered in the feed."""

    url: str
    timestamp: int
    is_video: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "timestamp": self.timestamp, "is_video": self.is_video}


@dataclass(frozen=True)
class PageItem:
    """Pagination work item: fetch the page that starts at cursor."""

    cursor: str


@dataclass(frozen=True)
class MediaNode:
    typename: str
    is_video: bool
    shortcode: str
    timestamp: int
    display_url: str


@dataclass
class MediaEdge:
    """One page of a user's timeline media."""

    nodes: list[MediaNode] = field(default_factory=list)
    has_next_page: bool = False
    end_cursor: str = ""


@dataclass
class ProfileView:
    user_id: str
    is_private: bool
    profile_pic_url: str
    media: MediaEdge
    rhx_gis: str


def loads(raw: str | bytes, what: str) -> Any:
    """json.loads that reports failures as InvalidJsonError."""
    try:
        return json.loads(raw)
    except (ValueError, TypeError) as e:
        raise InvalidJsonError(what, raw) from e


def _dig(data: Any, what: str, *path: str | int) -> dict[str, Any]:
    """Walk path into data; the object at the end must be a JSON object."""
    cur = data
    try:
        for key in path:
            cur = cur[key]
    except (KeyError, IndexError, TypeError) as e:
        raise InvalidJsonError(what, json.dumps(data)) from e
    if not isinstance(cur, dict):
        raise InvalidJsonError(what, json.dumps(data))
    return cur


def _timestamp(node: dict[str, Any]) -> int:
    try:
        return int(node.get("taken_at_timestamp") or 0)
    except (ValueError, TypeError) as e:
        raise InvalidJsonError("media node", json.dumps(node)) from e


def parse_media_edge(data: dict[str, Any] | None) -> MediaEdge:
    """Decode an edge_owner_to_timeline_media object. Missing pieces read as empty."""
    data = data or {}
    nodes: list[MediaNode] = []
    for edge in data.get("edges") or []:
        node = (edge or {}).get("node") or {}
        nodes.append(
            MediaNode(
                typename=node.get("__typename", ""),
                is_video=bool(node.get("is_video", False)),
                shortcode=node.get("shortcode", ""),
                timestamp=_timestamp(node),
                display_url=node.get("display_url", ""),
            )
        )
    page_info = data.get("page_info") or {}
    return MediaEdge(
        nodes=nodes,
        has_next_page=bool(page_info.get("has_next_page", False)),
        end_cursor=page_info.get("end_cursor") or "",
    )


def parse_profile(raw: str | bytes) -> ProfileView:
    """Decode the profile page's shared data."""
    data = loads(raw, "main page")
    user = _dig(data, "main page", "entry_data", "ProfilePage", 0, "graphql", "user")
    return ProfileView(
        user_id=str(user.get("id") or ""),
        is_private=bool(user.get("is_private", False)),
        profile_pic_url=user.get("profile_pic_url_hd") or "",
        media=parse_media_edge(user.get("edge_owner_to_timeline_media")),
        rhx_gis=data.get("rhx_gis") or "",
    )


def parse_query_page(raw: str | bytes) -> MediaEdge:
    """Decode a graphql query response."""
    data = loads(raw, "graphql")
    user = _dig(data, "graphql", "data", "user")
    return parse_media_edge(user.get("edge_owner_to_timeline_media"))


def _shortcode_media(raw: str | bytes, what: str) -> dict[str, Any]:
    data = loads(raw, what)
    return _dig(data, what, "entry_data", "PostPage", 0, "graphql", "shortcode_media")


def parse_gallery_children(raw: str | bytes, timestamp: int) -> list[Resource]:
    """One Resource per child of a gallery post, stamped with the post's timestamp."""
    media = _shortcode_media(raw, "gallery page")
    edges = (media.get("edge_sidecar_to_children") or {}).get("edges") or []
    out: list[Resource] = []
    for edge in edges:
        node = (edge or {}).get("node") or {}
        if node.get("is_video"):
            out.append(Resource(node.get("video_url", ""), timestamp, True))
        else:
            out.append(Resource(node.get("display_url", ""), timestamp, False))
    return out


def parse_video_url(raw: str | bytes) -> str:
    media = _shortcode_media(raw, "video page")
    return media.get("video_url") or ""
