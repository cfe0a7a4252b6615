"""Generic container playlists: extended M3U and JSON channel lists.

These are fetched straight from the URL the user pasted; there is no mirror
pool, so failures surface with their own reason instead of exhaustion.
"""

import hashlib
import json
import logging
import re

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from playcast.server.sources.base import (
    DIRECT_KINDS,
    ClassifiedReference,
    CollectionResult,
    LinkKind,
    MemberReference,
    rejected,
)
from playcast.server.sources.classifier import HLS_SUFFIXES, classify, filename_title

logger = logging.getLogger(__name__)

ATTR_RE = re.compile(r'([a-z-]+)="([^"]*)"')
ENTRY_SCHEMES = ("http", "rtsp", "rtp")

# Channel lists are text; anything bigger is a stream, not a list
MAX_CONTAINER_BYTES = 8 * 1024 * 1024


class ChannelEntry(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str | None = None
    name: str | None = None
    url: str | None = None
    logo: str | None = None
    tvg_logo: str | None = Field(None, alias="tvgLogo")
    group: str | None = None
    group_title: str | None = Field(None, alias="groupTitle")


def channel_id(name: str, url: str) -> str:
    """Stable id for a channel that doesn't bring its own."""
    return hashlib.sha1(f"{name}|{url}".encode()).hexdigest()[:16]


def channel_kind(url: str) -> LinkKind:
    """Playable kind of a channel URL.

    Channels are live streams whatever their URL looks like, so a host
    named like an IPTV service or an rtsp:// URL still plays directly.
    """
    kind = classify(url).kind
    if kind in DIRECT_KINDS:
        return kind
    path = url.split("?", 1)[0].lower()
    return LinkKind.HLS_STREAM if path.endswith(HLS_SUFFIXES) else LinkKind.DIRECT_VIDEO


def parse_m3u(text: str) -> list[MemberReference]:
    """Parse an extended M3U channel list.

    Each #EXTINF line carries tvg-* attributes and the display name after
    its last comma; the next http/rtsp/rtp line is that entry's URL.
    """
    members = []
    pending: dict | None = None
    for raw in text.splitlines():
        line = raw.strip()
        if not line:
            continue
        if line.startswith("#EXTINF"):
            attrs = dict(ATTR_RE.findall(line))
            name = line.rsplit(",", 1)[1].strip() if "," in line else ""
            pending = {
                "name": name or attrs.get("tvg-name", ""),
                "logo": attrs.get("tvg-logo", ""),
                "group": attrs.get("group-title", ""),
            }
        elif line.startswith("#"):
            continue
        elif pending is not None and line.lower().startswith(ENTRY_SCHEMES):
            if pending["name"]:
                members.append(MemberReference(
                    id=channel_id(pending["name"], line),
                    url=line,
                    title=pending["name"],
                    thumbnail=pending["logo"],
                    group=pending["group"],
                    kind=channel_kind(line),
                ))
            pending = None
    return members


def parse_channel_json(data) -> list[MemberReference]:
    """Parse a JSON channel list: a bare array or {"channels": [...]}."""
    if isinstance(data, dict) and isinstance(data.get("channels"), list):
        data = data["channels"]
    if not isinstance(data, list):
        raise rejected("JSON playlist is neither a list nor has a channels list")

    members = []
    for i, item in enumerate(data):
        try:
            entry = ChannelEntry.model_validate(item)
        except ValidationError:
            raise rejected(f"malformed channel entry at index {i}")
        if not entry.url:
            continue
        name = entry.name or f"Channel {i + 1}"
        members.append(MemberReference(
            id=entry.id or channel_id(name, entry.url),
            url=entry.url,
            title=name,
            thumbnail=entry.logo or entry.tvg_logo or "",
            group=entry.group or entry.group_title or "",
            kind=channel_kind(entry.url),
        ))
    return members


def parse_container(text: str) -> list[MemberReference]:
    if "#EXTM3U" in text or "#EXTINF" in text:
        return parse_m3u(text)
    try:
        data = json.loads(text)
    except ValueError:
        raise rejected("content is neither M3U nor JSON")
    return parse_channel_json(data)


async def read_container_text(client: httpx.AsyncClient, url: str) -> str:
    """GET a channel list, refusing media streams and oversized bodies."""
    async with client.stream("GET", url, follow_redirects=True) as resp:
        if resp.status_code >= 400:
            raise rejected(f"HTTP {resp.status_code} fetching playlist")
        content_type = resp.headers.get("content-type", "").lower()
        if content_type.startswith(("video/", "audio/")) and "mpegurl" not in content_type:
            raise rejected(f"{content_type} is a media stream, not a playlist")
        body = bytearray()
        async for chunk in resp.aiter_bytes():
            body.extend(chunk)
            if len(body) > MAX_CONTAINER_BYTES:
                raise rejected(f"playlist larger than {MAX_CONTAINER_BYTES} bytes")
        encoding = resp.charset_encoding or "utf-8"
    try:
        return body.decode(encoding, errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


async def fetch_container(client: httpx.AsyncClient, ref: ClassifiedReference) -> CollectionResult:
    """GET the container URL and list its channels."""
    members = parse_container(await read_container_text(client, ref.url))
    if not members:
        raise rejected("container playlist has no playable entries")
    logger.info("Parsed %d channels from %s", len(members), ref.url)
    return CollectionResult(
        kind=LinkKind.IPTV_PLAYLIST,
        collection_id=ref.url,
        title=filename_title(ref.url, default="Playlist"),
        members=members,
        provider="container",
    )
