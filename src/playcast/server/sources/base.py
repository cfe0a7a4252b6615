"""Shared records, errors, and the provider dialect base class."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import BaseModel, ValidationError

if TYPE_CHECKING:
    from playcast.server.sources.formats import StreamPayload
    from playcast.server.sources.mirrors import MirrorEndpoint

logger = logging.getLogger(__name__)


class LinkKind(str, Enum):
    """What a pasted string points at."""

    YOUTUBE = "youtube"
    YOUTUBE_PLAYLIST = "youtube_playlist"
    SOUNDCLOUD = "soundcloud"
    SOUNDCLOUD_PLAYLIST = "soundcloud_playlist"
    DIRECT_VIDEO = "direct_video"
    DIRECT_AUDIO = "direct_audio"
    HLS_STREAM = "hls_stream"
    IPTV_PLAYLIST = "iptv_playlist"
    WEB_RESOURCE = "web_resource"
    UNKNOWN = "unknown"


class Provider(str, Enum):
    """Logical upstream content sources."""

    YOUTUBE = "youtube"
    SOUNDCLOUD = "soundcloud"


# Kinds answered by an upstream provider, and the provider that answers them
PROVIDER_FOR_KIND = {
    LinkKind.YOUTUBE: Provider.YOUTUBE,
    LinkKind.YOUTUBE_PLAYLIST: Provider.YOUTUBE,
    LinkKind.SOUNDCLOUD: Provider.SOUNDCLOUD,
    LinkKind.SOUNDCLOUD_PLAYLIST: Provider.SOUNDCLOUD,
}

SINGLE_KINDS = frozenset({LinkKind.YOUTUBE, LinkKind.SOUNDCLOUD})
COLLECTION_KINDS = frozenset({
    LinkKind.YOUTUBE_PLAYLIST, LinkKind.SOUNDCLOUD_PLAYLIST, LinkKind.IPTV_PLAYLIST,
})
DIRECT_KINDS = frozenset({LinkKind.DIRECT_VIDEO, LinkKind.DIRECT_AUDIO, LinkKind.HLS_STREAM})


class ErrorReason(str, Enum):
    TIMEOUT = "timeout"
    UPSTREAM_REJECTED = "upstream_rejected"
    ALL_PROVIDERS_EXHAUSTED = "all_providers_exhausted"
    UNRECOGNIZED_INPUT = "unrecognized_input"
    NOT_FOUND = "not_found"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class ClassifiedReference:
    """Result of classifying a raw input string.

    raw_url is the input exactly as given; url is the trimmed form used
    for matching and network calls.
    """

    kind: LinkKind
    raw_url: str
    extracted_id: str | None = None
    collection_id: str | None = None
    platform_name: str | None = None
    is_directly_playable: bool = False
    requires_resolution: bool = False

    @property
    def url(self) -> str:
        return self.raw_url.strip()

    @property
    def provider(self) -> Provider | None:
        return PROVIDER_FOR_KIND.get(self.kind)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "raw_url": self.raw_url,
            "extracted_id": self.extracted_id,
            "collection_id": self.collection_id,
            "platform_name": self.platform_name,
            "is_directly_playable": self.is_directly_playable,
            "requires_resolution": self.requires_resolution,
        }


@dataclass(frozen=True)
class ResolutionResult:
    """A concrete playable stream. Never cached: upstream URLs expire."""

    stream_url: str
    title: str = ""
    artist: str = ""
    thumbnail: str = ""
    duration_seconds: int = 0
    kind: LinkKind = LinkKind.UNKNOWN
    provider: str = ""

    def to_dict(self) -> dict:
        return {
            "stream_url": self.stream_url,
            "title": self.title,
            "artist": self.artist,
            "thumbnail": self.thumbnail,
            "duration_seconds": self.duration_seconds,
            "kind": self.kind.value,
            "provider": self.provider,
        }


@dataclass(frozen=True)
class MemberReference:
    """An unresolved collection member or search hit."""

    id: str
    url: str
    title: str = ""
    artist: str = ""
    duration_seconds: int = 0
    thumbnail: str = ""
    group: str = ""
    # Set when the listing already knows the member is directly playable
    kind: LinkKind | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "artist": self.artist,
            "duration_seconds": self.duration_seconds,
            "thumbnail": self.thumbnail,
            "group": self.group,
            "kind": self.kind.value if self.kind else None,
        }


@dataclass(frozen=True)
class CollectionResult:
    kind: LinkKind
    collection_id: str
    title: str = ""
    members: list[MemberReference] = field(default_factory=list)
    provider: str = ""

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "collection_id": self.collection_id,
            "title": self.title,
            "provider": self.provider,
            "members": [m.to_dict() for m in self.members],
        }


@dataclass(frozen=True)
class AttemptFailure:
    """One failed round trip against one mirror."""

    dialect: str
    endpoint: str
    reason: ErrorReason
    detail: str = ""


class ResolutionError(Exception):
    """Resolution failed.

    Raised inside the resolver for per-attempt failures; returned (not raised)
    by the public resolver and facade coroutines for terminal failures.
    """

    def __init__(
        self,
        reason: ErrorReason,
        detail: str = "",
        reference: Any = None,
        failures: list[AttemptFailure] | None = None,
    ):
        super().__init__(detail or reason.value)
        self.reason = reason
        self.detail = detail
        self.reference = reference
        self.failures = failures or []

    def to_dict(self) -> dict:
        ref = self.reference
        return {
            "error": str(self),
            "reason": self.reason.value,
            "reference": ref.to_dict() if hasattr(ref, "to_dict") else ref,
            "failures": [
                {"dialect": f.dialect, "endpoint": f.endpoint, "reason": f.reason.value, "detail": f.detail}
                for f in self.failures
            ],
        }


def rejected(detail: str) -> ResolutionError:
    return ResolutionError(ErrorReason.UPSTREAM_REJECTED, detail)


def read_json(resp: httpx.Response) -> Any:
    """Check status and decode a JSON body, failing closed."""
    if resp.status_code >= 400:
        raise rejected(f"HTTP {resp.status_code} from {resp.request.url.host}")
    try:
        return resp.json()
    except ValueError as e:
        raise rejected(f"malformed JSON from {resp.request.url.host}: {e}")


def parse_model(model: type[BaseModel], data: Any):
    """Validate upstream JSON against a strict intermediate schema."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise rejected(f"unexpected {model.__name__} payload ({e.error_count()} errors)")


class ProviderDialect:
    """Base class for one upstream API dialect.

    A dialect knows how to talk to a single mirror endpoint. Retries,
    rotation, and fallback between dialects belong to ProviderResolver.
    """

    name: str = ""
    provider: Provider = Provider.YOUTUBE
    supports_collections: bool = False
    supports_search: bool = False

    async def fetch_stream(
        self,
        client: httpx.AsyncClient,
        endpoint: MirrorEndpoint,
        ref: ClassifiedReference,
        attempt: int,
    ) -> StreamPayload:
        """Fetch stream candidates and metadata for a single-item reference."""
        raise NotImplementedError

    async def fetch_collection(
        self,
        client: httpx.AsyncClient,
        endpoint: MirrorEndpoint,
        ref: ClassifiedReference,
    ) -> CollectionResult:
        """List the members of a collection reference."""
        raise NotImplementedError

    async def search(
        self,
        client: httpx.AsyncClient,
        endpoint: MirrorEndpoint,
        query: str,
        limit: int,
    ) -> list[MemberReference]:
        """Free-text search returning unresolved members."""
        raise NotImplementedError
