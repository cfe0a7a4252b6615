"""SoundCloud dialects: api-v2 directly, and the PlayCast proxy protocol."""

from __future__ import annotations

import logging
import re
import time
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field

from playcast.server.sources.base import (
    CollectionResult,
    LinkKind,
    MemberReference,
    Provider,
    ProviderDialect,
    parse_model,
    read_json,
    rejected,
)
from playcast.server.sources.formats import StreamAsset, StreamPayload
from playcast.server.sources.mirrors import MirrorEndpoint

logger = logging.getLogger(__name__)

SOUNDCLOUD_HOME = "https://soundcloud.com/"
API_TRACK_URL = "https://api.soundcloud.com/tracks/{}"

SCRIPT_SRC_RE = re.compile(r'<script[^>]+src="([^"]+)"')
CLIENT_ID_RE = re.compile(r"""client_id\s*[=:]\s*["']([0-9a-zA-Z]{32})["']""")

# Stream protocols we can play, best first. Encrypted HLS variants are absent on purpose.
PROTOCOL_PREFERENCE = ("hls", "progressive")
HYDRATE_BATCH = 50


class _Model(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class TranscodingFormat(_Model):
    protocol: str
    mime_type: str = ""


class Transcoding(_Model):
    url: str
    preset: str = ""
    snipped: bool = False
    format: TranscodingFormat


class Media(_Model):
    transcodings: list[Transcoding] = Field(default_factory=list)


class SoundCloudUser(_Model):
    username: str = ""


class SoundCloudTrack(_Model):
    id: int
    kind: str = "track"
    title: str | None = None
    permalink_url: str | None = None
    artwork_url: str | None = None
    duration: int = 0
    user: SoundCloudUser | None = None
    media: Media | None = None
    track_authorization: str | None = None

    @property
    def is_stub(self) -> bool:
        # Sets only inline their first few tracks; the rest are bare ids
        return self.title is None

    @property
    def artist(self) -> str:
        return self.user.username if self.user else ""


class SoundCloudPlaylist(_Model):
    id: int
    kind: str = "playlist"
    title: str = ""
    permalink_url: str | None = None
    tracks: list[SoundCloudTrack] = Field(default_factory=list)


class SearchPage(_Model):
    collection: list[SoundCloudTrack] = Field(default_factory=list)


class StreamLocation(_Model):
    url: str


class ProxyTrack(_Model):
    id: str
    title: str = ""
    artist: str = ""
    thumbnail: str = ""
    duration: int = 0
    permalink_url: str = Field("", alias="permalinkUrl")


class ProxySearch(_Model):
    results: list[ProxyTrack] = Field(default_factory=list)


class ProxyStream(_Model):
    stream_url: str = Field(alias="streamUrl")
    title: str = ""
    artist: str = ""
    thumbnail: str = ""
    duration: int = 0


def artwork(url: str | None) -> str:
    """Upgrade the default 100x100 artwork to 500x500."""
    return (url or "").replace("-large", "-t500x500")


def ms_to_seconds(ms: int) -> int:
    return int(ms // 1000)


def track_member(track: SoundCloudTrack) -> MemberReference:
    return MemberReference(
        id=str(track.id),
        url=track.permalink_url or API_TRACK_URL.format(track.id),
        title=track.title or "",
        artist=track.artist,
        duration_seconds=ms_to_seconds(track.duration),
        thumbnail=artwork(track.artwork_url),
    )


def numeric_track_id(extracted_id: str | None) -> str | None:
    """'tracks/123' -> '123'; permalink ids -> None."""
    if extracted_id and extracted_id.startswith("tracks/"):
        tail = extracted_id.split("/", 1)[1]
        if tail.isdigit():
            return tail
    return None


def pick_transcoding(transcodings: list[Transcoding]) -> Transcoding | None:
    usable = [t for t in transcodings if not t.snipped]
    for protocol in PROTOCOL_PREFERENCE:
        for t in usable:
            if t.format.protocol == protocol:
                return t
    return None


class ClientIdProvider:
    """Discovers the public web client_id SoundCloud embeds in its JS bundles.

    The id rotates every few weeks, so discoveries are cached for `ttl`
    seconds and dropped on a 401. When discovery fails the configured
    default is used; with no default the caller's attempt is rejected.
    """

    def __init__(self, default_client_id: str = "", ttl: int = 3600, clock=time.monotonic):
        self.default_client_id = default_client_id
        self.ttl = ttl
        self._clock = clock
        self._cached: str | None = None
        self._cached_at = 0.0

    def invalidate(self) -> None:
        self._cached = None

    async def get(self, client: httpx.AsyncClient) -> str:
        if self._cached and self._clock() - self._cached_at < self.ttl:
            return self._cached

        try:
            client_id = await self._discover(client)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning("SoundCloud client_id discovery failed: %s", e)
            client_id = None

        if client_id:
            self._cached = client_id
            self._cached_at = self._clock()
            logger.info("Discovered SoundCloud client_id %s...", client_id[:8])
            return client_id

        if self.default_client_id:
            logger.warning("Using configured default SoundCloud client_id")
            return self.default_client_id
        raise rejected("no SoundCloud client_id available")

    async def _discover(self, client: httpx.AsyncClient) -> str | None:
        resp = await client.get(SOUNDCLOUD_HOME)
        if resp.status_code != 200:
            logger.warning("SoundCloud home page returned %d", resp.status_code)
            return None
        scripts = [s for s in SCRIPT_SRC_RE.findall(resp.text) if s.startswith(("https://", "http://"))]
        # The app bundle carrying the id is near the end of the page
        for src in reversed(scripts):
            script = await client.get(src)
            if script.status_code != 200:
                continue
            m = CLIENT_ID_RE.search(script.text)
            if m:
                return m.group(1)
        logger.warning("No client_id found in %d SoundCloud scripts", len(scripts))
        return None


class SoundCloudDialect(ProviderDialect):
    """api-v2.soundcloud.com: resolve, tracks, transcodings, search."""

    name = "soundcloud"
    provider = Provider.SOUNDCLOUD
    supports_collections = True
    supports_search = True

    def __init__(self, client_ids: ClientIdProvider | None = None):
        self.client_ids = client_ids or ClientIdProvider()

    async def _get(self, client: httpx.AsyncClient, url: str, params: dict | None = None) -> Any:
        client_id = await self.client_ids.get(client)
        resp = await client.get(url, params={**(params or {}), "client_id": client_id})
        if resp.status_code == 401:
            self.client_ids.invalidate()
            raise rejected("SoundCloud rejected client_id (401)")
        return read_json(resp)

    async def _track(self, client, endpoint: MirrorEndpoint, extracted_id: str) -> SoundCloudTrack:
        track_id = numeric_track_id(extracted_id)
        if track_id:
            data = await self._get(client, endpoint.url(f"/tracks/{track_id}"))
        else:
            data = await self._get(
                client, endpoint.url("/resolve"), {"url": SOUNDCLOUD_HOME + extracted_id},
            )
        track = parse_model(SoundCloudTrack, data)
        if track.kind != "track":
            raise rejected(f"resolved a {track.kind}, expected a track")
        return track

    async def fetch_stream(self, client, endpoint, ref, attempt):
        track = await self._track(client, endpoint, ref.extracted_id or "")
        transcoding = pick_transcoding(track.media.transcodings if track.media else [])

        manifest_url = ""
        assets = []
        if transcoding is not None:
            params = {}
            if track.track_authorization:
                params["track_authorization"] = track.track_authorization
            location = parse_model(StreamLocation, await self._get(client, transcoding.url, params))
            if transcoding.format.protocol == "hls":
                manifest_url = location.url
            else:
                assets.append(StreamAsset(
                    url=location.url,
                    mime_type=transcoding.format.mime_type,
                    has_audio=True,
                    has_video=False,
                ))

        return StreamPayload(
            title=track.title or "",
            artist=track.artist,
            thumbnail=artwork(track.artwork_url),
            duration_seconds=ms_to_seconds(track.duration),
            manifest_url=manifest_url,
            assets=assets,
        )

    async def _hydrate(self, client, endpoint: MirrorEndpoint, tracks: list[SoundCloudTrack]) -> list[SoundCloudTrack]:
        stub_ids = [t.id for t in tracks if t.is_stub]
        if not stub_ids:
            return tracks
        full: dict[int, SoundCloudTrack] = {}
        for i in range(0, len(stub_ids), HYDRATE_BATCH):
            batch = stub_ids[i:i + HYDRATE_BATCH]
            data = await self._get(client, endpoint.url("/tracks"), {"ids": ",".join(map(str, batch))})
            if not isinstance(data, list):
                raise rejected("track hydration did not return a list")
            for item in data:
                track = parse_model(SoundCloudTrack, item)
                full[track.id] = track
        logger.debug("Hydrated %d/%d stub tracks", len(full), len(stub_ids))
        return [full.get(t.id, t) if t.is_stub else t for t in tracks]

    async def fetch_collection(self, client, endpoint, ref):
        data = await self._get(
            client, endpoint.url("/resolve"), {"url": SOUNDCLOUD_HOME + (ref.collection_id or "")},
        )
        playlist = parse_model(SoundCloudPlaylist, data)
        tracks = await self._hydrate(client, endpoint, playlist.tracks)
        if not tracks:
            raise rejected(f"set {ref.collection_id} has no tracks")
        return CollectionResult(
            kind=LinkKind.SOUNDCLOUD_PLAYLIST,
            collection_id=ref.collection_id,
            title=playlist.title,
            members=[track_member(t) for t in tracks],
            provider=self.name,
        )

    async def search(self, client, endpoint, query, limit):
        data = await self._get(client, endpoint.url("/search/tracks"), {"q": query, "limit": limit})
        page = parse_model(SearchPage, data)
        return [track_member(t) for t in page.collection[:limit]]


class SoundCloudProxyDialect(ProviderDialect):
    """A PlayCast SoundCloud proxy: GET /search?q=&limit= and GET /stream?id=.

    Runs on a host SoundCloud does not block and does the client_id dance
    itself. It has no collection endpoint.
    """

    name = "soundcloud-proxy"
    provider = Provider.SOUNDCLOUD
    supports_collections = False
    supports_search = True

    async def _get(self, client: httpx.AsyncClient, endpoint: MirrorEndpoint, path: str, params: dict) -> Any:
        resp = await client.get(endpoint.url(path), params=params)
        data = read_json(resp)
        if isinstance(data, dict) and data.get("error"):
            raise rejected(f"proxy error: {data['error']}")
        return data

    async def _search(self, client, endpoint, query: str, limit: int) -> list[ProxyTrack]:
        data = await self._get(client, endpoint, "/search", {"q": query, "limit": limit})
        return parse_model(ProxySearch, data).results

    async def _find_track_id(self, client, endpoint, permalink: str) -> str:
        slug = permalink.rsplit("/", 1)[-1]
        wanted = permalink.lower().strip("/")
        for track in await self._search(client, endpoint, slug.replace("-", " "), 20):
            if track.permalink_url.lower().rstrip("/").endswith(wanted):
                return track.id
        raise rejected(f"proxy search did not find {permalink}")

    async def fetch_stream(self, client, endpoint, ref, attempt):
        track_id = numeric_track_id(ref.extracted_id)
        if track_id is None:
            track_id = await self._find_track_id(client, endpoint, ref.extracted_id or "")

        stream = parse_model(ProxyStream, await self._get(client, endpoint, "/stream", {"id": track_id}))
        is_manifest = ".m3u8" in stream.stream_url.split("?", 1)[0].lower()
        return StreamPayload(
            title=stream.title,
            artist=stream.artist,
            thumbnail=stream.thumbnail,
            duration_seconds=ms_to_seconds(stream.duration),
            manifest_url=stream.stream_url if is_manifest else "",
            assets=[] if is_manifest else [
                StreamAsset(url=stream.stream_url, has_audio=True, has_video=False),
            ],
        )

    async def search(self, client, endpoint, query, limit):
        return [
            MemberReference(
                id=t.id,
                url=t.permalink_url or API_TRACK_URL.format(t.id),
                title=t.title,
                artist=t.artist,
                duration_seconds=ms_to_seconds(t.duration),
                thumbnail=t.thumbnail,
            )
            for t in (await self._search(client, endpoint, query, limit))[:limit]
        ]
