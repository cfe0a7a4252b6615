"""YouTube dialects: the Innertube API and Invidious mirrors.

Innertube is what YouTube's own apps speak; Invidious is a structurally
different JSON API run by third-party mirrors serving the same videos.
"""

from __future__ import annotations

import logging
from typing import Any, Iterator
from urllib.parse import urljoin

import httpx
from pydantic import BaseModel, ConfigDict, Field

from playcast.server.sources.base import (
    ClassifiedReference,
    CollectionResult,
    LinkKind,
    MemberReference,
    Provider,
    ProviderDialect,
    parse_model,
    read_json,
    rejected,
)
from playcast.server.sources.formats import StreamAsset, StreamPayload, parse_height
from playcast.server.sources.mirrors import MirrorEndpoint

logger = logging.getLogger(__name__)

WATCH_URL = "https://www.youtube.com/watch?v={}"
THUMBNAIL_URL = "https://i.ytimg.com/vi/{}/hqdefault.jpg"

# Innertube client profiles, tried in this order across attempts
INNERTUBE_CLIENTS = {
    "android": {
        "clientName": "ANDROID",
        "clientVersion": "20.10.38",
        "androidSdkVersion": 30,
        "osName": "Android",
        "osVersion": "11",
        "userAgent": "com.google.android.youtube/20.10.38 (Linux; U; Android 11) gzip",
    },
    "ios": {
        "clientName": "IOS",
        "clientVersion": "20.10.4",
        "deviceMake": "Apple",
        "deviceModel": "iPhone16,2",
        "osName": "iPhone",
        "osVersion": "18.3.2.22D82",
        "userAgent": "com.google.ios.youtube/20.10.4 (iPhone16,2; U; CPU iOS 18_3_2 like Mac OS X;)",
    },
    "tv": {
        "clientName": "TVHTML5",
        "clientVersion": "7.20250923.13.00",
        "userAgent": "Mozilla/5.0 (ChromiumStylePlatform) Cobalt/Version",
    },
    "web": {
        "clientName": "WEB",
        "clientVersion": "2.20250925.01.00",
    },
}
CLIENT_ORDER = ["android", "ios", "tv", "web"]

# Search filter: videos only
SEARCH_PARAMS = "EgIQAfABAQ=="


class _Model(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# --- Innertube payloads ---

class InnertubeFormat(_Model):
    url: str | None = None
    signature_cipher: str | None = Field(None, alias="signatureCipher")
    mime_type: str = Field("", alias="mimeType")
    bitrate: int = 0
    height: int | None = None
    quality_label: str | None = Field(None, alias="qualityLabel")


class StreamingData(_Model):
    formats: list[InnertubeFormat] = Field(default_factory=list)
    adaptive_formats: list[InnertubeFormat] = Field(default_factory=list, alias="adaptiveFormats")
    hls_manifest_url: str | None = Field(None, alias="hlsManifestUrl")


class PlayabilityStatus(_Model):
    status: str
    reason: str | None = None


class Thumbnail(_Model):
    url: str
    width: int = 0
    height: int = 0


class ThumbnailList(_Model):
    thumbnails: list[Thumbnail] = Field(default_factory=list)


class VideoDetails(_Model):
    video_id: str = Field("", alias="videoId")
    title: str = ""
    author: str = ""
    length_seconds: int = Field(0, alias="lengthSeconds")
    thumbnail: ThumbnailList | None = None


class PlayerResponse(_Model):
    playability_status: PlayabilityStatus = Field(alias="playabilityStatus")
    streaming_data: StreamingData | None = Field(None, alias="streamingData")
    video_details: VideoDetails | None = Field(None, alias="videoDetails")


class TextRun(_Model):
    text: str = ""


class Text(_Model):
    simple_text: str | None = Field(None, alias="simpleText")
    runs: list[TextRun] = Field(default_factory=list)

    def __str__(self) -> str:
        if self.simple_text is not None:
            return self.simple_text
        return "".join(r.text for r in self.runs)


class VideoRenderer(_Model):
    """Shared shape of videoRenderer (search) and playlistVideoRenderer (browse)."""

    video_id: str = Field(alias="videoId")
    title: Text | None = None
    owner_text: Text | None = Field(None, alias="ownerText")
    short_byline_text: Text | None = Field(None, alias="shortBylineText")
    length_text: Text | None = Field(None, alias="lengthText")
    length_seconds: int | None = Field(None, alias="lengthSeconds")
    thumbnail: ThumbnailList | None = None


# --- Invidious payloads ---

class InvidiousThumbnail(_Model):
    quality: str = ""
    url: str


class InvidiousFormat(_Model):
    url: str
    type: str = ""
    bitrate: int = 0
    resolution: str | None = None
    quality_label: str | None = Field(None, alias="qualityLabel")


class InvidiousVideo(_Model):
    video_id: str = Field("", alias="videoId")
    title: str = ""
    author: str = ""
    length_seconds: int = Field(0, alias="lengthSeconds")
    video_thumbnails: list[InvidiousThumbnail] = Field(default_factory=list, alias="videoThumbnails")
    hls_url: str | None = Field(None, alias="hlsUrl")
    format_streams: list[InvidiousFormat] = Field(default_factory=list, alias="formatStreams")
    adaptive_formats: list[InvidiousFormat] = Field(default_factory=list, alias="adaptiveFormats")


class InvidiousPlaylist(_Model):
    playlist_id: str = Field("", alias="playlistId")
    title: str = ""
    author: str = ""
    videos: list[InvidiousVideo] = Field(default_factory=list)


# --- Helpers ---

def parse_clock(text: str) -> int:
    """'3:45' -> 225, '1:02:03' -> 3723."""
    seconds = 0
    for part in text.strip().split(":"):
        if not part.isdigit():
            return 0
        seconds = seconds * 60 + int(part)
    return seconds


def find_renderers(data: Any, key: str) -> Iterator[dict]:
    """Walk a nested Innertube response yielding every object under `key`."""
    if isinstance(data, dict):
        for k, v in data.items():
            if k == key and isinstance(v, dict):
                yield v
            else:
                yield from find_renderers(v, key)
    elif isinstance(data, list):
        for item in data:
            yield from find_renderers(item, key)


def _best_thumbnail(thumbs: ThumbnailList | None, video_id: str) -> str:
    if thumbs and thumbs.thumbnails:
        return max(thumbs.thumbnails, key=lambda t: t.width).url
    return THUMBNAIL_URL.format(video_id) if video_id else ""


def _renderer_member(r: VideoRenderer) -> MemberReference:
    byline = r.owner_text or r.short_byline_text
    duration = r.length_seconds
    if duration is None:
        duration = parse_clock(str(r.length_text)) if r.length_text else 0
    return MemberReference(
        id=r.video_id,
        url=WATCH_URL.format(r.video_id),
        title=str(r.title) if r.title else "",
        artist=str(byline) if byline else "",
        duration_seconds=duration,
        thumbnail=_best_thumbnail(r.thumbnail, r.video_id),
    )


def innertube_context(profile: str) -> dict:
    client = {k: v for k, v in INNERTUBE_CLIENTS[profile].items() if k != "userAgent"}
    client.update({"hl": "en", "gl": "US"})
    return {"client": client}


class InnertubeDialect(ProviderDialect):
    """POST /youtubei/v1/{player,search,browse} against youtube.com mirrors."""

    name = "innertube"
    provider = Provider.YOUTUBE
    supports_collections = True
    supports_search = True

    async def _post(
        self,
        client: httpx.AsyncClient,
        endpoint: MirrorEndpoint,
        action: str,
        body: dict,
        profile: str = "web",
    ) -> Any:
        headers = {"Content-Type": "application/json"}
        user_agent = INNERTUBE_CLIENTS[profile].get("userAgent")
        if user_agent:
            headers["User-Agent"] = user_agent
        payload = {"context": innertube_context(profile), **body}
        resp = await client.post(
            endpoint.url(f"/youtubei/v1/{action}?prettyPrint=false"),
            json=payload,
            headers=headers,
        )
        return read_json(resp)

    async def fetch_stream(self, client, endpoint, ref, attempt):
        profile = CLIENT_ORDER[attempt % len(CLIENT_ORDER)]
        data = await self._post(
            client, endpoint, "player",
            {"videoId": ref.extracted_id, "contentCheckOk": True, "racyCheckOk": True},
            profile=profile,
        )
        player = parse_model(PlayerResponse, data)

        status = player.playability_status
        if status.status != "OK":
            raise rejected(f"{profile}: not playable ({status.status}: {status.reason or 'no reason'})")
        if player.streaming_data is None:
            raise rejected(f"{profile}: no streamingData")

        streaming = player.streaming_data
        assets = []
        ciphered = 0
        for f in streaming.formats:
            if f.signature_cipher or not f.url:
                ciphered += 1
                continue
            assets.append(StreamAsset(
                url=f.url,
                mime_type=f.mime_type,
                bitrate=f.bitrate,
                height=f.height or parse_height(f.quality_label),
            ))
        for f in streaming.adaptive_formats:
            if f.signature_cipher or not f.url:
                ciphered += 1
                continue
            if f.mime_type.startswith("audio/"):
                assets.append(StreamAsset(
                    url=f.url, mime_type=f.mime_type, bitrate=f.bitrate,
                    has_audio=True, has_video=False,
                ))
        if ciphered:
            logger.debug("%s: skipped %d ciphered formats for %s", profile, ciphered, ref.extracted_id)

        details = player.video_details or VideoDetails()
        return StreamPayload(
            title=details.title,
            artist=details.author,
            thumbnail=_best_thumbnail(details.thumbnail, ref.extracted_id or ""),
            duration_seconds=details.length_seconds,
            manifest_url=streaming.hls_manifest_url or "",
            assets=assets,
        )

    async def fetch_collection(self, client, endpoint, ref):
        data = await self._post(client, endpoint, "browse", {"browseId": "VL" + ref.collection_id})
        members = [
            _renderer_member(parse_model(VideoRenderer, r))
            for r in find_renderers(data, "playlistVideoRenderer")
        ]
        if not members:
            raise rejected(f"playlist {ref.collection_id} returned no videos")
        title = next(
            (m["title"] for m in find_renderers(data, "playlistMetadataRenderer")
             if isinstance(m.get("title"), str)),
            "",
        )
        return CollectionResult(
            kind=LinkKind.YOUTUBE_PLAYLIST,
            collection_id=ref.collection_id,
            title=title,
            members=members,
            provider=self.name,
        )

    async def search(self, client, endpoint, query, limit):
        data = await self._post(client, endpoint, "search", {"query": query, "params": SEARCH_PARAMS})
        if not isinstance(data, dict) or "contents" not in data:
            raise rejected("search response without contents")
        results = []
        for r in find_renderers(data, "videoRenderer"):
            results.append(_renderer_member(parse_model(VideoRenderer, r)))
            if len(results) >= limit:
                break
        return results


class InvidiousDialect(ProviderDialect):
    """GET /api/v1/... against public Invidious instances."""

    name = "invidious"
    provider = Provider.YOUTUBE
    supports_collections = True
    supports_search = True

    async def _get(self, client: httpx.AsyncClient, endpoint: MirrorEndpoint, path: str, params=None) -> Any:
        resp = await client.get(endpoint.url(path), params=params)
        data = read_json(resp)
        if isinstance(data, dict) and data.get("error"):
            raise rejected(f"invidious error: {data['error']}")
        return data

    @staticmethod
    def _thumbnail(endpoint: MirrorEndpoint, video: InvidiousVideo) -> str:
        if not video.video_thumbnails:
            return THUMBNAIL_URL.format(video.video_id) if video.video_id else ""
        preferred = next(
            (t for t in video.video_thumbnails if t.quality in ("high", "medium")),
            video.video_thumbnails[0],
        )
        # Some instances hand out paths relative to themselves
        return urljoin(endpoint.base_url + "/", preferred.url)

    def _member(self, endpoint: MirrorEndpoint, video: InvidiousVideo) -> MemberReference:
        return MemberReference(
            id=video.video_id,
            url=WATCH_URL.format(video.video_id),
            title=video.title,
            artist=video.author,
            duration_seconds=video.length_seconds,
            thumbnail=self._thumbnail(endpoint, video),
        )

    async def fetch_stream(self, client, endpoint, ref, attempt):
        data = await self._get(client, endpoint, f"/api/v1/videos/{ref.extracted_id}", {"local": "true"})
        video = parse_model(InvidiousVideo, data)

        assets = [
            StreamAsset(
                url=urljoin(endpoint.base_url + "/", f.url),
                mime_type=f.type,
                bitrate=f.bitrate,
                height=parse_height(f.quality_label or f.resolution),
            )
            for f in video.format_streams
        ]
        assets.extend(
            StreamAsset(
                url=urljoin(endpoint.base_url + "/", f.url),
                mime_type=f.type,
                bitrate=f.bitrate,
                has_audio=True,
                has_video=False,
            )
            for f in video.adaptive_formats
            if f.type.startswith("audio/")
        )
        return StreamPayload(
            title=video.title,
            artist=video.author,
            thumbnail=self._thumbnail(endpoint, video),
            duration_seconds=video.length_seconds,
            manifest_url=video.hls_url or "",
            assets=assets,
        )

    async def fetch_collection(self, client, endpoint, ref):
        data = await self._get(client, endpoint, f"/api/v1/playlists/{ref.collection_id}")
        playlist = parse_model(InvidiousPlaylist, data)
        members = [self._member(endpoint, v) for v in playlist.videos if v.video_id]
        if not members:
            raise rejected(f"playlist {ref.collection_id} returned no videos")
        return CollectionResult(
            kind=LinkKind.YOUTUBE_PLAYLIST,
            collection_id=ref.collection_id,
            title=playlist.title,
            members=members,
            provider=self.name,
        )

    async def search(self, client, endpoint, query, limit):
        data = await self._get(client, endpoint, "/api/v1/search", {"q": query, "type": "video"})
        if not isinstance(data, list):
            raise rejected("invidious search did not return a list")
        results = []
        for entry in data:
            if not isinstance(entry, dict) or entry.get("type", "video") != "video":
                continue
            video = parse_model(InvidiousVideo, entry)
            if video.video_id:
                results.append(self._member(endpoint, video))
            if len(results) >= limit:
                break
        return results


def is_audio_first(ref: ClassifiedReference) -> bool:
    """YouTube Music links are audio-first; everything else on YouTube is video."""
    return "music.youtube.com" in ref.url.lower()
