"""Link classification.

Maps a pasted string to a LinkKind with an ordered rule table: the first
rule that matches wins. Order matters because several rules overlap:
a watch URL carrying list= is also a single-video URL, and a channel-list
.m3u8 also looks like an HLS manifest.

Adding a provider family or platform is a one-line change to a table below.
"""

import os
import re
from collections.abc import Callable
from dataclasses import dataclass
from urllib.parse import parse_qs, unquote, urlparse

from playcast.server.sources.base import ClassifiedReference, LinkKind

YOUTUBE_PLAYLIST_PATTERNS = [
    re.compile(r"(?i:youtube\.com)/playlist\?(?:.*&)?list=([A-Za-z0-9_-]+)"),
    re.compile(r"(?i:youtube\.com)/watch\?(?:.*&)?list=([A-Za-z0-9_-]+)"),
]

YOUTUBE_PATTERNS = [
    re.compile(
        r"(?:(?i:youtube\.com)/(?:watch\?(?:.*&)?v=|embed/|v/|shorts/|live/)|(?i:youtu\.be)/)"
        r"([A-Za-z0-9_-]{11})(?![A-Za-z0-9_-])"
    ),
]

SOUNDCLOUD_SET_PATTERN = re.compile(r"(?i:soundcloud\.com)/([^/?#]+)/sets/([^/?#]+)")
SOUNDCLOUD_PATTERN = re.compile(r"(?i:soundcloud\.com)/([^/?#]+)/([^/?#]+)")

HLS_SUFFIXES = (".m3u8", ".mpd")
HLS_NAMES = ("master.m3u8", "playlist.m3u8", "index.m3u8")

VIDEO_EXTENSIONS = {".mp4", ".mkv", ".webm", ".avi", ".mov", ".flv", ".wmv", ".m4v", ".ts"}
AUDIO_EXTENSIONS = {".mp3", ".flac", ".wav", ".aac", ".ogg", ".m4a", ".opus"}

# Social and video sites that only work inside a web view
WEB_PLATFORMS = [
    (("zingmp3.vn",), "ZingMP3"),
    (("nhaccuatui.com",), "NhacCuaTui"),
    (("facebook.com", "fb.watch"), "Facebook"),
    (("tiktok.com",), "TikTok"),
    (("instagram.com",), "Instagram"),
    (("twitter.com", "x.com"), "Twitter/X"),
    (("vimeo.com",), "Vimeo"),
    (("dailymotion.com",), "Dailymotion"),
    (("bilibili.com",), "Bilibili"),
    (("twitch.tv",), "Twitch"),
]

_STREAM_SCHEMES = ("http", "https", "file")
_WEB_SCHEMES = ("http", "https")


def _host_matches(host: str, domain: str) -> bool:
    return host == domain or host.endswith("." + domain)


def _parsed(text: str, schemes: tuple[str, ...]):
    """urlparse() the text, or None if it lacks one of the given schemes."""
    try:
        parsed = urlparse(text)
    except ValueError:
        return None
    if parsed.scheme.lower() not in schemes:
        return None
    return parsed


def _path_ext(text: str) -> str:
    parsed = _parsed(text, _STREAM_SCHEMES)
    if parsed is None:
        return ""
    _, ext = os.path.splitext(parsed.path.lower())
    return ext


# --- Matchers: return extracted fields, or None for no match ---

def _match_youtube_playlist(text: str) -> dict | None:
    for pattern in YOUTUBE_PLAYLIST_PATTERNS:
        m = pattern.search(text)
        if m:
            return {"collection_id": m.group(1)}
    return None


def _match_youtube(text: str) -> dict | None:
    for pattern in YOUTUBE_PATTERNS:
        m = pattern.search(text)
        if m:
            return {"extracted_id": m.group(1)}
    return None


def _match_soundcloud_set(text: str) -> dict | None:
    m = SOUNDCLOUD_SET_PATTERN.search(text)
    if m:
        return {"collection_id": f"{m.group(1)}/sets/{m.group(2)}"}
    return None


def _match_soundcloud(text: str) -> dict | None:
    m = SOUNDCLOUD_PATTERN.search(text)
    if m:
        return {"extracted_id": f"{m.group(1)}/{m.group(2)}"}
    return None


def is_container_playlist(text: str) -> bool:
    """Channel-list heuristics: .m3u files, IPTV hosts and paths, tvg- markers,
    and Xtream-style get.php?type=m3u endpoints."""
    parsed = _parsed(text, _STREAM_SCHEMES)
    if parsed is None:
        return False
    path = parsed.path.lower()
    host = (parsed.hostname or "").lower()
    if path.endswith(".m3u"):
        return True
    if "iptv" in host or "iptv" in path or "tvg-" in text.lower():
        return True
    if path.endswith("/get.php"):
        types = parse_qs(parsed.query).get("type", [])
        return any(t.lower().startswith("m3u") for t in types)
    return False


def _match_hls(text: str) -> dict | None:
    parsed = _parsed(text, _STREAM_SCHEMES)
    if parsed is None:
        return None
    path = parsed.path.lower()
    looks_like_manifest = path.endswith(HLS_SUFFIXES) or any(
        path.endswith("/" + name) for name in HLS_NAMES
    )
    if looks_like_manifest and not is_container_playlist(text):
        return {}
    return None


def _match_container(text: str) -> dict | None:
    return {} if is_container_playlist(text) else None


def _match_video_file(text: str) -> dict | None:
    return {} if _path_ext(text) in VIDEO_EXTENSIONS else None


def _match_audio_file(text: str) -> dict | None:
    return {} if _path_ext(text) in AUDIO_EXTENSIONS else None


def _match_platform(text: str) -> dict | None:
    parsed = _parsed(text, _WEB_SCHEMES)
    if parsed is None:
        return None
    host = (parsed.hostname or "").lower()
    for domains, name in WEB_PLATFORMS:
        if any(_host_matches(host, d) for d in domains):
            return {"platform_name": name}
    return None


def _match_web(text: str) -> dict | None:
    parsed = _parsed(text, _WEB_SCHEMES)
    if parsed is None or not parsed.hostname:
        return None
    return {"platform_name": parsed.hostname}


@dataclass(frozen=True)
class Rule:
    kind: LinkKind
    match: Callable[[str], dict | None]


# Playlist rules precede the single-item rule of the same family.
RULES = [
    Rule(LinkKind.YOUTUBE_PLAYLIST, _match_youtube_playlist),
    Rule(LinkKind.YOUTUBE, _match_youtube),
    Rule(LinkKind.SOUNDCLOUD_PLAYLIST, _match_soundcloud_set),
    Rule(LinkKind.SOUNDCLOUD, _match_soundcloud),
    Rule(LinkKind.HLS_STREAM, _match_hls),
    Rule(LinkKind.IPTV_PLAYLIST, _match_container),
    Rule(LinkKind.DIRECT_VIDEO, _match_video_file),
    Rule(LinkKind.DIRECT_AUDIO, _match_audio_file),
    Rule(LinkKind.WEB_RESOURCE, _match_platform),
    Rule(LinkKind.WEB_RESOURCE, _match_web),
]

# (is_directly_playable, requires_resolution) per kind
PLAYABILITY = {
    LinkKind.YOUTUBE: (False, True),
    LinkKind.YOUTUBE_PLAYLIST: (False, True),
    LinkKind.SOUNDCLOUD: (False, True),
    LinkKind.SOUNDCLOUD_PLAYLIST: (False, True),
    LinkKind.IPTV_PLAYLIST: (False, True),
    LinkKind.DIRECT_VIDEO: (True, False),
    LinkKind.DIRECT_AUDIO: (True, False),
    LinkKind.HLS_STREAM: (True, False),
    LinkKind.WEB_RESOURCE: (True, False),
    LinkKind.UNKNOWN: (False, False),
}


def _build(kind: LinkKind, raw: str, fields: dict) -> ClassifiedReference:
    playable, needs_resolution = PLAYABILITY[kind]
    return ClassifiedReference(
        kind=kind,
        raw_url=raw,
        is_directly_playable=playable,
        requires_resolution=needs_resolution,
        **fields,
    )


def classify(text: str) -> ClassifiedReference:
    """Classify a pasted link. Pure and total: never raises, never does I/O."""
    raw = text if isinstance(text, str) else ""
    trimmed = raw.strip()
    if not trimmed:
        return _build(LinkKind.UNKNOWN, raw, {})

    for rule in RULES:
        fields = rule.match(trimmed)
        if fields is not None:
            return _build(rule.kind, raw, fields)
    return _build(LinkKind.UNKNOWN, raw, {})


def looks_like_url(text: str) -> bool:
    """True for anything with a scheme or a dotted first segment."""
    trimmed = text.strip()
    if not trimmed or " " in trimmed:
        return False
    if re.match(r"^[A-Za-z][A-Za-z0-9+.-]*://", trimmed):
        return True
    first = trimmed.split("/", 1)[0]
    return "." in first and not first.startswith(".") and not first.endswith(".")


def filename_title(url: str, default: str = "Media") -> str:
    """Human title from the last path segment: no query, no extension."""
    try:
        path = urlparse(url).path
    except ValueError:
        path = url.split("?", 1)[0]
    name = unquote(path.rstrip("/").rsplit("/", 1)[-1])
    title, _ = os.path.splitext(name)
    return title.strip() or default
