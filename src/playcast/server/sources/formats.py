"""Stream candidates and the stream-selection policy.

Every dialect reduces its upstream payload to a StreamPayload; the
resolver then picks one URL from it with select_stream().
"""

import re
from dataclasses import dataclass, field

# Video heights tried in order before falling back to "anything but the lowest"
PREFERRED_HEIGHTS = (720, 480)


@dataclass(frozen=True)
class StreamAsset:
    url: str
    mime_type: str = ""
    bitrate: int = 0
    height: int = 0
    has_audio: bool = True
    has_video: bool = True

    @property
    def audio_only(self) -> bool:
        return self.has_audio and not self.has_video

    @property
    def muxed(self) -> bool:
        return self.has_audio and self.has_video


@dataclass(frozen=True)
class StreamPayload:
    """Display metadata plus every playable candidate a dialect found."""

    title: str = ""
    artist: str = ""
    thumbnail: str = ""
    duration_seconds: int = 0
    manifest_url: str = ""
    assets: list[StreamAsset] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.manifest_url and not self.assets


def parse_height(label: str | None) -> int:
    """'720p', '1280x720', '480p60' -> 720, 720, 480."""
    if not label:
        return 0
    m = re.search(r"(\d{3,4})p", label)
    if m:
        return int(m.group(1))
    m = re.search(r"\d+x(\d+)", label)
    if m:
        return int(m.group(1))
    return 0


def _best_audio(assets: list[StreamAsset]) -> StreamAsset | None:
    audio = [a for a in assets if a.audio_only]
    if not audio:
        return None
    return max(audio, key=lambda a: a.bitrate)


def _mid_tier_video(assets: list[StreamAsset]) -> StreamAsset | None:
    video = [a for a in assets if a.muxed]
    if not video:
        return None
    for height in PREFERRED_HEIGHTS:
        for asset in video:
            if asset.height == height:
                return asset
    if len(video) == 1:
        return video[0]
    # First available that isn't the lowest quality on offer
    lowest = min(video, key=lambda a: (a.height, a.bitrate))
    for asset in video:
        if asset is not lowest:
            return asset
    return video[0]


def select_stream(payload: StreamPayload, prefer_audio: bool = False) -> str | None:
    """Pick one stream URL, or None when nothing is playable.

    Order: adaptive manifest; then for audio-first content the highest-bitrate
    audio-only asset; then a mid-tier muxed video asset; then any audio.
    """
    if payload.manifest_url:
        return payload.manifest_url

    if prefer_audio:
        audio = _best_audio(payload.assets)
        if audio:
            return audio.url

    video = _mid_tier_video(payload.assets)
    if video:
        return video.url

    audio = _best_audio(payload.assets)
    if audio:
        return audio.url
    return None
