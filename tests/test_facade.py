"""Tests for ResolutionFacade dispatch."""

import pytest
from fakes import VIDEO_ID, innertube_search_payload, json_response, player_payload

from playcast.config import Config
from playcast.server.sources.base import (
    CollectionResult,
    ErrorReason,
    LinkKind,
    MemberReference,
    Provider,
    ResolutionError,
    ResolutionResult,
)
from playcast.server.sources.container import parse_m3u
from playcast.server.sources.facade import ResolutionFacade

PLAYER = "/youtubei/v1/player"
SEARCH = "/youtubei/v1/search"


class TestDirectSources:
    @pytest.mark.asyncio
    async def test_direct_file_needs_no_network(self, facade, upstream):
        result = await facade.resolve_from_input("https://cdn.example.com/media/Holiday%20Clip.mp4")
        assert isinstance(result, ResolutionResult)
        assert result.stream_url == "https://cdn.example.com/media/Holiday%20Clip.mp4"
        assert result.title == "Holiday Clip"
        assert result.kind == LinkKind.DIRECT_VIDEO
        assert result.provider == "direct"
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_hls_is_direct(self, facade, upstream):
        result = await facade.resolve_from_input("  https://live.test/ch1/master.m3u8  ")
        assert result.stream_url == "https://live.test/ch1/master.m3u8"
        assert result.kind == LinkKind.HLS_STREAM
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_web_resource_passes_through(self, facade, upstream):
        result = await facade.resolve_from_input("https://vimeo.com/123456")
        assert result.stream_url == "https://vimeo.com/123456"
        assert result.title == "Vimeo"
        assert result.kind == LinkKind.WEB_RESOURCE
        assert result.provider == "web"
        assert upstream.requests == []


class TestUnknownInput:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   "])
    async def test_blank(self, facade, text):
        result = await facade.resolve_from_input(text)
        assert isinstance(result, ResolutionError)
        assert result.reason == ErrorReason.UNRECOGNIZED_INPUT

    @pytest.mark.asyncio
    async def test_url_like_garbage_is_not_searched(self, facade, upstream):
        result = await facade.resolve_from_input("ftp://files.example.com/clip.mp4")
        assert result.reason == ErrorReason.UNRECOGNIZED_INPUT
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_free_text_searches_and_resolves_top_hit(self, facade, upstream):
        upstream.add("yt-a.test", SEARCH, json_response(innertube_search_payload([VIDEO_ID, "bbbbbbbbbbb"])))
        upstream.add("yt-a.test", PLAYER, json_response(player_payload()))
        result = await facade.resolve_from_input("never gonna give you up")
        assert isinstance(result, ResolutionResult)
        assert result.stream_url == "https://rr.test/720.mp4"
        assert result.kind == LinkKind.YOUTUBE

    @pytest.mark.asyncio
    async def test_search_with_no_hits(self, facade, upstream):
        upstream.add("yt-a.test", SEARCH, json_response(innertube_search_payload([])))
        result = await facade.resolve_from_input("zzzz qqqq")
        assert result.reason == ErrorReason.NOT_FOUND
        assert result.reference == "zzzz qqqq"


class TestProviderInput:
    @pytest.mark.asyncio
    async def test_single_item(self, facade, upstream):
        upstream.add("yt-a.test", PLAYER, json_response(player_payload()))
        result = await facade.resolve_from_input(f"https://youtu.be/{VIDEO_ID}")
        assert result.provider == "innertube"

    @pytest.mark.asyncio
    async def test_collection_returns_members_unresolved(self, facade, upstream):
        upstream.add("inv-a.test", "/api/v1/playlists/PLabc", json_response({
            "title": "Mix",
            "videos": [{"videoId": "aaaaaaaaaaa", "title": "One"}],
        }))
        result = await facade.resolve_from_input("https://www.youtube.com/playlist?list=PLabc")
        assert isinstance(result, CollectionResult)
        assert result.members[0].url == "https://www.youtube.com/watch?v=aaaaaaaaaaa"
        assert upstream.hits("yt-a.test", PLAYER) == []

    @pytest.mark.asyncio
    async def test_exhaustion_surfaces_as_error(self, facade):
        result = await facade.resolve_from_input(f"https://youtu.be/{VIDEO_ID}")
        assert isinstance(result, ResolutionError)
        assert result.reason == ErrorReason.ALL_PROVIDERS_EXHAUSTED


class TestResolveMember:
    @pytest.mark.asyncio
    async def test_fills_gaps_from_listing(self, facade, upstream):
        payload = player_payload()
        payload["videoDetails"] = {"videoId": VIDEO_ID}
        upstream.add("yt-a.test", PLAYER, json_response(payload))
        member = MemberReference(
            id=VIDEO_ID,
            url=f"https://www.youtube.com/watch?v={VIDEO_ID}",
            title="From Playlist",
            artist="Playlist Artist",
            duration_seconds=200,
        )
        result = await facade.resolve_member(member)
        assert result.title == "From Playlist"
        assert result.artist == "Playlist Artist"
        assert result.duration_seconds == 200
        assert result.thumbnail == f"https://i.ytimg.com/vi/{VIDEO_ID}/hqdefault.jpg"

    @pytest.mark.asyncio
    async def test_channel_member_is_direct(self, facade, upstream):
        member = MemberReference(id="c1", url="https://streams.test/news/index.m3u8", title="World News")
        result = await facade.resolve_member(member)
        assert result.stream_url == member.url
        assert result.title == "World News"
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_channel_on_iptv_named_host_is_not_fetched(self, facade, upstream):
        member = parse_m3u("#EXTINF:-1,Live 101\nhttp://my-iptv.example.net/live/user/pass/101.ts\n")[0]
        result = await facade.resolve_member(member)
        assert isinstance(result, ResolutionResult)
        assert result.stream_url == "http://my-iptv.example.net/live/user/pass/101.ts"
        assert result.title == "Live 101"
        assert result.kind == LinkKind.DIRECT_VIDEO
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_rtsp_channel_plays_directly(self, facade, upstream):
        member = parse_m3u("#EXTINF:-1 group-title=\"Music\",Radio\nrtsp://radio.test/live\n")[0]
        result = await facade.resolve_member(member)
        assert isinstance(result, ResolutionResult)
        assert result.stream_url == "rtsp://radio.test/live"
        assert result.title == "Radio"
        assert result.provider == "direct"
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_unknown_url_without_kind_is_unrecognized(self, facade):
        result = await facade.resolve_member(MemberReference(id="x", url="rtsp://radio.test/live"))
        assert result.reason == ErrorReason.UNRECOGNIZED_INPUT


class TestConfiguration:
    def test_from_config(self):
        config = Config()
        config.resolver.default_search_provider = "soundcloud"
        config.resolver.search_limit = 5
        facade = ResolutionFacade.from_config(config)
        assert facade.search_provider == Provider.SOUNDCLOUD
        assert facade.search_limit == 5

    def test_unknown_search_provider(self, caplog):
        config = Config()
        config.resolver.default_search_provider = "bandcamp"
        facade = ResolutionFacade.from_config(config)
        assert facade.search_provider == Provider.YOUTUBE
        assert "bandcamp" in caplog.text

    def test_mirrors(self, facade):
        assert facade.mirrors()["innertube"]["current"] == "https://yt-a.test"
