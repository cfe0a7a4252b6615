"""ResolutionFacade - the single "give me something playable" entry point."""

from __future__ import annotations

import logging

import httpx

from playcast.server.sources.base import (
    COLLECTION_KINDS,
    DIRECT_KINDS,
    SINGLE_KINDS,
    ClassifiedReference,
    CollectionResult,
    ErrorReason,
    LinkKind,
    MemberReference,
    Provider,
    ResolutionError,
    ResolutionResult,
)
from playcast.server.sources.classifier import classify, filename_title, looks_like_url
from playcast.server.sources.resolver import ProviderResolver

logger = logging.getLogger(__name__)

Outcome = ResolutionResult | CollectionResult | ResolutionError


class ResolutionFacade:
    """Classifies input and dispatches it.

    Provider items go through the resolver, collections come back as
    unresolved member lists, directly playable URLs are returned as-is
    without touching the network, and free text becomes a search.
    """

    def __init__(
        self,
        resolver: ProviderResolver,
        search_provider: Provider = Provider.YOUTUBE,
        search_limit: int = 20,
    ):
        self.resolver = resolver
        self.search_provider = search_provider
        self.search_limit = search_limit

    @classmethod
    def from_config(cls, config, transport: httpx.AsyncBaseTransport | None = None) -> "ResolutionFacade":
        try:
            provider = Provider(config.resolver.default_search_provider)
        except ValueError:
            logger.warning(
                "Unknown default_search_provider %r, using youtube",
                config.resolver.default_search_provider,
            )
            provider = Provider.YOUTUBE
        return cls(
            ProviderResolver.from_config(config, transport=transport),
            search_provider=provider,
            search_limit=config.resolver.search_limit,
        )

    def classify(self, text: str) -> ClassifiedReference:
        return classify(text)

    async def resolve_from_input(self, text: str) -> Outcome:
        ref = classify(text)
        if ref.kind == LinkKind.UNKNOWN:
            query = ref.url
            if not query:
                return ResolutionError(ErrorReason.UNRECOGNIZED_INPUT, "empty input", reference=ref)
            if looks_like_url(query):
                return ResolutionError(ErrorReason.UNRECOGNIZED_INPUT, f"unrecognized link: {query}", reference=ref)
            return await self._search_and_resolve(query)
        return await self.resolve_reference(ref)

    async def resolve_reference(self, ref: ClassifiedReference) -> Outcome:
        if ref.kind in DIRECT_KINDS:
            return ResolutionResult(
                stream_url=ref.url,
                title=filename_title(ref.url),
                kind=ref.kind,
                provider="direct",
            )
        if ref.kind == LinkKind.WEB_RESOURCE:
            return ResolutionResult(
                stream_url=ref.url,
                title=ref.platform_name or "",
                kind=ref.kind,
                provider="web",
            )
        if ref.kind in COLLECTION_KINDS:
            return await self.resolver.resolve_collection(ref)
        if ref.kind in SINGLE_KINDS:
            return await self.resolver.resolve(ref)
        return ResolutionError(ErrorReason.UNRECOGNIZED_INPUT, "unrecognized input", reference=ref)

    async def resolve_member(self, member: MemberReference) -> Outcome:
        """Resolve a queued collection member or search hit when it is about to play."""
        if member.kind in DIRECT_KINDS:
            # Channel lists already know their entries play as-is; their URLs
            # need not classify as direct (rtsp://, iptv-named hosts).
            result = ResolutionResult(
                stream_url=member.url,
                title=filename_title(member.url),
                kind=member.kind,
                provider="direct",
            )
        else:
            result = await self.resolve_reference(classify(member.url))
        if isinstance(result, ResolutionResult):
            # Fill gaps from what the listing already told us. Direct and web
            # titles are only derived from the URL, so the listing's name wins.
            if result.provider in ("direct", "web"):
                title = member.title or result.title
            else:
                title = result.title or member.title
            return ResolutionResult(
                stream_url=result.stream_url,
                title=title,
                artist=result.artist or member.artist,
                thumbnail=result.thumbnail or member.thumbnail,
                duration_seconds=result.duration_seconds or member.duration_seconds,
                kind=result.kind,
                provider=result.provider,
            )
        return result

    async def search(
        self, query: str, provider: Provider | None = None, limit: int | None = None,
    ) -> list[MemberReference] | ResolutionError:
        return await self.resolver.search(
            query, provider or self.search_provider, limit or self.search_limit,
        )

    async def _search_and_resolve(self, query: str) -> Outcome:
        logger.info("Treating %r as a %s search", query, self.search_provider.value)
        hits = await self.search(query, limit=1)
        if isinstance(hits, ResolutionError):
            return hits
        if not hits:
            return ResolutionError(ErrorReason.NOT_FOUND, f"no results for {query!r}", reference=query)
        return await self.resolve_member(hits[0])

    def mirrors(self) -> dict:
        return self.resolver.pool.to_dict()
