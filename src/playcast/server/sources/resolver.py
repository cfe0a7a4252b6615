"""Provider resolution with timeouts, mirror rotation, and dialect fallback.

For each logical provider there is an ordered chain of dialects (primary
first). Every dialect gets up to max_attempts tries against its mirror pool;
each failed try rotates that pool immediately, with no backoff. Only when
the whole chain is exhausted does the caller see an error.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from playcast.config import DEFAULT_USER_AGENT
from playcast.server.sources.base import (
    SINGLE_KINDS,
    AttemptFailure,
    ClassifiedReference,
    CollectionResult,
    ErrorReason,
    LinkKind,
    MemberReference,
    Provider,
    ProviderDialect,
    ResolutionError,
    ResolutionResult,
    rejected,
)
from playcast.server.sources.container import fetch_container
from playcast.server.sources.formats import select_stream
from playcast.server.sources.mirrors import MirrorEndpoint, MirrorPool
from playcast.server.sources.soundcloud import ClientIdProvider, SoundCloudDialect, SoundCloudProxyDialect
from playcast.server.sources.youtube import InnertubeDialect, InvidiousDialect, is_audio_first

logger = logging.getLogger(__name__)

Call = Callable[[ProviderDialect, httpx.AsyncClient, MirrorEndpoint, int], Awaitable[Any]]


def default_dialects(config=None) -> list[ProviderDialect]:
    """Every known dialect, primary before secondary within each provider."""
    client_ids = ClientIdProvider()
    if config is not None:
        client_ids = ClientIdProvider(
            default_client_id=config.soundcloud.default_client_id,
            ttl=config.soundcloud.client_id_ttl,
        )
    return [
        InnertubeDialect(),
        InvidiousDialect(),
        SoundCloudDialect(client_ids),
        SoundCloudProxyDialect(),
    ]


# InvalidURL is not an HTTPError subclass.
ATTEMPT_ERRORS = (ResolutionError, asyncio.TimeoutError, httpx.HTTPError, httpx.InvalidURL)


def _classify_failure(e: BaseException) -> tuple[ErrorReason, str]:
    if isinstance(e, ResolutionError):
        return e.reason, e.detail or str(e)
    if isinstance(e, (asyncio.TimeoutError, httpx.TimeoutException)):
        return ErrorReason.TIMEOUT, "timed out"
    return ErrorReason.UPSTREAM_REJECTED, f"{type(e).__name__}: {e}"


class ProviderResolver:
    """Turns classified references into streams, collections, or search hits.

    The mirror pool is injected so tests (and the API) can inspect rotation;
    `transport` is handed to httpx and lets tests mock the network.
    """

    def __init__(
        self,
        pool: MirrorPool,
        dialects: list[ProviderDialect] | None = None,
        max_attempts: int = 3,
        timeout: float = 10.0,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.pool = pool
        self.dialects = dialects if dialects is not None else default_dialects()
        self.max_attempts = max(1, max_attempts)
        self.timeout = timeout
        self.user_agent = user_agent
        self._transport = transport

        for provider in Provider:
            names = [d.name for d in self.chain(provider)]
            logger.info("%s dialect chain: %s", provider.value, " -> ".join(names) or "(none)")

    @classmethod
    def from_config(cls, config, transport: httpx.AsyncBaseTransport | None = None) -> "ProviderResolver":
        return cls(
            MirrorPool.from_config(config),
            dialects=default_dialects(config),
            max_attempts=config.resolver.max_attempts,
            timeout=config.resolver.timeout,
            user_agent=config.resolver.user_agent,
            transport=transport,
        )

    def chain(self, provider: Provider, capability: str | None = None) -> list[ProviderDialect]:
        """Dialects for a provider that have mirrors and, optionally, a capability flag."""
        return [
            d for d in self.dialects
            if d.provider == provider
            and self.pool.has(d.name)
            and (capability is None or getattr(d, capability))
        ]

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers={"User-Agent": self.user_agent},
            timeout=self.timeout,
            follow_redirects=True,
            transport=self._transport,
        )

    async def _with_failover(
        self,
        provider: Provider,
        subject: Any,
        call: Call,
        capability: str | None = None,
    ) -> Any:
        """Run `call` across the dialect chain until one attempt succeeds.

        Raises ResolutionError(ALL_PROVIDERS_EXHAUSTED) carrying every
        recorded failure once the chain is used up.
        """
        chain = self.chain(provider, capability)
        if not chain:
            raise ResolutionError(
                ErrorReason.UNSUPPORTED,
                f"no {provider.value} dialect configured for this request",
                reference=subject,
            )

        failures: list[AttemptFailure] = []
        async with self._client() as client:
            for i, dialect in enumerate(chain):
                if i > 0:
                    logger.warning("Falling back to %s dialect for %s", dialect.name, provider.value)
                for attempt in range(self.max_attempts):
                    endpoint = self.pool.current_endpoint(dialect.name)
                    try:
                        result = await asyncio.wait_for(
                            call(dialect, client, endpoint, attempt), timeout=self.timeout,
                        )
                    except ATTEMPT_ERRORS as e:
                        reason, detail = _classify_failure(e)
                        failures.append(AttemptFailure(dialect.name, endpoint.base_url, reason, detail))
                        logger.warning(
                            "%s attempt %d/%d on %s failed (%s): %s",
                            dialect.name, attempt + 1, self.max_attempts,
                            endpoint.base_url, reason.value, detail,
                        )
                        self.pool.rotate(dialect.name)
                        continue
                    logger.info("%s served by %s (%s)", provider.value, dialect.name, endpoint.base_url)
                    return dialect, result

        raise ResolutionError(
            ErrorReason.ALL_PROVIDERS_EXHAUSTED,
            f"all {provider.value} dialects exhausted after {len(failures)} attempts",
            reference=subject,
            failures=failures,
        )

    async def resolve(
        self, ref: ClassifiedReference, prefer_audio: bool | None = None,
    ) -> ResolutionResult | ResolutionError:
        """Resolve a single-item reference to a playable stream."""
        if ref.kind not in SINGLE_KINDS or not ref.extracted_id:
            return ResolutionError(
                ErrorReason.UNSUPPORTED, f"{ref.kind.value} is not a single provider item", reference=ref,
            )
        provider = ref.provider
        if prefer_audio is None:
            prefer_audio = provider == Provider.SOUNDCLOUD or is_audio_first(ref)

        async def fetch(dialect, client, endpoint, attempt):
            payload = await dialect.fetch_stream(client, endpoint, ref, attempt)
            stream_url = select_stream(payload, prefer_audio=prefer_audio)
            if not stream_url:
                raise rejected(f"{dialect.name} returned no playable streams")
            return payload, stream_url

        try:
            dialect, (payload, stream_url) = await self._with_failover(provider, ref, fetch)
        except ResolutionError as e:
            return e

        return ResolutionResult(
            stream_url=stream_url,
            title=payload.title,
            artist=payload.artist,
            thumbnail=payload.thumbnail,
            duration_seconds=payload.duration_seconds,
            kind=ref.kind,
            provider=dialect.name,
        )

    async def resolve_collection(self, ref: ClassifiedReference) -> CollectionResult | ResolutionError:
        """List a collection's members without resolving any of them."""
        if ref.kind == LinkKind.IPTV_PLAYLIST:
            return await self._fetch_container(ref)
        if ref.provider is None or not ref.collection_id:
            return ResolutionError(
                ErrorReason.UNSUPPORTED, f"{ref.kind.value} is not a collection", reference=ref,
            )

        async def fetch(dialect, client, endpoint, attempt):
            return await dialect.fetch_collection(client, endpoint, ref)

        try:
            _, collection = await self._with_failover(
                ref.provider, ref, fetch, capability="supports_collections",
            )
        except ResolutionError as e:
            return e
        return collection

    async def _fetch_container(self, ref: ClassifiedReference) -> CollectionResult | ResolutionError:
        async with self._client() as client:
            try:
                return await asyncio.wait_for(fetch_container(client, ref), timeout=self.timeout)
            except ATTEMPT_ERRORS as e:
                reason, detail = _classify_failure(e)
                logger.warning("Container playlist %s failed (%s): %s", ref.url, reason.value, detail)
                return ResolutionError(reason, detail, reference=ref)

    async def search(
        self, query: str, provider: Provider = Provider.YOUTUBE, limit: int = 20,
    ) -> list[MemberReference] | ResolutionError:
        """Free-text search on one provider, with the same failover as resolve()."""
        query = query.strip()
        if not query:
            return ResolutionError(ErrorReason.UNRECOGNIZED_INPUT, "empty search query", reference=query)

        async def fetch(dialect, client, endpoint, attempt):
            return await dialect.search(client, endpoint, query, limit)

        try:
            _, results = await self._with_failover(provider, query, fetch, capability="supports_search")
        except ResolutionError as e:
            return e
        return results
