"""Mirror endpoints and the per-dialect rotation cursor."""

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MirrorEndpoint:
    """One interchangeable base URL for a provider dialect."""

    base_url: str
    provider_family: str

    def url(self, path: str) -> str:
        return self.base_url.rstrip("/") + "/" + path.lstrip("/")


class MirrorPool:
    """Ordered mirror lists with a monotonically increasing rotation counter.

    Endpoints are never removed: a mirror that failed a minute ago may have
    recovered, so rotation only moves the cursor. Counters live as long as
    the pool instance does.

    Reads and rotation are plain synchronous calls, so concurrent resolution
    tasks on one event loop never interleave between reading and bumping a
    counter.
    """

    def __init__(self, mirrors: dict[str, list[str]]):
        self._endpoints: dict[str, tuple[MirrorEndpoint, ...]] = {}
        self._counters: dict[str, int] = {}
        for family, urls in mirrors.items():
            family = normalize_family(family)
            cleaned = [u.rstrip("/") for u in urls if u and u.strip()]
            if not cleaned:
                logger.info("No mirrors configured for %s, dialect disabled", family)
                continue
            self._endpoints[family] = tuple(MirrorEndpoint(u, family) for u in cleaned)
            self._counters[family] = 0
            logger.info("Mirror pool %s: %d endpoint(s)", family, len(cleaned))

    @classmethod
    def from_config(cls, config) -> "MirrorPool":
        """Build from a ResolverConfig (or a full Config)."""
        resolver_config = getattr(config, "resolver", config)
        return cls(resolver_config.mirrors)

    def has(self, family: str) -> bool:
        return normalize_family(family) in self._endpoints

    def families(self) -> list[str]:
        return list(self._endpoints)

    def endpoints(self, family: str) -> list[MirrorEndpoint]:
        return list(self._endpoints.get(normalize_family(family), ()))

    def current_endpoint(self, family: str) -> MirrorEndpoint:
        family = normalize_family(family)
        endpoints = self._endpoints.get(family)
        if not endpoints:
            raise KeyError(f"No mirrors for {family}")
        return endpoints[self._counters[family] % len(endpoints)]

    def rotate(self, family: str) -> MirrorEndpoint:
        """Advance the cursor and return the new current endpoint."""
        family = normalize_family(family)
        if family not in self._endpoints:
            raise KeyError(f"No mirrors for {family}")
        self._counters[family] += 1
        endpoint = self.current_endpoint(family)
        logger.warning("Rotated %s mirror to %s", family, endpoint.base_url)
        return endpoint

    def rotations(self, family: str) -> int:
        return self._counters.get(normalize_family(family), 0)

    def to_dict(self) -> dict:
        return {
            family: {
                "current": self.current_endpoint(family).base_url,
                "rotations": self._counters[family],
                "endpoints": [e.base_url for e in endpoints],
            }
            for family, endpoints in self._endpoints.items()
        }


def normalize_family(name: str) -> str:
    """Config keys use underscores (soundcloud_proxy); dialect names use dashes."""
    return name.strip().lower().replace("_", "-")
