"""Link classification and stream resolution for PlayCast.

The classifier tags raw input, the resolver talks to upstream provider
dialects through a rotating mirror pool, and the facade ties both together.
"""

from playcast.server.sources.base import (
    ClassifiedReference,
    CollectionResult,
    ErrorReason,
    LinkKind,
    MemberReference,
    Provider,
    ResolutionError,
    ResolutionResult,
)
from playcast.server.sources.classifier import classify
from playcast.server.sources.facade import ResolutionFacade
from playcast.server.sources.mirrors import MirrorEndpoint, MirrorPool
from playcast.server.sources.resolver import ProviderResolver

__all__ = [
    "ClassifiedReference",
    "CollectionResult",
    "ErrorReason",
    "LinkKind",
    "MemberReference",
    "MirrorEndpoint",
    "MirrorPool",
    "Provider",
    "ProviderResolver",
    "ResolutionError",
    "ResolutionFacade",
    "ResolutionResult",
    "classify",
]
