"""Deferred deep-link attribution for first app launch."""

from deferred_attribution.models.domain.fingerprint_domain import DeviceFingerprint, Platform
from deferred_attribution.models.domain.match_domain import (
    Confidence,
    MatchMethod,
    MatchResult,
    OutcomeStatus,
    ResolutionOutcome,
)
from deferred_attribution.services.attribution_resolver import AttributionResolver, build_resolver

__all__ = [
    "AttributionResolver",
    "Confidence",
    "DeviceFingerprint",
    "MatchMethod",
    "MatchResult",
    "OutcomeStatus",
    "Platform",
    "ResolutionOutcome",
    "build_resolver",
]
