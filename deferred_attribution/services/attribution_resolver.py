"""
Deferred attribution resolver.

Decides, on first launch, whether an install came from a tracked link:

1. Deterministic: if the injected ReferrerSource has a token, look it up.
   A matched referrer result short-circuits and is always accepted.
2. Probabilistic: otherwise (or on referrer miss, 4xx or exhaustion) collect a
   fingerprint and ask the backend for a match.
3. Gate: fingerprint matches are accepted only with high or medium confidence.

Strategies run sequentially in one task. resolve() never raises; every failure
becomes a "no attribution" outcome. Cancellation still propagates.
"""

from dataclasses import dataclass

from deferred_attribution.config import settings
from deferred_attribution.infrastructure.observability.logging import (
    get_logger,
    log_resolution,
)
from deferred_attribution.models.domain.fingerprint_domain import Platform
from deferred_attribution.models.domain.match_domain import (
    MatchMethod,
    MatchResult,
    OutcomeStatus,
    ResolutionOutcome,
)
from deferred_attribution.services.fingerprint_service import (
    DeviceInfoProvider,
    FingerprintCollector,
    LocaleProvider,
)
from deferred_attribution.services.link_api_client import LinkApiClient, LinkMatchingTransport
from deferred_attribution.services.referrer_service import (
    CachedReferrerSource,
    NullReferrerSource,
    RawReferrerFetcher,
    ReferrerSource,
)
from deferred_attribution.services.response_normalizer import normalize_match_response
from deferred_attribution.services.retry_controller import RetryController, RetryOutcome

logger = get_logger(__name__)


@dataclass(slots=True)
class _ResolutionTrace:
    referrer_attempted: bool = False
    fingerprint_attempted: bool = False


class AttributionResolver:
    """
    Orchestrates referrer lookup, fingerprint matching and the confidence gate.

    Holds only injected collaborators, so concurrent resolve() calls are
    independent.
    """

    def __init__(
        self,
        transport: LinkMatchingTransport,
        fingerprint_collector: FingerprintCollector,
        referrer_source: ReferrerSource | None = None,
        retry_controller: RetryController | None = None,
        owns_transport: bool = False,
    ):
        self.transport = transport
        self.fingerprint_collector = fingerprint_collector
        self.referrer_source = referrer_source or NullReferrerSource()
        self.retry_controller = retry_controller or RetryController(**settings.get_retry_config())
        self._owns_transport = owns_transport

    async def close(self) -> None:
        """Close the transport if this resolver created it."""
        if self._owns_transport:
            await self.transport.close()

    async def __aenter__(self) -> "AttributionResolver":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def resolve(self) -> ResolutionOutcome:
        """
        Resolve deferred attribution for this install.

        Returns:
            ResolutionOutcome: ACCEPTED, NO_MATCH, REJECTED_LOW_CONFIDENCE or EXHAUSTED
        """
        trace = _ResolutionTrace()
        try:
            outcome = await self._resolve(trace)
        except Exception as e:
            logger.error(
                "Error resolving deferred attribution",
                error_type=type(e).__name__,
                error=str(e),
            )
            outcome = ResolutionOutcome(
                status=OutcomeStatus.NO_MATCH,
                error=str(e) or type(e).__name__,
                referrer_attempted=trace.referrer_attempted,
                fingerprint_attempted=trace.fingerprint_attempted,
            )

        log_resolution(outcome)
        return outcome

    async def has_referrer(self) -> bool:
        """Check whether a deterministic referrer token is available."""
        if not self.referrer_source.available:
            return False
        try:
            return await self.referrer_source.get_referrer_token() is not None
        except Exception as e:
            logger.warning("Referrer availability check failed", error=str(e))
            return False

    async def match_fingerprint(self) -> MatchResult:
        """
        Run only the probabilistic path and return the ungated result.
        Used for diagnostics; never raises.
        """
        try:
            result, _ = await self._try_fingerprint(_ResolutionTrace())
            return result
        except Exception as e:
            logger.error("Error matching fingerprint", error=str(e))
            return MatchResult.no_match(MatchMethod.FINGERPRINT)

    async def _resolve(self, trace: _ResolutionTrace) -> ResolutionOutcome:
        if self.referrer_source.available:
            referrer_result = await self._try_referrer(trace)
            if referrer_result is not None:
                logger.info(
                    "Deterministic match found via referrer",
                    link_id=referrer_result.link_id,
                    short_code=referrer_result.short_code,
                )
                return self._outcome(OutcomeStatus.ACCEPTED, trace, referrer_result)
            logger.debug("Referrer lookup yielded no match, falling back to fingerprint")

        result, retry_outcome = await self._try_fingerprint(trace)
        if retry_outcome.exhausted:
            return self._outcome(
                OutcomeStatus.EXHAUSTED,
                trace,
                error=str(retry_outcome.error) if retry_outcome.error else "retries exhausted",
            )
        return self._gate(result, trace)

    async def _try_referrer(self, trace: _ResolutionTrace) -> MatchResult | None:
        """Return an actionable referrer match, or None to fall back."""
        token = await self.referrer_source.get_referrer_token()
        if not token:
            logger.debug("No install referrer token available")
            return None

        trace.referrer_attempted = True
        retry_outcome = await self.retry_controller.run(
            lambda: self.transport.lookup_by_referrer(token), "lookup_by_referrer"
        )
        if not retry_outcome.succeeded:
            logger.info(
                "Referrer lookup unsuccessful",
                retry_status=retry_outcome.status.value,
                status_code=retry_outcome.status_code,
                attempts=retry_outcome.attempts,
            )
            return None

        result = normalize_match_response(retry_outcome.value, MatchMethod.REFERRER)
        if result.matched and result.has_destination:
            return result
        return None

    async def _try_fingerprint(
        self, trace: _ResolutionTrace
    ) -> tuple[MatchResult, RetryOutcome]:
        fingerprint = await self.fingerprint_collector.collect()

        trace.fingerprint_attempted = True
        retry_outcome = await self.retry_controller.run(
            lambda: self.transport.match_by_fingerprint(fingerprint), "match_by_fingerprint"
        )
        if not retry_outcome.succeeded:
            return MatchResult.no_match(MatchMethod.FINGERPRINT), retry_outcome

        result = normalize_match_response(retry_outcome.value, MatchMethod.FINGERPRINT)
        logger.info(
            "Fingerprint match result",
            matched=result.matched,
            confidence=result.confidence.value,
            score=result.score,
        )
        return result, retry_outcome

    def _gate(self, result: MatchResult, trace: _ResolutionTrace) -> ResolutionOutcome:
        """Apply the acceptance policy to a probabilistic result."""
        if not result.matched:
            return self._outcome(OutcomeStatus.NO_MATCH, trace, result)
        if not result.is_acceptable_confidence():
            logger.info(
                "Rejecting low-confidence match",
                confidence=result.confidence.value,
                score=result.score,
            )
            return self._outcome(OutcomeStatus.REJECTED_LOW_CONFIDENCE, trace, result)
        if not result.has_destination:
            logger.warning("Match has no deep link destination", link_id=result.link_id)
            return self._outcome(OutcomeStatus.NO_MATCH, trace, result)
        return self._outcome(OutcomeStatus.ACCEPTED, trace, result)

    @staticmethod
    def _outcome(
        status: OutcomeStatus,
        trace: _ResolutionTrace,
        result: MatchResult | None = None,
        error: str | None = None,
    ) -> ResolutionOutcome:
        return ResolutionOutcome(
            status=status,
            result=result,
            error=error,
            referrer_attempted=trace.referrer_attempted,
            fingerprint_attempted=trace.fingerprint_attempted,
        )


def build_resolver(
    platform: Platform,
    device_info_provider: DeviceInfoProvider | None = None,
    locale_provider: LocaleProvider | None = None,
    raw_referrer_fetcher: RawReferrerFetcher | None = None,
    transport: LinkMatchingTransport | None = None,
) -> AttributionResolver:
    """
    Wire a resolver from settings.

    A referrer source is attached only when a raw referrer fetcher is given,
    i.e. on platforms with an install referrer.
    Without an injected transport the resolver builds and owns a LinkApiClient;
    use it as an async context manager or call close() to release it.
    """
    referrer_source = (
        CachedReferrerSource(raw_referrer_fetcher) if raw_referrer_fetcher else NullReferrerSource()
    )
    return AttributionResolver(
        transport=transport or LinkApiClient(),
        fingerprint_collector=FingerprintCollector(
            platform,
            device_info_provider=device_info_provider,
            locale_provider=locale_provider,
        ),
        referrer_source=referrer_source,
        retry_controller=RetryController(**settings.get_retry_config()),
        owns_transport=transport is None,
    )
