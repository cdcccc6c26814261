"""
Developer entrypoint: run one deferred attribution resolution.

Resolves against LINK_API_BASE_URL with a static device description and prints
the outcome as JSON. Platform and raw referrer come from CLI args or the
ATTRIBUTION_PLATFORM / ATTRIBUTION_REFERRER environment variables.
"""

import argparse
import asyncio
import json
import os
import sys

from deferred_attribution.config import settings
from deferred_attribution.infrastructure.observability.logging import get_logger, setup_logging
from deferred_attribution.models.domain.fingerprint_domain import Platform
from deferred_attribution.models.domain.match_domain import ResolutionOutcome
from deferred_attribution.services.attribution_resolver import build_resolver
from deferred_attribution.services.fingerprint_service import DeviceInfo
from deferred_attribution.services.link_api_client import LinkApiClient

logger = get_logger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="deferred-attribution")
    parser.add_argument(
        "--platform",
        choices=[platform.value for platform in Platform],
        default=os.getenv("ATTRIBUTION_PLATFORM", Platform.ANDROID.value),
    )
    parser.add_argument("--referrer", default=os.getenv("ATTRIBUTION_REFERRER"))
    parser.add_argument("--model", default=None)
    parser.add_argument("--os-version", default=None)
    parser.add_argument("--locale", default=None)
    return parser.parse_args(argv)


async def run_resolution(args: argparse.Namespace) -> ResolutionOutcome:
    """Build a resolver from args and resolve once."""
    platform = Platform(args.platform)

    async def device_info() -> DeviceInfo:
        return DeviceInfo(model=args.model, os_version=args.os_version)

    raw_referrer = args.referrer

    async def referrer() -> str | None:
        return raw_referrer

    async with LinkApiClient() as client:
        resolver = build_resolver(
            platform,
            device_info_provider=device_info,
            locale_provider=lambda: args.locale,
            raw_referrer_fetcher=referrer if raw_referrer else None,
            transport=client,
        )
        logger.info("Starting deferred attribution", platform=platform.value)
        return await resolver.resolve()


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint."""
    setup_logging(settings.LOG_LEVEL)
    args = _parse_args(argv)
    outcome = asyncio.run(run_resolution(args))
    print(json.dumps(outcome.to_dict(), indent=2))
    return 0 if outcome.accepted else 1


if __name__ == "__main__":
    sys.exit(main())
