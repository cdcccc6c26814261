"""
Fingerprint collection for probabilistic deferred-link matching.
Gathers a bounded set of privacy-respecting device attributes. Collection never
fails: every sub-query falls back to a documented default.
"""

import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from deferred_attribution.infrastructure.observability.logging import get_logger
from deferred_attribution.models.domain.fingerprint_domain import (
    DEFAULT_LOCALE,
    DEFAULT_MODEL,
    DEFAULT_OS_VERSION,
    DeviceFingerprint,
    Platform,
)

logger = get_logger(__name__)

LOCALE_PATTERN = re.compile(r"^([A-Za-z]{2,3})[-_]([A-Za-z]{2}|\d{3})$")


@dataclass(slots=True)
class DeviceInfo:
    """Raw device metadata as reported by the platform device-info query."""

    model: str | None = None
    os_version: str | None = None
    vendor_id: str | None = None
    user_agent: str | None = None


DeviceInfoProvider = Callable[[], Awaitable[DeviceInfo]]
LocaleProvider = Callable[[], str | None]
Clock = Callable[[], datetime]


def _local_now() -> datetime:
    return datetime.now(UTC).astimezone()


def normalize_locale(raw: str | None) -> str:
    """Coerce `en_US` / `en-us` style values into `en-US`; anything else -> default."""
    if not raw:
        return DEFAULT_LOCALE
    match = LOCALE_PATTERN.match(raw.strip())
    if not match:
        return DEFAULT_LOCALE
    language, country = match.groups()
    return f"{language.lower()}-{country.upper()}"


class FingerprintCollector:
    """
    Builds a DeviceFingerprint from injected platform collaborators.

    With mocked device-info, locale and clock sources the output is fully
    deterministic.
    """

    def __init__(
        self,
        platform: Platform,
        device_info_provider: DeviceInfoProvider | None = None,
        locale_provider: LocaleProvider | None = None,
        clock: Clock | None = None,
    ):
        self.platform = platform
        self._device_info_provider = device_info_provider
        self._locale_provider = locale_provider
        self._clock = clock or _local_now

    async def collect(self) -> DeviceFingerprint:
        """Collect a fresh fingerprint snapshot."""
        try:
            now = self._clock()
            timezone_offset = self._timezone_offset_minutes(now)
        except Exception as e:
            logger.warning("Clock query failed, using UTC", error=str(e))
            now = datetime.now(UTC)
            timezone_offset = 0

        locale = self._collect_locale()
        try:
            device_info = await self._collect_device_info()
            fingerprint = DeviceFingerprint(
                platform=self.platform,
                vendor_id=self._vendor_id(device_info),
                model=device_info.model or DEFAULT_MODEL,
                os_version=device_info.os_version or DEFAULT_OS_VERSION,
                timezone_offset_minutes=timezone_offset,
                locale=locale,
                user_agent=device_info.user_agent or self.platform.default_user_agent(),
                collected_at=now,
            )
        except Exception as e:
            logger.error("Error gathering fingerprint", platform=self.platform.value, error=str(e))
            return DeviceFingerprint.fallback(
                self.platform, timezone_offset, locale=locale, collected_at=now
            )

        logger.debug(
            "Collected fingerprint",
            platform=fingerprint.platform.value,
            model=fingerprint.model,
            os_version=fingerprint.os_version,
        )
        return fingerprint

    async def _collect_device_info(self) -> DeviceInfo:
        if self.platform == Platform.WEB:
            return DeviceInfo(model="web", os_version="web")
        if self._device_info_provider is None:
            return DeviceInfo()
        try:
            return await self._device_info_provider() or DeviceInfo()
        except Exception as e:
            logger.warning("Device info query failed", platform=self.platform.value, error=str(e))
            return DeviceInfo()

    def _vendor_id(self, device_info: DeviceInfo) -> str | None:
        # Android has no privacy-safe vendor identifier
        if self.platform != Platform.IOS:
            return None
        return device_info.vendor_id or None

    def _collect_locale(self) -> str:
        if self._locale_provider is None:
            return DEFAULT_LOCALE
        try:
            return normalize_locale(self._locale_provider())
        except Exception as e:
            logger.debug("Could not get platform locale", error=str(e))
            return DEFAULT_LOCALE

    @staticmethod
    def _timezone_offset_minutes(now: datetime) -> int:
        offset = now.utcoffset()
        if offset is None:
            return 0
        return int(offset.total_seconds() // 60)
