# models/domain/fingerprint_domain.py
"""
Device Fingerprint Domain Model
Immutable snapshot of privacy-safe device attributes used for probabilistic matching.
"""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_MODEL = "unknown"
DEFAULT_OS_VERSION = "unknown"
DEFAULT_LOCALE = "en-US"

DEFAULT_USER_AGENTS = {
    "ios": "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15",
    "android": "Mozilla/5.0 (Linux; Android 13) AppleWebKit/537.36",
    "web": "Mozilla/5.0 (Windows NT 10.0)",
}


class Platform(str, Enum):
    IOS = "ios"
    ANDROID = "android"
    WEB = "web"

    def default_user_agent(self) -> str:
        return DEFAULT_USER_AGENTS[self.value]


class DeviceFingerprint(BaseModel):
    """Domain model for a device fingerprint (never a persistent advertising id)."""

    model_config = ConfigDict(frozen=True)

    platform: Platform
    vendor_id: str | None = None  # iOS identifierForVendor only
    model: str = DEFAULT_MODEL
    os_version: str = DEFAULT_OS_VERSION
    timezone_offset_minutes: int = 0
    locale: str = DEFAULT_LOCALE
    user_agent: str = ""
    collected_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def fallback(
        cls,
        platform: Platform,
        timezone_offset_minutes: int = 0,
        locale: str = DEFAULT_LOCALE,
        collected_at: datetime | None = None,
    ) -> "DeviceFingerprint":
        """Minimal fingerprint used when device collection fails."""
        return cls(
            platform=platform,
            model=DEFAULT_MODEL,
            os_version=DEFAULT_OS_VERSION,
            timezone_offset_minutes=timezone_offset_minutes,
            locale=locale,
            user_agent=platform.default_user_agent(),
            collected_at=collected_at or datetime.now(UTC),
        )

    def to_request_payload(self) -> dict:
        """Convert to the JSON body expected by the fingerprint-match endpoint."""
        return {
            "platform": self.platform.value,
            "idfv": self.vendor_id,
            "model": self.model,
            "osVersion": self.os_version,
            "timezone": self.timezone_offset_minutes,
            "locale": self.locale,
            "userAgent": self.user_agent,
            "timestamp": self.collected_at.isoformat(),
        }
