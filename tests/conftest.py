from datetime import datetime, timedelta, timezone

import pytest

from deferred_attribution.models.domain.fingerprint_domain import Platform
from deferred_attribution.services.fingerprint_service import DeviceInfo, FingerprintCollector
from deferred_attribution.services.referrer_service import parse_referrer_token
from deferred_attribution.services.retry_controller import RetryController

FIXED_NOW = datetime(2025, 11, 21, 10, 0, tzinfo=timezone(timedelta(hours=2)))


class FakeTransport:
    """Scripted link-matching transport. Items that are exceptions are raised."""

    def __init__(self, referrer_responses=None, fingerprint_responses=None):
        self.referrer_responses = list(referrer_responses or [])
        self.fingerprint_responses = list(fingerprint_responses or [])
        self.referrer_calls: list[str] = []
        self.fingerprint_calls: list = []

    async def lookup_by_referrer(self, token: str):
        self.referrer_calls.append(token)
        return self._next(self.referrer_responses)

    async def match_by_fingerprint(self, fingerprint):
        self.fingerprint_calls.append(fingerprint)
        return self._next(self.fingerprint_responses)

    @staticmethod
    def _next(responses):
        if not responses:
            return {}
        item = responses.pop(0) if len(responses) > 1 else responses[0]
        if isinstance(item, BaseException):
            raise item
        return item


class StaticReferrerSource:
    """Referrer source holding a fixed raw install referrer."""

    available = True

    def __init__(self, raw: str | None):
        self._token = parse_referrer_token(raw)

    async def get_referrer_token(self) -> str | None:
        return self._token


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def retry_controller(recording_sleep):
    return RetryController(attempt_timeout=1.0, sleep=recording_sleep)


@pytest.fixture
def ios_device_info():
    async def _provider() -> DeviceInfo:
        return DeviceInfo(model="iPhone14,2", os_version="17.1", vendor_id="idfv-1234")

    return _provider


@pytest.fixture
def android_collector():
    async def _provider() -> DeviceInfo:
        return DeviceInfo(model="SM-G991B", os_version="13")

    return FingerprintCollector(
        Platform.ANDROID,
        device_info_provider=_provider,
        locale_provider=lambda: "de_DE",
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def make_transport():
    return FakeTransport


@pytest.fixture
def static_referrer():
    return StaticReferrerSource
