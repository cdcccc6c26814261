# models/domain/match_domain.py
"""
Match Domain Models
Canonical link-match result and the resolution outcome returned to the application.
MatchResult instances are produced only by the response normalizer.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

MAX_SCORE = 130


class MatchMethod(str, Enum):
    REFERRER = "referrer"
    FINGERPRINT = "fingerprint"


class Confidence(str, Enum):
    """
    Backend-assigned confidence bucket.
    - high: score >= 95
    - medium: 70-94
    - low: 50-69
    - none: < 50
    """

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"


ACCEPTED_CONFIDENCE = frozenset({Confidence.HIGH, Confidence.MEDIUM})


class MatchResult(BaseModel):
    """Domain model for a normalized link-match response."""

    model_config = ConfigDict(frozen=True)

    matched: bool = False
    method: MatchMethod
    confidence: Confidence = Confidence.NONE
    score: int = Field(default=0, ge=0, le=MAX_SCORE)
    link_id: str | None = None
    short_code: str | None = None
    platform_matched: str | None = None
    deep_link_url: str | None = None
    path: str | None = None
    params: dict[str, str] = Field(default_factory=dict)
    already_claimed: bool | None = None
    claimed_at: datetime | None = None
    match_reasons: tuple[str, ...] = ()

    @classmethod
    def no_match(cls, method: MatchMethod) -> "MatchResult":
        return cls(matched=False, method=method)

    @property
    def is_deterministic(self) -> bool:
        return self.method == MatchMethod.REFERRER

    @property
    def is_probabilistic(self) -> bool:
        return self.method == MatchMethod.FINGERPRINT

    @property
    def has_destination(self) -> bool:
        return bool(self.deep_link_url)

    def is_acceptable_confidence(self) -> bool:
        """Referrer matches are always reliable; fingerprint matches need high or medium."""
        if self.is_deterministic:
            return True
        return self.confidence in ACCEPTED_CONFIDENCE

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for telemetry payloads."""
        return {
            "matched": self.matched,
            "method": self.method.value,
            "confidence": self.confidence.value,
            "score": self.score,
            "link_id": self.link_id,
            "short_code": self.short_code,
            "platform_matched": self.platform_matched,
            "deep_link_url": self.deep_link_url,
            "path": self.path,
            "params": dict(self.params),
            "already_claimed": self.already_claimed,
            "claimed_at": self.claimed_at.isoformat() if self.claimed_at else None,
            "match_reasons": list(self.match_reasons),
        }


class OutcomeStatus(str, Enum):
    ACCEPTED = "accepted"
    NO_MATCH = "no_match"
    REJECTED_LOW_CONFIDENCE = "rejected_low_confidence"
    EXHAUSTED = "exhausted"


class ResolutionOutcome(BaseModel):
    """What the resolver hands back to the application layer."""

    model_config = ConfigDict(frozen=True)

    status: OutcomeStatus
    result: MatchResult | None = None  # kept for diagnostics when rejected
    error: str | None = None
    referrer_attempted: bool = False
    fingerprint_attempted: bool = False

    @property
    def accepted(self) -> bool:
        return self.status == OutcomeStatus.ACCEPTED

    @property
    def deep_link_url(self) -> str | None:
        """Destination to navigate to, only when the outcome was accepted."""
        if not self.accepted or self.result is None:
            return None
        return self.result.deep_link_url

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "accepted": self.accepted,
            "deep_link_url": self.deep_link_url,
            "result": self.result.to_dict() if self.result else None,
            "error": self.error,
            "referrer_attempted": self.referrer_attempted,
            "fingerprint_attempted": self.fingerprint_attempted,
        }
