"""
Response normalizer for link-matching endpoints.

Converts raw backend JSON into a canonical MatchResult. The backend has shipped
two response shapes and both are accepted without configuration:

    wrapped: {"success": true, "match": {...} | null}
    flat:    {...fields directly...}

The wrapped/flat tolerance lives only here and can be removed once the backend
emits a single shape. normalize_match_response never raises: schema drift
degrades to an unmatched result.
"""

from datetime import datetime
from typing import Any

from deferred_attribution.infrastructure.observability.logging import get_logger
from deferred_attribution.models.domain.match_domain import (
    MAX_SCORE,
    Confidence,
    MatchMethod,
    MatchResult,
)

logger = get_logger(__name__)


class PayloadTypeError(ValueError):
    """A payload field has a type the client cannot interpret."""


def normalize_match_response(raw: Any, method: MatchMethod) -> MatchResult:
    """
    Normalize a raw link-match response.

    Args:
        raw: Decoded JSON body (any type)
        method: Strategy that produced the response, stamped onto the result

    Returns:
        MatchResult: Canonical result, matched=False for anything unusable
    """
    try:
        payload = _select_payload(raw)
        if payload is None:
            return MatchResult.no_match(method)
        return _build_result(payload, method)
    except Exception as e:
        logger.warning(
            "Discarding malformed match response",
            method=method.value,
            error_type=type(e).__name__,
            error=str(e),
        )
        return MatchResult.no_match(method)


def _select_payload(raw: Any) -> dict | None:
    """Pick the object holding match fields, or None when there is no match."""
    if not isinstance(raw, dict):
        raise PayloadTypeError(f"expected JSON object, got {type(raw).__name__}")

    if "match" in raw and isinstance(raw.get("success"), bool):
        if not raw["success"]:
            return None
        match = raw["match"]
        if match is None:
            return None
        if not isinstance(match, dict):
            raise PayloadTypeError("'match' must be an object")
        return match

    return raw


def _build_result(payload: dict, method: MatchMethod) -> MatchResult:
    deep_link_data = payload.get("deepLinkData")
    if deep_link_data is None:
        deep_link_data = {}
    elif not isinstance(deep_link_data, dict):
        raise PayloadTypeError("'deepLinkData' must be an object")

    deep_link_url = _optional_str(deep_link_data, "deepLinkUrl")
    if deep_link_url is None:
        deep_link_url = _optional_str(payload, "deepLinkUrl")

    return MatchResult(
        matched=_matched_flag(payload, deep_link_url),
        method=method,
        confidence=_confidence(payload.get("confidence")),
        score=_score(payload.get("score")),
        link_id=_optional_str(payload, "linkId"),
        short_code=_optional_str(payload, "shortCode"),
        platform_matched=_optional_str(payload, "platform"),
        deep_link_url=deep_link_url,
        path=_optional_str(deep_link_data, "path"),
        params=_params(deep_link_data.get("params")),
        already_claimed=_optional_bool(payload.get("alreadyClaimed")),
        claimed_at=_parse_timestamp(payload.get("claimedAt")),
        match_reasons=_match_reasons(payload),
    )


def _matched_flag(payload: dict, deep_link_url: str | None) -> bool:
    # Explicit flags win; otherwise a destination implies a match
    for key in ("found", "success"):
        value = payload.get(key)
        if value is None:
            continue
        if not isinstance(value, bool):
            raise PayloadTypeError(f"'{key}' must be a boolean")
        return value
    return deep_link_url is not None


def _confidence(value: Any) -> Confidence:
    if value is None:
        return Confidence.NONE
    if not isinstance(value, str):
        raise PayloadTypeError("'confidence' must be a string")
    try:
        return Confidence(value.strip().lower())
    except ValueError:
        logger.debug("Unknown confidence value", confidence=value)
        return Confidence.NONE


def _score(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        raise PayloadTypeError("'score' must be a number")
    if isinstance(value, float):
        if not value.is_integer():
            raise PayloadTypeError("'score' must be an integer")
        value = int(value)
    if not isinstance(value, int):
        raise PayloadTypeError("'score' must be a number")
    return max(0, min(MAX_SCORE, value))


def _optional_str(data: dict, key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        raise PayloadTypeError(f"'{key}' must be a string")
    if isinstance(value, int):
        return str(value)
    if not isinstance(value, str):
        raise PayloadTypeError(f"'{key}' must be a string")
    return value or None


def _optional_bool(value: Any) -> bool | None:
    return value if isinstance(value, bool) else None


def _params(value: Any) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise PayloadTypeError("'params' must be an object")

    params = {}
    for key, item in value.items():
        if item is None:
            continue
        if isinstance(item, bool):
            params[str(key)] = "true" if item else "false"
        elif isinstance(item, str | int | float):
            params[str(key)] = str(item)
        else:
            logger.debug("Dropping non-scalar deep link param", param=str(key))
    return params


def _parse_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _match_reasons(payload: dict) -> tuple[str, ...]:
    reasons = payload.get("matchReasons")
    if reasons is None:
        metadata = payload.get("metadata")
        if isinstance(metadata, dict):
            reasons = metadata.get("matchReasons")
    if not isinstance(reasons, list):
        return ()
    return tuple(reason for reason in reasons if isinstance(reason, str))
