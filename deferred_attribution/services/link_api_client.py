"""
Link-matching API client for deferred deep links.
Handles the referrer lookup and fingerprint match endpoints, bearer
authentication and error mapping. Retries are owned by the RetryController;
each call here is exactly one HTTP request.
"""

from typing import Any, Protocol
from urllib.parse import quote

import httpx

from deferred_attribution.config import settings
from deferred_attribution.infrastructure.observability.logging import get_logger, redact
from deferred_attribution.models.domain.fingerprint_domain import DeviceFingerprint

logger = get_logger(__name__)

REFERRER_LOOKUP_PATH = "/api/v1/sdk/deferred-link/referrer/{token}"
FINGERPRINT_MATCH_PATH = "/api/v1/sdk/deferred-link"


class LinkApiError(Exception):
    """Custom exception for link-matching API errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code
        self.response_data = response_data or {}

    def __str__(self) -> str:
        message = super().__str__()
        if self.status_code is not None:
            return f"{message} (status: {self.status_code})"
        return message


class LinkMatchingTransport(Protocol):
    """Backend operations consumed by the attribution resolver."""

    async def lookup_by_referrer(self, token: str) -> Any: ...

    async def match_by_fingerprint(self, fingerprint: DeviceFingerprint) -> Any: ...


class LinkApiClient:
    """
    httpx-backed client for the link-matching backend.

    Raises LinkApiError for non-2xx responses and unparseable bodies; transport
    failures surface as httpx.RequestError.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = (base_url or settings.LINK_API_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.LINK_API_KEY
        self.timeout = timeout if timeout is not None else settings.LINK_API_REQUEST_TIMEOUT
        self._client = client or self._create_client()

    def _create_client(self) -> httpx.AsyncClient:
        """Create async HTTP client for the link API."""
        timeout = httpx.Timeout(self.timeout)
        limits = httpx.Limits(max_keepalive_connections=5, max_connections=10)
        return httpx.AsyncClient(timeout=timeout, limits=limits)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "LinkApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @property
    def headers(self) -> dict:
        """Request headers; Authorization only when an API key is configured."""
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _handle_api_response(self, response: httpx.Response, operation: str) -> Any:
        """
        Validate a link API response.

        Args:
            response: HTTP response from the link API
            operation: Operation name for logging

        Returns:
            Parsed JSON body

        Raises:
            LinkApiError: If the response is an error or not JSON
        """
        logger.debug(
            f"Link API {operation} response",
            status_code=response.status_code,
            response_size=len(response.content),
        )

        if response.is_success:
            try:
                return response.json() if response.content else {}
            except ValueError as e:
                logger.error(f"Failed to parse link API {operation} response", error=str(e))
                raise LinkApiError(
                    f"Invalid response format: {e}", status_code=response.status_code
                ) from e

        try:
            error_data = response.json() if response.content else {}
        except ValueError:
            error_data = {}
        if not isinstance(error_data, dict):
            error_data = {}

        error_info = error_data.get("error")
        if isinstance(error_info, dict):
            error_code = error_info.get("code")
            error_message = error_info.get("message")
        else:
            error_code = None
            error_message = error_info if isinstance(error_info, str) else error_data.get("message")

        log = logger.info if response.status_code == 404 else logger.warning
        log(
            f"Link API {operation} failed",
            status_code=response.status_code,
            error_code=error_code,
            error_message=error_message,
        )

        raise LinkApiError(
            error_message or f"Link API error (HTTP {response.status_code})",
            error_code=str(error_code) if error_code is not None else None,
            status_code=response.status_code,
            response_data=error_data,
        )

    async def lookup_by_referrer(self, token: str) -> Any:
        """
        Look up a deferred link by install referrer token.

        Args:
            token: Attribution token parsed from the install referrer

        Returns:
            Raw JSON body (wrapped or flat shape)

        Raises:
            LinkApiError: On non-2xx or unparseable response
            httpx.RequestError: On transport failure
        """
        url = self.base_url + REFERRER_LOOKUP_PATH.format(token=quote(token, safe=""))
        logger.info("Looking up deferred link by referrer", token=redact(token))

        response = await self._client.get(url, headers=self.headers)
        return self._handle_api_response(response, "lookup_by_referrer")

    async def match_by_fingerprint(self, fingerprint: DeviceFingerprint) -> Any:
        """
        Ask the backend for a probabilistic match on a device fingerprint.

        Args:
            fingerprint: Freshly collected device fingerprint

        Returns:
            Raw JSON body (wrapped or flat shape)

        Raises:
            LinkApiError: On non-2xx or unparseable response
            httpx.RequestError: On transport failure
        """
        url = self.base_url + FINGERPRINT_MATCH_PATH
        logger.info(
            "Matching deferred link by fingerprint",
            platform=fingerprint.platform.value,
            model=fingerprint.model,
        )

        response = await self._client.post(
            url, headers=self.headers, json=fingerprint.to_request_payload()
        )
        return self._handle_api_response(response, "match_by_fingerprint")

    async def health_check(self) -> dict[str, Any]:
        """
        Check link API configuration and reachability.

        Returns:
            Dict: Health status and configuration
        """
        health_data = {
            "healthy": True,
            "service": "link_api",
            "api_base_url": self.base_url,
            "request_timeout": self.timeout,
            "authenticated": bool(self.api_key),
            "supported_operations": ["lookup_by_referrer", "match_by_fingerprint"],
        }

        try:
            response = await self._client.head(self.base_url, timeout=5.0)
            health_data["api_connectivity"] = (
                "ok" if response.status_code < 500 else f"error_{response.status_code}"
            )
            health_data["healthy"] = response.status_code < 500
        except httpx.RequestError as e:
            health_data["api_connectivity"] = f"error_{type(e).__name__}"
            health_data["healthy"] = False

        return health_data
