"""Base connector module providing shared HTTP functionality for data sources.

This module defines the common plumbing every upstream data source uses:
lazy credential lookup through the settings store, an httpx client that can
be injected for tests, and one consistent mapping from HTTP failures onto the
enrichment error taxonomy.

Key Components:
- HttpSource: Base class for paid providers, free APIs and public page scrapers
- error_message_from: Extracts a human-readable message from an error payload

Status mapping applied by ``raise_for_status``:
- 429 -> RateLimitedError
- any other unexpected status -> UpstreamError (with the upstream message)
Transport mapping applied by ``request``:
- httpx.TimeoutException -> FetchTimeoutError
- httpx.TransportError -> UpstreamError
"""

from collections.abc import AsyncIterator
import contextlib
from typing import Any, ClassVar

import httpx

from podtrack.config import get_logger, settings
from podtrack.domain.errors import (
    FetchTimeoutError,
    NotConfiguredError,
    RateLimitedError,
    UpstreamError,
)
from podtrack.domain.repositories import SettingsStoreProtocol

logger = get_logger(__name__).bind(service="connectors")

_ERROR_MESSAGE_PATHS = (("message",), ("error", "message"), ("error",), ("detail",))


def error_message_from(response: httpx.Response) -> str:
    """Best-effort error message from an upstream error response."""
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200] or f"HTTP {response.status_code}"

    if isinstance(payload, dict):
        for path in _ERROR_MESSAGE_PATHS:
            value: Any = payload
            for key in path:
                value = value.get(key) if isinstance(value, dict) else None
            if isinstance(value, str) and value:
                return value
    return f"HTTP {response.status_code}"


class HttpSource:
    """Shared behaviour for anything that fetches profile data over HTTP.

    Subclasses set NAME and, if they need a credential, API_KEY_SETTING. The
    credential is read from the settings store on every call so key rotation
    needs no restart.
    """

    NAME: ClassVar[str] = ""
    API_KEY_SETTING: ClassVar[str] = ""

    def __init__(
        self,
        settings_store: SettingsStoreProtocol,
        *,
        http_client: httpx.AsyncClient | None = None,
        request_timeout: float | None = None,
        validate_timeout: float | None = None,
    ) -> None:
        self.settings_store = settings_store
        self._http_client = http_client
        self.request_timeout = (
            request_timeout
            if request_timeout is not None
            else settings.providers.request_timeout
        )
        self.validate_timeout = (
            validate_timeout
            if validate_timeout is not None
            else settings.providers.validate_timeout
        )

    @property
    def name(self) -> str:
        return self.NAME

    def get_api_key(self) -> str:
        if not self.API_KEY_SETTING:
            return ""
        return (self.settings_store.get_setting(self.API_KEY_SETTING) or "").strip()

    def is_configured(self) -> bool:
        """True iff the required credential is non-empty."""
        if not self.API_KEY_SETTING:
            return True
        return bool(self.get_api_key())

    def require_api_key(self, platform: str | None = None) -> str:
        api_key = self.get_api_key()
        if not api_key:
            raise NotConfiguredError(
                f"{self.NAME} credential '{self.API_KEY_SETTING}' is not configured",
                provider=self.NAME,
                platform=platform,
            )
        return api_key

    @contextlib.asynccontextmanager
    async def _client(self, timeout: float) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
            yield client

    async def request(
        self,
        method: str,
        url: str,
        *,
        platform: str | None = None,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send one request, translating transport failures into domain errors."""
        timeout = timeout if timeout is not None else self.request_timeout
        # Query params are not logged: they carry API keys
        logger.debug("{} {}", method, url, source=self.NAME, platform=platform)
        try:
            async with self._client(timeout) as client:
                return await client.request(method, url, timeout=timeout, **kwargs)
        except httpx.TimeoutException as e:
            raise FetchTimeoutError(
                f"{self.NAME} request timed out after {timeout:.0f}s",
                provider=self.NAME,
                platform=platform,
            ) from e
        except httpx.TransportError as e:
            raise UpstreamError(
                f"{self.NAME} request failed: {e}",
                detail=str(e),
                provider=self.NAME,
                platform=platform,
            ) from e

    def raise_for_status(
        self,
        response: httpx.Response,
        platform: str | None = None,
        expected: tuple[int, ...] = (200,),
    ) -> None:
        if response.status_code in expected:
            return

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitedError(
                f"{self.NAME} rate limit hit",
                retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
                provider=self.NAME,
                platform=platform,
            )

        message = error_message_from(response)
        label = f" ({platform})" if platform else ""
        raise UpstreamError(
            f"{self.NAME} API error{label}: {message}",
            detail=message,
            status_code=response.status_code,
            provider=self.NAME,
            platform=platform,
        )

    def parse_json(self, response: httpx.Response, platform: str | None = None) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(
                f"{self.NAME} returned a malformed payload",
                detail=response.text[:200],
                status_code=response.status_code,
                provider=self.NAME,
                platform=platform,
            ) from e
