"""Error taxonomy for enrichment fetches.

Every failure that can happen while fetching a profile is one of these
exception types. Providers raise them, the enrichment manager recovers from
them by moving to the next provider, and the job queue turns whatever is
left into job state. Nothing in between catches them.

Key Components:
- EnrichmentError: Base class carrying a stable ``code`` and ``retryable`` flag
- Permanent kinds: NotConfigured, UnsupportedPlatform, UnsupportedProfileType,
  NoProviderAvailable, NoLink, InvalidCredentials
- Transient kinds: RateLimited, FetchTimeout, Upstream, NoData
"""

from typing import Any, ClassVar


class EnrichmentError(Exception):
    """Base class for all enrichment failures."""

    code: ClassVar[str] = "enrichment_error"
    retryable: ClassVar[bool] = False

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        platform: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.platform = platform
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class NotConfiguredError(EnrichmentError):
    """Provider or data source has no credential configured."""

    code = "not_configured"


class UnsupportedPlatformError(EnrichmentError):
    """Provider (or the fetcher) cannot handle the requested platform."""

    code = "unsupported_platform"


class UnsupportedProfileTypeError(EnrichmentError):
    """Profile reference is of a kind the provider cannot scrape."""

    code = "unsupported_profile_type"


class RateLimitedError(EnrichmentError):
    """Upstream throttled the request."""

    code = "rate_limited"
    retryable = True

    def __init__(self, message: str, *, retry_after: float | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class FetchTimeoutError(EnrichmentError):
    """Upstream call or actor poll loop exceeded its time budget."""

    code = "timeout"
    retryable = True


class UpstreamError(EnrichmentError):
    """Opaque upstream failure: non-2xx response, failed run, malformed payload."""

    code = "upstream_error"
    retryable = True

    def __init__(
        self,
        message: str,
        *,
        detail: str | None = None,
        status_code: int | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.detail = detail
        self.status_code = status_code


class NoDataError(EnrichmentError):
    """Upstream succeeded but returned nothing usable."""

    code = "no_data"
    retryable = True


class NoProviderAvailableError(EnrichmentError):
    """No registered, configured provider supports the platform."""

    code = "no_provider"


class NoLinkError(EnrichmentError):
    """Podcast has no stored profile for the platform."""

    code = "no_link"


class InvalidCredentialsError(EnrichmentError):
    """Credential is present but rejected by the upstream service."""

    code = "invalid_credentials"
