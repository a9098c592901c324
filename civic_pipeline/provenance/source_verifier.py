"""HTTP reachability checks for citation sources.

A source is checked with a HEAD request, falling back to GET for servers that
refuse HEAD (405/501). Transient transport failures are retried with
exponential backoff. The verifier never raises for network problems or bad
URLs: they are recorded in ``SourceVerification.error`` with status 0.
"""

from datetime import datetime
from typing import Optional

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from civic_pipeline.data_management.schemas.citation_schema import (
    SourceVerification,
    utc_now,
)
from civic_pipeline.utils.logging import get_structured_logger

HEAD_UNSUPPORTED = (405, 501)
SUPPORTED_SCHEMES = ("http", "https")


class SourceVerifier:
    """
    Checks whether source URLs are still reachable.

    Usage:
        verifier = SourceVerifier()
        result = await verifier.verify("https://www.example-council.gov.uk/budget")
        await verifier.close()

    Attributes:
        timeout: Per-request timeout in seconds
        retries: Attempts per URL on transport errors
        user_agent: User-Agent header sent with every check
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
        user_agent: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        backoff_multiplier: float = 1.0,
        backoff_max: float = 10.0,
    ) -> None:
        """
        Initialize the verifier.

        Args:
            timeout: Request timeout (defaults to settings)
            retries: Attempts on transport errors (defaults to settings)
            user_agent: User-Agent header (defaults to settings)
            client: Pre-built httpx client, e.g. with a mock transport
            backoff_multiplier: Exponential backoff multiplier in seconds
            backoff_max: Upper bound of a single backoff wait
        """
        from civic_pipeline.config.settings import settings

        self.timeout = timeout if timeout is not None else settings.verification_timeout_seconds
        self.retries = retries if retries is not None else settings.verification_retries
        self.user_agent = user_agent or settings.user_agent
        self.backoff_multiplier = backoff_multiplier
        self.backoff_max = backoff_max

        self._client = client
        self._owns_client = client is None
        self._logger = get_structured_logger("source_verifier")

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
                headers={"User-Agent": self.user_agent},
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    async def _request(self, url: str) -> httpx.Response:
        client = await self._get_client()
        response = await client.head(url, follow_redirects=True)
        if response.status_code in HEAD_UNSUPPORTED:
            response = await client.get(url, follow_redirects=True)
        return response

    async def _request_with_retry(self, url: str) -> httpx.Response:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.retries),
            wait=wait_exponential(multiplier=self.backoff_multiplier, max=self.backoff_max),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        ):
            with attempt:
                return await self._request(url)
        raise RuntimeError("unreachable")

    def _failure(self, url: str, checked_at: datetime, message: str) -> SourceVerification:
        self._logger.warning("source_unreachable", url=url, error=message)
        return SourceVerification(
            accessible=False,
            status=0,
            last_checked=checked_at,
            error=message,
        )

    async def verify(self, url: str) -> SourceVerification:
        """
        Check a single URL.

        Returns:
            SourceVerification; ``accessible`` is True only for 2xx responses.
            Malformed or non-http(s) URLs are reported with status 0.
        """
        checked_at = utc_now()

        try:
            scheme = httpx.URL(url).scheme
        except (httpx.InvalidURL, ValueError) as e:
            return self._failure(url, checked_at, str(e) or type(e).__name__)
        if scheme not in SUPPORTED_SCHEMES:
            return self._failure(url, checked_at, f"unsupported URL scheme: {scheme or 'none'}")

        try:
            response = await self._request_with_retry(url)
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            return self._failure(url, checked_at, str(e) or type(e).__name__)

        redirect_url = str(response.url) if response.history else None
        result = SourceVerification(
            accessible=response.is_success,
            status=response.status_code,
            last_checked=checked_at,
            redirect_url=redirect_url,
        )
        self._logger.debug(
            "source_checked",
            url=url,
            status=response.status_code,
            accessible=result.accessible,
            redirected=redirect_url is not None,
        )
        return result

    async def close(self) -> None:
        """Close the HTTP client if this verifier created it."""
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
