"""HTTP client for the per-platform scraper functions.

Each platform is served by a remote function (``fetch-youtube-analytics``,
...) that takes ``{"url": ...}`` and answers with ``{views, engagement, likes,
comments, shares, rate?, analytics_metadata?}``.  Every failure is raised as a
:class:`ScrapeError` carrying the provider's own message so that quota
exhaustion can be recognized by the retry policy.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from analytics_refresh.domain.errors import ScrapeError
from analytics_refresh.domain.types import Platform
from analytics_refresh.scrapers.profiles import PlatformProfiles

logger = structlog.get_logger()

_MAX_ERROR_TEXT = 500


def _error_message(response: httpx.Response) -> str:
    """Extract a readable error message from a failed function response."""
    detail: str | None = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        value = body.get("error") or body.get("message")
        if value:
            detail = str(value)
    if detail is None:
        detail = response.text[:_MAX_ERROR_TEXT] or response.reason_phrase
    return f"HTTP {response.status_code}: {detail}"


class ScraperClient:
    """Invokes the scraper function for one platform and URL.

    Args:
        base_url: Base URL of the functions host (``/functions/v1/<name>`` is appended).
        api_key: Bearer token for the functions host.
        profiles: Platform profiles providing each platform's function name.
        timeout: Per-call timeout in seconds.
        http_client: Optional shared ``httpx.AsyncClient``.  When omitted a
            short-lived client is opened per call.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        profiles: PlatformProfiles,
        timeout: float = 120.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._profiles = profiles
        self._timeout = timeout
        self._http_client = http_client

    def endpoint_for(self, platform: Platform) -> str:
        """Return the function URL invoked for *platform*."""
        function_name = self._profiles.for_platform(platform).function_name
        return f"{self._base_url}/functions/v1/{function_name}"

    async def _post(self, endpoint: str, url: str) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        if self._http_client is not None:
            return await self._http_client.post(
                endpoint, json={"url": url}, headers=headers, timeout=self._timeout,
            )
        async with httpx.AsyncClient() as client:
            return await client.post(
                endpoint, json={"url": url}, headers=headers, timeout=self._timeout,
            )

    async def fetch(self, platform: Platform, url: str) -> dict[str, Any]:
        """Fetch fresh metrics for one content URL.

        Args:
            platform: The platform the URL belongs to.
            url: The canonical content URL.

        Returns:
            The scraper's metrics payload.

        Raises:
            ScrapeError: On transport failure, non-2xx status, a non-object
                body, or an ``error`` field in the body.
        """
        endpoint = self.endpoint_for(platform)
        try:
            response = await self._post(endpoint, url)
        except httpx.HTTPError as exc:
            raise ScrapeError(platform, url, f"{type(exc).__name__}: {exc}") from exc

        if response.is_error:
            raise ScrapeError(platform, url, _error_message(response))

        try:
            body = response.json()
        except ValueError as exc:
            raise ScrapeError(platform, url, "Scraper returned a non-JSON body") from exc

        if not isinstance(body, dict):
            raise ScrapeError(platform, url, "Scraper returned an unexpected payload")
        if body.get("error"):
            raise ScrapeError(platform, url, str(body["error"]))

        logger.debug("Scraped content URL", platform=platform, url=url, views=body.get("views"))
        return body
