"""HTTP page fetcher. Returns a FetchResult and never raises on network failure."""

import asyncio
import logging
from dataclasses import dataclass

import httpx

from carscout.config import get_settings
from carscout.errors import FetchError

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9,es;q=0.8",
}


@dataclass
class FetchResult:
    url: str
    ok: bool
    status_code: int | None = None
    content: str | None = None
    final_url: str | None = None
    error: str | None = None

    def raise_for_failure(self) -> "FetchResult":
        if not self.ok:
            raise FetchError(self.url, self.error or "unknown error")
        return self


class PageFetcher:
    """Fetches pages over a shared httpx.AsyncClient.

    Every request carries a hard timeout. Timeouts, transport errors and
    non-2xx responses come back as failed results.
    """

    def __init__(self, client: httpx.AsyncClient | None = None, settings=None):
        self.settings = settings or get_settings()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(follow_redirects=True)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def close(self):
        if self._owns_client:
            await self._client.aclose()

    async def fetch(
        self,
        url: str,
        timeout_ms: int | None = None,
        user_agent: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> FetchResult:
        timeout = (timeout_ms or self.settings.request_timeout_ms) / 1000
        request_headers = {
            **DEFAULT_HEADERS,
            "User-Agent": user_agent or self.settings.user_agent,
            **(headers or {}),
        }

        try:
            resp = await asyncio.wait_for(
                self._client.get(url, headers=request_headers, timeout=timeout),
                timeout=timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            return self._failure(url, f"timed out after {int(timeout * 1000)}ms")
        except httpx.HTTPError as e:
            return self._failure(url, f"{type(e).__name__}: {e}")

        if not resp.is_success:
            return self._failure(url, f"HTTP {resp.status_code}", status_code=resp.status_code)

        return FetchResult(
            url=url,
            ok=True,
            status_code=resp.status_code,
            content=resp.text,
            final_url=str(resp.url),
        )

    @staticmethod
    def _failure(url: str, reason: str, status_code: int | None = None) -> FetchResult:
        logger.warning(f"Fetch failed for {url}: {reason}")
        return FetchResult(url=url, ok=False, status_code=status_code, error=reason)
