"""
Content fetcher.

Retrieves a tracked page over HTTP with a per-request timeout and linear
backoff between attempts, and fingerprints the markup-free text for
change detection.
"""

import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from catalog_sync.core.config import Settings
from catalog_sync.errors import FetchError
from catalog_sync.services.text_normalizer import text_for_hashing
from catalog_sync.utils.content_hash import compute_content_hash, short_hash
from catalog_sync.utils.retry import RetryExhausted, RetryPolicy, Sleeper, linear_backoff, with_retry
from catalog_sync.utils.time import elapsed_ms

logger = logging.getLogger(__name__)

ACCEPT_HEADER = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"

# Transient failures worth another attempt; HTTP status errors are final.
RETRYABLE_ERRORS = (httpx.TransportError,)


@dataclass
class FetchResult:
    html: str
    content_hash: str
    content_length: int
    fetch_time_ms: int = 0


@dataclass
class RelatedLink:
    url: str
    text: str
    tag: str


class ContentFetcher:
    """HTTP fetcher for tracked source pages."""

    def __init__(
        self,
        settings: Settings,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Optional[Sleeper] = None,
    ):
        self.settings = settings
        self._client = client
        self._owns_client = client is None
        self._sleep = sleep
        self.policy = RetryPolicy(
            max_attempts=settings.FETCH_MAX_ATTEMPTS,
            base_delay=settings.FETCH_RETRY_DELAY_SECONDS,
            backoff=linear_backoff,
        )

    @property
    def headers(self) -> dict:
        return {
            "User-Agent": self.settings.FETCH_USER_AGENT,
            "Accept": ACCEPT_HEADER,
            "Accept-Language": self.settings.FETCH_ACCEPT_LANGUAGE,
        }

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.settings.FETCH_TIMEOUT_SECONDS),
                follow_redirects=True,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def fetch(self, url: str) -> FetchResult:
        """
        Fetch a page and hash its visible text.

        Raises:
            FetchError: non-2xx response, redirect loop or malformed URL
                (immediately), or transport failure/timeout on the final attempt.
        """
        client = self._get_client()
        started = time.monotonic()
        logger.info("Fetching %s", url)

        async def attempt_fetch(attempt: int) -> httpx.Response:
            response = await client.get(
                url,
                headers=self.headers,
                timeout=self.settings.FETCH_TIMEOUT_SECONDS,
            )
            if not response.is_success:
                raise FetchError(
                    f"HTTP {response.status_code}: {response.reason_phrase}",
                    url=url,
                    status_code=response.status_code,
                )
            return response

        try:
            response = await with_retry(
                self.policy,
                attempt_fetch,
                retry_on=RETRYABLE_ERRORS,
                sleep=self._sleep,
                label=f"fetch {url}",
            )
        except RetryExhausted as exc:
            if isinstance(exc.last_error, httpx.TimeoutException):
                raise FetchError("Request timed out", url=url) from exc.last_error
            raise FetchError(f"Failed to fetch: {exc.last_error}", url=url) from exc.last_error
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            # Redirect loops, malformed URLs and decoding errors are not retried
            raise FetchError(f"Failed to fetch: {exc}", url=url) from exc

        html = response.text
        content_hash = compute_content_hash(text_for_hashing(html))
        elapsed = elapsed_ms(started)
        logger.info(
            "Fetched %s: %d chars, hash=%s, %dms",
            url, len(html), short_hash(content_hash), elapsed,
        )
        return FetchResult(
            html=html,
            content_hash=content_hash,
            content_length=len(html),
            fetch_time_ms=elapsed,
        )

    @staticmethod
    def find_related_links(html: str, base_url: str, keywords: Sequence[str]) -> List[RelatedLink]:
        """
        Links (anchors and iframes) whose text or target mentions a keyword.

        Targets are resolved against base_url; each URL is returned once.
        """
        soup = BeautifulSoup(html or "", "html.parser")
        needles = [keyword.lower() for keyword in keywords if keyword]
        seen = set()
        links: List[RelatedLink] = []

        for element in soup.find_all(["a", "iframe"]):
            target = element.get("href") if element.name == "a" else element.get("src")
            if not target:
                continue
            target = target.strip()
            if not target or target.startswith(("#", "javascript:", "mailto:", "tel:")):
                continue

            text = element.get_text(" ", strip=True) if element.name == "a" else (element.get("title") or "")
            haystack = f"{text} {target}".lower()
            if needles and not any(needle in haystack for needle in needles):
                continue

            absolute = urljoin(base_url, target)
            if absolute in seen:
                continue
            seen.add(absolute)
            links.append(RelatedLink(url=absolute, text=text, tag=element.name))

        return links
