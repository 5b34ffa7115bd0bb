"""
Page fetcher with politeness delay, request timeout and failure classification.
"""

import asyncio
import aiohttp
import logging
import random
import time
from typing import Optional
from dataclasses import dataclass
from aiohttp import ClientSession, ClientTimeout, ClientError

from ..errors import FetchError, FetchErrorKind
from ..storage.database import IndexStore
from ..storage.models import Site, SiteStatus
from ..utils.config import CrawlerConfig
from ..utils.monitoring import MetricsCollector, get_metrics


HTML_CONTENT_TYPES = ('text/html', 'application/xhtml+xml')


@dataclass
class FetchResult:
    """Result of a successful HTTP exchange (any status code)."""
    url: str
    status_code: int
    content: str = ""
    content_type: Optional[str] = None
    fetch_time: float = 0.0


class PageFetcher:
    """
    Fetches single pages for the crawler.

    A connection failure or timeout marks the owning site FAILED in the
    store and raises ``FetchError``; it never retries.
    """

    def __init__(self, config: CrawlerConfig, store: IndexStore,
                 metrics: Optional[MetricsCollector] = None):
        self.config = config
        self.store = store
        self.metrics = metrics or get_metrics()
        self.logger = logging.getLogger(__name__)
        self.session: Optional[ClientSession] = None

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self):
        """Initialize the HTTP session."""
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=ClientTimeout(total=self.config.request_timeout),
                headers={
                    'User-Agent': self.config.user_agent,
                    'Referer': self.config.referrer
                }
            )
            self.logger.info("PageFetcher session started")

    async def close(self):
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.info("PageFetcher session closed")

    def politeness_delay(self) -> float:
        return self.config.delay_base + random.uniform(0, self.config.delay_jitter)

    async def _sleep_politely(self, cancel_event: Optional[asyncio.Event]):
        """
        Wait before a request while a crawl is running.
        Returns immediately once cancellation has been requested.
        """
        if cancel_event is None or cancel_event.is_set():
            return

        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=self.politeness_delay())
        except asyncio.TimeoutError:
            pass

    async def fetch(self, url: str, site: Site,
                    cancel_event: Optional[asyncio.Event] = None) -> FetchResult:
        """
        Fetch a single URL.

        Args:
            url: The URL to fetch
            site: The site the page belongs to; marked FAILED on connection errors
            cancel_event: Crawl cancellation event; the politeness delay is
                only applied when one is given, and no request is sent once it is set

        Returns:
            FetchResult with the status code and decoded body

        Raises:
            FetchError: on connection failure/timeout, non-HTML content, or when
                cancellation is requested before the request is sent
        """
        await self._sleep_politely(cancel_event)
        if cancel_event is not None and cancel_event.is_set():
            raise FetchError(url, FetchErrorKind.CANCELLED, "Indexing stopped by user")
        await self.start()

        start_time = time.monotonic()
        try:
            async with self.session.get(url) as response:
                content_type = response.headers.get('content-type', '').lower()

                if response.status < 400 and not self._is_html(content_type):
                    self.metrics.record_fetch_error(FetchErrorKind.NON_HTML.value)
                    self.logger.debug(f"Skipping non-HTML content: {url} ({content_type})")
                    raise FetchError(url, FetchErrorKind.NON_HTML,
                                     f"Non-HTML content type: {content_type}")

                content = await self._read_content_safely(response)
                result = FetchResult(
                    url=str(response.url),
                    status_code=response.status,
                    content=content,
                    content_type=content_type,
                    fetch_time=time.monotonic() - start_time
                )

        except (asyncio.TimeoutError, ClientError) as e:
            self.metrics.record_fetch_error(FetchErrorKind.CONNECTION_FAILED.value)
            self.logger.warning(f"Connection error for site \"{site.name}\" by url {url}: "
                                f"{type(e).__name__} {e}")
            await self._mark_site_failed(site)
            raise FetchError(url, FetchErrorKind.CONNECTION_FAILED,
                             self.config.connection_error_message) from e

        self.metrics.record_fetch(result.status_code, result.fetch_time)
        self.logger.debug(f"Fetched {url}: {result.status_code} ({len(result.content)} chars)")
        return result

    async def _mark_site_failed(self, site: Site):
        site.mark(SiteStatus.FAILED, self.config.connection_error_message)
        await self.store.save_site(site)

    @staticmethod
    def _is_html(content_type: str) -> bool:
        # Servers that omit the header are given the benefit of the doubt
        if not content_type:
            return True
        return any(html_type in content_type for html_type in HTML_CONTENT_TYPES)

    async def _read_content_safely(self, response: aiohttp.ClientResponse) -> str:
        """
        Read the body up to ``max_content_bytes`` and decode it.
        Oversized bodies are truncated.
        """
        max_size = self.config.max_content_bytes
        content_bytes = b''
        async for chunk in response.content.iter_chunked(8192):
            content_bytes += chunk
            if len(content_bytes) > max_size:
                self.logger.warning(f"Content exceeded size limit, truncating: {response.url}")
                content_bytes = content_bytes[:max_size]
                break

        encoding = response.charset or 'utf-8'
        try:
            return content_bytes.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            return content_bytes.decode('utf-8', errors='replace')
