"""
Per-site crawl worker and the page indexing step it shares with single-page
re-indexing.
"""

import asyncio
import logging
from typing import Dict, Optional, Tuple

from .fetcher import FetchResult, PageFetcher
from .parser import ContentParser, ParsedContent
from .url_frontier import SiteFrontier, origin_of, path_of
from ..errors import FetchError, FetchErrorKind
from ..search.lemmatizer import Lemmatizer
from ..storage.database import IndexStore
from ..storage.models import Page, Site, SiteStatus
from ..utils.logger import get_crawler_logger
from ..utils.monitoring import MetricsCollector, get_metrics


class PageLocks:
    """One asyncio.Lock per (site, path): at most one writer per page."""

    def __init__(self):
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = {}

    def lock(self, site_url: str, path: str) -> asyncio.Lock:
        return self._locks.setdefault((site_url, path), asyncio.Lock())

    def clear(self):
        self._locks = {k: v for k, v in self._locks.items() if v.locked()}

    def __len__(self):
        return len(self._locks)


class PageIndexer:
    """Turns a fetched page into a stored Page plus its lemma counts."""

    def __init__(self, parser: ContentParser, lemmatizer: Lemmatizer, store: IndexStore,
                 locks: PageLocks, metrics: Optional[MetricsCollector] = None):
        self.parser = parser
        self.lemmatizer = lemmatizer
        self.store = store
        self.locks = locks
        self.metrics = metrics or get_metrics()
        self.logger = logging.getLogger(__name__)

    async def index(self, site: Site, path: str, result: FetchResult) -> ParsedContent:
        """
        Store the page at ``path`` replacing any previous version. Pages that
        answered with an error code are stored without index entries.
        """
        parsed = self.parser.parse(self._base_url(site, path, result), result.content)
        page = Page(
            site_url=site.url,
            path=path,
            code=result.status_code,
            content=result.content,
            title=parsed.title,
            text=parsed.text
        )

        lemmas = {}
        if result.status_code < 400:
            lemmas = self.lemmatizer.lemmatize(f"{parsed.title} {parsed.text}")
        else:
            parsed.links = []

        async with self.locks.lock(site.url, path):
            stored = await self.store.replace_page(page, lemmas)
        await self.store.touch_site(site.url)

        self.metrics.pages_indexed.inc()
        self.logger.debug(f"Indexed {site.url}{path} as page {stored.id}: "
                          f"code={stored.code}, {len(lemmas)} lemmas")
        return parsed

    def _base_url(self, site: Site, path: str, result: FetchResult) -> str:
        """
        URL relative links are resolved against. A redirect that leaves the
        site's origin falls back to the requested URL so links stay on the site.
        """
        if origin_of(result.url) == origin_of(site.url):
            return result.url
        requested = f"{origin_of(site.url)}{path}"
        self.logger.warning(f"{requested} redirected to {result.url}, "
                            f"resolving its links against {requested}")
        return requested


class SiteCrawler:
    """
    Crawls one site breadth-first until its frontier is exhausted, the
    connection fails or cancellation is requested.
    """

    def __init__(self, site: Site, fetcher: PageFetcher, indexer: PageIndexer,
                 store: IndexStore, cancel_event: asyncio.Event, max_pages: int = 0):
        self.site = site
        self.fetcher = fetcher
        self.indexer = indexer
        self.store = store
        self.cancel_event = cancel_event
        self.max_pages = max_pages
        self.frontier = SiteFrontier(site.url, path_of(site.url))
        self.pages_crawled = 0
        self.cancelled = False
        self.logger = get_crawler_logger(__name__, site=site.name)

    async def run(self) -> SiteStatus:
        """Crawl the site and return its final status."""
        self.logger.info(f"Crawl started at {self.site.url}")
        try:
            await self._crawl()
        except Exception as e:
            self.logger.exception(f"Crawl crashed: {e}")
            self.site.mark(SiteStatus.FAILED, f"Indexing error: {e}")
            await self.store.save_site(self.site)
            return self.site.status

        if self.cancelled:
            self.logger.info(f"Crawl stopped after {self.pages_crawled} pages")
        elif self.site.status is not SiteStatus.FAILED:
            self.site.mark(SiteStatus.INDEXED)
            await self.store.save_site(self.site)
            self.logger.info(f"Crawl finished: {self.pages_crawled} pages")
        return self.site.status

    async def _crawl(self):
        while True:
            if self.cancel_event.is_set():
                self.cancelled = True
                return

            path = self.frontier.pop()
            if path is None:
                return

            if self.max_pages and self.pages_crawled >= self.max_pages:
                self.logger.info(f"Reached max pages limit: {self.max_pages}")
                return

            url = self.frontier.url_for(path)
            try:
                result = await self.fetcher.fetch(url, self.site, self.cancel_event)
            except FetchError as e:
                if e.kind is FetchErrorKind.NON_HTML:
                    self.logger.log_page_event(logging.DEBUG, url, f"Skipped: {e}")
                    continue
                if e.kind is FetchErrorKind.CANCELLED:
                    self.cancelled = True
                    return
                self.logger.warning(f"Stopping crawl, fetch of {url} failed: {e}")
                return

            self.pages_crawled += 1
            try:
                parsed = await self.indexer.index(self.site, path, result)
            except Exception as e:
                self.logger.log_page_event(logging.ERROR, url, f"Failed to index {url}: {e}",
                                           exc_info=True)
                continue

            added = self.frontier.add_urls(parsed.links)
            self.logger.log_page_event(
                logging.DEBUG, url,
                f"Crawled {url} ({result.status_code}), queued {added} new paths"
            )
