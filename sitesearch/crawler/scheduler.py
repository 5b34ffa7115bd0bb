"""
Indexing scheduler: owns the per-site crawl workers, the run state and
cancellation, and re-indexes single pages on demand.
"""

import asyncio
import logging
from enum import Enum
from typing import Dict, List, Optional

from .fetcher import PageFetcher
from .parser import ContentParser
from .url_frontier import in_site, path_of
from .worker import PageIndexer, PageLocks, SiteCrawler
from ..errors import AlreadyRunningError, NotRunningError, OutOfScopeError
from ..search.lemmatizer import Lemmatizer
from ..storage.database import IndexStore
from ..storage.models import Site, SiteStatus
from ..utils.config import Config, SiteConfig
from ..utils.monitoring import MetricsCollector, get_metrics


class RunState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"


class IndexingScheduler:
    """
    Coordinates one SiteCrawler task per configured site.

    Start and stop are guarded transitions of ``state``; workers receive the
    run's cancellation event when they are spawned.
    """

    def __init__(self, config: Config, store: IndexStore, fetcher: PageFetcher,
                 lemmatizer: Lemmatizer, parser: Optional[ContentParser] = None,
                 metrics: Optional[MetricsCollector] = None):
        self.config = config
        self.sites: List[SiteConfig] = config.sites
        self.store = store
        self.fetcher = fetcher
        self.metrics = metrics or get_metrics()
        self.logger = logging.getLogger(__name__)

        self.page_locks = PageLocks()
        self.indexer = PageIndexer(parser or ContentParser(), lemmatizer, store,
                                   self.page_locks, self.metrics)

        self.state = RunState.IDLE
        self.workers: Dict[str, asyncio.Task] = {}
        self._run_id = 0
        self._cancel_event: Optional[asyncio.Event] = None
        self._started = asyncio.Event()
        self._started.set()
        self._supervisor: Optional[asyncio.Task] = None
        self._single_page_jobs = 0

    def is_running(self) -> bool:
        """True while a crawl run has workers that have not exited."""
        if self.state is RunState.IDLE:
            return False
        if not self._started.is_set():
            return True
        return any(not task.done() for task in self.workers.values())

    async def start_indexing(self):
        """
        Reset every configured site and launch its crawler in the background.

        Raises:
            AlreadyRunningError: a crawl or a single-page re-index is in progress
        """
        if self.is_running() or self._single_page_jobs:
            raise AlreadyRunningError()

        # Claim the run before the first await so concurrent starts are rejected
        self.state = RunState.RUNNING
        self._run_id += 1
        run_id = self._run_id
        self._started = asyncio.Event()
        cancel_event = asyncio.Event()
        self._cancel_event = cancel_event
        self.workers = {}
        self.page_locks.clear()

        try:
            sites = []
            for site_config in self.sites:
                site = Site(url=site_config.url, name=site_config.name)
                sites.append(await self.store.reset_site(site))
                self.logger.info(f"Reset site {site.url}")
        except Exception:
            self.state = RunState.IDLE
            self._started.set()
            raise

        for site in sites:
            self.workers[site.url] = asyncio.create_task(
                self._run_worker(site, cancel_event), name=f"crawl {site.url}"
            )
        self._started.set()
        self._supervisor = asyncio.create_task(self._supervise(run_id))
        self.logger.info(f"Started indexing {len(sites)} sites")

    async def _run_worker(self, site: Site, cancel_event: asyncio.Event) -> SiteStatus:
        crawler = SiteCrawler(site, self.fetcher, self.indexer, self.store, cancel_event,
                              self.config.crawler.max_pages_per_site)
        self.metrics.active_workers.inc()
        try:
            return await crawler.run()
        finally:
            self.metrics.active_workers.dec()

    async def _supervise(self, run_id: int):
        results = await asyncio.gather(*self.workers.values(), return_exceptions=True)
        for url, result in zip(list(self.workers), results):
            if isinstance(result, BaseException):
                self.logger.error(f"Crawler for {url} exited with {result!r}")
        if self._run_id == run_id and self.state is RunState.RUNNING:
            self.state = RunState.IDLE
            self.logger.info("Indexing finished")

    async def stop_indexing(self):
        """
        Request cancellation and wait for every worker to exit.

        Raises:
            NotRunningError: no crawl is running
        """
        if not self.is_running():
            raise NotRunningError()

        self.logger.info("Stopping indexing...")
        self.state = RunState.STOPPING
        self._cancel_event.set()
        await self._started.wait()
        await asyncio.gather(*self.workers.values(), return_exceptions=True)
        self.state = RunState.IDLE
        self.logger.info("Indexing stopped")

    async def wait_until_finished(self):
        """Wait for the current crawl run (if any) to finish."""
        await self._started.wait()
        if self.workers:
            await asyncio.gather(*self.workers.values(), return_exceptions=True)
        if self._supervisor:
            await self._supervisor

    def site_for(self, url: str) -> Optional[SiteConfig]:
        """Configured site whose root URL covers ``url``."""
        for site_config in self.sites:
            if in_site(site_config.url, url):
                return site_config
        return None

    async def index_page(self, url: str):
        """
        Fetch and re-index a single page, leaving the rest of the corpus untouched.

        Raises:
            AlreadyRunningError: a full crawl is running
            OutOfScopeError: the URL does not belong to a configured site
            FetchError: the page could not be fetched
        """
        if self.is_running():
            raise AlreadyRunningError()

        site_config = self.site_for(url)
        if site_config is None:
            raise OutOfScopeError(url)

        self._single_page_jobs += 1
        try:
            site = await self.store.get_site(site_config.url)
            if site is None:
                site = Site(url=site_config.url, name=site_config.name,
                            status=SiteStatus.INDEXED)
                await self.store.save_site(site)

            path = path_of(url)
            result = await self.fetcher.fetch(url, site)
            await self.indexer.index(site, path, result)
            self.logger.info(f"Re-indexed {url} ({result.status_code})")
        finally:
            self._single_page_jobs -= 1
