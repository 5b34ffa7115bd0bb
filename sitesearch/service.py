"""
Service facade exposing the five operations used by the front ends:
start/stop indexing, single-page re-index, search and statistics.
"""

import logging
from typing import Optional

from .crawler.fetcher import PageFetcher
from .crawler.parser import ContentParser
from .crawler.scheduler import IndexingScheduler
from .search.engine import SearchEngine, SearchResponse
from .search.lemmatizer import Lemmatizer
from .search.statistics import StatisticsResponse, StatisticsService
from .storage.database import IndexStore, create_index_store
from .utils.config import Config
from .utils.monitoring import MetricsCollector, get_metrics


class SearchService:
    """Wires configuration, storage, crawler and search together."""

    def __init__(self, config: Config, store: Optional[IndexStore] = None,
                 fetcher: Optional[PageFetcher] = None,
                 metrics: Optional[MetricsCollector] = None):
        self.config = config
        self.logger = logging.getLogger(__name__)
        self.metrics = metrics or get_metrics()

        self.store = store or create_index_store(config.storage)
        self.lemmatizer = Lemmatizer(config.lemmatizer.language,
                                     config.lemmatizer.min_word_length)
        self.fetcher = fetcher or PageFetcher(config.crawler, self.store, self.metrics)
        self.scheduler = IndexingScheduler(config, self.store, self.fetcher, self.lemmatizer,
                                           ContentParser(), self.metrics)
        self.search_engine = SearchEngine(self.store, self.lemmatizer, config.search,
                                          self.metrics)
        self.statistics = StatisticsService(config.sites, self.store,
                                            self.scheduler.is_running)

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def initialize(self):
        await self.store.initialize()
        self.logger.info("Search service initialized")

    async def close(self):
        """Stop a running crawl and release connections."""
        if self.scheduler.is_running():
            await self.scheduler.stop_indexing()
        await self.fetcher.close()
        await self.store.close()
        self.logger.info("Search service closed")

    async def start_indexing(self):
        await self.scheduler.start_indexing()

    async def stop_indexing(self):
        await self.scheduler.stop_indexing()

    def is_running(self) -> bool:
        return self.scheduler.is_running()

    async def wait_until_finished(self):
        await self.scheduler.wait_until_finished()

    async def index_page(self, url: str):
        await self.scheduler.index_page(url)

    async def search(self, query: str, site: Optional[str] = None,
                     offset: Optional[int] = None, limit: Optional[int] = None) -> SearchResponse:
        return await self.search_engine.search(query, site, offset, limit)

    async def get_statistics(self) -> StatisticsResponse:
        return await self.statistics.get_statistics()
