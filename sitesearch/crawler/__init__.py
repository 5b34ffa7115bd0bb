"""
Crawler components: fetching, parsing, per-site workers and the scheduler.
"""

from .url_frontier import SiteFrontier
from .fetcher import PageFetcher, FetchResult
from .parser import ContentParser, ParsedContent
from .worker import PageIndexer, SiteCrawler
from .scheduler import IndexingScheduler, RunState

__all__ = [
    'SiteFrontier',
    'PageFetcher', 'FetchResult',
    'ContentParser', 'ParsedContent',
    'PageIndexer', 'SiteCrawler',
    'IndexingScheduler', 'RunState'
]
