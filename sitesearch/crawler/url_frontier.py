"""
Per-site URL frontier: a FIFO queue of paths plus the set of paths already
seen during the current crawl run.
"""

import logging
from collections import deque
from typing import Deque, Iterable, Optional, Set
from urllib.parse import urlparse


def origin_of(url: str) -> str:
    """``scheme://host[:port]`` of a URL, host lower-cased."""
    parsed = urlparse(url)
    return f"{parsed.scheme.lower()}://{parsed.netloc.lower()}"


def path_of(url: str) -> str:
    """Path (with query string) of a URL relative to its origin."""
    parsed = urlparse(url)
    path = parsed.path or '/'
    if parsed.query:
        path = f"{path}?{parsed.query}"
    return path


def in_site(site_url: str, url: str) -> bool:
    """
    True if ``url`` lies under ``site_url``: same origin and, when the site
    root has a path, a path equal to it or below it.
    """
    if origin_of(url) != origin_of(site_url):
        return False
    prefix = urlparse(site_url).path.rstrip('/')
    if not prefix:
        return True
    path = urlparse(url).path or '/'
    return path == prefix or path.startswith(prefix + '/')


class SiteFrontier:
    """
    Discovered-but-unvisited paths of one site.

    A path is accepted at most once per frontier instance, so each path is
    fetched at most once per crawl run.
    """

    def __init__(self, site_url: str, root_path: str = '/'):
        self.site_url = site_url.rstrip('/')
        self.origin = origin_of(self.site_url)
        self.logger = logging.getLogger(__name__)

        self._queue: Deque[str] = deque()
        self._seen: Set[str] = set()
        self.add_path(root_path)

    def in_scope(self, url: str) -> bool:
        return in_site(self.site_url, url)

    def add_path(self, path: str) -> bool:
        if path in self._seen:
            return False
        self._seen.add(path)
        self._queue.append(path)
        return True

    def add_url(self, url: str) -> bool:
        """
        Queue the path of ``url``.
        Returns True if it was added, False if out of scope or already seen.
        """
        if not self.in_scope(url):
            return False
        return self.add_path(path_of(url))

    def add_urls(self, urls: Iterable[str]) -> int:
        """Add multiple URLs. Returns count of added paths."""
        return sum(1 for url in urls if self.add_url(url))

    def pop(self) -> Optional[str]:
        """Next path to crawl, or None when the frontier is exhausted."""
        if not self._queue:
            return None
        return self._queue.popleft()

    def url_for(self, path: str) -> str:
        return f"{self.origin}{path}"

    def is_empty(self) -> bool:
        return not self._queue

    @property
    def queued(self) -> int:
        return len(self._queue)

    @property
    def seen(self) -> int:
        return len(self._seen)
