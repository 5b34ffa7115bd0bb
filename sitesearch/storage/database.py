"""
Index storage layer: sites, pages, lemma frequencies and per-page lemma weights.
Supports in-memory, file-snapshot and Redis backends.
"""

import asyncio
import dataclasses
import json
import logging
import os
from collections import Counter
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import redis.asyncio as redis

from .models import Page, Site, SiteStatus, utcnow
from ..utils.config import StorageConfig


class DatabaseError(Exception):
    """Custom exception for storage operations."""
    pass


# (site_url, lemma) -> (stored frequency, recomputed frequency)
FrequencyMismatches = Dict[Tuple[str, str], Tuple[int, int]]


class IndexStore:
    """
    Abstract base class for index storage backends.

    ``replace_page``, ``delete_page`` and ``reset_site`` are atomic: the
    lemma frequency counters of a site always equal the number of its pages
    holding an index entry for the lemma.
    """

    async def initialize(self):
        raise NotImplementedError

    async def close(self):
        raise NotImplementedError

    async def get_site(self, url: str) -> Optional[Site]:
        raise NotImplementedError

    async def list_sites(self) -> List[Site]:
        raise NotImplementedError

    async def save_site(self, site: Site):
        """Insert or update a site record."""
        raise NotImplementedError

    async def update_site_status(self, url: str, status: SiteStatus,
                                 last_error: Optional[str] = None) -> Optional[Site]:
        """Set the status (and refresh the status time) of a stored site."""
        site = await self.get_site(url)
        if site is None:
            return None
        site.mark(status, last_error)
        await self.save_site(site)
        return site

    async def touch_site(self, url: str):
        """Refresh the status time of a site without changing its status."""
        site = await self.get_site(url)
        if site is not None:
            site.status_time = utcnow()
            await self.save_site(site)

    async def reset_site(self, site: Site) -> Site:
        """Remove all pages and index data of the site and mark it INDEXING."""
        raise NotImplementedError

    async def get_page(self, site_url: str, path: str) -> Optional[Page]:
        raise NotImplementedError

    async def get_pages(self, page_ids: Iterable[int]) -> List[Page]:
        """Pages for the given ids, in the same order, skipping unknown ids."""
        raise NotImplementedError

    async def replace_page(self, page: Page, lemmas: Dict[str, int]) -> Page:
        """
        Store the page and its lemma counts, replacing any previous version
        of the same (site, path). Returns the page with its id set.
        """
        raise NotImplementedError

    async def delete_page(self, site_url: str, path: str) -> bool:
        raise NotImplementedError

    async def page_lemmas(self, page_id: int) -> Dict[str, float]:
        raise NotImplementedError

    async def lemma_frequencies(self, lemmas: Iterable[str],
                                site_url: Optional[str] = None) -> Dict[str, int]:
        """Frequency of each lemma, summed over the sites in scope."""
        raise NotImplementedError

    async def pages_for_lemma(self, lemma: str,
                              site_url: Optional[str] = None) -> Dict[int, float]:
        """``{page_id: weight}`` of every page in scope containing the lemma."""
        raise NotImplementedError

    async def count_pages(self, site_url: Optional[str] = None) -> int:
        raise NotImplementedError

    async def count_lemmas(self, site_url: Optional[str] = None) -> int:
        raise NotImplementedError

    async def verify_frequencies(self, site_url: Optional[str] = None) -> FrequencyMismatches:
        """Recompute lemma frequencies by full scan and report mismatches."""
        raise NotImplementedError


def _weights(lemmas: Dict[str, int]) -> Dict[str, float]:
    return {lemma: float(count) for lemma, count in lemmas.items() if count > 0}


class MemoryIndexStore(IndexStore):
    """In-process storage backend for tests and single-process deployments."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._lock = asyncio.Lock()
        self._sites: Dict[str, Site] = {}
        self._pages: Dict[int, Page] = {}
        self._page_ids: Dict[Tuple[str, str], int] = {}
        self._page_lemmas: Dict[int, Dict[str, float]] = {}
        self._lemmas: Dict[str, Dict[str, int]] = {}
        self._postings: Dict[str, Dict[str, Dict[int, float]]] = {}
        self._next_page_id = 1

    async def initialize(self):
        self.logger.info("Memory index store initialized")

    async def close(self):
        pass

    def _scope(self, site_url: Optional[str]) -> List[str]:
        if site_url is None:
            return list(self._sites)
        return [site_url] if site_url in self._sites else []

    async def get_site(self, url: str) -> Optional[Site]:
        site = self._sites.get(url)
        return dataclasses.replace(site) if site else None

    async def list_sites(self) -> List[Site]:
        return [dataclasses.replace(site) for site in self._sites.values()]

    async def save_site(self, site: Site):
        async with self._lock:
            self._sites[site.url] = dataclasses.replace(site)
            self._lemmas.setdefault(site.url, {})
            self._postings.setdefault(site.url, {})

    async def reset_site(self, site: Site) -> Site:
        async with self._lock:
            for key in [key for key in self._page_ids if key[0] == site.url]:
                page_id = self._page_ids.pop(key)
                self._pages.pop(page_id, None)
                self._page_lemmas.pop(page_id, None)
            self._lemmas[site.url] = {}
            self._postings[site.url] = {}

            site.mark(SiteStatus.INDEXING)
            site.last_error = None
            self._sites[site.url] = dataclasses.replace(site)
        return site

    async def get_page(self, site_url: str, path: str) -> Optional[Page]:
        page_id = self._page_ids.get((site_url, path))
        if page_id is None:
            return None
        return dataclasses.replace(self._pages[page_id])

    async def get_pages(self, page_ids: Iterable[int]) -> List[Page]:
        return [dataclasses.replace(self._pages[page_id])
                for page_id in page_ids if page_id in self._pages]

    def _drop_index(self, page_id: int, site_url: str):
        frequencies = self._lemmas.setdefault(site_url, {})
        postings = self._postings.setdefault(site_url, {})

        for lemma in self._page_lemmas.pop(page_id, {}):
            pages = postings.get(lemma, {})
            pages.pop(page_id, None)
            if not pages:
                postings.pop(lemma, None)

            frequencies[lemma] = frequencies.get(lemma, 0) - 1
            if frequencies[lemma] <= 0:
                del frequencies[lemma]

    async def replace_page(self, page: Page, lemmas: Dict[str, int]) -> Page:
        async with self._lock:
            if page.site_url not in self._sites:
                raise DatabaseError(f"Unknown site: {page.site_url}")

            page_id = self._page_ids.get(page.key)
            if page_id is None:
                page_id = self._next_page_id
                self._next_page_id += 1
            else:
                self._drop_index(page_id, page.site_url)

            stored = dataclasses.replace(page, id=page_id)
            self._pages[page_id] = stored
            self._page_ids[page.key] = page_id

            weights = _weights(lemmas)
            self._page_lemmas[page_id] = weights
            frequencies = self._lemmas.setdefault(page.site_url, {})
            postings = self._postings.setdefault(page.site_url, {})
            for lemma, weight in weights.items():
                postings.setdefault(lemma, {})[page_id] = weight
                frequencies[lemma] = frequencies.get(lemma, 0) + 1

        return dataclasses.replace(stored)

    async def delete_page(self, site_url: str, path: str) -> bool:
        async with self._lock:
            page_id = self._page_ids.pop((site_url, path), None)
            if page_id is None:
                return False
            self._drop_index(page_id, site_url)
            del self._pages[page_id]
            return True

    async def page_lemmas(self, page_id: int) -> Dict[str, float]:
        return dict(self._page_lemmas.get(page_id, {}))

    async def lemma_frequencies(self, lemmas: Iterable[str],
                                site_url: Optional[str] = None) -> Dict[str, int]:
        scope = self._scope(site_url)
        return {
            lemma: sum(self._lemmas.get(url, {}).get(lemma, 0) for url in scope)
            for lemma in lemmas
        }

    async def pages_for_lemma(self, lemma: str,
                              site_url: Optional[str] = None) -> Dict[int, float]:
        result: Dict[int, float] = {}
        for url in self._scope(site_url):
            result.update(self._postings.get(url, {}).get(lemma, {}))
        return result

    async def count_pages(self, site_url: Optional[str] = None) -> int:
        scope = set(self._scope(site_url))
        return sum(1 for url, _ in self._page_ids if url in scope)

    async def count_lemmas(self, site_url: Optional[str] = None) -> int:
        return sum(len(self._lemmas.get(url, {})) for url in self._scope(site_url))

    async def verify_frequencies(self, site_url: Optional[str] = None) -> FrequencyMismatches:
        mismatches: FrequencyMismatches = {}
        for url in self._scope(site_url):
            actual = Counter()
            for (page_site, _), page_id in self._page_ids.items():
                if page_site == url:
                    actual.update(self._page_lemmas.get(page_id, {}).keys())

            stored = self._lemmas.get(url, {})
            for lemma in set(actual) | set(stored):
                if actual.get(lemma, 0) != stored.get(lemma, 0):
                    mismatches[(url, lemma)] = (stored.get(lemma, 0), actual.get(lemma, 0))
        return mismatches


class FileIndexStore(MemoryIndexStore):
    """Memory store persisted as a JSON snapshot for small deployments."""

    SNAPSHOT_VERSION = '1.0'

    def __init__(self, data_directory: str):
        super().__init__()
        self.data_directory = Path(data_directory)
        self.snapshot_file = self.data_directory / 'index.json'

    async def initialize(self):
        try:
            self.data_directory.mkdir(parents=True, exist_ok=True)
            if self.snapshot_file.exists():
                with open(self.snapshot_file, 'r', encoding='utf-8') as f:
                    self._load(json.load(f))
        except (OSError, ValueError, KeyError) as e:
            raise DatabaseError(f"Failed to initialize file storage: {e}")

        self.logger.info(f"File index store initialized at {self.data_directory} "
                         f"({len(self._pages)} pages)")

    def _load(self, data: Dict):
        for site_data in data.get('sites', []):
            site = Site.from_dict(site_data)
            self._sites[site.url] = site
            self._postings[site.url] = {}

        for site_url, frequencies in data.get('lemmas', {}).items():
            self._lemmas[site_url] = {lemma: int(freq) for lemma, freq in frequencies.items()}

        for page_data in data.get('pages', []):
            page = Page.from_dict(page_data)
            weights = {lemma: float(w) for lemma, w in page_data.get('lemmas', {}).items()}
            self._pages[page.id] = page
            self._page_ids[page.key] = page.id
            self._page_lemmas[page.id] = weights
            postings = self._postings.setdefault(page.site_url, {})
            for lemma, weight in weights.items():
                postings.setdefault(lemma, {})[page.id] = weight

        self._next_page_id = int(data.get('next_page_id', len(self._pages) + 1))

    def _snapshot(self) -> Dict:
        pages = []
        for page_id, page in self._pages.items():
            page_data = page.to_dict()
            page_data['lemmas'] = self._page_lemmas.get(page_id, {})
            pages.append(page_data)

        return {
            'storage_version': self.SNAPSHOT_VERSION,
            'saved_at': utcnow().isoformat(),
            'next_page_id': self._next_page_id,
            'sites': [site.to_dict() for site in self._sites.values()],
            'lemmas': self._lemmas,
            'pages': pages
        }

    async def flush(self):
        """Write the snapshot to disk atomically."""
        async with self._lock:
            snapshot = self._snapshot()

        tmp_file = self.snapshot_file.with_suffix('.json.tmp')
        try:
            with open(tmp_file, 'w', encoding='utf-8') as f:
                json.dump(snapshot, f, ensure_ascii=False)
            os.replace(tmp_file, self.snapshot_file)
        except OSError as e:
            raise DatabaseError(f"Failed to write index snapshot: {e}")

        self.logger.debug(f"Saved index snapshot to {self.snapshot_file}")

    async def close(self):
        await self.flush()


class RedisIndexStore(IndexStore):
    """
    Redis storage backend.

    Every mutation is sent as one MULTI/EXEC transaction. Reads needed to
    compute the new counters happen under a process-level lock, so a single
    process must own the writes of a given key prefix.
    """

    def __init__(self, client: redis.Redis, prefix: str = "sitesearch"):
        self.client = client
        self.prefix = prefix
        self.logger = logging.getLogger(__name__)
        self._lock = asyncio.Lock()

    # Key layout
    def _sites_key(self) -> str:
        return f"{self.prefix}:sites"

    def _site_key(self, url: str) -> str:
        return f"{self.prefix}:site:{url}"

    def _paths_key(self, url: str) -> str:
        return f"{self.prefix}:site:{url}:paths"

    def _frequencies_key(self, url: str) -> str:
        return f"{self.prefix}:site:{url}:lemmas"

    def _postings_key(self, url: str, lemma: str) -> str:
        return f"{self.prefix}:site:{url}:lemma:{lemma}"

    def _next_id_key(self) -> str:
        return f"{self.prefix}:page:next_id"

    def _page_key(self, page_id: int) -> str:
        return f"{self.prefix}:page:{page_id}"

    def _page_lemmas_key(self, page_id: int) -> str:
        return f"{self.prefix}:page:{page_id}:lemmas"

    async def initialize(self):
        try:
            await self.client.ping()
        except redis.RedisError as e:
            raise DatabaseError(f"Failed to connect to Redis: {e}")
        self.logger.info(f"Redis index store initialized with prefix '{self.prefix}'")

    async def close(self):
        await self.client.aclose()

    async def _site_urls(self, site_url: Optional[str]) -> List[str]:
        if site_url is not None:
            return [site_url] if await self.client.sismember(self._sites_key(), site_url) else []
        return sorted(await self.client.smembers(self._sites_key()))

    @staticmethod
    def _site_mapping(site: Site) -> Dict[str, str]:
        data = site.to_dict()
        data['last_error'] = data['last_error'] or ''
        return data

    async def get_site(self, url: str) -> Optional[Site]:
        data = await self.client.hgetall(self._site_key(url))
        return Site.from_dict(data) if data else None

    async def list_sites(self) -> List[Site]:
        sites = []
        for url in await self._site_urls(None):
            site = await self.get_site(url)
            if site:
                sites.append(site)
        return sites

    async def save_site(self, site: Site):
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.sadd(self._sites_key(), site.url)
            pipe.hset(self._site_key(site.url), mapping=self._site_mapping(site))
            await pipe.execute()

    async def reset_site(self, site: Site) -> Site:
        async with self._lock:
            page_ids = await self.client.hvals(self._paths_key(site.url))
            lemmas = await self.client.hkeys(self._frequencies_key(site.url))

            site.mark(SiteStatus.INDEXING)
            site.last_error = None

            async with self.client.pipeline(transaction=True) as pipe:
                for page_id in page_ids:
                    pipe.delete(self._page_key(int(page_id)), self._page_lemmas_key(int(page_id)))
                for lemma in lemmas:
                    pipe.delete(self._postings_key(site.url, lemma))
                pipe.delete(self._paths_key(site.url), self._frequencies_key(site.url))
                pipe.sadd(self._sites_key(), site.url)
                pipe.hset(self._site_key(site.url), mapping=self._site_mapping(site))
                await pipe.execute()
        return site

    async def get_page(self, site_url: str, path: str) -> Optional[Page]:
        page_id = await self.client.hget(self._paths_key(site_url), path)
        if page_id is None:
            return None
        pages = await self.get_pages([int(page_id)])
        return pages[0] if pages else None

    async def get_pages(self, page_ids: Iterable[int]) -> List[Page]:
        page_ids = list(page_ids)
        if not page_ids:
            return []

        async with self.client.pipeline(transaction=False) as pipe:
            for page_id in page_ids:
                pipe.hgetall(self._page_key(page_id))
            rows = await pipe.execute()
        return [Page.from_dict(row) for row in rows if row]

    async def _changed_frequencies(self, site_url: str, old: Iterable[str],
                                   new: Iterable[str]) -> Dict[str, int]:
        old, new = set(old), set(new)
        affected = sorted(old | new)
        if not affected:
            return {}

        current = await self.client.hmget(self._frequencies_key(site_url), affected)
        frequencies = {lemma: int(value or 0) for lemma, value in zip(affected, current)}
        for lemma in old:
            frequencies[lemma] -= 1
        for lemma in new:
            frequencies[lemma] += 1
        return frequencies

    @staticmethod
    def _write_frequencies(pipe, key: str, frequencies: Dict[str, int]):
        for lemma, frequency in frequencies.items():
            if frequency > 0:
                pipe.hset(key, lemma, frequency)
            else:
                pipe.hdel(key, lemma)

    async def replace_page(self, page: Page, lemmas: Dict[str, int]) -> Page:
        async with self._lock:
            if not await self.client.sismember(self._sites_key(), page.site_url):
                raise DatabaseError(f"Unknown site: {page.site_url}")

            page_id = await self.client.hget(self._paths_key(page.site_url), page.path)
            if page_id is None:
                page_id = int(await self.client.incr(self._next_id_key()))
                old = {}
            else:
                page_id = int(page_id)
                old = await self.client.hgetall(self._page_lemmas_key(page_id))

            weights = _weights(lemmas)
            frequencies = await self._changed_frequencies(page.site_url, old, weights)
            stored = dataclasses.replace(page, id=page_id)

            async with self.client.pipeline(transaction=True) as pipe:
                for lemma in old:
                    pipe.hdel(self._postings_key(page.site_url, lemma), page_id)
                pipe.delete(self._page_lemmas_key(page_id))
                pipe.hset(self._page_key(page_id), mapping=stored.to_dict())
                pipe.hset(self._paths_key(page.site_url), page.path, page_id)
                for lemma, weight in weights.items():
                    pipe.hset(self._postings_key(page.site_url, lemma), page_id, weight)
                if weights:
                    pipe.hset(self._page_lemmas_key(page_id), mapping=weights)
                self._write_frequencies(pipe, self._frequencies_key(page.site_url), frequencies)
                await pipe.execute()

        return stored

    async def delete_page(self, site_url: str, path: str) -> bool:
        async with self._lock:
            page_id = await self.client.hget(self._paths_key(site_url), path)
            if page_id is None:
                return False
            page_id = int(page_id)

            old = await self.client.hgetall(self._page_lemmas_key(page_id))
            frequencies = await self._changed_frequencies(site_url, old, ())

            async with self.client.pipeline(transaction=True) as pipe:
                for lemma in old:
                    pipe.hdel(self._postings_key(site_url, lemma), page_id)
                pipe.delete(self._page_lemmas_key(page_id), self._page_key(page_id))
                pipe.hdel(self._paths_key(site_url), path)
                self._write_frequencies(pipe, self._frequencies_key(site_url), frequencies)
                await pipe.execute()
        return True

    async def page_lemmas(self, page_id: int) -> Dict[str, float]:
        data = await self.client.hgetall(self._page_lemmas_key(page_id))
        return {lemma: float(weight) for lemma, weight in data.items()}

    async def lemma_frequencies(self, lemmas: Iterable[str],
                                site_url: Optional[str] = None) -> Dict[str, int]:
        lemmas = list(lemmas)
        totals = {lemma: 0 for lemma in lemmas}
        if not lemmas:
            return totals

        for url in await self._site_urls(site_url):
            values = await self.client.hmget(self._frequencies_key(url), lemmas)
            for lemma, value in zip(lemmas, values):
                totals[lemma] += int(value or 0)
        return totals

    async def pages_for_lemma(self, lemma: str,
                              site_url: Optional[str] = None) -> Dict[int, float]:
        result: Dict[int, float] = {}
        for url in await self._site_urls(site_url):
            postings = await self.client.hgetall(self._postings_key(url, lemma))
            result.update({int(page_id): float(weight) for page_id, weight in postings.items()})
        return result

    async def count_pages(self, site_url: Optional[str] = None) -> int:
        total = 0
        for url in await self._site_urls(site_url):
            total += await self.client.hlen(self._paths_key(url))
        return total

    async def count_lemmas(self, site_url: Optional[str] = None) -> int:
        total = 0
        for url in await self._site_urls(site_url):
            total += await self.client.hlen(self._frequencies_key(url))
        return total

    async def verify_frequencies(self, site_url: Optional[str] = None) -> FrequencyMismatches:
        mismatches: FrequencyMismatches = {}
        for url in await self._site_urls(site_url):
            actual = Counter()
            for page_id in await self.client.hvals(self._paths_key(url)):
                actual.update(await self.client.hkeys(self._page_lemmas_key(int(page_id))))

            stored = {lemma: int(freq) for lemma, freq in
                      (await self.client.hgetall(self._frequencies_key(url))).items()}
            for lemma in set(actual) | set(stored):
                if actual.get(lemma, 0) != stored.get(lemma, 0):
                    mismatches[(url, lemma)] = (stored.get(lemma, 0), actual.get(lemma, 0))
        return mismatches


def create_index_store(config: StorageConfig) -> IndexStore:
    """Build the storage backend selected by ``storage.type``."""
    backend_type = config.type.lower()

    if backend_type == 'memory':
        return MemoryIndexStore()
    if backend_type == 'file':
        return FileIndexStore(config.file.get('directory', 'data'))
    if backend_type == 'redis':
        client = redis.Redis(
            host=config.redis.host,
            port=config.redis.port,
            db=config.redis.db,
            password=config.redis.password,
            decode_responses=True
        )
        return RedisIndexStore(client, config.redis.prefix)

    raise DatabaseError(f"Unknown storage type: {backend_type}")
