"""
Relevance-ranked search over the lemma index.
"""

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from .lemmatizer import Lemmatizer
from .snippets import SnippetBuilder
from ..errors import InvalidQueryError
from ..storage.database import IndexStore
from ..utils.config import SearchConfig
from ..utils.monitoring import MetricsCollector, get_metrics


@dataclass
class SearchResult:
    """One ranked page."""
    site: str
    site_name: str
    uri: str
    title: str
    snippet: str
    relevance: float


@dataclass
class SearchResponse:
    """A page of results plus the total number of matches."""
    count: int = 0
    data: List[SearchResult] = field(default_factory=list)
    result: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            'result': self.result,
            'count': self.count,
            'data': [asdict(item) for item in self.data]
        }


class SearchEngine:
    """
    Answers multi-word queries. Every returned page contains every query
    lemma; relevance is the summed weight of the discriminative lemmas,
    normalized to the best page of the result set.
    """

    def __init__(self, store: IndexStore, lemmatizer: Lemmatizer, config: SearchConfig,
                 metrics: Optional[MetricsCollector] = None):
        self.store = store
        self.lemmatizer = lemmatizer
        self.config = config
        self.snippets = SnippetBuilder(lemmatizer, config.snippet_words)
        self.metrics = metrics or get_metrics()
        self.logger = logging.getLogger(__name__)

    def _validate(self, query: str, offset: Optional[int], limit: Optional[int]):
        offset = self.config.default_offset if offset is None else offset
        limit = self.config.default_limit if limit is None else limit

        if not query or not query.strip():
            raise InvalidQueryError("Empty search query")
        if offset < self.config.min_offset:
            raise InvalidQueryError(f"offset must be at least {self.config.min_offset}")
        if limit < self.config.min_limit:
            raise InvalidQueryError(f"limit must be at least {self.config.min_limit}")
        return offset, limit

    async def search(self, query: str, site: Optional[str] = None,
                     offset: Optional[int] = None, limit: Optional[int] = None) -> SearchResponse:
        """
        Search the index.

        Args:
            query: Words separated by spaces
            site: Optional root URL restricting the search to one site
            offset: Number of ranked results to skip
            limit: Maximum number of results to return

        Returns:
            SearchResponse with the requested slice and the total match count

        Raises:
            InvalidQueryError: empty query or offset/limit below the minimum
        """
        offset, limit = self._validate(query, offset, limit)
        self.metrics.searches.inc()
        start_time = time.monotonic()

        site_url = site.rstrip('/') if site else None
        query_lemmas = self.lemmatizer.lemma_set(query)
        ranked = await self._rank(query_lemmas, site_url)

        window = ranked[offset:offset + limit]
        data = await self._build_results(window, query_lemmas)

        self.logger.info(f"Search '{query}' (site={site_url}): {len(ranked)} matches "
                         f"in {time.monotonic() - start_time:.3f}s")
        return SearchResponse(count=len(ranked), data=data)

    async def _rank(self, query_lemmas, site_url: Optional[str]) -> List[tuple]:
        """``[(page_id, relevance)]`` sorted by relevance, best first."""
        if not query_lemmas:
            return []

        total_pages = await self.store.count_pages(site_url)
        if total_pages == 0:
            return []

        frequencies = await self.store.lemma_frequencies(query_lemmas, site_url)
        if any(frequency == 0 for frequency in frequencies.values()):
            return []

        ordered = sorted(query_lemmas, key=lambda lemma: (frequencies[lemma], lemma))
        cutoff = self.config.frequency_cutoff
        ranking = [lemma for lemma in ordered if frequencies[lemma] / total_pages <= cutoff]
        if not ranking:
            ranking = ordered
        common = [lemma for lemma in ordered if lemma not in ranking]

        relevance: Optional[Dict[int, float]] = None
        for lemma in ranking:
            postings = await self.store.pages_for_lemma(lemma, site_url)
            if relevance is None:
                relevance = dict(postings)
            else:
                relevance = {page_id: score + postings[page_id]
                             for page_id, score in relevance.items() if page_id in postings}
            if not relevance:
                return []

        # Common lemmas still have to be present, they just do not score
        for lemma in common:
            postings = await self.store.pages_for_lemma(lemma, site_url)
            relevance = {page_id: score for page_id, score in relevance.items()
                         if page_id in postings}
            if not relevance:
                return []

        best = max(relevance.values())
        return sorted(((page_id, score / best) for page_id, score in relevance.items()),
                      key=lambda item: (-item[1], item[0]))

    async def _build_results(self, window: List[tuple], query_lemmas) -> List[SearchResult]:
        if not window:
            return []

        pages = {page.id: page for page in await self.store.get_pages(pid for pid, _ in window)}
        site_names = {site.url: site.name for site in await self.store.list_sites()}

        results = []
        for page_id, relevance in window:
            page = pages.get(page_id)
            if page is None:
                continue
            results.append(SearchResult(
                site=page.site_url,
                site_name=site_names.get(page.site_url, page.site_url),
                uri=page.path,
                title=page.title,
                snippet=self.snippets.build(page.text, query_lemmas),
                relevance=relevance
            ))
        return results
