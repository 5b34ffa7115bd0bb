"""
Aggregate indexing statistics per configured site.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..storage.database import IndexStore
from ..utils.config import SiteConfig


@dataclass
class TotalStatistics:
    sites: int
    pages: int
    lemmas: int
    indexing: bool


@dataclass
class DetailedStatisticsItem:
    url: str
    name: str
    status: Optional[str]
    status_time: Optional[str]
    error: Optional[str]
    pages: int
    lemmas: int


@dataclass
class StatisticsResponse:
    total: TotalStatistics
    detailed: List[DetailedStatisticsItem] = field(default_factory=list)
    result: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            'result': self.result,
            'statistics': {
                'total': asdict(self.total),
                'detailed': [asdict(item) for item in self.detailed]
            }
        }


class StatisticsService:
    """Summarizes the index for every configured site."""

    def __init__(self, sites: List[SiteConfig], store: IndexStore,
                 is_indexing: Callable[[], bool]):
        self.sites = sites
        self.store = store
        self.is_indexing = is_indexing

    async def get_statistics(self) -> StatisticsResponse:
        detailed = []
        for site_config in self.sites:
            site = await self.store.get_site(site_config.url)
            detailed.append(DetailedStatisticsItem(
                url=site_config.url,
                name=site_config.name,
                status=site.status.value if site else None,
                status_time=site.status_time.isoformat() if site else None,
                error=site.last_error if site else None,
                pages=await self.store.count_pages(site_config.url),
                lemmas=await self.store.count_lemmas(site_config.url)
            ))

        total = TotalStatistics(
            sites=len(self.sites),
            pages=sum(item.pages for item in detailed),
            lemmas=sum(item.lemmas for item in detailed),
            indexing=self.is_indexing()
        )
        return StatisticsResponse(total=total, detailed=detailed)
