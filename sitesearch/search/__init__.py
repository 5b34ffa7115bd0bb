"""
Lemmatization, ranked search and statistics.
"""

from .lemmatizer import Lemmatizer
from .engine import SearchEngine, SearchResponse, SearchResult
from .statistics import StatisticsService, StatisticsResponse

__all__ = [
    'Lemmatizer',
    'SearchEngine', 'SearchResponse', 'SearchResult',
    'StatisticsService', 'StatisticsResponse'
]
