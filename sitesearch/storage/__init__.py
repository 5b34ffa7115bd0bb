"""
Storage layer for sites, pages and the lemma index.
"""

from .database import (IndexStore, MemoryIndexStore, FileIndexStore, RedisIndexStore,
                       DatabaseError, create_index_store)
from .models import Site, SiteStatus, Page

__all__ = [
    'IndexStore', 'MemoryIndexStore', 'FileIndexStore', 'RedisIndexStore',
    'DatabaseError', 'create_index_store',
    'Site', 'SiteStatus', 'Page'
]
