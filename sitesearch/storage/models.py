"""
Records persisted by the index store.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class SiteStatus(Enum):
    """Indexing status of a site."""
    INDEXING = "INDEXING"
    INDEXED = "INDEXED"
    FAILED = "FAILED"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Site:
    """A configured website, identified by its root URL."""
    url: str
    name: str
    status: SiteStatus = SiteStatus.INDEXING
    status_time: datetime = field(default_factory=utcnow)
    last_error: Optional[str] = None

    def mark(self, status: SiteStatus, last_error: Optional[str] = None):
        """Move to a new status and refresh the status time."""
        self.status = status
        self.status_time = utcnow()
        if last_error is not None:
            self.last_error = last_error

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'url': self.url,
            'name': self.name,
            'status': self.status.value,
            'status_time': self.status_time.isoformat(),
            'last_error': self.last_error
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Site':
        """Create Site from dictionary."""
        return cls(
            url=data['url'],
            name=data['name'],
            status=SiteStatus(data['status']),
            status_time=datetime.fromisoformat(data['status_time']),
            last_error=data.get('last_error') or None
        )


@dataclass
class Page:
    """A fetched page; unique per (site_url, path)."""
    site_url: str
    path: str
    code: int
    content: str = ""
    title: str = ""
    text: str = ""
    id: Optional[int] = None

    @property
    def key(self):
        return self.site_url, self.path

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'site_url': self.site_url,
            'path': self.path,
            'code': self.code,
            'content': self.content,
            'title': self.title,
            'text': self.text
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Page':
        return cls(
            id=int(data['id']) if data.get('id') is not None else None,
            site_url=data['site_url'],
            path=data['path'],
            code=int(data['code']),
            content=data.get('content', ''),
            title=data.get('title', ''),
            text=data.get('text', '')
        )
