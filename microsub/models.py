"""Shared data models for microsub."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class FeedConfig:
    """Configuration for a single feed listed in an OPML file."""

    category: str
    title: str
    url: str


@dataclass
class FeedEntry:
    """Simplified feed entry used by the bundled adapters."""

    link: str
    title: str
    published: datetime
    summary: Optional[str] = None
    content_html: Optional[str] = None
    author: Optional[Dict[str, str]] = None
    photos: List[str] = field(default_factory=list)
    feed_url: Optional[str] = None


@dataclass
class ParsedFeed:
    """A fetched feed document."""

    url: str
    title: Optional[str]
    entries: List[FeedEntry] = field(default_factory=list)
    photo: Optional[str] = None


@dataclass
class TimelineQuery:
    """Cursor and limit options for a timeline read.

    ``after`` and ``before`` are opaque to the engine; adapters interpret
    them against their own storage.
    """

    channel: str
    after: Optional[str] = None
    before: Optional[str] = None
    limit: int = 20
    user_id: Optional[str] = None


@dataclass(frozen=True)
class AdapterInfo:
    """Public description of a registered adapter."""

    id: str
    name: str
    priority: int

    def as_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "priority": self.priority}
