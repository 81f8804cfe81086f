"""Read-only adapter exposing the feeds of an OPML file as channels."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..adapter import Adapter, Channels, TimelineResult, slugify
from ..config import parse_feeds_config
from ..feeds import entry_to_item, fetch_many
from ..models import FeedConfig, TimelineQuery
from ..outcomes import Outcome
from ..timeline import dedupe_items_by_id, sort_items_by_date, within_cursors

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "opml-"
ALL_CHANNEL = "opml-all"
ENTRY_PREFIX = "opml"


class OPMLAdapter(Adapter):
    """One channel per OPML category plus an ``opml-all`` channel.

    Nothing can be followed or unfollowed here: the subscription list is
    whatever the OPML file says.
    """

    id = "opml"
    name = "OPML Feeds"
    priority = 20

    def __init__(
        self,
        feeds: List[FeedConfig],
        title: str = "All Feeds",
        priority: Optional[int] = None,
        concurrency: int = 10,
    ) -> None:
        self.feeds = list(feeds)
        self.title = title
        if priority is not None:
            self.priority = priority
        self.concurrency = concurrency

        self._categories: Dict[str, str] = {}
        for feed in self.feeds:
            uid = CHANNEL_PREFIX + (slugify(feed.category) or "uncategorized")
            self._categories.setdefault(uid, feed.category)

    @classmethod
    def from_file(cls, path: str, **kwargs: Any) -> "OPMLAdapter":
        return cls(parse_feeds_config(path), **kwargs)

    def _feeds_for(self, channel: str) -> Optional[List[FeedConfig]]:
        if channel == ALL_CHANNEL:
            return self.feeds
        if channel not in self._categories:
            return None
        category = self._categories[channel]
        return [feed for feed in self.feeds if feed.category == category]

    def can_handle_url(self, url: str) -> bool:
        return False

    def owns_feed(self, url: str) -> bool:
        return any(feed.url == url for feed in self.feeds)

    def get_channels(self, channels: Channels, user_id: str) -> Channels:
        if not self.feeds:
            return channels

        channels.append({"uid": ALL_CHANNEL, "name": self.title})
        for uid, category in self._categories.items():
            channels.append({"uid": uid, "name": category})
        return channels

    def get_timeline(
        self, result: TimelineResult, channel: str, query: TimelineQuery
    ) -> TimelineResult:
        feeds = self._feeds_for(channel)
        if not feeds:
            return result

        items = []
        for parsed in fetch_many([feed.url for feed in feeds], self.concurrency):
            for entry in parsed.entries:
                jf2 = self.to_jf2(entry_to_item(entry, ENTRY_PREFIX))
                if within_cursors(jf2, query.after, query.before):
                    items.append(jf2)

        combined = sort_items_by_date(dedupe_items_by_id(items))
        logger.info(
            "OPML timeline for %s: %d entries from %d feeds",
            channel,
            len(combined),
            len(feeds),
        )
        result["items"].extend(combined[: query.limit])
        return result

    def get_following(
        self, result: List[Dict[str, Any]], channel: str, user_id: str
    ) -> List[Dict[str, Any]]:
        for feed in self._feeds_for(channel) or []:
            result.append({"type": "feed", "url": feed.url, "name": feed.title})
        return result

    def follow(self, result: Outcome, channel: str, url: str, user_id: str) -> Outcome:
        # Read-only; pass through.
        return result

    def unfollow(
        self, result: Outcome, channel: str, url: str, user_id: str
    ) -> Outcome:
        # Read-only; pass through.
        return result
