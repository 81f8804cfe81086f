"""Read/write adapter storing subscriptions in a SQL database."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional
from urllib.parse import urlparse

from sqlalchemy.orm import Session, sessionmaker

from .. import db
from ..adapter import Adapter, Channels, Entries, TimelineResult
from ..feeds import discover_feeds, entry_to_item, fetch_many, resolve_feed
from ..models import FeedEntry, TimelineQuery
from ..outcomes import Failed, Handled, Outcome
from ..timeline import dedupe_items_by_id, paging_for, sort_items_by_date, within_cursors

logger = logging.getLogger(__name__)

HOME = "home"
NOTIFICATIONS = "notifications"
ENTRY_PREFIX = "sub"
PREVIEW_SIZE = 10


def _looks_like_url(value: str) -> bool:
    parsed = urlparse(value.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class SubscriptionAdapter(Adapter):
    """Channels, follows, read state, mutes and blocks kept in the database.

    Provides the built-in ``notifications`` and ``home`` channels plus user
    channels whose uids start with ``list-``. Timelines are fetched live from
    the followed feeds.
    """

    id = "subscriptions"
    name = "Subscriptions"
    priority = 10

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        priority: Optional[int] = None,
        concurrency: int = 10,
    ) -> None:
        self.session_factory = session_factory
        if priority is not None:
            self.priority = priority
        self.concurrency = concurrency

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with self.session_factory() as session:
            yield session

    def _owns_channel(self, session: Session, user_id: str, uid: str) -> bool:
        return uid.startswith(db.CHANNEL_PREFIX) and (
            db.get_channel(session, user_id, uid) is not None
        )

    # URL ownership

    def can_handle_url(self, url: str) -> bool:
        return _looks_like_url(url)

    def owns_feed(self, url: str) -> bool:
        with self._session() as session:
            return db.is_followed(session, url)

    # Channels

    def get_channels(self, channels: Channels, user_id: str) -> Channels:
        channels.append({"uid": NOTIFICATIONS, "name": "Notifications", "unread": 0})
        channels.append({"uid": HOME, "name": "Home"})

        with self._session() as session:
            for channel in db.list_channels(session, user_id):
                channels.append({"uid": channel.uid, "name": channel.name})
        return channels

    def create_channel(self, result: Outcome, name: str, user_id: str) -> Outcome:
        with self._session() as session:
            channel = db.create_channel(session, user_id, name)
            return Handled({"uid": channel.uid, "name": channel.name})

    def update_channel(
        self, result: Outcome, uid: str, name: str, user_id: str
    ) -> Outcome:
        if not uid.startswith(db.CHANNEL_PREFIX):
            return result

        with self._session() as session:
            channel = db.rename_channel(session, user_id, uid, name)
            if channel is None:
                return result
            return Handled({"uid": channel.uid, "name": channel.name})

    def delete_channel(self, result: Outcome, uid: str, user_id: str) -> Outcome:
        with self._session() as session:
            if not self._owns_channel(session, user_id, uid):
                return result
            if not db.delete_channel(session, user_id, uid):
                return Failed("Channel disappeared before it could be deleted.")
        return Handled(None)

    def order_channels(
        self, result: Outcome, channels: List[str], user_id: str
    ) -> Outcome:
        with self._session() as session:
            known = {channel.uid for channel in db.list_channels(session, user_id)}
            mine = [uid for uid in channels if uid in known]
            if not mine:
                return result
            ordered = db.reorder_channels(session, user_id, mine)
            return Handled([{"uid": c.uid, "name": c.name} for c in ordered])

    # Timeline

    def _feed_urls(self, session: Session, user_id: str, channel: str) -> Optional[List[str]]:
        if channel == HOME:
            return [feed.url for feed in db.list_feeds(session, user_id)]
        if self._owns_channel(session, user_id, channel):
            return [feed.url for feed in db.list_feeds(session, user_id, channel)]
        return None

    def get_timeline(
        self, result: TimelineResult, channel: str, query: TimelineQuery
    ) -> TimelineResult:
        if channel == NOTIFICATIONS or not query.user_id:
            return result

        user_id = query.user_id
        with self._session() as session:
            urls = self._feed_urls(session, user_id, channel)
            if urls is None:
                return result
            hidden = set(db.muted_for(session, user_id, channel))
            hidden.update(db.list_blocked(session, user_id))

        items = []
        for feed in fetch_many(urls, concurrency=self.concurrency):
            if feed.url in hidden:
                continue
            for entry in feed.entries:
                if entry.author and entry.author.get("url") in hidden:
                    continue
                items.append(self._entry_to_jf2(entry))

        items = [item for item in items if within_cursors(item, query.after, query.before)]
        items = sort_items_by_date(dedupe_items_by_id(items))

        with self._session() as session:
            states = db.get_entry_states(session, user_id, [item["_id"] for item in items])

        page = []
        for item in items:
            is_read, removed = states.get(item["_id"], (False, False))
            if removed:
                continue
            item["_is_read"] = is_read
            page.append(item)
            if len(page) >= query.limit:
                break

        logger.info(
            "Subscription timeline for %s/%s: %d of %d entries",
            user_id,
            channel,
            len(page),
            len(items),
        )
        result["items"].extend(page)
        return self.add_paging(result, paging_for(page, query.limit))

    def _entry_to_jf2(self, entry: FeedEntry) -> Dict[str, Any]:
        return self.to_jf2(entry_to_item(entry, ENTRY_PREFIX))

    def _own_entries(self, entries: Entries) -> List[str]:
        return [
            entry
            for entry in self.normalise_entries(entries)
            if entry.startswith(f"{ENTRY_PREFIX}-")
        ]

    def timeline_mark_read(
        self, result: Outcome, channel: str, entries: Entries, user_id: str
    ) -> Outcome:
        ids = self._own_entries(entries)
        if not ids:
            return result
        with self._session() as session:
            db.set_read(session, user_id, ids, True)
        return Handled(None)

    def timeline_mark_unread(
        self, result: Outcome, channel: str, entries: Entries, user_id: str
    ) -> Outcome:
        ids = self._own_entries(entries)
        if not ids:
            return result
        with self._session() as session:
            db.set_read(session, user_id, ids, False)
        return Handled(None)

    def timeline_remove(
        self, result: Outcome, channel: str, entries: Entries, user_id: str
    ) -> Outcome:
        ids = self._own_entries(entries)
        if not ids:
            return result
        with self._session() as session:
            db.mark_removed(session, user_id, ids)
        return Handled(None)

    # Following

    def get_following(
        self, result: List[Dict[str, Any]], channel: str, user_id: str
    ) -> List[Dict[str, Any]]:
        with self._session() as session:
            if channel == HOME:
                feeds = db.list_feeds(session, user_id)
            elif self._owns_channel(session, user_id, channel):
                feeds = db.list_feeds(session, user_id, channel)
            else:
                return result

        seen = set()
        for feed in feeds:
            if feed.url in seen:
                continue
            seen.add(feed.url)
            item = {"type": "feed", "url": feed.url}
            if feed.name:
                item["name"] = feed.name
            if feed.photo:
                item["photo"] = feed.photo
            result.append(item)
        return result

    def follow(self, result: Outcome, channel: str, url: str, user_id: str) -> Outcome:
        if not self.can_handle_url(url):
            return result

        feed = resolve_feed(url)
        if feed is None:
            logger.info("No feed found at %s; passing follow on", url)
            return result

        with self._session() as session:
            target = channel if self._owns_channel(session, user_id, channel) else HOME
            db.add_feed(session, user_id, target, feed.url, feed.title, feed.photo)

        followed = {"type": "feed", "url": feed.url}
        if feed.title:
            followed["name"] = feed.title
        if feed.photo:
            followed["photo"] = feed.photo
        return Handled(followed)

    def unfollow(
        self, result: Outcome, channel: str, url: str, user_id: str
    ) -> Outcome:
        with self._session() as session:
            if not db.is_followed(session, url, user_id):
                return result
            scope = channel if self._owns_channel(session, user_id, channel) else None
            removed = db.remove_feed(session, user_id, url, scope)

        if not removed:
            return Failed("The feed is not followed in this channel.")
        return Handled(None)

    # Mute and block

    def get_muted(
        self, result: Optional[List[str]], channel: str, user_id: str
    ) -> Optional[List[str]]:
        muted = list(result or [])
        with self._session() as session:
            muted.extend(db.list_muted(session, user_id, channel))
        return muted

    def mute(self, result: Outcome, channel: str, url: str, user_id: str) -> Outcome:
        with self._session() as session:
            db.set_muted(session, user_id, channel, url, True)
        return Handled(None)

    def unmute(self, result: Outcome, channel: str, url: str, user_id: str) -> Outcome:
        with self._session() as session:
            db.set_muted(session, user_id, channel, url, False)
        return Handled(None)

    def get_blocked(
        self, result: Optional[List[str]], channel: str, user_id: str
    ) -> Optional[List[str]]:
        blocked = list(result or [])
        with self._session() as session:
            blocked.extend(db.list_blocked(session, user_id))
        return blocked

    def block(self, result: Outcome, channel: str, url: str, user_id: str) -> Outcome:
        with self._session() as session:
            db.set_blocked(session, user_id, url, True)
        return Handled(None)

    def unblock(
        self, result: Outcome, channel: str, url: str, user_id: str
    ) -> Outcome:
        with self._session() as session:
            db.set_blocked(session, user_id, url, False)
        return Handled(None)

    # Search and preview

    def search(self, result: Outcome, query: str, user_id: str) -> Outcome:
        if _looks_like_url(query):
            return Handled({"results": discover_feeds(query)})

        needle = query.lower()
        results = []
        seen = set()
        with self._session() as session:
            for feed in db.list_feeds(session, user_id):
                haystack = f"{feed.name or ''} {feed.url}".lower()
                if needle in haystack and feed.url not in seen:
                    seen.add(feed.url)
                    item = {"type": "feed", "url": feed.url}
                    if feed.name:
                        item["name"] = feed.name
                    results.append(item)
        return Handled({"results": results})

    def preview(self, result: Outcome, url: str, user_id: str) -> Outcome:
        if not self.can_handle_url(url):
            return result

        feed = resolve_feed(url)
        if feed is None:
            return result

        items = [self._entry_to_jf2(entry) for entry in feed.entries[:PREVIEW_SIZE]]
        return Handled({"items": items})
