"""Adapter base class.

An adapter is one backend taking part in the aggregated endpoint. Several
adapters can be registered; read operations collect from all of them and
single-owner operations are offered to each in priority order until one
answers.

Read operations use the accumulator pattern: the adapter receives what
earlier adapters produced and returns it with its own contributions
appended. Single-owner operations use the sentinel pattern: the adapter
receives :data:`~microsub.outcomes.PENDING` and either returns it unchanged
to pass, or answers with :class:`~microsub.outcomes.Handled` or
:class:`~microsub.outcomes.Failed`.

Required methods:

- ``get_channels``, ``get_timeline``, ``get_following``, ``follow``,
  ``unfollow``

Optional methods (the defaults pass):

- ``can_handle_url``, ``owns_feed``
- ``create_channel``, ``update_channel``, ``delete_channel``,
  ``order_channels``
- ``timeline_mark_read``, ``timeline_mark_unread``, ``timeline_remove``
- ``get_muted``, ``mute``, ``unmute``
- ``get_blocked``, ``block``, ``unblock``
- ``search``, ``preview``
"""

from __future__ import annotations

import re
import unicodedata
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Union

from .models import AdapterInfo, TimelineQuery
from .outcomes import Outcome

Channels = List[Dict[str, Any]]
TimelineResult = Dict[str, Any]
Entries = Union[str, List[str]]

_JF2_FIELD_MAP = (
    ("id", "_id"),
    ("url", "url"),
    ("name", "name"),
    ("content", "content"),
    ("summary", "summary"),
    ("published", "published"),
    ("updated", "updated"),
    ("author", "author"),
    ("photo", "photo"),
    ("video", "video"),
    ("audio", "audio"),
)


def slugify(value: str) -> str:
    """Return a lowercase ASCII slug for channel identifiers."""
    normalised = unicodedata.normalize("NFKD", value).encode("ascii", "ignore")
    slug = re.sub(r"[^a-z0-9]+", "-", normalised.decode("ascii").lower())
    return slug.strip("-")


class Adapter(ABC):
    """Base adapter that backends extend to provide Microsub functionality."""

    id: str = ""
    name: str = ""
    priority: int = 10

    def describe(self) -> AdapterInfo:
        return AdapterInfo(id=self.id, name=self.name, priority=self.priority)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id!r} priority={self.priority}>"

    # URL ownership

    def can_handle_url(self, url: str) -> bool:
        """Return True if this adapter can follow ``url``.

        Advisory only: adapters call it from ``follow`` to decide whether to
        act or pass.
        """
        return True

    def owns_feed(self, url: str) -> bool:
        """Return True if ``url`` was subscribed through this adapter."""
        return False

    # Required: channels, timeline, following

    @abstractmethod
    def get_channels(self, channels: Channels, user_id: str) -> Channels:
        """Return ``channels`` with this adapter's channels appended.

        Each channel is a mapping with ``uid`` and ``name`` and an optional
        ``unread`` count.
        """

    @abstractmethod
    def get_timeline(
        self, result: TimelineResult, channel: str, query: TimelineQuery
    ) -> TimelineResult:
        """Return ``result`` with this adapter's jf2 entries appended to
        ``result["items"]``."""

    @abstractmethod
    def get_following(
        self, result: List[Dict[str, Any]], channel: str, user_id: str
    ) -> List[Dict[str, Any]]:
        """Return ``result`` with this adapter's followed feeds appended."""

    @abstractmethod
    def follow(self, result: Outcome, channel: str, url: str, user_id: str) -> Outcome:
        """Follow ``url`` or pass ``result`` through unchanged."""

    @abstractmethod
    def unfollow(
        self, result: Outcome, channel: str, url: str, user_id: str
    ) -> Outcome:
        """Unfollow ``url`` or pass ``result`` through unchanged."""

    # Optional: channel management

    def create_channel(self, result: Outcome, name: str, user_id: str) -> Outcome:
        return result

    def update_channel(
        self, result: Outcome, uid: str, name: str, user_id: str
    ) -> Outcome:
        return result

    def delete_channel(self, result: Outcome, uid: str, user_id: str) -> Outcome:
        return result

    def order_channels(
        self, result: Outcome, channels: List[str], user_id: str
    ) -> Outcome:
        return result

    # Optional: timeline management

    def timeline_mark_read(
        self, result: Outcome, channel: str, entries: Entries, user_id: str
    ) -> Outcome:
        return result

    def timeline_mark_unread(
        self, result: Outcome, channel: str, entries: Entries, user_id: str
    ) -> Outcome:
        return result

    def timeline_remove(
        self, result: Outcome, channel: str, entries: Entries, user_id: str
    ) -> Outcome:
        return result

    # Optional: mute and block
    #
    # Listing starts from None; an adapter that supports the capability
    # turns it into a list and appends its own URLs.

    def get_muted(
        self, result: Optional[List[str]], channel: str, user_id: str
    ) -> Optional[List[str]]:
        return result

    def mute(self, result: Outcome, channel: str, url: str, user_id: str) -> Outcome:
        return result

    def unmute(self, result: Outcome, channel: str, url: str, user_id: str) -> Outcome:
        return result

    def get_blocked(
        self, result: Optional[List[str]], channel: str, user_id: str
    ) -> Optional[List[str]]:
        return result

    def block(self, result: Outcome, channel: str, url: str, user_id: str) -> Outcome:
        return result

    def unblock(
        self, result: Outcome, channel: str, url: str, user_id: str
    ) -> Outcome:
        return result

    # Optional: search and preview

    def search(self, result: Outcome, query: str, user_id: str) -> Outcome:
        return result

    def preview(self, result: Outcome, url: str, user_id: str) -> Outcome:
        return result

    # Helpers

    @staticmethod
    def add_paging(result: TimelineResult, paging: Mapping[str, str]) -> TimelineResult:
        """Attach paging cursors unless a higher-priority adapter already did."""
        if paging and "paging" not in result:
            result["paging"] = dict(paging)
        return result

    @staticmethod
    def normalise_entries(entries: Entries) -> List[str]:
        if isinstance(entries, str):
            return [entries]
        return [str(entry) for entry in entries if entry]

    def to_jf2(self, item: Mapping[str, Any]) -> Dict[str, Any]:
        """Convert a flat item mapping to a jf2 entry."""
        jf2: Dict[str, Any] = {"type": "entry"}

        for source, target in _JF2_FIELD_MAP:
            value = item.get(source)
            if value:
                jf2[target] = value

        if "author" in jf2:
            jf2["author"] = self.format_author(jf2["author"])

        if "is_read" in item:
            jf2["_is_read"] = bool(item["is_read"])

        return jf2

    @staticmethod
    def format_author(author: Union[str, Mapping[str, Any]]) -> Dict[str, Any]:
        """Format author data as a jf2 card."""
        if isinstance(author, str):
            return {"type": "card", "name": author}

        card: Dict[str, Any] = {"type": "card"}
        for key in ("name", "url", "photo"):
            if author.get(key):
                card[key] = author[key]
        return card
