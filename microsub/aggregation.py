"""Read-side fan-out over every registered adapter."""

from __future__ import annotations

import copy
import logging
from typing import Any, Callable, Dict, List, Optional

from .adapter import Adapter
from .models import TimelineQuery
from .registry import Registry

logger = logging.getLogger(__name__)


class Aggregator:
    """Thread an accumulator through each adapter in registry order.

    An adapter that raises is logged and skipped: the accumulator keeps the
    value it had before that adapter was called.
    """

    def __init__(self, registry: Registry) -> None:
        self.registry = registry

    def _accumulate(
        self,
        operation: str,
        initial: Any,
        call: Callable[[Adapter, Any], Any],
    ) -> Any:
        accumulated = initial
        for adapter in self.registry:
            snapshot = copy.deepcopy(accumulated)
            try:
                accumulated = call(adapter, snapshot)
            except Exception:
                logger.exception(
                    "Adapter '%s' failed during %s; skipping its contribution",
                    adapter.id,
                    operation,
                )
        return accumulated

    def get_channels(self, user_id: str) -> List[Dict[str, Any]]:
        """Channels from every adapter, one per ``uid``, first adapter wins."""
        channels = self._accumulate(
            "get_channels",
            [],
            lambda adapter, acc: adapter.get_channels(acc, user_id),
        )

        unique: Dict[str, Dict[str, Any]] = {}
        for channel in channels or []:
            uid = channel.get("uid") if isinstance(channel, dict) else None
            if uid and uid not in unique:
                unique[uid] = channel

        dropped = len(channels or []) - len(unique)
        if dropped:
            logger.debug("Dropped %d duplicate or invalid channels", dropped)
        return list(unique.values())

    def get_timeline(self, query: TimelineQuery) -> Dict[str, Any]:
        """Raw accumulated timeline; ordering and limiting happen in
        :func:`microsub.timeline.merge_timeline`."""
        result = self._accumulate(
            "get_timeline",
            {"items": []},
            lambda adapter, acc: adapter.get_timeline(acc, query.channel, query),
        )
        if not isinstance(result, dict):
            return {"items": []}
        result.setdefault("items", [])
        return result

    def get_following(self, channel: str, user_id: str) -> List[Dict[str, Any]]:
        return list(
            self._accumulate(
                "get_following",
                [],
                lambda adapter, acc: adapter.get_following(acc, channel, user_id),
            )
            or []
        )

    def get_muted(self, channel: str, user_id: str) -> Optional[List[Any]]:
        """Muted URLs, or None when no adapter supports muting."""
        return self._accumulate(
            "get_muted",
            None,
            lambda adapter, acc: adapter.get_muted(acc, channel, user_id),
        )

    def get_blocked(self, channel: str, user_id: str) -> Optional[List[Any]]:
        """Blocked URLs, or None when no adapter supports blocking."""
        return self._accumulate(
            "get_blocked",
            None,
            lambda adapter, acc: adapter.get_blocked(acc, channel, user_id),
        )
