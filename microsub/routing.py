"""Single-owner dispatch: the first adapter to answer handles the action."""

from __future__ import annotations

import logging
from typing import Any, List

from .outcomes import PENDING, Failed, Outcome, is_pending, normalise
from .registry import Registry

logger = logging.getLogger(__name__)

ROUTED_OPERATIONS = frozenset(
    {
        "create_channel",
        "update_channel",
        "delete_channel",
        "order_channels",
        "follow",
        "unfollow",
        "timeline_mark_read",
        "timeline_mark_unread",
        "timeline_remove",
        "mute",
        "unmute",
        "block",
        "unblock",
        "search",
        "preview",
    }
)


class OwnershipRouter:
    """Offer an operation to adapters in registry order.

    The chain stops at the first adapter that does not return ``PENDING``.
    A :class:`Failed` answer is final; later adapters are never asked. An
    adapter that raises is treated as having failed, since it may already
    have acted.
    """

    def __init__(self, registry: Registry) -> None:
        self.registry = registry

    def dispatch(self, operation: str, *args: Any) -> Outcome:
        if operation not in ROUTED_OPERATIONS:
            raise ValueError(f"Unknown routed operation: {operation}")

        result: Outcome = PENDING
        for adapter in self.registry:
            method = getattr(adapter, operation)
            try:
                result = normalise(method(result, *args))
            except Exception:
                logger.exception(
                    "Adapter '%s' raised while handling %s", adapter.id, operation
                )
                return Failed(f"Adapter '{adapter.id}' failed to handle {operation}.")

            if not is_pending(result):
                logger.info("%s handled by adapter '%s'", operation, adapter.id)
                return result

        logger.info("No adapter handled %s", operation)
        return result

    def create_channel(self, name: str, user_id: str) -> Outcome:
        return self.dispatch("create_channel", name, user_id)

    def update_channel(self, uid: str, name: str, user_id: str) -> Outcome:
        return self.dispatch("update_channel", uid, name, user_id)

    def delete_channel(self, uid: str, user_id: str) -> Outcome:
        return self.dispatch("delete_channel", uid, user_id)

    def order_channels(self, channels: List[str], user_id: str) -> Outcome:
        return self.dispatch("order_channels", channels, user_id)

    def follow(self, channel: str, url: str, user_id: str) -> Outcome:
        return self.dispatch("follow", channel, url, user_id)

    def unfollow(self, channel: str, url: str, user_id: str) -> Outcome:
        return self.dispatch("unfollow", channel, url, user_id)

    def timeline_mark_read(self, channel: str, entries: Any, user_id: str) -> Outcome:
        return self.dispatch("timeline_mark_read", channel, entries, user_id)

    def timeline_mark_unread(self, channel: str, entries: Any, user_id: str) -> Outcome:
        return self.dispatch("timeline_mark_unread", channel, entries, user_id)

    def timeline_remove(self, channel: str, entries: Any, user_id: str) -> Outcome:
        return self.dispatch("timeline_remove", channel, entries, user_id)

    def mute(self, channel: str, url: str, user_id: str) -> Outcome:
        return self.dispatch("mute", channel, url, user_id)

    def unmute(self, channel: str, url: str, user_id: str) -> Outcome:
        return self.dispatch("unmute", channel, url, user_id)

    def block(self, channel: str, url: str, user_id: str) -> Outcome:
        return self.dispatch("block", channel, url, user_id)

    def unblock(self, channel: str, url: str, user_id: str) -> Outcome:
        return self.dispatch("unblock", channel, url, user_id)

    def search(self, query: str, user_id: str) -> Outcome:
        return self.dispatch("search", query, user_id)

    def preview(self, url: str, user_id: str) -> Outcome:
        return self.dispatch("preview", url, user_id)
