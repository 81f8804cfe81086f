"""Configurable adapters used across the test-suite."""

from typing import Any, Dict, List, Optional

from microsub.adapter import Adapter


class FakeAdapter(Adapter):
    """Adapter whose contributions and answers are set per test.

    ``answers`` maps a routed operation name to either an outcome or a
    callable receiving the call arguments. Every call is recorded in
    ``calls`` as ``(operation, args)``.
    """

    def __init__(
        self,
        adapter_id: str,
        priority: int = 10,
        channels: Optional[List[Dict[str, Any]]] = None,
        items: Optional[List[Dict[str, Any]]] = None,
        following: Optional[List[Dict[str, Any]]] = None,
        muted: Optional[List[str]] = None,
        blocked: Optional[List[str]] = None,
        paging: Optional[Dict[str, str]] = None,
        answers: Optional[Dict[str, Any]] = None,
        fail_on: Optional[str] = None,
    ) -> None:
        self.id = adapter_id
        self.name = adapter_id.title()
        self.priority = priority
        self.channels = channels or []
        self.items = items or []
        self.following = following or []
        self.muted = muted
        self.blocked = blocked
        self.paging = paging
        self.answers = answers or {}
        self.fail_on = fail_on
        self.calls: List[tuple] = []

    def _record(self, operation: str, *args: Any) -> None:
        self.calls.append((operation, args))
        if self.fail_on == operation:
            raise RuntimeError(f"{self.id} exploded during {operation}")

    def _answer(self, operation: str, result: Any, *args: Any) -> Any:
        self._record(operation, *args)
        answer = self.answers.get(operation, result)
        if callable(answer):
            return answer(result, *args)
        return answer

    def called(self, operation: str) -> bool:
        return any(name == operation for name, _ in self.calls)

    def get_channels(self, channels, user_id):
        self._record("get_channels", user_id)
        channels.extend(dict(channel) for channel in self.channels)
        return channels

    def get_timeline(self, result, channel, query):
        self._record("get_timeline", channel, query)
        result["items"].extend(dict(item) for item in self.items)
        if self.paging:
            self.add_paging(result, self.paging)
        return result

    def get_following(self, result, channel, user_id):
        self._record("get_following", channel, user_id)
        result.extend(dict(item) for item in self.following)
        return result

    def get_muted(self, result, channel, user_id):
        self._record("get_muted", channel, user_id)
        if self.muted is None:
            return result
        return (result or []) + list(self.muted)

    def get_blocked(self, result, channel, user_id):
        self._record("get_blocked", channel, user_id)
        if self.blocked is None:
            return result
        return (result or []) + list(self.blocked)

    def follow(self, result, channel, url, user_id):
        return self._answer("follow", result, channel, url, user_id)

    def unfollow(self, result, channel, url, user_id):
        return self._answer("unfollow", result, channel, url, user_id)

    def create_channel(self, result, name, user_id):
        return self._answer("create_channel", result, name, user_id)

    def update_channel(self, result, uid, name, user_id):
        return self._answer("update_channel", result, uid, name, user_id)

    def delete_channel(self, result, uid, user_id):
        return self._answer("delete_channel", result, uid, user_id)

    def order_channels(self, result, channels, user_id):
        return self._answer("order_channels", result, channels, user_id)

    def timeline_mark_read(self, result, channel, entries, user_id):
        return self._answer("timeline_mark_read", result, channel, entries, user_id)

    def timeline_mark_unread(self, result, channel, entries, user_id):
        return self._answer("timeline_mark_unread", result, channel, entries, user_id)

    def timeline_remove(self, result, channel, entries, user_id):
        return self._answer("timeline_remove", result, channel, entries, user_id)

    def mute(self, result, channel, url, user_id):
        return self._answer("mute", result, channel, url, user_id)

    def unmute(self, result, channel, url, user_id):
        return self._answer("unmute", result, channel, url, user_id)

    def block(self, result, channel, url, user_id):
        return self._answer("block", result, channel, url, user_id)

    def unblock(self, result, channel, url, user_id):
        return self._answer("unblock", result, channel, url, user_id)

    def search(self, result, query, user_id):
        return self._answer("search", result, query, user_id)

    def preview(self, result, url, user_id):
        return self._answer("preview", result, url, user_id)


class MinimalAdapter(Adapter):
    """Implements only the required methods."""

    id = "minimal"
    name = "Minimal"

    def get_channels(self, channels, user_id):
        return channels

    def get_timeline(self, result, channel, query):
        return result

    def get_following(self, result, channel, user_id):
        return result

    def follow(self, result, channel, url, user_id):
        return result

    def unfollow(self, result, channel, url, user_id):
        return result
