"""Action dispatch and response shaping for the Microsub endpoint."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from .aggregation import Aggregator
from .errors import InvalidRequest, MicrosubError, NotImplementedAction, ServerError
from .models import TimelineQuery
from .outcomes import Failed, Outcome, is_pending
from .registry import Registry
from .routing import OwnershipRouter
from .timeline import DEFAULT_LIMIT, merge_timeline

logger = logging.getLogger(__name__)

GET_ACTIONS = ("channels", "timeline", "follow", "mute", "block", "search", "preview")
POST_ACTIONS = (
    "channels",
    "timeline",
    "follow",
    "unfollow",
    "mute",
    "unmute",
    "block",
    "unblock",
)


@dataclass
class Response:
    status: int
    body: Any


def _param(params: Mapping[str, Any], name: str) -> Any:
    """Return a parameter value, treating blank strings and lists as absent."""
    value = params.get(name)
    if value is None:
        value = params.get(f"{name}[]")
    if isinstance(value, str):
        value = value.strip()
    if value in ("", [], None):
        return None
    return value


def action_param(params: Mapping[str, Any]) -> Optional[str]:
    """The normalised ``action`` parameter used for both scope checks and dispatch."""
    action = _param(params, "action")
    return action if isinstance(action, str) else None


def _require(params: Mapping[str, Any], *names: str) -> List[Any]:
    values = [_param(params, name) for name in names]
    if any(value is None for value in values):
        if len(names) == 1:
            raise InvalidRequest(f"Missing required parameter: {names[0]}")
        raise InvalidRequest(f"Missing required parameters: {', '.join(names)}")
    return values


def _as_list(value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item not in ("", None)]
    return [str(value)]


def _resolve(outcome: Outcome, not_implemented: str, failure: Optional[str] = None) -> Any:
    if is_pending(outcome):
        raise NotImplementedAction(not_implemented)
    if isinstance(outcome, Failed):
        raise ServerError(outcome.reason or failure)
    return outcome.value


class Endpoint:
    """Validate parameters, call the engine, and shape the response."""

    def __init__(self, registry: Registry) -> None:
        self.registry = registry
        self.aggregator = Aggregator(registry)
        self.router = OwnershipRouter(registry)

    def handle(self, method: str, params: Mapping[str, Any], user_id: str) -> Response:
        method = method.upper()
        try:
            action = action_param(params)
            if not action:
                raise InvalidRequest("Missing required parameter: action")

            if method == "GET" and action in GET_ACTIONS:
                body = getattr(self, f"_get_{action}")(params, user_id)
            elif method == "POST" and action in POST_ACTIONS:
                body = getattr(self, f"_post_{action}")(params, user_id)
            else:
                raise InvalidRequest(f"Unknown action: {action}")
        except MicrosubError as exc:
            logger.info(
                "%s action=%s failed: %s (%s)",
                method,
                params.get("action"),
                exc.error,
                exc.description,
            )
            return Response(exc.status, exc.to_dict())

        return Response(200, body)

    # Channels

    def _get_channels(self, params: Mapping[str, Any], user_id: str) -> Dict[str, Any]:
        channels = self.aggregator.get_channels(user_id)
        if not channels:
            raise NotImplementedAction("No adapter provides channel support.")
        return {"channels": channels}

    def _post_channels(self, params: Mapping[str, Any], user_id: str) -> Any:
        method = _param(params, "method")

        if method is None or method == "create":
            (name,) = _require(params, "name")
            return _resolve(
                self.router.create_channel(name, user_id),
                "No adapter provides channel creation.",
                "Failed to create channel.",
            )

        if method == "update":
            uid, name = _require(params, "channel", "name")
            return _resolve(
                self.router.update_channel(uid, name, user_id),
                "No adapter provides channel updating.",
                "Failed to update channel.",
            )

        if method == "delete":
            (uid,) = _require(params, "channel")
            _resolve(
                self.router.delete_channel(uid, user_id),
                "No adapter provides channel deletion.",
                "Failed to delete channel.",
            )
            return None

        if method == "order":
            channels = _param(params, "channels")
            if not isinstance(channels, (list, tuple)) or not channels:
                raise InvalidRequest("Missing required parameter: channels (array)")
            ordered = _resolve(
                self.router.order_channels(_as_list(channels), user_id),
                "No adapter provides channel ordering.",
                "Failed to order channels.",
            )
            return {"channels": ordered}

        raise InvalidRequest(f"Unknown method: {method}")

    # Timeline

    def _get_timeline(self, params: Mapping[str, Any], user_id: str) -> Dict[str, Any]:
        (channel,) = _require(params, "channel")
        query = TimelineQuery(
            channel=channel,
            after=_param(params, "after"),
            before=_param(params, "before"),
            limit=self._limit(params),
            user_id=user_id,
        )
        result = self.aggregator.get_timeline(query)
        return merge_timeline(result, query.limit)

    @staticmethod
    def _limit(params: Mapping[str, Any]) -> int:
        raw = _param(params, "limit")
        if raw is None:
            return DEFAULT_LIMIT
        try:
            limit = int(raw)
        except (TypeError, ValueError):
            raise InvalidRequest("Parameter limit must be a positive integer.") from None
        if limit <= 0:
            raise InvalidRequest("Parameter limit must be a positive integer.")
        return limit

    def _post_timeline(self, params: Mapping[str, Any], user_id: str) -> None:
        (channel,) = _require(params, "channel")
        method = _param(params, "method")

        if method == "mark_read":
            entries = _param(params, "entry") or _param(params, "last_read_entry")
            if entries is None:
                raise InvalidRequest(
                    "Missing required parameter: entry or last_read_entry"
                )
            _resolve(
                self.router.timeline_mark_read(channel, entries, user_id),
                "No adapter provides mark read support.",
                "Failed to mark entries as read.",
            )
            return None

        if method == "mark_unread":
            (entries,) = _require(params, "entry")
            _resolve(
                self.router.timeline_mark_unread(channel, entries, user_id),
                "No adapter provides mark unread support.",
                "Failed to mark entries as unread.",
            )
            return None

        if method == "remove":
            (entries,) = _require(params, "entry")
            _resolve(
                self.router.timeline_remove(channel, entries, user_id),
                "No adapter provides entry removal.",
                "Failed to remove entries.",
            )
            return None

        raise InvalidRequest(f"Unknown method: {method}")

    # Following

    def _get_follow(self, params: Mapping[str, Any], user_id: str) -> Dict[str, Any]:
        (channel,) = _require(params, "channel")
        return {"items": self.aggregator.get_following(channel, user_id)}

    def _post_follow(self, params: Mapping[str, Any], user_id: str) -> Any:
        channel, url = _require(params, "channel", "url")
        return _resolve(
            self.router.follow(channel, url, user_id),
            "No adapter can handle this URL.",
            "Failed to follow URL.",
        )

    def _post_unfollow(self, params: Mapping[str, Any], user_id: str) -> None:
        channel, url = _require(params, "channel", "url")
        _resolve(
            self.router.unfollow(channel, url, user_id),
            "No adapter owns this feed.",
            "Failed to unfollow URL.",
        )
        return None

    # Mute

    def _get_mute(self, params: Mapping[str, Any], user_id: str) -> Dict[str, Any]:
        (channel,) = _require(params, "channel")
        muted = self.aggregator.get_muted(channel, user_id)
        if muted is None:
            raise NotImplementedAction("No adapter provides mute support.")
        return {"items": muted}

    def _post_mute(self, params: Mapping[str, Any], user_id: str) -> None:
        channel, url = _require(params, "channel", "url")
        _resolve(
            self.router.mute(channel, url, user_id),
            "No adapter provides mute support.",
            "Failed to mute user.",
        )
        return None

    def _post_unmute(self, params: Mapping[str, Any], user_id: str) -> None:
        channel, url = _require(params, "channel", "url")
        _resolve(
            self.router.unmute(channel, url, user_id),
            "No adapter provides unmute support.",
            "Failed to unmute user.",
        )
        return None

    # Block

    def _get_block(self, params: Mapping[str, Any], user_id: str) -> Dict[str, Any]:
        channel = _param(params, "channel") or "global"
        blocked = self.aggregator.get_blocked(channel, user_id)
        if blocked is None:
            raise NotImplementedAction("No adapter provides block support.")
        return {"items": blocked}

    def _post_block(self, params: Mapping[str, Any], user_id: str) -> None:
        channel = _param(params, "channel") or "global"
        (url,) = _require(params, "url")
        _resolve(
            self.router.block(channel, url, user_id),
            "No adapter provides block support.",
            "Failed to block user.",
        )
        return None

    def _post_unblock(self, params: Mapping[str, Any], user_id: str) -> None:
        channel = _param(params, "channel") or "global"
        (url,) = _require(params, "url")
        _resolve(
            self.router.unblock(channel, url, user_id),
            "No adapter provides unblock support.",
            "Failed to unblock user.",
        )
        return None

    # Search and preview

    def _get_search(self, params: Mapping[str, Any], user_id: str) -> Any:
        (query,) = _require(params, "query")
        return _resolve(
            self.router.search(query, user_id),
            "No adapter provides search support.",
            "Search failed.",
        )

    def _get_preview(self, params: Mapping[str, Any], user_id: str) -> Any:
        (url,) = _require(params, "url")
        return _resolve(
            self.router.preview(url, user_id),
            "No adapter provides preview support.",
            "Preview failed.",
        )
