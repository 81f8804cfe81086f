"""Timeline merging, ordering and cursor helpers."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
DEFAULT_LIMIT = 20


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse ISO-8601 (or RFC 2822) timestamps into aware datetimes."""
    if not value or not isinstance(value, str):
        return None

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            parsed = parsedate_to_datetime(value)
        except (TypeError, ValueError, IndexError):
            return None
        if parsed is None:
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def published_at(item: Mapping[str, Any]) -> datetime:
    """Sort key for an entry; missing or unparseable dates are the epoch."""
    return parse_timestamp(item.get("published")) or EPOCH


def sort_items_by_date(items: Iterable[Mapping[str, Any]]) -> List[Any]:
    """Newest first. Entries with equal timestamps keep their input order."""
    return sorted(items, key=published_at, reverse=True)


def dedupe_items_by_id(items: Iterable[Mapping[str, Any]]) -> List[Any]:
    """Drop repeated ``_id`` values, keeping the first. Items without an id stay."""
    unique = []
    seen = set()
    for item in items:
        item_id = item.get("_id")
        if item_id:
            if item_id in seen:
                continue
            seen.add(item_id)
        unique.append(item)
    return unique


def within_cursors(
    item: Mapping[str, Any], after: Optional[str], before: Optional[str]
) -> bool:
    """Return True if ``item`` lies inside the exclusive cursor window.

    ``after`` pages towards older entries (strictly older than the cursor),
    ``before`` towards newer ones (strictly newer than the cursor). A cursor
    that is not a timestamp is ignored.
    """
    published = published_at(item)

    after_bound = parse_timestamp(after)
    if after_bound is not None and not published < after_bound:
        return False

    before_bound = parse_timestamp(before)
    if before_bound is not None and not published > before_bound:
        return False

    return True


def paging_for(items: List[Mapping[str, Any]], limit: int) -> Dict[str, str]:
    """Build paging cursors for a full page of newest-first items."""
    if not items or len(items) < limit:
        return {}

    paging: Dict[str, str] = {}
    newest = items[0].get("published")
    oldest = items[-1].get("published")
    if oldest:
        paging["after"] = oldest
    if newest:
        paging["before"] = newest
    return paging


def merge_timeline(result: Mapping[str, Any], limit: int = DEFAULT_LIMIT) -> Dict[str, Any]:
    """Turn the accumulated adapter result into the response envelope."""
    items = list(result.get("items") or [])
    if not items:
        return {"items": []}

    ordered = sort_items_by_date(items)
    page = ordered[:limit]
    logger.debug(
        "Merged timeline: %d accumulated items, returning %d (limit %d)",
        len(items),
        len(page),
        limit,
    )

    response: Dict[str, Any] = {"items": page}
    if result.get("paging"):
        response["paging"] = result["paging"]
    return response
